"""
Functions for loading and saving gaze database tables
"""
import logging
from pathlib import Path
from typing import Iterable, NamedTuple, Optional

import pandas as pd

logger = logging.getLogger(__name__)

TABLE_NAMES = ("aoi_timepoints", "administrations", "trials", "trial_types")

REQUIRED_COLUMNS = {
    "aoi_timepoints": ["administration_id", "trial_id", "t_norm", "aoi"],
    "administrations": ["administration_id", "subject_id", "age"],
    "trials": ["trial_id", "trial_type_id"],
    "trial_types": ["trial_type_id", "condition"],
}


class GazeTables(NamedTuple):
    """The four tables of one dataset, as returned by the retrieval layer."""
    aoi_timepoints: pd.DataFrame
    administrations: pd.DataFrame
    trials: pd.DataFrame
    trial_types: pd.DataFrame


def require_columns(df: pd.DataFrame, columns: Iterable[str], table: str = "table") -> None:
    """Raise ``ValueError`` if any of ``columns`` is missing from ``df``."""
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise ValueError(f"Required column(s) {missing} not found in {table}")


def load_table(path: Path) -> pd.DataFrame:
    """
    Load a single table from CSV or Parquet, chosen by file suffix.
    """
    path = Path(path)
    if path.suffix.lower() == '.parquet':
        return pd.read_parquet(path)
    return pd.read_csv(path)


def _find_table_file(folder: Path, name: str) -> Path:
    for suffix in ('.parquet', '.csv'):
        candidate = folder / f"{name}{suffix}"
        if candidate.exists():
            return candidate
    raise FileNotFoundError(f"No '{name}.parquet' or '{name}.csv' found in {folder}")


def load_tables(folder: str, dataset_name: Optional[str] = None) -> GazeTables:
    """
    Load the gaze, administration, trial and trial-type tables from a folder.

    Parameters:
    -----------
    folder : str
        Folder holding ``aoi_timepoints``, ``administrations``, ``trials`` and
        ``trial_types`` as ``.csv`` or ``.parquet`` files
    dataset_name : Optional[str], optional
        If given, tables with a ``dataset_name`` column are restricted to it,
        by default None. At least one table must carry that column.

    Returns:
    --------
    GazeTables
        The four tables
    """
    folder_path = Path(folder)
    tables = {}
    filtered = False
    for name in TABLE_NAMES:
        df = load_table(_find_table_file(folder_path, name))
        require_columns(df, REQUIRED_COLUMNS[name], name)
        if dataset_name and 'dataset_name' in df.columns:
            df = df[df['dataset_name'] == dataset_name].reset_index(drop=True)
            filtered = True
        logger.info("Loaded %s: %d rows", name, len(df))
        tables[name] = df

    if dataset_name and not filtered:
        raise ValueError(
            f"Cannot restrict to dataset '{dataset_name}': no table in {folder} has a dataset_name column"
        )
    if dataset_name and tables["aoi_timepoints"].empty:
        logger.warning("No gaze samples found for dataset '%s'", dataset_name)

    return GazeTables(**tables)


def save_processed(df: pd.DataFrame, output_path: str, format: str = "parquet") -> None:
    """
    Save a processed table.

    Parameters:
    -----------
    df : pd.DataFrame
        DataFrame to save
    output_path : str
        Path to save the DataFrame to
    format : str, optional
        File format ("csv", "parquet"), by default "parquet"
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if format.lower() == "csv":
        df.to_csv(path, index=False)
    elif format.lower() == "parquet":
        df.to_parquet(path, index=False)
    else:
        raise ValueError(f"Unsupported format: {format}. Use 'csv' or 'parquet'.")
