"""
Joining of gaze database tables and normalization of trial conditions.
"""
import logging
from typing import Dict, Optional

import pandas as pd

from etl.config import PipelineConfig
from etl.io import GazeTables, REQUIRED_COLUMNS, require_columns

logger = logging.getLogger(__name__)


class JoinIntegrityError(ValueError):
    """A row does not resolve to exactly one parent row in a joined table."""


class UnknownConditionError(ValueError):
    """A trial type carries a condition code outside the configured codes."""


def _examples(values: pd.Series, limit: int = 5) -> list:
    return list(pd.unique(values))[:limit]


def _merge_parent(left: pd.DataFrame, right: pd.DataFrame, on: str, table: str) -> pd.DataFrame:
    """
    Attach the single parent row in ``right`` to every row of ``left``.

    Parameters:
    -----------
    left : pd.DataFrame
        Child rows; every row must resolve
    right : pd.DataFrame
        Parent table keyed by ``on``
    on : str
        Key column
    table : str
        Name of the parent table, for error messages

    Returns:
    --------
    pd.DataFrame
        ``left`` with the parent columns appended, same length and order
    """
    duplicated = right[on].duplicated(keep=False)
    if duplicated.any():
        raise JoinIntegrityError(
            f"{table} has {int(duplicated.sum())} rows with duplicate {on} values, "
            f"e.g. {_examples(right.loc[duplicated, on])}"
        )

    null_keys = left[on].isna()
    if null_keys.any():
        raise JoinIntegrityError(f"{int(null_keys.sum())} rows have no {on} to join {table} on")

    shared = [c for c in right.columns if c in left.columns and c != on]
    merged = left.merge(
        right, on=on, how="left", suffixes=("", "_parent"),
        indicator=True, validate="many_to_one"
    )

    unmatched = merged["_merge"] != "both"
    if unmatched.any():
        raise JoinIntegrityError(
            f"{int(unmatched.sum())} rows have no matching row in {table} "
            f"({on} e.g. {_examples(merged.loc[unmatched, on])})"
        )

    # Columns carried by both sides must agree; the child's copy is kept
    for col in shared:
        parent_col = f"{col}_parent"
        both_missing = merged[col].isna() & merged[parent_col].isna()
        mismatch = merged[col].ne(merged[parent_col]) & ~both_missing
        if mismatch.any():
            raise JoinIntegrityError(
                f"{int(mismatch.sum())} rows disagree with {table} on '{col}' "
                f"({on} e.g. {_examples(merged.loc[mismatch, on])})"
            )
        merged = merged.drop(columns=parent_col)

    return merged.drop(columns="_merge")


def join_tables(tables: GazeTables) -> pd.DataFrame:
    """
    Denormalize gaze samples with their administration, trial and trial type.

    Every sample must resolve to exactly one row of each parent table;
    otherwise a ``JoinIntegrityError`` is raised instead of dropping or
    duplicating samples.

    Parameters:
    -----------
    tables : GazeTables
        Gaze samples, administrations, trials and trial types

    Returns:
    --------
    pd.DataFrame
        One joined record per gaze sample, in input order
    """
    for name, df in zip(GazeTables._fields, tables):
        require_columns(df, REQUIRED_COLUMNS[name], name)

    samples = tables.aoi_timepoints
    logger.debug('join_tables input shape: %s', samples.shape)

    joined = _merge_parent(samples, tables.administrations, "administration_id", "administrations")
    joined = _merge_parent(joined, tables.trials, "trial_id", "trials")
    joined = _merge_parent(joined, tables.trial_types, "trial_type_id", "trial_types")

    if len(joined) != len(samples):
        raise JoinIntegrityError(
            f"Join produced {len(joined)} records from {len(samples)} gaze samples"
        )
    logger.debug('join_tables output shape: %s', joined.shape)
    return joined


def normalize_conditions(joined: pd.DataFrame,
                         condition_labels: Optional[Dict[str, str]] = None,
                         filler_code: str = "filler") -> pd.DataFrame:
    """
    Drop filler trials and relabel the remaining condition codes.

    Parameters:
    -----------
    joined : pd.DataFrame
        Joined records with a ``condition`` column
    condition_labels : Optional[Dict[str, str]], optional
        Mapping from raw code to label, by default the ``PipelineConfig``
        codes mapped to "Correct" and "Mispronounced"
    filler_code : str, optional
        Raw code of filler trials, by default "filler"

    Returns:
    --------
    pd.DataFrame
        Records of the labelled conditions only
    """
    if condition_labels is None:
        condition_labels = PipelineConfig().condition_labels
    require_columns(joined, ["condition"], "joined records")

    known = set(condition_labels) | {filler_code}
    unknown = ~joined["condition"].isin(known)
    if unknown.any():
        codes = sorted(map(str, _examples(joined.loc[unknown, "condition"], limit=20)))
        raise UnknownConditionError(
            f"{int(unknown.sum())} records have unknown condition code(s): {codes}"
        )

    is_filler = joined["condition"] == filler_code
    logger.info("Dropping %d filler records", int(is_filler.sum()))

    normalized = joined[~is_filler].copy()
    normalized["condition"] = normalized["condition"].map(condition_labels)
    return normalized.reset_index(drop=True)


def filter_age(df: pd.DataFrame, min_months: Optional[float] = None,
               max_months: Optional[float] = None) -> pd.DataFrame:
    """Keep records whose administration age lies in the inclusive range."""
    if min_months is None and max_months is None:
        return df
    require_columns(df, ["age"], "joined records")

    keep = pd.Series(True, index=df.index)
    if min_months is not None:
        keep &= df["age"] >= min_months
    if max_months is not None:
        keep &= df["age"] <= max_months

    logger.info("Age filter kept %d of %d records", int(keep.sum()), len(df))
    return df[keep].reset_index(drop=True)


def preprocess_pipeline(tables: GazeTables, config: PipelineConfig):
    """
    Join the input tables, normalize conditions and apply the age filter.

    Parameters:
    -----------
    tables : GazeTables
        Input tables scoped to ``config.dataset_name``
    config : PipelineConfig
        Pipeline configuration

    Returns:
    --------
    Tuple[pd.DataFrame, pd.DataFrame]
        Tuple of (joined, normalized)
    """
    logger.info("Joining tables for dataset '%s'", config.dataset_name)
    joined = join_tables(tables)
    normalized = normalize_conditions(joined, config.condition_labels, config.filler_code)
    normalized = filter_age(normalized, config.min_age_months, config.max_age_months)
    logger.debug('preprocess_pipeline output shape: %s', normalized.shape)
    return joined, normalized
