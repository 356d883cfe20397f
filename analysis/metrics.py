import numpy as np
import pandas as pd
from typing import Iterable, List, Sequence

AOI_LABELS = ("target", "distractor", "other", "missing")
VALID_AOIS = ("target", "distractor")


def _check_aoi(aoi: pd.Series) -> None:
    unknown = ~aoi.isin(AOI_LABELS)
    if unknown.any():
        labels = sorted(map(str, pd.unique(aoi[unknown])))
        raise ValueError(f"Unrecognised AOI label(s): {labels}")


def check_keys(df: pd.DataFrame, keys: Sequence[str]) -> None:
    """Raise ``ValueError`` if any grouping key is missing a value."""
    null_counts = df[list(keys)].isna().sum()
    null_counts = null_counts[null_counts > 0]
    if not null_counts.empty:
        raise ValueError(f"Grouping keys have missing values: {null_counts.to_dict()}")


def accuracy(aoi: Iterable[str]) -> float:
    """Proportion of target looking among target and distractor samples.

    Parameters
    ----------
    aoi : Iterable[str]
        AOI labels of the samples in one group.

    Returns
    -------
    float
        ``count(target) / count(target | distractor)``. Samples labelled
        ``other`` or ``missing`` count in neither term; ``nan`` when the group
        has no target or distractor samples.
    """
    aoi = aoi if isinstance(aoi, pd.Series) else pd.Series(list(aoi), dtype=object)
    _check_aoi(aoi)
    n_target = int((aoi == "target").sum())
    n_valid = int(aoi.isin(VALID_AOIS).sum())
    if n_valid == 0:
        return np.nan
    return n_target / n_valid


def accuracy_table(records: pd.DataFrame, keys: Sequence[str]) -> pd.DataFrame:
    """Apply :func:`accuracy` to every group of ``records``.

    Records with a missing value in any of ``keys`` raise ``ValueError``
    rather than being dropped from the grouping.

    Parameters
    ----------
    records : pd.DataFrame
        Gaze records with an ``aoi`` column and the ``keys`` columns.
    keys : Sequence[str]
        Grouping columns, e.g. ``["condition", "t_norm", "subject_id"]``.

    Returns
    -------
    pd.DataFrame
        One row per group, sorted by ``keys``, with sample counts ``n_target``,
        ``n_distractor``, ``n_other``, ``n_missing``, ``n_valid`` and the
        ``accuracy`` ratio (``nan`` where ``n_valid`` is zero).
    """
    keys: List[str] = list(keys)
    count_cols = ["n_" + label for label in AOI_LABELS]
    if records.empty:
        empty = records[keys].iloc[0:0].copy()
        for col in count_cols + ["n_valid"]:
            empty[col] = pd.Series(dtype=int)
        empty["accuracy"] = pd.Series(dtype=float)
        return empty

    check_keys(records, keys)
    aoi = records["aoi"]
    _check_aoi(aoi)

    frame = records[keys].copy()
    for col, label in zip(count_cols, AOI_LABELS):
        frame[col] = (aoi == label).to_numpy().astype(int)
    counts = (
        frame.groupby(keys, sort=True)[count_cols]
        .sum()
        .reset_index()
    )
    counts["n_valid"] = counts["n_target"] + counts["n_distractor"]
    counts["accuracy"] = counts["n_target"] / counts["n_valid"].where(counts["n_valid"] > 0)
    return counts
