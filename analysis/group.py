"""
Subject- and group-level aggregation of looking accuracy.

Accuracy is always aggregated in two passes: first within each subject at
every (condition, t_norm), then across subjects. Confidence intervals are
computed over the per-subject values, so the subject is the unit of
replication rather than the individual gaze sample.
"""
import logging
import pandas as pd
import numpy as np
from typing import Optional, Tuple
import statsmodels.formula.api as smf
from scipy import stats

from analysis.metrics import accuracy_table, check_keys

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = [
    "condition", "t_norm", "mean_accuracy", "sd_accuracy",
    "n_subjects", "ci_half_width", "low_support",
]


def subject_accuracy(records: pd.DataFrame, unit: str = "subject_id") -> pd.DataFrame:
    """
    First pass: accuracy per condition, time point and subject.

    Parameters
    ----------
    records : pd.DataFrame
        Normalized gaze records with ``condition``, ``t_norm``, ``aoi`` and
        ``unit`` columns.
    unit : str, optional
        Column identifying the unit of replication, by default "subject_id".
        Use "administration_id" to treat every session separately.

    Returns
    -------
    pd.DataFrame
        One row per (condition, t_norm, unit) with sample counts and
        ``accuracy`` (``nan`` where no target/distractor sample exists).
    """
    return accuracy_table(records, ["condition", "t_norm", unit])


def aggregate_across_subjects(subject_points: pd.DataFrame, z: float = 1.96,
                              min_subjects: int = 2) -> pd.DataFrame:
    """
    Second pass: mean and confidence half-width across subjects.

    Undefined per-subject accuracies are excluded and do not count towards
    ``n_subjects``. Points with fewer than ``min_subjects`` defined values get
    ``low_support=True`` and a ``nan`` half-width.

    Parameters
    ----------
    subject_points : pd.DataFrame
        Output of :func:`subject_accuracy`.
    z : float, optional
        Normal quantile, by default 1.96 for a 95% interval.
    min_subjects : int, optional
        Minimum number of subjects for a defined half-width, by default 2.

    Returns
    -------
    pd.DataFrame
        One row per (condition, t_norm).
    """
    if min_subjects < 2:
        raise ValueError("min_subjects must be at least 2")
    if subject_points.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    check_keys(subject_points, ["condition", "t_norm"])
    summary = (
        subject_points.groupby(["condition", "t_norm"], sort=True)["accuracy"]
        .agg(mean_accuracy="mean", sd_accuracy="std", n_subjects="count")
        .reset_index()
    )

    supported = summary["n_subjects"] >= min_subjects
    n = summary["n_subjects"].where(supported)
    summary["ci_half_width"] = z * summary["sd_accuracy"] / np.sqrt(n)
    summary["low_support"] = ~supported

    n_low = int((~supported).sum())
    if n_low:
        logger.warning(
            "%d of %d time points have fewer than %d contributing subjects; "
            "their confidence half-width is undefined", n_low, len(summary), min_subjects
        )
    return summary[SUMMARY_COLUMNS]


def accuracy_timecourse(records: pd.DataFrame, z: float = 1.96, min_subjects: int = 2,
                        unit: str = "subject_id") -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Run both aggregation passes over normalized records.

    Returns
    -------
    Tuple[pd.DataFrame, pd.DataFrame]
        ``(subject_points, summary)`` so that the per-subject table stays
        available for inspection and window statistics.
    """
    logger.debug('accuracy_timecourse input shape: %s', records.shape)
    subject_points = subject_accuracy(records, unit)
    summary = aggregate_across_subjects(subject_points, z=z, min_subjects=min_subjects)
    logger.debug('accuracy_timecourse output shape: %s', summary.shape)
    return subject_points, summary


def _check_window(lo: float, hi: float) -> None:
    if lo > hi:
        raise ValueError(f"Window start ({lo}) is after window end ({hi})")


def window_summary(summary: pd.DataFrame, lo: float, hi: float) -> pd.DataFrame:
    """
    Mean of the group timecourse inside the inclusive window ``[lo, hi]``.

    The value per condition is the average of ``mean_accuracy`` over the
    time points in the window; undefined means are skipped. Conditions without
    any defined point in the window get ``nan``.
    """
    _check_window(lo, hi)
    conditions = sorted(summary["condition"].unique())
    in_window = summary[summary["t_norm"].between(lo, hi)]

    result = (
        in_window.groupby("condition", sort=True)["mean_accuracy"]
        .agg(window_accuracy="mean", n_timepoints="count")
        .reindex(conditions)
        .rename_axis("condition")
        .reset_index()
    )
    result["n_timepoints"] = result["n_timepoints"].fillna(0).astype(int)
    result["window_start_ms"] = lo
    result["window_end_ms"] = hi
    return result


def subject_window_accuracy(subject_points: pd.DataFrame, lo: float, hi: float,
                            unit: str = "subject_id") -> pd.DataFrame:
    """Per-subject mean of first-pass accuracy inside the inclusive window."""
    _check_window(lo, hi)
    in_window = subject_points[subject_points["t_norm"].between(lo, hi)]
    return (
        in_window.groupby(["condition", unit], sort=True)["accuracy"]
        .agg(accuracy="mean", n_timepoints="count")
        .reset_index()
    )


def _cohens_dz(diff: np.ndarray) -> float:
    """Cohen's d_z for paired differences."""
    sd = np.std(diff, ddof=1)
    if sd == 0:
        return np.nan
    return np.mean(diff) / sd


def _bootstrap_ci(func, data: np.ndarray, n_boot: int = 1000, ci: float = 0.95,
                  seed: Optional[int] = None) -> Tuple[float, float]:
    """Bootstrap confidence interval for the given statistic."""
    rng = np.random.default_rng(seed)
    stats_bs = [func(rng.choice(data, size=len(data), replace=True)) for _ in range(n_boot)]
    lower = np.nanpercentile(stats_bs, (1 - ci) / 2 * 100)
    upper = np.nanpercentile(stats_bs, (1 + ci) / 2 * 100)
    return lower, upper


def compare_conditions(subject_window: pd.DataFrame, unit: str = "subject_id",
                       first: str = "Correct", second: str = "Mispronounced",
                       ci: bool = False, seed: Optional[int] = None) -> pd.DataFrame:
    """Paired comparison of window accuracy between two conditions.

    Parameters
    ----------
    subject_window : pd.DataFrame
        Output of :func:`subject_window_accuracy`.
    unit : str, optional
        Subject column, by default "subject_id".
    first, second : str, optional
        Conditions to compare; the difference is ``first - second``.
    ci : bool, optional
        If True, bootstrap 95% confidence interval for the effect size.
    seed : Optional[int], optional
        Seed for the bootstrap.
    """
    paired = subject_window.pivot(index=unit, columns="condition", values="accuracy")
    missing = [c for c in (first, second) if c not in paired.columns]
    if missing:
        raise ValueError(f"Condition(s) {missing} not present in window accuracies")

    paired = paired[[first, second]].dropna()
    if len(paired) < 2:
        raise ValueError(f"Need at least 2 subjects with both conditions, got {len(paired)}")

    diff = (paired[first] - paired[second]).to_numpy()
    stat, p = stats.ttest_rel(paired[first], paired[second])
    effect = _cohens_dz(diff)
    ci_low = ci_high = np.nan
    if ci:
        ci_low, ci_high = _bootstrap_ci(_cohens_dz, diff, seed=seed)

    return pd.DataFrame({
        "test": ["paired t-test"],
        "comparison": [f"{first} - {second}"],
        "n_subjects": [len(paired)],
        "mean_difference": [float(np.mean(diff))],
        "statistic": [stat],
        "p_value": [p],
        "effect_size": [effect],
        "ci_lower": [ci_low],
        "ci_upper": [ci_high],
    })


def chance_test(subject_window: pd.DataFrame, chance: float = 0.5) -> pd.DataFrame:
    """One-sample t-test of subject window accuracy against chance, per condition."""
    rows = []
    for condition, group in subject_window.groupby("condition", sort=True):
        values = group["accuracy"].dropna().to_numpy()
        if len(values) >= 2:
            stat, p = stats.ttest_1samp(values, chance)
        else:
            stat = p = np.nan
        rows.append({
            "condition": condition,
            "n_subjects": len(values),
            "mean_accuracy": np.mean(values) if len(values) else np.nan,
            "statistic": stat,
            "p_value": p,
        })
    return pd.DataFrame(rows, columns=["condition", "n_subjects", "mean_accuracy", "statistic", "p_value"])


def mixed_effects_model(subject_window: pd.DataFrame, formula: str = "accuracy ~ condition",
                        unit: str = "subject_id") -> pd.DataFrame:
    """
    Fit a linear mixed model with a random intercept per subject.

    Returns the fixed-effect estimates as a tidy table with columns ``term``,
    ``coef``, ``std_err``, ``z``, ``p_value``, ``ci_lower`` and ``ci_upper``.
    """
    data = subject_window.dropna(subset=["accuracy"])
    model = smf.mixedlm(formula, data, groups=data[unit])
    result = model.fit()

    terms = result.fe_params.index
    conf = result.conf_int().loc[terms]
    return pd.DataFrame({
        "term": list(terms),
        "coef": result.fe_params.to_numpy(),
        "std_err": result.bse_fe.to_numpy(),
        "z": result.tvalues.loc[terms].to_numpy(),
        "p_value": result.pvalues.loc[terms].to_numpy(),
        "ci_lower": conf.iloc[:, 0].to_numpy(),
        "ci_upper": conf.iloc[:, 1].to_numpy(),
    })
