import logging
import math

import pytest

pd = pytest.importorskip("pandas")
np = pytest.importorskip("numpy")
pytest.importorskip("scipy")
pytest.importorskip("statsmodels")
from analysis.group import (
    subject_accuracy, aggregate_across_subjects, accuracy_timecourse,
    window_summary, subject_window_accuracy, compare_conditions,
    chance_test, mixed_effects_model,
)
from analysis.metrics import accuracy_table


def _points(values, condition="Correct", t_norm=0):
    return pd.DataFrame({
        "condition": condition,
        "t_norm": t_norm,
        "subject_id": [f"S{i}" for i in range(len(values))],
        "accuracy": values,
    })


def test_three_subject_scenario(make_records):
    records = make_records([
        ("S1", "Correct", 0, 3, 2, 1),
        ("S2", "Correct", 0, 4, 1, 0),
        ("S3", "Correct", 0, 5, 0, 3),
    ])
    subject_points, summary = accuracy_timecourse(records)

    assert sorted(subject_points["accuracy"]) == pytest.approx([0.6, 0.8, 1.0])
    row = summary.iloc[0]
    assert row["condition"] == "Correct"
    assert row["mean_accuracy"] == pytest.approx(0.8)
    assert row["sd_accuracy"] == pytest.approx(0.2)
    assert row["n_subjects"] == 3
    assert row["ci_half_width"] == pytest.approx(1.96 * 0.2 / math.sqrt(3))
    assert row["ci_half_width"] == pytest.approx(0.226, abs=1e-3)
    assert not row["low_support"]


def test_single_subject_has_undefined_half_width(caplog):
    with caplog.at_level(logging.WARNING, logger="analysis.group"):
        summary = aggregate_across_subjects(_points([0.7]))
    row = summary.iloc[0]
    assert row["mean_accuracy"] == pytest.approx(0.7)
    assert row["n_subjects"] == 1
    assert math.isnan(row["ci_half_width"])
    assert row["low_support"]
    assert "fewer than 2 contributing subjects" in caplog.text


def test_undefined_subject_accuracy_is_excluded_not_zero():
    summary = aggregate_across_subjects(_points([0.5, 1.0, np.nan]))
    row = summary.iloc[0]
    assert row["mean_accuracy"] == pytest.approx(0.75)
    assert row["n_subjects"] == 2
    assert row["ci_half_width"] == pytest.approx(1.96 * np.std([0.5, 1.0], ddof=1) / math.sqrt(2))


def test_all_undefined_point_is_flagged():
    summary = aggregate_across_subjects(_points([np.nan, np.nan]))
    row = summary.iloc[0]
    assert row["n_subjects"] == 0
    assert math.isnan(row["mean_accuracy"])
    assert math.isnan(row["ci_half_width"])
    assert row["low_support"]


def test_two_stage_differs_from_pooled(make_records):
    # S1 contributes many more samples than S2
    records = make_records([
        ("S1", "Correct", 0, 10, 0, 0),
        ("S2", "Correct", 0, 1, 1, 0),
    ])
    _, summary = accuracy_timecourse(records)
    pooled = accuracy_table(records, ["condition", "t_norm"])

    assert summary["mean_accuracy"].iloc[0] == pytest.approx(0.75)
    assert pooled["accuracy"].iloc[0] == pytest.approx(11 / 12)
    assert summary["mean_accuracy"].iloc[0] != pytest.approx(pooled["accuracy"].iloc[0])


def test_half_width_grows_with_variance():
    narrow = aggregate_across_subjects(_points([0.4, 0.5, 0.6]))["ci_half_width"].iloc[0]
    wide = aggregate_across_subjects(_points([0.2, 0.5, 0.8]))["ci_half_width"].iloc[0]
    assert 0 <= narrow < wide


def test_half_width_shrinks_with_subject_count():
    three = aggregate_across_subjects(_points([0.4, 0.5, 0.6])).iloc[0]
    five = aggregate_across_subjects(_points([0.4, 0.4, 0.5, 0.6, 0.6])).iloc[0]
    assert three["sd_accuracy"] == pytest.approx(five["sd_accuracy"])
    assert five["ci_half_width"] < three["ci_half_width"]


def test_min_subjects_must_allow_sample_sd():
    with pytest.raises(ValueError):
        aggregate_across_subjects(_points([0.5, 0.6]), min_subjects=1)


def test_summary_from_tables(tables):
    from etl.preprocess import join_tables, normalize_conditions

    records = normalize_conditions(join_tables(tables))
    subject_points, summary = accuracy_timecourse(records)

    assert len(subject_points) == 3 * 2 * 3
    assert list(summary[["condition", "t_norm"]].itertuples(index=False, name=None)) == [
        ("Correct", 0), ("Correct", 25), ("Correct", 50),
        ("Mispronounced", 0), ("Mispronounced", 25), ("Mispronounced", 50),
    ]
    defined = summary["mean_accuracy"].dropna()
    assert ((defined >= 0) & (defined <= 1)).all()
    assert (summary["ci_half_width"].dropna() >= 0).all()

    unlooked = summary[(summary["condition"] == "Mispronounced") & (summary["t_norm"] == 50)].iloc[0]
    assert unlooked["n_subjects"] == 0
    assert unlooked["low_support"]


def test_pipeline_is_deterministic(tables):
    from etl.config import PipelineConfig
    from etl.preprocess import preprocess_pipeline

    config = PipelineConfig(dataset_name="mp_study")
    _, first = accuracy_timecourse(preprocess_pipeline(tables, config)[1])
    _, second = accuracy_timecourse(preprocess_pipeline(tables, config)[1])
    pd.testing.assert_frame_equal(first, second, check_exact=True)


def test_subject_accuracy_by_administration(make_records):
    records = make_records([("S1", "Correct", 0, 1, 1, 0)])
    points = subject_accuracy(records, unit="administration_id")
    assert "administration_id" in points.columns
    assert "subject_id" not in points.columns


def test_window_summary_averages_group_means():
    summary = aggregate_across_subjects(pd.concat([
        _points([0.4, 0.6], t_norm=0),
        _points([0.6, 0.8], t_norm=25),
        _points([0.8, 1.0], t_norm=50),
        _points([0.2, 0.4], condition="Mispronounced", t_norm=0),
        _points([0.3, 0.5], condition="Mispronounced", t_norm=100),
    ], ignore_index=True))

    result = window_summary(summary, 25, 50).set_index("condition")
    assert result.loc["Correct", "window_accuracy"] == pytest.approx(0.8)
    assert result.loc["Correct", "n_timepoints"] == 2
    assert math.isnan(result.loc["Mispronounced", "window_accuracy"])
    assert result.loc["Mispronounced", "n_timepoints"] == 0

    inclusive = window_summary(summary, 0, 0).set_index("condition")
    assert inclusive.loc["Mispronounced", "window_accuracy"] == pytest.approx(0.3)


def test_window_summary_rejects_reversed_window():
    summary = aggregate_across_subjects(_points([0.5, 0.6]))
    with pytest.raises(ValueError):
        window_summary(summary, 100, 0)


def test_subject_window_accuracy():
    points = pd.concat([
        _points([0.4, 0.6], t_norm=0),
        _points([0.8, np.nan], t_norm=25),
        _points([1.0, 1.0], t_norm=500),
    ], ignore_index=True)
    result = subject_window_accuracy(points, 0, 25).set_index("subject_id")
    assert result.loc["S0", "accuracy"] == pytest.approx(0.6)
    assert result.loc["S1", "accuracy"] == pytest.approx(0.6)
    assert result.loc["S1", "n_timepoints"] == 1


def _subject_window():
    return pd.DataFrame({
        "condition": ["Correct"] * 6 + ["Mispronounced"] * 6,
        "subject_id": [f"S{i}" for i in range(6)] * 2,
        "accuracy": [0.70, 0.75, 0.80, 0.65, 0.72, 0.78,
                     0.55, 0.60, 0.50, 0.58, 0.52, 0.61],
    })


def test_compare_conditions():
    result = compare_conditions(_subject_window(), ci=True, seed=1).iloc[0]
    assert result["n_subjects"] == 6
    assert result["mean_difference"] == pytest.approx(1.04 / 6)
    assert result["statistic"] > 0
    assert result["p_value"] < 0.05
    assert result["ci_lower"] < result["ci_upper"]


def test_compare_conditions_needs_paired_subjects():
    data = _subject_window()
    with pytest.raises(ValueError):
        compare_conditions(data[data["subject_id"].isin(["S0"])])
    with pytest.raises(ValueError):
        compare_conditions(data[data["condition"] == "Correct"])


def test_chance_test():
    result = chance_test(_subject_window()).set_index("condition")
    assert result.loc["Correct", "n_subjects"] == 6
    assert result.loc["Correct", "statistic"] > 0
    assert result.loc["Correct", "p_value"] < 0.05


def test_mixed_effects_model():
    result = mixed_effects_model(_subject_window()).set_index("term")
    assert set(result.index) == {"Intercept", "condition[T.Mispronounced]"}
    assert result.loc["condition[T.Mispronounced]", "coef"] == pytest.approx(-1.04 / 6, abs=1e-6)


def test_second_pass_rejects_missing_keys():
    points = _points([0.5, 0.6, 0.7])
    points.loc[1, "condition"] = None
    with pytest.raises(ValueError, match="condition"):
        aggregate_across_subjects(points)
