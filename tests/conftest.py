import pytest

pd = pytest.importorskip("pandas")

from etl.io import GazeTables


def _records(rows):
    """Expand (subject, condition, t_norm, n_target, n_distractor, n_other) into samples."""
    samples = []
    for subject, condition, t_norm, n_target, n_distractor, n_other in rows:
        aois = ["target"] * n_target + ["distractor"] * n_distractor + ["other"] * n_other
        for aoi in aois:
            samples.append({
                "subject_id": subject,
                "administration_id": subject,
                "condition": condition,
                "t_norm": t_norm,
                "aoi": aoi,
            })
    return pd.DataFrame(samples, columns=["subject_id", "administration_id", "condition", "t_norm", "aoi"])


@pytest.fixture
def make_records():
    return _records


def _tables():
    administrations = pd.DataFrame({
        "administration_id": [1, 2, 3],
        "subject_id": ["S1", "S2", "S3"],
        "age": [18.0, 20.5, 24.0],
        "dataset_name": ["mp_study"] * 3,
    })
    trial_types = pd.DataFrame({
        "trial_type_id": [100, 101, 102],
        "condition": ["cp", "mp", "filler"],
        "target_side": ["left", "right", "left"],
        "dataset_name": ["mp_study"] * 3,
    })
    trials = pd.DataFrame({
        "trial_id": [a * 10 + k for a in (1, 2, 3) for k in range(3)],
        "trial_type_id": [100, 101, 102] * 3,
        "dataset_name": ["mp_study"] * 9,
    })

    patterns = {
        100: ["target", "target", "distractor"],
        101: ["distractor", "target", "other"],
        102: ["missing", "missing", "target"],
    }
    rows = []
    for trial_id, trial_type_id in zip(trials["trial_id"], trials["trial_type_id"]):
        administration_id = trial_id // 10
        for t_norm, aoi in zip([0, 25, 50], patterns[trial_type_id]):
            rows.append({
                "administration_id": administration_id,
                "trial_id": trial_id,
                "t_norm": t_norm,
                "aoi": aoi,
                "dataset_name": "mp_study",
            })
    aoi_timepoints = pd.DataFrame(rows)

    return GazeTables(aoi_timepoints, administrations, trials, trial_types)


@pytest.fixture
def tables():
    return _tables()


@pytest.fixture
def table_folder(tmp_path):
    folder = tmp_path / "tables"
    folder.mkdir()
    for name, df in zip(GazeTables._fields, _tables()):
        df.to_csv(folder / f"{name}.csv", index=False)
    return folder
