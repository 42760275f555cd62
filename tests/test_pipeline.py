from pathlib import Path

import pandas as pd
import pyreadstat
import pytest

from conftest import raw_release

from elsa_stroke_psychosis.errors import SchemaMismatchError
from elsa_stroke_psychosis.preprocess_data import (
    DEFAULT_FILES,
    MASTER_OUTPUT,
    PreprocessConfig,
    parse_args,
    preprocess,
)
from elsa_stroke_psychosis.waves import ID


# -------------------------------
# Helpers
# -------------------------------
IDS = [900001, 900002, 900003, 900004, 900005, 900006, 900007, 900008]


def _write_release(raw_dir: Path, release) -> None:
    for name, frame in release.items():
        path = raw_dir / DEFAULT_FILES[name]
        path.parent.mkdir(parents=True, exist_ok=True)
        pyreadstat.write_sav(frame, str(path))


def _release():
    return raw_release(
        IDS,
        index={
            900002: {"dobyear": 1950, "sex": 2},
            900008: {f"outindw{wave}": -1 for wave in range(1, 6)},
            900006: {"mortwave": 42},
        },
        waves={
            1: {900003: {"hepsy1": 6}},
            2: {900004: {"hedim01": 8, "HeAge": 61}},
            4: {900003: {"hedimst": 1}, 900005: {"hepsysc": 1, "fqethnr": 2}},
            5: {900002: {"GOR": "K", "heska": 1}},
        },
        wave_members={6: IDS[:5], 7: IDS[:5], 8: IDS[:4], 9: IDS[:4]},
        prestudy={"wave0_common": {900007: {"illsm2": 15}}},
    )


# -------------------------------
# End to end
# -------------------------------
def test_full_run_writes_every_stage(tmp_path):
    _write_release(tmp_path / "data" / "raw", _release())
    config = PreprocessConfig(project_root=tmp_path, n_jobs=1, n_estimators=10, max_iter=2)

    result = preprocess(config)

    out = tmp_path / "data"
    master = pd.read_parquet(out / MASTER_OUTPUT)
    assert master[ID].is_unique
    assert 900008 not in set(master[ID])
    assert len(master) == len(IDS) - 1

    for name in ["strokeinpsychosis", "psychosisinstroke"]:
        surv = pd.read_parquet(out / f"{name}_surv.parquet")
        imp = pd.read_parquet(out / f"{name}_imp.parquet")
        assert surv[ID].is_unique and imp[ID].is_unique
        assert (surv["fuptime"] >= 0).all()
        assert set(imp[ID]) == set(surv[ID])
        assert not imp["sex"].isna().any()

    assert set(result.oob_error) == {"NRMSE", "PFC"}


def test_psychosis_then_stroke_participant(tmp_path):
    _write_release(tmp_path / "data" / "raw", _release())
    preprocess(PreprocessConfig(project_root=tmp_path), skip_imputation=True)

    master = pd.read_parquet(tmp_path / "data" / MASTER_OUTPUT).set_index(ID)
    assert master.loc[900003, "strokepsychosisorder"] == "psychosis then stroke"
    assert master.loc[900004, "strokepsychosisorder"] == "stroke only"
    assert master.loc[900007, "wavefirstreport_stroke"] == 0.5
    assert master.loc[900002, "sex"] == "Female"
    assert not (tmp_path / "data" / "strokeinpsychosis_imp.parquet").exists()


def test_missing_raw_file_aborts(tmp_path):
    release = _release()
    del release["wave7"]
    _write_release(tmp_path / "data" / "raw", release)

    with pytest.raises(FileNotFoundError):
        preprocess(PreprocessConfig(project_root=tmp_path), skip_imputation=True)
    assert not (tmp_path / "data" / MASTER_OUTPUT).exists()


def test_renamed_raw_column_aborts(tmp_path):
    release = _release()
    release["wave3"] = release["wave3"].rename(columns={"hepsyha": "hepsyhal"})
    _write_release(tmp_path / "data" / "raw", release)

    with pytest.raises(SchemaMismatchError):
        preprocess(PreprocessConfig(project_root=tmp_path), skip_imputation=True)


# -------------------------------
# Configuration
# -------------------------------
def test_yaml_overrides_and_flags(tmp_path, caplog):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "data_paths.yml").write_text(
        "raw_dir: elsewhere/raw\nseed: 99\nn_estimators: 20\nfiles:\n  wave7: w7.sav\nmystery: 1\n",
        encoding="utf-8",
    )

    config, skip = parse_args(["--project-root", str(tmp_path), "--seed", "5", "--skip-imputation"])

    assert skip is True
    assert config.raw_dir == (tmp_path / "elsewhere" / "raw").resolve()
    assert config.seed == 5
    assert config.n_estimators == 20
    assert config.path_for("wave7") == config.raw_dir / "w7.sav"
    assert config.files["wave6"] == DEFAULT_FILES["wave6"]
    assert "mystery" in caplog.text


def test_config_must_be_a_mapping(tmp_path):
    bad = tmp_path / "bad.yml"
    bad.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="mapping"):
        parse_args(["--project-root", str(tmp_path), "--config", str(bad)])
