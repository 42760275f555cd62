"""Build the ELSA stroke/psychosis analysis tables from the raw SPSS release.

The run loads the index file, the nine core wave files, the pre-study
(Health Survey for England) files and the financial derived variables,
normalises and merges them, reconciles participant histories, and writes
the survival and imputed survival tables used by the downstream models.

Usage
-----
elsa-preprocess --project-root /path/to/project

The defaults assume the following layout relative to the project root::

    data/
      raw/
        UKDA-5050-spss/spss/spss25/
          index_file_wave_0-wave_5_v2.sav
          wave_1_core_data_v3.sav
          ...
          wave_9_financial_derived_variables.sav

Outputs (written to ``data/``): ``waves12345.parquet``,
``strokeinpsychosis_surv.parquet``, ``psychosisinstroke_surv.parquet``,
``strokeinpsychosis_imp.parquet`` and ``psychosisinstroke_imp.parquet``.

Dependencies
------------
- pandas >= 2
- numpy
- pyreadstat  (for SPSS .sav files)
- scikit-learn (RandomForestClassifier, RandomForestRegressor)
- PyYAML (config overrides)
- pyarrow (parquet)
"""
from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

import pandas as pd
import yaml

from .impute import ImputationResult, build_imputed_tables
from .merge import merge_cohort, prepare_financial
from .normalize import normalize_index, normalize_prestudy_common, normalize_prestudy_hse, normalize_waves
from .readers import read_sav, read_stage, write_stage
from .reconcile import reconcile
from .survival import DIRECTIONS, build_survival_tables
from .waves import PRESTUDY_HSE_YEARS, WAVE_NUMBERS


LOGGER = logging.getLogger(__name__)

RELEASE_DIR = "UKDA-5050-spss/spss/spss25"

RELEASE_FILES = {
    "index": "index_file_wave_0-wave_5_v2.sav",
    "wave0_common": "wave_0_common_variables_v2.sav",
    "wave0_1998": "wave_0_1998_data.sav",
    "wave0_1999": "wave_0_1999_data.sav",
    "wave1": "wave_1_core_data_v3.sav",
    "wave2": "wave_2_core_data_v4.sav",
    "wave3": "wave_3_elsa_data_v4.sav",
    "wave4": "wave_4_elsa_data_v3.sav",
    "wave5": "wave_5_elsa_data_v4.sav",
    "wave6": "wave_6_elsa_data_v2.sav",
    "wave7": "wave_7_elsa_data.sav",
    "wave8": "wave_8_elsa_data_eul_v2.sav",
    "wave9": "wave_9_elsa_data_eul_v1.sav",
    "financial1": "wave_1_financial_derived_variables.sav",
    "financial2": "wave_2_financial_derived_variables.sav",
    "financial3": "wave_3_financial_derived_variables.sav",
    "financial4": "wave_4_financial_derived_variables.sav",
    "financial5": "wave_5_financial_derived_variables.sav",
    "financial6": "wave_6_financial_derived_variables.sav",
    "financial7": "wave_7_financial_derived_variables.sav",
    "financial8": "wave_8_elsa_financial_dvs_eul_v1.sav",
    "financial9": "wave_9_financial_derived_variables.sav",
}
DEFAULT_FILES = {name: f"{RELEASE_DIR}/{filename}" for name, filename in RELEASE_FILES.items()}

MASTER_OUTPUT = "waves12345.parquet"

OVERRIDE_KEYS = {"raw_dir", "output_dir", "seed", "n_jobs", "n_estimators", "max_iter", "files"}


@dataclass
class PreprocessConfig:
    """Configuration for the preprocessing run."""

    project_root: Path
    raw_dir: Path | None = None
    output_dir: Path | None = None
    seed: int = 123
    n_jobs: int = -1
    n_estimators: int = 100
    max_iter: int = 10
    files: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_FILES))

    def __post_init__(self) -> None:
        self.project_root = self.project_root.resolve()
        self.raw_dir = (self.project_root / "data" / "raw") if self.raw_dir is None else self._as_path(self.raw_dir)
        self.output_dir = (self.project_root / "data") if self.output_dir is None else self._as_path(self.output_dir)

    def _as_path(self, value: str | Path | None) -> Path | None:
        if value in (None, ""):
            return None
        path = Path(value)
        if not path.is_absolute():
            path = (self.project_root / path).resolve()
        return path

    def apply_overrides(self, overrides: Mapping[str, object]) -> None:
        if not overrides:
            return
        unknown = sorted(set(overrides) - OVERRIDE_KEYS)
        if unknown:
            LOGGER.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))
        if "raw_dir" in overrides:
            self.raw_dir = self._as_path(overrides["raw_dir"]) or self.raw_dir
        if "output_dir" in overrides:
            self.output_dir = self._as_path(overrides["output_dir"]) or self.output_dir
        for key in ("seed", "n_jobs", "n_estimators", "max_iter"):
            if key in overrides:
                setattr(self, key, int(overrides[key]))
        if "files" in overrides:
            files = overrides["files"] or {}
            if not isinstance(files, Mapping):
                raise ValueError("'files' must map table names to file names")
            unknown_tables = sorted(set(files) - set(DEFAULT_FILES))
            if unknown_tables:
                raise ValueError(f"Unknown table names under 'files': {unknown_tables}")
            self.files.update({name: str(path) for name, path in files.items()})

    def path_for(self, table: str) -> Path:
        return self.raw_dir / self.files[table]


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------


def build_master(config: PreprocessConfig) -> pd.DataFrame:
    """Read every raw table, normalise, merge and reconcile into the master table."""

    LOGGER.info("Loading raw tables from %s", config.raw_dir)
    index = normalize_index(read_sav(config.path_for("index")))
    waves = normalize_waves({wave: read_sav(config.path_for(f"wave{wave}")) for wave in WAVE_NUMBERS})
    prestudy = [normalize_prestudy_common(read_sav(config.path_for("wave0_common")))]
    prestudy += [
        normalize_prestudy_hse(read_sav(config.path_for(f"wave0_{year}")), year)
        for year in PRESTUDY_HSE_YEARS
    ]
    financial = {
        wave: prepare_financial(read_sav(config.path_for(f"financial{wave}")), wave)
        for wave in WAVE_NUMBERS
    }
    master = merge_cohort(index, waves, prestudy, financial)
    return reconcile(master)


def preprocess(config: PreprocessConfig, skip_imputation: bool = False) -> ImputationResult | None:
    """Run every stage, returning the imputation diagnostics unless imputation is skipped."""

    output_dir = config.output_dir
    master_path = output_dir / MASTER_OUTPUT
    write_stage(build_master(config), master_path)

    LOGGER.info("Building survival tables")
    survival = build_survival_tables(read_stage(master_path))
    for name, table in survival.items():
        write_stage(table, output_dir / f"{name}_surv.parquet")

    if skip_imputation:
        LOGGER.info("Skipping imputation")
        return None

    LOGGER.info("Imputing baseline covariates (seed=%s)", config.seed)
    survival = {
        direction.name: read_stage(output_dir / f"{direction.name}_surv.parquet")
        for direction in DIRECTIONS
    }
    imputed, result = build_imputed_tables(
        read_stage(master_path),
        survival,
        seed=config.seed,
        n_jobs=config.n_jobs,
        n_estimators=config.n_estimators,
        max_iter=config.max_iter,
    )
    for name, table in imputed.items():
        write_stage(table, output_dir / f"{name}_imp.parquet")
    return result


def load_overrides(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as fh:
        overrides = yaml.safe_load(fh) or {}
    if not isinstance(overrides, dict):
        raise ValueError(f"Config file {path} must define a mapping of keys")
    return overrides


def parse_args(argv: list[str] | None = None) -> tuple[PreprocessConfig, bool]:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--project-root", type=Path, default=Path.cwd())
    parser.add_argument("--raw-dir", type=Path, default=None, help="Override raw data directory")
    parser.add_argument("--output-dir", type=Path, default=None, help="Directory to write parquet outputs")
    parser.add_argument("--seed", type=int, default=None, help="Imputation random seed (default 123)")
    parser.add_argument("--n-jobs", type=int, default=None, help="Parallel jobs for the random forests (-1 = all cores)")
    parser.add_argument("--config", type=Path, default=None, help="Optional YAML file with path and run overrides")
    parser.add_argument("--skip-imputation", action="store_true", help="Stop after writing the survival tables")
    args = parser.parse_args(argv)

    cfg = PreprocessConfig(project_root=args.project_root)

    config_candidates = []
    default_config = cfg.project_root / "config" / "data_paths.yml"
    if default_config.exists():
        config_candidates.append(default_config)
    if args.config is not None:
        config_candidates.append(args.config)

    for cfg_path in config_candidates:
        LOGGER.info("Applying configuration from %s", cfg_path)
        cfg.apply_overrides(load_overrides(cfg_path))

    # command-line flags win over any config file
    cfg.apply_overrides({
        key: value
        for key, value in {
            "raw_dir": args.raw_dir,
            "output_dir": args.output_dir,
            "seed": args.seed,
            "n_jobs": args.n_jobs,
        }.items()
        if value is not None
    })
    return cfg, args.skip_imputation


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    config, skip_imputation = parse_args(argv)
    preprocess(config, skip_imputation=skip_imputation)


if __name__ == "__main__":
    main()
