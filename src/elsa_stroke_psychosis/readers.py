"""Reading raw SPSS releases and persisting stage outputs."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import pandas as pd
import pyreadstat

from .errors import DuplicateParticipantError, SchemaMismatchError
from .waves import ID


LOGGER = logging.getLogger(__name__)


def read_sav(path: Path) -> pd.DataFrame:
    """Load an SPSS file keeping the raw numeric/string codes (no value labels)."""

    if not path.exists():
        raise FileNotFoundError(path)
    frame, _meta = pyreadstat.read_sav(path, apply_value_formats=False)
    LOGGER.info("Read %s (%s rows, %s columns)", path.name, len(frame), frame.shape[1])
    return frame


def require_columns(frame: pd.DataFrame, columns: Iterable[str], table: str) -> None:
    missing = [col for col in columns if col not in frame.columns]
    if missing:
        raise SchemaMismatchError(f"{table}: expected columns missing from release: {missing}")


def assert_unique_ids(frame: pd.DataFrame, table: str, key: str = ID) -> None:
    duplicated = frame.loc[frame[key].duplicated(keep=False), key]
    if not duplicated.empty:
        sample = sorted(duplicated.unique().tolist())[:10]
        raise DuplicateParticipantError(
            f"{table}: {duplicated.nunique()} participant IDs occur more than once (e.g. {sample})"
        )


def write_stage(frame: pd.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.to_parquet(path, index=False)
    LOGGER.info("Wrote %s (%s rows)", path.name, len(frame))


def read_stage(path: Path) -> pd.DataFrame:
    if not path.exists():
        raise FileNotFoundError(path)
    return pd.read_parquet(path)
