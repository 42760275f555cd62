"""Outer-join every normalised table into one wide row per participant."""
from __future__ import annotations

import logging
from functools import reduce
from typing import Mapping, Sequence

import numpy as np
import pandas as pd

from .errors import SchemaMismatchError
from .normalize import check_codes, numeric_codes
from .readers import assert_unique_ids, require_columns
from .waves import FINANCIAL_QUINTILE_FIELD, FINANCIAL_SUM_FIELD, ID, QUINTILE_CODES


LOGGER = logging.getLogger(__name__)


def ntile(values: pd.Series, n: int = 5) -> pd.Series:
    """Equal-frequency bins numbered 1..n, as ``dplyr::ntile``.

    Ties are broken by row order and missing values stay missing.
    """

    rank = values.rank(method="first")
    size = values.notna().sum()
    if size == 0:
        return pd.Series(pd.NA, index=values.index, dtype="Int64")
    bins = np.floor(n * (rank - 1) / size) + 1
    return bins.astype("Int64")


def prepare_financial(raw: pd.DataFrame, wave: int) -> pd.DataFrame:
    """Net financial wealth for one wave plus a quintile that falls back to the sum.

    The official quintile wins; where it is missing but the sum is present,
    the participant's wave-local quintile of the sum is used instead.
    """

    table = f"financial wave {wave}"
    require_columns(raw, [ID, FINANCIAL_SUM_FIELD, FINANCIAL_QUINTILE_FIELD], table)
    raw = raw.reset_index(drop=True)
    assert_unique_ids(raw, table)

    total = numeric_codes(raw, FINANCIAL_SUM_FIELD, table)
    official = numeric_codes(raw, FINANCIAL_QUINTILE_FIELD, table)
    official = official.where(official >= 0)
    check_codes(official, QUINTILE_CODES, table, FINANCIAL_QUINTILE_FIELD)
    official = official.astype("Int64")

    p = f"w{wave}"
    frame = pd.DataFrame({
        ID: pd.to_numeric(raw[ID]).astype("int64"),
        f"{p}netfw_sum": total,
        f"{p}netfw_quintile": official,
        f"{p}netfw_quintile_combined": official.fillna(ntile(total, 5)),
    })
    filled = int(official.isna().sum() - frame[f"{p}netfw_quintile_combined"].isna().sum())
    LOGGER.info("Financial wave %s: %s quintiles computed from the wealth sum", wave, filled)
    return frame


def check_collisions(tables: Sequence[tuple[str, pd.DataFrame]]) -> None:
    seen: dict[str, str] = {}
    for name, frame in tables:
        for column in frame.columns:
            if column == ID:
                continue
            if column in seen:
                raise SchemaMismatchError(
                    f"column {column!r} appears in both {seen[column]} and {name}"
                )
            seen[column] = name


def merge_cohort(
    index: pd.DataFrame,
    waves: Mapping[int, pd.DataFrame],
    prestudy: Sequence[pd.DataFrame],
    financial: Mapping[int, pd.DataFrame],
) -> pd.DataFrame:
    """Full outer join of all inputs on ``idauniq``, one row per participant."""

    tables: list[tuple[str, pd.DataFrame]] = [("index", index)]
    tables += [(f"wave {wave}", waves[wave]) for wave in sorted(waves)]
    tables += [(f"pre-study table {i}", frame) for i, frame in enumerate(prestudy, start=1)]
    tables += [(f"financial wave {wave}", financial[wave]) for wave in sorted(financial)]

    for name, frame in tables:
        assert_unique_ids(frame, name)
    check_collisions(tables)

    master = reduce(
        lambda left, right: left.merge(right, how="outer", on=ID),
        [frame for _, frame in tables],
    )
    master = master.sort_values(ID, kind="mergesort").reset_index(drop=True)
    LOGGER.info("Merged %s tables into %s participants", len(tables), len(master))
    return master
