"""Directional time-to-event tables for the two stroke/psychosis orderings."""
from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd

from .errors import PipelineError
from .reconcile import PRESTUDY_WAVE
from .waves import ID


LOGGER = logging.getLogger(__name__)

HORIZONS = (10, 4)
YEARS_PER_WAVE = 2

COVARIATES = [
    "w1age",
    "agebaseline",
    "sex",
    "ethnicgroup",
    "alcoholbaseline",
    "smokingbaseline",
    "vigorousactbaseline",
    "netwealth_q5",
    "region",
    "age_cat",
]

BASE_COLUMNS = [
    ID,
    "wavefirstparticipate",
    "wavelastparticipate",
    "wavefirstreport_stroke",
    "wavefirstreport_psychosis",
    "strokeever",
    "psychosisever",
]


@dataclass(frozen=True)
class Direction:
    """Risk of ``outcome`` among participants with or without ``exposure``."""

    name: str
    exposure: str
    outcome: str

    @property
    def outcome_flag(self) -> str:
        return f"{self.outcome}ever"

    def censored_columns(self) -> list[str]:
        return [f"{self.outcome_flag}_{horizon}" for horizon in HORIZONS]


STROKE_IN_PSYCHOSIS = Direction("strokeinpsychosis", exposure="psychosis", outcome="stroke")
PSYCHOSIS_IN_STROKE = Direction("psychosisinstroke", exposure="stroke", outcome="psychosis")
DIRECTIONS = (STROKE_IN_PSYCHOSIS, PSYCHOSIS_IN_STROKE)


def follow_up_waves(
    first: np.ndarray,
    last: np.ndarray,
    exposure: np.ndarray,
    outcome: np.ndarray,
) -> np.ndarray:
    """Follow-up in waves from the first-report waves of exposure and outcome (0 = never)."""

    conditions = [
        (exposure > 0) & (outcome == 0),
        (outcome > 0) & (exposure == 0),
        (exposure == 0) & (outcome == 0),
        (outcome > 0) & (outcome < exposure),
        outcome == exposure,
        (exposure > 0) & (outcome > 0),
    ]
    choices = [
        last - exposure,
        outcome - first,
        last - first,
        np.zeros_like(first),
        np.zeros_like(first),
        outcome - exposure,
    ]
    waves = np.select(conditions, choices, default=np.nan)
    if np.isnan(waves).any():
        raise PipelineError(f"{int(np.isnan(waves).sum())} rows fit no follow-up case")
    return waves


def censor(ever: pd.Series, fuptime: pd.Series, horizon: int) -> pd.Series:
    """Ever-flag with events observed after ``horizon`` years treated as non-events."""

    return ever.mask((ever == 1) & (fuptime > horizon), 0)


def build_direction(master: pd.DataFrame, direction: Direction) -> pd.DataFrame:
    frame = master[BASE_COLUMNS + COVARIATES].copy()
    exposure = frame[f"wavefirstreport_{direction.exposure}"].to_numpy(dtype=float)
    outcome = frame[f"wavefirstreport_{direction.outcome}"].to_numpy(dtype=float)

    first = frame["wavefirstparticipate"].to_numpy(dtype=float)
    first = np.where(outcome == PRESTUDY_WAVE, PRESTUDY_WAVE, first)
    last = frame["wavelastparticipate"].to_numpy(dtype=float)

    fuptime = follow_up_waves(first, last, exposure, outcome) * YEARS_PER_WAVE
    negative = fuptime < 0
    if negative.any():
        LOGGER.warning(
            "%s: %s rows had negative follow-up (event after last interview); set to 0",
            direction.name, int(negative.sum()),
        )
        fuptime = np.where(negative, 0.0, fuptime)

    frame["wavefirstparticipate"] = first
    frame["fuptime"] = fuptime
    for horizon, column in zip(HORIZONS, direction.censored_columns()):
        frame[column] = censor(frame[direction.outcome_flag], frame["fuptime"], horizon)
    LOGGER.info(
        "%s: %s rows, %s events within %s years",
        direction.name, len(frame), int(frame[direction.censored_columns()[0]].sum()), HORIZONS[0],
    )
    return frame


def build_survival_tables(master: pd.DataFrame) -> dict[str, pd.DataFrame]:
    """Both directional tables, each carrying the other direction's censored flags."""

    tables = {direction.name: build_direction(master, direction) for direction in DIRECTIONS}
    combined: dict[str, pd.DataFrame] = {}
    for direction in DIRECTIONS:
        other = next(d for d in DIRECTIONS if d is not direction)
        extra = tables[other.name][[ID, *other.censored_columns()]]
        combined[direction.name] = tables[direction.name].merge(extra, how="outer", on=ID)
    return combined
