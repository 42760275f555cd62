"""Cross-wave derivations on the merged master table.

Everything here is computed per participant from the wide table produced by
:func:`merge.merge_cohort`: ever-flags, participation window, first-report
waves, ages, the stroke/psychosis ordering, the ethnicity consensus and the
baseline value of each time-varying covariate.
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from .corrections import apply_corrections, build_correction_table
from .waves import REGION_LEVELS, WAVE1_REFERENCE_YEAR, WAVE_NUMBERS, WAVE_YEARS, WAVES, productive_codes


LOGGER = logging.getLogger(__name__)

PRESTUDY_STROKE_COLUMNS = ["w098stroke", "w099stroke", "w0strokeany"]
PRESTUDY_WAVE = 0.5
LATE_JOINER_WAVES = (6, 7, 8, 9)

ORDER_LEVELS = [
    "psychosis then died",
    "stroke then died",
    "psychosis only",
    "stroke only",
    "stroke then psychosis",
    "psychosis then stroke",
    "same time",
    "no stroke or psychosis",
    "no participation",
]

CATEGORY_BY_ORDER = {
    "psychosis only": "Psychosis only",
    "psychosis then died": "Psychosis only",
    "stroke only": "Stroke only",
    "stroke then died": "Stroke only",
    "same time": "Stroke and Psychosis",
    "psychosis then stroke": "Stroke and Psychosis",
    "stroke then psychosis": "Stroke and Psychosis",
}
NO_CONDITION_CATEGORY = "No Stroke or Psychosis"

ETHNICITY_LEVELS = ["White", "Non-White", "Unknown"]
ETHNICITY_SCORES = {"white": 1, "non-white": 50}
WHITE_SUMS = frozenset(range(1, 10)) | frozenset(range(51, 59))
NON_WHITE_SUMS = frozenset({50, 100, 101, 150, 151, 152, 200, 202, 250, 252, 300, 350, 400, 450})

SEX_LEVELS = ["Male", "Female"]
SMOKING_LEVELS = ["No", "Yes"]
VIGOROUS_LEVELS = [
    "more than once a week",
    "once a week",
    "one to three times a month",
    "hardly ever, or never",
]
ALCOHOL_LEVELS = [
    "Not at all",
    "Rarely/special occasions only",
    "Monthly",
    "1-4 times/week",
    "Daily/almost daily",
]
ALCOHOL_COLLAPSE = {
    "Twice a day or more": "Daily/almost daily",
    "Daily or almost daily": "Daily/almost daily",
    "Almost every day": "Daily/almost daily",
    "Five or six days a week": "Daily/almost daily",
    "Once or twice a week": "1-4 times/week",
    "Three or four days a week": "1-4 times/week",
    "Once or twice a month": "Monthly",
    "Once every couple of months": "Rarely/special occasions only",
    "Once or twice a year": "Rarely/special occasions only",
    "Special occasions only": "Rarely/special occasions only",
    "Not at all": "Not at all",
}
QUINTILE_LEVELS = [5, 4, 3, 2, 1]
AGE_CAT_LEVELS = ["<60", "60-69", "70+"]


# ---------------------------------------------------------------------------
# Column helpers
# ---------------------------------------------------------------------------


def wave_columns(stem: str, waves: Iterable[int] = WAVE_NUMBERS) -> list[str]:
    return [f"w{wave}{stem}" for wave in waves]


def is_one(frame: pd.DataFrame, column: str) -> np.ndarray:
    series = frame.get(column)
    if series is None:
        return np.zeros(len(frame), dtype=bool)
    return series.eq(1).fillna(False).to_numpy(dtype=bool)


def coalesce(frame: pd.DataFrame, columns: Sequence[str]) -> pd.Series:
    """First non-missing value across ``columns``, as ``dplyr::coalesce``."""

    series = None
    for column in columns:
        if column not in frame:
            continue
        series = frame[column] if series is None else series.fillna(frame[column])
    if series is None:
        return pd.Series(np.nan, index=frame.index)
    return series


def first_report(frame: pd.DataFrame, stem: str, prestudy: Sequence[str] = ()) -> np.ndarray:
    """Earliest wave with a positive flag, 0.5 for a pre-study report, 0 if never."""

    conditions = [is_one(frame, column) for column in prestudy]
    choices = [PRESTUDY_WAVE] * len(prestudy)
    conditions += [is_one(frame, column) for column in wave_columns(stem)]
    choices += [float(wave) for wave in WAVE_NUMBERS]
    return np.select(conditions, choices, default=0.0)


def value_at_first_wave(frame: pd.DataFrame, stem: str, numeric: bool = False) -> pd.Series:
    """Each participant's ``w<k><stem>`` value for k = their first productive wave."""

    dtype = "float64" if numeric else "object"
    first = frame["wavefirstparticipate"]
    picked = pd.Series(np.nan if numeric else None, index=frame.index, dtype=dtype)
    for wave in WAVE_NUMBERS:
        column = f"w{wave}{stem}"
        if column not in frame:
            continue
        mask = first == wave
        values = frame.loc[mask, column].astype(dtype)
        picked[mask] = values if numeric else values.where(values.notna(), None)
    return picked


# ---------------------------------------------------------------------------
# Derivations
# ---------------------------------------------------------------------------


def add_condition_flags(frame: pd.DataFrame) -> pd.DataFrame:
    stroke_first = first_report(frame, "strokeany", PRESTUDY_STROKE_COLUMNS)
    psychosis_first = first_report(frame, "psychosisany")
    depression_first = first_report(frame, "depression")
    anxiety_first = first_report(frame, "anxiety")
    return frame.assign(
        strokeever=(stroke_first > 0).astype("int64"),
        psychosisever=(psychosis_first > 0).astype("int64"),
        depressionever=(depression_first > 0).astype("int64"),
        anxietyever=(anxiety_first > 0).astype("int64"),
        wavefirstreport_stroke=stroke_first,
        wavefirstreport_psychosis=psychosis_first,
        wavefirstreport_depression=depression_first,
        wavefirstreport_anxiety=anxiety_first,
    )


def add_participation(frame: pd.DataFrame) -> pd.DataFrame:
    flags = {}
    for wave in WAVE_NUMBERS:
        codes = frame.get(f"w{wave}indoutcome")
        if codes is None:
            flags[f"w{wave}participated"] = np.zeros(len(frame), dtype="int64")
            continue
        productive = codes.isin(list(productive_codes(wave))).fillna(False)
        flags[f"w{wave}participated"] = productive.to_numpy(dtype=bool).astype("int64")

    matrix = np.column_stack(list(flags.values())).astype(bool)
    waves = np.array(WAVE_NUMBERS)
    participated = matrix.any(axis=1)
    first = np.where(participated, waves[matrix.argmax(axis=1)], 0)
    last = np.where(participated, waves[::-1][matrix[:, ::-1].argmax(axis=1)], 0)
    total = matrix.sum(axis=1)
    return frame.assign(
        **flags,
        totalwaves=total,
        allwavesparticipated=(total == len(WAVE_NUMBERS)).astype("int64"),
        wavefirstparticipate=first,
        wavelastparticipate=last,
    )


def add_demographics(frame: pd.DataFrame) -> pd.DataFrame:
    """Sex, birth year, ages and stroke-age summaries."""

    late = list(LATE_JOINER_WAVES)
    sex = coalesce(frame, ["sex", *wave_columns("sex", late)]).astype("object")
    dob_columns = [c for c in ["dobyear", *wave_columns("dobyear", late)] if c in frame]
    births = frame[dob_columns].astype("float64")
    dobyear = coalesce(births.where(births > 1), dob_columns)
    survey_year = frame["wavefirstparticipate"].map(WAVE_YEARS).astype("float64")

    derived = {
        "sex": pd.Categorical(sex.where(sex.notna(), None), categories=SEX_LEVELS),
        "dobyear": dobyear,
        "w1age": WAVE1_REFERENCE_YEAR - dobyear,
        "agebaseline": survey_year - dobyear,
    }

    # reported stroke age, else the year of the most recent stroke minus birth year
    for wave, spec in WAVES.items():
        if spec.strokeyear is None:
            continue
        age = frame[f"w{wave}strokeage"].astype("float64")
        derived[f"w{wave}strokeage"] = age.fillna(frame[f"w{wave}strokeyear"].astype("float64") - derived["dobyear"])

    ages = pd.DataFrame({
        column: derived.get(column, frame.get(column))
        for column in ["w098strokeage", "w099strokeage", *wave_columns("strokeage")]
        if column in frame
    }, index=frame.index).astype("float64")
    counts = frame[[c for c in wave_columns("nstrokes") if c in frame]].astype("float64")
    total_strokes = counts.sum(axis=1, skipna=True)

    derived["minstrokeage"] = ages.min(axis=1, skipna=True)
    derived["ntotalstrokes"] = total_strokes
    derived["ntotalstrokesnozero"] = total_strokes.mask(total_strokes == 0)
    return frame.assign(**derived)


def death_wave(mortality: pd.Series) -> pd.Series:
    """First wave missed through death (1-6), missing when alive or unknown."""

    codes = mortality.astype("float64")
    return np.floor(codes / 10).where(codes >= 11)


def classify_order(frame: pd.DataFrame) -> np.ndarray:
    """Temporal ordering of first stroke, first psychosis and death."""

    stroke = frame["wavefirstreport_stroke"].to_numpy(dtype=float)
    psychosis = frame["wavefirstreport_psychosis"].to_numpy(dtype=float)
    death = frame["wavefirstreport_death"].to_numpy(dtype=float)
    first = frame["wavefirstparticipate"].to_numpy(dtype=float)

    with np.errstate(invalid="ignore"):
        died = death < 7
    died_in_followup = np.isin(death, np.arange(1, 7))
    both = (stroke != 0) & (psychosis != 0)
    conditions = [
        (stroke == 0) & died & (psychosis >= 1),
        (psychosis == 0) & died & (stroke >= PRESTUDY_WAVE),
        (psychosis >= 1) & (stroke == 0) & ~died_in_followup,
        (psychosis == 0) & (stroke >= PRESTUDY_WAVE) & ~died_in_followup,
        both & (stroke < psychosis),
        both & (psychosis < stroke),
        both & (stroke == psychosis),
        first >= 1,
    ]
    return np.select(conditions, ORDER_LEVELS[:-1], default=ORDER_LEVELS[-1])


def ethnicity_score(frame: pd.DataFrame) -> pd.Series:
    score = pd.Series(0, index=frame.index, dtype="int64")
    for column in wave_columns("ethnicgroup"):
        if column in frame:
            score += frame[column].map(ETHNICITY_SCORES).fillna(0).astype("int64")
    return score


def ethnicity_label(score: int) -> str:
    """Consensus label for the summed per-wave score (white 1, non-white 50, missing 0)."""

    if score in WHITE_SUMS:
        return "White"
    if score in NON_WHITE_SUMS:
        return "Non-White"
    return "Unknown"


def add_death_and_order(frame: pd.DataFrame) -> pd.DataFrame:
    death = death_wave(frame["mortalitywave"])
    frame = frame.assign(
        wavefirstreport_death=death,
        diedbeforeendfup=death.notna().astype("int64"),
    )
    order = classify_order(frame)
    category = pd.Series(order, index=frame.index).map(CATEGORY_BY_ORDER).fillna(NO_CONDITION_CATEGORY)
    return frame.assign(
        strokepsychosisorder=pd.Categorical(order, categories=ORDER_LEVELS),
        psychosisonly=np.isin(order, ["psychosis only", "psychosis then died"]).astype("int64"),
        strokeonly=np.isin(order, ["stroke only", "stroke then died"]).astype("int64"),
        strokepsychosisgroup=np.isin(
            order, ["stroke then psychosis", "psychosis then stroke", "same time"]
        ).astype("int64"),
        strokepsychosiscat=category.astype("string"),
    )


def add_baselines(frame: pd.DataFrame) -> pd.DataFrame:
    alcohol = value_at_first_wave(frame, "alcohol").map(ALCOHOL_COLLAPSE)
    quintile = value_at_first_wave(frame, "netfw_quintile_combined", numeric=True).astype("Int64")
    official = value_at_first_wave(frame, "netfw_quintile", numeric=True).astype("Int64")
    age_cat = pd.cut(
        frame["w1age"],
        bins=[-np.inf, 60, 70, np.inf],
        right=False,
        labels=AGE_CAT_LEVELS,
        ordered=True,
    )
    return frame.assign(
        alcoholbaseline=pd.Categorical(alcohol, categories=ALCOHOL_LEVELS, ordered=True),
        vigorousactbaseline=pd.Categorical(
            value_at_first_wave(frame, "vigorousphyact"), categories=VIGOROUS_LEVELS, ordered=True
        ),
        smokingbaseline=pd.Categorical(value_at_first_wave(frame, "smokenow"), categories=SMOKING_LEVELS),
        region=pd.Categorical(value_at_first_wave(frame, "region"), categories=list(REGION_LEVELS)),
        netwealth_sum=value_at_first_wave(frame, "netfw_sum", numeric=True),
        netwealth_q5=pd.Categorical(quintile, categories=QUINTILE_LEVELS),
        netwealth_q5_official=pd.Categorical(official, categories=QUINTILE_LEVELS),
        age_cat=age_cat,
    )


def reconcile(master: pd.DataFrame, corrections: pd.DataFrame | None = None) -> pd.DataFrame:
    """Apply disputed-event corrections and derive all per-participant attributes.

    Participants without a productive interview in any of waves 1-9 are dropped.
    """

    if corrections is None:
        corrections = build_correction_table()
    frame = apply_corrections(master, corrections)
    frame = add_condition_flags(frame)
    frame = add_participation(frame)

    never = frame["wavefirstparticipate"] == 0
    LOGGER.info("Excluding %s participants with no productive interview in waves 1-9", int(never.sum()))
    frame = frame.loc[~never].reset_index(drop=True)

    frame = add_demographics(frame)
    frame = add_death_and_order(frame)
    frame = frame.assign(
        ethnicgroup=pd.Categorical(
            ethnicity_score(frame).map(ethnicity_label), categories=ETHNICITY_LEVELS
        )
    )
    frame = add_baselines(frame)
    LOGGER.info(
        "Reconciled %s participants (%s ever stroke, %s ever psychosis)",
        len(frame), int(frame["strokeever"].sum()), int(frame["psychosisever"].sum()),
    )
    return frame
