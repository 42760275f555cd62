"""Per-file normalisation: raw ELSA codes to a wave-prefixed, typed schema.

Each function takes one raw table (as read by :func:`readers.read_sav`) and
returns a new frame keyed on ``idauniq``. Sentinel codes are resolved here,
once, so later stages only ever see missing values, 0/1 flags or labels.
"""
from __future__ import annotations

import logging
from typing import Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from .errors import SchemaMismatchError
from .readers import assert_unique_ids, require_columns
from .waves import (
    ANXIETY_SLOT_CODE,
    CVD_SLOT_CODES,
    DEPRESSION_SLOT_CODE,
    DOB_CENSORED_CODE,
    DOB_CENSORED_YEAR,
    ETHNIC_LABELS,
    HSE_ILLNESS_SLOT_CODES,
    ID,
    INDEX_OUTCOME_CODES,
    INDEX_OUTCOME_FIELDS,
    MORTALITY_CODES,
    PRESTUDY_COMMON_SLOTS,
    PRESTUDY_STROKE_CODE,
    PSYCHIATRIC_SLOT_CODES,
    PSYCHOSIS_SLOT_CODES,
    SENTINEL_CODES,
    SEX_LABELS,
    SMOKE_NOW_LABELS,
    STROKE_SLOT_CODE,
    VIGOROUS_LABELS,
    WAVES,
    WaveSpec,
)


LOGGER = logging.getLogger(__name__)

_SENTINEL_TEXT = r"-\d+(?:\.0+)?"


# ---------------------------------------------------------------------------
# Field-category helpers
# ---------------------------------------------------------------------------


def numeric_codes(raw: pd.DataFrame, column: str, table: str) -> pd.Series:
    try:
        return pd.to_numeric(raw[column]).astype("float64")
    except (TypeError, ValueError) as exc:
        raise SchemaMismatchError(f"{table}: {column} is not numeric ({exc})") from exc


def check_codes(codes: pd.Series, allowed: Iterable[int], table: str, column: str) -> None:
    """Abort when a non-missing code is absent from the code book."""

    observed = codes.dropna()
    unexpected = observed[~observed.isin(list(allowed))]
    if not unexpected.empty:
        sample = sorted(unexpected.unique().tolist())[:10]
        raise SchemaMismatchError(f"{table}: {column} holds codes outside its code book: {sample}")


def outcome_flag(codes: pd.Series, table: str, column: str, yes: int = 1, no: Sequence[int] = (0,)) -> pd.Series:
    """Binary outcome; refusals, don't-knows and not-applicables count as "no"."""

    check_codes(codes, {yes, *no, *SENTINEL_CODES}, table, column)
    flag = pd.Series(np.where(codes == yes, 1, 0), index=codes.index).astype("Int64")
    return flag.mask(codes.isna())


def slot_flag(
    raw: pd.DataFrame,
    slots: Sequence[str],
    wanted: Iterable[int],
    allowed: Iterable[int],
    table: str,
) -> pd.Series:
    """1 when any slot holds one of ``wanted``, else 0; missing when every slot is missing."""

    codes = pd.concat([numeric_codes(raw, slot, table) for slot in slots], axis=1)
    allowed = {*allowed, *SENTINEL_CODES}
    for slot in slots:
        check_codes(codes[slot], allowed, table, slot)
    flag = codes.isin(list(wanted)).any(axis=1).astype("int64").astype("Int64")
    return flag.mask(codes.isna().all(axis=1))


def labelled(
    codes: pd.Series,
    labels: Mapping[int, str],
    table: str,
    column: str,
    sentinel_label: str | None = None,
) -> pd.Series:
    check_codes(codes, {*labels, *SENTINEL_CODES}, table, column)
    mapping: dict[float, str | None] = {float(code): label for code, label in labels.items()}
    for code in SENTINEL_CODES:
        mapping[float(code)] = sentinel_label
    return codes.map(mapping).astype("string")


def binary_answer(codes: pd.Series, table: str, column: str) -> pd.Series:
    """Yes/no item coded 1/2: 1 stays 1, 2 becomes 0, sentinels are missing."""

    check_codes(codes, {1, 2, *SENTINEL_CODES}, table, column)
    recoded = codes.map({1.0: 1, 2.0: 0})
    return recoded.astype("Int64")


def positive_value(codes: pd.Series) -> pd.Series:
    """Ages and calendar years; zero or negative values are sentinels."""

    return codes.where(codes > 0)


def count_value(codes: pd.Series) -> pd.Series:
    return codes.where(codes >= 0)


def canonical_region(
    raw: pd.DataFrame,
    column: str,
    regions: Mapping[str, str],
    blank_ids: Iterable[int],
    table: str,
) -> pd.Series:
    """Map either region scheme onto the shared region labels.

    A known list of participants has a whitespace-only region; those are
    cleared before lookup. Any other unrecognised value is a code book
    mismatch.
    """

    text = raw[column].astype("string").str.strip()
    text = text.mask(raw[ID].isin(list(blank_ids)))
    sentinel = text.str.fullmatch(_SENTINEL_TEXT).fillna(False).astype(bool)
    text = text.mask(sentinel)
    unknown = text.notna() & ~text.isin(list(regions))
    if unknown.any():
        sample = sorted(text[unknown].unique().tolist())[:10]
        raise SchemaMismatchError(f"{table}: {column} holds unrecognised region codes: {sample}")
    return text.map(dict(regions)).astype("string")


def _frame_for(raw: pd.DataFrame, columns: Sequence[str], table: str) -> pd.DataFrame:
    require_columns(raw, [ID, *columns], table)
    raw = raw.reset_index(drop=True)
    assert_unique_ids(raw, table)
    return raw


def _ids(raw: pd.DataFrame) -> pd.Series:
    return pd.to_numeric(raw[ID]).astype("int64")


# ---------------------------------------------------------------------------
# Core wave files
# ---------------------------------------------------------------------------


def normalize_wave(raw: pd.DataFrame, spec: WaveSpec) -> pd.DataFrame:
    """Normalise one core wave file according to its :class:`WaveSpec`."""

    table = f"wave {spec.wave}"
    raw = _frame_for(raw, spec.raw_fields(), table)
    p = spec.prefix

    def codes(column: str) -> pd.Series:
        return numeric_codes(raw, column, table)

    out: dict[str, pd.Series] = {ID: _ids(raw)}

    if spec.indoutcome is not None:
        out[f"{p}indoutcome"] = codes(spec.indoutcome).astype("Int64")
    if spec.sex is not None:
        out[f"{p}sex"] = labelled(codes(spec.sex), SEX_LABELS, table, spec.sex)
    if spec.dobyear is not None:
        dob = codes(spec.dobyear)
        out[f"{p}dobyear"] = dob.where(dob > 1)

    if spec.slot_based:
        out[f"{p}strokeany"] = slot_flag(raw, spec.stroke_slots, [STROKE_SLOT_CODE], CVD_SLOT_CODES, table)
    else:
        out[f"{p}strokeany"] = outcome_flag(codes(spec.stroke_flag), table, spec.stroke_flag)
    out[f"{p}strokeage"] = positive_value(codes(spec.strokeage))
    if spec.strokeyear is not None:
        out[f"{p}strokeyear"] = positive_value(codes(spec.strokeyear))
    if spec.nstrokes is not None:
        out[f"{p}nstrokes"] = count_value(codes(spec.nstrokes))
    if spec.disputestroke is not None:
        out[f"{p}disputestroke"] = labelled(
            codes(spec.disputestroke), spec.disputestroke_labels, table, spec.disputestroke
        )

    if spec.slot_based:
        slots = spec.psychosis_slots
        out[f"{p}psychosisany"] = slot_flag(raw, slots, PSYCHOSIS_SLOT_CODES, PSYCHIATRIC_SLOT_CODES, table)
        out[f"{p}depression"] = slot_flag(raw, slots, [DEPRESSION_SLOT_CODE], PSYCHIATRIC_SLOT_CODES, table)
        out[f"{p}anxiety"] = slot_flag(raw, slots, [ANXIETY_SLOT_CODE], PSYCHIATRIC_SLOT_CODES, table)
    else:
        parts = [outcome_flag(codes(column), table, column) for column in spec.psychosis_fields]
        stacked = pd.concat(parts, axis=1)
        # any sub-item positive; missing only when every sub-item is missing
        psychosis = stacked.eq(1).any(axis=1).astype("int64").astype("Int64")
        out[f"{p}psychosisany"] = psychosis.mask(stacked.isna().all(axis=1))
        out[f"{p}depression"] = outcome_flag(codes(spec.depression), table, spec.depression)
        out[f"{p}anxiety"] = outcome_flag(codes(spec.anxiety), table, spec.anxiety)

    out[f"{p}region"] = canonical_region(raw, spec.region, spec.regions, spec.blank_region_ids, table)
    out[f"{p}ethnicgroup"] = labelled(codes(spec.ethnicgroup), ETHNIC_LABELS, table, spec.ethnicgroup)
    out[f"{p}smokeever"] = binary_answer(codes(spec.smokeever), table, spec.smokeever)
    out[f"{p}smokenow"] = labelled(
        codes(spec.smokenow), SMOKE_NOW_LABELS, table, spec.smokenow, sentinel_label="No"
    )
    if spec.disputesmoking is not None:
        out[f"{p}disputesmoking"] = labelled(
            codes(spec.disputesmoking), spec.disputesmoking_labels, table, spec.disputesmoking
        )
    out[f"{p}vigorousphyact"] = labelled(codes(spec.vigorousphyact), VIGOROUS_LABELS, table, spec.vigorousphyact)
    out[f"{p}alcohol"] = labelled(codes(spec.alcohol), spec.alcohol_labels, table, spec.alcohol)

    frame = pd.DataFrame(out)
    LOGGER.info("Normalised %s: %s participants", table, len(frame))
    return frame


def normalized_columns(spec: WaveSpec) -> list[str]:
    """Column names :func:`normalize_wave` produces for ``spec`` (without the ID)."""

    p = spec.prefix
    names = []
    if spec.indoutcome is not None:
        names.append(f"{p}indoutcome")
    if spec.sex is not None:
        names.append(f"{p}sex")
    if spec.dobyear is not None:
        names.append(f"{p}dobyear")
    names += [f"{p}strokeany", f"{p}strokeage"]
    if spec.strokeyear is not None:
        names.append(f"{p}strokeyear")
    if spec.nstrokes is not None:
        names.append(f"{p}nstrokes")
    if spec.disputestroke is not None:
        names.append(f"{p}disputestroke")
    names += [f"{p}psychosisany", f"{p}depression", f"{p}anxiety", f"{p}region", f"{p}ethnicgroup"]
    names += [f"{p}smokeever", f"{p}smokenow"]
    if spec.disputesmoking is not None:
        names.append(f"{p}disputesmoking")
    names += [f"{p}vigorousphyact", f"{p}alcohol"]
    return names


def normalize_waves(raw_waves: Mapping[int, pd.DataFrame]) -> dict[int, pd.DataFrame]:
    missing = [wave for wave in WAVES if wave not in raw_waves]
    if missing:
        raise SchemaMismatchError(f"core wave files missing for waves {missing}")
    return {wave: normalize_wave(raw_waves[wave], WAVES[wave]) for wave in WAVES}


# ---------------------------------------------------------------------------
# Index file
# ---------------------------------------------------------------------------


def normalize_index(raw: pd.DataFrame) -> pd.DataFrame:
    """Participation outcomes for waves 1-5, vital status, sex and birth year."""

    table = "index"
    outcome_fields = list(INDEX_OUTCOME_FIELDS.values())
    raw = _frame_for(raw, ["sex", "dobyear", *outcome_fields, "mortwave"], table)

    out: dict[str, pd.Series] = {ID: _ids(raw)}
    out["sex"] = labelled(numeric_codes(raw, "sex", table), SEX_LABELS, table, "sex")

    dob = numeric_codes(raw, "dobyear", table)
    dob = dob.mask(dob == DOB_CENSORED_CODE, DOB_CENSORED_YEAR)
    out["dobyear"] = dob.where(dob > 0)

    for wave, column in INDEX_OUTCOME_FIELDS.items():
        outcome = numeric_codes(raw, column, table)
        check_codes(outcome, INDEX_OUTCOME_CODES[wave], table, column)
        out[f"w{wave}indoutcome"] = outcome.astype("Int64")

    mortality = numeric_codes(raw, "mortwave", table)
    check_codes(mortality, MORTALITY_CODES, table, "mortwave")
    out["mortalitywave"] = mortality.astype("Int64")

    frame = pd.DataFrame(out)
    LOGGER.info("Normalised index: %s participants", len(frame))
    return frame


# ---------------------------------------------------------------------------
# Pre-study (wave 0) files
# ---------------------------------------------------------------------------


def normalize_prestudy_common(raw: pd.DataFrame) -> pd.DataFrame:
    """Any stroke among the six long-standing illness slots of the common-variables file."""

    table = "wave 0 common variables"
    raw = _frame_for(raw, PRESTUDY_COMMON_SLOTS, table)
    return pd.DataFrame({
        ID: _ids(raw),
        "w0strokeany": slot_flag(
            raw, PRESTUDY_COMMON_SLOTS, [PRESTUDY_STROKE_CODE], HSE_ILLNESS_SLOT_CODES, table
        ),
    })


def normalize_prestudy_hse(raw: pd.DataFrame, year: int) -> pd.DataFrame:
    """Doctor-diagnosed stroke and age at stroke from one Health Survey for England year."""

    table = f"wave 0 {year}"
    raw = _frame_for(raw, ["docstro", "agestro"], table)
    suffix = str(year)[-2:]
    stroke = outcome_flag(numeric_codes(raw, "docstro", table), table, "docstro", yes=1, no=(2,))
    age = numeric_codes(raw, "agestro", table)
    return pd.DataFrame({
        ID: _ids(raw),
        f"w0{suffix}stroke": stroke,
        f"w0{suffix}strokeage": age.where(age >= 0),
    })
