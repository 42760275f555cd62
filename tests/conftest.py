from __future__ import annotations

from typing import Iterable, Mapping

import pandas as pd
import pytest

from elsa_stroke_psychosis.merge import merge_cohort, prepare_financial
from elsa_stroke_psychosis.normalize import (
    normalize_index,
    normalize_prestudy_common,
    normalize_prestudy_hse,
    normalize_waves,
)
from elsa_stroke_psychosis.waves import (
    ID,
    INDEX_OUTCOME_FIELDS,
    LETTER_REGIONS,
    PRESTUDY_COMMON_SLOTS,
    PRESTUDY_HSE_YEARS,
    WAVE_NUMBERS,
    WAVES,
    WaveSpec,
)


# -------------------------------
# Raw table builders
# -------------------------------
Overrides = Mapping[int, Mapping[str, object]]


def _wave_defaults(spec: WaveSpec) -> dict[str, object]:
    values: dict[str, object] = {}
    if spec.indoutcome is not None:
        values[spec.indoutcome] = 11
    if spec.sex is not None:
        values[spec.sex] = 1
    if spec.dobyear is not None:
        values[spec.dobyear] = 1940
    for slot in (*spec.stroke_slots, *spec.psychosis_slots):
        values[slot] = -1
    if spec.stroke_flag is not None:
        values[spec.stroke_flag] = 0
    for column in (spec.strokeage, spec.strokeyear, spec.nstrokes, spec.disputestroke, spec.disputesmoking):
        if column is not None:
            values[column] = -1
    for column in (*spec.psychosis_fields, spec.depression, spec.anxiety):
        if column is not None:
            values[column] = 0
    values[spec.region] = "H" if spec.regions is LETTER_REGIONS else "E12000007"
    values[spec.ethnicgroup] = 1
    values[spec.smokeever] = 2
    values[spec.smokenow] = 2
    values[spec.vigorousphyact] = 2
    values[spec.alcohol] = 4
    return values


def _rows(ids: Iterable[int], defaults: Mapping[str, object], overrides: Overrides | None) -> pd.DataFrame:
    overrides = overrides or {}
    rows = [{ID: idauniq, **defaults, **overrides.get(idauniq, {})} for idauniq in ids]
    return pd.DataFrame(rows, columns=[ID, *defaults])


def raw_wave(wave: int, ids: Iterable[int], overrides: Overrides | None = None) -> pd.DataFrame:
    return _rows(ids, _wave_defaults(WAVES[wave]), overrides)


def raw_index(ids: Iterable[int], overrides: Overrides | None = None) -> pd.DataFrame:
    defaults: dict[str, object] = {"sex": 1, "dobyear": 1940, "mortwave": 0}
    defaults.update({column: 11 for column in INDEX_OUTCOME_FIELDS.values()})
    return _rows(ids, defaults, overrides)


def raw_prestudy_common(ids: Iterable[int], overrides: Overrides | None = None) -> pd.DataFrame:
    return _rows(ids, {slot: -1 for slot in PRESTUDY_COMMON_SLOTS}, overrides)


def raw_prestudy_hse(ids: Iterable[int], overrides: Overrides | None = None) -> pd.DataFrame:
    return _rows(ids, {"docstro": 2, "agestro": -1}, overrides)


def raw_financial(ids: Iterable[int], overrides: Overrides | None = None) -> pd.DataFrame:
    return _rows(ids, {"netfw_bu_s": 10000.0, "nfwq5_bu_s": 3}, overrides)


def raw_release(
    ids: Iterable[int],
    index: Overrides | None = None,
    waves: Mapping[int, Overrides] | None = None,
    wave_members: Mapping[int, Iterable[int]] | None = None,
    prestudy: Mapping[str, Overrides] | None = None,
) -> dict[str, pd.DataFrame]:
    """Every raw table of a synthetic release, keyed by logical table name.

    ``wave_members`` limits which participants appear in a wave file; by
    default everyone appears everywhere.
    """

    ids = list(ids)
    waves = waves or {}
    wave_members = wave_members or {}
    prestudy = prestudy or {}
    release = {"index": raw_index(ids, index)}
    for wave in WAVE_NUMBERS:
        members = list(wave_members.get(wave, ids))
        release[f"wave{wave}"] = raw_wave(wave, members, waves.get(wave))
        release[f"financial{wave}"] = raw_financial(members)
    release["wave0_common"] = raw_prestudy_common(ids, prestudy.get("wave0_common"))
    for year in PRESTUDY_HSE_YEARS:
        release[f"wave0_{year}"] = raw_prestudy_hse(ids, prestudy.get(f"wave0_{year}"))
    return release


def merged_master(release: Mapping[str, pd.DataFrame]) -> pd.DataFrame:
    """Normalise and merge a synthetic release (before reconciliation)."""

    waves = normalize_waves({wave: release[f"wave{wave}"] for wave in WAVE_NUMBERS})
    prestudy = [normalize_prestudy_common(release["wave0_common"])]
    prestudy += [normalize_prestudy_hse(release[f"wave0_{year}"], year) for year in PRESTUDY_HSE_YEARS]
    financial = {wave: prepare_financial(release[f"financial{wave}"], wave) for wave in WAVE_NUMBERS}
    return merge_cohort(normalize_index(release["index"]), waves, prestudy, financial)


@pytest.fixture
def participant_ids() -> list[int]:
    return [900001, 900002, 900003, 900004, 900005, 900006]
