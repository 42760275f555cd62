import numpy as np
import pandas as pd

from conftest import merged_master, raw_release

from elsa_stroke_psychosis.reconcile import reconcile
from elsa_stroke_psychosis.survival import (
    DIRECTIONS,
    HORIZONS,
    PSYCHOSIS_IN_STROKE,
    STROKE_IN_PSYCHOSIS,
    build_direction,
    build_survival_tables,
    censor,
    follow_up_waves,
)
from elsa_stroke_psychosis.waves import ID


def _master():
    ids = [1, 2, 3, 4]
    index = {
        1: {"outindw1": -1},
        3: {"outindw1": -1, "outindw2": -1},
    }
    waves = {
        # psychosis at wave 4, stroke at wave 6, last interview at wave 8
        4: {1: {"hepsyps": 1}, 3: {"hedimst": 1}},
        6: {1: {"hedimst": 1}},
        9: {1: {"w9indout": 52}},
        # outcome before exposure
        3: {2: {"dhedimst": 1}},
        5: {2: {"hepsyha": 1}},
    }
    prestudy = {"wave0_1999": {4: {"docstro": 1, "agestro": 48}}}
    return reconcile(merged_master(raw_release(ids, index=index, waves=waves, prestudy=prestudy)))


def test_follow_up_cases():
    first = np.array([1.0, 1.0, 1.0, 1.0, 1.0, 1.0])
    last = np.array([9.0, 9.0, 9.0, 9.0, 9.0, 9.0])
    exposure = np.array([3.0, 0.0, 0.0, 5.0, 4.0, 2.0])
    outcome = np.array([0.0, 6.0, 0.0, 3.0, 4.0, 7.0])

    waves = follow_up_waves(first, last, exposure, outcome)
    assert waves.tolist() == [6.0, 5.0, 8.0, 0.0, 0.0, 5.0]


def test_stroke_after_psychosis_scenario():
    surv = build_direction(_master(), STROKE_IN_PSYCHOSIS).set_index(ID)

    assert surv.loc[1, "wavefirstparticipate"] == 2
    assert surv.loc[1, "wavelastparticipate"] == 8
    assert surv.loc[1, "fuptime"] == 4
    assert surv.loc[1, "strokeever_4"] == 1
    assert surv.loc[1, "strokeever_10"] == 1


def test_misordered_events_get_zero_follow_up():
    surv = build_direction(_master(), STROKE_IN_PSYCHOSIS).set_index(ID)
    assert surv.loc[2, "fuptime"] == 0


def test_prestudy_outcome_starts_follow_up_at_half_wave():
    stroke_table = build_direction(_master(), STROKE_IN_PSYCHOSIS).set_index(ID)
    psychosis_table = build_direction(_master(), PSYCHOSIS_IN_STROKE).set_index(ID)

    assert stroke_table.loc[4, "wavefirstparticipate"] == 0.5
    assert stroke_table.loc[4, "fuptime"] == 0
    # exposure reported before wave 1, followed to the last interview
    assert psychosis_table.loc[4, "fuptime"] == (9 - 0.5) * 2


def test_survival_tables_carry_both_directions():
    tables = build_survival_tables(_master())

    for name, table in tables.items():
        assert table[ID].is_unique, name
        assert (table["fuptime"] >= 0).all(), name
        for column in ["strokeever_10", "strokeever_4", "psychosisever_10", "psychosisever_4"]:
            assert column in table, (name, column)


def test_censoring_consistency():
    tables = build_survival_tables(_master())
    for table in tables.values():
        for outcome in ["strokeever", "psychosisever"]:
            for horizon in HORIZONS:
                flagged = table[table[f"{outcome}_{horizon}"] == 1]
                assert (flagged[outcome] == 1).all()

    for direction in DIRECTIONS:
        table = tables[direction.name]
        for horizon, column in zip(HORIZONS, direction.censored_columns()):
            flagged = table[table[column] == 1]
            assert (flagged["fuptime"] <= horizon).all(), (direction.name, column)
    # participant 1 has a stroke four years into follow-up
    assert tables["strokeinpsychosis"].set_index(ID).loc[1, "strokeever_4"] == 1


def test_censor_drops_late_events():
    ever = pd.Series([1, 1, 0, 1])
    fuptime = pd.Series([4.0, 6.0, 12.0, 10.0])

    assert censor(ever, fuptime, 4).tolist() == [1, 0, 0, 0]
    assert censor(ever, fuptime, 10).tolist() == [1, 1, 0, 1]
