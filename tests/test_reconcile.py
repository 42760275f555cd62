import numpy as np
import pandas as pd
import pytest

from conftest import merged_master, raw_release

from elsa_stroke_psychosis.reconcile import (
    classify_order,
    death_wave,
    ethnicity_label,
    ethnicity_score,
    reconcile,
)
from elsa_stroke_psychosis.waves import ID


def _reconciled(ids, **kwargs):
    return reconcile(merged_master(raw_release(ids, **kwargs))).set_index(ID)


# -------------------------------
# Participation
# -------------------------------
def test_non_participants_are_excluded():
    non_participant = {column: -1 for column in ["outindw1", "outindw2", "outindw3", "outindw4", "outindw5"]}
    out = _reconciled(
        [1, 2],
        index={2: non_participant},
        wave_members={6: [1], 7: [1], 8: [1], 9: [1]},
    )

    assert 2 not in out.index
    assert out.loc[1, "wavefirstparticipate"] == 1
    assert out.loc[1, "wavelastparticipate"] == 9
    assert out.loc[1, "totalwaves"] == 9
    assert out.loc[1, "allwavesparticipated"] == 1


def test_participation_window_and_baselines():
    index = {1: {"outindw1": -1, "outindw2": 52, "outindw3": 24}}
    waves = {
        3: {1: {"scako": 1, "heska": 1, "GOR": "A"}},
        4: {1: {"scako": 8}},
        7: {1: {"w7indout": 52}},
        8: {1: {"w8indout": 52}},
        9: {1: {"w9indout": 52}},
    }
    out = _reconciled([1], index=index, waves=waves)

    assert out.loc[1, "wavefirstparticipate"] == 3
    assert out.loc[1, "wavelastparticipate"] == 6
    assert out.loc[1, "w3participated"] == 1
    assert out.loc[1, "w2participated"] == 0
    assert out.loc[1, "alcoholbaseline"] == "Daily/almost daily"
    assert out.loc[1, "smokingbaseline"] == "Yes"
    assert out.loc[1, "region"] == "north east"
    assert out.loc[1, "agebaseline"] == 2006 - 1940
    assert out.loc[1, "w1age"] == 2002 - 1940
    assert out.loc[1, "age_cat"] == "60-69"
    assert out.loc[1, "netwealth_q5"] == 3


def test_monotonic_wave_ordering():
    out = _reconciled([1, 2, 3], index={2: {"outindw1": -1}, 3: {"outindw1": -1, "outindw2": -1}})
    assert (out["wavefirstparticipate"] <= out["wavelastparticipate"]).all()
    assert set(out["wavefirstparticipate"]) <= {1, 2, 3}


# -------------------------------
# First reports and ordering
# -------------------------------
def test_first_reports_and_ever_flags():
    out = _reconciled(
        [1, 2],
        waves={
            4: {1: {"hedimst": 1, "hepsysc": 1}},
            6: {1: {"hedimst": 1}},
            2: {2: {"HePsy1": 1}},
        },
        prestudy={"wave0_1998": {2: {"docstro": 1, "agestro": 50}}},
    )

    assert out.loc[1, "wavefirstreport_stroke"] == 4
    assert out.loc[1, "wavefirstreport_psychosis"] == 4
    assert out.loc[1, "strokepsychosisorder"] == "same time"
    assert out.loc[1, "strokepsychosiscat"] == "Stroke and Psychosis"
    assert out.loc[2, "wavefirstreport_stroke"] == 0.5
    assert out.loc[2, "wavefirstreport_psychosis"] == 2
    assert out.loc[2, "strokepsychosisorder"] == "stroke then psychosis"
    assert out.loc[2, "minstrokeage"] == 50
    assert out["strokeever"].tolist() == [1, 1]


def test_stroke_age_falls_back_to_stroke_year():
    out = _reconciled([1], waves={5: {1: {"hedimst": 1, "heagery": 2009, "henmst": 2}}})

    assert out.loc[1, "w5strokeage"] == 2009 - 1940
    assert out.loc[1, "minstrokeage"] == 69
    assert out.loc[1, "ntotalstrokes"] == 2
    assert out.loc[1, "ntotalstrokesnozero"] == 2


def test_death_collapse():
    codes = pd.Series([-5, 0, 11, 23, 53, 61, 63, pd.NA], dtype="Int64")
    collapsed = death_wave(codes)
    assert collapsed.tolist()[2:7] == [1.0, 2.0, 5.0, 6.0, 6.0]
    assert collapsed.iloc[[0, 1, 7]].isna().all()


@pytest.mark.parametrize(
    "stroke, psychosis, death, expected",
    [
        (0, 3, 4, "psychosis then died"),
        (2, 0, 5, "stroke then died"),
        (0, 3, np.nan, "psychosis only"),
        (0.5, 0, np.nan, "stroke only"),
        (2, 5, np.nan, "stroke then psychosis"),
        (6, 4, np.nan, "psychosis then stroke"),
        (3, 3, 5, "same time"),
        (0, 0, 5, "no stroke or psychosis"),
    ],
)
def test_order_categories(stroke, psychosis, death, expected):
    frame = pd.DataFrame({
        "wavefirstreport_stroke": [stroke],
        "wavefirstreport_psychosis": [psychosis],
        "wavefirstreport_death": [death],
        "wavefirstparticipate": [1],
    })
    assert classify_order(frame)[0] == expected


# -------------------------------
# Ethnicity consensus
# -------------------------------
def _ethnic_frame(labels):
    return pd.DataFrame(
        {f"w{wave}ethnicgroup": [label] for wave, label in enumerate(labels, start=1)}
    ).astype("string")


@pytest.mark.parametrize(
    "labels, expected",
    [
        ([None] * 9, "Unknown"),
        (["white"] * 9, "White"),
        (["non-white"] * 9, "Non-White"),
        (["white", "non-white"] + [None] * 7, "White"),
        (["non-white", "non-white", "white"] + [None] * 6, "Non-White"),
        (["non-white", "non-white", "white", "white", "white"] + [None] * 4, "Unknown"),
    ],
)
def test_ethnicity_consensus(labels, expected):
    score = ethnicity_score(_ethnic_frame(labels)).iloc[0]
    assert ethnicity_label(score) == expected


def test_ethnicity_in_master():
    out = _reconciled([1, 2], waves={1: {2: {"aethnicr": 2}}})
    assert out.loc[1, "ethnicgroup"] == "White"
    # one non-white answer against eight white ones sums to 58
    assert out.loc[2, "ethnicgroup"] == "White"
