"""Wave configuration table for the ELSA core, index and pre-study files.

Each ELSA release renames, splits or recodes a handful of questionnaire
items. Rather than one block of code per wave, the raw field names, code
books and hand-identified exception IDs live here as data and drive the
normalisers in :mod:`elsa_stroke_psychosis.normalize`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping


ID = "idauniq"

WAVE_NUMBERS = tuple(range(1, 10))

# ELSA negative codes: not applicable, schedule not applicable, missing,
# not asked, self-completion not returned, don't know, refused.
SENTINEL_CODES = frozenset({-1, -2, -3, -4, -7, -8, -9})

# Fieldwork for wave k started in 2000 + 2k (wave 1: March 2002).
WAVE_YEARS = {wave: 2000 + 2 * wave for wave in WAVE_NUMBERS}
WAVE1_REFERENCE_YEAR = WAVE_YEARS[1]


# ---------------------------------------------------------------------------
# Composite slot codes
# ---------------------------------------------------------------------------

STROKE_SLOT_CODE = 8
PSYCHOSIS_SLOT_CODES = (1, 5, 6)  # hallucinations, schizophrenia, psychosis
ANXIETY_SLOT_CODE = 2
DEPRESSION_SLOT_CODE = 3
PRESTUDY_STROKE_CODE = 15

# Answer codes accepted in each slot family (sentinels are always accepted).
# 95 is "other", 96 "none of these".
CVD_SLOT_CODES = frozenset(range(1, 10)) | {95, 96}
PSYCHIATRIC_SLOT_CODES = frozenset(range(1, 12)) | {95, 96}
# HSE two-digit long-standing illness classification
HSE_ILLNESS_SLOT_CODES = frozenset(range(1, 100))


# ---------------------------------------------------------------------------
# Code books
# ---------------------------------------------------------------------------

SEX_LABELS = {1: "Male", 2: "Female"}
ETHNIC_LABELS = {1: "white", 2: "non-white"}
SMOKE_NOW_LABELS = {1: "Yes", 2: "No"}

VIGOROUS_LABELS = {
    1: "more than once a week",
    2: "once a week",
    3: "one to three times a month",
    4: "hardly ever, or never",
}

ALCOHOL_LABELS_W1 = {
    1: "Twice a day or more",
    2: "Daily or almost daily",
    3: "Once or twice a week",
    4: "Once or twice a month",
    5: "Special occasions only",
    6: "Not at all",
}

ALCOHOL_LABELS = {
    1: "Almost every day",
    2: "Five or six days a week",
    3: "Three or four days a week",
    4: "Once or twice a week",
    5: "Once or twice a month",
    6: "Once every couple of months",
    7: "Once or twice a year",
    8: "Not at all",
}

NEVER_HAD = "never had"
NO_LONGER_HAS = "no longer has"
MISDIAGNOSED = "misdiagnosed"

DISPUTE_STROKE_LABELS_W2 = {
    1: NEVER_HAD,
    2: NO_LONGER_HAS,
    3: "did not have previously but has now",
}
DISPUTE_STROKE_LABELS = {**DISPUTE_STROKE_LABELS_W2, 4: MISDIAGNOSED}


def _early_smoking_disputes(wave: int) -> dict[int, str]:
    previous = wave - 1
    return {
        1: "never smoked",
        2: f"no longer smoked by w{previous}",
        3: f"stopped smoking between w{previous} and w{wave}",
    }


def _late_smoking_disputes(wave: int) -> dict[int, str]:
    previous = wave - 1
    return {
        1: f"no longer smoked by w{previous}",
        2: f"stopped smoking between w{previous} and w{wave}",
        3: f"stopped smoking between w{previous} and w{wave}",
    }


REGION_LEVELS = (
    "north east",
    "north west",
    "yorkshire and the humber",
    "east midlands",
    "west midlands",
    "east of england",
    "london",
    "south east",
    "south west",
    "scotland",
    "wales",
)

# Government office region, pre-2011 letter scheme (England only).
LETTER_REGIONS = {
    "A": "north east",
    "B": "north west",
    "D": "yorkshire and the humber",
    "E": "east midlands",
    "F": "west midlands",
    "G": "east of england",
    "H": "london",
    "J": "south east",
    "K": "south west",
}

# ONS region codes used from wave 6.
ONS_REGIONS = {
    "E12000001": "north east",
    "E12000002": "north west",
    "E12000003": "yorkshire and the humber",
    "E12000004": "east midlands",
    "E12000005": "west midlands",
    "E12000006": "east of england",
    "E12000007": "london",
    "E12000008": "south east",
    "E12000009": "south west",
    "S99999999": "scotland",
    "W99999999": "wales",
}


# ---------------------------------------------------------------------------
# Index file
# ---------------------------------------------------------------------------

INDEX_OUTCOME_FIELDS = {wave: f"outindw{wave}" for wave in range(1, 6)}

INDEX_OUTCOME_CODES = {
    1: frozenset({
        -993, -992, -991, -1, -2, -10, 11, 13, 21, 23, 31, 43, 44, 45, 51, 52, 53, 54, 55, 56,
        79, 99, 310, 330, 340, 410, 420, 431, 432, 440, 450, 510, 520, 530, 540, 550, 560, 561,
        610, 620, 630, 680, 781, 782, 783, 791, 792, 793, 999,
    }),
    2: frozenset({
        -993, -992, -991, -2, -1, 11, 13, 21, 23, 31, 43, 44, 45, 46, 51, 52, 53, 54, 56, 60,
        68, 71, 78, 79, 90, 99,
    }),
    3: frozenset({
        -993, -992, -991, -10, -2, -1, 11, 13, 21, 24, 25, 31, 43, 44, 45, 46, 51, 52, 53, 54,
        55, 56, 60, 71, 77, 78, 79, 95, 99,
    }),
    4: frozenset({
        -993, -991, -4, -2, -1, 11, 13, 21, 23, 24, 25, 31, 43, 44, 45, 46, 51, 52, 53, 54, 55,
        57, 59, 60, 71, 77, 78, 95,
    }),
    5: frozenset({
        -993, -991, -98, -2, -1, 11, 13, 21, 23, 24, 25, 31, 43, 44, 45, 46, 51, 52, 53, 54, 57,
        59, 60, 78, 79, 95,
    }),
}

# Full and partial interviews in person or by proxy, plus institutional
# interviews once they were introduced at wave 3.
PRODUCTIVE_CODES_EARLY = frozenset({11, 13, 21, 23})
PRODUCTIVE_CODES = frozenset({11, 13, 21, 23, 24, 25})


def productive_codes(wave: int) -> frozenset[int]:
    return PRODUCTIVE_CODES_EARLY if wave < 3 else PRODUCTIVE_CODES


# Mortality tracking: tens digit is the first wave missed through death.
MORTALITY_CODES = frozenset({-5, 0, 11, 12, 13, 21, 22, 23, 31, 32, 33, 41, 42, 43, 51, 52, 53, 61, 63})

DOB_CENSORED_CODE = -7
DOB_CENSORED_YEAR = 1914


# ---------------------------------------------------------------------------
# Pre-study (Health Survey for England) files
# ---------------------------------------------------------------------------

PRESTUDY_COMMON_SLOTS = tuple(f"illsm{i}" for i in range(1, 7))
PRESTUDY_HSE_YEARS = (1998, 1999)


# ---------------------------------------------------------------------------
# Core wave files
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WaveSpec:
    """Raw field names and code books for one core wave file.

    Waves 1 and 2 record conditions as numbered "slot" answers; from wave 3
    the same questions are split into one named field per condition. Exactly
    one of ``stroke_slots``/``stroke_flag`` and one of
    ``psychosis_slots``/``psychosis_fields`` is set.
    """

    wave: int
    strokeage: str
    region: str
    ethnicgroup: str
    smokeever: str
    smokenow: str
    vigorousphyact: str
    alcohol: str
    stroke_slots: tuple[str, ...] = ()
    stroke_flag: str | None = None
    psychosis_slots: tuple[str, ...] = ()
    psychosis_fields: tuple[str, ...] = ()
    depression: str | None = None
    anxiety: str | None = None
    strokeyear: str | None = None
    nstrokes: str | None = None
    disputestroke: str | None = None
    disputesmoking: str | None = None
    indoutcome: str | None = None
    sex: str | None = None
    dobyear: str | None = None
    regions: Mapping[str, str] = field(default_factory=lambda: LETTER_REGIONS)
    alcohol_labels: Mapping[int, str] = field(default_factory=lambda: ALCOHOL_LABELS)
    disputestroke_labels: Mapping[int, str] = field(default_factory=lambda: DISPUTE_STROKE_LABELS)
    disputesmoking_labels: Mapping[int, str] = field(default_factory=dict)
    blank_region_ids: frozenset[int] = frozenset()

    @property
    def prefix(self) -> str:
        return f"w{self.wave}"

    @property
    def slot_based(self) -> bool:
        return bool(self.psychosis_slots)

    def raw_fields(self) -> list[str]:
        """Every raw column this wave must provide, in questionnaire order."""

        names: list[str | None] = [
            self.indoutcome,
            self.sex,
            self.dobyear,
            *self.stroke_slots,
            self.stroke_flag,
            self.strokeage,
            self.strokeyear,
            self.nstrokes,
            self.disputestroke,
            *self.psychosis_slots,
            *self.psychosis_fields,
            self.depression,
            self.anxiety,
            self.region,
            self.ethnicgroup,
            self.smokeever,
            self.smokenow,
            self.disputesmoking,
            self.vigorousphyact,
            self.alcohol,
        ]
        return [name for name in names if name is not None]


_HEDIM = tuple(f"hedim0{i}" for i in range(1, 8))
_NAMED_PSYCHOSIS = ("hepsyha", "hepsysc", "hepsyps")


WAVES: dict[int, WaveSpec] = {
    1: WaveSpec(
        wave=1,
        stroke_slots=_HEDIM,
        strokeage="heage",
        psychosis_slots=tuple(f"hepsy{i}" for i in range(1, 10)),
        region="gor",
        ethnicgroup="aethnicr",
        smokeever="hesmk",
        smokenow="heska",
        vigorousphyact="heacta",
        alcohol="heala",
        alcohol_labels=ALCOHOL_LABELS_W1,
        blank_region_ids=frozenset({108802, 103723}),
    ),
    2: WaveSpec(
        wave=2,
        stroke_slots=_HEDIM,
        strokeage="HeAge",
        strokeyear="HeAgeRY",
        nstrokes="Henmst",
        disputestroke="HeDiaN8",
        disputestroke_labels=DISPUTE_STROKE_LABELS_W2,
        psychosis_slots=tuple(f"HePsy{i}" for i in range(1, 7)),
        region="gor",
        ethnicgroup="fqethnr",
        smokeever="HeSmk",
        smokenow="HESka",
        disputesmoking="HeSke",
        disputesmoking_labels=_early_smoking_disputes(2),
        vigorousphyact="HeActa",
        alcohol="scako",
        blank_region_ids=frozenset({104274, 116864, 121006}),
    ),
    3: WaveSpec(
        wave=3,
        stroke_flag="dhedimst",
        strokeage="heage",
        strokeyear="heagery",
        nstrokes="henmst",
        disputestroke="hedanst",
        psychosis_fields=_NAMED_PSYCHOSIS,
        depression="hepsyde",
        anxiety="hepsyan",
        region="GOR",
        ethnicgroup="fqethnr",
        smokeever="hesmk",
        smokenow="heska",
        disputesmoking="heske",
        disputesmoking_labels=_early_smoking_disputes(3),
        vigorousphyact="heacta",
        alcohol="scako",
        blank_region_ids=frozenset({104995}),
    ),
    4: WaveSpec(
        wave=4,
        stroke_flag="hedimst",
        strokeage="heage",
        strokeyear="heagery",
        nstrokes="henmst",
        disputestroke="hedanst",
        psychosis_fields=_NAMED_PSYCHOSIS,
        depression="hepsyde",
        anxiety="hepsyan",
        region="GOR",
        ethnicgroup="fqethnr",
        smokeever="hesmk",
        smokenow="heska",
        disputesmoking="heske",
        disputesmoking_labels=_early_smoking_disputes(4),
        vigorousphyact="heacta",
        alcohol="scako",
    ),
    5: WaveSpec(
        wave=5,
        stroke_flag="hedimst",
        strokeage="heage",
        strokeyear="heagery",
        nstrokes="henmst",
        disputestroke="hedanst",
        psychosis_fields=_NAMED_PSYCHOSIS,
        depression="hepsyde",
        anxiety="hepsyan",
        region="GOR",
        ethnicgroup="fqethnr",
        smokeever="hesmk",
        smokenow="heska",
        disputesmoking="heske",
        disputesmoking_labels=_early_smoking_disputes(5),
        vigorousphyact="heacta",
        alcohol="scako",
        blank_region_ids=frozenset({
            100005, 102077, 103445, 104385, 104956, 106165, 110960, 112303, 112877, 118377, 118465,
            118700, 119160, 119164, 120644, 150907, 150921, 151196, 162012, 162038, 703440,
        }),
    ),
    6: WaveSpec(
        wave=6,
        indoutcome="w6indout",
        sex="indsex",
        dobyear="Indobyr",
        stroke_flag="hedimst",
        strokeage="HeAge",
        strokeyear="HeAgeRY",
        nstrokes="HeNmSt",
        disputestroke="hedanst",
        psychosis_fields=_NAMED_PSYCHOSIS,
        depression="hepsyde",
        anxiety="hepsyan",
        region="GOR",
        regions=ONS_REGIONS,
        ethnicgroup="Fqethnr",
        smokeever="HeSmk",
        smokenow="HESka",
        disputesmoking="HeSke",
        disputesmoking_labels=_late_smoking_disputes(6),
        vigorousphyact="HeActa",
        alcohol="scako",
        blank_region_ids=frozenset({
            104385, 104900, 105692, 111085, 111109, 111223, 112303, 162368, 164926,
        }),
    ),
    7: WaveSpec(
        wave=7,
        indoutcome="w7indout",
        sex="indsex",
        dobyear="Indobyr",
        stroke_flag="hedimst",
        strokeage="HeAge",
        strokeyear="HeAgeRY",
        nstrokes="HeNmSt",
        disputestroke="hedanst",
        psychosis_fields=_NAMED_PSYCHOSIS,
        depression="hepsyde",
        anxiety="hepsyan",
        region="gor",
        regions=ONS_REGIONS,
        ethnicgroup="Fqethnr",
        smokeever="HeSmk",
        smokenow="HESka",
        disputesmoking="HeSke",
        disputesmoking_labels=_late_smoking_disputes(7),
        vigorousphyact="HeActa",
        alcohol="scako",
    ),
    8: WaveSpec(
        wave=8,
        indoutcome="w8indout",
        sex="indsex",
        dobyear="indobyr",
        stroke_flag="hedimst",
        strokeage="heage",
        nstrokes="henmst",
        disputestroke="hedanst",
        psychosis_fields=_NAMED_PSYCHOSIS,
        depression="hepsyde",
        anxiety="hepsyan",
        region="gor",
        regions=ONS_REGIONS,
        ethnicgroup="fqethnmr",
        smokeever="hesmk",
        smokenow="heska",
        disputesmoking="heske",
        disputesmoking_labels=_late_smoking_disputes(8),
        vigorousphyact="heacta",
        alcohol="scako",
    ),
    9: WaveSpec(
        wave=9,
        indoutcome="w9indout",
        sex="indsex",
        dobyear="indobyr",
        stroke_flag="hedimst",
        strokeage="heage",
        nstrokes="henmst",
        disputestroke="hedanst",
        psychosis_fields=_NAMED_PSYCHOSIS,
        depression="hepsyde",
        anxiety="hepsyan",
        region="GOR",
        regions=ONS_REGIONS,
        ethnicgroup="fqethnmr",
        smokeever="hesmk",
        smokenow="heska",
        disputesmoking="heske",
        disputesmoking_labels={
            1: "no longer smoked by w8",
            2: "stopped smoking before w8",
            3: "stopped smoking between w8 and w9",
        },
        vigorousphyact="heacta",
        alcohol="scalcm",
        blank_region_ids=frozenset({105348, 116848, 909548}),
    ),
}


# ---------------------------------------------------------------------------
# Financial derived variables
# ---------------------------------------------------------------------------

FINANCIAL_SUM_FIELD = "netfw_bu_s"
FINANCIAL_QUINTILE_FIELD = "nfwq5_bu_s"
QUINTILE_CODES = frozenset(range(1, 6))
