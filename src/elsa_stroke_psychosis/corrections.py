"""Manually adjudicated corrections for events disputed at a later wave.

At each interview participants are shown what they reported last time and
may dispute it. The curated list below records which reports were withdrawn;
:func:`build_correction_table` expands it into field-level rows and
:func:`apply_corrections` writes them into the merged master table.
"""
from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from .errors import SchemaMismatchError
from .waves import ID, MISDIAGNOSED, NEVER_HAD, NO_LONGER_HAS, WAVES


LOGGER = logging.getLogger(__name__)

CORRECTION_COLUMNS = ["idauniq", "wave", "field", "value", "reason"]

DISPUTED = "disputed"
NEVER_SMOKED = "never smoked"
NO_LONGER_SMOKED = "no longer smoked"
NO_STROKE_REPORTED = "no stroke reported"

# (participant, wave whose stroke report was withdrawn, reason)
DISPUTED_STROKES = [
    (119177, 1, DISPUTED),
    (105909, 2, DISPUTED),
    (107705, 2, DISPUTED),
    (105639, 2, DISPUTED),
    (110914, 2, DISPUTED),
    (120566, 2, DISPUTED),
    (108439, 3, DISPUTED),
    (116819, 3, DISPUTED),
    (104223, 4, DISPUTED),
    (117119, 4, DISPUTED),
    (119706, 4, DISPUTED),
    (105426, 5, DISPUTED),
    (108689, 5, DISPUTED),
    (111160, 5, DISPUTED),
    (120605, 5, DISPUTED),
    (111364, 5, DISPUTED),
    (116712, 5, DISPUTED),
    (119241, 5, DISPUTED),
    (161053, 5, DISPUTED),
    (107888, 6, MISDIAGNOSED),
    (116955, 6, MISDIAGNOSED),
    (120478, 6, MISDIAGNOSED),
    (111663, 6, NEVER_HAD),
    (105528, 7, NEVER_HAD),
    (118074, 7, NEVER_HAD),
    (111905, 7, NEVER_HAD),
    (119110, 7, NEVER_HAD),
    (161536, 7, NEVER_HAD),
    (120797, 7, NEVER_HAD),
    (112824, 7, NEVER_HAD),
    (110967, 7, NEVER_HAD),
    (160559, 7, NEVER_HAD),
    (120595, 7, NEVER_HAD),
    (112277, 7, MISDIAGNOSED),
    (165590, 7, MISDIAGNOSED),
    (119868, 7, MISDIAGNOSED),
    (160191, 7, MISDIAGNOSED),
    (111913, 7, MISDIAGNOSED),
    (107429, 7, NO_LONGER_HAS),
    (117639, 8, MISDIAGNOSED),
    (120725, 8, NEVER_HAD),
    (117463, 8, NEVER_HAD),
    (118977, 8, NEVER_HAD),
    (150335, 8, NEVER_HAD),
    (160620, 8, NEVER_HAD),
    (163281, 8, NEVER_HAD),
    (107289, 8, NO_LONGER_HAS),
]

# Stroke counts recorded for participants with no corresponding stroke report.
STRAY_STROKE_COUNTS = [
    (119177, 3), (119177, 4), (119177, 5), (119177, 6), (119177, 7),
    (111214, 6), (111214, 7), (111214, 8),
]

# (participant, wave whose "smokes now" answer was withdrawn, reason)
DISPUTED_SMOKING = [
    (108410, 1, NEVER_SMOKED),
    (108553, 1, NEVER_SMOKED),
    (111854, 1, NEVER_SMOKED),
    (118935, 1, NEVER_SMOKED),
    (105587, 1, NO_LONGER_SMOKED),
    (106835, 1, NO_LONGER_SMOKED),
    (107300, 1, NO_LONGER_SMOKED),
    (118510, 1, NO_LONGER_SMOKED),
    (104837, 2, NO_LONGER_SMOKED),
    (108623, 2, NO_LONGER_SMOKED),
    (111298, 2, NO_LONGER_SMOKED),
    (118830, 2, NO_LONGER_SMOKED),
    (104413, 3, NO_LONGER_SMOKED),
    (108192, 3, NO_LONGER_SMOKED),
    (111138, 3, NO_LONGER_SMOKED),
    (111672, 3, NO_LONGER_SMOKED),
    (112606, 3, NO_LONGER_SMOKED),
    (119514, 3, NO_LONGER_SMOKED),
    (151038, 3, NEVER_SMOKED),
    (104243, 4, NO_LONGER_SMOKED),
    (108120, 4, NO_LONGER_SMOKED),
    (112604, 4, NO_LONGER_SMOKED),
    (118270, 4, NEVER_SMOKED),
    (118619, 6, NO_LONGER_SMOKED),
    (161269, 6, NO_LONGER_SMOKED),
    (113048, 7, NO_LONGER_SMOKED),
    (167582, 8, NO_LONGER_SMOKED),
    (103908, 8, NO_LONGER_SMOKED),
    (117852, 8, NO_LONGER_SMOKED),
    (120739, 8, NO_LONGER_SMOKED),
    (161829, 8, NO_LONGER_SMOKED),
    (150154, 8, NO_LONGER_SMOKED),
    (160374, 8, NO_LONGER_SMOKED),
    (161100, 8, NO_LONGER_SMOKED),
    (160270, 8, NO_LONGER_SMOKED),
    (161021, 8, NO_LONGER_SMOKED),
    (166080, 8, NO_LONGER_SMOKED),
]

# Reasons whose meaning is unclear (resolved condition or never present?);
# these rows are kept for audit but never applied.
UNAPPLIED_REASONS = frozenset({NO_LONGER_HAS})


def _stroke_fields(wave: int) -> list[tuple[str, object]]:
    spec = WAVES[wave]
    fields: list[tuple[str, object]] = [
        (f"w{wave}strokeany", 0),
        (f"w{wave}strokeage", None),
    ]
    if spec.nstrokes is not None:
        fields.append((f"w{wave}nstrokes", None))
    if spec.strokeyear is not None:
        fields.append((f"w{wave}strokeyear", None))
    return fields


def build_correction_table() -> pd.DataFrame:
    """Field-level corrections: one row per (participant, wave, field)."""

    rows = []
    for idauniq, wave, reason in DISPUTED_STROKES:
        for name, value in _stroke_fields(wave):
            rows.append((idauniq, wave, name, value, reason))
    for idauniq, wave in STRAY_STROKE_COUNTS:
        rows.append((idauniq, wave, f"w{wave}nstrokes", None, NO_STROKE_REPORTED))
    for idauniq, wave, reason in DISPUTED_SMOKING:
        rows.append((idauniq, wave, f"w{wave}smokenow", "No", reason))
    return pd.DataFrame(rows, columns=CORRECTION_COLUMNS)


def _missing_for(series: pd.Series) -> object:
    return pd.NA if isinstance(series.dtype, pd.api.extensions.ExtensionDtype) else np.nan


def apply_corrections(master: pd.DataFrame, corrections: pd.DataFrame) -> pd.DataFrame:
    """Return a copy of ``master`` with every applicable correction written in.

    Setting a fixed value is idempotent, so applying the table twice is the
    same as applying it once.
    """

    frame = master.copy()
    skipped = corrections[corrections["reason"].isin(UNAPPLIED_REASONS)]
    for row in skipped.drop_duplicates(["idauniq", "wave"]).itertuples(index=False):
        LOGGER.warning(
            "Participant %s disputed their wave %s report as %r; left as reported",
            row.idauniq, row.wave, row.reason,
        )

    applied = 0
    for row in corrections[~corrections["reason"].isin(UNAPPLIED_REASONS)].itertuples(index=False):
        if row.field not in frame.columns:
            raise SchemaMismatchError(f"correction targets unknown column {row.field!r}")
        mask = frame[ID] == row.idauniq
        if not mask.any():
            LOGGER.debug("Correction for participant %s skipped: not in master table", row.idauniq)
            continue
        value = _missing_for(frame[row.field]) if pd.isna(row.value) else row.value
        frame.loc[mask, row.field] = value
        applied += 1
    LOGGER.info("Applied %s disputed-event corrections (%s left as reported)", applied, len(skipped))
    return frame
