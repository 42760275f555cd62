"""Preprocessing of ELSA waves 1-9 for stroke/psychosis survival analyses."""

from .errors import DuplicateParticipantError, PipelineError, SchemaMismatchError
from .preprocess_data import PreprocessConfig, build_master, preprocess

__version__ = "0.1.0"

__all__ = [
    "DuplicateParticipantError",
    "PipelineError",
    "PreprocessConfig",
    "SchemaMismatchError",
    "build_master",
    "preprocess",
]
