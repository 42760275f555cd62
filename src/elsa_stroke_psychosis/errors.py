"""Exceptions raised when a data release does not match the expected layout."""
from __future__ import annotations


class PipelineError(Exception):
    """Base class for fatal preprocessing errors."""


class SchemaMismatchError(PipelineError, KeyError):
    """A raw column is absent, a code is outside its code book, or merged columns collide."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable.
        return str(self.args[0]) if self.args else ""


class DuplicateParticipantError(PipelineError, ValueError):
    """The same participant ID occurs more than once in a source table."""
