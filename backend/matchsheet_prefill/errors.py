"""Exceptions raised by the match-sheet pre-fill core."""

from __future__ import annotations

from typing import List, Optional


class MatchSheetError(RuntimeError):
    """Base class for domain errors surfaced to callers."""


class MalformedDocument(MatchSheetError):
    """The byte sequence could not be loaded as a PDF document."""


class ProposalServiceUnavailable(MatchSheetError):
    """The external field classification call could not be completed."""


class TemplateNotFound(MatchSheetError):
    """No template bytes are stored under the requested name."""


class MatchSheetValidationError(MatchSheetError):
    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(message or "; ".join(self.errors))
