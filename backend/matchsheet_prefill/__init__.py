"""
Match-sheet pre-fill package for the club management backend.

This module bundles reusable utilities for:
  - inspecting PDF templates and proposing field mappings
  - storing and editing the mapping of each template
  - filling templates with tournament rosters and storing the result
"""

from .errors import (
    MalformedDocument,
    MatchSheetError,
    MatchSheetValidationError,
    ProposalServiceUnavailable,
    TemplateNotFound,
)
from .service import AnalysisResult, MatchSheetService

__all__ = [
    "AnalysisResult",
    "MalformedDocument",
    "MatchSheetError",
    "MatchSheetService",
    "MatchSheetValidationError",
    "ProposalServiceUnavailable",
    "TemplateNotFound",
]
