# src/exceptions.py
"""
Shared exception classes used across the codebase.

This module centralizes common exceptions to avoid duplication
and ensure consistent error handling.
"""

from __future__ import annotations


class SearchError(Exception):
    """
    Base class for employee search errors.
    """

    pass


class SearchValidationError(SearchError, ValueError):
    """
    Raised when a search request is malformed.

    This is the only search failure surfaced to callers; it is raised before
    any employee store or cache access happens.

    Examples:
        - non-string query text
        - query longer than 100 characters
        - fuzzy_threshold outside [0.1, 1.0]
        - non-integer page / page_size
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict[str, str | None]:
        return {"code": "VALIDATION_ERROR", "message": self.message, "field": self.field}


__all__ = [
    "SearchError",
    "SearchValidationError",
]
