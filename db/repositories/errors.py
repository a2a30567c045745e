"""
Repository-layer exceptions for visibility reads and result writes.
"""

from __future__ import annotations


class VisibilityRepositoryError(Exception):
    """Base exception for visibility repository failures."""


class PersistenceError(VisibilityRepositoryError):
    """Raised when a result row cannot be written."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class LocationNotFoundError(VisibilityRepositoryError):
    """Raised when a referenced location does not exist for the organization."""
