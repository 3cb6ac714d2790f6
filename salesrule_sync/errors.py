"""Exception hierarchy shared by the synchronisation engine."""
from __future__ import annotations

from typing import Any, Optional


class SalesRuleSyncError(Exception):
    """Base error raised when a sales rule cannot be synchronised."""


class ConfigurationError(SalesRuleSyncError):
    """Raised when required input (brand, credential, file path) is missing."""


class NotFoundError(SalesRuleSyncError):
    """Raised when a resolution step finds no matching remote resource."""


class RowNotFoundError(NotFoundError):
    """Raised when no table row carries the requested ``schedule_id``."""

    def __init__(self, schedule_id: Any) -> None:
        super().__init__(f"No entries found for schedule_id {schedule_id}")
        self.schedule_id = schedule_id


class SchemaError(SalesRuleSyncError):
    """Raised when a named column or the column count does not match the table."""


class TransportError(SalesRuleSyncError):
    """Raised for non-2xx responses and network failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class ConflictError(TransportError):
    """Raised when the remote resource is locked by another writer."""


__all__ = [
    "ConfigurationError",
    "ConflictError",
    "NotFoundError",
    "RowNotFoundError",
    "SalesRuleSyncError",
    "SchemaError",
    "TransportError",
]
