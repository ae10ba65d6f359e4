"""Domain models for restore jobs."""

from __future__ import annotations

from .models import (
    ExistingDatabasePolicy,
    RestoreJob,
    RestoreResult,
    RestoreStatus,
    validate_database_name,
)


__all__ = [
    "ExistingDatabasePolicy",
    "RestoreJob",
    "RestoreResult",
    "RestoreStatus",
    "validate_database_name",
]
