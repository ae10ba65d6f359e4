"""Custom exceptions for the restore pipeline.

Each failure kind maps to a distinct process exit code so orchestration
layers can branch on the outcome without parsing log text.

Exception Hierarchy:
    RestoreError (base, exit 1)
        ├── FetchFailedError (exit 10)
        ├── ManifestError
        │   ├── ManifestUnavailableError (exit 11)
        │   └── ManifestEmptyError (exit 12)
        ├── RestoreFailedError (exit 13)
        ├── PostStepFailedError (exit 14)
        └── CleanupFailedError (logged only, exit 0)

Usage:
    from mssql_restore.storage.exceptions import ManifestEmptyError

    if not entries:
        raise ManifestEmptyError(backup_path)
"""

from __future__ import annotations

from enum import Enum


class RestoreError(Exception):
    """Base exception for all restore pipeline failures."""

    exit_code = 1


class FetchFailureReason(Enum):
    UNREACHABLE = "unreachable"
    WRITE_FAILED = "write_failed"
    INCOMPLETE = "incomplete"
    CHECKSUM = "checksum"


class FetchFailedError(RestoreError):
    """Backup source could not be fetched to local storage."""

    exit_code = 10

    def __init__(self, source: str, reason: FetchFailureReason, detail: str = ""):
        self.source = source
        self.reason = reason
        self.detail = detail
        msg = f"Failed to fetch {source} ({reason.value})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ManifestError(RestoreError):
    """Base exception for backup manifest introspection."""


class ManifestUnavailableError(ManifestError):
    """Introspection query could not execute (engine unreachable, bad backup)."""

    exit_code = 11

    def __init__(self, backup_path: str, detail: str = ""):
        self.backup_path = backup_path
        self.detail = detail
        msg = f"Unable to read file list of backup {backup_path}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ManifestEmptyError(ManifestError):
    """Introspection output yielded no usable file entries."""

    exit_code = 12

    def __init__(self, backup_path: str, detail: str = "no file entries parsed"):
        self.backup_path = backup_path
        self.detail = detail
        super().__init__(f"Backup manifest for {backup_path} is unusable: {detail}")


class RestoreFailedError(RestoreError):
    """Engine rejected or failed the restore instruction."""

    exit_code = 13

    def __init__(self, target_database: str, detail: str):
        self.target_database = target_database
        self.detail = detail
        super().__init__(f"Restore of {target_database} failed: {detail}")


class PostStepFailedError(RestoreError):
    """Post-restore script failed after a successful restore."""

    exit_code = 14

    def __init__(self, script: str, detail: str):
        self.script = script
        self.detail = detail
        super().__init__(f"Post-restore script {script} failed: {detail}")


class CleanupFailedError(RestoreError):
    """Temporary backup copy could not be removed."""

    exit_code = 0

    def __init__(self, path: str, detail: str = ""):
        self.path = path
        self.detail = detail
        msg = f"Failed to remove temporary file {path}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
