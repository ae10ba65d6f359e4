"""Job-level domain model for restore operations.

The CLI and settings layer hand a ``RestoreJob`` to the pipeline and get a
``RestoreResult`` back; everything in between works on the manifest and plan
types in ``mssql_restore.storage.restore.models``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


# ==============================================================================
# Restore Job Domain
# ==============================================================================

# Restored file names are built from the database name.
UNSAFE_NAME_CHARS = ("/", "\\", ":")


def validate_database_name(name: str) -> None:
    """Reject names that would place restored files outside the storage directory.

    Raises:
        ValueError: Empty name, a path separator or drive colon, or "." / ".."
    """
    if not name or not name.strip():
        raise ValueError("Target database name must not be empty")
    if any(char in name for char in UNSAFE_NAME_CHARS):
        raise ValueError(f"Target database name must not contain /, \\ or : ({name!r})")
    if name.strip() in (".", ".."):
        raise ValueError(f"Invalid target database name: {name!r}")


class ExistingDatabasePolicy(Enum):
    """What to do when the target database already exists."""

    REPLACE = "replace"  # emit the REPLACE directive
    FAIL_IF_EXISTS = "fail-if-exists"  # let the engine refuse the restore


@dataclass(frozen=True)
class RestoreJob:
    """A restore request.

    Encapsulates the backup source, target name and handling options.
    """

    source: str  # Local path or fetchable URL
    target_database: str
    job_id: str  # Unique identifier for logging
    policy: ExistingDatabasePolicy = ExistingDatabasePolicy.FAIL_IF_EXISTS
    storage_directory: str | None = None  # Overrides the server default
    post_restore_script: Path | None = None
    expected_sha256: str | None = None
    dry_run: bool = False

    def validate(self) -> None:
        """Validate job inputs before any external call is made.

        Raises:
            ValueError: If validation fails with a descriptive error message
        """
        if not self.source or not self.source.strip():
            raise ValueError("Backup source must not be empty")
        validate_database_name(self.target_database)
        if self.expected_sha256 is not None:
            digest = self.expected_sha256.strip().lower()
            if len(digest) != 64 or any(c not in "0123456789abcdef" for c in digest):
                raise ValueError(f"Invalid SHA256 checksum: {self.expected_sha256}")


# ==============================================================================
# Restore Result
# ==============================================================================


class RestoreStatus(Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class RestoreResult:
    """Outcome of a restore attempt, suitable for exit-code mapping."""

    status: RestoreStatus
    target_database: str
    files_restored: int = 0
    error_detail: str | None = None
    exit_code: int = 0
    command: str | None = None
    post_step_error: str | None = None
    dry_run: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == RestoreStatus.SUCCESS

    @classmethod
    def failure(
        cls,
        target_database: str,
        error: Exception,
        *,
        command: str | None = None,
    ) -> RestoreResult:
        return cls(
            status=RestoreStatus.FAILURE,
            target_database=target_database,
            files_restored=0,
            error_detail=getattr(error, "detail", None) or str(error),
            exit_code=getattr(error, "exit_code", 1),
            command=command,
        )
