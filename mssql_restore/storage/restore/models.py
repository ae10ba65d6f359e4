"""Data models for backup manifests and relocation plans."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FileKind(Enum):
    """How a database file is used; decides its extension and name."""

    DATA = "data"
    LOG = "log"

    @property
    def default_extension(self) -> str:
        return ".ldf" if self is FileKind.LOG else ".mdf"

    @classmethod
    def from_type_code(cls, code: str) -> Optional[FileKind]:
        """Map a FILELISTONLY ``Type`` column value to a kind.

        D = data, L = log, F = full-text catalog, S = FILESTREAM or
        memory-optimized container. F and S hold data and are relocated
        alongside the data files.
        """
        normalized = (code or "").strip().upper()
        if normalized == "L":
            return cls.LOG
        if normalized in ("D", "F", "S"):
            return cls.DATA
        return None


@dataclass(frozen=True)
class BackupFileEntry:
    logical_name: str
    original_physical_path: str
    file_kind: FileKind


@dataclass(frozen=True)
class Manifest:
    entries: tuple[BackupFileEntry, ...]
    default_storage_directory: str

    @property
    def data_entries(self) -> tuple[BackupFileEntry, ...]:
        return tuple(e for e in self.entries if e.file_kind is FileKind.DATA)

    @property
    def log_entries(self) -> tuple[BackupFileEntry, ...]:
        return tuple(e for e in self.entries if e.file_kind is FileKind.LOG)


@dataclass(frozen=True)
class FileMove:
    logical_name: str
    new_physical_path: str
    file_kind: FileKind


@dataclass(frozen=True)
class RelocationPlan:
    target_database_name: str
    storage_directory: str
    moves: tuple[FileMove, ...]
