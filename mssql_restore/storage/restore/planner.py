"""Relocation planning for restored database files.

Every restored file is named after the target database:
``{target}{ext}`` for data files and ``{target}_log{ext}`` for log files,
all under one storage directory. Planning is pure: the same manifest and
target name always produce the same plan.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath, PureWindowsPath
from typing import Optional

from mssql_restore.domain.models import validate_database_name

from .models import BackupFileEntry, FileKind, FileMove, Manifest, RelocationPlan

_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:")
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def is_windows_path(path: str) -> bool:
    """Return True if a server-side path uses Windows conventions."""
    return bool(_WINDOWS_DRIVE.match(path)) or path.startswith("\\\\") or "\\" in path


def _pure_path(path: str):
    return PureWindowsPath(path) if is_windows_path(path) else PurePosixPath(path)


def file_extension(path: str) -> str:
    """Extension of a server-side physical path, '' when it has none."""
    if not path:
        return ""
    suffix = _pure_path(path).suffix
    return "" if suffix == "." else suffix


def join_storage_path(directory: str, filename: str) -> str:
    """Join a file name onto a server-side directory using its path style."""
    return str(_pure_path(directory) / filename)


def sanitize_filename_part(value: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", value).strip("_.")
    return cleaned or "file"


def _base_stem(target_database_name: str, file_kind: FileKind) -> str:
    if file_kind is FileKind.LOG:
        return f"{target_database_name}_log"
    return target_database_name


def destination_filename(
    entry: BackupFileEntry,
    target_database_name: str,
    taken: Optional[set[str]] = None,
) -> str:
    """Compute the destination file name for one manifest entry.

    ``taken`` holds lower-cased names already used in the plan. When the base
    name is taken, the entry's logical name is appended to the stem, then a
    counter if that is taken too.
    """
    extension = file_extension(entry.original_physical_path) or entry.file_kind.default_extension
    stem = _base_stem(target_database_name, entry.file_kind)
    filename = f"{stem}{extension}"
    if taken is None or filename.lower() not in taken:
        return filename
    stem = f"{stem}_{sanitize_filename_part(entry.logical_name)}"
    filename = f"{stem}{extension}"
    counter = 2
    while filename.lower() in taken:
        filename = f"{stem}_{counter}{extension}"
        counter += 1
    return filename


def build_plan(
    manifest: Manifest,
    target_database_name: str,
    *,
    storage_directory: Optional[str] = None,
) -> RelocationPlan:
    """Map each manifest entry to its new physical path, in manifest order.

    Args:
        manifest: Resolved backup manifest
        target_database_name: Name the backup is restored under
        storage_directory: Explicit destination directory; defaults to the
            manifest's default storage directory

    Raises:
        ValueError: The target name is empty or would escape the directory
    """
    validate_database_name(target_database_name)
    directory = storage_directory or manifest.default_storage_directory
    taken: set[str] = set()
    moves = []
    for entry in manifest.entries:
        filename = destination_filename(entry, target_database_name, taken)
        taken.add(filename.lower())
        moves.append(
            FileMove(
                logical_name=entry.logical_name,
                new_physical_path=join_storage_path(directory, filename),
                file_kind=entry.file_kind,
            )
        )
    return RelocationPlan(
        target_database_name=target_database_name,
        storage_directory=directory,
        moves=tuple(moves),
    )
