"""Backup manifest introspection.

Asks the engine which logical files a backup contains and where the server
keeps data files by default, then parses the text output into a ``Manifest``.

Output grammar (one line per row, in engine order):
    - the first three columns are logical name, physical name, type code;
      any further columns are ignored
    - columns are ``|``-separated when the line contains a pipe, otherwise
      whitespace-separated; there a logical name may contain spaces when the
      physical name starts with a drive letter, ``\\\\`` or ``/``, and
      otherwise ends at the first space
    - blank lines, ``LogicalName`` header rows, separator rows made of
      ``-``/``|``/``+``/``=`` and ``(N rows affected)`` footers are skipped
    - a ``DefaultDataPath`` row carries the server's default data directory
"""

from __future__ import annotations

import re
from typing import Optional

from mssql_restore.config import settings
from mssql_restore.logging import LoggerFactory

from ..exceptions import ManifestEmptyError, ManifestUnavailableError
from ..query_runners import QueryRunner, error_detail
from .models import BackupFileEntry, FileKind, Manifest

DEFAULT_DIRECTORY_LABEL = "DefaultDataPath"

_SEPARATOR_ROW = re.compile(r"^[\s\-|+=]+$")
_ROWS_AFFECTED = re.compile(r"^\(\d+\s+rows?\s+affected\)$", re.IGNORECASE)
# Physical names start with a drive letter, a UNC prefix or a slash.
_WHITESPACE_ROW_WITH_PATH = re.compile(
    r"^(.+?)\s+((?:[A-Za-z]:[\\/]|\\\\|/).*?)\s+([DLFS])(?:\s|$)"
)
_WHITESPACE_ROW = re.compile(r"^(\S+)\s+(.+?)\s+([DLFS])(?:\s|$)")


def quote_literal(value: str) -> str:
    """Quote a value as a Unicode T-SQL string literal."""
    return "N'" + value.replace("'", "''") + "'"


def build_introspection_query(backup_path: str) -> str:
    """Batch the file-list and default-directory lookups into one request."""
    return (
        "SET NOCOUNT ON;\n"
        f"RESTORE FILELISTONLY FROM DISK = {quote_literal(backup_path)};\n"
        f"SELECT '{DEFAULT_DIRECTORY_LABEL}' AS Setting, "
        "CAST(SERVERPROPERTY('InstanceDefaultDataPath') AS nvarchar(4000)) AS Value;\n"
    )


def _is_skippable(line: str) -> bool:
    if not line:
        return True
    if _SEPARATOR_ROW.match(line):
        return True
    if _ROWS_AFFECTED.match(line):
        return True
    return False


def _is_header(columns: list[str]) -> bool:
    return bool(columns) and columns[0].lower() == "logicalname"


def split_row(line: str) -> Optional[list[str]]:
    """Split one output row into its leading columns.

    Returns None when the line is not a candidate data row.
    """
    stripped = line.strip()
    if _is_skippable(stripped):
        return None
    if "|" in stripped:
        return [column.strip() for column in stripped.strip("|").split("|")]
    if stripped.split(None, 1)[0].lower() == "logicalname":
        return ["LogicalName"]
    match = _WHITESPACE_ROW_WITH_PATH.match(stripped) or _WHITESPACE_ROW.match(stripped)
    if match:
        return [match.group(1), match.group(2).strip(), match.group(3)]
    return stripped.split(None, 1)


def parse_file_list(output: str) -> list[BackupFileEntry]:
    """Parse FILELISTONLY text output into file entries, header rows excluded."""
    entries: list[BackupFileEntry] = []
    for line in output.splitlines():
        columns = split_row(line)
        if not columns or _is_header(columns) or len(columns) < 3:
            continue
        logical_name, physical_name, type_code = columns[0], columns[1], columns[2]
        if not logical_name or logical_name == DEFAULT_DIRECTORY_LABEL:
            continue
        file_kind = FileKind.from_type_code(type_code)
        if file_kind is None:
            continue
        entries.append(
            BackupFileEntry(
                logical_name=logical_name,
                original_physical_path=physical_name,
                file_kind=file_kind,
            )
        )
    return entries


def parse_default_directory(output: str) -> Optional[str]:
    """Return the server's default data directory, or None if not reported."""
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped.startswith(DEFAULT_DIRECTORY_LABEL):
            continue
        if "|" in stripped:
            columns = [column.strip() for column in stripped.split("|")]
            value = columns[1] if len(columns) > 1 else ""
        else:
            parts = stripped.split(None, 1)
            value = parts[1].strip() if len(parts) > 1 else ""
        if value and value.upper() != "NULL":
            return value
    return None


def validate_manifest(backup_path: str, manifest: Manifest) -> None:
    if not manifest.entries:
        raise ManifestEmptyError(backup_path)
    seen: set[str] = set()
    for entry in manifest.entries:
        if entry.logical_name in seen:
            raise ManifestEmptyError(
                backup_path, f"duplicate logical name {entry.logical_name!r}"
            )
        seen.add(entry.logical_name)
    if not manifest.data_entries:
        raise ManifestEmptyError(backup_path, "no data file in backup")


def resolve_manifest(
    backup_path: str,
    runner: QueryRunner,
    *,
    fallback_directory: Optional[str] = None,
    job_id: Optional[str] = None,
) -> Manifest:
    """Introspect a backup file and return its file inventory.

    Args:
        backup_path: Path of the backup as seen by the database server
        runner: Query capability used to reach the engine
        fallback_directory: Used when the server reports no default data
            directory (defaults to the ``default_storage_directory`` setting)
        job_id: Restore job identifier for log correlation

    Raises:
        ManifestUnavailableError: The introspection query could not execute
        ManifestEmptyError: No usable file entries were parsed
    """
    log = LoggerFactory.for_manifest(job_id)
    query = build_introspection_query(backup_path)
    try:
        result = runner.run_query(query)
    except OSError as error:
        raise ManifestUnavailableError(backup_path, str(error)) from error
    if result.failed:
        raise ManifestUnavailableError(backup_path, error_detail(result))

    entries = parse_file_list(result.output)
    reported_directory = parse_default_directory(result.output)
    default_directory = (
        reported_directory or fallback_directory or settings.get_storage_fallback()
    )
    manifest = Manifest(entries=tuple(entries), default_storage_directory=default_directory)
    validate_manifest(backup_path, manifest)
    if not reported_directory:
        log.warning(
            f"Server reported no default data directory; using {default_directory}"
        )
    log.debug(
        f"Parsed {len(manifest.data_entries)} data and "
        f"{len(manifest.log_entries)} log file entries from {backup_path}"
    )
    return manifest
