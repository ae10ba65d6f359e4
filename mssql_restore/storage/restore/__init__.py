"""SQL Server backup restore with file relocation.

Main Functions:
    - resolve_manifest(): Introspect a backup's logical file inventory
    - build_plan(): Map each logical file to a new physical path
    - build_restore_command(): Serialize a plan into RESTORE DATABASE text
    - execute(): Run the restore and the optional post-restore script

Data Models:
    - BackupFileEntry: One row of the backup's file list
    - Manifest: Parsed file list plus the server's default data directory
    - RelocationPlan: Ordered logical-name to new-path moves
"""
from .executor import build_restore_command, execute, parse_restore_progress, run_post_step
from .manifest import (
    build_introspection_query,
    parse_default_directory,
    parse_file_list,
    resolve_manifest,
)
from .models import BackupFileEntry, FileKind, FileMove, Manifest, RelocationPlan
from .planner import build_plan, destination_filename, file_extension, join_storage_path

__all__ = [
    # Main functions
    "resolve_manifest",
    "build_plan",
    "build_restore_command",
    "execute",
    # Helper functions
    "build_introspection_query",
    "parse_file_list",
    "parse_default_directory",
    "parse_restore_progress",
    "run_post_step",
    "destination_filename",
    "file_extension",
    "join_storage_path",
    # Data models
    "BackupFileEntry",
    "FileKind",
    "FileMove",
    "Manifest",
    "RelocationPlan",
]
