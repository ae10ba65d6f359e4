"""
Pytest configuration and shared fixtures for mssql-restore tests.

This module provides common fixtures and utilities used across all test modules.
"""

from pathlib import Path
from typing import List

import pytest
from loguru import logger

from mssql_restore.config import settings
from mssql_restore.storage.query_runners import QueryResult
from mssql_restore.storage.restore.models import BackupFileEntry, FileKind, Manifest


# ==============================================================================
# Query Runner Fixtures
# ==============================================================================


class FakeQueryRunner:
    """In-memory query runner returning queued results in order."""

    def __init__(self, results=None):
        self.results: List = list(results or [])
        self.queries: List[str] = []

    def queue(self, output: str = "", exit_code: int = 0) -> "FakeQueryRunner":
        self.results.append(QueryResult(output=output, exit_code=exit_code))
        return self

    def run_query(self, query: str) -> QueryResult:
        self.queries.append(query)
        if not self.results:
            return QueryResult(output="", exit_code=0)
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fake_runner() -> FakeQueryRunner:
    """Fixture providing an empty fake query runner."""
    return FakeQueryRunner()


# ==============================================================================
# Engine Output Fixtures
# ==============================================================================


@pytest.fixture
def filelist_pipe_output() -> str:
    """
    Fixture providing FILELISTONLY output as printed by ``sqlcmd -W -s "|"``.

    Returns:
        Two file rows, the default data path row, and the header rows.
    """
    return (
        "LogicalName|PhysicalName|Type|FileGroupName|Size|MaxSize\n"
        "-----------|------------|----|-------------|----|-------\n"
        "orders|C:\\Program Files\\Microsoft SQL Server\\MSSQL\\DATA\\orders.mdf|D|PRIMARY|8388608|35184372080640\n"
        "orders_log|C:\\Program Files\\Microsoft SQL Server\\MSSQL\\DATA\\orders_log.ldf|L|NULL|8388608|2199023255552\n"
        "Setting|Value\n"
        "-------|-----\n"
        "DefaultDataPath|C:\\Data\\\n"
    )


@pytest.fixture
def filelist_whitespace_output() -> str:
    """Fixture providing whitespace-aligned FILELISTONLY output."""
    return (
        "LogicalName   PhysicalName                                 Type FileGroupName\n"
        "------------- -------------------------------------------- ---- -------------\n"
        "orders        /var/opt/mssql/data/orders.mdf               D    PRIMARY\n"
        "orders_log    /var/opt/mssql/data/orders_log.ldf           L    NULL\n"
        "\n"
        "(2 rows affected)\n"
        "Setting         Value\n"
        "--------------- --------------------\n"
        "DefaultDataPath /var/opt/mssql/data/\n"
    )


@pytest.fixture
def engine_error_output() -> str:
    """Fixture providing a severity 16 engine error."""
    return (
        "Msg 3201, Level 16, State 2, Server db01, Line 2\n"
        "Cannot open backup device 'C:\\missing.bak'. Operating system error 2"
        "(The system cannot find the file specified.).\n"
    )


# ==============================================================================
# Manifest Fixtures
# ==============================================================================


@pytest.fixture
def orders_manifest() -> Manifest:
    """Fixture providing a one-data, one-log manifest."""
    return Manifest(
        entries=(
            BackupFileEntry("orders", "D:\\old\\orders.mdf", FileKind.DATA),
            BackupFileEntry("orders_log", "D:\\old\\orders_log.ldf", FileKind.LOG),
        ),
        default_storage_directory="C:\\Data",
    )


# ==============================================================================
# File System Fixtures
# ==============================================================================


@pytest.fixture
def temp_settings_file(tmp_path) -> Path:
    """
    Fixture providing a temporary settings file path.

    Args:
        tmp_path: pytest's built-in temporary directory fixture.

    Returns:
        Path to a temporary settings file.
    """
    settings_dir = tmp_path / ".config" / "mssql-restore"
    settings_dir.mkdir(parents=True, exist_ok=True)
    return settings_dir / "settings.json"


@pytest.fixture
def backup_file(tmp_path) -> Path:
    """Fixture providing a small local backup file."""
    path = tmp_path / "orders.bak"
    path.write_bytes(b"TAPE" + b"\x00" * 60)
    return path


# ==============================================================================
# Utility Fixtures
# ==============================================================================


@pytest.fixture(autouse=True)
def reset_global_state(monkeypatch, tmp_path):
    """
    Auto-use fixture that isolates settings and log sinks for each test.
    """
    monkeypatch.setattr(settings, "SETTINGS_PATH", tmp_path / "no-settings.json")
    settings.settings_store.values = dict(settings.DEFAULT_SETTINGS)
    yield
    settings.settings_store.values = dict(settings.DEFAULT_SETTINGS)
    logger.remove()


@pytest.fixture
def log_records():
    """Capture loguru records emitted during a test."""
    logger.remove()
    records: list = []

    def sink(message):
        records.append(message.record)

    logger.add(sink, level="TRACE", enqueue=False)
    return records


@pytest.fixture
def mock_subprocess_run(mocker):
    """
    Fixture providing a mock for subprocess.run.

    Returns:
        Mock object for subprocess.run
    """
    return mocker.patch("subprocess.run")
