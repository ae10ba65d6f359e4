"""Tests for domain models.

Pure value types with no engine or filesystem dependencies.
"""
from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from mssql_restore.domain import (
    ExistingDatabasePolicy,
    RestoreJob,
    RestoreResult,
    RestoreStatus,
)
from mssql_restore.storage.exceptions import RestoreFailedError
from mssql_restore.storage.restore.models import BackupFileEntry, FileKind, Manifest


# ==============================================================================
# FileKind / Manifest Tests
# ==============================================================================


class TestFileKind:
    """Test FileKind mapping."""

    @pytest.mark.parametrize(
        "code,expected",
        [
            ("D", FileKind.DATA),
            ("L", FileKind.LOG),
            ("F", FileKind.DATA),
            ("S", FileKind.DATA),
            (" l ", FileKind.LOG),
            ("X", None),
            ("", None),
        ],
    )
    def test_from_type_code(self, code, expected):
        assert FileKind.from_type_code(code) is expected

    def test_default_extension(self):
        assert FileKind.DATA.default_extension == ".mdf"
        assert FileKind.LOG.default_extension == ".ldf"


class TestManifest:
    def test_entries_by_kind(self, orders_manifest):
        assert [e.logical_name for e in orders_manifest.data_entries] == ["orders"]
        assert [e.logical_name for e in orders_manifest.log_entries] == ["orders_log"]

    def test_manifest_is_immutable(self, orders_manifest):
        with pytest.raises(FrozenInstanceError):
            orders_manifest.default_storage_directory = "/elsewhere"

    def test_entry_equality(self):
        first = BackupFileEntry("orders", "/d/orders.mdf", FileKind.DATA)
        second = BackupFileEntry("orders", "/d/orders.mdf", FileKind.DATA)

        assert first == second
        assert Manifest((first,), "/d") == Manifest((second,), "/d")


# ==============================================================================
# RestoreJob Tests
# ==============================================================================


class TestRestoreJob:
    """Test RestoreJob validation."""

    def test_defaults(self):
        job = RestoreJob(source="/b.bak", target_database="SalesDev", job_id="restore-1")

        assert job.policy is ExistingDatabasePolicy.FAIL_IF_EXISTS
        assert job.storage_directory is None
        assert job.dry_run is False
        job.validate()

    def test_empty_source_rejected(self):
        job = RestoreJob(source=" ", target_database="SalesDev", job_id="restore-1")

        with pytest.raises(ValueError, match="source"):
            job.validate()

    def test_empty_target_rejected(self):
        job = RestoreJob(source="/b.bak", target_database="", job_id="restore-1")

        with pytest.raises(ValueError, match="Target database"):
            job.validate()

    def test_valid_sha256(self):
        job = RestoreJob(
            source="/b.bak",
            target_database="SalesDev",
            job_id="restore-1",
            expected_sha256="A" * 64,
        )

        job.validate()

    @pytest.mark.parametrize("name", ["Sales/Dev", "..\\Sales", "C:Sales", ".."])
    def test_path_like_target_rejected(self, name):
        job = RestoreJob(source="/b.bak", target_database=name, job_id="restore-1")

        with pytest.raises(ValueError):
            job.validate()

    @pytest.mark.parametrize("digest", ["abc", "g" * 64, "a" * 65])
    def test_invalid_sha256_rejected(self, digest):
        job = RestoreJob(
            source="/b.bak",
            target_database="SalesDev",
            job_id="restore-1",
            expected_sha256=digest,
        )

        with pytest.raises(ValueError, match="SHA256"):
            job.validate()


# ==============================================================================
# RestoreResult Tests
# ==============================================================================


class TestRestoreResult:
    def test_success(self):
        result = RestoreResult(
            status=RestoreStatus.SUCCESS, target_database="SalesDev", files_restored=2
        )

        assert result.succeeded
        assert result.exit_code == 0

    def test_failure_from_error(self):
        error = RestoreFailedError("SalesDev", "Msg 3154, Level 16")

        result = RestoreResult.failure("SalesDev", error, command="RESTORE ...;")

        assert not result.succeeded
        assert result.status is RestoreStatus.FAILURE
        assert result.files_restored == 0
        assert result.exit_code == 13
        assert result.error_detail == "Msg 3154, Level 16"
        assert result.command == "RESTORE ...;"

    def test_failure_from_plain_exception(self):
        result = RestoreResult.failure("SalesDev", RuntimeError("unexpected"))

        assert result.exit_code == 1
        assert result.error_detail == "unexpected"
