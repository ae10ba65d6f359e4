"""Restore pipeline: fetch, resolve, plan, execute, post-step, cleanup.

Stages run strictly in sequence for one job. Nothing here serializes two
jobs aimed at the same target database; callers run one job per target at
a time.
"""

from __future__ import annotations

from pathlib import Path

from mssql_restore.domain import RestoreJob, RestoreResult, RestoreStatus
from mssql_restore.logging import EventLogger, LoggerFactory, operation_context
from mssql_restore.storage.exceptions import RestoreError
from mssql_restore.storage.query_runners import QueryRunner
from mssql_restore.storage.restore import (
    build_plan,
    build_restore_command,
    execute,
    resolve_manifest,
)

from .fetch import fetched_backup


def run_restore(
    job: RestoreJob,
    runner: QueryRunner,
    *,
    download_dir: str | Path | None = None,
    download_timeout_seconds: int | None = None,
    fallback_directory: str | None = None,
    stats_percent: int | None = None,
) -> RestoreResult:
    """Run one restore job end to end and return its result.

    Pipeline failures are turned into a failed ``RestoreResult`` carrying the
    failure's exit code. A temporary download is removed whatever the outcome.

    Raises:
        ValueError: The job inputs are invalid
    """
    job.validate()
    log = LoggerFactory.for_restore(job.job_id)
    command = None
    try:
        with operation_context(
            "restore",
            job_id=job.job_id,
            backup=job.source,
            target=job.target_database,
        ):
            with fetched_backup(
                job.source,
                download_dir=download_dir,
                expected_sha256=job.expected_sha256,
                timeout_seconds=download_timeout_seconds,
            ) as backup_path:
                backup = str(backup_path)
                manifest = resolve_manifest(
                    backup,
                    runner,
                    fallback_directory=fallback_directory,
                    job_id=job.job_id,
                )
                EventLogger.log_manifest_resolved(log, manifest)

                plan = build_plan(
                    manifest,
                    job.target_database,
                    storage_directory=job.storage_directory,
                )
                command = build_restore_command(
                    plan, backup, job.policy, stats_percent=stats_percent
                )
                EventLogger.log_restore_planned(log, plan, command)

                if job.dry_run:
                    log.info("Dry run: restore instruction not executed")
                    result = RestoreResult(
                        status=RestoreStatus.SUCCESS,
                        target_database=job.target_database,
                        command=command,
                        dry_run=True,
                    )
                else:
                    result = execute(
                        plan,
                        backup,
                        job.policy,
                        runner,
                        post_restore_script=job.post_restore_script,
                        stats_percent=stats_percent,
                    )
    except RestoreError as error:
        result = RestoreResult.failure(job.target_database, error, command=command)

    EventLogger.log_restore_finished(log, result)
    return result
