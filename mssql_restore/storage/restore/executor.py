"""Restore command construction and execution."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

from mssql_restore.domain import ExistingDatabasePolicy, RestoreResult, RestoreStatus
from mssql_restore.logging import get_logger

from ..exceptions import PostStepFailedError, RestoreFailedError
from ..query_runners import QueryRunner, error_detail
from .manifest import quote_literal
from .models import RelocationPlan

log = get_logger(source=__name__)

_PROGRESS = re.compile(r"^\s*(\d{1,3})\s+percent\s+processed", re.IGNORECASE | re.MULTILINE)


def quote_identifier(name: str) -> str:
    """Bracket-quote a T-SQL identifier."""
    return "[" + name.replace("]", "]]") + "]"


def build_restore_command(
    plan: RelocationPlan,
    backup_path: str,
    policy: ExistingDatabasePolicy,
    *,
    stats_percent: Optional[int] = None,
) -> str:
    """Serialize a relocation plan into a single RESTORE DATABASE statement.

    MOVE clauses keep plan order. REPLACE is only emitted for
    ``ExistingDatabasePolicy.REPLACE``.

    Raises:
        ValueError: stats_percent is given but outside 1..100
    """
    if stats_percent is not None and not 1 <= stats_percent <= 100:
        raise ValueError(f"STATS percent must be between 1 and 100, got {stats_percent}")
    options = [
        f"MOVE {quote_literal(move.logical_name)} TO {quote_literal(move.new_physical_path)}"
        for move in plan.moves
    ]
    if policy is ExistingDatabasePolicy.REPLACE:
        options.append("REPLACE")
    if stats_percent is not None:
        options.append(f"STATS = {stats_percent}")
    command = (
        f"RESTORE DATABASE {quote_identifier(plan.target_database_name)} "
        f"FROM DISK = {quote_literal(backup_path)}"
    )
    if options:
        command += " WITH " + ", ".join(options)
    return command + ";"


def parse_restore_progress(output: str) -> list[int]:
    """Extract the ``N percent processed`` markers from engine output."""
    return [int(match.group(1)) for match in _PROGRESS.finditer(output or "")]


def run_post_step(script_path: Path, runner: QueryRunner) -> None:
    """Read a post-restore script once and run it as its own request.

    Raises:
        PostStepFailedError: The script could not be read or the engine
            reported an error
    """
    try:
        script = Path(script_path).read_text(encoding="utf-8")
    except OSError as error:
        raise PostStepFailedError(str(script_path), str(error)) from error
    try:
        result = runner.run_query(script)
    except OSError as error:
        raise PostStepFailedError(str(script_path), str(error)) from error
    if result.failed:
        raise PostStepFailedError(str(script_path), error_detail(result))


def execute(
    plan: RelocationPlan,
    backup_path: str,
    policy: ExistingDatabasePolicy,
    runner: QueryRunner,
    *,
    post_restore_script: Optional[Path] = None,
    stats_percent: Optional[int] = None,
) -> RestoreResult:
    """Run the restore for a plan, then the optional post-restore script.

    The engine restore is atomic, so nothing is undone here on failure. A
    post-step failure is reported in the result while the restore itself
    stays in place.

    Raises:
        RestoreFailedError: The engine rejected or failed the restore
    """
    command = build_restore_command(
        plan, backup_path, policy, stats_percent=stats_percent
    )
    target = plan.target_database_name
    try:
        result = runner.run_query(command)
    except OSError as error:
        raise RestoreFailedError(target, str(error)) from error

    progress_log = log.bind(tags=["restore", "progress"])
    for percent in parse_restore_progress(result.output):
        progress_log.debug(f"Restore progress {percent}%")

    if result.failed:
        raise RestoreFailedError(target, error_detail(result))

    log.info(f"Restored {target} with {len(plan.moves)} relocated files")

    post_step_error = None
    exit_code = 0
    if post_restore_script is not None:
        try:
            run_post_step(post_restore_script, runner)
        except PostStepFailedError as error:
            log.warning(f"{error} (restore of {target} is kept)")
            post_step_error = error.detail
            exit_code = error.exit_code
        else:
            log.info(f"Post-restore script {post_restore_script} completed")

    return RestoreResult(
        status=RestoreStatus.SUCCESS,
        target_database=target,
        files_restored=len(plan.moves),
        exit_code=exit_code,
        command=command,
        post_step_error=post_step_error,
    )
