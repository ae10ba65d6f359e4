import argparse
import os
import sys
from pathlib import Path

from loguru import logger

from mssql_restore.config import settings
from mssql_restore.domain import ExistingDatabasePolicy, RestoreJob
from mssql_restore.logging import new_job_id, setup_logging
from mssql_restore.services.restore_job import run_restore
from mssql_restore.storage.query_runners import SqlcmdRunner

USAGE_ERROR_EXIT_CODE = 2


def build_parser():
    parser = argparse.ArgumentParser(
        prog="mssql-restore",
        description="Restore a SQL Server backup under a new database name",
    )
    parser.add_argument("source", help="Backup path, file:// URL, or http(s):// URL")
    parser.add_argument("target_database", help="Name of the database to create")
    parser.add_argument("--storage-dir", help="Directory for the relocated data and log files")
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Overwrite the target database if it already exists",
    )
    parser.add_argument("--post-script", type=Path, help="SQL script to run after the restore")
    parser.add_argument("--sha256", help="Expected SHA-256 checksum of the backup file")
    parser.add_argument("--server", help="SQL Server instance")
    parser.add_argument("--user", help="SQL login (password from SQLCMDPASSWORD)")
    parser.add_argument("--trusted", action="store_true", help="Use a trusted connection")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the restore instruction without running it",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Also log query text")
    parser.add_argument("--log-dir", type=Path, help="Directory for log files")
    return parser


def build_runner(args, environ=None):
    """Build the sqlcmd runner from settings, environment, then CLI flags."""
    environ = os.environ if environ is None else environ
    server = (
        args.server
        or environ.get("MSSQL_RESTORE_SERVER")
        or settings.get_setting("server")
    )
    username = args.user or environ.get("MSSQL_RESTORE_USER") or settings.get_setting("username")
    trusted = args.trusted or settings.get_bool("trusted_connection")
    return SqlcmdRunner(
        server,
        username=username,
        password=environ.get("SQLCMDPASSWORD"),
        trusted_connection=trusted,
        sqlcmd_path=settings.get_setting("sqlcmd_path") or settings.DEFAULT_SQLCMD_PATH,
        login_timeout_seconds=settings.get_optional_int("login_timeout_seconds"),
    )


def build_job(args):
    return RestoreJob(
        source=args.source,
        target_database=args.target_database,
        job_id=new_job_id(),
        policy=(
            ExistingDatabasePolicy.REPLACE
            if args.replace
            else ExistingDatabasePolicy.FAIL_IF_EXISTS
        ),
        storage_directory=args.storage_dir,
        post_restore_script=args.post_script,
        expected_sha256=args.sha256,
        dry_run=args.dry_run,
    )


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(
        debug=args.debug,
        trace=args.trace,
        log_dir=args.log_dir,
        file_sinks=not args.dry_run,
    )

    try:
        job = build_job(args)
        job.validate()
    except ValueError as error:
        logger.error(f"Invalid restore request: {error}")
        return USAGE_ERROR_EXIT_CODE

    result = run_restore(
        job,
        build_runner(args),
        download_dir=settings.get_setting("download_dir"),
        download_timeout_seconds=settings.get_optional_int("download_timeout_seconds"),
        fallback_directory=settings.get_storage_fallback(),
        stats_percent=settings.get_stats_percent(),
    )

    if result.dry_run and result.command:
        print(result.command)
    elif result.succeeded:
        print(f"Restored {result.target_database} ({result.files_restored} files)")
        if result.post_step_error:
            print(f"Post-restore script failed: {result.post_step_error}", file=sys.stderr)
    else:
        print(f"Restore of {result.target_database} failed: {result.error_detail}", file=sys.stderr)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
