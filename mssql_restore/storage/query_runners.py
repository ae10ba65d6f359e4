"""Query execution against the database engine.

The restore core only depends on the ``QueryRunner`` capability: one
synchronous request in, merged output text and exit status out. ``SqlcmdRunner``
is the subprocess implementation used by the CLI.
"""

from __future__ import annotations

import os
import re
import subprocess
import tempfile
from dataclasses import dataclass
from typing import Optional, Protocol

from mssql_restore.logging import LoggerFactory, redact_command

log = LoggerFactory.for_engine()

# Severity 11+ are user/engine errors; 0-10 are informational messages.
_ENGINE_ERROR = re.compile(r"^Msg\s+\d+,\s+Level\s+(\d+),\s+State\s+\d+", re.MULTILINE)
_SQLCMD_ERROR = re.compile(r"^Sqlcmd:\s+Error:", re.MULTILINE | re.IGNORECASE)
_MIN_ERROR_SEVERITY = 11


@dataclass(frozen=True)
class QueryResult:
    output: str
    exit_code: int

    @property
    def failed(self) -> bool:
        return self.exit_code != 0 or has_engine_error(self.output)


class QueryRunner(Protocol):
    def run_query(self, query: str) -> QueryResult:
        ...


def has_engine_error(output: str) -> bool:
    """Return True if engine output carries an error-level diagnostic."""
    if not output:
        return False
    if _SQLCMD_ERROR.search(output):
        return True
    return any(
        int(match.group(1)) >= _MIN_ERROR_SEVERITY
        for match in _ENGINE_ERROR.finditer(output)
    )


def error_detail(result: QueryResult) -> str:
    """Pick the diagnostic text to surface for a failed query."""
    output = result.output.strip()
    if output:
        return output
    return f"Command failed with exit code {result.exit_code}"


class SqlcmdRunner:
    """Run queries through the ``sqlcmd`` command-line client.

    The query is written to a temporary script and passed with ``-i`` so
    multi-statement and multi-batch (``GO``) text is accepted. Output uses a
    pipe column separator with trailing spaces trimmed; the manifest parser
    also copes with whitespace-aligned output.
    """

    def __init__(
        self,
        server: str,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        trusted_connection: bool = False,
        sqlcmd_path: str = "sqlcmd",
        login_timeout_seconds: Optional[int] = None,
        column_separator: str = "|",
    ):
        self.server = server
        self.username = username
        self.password = password
        self.trusted_connection = trusted_connection
        self.sqlcmd_path = sqlcmd_path
        self.login_timeout_seconds = login_timeout_seconds
        self.column_separator = column_separator

    def build_command(self, script_path: str) -> list[str]:
        command = [self.sqlcmd_path, "-S", self.server]
        if self.trusted_connection or not self.username:
            command.append("-E")
        else:
            command.extend(["-U", self.username])
        if self.login_timeout_seconds:
            command.extend(["-l", str(self.login_timeout_seconds)])
        # -x: no $(var) substitution in paths or scripts; -f 65001: UTF-8 in and out
        command.extend(
            ["-b", "-W", "-x", "-f", "65001", "-s", self.column_separator, "-i", script_path]
        )
        return command

    def _environment(self) -> dict[str, str]:
        env = dict(os.environ)
        if self.password and self.username and not self.trusted_connection:
            env["SQLCMDPASSWORD"] = self.password
        return env

    def run_query(self, query: str) -> QueryResult:
        with tempfile.NamedTemporaryFile(
            "w", suffix=".sql", encoding="utf-8", delete=False
        ) as handle:
            handle.write(query)
            if not query.endswith("\n"):
                handle.write("\n")
            script_path = handle.name
        command = self.build_command(script_path)
        log.debug(f"Running command: {redact_command(command)}")
        log.bind(tags=["engine", "query"]).trace(f"Query text:\n{query}")
        try:
            result = subprocess.run(
                command,
                text=True,
                capture_output=True,
                env=self._environment(),
                encoding="utf-8",
                errors="replace",
            )
        finally:
            try:
                os.unlink(script_path)
            except OSError as error:
                log.warning(f"Unable to remove query script {script_path}: {error}")
        output = "".join(part for part in (result.stdout, result.stderr) if part)
        if result.returncode != 0:
            log.debug(f"Command failed with code {result.returncode}")
        return QueryResult(output=output, exit_code=result.returncode)


__all__ = [
    "QueryResult",
    "QueryRunner",
    "SqlcmdRunner",
    "error_detail",
    "has_engine_error",
]
