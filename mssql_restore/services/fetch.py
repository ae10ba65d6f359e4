"""Backup fetching for restore jobs.

Local paths are used in place. ``http://`` and ``https://`` sources are
streamed to a temporary file with aiohttp and only handed back once the
byte count matches the server's ``Content-Length``; a partial download is
never returned as a success.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

import aiohttp

from mssql_restore.logging import LoggerFactory, ThrottledLogger
from mssql_restore.storage.exceptions import (
    CleanupFailedError,
    FetchFailedError,
    FetchFailureReason,
)
from mssql_restore.storage.restore.planner import is_windows_path

log = LoggerFactory.for_fetch()

REMOTE_SCHEMES = ("http", "https")
CHUNK_SIZE = 1024 * 1024  # 1MB chunks
DEFAULT_BACKUP_NAME = "backup.bak"


def human_size(size_bytes):
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f}{unit}"
        size /= 1024.0
    return f"{size:.1f}PB"


def is_remote_source(source: str) -> bool:
    """Return True if fetching the source produces a temporary local copy."""
    return urlparse(source).scheme.lower() in REMOTE_SCHEMES


def is_server_side_path(source: str) -> bool:
    """Windows paths seen from a non-Windows client live on the server host."""
    return os.name != "nt" and is_windows_path(source)


def local_path_from_source(source: str) -> Path:
    """Convert a plain path or ``file://`` URL to a local path."""
    parsed = urlparse(source)
    if parsed.scheme.lower() == "file":
        return Path(url2pathname(unquote(parsed.path))).expanduser()
    return Path(source).expanduser()


def download_filename(url: str) -> str:
    """Unique local file name for a downloaded backup."""
    name = Path(unquote(urlparse(url).path)).name or DEFAULT_BACKUP_NAME
    return f"{uuid.uuid4().hex[:8]}-{name}"


def sha256_file(path: Path, chunk_size: int = CHUNK_SIZE) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def verify_sha256(source: str, path: Path, expected: str) -> None:
    log.info(f"Verifying checksum of {path.name}")
    try:
        actual = sha256_file(path)
    except OSError as error:
        raise FetchFailedError(source, FetchFailureReason.UNREACHABLE, str(error)) from error
    if actual != expected.strip().lower():
        raise FetchFailedError(
            source,
            FetchFailureReason.CHECKSUM,
            f"expected={expected} actual={actual}",
        )
    log.debug(f"Checksum OK for {path.name}")


async def download_to_file(
    url: str,
    destination: Path,
    *,
    timeout_seconds: int | None = None,
    progress_callback: Callable[[int, int | None], None] | None = None,
) -> int:
    """Stream a remote backup to a local file.

    Returns:
        Number of bytes written

    Raises:
        FetchFailedError: Unreachable source, write failure, or a body
            shorter than its Content-Length
    """
    timeout = aiohttp.ClientTimeout(total=timeout_seconds)
    received_bytes = 0
    expected_bytes = None
    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url) as resp:
                if resp.status != 200:
                    raise FetchFailedError(
                        url, FetchFailureReason.UNREACHABLE, f"HTTP status {resp.status}"
                    )
                encoding = resp.headers.get("Content-Encoding", "").strip().lower()
                # Content-Length counts encoded bytes; aiohttp hands back decoded ones.
                if encoding in ("", "identity"):
                    expected_bytes = resp.content_length
                try:
                    handle = open(destination, "wb")
                except OSError as error:
                    raise FetchFailedError(
                        url, FetchFailureReason.WRITE_FAILED, str(error)
                    ) from error
                with handle:
                    async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
                        try:
                            handle.write(chunk)
                        except OSError as error:
                            raise FetchFailedError(
                                url, FetchFailureReason.WRITE_FAILED, str(error)
                            ) from error
                        received_bytes += len(chunk)
                        if progress_callback:
                            progress_callback(received_bytes, expected_bytes)
    except aiohttp.ClientPayloadError as error:
        raise FetchFailedError(
            url, FetchFailureReason.INCOMPLETE, f"{error} after {received_bytes} bytes"
        ) from error
    except (aiohttp.ClientError, asyncio.TimeoutError) as error:
        raise FetchFailedError(
            url, FetchFailureReason.UNREACHABLE, str(error) or type(error).__name__
        ) from error
    if expected_bytes is not None and received_bytes != expected_bytes:
        raise FetchFailedError(
            url,
            FetchFailureReason.INCOMPLETE,
            f"received {received_bytes} of {expected_bytes} bytes",
        )
    return received_bytes


def _download(
    url: str,
    download_dir: Path,
    *,
    timeout_seconds: int | None = None,
) -> Path:
    try:
        download_dir.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        raise FetchFailedError(url, FetchFailureReason.WRITE_FAILED, str(error)) from error
    final_path = download_dir / download_filename(url)
    partial_path = final_path.with_name(final_path.name + ".part")
    throttled = ThrottledLogger(log, interval_seconds=5.0)

    def report(received: int, total: int | None) -> None:
        if total:
            percent = received / total * 100
            throttled.info(url, f"Downloaded {human_size(received)} of {human_size(total)} ({percent:.0f}%)")
        else:
            throttled.info(url, f"Downloaded {human_size(received)}")

    log.info(f"Downloading {url} to {final_path}")
    try:
        received = asyncio.run(
            download_to_file(
                url, partial_path, timeout_seconds=timeout_seconds, progress_callback=report
            )
        )
        os.replace(partial_path, final_path)
    except OSError as error:
        partial_path.unlink(missing_ok=True)
        raise FetchFailedError(url, FetchFailureReason.WRITE_FAILED, str(error)) from error
    except BaseException:
        partial_path.unlink(missing_ok=True)
        raise
    log.info(f"Downloaded {url} ({human_size(received)})")
    return final_path


def fetch(
    source: str,
    *,
    download_dir: str | Path | None = None,
    expected_sha256: str | None = None,
    timeout_seconds: int | None = None,
) -> Path:
    """Make a backup source available as a local path.

    Args:
        source: Local path, ``file://`` URL, or ``http(s)://`` URL
        download_dir: Directory for remote downloads (must be readable by
            the database server); defaults to the system temp directory
        expected_sha256: Optional checksum the file must match
        timeout_seconds: Total download timeout, None for no limit

    Raises:
        FetchFailedError: Source unreachable, unwritable, truncated, or the
            checksum does not match
    """
    if is_remote_source(source):
        directory = Path(download_dir) if download_dir else Path(tempfile.gettempdir())
        path = _download(source, directory, timeout_seconds=timeout_seconds)
        if expected_sha256:
            try:
                verify_sha256(source, path, expected_sha256)
            except FetchFailedError:
                path.unlink(missing_ok=True)
                raise
        return path

    if is_server_side_path(source):
        log.debug(f"Using server-side backup path {source} as-is")
        if expected_sha256:
            log.warning("Skipping checksum verification for server-side path")
        return Path(source)

    path = local_path_from_source(source)
    if not path.is_file():
        raise FetchFailedError(source, FetchFailureReason.UNREACHABLE, "file not found")
    if not os.access(path, os.R_OK):
        raise FetchFailedError(source, FetchFailureReason.UNREACHABLE, "permission denied")
    path = path.resolve()
    if expected_sha256:
        verify_sha256(source, path, expected_sha256)
    return path


def cleanup_temporary(path: Path) -> None:
    """Remove a temporary download; failures are logged, never raised."""
    try:
        path.unlink(missing_ok=True)
    except OSError as error:
        log.warning(str(CleanupFailedError(str(path), str(error))))
        return
    log.debug(f"Removed temporary backup {path}")


@contextmanager
def fetched_backup(source: str, **fetch_options) -> Iterator[Path]:
    """Fetch a backup and remove any temporary copy when the block exits.

    Cleanup runs even if the block raises.
    """
    path = fetch(source, **fetch_options)
    temporary = is_remote_source(source)
    try:
        yield path
    finally:
        if temporary:
            cleanup_temporary(path)
