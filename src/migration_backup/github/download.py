from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional

import requests
from urllib3.exceptions import ProtocolError

LOG = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
DOWNLOAD_TIMEOUT = (30, 300)

# Only a connection that was reset or aborted is worth another attempt.
# Everything else, including other OSErrors such as a full disk, TLS failures
# and connect timeouts, fails the download straight away.
DROPPED_CONNECTION_ERRORS = (ConnectionResetError, ConnectionAbortedError, ProtocolError)
NEVER_TRANSIENT_ERRORS = (
    requests.exceptions.SSLError,
    requests.exceptions.ConnectTimeout,
    requests.exceptions.ProxyError,
)


class DownloadError(Exception):
    """Base class for archive download failures."""


class DownloadHTTPError(DownloadError):
    """Raised when the archive URL answers with a non-success status."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"Archive download failed with HTTP {status_code}")
        self.status_code = status_code
        self.url = url


class TransientTransferError(DownloadError):
    """Raised when the connection drops while an archive is streaming."""


class DownloadExhaustedError(DownloadError):
    """Raised when every download attempt ended in a transient failure."""

    def __init__(self, attempts: int, last_error: Optional[BaseException] = None) -> None:
        message = f"Archive download failed after {attempts} attempts"
        if last_error is not None:
            message = f"{message}: {last_error}"
        super().__init__(message)
        self.attempts = attempts


def _stream_once(session: requests.Session, url: str, destination: Path) -> None:
    try:
        with session.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as response:
            if not 200 <= response.status_code < 300:
                raise DownloadHTTPError(response.status_code, url)
            with destination.open("wb") as fh:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
    except requests.exceptions.ChunkedEncodingError as exc:
        raise TransientTransferError(str(exc)) from exc
    except DROPPED_CONNECTION_ERRORS as exc:
        raise TransientTransferError(str(exc)) from exc
    except requests.exceptions.ConnectionError as exc:
        if not _is_dropped_connection(exc):
            raise
        raise TransientTransferError(str(exc)) from exc


def _is_dropped_connection(exc: BaseException) -> bool:
    """True when a reset or abort sits somewhere in the wrapped error chain.

    requests wraps the urllib3 error as the first argument of its own
    ConnectionError; urllib3 keeps the socket error in ``args`` or ``reason``.
    """
    if isinstance(exc, NEVER_TRANSIENT_ERRORS):
        return False

    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop()
        if id(current) in seen:
            continue
        seen.add(id(current))
        if current is not exc and isinstance(current, DROPPED_CONNECTION_ERRORS):
            return True
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))
        linked = (current.__cause__, current.__context__, getattr(current, "reason", None))
        pending.extend(link for link in linked if isinstance(link, BaseException))
    return False


def download_archive(
    url: str,
    destination: Path,
    max_retries: int = 3,
    retry_delay: float = 1.0,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Path:
    """Stream ``url`` into ``destination`` and return the destination path.

    A dropped connection is retried up to ``max_retries`` more times, waiting
    ``retry_delay * n`` seconds before retry ``n``. Any other failure is raised
    immediately. A partially written file is left in place on failure.
    """
    if max_retries < 0:
        raise ValueError("max_retries must not be negative")

    if session is not None:
        return _download_with_retries(session, url, destination, max_retries, retry_delay, sleep)
    with requests.Session() as http:
        return _download_with_retries(http, url, destination, max_retries, retry_delay, sleep)


def _download_with_retries(
    http: requests.Session,
    url: str,
    destination: Path,
    max_retries: int,
    retry_delay: float,
    sleep: Callable[[float], None],
) -> Path:
    attempts = 0
    while True:
        attempts += 1
        try:
            _stream_once(http, url, destination)
            if attempts > 1:
                LOG.info("Download of %s succeeded on attempt %s", destination.name, attempts)
            return destination
        except TransientTransferError as exc:
            if attempts > max_retries:
                raise DownloadExhaustedError(attempts, exc) from exc
            delay = retry_delay * attempts
            LOG.warning(
                "Connection lost while downloading %s (attempt %s/%s): %s; retrying in %.1fs",
                destination.name,
                attempts,
                max_retries + 1,
                exc,
                delay,
            )
            sleep(delay)
