from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from .api import GitHubAPI, ProviderError
from .download import download_archive

LOG = logging.getLogger(__name__)

STATE_EXPORTED = "exported"
STATE_FAILED = "failed"


class MigrationFailedError(Exception):
    """Raised when GitHub reports the export job itself as failed."""


class PollTimeoutError(Exception):
    """Raised when an export is still unfinished after the allowed number of polls."""


class CleanupWarning(Warning):
    """Deleting the remote archive failed after a successful download."""


class BatchFailedError(Exception):
    """Raised when a batch cannot produce its archive."""

    def __init__(self, index: int, cause: BaseException) -> None:
        super().__init__(f"#{index} - Backup failed: {cause}")
        self.index = index
        self.cause = cause


class DriverState(str, Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    POLLING = "polling"
    EXPORTED = "exported"
    DOWNLOADING = "downloading"
    CLEANING = "cleaning"
    DONE = "done"
    FAILED = "failed"


@dataclass
class MigrationJob:
    id: int
    state: str
    download_url: Optional[str] = None


class MigrationDriver:
    """Drives one repository batch through a GitHub organization migration.

    ``run`` walks the job from creation to a local archive: start the export,
    poll until GitHub reports it exported, resolve the signed archive URL,
    download it, then delete the remote archive. Each driver owns exactly one
    migration job and is not reused.
    """

    def __init__(
        self,
        api: GitHubAPI,
        org: str,
        index: int,
        repositories: Sequence[str],
        destination: Path,
        *,
        poll_interval: float = 30.0,
        max_poll_attempts: Optional[int] = None,
        download_retries: int = 3,
        retry_delay: float = 1.0,
        start_options: Optional[Dict[str, Any]] = None,
        download_session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api = api
        self.org = org
        self.index = index
        self.repositories = tuple(repositories)
        self.destination = destination
        self._poll_interval = poll_interval
        self._max_poll_attempts = max_poll_attempts
        self._download_retries = download_retries
        self._retry_delay = retry_delay
        self._start_options = dict(start_options or {})
        self._download_session = download_session
        self._sleep = sleep
        self.state = DriverState.NOT_STARTED
        self.job: Optional[MigrationJob] = None
        self.warnings: List[CleanupWarning] = []

    # Lifecycle -------------------------------------------------------------
    def run(self) -> Path:
        LOG.info("#%s - Starting backup for %s repositories...", self.index, len(self.repositories))
        LOG.debug("#%s - Repositories: %s", self.index, list(self.repositories))
        try:
            job = self.start()
            self.await_export(job)
            url = self.resolve_download_url(job)
            archive = self.download(url)
        except Exception as exc:  # noqa: BLE001
            self._transition(DriverState.FAILED)
            raise BatchFailedError(self.index, exc) from exc

        self.cleanup(job)
        self._transition(DriverState.DONE)
        LOG.info("#%s - Backup job done!", self.index)
        return archive

    def start(self) -> MigrationJob:
        data = self._api.start_migration(
            self.org,
            list(self.repositories),
            lock_repositories=False,
            extra=self._start_options,
        )
        if "id" not in data:
            raise ProviderError("Migration start response has no id", path=f"/orgs/{self.org}/migrations")
        self.job = MigrationJob(id=data["id"], state=data.get("state", "pending"))
        self._transition(DriverState.STARTED)
        LOG.info("#%s - Started successfully, migration id is %s", self.index, self.job.id)
        return self.job

    def await_export(self, job: MigrationJob) -> MigrationJob:
        self._transition(DriverState.POLLING)
        attempts = 0
        while True:
            self._sleep(self._poll_interval)
            attempts += 1
            job.state = self._api.get_migration_status(self.org, job.id)
            LOG.debug("#%s - State is %s...", self.index, job.state)

            if job.state == STATE_EXPORTED:
                self._transition(DriverState.EXPORTED)
                return job
            if job.state == STATE_FAILED:
                raise MigrationFailedError(f"Migration {job.id} failed on GitHub")
            if self._max_poll_attempts is not None and attempts >= self._max_poll_attempts:
                raise PollTimeoutError(
                    f"Migration {job.id} still '{job.state}' after {attempts} status checks"
                )

    def resolve_download_url(self, job: MigrationJob) -> str:
        LOG.info("#%s - Backup is %s, requesting download url of archive...", self.index, job.state)
        job.download_url = self._api.get_archive_url(self.org, job.id)
        LOG.debug("#%s - Archive url: %s", self.index, job.download_url)
        return job.download_url

    def download(self, url: str) -> Path:
        self._transition(DriverState.DOWNLOADING)
        LOG.info("#%s - Downloading archive file to %s...", self.index, self.destination)
        path = download_archive(
            url,
            self.destination,
            max_retries=self._download_retries,
            retry_delay=self._retry_delay,
            session=self._download_session,
            sleep=self._sleep,
        )
        LOG.info("#%s - Download completed!", self.index)
        return path

    def cleanup(self, job: MigrationJob) -> None:
        """Delete the remote archive. GitHub expires it after seven days anyway,
        so a failure is recorded as a warning and never raised."""
        self._transition(DriverState.CLEANING)
        LOG.info("#%s - Deleting organization migration archive from GitHub", self.index)
        try:
            self._api.delete_archive(self.org, job.id)
        except ProviderError as exc:
            warning = CleanupWarning(f"#{self.index} - Could not delete migration {job.id} archive: {exc}")
            self.warnings.append(warning)
            LOG.warning("%s", warning)

    def _transition(self, state: DriverState) -> None:
        LOG.debug("#%s - %s -> %s", self.index, self.state.value, state.value)
        self.state = state
