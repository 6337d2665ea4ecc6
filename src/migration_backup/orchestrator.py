from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

import requests

from .config import BackupConfig
from .coordinator import BackupRun, BatchCoordinator
from .github.api import GitHubAPI
from .github.listing import RepositoryBatch, resolve_batches
from .github.migration import MigrationDriver
from .manifest import MANIFEST_FILENAME, Manifest
from .storage import create_backup_directory

LOG = logging.getLogger(__name__)


class BackupOrchestrator:
    """High-level entry point: resolve batches, prepare the directory, run every batch.

    Errors raised before the batches start (listing, directory creation) abort the
    whole run. Once batches are running, failures are only counted.
    """

    def __init__(
        self,
        config: BackupConfig,
        api: Optional[GitHubAPI] = None,
        download_session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._api = api or GitHubAPI(config.auth.resolved_token(), base_url=config.api_url)
        self._download_session = download_session
        self._sleep = sleep

    def run(self) -> BackupRun:
        config = self._config
        batches = resolve_batches(
            self._api,
            config.organization,
            config.repositories_per_job,
            repository=config.repository,
        )

        directory = create_backup_directory(
            config.output_path,
            config.organization,
            datetime.now(timezone.utc),
        )
        LOG.debug('Created directory "%s" for this backup run', directory.path)

        coordinator = BatchCoordinator(directory=directory, driver_factory=self._build_driver)
        run = coordinator.run(batches)
        self._write_manifest(run)
        return run

    def _build_driver(self, index: int, batch: RepositoryBatch, destination: Path) -> MigrationDriver:
        config = self._config
        return MigrationDriver(
            self._api,
            config.organization,
            index,
            batch,
            destination,
            poll_interval=config.poll_interval,
            max_poll_attempts=config.max_poll_attempts,
            download_retries=config.download_retries,
            retry_delay=config.retry_delay,
            start_options=config.exclude.as_request_flags(),
            download_session=self._download_session,
            sleep=self._sleep,
        )

    def _write_manifest(self, run: BackupRun) -> None:
        manifest_path = run.directory / MANIFEST_FILENAME
        try:
            Manifest.from_run(run).write(manifest_path)
        except OSError as exc:
            LOG.error("Could not write backup manifest %s: %s", manifest_path, exc)
            return
        LOG.info("Backup manifest written to %s", manifest_path)
