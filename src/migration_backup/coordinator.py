from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from .github.listing import RepositoryBatch
from .github.migration import BatchFailedError, MigrationDriver
from .storage import BackupDirectory

LOG = logging.getLogger(__name__)

DriverFactory = Callable[[int, RepositoryBatch, Path], MigrationDriver]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BatchOutcome:
    index: int
    repositories: Tuple[str, ...]
    started_at: datetime
    completed_at: Optional[datetime] = None
    archive_path: Optional[Path] = None
    error: str = ""
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.archive_path is not None and not self.error


@dataclass
class BackupRun:
    org: str
    directory: Path
    started_at: datetime
    completed_at: Optional[datetime] = None
    outcomes: List[BatchOutcome] = field(default_factory=list)

    @property
    def backup_files(self) -> List[str]:
        return [str(outcome.archive_path) for outcome in self.outcomes if outcome.success]

    @property
    def failures(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.success)

    @property
    def errors(self) -> List[str]:
        return [outcome.error for outcome in self.outcomes if outcome.error]

    @property
    def success(self) -> bool:
        return self.failures == 0


class BatchCoordinator:
    """Runs one migration driver per batch at the same time and waits for all of them.

    A failing batch never stops its siblings. Every worker writes only its own
    slot of the outcome list, so no state is shared between threads.
    """

    def __init__(self, directory: BackupDirectory, driver_factory: DriverFactory) -> None:
        self._directory = directory
        self._driver_factory = driver_factory

    def run(self, batches: Sequence[RepositoryBatch]) -> BackupRun:
        run = BackupRun(org=self._directory.org, directory=self._directory.path, started_at=_utcnow())
        if not batches:
            LOG.warning("No repositories to back up for %s", self._directory.org)
            run.completed_at = _utcnow()
            return run

        outcomes: List[Optional[BatchOutcome]] = [None] * len(batches)
        with ThreadPoolExecutor(max_workers=len(batches), thread_name_prefix="migration") as executor:
            futures = [executor.submit(self._run_batch, index, batch) for index, batch in enumerate(batches)]
            for index, future in enumerate(futures):
                outcomes[index] = future.result()

        run.outcomes = [outcome for outcome in outcomes if outcome is not None]
        run.completed_at = _utcnow()
        return run

    def _run_batch(self, index: int, batch: RepositoryBatch) -> BatchOutcome:
        started_at = _utcnow()
        outcome = BatchOutcome(index=index, repositories=tuple(batch), started_at=started_at)
        destination = self._directory.archive_path(index, started_at)

        try:
            driver = self._driver_factory(index, batch, destination)
            outcome.archive_path = driver.run()
            outcome.warnings = [str(warning) for warning in driver.warnings]
        except BatchFailedError as exc:
            outcome.error = str(exc)
        except Exception as exc:  # noqa: BLE001
            outcome.error = f"#{index} - Backup failed: {exc}"
            LOG.debug("Unexpected error in batch #%s", index, exc_info=True)

        if outcome.error:
            LOG.error("%s", outcome.error)
        outcome.completed_at = _utcnow()
        return outcome
