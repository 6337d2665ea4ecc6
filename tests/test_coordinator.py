"""Tests for running batches concurrently."""

import threading
from pathlib import Path

import pytest

from conftest import FakeDownloadSession, FakeGitHubAPI
from migration_backup.coordinator import BatchCoordinator
from migration_backup.github.api import ProviderError
from migration_backup.github.migration import MigrationDriver
from migration_backup.storage import create_backup_directory


@pytest.fixture
def directory(tmp_path):
    return create_backup_directory(tmp_path, "acme")


def driver_factory(api, sleeper, session=None):
    session = session or FakeDownloadSession()

    def factory(index, batch, destination: Path) -> MigrationDriver:
        return MigrationDriver(
            api,
            "acme",
            index,
            batch,
            destination,
            poll_interval=0,
            download_session=session,
            sleep=sleeper,
        )

    return factory


class TestBatchCoordinator:
    """Tests for BatchCoordinator."""

    def test_all_batches_succeed(self, directory, sleeper):
        api = FakeGitHubAPI()
        coordinator = BatchCoordinator(directory, driver_factory(api, sleeper))

        run = coordinator.run([("a", "b"), ("c", "d"), ("e",)])

        assert run.success
        assert run.failures == 0
        assert len(run.backup_files) == 3
        assert all(Path(path).parent == directory.path for path in run.backup_files)
        assert [outcome.index for outcome in run.outcomes] == [0, 1, 2]
        assert sorted(api.deleted) == [100, 101, 102]

    def test_middle_batch_fails_while_polling(self, directory, sleeper):
        """Batch 2 of 3 failing leaves the other archives in place."""
        api = FakeGitHubAPI(states={"c": ["exporting", ProviderError("gone", status_code=404)]})
        coordinator = BatchCoordinator(directory, driver_factory(api, sleeper))

        run = coordinator.run([("a", "b"), ("c", "d"), ("e",)])

        assert not run.success
        assert run.failures == 1
        assert [outcome.success for outcome in run.outcomes] == [True, False, True]
        assert run.backup_files == [
            str(run.outcomes[0].archive_path),
            str(run.outcomes[2].archive_path),
        ]
        assert "#1" in run.errors[0]
        assert all(Path(path).exists() for path in run.backup_files)

    def test_every_batch_fails(self, directory, sleeper):
        api = FakeGitHubAPI(failing_starts=["a", "c"])
        run = BatchCoordinator(directory, driver_factory(api, sleeper)).run([("a",), ("c",)])

        assert run.failures == 2
        assert run.backup_files == []

    def test_factory_error_is_recorded(self, directory):
        """Unexpected errors become failed outcomes instead of escaping."""

        def broken_factory(index, batch, destination):
            raise RuntimeError("cannot build driver")

        run = BatchCoordinator(directory, broken_factory).run([("a",)])

        assert run.failures == 1
        assert "cannot build driver" in run.errors[0]

    def test_cleanup_warnings_do_not_fail_run(self, directory, sleeper):
        api = FakeGitHubAPI(failing_deletes=True)
        run = BatchCoordinator(directory, driver_factory(api, sleeper)).run([("a",)])

        assert run.success
        assert len(run.outcomes[0].warnings) == 1

    def test_no_batches(self, directory):
        run = BatchCoordinator(directory, lambda *args: None).run([])

        assert run.success
        assert run.outcomes == []
        assert run.completed_at is not None

    def test_batches_run_concurrently(self, directory):
        """Every batch is in flight at the same time."""
        api = FakeGitHubAPI()
        barrier = threading.Barrier(3, timeout=5)

        def waiting_sleep(seconds):
            barrier.wait()

        factory = driver_factory(api, waiting_sleep)
        run = BatchCoordinator(directory, factory).run([("a",), ("b",), ("c",)])

        assert run.success
