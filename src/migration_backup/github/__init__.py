from .api import GitHubAPI, ProviderError
from .download import (
    DownloadError,
    DownloadExhaustedError,
    DownloadHTTPError,
    TransientTransferError,
    download_archive,
)
from .listing import RepositoryBatch, list_repository_batches, resolve_batches, single_repository_batches
from .migration import (
    BatchFailedError,
    CleanupWarning,
    DriverState,
    MigrationDriver,
    MigrationFailedError,
    MigrationJob,
    PollTimeoutError,
)

__all__ = [
    "GitHubAPI",
    "ProviderError",
    "DownloadError",
    "DownloadExhaustedError",
    "DownloadHTTPError",
    "TransientTransferError",
    "download_archive",
    "RepositoryBatch",
    "list_repository_batches",
    "resolve_batches",
    "single_repository_batches",
    "BatchFailedError",
    "CleanupWarning",
    "DriverState",
    "MigrationDriver",
    "MigrationFailedError",
    "MigrationJob",
    "PollTimeoutError",
]
