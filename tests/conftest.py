"""Shared fakes for the GitHub API and archive downloads."""

import json
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, Iterable, List, Optional

import pytest
import requests

from migration_backup.github.api import ProviderError


def make_response(
    status: int,
    body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    url: str = "",
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response._content = json.dumps(body).encode("utf-8") if body is not None else b""
    response.headers.update(headers or {})
    response.url = url
    return response


class FakeSession:
    """Stands in for ``requests.Session`` on the authenticated API side."""

    def __init__(self, handler: Callable[..., requests.Response]) -> None:
        self.headers: Dict[str, str] = {}
        self.calls: List[Dict[str, Any]] = []
        self._handler = handler

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        self.calls.append({"method": method, "url": url, **kwargs})
        return self._handler(method, url, **kwargs)


class FakeDownloadResponse:
    def __init__(self, status_code: int = 200, chunks: Iterable[Any] = (b"archive",)) -> None:
        self.status_code = status_code
        self._chunks = list(chunks)

    def __enter__(self) -> "FakeDownloadResponse":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def iter_content(self, chunk_size: int = 1):
        for chunk in self._chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk


class FakeDownloadSession:
    """Replays one scripted response per ``get`` call; the last one repeats."""

    def __init__(self, responses: Optional[List[FakeDownloadResponse]] = None) -> None:
        self.responses = responses or [FakeDownloadResponse()]
        self.urls: List[str] = []
        self._lock = threading.Lock()

    def get(self, url: str, **kwargs: Any) -> FakeDownloadResponse:
        with self._lock:
            self.urls.append(url)
            index = min(len(self.urls) - 1, len(self.responses) - 1)
            response = self.responses[index]
        if isinstance(response, BaseException):
            raise response
        return response


class FakeGitHubAPI:
    """In-memory migrations API.

    ``states`` lists the status sequence reported for each batch; batches are
    identified by their first repository so concurrent drivers stay independent.
    """

    def __init__(
        self,
        repositories: Optional[List[str]] = None,
        states: Optional[Dict[str, List[str]]] = None,
        failing_deletes: bool = False,
        failing_starts: Iterable[str] = (),
    ) -> None:
        self.repositories = sorted(repositories or [])
        self.states = states or {}
        self.failing_deletes = failing_deletes
        self.failing_starts = set(failing_starts)
        self.started: Dict[int, List[str]] = {}
        self.start_extras: List[Dict[str, Any]] = []
        self.deleted: List[int] = []
        self.list_calls = 0
        self.status_calls: Dict[int, int] = defaultdict(int)
        self._lock = threading.Lock()
        self._next_id = 100

    def list_org_repositories(self, org: str, per_page: int, page: int) -> List[Dict[str, Any]]:
        self.list_calls += 1
        start = (page - 1) * per_page
        return [{"full_name": name} for name in self.repositories[start:start + per_page]]

    def start_migration(self, org, repositories, lock_repositories=False, extra=None):
        if repositories[0] in self.failing_starts:
            raise ProviderError("start rejected", status_code=422, path=f"/orgs/{org}/migrations")
        with self._lock:
            migration_id = self._next_id
            self._next_id += 1
            self.started[migration_id] = list(repositories)
            self.start_extras.append({"lock_repositories": lock_repositories, **(extra or {})})
        return {"id": migration_id, "state": "pending"}

    def get_migration_status(self, org: str, migration_id: int) -> str:
        with self._lock:
            self.status_calls[migration_id] += 1
            calls = self.status_calls[migration_id]
        key = self.started[migration_id][0]
        sequence = self.states.get(key, ["exported"])
        value = sequence[min(calls, len(sequence)) - 1]
        if isinstance(value, BaseException):
            raise value
        return value

    def get_archive_url(self, org: str, migration_id: int) -> str:
        return f"https://storage.example.com/archive/{migration_id}.tar.gz"

    def delete_archive(self, org: str, migration_id: int) -> None:
        if self.failing_deletes:
            raise ProviderError("delete rejected", status_code=500, path="archive")
        with self._lock:
            self.deleted.append(migration_id)


@pytest.fixture
def slept() -> List[float]:
    """Collects requested sleep durations instead of waiting."""
    return []


@pytest.fixture
def sleeper(slept: List[float]) -> Callable[[float], None]:
    return slept.append
