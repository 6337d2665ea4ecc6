from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from migration_backup.config import DEFAULT_API_URL

DEFAULT_ACCEPT_HEADER = "application/vnd.github+json"
DEFAULT_API_VERSION = "2022-11-28"
REQUEST_TIMEOUT = 30


class ProviderError(Exception):
    """Raised when a GitHub API call fails or answers with an unexpected status."""

    def __init__(self, message: str, status_code: Optional[int] = None, path: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class GitHubAPI:
    """Thin wrapper around the organization migration endpoints."""

    def __init__(
        self,
        token: Optional[str],
        base_url: str = DEFAULT_API_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not token:
            raise ValueError("GitHub token must be provided via configuration or environment variable")
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {token}",
                "Accept": DEFAULT_ACCEPT_HEADER,
                "X-GitHub-Api-Version": DEFAULT_API_VERSION,
                "User-Agent": "github-migration-backup",
            }
        )
        self._base_url = base_url.rstrip("/")
        self._log = logging.getLogger(self.__class__.__name__)

    # Low level ------------------------------------------------------------
    def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        allow_redirects: bool = True,
    ) -> requests.Response:
        url = self._url(path)
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json,
                allow_redirects=allow_redirects,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise ProviderError(f"{method} {path} failed: {exc}", path=path) from exc

        if response.status_code >= 400:
            self._log.error("GitHub API request failed: %s %s", response.status_code, response.text)
            raise ProviderError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                path=path,
            )
        return response

    def _json(self, response: requests.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"{path} returned a non-JSON body", response.status_code, path) from exc

    # Repositories ---------------------------------------------------------
    def list_org_repositories(self, org: str, per_page: int, page: int) -> List[Dict[str, Any]]:
        path = f"/orgs/{org}/repos"
        response = self.request(
            "GET",
            path,
            params={"type": "all", "sort": "full_name", "per_page": per_page, "page": page},
        )
        items = self._json(response, path)
        if not isinstance(items, list):
            raise ProviderError(f"{path} did not return a list", response.status_code, path)
        return items

    # Migrations -----------------------------------------------------------
    def start_migration(
        self,
        org: str,
        repositories: List[str],
        lock_repositories: bool = False,
        extra: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        path = f"/orgs/{org}/migrations"
        payload: Dict[str, Any] = {"repositories": list(repositories), "lock_repositories": lock_repositories}
        payload.update(extra or {})
        return self._json(self.request("POST", path, json=payload), path)

    def get_migration_status(self, org: str, migration_id: int) -> str:
        path = f"/orgs/{org}/migrations/{migration_id}"
        data = self._json(self.request("GET", path), path)
        state = data.get("state")
        if not state:
            raise ProviderError(f"{path} response has no state", path=path)
        return state

    def get_archive_url(self, org: str, migration_id: int) -> str:
        """Return the signed download URL for a finished migration archive.

        GitHub answers with a 302 redirect to short-lived storage; the redirect is
        not followed so the authenticated session never talks to that host.
        """
        path = f"/orgs/{org}/migrations/{migration_id}/archive"
        response = self.request("GET", path, allow_redirects=False)
        location = response.headers.get("Location")
        if response.is_redirect and location:
            return location
        raise ProviderError(
            f"{path} returned HTTP {response.status_code} without a download location",
            status_code=response.status_code,
            path=path,
        )

    def delete_archive(self, org: str, migration_id: int) -> None:
        self.request("DELETE", f"/orgs/{org}/migrations/{migration_id}/archive")

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"
