from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Tuple

from .api import GitHubAPI

LOG = logging.getLogger(__name__)

RepositoryBatch = Tuple[str, ...]


def iter_repository_pages(api: GitHubAPI, org: str, per_page: int) -> Iterator[RepositoryBatch]:
    """Yield one batch per page of ``/orgs/{org}/repos``, sorted by full name.

    Stops after a page shorter than ``per_page``; an empty page is never yielded.
    """
    if per_page < 1:
        raise ValueError("per_page must be at least 1")

    page = 1
    while True:
        items = api.list_org_repositories(org, per_page=per_page, page=page)
        LOG.debug("Page %s of %s returned %s repositories", page, org, len(items))
        names = tuple(item["full_name"] for item in items if item.get("full_name"))
        if names:
            yield names
        # page length decides pagination, even if some items carried no name
        if len(items) < per_page:
            return
        page += 1


def list_repository_batches(api: GitHubAPI, org: str, per_page: int) -> List[RepositoryBatch]:
    """Fetch every page before returning so a failed page request leaves no partial batches."""
    LOG.info("Get list of repositories...")
    batches = list(iter_repository_pages(api, org, per_page))
    LOG.debug("Repository batches for %s: %s", org, batches)
    return batches


def single_repository_batches(repository: str) -> List[RepositoryBatch]:
    return [(repository,)]


def resolve_batches(
    api: GitHubAPI,
    org: str,
    per_page: int,
    repository: Optional[str] = None,
) -> List[RepositoryBatch]:
    if repository:
        return single_repository_batches(repository)
    return list_repository_batches(api, org, per_page)
