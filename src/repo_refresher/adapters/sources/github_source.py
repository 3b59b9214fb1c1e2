"""GitHub metadata source for tracked repositories."""

import logging
import re
from datetime import datetime
from typing import Any, Optional

import httpx

from repo_refresher.config import GitHubConfig
from repo_refresher.core import FatalFetchError, MetadataSource, RepoMetadata

logger = logging.getLogger(__name__)

REPOSITORY_QUERY = """
query($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) {
    nameWithOwner
    description
    homepageUrl
    isArchived
    stargazerCount
    forkCount
    openGraphImageUrl
    usesCustomOpenGraphImage
    owner { ... on User { databaseId } ... on Organization { databaseId } }
    licenseInfo { spdxId }
    mentionableUsers { totalCount }
    watchers { totalCount }
    pullRequests { totalCount }
    releases { totalCount }
    languages(first: 10, orderBy: {field: SIZE, direction: DESC}) { nodes { name } }
    latestRelease { name tagName publishedAt url description }
  }
}
"""

_LAST_PAGE = re.compile(r'[?&]page=(\d+)[^>]*>;\s*rel="last"')


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _total(node: Optional[dict]) -> int:
    return int((node or {}).get("totalCount", 0))


def parse_repository(full_name: str, repo: dict[str, Any]) -> RepoMetadata:
    """Build RepoMetadata from a GraphQL ``repository`` node."""
    release = repo.get("latestRelease") or {}
    languages = ((repo.get("languages") or {}).get("nodes")) or []
    return RepoMetadata(
        full_name=repo.get("nameWithOwner") or full_name,
        stars=int(repo.get("stargazerCount", 0)),
        description=repo.get("description"),
        homepage=repo.get("homepageUrl") or None,
        archived=bool(repo.get("isArchived", False)),
        owner_id=(repo.get("owner") or {}).get("databaseId"),
        open_graph_image_url=repo.get("openGraphImageUrl"),
        uses_custom_open_graph_image=bool(repo.get("usesCustomOpenGraphImage", False)),
        forks=int(repo.get("forkCount", 0)),
        watchers_count=_total(repo.get("watchers")),
        mentionable_users_count=_total(repo.get("mentionableUsers")),
        pull_requests_count=_total(repo.get("pullRequests")),
        releases_count=_total(repo.get("releases")),
        license_spdx_id=(repo.get("licenseInfo") or {}).get("spdxId"),
        languages=tuple(node["name"] for node in languages if node and node.get("name")),
        latest_release_name=release.get("name"),
        latest_release_tag_name=release.get("tagName"),
        latest_release_published_at=_parse_datetime(release.get("publishedAt")),
        latest_release_url=release.get("url"),
        latest_release_description=release.get("description") or None,
    )


def parse_contributor_count(response: httpx.Response) -> int:
    """Count contributors from a ``per_page=1`` response.

    The page number of the ``last`` link equals the total; without pagination
    the body holds zero or one contributor.
    """
    link = response.headers.get("link", "")
    match = _LAST_PAGE.search(link)
    if match:
        return int(match.group(1))
    if response.status_code == 204:
        return 0
    return len(response.json())


class GitHubMetadataSource(MetadataSource):
    """Fetch repository metadata from the GitHub GraphQL and REST APIs."""

    def __init__(self, token: Optional[str] = None, config: Optional[GitHubConfig] = None) -> None:
        self.token = token
        self.config = config or GitHubConfig()

    async def fetch_primary(self, full_name: str) -> RepoMetadata:
        """Fetch primary metadata via GraphQL."""
        owner, _, name = full_name.partition("/")
        async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
            try:
                response = await client.post(
                    self.config.graphql_url,
                    headers=self._get_headers(),
                    json={"query": REPOSITORY_QUERY, "variables": {"owner": owner, "name": name}},
                )
            except httpx.HTTPError as e:
                raise FatalFetchError(full_name, f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            raise FatalFetchError(full_name, f"GitHub API error: {response.status_code}")

        data = response.json()
        if data.get("errors"):
            messages = "; ".join(err.get("message", "?") for err in data["errors"])
            raise FatalFetchError(full_name, messages)

        repo = (data.get("data") or {}).get("repository")
        if not repo:
            raise FatalFetchError(full_name, "repository not found")

        return parse_repository(full_name, repo)

    async def fetch_contributor_count(self, full_name: str) -> int:
        """Fetch contributor count from the REST contributors endpoint."""
        async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
            response = await client.get(
                f"{self.config.api_base}/repos/{full_name}/contributors",
                headers=self._get_headers(),
                params={"per_page": 1, "anon": "true"},
            )
        response.raise_for_status()
        return parse_contributor_count(response)

    async def fetch_document(self, full_name: str) -> Optional[str]:
        """Fetch the README as raw markdown."""
        headers = self._get_headers()
        headers["Accept"] = "application/vnd.github.raw+json"

        async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
            response = await client.get(
                f"{self.config.api_base}/repos/{full_name}/readme",
                headers=headers,
            )

        if response.status_code == 404:
            logger.debug("no README found", extra={"full_name": full_name})
            return None
        response.raise_for_status()
        return response.text or None

    def _get_headers(self) -> dict[str, str]:
        """Get headers for GitHub API requests."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        return headers
