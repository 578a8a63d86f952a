"""
GitHub provider for Org Pulse.

Covers the four GitHub-facing steps of an organization analysis: resolving the
org login from a URL, discovering recently pushed repositories, counting recent
commits, and finding the most frequent recent commit author.
"""

import logging
from typing import Any
from urllib.parse import quote, urlsplit

from org_pulse.models import NOT_APPLICABLE, RepoCandidate
from org_pulse.rate_limit import RateLimitedClient, RemoteError

logger = logging.getLogger(__name__)

GITHUB_DOMAIN = "github.com"

# Repository discovery only looks at the most recently pushed repositories
REPO_PAGE_SIZE = 30
COMMIT_PAGE_SIZE = 100
# Upper bound on the commit count reported for a single repository
MAX_COMMITS = 500
# Pages of commits sampled when tallying authors
MAX_CONTRIBUTOR_PAGES = 5
UNKNOWN_AUTHOR = "unknown"


def extract_org(url: str) -> str | None:
    """
    Extract the organization or user login from a GitHub URL.

    Accepts URLs with or without a scheme ("github.com/acme" works) and ignores
    trailing slashes and anything after the first path segment.

    Args:
        url: Free-form URL string.

    Returns:
        The login, or None if the URL is not a GitHub URL or cannot be parsed.
    """
    try:
        cleaned = url.strip().rstrip("/")
        if not cleaned.startswith("http"):
            cleaned = f"https://{cleaned}"
        parts = urlsplit(cleaned)
        # Raises ValueError for malformed ports
        parts.port
        if not parts.hostname or GITHUB_DOMAIN not in parts.hostname:
            return None
        segments = [segment for segment in parts.path.split("/") if segment]
    except (AttributeError, ValueError):
        return None
    return segments[0] if segments else None


def resolve_author(commit: dict[str, Any]) -> str:
    """
    Pick the identity a commit is attributed to.

    Order: platform login, then the author name recorded in the commit
    metadata, then the "unknown" placeholder.
    """
    author = commit.get("author") or {}
    login = author.get("login") if isinstance(author, dict) else None
    if login:
        return login

    commit_meta = commit.get("commit") or {}
    raw_author = commit_meta.get("author") or {}
    name = raw_author.get("name") if isinstance(raw_author, dict) else None
    if name:
        return name

    return UNKNOWN_AUTHOR


def pick_top_author(tally: dict[str, int]) -> str:
    """Return the author with the highest tally; earliest inserted wins ties."""
    top_author = NOT_APPLICABLE
    top_count = 0
    for author, count in tally.items():
        if count > top_count:
            top_author = author
            top_count = count
    return top_author


def _as_list(payload: Any, path: str) -> list[dict[str, Any]]:
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise RemoteError(None, f"Unexpected response shape from {path}")
    return payload


class GitHubProvider:
    """GitHub REST API access bound to one RateLimitedClient."""

    def __init__(self, client: RateLimitedClient):
        self.client = client

    def get_platform_name(self) -> str:
        """Return 'github' as the platform identifier."""
        return "github"

    def get_repository_url(self, owner: str, repo: str) -> str:
        """Construct GitHub repository URL."""
        return f"https://{GITHUB_DOMAIN}/{owner}/{repo}"

    async def list_repos(self, org_name: str) -> list[RepoCandidate]:
        """
        List an organization's repositories, most recently pushed first.

        Falls back to listing a user account's repositories when the org
        lookup returns 404. The org listing excludes forks server-side
        (type=sources); the user listing cannot, so forks are filtered here.

        Args:
            org_name: Organization or user login.

        Returns:
            At most REPO_PAGE_SIZE non-fork repositories.

        Raises:
            RemoteError: If the listing fails for any reason other than the
                org not existing.
        """
        params = {
            "sort": "pushed",
            "direction": "desc",
            "per_page": REPO_PAGE_SIZE,
        }
        org_path = f"/orgs/{quote(org_name, safe='')}/repos"
        try:
            payload = await self.client.get(org_path, {**params, "type": "sources"})
            return [
                self._to_candidate(org_name, repo)
                for repo in _as_list(payload, org_path)[:REPO_PAGE_SIZE]
            ]
        except RemoteError as e:
            if e.status != 404:
                raise

        logger.debug("No organization named %s, trying user account", org_name)
        user_path = f"/users/{quote(org_name, safe='')}/repos"
        payload = await self.client.get(user_path, {**params, "type": "owner"})
        return [
            self._to_candidate(org_name, repo)
            for repo in _as_list(payload, user_path)
            if not repo.get("fork")
        ][:REPO_PAGE_SIZE]

    async def count_commits(self, owner: str, repo: str, since: str) -> int:
        """
        Count commits on a repository since a timestamp, capped at MAX_COMMITS.

        Pages are fetched until one comes back short (or empty) or the running
        total reaches the cap.

        Args:
            owner: Repository owner login.
            repo: Repository name.
            since: ISO-8601 lower bound for commit dates.

        Returns:
            Commit count in [0, MAX_COMMITS].
        """
        count = 0
        page = 1
        while count < MAX_COMMITS:
            commits = await self._list_commits(owner, repo, since, page)
            if not commits:
                break
            count += len(commits)
            if len(commits) < COMMIT_PAGE_SIZE:
                break
            page += 1
        return min(count, MAX_COMMITS)

    async def get_top_contributor(self, owner: str, repo: str, since: str) -> str:
        """
        Find the most frequent commit author since a timestamp.

        Samples at most MAX_CONTRIBUTOR_PAGES pages of commits.

        Returns:
            Author login or name, or "N/A" when there are no commits.
        """
        tally: dict[str, int] = {}
        for page in range(1, MAX_CONTRIBUTOR_PAGES + 1):
            commits = await self._list_commits(owner, repo, since, page)
            if not commits:
                break
            for commit in commits:
                author = resolve_author(commit)
                tally[author] = tally.get(author, 0) + 1
            if len(commits) < COMMIT_PAGE_SIZE:
                break

        return pick_top_author(tally)

    async def _list_commits(
        self, owner: str, repo: str, since: str, page: int
    ) -> list[dict[str, Any]]:
        path = f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}/commits"
        payload = await self.client.get(
            path,
            {"since": since, "per_page": COMMIT_PAGE_SIZE, "page": page},
        )
        return _as_list(payload, path)

    def _to_candidate(self, owner: str, repo: dict[str, Any]) -> RepoCandidate:
        name = repo.get("name", "")
        return RepoCandidate(
            name=name,
            url=repo.get("html_url") or self.get_repository_url(owner, name),
            is_fork=bool(repo.get("fork", False)),
        )
