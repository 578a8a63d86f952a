"""
Core analysis logic for Org Pulse.

analyze_company() finds an organization's most active repository over the
trailing window and that repository's top commit author.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from org_pulse.config import get_window_days
from org_pulse.models import CompanyInput, CompanyResult, RepoCandidate, RepoCommitData
from org_pulse.vcs.github import GitHubProvider, extract_org

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]


def format_since(moment: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC instant with millisecond precision."""
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def default_since(now: datetime | None = None, days: int | None = None) -> str:
    """
    Start of the trailing activity window.

    Args:
        now: Reference instant (defaults to the current time).
        days: Window length (defaults to the configured window, 30 days).
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if days is None:
        days = get_window_days()
    return format_since(now - timedelta(days=days))


def select_most_active(repo_results: list[RepoCommitData]) -> RepoCommitData:
    """Pick the repository with the strictly highest commit count.

    Ties keep the earliest candidate, i.e. the most recently pushed one given
    discovery order.
    """
    best = repo_results[0]
    for current in repo_results[1:]:
        if current.commit_count > best.commit_count:
            best = current
    return best


def _notify(on_progress: ProgressCallback | None, message: str) -> None:
    if on_progress is None:
        return
    try:
        on_progress(message)
    except Exception as e:
        # Progress reporting never affects the analysis
        logger.debug("Progress callback failed: %s", e)


async def _count_or_zero(
    provider: GitHubProvider, owner: str, repo: RepoCandidate, since: str
) -> RepoCommitData:
    try:
        commit_count = await provider.count_commits(owner, repo.name, since)
    except Exception as e:
        logger.warning("Commit count failed for %s/%s: %s", owner, repo.name, e)
        commit_count = 0
    return RepoCommitData(repo.name, repo.url, commit_count)


async def analyze_company(
    provider: GitHubProvider,
    company: CompanyInput,
    since: str,
    on_progress: ProgressCallback | None = None,
) -> CompanyResult:
    """
    Analyze one company's GitHub organization.

    Args:
        provider: GitHub provider shared by the batch.
        company: Company name and organization URL.
        since: ISO-8601 start of the trailing window.
        on_progress: Optional callback receiving milestone messages.

    Returns:
        CompanyResult. Invalid URLs and organizations without repositories are
        reported through the result's error field; an organization with no
        commits in the window yields sentinel fields and no error.

    Raises:
        RemoteError: If repository discovery or contributor resolution fails.
    """
    org_name = extract_org(company.github_org_url)
    if not org_name:
        return CompanyResult.empty(company, error="Invalid GitHub URL")

    _notify(on_progress, f"Fetching repos for {org_name}...")

    repos = await provider.list_repos(org_name)
    if not repos:
        return CompanyResult.empty(company, error="No repos found")

    _notify(
        on_progress, f"Found {len(repos)} repos for {org_name}, counting commits..."
    )

    repo_results = await asyncio.gather(
        *(_count_or_zero(provider, org_name, repo, since) for repo in repos)
    )

    most_active = select_most_active(list(repo_results))
    if most_active.commit_count == 0:
        return CompanyResult.empty(company)

    _notify(
        on_progress,
        f"Most active: {most_active.repo_name} ({most_active.commit_count} commits). "
        "Finding top contributor...",
    )

    top_contributor = await provider.get_top_contributor(
        org_name, most_active.repo_name, since
    )

    return CompanyResult(
        company_name=company.company_name,
        github_org_url=company.github_org_url,
        most_active_repo=most_active.repo_name,
        most_active_repo_url=most_active.repo_url,
        commit_count=most_active.commit_count,
        top_contributor=top_contributor,
    )
