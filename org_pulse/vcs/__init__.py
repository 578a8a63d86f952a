"""
VCS access layer for Org Pulse.

Only GitHub is supported: organization URLs are resolved, and repositories and
commits are listed, through the GitHub REST API.
"""

from org_pulse.vcs.github import (
    MAX_COMMITS,
    GitHubProvider,
    extract_org,
    resolve_author,
)

__all__ = [
    "MAX_COMMITS",
    "GitHubProvider",
    "extract_org",
    "resolve_author",
]
