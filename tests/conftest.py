"""
Shared fixtures: an in-memory fake of the GitHub REST endpoints used by
Org Pulse, served through httpx.MockTransport.
"""

import httpx
import pytest

from org_pulse import config
from org_pulse.rate_limit import RateLimitedClient
from org_pulse.vcs.github import GitHubProvider

API_URL = "https://api.github.test"
TEST_TOKEN = "ghp_test_token_value"


def make_commit(login: str | None = None, name: str | None = "Someone") -> dict:
    """Build a commit payload as returned by GET /repos/{owner}/{repo}/commits."""
    return {
        "sha": "0" * 40,
        "author": {"login": login} if login else None,
        "commit": {"author": {"name": name} if name else None},
    }


def make_repo(owner: str, name: str, fork: bool = False) -> dict:
    return {
        "name": name,
        "html_url": f"https://github.com/{owner}/{name}",
        "fork": fork,
    }


class FakeGitHub:
    """Minimal GitHub REST API fake with pagination and failure injection."""

    def __init__(self):
        self.orgs: dict[str, list[dict]] = {}
        self.users: dict[str, list[dict]] = {}
        self.commits: dict[tuple[str, str], list[dict]] = {}
        # path -> status code returned instead of data
        self.failures: dict[str, int] = {}
        self.requests: list[httpx.Request] = []

    def add_org(self, org: str, repos: dict[str, list[dict]]) -> None:
        """Register an organization whose repos are listed in pushed order."""
        self.orgs[org] = [make_repo(org, name) for name in repos]
        for name, commits in repos.items():
            self.commits[(org, name)] = commits

    def add_user(self, user: str, repos: list[dict], commits=None) -> None:
        self.users[user] = repos
        for name, repo_commits in (commits or {}).items():
            self.commits[(user, name)] = repo_commits

    def fail(self, path: str, status: int = 500) -> None:
        self.failures[path] = status

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path in self.failures:
            return httpx.Response(
                self.failures[path], json={"message": "Server Error"}
            )

        parts = path.strip("/").split("/")
        if parts[0] == "orgs" and parts[2] == "repos":
            if parts[1] not in self.orgs:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=self.orgs[parts[1]])

        if parts[0] == "users" and parts[2] == "repos":
            if parts[1] not in self.users:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=self.users[parts[1]])

        if parts[0] == "repos" and parts[3] == "commits":
            commits = self.commits.get((parts[1], parts[2]))
            if commits is None:
                return httpx.Response(404, json={"message": "Not Found"})
            per_page = int(request.url.params.get("per_page", 30))
            page = int(request.url.params.get("page", 1))
            start = (page - 1) * per_page
            return httpx.Response(200, json=commits[start : start + per_page])

        return httpx.Response(404, json={"message": "Not Found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> RateLimitedClient:
        return RateLimitedClient(
            TEST_TOKEN,
            httpx.AsyncClient(base_url=API_URL, transport=self.transport),
        )


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep tests independent of the environment and local config files."""
    for var in (
        "ORG_PULSE_API_URL",
        "ORG_PULSE_WINDOW_DAYS",
        "ORG_PULSE_BATCH_SIZE",
        "ORG_PULSE_TIMEOUT",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(config, "PROJECT_ROOT", tmp_path)
    config.reset_overrides()
    yield
    config.reset_overrides()


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def provider(fake_github):
    return GitHubProvider(fake_github.client())
