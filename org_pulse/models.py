"""
Data structures shared by the analysis pipeline, the batch scheduler and the
HTTP surface.
"""

from enum import Enum
from typing import Any, NamedTuple

# Sentinel for activity fields that do not apply (error or no activity)
NOT_APPLICABLE = "N/A"


class CompanyInput(NamedTuple):
    """A company to analyze."""

    company_name: str
    github_org_url: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompanyInput":
        """Build an input record; missing or null fields become empty strings."""
        return cls(
            company_name=str(data.get("company_name") or ""),
            github_org_url=str(data.get("github_org_url") or ""),
        )


class RepoCandidate(NamedTuple):
    """A repository considered during one analysis."""

    name: str
    url: str
    is_fork: bool = False


class RepoCommitData(NamedTuple):
    """Commit volume of one repository within the trailing window."""

    repo_name: str
    repo_url: str
    commit_count: int


class CompanyResult(NamedTuple):
    """The outcome of analyzing one company."""

    company_name: str
    github_org_url: str
    most_active_repo: str = NOT_APPLICABLE
    most_active_repo_url: str = NOT_APPLICABLE
    commit_count: int = 0
    top_contributor: str = NOT_APPLICABLE
    error: str | None = None

    @classmethod
    def empty(cls, company: CompanyInput, error: str | None = None) -> "CompanyResult":
        """Result with sentinel activity fields, optionally carrying an error."""
        return cls(
            company_name=company.company_name,
            github_org_url=company.github_org_url,
            error=error,
        )

    def to_dict(self) -> dict[str, Any]:
        data = self._asdict()
        if data["error"] is None:
            del data["error"]
        return data


class EventType(str, Enum):
    """Kinds of events on the progress stream."""

    PROGRESS = "progress"
    RESULT = "result"
    ERROR = "error"
    DONE = "done"


class ProgressEvent(NamedTuple):
    """A single event delivered to the progress stream consumer."""

    type: EventType
    message: str
    company: str | None = None
    result: CompanyResult | None = None
    completed: int | None = None
    total: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation; absent optional fields are omitted."""
        data: dict[str, Any] = {"type": self.type.value}
        if self.company is not None:
            data["company"] = self.company
        data["message"] = self.message
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.completed is not None:
            data["completed"] = self.completed
        if self.total is not None:
            data["total"] = self.total
        return data
