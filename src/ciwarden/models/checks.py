"""CI check models.

Check runs and commit statuses are fetched fresh on every poll and
aggregated into a ``CheckSummary``. Only the four counts are stored;
``total`` and ``overall_status`` are computed from them.
"""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, computed_field

from .suggestion import Suggestion

CheckStatus = Literal["queued", "in_progress", "completed", "waiting", "requested", "pending"]
CheckConclusion = Literal[
    "success",
    "failure",
    "neutral",
    "cancelled",
    "skipped",
    "timed_out",
    "action_required",
    "stale",
    "startup_failure",
]
OverallStatus = Literal["pending", "success", "failure"]


class ErrorType(str, Enum):
    """Closed taxonomy for classified check failures."""

    TEST_FAILURE = "test_failure"
    LINTING_ERROR = "linting_error"
    FORMAT_ERROR = "format_error"
    TYPE_ERROR = "type_error"
    BUILD_ERROR = "build_error"
    SECURITY_ISSUE = "security_issue"
    UNKNOWN = "unknown"


class CheckOutput(BaseModel):
    """Output block attached to a check run."""

    title: str | None = None
    summary: str | None = None
    text: str | None = None


class CheckRun(BaseModel):
    """A single CI job report for a commit."""

    name: str
    status: CheckStatus = "queued"
    conclusion: CheckConclusion | None = None
    output: CheckOutput = Field(default_factory=CheckOutput)
    url: str = Field(default="", validation_alias=AliasChoices("url", "html_url"))
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def duration(self) -> float | None:
        """Seconds between start and completion, if both are known."""
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


class CommitStatus(BaseModel):
    """Legacy commit status reported by an external service."""

    context: str
    state: Literal["success", "failure", "error", "pending"]
    description: str | None = None
    target_url: str | None = None


class PullRequestInfo(BaseModel):
    """The parts of a pull request the poller needs."""

    number: int
    head_sha: str
    head_ref: str = ""
    base_ref: str = ""


class FailureDetail(BaseModel):
    """Actionable description of one failed check."""

    check_name: str = Field(description="Check run name or status context")
    error_type: ErrorType = Field(description="Classified failure category")
    summary: str = Field(default="No summary available", description="Human summary text")
    affected_files: list[str] = Field(
        default_factory=list, description="Paths mentioned in output, first-seen order"
    )
    suggested_fix: str | None = Field(default=None, description="Suggested command or action")
    suggestion: Suggestion | None = Field(default=None, description="Full suggestion metadata")
    url: str = Field(default="", description="Link to check details")


class CheckSummary(BaseModel):
    """Aggregated check state for a commit.

    ``total`` and ``overall_status`` are computed from the four counts,
    so ``total == passed + failed + pending + skipped`` always holds.
    """

    passed: int = 0
    failed: int = 0
    pending: int = 0
    skipped: int = 0
    failure_details: list[FailureDetail] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None
    duration: float | None = Field(
        default=None, description="Longest completed check duration in seconds"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> int:
        return self.passed + self.failed + self.pending + self.skipped

    @computed_field  # type: ignore[prop-decorator]
    @property
    def overall_status(self) -> OverallStatus:
        if self.failed > 0:
            return "failure"
        if self.pending > 0:
            return "pending"
        return "success"

    def failed_names(self) -> list[str]:
        """Names of failed checks in report order."""
        return [f.check_name for f in self.failure_details]


class ProgressUpdate(BaseModel):
    """Progress event emitted when check counts change."""

    timestamp: datetime = Field(default_factory=datetime.now)
    elapsed: float = Field(description="Seconds since polling started")
    total: int
    passed: int
    failed: int
    pending: int
    new_failures: list[str] = Field(default_factory=list)
    new_passes: list[str] = Field(default_factory=list)


class CheckResult(BaseModel):
    """Terminal outcome of waiting for checks."""

    success: bool
    summary: CheckSummary
    duration: float = Field(description="Seconds spent waiting")
    retries_used: int = 0
    reason: str | None = Field(default=None, description="critical_failure, no_checks, or None")
