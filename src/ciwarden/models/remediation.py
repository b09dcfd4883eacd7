"""Remediation result and metrics models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .checks import ErrorType


class RemediationReason(str, Enum):
    """Closed set of remediation outcome codes.

    Declines: NOT_AUTO_FIXABLE, MAX_ATTEMPTS_REACHED, NO_CHANGES,
    UNSUPPORTED_LANGUAGE, LIMITED_AUTO_FIX_CAPABILITY, NO_LINT_TOOL,
    NO_FORMAT_TOOL. Guardrails (always rolled back): TOO_MANY_CHANGES,
    VERIFICATION_FAILED. EXECUTION_FAILED is always rolled back too.
    """

    DRY_RUN = "dry_run"
    NOT_AUTO_FIXABLE = "not_auto_fixable"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"
    NO_CHANGES = "no_changes"
    UNSUPPORTED_LANGUAGE = "unsupported_language"
    LIMITED_AUTO_FIX_CAPABILITY = "limited_auto_fix_capability"
    NO_LINT_TOOL = "no_lint_tool"
    NO_FORMAT_TOOL = "no_format_tool"
    TOO_MANY_CHANGES = "too_many_changes"
    VERIFICATION_FAILED = "verification_failed"
    EXECUTION_FAILED = "execution_failed"


class PullRequestSpec(BaseModel):
    """Pull request to be opened for a fix branch."""

    title: str
    body: str
    head: str
    base: str
    draft: bool = False


class PullRequestRef(BaseModel):
    """Reference to a created pull request."""

    number: int
    url: str = ""
    branch: str = ""


class RemediationResult(BaseModel):
    """Outcome of a single ``attempt_fix`` call."""

    success: bool
    reason: RemediationReason | None = None
    error_type: ErrorType | None = None
    rolled_back: bool = False
    verification_failed: bool = False
    verification_errors: list[str] = Field(default_factory=list)
    changed_lines: int = 0
    attempts: int | None = None
    language: str | None = None
    message: str | None = Field(default=None, description="Dry-run command or error text")
    pull_request: PullRequestRef | None = None

    @property
    def pr_number(self) -> int | None:
        return self.pull_request.number if self.pull_request else None


class ErrorTypeStats(BaseModel):
    """Per error type counters."""

    attempts: int = 0
    successes: int = 0
    failures: int = 0


class RemediationMetrics(BaseModel):
    """Aggregate remediation counters for one session."""

    total_attempts: int = 0
    successful_fixes: int = 0
    failed_fixes: int = 0
    rollback_count: int = 0
    verification_failures: int = 0
    dry_run_attempts: int = 0
    by_error_type: dict[ErrorType, ErrorTypeStats] = Field(default_factory=dict)
    by_reason: dict[str, int] = Field(default_factory=dict)
    total_fix_duration_ms: int = 0
    average_fix_duration_ms: float | None = None
    start_time: datetime = Field(default_factory=datetime.now)
    last_updated: datetime = Field(default_factory=datetime.now)
