"""Pydantic data models for ciwarden.

This package defines the data structures shared by the pipeline:
- CI check state (CheckRun, CommitStatus, CheckSummary, FailureDetail)
- Polling events and outcomes (ProgressUpdate, CheckResult)
- Remediation hints (Suggestion, ExecutionStrategy)
- Remediation outcomes and counters (RemediationResult, RemediationMetrics)
- Local verification results (VerificationResult, CategoryResult)

Example:
    >>> from ciwarden.models import CheckSummary
    >>> CheckSummary(passed=3, pending=1).overall_status
    'pending'
"""

from .checks import (
    CheckOutput,
    CheckResult,
    CheckRun,
    CheckSummary,
    CommitStatus,
    ErrorType,
    FailureDetail,
    ProgressUpdate,
    PullRequestInfo,
)
from .remediation import (
    ErrorTypeStats,
    PullRequestRef,
    PullRequestSpec,
    RemediationMetrics,
    RemediationReason,
    RemediationResult,
)
from .verification import CategoryResult, VerificationResult
from .suggestion import ExecutionStrategy, Suggestion

__all__ = [
    "CategoryResult",
    "CheckOutput",
    "CheckResult",
    "CheckRun",
    "CheckSummary",
    "CommitStatus",
    "ErrorType",
    "ErrorTypeStats",
    "ExecutionStrategy",
    "FailureDetail",
    "ProgressUpdate",
    "PullRequestInfo",
    "PullRequestRef",
    "PullRequestSpec",
    "RemediationMetrics",
    "RemediationReason",
    "RemediationResult",
    "Suggestion",
    "VerificationResult",
]
