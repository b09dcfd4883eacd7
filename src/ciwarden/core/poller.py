"""CI poller: waits for a pull request's checks to reach a terminal state.

The poll loop is cooperative. Each iteration reads the current state,
reports progress when counts change, applies the completion, flaky
retry and fail-fast policies, then sleeps on a cancellable timer that
is clamped to the remaining budget. The timeout is checked once per
iteration.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from ..config import PollConfig, PollStrategy, RetryOptions
from ..constants import (
    DEFAULT_WAIT_TIMEOUT,
    FAST_CHECK_THRESHOLD,
    REGISTRATION_GRACE_PERIOD,
    REGISTRATION_MAX_BACKOFF,
)
from ..errors import ChecksTimeoutError, PollCancelledError
from ..models import (
    CheckResult,
    CheckRun,
    CheckSummary,
    CommitStatus,
    ErrorType,
    FailureDetail,
    ProgressUpdate,
)
from ..services.protocols import CheckStatusProvider
from .classifier import FailureClassifier
from .suggestions import SuggestionEngine

logger = logging.getLogger(__name__)

RETRYABLE_KEYWORDS = ("timeout", "network", "flaky")
CRITICAL_ERROR_TYPES = frozenset(
    {ErrorType.TEST_FAILURE, ErrorType.BUILD_ERROR, ErrorType.SECURITY_ISSUE}
)

PASSED_CONCLUSIONS = frozenset({"success", "neutral"})
SKIPPED_CONCLUSIONS = frozenset({"skipped", "stale"})
# Every other completed conclusion counts as a failure

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]
ProgressCallback = Callable[[ProgressUpdate], None]


@dataclass
class WaitOptions:
    """Options for ``CIPoller.wait_for_checks`` (times in seconds)."""

    timeout: float = DEFAULT_WAIT_TIMEOUT
    poll_strategy: PollStrategy = field(default_factory=PollStrategy)
    on_progress: ProgressCallback | None = None
    fail_fast: bool = True
    retry_flaky: bool = False
    retry_options: RetryOptions = field(default_factory=RetryOptions)
    cancel: asyncio.Event | None = None

    @classmethod
    def from_config(cls, config: PollConfig, **overrides: object) -> "WaitOptions":
        options = cls(
            timeout=config.timeout,
            poll_strategy=config.strategy,
            fail_fast=config.fail_fast,
            retry_flaky=config.retry_flaky,
            retry_options=config.retry,
        )
        for key, value in overrides.items():
            setattr(options, key, value)
        return options


def next_interval(current: float, strategy: PollStrategy, check_duration: float | None) -> float:
    """Compute the wait before the next poll.

    Exponential backoff is capped at ``max_interval`` and halved (never
    below ``initial_interval``) when the latest checks finish quickly.
    """
    if strategy.type == "fixed":
        return strategy.initial_interval

    interval = min(current * strategy.multiplier, strategy.max_interval)
    if check_duration is not None and check_duration < FAST_CHECK_THRESHOLD:
        interval = max(interval / 2, strategy.initial_interval)
    return interval


def has_status_changed(previous: CheckSummary | None, current: CheckSummary) -> bool:
    if previous is None:
        return True
    return (
        previous.passed != current.passed
        or previous.failed != current.failed
        or previous.pending != current.pending
    )


def new_failures(previous: CheckSummary | None, current: CheckSummary) -> list[str]:
    if previous is None:
        return []
    seen = set(previous.failed_names())
    return [name for name in current.failed_names() if name not in seen]


def new_passes(previous: CheckSummary | None, current: CheckSummary) -> list[str]:
    """Checks that were failing before and no longer are."""
    if previous is None:
        return []
    still_failing = set(current.failed_names())
    return [name for name in previous.failed_names() if name not in still_failing]


def is_retryable(summary: CheckSummary, keywords: Sequence[str] = RETRYABLE_KEYWORDS) -> bool:
    return any(
        keyword in failure.summary.lower()
        for failure in summary.failure_details
        for keyword in keywords
    )


def has_critical_failure(summary: CheckSummary) -> bool:
    return any(f.error_type in CRITICAL_ERROR_TYPES for f in summary.failure_details)


class CIPoller:
    """Polls a check status provider and aggregates results."""

    def __init__(
        self,
        provider: CheckStatusProvider,
        classifier: FailureClassifier | None = None,
        suggestions: SuggestionEngine | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.provider = provider
        self.classifier = classifier or FailureClassifier()
        self.suggestions = suggestions or SuggestionEngine()
        self.clock = clock
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Status aggregation
    # ------------------------------------------------------------------

    def _failure_from_run(self, run: CheckRun) -> FailureDetail:
        error_type = self.classifier.classify(run)
        output_text = "\n".join(t for t in (run.output.summary, run.output.text) if t)
        files = self.classifier.extract_affected_files(output_text)
        summary = run.output.summary or run.output.title or "No summary available"
        suggestion = self.suggestions.get_suggestion(summary, error_type, files)
        return FailureDetail(
            check_name=run.name,
            error_type=error_type,
            summary=summary,
            affected_files=files,
            suggested_fix=suggestion.command,
            suggestion=suggestion,
            url=run.url,
        )

    def _failure_from_status(self, status: CommitStatus) -> FailureDetail:
        error_type = self.classifier.classify(status)
        summary = status.description or "No summary available"
        suggestion = self.suggestions.get_suggestion(summary, error_type, [])
        return FailureDetail(
            check_name=status.context,
            error_type=error_type,
            summary=summary,
            suggested_fix=suggestion.command,
            suggestion=suggestion,
            url=status.target_url or "",
        )

    def build_summary(self, runs: list[CheckRun], statuses: list[CommitStatus]) -> CheckSummary:
        """Aggregate check runs and commit statuses into one summary."""
        passed = failed = pending = skipped = 0
        failures: list[FailureDetail] = []

        for run in runs:
            if run.status != "completed" or run.conclusion is None:
                pending += 1
            elif run.conclusion in PASSED_CONCLUSIONS:
                passed += 1
            elif run.conclusion in SKIPPED_CONCLUSIONS:
                skipped += 1
            else:
                failed += 1
                failures.append(self._failure_from_run(run))

        for status in statuses:
            if status.state == "success":
                passed += 1
            elif status.state == "pending":
                pending += 1
            else:
                failed += 1
                failures.append(self._failure_from_status(status))

        started = [r.started_at for r in runs if r.started_at is not None]
        durations = [d for d in (r.duration for r in runs) if d is not None]
        return CheckSummary(
            passed=passed,
            failed=failed,
            pending=pending,
            skipped=skipped,
            failure_details=failures,
            started_at=min(started) if started else datetime.now(),
            completed_at=datetime.now() if pending == 0 else None,
            duration=max(durations) if durations else None,
        )

    async def get_commit_check_status(self, sha: str) -> CheckSummary:
        """Read check runs and commit statuses for a commit concurrently."""
        runs, statuses = await asyncio.gather(
            self.provider.check_runs_for_commit(sha),
            self.provider.combined_status_for_ref(sha),
        )
        return self.build_summary(runs, statuses)

    async def get_detailed_check_status(self, pr_number: int) -> CheckSummary:
        """Resolve the PR head and summarize its checks."""
        pr = await self.provider.pull_request(pr_number)
        return await self.get_commit_check_status(pr.head_sha)

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    async def _wait(self, seconds: float, cancel: asyncio.Event | None) -> None:
        """Sleep for ``seconds`` unless the cancel event fires first."""
        if cancel is None:
            await self._sleep(seconds)
            return
        if cancel.is_set():
            raise PollCancelledError("Polling cancelled")

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        canceller = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, canceller}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, canceller):
                if not task.done():
                    task.cancel()
        if cancel.is_set():
            raise PollCancelledError("Polling cancelled")

    def _emit(self, options: WaitOptions, update: ProgressUpdate) -> None:
        if options.on_progress is not None:
            options.on_progress(update)

    async def wait_for_checks(
        self, pr_number: int, options: WaitOptions | None = None
    ) -> CheckResult:
        """Poll until checks finish, fail fast, or the timeout expires.

        Args:
            pr_number: Pull request whose head commit is watched
            options: Wait options; defaults apply when omitted

        Returns:
            CheckResult describing the terminal state

        Raises:
            ChecksTimeoutError: If no terminal state is reached within the timeout
            PollCancelledError: If the cancel event is set
            TransportError: Propagated from the provider
        """
        options = options or WaitOptions()
        strategy = options.poll_strategy
        start = self.clock()
        previous: CheckSummary | None = None
        retry_count = 0
        registration_polls = 0
        interval = strategy.initial_interval

        def elapsed() -> float:
            return self.clock() - start

        def remaining() -> float:
            return max(0.0, options.timeout - elapsed())

        while elapsed() < options.timeout:
            if options.cancel is not None and options.cancel.is_set():
                raise PollCancelledError("Polling cancelled")

            status = await self.get_detailed_check_status(pr_number)
            logger.debug(
                f"PR #{pr_number}: {status.passed} passed, {status.failed} failed, "
                f"{status.pending} pending after {elapsed():.1f}s"
            )

            # Checks may not be registered right after a push
            if status.total == 0:
                if elapsed() < REGISTRATION_GRACE_PERIOD:
                    wait = min(REGISTRATION_MAX_BACKOFF, 2**registration_polls)
                    registration_polls += 1
                    previous = status
                    await self._wait(min(wait, remaining()), options.cancel)
                    continue

                self._emit(
                    options,
                    ProgressUpdate(elapsed=elapsed(), total=0, passed=0, failed=0, pending=0),
                )
                logger.warning("No CI checks configured for this repository")
                return CheckResult(
                    success=True,
                    summary=status,
                    duration=elapsed(),
                    retries_used=retry_count,
                    reason="no_checks",
                )

            if has_status_changed(previous, status):
                self._emit(
                    options,
                    ProgressUpdate(
                        elapsed=elapsed(),
                        total=status.total,
                        passed=status.passed,
                        failed=status.failed,
                        pending=status.pending,
                        new_failures=new_failures(previous, status),
                        new_passes=new_passes(previous, status),
                    ),
                )

            if status.pending == 0:
                success = status.failed == 0
                if (
                    not success
                    and options.retry_flaky
                    and retry_count < options.retry_options.max_retries
                    and is_retryable(status)
                ):
                    retry_count += 1
                    logger.warning(
                        f"Retryable failure detected (attempt {retry_count}/"
                        f"{options.retry_options.max_retries}), waiting "
                        f"{options.retry_options.retry_delay}s"
                    )
                    previous = status
                    await self._wait(
                        min(options.retry_options.retry_delay, remaining()), options.cancel
                    )
                    continue

                return CheckResult(
                    success=success,
                    summary=status,
                    duration=elapsed(),
                    retries_used=retry_count,
                )

            if options.fail_fast and has_critical_failure(status):
                logger.info(f"PR #{pr_number}: critical failure, not waiting for pending checks")
                return CheckResult(
                    success=False,
                    summary=status,
                    duration=elapsed(),
                    retries_used=retry_count,
                    reason="critical_failure",
                )

            previous = status
            interval = next_interval(interval, strategy, status.duration)
            await self._wait(min(interval, remaining()), options.cancel)

        raise ChecksTimeoutError(f"CI checks did not complete within {options.timeout}s")
