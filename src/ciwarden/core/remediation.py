"""Remediation engine: transactional automated fixes for classified failures.

A real attempt runs as one transaction against the workspace:

    snapshot -> execute fixer -> diff -> size guardrail -> verify -> publish

Any failure after the snapshot restores it. Outcomes are returned as
``RemediationResult`` values; nothing in this module raises for a
declined or failed fix.
"""

import asyncio
import logging
import re
import time
from collections.abc import Awaitable, Callable
from pathlib import Path

from ..config import RemediationConfig
from ..constants import DEPENDENCY_KEYWORDS
from ..models import (
    ErrorType,
    FailureDetail,
    PullRequestRef,
    PullRequestSpec,
    RemediationMetrics,
    RemediationReason,
    RemediationResult,
    VerificationResult,
)
from ..services.process import CommandResult, run_command
from ..services.protocols import PullRequestCreator, SnapshotToken, Verifier, Workspace
from .languages import Language, infer_language
from .session import RemediationSession
from .tools import FixPlan, ToolDetector

logger = logging.getLogger(__name__)

AUTO_FIXABLE_TYPES = frozenset(
    {ErrorType.LINTING_ERROR, ErrorType.FORMAT_ERROR, ErrorType.SECURITY_ISSUE}
)
DIFF_FILE_HEADER = re.compile(r"^diff --git a/(.+?) b/(.+)$", re.MULTILINE)
HUNK_HEADER = re.compile(r"^@@ -\d+(?:,(\d+))? \+\d+(?:,(\d+))? @@")
COMMIT_FOOTER = "Auto-generated by ciwarden"

CommandRunner = Callable[..., Awaitable[CommandResult]]

FIX_TITLES = {
    ErrorType.LINTING_ERROR: "fix: auto-fix linting errors",
    ErrorType.FORMAT_ERROR: "style: auto-format code",
    ErrorType.SECURITY_ISSUE: "fix: auto-fix dependency vulnerabilities",
}


def count_changed_lines(diff: str) -> int:
    """Count added plus removed lines inside the diff's hunks.

    Hunk extents come from the ``@@`` header line counts, so content lines
    that begin with ``---`` or ``+++`` are counted and file headers are not.
    """
    count = 0
    old_left = new_left = 0
    for line in diff.splitlines():
        if old_left <= 0 and new_left <= 0:
            match = HUNK_HEADER.match(line)
            if match:
                # An omitted length means a one-line range
                old_left = int(match.group(1) or 1)
                new_left = int(match.group(2) or 1)
            continue
        if line.startswith("-"):
            count += 1
            old_left -= 1
        elif line.startswith("+"):
            count += 1
            new_left -= 1
        elif line.startswith("\\"):
            continue
        elif line == "" or line.startswith(" "):
            old_left -= 1
            new_left -= 1
        else:
            old_left = new_left = 0
    return count


def changed_paths(diff: str) -> list[str]:
    """Paths touched by a unified git diff, in diff order."""
    return list(dict.fromkeys(match.group(2) for match in DIFF_FILE_HEADER.finditer(diff)))


def is_dependency_issue(summary: str) -> bool:
    text = summary.lower()
    return any(keyword in text for keyword in DEPENDENCY_KEYWORDS)


def default_branch_suffix() -> str:
    return str(int(time.time() * 1000))


def fix_body(error_type: ErrorType, language: Language, plan: FixPlan, files: list[str]) -> str:
    if error_type is ErrorType.LINTING_ERROR:
        listing = "\n".join(f"- {f}" for f in files) or "- (project-wide)"
        return f"Automatically fixed linting errors in:\n{listing}"
    if error_type is ErrorType.FORMAT_ERROR:
        return f"Automatically formatted code using the {language.value} formatter ({plan.tool})."
    return f"Automatically fixed dependency vulnerabilities with `{plan.command}`."


class RemediationEngine:
    """Decides, simulates and executes automated fixes.

    One transaction runs at a time per engine; callers must not point two
    engines (or processes) at the same working tree.
    """

    def __init__(
        self,
        workspace: Workspace,
        pull_requests: PullRequestCreator,
        tools: ToolDetector,
        config: RemediationConfig | None = None,
        verifier: Verifier | None = None,
        session: RemediationSession | None = None,
        runner: CommandRunner = run_command,
        clock: Callable[[], float] = time.monotonic,
        branch_suffix: Callable[[], str] = default_branch_suffix,
    ) -> None:
        self.workspace = workspace
        self.pull_requests = pull_requests
        self.tools = tools
        self.config = config or RemediationConfig()
        self.verifier = verifier
        self.session = session or RemediationSession.from_config(self.config)
        self.runner = runner
        self.clock = clock
        self.branch_suffix = branch_suffix
        self._lock = asyncio.Lock()

    @property
    def cwd(self) -> Path:
        return self.tools.cwd

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def attempt_fix(
        self, failure: FailureDetail, subject_id: str, dry_run: bool | None = None
    ) -> RemediationResult:
        """Try to fix one classified failure.

        Args:
            failure: The failure to remediate
            subject_id: Identifier attempts are counted against (e.g. "PR-12")
            dry_run: Simulate only; None uses the configured default

        Returns:
            RemediationResult; declines and failures are values, never raised
        """
        use_dry_run = self.config.enable_dry_run if dry_run is None else dry_run
        start = self.clock()

        async with self._lock:
            result = await self._attempt(failure, subject_id, use_dry_run)

        duration_ms = int((self.clock() - start) * 1000)
        self.session.record(failure.error_type, result, use_dry_run, duration_ms)

        if result.success:
            logger.info(
                f"Auto-fix {'simulated' if use_dry_run else 'succeeded'} for "
                f"{failure.error_type.value} on {subject_id} ({duration_ms}ms)"
            )
        else:
            logger.warning(
                f"Auto-fix failed for {failure.error_type.value} on {subject_id}: "
                f"{result.reason.value if result.reason else 'unknown'}"
                f"{' (rolled back)' if result.rolled_back else ''}"
            )
        return result

    def get_metrics(self) -> RemediationMetrics:
        return self.session.snapshot()

    def reset_metrics(self) -> None:
        self.session.reset_metrics()

    def export_metrics(self) -> str:
        return self.session.export_metrics()

    # ------------------------------------------------------------------
    # Gates and dispatch
    # ------------------------------------------------------------------

    def _declined(
        self, failure: FailureDetail, reason: RemediationReason, **extra: object
    ) -> RemediationResult:
        return RemediationResult(
            success=False, reason=reason, error_type=failure.error_type, **extra
        )

    async def _attempt(
        self, failure: FailureDetail, subject_id: str, dry_run: bool
    ) -> RemediationResult:
        error_type = failure.error_type

        if error_type is ErrorType.TYPE_ERROR:
            return self._declined(
                failure,
                RemediationReason.LIMITED_AUTO_FIX_CAPABILITY,
                message="Type errors require manual intervention",
            )
        if error_type not in AUTO_FIXABLE_TYPES:
            logger.info(f"Error type {error_type.value} is not auto-fixable")
            return self._declined(failure, RemediationReason.NOT_AUTO_FIXABLE)

        attempts = self.session.attempts.get(subject_id, error_type)
        if not dry_run:
            if attempts >= self.config.max_attempts:
                logger.warning(
                    f"Max attempts ({self.config.max_attempts}) reached for "
                    f"{error_type.value} on {subject_id}"
                )
                return self._declined(
                    failure, RemediationReason.MAX_ATTEMPTS_REACHED, attempts=attempts
                )
            attempts = self.session.attempts.increment(subject_id, error_type)
            logger.info(
                f"Starting auto-fix attempt {attempts}/{self.config.max_attempts} "
                f"for {error_type.value} on {subject_id}"
            )

        files = list(failure.affected_files)
        language = infer_language(files)

        if error_type is ErrorType.SECURITY_ISSUE and not (
            language.is_node and is_dependency_issue(failure.summary)
        ):
            return self._declined(
                failure,
                RemediationReason.LIMITED_AUTO_FIX_CAPABILITY,
                language=language.value,
                attempts=attempts,
                message="Only npm dependency vulnerabilities are fixed automatically",
            )

        plan = self.tools.plan_fix(error_type, language, files)
        if isinstance(plan, RemediationReason):
            return self._declined(failure, plan, language=language.value, attempts=attempts)

        if dry_run:
            return RemediationResult(
                success=True,
                reason=RemediationReason.DRY_RUN,
                error_type=error_type,
                language=language.value,
                message=f"Would run: `{plan.command}`",
            )

        result = await self._apply(failure, plan, language, files)
        result.attempts = attempts
        return result

    # ------------------------------------------------------------------
    # Transaction
    # ------------------------------------------------------------------

    async def _rollback(self, token: SnapshotToken) -> None:
        """Restore the snapshot; restore problems are logged, never raised."""
        try:
            await self.workspace.rollback(token)
        except Exception as e:
            logger.warning(f"Rollback failed, working tree may need manual cleanup: {e}")

    async def _release(self, token: SnapshotToken) -> None:
        try:
            await self.workspace.release(token)
        except Exception as e:
            logger.warning(f"Could not restore saved changes after fix: {e}")

    async def _verify(self) -> VerificationResult:
        if self.verifier is None or not self.config.require_verification:
            return VerificationResult(success=True)

        timeout = self.config.verification_timeout
        try:
            return await asyncio.wait_for(self.verifier.run(timeout=timeout), timeout=timeout)
        except TimeoutError:
            return VerificationResult(
                success=False, errors=[f"Verification timed out after {timeout}s"]
            )
        except Exception as e:
            return VerificationResult(success=False, errors=[str(e)])

    async def _apply(
        self, failure: FailureDetail, plan: FixPlan, language: Language, files: list[str]
    ) -> RemediationResult:
        base = {"error_type": failure.error_type, "language": language.value}

        try:
            token = await self.workspace.begin()
        except Exception as e:
            logger.error(f"Could not snapshot working tree: {e}")
            return RemediationResult(
                success=False, reason=RemediationReason.EXECUTION_FAILED, message=str(e), **base
            )

        try:
            logger.info(f"Running {plan.command}")
            await self.runner(
                list(plan.args),
                cwd=self.cwd,
                timeout=self.config.command_timeout,
                max_output_bytes=self.config.max_output_bytes,
                check=True,
            )

            diff = await self.workspace.diff()
            if not diff.strip():
                await self._release(token)
                return RemediationResult(success=False, reason=RemediationReason.NO_CHANGES, **base)

            changed_lines = count_changed_lines(diff)
            if changed_lines > self.config.max_changed_lines:
                logger.warning(
                    f"Fix changed {changed_lines} lines (limit {self.config.max_changed_lines})"
                )
                await self._rollback(token)
                return RemediationResult(
                    success=False,
                    reason=RemediationReason.TOO_MANY_CHANGES,
                    changed_lines=changed_lines,
                    rolled_back=True,
                    **base,
                )

            verification = await self._verify()
            if not verification.success:
                await self._rollback(token)
                return RemediationResult(
                    success=False,
                    reason=RemediationReason.VERIFICATION_FAILED,
                    verification_failed=True,
                    verification_errors=verification.errors,
                    changed_lines=changed_lines,
                    rolled_back=True,
                    **base,
                )

            pull_request = await self._publish(failure, plan, language, files, diff, token)
        except Exception as e:
            logger.error(f"Auto-fix execution failed: {e}")
            await self._rollback(token)
            return RemediationResult(
                success=False,
                reason=RemediationReason.EXECUTION_FAILED,
                rolled_back=True,
                message=str(e),
                **base,
            )

        await self._release(token)
        return RemediationResult(
            success=True,
            changed_lines=changed_lines,
            pull_request=pull_request,
            message=plan.command,
            **base,
        )

    async def _publish(
        self,
        failure: FailureDetail,
        plan: FixPlan,
        language: Language,
        files: list[str],
        diff: str,
        token: SnapshotToken,
    ) -> PullRequestRef:
        """Commit the fix on a new branch, push it and open a pull request."""
        branch = f"{token.branch}-autofix-{self.branch_suffix()}"
        await self.workspace.create_branch(branch)
        token.created_branches.append(branch)

        paths = list(plan.stage_paths) or files or changed_paths(diff)
        title = FIX_TITLES[failure.error_type]
        body = fix_body(failure.error_type, language, plan, files)

        await self.workspace.stage(paths)
        await self.workspace.commit(
            f"{title}\n\n{body}\n\n{COMMIT_FOOTER}\n"
            f"Remediation-Category: {failure.error_type.value}"
        )
        await self.workspace.push(self.config.remote, branch, set_upstream=True)

        pr_body = (
            f"{body}\n\n"
            "**Auto-Fix Details**:\n"
            f"- Failed check: {failure.check_name}\n"
            f"- Affected files: {len(paths)}\n"
            f"- Original branch: {token.branch}\n"
            f"- Command: `{plan.command}`\n\n"
            f"{COMMIT_FOOTER}"
        )
        ref = await self.pull_requests.create_pull_request(
            PullRequestSpec(
                title=title, body=pr_body, head=branch, base=token.branch, draft=self.config.draft
            )
        )
        # Branch is published; rollback must not delete it anymore
        token.created_branches.remove(branch)
        return ref
