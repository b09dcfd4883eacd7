"""Tests for the remediation engine."""

import asyncio
import json
import logging
from pathlib import Path

import pytest
from conftest import FakePullRequests, FakeRunner, FakeVerifier, FakeWorkspace, make_diff

from ciwarden.config import RemediationConfig
from ciwarden.core.remediation import RemediationEngine, changed_paths, count_changed_lines
from ciwarden.core.suggestions import get_suggestion
from ciwarden.core.tools import ToolDetector
from ciwarden.errors import CommandError, CommandTimeoutError
from ciwarden.models import (
    ErrorType,
    FailureDetail,
    RemediationReason,
    VerificationResult,
)
from ciwarden.services import CommandResult


def all_tools(name: str) -> str:
    return f"/usr/bin/{name}"


def make_engine(
    workspace: FakeWorkspace,
    pulls: FakePullRequests,
    cwd: Path,
    produces: str = "",
    error: Exception | None = None,
    which=all_tools,
    **kwargs,
) -> tuple[RemediationEngine, FakeRunner]:
    runner = FakeRunner(workspace, produces=produces, error=error)
    engine = RemediationEngine(
        workspace=workspace,
        pull_requests=pulls,
        tools=ToolDetector(cwd, which=which),
        runner=runner,
        branch_suffix=lambda: "1700000000000",
        **kwargs,
    )
    return engine, runner


def lint_failure(files: list[str] | None = None, summary: str = "1 error") -> FailureDetail:
    return FailureDetail(
        check_name="ruff",
        error_type=ErrorType.LINTING_ERROR,
        summary=summary,
        affected_files=["src/app.py"] if files is None else files,
    )


@pytest.mark.unit
class TestDiffHelpers:
    """Tests for diff inspection helpers."""

    def test_count_excludes_file_headers(self) -> None:
        assert count_changed_lines(make_diff(3)) == 3

    def test_count_empty(self) -> None:
        assert count_changed_lines("") == 0

    def test_count_includes_dash_and_plus_content(self) -> None:
        diff = (
            "diff --git a/schema.sql b/schema.sql\n"
            "index 1111111..2222222 100644\n"
            "--- a/schema.sql\n"
            "+++ b/schema.sql\n"
            "@@ -1,3 +1,3 @@\n"
            " CREATE TABLE t (id int);\n"
            "--- old comment\n"
            "+++ new comment\n"
            " SELECT 1;\n"
        )
        assert count_changed_lines(diff) == 2

    def test_count_across_files_and_hunks(self) -> None:
        diff = (
            make_diff(3, "a.py")
            + "@@ -10 +10 @@\n-x = 1\n+x = 2\n"
            + "diff --git a/config.yml b/config.yml\n"
            "--- a/config.yml\n"
            "+++ b/config.yml\n"
            "@@ -1,2 +1,1 @@\n"
            "----\n"
            " key: value\n"
            "\\ No newline at end of file\n"
        )
        assert count_changed_lines(diff) == 6

    def test_changed_paths(self) -> None:
        diff = make_diff(1, "a.py") + make_diff(2, "pkg/b.py") + make_diff(1, "a.py")
        assert changed_paths(diff) == ["a.py", "pkg/b.py"]


@pytest.mark.asyncio
@pytest.mark.unit
class TestAttemptFix:
    """Tests for RemediationEngine.attempt_fix()."""

    async def test_lint_fix_opens_pull_request(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        """Three changed lines, no verifier: the fix is published."""
        engine, runner = make_engine(workspace, pulls, tmp_path, produces=make_diff(3))

        result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.success is True
        assert result.changed_lines == 3
        assert result.pr_number == 42
        assert result.attempts == 1
        assert runner.calls == [["ruff", "check", "--fix", "src/app.py"]]

        branch = "feature-autofix-1700000000000"
        assert branch in workspace.branches
        assert workspace.staged == ["src/app.py"]
        assert "Remediation-Category: linting_error" in workspace.commits[0]
        assert workspace.pushes == [("origin", branch, True)]
        assert workspace.branch == "feature"
        assert workspace.releases == 1

        spec = pulls.created[0]
        assert spec.head == branch
        assert spec.base == "feature"
        assert "**Auto-Fix Details**" in spec.body
        assert "- Affected files: 1" in spec.body
        assert "- Original branch: feature" in spec.body

    async def test_too_many_changes_rolls_back(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, _ = make_engine(workspace, pulls, tmp_path, produces=make_diff(1200))

        result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.success is False
        assert result.reason == RemediationReason.TOO_MANY_CHANGES
        assert result.rolled_back is True
        assert result.changed_lines == 1200
        assert workspace.diff_text == ""
        assert workspace.commits == []
        assert pulls.created == []

    async def test_change_ceiling_is_inclusive(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, _ = make_engine(
            workspace,
            pulls,
            tmp_path,
            produces=make_diff(10),
            config=RemediationConfig(max_changed_lines=10),
        )
        result = await engine.attempt_fix(lint_failure(), "PR-1")
        assert result.success is True
        assert result.changed_lines == 10

    async def test_rollback_restores_user_changes(
        self, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        user_diff = make_diff(2, "notes.py")
        workspace = FakeWorkspace(diff_text=user_diff)
        engine, _ = make_engine(workspace, pulls, tmp_path, produces=make_diff(1200))

        result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.rolled_back is True
        assert await workspace.diff() == user_diff

    @pytest.mark.parametrize("dry_run", [True, False])
    async def test_type_errors_are_never_fixed(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path, dry_run: bool
    ) -> None:
        engine, runner = make_engine(workspace, pulls, tmp_path, produces=make_diff(1))
        failure = FailureDetail(
            check_name="mypy", error_type=ErrorType.TYPE_ERROR, affected_files=["a.py"]
        )

        result = await engine.attempt_fix(failure, "PR-1", dry_run=dry_run)

        assert result.success is False
        assert result.reason == RemediationReason.LIMITED_AUTO_FIX_CAPABILITY
        assert runner.calls == []
        assert engine.session.attempts.get("PR-1", ErrorType.TYPE_ERROR) == 0

    async def test_max_attempts_reached(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        """Two failed attempts, then the third call is declined without running a fixer."""
        engine, runner = make_engine(
            workspace, pulls, tmp_path, error=CommandError("ruff exited with 1")
        )

        first = await engine.attempt_fix(lint_failure(), "PR-1")
        second = await engine.attempt_fix(lint_failure(), "PR-1")
        third = await engine.attempt_fix(lint_failure(), "PR-1")

        assert first.reason == RemediationReason.EXECUTION_FAILED
        assert second.reason == RemediationReason.EXECUTION_FAILED
        assert third.success is False
        assert third.reason == RemediationReason.MAX_ATTEMPTS_REACHED
        assert third.attempts == 2
        assert len(runner.calls) == 2

    async def test_attempts_are_per_subject_and_type(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, runner = make_engine(workspace, pulls, tmp_path, error=CommandError("boom"))
        for _ in range(2):
            await engine.attempt_fix(lint_failure(), "PR-1")

        other_pr = await engine.attempt_fix(lint_failure(), "PR-2")
        assert other_pr.reason == RemediationReason.EXECUTION_FAILED
        assert len(runner.calls) == 3

    async def test_dry_run_is_idempotent(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, runner = make_engine(workspace, pulls, tmp_path, produces=make_diff(3))

        results = [await engine.attempt_fix(lint_failure(), "PR-1", dry_run=True) for _ in range(4)]

        for result in results:
            assert result.success is True
            assert result.reason == RemediationReason.DRY_RUN
            assert result.message == "Would run: `ruff check --fix src/app.py`"
        assert runner.calls == []
        assert workspace.begins == 0
        metrics = engine.get_metrics()
        assert metrics.dry_run_attempts == 4
        assert metrics.total_attempts == 0
        assert metrics.successful_fixes == 0
        assert metrics.failed_fixes == 0

    async def test_dry_run_default_from_config(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, runner = make_engine(
            workspace, pulls, tmp_path, config=RemediationConfig(enable_dry_run=True)
        )
        result = await engine.attempt_fix(lint_failure(), "PR-1")
        assert result.reason == RemediationReason.DRY_RUN
        assert runner.calls == []

    async def test_verification_failure_rolls_back(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        verifier = FakeVerifier(VerificationResult(success=False, errors=["test failed"]))
        engine, _ = make_engine(
            workspace, pulls, tmp_path, produces=make_diff(3), verifier=verifier
        )

        result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.success is False
        assert result.reason == RemediationReason.VERIFICATION_FAILED
        assert result.verification_failed is True
        assert result.verification_errors == ["test failed"]
        assert result.rolled_back is True
        assert workspace.diff_text == ""
        assert verifier.calls == 1
        metrics = engine.get_metrics()
        assert metrics.verification_failures == 1
        assert metrics.rollback_count == 1

    async def test_verification_timeout(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, _ = make_engine(
            workspace,
            pulls,
            tmp_path,
            produces=make_diff(3),
            verifier=FakeVerifier(delay=5),
            config=RemediationConfig(verification_timeout=0.05),
        )

        result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.reason == RemediationReason.VERIFICATION_FAILED
        assert "timed out" in result.verification_errors[0]

    async def test_verification_can_be_disabled(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        verifier = FakeVerifier(VerificationResult(success=False, errors=["nope"]))
        engine, _ = make_engine(
            workspace,
            pulls,
            tmp_path,
            produces=make_diff(3),
            verifier=verifier,
            config=RemediationConfig(require_verification=False),
        )
        result = await engine.attempt_fix(lint_failure(), "PR-1")
        assert result.success is True
        assert verifier.calls == 0

    async def test_no_changes(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, _ = make_engine(workspace, pulls, tmp_path, produces="")

        result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.success is False
        assert result.reason == RemediationReason.NO_CHANGES
        assert result.rolled_back is False
        assert workspace.releases == 1

    async def test_command_timeout_is_execution_failure(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, _ = make_engine(
            workspace, pulls, tmp_path, error=CommandTimeoutError("ruff timed out after 300s")
        )

        result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.reason == RemediationReason.EXECUTION_FAILED
        assert result.rolled_back is True
        assert "timed out" in (result.message or "")

    async def test_publish_failure_rolls_back_branch(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        workspace.fail_on = "push"
        engine, _ = make_engine(workspace, pulls, tmp_path, produces=make_diff(3))

        result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.reason == RemediationReason.EXECUTION_FAILED
        assert result.rolled_back is True
        assert workspace.branches == ["feature"]
        assert workspace.branch == "feature"
        assert workspace.diff_text == ""

    async def test_snapshot_failure(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        workspace.fail_on = "begin"
        engine, runner = make_engine(workspace, pulls, tmp_path, produces=make_diff(3))

        result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.reason == RemediationReason.EXECUTION_FAILED
        assert result.rolled_back is False
        assert runner.calls == []

    async def test_rollback_errors_are_logged(
        self,
        workspace: FakeWorkspace,
        pulls: FakePullRequests,
        tmp_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        workspace.fail_on = "rollback"
        engine, _ = make_engine(workspace, pulls, tmp_path, produces=make_diff(1200))

        with caplog.at_level(logging.WARNING, logger="ciwarden"):
            result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.reason == RemediationReason.TOO_MANY_CHANGES
        assert "Rollback failed" in caplog.text

    async def test_not_auto_fixable(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, runner = make_engine(workspace, pulls, tmp_path)
        failure = FailureDetail(check_name="pytest", error_type=ErrorType.TEST_FAILURE)

        result = await engine.attempt_fix(failure, "PR-1")

        assert result.reason == RemediationReason.NOT_AUTO_FIXABLE
        assert runner.calls == []

    async def test_unsupported_language(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, runner = make_engine(workspace, pulls, tmp_path)
        result = await engine.attempt_fix(lint_failure(files=["docs/index.md"]), "PR-1")
        assert result.reason == RemediationReason.UNSUPPORTED_LANGUAGE
        assert result.language == "unknown"
        assert runner.calls == []

    async def test_missing_lint_tool_mutates_nothing(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, runner = make_engine(workspace, pulls, tmp_path, which=lambda name: None)

        result = await engine.attempt_fix(lint_failure(), "PR-1")

        assert result.reason == RemediationReason.NO_LINT_TOOL
        assert workspace.begins == 0
        assert runner.calls == []

    async def test_format_falls_back_to_second_tool(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, runner = make_engine(
            workspace,
            pulls,
            tmp_path,
            produces=make_diff(2),
            which=lambda name: "/usr/bin/ruff" if name == "ruff" else None,
        )
        failure = FailureDetail(
            check_name="black", error_type=ErrorType.FORMAT_ERROR, affected_files=["src/app.py"]
        )

        result = await engine.attempt_fix(failure, "PR-1")

        assert result.success is True
        assert runner.calls == [["ruff", "format", "src/app.py"]]
        assert pulls.created[0].title == "style: auto-format code"

    async def test_npm_audit_fix_for_dependency_vulnerability(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, runner = make_engine(
            workspace, pulls, tmp_path, produces=make_diff(4, "package-lock.json")
        )
        failure = FailureDetail(
            check_name="npm audit",
            error_type=ErrorType.SECURITY_ISSUE,
            summary="High severity vulnerability in dependency lodash",
            affected_files=["package-lock.json"],
        )

        result = await engine.attempt_fix(failure, "PR-1")

        assert result.success is True
        assert runner.calls == [["npm", "audit", "fix"]]
        assert workspace.staged == ["package-lock.json"]

    async def test_npm_audit_summary_with_plural_vulnerabilities(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, runner = make_engine(
            workspace, pulls, tmp_path, produces=make_diff(2, "package-lock.json")
        )
        summary = "found 3 high severity vulnerabilities"
        failure = FailureDetail(
            check_name="npm audit",
            error_type=ErrorType.SECURITY_ISSUE,
            summary=summary,
            affected_files=["package-lock.json"],
        )

        result = await engine.attempt_fix(failure, "PR-1")

        assert result.success is True
        assert runner.calls == [["npm", "audit", "fix"]]
        suggestion = get_suggestion(summary, ErrorType.SECURITY_ISSUE, ["package-lock.json"])
        assert suggestion.command == "npm audit fix"

    @pytest.mark.parametrize(
        ("summary", "files"),
        [
            ("Secret found in config", ["package-lock.json"]),
            ("Vulnerable dependency", ["requirements.py"]),
        ],
    )
    async def test_security_limits(
        self,
        workspace: FakeWorkspace,
        pulls: FakePullRequests,
        tmp_path: Path,
        summary: str,
        files: list[str],
    ) -> None:
        engine, runner = make_engine(workspace, pulls, tmp_path)
        failure = FailureDetail(
            check_name="security",
            error_type=ErrorType.SECURITY_ISSUE,
            summary=summary,
            affected_files=files,
        )

        result = await engine.attempt_fix(failure, "PR-1")

        assert result.reason == RemediationReason.LIMITED_AUTO_FIX_CAPABILITY
        assert runner.calls == []

    async def test_go_lint_runs_project_wide(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        """golangci-lint takes no file arguments; affected files are still staged."""
        engine, runner = make_engine(
            workspace, pulls, tmp_path, produces=make_diff(2, "cmd/main.go")
        )
        failure = FailureDetail(
            check_name="golangci-lint",
            error_type=ErrorType.LINTING_ERROR,
            affected_files=["cmd/main.go"],
        )
        result = await engine.attempt_fix(failure, "PR-1")

        assert result.success is True
        assert runner.calls == [["golangci-lint", "run", "--fix"]]
        assert workspace.staged == ["cmd/main.go"]

    async def test_transactions_are_serialized(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        active = 0
        peak = 0

        async def slow_runner(args: list[str], **kwargs: object) -> CommandResult:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            workspace.diff_text = make_diff(1)
            active -= 1
            return CommandResult(args=args, exit_code=0, stdout="", stderr="")

        engine = RemediationEngine(
            workspace=workspace,
            pull_requests=pulls,
            tools=ToolDetector(tmp_path, which=all_tools),
            runner=slow_runner,
        )

        results = await asyncio.gather(
            engine.attempt_fix(lint_failure(), "PR-1"),
            engine.attempt_fix(lint_failure(), "PR-2"),
            engine.attempt_fix(lint_failure(), "PR-3"),
        )

        assert all(r.success for r in results)
        assert peak == 1


@pytest.mark.asyncio
@pytest.mark.unit
class TestMetrics:
    """Tests for remediation metrics."""

    async def test_metrics_track_outcomes(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, runner = make_engine(workspace, pulls, tmp_path, produces=make_diff(3))
        await engine.attempt_fix(lint_failure(), "PR-1")
        runner.produces = make_diff(1200)
        await engine.attempt_fix(lint_failure(), "PR-2")

        metrics = engine.get_metrics()
        assert metrics.total_attempts == 2
        assert metrics.successful_fixes == 1
        assert metrics.failed_fixes == 1
        assert metrics.rollback_count == 1
        assert metrics.by_error_type[ErrorType.LINTING_ERROR].attempts == 2
        assert metrics.by_error_type[ErrorType.LINTING_ERROR].successes == 1
        assert metrics.by_reason == {"too_many_changes": 1}
        assert metrics.average_fix_duration_ms is not None

    async def test_metrics_snapshot_is_a_copy(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, _ = make_engine(workspace, pulls, tmp_path)
        snapshot = engine.get_metrics()
        snapshot.total_attempts = 99
        assert engine.get_metrics().total_attempts == 0

    async def test_export_and_reset(
        self, workspace: FakeWorkspace, pulls: FakePullRequests, tmp_path: Path
    ) -> None:
        engine, _ = make_engine(workspace, pulls, tmp_path, error=CommandError("boom"))
        await engine.attempt_fix(lint_failure(), "PR-1")

        exported = json.loads(engine.export_metrics())
        assert exported["total_attempts"] == 1
        assert exported["by_reason"] == {"execution_failed": 1}
        assert exported["by_error_type"]["linting_error"]["failures"] == 1

        engine.reset_metrics()
        assert engine.get_metrics().total_attempts == 0
