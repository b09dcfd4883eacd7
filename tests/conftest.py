"""Shared test fixtures for ciwarden tests."""

import asyncio
import logging
import os
import subprocess
from collections.abc import Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from ciwarden.errors import CommandError
from ciwarden.models import (
    CheckOutput,
    CheckRun,
    CommitStatus,
    PullRequestInfo,
    PullRequestRef,
    PullRequestSpec,
    VerificationResult,
)
from ciwarden.services import CommandResult, SnapshotToken


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_git_repo(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary git repository.

    Initializes a git repo with user config and an initial commit.
    Changes cwd to the repo directory for the duration of the test.
    """
    subprocess.run(
        ["git", "init"],
        cwd=tmp_path,
        check=True,
        capture_output=True,
    )
    subprocess.run(
        ["git", "config", "user.email", "test@test.com"],
        cwd=tmp_path,
        check=True,
        capture_output=True,
    )
    subprocess.run(
        ["git", "config", "user.name", "Test User"],
        cwd=tmp_path,
        check=True,
        capture_output=True,
    )

    # Create initial commit
    (tmp_path / "README.md").write_text("# Test\n")
    subprocess.run(
        ["git", "add", "."],
        cwd=tmp_path,
        check=True,
        capture_output=True,
    )
    subprocess.run(
        ["git", "commit", "-m", "Initial commit"],
        cwd=tmp_path,
        check=True,
        capture_output=True,
    )

    original_cwd = os.getcwd()
    os.chdir(tmp_path)
    try:
        yield tmp_path
    finally:
        os.chdir(original_cwd)


# ----------------------------------------------------------------------
# Builders
# ----------------------------------------------------------------------


def make_run(
    name: str,
    conclusion: str | None = "success",
    summary: str | None = None,
    text: str | None = None,
    status: str | None = None,
) -> CheckRun:
    """Build a check run; a None conclusion means still in progress."""
    return CheckRun(
        name=name,
        status=status or ("completed" if conclusion else "in_progress"),
        conclusion=conclusion,
        output=CheckOutput(summary=summary, text=text),
        url=f"https://github.com/acme/app/runs/{name}",
    )


def make_status(context: str, state: str = "success", description: str | None = None) -> CommitStatus:
    return CommitStatus(context=context, state=state, description=description)


def make_diff(changed_lines: int, path: str = "src/app.py") -> str:
    """Unified diff touching ``path`` with exactly ``changed_lines`` +/- lines."""
    body = "".join(f"-old {i}\n" if i % 2 else f"+new {i}\n" for i in range(changed_lines))
    removed = changed_lines // 2
    added = changed_lines - removed
    return (
        f"diff --git a/{path} b/{path}\n"
        f"index 1111111..2222222 100644\n"
        f"--- a/{path}\n"
        f"+++ b/{path}\n"
        f"@@ -1,{removed + 1} +1,{added + 1} @@\n"
        f" context\n"
        f"{body}"
    )


# ----------------------------------------------------------------------
# Fakes for the collaborator protocols
# ----------------------------------------------------------------------


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProvider:
    """Serves one snapshot of checks per poll; the last snapshot repeats."""

    def __init__(
        self,
        snapshots: list[tuple[list[CheckRun], list[CommitStatus]]],
        head_sha: str = "abc123",
        head_ref: str = "feature",
    ) -> None:
        self.snapshots = snapshots
        self.head_sha = head_sha
        self.head_ref = head_ref
        self.polls = 0

    def _current(self) -> tuple[list[CheckRun], list[CommitStatus]]:
        return self.snapshots[min(self.polls, len(self.snapshots)) - 1]

    async def pull_request(self, number: int) -> PullRequestInfo:
        self.polls += 1
        return PullRequestInfo(
            number=number, head_sha=self.head_sha, head_ref=self.head_ref, base_ref="main"
        )

    async def check_runs_for_commit(self, sha: str) -> list[CheckRun]:
        return self._current()[0]

    async def combined_status_for_ref(self, sha: str) -> list[CommitStatus]:
        return self._current()[1]


class FakeWorkspace:
    """In-memory working tree.

    ``diff_text`` is the uncommitted diff; a fixer replaces it through
    ``FakeRunner``. Snapshots save and restore it like a stash would.
    """

    def __init__(self, diff_text: str = "", branch: str = "feature") -> None:
        self.diff_text = diff_text
        self.branch = branch
        self.branches = [branch]
        self.staged: list[str] = []
        self.commits: list[str] = []
        self.pushes: list[tuple[str, str, bool]] = []
        self.rollbacks = 0
        self.releases = 0
        self.begins = 0
        self.fail_on: str | None = None

    def _maybe_fail(self, op: str) -> None:
        if self.fail_on == op:
            raise CommandError(f"{op} failed")

    async def current_branch(self) -> str:
        return self.branch

    async def has_uncommitted_changes(self) -> bool:
        return bool(self.diff_text)

    async def begin(self) -> SnapshotToken:
        self._maybe_fail("begin")
        self.begins += 1
        token = SnapshotToken(
            branch=self.branch,
            head_sha="abc123",
            stash_ref=self.diff_text or None,
        )
        self.diff_text = ""
        return token

    async def rollback(self, token: SnapshotToken) -> None:
        self.rollbacks += 1
        self._maybe_fail("rollback")
        for name in token.created_branches:
            self.branches.remove(name)
        token.created_branches.clear()
        self.branch = token.branch
        self.diff_text = token.stash_ref or ""

    async def release(self, token: SnapshotToken) -> None:
        self.releases += 1
        self.branch = token.branch
        self.diff_text = token.stash_ref or ""

    async def create_branch(self, name: str) -> None:
        self.branches.append(name)
        self.branch = name

    async def stage(self, paths: list[str]) -> None:
        self.staged = list(paths)

    async def commit(self, message: str) -> str:
        self._maybe_fail("commit")
        self.commits.append(message)
        return f"sha{len(self.commits)}"

    async def push(self, remote: str, branch: str, set_upstream: bool = True) -> None:
        self._maybe_fail("push")
        self.pushes.append((remote, branch, set_upstream))

    async def diff(self) -> str:
        return self.diff_text


class FakeRunner:
    """Stands in for ``run_command``: applies ``produces`` to the workspace."""

    def __init__(self, workspace: FakeWorkspace, produces: str = "", error: Exception | None = None):
        self.workspace = workspace
        self.produces = produces
        self.error = error
        self.calls: list[list[str]] = []

    async def __call__(self, args: list[str], **kwargs: object) -> CommandResult:
        self.calls.append(list(args))
        if self.error is not None:
            raise self.error
        self.workspace.diff_text = self.produces
        return CommandResult(args=list(args), exit_code=0, stdout="", stderr="")


class FakePullRequests:
    def __init__(self, number: int = 42) -> None:
        self.number = number
        self.created: list[PullRequestSpec] = []

    async def create_pull_request(self, spec: PullRequestSpec) -> PullRequestRef:
        self.created.append(spec)
        return PullRequestRef(
            number=self.number,
            url=f"https://github.com/acme/app/pull/{self.number}",
            branch=spec.head,
        )


class FakeVerifier:
    def __init__(self, result: VerificationResult | None = None, delay: float = 0.0) -> None:
        self.result = result or VerificationResult(success=True)
        self.delay = delay
        self.calls = 0

    async def run(self, timeout: float) -> VerificationResult:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.result


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def workspace() -> FakeWorkspace:
    return FakeWorkspace()


@pytest.fixture
def pulls() -> FakePullRequests:
    return FakePullRequests()


@pytest.fixture(autouse=True)
def reset_package_logger() -> Generator[None, None, None]:
    """Undo handlers and propagation changes made by CLI invocations."""
    yield
    logger = logging.getLogger("ciwarden")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
