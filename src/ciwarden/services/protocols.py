"""Collaborator interfaces consumed by the poller and remediation engine.

Concrete adapters live beside this module (``github``, ``git``,
``checks``); tests substitute in-memory fakes.
"""

from dataclasses import dataclass, field
from typing import Protocol

from ..models import (
    CheckRun,
    CommitStatus,
    PullRequestInfo,
    PullRequestRef,
    PullRequestSpec,
    VerificationResult,
)


class CheckStatusProvider(Protocol):
    """Read access to CI state on the hosting service."""

    async def pull_request(self, number: int) -> PullRequestInfo: ...

    async def check_runs_for_commit(self, sha: str) -> list[CheckRun]: ...

    async def combined_status_for_ref(self, sha: str) -> list[CommitStatus]: ...


class PullRequestCreator(Protocol):
    """Opens pull requests for fix branches."""

    async def create_pull_request(self, spec: PullRequestSpec) -> PullRequestRef: ...


@dataclass
class SnapshotToken:
    """Handle returned by ``Workspace.begin``.

    ``stash_ref`` is None when the tree was clean, in which case
    restoring only discards the fixer's changes.
    """

    branch: str
    head_sha: str
    stash_ref: str | None = None
    created_branches: list[str] = field(default_factory=list)


class Workspace(Protocol):
    """The working tree a fix is applied to, with transactional snapshots."""

    async def current_branch(self) -> str: ...

    async def has_uncommitted_changes(self) -> bool: ...

    async def begin(self) -> SnapshotToken: ...

    async def rollback(self, token: SnapshotToken) -> None: ...

    async def release(self, token: SnapshotToken) -> None: ...

    async def create_branch(self, name: str) -> None: ...

    async def stage(self, paths: list[str]) -> None: ...

    async def commit(self, message: str) -> str: ...

    async def push(self, remote: str, branch: str, set_upstream: bool = True) -> None: ...

    async def diff(self) -> str: ...


class Verifier(Protocol):
    """Runs local checks after a fix is applied."""

    async def run(self, timeout: float) -> VerificationResult: ...
