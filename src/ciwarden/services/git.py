"""Git working tree adapter.

Snapshots use ``git stash`` so a fix always runs against a clean tree
and the user's uncommitted work comes back on rollback or release.
"""

import logging
import time
from pathlib import Path

from ..constants import GIT_TIMEOUT
from ..errors import CommandError, GitError
from .process import run_command
from .protocols import SnapshotToken

logger = logging.getLogger(__name__)

STASH_MESSAGE_PREFIX = "ciwarden-snapshot"


async def run_git(*args: str, cwd: Path | None = None, timeout: float = GIT_TIMEOUT) -> str:
    """Run a git command and return stripped stdout.

    Raises:
        GitError: If git is missing, times out, or exits non-zero
    """
    try:
        result = await run_command(["git", *args], cwd=cwd, timeout=timeout, check=True)
    except CommandError as e:
        raise GitError(str(e)) from e
    return result.stdout.strip()


async def get_repo_root(cwd: Path | None = None) -> Path:
    """Get the top-level directory of the repository containing cwd."""
    return Path(await run_git("rev-parse", "--show-toplevel", cwd=cwd))


class GitWorkspace:
    """Workspace backed by a local git checkout."""

    def __init__(self, repo_root: Path, timeout: float = GIT_TIMEOUT) -> None:
        self.repo_root = repo_root
        self.timeout = timeout

    async def _git(self, *args: str) -> str:
        return await run_git(*args, cwd=self.repo_root, timeout=self.timeout)

    async def current_branch(self) -> str:
        return await self._git("rev-parse", "--abbrev-ref", "HEAD")

    async def head_sha(self) -> str:
        return await self._git("rev-parse", "HEAD")

    async def has_uncommitted_changes(self) -> bool:
        return bool(await self._git("status", "--porcelain"))

    async def begin(self) -> SnapshotToken:
        """Save uncommitted work (if any) and leave a clean tree."""
        token = SnapshotToken(branch=await self.current_branch(), head_sha=await self.head_sha())
        if not await self.has_uncommitted_changes():
            logger.debug("Working tree clean, snapshot is a no-op")
            return token

        message = f"{STASH_MESSAGE_PREFIX}-{int(time.time() * 1000)}"
        await self._git("stash", "push", "--include-untracked", "-m", message)
        token.stash_ref = await self._git("rev-parse", "stash@{0}")
        logger.debug(f"Stashed uncommitted changes as {token.stash_ref[:12]}")
        return token

    async def _return_to(self, token: SnapshotToken) -> None:
        if await self.current_branch() != token.branch:
            await self._git("checkout", "--force", token.branch)

    async def _restore_stash(self, token: SnapshotToken) -> None:
        if token.stash_ref is None:
            return
        refs = (await self._git("stash", "list", "--format=%H")).splitlines()
        if token.stash_ref not in refs:
            raise GitError(f"Snapshot {token.stash_ref[:12]} is no longer in the stash list")
        await self._git("stash", "pop", f"stash@{{{refs.index(token.stash_ref)}}}")
        token.stash_ref = None

    async def rollback(self, token: SnapshotToken) -> None:
        """Discard the fixer's changes and restore the snapshot."""
        await self._git("reset", "--hard")
        await self._git("clean", "-fd")
        await self._return_to(token)
        await self._git("reset", "--hard", token.head_sha)
        for branch in token.created_branches:
            await self._git("branch", "-D", branch)
        token.created_branches.clear()
        await self._restore_stash(token)

    async def release(self, token: SnapshotToken) -> None:
        """Finish a transaction: return to the original branch and restore saved work.

        Leftover changes the fix commit did not include are discarded.
        """
        await self._git("reset", "--hard")
        await self._git("clean", "-fd")
        await self._return_to(token)
        await self._restore_stash(token)

    async def create_branch(self, name: str) -> None:
        await self._git("checkout", "-b", name)

    async def stage(self, paths: list[str]) -> None:
        if not paths:
            raise GitError("Nothing to stage")
        await self._git("add", "--", *paths)

    async def commit(self, message: str) -> str:
        await self._git("commit", "-m", message)
        return await self.head_sha()

    async def push(self, remote: str, branch: str, set_upstream: bool = True) -> None:
        args = ["push"]
        if set_upstream:
            args.append("--set-upstream")
        await run_git(*args, remote, branch, cwd=self.repo_root, timeout=self.timeout * 4)

    async def diff(self) -> str:
        # Not stripped: trailing context lines matter for counting
        try:
            result = await run_command(
                ["git", "diff", "HEAD"], cwd=self.repo_root, timeout=self.timeout, check=True
            )
        except CommandError as e:
            raise GitError(str(e)) from e
        return result.stdout
