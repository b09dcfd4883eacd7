"""External service integrations for ciwarden.

This package provides the collaborator interfaces and their adapters:
- protocols: CheckStatusProvider, Workspace, PullRequestCreator, Verifier
- github: gh CLI backed status provider and pull request creator
- git: git working tree with stash-based snapshots
- checks: local verification commands
- process: async subprocess execution with timeout and output cap
"""

from .checks import ChecksError, ChecksVerifier, run_single_check
from .git import GitWorkspace, get_repo_root, run_git
from .github import GhCheckStatusProvider, GhClient, GhPullRequests
from .process import CommandResult, run_command
from .protocols import (
    CheckStatusProvider,
    PullRequestCreator,
    SnapshotToken,
    Verifier,
    Workspace,
)

__all__ = [
    "CheckStatusProvider",
    "ChecksError",
    "ChecksVerifier",
    "CommandResult",
    "GhCheckStatusProvider",
    "GhClient",
    "GhPullRequests",
    "GitWorkspace",
    "PullRequestCreator",
    "SnapshotToken",
    "Verifier",
    "Workspace",
    "get_repo_root",
    "run_command",
    "run_git",
    "run_single_check",
]
