"""Helpers shared by CLI commands."""

import asyncio
from pathlib import Path

import typer

from ..config import CiwardenConfig, get_config_dir, load_config
from ..errors import GitError
from ..output import OutputContext
from ..services import GhCheckStatusProvider, GhClient, get_repo_root


def resolve_project(ctx: OutputContext) -> tuple[Path, CiwardenConfig]:
    """Find the repository root and load its configuration.

    Exits with code 3 outside a git repository.
    """
    try:
        repo_root = asyncio.run(get_repo_root())
    except GitError:
        ctx.error("Not a git repository")
        raise typer.Exit(3) from None
    return repo_root, load_config(get_config_dir(repo_root))


def make_client(config: CiwardenConfig, repo_root: Path) -> GhClient:
    return GhClient(exec_path=config.github.exec, repo=config.github.repo, cwd=repo_root)


def make_provider(config: CiwardenConfig, repo_root: Path) -> GhCheckStatusProvider:
    return GhCheckStatusProvider(make_client(config, repo_root))
