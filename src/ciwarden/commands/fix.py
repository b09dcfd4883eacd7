"""Fix command: attempt automated fixes for a pull request's failed checks."""

import asyncio
import logging
from pathlib import Path

import typer

from ..config import CiwardenConfig
from ..core import CIPoller, RemediationEngine, ToolDetector
from ..errors import TransportError
from ..models import RemediationResult
from ..output import describe_result, get_output_context
from ..services import ChecksVerifier, GhPullRequests, GitWorkspace
from .common import make_client, make_provider, resolve_project

logger = logging.getLogger(__name__)


async def _run_fixes(
    pr: int,
    repo_root: Path,
    config: CiwardenConfig,
    only: list[str],
    dry_run: bool | None,
    verify: bool,
) -> tuple[RemediationEngine, list[tuple[str, RemediationResult]]]:
    client = make_client(config, repo_root)
    provider = make_provider(config, repo_root)
    poller = CIPoller(provider)

    pr_info = await provider.pull_request(pr)
    summary = await poller.get_commit_check_status(pr_info.head_sha)

    workspace = GitWorkspace(repo_root)
    branch = await workspace.current_branch()
    if pr_info.head_ref and branch != pr_info.head_ref:
        logger.warning(f"Checked out branch {branch} is not the PR head branch {pr_info.head_ref}")

    remediation = config.remediation
    if not verify:
        remediation = remediation.model_copy(update={"require_verification": False})

    engine = RemediationEngine(
        workspace=workspace,
        pull_requests=GhPullRequests(client),
        tools=ToolDetector(repo_root),
        config=remediation,
        verifier=ChecksVerifier(config.verify, repo_root),
    )

    results = []
    for failure in summary.failure_details:
        if only and failure.check_name not in only:
            continue
        result = await engine.attempt_fix(failure, f"PR-{pr}", dry_run=dry_run)
        results.append((failure.check_name, result))
    return engine, results


def fix(
    pr: int = typer.Argument(..., help="Pull request number"),
    dry_run: bool | None = typer.Option(
        None, "--dry-run/--apply", help="Only report what would run (default from config)"
    ),
    check: list[str] = typer.Option(
        [], "--check", "-c", help="Only fix the named check (repeatable)"
    ),
    no_verify: bool = typer.Option(
        False, "--no-verify", help="Skip local verification before publishing"
    ),
) -> None:
    """Attempt automated fixes for failed checks on a pull request."""
    ctx = get_output_context()
    repo_root, config = resolve_project(ctx)

    try:
        engine, results = asyncio.run(
            _run_fixes(pr, repo_root, config, check, dry_run, verify=not no_verify)
        )
    except TransportError as e:
        ctx.error(str(e))
        raise typer.Exit(3) from None

    if ctx.json_mode:
        ctx.print_json(
            {
                "results": [
                    {"check": name, **result.model_dump(mode="json")} for name, result in results
                ],
                "metrics": engine.get_metrics().model_dump(mode="json"),
            }
        )
    elif not results:
        ctx.success("No failed checks to fix")
    else:
        for name, result in results:
            ctx.console.print(f"[bold]{name}[/bold]: {describe_result(result)}")
        metrics = engine.get_metrics()
        ctx.print(
            f"\n{metrics.successful_fixes} fixed, {metrics.failed_fixes} failed, "
            f"{metrics.dry_run_attempts} simulated"
        )

    if any(not result.success for _, result in results):
        raise typer.Exit(1)
