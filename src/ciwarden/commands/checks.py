"""Checks command: one-shot detailed CI status for a pull request."""

import asyncio

import typer

from ..core import CIPoller
from ..errors import TransportError
from ..output import get_output_context, render_summary
from .common import make_provider, resolve_project


def checks(
    pr: int = typer.Argument(..., help="Pull request number"),
    files: bool = typer.Option(False, "--files", help="List affected files per failure"),
) -> None:
    """Show the current check status of a pull request."""
    ctx = get_output_context()
    repo_root, config = resolve_project(ctx)
    poller = CIPoller(make_provider(config, repo_root))

    try:
        summary = asyncio.run(poller.get_detailed_check_status(pr))
    except TransportError as e:
        ctx.error(str(e))
        raise typer.Exit(3) from None

    if ctx.json_mode:
        ctx.print_json(summary.model_dump(mode="json"))
    else:
        ctx.console.print(render_summary(summary, f"PR #{pr}"))
        if files:
            for failure in summary.failure_details:
                if failure.affected_files:
                    ctx.console.print(f"[bold]{failure.check_name}[/bold]")
                    for path in failure.affected_files:
                        ctx.console.print(f"  {path}")

    if summary.failed:
        raise typer.Exit(1)
