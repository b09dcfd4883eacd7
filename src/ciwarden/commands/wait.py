"""Wait command: block until a pull request's checks finish."""

import asyncio

import typer

from ..core import CIPoller, WaitOptions
from ..errors import ChecksTimeoutError, TransportError
from ..models import ProgressUpdate
from ..output import OutputContext, get_output_context, render_summary
from .common import make_provider, resolve_project


def _progress_printer(ctx: OutputContext):
    def on_progress(update: ProgressUpdate) -> None:
        line = (
            f"[dim]{update.elapsed:6.1f}s[/dim] "
            f"[green]{update.passed} passed[/green], "
            f"[red]{update.failed} failed[/red], "
            f"[yellow]{update.pending} pending[/yellow] of {update.total}"
        )
        ctx.print(line)
        for name in update.new_failures:
            ctx.print(f"  [red]✗[/red] {name}")
        for name in update.new_passes:
            ctx.print(f"  [green]✓[/green] {name}")

    return on_progress


def wait(
    pr: int = typer.Argument(..., help="Pull request number"),
    timeout: float | None = typer.Option(
        None, "--timeout", "-t", help="Seconds to wait (default from config)"
    ),
    fixed: bool = typer.Option(False, "--fixed", help="Poll at a fixed interval"),
    no_fail_fast: bool = typer.Option(
        False, "--no-fail-fast", help="Keep waiting after a critical failure"
    ),
    retry_flaky: bool = typer.Option(
        False, "--retry-flaky", help="Re-poll failures that look transient"
    ),
) -> None:
    """Wait for CI checks on a pull request to complete."""
    ctx = get_output_context()
    repo_root, config = resolve_project(ctx)

    overrides: dict[str, object] = {"on_progress": _progress_printer(ctx)}
    if timeout is not None:
        overrides["timeout"] = timeout
    if fixed:
        overrides["poll_strategy"] = config.poll.strategy.model_copy(update={"type": "fixed"})
    if no_fail_fast:
        overrides["fail_fast"] = False
    if retry_flaky:
        overrides["retry_flaky"] = True
    options = WaitOptions.from_config(config.poll, **overrides)

    poller = CIPoller(make_provider(config, repo_root))
    try:
        result = asyncio.run(poller.wait_for_checks(pr, options))
    except ChecksTimeoutError as e:
        ctx.error(str(e))
        raise typer.Exit(124) from None
    except TransportError as e:
        ctx.error(str(e))
        raise typer.Exit(3) from None

    if ctx.json_mode:
        ctx.print_json(result.model_dump(mode="json"))
    else:
        ctx.console.print(render_summary(result.summary, f"PR #{pr}"))
        if result.reason == "no_checks":
            ctx.print("[yellow]No CI checks configured[/yellow]")
        elif result.reason == "critical_failure":
            ctx.print("[red]Stopped early on a critical failure[/red]")
        if result.retries_used:
            ctx.print(f"Flaky retries used: {result.retries_used}")

    if not result.success:
        raise typer.Exit(1)
