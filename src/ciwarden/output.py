"""Output formatting for the ciwarden CLI."""

import json
from dataclasses import dataclass
from typing import Any

from rich.console import Console
from rich.table import Table

from .models import CheckSummary, RemediationResult


@dataclass
class OutputContext:
    """Context for output formatting."""

    console: Console
    json_mode: bool = False

    def print(self, message: str, style: str | None = None) -> None:
        """Print message unless JSON mode is active."""
        if not self.json_mode:
            self.console.print(message, style=style)

    def print_json(self, data: dict[str, Any]) -> None:
        """Print JSON data."""
        if self.json_mode:
            print(json.dumps(data, indent=2, default=str))

    def error(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Print error in appropriate format."""
        if self.json_mode:
            self.print_json({"error": message, **(data or {})})
        else:
            self.console.print(f"[red]Error: {message}[/red]")

    def success(self, message: str) -> None:
        """Print success message unless JSON mode is active."""
        if not self.json_mode:
            self.console.print(f"[green]{message}[/green]")


def render_summary(summary: CheckSummary, title: str) -> Table:
    """Build a Rich table describing failed checks and overall counts."""
    table = Table(title=title, show_lines=False)
    table.add_column("Check")
    table.add_column("Type")
    table.add_column("Files", justify="right")
    table.add_column("Suggested fix")
    for failure in summary.failure_details:
        table.add_row(
            failure.check_name,
            failure.error_type.value,
            str(len(failure.affected_files)),
            failure.suggested_fix or "-",
        )
    table.caption = (
        f"{summary.passed} passed, {summary.failed} failed, "
        f"{summary.pending} pending, {summary.skipped} skipped "
        f"({summary.total} total): {summary.overall_status}"
    )
    return table


def describe_result(result: RemediationResult) -> str:
    """One-line human description of a remediation result."""
    if result.success and result.pull_request is not None:
        return (
            f"[green]fixed[/green] {result.changed_lines} lines, "
            f"PR #{result.pull_request.number} {result.pull_request.url}"
        )
    if result.success:
        return f"[cyan]{result.message or 'ok'}[/cyan]"
    reason = result.reason.value if result.reason else "failed"
    suffix = " (rolled back)" if result.rolled_back else ""
    detail = f": {result.message}" if result.message else ""
    return f"[yellow]{reason}{suffix}[/yellow]{detail}"


# Global output context (set by cli.py main callback)
_ctx: OutputContext | None = None


def get_output_context() -> OutputContext:
    """Get the current output context.

    Returns a default OutputContext if not yet initialized by CLI.
    """
    if _ctx is None:
        return OutputContext(Console())
    return _ctx


def set_output_context(ctx: OutputContext) -> None:
    """Set the global output context. Called by CLI main callback."""
    global _ctx
    _ctx = ctx
