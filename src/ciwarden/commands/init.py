"""Init command implementation."""

import subprocess

import typer

from ..config import get_config_dir, write_config_template
from ..constants import CONFIG_FILE, INIT_TOOL_CHECK_TIMEOUT
from ..output import get_output_context
from .common import resolve_project


def init() -> None:
    """Initialize ciwarden in the current repository."""
    ctx = get_output_context()
    repo_root, config = resolve_project(ctx)

    config_dir = get_config_dir(repo_root)
    config_path = config_dir / CONFIG_FILE

    if not config_path.exists():
        write_config_template(config_dir)
        ctx.console.print(f"[green]Created config template:[/green] {config_path}")
    else:
        ctx.console.print(f"[yellow]Config already exists:[/yellow] {config_path}")

    # Validate toolchain
    tools = {
        "git": ["git", "--version"],
        "gh": [config.github.exec, "auth", "status"],
    }

    all_ok = True
    for name, cmd in tools.items():
        try:
            result = subprocess.run(
                cmd, capture_output=True, text=True, timeout=INIT_TOOL_CHECK_TIMEOUT
            )
            if result.returncode == 0:
                ctx.console.print(f"[green]✓[/green] {name}")
            else:
                ctx.console.print(f"[red]✗[/red] {name}: {result.stderr.strip()[:50]}")
                all_ok = False
        except FileNotFoundError:
            ctx.console.print(f"[red]✗[/red] {name}: not found in PATH")
            all_ok = False
        except subprocess.TimeoutExpired:
            ctx.console.print(f"[yellow]?[/yellow] {name}: timed out")

    if not all_ok:
        ctx.console.print("\n[yellow]Warning: Some tools are missing or not configured[/yellow]")
        raise typer.Exit(2)

    ctx.console.print("\n[bold green]ciwarden initialized successfully![/bold green]")
