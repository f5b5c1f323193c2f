# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.20
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/cli/main.py

"""
CLI dispatcher: parses options, loads configuration and routes to the
command handlers in appbackup.cli.commands.actions.
"""

from importlib.metadata import version
from pathlib import Path
from typing import Optional, Any

import typer
from rich.console import Console

from appbackup.cli.commands import actions as action_commands
from appbackup.cli.utils import load_config_with_console, run_operation

app = typer.Typer(
    help="""appbackup - Snapshot backups of a remote appliance

[bold green]Operations:[/bold green] backup, restore
[bold red]Appliance:[/bold red] maintenance
""",
    rich_markup_mode="rich"
)

console = Console()


class _State:
    config_path: Optional[Path] = None


state = _State()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"appbackup version {version('appbackup')}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True,
        help="Show version and exit"
    ),
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file (default: standard locations)"
    ),
) -> None:
    """appbackup - Snapshot backups of a remote appliance."""
    state.config_path = config


@app.command()
def backup(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show transfer progress"),
) -> Any:
    """[bold green]Operations[/bold green]: Take a new snapshot of the appliance."""
    config = load_config_with_console(console, state.config_path, verbose=verbose)
    return run_operation(
        console, "backup",
        lambda: action_commands.backup(console, config, verbose=verbose)
    )


@app.command()
def restore(
    host: Optional[str] = typer.Argument(None, help="Appliance to restore onto ([user@]host[:port])"),
    snapshot: Optional[str] = typer.Option(None, "--snapshot", "-s", help="Snapshot id to restore (default: current)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show transfer progress"),
) -> Any:
    """[bold green]Operations[/bold green]: Restore a snapshot onto an appliance."""
    config = load_config_with_console(console, state.config_path, verbose=verbose)
    return run_operation(
        console, "restore",
        lambda: action_commands.restore(console, config, host=host, snapshot=snapshot, verbose=verbose)
    )


@app.command()
def maintenance(
    host: Optional[str] = typer.Argument(None, help="Appliance ([user@]host[:port])"),
    no_wait: bool = typer.Option(False, "--no-wait", help="Don't wait for in-flight operations to finish"),
    disable: bool = typer.Option(False, "--disable", help="Take the appliance out of maintenance mode"),
) -> Any:
    """[bold red]Appliance[/bold red]: Put an appliance into maintenance mode."""
    if disable and no_wait:
        console.print("[red]✗[/red] --no-wait cannot be combined with --disable")
        raise typer.Exit(1)
    config = load_config_with_console(console, state.config_path)
    return run_operation(
        console, "maintenance",
        lambda: action_commands.maintenance(console, config, host=host, no_wait=no_wait, disable=disable)
    )


# =============================================================================
# ENTRY POINT
# =============================================================================

def cli_main() -> None:  # pragma: no cover - entry point
    """Entry point for the appbackup CLI application."""
    app()


if __name__ == "__main__":  # pragma: no cover
    cli_main()
