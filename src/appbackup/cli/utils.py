# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.20
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/cli/utils.py

"""
CLI utility functions shared by the appbackup commands.

- Configuration loading with console error output
- Remote channel construction
- Uniform reporting of failed runs with the right exit code
"""

from pathlib import Path
from typing import Callable, Optional, TypeVar

import typer
from rich.console import Console

from appbackup.config.manager import BackupConfig
from appbackup.storage.remote import RemoteChannel, RemoteHost
from appbackup.system.exceptions import (
    AllocationError,
    AppBackupError,
    ConfigError,
    ConnectivityError,
    MaintenanceTimeout,
    QuiesceTimeout,
)
from appbackup.system.logging_setup import setup_logging

T = TypeVar("T")

EXIT_CATEGORIES = [
    (QuiesceTimeout, "GC quiesce timeout"),
    (MaintenanceTimeout, "maintenance drain timeout"),
    (ConnectivityError, "remote host unreachable"),
    (AllocationError, "snapshot allocation failed"),
]


def exit_category(error: AppBackupError) -> str:
    """Operator-facing label for a failed run, chosen by error type."""
    if error.is_usage_error:
        return "configuration or usage error"
    for error_type, category in EXIT_CATEGORIES:
        if isinstance(error, error_type):
            return category
    return "remote or transfer step failed"


def load_config_with_console(console: Console, config_path: Optional[Path] = None,
                             verbose: bool = False) -> BackupConfig:
    """
    Load configuration, printing a clean error and exiting 1 on failure.

    Raises:
        typer.Exit: If configuration loading fails
    """
    try:
        config = BackupConfig.load(config_path)
    except ConfigError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        raise typer.Exit(1)

    setup_logging(verbose=verbose, local_log=config.local_log, host=config.hostname)
    return config


def open_channel(config: BackupConfig, host: Optional[str] = None,
                 for_restore: bool = False) -> RemoteChannel:
    """Build the run's channel; no connection is made until the first command."""
    return RemoteChannel(RemoteHost.from_config(config, host, for_restore=for_restore), config)


def run_operation(console: Console, operation: str, func: Callable[[], T]) -> T:
    """
    Run one CLI operation, turning failures into operator-facing exits.

    Every abort names the failing phase and the exit code category.

    Raises:
        typer.Exit: with the failing error's exit code
    """
    try:
        return func()
    except AppBackupError as e:
        phase = f" during {e.phase}" if e.phase else ""
        console.print(f"[red]✗[/red] {operation.capitalize()} failed{phase}: {e}")
        console.print(f"[dim]exit {e.exit_code}: {exit_category(e)}[/dim]")
        raise typer.Exit(e.exit_code)
    except KeyboardInterrupt:
        console.print(f"[yellow]![/yellow] {operation.capitalize()} interrupted")
        raise typer.Exit(130)
