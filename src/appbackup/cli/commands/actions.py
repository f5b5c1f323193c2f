# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.20
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/cli/commands/actions.py

"""
Action command handlers - state-changing commands.

Handles: backup, restore, maintenance
"""

from typing import Any, Optional

from rich.console import Console

from appbackup.cli.utils import open_channel
from appbackup.config.manager import BackupConfig
from appbackup.core.backup import BackupOrchestrator
from appbackup.core.maintenance import MaintenanceModeController
from appbackup.core.restore import RestoreOrchestrator
from appbackup.storage.snapshots import CURRENT, SnapshotDirectoryManager


def backup(console: Console, config: BackupConfig, verbose: bool = False) -> dict[str, Any]:
    """Take a new snapshot of the configured appliance."""
    snapshots = SnapshotDirectoryManager(config.data_dir)
    with open_channel(config) as channel:
        console.print(f"Starting backup of {channel.host.hostname} ({config.backup_strategy})")
        result = BackupOrchestrator(config, channel, snapshots, verbose=verbose).run()

    console.print(f"[green]✓[/green] Completed backup of {channel.host.hostname} in snapshot {result.snapshot_id}")
    if verbose:
        console.print(f"[dim]Components: {', '.join(result.components)} ({result.elapsed:.1f}s)[/dim]")
    return {
        'operation': 'backup',
        'snapshot_id': result.snapshot_id,
        'strategy': result.strategy,
        'components': result.components,
    }


def restore(
    console: Console,
    config: BackupConfig,
    host: Optional[str] = None,
    snapshot: Optional[str] = None,
    verbose: bool = False,
) -> dict[str, Any]:
    """Restore a snapshot (default: current) onto an appliance.

    Args:
        console: Rich console for output
        config: Backup configuration
        host: Target appliance; falls back to restore_host, then hostname
        snapshot: Snapshot id to restore
        verbose: Show detailed output
    """
    snapshots = SnapshotDirectoryManager(config.data_dir)
    with open_channel(config, host, for_restore=True) as channel:
        console.print(f"Starting restore of {channel.host.hostname} from snapshot {snapshot or CURRENT}")
        result = RestoreOrchestrator(config, channel, snapshots, verbose=verbose).run(snapshot or CURRENT)

    console.print(f"[green]✓[/green] Completed restore of {result.host} from snapshot {result.snapshot_id}")
    for line in result.follow_up:
        console.print(f"[yellow]→[/yellow] {line}")
    return {
        'operation': 'restore',
        'snapshot_id': result.snapshot_id,
        'strategy': result.strategy,
        'host': result.host,
        'components': result.components,
    }


def maintenance(
    console: Console,
    config: BackupConfig,
    host: Optional[str] = None,
    no_wait: bool = False,
    disable: bool = False,
) -> dict[str, Any]:
    """Enable (or, with disable, lift) maintenance mode on an appliance."""
    with open_channel(config, host) as channel:
        controller = MaintenanceModeController(config, channel)
        if disable:
            controller.disable()
            console.print(f"[green]✓[/green] Maintenance mode disabled on {channel.host.hostname}")
        else:
            controller.enable(wait=not no_wait)
            console.print(f"[green]✓[/green] Maintenance mode enabled on {channel.host.hostname}")
    return {
        'operation': 'maintenance',
        'host': channel.host.hostname,
        'state': controller.state.value,
    }
