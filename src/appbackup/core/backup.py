# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/core/backup.py

"""
Backup orchestration.

A run checks the appliance, allocates a snapshot, backs up every component in
order and only then promotes the snapshot to 'current'. Any failure stops the
run with the snapshot left on disk, marked incomplete, and 'current' untouched.
"""

import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from appbackup.config.manager import BackupConfig
from appbackup.core.components import ComponentProcedure, ProcedureRegistry, RunContext, default_registry
from appbackup.core.quiesce import GCQuiescingController
from appbackup.core.retry import Clock, SYSTEM_CLOCK
from appbackup.storage.remote import check_host
from appbackup.storage.snapshots import SnapshotDirectoryManager
from appbackup.system.exceptions import AppBackupError, BackupComponentError


@dataclass
class BackupResult:
    snapshot_id: str
    strategy: str
    version: str
    components: list[str] = field(default_factory=list)
    elapsed: float = 0.0


class BackupOrchestrator:
    """Sequence one backup run against one appliance."""

    def __init__(self, config: BackupConfig, channel, snapshots: SnapshotDirectoryManager,
                 registry: Optional[ProcedureRegistry] = None, clock: Clock = SYSTEM_CLOCK,
                 verbose: bool = False) -> None:
        self.config = config
        self.channel = channel
        self.snapshots = snapshots
        self.registry = registry or default_registry()
        self.clock = clock
        self.verbose = verbose

    def run(self) -> BackupResult:
        """
        Run a complete backup.

        Returns:
            BackupResult for the promoted snapshot

        Raises:
            ConnectivityError: before anything is allocated
            QuiesceTimeout: GC did not stop; repositories never transferred
            TransferError, RemoteCommandError, BackupComponentError: a
                component failed; 'current' is unchanged
        """
        started = time.monotonic()
        strategy = self.config.backup_strategy
        plan = self.registry.plan(strategy)
        version = check_host(self.channel, self.config)

        snapshot_id = self.snapshots.allocate()
        self.snapshots.write_strategy(snapshot_id, strategy)
        self.snapshots.write_version(snapshot_id, version)

        ctx = RunContext(
            config=self.config,
            channel=self.channel,
            snapshot=self.snapshots.resolve(snapshot_id),
            previous=self.snapshots.previous(),
            verbose=self.verbose,
        )
        if ctx.previous is not None:
            logger.info(f"Linking unchanged files against snapshot {ctx.previous.snapshot_id}")

        result = BackupResult(snapshot_id=snapshot_id, strategy=strategy, version=version)
        try:
            for procedure in plan:
                self._backup_component(procedure, ctx)
                result.components.append(procedure.component)
        except BaseException:
            logger.error(f"Backup aborted; snapshot {snapshot_id} left incomplete and not promoted")
            raise

        self.snapshots.promote(snapshot_id)
        result.elapsed = time.monotonic() - started
        logger.info(f"Completed backup of {self.channel.host.hostname} in snapshot {snapshot_id}")
        return result

    def _backup_component(self, procedure: ComponentProcedure, ctx: RunContext) -> None:
        component = procedure.component
        logger.info(f"Backing up {component} ({procedure.strategy}) ...")
        try:
            with ExitStack() as stack:
                if procedure.requires_quiesce:
                    stack.enter_context(
                        GCQuiescingController(self.config, self.channel, self.clock).quiesced()
                    )
                procedure.backup(ctx)
        except AppBackupError as e:
            if e.phase is None:
                e.phase = component
            raise
        except OSError as e:
            raise BackupComponentError(f"Backup of {component} failed: {e}", phase=component)
