# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.19
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/core/restore.py

"""
Restore orchestration.

Everything that can be checked locally (snapshot exists, is complete, has a
known strategy with a procedure for every component) is checked before the
appliance is touched. The appliance is then put into maintenance mode and left
there: reopening it is the operator's decision.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from appbackup.config.manager import BackupConfig
from appbackup.core.components import ProcedureRegistry, RunContext, default_registry
from appbackup.core.maintenance import MaintenanceModeController
from appbackup.core.retry import Clock, SYSTEM_CLOCK
from appbackup.storage.remote import check_host
from appbackup.storage.snapshots import CURRENT, SnapshotDirectoryManager
from appbackup.system.exceptions import AppBackupError, IncompleteSnapshot, RestoreComponentError


@dataclass
class RestoreResult:
    snapshot_id: str
    strategy: str
    host: str
    components: list[str] = field(default_factory=list)
    follow_up: list[str] = field(default_factory=list)
    elapsed: float = 0.0


class RestoreOrchestrator:
    """Replay a snapshot onto a live appliance."""

    def __init__(self, config: BackupConfig, channel, snapshots: SnapshotDirectoryManager,
                 registry: Optional[ProcedureRegistry] = None, clock: Clock = SYSTEM_CLOCK,
                 verbose: bool = False,
                 maintenance: Optional[MaintenanceModeController] = None) -> None:
        self.config = config
        self.channel = channel
        self.snapshots = snapshots
        self.registry = registry or default_registry()
        self.verbose = verbose
        self.maintenance = maintenance or MaintenanceModeController(config, channel, clock)

    def run(self, ref: str = CURRENT) -> RestoreResult:
        """
        Restore snapshot `ref` (an id or 'current').

        Raises:
            SnapshotNotFound, IncompleteSnapshot, UnknownStrategy: before any
                remote action
            ConnectivityError: before maintenance mode is entered
            RestoreComponentError: a component failed; later components were
                skipped and the appliance is still in maintenance mode
        """
        started = time.monotonic()
        snapshot = self.snapshots.resolve(ref)
        if not self.snapshots.is_complete(snapshot):
            raise IncompleteSnapshot(
                f"Snapshot '{snapshot.snapshot_id}' was not successfully completed and cannot be restored",
                phase="resolve",
            )

        strategy = self.snapshots.read_strategy(snapshot)
        plan = self.registry.plan(strategy)
        hostname = self.channel.host.hostname
        logger.info(f"Restoring snapshot {snapshot.snapshot_id} ({strategy}) to {hostname}")

        check_host(self.channel, self.config)
        self.maintenance.enable(wait=True)

        ctx = RunContext(config=self.config, channel=self.channel,
                         snapshot=snapshot, verbose=self.verbose)
        result = RestoreResult(snapshot_id=snapshot.snapshot_id, strategy=strategy, host=hostname)

        for procedure in plan:
            component = procedure.component
            logger.info(f"Restoring {component} ({procedure.strategy}) ...")
            try:
                procedure.restore(ctx)
            except (AppBackupError, OSError) as e:
                logger.error(f"Restore of {component} failed; {hostname} left in maintenance mode")
                raise RestoreComponentError(
                    f"Restore of {component} failed: {e}",
                    phase=component,
                    exit_code=getattr(e, "exit_code", None),
                ) from e
            result.components.append(component)

        result.follow_up = [
            f"{hostname} is still in maintenance mode.",
            f"Visit https://{hostname}/setup/settings to review and apply the configuration.",
            "Disable maintenance mode once the appliance has been verified.",
        ]
        result.elapsed = time.monotonic() - started
        logger.info(f"Completed restore of {hostname} from snapshot {snapshot.snapshot_id}")
        return result
