# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.17
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/core/maintenance.py

"""
Maintenance mode: lock the appliance against writes and wait for in-flight
mutating operations to drain.

The drain wait has no bound unless maintenance_timeout is configured. A
restore must not start while git pushes or database writes are still running,
and there is no safe default for how long those may take.

Unlocking is a separate, explicit operation; nothing here unlocks on its own,
including on cancellation.
"""

from enum import Enum

import orjson
from loguru import logger

from appbackup.config.manager import BackupConfig
from appbackup.core.retry import Clock, PollConfig, PollTimeoutError, SYSTEM_CLOCK, poll_until
from appbackup.system.exceptions import MaintenanceTimeout, RemoteCommandError


class MaintenanceState(Enum):
    NORMAL = "normal"
    ENTERING = "entering"
    LOCKED = "locked"


class MaintenanceModeController:
    """Drive the appliance's maintenance mode over the remote channel."""

    def __init__(self, config: BackupConfig, channel, clock: Clock = SYSTEM_CLOCK) -> None:
        self.config = config
        self.channel = channel
        self.clock = clock
        self.state = MaintenanceState.NORMAL

    def _run_checked(self, command: str, what: str):
        result = self.channel.run(command)
        if not result.success:
            raise RemoteCommandError(
                f"Failed to {what} (exit {result.exit_status}): {result.stderr.strip()}",
                command=command, stderr=result.stderr,
                phase="maintenance", exit_code=result.exit_status,
            )
        return result

    def enable(self, wait: bool = True) -> None:
        """
        Put the appliance into maintenance mode.

        Args:
            wait: poll until no mutating operations are in flight

        Raises:
            RemoteCommandError: lock or status command failed
            MaintenanceTimeout: drain exceeded a configured maintenance_timeout
        """
        self.state = MaintenanceState.ENTERING
        self._run_checked(self.config.maintenance_enable_command, "enable maintenance mode")
        logger.info(f"Maintenance mode enabled on {self.channel.host.hostname}")

        if wait:
            self.wait_for_drain()
        else:
            logger.warning("Not waiting for in-flight operations to finish")
        self.state = MaintenanceState.LOCKED

    def in_flight_operations(self) -> int:
        """Sum of active operations across the appliance's connection services."""
        result = self._run_checked(self.config.maintenance_status_command,
                                   "read maintenance status")
        try:
            status = orjson.loads(result.stdout)
            services = status.get("connection_services", [])
            counts = {svc["name"]: int(svc["number"]) for svc in services}
        except (orjson.JSONDecodeError, AttributeError, KeyError, TypeError, ValueError) as e:
            raise RemoteCommandError(
                f"Unreadable maintenance status: {e}",
                command=self.config.maintenance_status_command,
                phase="maintenance",
            )

        for name, number in counts.items():
            if number:
                logger.debug(f"{number} {name} still in progress")
        return sum(counts.values())

    def wait_for_drain(self) -> None:
        logger.info("Waiting for all writing processes to finish ...")
        poll = PollConfig(interval=self.config.maintenance_poll_interval,
                          max_wait=self.config.maintenance_timeout)
        try:
            poll_until(
                lambda: self.in_flight_operations() == 0,
                poll,
                clock=self.clock,
                operation_name="maintenance drain",
            )
        except PollTimeoutError as e:
            raise MaintenanceTimeout(
                f"Operations still in flight after {e.elapsed:.0f}s; "
                "the appliance remains in maintenance mode",
                phase="maintenance",
            )
        logger.info("No writing processes in flight")

    def disable(self) -> None:
        """Take the appliance out of maintenance mode."""
        self._run_checked(self.config.maintenance_disable_command, "disable maintenance mode")
        self.state = MaintenanceState.NORMAL
        logger.info(f"Maintenance mode disabled on {self.channel.host.hostname}")
