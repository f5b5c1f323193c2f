# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/core/quiesce.py

"""
Suspend remote git garbage collection during a repository transfer.

The appliance's GC scheduler will not start new gc/repack runs while the
sync-in-progress sentinel exists. The controller creates the sentinel, waits
for running GC processes to finish, and removes the sentinel again on every
exit path.

Usage:
    with GCQuiescingController(config, channel).quiesced():
        engine.run(snapshot_dir, previous_dir)
"""

import shlex
from contextlib import contextmanager
from enum import Enum
from typing import Iterator

from loguru import logger

from appbackup.config.manager import BackupConfig
from appbackup.core.retry import Clock, PollConfig, PollTimeoutError, SYSTEM_CLOCK, poll_until
from appbackup.system.exceptions import QuiesceTimeout, RemoteCommandError

# pgrep: 0 = processes matched, 1 = none matched
_PGREP_NO_MATCH = 1


class QuiesceState(Enum):
    IDLE = "idle"
    QUIESCING = "quiescing"
    QUIESCED = "quiesced"
    RELEASED = "released"


class GCQuiescingController:
    """Own the GC sentinel for the duration of one repository transfer."""

    def __init__(self, config: BackupConfig, channel, clock: Clock = SYSTEM_CLOCK) -> None:
        self.config = config
        self.channel = channel
        self.clock = clock
        self.state = QuiesceState.IDLE
        self._sentinel_created = False

    @property
    def sentinel(self) -> str:
        return self.config.sync_in_progress_file

    def enter(self) -> None:
        """Create the sentinel as the git user."""
        self.state = QuiesceState.QUIESCING
        # Counts as ours even if the command fails part way
        self._sentinel_created = True
        command = f"sudo -u {shlex.quote(self.config.git_user)} touch {shlex.quote(self.sentinel)}"
        result = self.channel.run(command)
        if not result.success:
            raise RemoteCommandError(
                f"Could not create GC sentinel {self.sentinel}",
                command=command, stderr=result.stderr,
                phase="quiesce", exit_code=result.exit_status,
            )
        logger.debug(f"Created GC sentinel {self.sentinel}")

    def gc_active(self) -> bool:
        """True while the remote process table shows gc/repack processes."""
        command = f"pgrep -f {shlex.quote(self.config.gc_process_pattern)}"
        result = self.channel.run(command)
        if result.exit_status == 0:
            return True
        if result.exit_status == _PGREP_NO_MATCH:
            return False
        raise RemoteCommandError(
            f"Could not inspect remote GC processes (exit {result.exit_status})",
            command=command, stderr=result.stderr,
            phase="quiesce", exit_code=result.exit_status,
        )

    def wait(self) -> None:
        """
        Wait for running GC processes to finish.

        Raises:
            QuiesceTimeout: GC still running after git_cooldown_period
        """
        poll = PollConfig(interval=self.config.gc_poll_interval,
                          max_wait=self.config.git_cooldown_period)
        try:
            attempts = poll_until(
                lambda: not self.gc_active(),
                poll,
                clock=self.clock,
                operation_name="GC cooldown",
                on_wait=self._log_waiting,
            )
        except PollTimeoutError as e:
            logger.error(f"Git GC processes remain after {self.config.git_cooldown_period:g}s. Aborting...")
            raise QuiesceTimeout(
                f"Git GC processes still running after {e.attempts} checks "
                f"({self.config.git_cooldown_period:g}s cooldown)",
                phase="quiesce",
            )
        self.state = QuiesceState.QUIESCED
        logger.info(f"Remote GC quiesced after {attempts} check(s)")

    @staticmethod
    def _log_waiting(attempt: int) -> None:
        if attempt == 1:
            logger.info("Waiting for running git GC processes to finish ...")

    def release(self, strict: bool = True) -> None:
        """
        Remove the sentinel if this controller created it.

        Safe to call more than once; the sentinel is removed at most once.

        Args:
            strict: raise if removal fails; otherwise only log, so an error
                already propagating is not masked
        """
        if self.state is QuiesceState.RELEASED:
            return
        self.state = QuiesceState.RELEASED
        if not self._sentinel_created:
            return

        command = f"sudo rm -f {shlex.quote(self.sentinel)}"
        try:
            result = self.channel.run(command)
        except Exception as e:
            logger.error(f"Failed to remove GC sentinel {self.sentinel}: {e}")
            if strict:
                raise
            return

        if not result.success:
            logger.error(f"Failed to remove GC sentinel {self.sentinel} (exit {result.exit_status})")
            if strict:
                raise RemoteCommandError(
                    f"Could not remove GC sentinel {self.sentinel}; remote GC stays suspended",
                    command=command, stderr=result.stderr,
                    phase="quiesce-release", exit_code=result.exit_status,
                )
            return
        logger.debug(f"Removed GC sentinel {self.sentinel}")

    @contextmanager
    def quiesced(self) -> Iterator["GCQuiescingController"]:
        """Hold GC off for the body of the with-block; release on any exit."""
        try:
            self.enter()
            self.wait()
            yield self
        except BaseException:
            self.release(strict=False)
            raise
        self.release()
