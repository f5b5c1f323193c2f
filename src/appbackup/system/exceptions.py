# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.14
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/system/exceptions.py

"""
appbackup exception classes.

Every error carries the phase it failed in and the process exit code the CLI
should report, so an operator knows which component to re-run.

Exit code 1 belongs to usage and configuration errors only. Operational
failures default to 2, and a remote exit status of 1 is reported as 2 so the
two never share a code.
"""

USAGE_EXIT_CODE = 1
FAILURE_EXIT_CODE = 2


class AppBackupError(Exception):
    """Base exception for all appbackup errors."""

    default_exit_code = FAILURE_EXIT_CODE

    def __init__(self, message: str, phase: str = None, exit_code: int = None):
        self.phase = phase
        if exit_code is None or (exit_code == USAGE_EXIT_CODE and not self.is_usage_error):
            exit_code = self.default_exit_code
        self.exit_code = exit_code
        super().__init__(message)

    @property
    def is_usage_error(self) -> bool:
        return self.default_exit_code == USAGE_EXIT_CODE


class ConfigError(AppBackupError):
    """Missing host, bad flags or an invalid configuration file."""

    default_exit_code = USAGE_EXIT_CODE


class ConnectivityError(AppBackupError):
    """The remote channel cannot be established or the remote is incompatible."""

    default_exit_code = 255


# === SNAPSHOT ERRORS ===

class AllocationError(AppBackupError):
    """A snapshot directory with the same id already exists."""
    pass


class SnapshotNotFound(AppBackupError):
    """The requested snapshot (or 'current') does not exist."""

    default_exit_code = USAGE_EXIT_CODE


class IncompleteSnapshot(SnapshotNotFound):
    """The snapshot exists but its backup run never completed."""
    pass


class UnknownStrategy(AppBackupError):
    """No procedure is registered for a component under a strategy marker."""

    default_exit_code = USAGE_EXIT_CODE


# === REMOTE OPERATION ERRORS ===

class RemoteCommandError(AppBackupError):
    """A remote command exited nonzero where the caller treats that as fatal."""

    def __init__(self, message: str, command: str = None, stderr: str = None, **kwargs):
        self.command = command
        self.stderr = stderr
        super().__init__(message, **kwargs)


class QuiesceTimeout(AppBackupError):
    """Garbage collection did not stop within the cooldown period."""

    default_exit_code = 7


class MaintenanceTimeout(AppBackupError):
    """In-flight operations did not drain within the configured bound."""
    pass


class TransferError(AppBackupError):
    """An rsync pass or streamed transfer failed."""
    pass


# === COMPONENT ERRORS ===

class BackupComponentError(AppBackupError):
    """A component backup failed; the snapshot stays unpromoted."""
    pass


class RestoreComponentError(AppBackupError):
    """A component restore failed; the appliance stays in maintenance mode."""
    pass
