# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.15
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/storage/snapshots.py

"""
Versioned snapshot directories and the 'current' pointer.

Layout under the data directory:

    <data_dir>/
        20250715T031500/        one directory per snapshot id
            incomplete          present until the run that wrote it succeeds
            strategy            transfer mechanism that produced it
            version             appliance release the snapshot came from
            repositories/ ...   one entry per component
        current -> 20250715T031500
"""

import os
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from appbackup.system.exceptions import AllocationError, SnapshotNotFound

CURRENT = "current"
INCOMPLETE_MARKER = "incomplete"
STRATEGY_FILE = "strategy"
VERSION_FILE = "version"
SNAPSHOT_ID_FORMAT = "%Y%m%dT%H%M%S"
LEGACY_STRATEGY = "tarball"
SNAPSHOT_ID_PATTERN = re.compile(r"\d{8}T\d{6}")


@dataclass(frozen=True)
class Snapshot:
    """A snapshot directory on local disk."""
    snapshot_id: str
    path: Path

    def component_path(self, name: str) -> Path:
        return self.path / name


class SnapshotDirectoryManager:
    """Allocate, resolve and promote snapshot directories."""

    def __init__(self, data_dir: Path, now: Callable[[], datetime] = datetime.now) -> None:
        self.data_dir = Path(data_dir)
        self._now = now
        # Captured once, before this run can move the pointer
        self._previous = self._read_current()

    @property
    def current_link(self) -> Path:
        return self.data_dir / CURRENT

    def path(self, snapshot_id: str) -> Path:
        return self.data_dir / snapshot_id

    def _read_current(self) -> Optional[Snapshot]:
        link = self.current_link
        if not link.is_symlink():
            return None
        target = self.data_dir / os.readlink(link)
        if not target.is_dir():
            logger.warning(f"'{CURRENT}' points at missing snapshot {target.name}")
            return None
        return Snapshot(target.name, target)

    def allocate(self) -> str:
        """
        Create a fresh, empty snapshot directory marked incomplete.

        Raises:
            AllocationError: if a snapshot with the generated id already exists
        """
        snapshot_id = self._now().strftime(SNAPSHOT_ID_FORMAT)
        path = self.path(snapshot_id)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        try:
            path.mkdir()
        except FileExistsError:
            raise AllocationError(f"Snapshot {snapshot_id} already exists at {path}", phase="allocate")

        (path / INCOMPLETE_MARKER).touch()
        logger.info(f"Allocated snapshot {snapshot_id}")
        return snapshot_id

    def resolve(self, ref: str = CURRENT) -> Snapshot:
        """
        Resolve an explicit snapshot id or the literal 'current'.

        Raises:
            SnapshotNotFound: if ref is not a snapshot id or the directory is absent
        """
        if ref == CURRENT:
            snapshot = self._read_current()
            if snapshot is None:
                raise SnapshotNotFound(f"No current snapshot in {self.data_dir}", phase="resolve")
            return snapshot

        if not SNAPSHOT_ID_PATTERN.fullmatch(ref or ""):
            raise SnapshotNotFound(f"'{ref}' is not a snapshot id", phase="resolve")

        path = self.path(ref)
        if not path.is_dir() or path.is_symlink():
            raise SnapshotNotFound(f"Snapshot '{ref}' doesn't exist in {self.data_dir}", phase="resolve")
        return Snapshot(ref, path)

    def promote(self, snapshot_id: str) -> None:
        """Mark the snapshot complete and atomically repoint 'current' at it."""
        snapshot = self.resolve(snapshot_id)
        marker = snapshot.path / INCOMPLETE_MARKER
        if marker.exists():
            marker.unlink()

        tmp_link = self.data_dir / f".{CURRENT}.{snapshot_id}"
        if tmp_link.is_symlink():
            tmp_link.unlink()
        tmp_link.symlink_to(snapshot_id)
        os.replace(tmp_link, self.current_link)
        logger.info(f"'{CURRENT}' now points at {snapshot_id}")

    def previous(self) -> Optional[Snapshot]:
        """The snapshot 'current' named before this run began."""
        return self._previous

    def is_complete(self, snapshot: Snapshot) -> bool:
        return not (snapshot.path / INCOMPLETE_MARKER).exists()

    def write_strategy(self, snapshot_id: str, strategy: str) -> None:
        (self.path(snapshot_id) / STRATEGY_FILE).write_text(f"{strategy}\n")

    def read_strategy(self, snapshot: Snapshot) -> str:
        """Strategy marker of a snapshot; snapshots without one predate rsync."""
        marker = snapshot.path / STRATEGY_FILE
        if not marker.exists():
            return LEGACY_STRATEGY
        return marker.read_text().strip()

    def write_version(self, snapshot_id: str, version: str) -> None:
        (self.path(snapshot_id) / VERSION_FILE).write_text(f"{version}\n")
