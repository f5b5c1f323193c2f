# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/core/transfer.py

"""
Phased repository transfer.

Repository data is copied in five rsync passes. The order matters: a ref must
never arrive in the snapshot before the objects it points at could, so
packed-refs go before loose refs (loose refs win over packed ones) and both go
before objects and packs. Later passes pick up any object written while refs
were being copied, which is what makes the result consistent.

Layout of the remote repositories directory:

    <owner>/<name>.git/...       repositories (including gists)
    __alambic_assets__/ ...      special-purpose data directories
    info/                        housekeeping files
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from appbackup.config.manager import BackupConfig
from appbackup.storage.rsync import RsyncTransfer

REPOSITORIES = "repositories"

# Rules shared by the per-repository passes: skip special dirs, descend into
# owner directories and repositories.
_REPOSITORY_SCOPE = (
    "- /__*__/",
    "- /info/",
    "+ /*/",
    "+ /*/*.git",
)


@dataclass(frozen=True)
class TransferPass:
    name: str
    description: str
    rules: tuple[str, ...]
    compress: bool


REPOSITORY_PASSES: tuple[TransferPass, ...] = (
    TransferPass(
        name="auxiliary",
        description="auxiliary files (config, HEAD, hooks, info, ...)",
        rules=_REPOSITORY_SCOPE + (
            "- /*/*.git/objects",
            "- /*/*.git/refs",
            "- /*/*.git/packed-refs",
            "- /*/*.git/logs",
            "+ /*/*.git/**",
        ),
        compress=True,
    ),
    TransferPass(
        name="packed-refs",
        description="packed-refs files",
        rules=_REPOSITORY_SCOPE + (
            "+ /*/*.git/packed-refs",
        ),
        compress=True,
    ),
    TransferPass(
        name="loose-refs",
        description="loose refs and reflogs",
        rules=_REPOSITORY_SCOPE + (
            "+ /*/*.git/refs/",
            "+ /*/*.git/refs/**",
            "+ /*/*.git/logs/",
            "+ /*/*.git/logs/**",
        ),
        compress=True,
    ),
    TransferPass(
        name="objects",
        description="objects and pack files",
        rules=_REPOSITORY_SCOPE + (
            "+ /*/*.git/objects/",
            "- /*/*.git/objects/**/tmp_*",
            "+ /*/*.git/objects/**",
        ),
        # packs are already compressed
        compress=False,
    ),
    TransferPass(
        name="special",
        description="special data directories",
        rules=(
            "- /__nodeload_archives__/",
            "- /__gitmon__/",
            "- /__render__/",
            "+ /__*__/",
            "+ /__*__/**",
            "+ /info/",
            "- /info/lost+found/",
            "+ /info/*",
        ),
        compress=False,
    ),
)


class RepositoryTransferEngine:
    """Copy the appliance's repositories into a snapshot, pass by pass."""

    def __init__(self, config: BackupConfig, rsync: RsyncTransfer,
                 passes: tuple[TransferPass, ...] = REPOSITORY_PASSES) -> None:
        self.config = config
        self.rsync = rsync
        self.passes = passes

    def run(self, snapshot_dir: Path, previous_dir: Optional[Path] = None) -> list[str]:
        """
        Run every pass in order into <snapshot_dir>/repositories.

        Args:
            snapshot_dir: the snapshot being written
            previous_dir: the last complete snapshot, used for hard-linking

        Returns:
            Names of the completed passes, in order.

        Raises:
            TransferError: from the first failing pass; later passes never run
        """
        dest = Path(snapshot_dir) / REPOSITORIES
        completed = []

        for transfer_pass in self.passes:
            logger.info(f"* Transferring {transfer_pass.description} ...")
            self.rsync.pull(
                self.config.remote_repositories_dir,
                dest,
                phase=f"repositories/{transfer_pass.name}",
                rules=transfer_pass.rules,
                link_dest=self._link_dest(previous_dir),
                compress=transfer_pass.compress,
            )
            completed.append(transfer_pass.name)

        return completed

    @staticmethod
    def _link_dest(previous_dir: Optional[Path]) -> Optional[Path]:
        if previous_dir is None:
            return None
        candidate = Path(previous_dir) / REPOSITORIES
        return candidate if candidate.is_dir() else None
