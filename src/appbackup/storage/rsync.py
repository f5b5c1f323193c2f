# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/storage/rsync.py

"""rsync invocations between the appliance and a snapshot directory."""

from pathlib import Path
from typing import Optional, Sequence

from loguru import logger

from appbackup.system.exceptions import TransferError
from appbackup.system.execution import CommandExecutor as ce


class RsyncTransfer:
    """Pull from / push to the appliance with rsync over the channel's host.

    Args:
        channel: anything providing rsync_location() and rsync_transport_args()
        verbose: stream rsync output to the terminal
    """

    def __init__(self, channel, verbose: bool = False, executor=ce) -> None:
        self.channel = channel
        self.verbose = verbose
        self.executor = executor

    def _run(self, cmd: list[str], phase: str, rules: Optional[Sequence[str]] = None) -> None:
        input_text = "\n".join(rules) + "\n" if rules is not None else None
        result = self.executor.run_with_progress(
            cmd, verbose=self.verbose, check=False, input_text=input_text
        )
        if not result.success:
            logger.error(f"rsync failed during {phase} (exit {result.returncode}): {result.stderr.strip()}")
            raise TransferError(
                f"rsync exited {result.returncode} during {phase}",
                phase=phase,
                exit_code=result.returncode,
            )

    def pull(self, remote_path: str, dest: Path, phase: str,
             rules: Optional[Sequence[str]] = None, link_dest: Optional[Path] = None,
             compress: bool = False) -> None:
        """
        Copy a remote directory into dest.

        Args:
            remote_path: directory on the appliance
            dest: local destination directory (created if missing)
            phase: name reported in errors
            rules: include/exclude rules fed via --include-from=-, followed by
                an implicit '--exclude=*'; first match wins
            link_dest: previous copy of dest; unchanged files are hard-linked
            compress: compress data in transit
        """
        dest = Path(dest)
        dest.mkdir(parents=True, exist_ok=True)

        cmd = ["rsync", "-av"]
        if compress:
            cmd.append("-z")
        cmd += self.channel.rsync_transport_args()
        if link_dest is not None:
            cmd.append(f"--link-dest={Path(link_dest).resolve()}")
        if rules is not None:
            cmd += ["--include-from=-", "--exclude=*"]
        cmd += [self.channel.rsync_location(remote_path.rstrip("/") + "/"), f"{dest}/"]

        self._run(cmd, phase, rules)

    def push(self, source: Path, remote_path: str, phase: str, delete: bool = True) -> None:
        """Mirror a local directory onto the appliance, preserving hard links."""
        cmd = ["rsync", "-avH"]
        if delete:
            cmd.append("--delete")
        cmd += self.channel.rsync_transport_args()
        cmd += [f"{Path(source)}/", self.channel.rsync_location(remote_path.rstrip("/"))]

        self._run(cmd, phase)
