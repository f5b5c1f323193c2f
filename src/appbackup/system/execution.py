# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.14
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/system/execution.py

"""Local command execution for rsync and other helper processes."""

import subprocess
from dataclasses import dataclass

from loguru import logger


@dataclass
class CommandResult:
    """Result of a command execution."""
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


class CommandExecutor:
    """Run local commands with uniform error reporting."""

    @staticmethod
    def run_local(cmd: list[str], timeout: int | None = None, check: bool = True,
                  input_text: str | None = None) -> CommandResult:
        """Run a local command and capture its output.

        Raises:
            ValueError: if check is True and the command exits nonzero
        """
        logger.debug(f"Running: {' '.join(cmd)}")
        kwargs = {"capture_output": True, "text": True, "timeout": timeout}
        if input_text is not None:
            kwargs["input"] = input_text
        result = subprocess.run(cmd, **kwargs)

        if check and result.returncode != 0:
            error_msg = result.stderr.strip() or f"Command failed with exit code {result.returncode}"
            raise ValueError(f"Local command failed: {error_msg}")

        return CommandResult(result.returncode, result.stdout, result.stderr)

    @staticmethod
    def run_with_progress(cmd: list[str], verbose: bool = False, check: bool = True,
                          input_text: str | None = None) -> CommandResult:
        """Run a long command, streaming its output to the terminal when verbose.

        In verbose mode stdout is not captured, so CommandResult.stdout is empty.
        """
        logger.debug(f"Running: {' '.join(cmd)}")
        if verbose:
            kwargs = {"check": False, "text": True}
            if input_text is not None:
                kwargs["input"] = input_text
            result = subprocess.run(cmd, **kwargs)
            stdout, stderr = "", ""
        else:
            kwargs = {"capture_output": True, "text": True}
            if input_text is not None:
                kwargs["input"] = input_text
            result = subprocess.run(cmd, **kwargs)
            stdout, stderr = result.stdout, result.stderr

        if check and result.returncode != 0:
            error_msg = (stderr or "").strip() or f"exit code {result.returncode}"
            raise ValueError(f"Command failed: {error_msg}")

        return CommandResult(result.returncode, stdout or "", stderr or "")
