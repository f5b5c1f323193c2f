# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.15
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/storage/remote.py

"""
Remote execution channel to the appliance.

Commands run over a single paramiko SSH connection that is opened on first use
and reused for the rest of the run. rsync cannot share that connection, so the
channel also describes how an external `ssh` reaches the same host.
"""

from __future__ import annotations

import re
import shlex
import socket
import threading
from dataclasses import dataclass
from typing import BinaryIO, Optional

import paramiko
from loguru import logger

from appbackup.config.manager import BackupConfig, DEFAULT_SSH_PORT
from appbackup.system.exceptions import ConnectivityError, ConfigError

CHUNK_SIZE = 64 * 1024


class StreamDrain:
    """Read a paramiko stream to EOF on a background thread."""

    def __init__(self, stream) -> None:
        self._stream = stream
        self._chunks: list[bytes] = []
        self._error: Optional[Exception] = None
        self._thread = threading.Thread(target=self._read, daemon=True)

    def _read(self) -> None:
        try:
            while chunk := self._stream.read(CHUNK_SIZE):
                self._chunks.append(chunk)
        except Exception as e:
            self._error = e

    def start(self) -> None:
        self._thread.start()

    def result(self) -> bytes:
        """Wait for EOF; errors raised by the reader are re-raised here."""
        self._thread.join()
        if self._error is not None:
            raise self._error
        return b"".join(self._chunks)


@dataclass(frozen=True)
class RemoteHost:
    """Connection descriptor: where the appliance's admin shell lives."""
    hostname: str
    port: int = DEFAULT_SSH_PORT
    user: str = "admin"

    @classmethod
    def parse(cls, descriptor: str, default_port: int = DEFAULT_SSH_PORT,
              default_user: str = "admin") -> "RemoteHost":
        """Parse '[user@]host[:port]'."""
        descriptor = (descriptor or "").strip()
        if not descriptor:
            raise ConfigError("Empty host descriptor")

        user = default_user
        if "@" in descriptor:
            user, descriptor = descriptor.split("@", 1)

        port = default_port
        if ":" in descriptor:
            descriptor, port_text = descriptor.rsplit(":", 1)
            if not port_text.isdigit():
                raise ConfigError(f"Invalid port in host descriptor: {port_text!r}")
            port = int(port_text)

        if not descriptor or not user:
            raise ConfigError("Host descriptor must name a host")
        return cls(hostname=descriptor, port=port, user=user)

    @classmethod
    def from_config(cls, config: BackupConfig, host: Optional[str] = None,
                    for_restore: bool = False) -> "RemoteHost":
        return cls.parse(config.require_host(host, for_restore=for_restore),
                         default_port=config.ssh_port, default_user=config.ssh_user)

    def __str__(self) -> str:
        return f"{self.user}@{self.hostname}:{self.port}"


@dataclass
class RemoteResult:
    """Outcome of a remote command; stdout is empty when it was streamed."""
    exit_status: int
    stdout: bytes = b""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_status == 0

    @property
    def text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")


class RemoteChannel:
    """Run commands on the appliance over SSH."""

    def __init__(self, host: RemoteHost, config: BackupConfig) -> None:
        self.host = host
        self.config = config
        self._client: Optional[paramiko.SSHClient] = None

    def __enter__(self) -> "RemoteChannel":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _connect(self) -> paramiko.SSHClient:
        if self._client is not None:
            return self._client

        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                self.host.hostname,
                port=self.host.port,
                username=self.host.user,
                key_filename=str(self.config.identity_file) if self.config.identity_file else None,
                timeout=self.config.connect_timeout,
            )
        except paramiko.AuthenticationException as e:
            raise ConnectivityError(f"SSH authentication failed for {self.host}: {e}", phase="connect")
        except (paramiko.SSHException, socket.error) as e:
            raise ConnectivityError(f"Cannot connect to {self.host}: {e}", phase="connect")

        logger.debug(f"Connected to {self.host}")
        self._client = client
        return client

    def run(self, command: str, stdin: Optional[BinaryIO] = None,
            stdout: Optional[BinaryIO] = None) -> RemoteResult:
        """
        Run a command on the appliance.

        Args:
            command: shell command line, run by the remote login shell
            stdin: local binary stream copied to the command's input
            stdout: local binary stream receiving the command's output;
                when omitted the output is buffered into the result

        Returns:
            RemoteResult with the remote exit status, unchanged

        Raises:
            ConnectivityError: if the channel cannot be established
        """
        client = self._connect()
        logger.debug(f"[{self.host.hostname}] {command}")
        try:
            chan_in, chan_out, chan_err = client.exec_command(command)
            # stdout and stderr share one channel window; a full stderr stalls stdout
            drain = StreamDrain(chan_err)
            drain.start()

            if stdin is not None:
                while chunk := stdin.read(CHUNK_SIZE):
                    chan_in.write(chunk)
                chan_in.flush()
            chan_in.channel.shutdown_write()

            if stdout is not None:
                while chunk := chan_out.read(CHUNK_SIZE):
                    stdout.write(chunk)
                output = b""
            else:
                output = chan_out.read()

            exit_status = chan_out.channel.recv_exit_status()
            error_text = drain.result().decode("utf-8", errors="replace")
        except (paramiko.SSHException, socket.error) as e:
            raise ConnectivityError(f"Lost connection to {self.host}: {e}", phase="connect")

        if exit_status != 0:
            logger.debug(f"[{self.host.hostname}] exit {exit_status}: {error_text.strip()}")
        return RemoteResult(exit_status=exit_status, stdout=output, stderr=error_text)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # rsync spawns its own ssh; these describe how it reaches the same host

    def rsync_transport_args(self) -> list[str]:
        ssh_cmd = ["ssh", "-p", str(self.host.port), "-o", "BatchMode=yes"]
        if self.config.identity_file:
            ssh_cmd += ["-i", str(self.config.identity_file)]
        ssh_cmd += list(self.config.extra_ssh_opts)
        args = ["-e", " ".join(shlex.quote(part) for part in ssh_cmd)]
        if self.config.remote_rsync_path:
            args.append(f"--rsync-path={self.config.remote_rsync_path}")
        return args

    def rsync_location(self, path: str) -> str:
        return f"{self.host.user}@{self.host.hostname}:{path}"


_VERSION_RE = re.compile(r"RELEASE_VERSION=\"?([0-9][0-9.]*)\"?")


def _version_tuple(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in version.split(".") if part.isdigit())


def check_host(channel: RemoteChannel, config: BackupConfig) -> str:
    """
    Verify the appliance is reachable and runs a supported release.

    Returns:
        The remote release version string

    Raises:
        ConnectivityError: unreachable host, unreadable or too-old version
    """
    result = channel.run(config.version_command)
    if not result.success:
        raise ConnectivityError(
            f"{channel.host.hostname} does not look like a supported appliance "
            f"(version check exited {result.exit_status})",
            phase="host-check",
        )

    match = _VERSION_RE.search(result.text)
    if not match:
        raise ConnectivityError(
            f"Could not read the release version of {channel.host.hostname}",
            phase="host-check",
        )

    version = match.group(1)
    if _version_tuple(version) < _version_tuple(config.min_remote_version):
        raise ConnectivityError(
            f"Appliance version {version} is older than the minimum supported "
            f"version {config.min_remote_version}",
            phase="host-check",
        )

    logger.info(f"Connected to {channel.host.hostname}, appliance version {version}")
    return version
