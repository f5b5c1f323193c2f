# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.18
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/core/components.py

"""
Per-component backup and restore procedures.

Each appliance dataset has its own procedure, and some have one per transfer
strategy. ProcedureRegistry maps (component, strategy) to the procedure; a
procedure registered under ANY_STRATEGY serves every strategy.
"""

from __future__ import annotations

import shlex
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger

from appbackup.config.manager import BackupConfig
from appbackup.core.transfer import RepositoryTransferEngine
from appbackup.storage.rsync import RsyncTransfer
from appbackup.storage.snapshots import Snapshot
from appbackup.system.exceptions import RemoteCommandError, UnknownStrategy, ConfigError

ANY_STRATEGY = "*"

# Backup and restore order; restore replays in the same order
COMPONENT_ORDER: tuple[str, ...] = (
    "repositories",
    "pages",
    "mysql",
    "redis",
    "authorized-keys",
    "elasticsearch",
    "ssh-host-keys",
)


@dataclass
class RunContext:
    """What a procedure needs for one backup or restore run."""
    config: BackupConfig
    channel: object
    snapshot: Snapshot
    previous: Optional[Snapshot] = None
    verbose: bool = False

    @property
    def rsync(self) -> RsyncTransfer:
        return RsyncTransfer(self.channel, verbose=self.verbose)


class ComponentProcedure(ABC):
    """Backup and restore of one component under one strategy."""

    component: str = ""
    strategy: str = ANY_STRATEGY
    # Hold remote GC off while backing up
    requires_quiesce: bool = False

    @abstractmethod
    def backup(self, ctx: RunContext) -> None:
        ...

    @abstractmethod
    def restore(self, ctx: RunContext) -> None:
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.component}/{self.strategy}>"


def _check(result, command: str, component: str) -> None:
    if not result.success:
        raise RemoteCommandError(
            f"'{command}' exited {result.exit_status}: {result.stderr.strip()}",
            command=command, stderr=result.stderr,
            phase=component, exit_code=result.exit_status,
        )


class StreamedProcedure(ComponentProcedure):
    """Dump a component with a remote export command into a single file, and
    feed that file to a remote import command on restore."""

    filename: str = ""
    export_command: str = ""
    import_command: str = ""

    def export_command_for(self, ctx: RunContext) -> str:
        return self.export_command

    def import_command_for(self, ctx: RunContext) -> str:
        return self.import_command

    def backup(self, ctx: RunContext) -> None:
        command = self.export_command_for(ctx)
        target = ctx.snapshot.component_path(self.filename)
        with target.open("wb") as out:
            result = ctx.channel.run(command, stdout=out)
        _check(result, command, self.component)
        logger.debug(f"{self.component}: wrote {target.stat().st_size} bytes to {target.name}")

    def restore(self, ctx: RunContext) -> None:
        command = self.import_command_for(ctx)
        source = ctx.snapshot.component_path(self.filename)
        if not source.exists():
            raise RemoteCommandError(
                f"{source.name} is missing from snapshot {ctx.snapshot.snapshot_id}",
                phase=self.component,
            )
        with source.open("rb") as data:
            result = ctx.channel.run(command, stdin=data)
        _check(result, command, self.component)


class MySQLProcedure(StreamedProcedure):
    component = "mysql"
    filename = "mysql.sql.gz"
    export_command = "appliance-export-mysql | gzip"
    import_command = "gunzip -c | appliance-import-mysql"


class RedisProcedure(StreamedProcedure):
    component = "redis"
    filename = "redis.rdb"
    export_command = "appliance-export-redis"
    import_command = "appliance-import-redis"


class AuthorizedKeysProcedure(StreamedProcedure):
    component = "authorized-keys"
    filename = "authorized-keys.json"
    export_command = "appliance-export-authorized-keys"
    import_command = "appliance-import-authorized-keys"


class SSHHostKeysProcedure(StreamedProcedure):
    component = "ssh-host-keys"
    filename = "ssh-host-keys.tar"
    export_command = "appliance-export-ssh-host-keys"
    import_command = "appliance-import-ssh-host-keys"


class TarballProcedure(StreamedProcedure):
    """Whole-directory tar stream of a remote data directory."""

    strategy = "tarball"
    remote_name: str = ""
    run_as_git: bool = True

    @property
    def filename(self) -> str:
        return f"{self.component}.tar"

    def _remote_dir(self, ctx: RunContext) -> str:
        return shlex.quote(ctx.config.remote_path(self.remote_name))

    def _sudo(self, ctx: RunContext) -> str:
        return f"sudo -u {shlex.quote(ctx.config.git_user)}" if self.run_as_git else "sudo"

    def export_command_for(self, ctx: RunContext) -> str:
        return f"{self._sudo(ctx)} tar -cf - -C {self._remote_dir(ctx)} ."

    def import_command_for(self, ctx: RunContext) -> str:
        return f"{self._sudo(ctx)} tar -xf - -C {self._remote_dir(ctx)}"


class RsyncDirectoryProcedure(ComponentProcedure):
    """Directory synced with rsync, hard-linked against the previous snapshot."""

    strategy = "rsync"
    remote_name: str = ""

    def _link_dest(self, ctx: RunContext) -> Optional[Path]:
        if ctx.previous is None:
            return None
        candidate = ctx.previous.component_path(self.component)
        return candidate if candidate.is_dir() else None

    def backup(self, ctx: RunContext) -> None:
        ctx.rsync.pull(
            ctx.config.remote_path(self.remote_name),
            ctx.snapshot.component_path(self.component),
            phase=self.component,
            link_dest=self._link_dest(ctx),
        )

    def restore(self, ctx: RunContext) -> None:
        source = ctx.snapshot.component_path(self.component)
        if not source.is_dir():
            raise RemoteCommandError(
                f"{self.component}/ is missing from snapshot {ctx.snapshot.snapshot_id}",
                phase=self.component,
            )
        ctx.rsync.push(source, ctx.config.remote_path(self.remote_name), phase=self.component)


class RepositoriesRsyncProcedure(RsyncDirectoryProcedure):
    component = "repositories"
    remote_name = "repositories"
    requires_quiesce = True

    def backup(self, ctx: RunContext) -> None:
        engine = RepositoryTransferEngine(ctx.config, ctx.rsync)
        engine.run(ctx.snapshot.path, ctx.previous.path if ctx.previous else None)


class RepositoriesTarballProcedure(TarballProcedure):
    component = "repositories"
    remote_name = "repositories"
    requires_quiesce = True


class PagesRsyncProcedure(RsyncDirectoryProcedure):
    component = "pages"
    remote_name = "pages"


class PagesTarballProcedure(TarballProcedure):
    component = "pages"
    remote_name = "pages"


class ElasticsearchRsyncProcedure(RsyncDirectoryProcedure):
    component = "elasticsearch"
    remote_name = "elasticsearch"


class ElasticsearchTarballProcedure(TarballProcedure):
    component = "elasticsearch"
    remote_name = "elasticsearch"
    run_as_git = False


class ProcedureRegistry:
    """(component, strategy) -> ComponentProcedure."""

    def __init__(self) -> None:
        self._procedures: dict[tuple[str, str], ComponentProcedure] = {}

    def register(self, procedure: ComponentProcedure) -> ComponentProcedure:
        key = (procedure.component, procedure.strategy)
        if key in self._procedures:
            raise ConfigError(f"Duplicate procedure for {key[0]}/{key[1]}")
        self._procedures[key] = procedure
        return procedure

    def lookup(self, component: str, strategy: str) -> ComponentProcedure:
        """
        Raises:
            UnknownStrategy: nothing registered for the component under strategy
        """
        procedure = self._procedures.get((component, strategy))
        if procedure is None and strategy in self.strategies():
            procedure = self._procedures.get((component, ANY_STRATEGY))
        if procedure is None:
            raise UnknownStrategy(
                f"No '{strategy}' procedure for component '{component}'",
                phase=component,
            )
        return procedure

    def plan(self, strategy: str, components: tuple[str, ...] = COMPONENT_ORDER) -> list[ComponentProcedure]:
        """Procedures for every component under a strategy, validated up front."""
        if strategy not in self.strategies():
            raise UnknownStrategy(f"Unrecognized backup strategy '{strategy}'", phase="strategy")
        return [self.lookup(component, strategy) for component in components]

    def strategies(self) -> set[str]:
        return {strategy for _, strategy in self._procedures if strategy != ANY_STRATEGY}


def default_registry() -> ProcedureRegistry:
    registry = ProcedureRegistry()
    for procedure_cls in (
        RepositoriesRsyncProcedure, RepositoriesTarballProcedure,
        PagesRsyncProcedure, PagesTarballProcedure,
        MySQLProcedure, RedisProcedure, AuthorizedKeysProcedure,
        ElasticsearchRsyncProcedure, ElasticsearchTarballProcedure,
        SSHHostKeysProcedure,
    ):
        registry.register(procedure_cls())
    return registry
