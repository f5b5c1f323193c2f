# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.14
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/appbackup/config/manager.py

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Literal, Final

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from appbackup.system.exceptions import ConfigError


# ---- Constants ----

CONFIG_FILE: Final = "backup.yml"
DEFAULT_SSH_PORT: Final = 122
STRATEGIES: Final[frozenset[str]] = frozenset({"rsync", "tarball"})


def _get_config_search_paths() -> tuple[Path, ...]:
    """Get config file search paths (ordered by priority: lowest to highest).

    Evaluated at call time so environment overrides set by tests are honoured.
    """
    return (
        Path("/etc/appbackup") / CONFIG_FILE,  # System defaults
        Path.home() / ".config" / "appbackup" / CONFIG_FILE,  # User config
        Path(os.getenv("XDG_CONFIG_HOME", "")) / "appbackup" / CONFIG_FILE,  # XDG override
        Path(os.getenv("APPBACKUP_CONFIG_HOME", "")) / CONFIG_FILE,  # Explicit override (highest priority)
    )


def _read_yaml(path: Path) -> dict:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _load_merged_config_data(candidates: tuple[Path, ...]) -> dict:
    """Load and merge config data from candidate paths; later files win.

    Raises:
        ConfigError: If no config file is found
    """
    merged_data = {}
    found_configs = []

    for candidate in candidates:
        if candidate == Path("") / CONFIG_FILE:  # Skip empty env vars
            continue
        if candidate.exists():
            merged_data.update(_read_yaml(candidate))
            found_configs.append(str(candidate))
            logger.debug(f"Loaded config from {candidate}")

    if not found_configs:
        raise ConfigError(
            f"No {CONFIG_FILE} found in /etc/appbackup/, ~/.config/appbackup/, "
            "XDG_CONFIG_HOME, or APPBACKUP_CONFIG_HOME"
        )

    logger.debug(f"Merged config from: {', '.join(found_configs)}")
    return merged_data


# ---- Backup Config ----

class BackupConfig(BaseModel):
    """Settings shared by every backup, restore and maintenance component.

    Frozen: a run resolves its configuration once and hands the same value to
    each component constructor.
    """
    model_config = ConfigDict(frozen=True)

    # Appliance and local storage
    hostname: Optional[str] = None
    restore_host: Optional[str] = None
    data_dir: Path = Path("data")
    backup_strategy: Literal["rsync", "tarball"] = "rsync"

    # Remote channel
    ssh_user: str = "admin"
    ssh_port: int = DEFAULT_SSH_PORT
    identity_file: Optional[Path] = None
    extra_ssh_opts: list[str] = Field(default_factory=list)
    connect_timeout: float = 10.0

    # Remote layout
    remote_data_dir: str = "/data/user"
    git_user: str = "git"
    remote_rsync_path: Optional[str] = "sudo -u git rsync"

    # GC quiescing
    git_cooldown_period: float = 60.0
    gc_poll_interval: float = 1.0
    gc_process_pattern: str = "git( -.+)* (gc|repack|repack-objects)|git-(gc|repack)"

    # Maintenance mode
    maintenance_poll_interval: float = 5.0
    maintenance_timeout: Optional[float] = None
    maintenance_enable_command: str = "sudo appliance-maintenance -s"
    maintenance_disable_command: str = "sudo appliance-maintenance -u"
    maintenance_status_command: str = "curl -s http://127.0.0.1:1337/setup/api/maintenance"

    # Host check
    version_command: str = "cat /etc/appliance/release"
    min_remote_version: str = "2.0.0"

    # Logging
    local_log: Optional[Path] = None

    @field_validator("git_cooldown_period", "gc_poll_interval", "maintenance_poll_interval")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("maintenance_timeout")
    @classmethod
    def _positive_or_unbounded(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value <= 0:
            raise ValueError("must be greater than zero, or omitted for no bound")
        return value

    @field_validator("ssh_port")
    @classmethod
    def _valid_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError(f"invalid port {value}")
        return value

    @property
    def remote_repositories_dir(self) -> str:
        return f"{self.remote_data_dir.rstrip('/')}/repositories"

    @property
    def sync_in_progress_file(self) -> str:
        """Sentinel telling the remote GC scheduler to stand down."""
        return f"{self.remote_repositories_dir}/.sync_in_progress"

    def remote_path(self, name: str) -> str:
        return f"{self.remote_data_dir.rstrip('/')}/{name}"

    def require_host(self, host: Optional[str] = None, for_restore: bool = False) -> str:
        """Resolve the appliance host descriptor for a run.

        Restore falls back to restore_host before hostname.

        Raises:
            ConfigError: if no host is given or configured
        """
        candidates = [host]
        if for_restore:
            candidates.append(self.restore_host)
        candidates.append(self.hostname)
        for candidate in candidates:
            if candidate:
                return candidate
        raise ConfigError("No appliance host given and 'hostname' is not configured")

    @classmethod
    def from_dict(cls, data: dict) -> "BackupConfig":
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}")

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "BackupConfig":
        """Load configuration from an explicit file or the standard locations."""
        if path is not None:
            path = Path(path)
            if not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            data = _read_yaml(path)
            logger.debug(f"Loaded config from {path}")
        else:
            data = _load_merged_config_data(_get_config_search_paths())
        return cls.from_dict(data)


def load_config(path: Optional[Path] = None) -> BackupConfig:
    """Load and validate the backup configuration."""
    return BackupConfig.load(path)
