# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.21
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/conftest.py

"""
Shared test fixtures for the appbackup test suite.
"""

import sys
from pathlib import Path

import pytest
from loguru import logger

from appbackup.config.manager import BackupConfig
from appbackup.system.execution import CommandExecutor
from tests.fixtures.appliance import TickingNow, populate_remote
from tests.fixtures.stub_remote import FakeClock, RecordingExecutor, StubChannel


@pytest.fixture(autouse=True)
def _restore_loguru():
    """setup_logging() replaces loguru sinks; give each test the default back."""
    yield
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def remote_root(tmp_path) -> Path:
    """Directory standing in for the appliance's /data/user."""
    root = tmp_path / "remote"
    root.mkdir()
    return root


@pytest.fixture
def populated_remote(remote_root) -> Path:
    return populate_remote(remote_root)


@pytest.fixture
def config(tmp_path, remote_root) -> BackupConfig:
    return BackupConfig(
        hostname="appliance.example.com",
        data_dir=tmp_path / "data",
        remote_data_dir=str(remote_root),
        remote_rsync_path=None,
    )


@pytest.fixture
def channel() -> StubChannel:
    return StubChannel()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ticking_now() -> TickingNow:
    return TickingNow()


@pytest.fixture
def recorder(monkeypatch) -> RecordingExecutor:
    """Record rsync invocations instead of running them."""
    recorder = RecordingExecutor()
    monkeypatch.setattr(CommandExecutor, "run_with_progress", recorder.run_with_progress)
    return recorder
