# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.24
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_cli.py

"""
CLI tests: option parsing, exit codes, and full runs against a stub channel.
"""

import os
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from appbackup.cli import app
from appbackup.storage.snapshots import CURRENT
from appbackup.system.exceptions import (
    BackupComponentError,
    ConnectivityError,
    MaintenanceTimeout,
    QuiesceTimeout,
    RestoreComponentError,
    TransferError,
)
from tests.fixtures.appliance import stream_exports

runner = CliRunner()

ACTIONS = "appbackup.cli.commands.actions"


@pytest.fixture
def config_file(tmp_path, remote_root):
    path = tmp_path / "backup.yml"
    path.write_text(yaml.safe_dump({
        "hostname": "appliance.example.com",
        "restore_host": "standby.example.com",
        "data_dir": str(tmp_path / "data"),
        "remote_data_dir": str(remote_root),
    }))
    return path


def invoke(config_file, *args):
    return runner.invoke(app, ["--config", str(config_file), *args])


class TestOptions:
    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])

        assert result.exit_code == 0
        for command in ("backup", "restore", "maintenance"):
            assert command in result.output

    def test_missing_config_file(self, tmp_path):
        result = runner.invoke(app, ["--config", str(tmp_path / "absent.yml"), "backup"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output

    def test_no_wait_with_disable_rejected(self, config_file):
        with patch(f"{ACTIONS}.maintenance") as handler:
            result = invoke(config_file, "maintenance", "--no-wait", "--disable")

        assert result.exit_code == 1
        handler.assert_not_called()

    def test_backup_passes_config_and_verbose(self, config_file):
        with patch(f"{ACTIONS}.backup", return_value={}) as handler:
            result = invoke(config_file, "backup", "--verbose")

        assert result.exit_code == 0
        _, config = handler.call_args.args
        assert config.hostname == "appliance.example.com"
        assert handler.call_args.kwargs == {"verbose": True}

    def test_restore_passes_host_and_snapshot(self, config_file):
        with patch(f"{ACTIONS}.restore", return_value={}) as handler:
            result = invoke(config_file, "restore", "dr.example.com:2222", "--snapshot", "20250715T031500")

        assert result.exit_code == 0
        assert handler.call_args.kwargs["host"] == "dr.example.com:2222"
        assert handler.call_args.kwargs["snapshot"] == "20250715T031500"


class TestExitCodes:
    @pytest.mark.parametrize("error, exit_code, category", [
        (QuiesceTimeout("GC still running", phase="quiesce"), 7, "GC quiesce timeout"),
        (ConnectivityError("no route", phase="connect"), 255, "unreachable"),
        (TransferError("rsync exited 23", phase="repositories/objects", exit_code=23), 23,
         "transfer step failed"),
        (MaintenanceTimeout("still draining", phase="maintenance"), 2, "maintenance drain timeout"),
        (BackupComponentError("Backup of redis failed", phase="redis", exit_code=1), 2,
         "transfer step failed"),
    ])
    def test_backup_failure_exit_codes(self, config_file, error, exit_code, category):
        with patch(f"{ACTIONS}.backup", side_effect=error):
            result = invoke(config_file, "backup")

        assert result.exit_code == exit_code
        assert f"during {error.phase}" in result.output
        assert category in result.output
        if exit_code != 1:
            assert "configuration or usage error" not in result.output

    def test_restore_component_failure(self, config_file):
        error = RestoreComponentError("Restore of redis failed", phase="redis", exit_code=3)
        with patch(f"{ACTIONS}.restore", side_effect=error):
            result = invoke(config_file, "restore")

        assert result.exit_code == 3
        assert "during redis" in result.output

    def test_interrupt(self, config_file):
        with patch(f"{ACTIONS}.backup", side_effect=KeyboardInterrupt):
            result = invoke(config_file, "backup")

        assert result.exit_code == 130
        assert "interrupted" in result.output


class TestFullRuns:
    """Commands driven end to end with the remote side stubbed out."""

    @pytest.fixture
    def opened(self, channel):
        stream_exports(channel)
        hosts = []

        def fake_open_channel(config, host=None, for_restore=False):
            hosts.append(config.require_host(host, for_restore=for_restore))
            return channel

        with patch(f"{ACTIONS}.open_channel", side_effect=fake_open_channel):
            yield hosts

    def test_backup_then_restore(self, config_file, tmp_path, channel, recorder, opened):
        backup = invoke(config_file, "backup")

        assert backup.exit_code == 0, backup.output
        assert "Completed backup" in backup.output
        snapshot_id = os.readlink(tmp_path / "data" / CURRENT)

        restore = invoke(config_file, "restore")

        assert restore.exit_code == 0, restore.output
        assert snapshot_id in restore.output
        assert "maintenance mode" in restore.output
        assert opened == ["appliance.example.com", "standby.example.com"]
        assert channel.count(r"appliance-maintenance -u") == 0

    def test_restore_without_snapshots(self, config_file, channel, opened):
        result = invoke(config_file, "restore")

        assert result.exit_code == 1
        assert "No current snapshot" in result.output
        assert channel.commands == []

    def test_restore_with_file_missing_from_snapshot(self, config_file, tmp_path, channel, recorder, opened):
        backup = invoke(config_file, "backup")
        assert backup.exit_code == 0, backup.output
        (tmp_path / "data" / CURRENT / "redis.rdb").unlink()

        restore = invoke(config_file, "restore")

        assert restore.exit_code == 2
        assert "during redis" in restore.output
        assert "configuration or usage error" not in restore.output

    def test_restore_path_like_snapshot_ref(self, config_file, channel, opened):
        result = invoke(config_file, "restore", "--snapshot", "..")

        assert result.exit_code == 1
        assert "is not a snapshot id" in result.output
        assert channel.commands == []

    def test_maintenance_enable_and_disable(self, config_file, channel, opened):
        enabled = invoke(config_file, "maintenance", "--no-wait")
        disabled = invoke(config_file, "maintenance", "--disable")

        assert enabled.exit_code == 0
        assert disabled.exit_code == 0
        assert channel.commands == ["sudo appliance-maintenance -s", "sudo appliance-maintenance -u"]
