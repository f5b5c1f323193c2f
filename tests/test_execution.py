# Author: PB & Claude
# Maintainer: PB
# Original date: 2025.07.21
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# tests/test_execution.py

import subprocess
from unittest.mock import patch, MagicMock

import pytest

from appbackup.system.execution import CommandExecutor, CommandResult


class TestCommandResult:
    """Test CommandResult dataclass functionality."""

    def test_command_result_success_property(self):
        assert CommandResult(returncode=0, stdout="output", stderr="").success is True
        assert CommandResult(returncode=1, stdout="", stderr="error").success is False
        assert CommandResult(returncode=23, stdout="", stderr="partial").success is False


class TestCommandExecutorLocal:
    """Test local command execution."""

    @patch('subprocess.run')
    def test_run_local_success(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="test output", stderr="")

        result = CommandExecutor.run_local(["echo", "test"])

        assert result.success is True
        assert result.stdout == "test output"
        mock_run.assert_called_once_with(
            ["echo", "test"], capture_output=True, text=True, timeout=None
        )

    @patch('subprocess.run')
    def test_run_local_passes_input(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")

        CommandExecutor.run_local(["cat"], input_text="rules\n")

        mock_run.assert_called_once_with(
            ["cat"], capture_output=True, text=True, timeout=None, input="rules\n"
        )

    @patch('subprocess.run')
    def test_run_local_failure_with_check_true(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="command failed")

        with pytest.raises(ValueError, match="Local command failed: command failed"):
            CommandExecutor.run_local(["false"])

    @patch('subprocess.run')
    def test_run_local_failure_empty_stderr(self, mock_run):
        mock_run.return_value = MagicMock(returncode=127, stdout="", stderr="")

        with pytest.raises(ValueError, match="Command failed with exit code 127"):
            CommandExecutor.run_local(["nonexistent-command"])

    @patch('subprocess.run')
    def test_run_local_failure_with_check_false(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="command failed")

        result = CommandExecutor.run_local(["false"], check=False)

        assert result.returncode == 1
        assert result.success is False

    @patch('subprocess.run')
    def test_run_local_timeout_expired(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(["sleep", "10"], 5)

        with pytest.raises(subprocess.TimeoutExpired):
            CommandExecutor.run_local(["sleep", "10"], timeout=5)


class TestCommandExecutorProgress:
    """Test command execution with progress."""

    @patch('subprocess.run')
    def test_run_with_progress_verbose_false(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="rsync output", stderr="")

        result = CommandExecutor.run_with_progress(["rsync", "-av", "src/", "dest/"], verbose=False)

        assert result.stdout == "rsync output"
        mock_run.assert_called_once_with(
            ["rsync", "-av", "src/", "dest/"], capture_output=True, text=True
        )

    @patch('subprocess.run')
    def test_run_with_progress_verbose_true(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0)

        result = CommandExecutor.run_with_progress(["rsync", "-av", "src/", "dest/"], verbose=True)

        assert result.success is True
        assert result.stdout == ""  # Output shown in real-time
        mock_run.assert_called_once_with(
            ["rsync", "-av", "src/", "dest/"], check=False, text=True
        )

    @patch('subprocess.run')
    def test_run_with_progress_feeds_rules_on_stdin(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="", stderr="")

        CommandExecutor.run_with_progress(["rsync", "--include-from=-"], input_text="+ /*/\n")

        assert mock_run.call_args.kwargs["input"] == "+ /*/\n"

    @patch('subprocess.run')
    def test_run_with_progress_failure(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="rsync: connection failed")

        with pytest.raises(ValueError, match="Command failed: rsync: connection failed"):
            CommandExecutor.run_with_progress(["rsync", "invalid"], verbose=False)

    @patch('subprocess.run')
    def test_run_with_progress_check_false_returns_code(self, mock_run):
        mock_run.return_value = MagicMock(returncode=23, stdout="", stderr="some files vanished")

        result = CommandExecutor.run_with_progress(["rsync", "a/", "b/"], check=False)

        assert result.returncode == 23
        assert result.stderr == "some files vanished"


class TestCommandExecutorIntegration:
    """Integration tests with real commands (where safe)."""

    def test_run_local_echo_integration(self):
        result = CommandExecutor.run_local(["echo", "integration test"])

        assert result.success is True
        assert "integration test" in result.stdout

    def test_run_local_false_integration(self):
        with pytest.raises(ValueError):
            CommandExecutor.run_local(["false"])
