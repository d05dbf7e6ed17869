"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't touch the database - just help output and argument handling.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import subprocess
import sys
from pathlib import Path

import pytest

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


def run_cli_command(command: str, timeout: int = 30) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        command: The command to run (after 'python -m skillpath.cli')
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    full_command = f"{sys.executable} -m skillpath.cli {command}"

    result = subprocess.run(
        full_command,
        shell=True,
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
    )

    return result.returncode, result.stdout, result.stderr


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command("--help")

        assert code == 0, f"Help failed: {stderr}"
        assert "skillpath" in stdout.lower()
        assert "Commands" in stdout

    def test_main_help_lists_groups(self):
        """Top-level help lists the command groups."""
        code, stdout, stderr = run_cli_command("--help")

        assert code == 0, f"Help failed: {stderr}"
        for group in ("db", "sessions", "serve"):
            assert group in stdout

    def test_db_help(self):
        code, stdout, stderr = run_cli_command("db --help")

        assert code == 0, f"db help failed: {stderr}"
        assert "init" in stdout

    def test_sessions_help(self):
        code, stdout, stderr = run_cli_command("sessions --help")

        assert code == 0, f"sessions help failed: {stderr}"
        assert "cleanup" in stdout
        assert "active" in stdout

    def test_sessions_active_help(self):
        code, stdout, stderr = run_cli_command("sessions active --help")

        assert code == 0, f"sessions active help failed: {stderr}"
        assert "--scope" in stdout

    def test_serve_help(self):
        code, stdout, stderr = run_cli_command("serve --help")

        assert code == 0, f"serve help failed: {stderr}"
        assert "--port" in stdout


class TestCLIArguments:
    """Argument validation happens before any database access."""

    def test_active_requires_user_id(self):
        code, stdout, stderr = run_cli_command("sessions active")

        assert code != 0

    def test_unknown_command_fails(self):
        code, stdout, stderr = run_cli_command("no-such-command")

        assert code != 0
