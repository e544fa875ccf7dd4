# FILE: tests/test_shell.py
"""
Tests for plutus_scan/compiler/shell.py
External command execution with timeouts and process-group cleanup.
"""

import os
import sys
import time

import pytest

from plutus_scan.compiler.shell import ShellCommandError, build_environment, run_command

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")


class TestBuildEnvironment:
    """Tests for PATH handling."""

    def test_toolchain_prepended(self):
        """Toolchain dir comes first on PATH."""
        env = build_environment("/opt/aiken/bin")

        assert env["PATH"].split(os.pathsep)[0] == "/opt/aiken/bin"

    def test_no_toolchain(self):
        """Without a toolchain dir PATH is unchanged."""
        assert build_environment(None).get("PATH") == os.environ.get("PATH")


class TestRunCommand:
    """Tests for run_command."""

    def test_success(self, tmp_path):
        """Zero exit returns captured output."""
        result = run_command([sys.executable, "-c", "print('hello')"], cwd=tmp_path, timeout=10)

        assert result.success
        assert result.exit_code == 0
        assert result.stdout.strip() == "hello"

    def test_runs_in_cwd(self, tmp_path):
        """The working directory is honoured."""
        result = run_command([sys.executable, "-c", "import os; print(os.getcwd())"], cwd=tmp_path, timeout=10)

        assert os.path.realpath(result.stdout.strip()) == os.path.realpath(str(tmp_path))

    def test_nonzero_exit_carries_stderr(self, tmp_path):
        """Non-zero exit raises with stderr in the message."""
        script = "import sys; sys.stderr.write('build exploded'); sys.exit(3)"
        with pytest.raises(ShellCommandError) as exc:
            run_command([sys.executable, "-c", script], cwd=tmp_path, timeout=10)

        assert "build exploded" in str(exc.value)
        assert exc.value.result.exit_code == 3
        assert not exc.value.timed_out

    def test_timeout_kills_process(self, tmp_path):
        """A command past its timeout is killed and the call fails promptly."""
        marker = tmp_path / "survived"
        script = f"import time; time.sleep(3); open({str(marker)!r}, 'w').close()"

        start = time.time()
        with pytest.raises(ShellCommandError) as exc:
            run_command([sys.executable, "-c", script], cwd=tmp_path, timeout=0.5)
        elapsed = time.time() - start

        assert exc.value.timed_out
        assert elapsed < 3
        time.sleep(3.5)
        assert not marker.exists()

    def test_missing_binary(self, tmp_path):
        """An unknown executable raises instead of crashing."""
        with pytest.raises(ShellCommandError):
            run_command(["definitely-not-a-real-binary-xyz"], cwd=tmp_path, timeout=5)
