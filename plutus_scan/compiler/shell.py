# FILE: plutus_scan/compiler/shell.py
"""
External command execution for builds.

Commands run as argv lists (no shell), in their own process group, with PATH
prefixed by the toolchain bin directory. On timeout the whole process group is
killed before the call returns; nothing is left running.
"""
from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Outcome of one command."""
    command: str
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class ShellCommandError(Exception):
    """A command could not be started, timed out, or exited non-zero."""

    def __init__(self, message: str, result: Optional[ProcessResult] = None, timed_out: bool = False):
        super().__init__(message)
        self.result = result
        self.timed_out = timed_out


def build_environment(toolchain_bin_dir: Optional[str] = None) -> Dict[str, str]:
    """Current environment with the toolchain bin dir first on PATH."""
    env = dict(os.environ)
    if toolchain_bin_dir:
        env["PATH"] = f"{toolchain_bin_dir}{os.pathsep}{env.get('PATH', '')}"
    return env


def _kill_process_group(proc: subprocess.Popen) -> None:
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        # Group already gone; fall back to the direct child
        proc.kill()


def run_command(
    args: Sequence[str],
    cwd: Path,
    timeout: float,
    toolchain_bin_dir: Optional[str] = None,
) -> ProcessResult:
    """
    Run a command and capture its output.

    Args:
        args: argv list, e.g. ["git", "checkout", commit]
        cwd: working directory
        timeout: seconds before the process group is killed
        toolchain_bin_dir: prepended to PATH

    Returns:
        ProcessResult for a zero exit code.

    Raises:
        ShellCommandError: start failure, timeout, or non-zero exit (carries stderr).
    """
    command = " ".join(args)
    env = build_environment(toolchain_bin_dir)
    logger.debug(f"[shell] Executing: {command} (cwd={cwd})")
    logger.debug(f"[shell] PATH: {env.get('PATH')}")

    start_time = time.time()
    try:
        proc = subprocess.Popen(
            list(args),
            cwd=str(cwd),
            env=env,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=True,
        )
    except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
        raise ShellCommandError(f"Failed to start command '{command}': {e}") from e

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_process_group(proc)
        stdout, stderr = proc.communicate()
        duration_ms = int((time.time() - start_time) * 1000)
        result = ProcessResult(command, -1, stdout or "", stderr or "", duration_ms)
        raise ShellCommandError(
            f"Command timed out after {timeout}s: {command}",
            result=result,
            timed_out=True,
        )
    except BaseException:
        # Interrupted (e.g. KeyboardInterrupt): never leave the build running
        _kill_process_group(proc)
        proc.communicate()
        raise

    duration_ms = int((time.time() - start_time) * 1000)
    result = ProcessResult(command, proc.returncode, stdout, stderr, duration_ms)
    logger.debug(f"[shell] Command completed with exit code {proc.returncode} in {duration_ms}ms")

    if not result.success:
        logger.warning(f"[shell] Command failed with exit code {result.exit_code}. Stderr: {stderr.strip()}")
        raise ShellCommandError(
            f"Command failed with exit code {result.exit_code}: {command}\nStderr: {stderr.strip()}",
            result=result,
        )
    return result
