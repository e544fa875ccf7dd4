# FILE: plutus_scan/compiler/aiken.py
"""
Aiken compiler service.

Steps, each bounded by the build timeout:
1. git clone <clone_url> repo
2. git checkout <commit>
3. (optional) descend into the source path
4. (optional) aikup install <version>
5. aiken build
6. read plutus.json
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from plutus_scan.compiler.base import (
    CompileError,
    CompileResult,
    CompilerService,
    build_workspace,
)
from plutus_scan.compiler.shell import ShellCommandError, run_command
from plutus_scan.config import VerificationConfig
from plutus_scan.source_url import is_valid_commit_hash, parse_source_url
from plutus_scan.wire.codec import CompilerType

logger = logging.getLogger(__name__)

BUILD_ARTIFACT = "plutus.json"

_VERSION_RE = re.compile(r"v?[0-9][0-9A-Za-z.+\-]*")


class AikenCompilerService(CompilerService):
    """Builds Aiken projects with git, aikup and aiken."""

    def __init__(self, config: VerificationConfig):
        self.config = config

    @property
    def compiler_type(self) -> CompilerType:
        return CompilerType.AIKEN

    def _run(self, args, cwd: Path, error: CompileError) -> Optional[CompileResult]:
        """Run one step; a CompileResult means the step failed."""
        try:
            run_command(
                args,
                cwd=cwd,
                timeout=self.config.build_timeout_seconds,
                toolchain_bin_dir=self.config.toolchain_bin_dir,
            )
        except ShellCommandError as e:
            if e.timed_out:
                return CompileResult.fail(CompileError.TIMEOUT, str(e))
            return CompileResult.fail(error, str(e))
        return None

    def compile(
        self,
        source_url: str,
        commit_hash: str,
        compiler_version: Optional[str] = None,
        source_path: Optional[str] = None,
    ) -> CompileResult:
        parsed = parse_source_url(source_url)
        if parsed is None or not parsed.is_clonable:
            return CompileResult.fail(CompileError.INVALID_SOURCE_URL, f"Invalid source URL: {source_url}")
        if not is_valid_commit_hash(commit_hash):
            return CompileResult.fail(CompileError.CHECKOUT, f"Invalid commit hash: {commit_hash}")
        if compiler_version and not _VERSION_RE.fullmatch(compiler_version):
            return CompileResult.fail(
                CompileError.TOOLCHAIN_INSTALL, f"Invalid compiler version: {compiler_version}"
            )

        try:
            with build_workspace(self.config.temp_dir, prefix="aiken-build-") as workspace:
                return self._build(workspace, parsed.clone_url, parsed.vcs_type.value,
                                   commit_hash, compiler_version, source_path)
        except OSError as e:
            return CompileResult.fail(CompileError.WORKSPACE, f"IO error during compilation: {e}")

    def _build(
        self,
        workspace: Path,
        clone_url: str,
        vcs_label: str,
        commit_hash: str,
        compiler_version: Optional[str],
        source_path: Optional[str],
    ) -> CompileResult:
        repo_dir = workspace / "repo"

        logger.info(f"[compiler] Cloning {clone_url} ({vcs_label}) at commit {commit_hash}")
        failed = self._run(["git", "clone", clone_url, str(repo_dir)], workspace, CompileError.CLONE)
        if failed:
            return failed

        failed = self._run(["git", "checkout", commit_hash], repo_dir, CompileError.CHECKOUT)
        if failed:
            return failed

        work_dir = repo_dir
        if source_path:
            work_dir = (repo_dir / source_path).resolve()
            repo_root = repo_dir.resolve()
            if work_dir != repo_root and repo_root not in work_dir.parents:
                return CompileResult.fail(
                    CompileError.SOURCE_PATH_MISSING, f"Source path escapes repository: {source_path}"
                )
            if not work_dir.is_dir():
                return CompileResult.fail(
                    CompileError.SOURCE_PATH_MISSING, f"Source path does not exist: {source_path}"
                )
            logger.info(f"[compiler] Using source path: {work_dir}")

        if compiler_version:
            logger.info(f"[compiler] Installing Aiken version: {compiler_version}")
            failed = self._run(["aikup", "install", compiler_version], work_dir, CompileError.TOOLCHAIN_INSTALL)
            if failed:
                return failed

        logger.info(f"[compiler] Building Aiken project in: {work_dir}")
        failed = self._run(["aiken", "build"], work_dir, CompileError.BUILD)
        if failed:
            return failed

        artifact = work_dir / BUILD_ARTIFACT
        if not artifact.is_file():
            return CompileResult.fail(
                CompileError.ARTIFACT_MISSING,
                f"build artifact missing: {BUILD_ARTIFACT} not found after build",
            )

        content = artifact.read_text(encoding="utf-8")
        logger.info(f"[compiler] Build completed, read {BUILD_ARTIFACT} ({len(content)} bytes)")
        return CompileResult.ok(content)
