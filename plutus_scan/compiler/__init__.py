"""Compiler orchestration: reproducible builds in isolated, time-bounded workspaces."""

from typing import Dict, Optional

from plutus_scan.compiler.aiken import AikenCompilerService
from plutus_scan.compiler.base import (
    CompileError,
    CompileResult,
    CompilerService,
    build_workspace,
)
from plutus_scan.compiler.shell import ProcessResult, ShellCommandError, run_command
from plutus_scan.config import VerificationConfig
from plutus_scan.wire.codec import CompilerType


def build_compiler_registry(config: VerificationConfig) -> Dict[CompilerType, CompilerService]:
    """Compiler services by family. Families without an entry are unsupported."""
    services = [AikenCompilerService(config)]
    return {service.compiler_type: service for service in services}


def compile_with(
    registry: Dict[CompilerType, CompilerService],
    compiler_type: CompilerType,
    source_url: str,
    commit_hash: str,
    compiler_version: Optional[str] = None,
    source_path: Optional[str] = None,
) -> CompileResult:
    service = registry.get(compiler_type)
    if service is None:
        return CompileResult.fail(
            CompileError.UNSUPPORTED_COMPILER,
            f"No compiler service found for type: {compiler_type.value}",
        )
    return service.compile(source_url, commit_hash, compiler_version, source_path)


__all__ = [
    "AikenCompilerService",
    "CompileError",
    "CompileResult",
    "CompilerService",
    "ProcessResult",
    "ShellCommandError",
    "build_compiler_registry",
    "build_workspace",
    "compile_with",
    "run_command",
]
