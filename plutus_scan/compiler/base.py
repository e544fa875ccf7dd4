# FILE: plutus_scan/compiler/base.py
"""
Compiler service interface and build workspace.
"""
from __future__ import annotations

import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

from plutus_scan.wire.codec import CompilerType

logger = logging.getLogger(__name__)


class CompileError(str, Enum):
    """Compilation failure taxonomy. Every failure is retry-eligible."""
    INVALID_SOURCE_URL = "INVALID_SOURCE_URL"
    WORKSPACE = "WORKSPACE"
    CLONE = "CLONE"
    CHECKOUT = "CHECKOUT"
    SOURCE_PATH_MISSING = "SOURCE_PATH_MISSING"
    TOOLCHAIN_INSTALL = "TOOLCHAIN_INSTALL"
    BUILD = "BUILD"
    TIMEOUT = "TIMEOUT"
    ARTIFACT_MISSING = "ARTIFACT_MISSING"
    UNSUPPORTED_COMPILER = "UNSUPPORTED_COMPILER"


@dataclass
class CompileResult:
    """Result of a compile call: artifact content on success."""
    success: bool
    value: Optional[str] = None
    error: Optional[CompileError] = None
    error_message: Optional[str] = None

    @classmethod
    def ok(cls, content: str) -> "CompileResult":
        return cls(success=True, value=content)

    @classmethod
    def fail(cls, error: CompileError, message: str) -> "CompileResult":
        return cls(success=False, error=error, error_message=message)


class CompilerService(ABC):
    """Reproduces one build of a source repository at a pinned commit."""

    @property
    @abstractmethod
    def compiler_type(self) -> CompilerType:
        ...

    @abstractmethod
    def compile(
        self,
        source_url: str,
        commit_hash: str,
        compiler_version: Optional[str] = None,
        source_path: Optional[str] = None,
    ) -> CompileResult:
        """Clone, pin, build and return the build artifact content."""


@contextmanager
def build_workspace(temp_root: str, prefix: str) -> Iterator[Path]:
    """
    Fresh private directory under `temp_root`, removed on every exit path.

    A failed removal is logged and never masks the body's result or exception.
    """
    root = Path(temp_root)
    root.mkdir(parents=True, exist_ok=True)
    workspace = Path(tempfile.mkdtemp(prefix=prefix, dir=str(root)))
    logger.info(f"[compiler] Created build directory: {workspace}")
    try:
        yield workspace
    finally:
        try:
            shutil.rmtree(workspace)
            logger.debug(f"[compiler] Cleaned up build directory: {workspace}")
        except OSError as e:
            logger.warning(f"[compiler] Failed to clean up build directory {workspace}: {e}")
