# FILE: plutus_scan/config.py
"""
Plutus Scan - Configuration

Centralized config for the verification pipeline.
Every knob is read from a PLUTUS_SCAN_* environment variable with a default.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path

logger = logging.getLogger(__name__)


def _default_temp_dir() -> str:
    return str(Path(tempfile.gettempdir()) / "plutus-scan-builds")


def _default_toolchain_bin() -> str:
    return str(Path.home() / ".aiken" / "bin")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"[config] {name}={raw!r} is not an integer, using default {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class VerificationConfig:
    """
    Knobs consumed by intake, scheduler and compiler orchestration.
    """
    # Scheduler
    poll_interval_seconds: int = 30
    batch_size: int = 10
    max_retries: int = 3
    processing_timeout_seconds: int = 3600

    # Compiler orchestration
    build_timeout_seconds: int = 300
    temp_dir: str = field(default_factory=_default_temp_dir)
    toolchain_bin_dir: str = field(default_factory=_default_toolchain_bin)

    # Wire protocol
    chunk_size: int = 64
    metadata_label: int = 1984

    # Maintenance
    cache_max_age_days: int = 30
    scheduler_enabled: bool = True

    @classmethod
    def from_env(cls) -> "VerificationConfig":
        defaults = cls()
        return cls(
            poll_interval_seconds=_env_int("PLUTUS_SCAN_POLL_INTERVAL_SECONDS", defaults.poll_interval_seconds),
            batch_size=_env_int("PLUTUS_SCAN_BATCH_SIZE", defaults.batch_size),
            max_retries=_env_int("PLUTUS_SCAN_MAX_RETRIES", defaults.max_retries),
            processing_timeout_seconds=_env_int(
                "PLUTUS_SCAN_PROCESSING_TIMEOUT_SECONDS", defaults.processing_timeout_seconds,
            ),
            build_timeout_seconds=_env_int("PLUTUS_SCAN_BUILD_TIMEOUT_SECONDS", defaults.build_timeout_seconds),
            temp_dir=os.getenv("PLUTUS_SCAN_TEMP_DIR", "").strip() or defaults.temp_dir,
            toolchain_bin_dir=os.getenv("PLUTUS_SCAN_TOOLCHAIN_BIN", "").strip() or defaults.toolchain_bin_dir,
            chunk_size=_env_int("PLUTUS_SCAN_CHUNK_SIZE", defaults.chunk_size),
            metadata_label=_env_int("PLUTUS_SCAN_METADATA_LABEL", defaults.metadata_label),
            cache_max_age_days=_env_int("PLUTUS_SCAN_CACHE_MAX_AGE_DAYS", defaults.cache_max_age_days),
            scheduler_enabled=_env_bool("PLUTUS_SCAN_SCHEDULER_ENABLED", defaults.scheduler_enabled),
        )


@lru_cache(maxsize=1)
def get_config() -> VerificationConfig:
    """Process-wide config, read once from the environment."""
    return VerificationConfig.from_env()
