# FILE: plutus_scan/verification/service.py
"""
Verification pipeline for one claimed request.

    cache lookup -> (miss) compile + cache put -> parse -> derive hashes -> persist

Each stage hands back a result object; the first failed stage ends the run with
record_failure (retry_count + 1, FAILED). Hash derivation failures stay local to
the affected validator.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from plutus_scan.blueprint import parse_blueprint
from plutus_scan.compiler import CompilerService, build_compiler_registry, compile_with
from plutus_scan.config import VerificationConfig, get_config
from plutus_scan.verification import store
from plutus_scan.verification.cache import ArtifactCache, CacheKey
from plutus_scan.verification.hashing import derive_script
from plutus_scan.verification.models import Script, VerificationRequest
from plutus_scan.verification.schemas import (
    ParameterizationStatus,
    ParsedValidator,
    VerificationStatus,
)
from plutus_scan.wire.codec import CompilerType

logger = logging.getLogger(__name__)


class PipelineStatus(str, Enum):
    VERIFIED = "VERIFIED"
    INSUFFICIENT_PARAMS = "INSUFFICIENT_PARAMS"
    FAILED = "FAILED"      # retryable while retry_count < max_retries
    SKIPPED = "SKIPPED"    # claim lost to another worker


@dataclass
class PipelineOutcome:
    request_id: int
    status: PipelineStatus
    scripts: int = 0
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status in (PipelineStatus.VERIFIED, PipelineStatus.INSUFFICIENT_PARAMS)


class StageFailure(Exception):
    """A pipeline stage returned an error result."""


def build_scripts(
    validators: List[ParsedValidator],
    parameters: Optional[Dict[str, List[str]]],
) -> List[Script]:
    """Script rows for parsed validators, with parameters applied where supplied."""
    supplied = {k.lower(): v for k, v in (parameters or {}).items()}
    scripts = []
    for validator in validators:
        derivation = derive_script(validator, supplied.get(validator.raw_hash.lower()))
        scripts.append(Script(
            script_name=validator.script_name,
            module_name=validator.module_name,
            validator_name=validator.validator_name,
            purposes=list(validator.purposes),
            raw_hash=validator.raw_hash,
            final_hash=derivation.final_hash,
            plutus_version=validator.plutus_version.value,
            compiled_code=validator.compiled_code,
            required_parameters=(
                [p.to_json() for p in validator.required_parameters]
                if validator.required_parameters else None
            ),
            provided_parameters=derivation.provided_parameters,
            parameterization_status=derivation.status.value,
        ))
    return scripts


def terminal_status(scripts: List[Script]) -> VerificationStatus:
    """INSUFFICIENT_PARAMS when every script is PARTIAL, VERIFIED otherwise."""
    if scripts and all(
        s.parameterization_status == ParameterizationStatus.PARTIAL.value for s in scripts
    ):
        return VerificationStatus.INSUFFICIENT_PARAMS
    return VerificationStatus.VERIFIED


class VerificationService:
    """Runs the pipeline for requests already claimed (status PROCESSING)."""

    def __init__(
        self,
        config: Optional[VerificationConfig] = None,
        compilers: Optional[Dict[CompilerType, CompilerService]] = None,
    ):
        self.config = config or get_config()
        self.compilers = compilers if compilers is not None else build_compiler_registry(self.config)

    def process(self, db: Session, request_id: int) -> PipelineOutcome:
        """Run the pipeline; never raises for pipeline errors."""
        record = store.get_request(db, request_id)
        if record is None:
            logger.warning(f"[verification] Request {request_id} disappeared before processing")
            return PipelineOutcome(request_id, PipelineStatus.SKIPPED, error_message="request not found")

        logger.info(
            f"[verification] Processing request {record.id}: {record.source_url} @ {record.commit_hash}"
        )
        try:
            scripts = self._run(db, record)
            status = terminal_status(scripts)
            store.record_success(db, request_id, scripts, status)
        except StageFailure as e:
            return self._fail(db, request_id, str(e))
        except Exception as e:
            logger.exception(f"[verification] Unexpected error while verifying request {request_id}")
            return self._fail(db, request_id, f"{type(e).__name__}: {e}")

        logger.info(f"[verification] Request {request_id} finished as {status.value} ({len(scripts)} scripts)")
        return PipelineOutcome(request_id, PipelineStatus(status.value), scripts=len(scripts))

    def _fail(self, db: Session, request_id: int, message: str) -> PipelineOutcome:
        logger.error(f"[verification] Verification failed for request {request_id}: {message}")
        store.record_failure(db, request_id, message)
        return PipelineOutcome(request_id, PipelineStatus.FAILED, error_message=message)

    def _run(self, db: Session, record: VerificationRequest) -> List[Script]:
        compiler_type = CompilerType(record.compiler_type)
        content = self._artifact(db, record, compiler_type)

        parsed = parse_blueprint(compiler_type, record.compiler_version, content)
        if not parsed.success:
            raise StageFailure(f"{parsed.error.value}: {parsed.error_message}")

        return build_scripts(parsed.value, record.parameters_json)

    def _artifact(self, db: Session, record: VerificationRequest, compiler_type: CompilerType) -> str:
        """Build artifact from the cache, compiling and caching it on a miss."""
        cache = ArtifactCache(db)
        key = CacheKey(compiler_type, record.source_url, record.commit_hash, record.compiler_version)

        content = cache.get(key)
        if content is not None:
            return content

        logger.info(f"[verification] Cache miss, compiling {record.source_url} @ {record.commit_hash}")
        result = compile_with(
            self.compilers,
            compiler_type,
            record.source_url,
            record.commit_hash,
            record.compiler_version,
            record.source_path,
        )
        if not result.success:
            raise StageFailure(f"{result.error.value}: {result.error_message}")

        try:
            cache.put(key, result.value)
        except ValueError as e:
            raise StageFailure(f"MALFORMED: build artifact is not JSON: {e}") from e
        return result.value
