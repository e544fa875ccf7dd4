# FILE: plutus_scan/verification/schemas.py
"""
Verification pipeline - enums, parsed validators and API response shapes.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# ENUMS
# =============================================================================

class VerificationStatus(str, Enum):
    """
    Request lifecycle.

    PENDING -> PROCESSING -> VERIFIED | INSUFFICIENT_PARAMS | FAILED
    FAILED goes back to PROCESSING while retry_count < max_retries.
    """
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    VERIFIED = "VERIFIED"
    FAILED = "FAILED"
    INSUFFICIENT_PARAMS = "INSUFFICIENT_PARAMS"


class ParameterizationStatus(str, Enum):
    """Whether enough parameters were supplied to compute the final hash."""
    NONE_REQUIRED = "NONE_REQUIRED"  # final hash == raw hash
    PARTIAL = "PARTIAL"              # missing/mismatched/malformed parameters
    COMPLETE = "COMPLETE"            # final hash derived


class PlutusVersion(str, Enum):
    """On-chain script language generation."""
    V1 = "V1"
    V2 = "V2"
    V3 = "V3"

    @property
    def language_tag(self) -> int:
        return {PlutusVersion.V1: 1, PlutusVersion.V2: 2, PlutusVersion.V3: 3}[self]

    @classmethod
    def from_string(cls, value: Optional[str], default: "PlutusVersion" = None) -> "PlutusVersion":
        """
        Lenient parse: "v2", "V3", "PlutusV1", "plutus_v2", "3".
        Unknown values fall back to V3, missing values to `default` (or V3).
        """
        if value is None or not str(value).strip():
            return default or cls.V3
        normalized = str(value).upper().replace("PLUTUS", "").replace("_", "").strip()
        return {
            "V1": cls.V1, "1": cls.V1,
            "V2": cls.V2, "2": cls.V2,
            "V3": cls.V3, "3": cls.V3,
        }.get(normalized, cls.V3)


# =============================================================================
# PARSED BLUEPRINT
# =============================================================================

class ParameterSchema(BaseModel):
    """One required validator parameter, carried verbatim from the blueprint."""
    title: Optional[str] = None
    schema_: Any = Field(default=None, alias="schema")

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return {"title": self.title, "schema": self.schema_}


class ParsedValidator(BaseModel):
    """
    One logical validator extracted from a build artifact.

    Entries sharing a raw hash are merged; `purposes` is their union in
    first-seen order.
    """
    script_name: str
    module_name: str
    validator_name: str
    purposes: List[str] = Field(default_factory=list)
    raw_hash: str
    compiled_code: str
    plutus_version: PlutusVersion = PlutusVersion.V3
    required_parameters: Optional[List[ParameterSchema]] = None

    @property
    def requires_parameters(self) -> bool:
        return bool(self.required_parameters)


# =============================================================================
# API RESPONSES
# =============================================================================

class ScriptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    script_name: str
    module_name: str
    validator_name: str
    purposes: List[str]
    raw_hash: str
    final_hash: Optional[str] = None
    plutus_version: PlutusVersion
    compiled_code: str
    required_parameters: Optional[List[Dict[str, Any]]] = None
    provided_parameters: Optional[List[str]] = None
    parameterization_status: ParameterizationStatus


class VerificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tx_hash: str
    slot: int
    source_url: str
    commit_hash: str
    compiler_type: str
    compiler_version: Optional[str] = None
    source_path: Optional[str] = None
    status: VerificationStatus
    error_message: Optional[str] = None
    retry_count: int
    created_at: datetime
    updated_at: datetime


class ScriptSourceOut(ScriptOut):
    """Script plus the request it was verified from."""
    source_url: str
    commit_hash: str
    compiler_type: str
    compiler_version: Optional[str] = None
    source_path: Optional[str] = None
    tx_hash: str


class VerificationScriptsOut(BaseModel):
    """A verified request with all of its scripts."""
    verification: VerificationOut
    scripts: List[ScriptOut]


class StatsOut(BaseModel):
    verifications: int
    scripts: int
    repositories: int
