# FILE: plutus_scan/wire/codec.py
"""
Verification request wire codec.

A request travels on-chain as transaction metadata under a fixed label:

    {1984: [chunk_0, chunk_1, ...]}         chunk_i: <= 64 raw bytes

Concatenating the chunks yields one Plutus data value:

    Constr(compiler_id, [
        Bytes(source_url utf-8),
        Bytes(commit_hash raw),
        Bytes(source_path utf-8 | ""),
        Bytes(compiler_version utf-8 | ""),
        Map{ Bytes(raw_script_hash): [Bytes(encoded_param), ...] },
    ])

The constructor alternative selects the compiler family by numeric id, so new
families can be appended without renumbering.

Decoding never raises: every failure maps to a WireError on DecodeResult and the
candidate is dropped without retry.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

import cbor2
from pydantic import BaseModel, Field, field_validator

from plutus_scan.wire.plutus_data import (
    Constr,
    PlutusDataError,
    decode_plutus_data,
    encode_plutus_data,
)

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64
DEFAULT_METADATA_LABEL = 1984


# =============================================================================
# COMPILER FAMILIES
# =============================================================================

class CompilerType(str, Enum):
    """Source compiler families. Wire ids are fixed; never reorder."""
    AIKEN = "aiken"
    HELIOS = "helios"
    SCALUS = "scalus"
    OPSHIN = "opshin"
    PLUTARCH = "plutarch"
    PLINTH = "plinth"
    PLUTUS = "plutus"
    PLUTS = "pluts"

    @property
    def compile_id(self) -> int:
        return _COMPILER_IDS[self]

    @classmethod
    def from_id(cls, compile_id: int) -> Optional["CompilerType"]:
        for compiler_type, cid in _COMPILER_IDS.items():
            if cid == compile_id:
                return compiler_type
        return None


_COMPILER_IDS: Dict[CompilerType, int] = {
    CompilerType.AIKEN: 0,
    CompilerType.HELIOS: 1,
    CompilerType.SCALUS: 2,
    CompilerType.OPSHIN: 3,
    CompilerType.PLUTARCH: 4,
    CompilerType.PLINTH: 5,
    CompilerType.PLUTUS: 6,
    CompilerType.PLUTS: 7,
}


# =============================================================================
# REQUEST MODEL
# =============================================================================

def _normalize_hex(value: str, field_name: str) -> str:
    cleaned = value.strip().lower()
    if cleaned.startswith("0x"):
        cleaned = cleaned[2:]
    try:
        bytes.fromhex(cleaned)
    except ValueError:
        raise ValueError(f"{field_name} must be hex, got {value!r}")
    return cleaned


class ScanRequest(BaseModel):
    """
    A verification request as carried on the wire.

    Hex fields are normalized to lowercase; empty optional strings become None
    so that encode/decode is lossless.
    """
    compiler_type: CompilerType = CompilerType.AIKEN
    source_url: str
    commit_hash: str
    source_path: Optional[str] = None
    compiler_version: Optional[str] = None
    parameters: Dict[str, List[str]] = Field(default_factory=dict)

    @field_validator("commit_hash")
    @classmethod
    def _commit_hash_hex(cls, v: str) -> str:
        return _normalize_hex(v, "commit_hash")

    @field_validator("source_path", "compiler_version")
    @classmethod
    def _empty_is_absent(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    @field_validator("parameters")
    @classmethod
    def _parameters_hex(cls, v: Dict[str, List[str]]) -> Dict[str, List[str]]:
        return {
            _normalize_hex(script_hash, "script hash"): [_normalize_hex(p, "parameter") for p in params]
            for script_hash, params in v.items()
        }


# =============================================================================
# RESULT TYPES
# =============================================================================

class WireError(str, Enum):
    """Why a payload could not be turned into a ScanRequest."""
    INVALID_CBOR = "INVALID_CBOR"
    MISSING_LABEL = "MISSING_LABEL"
    MALFORMED_CHUNK = "MALFORMED_CHUNK"
    UNSUPPORTED_TAG = "UNSUPPORTED_TAG"
    MALFORMED_FIELDS = "MALFORMED_FIELDS"
    INVALID_TEXT = "INVALID_TEXT"


@dataclass
class DecodeResult:
    """Result of decoding a wire payload."""
    success: bool
    value: Optional[ScanRequest] = None
    error: Optional[WireError] = None
    error_message: Optional[str] = None


class MissingLabelError(PlutusDataError):
    """The metadata map has no entry under the expected label."""


def _fail(error: WireError, message: str) -> DecodeResult:
    return DecodeResult(success=False, error=error, error_message=message)


# =============================================================================
# ENCODING
# =============================================================================

def request_to_plutus_data(request: ScanRequest) -> Constr:
    # Keys sorted by hex for a canonical map ordering
    params_map = {
        bytes.fromhex(script_hash): [bytes.fromhex(p) for p in request.parameters[script_hash]]
        for script_hash in sorted(request.parameters)
    }
    return Constr(request.compiler_type.compile_id, (
        request.source_url.encode("utf-8"),
        bytes.fromhex(request.commit_hash),
        (request.source_path or "").encode("utf-8"),
        (request.compiler_version or "").encode("utf-8"),
        params_map,
    ))


def encode_request(request: ScanRequest) -> bytes:
    """Serialize a request to its binary wire form."""
    return encode_plutus_data(request_to_plutus_data(request))


def to_chunks(data: bytes, size: int = DEFAULT_CHUNK_SIZE) -> List[bytes]:
    """Split bytes into ordered chunks of at most `size` bytes (at least one chunk)."""
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    if not data:
        return [b""]
    return [data[i:i + size] for i in range(0, len(data), size)]


def chunk_request(request: ScanRequest, size: int = DEFAULT_CHUNK_SIZE) -> List[bytes]:
    return to_chunks(encode_request(request), size)


def chunks_to_hex(chunks: Iterable[bytes]) -> List[str]:
    return [chunk.hex() for chunk in chunks]


def build_metadata(
    request: ScanRequest,
    label: int = DEFAULT_METADATA_LABEL,
    size: int = DEFAULT_CHUNK_SIZE,
) -> bytes:
    """Transaction metadata CBOR carrying the chunked request under `label`."""
    return cbor2.dumps({label: chunk_request(request, size)})


# =============================================================================
# DECODING
# =============================================================================

def reassemble(chunks: Iterable[Union[bytes, str]]) -> str:
    """Concatenate chunks (raw bytes or hex strings) in encounter order, as hex."""
    return "".join(c.hex() if isinstance(c, (bytes, bytearray)) else c for c in chunks)


def extract_metadata_chunks(
    metadata_cbor_hex: str,
    label: int = DEFAULT_METADATA_LABEL,
    max_chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> List[bytes]:
    """
    Read the chunk list stored under `label` in a metadata CBOR map.

    Raises:
        PlutusDataError: when the CBOR is invalid, the label is missing, or a
            chunk is not a byte string of at most `max_chunk_size` bytes.
    """
    try:
        metadata = cbor2.loads(bytes.fromhex(metadata_cbor_hex))
    except (cbor2.CBORDecodeError, ValueError, TypeError) as e:
        raise PlutusDataError(f"invalid metadata CBOR: {e}") from e

    if not isinstance(metadata, Mapping) or label not in metadata:
        raise MissingLabelError(f"metadata label {label} not found")

    chunks = metadata[label]
    if not isinstance(chunks, (list, tuple)):
        raise PlutusDataError(f"metadata label {label} does not hold a list")
    for index, chunk in enumerate(chunks):
        if not isinstance(chunk, bytes):
            raise PlutusDataError(f"chunk {index} is not a byte string")
        if len(chunk) > max_chunk_size:
            raise PlutusDataError(f"chunk {index} is {len(chunk)} bytes, limit is {max_chunk_size}")
    return list(chunks)


def _text(value, field_name: str) -> str:
    if not isinstance(value, bytes):
        raise TypeError(f"{field_name} must be a byte string")
    return value.decode("utf-8")


def decode_request(payload_hex: str) -> DecodeResult:
    """Decode a reassembled hex payload into a ScanRequest."""
    try:
        data = decode_plutus_data(bytes.fromhex(payload_hex))
    except (PlutusDataError, ValueError) as e:
        return _fail(WireError.INVALID_CBOR, f"payload is not Plutus data: {e}")

    if not isinstance(data, Constr):
        return _fail(WireError.UNSUPPORTED_TAG, "payload is not a constructor")

    compiler_type = CompilerType.from_id(data.alternative)
    if compiler_type is None:
        return _fail(WireError.UNSUPPORTED_TAG, f"unknown compiler id {data.alternative}")

    fields = data.fields
    if len(fields) != 5:
        return _fail(WireError.MALFORMED_FIELDS, f"expected 5 fields, got {len(fields)}")

    try:
        source_url = _text(fields[0], "source_url")
        source_path = _text(fields[2], "source_path")
        compiler_version = _text(fields[3], "compiler_version")
    except UnicodeDecodeError as e:
        return _fail(WireError.INVALID_TEXT, f"text field is not UTF-8: {e}")
    except TypeError as e:
        return _fail(WireError.MALFORMED_FIELDS, str(e))

    commit_hash = fields[1]
    params_map = fields[4]
    if not isinstance(commit_hash, bytes):
        return _fail(WireError.MALFORMED_FIELDS, "commit_hash must be a byte string")
    if not isinstance(params_map, dict):
        return _fail(WireError.MALFORMED_FIELDS, "parameters must be a map")

    parameters: Dict[str, List[str]] = {}
    for key, values in params_map.items():
        if not isinstance(key, bytes) or not isinstance(values, (list, tuple)):
            return _fail(WireError.MALFORMED_FIELDS, "parameters must map bytes to a list")
        if not all(isinstance(v, bytes) for v in values):
            return _fail(WireError.MALFORMED_FIELDS, "parameter values must be byte strings")
        parameters[key.hex()] = [v.hex() for v in values]

    if not source_url:
        return _fail(WireError.MALFORMED_FIELDS, "source_url is empty")

    request = ScanRequest(
        compiler_type=compiler_type,
        source_url=source_url,
        commit_hash=commit_hash.hex(),
        source_path=source_path,
        compiler_version=compiler_version,
        parameters=parameters,
    )
    return DecodeResult(success=True, value=request)


def decode_chunks(chunks: Iterable[Union[bytes, str]]) -> DecodeResult:
    return decode_request(reassemble(chunks))


def decode_metadata(
    metadata_cbor_hex: str,
    label: int = DEFAULT_METADATA_LABEL,
    max_chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> DecodeResult:
    """Full inbound path: metadata CBOR -> chunks -> ScanRequest."""
    try:
        chunks = extract_metadata_chunks(metadata_cbor_hex, label, max_chunk_size)
    except MissingLabelError as e:
        return _fail(WireError.MISSING_LABEL, str(e))
    except PlutusDataError as e:
        return _fail(WireError.MALFORMED_CHUNK, str(e))
    return decode_chunks(chunks)
