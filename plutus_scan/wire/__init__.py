"""Wire protocol: Plutus data CBOR and the chunked verification request codec."""

from plutus_scan.wire.codec import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_METADATA_LABEL,
    CompilerType,
    DecodeResult,
    ScanRequest,
    WireError,
    build_metadata,
    chunk_request,
    chunks_to_hex,
    decode_chunks,
    decode_metadata,
    decode_request,
    encode_request,
    extract_metadata_chunks,
    reassemble,
    request_to_plutus_data,
    to_chunks,
)
from plutus_scan.wire.plutus_data import (
    Constr,
    PlutusDataError,
    decode_plutus_data,
    decode_plutus_data_hex,
    encode_plutus_data,
)

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_METADATA_LABEL",
    "CompilerType",
    "Constr",
    "DecodeResult",
    "PlutusDataError",
    "ScanRequest",
    "WireError",
    "build_metadata",
    "chunk_request",
    "chunks_to_hex",
    "decode_chunks",
    "decode_metadata",
    "decode_plutus_data",
    "decode_plutus_data_hex",
    "decode_request",
    "encode_plutus_data",
    "encode_request",
    "extract_metadata_chunks",
    "reassemble",
    "request_to_plutus_data",
    "to_chunks",
]
