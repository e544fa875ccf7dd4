# FILE: plutus_scan/wire/plutus_data.py
"""
Plutus data <-> CBOR.

Python representation:
- Constr(alternative, fields)  -> tagged constructor
- int                          -> integer (bignums handled by cbor2)
- bytes                        -> byte string
- list                         -> list
- dict                         -> map (insertion order is preserved on encode)

Encoding follows the ledger conventions used by wallets and the Aiken toolchain:
constructor fields and non-empty lists as indefinite-length arrays, byte strings
over 64 bytes as indefinite chunked byte strings.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Tuple

import cbor2
from cbor2 import CBORTag

MAX_BYTES_CHUNK = 64

# Constructor tag ranges (CIP-0005 / Plutus data encoding)
_COMPACT_TAG_BASE = 121        # alternatives 0..6
_EXTENDED_TAG_BASE = 1280      # alternatives 7..127
_GENERAL_CONSTR_TAG = 102      # any alternative: [alternative, fields]


class PlutusDataError(ValueError):
    """Raised when bytes are not well-formed Plutus data."""


@dataclass(frozen=True)
class Constr:
    """Constructor application: alternative index plus ordered fields."""
    alternative: int
    fields: Tuple[Any, ...] = ()

    def __post_init__(self):
        if self.alternative < 0:
            raise PlutusDataError(f"constructor alternative must be >= 0, got {self.alternative}")
        object.__setattr__(self, "fields", tuple(self.fields))


@dataclass(frozen=True)
class _IndefiniteArray:
    items: Tuple[Any, ...]


@dataclass(frozen=True)
class _ChunkedBytes:
    value: bytes


def _constr_tag(alternative: int) -> Tuple[int, bool]:
    """(tag, general_form) for a constructor alternative."""
    if alternative < 7:
        return _COMPACT_TAG_BASE + alternative, False
    if alternative < 128:
        return _EXTENDED_TAG_BASE + (alternative - 7), False
    return _GENERAL_CONSTR_TAG, True


def _prepare(value: Any) -> Any:
    if isinstance(value, Constr):
        fields = _array(value.fields)
        tag, general = _constr_tag(value.alternative)
        return CBORTag(tag, [value.alternative, fields] if general else fields)
    if isinstance(value, bool):
        raise PlutusDataError("booleans are not Plutus data; use Constr(0|1)")
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
        return _ChunkedBytes(raw) if len(raw) > MAX_BYTES_CHUNK else raw
    if isinstance(value, (list, tuple)):
        return _array(value)
    if isinstance(value, dict):
        return {_prepare(k): _prepare(v) for k, v in value.items()}
    raise PlutusDataError(f"unsupported Plutus data value: {type(value).__name__}")


def _array(items) -> Any:
    prepared = tuple(_prepare(i) for i in items)
    return _IndefiniteArray(prepared) if prepared else []


def _default_encoder(encoder, value):
    if isinstance(value, _IndefiniteArray):
        encoder.write(b"\x9f")
        for item in value.items:
            encoder.encode(item)
        encoder.write(b"\xff")
    elif isinstance(value, _ChunkedBytes):
        encoder.write(b"\x5f")
        for i in range(0, len(value.value), MAX_BYTES_CHUNK):
            encoder.encode(value.value[i:i + MAX_BYTES_CHUNK])
        encoder.write(b"\xff")
    else:
        raise PlutusDataError(f"cannot encode {type(value).__name__}")


def encode_plutus_data(value: Any) -> bytes:
    """Serialize a Plutus data value to CBOR bytes."""
    return cbor2.dumps(_prepare(value), default=_default_encoder)


def _from_cbor_value(raw: Any) -> Any:
    if isinstance(raw, CBORTag):
        tag = raw.tag
        if _COMPACT_TAG_BASE <= tag < _COMPACT_TAG_BASE + 7:
            return Constr(tag - _COMPACT_TAG_BASE, _fields(raw.value))
        if _EXTENDED_TAG_BASE <= tag < _EXTENDED_TAG_BASE + 121:
            return Constr(tag - _EXTENDED_TAG_BASE + 7, _fields(raw.value))
        if tag == _GENERAL_CONSTR_TAG:
            if not isinstance(raw.value, (list, tuple)) or len(raw.value) != 2 or not isinstance(raw.value[0], int):
                raise PlutusDataError("malformed general constructor")
            return Constr(raw.value[0], _fields(raw.value[1]))
        raise PlutusDataError(f"unexpected CBOR tag {tag}")
    if isinstance(raw, bool) or raw is None:
        raise PlutusDataError(f"unexpected CBOR value {raw!r}")
    if isinstance(raw, (int, bytes)):
        return raw
    if isinstance(raw, (list, tuple)):
        return [_from_cbor_value(i) for i in raw]
    if isinstance(raw, Mapping):
        return {_map_key(k): _from_cbor_value(v) for k, v in raw.items()}
    raise PlutusDataError(f"unexpected CBOR value of type {type(raw).__name__}")


def _map_key(raw: Any) -> Any:
    key = _from_cbor_value(raw)
    # list keys come back as lists; dict keys must be hashable
    return tuple(key) if isinstance(key, list) else key


def _fields(raw: Any) -> Tuple[Any, ...]:
    # cbor2 6.x decodes arrays inside tags as tuples
    if not isinstance(raw, (list, tuple)):
        raise PlutusDataError("constructor fields must be a list")
    return tuple(_from_cbor_value(i) for i in raw)


def decode_plutus_data(data: bytes) -> Any:
    """Parse CBOR bytes into Plutus data values."""
    try:
        raw = cbor2.loads(data)
    except (cbor2.CBORDecodeError, ValueError, TypeError) as e:
        raise PlutusDataError(f"invalid CBOR: {e}") from e
    return _from_cbor_value(raw)


def decode_plutus_data_hex(data_hex: str) -> Any:
    try:
        data = bytes.fromhex(data_hex)
    except ValueError as e:
        raise PlutusDataError(f"invalid hex: {e}") from e
    return decode_plutus_data(data)
