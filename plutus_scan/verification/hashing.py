# FILE: plutus_scan/verification/hashing.py
"""
Script hash derivation.

A Plutus script hash is blake2b-224 over the language tag byte followed by the
script bytes (the singly CBOR-wrapped flat encoding found in `compiledCode`).
Parameters are applied as data constants to the unapplied program, in order.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from uplc.ast import Apply, Program, data_from_cbor
from uplc.tools import flatten, unflatten

from plutus_scan.verification.schemas import (
    ParameterizationStatus,
    ParsedValidator,
    PlutusVersion,
)

logger = logging.getLogger(__name__)

SCRIPT_HASH_SIZE = 28


class ParameterApplicationError(ValueError):
    """Compiled code or a parameter value could not be decoded."""


def script_hash(script_bytes: bytes, plutus_version: PlutusVersion) -> str:
    """Hex blake2b-224 of language tag || script bytes."""
    digest = hashlib.blake2b(
        bytes([plutus_version.language_tag]) + script_bytes,
        digest_size=SCRIPT_HASH_SIZE,
    )
    return digest.hexdigest()


def apply_parameters(compiled_code: str, params: Sequence[str]) -> bytes:
    """
    Apply CBOR-hex data parameters to a compiled program.

    Returns:
        Script bytes of the applied program (singly CBOR-wrapped flat).

    Raises:
        ParameterApplicationError: bytecode or a parameter could not be decoded.
    """
    try:
        program = unflatten(bytes.fromhex(compiled_code))
    except Exception as e:
        raise ParameterApplicationError(f"cannot decode compiled code: {e}") from e

    term = program.term
    for index, param in enumerate(params):
        try:
            value = data_from_cbor(bytes.fromhex(param))
        except Exception as e:
            raise ParameterApplicationError(f"parameter {index} is not valid Plutus data: {e}") from e
        term = Apply(term, value)
    return flatten(Program(program.version, term))


def apply_parameters_and_hash(
    compiled_code: str,
    params: Sequence[str],
    plutus_version: PlutusVersion,
) -> str:
    return script_hash(apply_parameters(compiled_code, params), plutus_version)


@dataclass
class ScriptDerivation:
    """Parameterization outcome for one validator."""
    status: ParameterizationStatus
    final_hash: Optional[str] = None
    provided_parameters: Optional[List[str]] = None
    error_message: Optional[str] = None


def derive_script(validator: ParsedValidator, provided: Optional[Sequence[str]]) -> ScriptDerivation:
    """
    Work out the final hash of `validator` given the supplied parameter values.

    No required parameters -> NONE_REQUIRED, final hash == raw hash.
    Count mismatch -> PARTIAL with whatever was supplied.
    Count match -> COMPLETE with the derived hash, or PARTIAL if derivation fails.
    """
    if not validator.requires_parameters:
        return ScriptDerivation(ParameterizationStatus.NONE_REQUIRED, final_hash=validator.raw_hash)

    required = len(validator.required_parameters)
    supplied = list(provided) if provided else []

    if len(supplied) != required:
        logger.info(
            f"[hashing] Script {validator.raw_hash} requires {required} params but "
            f"{len(supplied)} provided, marking as PARTIAL"
        )
        return ScriptDerivation(
            ParameterizationStatus.PARTIAL,
            provided_parameters=supplied or None,
        )

    try:
        final_hash = apply_parameters_and_hash(validator.compiled_code, supplied, validator.plutus_version)
    except ParameterApplicationError as e:
        # Malformed parameter or bytecode only affects this validator
        logger.warning(f"[hashing] Failed to apply parameters to script {validator.raw_hash}: {e}")
        return ScriptDerivation(
            ParameterizationStatus.PARTIAL,
            provided_parameters=supplied,
            error_message=str(e),
        )

    logger.info(f"[hashing] Applied {required} params to script {validator.raw_hash}, final hash: {final_hash}")
    return ScriptDerivation(
        ParameterizationStatus.COMPLETE,
        final_hash=final_hash,
        provided_parameters=supplied,
    )
