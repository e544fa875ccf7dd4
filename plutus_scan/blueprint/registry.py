# FILE: plutus_scan/blueprint/registry.py
"""
Blueprint parser selection.

Handlers are tried in the order listed; the first whose predicate accepts
(compiler family, compiler version) wins. Nothing is discovered at runtime.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from plutus_scan.blueprint.parsers import (
    AikenV1_0Parser,
    AikenV1_1Parser,
    BlueprintFormatError,
    BlueprintParser,
    ParseError,
    ParseResult,
)
from plutus_scan.wire.codec import CompilerType

logger = logging.getLogger(__name__)

Predicate = Callable[[CompilerType, Optional[str]], bool]


def _aiken(parser: BlueprintParser) -> Predicate:
    return lambda compiler_type, version: compiler_type == CompilerType.AIKEN and parser.supports(version)


_LEGACY = AikenV1_0Parser()
_STABLE = AikenV1_1Parser()

# Legacy first: an absent version must fall through to the stable handler.
PARSERS: List[Tuple[Predicate, BlueprintParser]] = [
    (_aiken(_LEGACY), _LEGACY),
    (_aiken(_STABLE), _STABLE),
]

SUPPORTED_COMPILERS = frozenset({CompilerType.AIKEN})


def select_parser(compiler_type: CompilerType, compiler_version: Optional[str]) -> Optional[BlueprintParser]:
    for predicate, parser in PARSERS:
        if predicate(compiler_type, compiler_version):
            logger.debug(
                f"[blueprint] Selected {parser.name} parser for {compiler_type.value} "
                f"version {compiler_version or 'default'}"
            )
            return parser
    return None


def parse_blueprint(
    compiler_type: CompilerType,
    compiler_version: Optional[str],
    content: str,
) -> ParseResult:
    """Parse build artifact `content` with the handler for (family, version)."""
    parser = select_parser(compiler_type, compiler_version)
    if parser is None:
        if compiler_type not in SUPPORTED_COMPILERS:
            return ParseResult(
                success=False,
                error=ParseError.UNSUPPORTED_COMPILER,
                error_message=f"No blueprint parser for compiler: {compiler_type.value}",
            )
        return ParseResult(
            success=False,
            error=ParseError.UNSUPPORTED_VERSION,
            error_message=f"Unsupported {compiler_type.value} version: {compiler_version}",
        )

    try:
        validators = parser.parse(content)
    except BlueprintFormatError as e:
        return ParseResult(success=False, error=ParseError.MALFORMED, error_message=str(e))
    return ParseResult(success=True, value=validators)
