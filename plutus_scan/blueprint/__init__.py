"""Build artifact (plutus.json) parsing, dispatched on compiler family and version."""

from plutus_scan.blueprint.parsers import (
    AikenV1_0Parser,
    AikenV1_1Parser,
    BlueprintFormatError,
    BlueprintParser,
    ParseError,
    ParseResult,
    normalize_version,
)
from plutus_scan.blueprint.registry import PARSERS, parse_blueprint, select_parser

__all__ = [
    "AikenV1_0Parser",
    "AikenV1_1Parser",
    "BlueprintFormatError",
    "BlueprintParser",
    "PARSERS",
    "ParseError",
    "ParseResult",
    "normalize_version",
    "parse_blueprint",
    "select_parser",
]
