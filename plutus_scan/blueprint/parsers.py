# FILE: plutus_scan/blueprint/parsers.py
"""
Blueprint (plutus.json) format handlers.

Aiken v1.0.x (legacy):  validator title "<name>.<purpose>", Plutus V2 by default
Aiken v1.1.x / v1.2.x:  validator title "<module>.<validator>.<purpose>", Plutus V3 by default

Entries missing a title, hash or compiled code are skipped with a warning.
Entries sharing a raw hash collapse into one ParsedValidator whose purposes are
the union of the contributing entries.
"""
from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from plutus_scan.verification.schemas import ParameterSchema, ParsedValidator, PlutusVersion

logger = logging.getLogger(__name__)


class ParseError(str, Enum):
    MALFORMED = "MALFORMED"
    UNSUPPORTED_VERSION = "UNSUPPORTED_VERSION"
    UNSUPPORTED_COMPILER = "UNSUPPORTED_COMPILER"


@dataclass
class ParseResult:
    """Validators extracted from a build artifact, or the reason there are none."""
    success: bool
    value: List[ParsedValidator] = field(default_factory=list)
    error: Optional[ParseError] = None
    error_message: Optional[str] = None


class BlueprintFormatError(ValueError):
    """The artifact does not have the expected blueprint structure."""


def normalize_version(version: Optional[str]) -> str:
    """Lowercased, trimmed, leading "v" removed: "v1.1.3" -> "1.1.3"."""
    if not version:
        return ""
    normalized = version.strip().lower()
    return normalized[1:] if normalized.startswith("v") else normalized


def _version_pattern(minors: str) -> "re.Pattern[str]":
    # 1.<minor>.<patch> with an optional pre-release tag (-alpha, -rc.1, ...)
    return re.compile(rf"1\.(?:{minors})\.\d+(?:-[0-9a-z][0-9a-z.\-]*)?")


class BlueprintParser(ABC):
    """One blueprint format."""

    name: str = "blueprint"
    default_plutus_version: PlutusVersion = PlutusVersion.V3

    @abstractmethod
    def supports(self, version: Optional[str]) -> bool:
        ...

    @abstractmethod
    def split_title(self, title: str) -> Optional[Tuple[str, str, str, str]]:
        """(script_name, module_name, validator_name, purpose) or None if malformed."""

    def parse(self, content: str) -> List[ParsedValidator]:
        """
        Extract validators from blueprint JSON.

        Raises:
            BlueprintFormatError: content is not JSON or `validators` is not a list.
        """
        try:
            root = json.loads(content)
        except (TypeError, ValueError) as e:
            raise BlueprintFormatError(f"Failed to parse plutus.json ({self.name}): {e}") from e
        if not isinstance(root, dict):
            raise BlueprintFormatError("plutus.json root is not an object")

        preamble = root.get("preamble") or {}
        plutus_version = PlutusVersion.from_string(
            preamble.get("plutusVersion") if isinstance(preamble, dict) else None,
            default=self.default_plutus_version,
        )
        logger.debug(f"[blueprint] Detected Plutus version: {plutus_version.value}")

        validators = root.get("validators")
        if not isinstance(validators, list):
            raise BlueprintFormatError("validators field is not an array")

        grouped: Dict[str, ParsedValidator] = {}
        for entry in validators:
            if not isinstance(entry, dict):
                logger.warning(f"[blueprint] Skipping non-object validator entry: {entry!r}")
                continue

            title = entry.get("title") or ""
            raw_hash = entry.get("hash") or ""
            compiled_code = entry.get("compiledCode") or ""
            if not title or not raw_hash or not compiled_code:
                logger.warning(
                    f"[blueprint] Skipping validator with missing fields: title={title!r}, "
                    f"hash={raw_hash!r}, compiledCode present={bool(compiled_code)}"
                )
                continue

            names = self.split_title(title)
            if names is None:
                logger.warning(f"[blueprint] Invalid validator title format for {self.name}: {title}")
                continue
            script_name, module_name, validator_name, purpose = names

            existing = grouped.get(raw_hash)
            if existing is not None:
                if purpose not in existing.purposes:
                    existing.purposes.append(purpose)
                continue

            grouped[raw_hash] = ParsedValidator(
                script_name=script_name,
                module_name=module_name,
                validator_name=validator_name,
                purposes=[purpose],
                raw_hash=raw_hash,
                compiled_code=compiled_code,
                plutus_version=plutus_version,
                required_parameters=_parameters(entry.get("parameters")),
            )
            logger.debug(f"[blueprint] Parsed validator: {title}")

        result = list(grouped.values())
        logger.info(f"[blueprint] Parsed {len(result)} unique validators from plutus.json ({self.name})")
        return result


def _parameters(raw: Any) -> Optional[List[ParameterSchema]]:
    if not isinstance(raw, list) or not raw:
        return None
    params = []
    for param in raw:
        if not isinstance(param, dict):
            params.append(ParameterSchema(title=None, schema=param))
        else:
            params.append(ParameterSchema(title=param.get("title"), schema=param.get("schema")))
    return params


def _title_segments(title: str, count: int) -> Optional[List[str]]:
    """First `count` dot-separated segments, or None if any of them is missing or empty."""
    parts = title.split(".")
    if len(parts) < count or not all(parts[:count]):
        return None
    return parts[:count]


class AikenV1_0Parser(BlueprintParser):
    """Aiken v1.0.x (alpha) plutus.json."""

    name = "aiken v1.0.x"
    default_plutus_version = PlutusVersion.V2
    _pattern = _version_pattern("0")

    def supports(self, version: Optional[str]) -> bool:
        normalized = normalize_version(version)
        if not normalized:
            return False
        return self._pattern.fullmatch(normalized) is not None

    def split_title(self, title: str) -> Optional[Tuple[str, str, str, str]]:
        parts = _title_segments(title, 2)
        if parts is None:
            return None
        name, purpose = parts
        return name, name, name, purpose


class AikenV1_1Parser(BlueprintParser):
    """Aiken v1.1.x / v1.2.x plutus.json. Default when no version is declared."""

    name = "aiken v1.1.x"
    default_plutus_version = PlutusVersion.V3
    _pattern = _version_pattern("1|2")

    def supports(self, version: Optional[str]) -> bool:
        normalized = normalize_version(version)
        if not normalized:
            return True
        return self._pattern.fullmatch(normalized) is not None

    def split_title(self, title: str) -> Optional[Tuple[str, str, str, str]]:
        parts = _title_segments(title, 3)
        if parts is None:
            return None
        module_name, validator_name, purpose = parts
        return f"{module_name}.{validator_name}", module_name, validator_name, purpose
