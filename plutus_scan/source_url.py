# FILE: plutus_scan/source_url.py
"""
Source URL parsing for verification requests.

Turns a VCS-agnostic repository URL into host, org/group, repo and a clone URL.

Supported:
- GitHub, Codeberg, Bitbucket: https://<host>/<org>/<repo>
- GitLab (nested groups): https://gitlab.com/<group>/<subgroup>/<project>
- Self-hosted Git: any other host, org/repo convention
- ipfs:// and ar:// (reserved; no path decomposition, not clonable yet)

INVARIANT: parsing never raises. Invalid input yields None.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DECENTRALIZED_PROTOCOLS = ("ipfs", "ar")

_COMMIT_HASH_RE = re.compile(r"[0-9a-fA-F]+")


class VcsType(str, Enum):
    """Hosting platform of a source repository."""
    GITHUB = "github"
    GITLAB = "gitlab"
    CODEBERG = "codeberg"
    BITBUCKET = "bitbucket"
    SELF_HOSTED_GIT = "self_hosted_git"
    DECENTRALIZED = "decentralized"  # IPFS / Arweave, future use
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ParsedSourceUrl:
    """Components of a parsed source URL."""
    source_url: str
    host: str
    protocol: str
    vcs_type: VcsType
    org_or_group: Optional[str] = None  # GitLab: full group path
    repo: Optional[str] = None
    clone_url: Optional[str] = None

    @property
    def is_clonable(self) -> bool:
        return self.clone_url is not None


def detect_vcs_type(host: Optional[str]) -> VcsType:
    """Map a hostname onto a known platform, defaulting to self-hosted Git."""
    if not host:
        return VcsType.UNKNOWN

    lower_host = host.lower()
    if "github.com" in lower_host:
        return VcsType.GITHUB
    if "gitlab.com" in lower_host or "gitlab." in lower_host:
        return VcsType.GITLAB
    if "codeberg.org" in lower_host:
        return VcsType.CODEBERG
    if "bitbucket.org" in lower_host or "bitbucket." in lower_host:
        return VcsType.BITBUCKET
    return VcsType.SELF_HOSTED_GIT


def parse_source_url(source_url: Optional[str]) -> Optional[ParsedSourceUrl]:
    """
    Parse a source URL into its components.

    Examples:
        https://github.com/easy1staking-com/cardano-recurring-payment
        https://gitlab.com/group/subgroup/project
        https://git.company.com/team/project.git

    Returns:
        ParsedSourceUrl, or None when scheme/host are missing or a Git-style
        URL has fewer than two path segments.
    """
    if source_url is None or not source_url.strip():
        return None

    try:
        parts = urlparse(source_url)
        host = parts.hostname
    except ValueError as e:
        logger.warning(f"[source_url] Failed to parse source URL {source_url!r}: {e}")
        return None

    protocol = parts.scheme
    if not protocol or not host:
        logger.warning(f"[source_url] Invalid source URL format: {source_url}")
        return None

    if protocol in DECENTRALIZED_PROTOCOLS:
        return ParsedSourceUrl(
            source_url=source_url,
            host=host,
            protocol=protocol,
            vcs_type=VcsType.DECENTRALIZED,
        )

    path = parts.path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]

    segments = [s for s in path.split("/") if s]
    if len(segments) < 2:
        logger.warning(f"[source_url] Invalid path in source URL (expected at least org/repo): {source_url}")
        return None

    vcs_type = detect_vcs_type(host)
    if vcs_type == VcsType.GITLAB:
        repo = segments[-1]
        org_or_group = "/".join(segments[:-1])
    else:
        org_or_group, repo = segments[0], segments[1]

    return ParsedSourceUrl(
        source_url=source_url,
        host=host,
        protocol=protocol,
        vcs_type=vcs_type,
        org_or_group=org_or_group,
        repo=repo,
        clone_url=f"https://{host}/{org_or_group}/{repo}.git",
    )


def is_valid_commit_hash(commit_hash_hex: Optional[str]) -> bool:
    """True for exactly 40 (SHA-1) or 64 (SHA-256) hex characters, any case."""
    if commit_hash_hex is None:
        return False
    return len(commit_hash_hex) in (40, 64) and _COMMIT_HASH_RE.fullmatch(commit_hash_hex) is not None


def is_valid_commit_hash_bytes(commit_hash: Optional[bytes]) -> bool:
    """True for a 20-byte (SHA-1) or 32-byte (SHA-256) raw commit hash."""
    if commit_hash is None:
        return False
    return len(commit_hash) in (20, 32)


def extract_org_and_repo(source_url: str) -> Optional[Tuple[str, str]]:
    """(org_or_group, repo) for Git-style URLs, None otherwise."""
    parsed = parse_source_url(source_url)
    if parsed is None or parsed.repo is None:
        return None
    return parsed.org_or_group, parsed.repo
