# FILE: plutus_scan/verification/cache.py
"""
Build-artifact cache.

Keyed by (compiler family, source URL, commit hash, compiler version), so a
given build is compiled at most once. Reads have no side effects; writes upsert.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from plutus_scan.verification.models import BlueprintCacheEntry
from plutus_scan.wire.codec import CompilerType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheKey:
    compiler_type: CompilerType
    source_url: str
    commit_hash: str
    compiler_version: Optional[str] = None

    @property
    def version_column(self) -> str:
        return self.compiler_version or ""

    def __str__(self) -> str:
        return f"{self.compiler_type.value}:{self.source_url}@{self.commit_hash} ({self.version_column or 'default'})"


class ArtifactCache:
    """SQL-backed build-artifact store."""

    def __init__(self, db: Session):
        self.db = db

    def _find(self, key: CacheKey) -> Optional[BlueprintCacheEntry]:
        return self.db.query(BlueprintCacheEntry).filter(
            BlueprintCacheEntry.compiler_type == key.compiler_type.value,
            BlueprintCacheEntry.source_url == key.source_url,
            BlueprintCacheEntry.commit_hash == key.commit_hash,
            BlueprintCacheEntry.compiler_version == key.version_column,
        ).first()

    def get(self, key: CacheKey) -> Optional[str]:
        """Cached artifact content as a JSON string, or None on a miss."""
        logger.debug(f"[cache] Checking cache for {key}")
        entry = self._find(key)
        if entry is None:
            return None
        logger.info(f"[cache] Cache hit for {key.source_url} @ {key.commit_hash}")
        return json.dumps(entry.content)

    def put(self, key: CacheKey, content: str) -> None:
        """
        Store artifact content under `key`, replacing any existing entry.

        Raises:
            ValueError: content is not a JSON document.
        """
        document = json.loads(content)

        existing = self._find(key)
        if existing is not None:
            logger.debug(f"[cache] Cache entry already exists for {key}, updating")
            existing.content = document
            self.db.commit()
            return

        try:
            self.db.add(BlueprintCacheEntry(
                compiler_type=key.compiler_type.value,
                source_url=key.source_url,
                commit_hash=key.commit_hash,
                compiler_version=key.version_column,
                content=document,
            ))
            self.db.commit()
            logger.info(f"[cache] Cached build artifact for {key.source_url} @ {key.commit_hash}")
        except IntegrityError:
            # Another worker inserted the same key between our read and write
            self.db.rollback()
            logger.debug(f"[cache] Cache entry for {key} created concurrently, updating")
            existing = self._find(key)
            if existing is None:
                raise
            existing.content = document
            self.db.commit()

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete entries created before `cutoff`. Returns the number removed."""
        removed = self.db.query(BlueprintCacheEntry).filter(
            BlueprintCacheEntry.created_at < cutoff,
        ).delete(synchronize_session=False)
        self.db.commit()
        if removed:
            logger.info(f"[cache] Purged {removed} cache entries created before {cutoff.isoformat()}")
        return removed


def purge_stale_entries(db: Session, max_age_days: int) -> int:
    """Maintenance entry point: drop cache entries older than `max_age_days`."""
    cutoff = datetime.utcnow() - timedelta(days=max_age_days)
    return ArtifactCache(db).purge_older_than(cutoff)
