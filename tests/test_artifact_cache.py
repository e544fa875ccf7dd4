# FILE: tests/test_artifact_cache.py
"""
Tests for plutus_scan/verification/cache.py
Build-artifact cache keyed by (family, url, commit, version).
"""

import json
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from plutus_scan.verification.cache import ArtifactCache, CacheKey, purge_stale_entries
from plutus_scan.verification.models import BlueprintCacheEntry
from plutus_scan.wire.codec import CompilerType

from conftest import COMMIT, SOURCE_URL

CONTENT = json.dumps({"preamble": {"plutusVersion": "v3"}, "validators": []})


def _key(version=None, commit=COMMIT):
    return CacheKey(CompilerType.AIKEN, SOURCE_URL, commit, version)


class TestArtifactCache:
    """Tests for get/put against SQLite."""

    def test_miss(self, db_session):
        """Unknown keys return None."""
        assert ArtifactCache(db_session).get(_key()) is None

    def test_put_then_get(self, db_session):
        """Stored content comes back as an equivalent JSON document."""
        cache = ArtifactCache(db_session)
        cache.put(_key("v1.1.3"), CONTENT)

        assert json.loads(cache.get(_key("v1.1.3"))) == json.loads(CONTENT)

    def test_version_is_part_of_key(self, db_session):
        """Different compiler versions are different entries."""
        cache = ArtifactCache(db_session)
        cache.put(_key("v1.1.3"), CONTENT)

        assert cache.get(_key("v1.1.4")) is None
        assert cache.get(_key(None)) is None

    def test_absent_version_is_total(self, db_session):
        """A missing version is a key of its own."""
        cache = ArtifactCache(db_session)
        cache.put(_key(None), CONTENT)

        assert cache.get(_key(None)) is not None
        assert db_session.query(BlueprintCacheEntry).one().compiler_version == ""

    def test_put_upserts(self, db_session):
        """Writing an existing key updates it in place."""
        cache = ArtifactCache(db_session)
        cache.put(_key(), CONTENT)
        cache.put(_key(), json.dumps({"validators": [{"title": "x"}]}))

        assert db_session.query(BlueprintCacheEntry).count() == 1
        assert json.loads(cache.get(_key()))["validators"] == [{"title": "x"}]

    def test_get_has_no_side_effects(self, db_session):
        """Reads never create rows."""
        ArtifactCache(db_session).get(_key())

        assert db_session.query(BlueprintCacheEntry).count() == 0

    def test_put_rejects_non_json(self, db_session):
        """Content must be a JSON document."""
        with pytest.raises(ValueError):
            ArtifactCache(db_session).put(_key(), "not json")

    def test_concurrent_insert_falls_back_to_update(self):
        """IntegrityError on insert rolls back and updates the winner's row."""
        existing = MagicMock()
        db = MagicMock()
        db.query.return_value.filter.return_value.first.side_effect = [None, existing]
        db.commit.side_effect = [IntegrityError("insert", {}, Exception("unique")), None]

        ArtifactCache(db).put(_key(), CONTENT)

        db.rollback.assert_called_once()
        assert existing.content == json.loads(CONTENT)
        assert db.commit.call_count == 2


class TestPurge:
    """Tests for cache maintenance."""

    def test_purge_older_than(self, db_session):
        """Entries created before the cutoff are removed."""
        cache = ArtifactCache(db_session)
        cache.put(_key(commit="a" * 40), CONTENT)
        cache.put(_key(commit="b" * 40), CONTENT)

        old = db_session.query(BlueprintCacheEntry).filter(BlueprintCacheEntry.commit_hash == "a" * 40).one()
        old.created_at = datetime.utcnow() - timedelta(days=60)
        db_session.commit()

        removed = cache.purge_older_than(datetime.utcnow() - timedelta(days=30))

        assert removed == 1
        assert cache.get(_key(commit="a" * 40)) is None
        assert cache.get(_key(commit="b" * 40)) is not None

    def test_purge_stale_entries(self, db_session):
        """Maintenance entry point uses an age in days."""
        ArtifactCache(db_session).put(_key(), CONTENT)

        assert purge_stale_entries(db_session, max_age_days=30) == 0
        assert purge_stale_entries(db_session, max_age_days=-1) == 1
