# FILE: tests/test_scheduler.py
"""
Tests for plutus_scan/verification/scheduler.py
Polling, claiming, retry accounting and cache maintenance.
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from plutus_scan.compiler import CompileError, CompileResult, CompilerService
from plutus_scan.config import VerificationConfig
from plutus_scan.verification import store
from plutus_scan.verification.cache import ArtifactCache, CacheKey
from plutus_scan.verification.models import BlueprintCacheEntry, VerificationRequest
from plutus_scan.verification.scheduler import CacheMaintenanceJob, VerificationScheduler
from plutus_scan.verification.service import PipelineOutcome, PipelineStatus, VerificationService
from plutus_scan.wire import CompilerType, ScanRequest

from conftest import COMMIT, SOURCE_URL


def _request(db, commit=COMMIT, tx="f" * 64):
    return store.create_request(db, tx, 1, ScanRequest(source_url=SOURCE_URL, commit_hash=commit)).id


def _scheduler(session_factory, service, **config):
    return VerificationScheduler(
        config=VerificationConfig(**config),
        service=service,
        session_factory=session_factory,
    )


def _service_returning(status):
    service = MagicMock(spec=VerificationService)
    service.process.side_effect = lambda db, request_id: PipelineOutcome(request_id, status)
    return service


def _failing_compiler():
    compiler = MagicMock(spec=CompilerService)
    compiler.compile.return_value = CompileResult.fail(CompileError.CLONE, "repository not found")
    return compiler


class TestRunTick:
    """Tests for one polling pass."""

    def test_empty_store(self, session_factory):
        """No candidates, nothing processed."""
        service = _service_returning(PipelineStatus.VERIFIED)

        stats = _scheduler(session_factory, service).run_tick()

        assert stats["candidates"] == 0
        service.process.assert_not_called()

    def test_processes_oldest_first(self, session_factory, db_session):
        """Candidates are handled in creation order."""
        first = _request(db_session, commit="a" * 40)
        second = _request(db_session, commit="b" * 40)
        db_session.query(VerificationRequest).filter(VerificationRequest.id == second).update(
            {VerificationRequest.created_at: datetime.utcnow() - timedelta(hours=1)}
        )
        db_session.commit()
        service = _service_returning(PipelineStatus.VERIFIED)

        stats = _scheduler(session_factory, service).run_tick()

        assert [c.args[1] for c in service.process.call_args_list] == [second, first]
        assert stats["candidates"] == 2
        assert stats["verified"] == 2

    def test_batch_size(self, session_factory, db_session):
        """At most batch_size requests per tick."""
        for i in range(5):
            _request(db_session, tx=f"{i:064x}")
        service = _service_returning(PipelineStatus.VERIFIED)

        stats = _scheduler(session_factory, service, batch_size=2).run_tick()

        assert stats["candidates"] == 2
        assert service.process.call_count == 2

    def test_claims_before_processing(self, session_factory, db_session):
        """The service sees the request in PROCESSING."""
        _request(db_session)
        seen = []

        def process(db, rid):
            seen.append(store.get_request(db, rid).status)
            return PipelineOutcome(rid, PipelineStatus.VERIFIED)

        service = MagicMock(spec=VerificationService)
        service.process.side_effect = process

        _scheduler(session_factory, service).run_tick()

        assert seen == ["PROCESSING"]

    def test_lost_claim_is_skipped(self, session_factory, db_session):
        """A request claimed elsewhere between select and claim is skipped."""
        request_id = _request(db_session)
        scheduler = _scheduler(session_factory, _service_returning(PipelineStatus.VERIFIED))
        assert store.claim_request(db_session, request_id, max_retries=3)

        status = scheduler._process_one(db_session, request_id)

        assert status == PipelineStatus.SKIPPED
        scheduler.service.process.assert_not_called()

    def test_claim_race_single_winner(self, db_session):
        """Two claims on the same row: exactly one succeeds."""
        request_id = _request(db_session)

        results = [store.claim_request(db_session, request_id, 3), store.claim_request(db_session, request_id, 3)]

        assert results == [True, False]

    def test_failure_does_not_abort_batch(self, session_factory, db_session):
        """An exception for one request is recorded; the rest still run."""
        bad = _request(db_session, commit="a" * 40)
        _request(db_session, commit="b" * 40)

        def process(db, rid):
            if rid == bad:
                raise RuntimeError("worker crashed")
            return PipelineOutcome(rid, PipelineStatus.VERIFIED)

        service = MagicMock(spec=VerificationService)
        service.process.side_effect = process

        stats = _scheduler(session_factory, service).run_tick()

        assert stats["failed"] == 1
        assert stats["verified"] == 1
        db_session.expire_all()
        record = store.get_request(db_session, bad)
        assert record.status == "FAILED"
        assert record.retry_count == 1
        assert "worker crashed" in record.error_message

    def test_counts_insufficient_params(self, session_factory, db_session):
        """Per-status counters match the pipeline outcomes."""
        _request(db_session)

        stats = _scheduler(session_factory, _service_returning(PipelineStatus.INSUFFICIENT_PARAMS)).run_tick()

        assert stats["insufficient_params"] == 1
        assert "duration_seconds" in stats


class TestRetries:
    """Tests for retry accounting across ticks."""

    def test_retry_increments_by_one_and_stops(self, session_factory, db_session):
        """Each failed attempt adds exactly one; at max_retries the request is left alone."""
        request_id = _request(db_session)
        compiler = _failing_compiler()
        service = VerificationService(VerificationConfig(), compilers={CompilerType.AIKEN: compiler})
        scheduler = _scheduler(session_factory, service, max_retries=2)

        scheduler.run_tick()
        db_session.expire_all()
        assert store.get_request(db_session, request_id).retry_count == 1

        scheduler.run_tick()
        db_session.expire_all()
        record = store.get_request(db_session, request_id)
        assert record.retry_count == 2
        assert record.status == "FAILED"
        assert "repository not found" in record.error_message

        stats = scheduler.run_tick()
        assert stats["candidates"] == 0
        assert compiler.compile.call_count == 2

    def test_successful_request_not_repolled(self, session_factory, db_session, simple_blueprint):
        """VERIFIED requests drop out of the candidate set."""
        _request(db_session)
        compiler = MagicMock(spec=CompilerService)
        compiler.compile.return_value = CompileResult.ok(simple_blueprint)
        service = VerificationService(VerificationConfig(), compilers={CompilerType.AIKEN: compiler})
        scheduler = _scheduler(session_factory, service)

        assert scheduler.run_tick()["verified"] == 1
        assert scheduler.run_tick()["candidates"] == 0


class TestJobLifecycle:
    """Tests for start/stop/status."""

    def test_run_now_records_status(self, session_factory):
        """Manual runs update last_run and last_result."""
        scheduler = _scheduler(session_factory, _service_returning(PipelineStatus.VERIFIED))

        scheduler.run_now()
        status = scheduler.get_status()

        assert status["running"] is False
        assert status["last_run"] is not None
        assert status["last_result"]["candidates"] == 0
        assert status["interval_seconds"] == 30

    @pytest.mark.asyncio
    async def test_start_and_stop(self, session_factory):
        """The loop runs a tick shortly after start and stops cleanly."""
        scheduler = _scheduler(session_factory, _service_returning(PipelineStatus.VERIFIED), poll_interval_seconds=60)

        await scheduler.start()
        assert scheduler.get_status()["running"] is True
        for _ in range(50):
            if scheduler.get_status()["last_run"]:
                break
            await asyncio.sleep(0.05)
        await scheduler.stop()

        status = scheduler.get_status()
        assert status["running"] is False
        assert status["last_run"] is not None

    @pytest.mark.asyncio
    async def test_double_start_is_noop(self, session_factory):
        """Starting twice keeps one loop."""
        scheduler = _scheduler(session_factory, _service_returning(PipelineStatus.VERIFIED), poll_interval_seconds=60)

        await scheduler.start()
        task = scheduler._task
        await scheduler.start()

        assert scheduler._task is task
        await scheduler.stop()


class TestCacheMaintenanceJob:
    """Tests for the cache purge job."""

    def test_purges_old_entries(self, session_factory, db_session):
        """Entries older than cache_max_age_days are removed."""
        cache = ArtifactCache(db_session)
        cache.put(CacheKey(CompilerType.AIKEN, SOURCE_URL, "a" * 40, None), "{}")
        cache.put(CacheKey(CompilerType.AIKEN, SOURCE_URL, "b" * 40, None), "{}")
        old = db_session.query(BlueprintCacheEntry).filter(BlueprintCacheEntry.commit_hash == "a" * 40).one()
        old.created_at = datetime.utcnow() - timedelta(days=10)
        db_session.commit()

        job = CacheMaintenanceJob(config=VerificationConfig(cache_max_age_days=7), session_factory=session_factory)
        result = job.run_now()

        assert result == {"removed": 1, "max_age_days": 7}
        db_session.expire_all()
        assert db_session.query(BlueprintCacheEntry).count() == 1


class TestStaleClaims:
    """Tests for recovering requests stuck in PROCESSING."""

    def _stuck(self, db, hours):
        request_id = _request(db)
        assert store.claim_request(db, request_id, max_retries=3)
        db.query(VerificationRequest).filter(VerificationRequest.id == request_id).update(
            {VerificationRequest.updated_at: datetime.utcnow() - timedelta(hours=hours)},
            synchronize_session=False,
        )
        db.commit()
        return request_id

    def test_stale_claim_is_retried(self, session_factory, db_session):
        """A claim older than the timeout is released and processed in the same tick."""
        request_id = self._stuck(db_session, 2)
        service = _service_returning(PipelineStatus.VERIFIED)

        stats = _scheduler(session_factory, service, processing_timeout_seconds=3600).run_tick()

        assert stats["reclaimed"] == 1
        assert stats["candidates"] == 1
        assert service.process.call_args.args[1] == request_id
        db_session.expire_all()
        assert store.get_request(db_session, request_id).retry_count == 1

    def test_fresh_claim_left_alone(self, session_factory, db_session):
        """A claim inside the timeout is still owned by its worker."""
        self._stuck(db_session, 0)
        service = _service_returning(PipelineStatus.VERIFIED)

        stats = _scheduler(session_factory, service, processing_timeout_seconds=3600).run_tick()

        assert stats["reclaimed"] == 0
        assert stats["candidates"] == 0
        service.process.assert_not_called()

    def test_stale_claim_respects_max_retries(self, session_factory, db_session):
        """Releasing the last allowed attempt leaves the request FAILED and unpolled."""
        request_id = self._stuck(db_session, 2)
        service = _service_returning(PipelineStatus.VERIFIED)

        stats = _scheduler(session_factory, service, max_retries=1).run_tick()

        assert stats["reclaimed"] == 1
        assert stats["candidates"] == 0
        db_session.expire_all()
        assert store.get_request(db_session, request_id).status == "FAILED"
