# FILE: plutus_scan/verification/scheduler.py
"""
Periodic jobs for the verification pipeline.

VerificationScheduler: every poll interval, pick due requests (PENDING, or
FAILED with retries left), claim each atomically and run the pipeline.
Claims held in PROCESSING past processing_timeout_seconds are released
as failed attempts at the start of each tick.
CacheMaintenanceJob: drop build-artifact cache entries past their max age.

Ticks run in a worker thread and never overlap; the loop sleeps only after
the previous tick has returned.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from plutus_scan.config import VerificationConfig, get_config
from plutus_scan.verification import store
from plutus_scan.verification.cache import purge_stale_entries
from plutus_scan.verification.service import PipelineStatus, VerificationService

logger = logging.getLogger(__name__)


def _default_session_factory() -> Session:
    from plutus_scan.db import SessionLocal
    return SessionLocal()


# =============================================================================
# SCHEDULED JOB BASE
# =============================================================================

class PeriodicJob:
    """
    Runs `run_now()` on a fixed interval as an asyncio background task.

    Can be started as a background task or triggered manually.
    """

    name = "job"

    def __init__(self, interval_seconds: float):
        self.interval_seconds = interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._lock = threading.Lock()
        self._last_run: Optional[datetime] = None
        self._last_result: Optional[Dict[str, Any]] = None

    async def start(self):
        """Start the scheduled job."""
        if self._running:
            logger.warning(f"[{self.name}] Scheduler already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"[{self.name}] Scheduler started (interval={self.interval_seconds}s)")

    async def stop(self):
        """Stop the scheduled job."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"[{self.name}] Scheduler stopped")

    async def _run_loop(self):
        """Main scheduling loop."""
        while self._running:
            try:
                await asyncio.to_thread(self.run_now)
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception(f"[{self.name}] Scheduler error")
            await asyncio.sleep(self.interval_seconds)

    def execute(self) -> Dict[str, Any]:
        raise NotImplementedError

    def run_now(self) -> Dict[str, Any]:
        """Run the job immediately (synchronous, serialized with scheduled runs)."""
        with self._lock:
            result = self.execute()
            self._last_run = datetime.now(timezone.utc)
            self._last_result = result
            return result

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status."""
        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_result": self._last_result,
        }


# =============================================================================
# VERIFICATION POLLING
# =============================================================================

class VerificationScheduler(PeriodicJob):
    """Polls the store for due requests and verifies them one by one."""

    name = "scheduler"

    def __init__(
        self,
        config: Optional[VerificationConfig] = None,
        service: Optional[VerificationService] = None,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        self.config = config or get_config()
        super().__init__(self.config.poll_interval_seconds)
        self.service = service or VerificationService(self.config)
        self.session_factory = session_factory or _default_session_factory

    def execute(self) -> Dict[str, Any]:
        return self.run_tick()

    def run_tick(self) -> Dict[str, Any]:
        """
        One poll: select, claim and process a batch.

        Returns:
            Dict with tick statistics
        """
        start_time = datetime.now(timezone.utc)
        results: Dict[str, Any] = {
            "started_at": start_time.isoformat(),
            "candidates": 0,
            "verified": 0,
            "insufficient_params": 0,
            "failed": 0,
            "skipped": 0,
            "reclaimed": 0,
        }

        db = self.session_factory()
        try:
            claimed_before = datetime.utcnow() - timedelta(seconds=self.config.processing_timeout_seconds)
            results["reclaimed"] = store.release_stale_claims(db, claimed_before)
            candidates = store.find_poll_candidates(db, self.config.max_retries, self.config.batch_size)
            candidate_ids = [c.id for c in candidates]
            results["candidates"] = len(candidate_ids)
            if candidate_ids:
                logger.info(f"[scheduler] Found {len(candidate_ids)} verification requests to process")

            for request_id in candidate_ids:
                status = self._process_one(db, request_id)
                results[status.value.lower()] += 1
        finally:
            db.close()

        end_time = datetime.now(timezone.utc)
        results["completed_at"] = end_time.isoformat()
        results["duration_seconds"] = (end_time - start_time).total_seconds()

        if results["candidates"]:
            logger.info(
                f"[scheduler] Tick complete: verified={results['verified']}, "
                f"insufficient_params={results['insufficient_params']}, "
                f"failed={results['failed']}, skipped={results['skipped']}, "
                f"duration={results['duration_seconds']:.2f}s"
            )
        return results

    def _process_one(self, db: Session, request_id: int) -> PipelineStatus:
        """Claim and process one request; nothing escapes into the batch loop."""
        try:
            if not store.claim_request(db, request_id, self.config.max_retries):
                logger.info(f"[scheduler] Request {request_id} already claimed, skipping")
                return PipelineStatus.SKIPPED
            logger.info(f"[scheduler] Claimed request {request_id}")
            return self.service.process(db, request_id).status
        except Exception as e:
            logger.exception(f"[scheduler] Error processing request {request_id}")
            try:
                store.record_failure(db, request_id, f"{type(e).__name__}: {e}")
            except Exception:
                logger.exception(f"[scheduler] Could not record failure for request {request_id}")
            return PipelineStatus.FAILED


# =============================================================================
# CACHE MAINTENANCE
# =============================================================================

class CacheMaintenanceJob(PeriodicJob):
    """Purges cache entries older than `cache_max_age_days`."""

    name = "cache_maintenance"

    def __init__(
        self,
        config: Optional[VerificationConfig] = None,
        session_factory: Optional[Callable[[], Session]] = None,
        interval_seconds: float = 24 * 3600,
    ):
        super().__init__(interval_seconds)
        self.config = config or get_config()
        self.session_factory = session_factory or _default_session_factory

    def execute(self) -> Dict[str, Any]:
        db = self.session_factory()
        try:
            removed = purge_stale_entries(db, self.config.cache_max_age_days)
        finally:
            db.close()
        return {"removed": removed, "max_age_days": self.config.cache_max_age_days}


__all__ = [
    "CacheMaintenanceJob",
    "PeriodicJob",
    "VerificationScheduler",
]
