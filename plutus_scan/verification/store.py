# FILE: plutus_scan/verification/store.py
"""
Persistence for verification requests and their scripts.

Status changes go through claim_request / record_success / record_failure so
that each transition is a single commit.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from plutus_scan.verification.models import Script, VerificationRequest
from plutus_scan.verification.schemas import VerificationStatus
from plutus_scan.wire.codec import ScanRequest

logger = logging.getLogger(__name__)

# Requests that own a published script set
_COMPLETED = (VerificationStatus.VERIFIED.value, VerificationStatus.INSUFFICIENT_PARAMS.value)


# ============ REQUESTS ============

def create_request(db: Session, tx_hash: str, slot: int, request: ScanRequest) -> VerificationRequest:
    """Store a new PENDING request observed at (tx_hash, slot)."""
    record = VerificationRequest(
        tx_hash=tx_hash,
        slot=slot,
        source_url=request.source_url,
        commit_hash=request.commit_hash,
        compiler_type=request.compiler_type.value,
        compiler_version=request.compiler_version,
        source_path=request.source_path,
        parameters_json=request.parameters or None,
        status=VerificationStatus.PENDING.value,
        retry_count=0,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def get_request(db: Session, request_id: int) -> Optional[VerificationRequest]:
    return db.query(VerificationRequest).filter(VerificationRequest.id == request_id).first()


def find_latest_by_source(db: Session, source_url: str, commit_hash: str) -> Optional[VerificationRequest]:
    """Newest request for (source_url, commit_hash); resubmissions are separate rows."""
    return (
        db.query(VerificationRequest)
        .filter(
            VerificationRequest.source_url == source_url,
            VerificationRequest.commit_hash == commit_hash.lower(),
        )
        .order_by(VerificationRequest.created_at.desc(), VerificationRequest.id.desc())
        .first()
    )


def find_poll_candidates(db: Session, max_retries: int, batch_size: int) -> List[VerificationRequest]:
    """PENDING or FAILED requests with retries left, oldest first."""
    return (
        db.query(VerificationRequest)
        .filter(
            VerificationRequest.status.in_([
                VerificationStatus.PENDING.value,
                VerificationStatus.FAILED.value,
            ]),
            VerificationRequest.retry_count < max_retries,
        )
        .order_by(VerificationRequest.created_at.asc(), VerificationRequest.id.asc())
        .limit(batch_size)
        .all()
    )


def claim_request(db: Session, request_id: int, max_retries: int) -> bool:
    """
    Move a request to PROCESSING if it is still eligible.

    Conditional update: when two workers race for the same row, exactly one
    sees rowcount == 1.
    """
    updated = (
        db.query(VerificationRequest)
        .filter(
            VerificationRequest.id == request_id,
            VerificationRequest.status.in_([
                VerificationStatus.PENDING.value,
                VerificationStatus.FAILED.value,
            ]),
            VerificationRequest.retry_count < max_retries,
        )
        .update(
            {
                VerificationRequest.status: VerificationStatus.PROCESSING.value,
                VerificationRequest.error_message: None,
                VerificationRequest.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return updated == 1


def release_stale_claims(db: Session, claimed_before: datetime) -> int:
    """
    Return PROCESSING requests last touched before `claimed_before` to FAILED.

    A worker that dies mid-pipeline leaves its claim behind; releasing it
    counts as one failed attempt, so the request is retried until max_retries.
    """
    released = (
        db.query(VerificationRequest)
        .filter(
            VerificationRequest.status == VerificationStatus.PROCESSING.value,
            VerificationRequest.updated_at < claimed_before,
        )
        .update(
            {
                VerificationRequest.status: VerificationStatus.FAILED.value,
                VerificationRequest.retry_count: VerificationRequest.retry_count + 1,
                VerificationRequest.error_message: "PROCESSING_TIMEOUT: claim expired before the pipeline finished",
                VerificationRequest.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
    )
    db.commit()
    if released:
        logger.warning(f"[store] Released {released} stale PROCESSING claims")
    return released


def record_success(
    db: Session,
    request_id: int,
    scripts: List[Script],
    status: VerificationStatus = VerificationStatus.VERIFIED,
) -> VerificationRequest:
    """Replace the request's script set and set its terminal status in one commit."""
    record = get_request(db, request_id)
    if record is None:
        raise LookupError(f"verification request {request_id} not found")

    record.scripts = scripts
    record.status = status.value
    record.error_message = None
    db.commit()
    db.refresh(record)
    logger.info(f"[store] Request {request_id} -> {status.value} with {len(scripts)} scripts")
    return record


def record_failure(db: Session, request_id: int, error_message: str) -> Optional[VerificationRequest]:
    """Increment retry_count by one, keep the error, set FAILED."""
    db.rollback()
    record = get_request(db, request_id)
    if record is None:
        logger.warning(f"[store] Cannot record failure, request {request_id} not found")
        return None

    record.retry_count = (record.retry_count or 0) + 1
    record.error_message = error_message
    record.status = VerificationStatus.FAILED.value
    db.commit()
    db.refresh(record)
    logger.info(f"[store] Request {request_id} -> FAILED (retry {record.retry_count}): {error_message}")
    return record


def delete_request(db: Session, request_id: int) -> bool:
    """Delete a request together with its scripts."""
    record = get_request(db, request_id)
    if record is None:
        return False
    db.delete(record)
    db.commit()
    return True


# ============ SCRIPTS ============

def find_scripts_by_hash(db: Session, script_hash: str) -> List[Tuple[Script, VerificationRequest]]:
    """Scripts whose raw or final hash equals `script_hash`, newest request first."""
    needle = script_hash.strip().lower()
    return (
        db.query(Script, VerificationRequest)
        .join(VerificationRequest, Script.verification_request_id == VerificationRequest.id)
        .filter((Script.raw_hash == needle) | (Script.final_hash == needle))
        .order_by(VerificationRequest.created_at.desc(), Script.id.asc())
        .all()
    )


def find_scripts_by_source(db: Session, source_url: str, commit_hash: str) -> Optional[VerificationRequest]:
    """Newest completed request for (source_url, commit_hash); its scripts are on `.scripts`."""
    return (
        db.query(VerificationRequest)
        .filter(
            VerificationRequest.source_url == source_url,
            VerificationRequest.commit_hash == commit_hash.lower(),
            VerificationRequest.status.in_(_COMPLETED),
        )
        .order_by(VerificationRequest.created_at.desc(), VerificationRequest.id.desc())
        .first()
    )


def search_requests_by_url(db: Session, pattern: str, limit: int = 100) -> List[VerificationRequest]:
    """Completed requests whose source URL contains `pattern` (case-insensitive), newest first."""
    return (
        db.query(VerificationRequest)
        .filter(
            func.lower(VerificationRequest.source_url).contains(pattern.strip().lower(), autoescape=True),
            VerificationRequest.status.in_(_COMPLETED),
        )
        .order_by(VerificationRequest.created_at.desc(), VerificationRequest.id.desc())
        .limit(limit)
        .all()
    )


# ============ STATS ============

def registry_stats(db: Session) -> dict:
    """Verified request count, distinct final hashes, distinct verified repositories."""
    verified = VerificationStatus.VERIFIED.value
    verifications = (
        db.query(func.count(VerificationRequest.id))
        .filter(VerificationRequest.status == verified)
        .scalar()
    )
    scripts = db.query(func.count(func.distinct(Script.final_hash))).scalar()
    repositories = (
        db.query(func.count(func.distinct(VerificationRequest.source_url)))
        .filter(VerificationRequest.status == verified)
        .scalar()
    )
    return {
        "verifications": verifications or 0,
        "scripts": scripts or 0,
        "repositories": repositories or 0,
    }
