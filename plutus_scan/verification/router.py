# FILE: plutus_scan/verification/router.py
"""
Read-only query API over verified scripts and verification requests.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from plutus_scan.db import get_db
from plutus_scan.verification import store
from plutus_scan.verification.models import Script, VerificationRequest
from plutus_scan.verification.schemas import (
    ScriptOut,
    ScriptSourceOut,
    StatsOut,
    VerificationOut,
    VerificationScriptsOut,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["verification"],
)

health_router = APIRouter(tags=["health"])


def _script_with_source(script: Script, request: VerificationRequest) -> ScriptSourceOut:
    return ScriptSourceOut(
        **ScriptOut.model_validate(script).model_dump(),
        source_url=request.source_url,
        commit_hash=request.commit_hash,
        compiler_type=request.compiler_type,
        compiler_version=request.compiler_version,
        source_path=request.source_path,
        tx_hash=request.tx_hash,
    )


def _with_scripts(request: VerificationRequest) -> VerificationScriptsOut:
    return VerificationScriptsOut(
        verification=VerificationOut.model_validate(request),
        scripts=[ScriptOut.model_validate(s) for s in request.scripts],
    )


# Declared before /scripts/{script_hash} so "search" is not taken as a hash
@router.get("/scripts/search", response_model=List[VerificationScriptsOut])
def search_scripts(
    q: str = Query(..., description="Case-insensitive substring of the source URL"),
    db: Session = Depends(get_db),
):
    """VERIFIED and INSUFFICIENT_PARAMS requests whose source URL contains `q`, newest first, with their scripts."""
    if not q.strip():
        raise HTTPException(status_code=400, detail="Search pattern must not be empty")

    requests = store.search_requests_by_url(db, q)
    logger.info(f"[query] Found {len(requests)} verification requests matching '{q}'")
    return [_with_scripts(r) for r in requests]


@router.get("/scripts/{script_hash}", response_model=List[ScriptSourceOut])
def get_scripts_by_hash(script_hash: str, db: Session = Depends(get_db)):
    """Scripts whose raw or final hash matches."""
    rows = store.find_scripts_by_hash(db, script_hash)
    if not rows:
        raise HTTPException(status_code=404, detail="No scripts found with this hash")
    return [_script_with_source(script, request) for script, request in rows]


@router.get("/scripts", response_model=VerificationScriptsOut)
def get_scripts_by_source(
    source_url: str = Query(..., alias="sourceUrl"),
    commit: str = Query(...),
    db: Session = Depends(get_db),
):
    """Scripts of the newest completed request for (sourceUrl, commit)."""
    request = store.find_scripts_by_source(db, source_url, commit)
    if request is None:
        raise HTTPException(status_code=404, detail="No scripts found for this source/commit")
    return _with_scripts(request)


@router.get("/verification-requests", response_model=VerificationOut)
def get_verification_status(
    source_url: str = Query(..., alias="sourceUrl"),
    commit: str = Query(...),
    db: Session = Depends(get_db),
):
    """Status of the newest request for (sourceUrl, commit)."""
    request = store.find_latest_by_source(db, source_url, commit)
    if request is None:
        raise HTTPException(status_code=404, detail="No verification request found")
    return VerificationOut.model_validate(request)


@router.get("/stats", response_model=StatsOut)
def get_stats(db: Session = Depends(get_db)):
    stats = StatsOut(**store.registry_stats(db))
    logger.info(
        f"[query] Stats: {stats.verifications} verifications, {stats.scripts} scripts, "
        f"{stats.repositories} repositories"
    )
    return stats


@health_router.get("/healthcheck")
def healthcheck():
    return {"status": "ok"}
