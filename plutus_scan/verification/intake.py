# FILE: plutus_scan/verification/intake.py
"""
Ledger intake: turns transaction metadata into PENDING verification requests.

Candidates that fail to decode or validate are dropped with a warning. No
request row is created for them and they are never retried.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from plutus_scan.config import VerificationConfig, get_config
from plutus_scan.source_url import is_valid_commit_hash, parse_source_url
from plutus_scan.verification import store
from plutus_scan.verification.models import VerificationRequest
from plutus_scan.wire.codec import decode_metadata

logger = logging.getLogger(__name__)


@dataclass
class TxMetadataLabel:
    """One metadata entry of a transaction."""
    tx_hash: str
    label: str
    cbor: str  # hex of the metadata map {label: [chunk, ...]}


@dataclass
class TxMetadataEvent:
    """Metadata entries observed in one block."""
    slot: int
    block_hash: Optional[str] = None
    labels: List[TxMetadataLabel] = field(default_factory=list)


class RequestIntake:
    """Validates metadata entries and stores them as verification requests."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        config: Optional[VerificationConfig] = None,
    ):
        if session_factory is None:
            from plutus_scan.db import SessionLocal
            session_factory = SessionLocal
        self.session_factory = session_factory
        self.config = config or get_config()

    def process_event(self, event: TxMetadataEvent) -> List[VerificationRequest]:
        """Process every entry under the configured label. Returns the created requests."""
        wanted = str(self.config.metadata_label)
        created = []
        for entry in event.labels:
            if str(entry.label) != wanted:
                continue
            record = self.process_label(event.slot, entry, block_hash=event.block_hash)
            if record is not None:
                created.append(record)
        return created

    def process_label(
        self,
        slot: int,
        entry: TxMetadataLabel,
        block_hash: Optional[str] = None,
    ) -> Optional[VerificationRequest]:
        """Decode, validate and store one entry. None means the candidate was dropped."""
        decoded = decode_metadata(entry.cbor, self.config.metadata_label, self.config.chunk_size)
        if not decoded.success:
            logger.warning(
                f"[intake] Could not process tx {entry.tx_hash} at block {block_hash}: "
                f"{decoded.error.value}: {decoded.error_message}"
            )
            return None

        request = decoded.value
        if parse_source_url(request.source_url) is None:
            logger.warning(f"[intake] Invalid source URL format: {request.source_url} (tx {entry.tx_hash})")
            return None

        if not is_valid_commit_hash(request.commit_hash):
            logger.warning(
                f"[intake] Invalid commit hash: {request.commit_hash} "
                f"(must be 40 or 64 hex chars, tx {entry.tx_hash})"
            )
            return None

        logger.info(
            f"[intake] Received verification request: {request.source_url} @ {request.commit_hash} "
            f"from tx {entry.tx_hash}"
        )

        db = self.session_factory()
        try:
            record = store.create_request(db, entry.tx_hash, slot, request)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"[intake] Failed to store request from tx {entry.tx_hash} at block {block_hash}: {e}")
            return None
        finally:
            db.close()

        logger.info(
            f"[intake] Created verification request id={record.id} for {request.source_url} @ "
            f"{request.commit_hash}, tx={entry.tx_hash}, slot={slot}"
        )
        return record
