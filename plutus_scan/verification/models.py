# FILE: plutus_scan/verification/models.py
"""
Verification pipeline - Database Models

SQLAlchemy ORM models for verification requests, their scripts and the
build-artifact (plutus.json) cache.

A VerificationRequest owns its Script rows: deleting the request deletes its
scripts (ORM cascade plus ON DELETE CASCADE on the foreign key).
"""
from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from plutus_scan.db import Base
from plutus_scan.verification.schemas import (
    ParameterizationStatus,
    PlutusVersion,
    VerificationStatus,
)


class VerificationRequest(Base):
    """
    One verification attempt observed on the ledger.

    Resubmitting the same (source_url, commit_hash) creates an independent row;
    queries pick the newest.
    """
    __tablename__ = "verification_request"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Audit trail
    tx_hash = Column(String(64), nullable=False, index=True)
    slot = Column(BigInteger, nullable=False)

    # Repository info (VCS-agnostic source URL)
    source_url = Column(String(2000), nullable=False)
    commit_hash = Column(String(64), nullable=False)  # SHA-1 (40) or SHA-256 (64) hex

    # Compiler info
    compiler_type = Column(String(20), nullable=False)
    compiler_version = Column(String(50), nullable=True)
    source_path = Column(String(1000), nullable=True)

    # raw script hash -> ordered list of CBOR-hex parameter values
    parameters_json = Column(JSON, nullable=True)

    # Status tracking
    status = Column(String(30), default=VerificationStatus.PENDING.value, nullable=False, index=True)
    error_message = Column(Text, nullable=True)
    retry_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    scripts = relationship(
        "Script",
        back_populates="verification_request",
        cascade="all, delete-orphan",
        order_by="Script.id",
    )

    __table_args__ = (
        Index("ix_verification_request_source", "source_url", "commit_hash"),
        Index("ix_verification_request_poll", "status", "retry_count", "created_at"),
    )

    def __repr__(self):
        return f"<VerificationRequest {self.id} {self.source_url}@{self.commit_hash} {self.status}>"


class Script(Base):
    """
    One logical validator from a verified build, keyed by its raw hash.

    Written once when a request is processed; never updated afterwards.
    """
    __tablename__ = "script"

    id = Column(Integer, primary_key=True, autoincrement=True)
    verification_request_id = Column(
        Integer,
        ForeignKey("verification_request.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Identification
    script_name = Column(String(500), nullable=False)
    module_name = Column(String(255), nullable=False)
    validator_name = Column(String(255), nullable=False)
    purposes = Column(JSON, nullable=False)  # e.g. ["spend", "mint"]

    # Hashes
    raw_hash = Column(String(64), nullable=False, index=True)
    final_hash = Column(String(64), nullable=True, index=True)

    plutus_version = Column(String(5), default=PlutusVersion.V3.value, nullable=False)
    compiled_code = Column(Text, nullable=False)

    # Parameters
    required_parameters = Column(JSON, nullable=True)  # [{"title": ..., "schema": ...}]
    provided_parameters = Column(JSON, nullable=True)  # ["d8799f...", ...]
    parameterization_status = Column(
        String(20),
        default=ParameterizationStatus.NONE_REQUIRED.value,
        nullable=False,
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    verification_request = relationship("VerificationRequest", back_populates="scripts")


class BlueprintCacheEntry(Base):
    """
    Content-addressed cache of build artifacts.

    Keyed by (compiler_type, source_url, commit_hash, compiler_version); a
    missing compiler version is stored as "" so the key is total.
    """
    __tablename__ = "blueprint_cache"

    id = Column(Integer, primary_key=True, autoincrement=True)

    compiler_type = Column(String(20), nullable=False)
    source_url = Column(String(2000), nullable=False)
    commit_hash = Column(String(64), nullable=False)
    compiler_version = Column(String(50), nullable=False, default="")

    content = Column(JSON, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint(
            "compiler_type", "source_url", "commit_hash", "compiler_version",
            name="uk_blueprint_cache_key",
        ),
    )
