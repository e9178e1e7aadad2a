from datetime import datetime, timezone

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime,
    ForeignKey, UniqueConstraint, JSON, Index
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Source(Base):
    """Source registry entry (managed by the dashboard, read by ingestion)."""
    __tablename__ = "sources"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    type = Column(String(30), nullable=False)  # FEED | STRUCTURED_API (legacy: RSS | API)
    url = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_sources_is_active", "is_active"),
    )

    opportunities = relationship("Opportunity", back_populates="source")


class Opportunity(Base):
    __tablename__ = "opportunities"

    id = Column(Integer, primary_key=True)
    # Identity key: canonical link, unique across all sources
    url = Column(Text, nullable=False)
    title = Column(String(1000), nullable=False)
    published_at = Column(DateTime(timezone=True))
    score = Column(Integer, nullable=False, default=0)
    tags = Column(JSON, default=list)
    summary = Column(Text)
    raw = Column(JSON)  # Payload as fetched, for audit

    # Classification provenance
    family = Column(String(30))  # FAM_TELE | FAM_AUDIT | FAM_FORMATION
    ruleset = Column(String(20))  # text | cpv
    ruleset_version = Column(String(10))
    source_id = Column(Integer, ForeignKey("sources.id"), nullable=True)
    source_name = Column(String(255))
    source_type = Column(String(30))

    # Triage workflow (never written by ingestion after insert)
    status = Column(String(20), default="NEW", nullable=False)  # NEW, TRIAGED, QUALIFIED, SENT, WON, LOST
    assigned_to = Column(String(120))
    priority = Column(String(20))  # LOW, NORMAL, HIGH, URGENT
    notes = Column(Text)
    next_action = Column(String(500))
    deadline_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("url", name="uq_opportunities_url"),
        Index("ix_opportunities_status", "status"),
        Index("ix_opportunities_score", "score"),
        Index("ix_opportunities_family", "family"),
        Index("ix_opportunities_published_at", "published_at"),
    )

    source = relationship("Source", back_populates="opportunities")


class IngestRun(Base):
    """One execution of the ingestion job across all active sources."""
    __tablename__ = "ingest_runs"

    id = Column(Integer, primary_key=True)
    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    finished_at = Column(DateTime(timezone=True))
    status = Column(String(20), default="running", nullable=False)  # running, ok, error
    created_count = Column(Integer, default=0)
    scanned_count = Column(Integer, default=0)
    details = Column(JSON)  # [{"source": ..., "created": ..., "scanned": ...} | {..., "error": ...}]
    error = Column(Text)

    __table_args__ = (
        Index("ix_ingest_runs_started_at", "started_at"),
        Index("ix_ingest_runs_status", "status"),
    )
