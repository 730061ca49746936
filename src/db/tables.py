"""SQLAlchemy ORM table models for RevalOS.

Uses FlexJSON (JSONB on Postgres, JSON on SQLite) for the structured
carry-forward metrics and snapshot documents.

Categories:
- OPERATIONAL: RevalidationCycle (one completion patch allowed, while active)
- IMMUTABLE: RevalidationSubmission (append-only audit trail)

Invariants enforced here rather than in application code:
- one active cycle per subject (partial unique index)
- unique cycle number per subject
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from src.db.session import Base

# JSONB on PostgreSQL, plain JSON on SQLite (for tests)
FlexJSON = JSONB().with_variant(JSON(), "sqlite")

_ACTIVE_ONLY = text("status = 'active'")


# ---------------------------------------------------------------------------
# Cycles: OPERATIONAL
# ---------------------------------------------------------------------------


class RevalidationCycleRow(Base):
    """One three-year revalidation cycle for one subject."""

    __tablename__ = "revalidation_cycles"
    __table_args__ = (
        UniqueConstraint("subject_id", "cycle_number", name="uq_cycles_subject_number"),
        CheckConstraint("end_date > start_date", name="ck_cycles_end_after_start"),
        Index(
            "uq_cycles_one_active_per_subject",
            "subject_id",
            unique=True,
            postgresql_where=_ACTIVE_ONLY,
            sqlite_where=_ACTIVE_ONLY,
        ),
    )

    cycle_id: Mapped[UUID] = mapped_column(primary_key=True)
    subject_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    cycle_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    submission_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submission_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    carry_forward_metrics: Mapped[dict | None] = mapped_column(FlexJSON, nullable=True)
    archived_snapshot: Mapped[dict | None] = mapped_column(FlexJSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Submission audit: IMMUTABLE
# ---------------------------------------------------------------------------


class RevalidationSubmissionRow(Base):
    """Append-only compliance record written alongside every completion."""

    __tablename__ = "revalidation_submissions"

    audit_id: Mapped[UUID] = mapped_column(primary_key=True)
    cycle_id: Mapped[UUID] = mapped_column(
        ForeignKey("revalidation_cycles.cycle_id"), nullable=False, index=True,
    )
    subject_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    submission_data: Mapped[dict] = mapped_column(FlexJSON, nullable=False)
    snapshot_checksum: Mapped[str] = mapped_column(String(100), nullable=False)
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="SUBMITTED")
    ip_address: Mapped[str] = mapped_column(String(100), nullable=False)
    user_agent: Mapped[str] = mapped_column(Text, nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
