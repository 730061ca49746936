"""Revalidation cycle models: cycle record, carry-forward metrics, snapshot, audit.

A CycleRecord is created active, mutated exactly once (completion) and
never again. Its Snapshot is embedded at completion and is read-only from
then on. SubmissionAuditRecord is an independent, append-only copy of the
same snapshot kept for after-the-fact compliance verification.

JSON is only produced at the persistence boundary; in memory these are
structured, validated types.
"""

import hashlib
import json
from datetime import date
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import Field, model_validator

from src.cycles.periods import add_years, renewal_end, RENEWAL_PERIOD_YEARS
from src.models.common import Checksum, RevalOSBase, UTCTimestamp, UUIDv7, new_uuid7, utc_now


class CycleStatus(StrEnum):
    """Lifecycle status of a revalidation cycle."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class EvidenceCategory(StrEnum):
    """Evidence record categories gathered into a snapshot."""

    PRACTICE_HOURS = "practice_hours"
    CPD_RECORDS = "cpd_records"
    FEEDBACK_RECORDS = "feedback_records"
    REFLECTIVE_ACCOUNTS = "reflective_accounts"
    REFLECTIVE_DISCUSSIONS = "reflective_discussions"
    HEALTH_DECLARATIONS = "health_declarations"
    CONFIRMATIONS = "confirmations"
    TRAINING_RECORDS = "training_records"


class EvidenceScope(StrEnum):
    """Filter applied when reading an evidence category."""

    CYCLE = "cycle"
    SUBJECT = "subject"


class AuditStatus(StrEnum):
    """Status stored on a submission audit record."""

    SUBMITTED = "SUBMITTED"


# Marker used in Snapshot.degraded_sources when the profile read fails.
PROFILE_SOURCE = "subject_profile"


# ---------------------------------------------------------------------------
# Carry-forward metrics
# ---------------------------------------------------------------------------


class CarryForwardMetrics(RevalOSBase, frozen=True):
    """Profile attributes that stay meaningful across cycle boundaries."""

    job_title: str = Field(..., min_length=1, max_length=255)
    weekly_hours: float = Field(..., ge=0.0, le=168.0)
    work_setting: str = Field(default="", max_length=255)
    scope: str = Field(default="", max_length=1000)
    registration: str = Field(..., min_length=1, max_length=255)
    registration_number: str = Field(..., min_length=1, max_length=100)
    expiry_date: date

    def advanced(self, years: int = RENEWAL_PERIOD_YEARS) -> "CarryForwardMetrics":
        """Return a copy with the expiry date moved forward one renewal period."""
        return self.model_copy(update={"expiry_date": add_years(self.expiry_date, years)})


# ---------------------------------------------------------------------------
# Cycle record
# ---------------------------------------------------------------------------


class CycleRecord(RevalOSBase, frozen=True):
    """One fixed-duration compliance period for one subject."""

    cycle_id: UUID | None = Field(
        default=None,
        description="Assigned by the store on creation; None before persistence.",
    )
    subject_id: UUID
    cycle_number: int = Field(..., ge=1)
    start_date: date
    end_date: date
    status: CycleStatus = Field(default=CycleStatus.ACTIVE)
    submission_date: UTCTimestamp | None = None
    submission_reference: str | None = Field(default=None, max_length=255)
    carry_forward_metrics: CarryForwardMetrics | None = Field(
        default=None,
        description="Seed for the next cycle. None only on records imported without metrics.",
    )
    archived_snapshot: "Snapshot | None" = None
    created_at: UTCTimestamp | None = None
    updated_at: UTCTimestamp | None = None

    @model_validator(mode="after")
    def _fixed_renewal_period(self) -> "CycleRecord":
        if self.end_date <= self.start_date:
            msg = "end_date must be after start_date."
            raise ValueError(msg)
        if self.end_date != renewal_end(self.start_date):
            msg = (
                f"A cycle spans exactly {RENEWAL_PERIOD_YEARS} years: "
                f"{self.start_date} must end on {renewal_end(self.start_date)}."
            )
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def _completion_fields_match_status(self) -> "CycleRecord":
        if self.status == CycleStatus.ACTIVE:
            if self.submission_date is not None or self.archived_snapshot is not None:
                msg = "An active cycle cannot carry a submission date or snapshot."
                raise ValueError(msg)
        elif self.submission_date is None or self.archived_snapshot is None:
            msg = f"A {self.status} cycle requires a submission date and snapshot."
            raise ValueError(msg)
        return self

    @property
    def is_active(self) -> bool:
        return self.status == CycleStatus.ACTIVE


class CyclePatch(RevalOSBase, frozen=True):
    """The single partial update a cycle receives: its completion."""

    status: CycleStatus = CycleStatus.COMPLETED
    submission_date: UTCTimestamp
    submission_reference: str | None = Field(default=None, max_length=255)
    archived_snapshot: "Snapshot"


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------

EvidenceEntries = tuple[dict[str, Any], ...]


class Snapshot(RevalOSBase, frozen=True):
    """Complete point-in-time aggregation of one cycle's evidence.

    ``cycle`` is the record as it stood at capture (still active, without an
    embedded snapshot). ``degraded_sources`` names every read that failed
    and was replaced by an empty value; an empty tuple means complete.
    """

    cycle: CycleRecord
    practice_hours: EvidenceEntries = ()
    cpd_records: EvidenceEntries = ()
    feedback_records: EvidenceEntries = ()
    reflective_accounts: EvidenceEntries = ()
    reflective_discussions: EvidenceEntries = ()
    health_declarations: EvidenceEntries = ()
    confirmations: EvidenceEntries = ()
    training_records: EvidenceEntries = ()
    subject_profile: dict[str, Any] | None = None
    captured_at: UTCTimestamp = Field(default_factory=utc_now)
    degraded_sources: tuple[str, ...] = ()

    @property
    def is_complete(self) -> bool:
        return not self.degraded_sources

    def entries(self, category: EvidenceCategory) -> EvidenceEntries:
        """Return the ordered entries captured for ``category``."""
        return getattr(self, category.value)

    def checksum(self) -> str:
        """SHA-256 of the canonical (sorted-key) JSON form.

        Key order is normalised so the value survives storage engines that
        reorder JSON object keys (JSONB).
        """
        canonical = json.dumps(
            self.model_dump(mode="json"), sort_keys=True, separators=(",", ":"),
        )
        return f"sha256:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"


CycleRecord.model_rebuild()
CyclePatch.model_rebuild()


# ---------------------------------------------------------------------------
# Submission audit trail
# ---------------------------------------------------------------------------


class RequestContext(RevalOSBase, frozen=True):
    """Caller metadata captured at the moment of completion."""

    ip_address: str | None = None
    user_agent: str | None = None


class SubmissionAuditRecord(RevalOSBase, frozen=True):
    """Immutable compliance record written alongside every completion."""

    audit_id: UUIDv7 = Field(default_factory=new_uuid7)
    cycle_id: UUID
    subject_id: UUID
    snapshot: Snapshot
    snapshot_checksum: Checksum
    external_reference: str | None = Field(default=None, max_length=255)
    status: AuditStatus = Field(default=AuditStatus.SUBMITTED)
    ip_address: str = Field(default="unknown", max_length=100)
    user_agent: str = Field(default="unknown", max_length=1000)
    submitted_at: UTCTimestamp = Field(default_factory=utc_now)


class DiscrepancyKind(StrEnum):
    """Ways a completion and its audit trail can disagree."""

    MISSING_AUDIT = "MISSING_AUDIT"
    DUPLICATE_AUDIT = "DUPLICATE_AUDIT"
    ORPHAN_AUDIT = "ORPHAN_AUDIT"
    SNAPSHOT_MISMATCH = "SNAPSHOT_MISMATCH"


class CompletionDiscrepancy(RevalOSBase, frozen=True):
    """A detected inconsistency between a cycle and its audit records."""

    cycle_id: UUID
    kind: DiscrepancyKind
    detail: str
