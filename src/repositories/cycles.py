"""Cycle and submission audit repositories: SQL-backed cycle store gateway.

Repositories call add()/flush()/execute() only, never commit(). The
session dependency handles commit/rollback (Unit-of-Work), so a completion
patch and its audit insert share one transaction.

Rows hold JSON documents; callers only ever see the validated
``CycleRecord`` / ``Snapshot`` / ``SubmissionAuditRecord`` models.
"""

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.cycles.errors import CycleConflictError, PersistenceError
from src.cycles.store import AuditStore, CycleStore
from src.db.tables import RevalidationCycleRow, RevalidationSubmissionRow
from src.models.common import ensure_utc, new_uuid7, utc_now
from src.models.cycle import (
    CyclePatch,
    CycleRecord,
    CycleStatus,
    SubmissionAuditRecord,
)


def _cycle_row_to_record(row: RevalidationCycleRow) -> CycleRecord:
    return CycleRecord.model_validate({
        "cycle_id": row.cycle_id,
        "subject_id": row.subject_id,
        "cycle_number": row.cycle_number,
        "start_date": row.start_date,
        "end_date": row.end_date,
        "status": row.status,
        "submission_date": ensure_utc(row.submission_date) if row.submission_date else None,
        "submission_reference": row.submission_reference,
        "carry_forward_metrics": row.carry_forward_metrics,
        "archived_snapshot": row.archived_snapshot,
        "created_at": ensure_utc(row.created_at),
        "updated_at": ensure_utc(row.updated_at),
    })


def _submission_row_to_record(row: RevalidationSubmissionRow) -> SubmissionAuditRecord:
    return SubmissionAuditRecord.model_validate({
        "audit_id": row.audit_id,
        "cycle_id": row.cycle_id,
        "subject_id": row.subject_id,
        "snapshot": row.submission_data,
        "snapshot_checksum": row.snapshot_checksum,
        "external_reference": row.external_reference,
        "status": row.status,
        "ip_address": row.ip_address,
        "user_agent": row.user_agent,
        "submitted_at": ensure_utc(row.submitted_at),
    })


class CycleRepository(CycleStore):
    """DB-backed cycle store.

    The one-active-per-subject and unique-number rules live in the schema;
    violations surface as PersistenceError.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, cycle: CycleRecord) -> CycleRecord:
        now = utc_now()
        metrics = cycle.carry_forward_metrics
        row = RevalidationCycleRow(
            cycle_id=new_uuid7(),
            subject_id=cycle.subject_id,
            cycle_number=cycle.cycle_number,
            start_date=cycle.start_date,
            end_date=cycle.end_date,
            status=cycle.status.value,
            carry_forward_metrics=metrics.model_dump(mode="json") if metrics else None,
            created_at=now,
            updated_at=now,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise PersistenceError(
                f"Cycle {cycle.cycle_number} for subject {cycle.subject_id} rejected by store: {exc.orig}"
            ) from exc
        return _cycle_row_to_record(row)

    async def get(self, cycle_id: UUID) -> CycleRecord | None:
        row = await self._session.get(RevalidationCycleRow, cycle_id)
        return _cycle_row_to_record(row) if row is not None else None

    async def get_current(self, subject_id: UUID) -> CycleRecord | None:
        result = await self._session.execute(
            select(RevalidationCycleRow).where(
                RevalidationCycleRow.subject_id == subject_id,
                RevalidationCycleRow.status == CycleStatus.ACTIVE.value,
            )
        )
        row = result.scalars().first()
        return _cycle_row_to_record(row) if row is not None else None

    async def get_last(self, subject_id: UUID) -> CycleRecord | None:
        result = await self._session.execute(
            select(RevalidationCycleRow)
            .where(RevalidationCycleRow.subject_id == subject_id)
            .order_by(RevalidationCycleRow.cycle_number.desc())
            .limit(1)
        )
        row = result.scalars().first()
        return _cycle_row_to_record(row) if row is not None else None

    async def list_for_subject(self, subject_id: UUID) -> list[CycleRecord]:
        result = await self._session.execute(
            select(RevalidationCycleRow)
            .where(RevalidationCycleRow.subject_id == subject_id)
            .order_by(RevalidationCycleRow.cycle_number)
        )
        return [_cycle_row_to_record(r) for r in result.scalars().all()]

    async def patch(self, cycle_id: UUID, patch: CyclePatch) -> CycleRecord:
        """Conditional UPDATE keyed on ``status = 'active'``.

        Zero affected rows means another writer completed the cycle first
        (or it never existed); the loser gets CycleConflictError.
        """
        result = await self._session.execute(
            update(RevalidationCycleRow)
            .where(
                RevalidationCycleRow.cycle_id == cycle_id,
                RevalidationCycleRow.status == CycleStatus.ACTIVE.value,
            )
            .values(
                status=patch.status.value,
                submission_date=patch.submission_date,
                submission_reference=patch.submission_reference,
                archived_snapshot=patch.archived_snapshot.model_dump(mode="json"),
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise CycleConflictError(cycle_id)

        row = await self._session.get(RevalidationCycleRow, cycle_id, populate_existing=True)
        return _cycle_row_to_record(row)


class SubmissionAuditRepository(AuditStore):
    """DB-backed append-only audit store. Exposes no update or delete."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, record: SubmissionAuditRecord) -> SubmissionAuditRecord:
        row = RevalidationSubmissionRow(
            audit_id=record.audit_id,
            cycle_id=record.cycle_id,
            subject_id=record.subject_id,
            submission_data=record.snapshot.model_dump(mode="json"),
            snapshot_checksum=record.snapshot_checksum,
            external_reference=record.external_reference,
            status=record.status.value,
            ip_address=record.ip_address,
            user_agent=record.user_agent,
            submitted_at=record.submitted_at,
        )
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise PersistenceError(
                f"Audit record for cycle {record.cycle_id} rejected by store: {exc.orig}"
            ) from exc
        return record

    async def list_for_cycle(self, cycle_id: UUID) -> list[SubmissionAuditRecord]:
        result = await self._session.execute(
            select(RevalidationSubmissionRow)
            .where(RevalidationSubmissionRow.cycle_id == cycle_id)
            .order_by(RevalidationSubmissionRow.submitted_at)
        )
        return [_submission_row_to_record(r) for r in result.scalars().all()]

    async def list_for_subject(self, subject_id: UUID) -> list[SubmissionAuditRecord]:
        result = await self._session.execute(
            select(RevalidationSubmissionRow)
            .where(RevalidationSubmissionRow.subject_id == subject_id)
            .order_by(RevalidationSubmissionRow.submitted_at)
        )
        return [_submission_row_to_record(r) for r in result.scalars().all()]
