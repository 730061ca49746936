"""Tests for SubmissionAuditRecorder: audit writes and reconciliation."""

from datetime import date, datetime, timezone

import pytest
from uuid_extensions import uuid7

from src.cycles.audit import SubmissionAuditRecorder
from src.cycles.store import InMemoryAuditStore
from src.models.cycle import (
    CycleRecord,
    CycleStatus,
    DiscrepancyKind,
    RequestContext,
    Snapshot,
)

SUBMITTED = datetime(2026, 12, 1, 9, 0, tzinfo=timezone.utc)


def _active_cycle(subject_id, cycle_number: int = 1) -> CycleRecord:
    start = date(2021 + 3 * (cycle_number - 1), 1, 1)
    return CycleRecord(
        cycle_id=uuid7(),
        subject_id=subject_id,
        cycle_number=cycle_number,
        start_date=start,
        end_date=date(start.year + 3, 1, 1),
    )


def _completed(cycle: CycleRecord) -> CycleRecord:
    snapshot = Snapshot(cycle=cycle, captured_at=SUBMITTED)
    return CycleRecord.model_validate({
        **dict(cycle),
        "status": CycleStatus.COMPLETED,
        "submission_date": SUBMITTED,
        "archived_snapshot": snapshot,
    })


@pytest.fixture
def store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def recorder(store) -> SubmissionAuditRecorder:
    return SubmissionAuditRecorder(store, clock=lambda: SUBMITTED)


async def _record(recorder: SubmissionAuditRecorder, cycle: CycleRecord, snapshot: Snapshot | None = None):
    return await recorder.record_submission(
        cycle_id=cycle.cycle_id,
        subject_id=cycle.subject_id,
        snapshot=snapshot or cycle.archived_snapshot,
        external_reference="REF-001",
    )


class TestRecordSubmission:
    @pytest.mark.anyio
    async def test_record_fields(self, recorder, store) -> None:
        cycle = _completed(_active_cycle(uuid7()))
        record = await recorder.record_submission(
            cycle_id=cycle.cycle_id,
            subject_id=cycle.subject_id,
            snapshot=cycle.archived_snapshot,
            external_reference="NMC-2026-0042",
            context=RequestContext(ip_address="192.0.2.10", user_agent="Mozilla/5.0"),
        )

        assert record.cycle_id == cycle.cycle_id
        assert record.external_reference == "NMC-2026-0042"
        assert record.snapshot_checksum == cycle.archived_snapshot.checksum()
        assert record.ip_address == "192.0.2.10"
        assert record.user_agent == "Mozilla/5.0"
        assert record.submitted_at == SUBMITTED
        assert await store.list_for_cycle(cycle.cycle_id) == [record]

    @pytest.mark.anyio
    async def test_missing_context_recorded_as_unknown(self, recorder) -> None:
        cycle = _completed(_active_cycle(uuid7()))
        record = await recorder.record_submission(
            cycle_id=cycle.cycle_id,
            subject_id=cycle.subject_id,
            snapshot=cycle.archived_snapshot,
            external_reference=None,
            context=RequestContext(ip_address="192.0.2.10"),
        )
        assert record.ip_address == "192.0.2.10"
        assert record.user_agent == "unknown"


class TestReconcile:
    @pytest.mark.anyio
    async def test_consistent_history(self, recorder) -> None:
        subject_id = uuid7()
        first = _completed(_active_cycle(subject_id, 1))
        second = _active_cycle(subject_id, 2)
        await _record(recorder, first)

        assert await recorder.reconcile(subject_id, [first, second]) == []

    @pytest.mark.anyio
    async def test_missing_audit(self, recorder) -> None:
        subject_id = uuid7()
        cycle = _completed(_active_cycle(subject_id))

        [found] = await recorder.reconcile(subject_id, [cycle])
        assert found.kind == DiscrepancyKind.MISSING_AUDIT
        assert found.cycle_id == cycle.cycle_id

    @pytest.mark.anyio
    async def test_duplicate_audit(self, recorder) -> None:
        subject_id = uuid7()
        cycle = _completed(_active_cycle(subject_id))
        await _record(recorder, cycle)
        await _record(recorder, cycle)

        [found] = await recorder.reconcile(subject_id, [cycle])
        assert found.kind == DiscrepancyKind.DUPLICATE_AUDIT

    @pytest.mark.anyio
    async def test_snapshot_mismatch(self, recorder) -> None:
        subject_id = uuid7()
        cycle = _completed(_active_cycle(subject_id))
        altered = cycle.archived_snapshot.model_copy(
            update={"practice_hours": ({"hours": 999},)},
        )
        await _record(recorder, cycle, snapshot=altered)

        [found] = await recorder.reconcile(subject_id, [cycle])
        assert found.kind == DiscrepancyKind.SNAPSHOT_MISMATCH

    @pytest.mark.anyio
    async def test_audit_for_active_cycle(self, recorder) -> None:
        subject_id = uuid7()
        active = _active_cycle(subject_id)
        await _record(recorder, active, snapshot=Snapshot(cycle=active))

        [found] = await recorder.reconcile(subject_id, [active])
        assert found.kind == DiscrepancyKind.ORPHAN_AUDIT

    @pytest.mark.anyio
    async def test_audit_for_unknown_cycle(self, recorder) -> None:
        subject_id = uuid7()
        stray = _completed(_active_cycle(subject_id))
        await _record(recorder, stray)

        [found] = await recorder.reconcile(subject_id, [])
        assert found.kind == DiscrepancyKind.ORPHAN_AUDIT
        assert found.cycle_id == stray.cycle_id

    @pytest.mark.anyio
    async def test_other_subjects_ignored(self, recorder) -> None:
        other = _completed(_active_cycle(uuid7()))
        await _record(recorder, other)
        assert await recorder.reconcile(uuid7(), []) == []
