"""Submission audit recorder: write-once compliance trail for completions.

Every completion writes one ``SubmissionAuditRecord`` holding its own copy
of the snapshot, a checksum of it, the external reference, and the
caller's network origin and client identifier. Records are never updated
or deleted; ``reconcile`` compares them against the cycles so a completion
whose audit write was lost (or duplicated) is detectable after the fact.
"""

import logging
from collections import defaultdict
from uuid import UUID

from src.cycles.store import AuditStore
from src.models.common import Clock, utc_now
from src.models.cycle import (
    CompletionDiscrepancy,
    CycleRecord,
    DiscrepancyKind,
    RequestContext,
    Snapshot,
    SubmissionAuditRecord,
)

logger = logging.getLogger(__name__)

_UNKNOWN = "unknown"


class SubmissionAuditRecorder:
    """Write submission audit records and check them against cycles."""

    def __init__(self, store: AuditStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock

    async def record_submission(
        self,
        *,
        cycle_id: UUID,
        subject_id: UUID,
        snapshot: Snapshot,
        external_reference: str | None,
        context: RequestContext | None = None,
    ) -> SubmissionAuditRecord:
        """Append the audit record for a completion.

        Called by the lifecycle controller as part of ``complete_cycle``.
        """
        context = context or RequestContext()
        record = SubmissionAuditRecord(
            cycle_id=cycle_id,
            subject_id=subject_id,
            snapshot=snapshot,
            snapshot_checksum=snapshot.checksum(),
            external_reference=external_reference,
            ip_address=context.ip_address or _UNKNOWN,
            user_agent=context.user_agent or _UNKNOWN,
            submitted_at=self._clock(),
        )
        stored = await self._store.append(record)
        logger.info(
            "Recorded submission audit %s for cycle %s (reference=%s)",
            stored.audit_id, cycle_id, external_reference,
        )
        return stored

    async def reconcile(
        self,
        subject_id: UUID,
        cycles: list[CycleRecord],
    ) -> list[CompletionDiscrepancy]:
        """Return every disagreement between ``cycles`` and the audit trail.

        - MISSING_AUDIT: completed cycle with no audit record
        - DUPLICATE_AUDIT: completed cycle with more than one audit record
        - SNAPSHOT_MISMATCH: audit checksum differs from the archived snapshot
        - ORPHAN_AUDIT: audit record whose cycle is not completed
        """
        records = await self._store.list_for_subject(subject_id)
        by_cycle: dict[UUID, list[SubmissionAuditRecord]] = defaultdict(list)
        for record in records:
            by_cycle[record.cycle_id].append(record)

        discrepancies: list[CompletionDiscrepancy] = []
        known: set[UUID] = set()
        for cycle in cycles:
            if cycle.cycle_id is None:
                continue
            known.add(cycle.cycle_id)
            audits = by_cycle.get(cycle.cycle_id, [])

            if cycle.is_active:
                if audits:
                    discrepancies.append(CompletionDiscrepancy(
                        cycle_id=cycle.cycle_id,
                        kind=DiscrepancyKind.ORPHAN_AUDIT,
                        detail=f"{len(audits)} audit record(s) exist for a cycle that is still active.",
                    ))
                continue

            if not audits:
                discrepancies.append(CompletionDiscrepancy(
                    cycle_id=cycle.cycle_id,
                    kind=DiscrepancyKind.MISSING_AUDIT,
                    detail=f"Cycle {cycle.cycle_number} is {cycle.status} but has no audit record.",
                ))
                continue
            if len(audits) > 1:
                discrepancies.append(CompletionDiscrepancy(
                    cycle_id=cycle.cycle_id,
                    kind=DiscrepancyKind.DUPLICATE_AUDIT,
                    detail=f"Cycle {cycle.cycle_number} has {len(audits)} audit records.",
                ))

            archived = cycle.archived_snapshot
            expected = archived.checksum() if archived is not None else None
            for audit in audits:
                if audit.snapshot_checksum != expected:
                    discrepancies.append(CompletionDiscrepancy(
                        cycle_id=cycle.cycle_id,
                        kind=DiscrepancyKind.SNAPSHOT_MISMATCH,
                        detail=f"Audit {audit.audit_id} checksum does not match the archived snapshot.",
                    ))

        for cycle_id, audits in by_cycle.items():
            if cycle_id not in known:
                discrepancies.append(CompletionDiscrepancy(
                    cycle_id=cycle_id,
                    kind=DiscrepancyKind.ORPHAN_AUDIT,
                    detail=f"{len(audits)} audit record(s) reference an unknown cycle.",
                ))

        if discrepancies:
            logger.warning(
                "Audit reconciliation found %d discrepancies for subject %s",
                len(discrepancies), subject_id,
            )
        return discrepancies
