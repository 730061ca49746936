"""Lifecycle controller: the revalidation cycle state machine.

    [no cycle] --initialize_cycle--> active --complete_cycle--> completed
    completed --start_next_cycle--> active (new cycle)

``completed`` is terminal here: nothing returns a cycle to ``active`` or
touches it again. ``archived`` is a label applied by an external retention
process.

Completion order:
1. Fetch the active cycle (NoActiveCycleError if none)
2. Build the snapshot (evidence reads run concurrently)
3. Conditional patch active -> completed. The store rejects it unless the
   cycle is still active, so concurrent completions serialize here and
   exactly one wins.
4. Append the submission audit record

With the SQL store, steps 3 and 4 share the request's unit of work and
commit together. If step 4 fails the controller raises
AuditInconsistencyError; ``verify_submissions`` reports any completion
whose audit record is missing.

Completion and next-cycle start are separate operations so a caller can
complete without immediately opening a new cycle.
"""

import logging
from uuid import UUID

from src.cycles.audit import SubmissionAuditRecorder
from src.cycles.errors import (
    ArchiveNotFoundError,
    AuditInconsistencyError,
    CycleNotStartedError,
    NoActiveCycleError,
    NoCarryForwardDataError,
)
from src.cycles.periods import renewal_end
from src.cycles.snapshot import SnapshotBuilder
from src.cycles.store import CycleStore
from src.export.cycle_export import CycleArchiveExporter, ExportArtifact, ExportFormat
from src.models.common import Clock, utc_now
from src.models.cycle import (
    CarryForwardMetrics,
    CompletionDiscrepancy,
    CyclePatch,
    CycleRecord,
    CycleStatus,
    RequestContext,
    Snapshot,
)

logger = logging.getLogger(__name__)


class CycleLifecycleController:
    """Owns cycle creation, completion and carry-forward.

    Parameters
    ----------
    store:
        Cycle store gateway; enforces uniqueness and conditional patching.
    recorder:
        Submission audit recorder, invoked only from ``complete_cycle``.
    snapshot_builder:
        Aggregates evidence at completion time.
    clock:
        Time source. Injected so date logic is deterministic under test.
    """

    def __init__(
        self,
        store: CycleStore,
        recorder: SubmissionAuditRecorder,
        snapshot_builder: SnapshotBuilder,
        clock: Clock = utc_now,
        exporter: CycleArchiveExporter | None = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._snapshots = snapshot_builder
        self._clock = clock
        self._exporter = exporter or CycleArchiveExporter()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def initialize_cycle(
        self,
        subject_id: UUID,
        metrics: CarryForwardMetrics,
    ) -> CycleRecord:
        """Create the subject's next active cycle seeded with ``metrics``.

        The first cycle starts today; later cycles start where the previous
        one ended.

        Raises:
            PersistenceError: if the store rejects the write, e.g. because the
                subject already holds an active cycle.
        """
        last = await self._store.get_last(subject_id)
        cycle_number = last.cycle_number + 1 if last is not None else 1
        start_date = last.end_date if last is not None else self._clock().date()

        cycle = CycleRecord(
            subject_id=subject_id,
            cycle_number=cycle_number,
            start_date=start_date,
            end_date=renewal_end(start_date),
            status=CycleStatus.ACTIVE,
            carry_forward_metrics=metrics,
        )
        created = await self._store.create(cycle)
        logger.info(
            "Initialized cycle %d (%s) for subject %s: %s to %s",
            created.cycle_number, created.cycle_id, subject_id,
            created.start_date, created.end_date,
        )
        return created

    async def complete_cycle(
        self,
        subject_id: UUID,
        external_reference: str | None = None,
        *,
        context: RequestContext | None = None,
    ) -> Snapshot:
        """Complete the active cycle, archive its snapshot and audit it.

        Raises:
            NoActiveCycleError: the subject has no active cycle.
            CycleNotStartedError: the active cycle starts in the future.
            CycleConflictError: a concurrent completion won the patch.
            AuditInconsistencyError: the cycle was patched but the audit
                record could not be written.
        """
        current = await self._store.get_current(subject_id)
        if current is None:
            raise NoActiveCycleError(subject_id)

        now = self._clock()
        if now.date() < current.start_date:
            raise CycleNotStartedError(current.cycle_id, current.start_date)

        snapshot = await self._snapshots.build(current)

        completed = await self._store.patch(
            current.cycle_id,
            CyclePatch(
                submission_date=now,
                submission_reference=external_reference,
                archived_snapshot=snapshot,
            ),
        )

        try:
            await self._recorder.record_submission(
                cycle_id=completed.cycle_id,
                subject_id=subject_id,
                snapshot=snapshot,
                external_reference=external_reference,
                context=context,
            )
        except Exception as exc:
            logger.error(
                "Cycle %s completed but audit write failed; completion and audit trail disagree: %s",
                completed.cycle_id, exc,
            )
            raise AuditInconsistencyError(completed.cycle_id) from exc

        logger.info(
            "Completed cycle %d (%s) for subject %s (reference=%s, complete_snapshot=%s)",
            completed.cycle_number, completed.cycle_id, subject_id,
            external_reference, snapshot.is_complete,
        )
        return snapshot

    async def start_next_cycle(self, subject_id: UUID) -> CycleRecord:
        """Open the next cycle, carrying metrics forward one renewal period.

        Raises:
            NoCarryForwardDataError: no prior cycle with carry-forward metrics.
            PersistenceError: the store rejected the new cycle (e.g. the last
                cycle is still active).
        """
        last = await self._store.get_last(subject_id)
        if last is None or last.carry_forward_metrics is None:
            raise NoCarryForwardDataError(subject_id)

        return await self.initialize_cycle(subject_id, last.carry_forward_metrics.advanced())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_current_cycle(self, subject_id: UUID) -> CycleRecord | None:
        return await self._store.get_current(subject_id)

    async def get_last_cycle(self, subject_id: UUID) -> CycleRecord | None:
        return await self._store.get_last(subject_id)

    async def list_cycles(self, subject_id: UUID) -> list[CycleRecord]:
        return await self._store.list_for_subject(subject_id)

    async def get_archived_snapshot(
        self,
        cycle_id: UUID,
        subject_id: UUID | None = None,
    ) -> Snapshot:
        """Return the archived snapshot of a completed cycle.

        When ``subject_id`` is given, a cycle belonging to another subject is
        reported as not found.

        Raises:
            ArchiveNotFoundError: the cycle does not exist or is not completed.
        """
        snapshot = await self._store.get_archived_snapshot(cycle_id)
        if snapshot is None or (
            subject_id is not None and snapshot.cycle.subject_id != subject_id
        ):
            raise ArchiveNotFoundError(cycle_id)
        return snapshot

    async def export_archive(
        self,
        cycle_id: UUID,
        fmt: ExportFormat | str = ExportFormat.JSON,
        subject_id: UUID | None = None,
    ) -> ExportArtifact:
        """Export a completed cycle's snapshot for audit download.

        The format is checked before the archive is read, so an unsupported
        format fails the same way for every cycle.
        """
        self._exporter.check_format(fmt)
        snapshot = await self.get_archived_snapshot(cycle_id, subject_id)
        return self._exporter.export(cycle_id, snapshot, fmt)

    async def verify_submissions(self, subject_id: UUID) -> list[CompletionDiscrepancy]:
        """Detect completions whose audit trail is missing, duplicated or altered."""
        cycles = await self._store.list_for_subject(subject_id)
        return await self._recorder.reconcile(subject_id, cycles)
