"""Store ABCs and in-memory implementations for cycle persistence.

Provides two abstract store contracts:
- ``CycleStore``: the single read/write gateway for cycle records. The
  store, not the caller, enforces one active cycle per subject, unique
  cycle numbers, and the active-only conditional completion patch.
- ``AuditStore``: append-only submission audit records.

In-memory implementations are provided for testing and emulate the
database constraints. Production uses the SQLAlchemy repositories in
``src.repositories.cycles``.
"""

from abc import ABC, abstractmethod
from uuid import UUID

from src.cycles.errors import CycleConflictError, PersistenceError
from src.models.common import new_uuid7, utc_now
from src.models.cycle import (
    CyclePatch,
    CycleRecord,
    CycleStatus,
    Snapshot,
    SubmissionAuditRecord,
)


class CycleStore(ABC):
    """Gateway for persisted cycle records."""

    @abstractmethod
    async def create(self, cycle: CycleRecord) -> CycleRecord:
        """Persist a new cycle and return it with its assigned id.

        Raises:
            PersistenceError: if the subject already has an active cycle or
                the cycle number is taken.
        """
        ...

    @abstractmethod
    async def get(self, cycle_id: UUID) -> CycleRecord | None: ...

    @abstractmethod
    async def get_current(self, subject_id: UUID) -> CycleRecord | None:
        """Return the subject's single active cycle, or None."""
        ...

    @abstractmethod
    async def get_last(self, subject_id: UUID) -> CycleRecord | None:
        """Return the subject's highest-numbered cycle regardless of status."""
        ...

    @abstractmethod
    async def list_for_subject(self, subject_id: UUID) -> list[CycleRecord]:
        """Return all cycles of the subject ordered by cycle number."""
        ...

    @abstractmethod
    async def patch(self, cycle_id: UUID, patch: CyclePatch) -> CycleRecord:
        """Apply the completion patch if, and only if, the cycle is active.

        Raises:
            CycleConflictError: if the cycle is missing or no longer active.
        """
        ...

    async def get_archived_snapshot(self, cycle_id: UUID) -> Snapshot | None:
        """Return the archived snapshot, or None if the cycle is not completed."""
        cycle = await self.get(cycle_id)
        if cycle is None or cycle.is_active:
            return None
        return cycle.archived_snapshot


class AuditStore(ABC):
    """Append-only store for submission audit records. No update, no delete."""

    @abstractmethod
    async def append(self, record: SubmissionAuditRecord) -> SubmissionAuditRecord: ...

    @abstractmethod
    async def list_for_cycle(self, cycle_id: UUID) -> list[SubmissionAuditRecord]: ...

    @abstractmethod
    async def list_for_subject(self, subject_id: UUID) -> list[SubmissionAuditRecord]: ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryCycleStore(CycleStore):
    """In-memory implementation for tests.

    Each method runs without awaiting, so the check-and-set inside
    ``create`` and ``patch`` is atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self._cycles: dict[UUID, CycleRecord] = {}

    async def create(self, cycle: CycleRecord) -> CycleRecord:
        for existing in self._cycles.values():
            if existing.subject_id != cycle.subject_id:
                continue
            if existing.cycle_number == cycle.cycle_number:
                raise PersistenceError(
                    f"Cycle number {cycle.cycle_number} already exists for subject {cycle.subject_id}."
                )
            if existing.is_active and cycle.is_active:
                raise PersistenceError(
                    f"Subject {cycle.subject_id} already has an active cycle."
                )
        now = utc_now()
        stored = cycle.model_copy(
            update={"cycle_id": new_uuid7(), "created_at": now, "updated_at": now},
        )
        self._cycles[stored.cycle_id] = stored
        return stored

    async def get(self, cycle_id: UUID) -> CycleRecord | None:
        return self._cycles.get(cycle_id)

    async def get_current(self, subject_id: UUID) -> CycleRecord | None:
        for cycle in self._cycles.values():
            if cycle.subject_id == subject_id and cycle.is_active:
                return cycle
        return None

    async def get_last(self, subject_id: UUID) -> CycleRecord | None:
        cycles = await self.list_for_subject(subject_id)
        return cycles[-1] if cycles else None

    async def list_for_subject(self, subject_id: UUID) -> list[CycleRecord]:
        return sorted(
            (c for c in self._cycles.values() if c.subject_id == subject_id),
            key=lambda c: c.cycle_number,
        )

    async def patch(self, cycle_id: UUID, patch: CyclePatch) -> CycleRecord:
        cycle = self._cycles.get(cycle_id)
        if cycle is None or cycle.status != CycleStatus.ACTIVE:
            raise CycleConflictError(cycle_id)
        # Validate through the constructor so completion invariants hold.
        updated = CycleRecord.model_validate(
            {**dict(cycle), **dict(patch), "updated_at": utc_now()},
        )
        self._cycles[cycle_id] = updated
        return updated


class InMemoryAuditStore(AuditStore):
    """In-memory implementation for tests."""

    def __init__(self) -> None:
        self._records: list[SubmissionAuditRecord] = []

    async def append(self, record: SubmissionAuditRecord) -> SubmissionAuditRecord:
        self._records.append(record)
        return record

    async def list_for_cycle(self, cycle_id: UUID) -> list[SubmissionAuditRecord]:
        return [r for r in self._records if r.cycle_id == cycle_id]

    async def list_for_subject(self, subject_id: UUID) -> list[SubmissionAuditRecord]:
        return [r for r in self._records if r.subject_id == subject_id]
