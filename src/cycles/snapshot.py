"""Snapshot builder: aggregate one cycle's evidence into a single document.

All category reads run concurrently. A failed read degrades to an empty
sequence instead of aborting the snapshot; the failure is logged, named in
``Snapshot.degraded_sources`` and raised as a ``PartialSnapshotWarning`` so
an empty category is never mistaken for a category with no records.

Scope policy:
- Cycle-scoped: practice hours, CPD, feedback, reflective accounts,
  reflective discussions. These are logged against a specific cycle.
- Subject-scoped: health declarations, confirmations, training records and
  the profile. These are standing records of the professional and are
  captured in full at every completion.
"""

import asyncio
import logging
import warnings
from typing import Any

from src.cycles.errors import PartialSnapshotWarning
from src.cycles.evidence import EvidenceSource
from src.models.common import Clock, utc_now
from src.models.cycle import (
    PROFILE_SOURCE,
    CycleRecord,
    EvidenceCategory,
    EvidenceScope,
    Snapshot,
)

logger = logging.getLogger(__name__)

CATEGORY_SCOPES: dict[EvidenceCategory, EvidenceScope] = {
    EvidenceCategory.PRACTICE_HOURS: EvidenceScope.CYCLE,
    EvidenceCategory.CPD_RECORDS: EvidenceScope.CYCLE,
    EvidenceCategory.FEEDBACK_RECORDS: EvidenceScope.CYCLE,
    EvidenceCategory.REFLECTIVE_ACCOUNTS: EvidenceScope.CYCLE,
    EvidenceCategory.REFLECTIVE_DISCUSSIONS: EvidenceScope.CYCLE,
    EvidenceCategory.HEALTH_DECLARATIONS: EvidenceScope.SUBJECT,
    EvidenceCategory.CONFIRMATIONS: EvidenceScope.SUBJECT,
    EvidenceCategory.TRAINING_RECORDS: EvidenceScope.SUBJECT,
}

_FAILED = object()


class SnapshotBuilder:
    """Build a Snapshot for a cycle from the evidence collaborators."""

    def __init__(self, source: EvidenceSource, clock: Clock = utc_now) -> None:
        self._source = source
        self._clock = clock

    async def build(self, cycle: CycleRecord) -> Snapshot:
        """Read every category plus the profile and assemble the snapshot.

        Parameters
        ----------
        cycle:
            The persisted cycle being captured. Its ``cycle_id`` scopes the
            cycle-scoped reads and its ``subject_id`` the subject-scoped ones.
        """
        if cycle.cycle_id is None:
            msg = "Cannot snapshot a cycle that has not been persisted."
            raise ValueError(msg)

        categories = list(CATEGORY_SCOPES)
        reads = [self._read_category(cycle, category) for category in categories]
        reads.append(self._read_profile(cycle))
        results = await asyncio.gather(*reads)

        evidence: dict[str, tuple[dict[str, Any], ...]] = {}
        degraded: list[str] = []
        for category, result in zip(categories, results[:-1]):
            if result is _FAILED:
                degraded.append(category.value)
                evidence[category.value] = ()
            else:
                evidence[category.value] = tuple(result)

        profile = results[-1]
        if profile is _FAILED:
            degraded.append(PROFILE_SOURCE)
            profile = None

        snapshot = Snapshot(
            cycle=cycle,
            subject_profile=profile,
            captured_at=self._clock(),
            degraded_sources=tuple(degraded),
            **evidence,
        )

        if degraded:
            warnings.warn(
                f"Snapshot for cycle {cycle.cycle_id} is partial; "
                f"degraded sources: {', '.join(degraded)}",
                PartialSnapshotWarning,
                stacklevel=2,
            )
        return snapshot

    async def _read_category(self, cycle: CycleRecord, category: EvidenceCategory) -> Any:
        scoped_cycle = cycle.cycle_id if CATEGORY_SCOPES[category] == EvidenceScope.CYCLE else None
        try:
            return await self._source.fetch(
                category, subject_id=cycle.subject_id, cycle_id=scoped_cycle,
            )
        except Exception as exc:
            logger.warning(
                "Evidence read for %s failed for cycle %s; capturing as empty: %s",
                category.value, cycle.cycle_id, exc,
            )
            return _FAILED

    async def _read_profile(self, cycle: CycleRecord) -> Any:
        try:
            return await self._source.fetch_profile(cycle.subject_id)
        except Exception as exc:
            logger.warning(
                "Profile read failed for subject %s; capturing as empty: %s",
                cycle.subject_id, exc,
            )
            return _FAILED
