"""Evidence collaborators: read-only access to a subject's evidence records.

The record stores themselves (practice hours, CPD, feedback, reflections,
declarations, confirmations, training, profile) live outside this service.
``HttpEvidenceSource`` reads them over HTTP; ``InMemoryEvidenceSource`` is
used by tests and local runs.
"""

from abc import ABC, abstractmethod
from typing import Any
from uuid import UUID

import httpx

from src.models.cycle import EvidenceCategory

# One endpoint per category on the evidence service.
CATEGORY_ENDPOINTS: dict[EvidenceCategory, str] = {
    EvidenceCategory.PRACTICE_HOURS: "/api/practice-hours",
    EvidenceCategory.CPD_RECORDS: "/api/cpd-records",
    EvidenceCategory.FEEDBACK_RECORDS: "/api/feedback-records",
    EvidenceCategory.REFLECTIVE_ACCOUNTS: "/api/reflective-accounts",
    EvidenceCategory.REFLECTIVE_DISCUSSIONS: "/api/reflective-discussions",
    EvidenceCategory.HEALTH_DECLARATIONS: "/api/health-declarations",
    EvidenceCategory.CONFIRMATIONS: "/api/confirmations",
    EvidenceCategory.TRAINING_RECORDS: "/api/training-records",
}
PROFILE_ENDPOINT = "/api/user-profile"


class EvidenceSource(ABC):
    """Read interface over the external evidence record stores."""

    @abstractmethod
    async def fetch(
        self,
        category: EvidenceCategory,
        *,
        subject_id: UUID,
        cycle_id: UUID | None = None,
    ) -> list[dict[str, Any]]:
        """Return the ordered records of ``category``.

        ``cycle_id`` is None for subject-scoped reads.
        """
        ...

    @abstractmethod
    async def fetch_profile(self, subject_id: UUID) -> dict[str, Any] | None:
        ...


class HttpEvidenceSource(EvidenceSource):
    """Evidence reads against the record service's REST endpoints.

    Non-2xx responses and transport errors raise; the snapshot builder
    decides how to degrade.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def fetch(
        self,
        category: EvidenceCategory,
        *,
        subject_id: UUID,
        cycle_id: UUID | None = None,
    ) -> list[dict[str, Any]]:
        params = {"subjectId": str(subject_id)}
        if cycle_id is not None:
            params["cycleId"] = str(cycle_id)

        async with self._client() as client:
            resp = await client.get(CATEGORY_ENDPOINTS[category], params=params)
            resp.raise_for_status()
            data = resp.json()

        if not isinstance(data, list):
            raise ValueError(
                f"Evidence endpoint for {category} returned {type(data).__name__}, expected list"
            )
        return data

    async def fetch_profile(self, subject_id: UUID) -> dict[str, Any] | None:
        async with self._client() as client:
            resp = await client.get(PROFILE_ENDPOINT, params={"subjectId": str(subject_id)})
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json()


class InMemoryEvidenceSource(EvidenceSource):
    """In-memory implementation for tests.

    Records are added per subject, optionally tagged with a cycle. A
    cycle-scoped read returns only records tagged with that cycle; a
    subject-scoped read returns every record of the subject. Categories
    listed in ``failing`` raise on read, as does the profile read when
    ``fail_profile`` is set.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[UUID, EvidenceCategory], list[tuple[UUID | None, dict]]] = {}
        self._profiles: dict[UUID, dict[str, Any]] = {}
        self.failing: set[EvidenceCategory] = set()
        self.fail_profile: bool = False
        self.calls: list[tuple[EvidenceCategory | str, UUID | None]] = []

    def add(
        self,
        category: EvidenceCategory,
        subject_id: UUID,
        record: dict[str, Any],
        cycle_id: UUID | None = None,
    ) -> None:
        self._records.setdefault((subject_id, category), []).append((cycle_id, record))

    def set_profile(self, subject_id: UUID, profile: dict[str, Any]) -> None:
        self._profiles[subject_id] = profile

    async def fetch(
        self,
        category: EvidenceCategory,
        *,
        subject_id: UUID,
        cycle_id: UUID | None = None,
    ) -> list[dict[str, Any]]:
        self.calls.append((category, cycle_id))
        if category in self.failing:
            raise ConnectionError(f"{category} store unavailable")
        entries = self._records.get((subject_id, category), [])
        return [
            record for tagged_cycle, record in entries
            if cycle_id is None or tagged_cycle == cycle_id
        ]

    async def fetch_profile(self, subject_id: UUID) -> dict[str, Any] | None:
        self.calls.append(("profile", None))
        if self.fail_profile:
            raise ConnectionError("profile store unavailable")
        return self._profiles.get(subject_id)
