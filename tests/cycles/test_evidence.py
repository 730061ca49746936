"""Tests for evidence sources: HTTP client (mock transport) and in-memory."""

import httpx
import pytest
from uuid_extensions import uuid7

from src.cycles.evidence import (
    CATEGORY_ENDPOINTS,
    PROFILE_ENDPOINT,
    HttpEvidenceSource,
    InMemoryEvidenceSource,
)
from src.models.cycle import EvidenceCategory


def _source(handler) -> HttpEvidenceSource:
    return HttpEvidenceSource(
        base_url="http://evidence.test/",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
    )


class TestHttpEvidenceSource:
    def test_every_category_has_endpoint(self) -> None:
        assert set(CATEGORY_ENDPOINTS) == set(EvidenceCategory)

    @pytest.mark.anyio
    async def test_cycle_scoped_fetch(self) -> None:
        subject_id, cycle_id = uuid7(), uuid7()
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[{"hours": 7.5}])

        records = await _source(handler).fetch(
            EvidenceCategory.PRACTICE_HOURS, subject_id=subject_id, cycle_id=cycle_id,
        )

        assert records == [{"hours": 7.5}]
        [request] = seen
        assert request.url.path == "/api/practice-hours"
        assert request.url.params["subjectId"] == str(subject_id)
        assert request.url.params["cycleId"] == str(cycle_id)

    @pytest.mark.anyio
    async def test_subject_scoped_fetch_omits_cycle(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[])

        await _source(handler).fetch(EvidenceCategory.CONFIRMATIONS, subject_id=uuid7())
        assert "cycleId" not in seen[0].url.params

    @pytest.mark.anyio
    async def test_server_error_raises(self) -> None:
        source = _source(lambda request: httpx.Response(503))
        with pytest.raises(httpx.HTTPStatusError):
            await source.fetch(EvidenceCategory.CPD_RECORDS, subject_id=uuid7())

    @pytest.mark.anyio
    async def test_non_list_payload_rejected(self) -> None:
        source = _source(lambda request: httpx.Response(200, json={"items": []}))
        with pytest.raises(ValueError, match="expected list"):
            await source.fetch(EvidenceCategory.FEEDBACK_RECORDS, subject_id=uuid7())

    @pytest.mark.anyio
    async def test_profile(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == PROFILE_ENDPOINT
            return httpx.Response(200, json={"name": "A. Practitioner"})

        assert await _source(handler).fetch_profile(uuid7()) == {"name": "A. Practitioner"}

    @pytest.mark.anyio
    async def test_missing_profile_is_none(self) -> None:
        source = _source(lambda request: httpx.Response(404))
        assert await source.fetch_profile(uuid7()) is None


class TestInMemoryEvidenceSource:
    @pytest.mark.anyio
    async def test_cycle_filter(self) -> None:
        subject_id, cycle_id = uuid7(), uuid7()
        source = InMemoryEvidenceSource()
        source.add(EvidenceCategory.CPD_RECORDS, subject_id, {"n": 1}, cycle_id=cycle_id)
        source.add(EvidenceCategory.CPD_RECORDS, subject_id, {"n": 2}, cycle_id=uuid7())

        scoped = await source.fetch(
            EvidenceCategory.CPD_RECORDS, subject_id=subject_id, cycle_id=cycle_id,
        )
        unscoped = await source.fetch(EvidenceCategory.CPD_RECORDS, subject_id=subject_id)
        assert scoped == [{"n": 1}]
        assert unscoped == [{"n": 1}, {"n": 2}]

    @pytest.mark.anyio
    async def test_failure_injection(self) -> None:
        source = InMemoryEvidenceSource()
        source.failing.add(EvidenceCategory.CPD_RECORDS)
        with pytest.raises(ConnectionError):
            await source.fetch(EvidenceCategory.CPD_RECORDS, subject_id=uuid7())
