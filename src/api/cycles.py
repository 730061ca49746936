"""FastAPI revalidation cycle endpoints.

POST /v1/subjects/{subject_id}/cycles                         : initialize cycle
GET  /v1/subjects/{subject_id}/cycles                         : all cycles
GET  /v1/subjects/{subject_id}/cycles/current                 : active cycle
GET  /v1/subjects/{subject_id}/cycles/last                    : most recent cycle
GET  /v1/subjects/{subject_id}/cycles/current/status          : expiry status
POST /v1/subjects/{subject_id}/cycles/current/complete        : complete + archive
POST /v1/subjects/{subject_id}/cycles/next                    : start next cycle
GET  /v1/subjects/{subject_id}/cycles/verification            : audit reconciliation
GET  /v1/subjects/{subject_id}/cycles/{cycle_id}/archive      : archived snapshot
GET  /v1/subjects/{subject_id}/cycles/{cycle_id}/export       : download archive

The submission audit record has no route of its own; it is written only
as part of completion.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from src.api.dependencies import get_clock, get_lifecycle_controller
from src.config.settings import Settings, get_settings
from src.cycles.errors import (
    ArchiveNotFoundError,
    AuditInconsistencyError,
    CycleConflictError,
    CycleNotStartedError,
    NoActiveCycleError,
    NoCarryForwardDataError,
    PersistenceError,
    UnsupportedExportFormatError,
)
from src.cycles.evaluator import (
    cycle_status_text,
    expiry_status,
    format_cycle_period,
    is_expired,
    is_nearing_expiry,
    remaining_time,
)
from src.cycles.lifecycle import CycleLifecycleController
from src.models.common import Clock
from src.models.cycle import CarryForwardMetrics, CycleRecord, EvidenceCategory, RequestContext

router = APIRouter(prefix="/v1/subjects", tags=["cycles"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class CycleResponse(BaseModel):
    cycle_id: str
    subject_id: str
    cycle_number: int
    start_date: date
    end_date: date
    status: str
    submission_date: str | None = None
    submission_reference: str | None = None
    carry_forward_metrics: dict | None = None
    has_archived_snapshot: bool = False


class CompleteCycleRequest(BaseModel):
    external_reference: str | None = Field(default=None, max_length=255)


class CompleteCycleResponse(BaseModel):
    cycle_id: str
    captured_at: str
    is_complete: bool
    degraded_sources: list[str] = Field(default_factory=list)
    record_counts: dict[str, int] = Field(default_factory=dict)


class CycleStatusResponse(BaseModel):
    cycle_id: str
    period: str
    status_text: str
    expiry_status: str
    remaining_time: str
    is_nearing_expiry: bool
    is_expired: bool


class DiscrepancyResponse(BaseModel):
    cycle_id: str
    kind: str
    detail: str


class VerificationResponse(BaseModel):
    consistent: bool
    discrepancies: list[DiscrepancyResponse]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_response(cycle: CycleRecord) -> CycleResponse:
    metrics = cycle.carry_forward_metrics
    return CycleResponse(
        cycle_id=str(cycle.cycle_id),
        subject_id=str(cycle.subject_id),
        cycle_number=cycle.cycle_number,
        start_date=cycle.start_date,
        end_date=cycle.end_date,
        status=cycle.status.value,
        submission_date=cycle.submission_date.isoformat() if cycle.submission_date else None,
        submission_reference=cycle.submission_reference,
        carry_forward_metrics=metrics.model_dump(mode="json") if metrics else None,
        has_archived_snapshot=cycle.archived_snapshot is not None,
    )


def client_ip(request: Request, trusted_hops: int) -> str | None:
    """Address of the caller as seen by the outermost trusted proxy.

    Each proxy appends the address it received the request from, so only
    the rightmost ``trusted_hops`` entries of X-Forwarded-For were written by
    infrastructure we control. Entries further left come from the client and
    are ignored. With no trusted hops the header is ignored entirely.
    """
    peer = request.client.host if request.client else None
    if trusted_hops <= 0:
        return peer
    hops = [h.strip() for h in request.headers.get("x-forwarded-for", "").split(",") if h.strip()]
    if not hops:
        return peer
    return hops[-min(trusted_hops, len(hops))]


def _request_context(request: Request, trusted_hops: int) -> RequestContext:
    """Network origin and client identifier of the caller."""
    return RequestContext(
        ip_address=client_ip(request, trusted_hops),
        user_agent=request.headers.get("user-agent"),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/{subject_id}/cycles", status_code=201, response_model=CycleResponse)
async def initialize_cycle(
    subject_id: UUID,
    body: CarryForwardMetrics,
    controller: CycleLifecycleController = Depends(get_lifecycle_controller),
) -> CycleResponse:
    """Create the subject's next active cycle seeded with the given metrics."""
    try:
        cycle = await controller.initialize_cycle(subject_id, body)
    except PersistenceError as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc
    return _to_response(cycle)


@router.get("/{subject_id}/cycles", response_model=list[CycleResponse])
async def list_cycles(
    subject_id: UUID,
    controller: CycleLifecycleController = Depends(get_lifecycle_controller),
) -> list[CycleResponse]:
    """All cycles of the subject, oldest first."""
    return [_to_response(c) for c in await controller.list_cycles(subject_id)]


@router.get("/{subject_id}/cycles/current", response_model=CycleResponse)
async def get_current_cycle(
    subject_id: UUID,
    controller: CycleLifecycleController = Depends(get_lifecycle_controller),
) -> CycleResponse:
    cycle = await controller.get_current_cycle(subject_id)
    if cycle is None:
        raise HTTPException(status_code=404, detail=f"No active cycle for subject {subject_id}.")
    return _to_response(cycle)


@router.get("/{subject_id}/cycles/last", response_model=CycleResponse)
async def get_last_cycle(
    subject_id: UUID,
    controller: CycleLifecycleController = Depends(get_lifecycle_controller),
) -> CycleResponse:
    cycle = await controller.get_last_cycle(subject_id)
    if cycle is None:
        raise HTTPException(status_code=404, detail=f"No cycles for subject {subject_id}.")
    return _to_response(cycle)


@router.get("/{subject_id}/cycles/current/status", response_model=CycleStatusResponse)
async def get_current_cycle_status(
    subject_id: UUID,
    controller: CycleLifecycleController = Depends(get_lifecycle_controller),
    clock: Clock = Depends(get_clock),
) -> CycleStatusResponse:
    """Time remaining and expiry band of the active cycle."""
    cycle = await controller.get_current_cycle(subject_id)
    if cycle is None:
        raise HTTPException(status_code=404, detail=f"No active cycle for subject {subject_id}.")

    now = clock()
    return CycleStatusResponse(
        cycle_id=str(cycle.cycle_id),
        period=format_cycle_period(cycle),
        status_text=cycle_status_text(cycle),
        expiry_status=expiry_status(cycle, now).value,
        remaining_time=remaining_time(cycle, now),
        is_nearing_expiry=is_nearing_expiry(cycle, now),
        is_expired=is_expired(cycle, now),
    )


@router.post("/{subject_id}/cycles/current/complete", response_model=CompleteCycleResponse)
async def complete_cycle(
    subject_id: UUID,
    body: CompleteCycleRequest,
    request: Request,
    controller: CycleLifecycleController = Depends(get_lifecycle_controller),
    settings: Settings = Depends(get_settings),
) -> CompleteCycleResponse:
    """Complete the active cycle, archive its snapshot and write the audit record."""
    try:
        snapshot = await controller.complete_cycle(
            subject_id,
            body.external_reference,
            context=_request_context(request, settings.TRUSTED_PROXY_HOPS),
        )
    except NoActiveCycleError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except (CycleConflictError, CycleNotStartedError) as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc
    except AuditInconsistencyError as exc:
        raise HTTPException(status_code=500, detail=exc.message) from exc

    return CompleteCycleResponse(
        cycle_id=str(snapshot.cycle.cycle_id),
        captured_at=snapshot.captured_at.isoformat(),
        is_complete=snapshot.is_complete,
        degraded_sources=list(snapshot.degraded_sources),
        record_counts={c.value: len(snapshot.entries(c)) for c in EvidenceCategory},
    )


@router.post("/{subject_id}/cycles/next", status_code=201, response_model=CycleResponse)
async def start_next_cycle(
    subject_id: UUID,
    controller: CycleLifecycleController = Depends(get_lifecycle_controller),
) -> CycleResponse:
    """Open the next cycle from the last cycle's carry-forward metrics."""
    try:
        cycle = await controller.start_next_cycle(subject_id)
    except NoCarryForwardDataError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc
    return _to_response(cycle)


@router.get("/{subject_id}/cycles/verification", response_model=VerificationResponse)
async def verify_submissions(
    subject_id: UUID,
    controller: CycleLifecycleController = Depends(get_lifecycle_controller),
) -> VerificationResponse:
    """Compare completed cycles with their submission audit records."""
    discrepancies = await controller.verify_submissions(subject_id)
    return VerificationResponse(
        consistent=not discrepancies,
        discrepancies=[
            DiscrepancyResponse(cycle_id=str(d.cycle_id), kind=d.kind.value, detail=d.detail)
            for d in discrepancies
        ],
    )


@router.get("/{subject_id}/cycles/{cycle_id}/archive")
async def get_archived_snapshot(
    subject_id: UUID,
    cycle_id: UUID,
    controller: CycleLifecycleController = Depends(get_lifecycle_controller),
) -> dict:
    """The snapshot archived when the cycle was completed."""
    try:
        snapshot = await controller.get_archived_snapshot(cycle_id, subject_id)
    except ArchiveNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc
    return snapshot.model_dump(mode="json")


@router.get("/{subject_id}/cycles/{cycle_id}/export")
async def export_archive(
    subject_id: UUID,
    cycle_id: UUID,
    fmt: str = Query(default="json", alias="format"),
    controller: CycleLifecycleController = Depends(get_lifecycle_controller),
) -> Response:
    """Download the archived snapshot. Only JSON is supported."""
    try:
        artifact = await controller.export_archive(cycle_id, fmt, subject_id)
    except UnsupportedExportFormatError as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except ArchiveNotFoundError as exc:
        raise HTTPException(status_code=404, detail=exc.message) from exc

    return Response(
        content=artifact.content,
        media_type=artifact.media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{artifact.filename}"',
            "X-Content-Checksum": artifact.checksum,
        },
    )
