"""FastAPI dependency injection factories for repositories and services.

Each repository factory takes AsyncSession via Depends(get_async_session).
The lifecycle controller is assembled per request from those repositories,
the evidence source and the clock; tests override the latter two.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import Settings, get_settings
from src.cycles.audit import SubmissionAuditRecorder
from src.cycles.evidence import EvidenceSource, HttpEvidenceSource
from src.cycles.lifecycle import CycleLifecycleController
from src.cycles.snapshot import SnapshotBuilder
from src.db.session import get_async_session
from src.models.common import Clock, utc_now
from src.repositories.cycles import CycleRepository, SubmissionAuditRepository

# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


async def get_cycle_repo(
    session: AsyncSession = Depends(get_async_session),
) -> CycleRepository:
    return CycleRepository(session)


async def get_submission_audit_repo(
    session: AsyncSession = Depends(get_async_session),
) -> SubmissionAuditRepository:
    return SubmissionAuditRepository(session)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


def get_clock() -> Clock:
    return utc_now


def get_evidence_source(
    settings: Settings = Depends(get_settings),
) -> EvidenceSource:
    return HttpEvidenceSource(
        base_url=settings.EVIDENCE_API_URL,
        timeout=settings.EVIDENCE_API_TIMEOUT_S,
    )


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def get_lifecycle_controller(
    cycle_repo: CycleRepository = Depends(get_cycle_repo),
    audit_repo: SubmissionAuditRepository = Depends(get_submission_audit_repo),
    source: EvidenceSource = Depends(get_evidence_source),
    clock: Clock = Depends(get_clock),
) -> CycleLifecycleController:
    return CycleLifecycleController(
        store=cycle_repo,
        recorder=SubmissionAuditRecorder(audit_repo, clock=clock),
        snapshot_builder=SnapshotBuilder(source, clock=clock),
        clock=clock,
    )
