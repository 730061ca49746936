"""Error types raised by the cycle lifecycle.

Precondition errors are caller errors and are never retried. Persistence
errors are surfaced verbatim: retrying a completion could double-submit.
"""

from uuid import UUID


class CycleError(Exception):
    """Base exception for all cycle lifecycle errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# State-machine preconditions
# ---------------------------------------------------------------------------


class NoActiveCycleError(CycleError):
    """Completion attempted for a subject with no active cycle."""

    def __init__(self, subject_id: UUID) -> None:
        super().__init__(f"No active revalidation cycle found for subject {subject_id}.")
        self.subject_id = subject_id


class NoCarryForwardDataError(CycleError):
    """Next-cycle start attempted without prior carry-forward metrics."""

    def __init__(self, subject_id: UUID) -> None:
        super().__init__(
            f"Cannot start new cycle for subject {subject_id}: "
            "no prior cycle with carry-forward data."
        )
        self.subject_id = subject_id


class CycleNotStartedError(CycleError):
    """Completion attempted before the active cycle's start date."""

    def __init__(self, cycle_id: UUID, start_date: object) -> None:
        super().__init__(
            f"Cycle {cycle_id} starts on {start_date} and cannot be submitted yet."
        )
        self.cycle_id = cycle_id


class ArchiveNotFoundError(CycleError):
    """No archived snapshot exists for the cycle (missing or not completed)."""

    def __init__(self, cycle_id: UUID) -> None:
        super().__init__(f"No archived data found for cycle {cycle_id}.")
        self.cycle_id = cycle_id


class UnsupportedExportFormatError(CycleError):
    """Export requested in a format that is not implemented."""

    def __init__(self, fmt: str) -> None:
        super().__init__(f"Export format '{fmt}' is not supported; use 'json'.")
        self.format = fmt


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class PersistenceError(CycleError):
    """The store rejected a write (uniqueness or concurrency violation)."""


class CycleConflictError(PersistenceError):
    """Conditional patch lost: the cycle is no longer active."""

    def __init__(self, cycle_id: UUID) -> None:
        super().__init__(f"Cycle {cycle_id} is not active; patch rejected.")
        self.cycle_id = cycle_id


class AuditInconsistencyError(PersistenceError):
    """Cycle was completed but its submission audit record was not written."""

    def __init__(self, cycle_id: UUID) -> None:
        super().__init__(
            f"Cycle {cycle_id} was completed but its audit record could not be written."
        )
        self.cycle_id = cycle_id


# ---------------------------------------------------------------------------
# Warnings
# ---------------------------------------------------------------------------


class PartialSnapshotWarning(UserWarning):
    """One or more evidence reads degraded to empty during snapshot capture."""
