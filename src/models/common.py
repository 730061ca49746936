"""Shared types and base models used across RevalOS domain models."""

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field
from uuid_extensions import uuid7


def utc_now() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(tz=timezone.utc)


def new_uuid7() -> UUID:
    """Generate a new time-sortable UUID v7."""
    return uuid7()


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# Injected time source. Every lifecycle operation reads "now" through one.
Clock = Callable[[], datetime]


# --- Reusable annotated types ---

UUIDv7 = Annotated[UUID, Field(description="Time-sortable UUID v7.")]
UTCTimestamp = Annotated[
    datetime, Field(description="UTC timezone-aware timestamp.")
]
Checksum = Annotated[
    str,
    Field(
        pattern=r"^sha256:[a-f0-9]{64}$",
        description="SHA-256 hash prefixed with the algorithm name.",
    ),
]


# --- Base model ---


class RevalOSBase(BaseModel):
    """Base model with common configuration for all RevalOS Pydantic models."""

    model_config = {
        "populate_by_name": True,
        "ser_json_timedelta": "iso8601",
        "protected_namespaces": (),
    }
