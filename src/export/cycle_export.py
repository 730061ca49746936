"""Archived cycle export: downloadable copy of a completed cycle's snapshot.

JSON is the only implemented format. The payload is the indented snapshot
and deserializes back into an equal ``Snapshot``. PDF is declared so
callers can ask for it, and fails loudly with
``UnsupportedExportFormatError``.
"""

import hashlib
from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID

from src.cycles.errors import UnsupportedExportFormatError
from src.models.cycle import Snapshot


class ExportFormat(StrEnum):
    """Requested export format."""

    JSON = "json"
    PDF = "pdf"


@dataclass(frozen=True)
class ExportArtifact:
    """Generated export bytes plus download metadata."""

    filename: str
    media_type: str
    content: bytes
    checksum: str


class CycleArchiveExporter:
    """Render an archived snapshot as a downloadable artifact."""

    @staticmethod
    def check_format(fmt: ExportFormat | str) -> ExportFormat:
        """Return ``fmt`` as an ExportFormat if it can be produced.

        Raises:
            UnsupportedExportFormatError: for any format other than JSON.
        """
        try:
            resolved = ExportFormat(fmt)
        except ValueError as exc:
            raise UnsupportedExportFormatError(str(fmt)) from exc

        if resolved != ExportFormat.JSON:
            raise UnsupportedExportFormatError(resolved.value)
        return resolved

    def export(self, cycle_id: UUID, snapshot: Snapshot, fmt: ExportFormat | str) -> ExportArtifact:
        """Export ``snapshot`` in ``fmt``."""
        self.check_format(fmt)

        content = snapshot.model_dump_json(indent=2).encode("utf-8")
        return ExportArtifact(
            filename=f"revalidation-cycle-{cycle_id}-audit-data.json",
            media_type="application/json",
            content=content,
            checksum=f"sha256:{hashlib.sha256(content).hexdigest()}",
        )
