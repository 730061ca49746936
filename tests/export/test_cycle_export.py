"""Tests for CycleArchiveExporter: JSON download of an archived snapshot."""

import hashlib
import json
from datetime import date, datetime, timezone

import pytest
from uuid_extensions import uuid7

from src.cycles.errors import UnsupportedExportFormatError
from src.export.cycle_export import CycleArchiveExporter, ExportFormat
from src.models.cycle import CarryForwardMetrics, CycleRecord, Snapshot


def _make_snapshot() -> Snapshot:
    cycle = CycleRecord(
        cycle_id=uuid7(),
        subject_id=uuid7(),
        cycle_number=2,
        start_date=date(2024, 3, 31),
        end_date=date(2027, 3, 31),
        carry_forward_metrics=CarryForwardMetrics(
            job_title="Health Visitor",
            weekly_hours=37.5,
            registration="Specialist Community Public Health Nurse",
            registration_number="09I8765S",
            expiry_date=date(2024, 3, 31),
        ),
    )
    return Snapshot(
        cycle=cycle,
        practice_hours=({"hours": 1200, "from": "2024-04-01", "to": "2027-03-01"},),
        cpd_records=(
            {"title": "Perinatal mental health", "hours": 7, "participatory": True},
            {"title": "Infant feeding", "hours": 3, "participatory": False},
        ),
        subject_profile={"name": "A. Practitioner", "pin": "09I8765S"},
        captured_at=datetime(2027, 3, 1, 12, 30, tzinfo=timezone.utc),
    )


class TestCheckFormat:
    def test_json_accepted(self) -> None:
        assert CycleArchiveExporter.check_format("json") == ExportFormat.JSON

    def test_pdf_declared_but_unsupported(self) -> None:
        with pytest.raises(UnsupportedExportFormatError, match="pdf"):
            CycleArchiveExporter.check_format(ExportFormat.PDF)

    def test_unknown_format(self) -> None:
        with pytest.raises(UnsupportedExportFormatError, match="docx"):
            CycleArchiveExporter.check_format("docx")


class TestJsonExport:
    def test_payload_deserializes_to_equal_snapshot(self) -> None:
        snapshot = _make_snapshot()
        artifact = CycleArchiveExporter().export(snapshot.cycle.cycle_id, snapshot, "json")
        assert Snapshot.model_validate_json(artifact.content) == snapshot

    def test_payload_is_indented_json(self) -> None:
        snapshot = _make_snapshot()
        artifact = CycleArchiveExporter().export(snapshot.cycle.cycle_id, snapshot, "json")
        text = artifact.content.decode("utf-8")
        assert text.startswith("{\n  ")
        assert json.loads(text)["cpd_records"][1]["title"] == "Infant feeding"

    def test_metadata(self) -> None:
        snapshot = _make_snapshot()
        cycle_id = snapshot.cycle.cycle_id
        artifact = CycleArchiveExporter().export(cycle_id, snapshot, ExportFormat.JSON)

        assert artifact.filename == f"revalidation-cycle-{cycle_id}-audit-data.json"
        assert artifact.media_type == "application/json"
        assert artifact.checksum == f"sha256:{hashlib.sha256(artifact.content).hexdigest()}"

    def test_deterministic(self) -> None:
        snapshot = _make_snapshot()
        exporter = CycleArchiveExporter()
        a = exporter.export(snapshot.cycle.cycle_id, snapshot, "json")
        b = exporter.export(snapshot.cycle.cycle_id, snapshot, "json")
        assert a.content == b.content

    def test_pdf_export_raises(self) -> None:
        snapshot = _make_snapshot()
        with pytest.raises(UnsupportedExportFormatError):
            CycleArchiveExporter().export(snapshot.cycle.cycle_id, snapshot, "pdf")
