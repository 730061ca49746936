"""Initial schema: revalidation cycles and submission audit trail.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # -- Cycles (OPERATIONAL: one completion patch while active) --
    op.create_table(
        "revalidation_cycles",
        sa.Column("cycle_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("subject_id", UUID(as_uuid=True), nullable=False),
        sa.Column("cycle_number", sa.Integer, nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("submission_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submission_reference", sa.String(255), nullable=True),
        sa.Column("carry_forward_metrics", JSONB, nullable=True),
        sa.Column("archived_snapshot", JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("subject_id", "cycle_number", name="uq_cycles_subject_number"),
        sa.CheckConstraint("end_date > start_date", name="ck_cycles_end_after_start"),
    )
    op.create_index("ix_revalidation_cycles_subject_id", "revalidation_cycles", ["subject_id"])
    # One active cycle per subject, enforced by the store.
    op.create_index(
        "uq_cycles_one_active_per_subject",
        "revalidation_cycles",
        ["subject_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    # -- Submission audit (IMMUTABLE, append-only) --
    op.create_table(
        "revalidation_submissions",
        sa.Column("audit_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("cycle_id", UUID(as_uuid=True),
                  sa.ForeignKey("revalidation_cycles.cycle_id"), nullable=False),
        sa.Column("subject_id", UUID(as_uuid=True), nullable=False),
        sa.Column("submission_data", JSONB, nullable=False),
        sa.Column("snapshot_checksum", sa.String(100), nullable=False),
        sa.Column("external_reference", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="SUBMITTED"),
        sa.Column("ip_address", sa.String(100), nullable=False),
        sa.Column("user_agent", sa.Text, nullable=False),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_revalidation_submissions_cycle_id", "revalidation_submissions", ["cycle_id"])
    op.create_index("ix_revalidation_submissions_subject_id", "revalidation_submissions", ["subject_id"])


def downgrade() -> None:
    op.drop_index("ix_revalidation_submissions_subject_id", table_name="revalidation_submissions")
    op.drop_index("ix_revalidation_submissions_cycle_id", table_name="revalidation_submissions")
    op.drop_table("revalidation_submissions")
    op.drop_index("uq_cycles_one_active_per_subject", table_name="revalidation_cycles")
    op.drop_index("ix_revalidation_cycles_subject_id", table_name="revalidation_cycles")
    op.drop_table("revalidation_cycles")
