"""visit note engine v0 (FormTemplate/VisitNote/AuditEvent) + write-once/append-only triggers

Revision ID: 0001_visit_note_engine
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_visit_note_engine"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ---- tables ----
    op.create_table(
        "form_templates",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("organization_id", sa.Text(), nullable=False),
        sa.Column("lineage_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("is_enabled", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sections_json", sa.Text(), nullable=False),
        sa.Column("locked_types_json", sa.Text(), nullable=False),
        sa.Column("supersedes_id", sa.Text(), nullable=True),
        sa.Column("row_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.Text(), nullable=False),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.Text(), nullable=False),
        sa.Column("published_at", sa.Text(), nullable=True),
    )
    op.create_index("ix_form_templates_organization_id", "form_templates", ["organization_id"], unique=False)
    op.create_index("ix_form_templates_lineage_id", "form_templates", ["lineage_id"], unique=False)

    op.create_table(
        "visit_notes",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("organization_id", sa.Text(), nullable=False),
        sa.Column("template_id", sa.Text(), nullable=False),
        sa.Column("template_version", sa.Integer(), nullable=False),
        sa.Column("schema_snapshot_json", sa.Text(), nullable=False),
        sa.Column("snapshot_digest", sa.Text(), nullable=False),
        sa.Column("data_json", sa.Text(), nullable=False),
        sa.Column("client_id", sa.Text(), nullable=False),
        sa.Column("carer_id", sa.Text(), nullable=False),
        sa.Column("shift_id", sa.Text(), nullable=False),
        sa.Column("submitted_by_id", sa.Text(), nullable=False),
        sa.Column("submitted_at", sa.Text(), nullable=False),
        sa.Column("qa_status", sa.Text(), nullable=False, server_default="PENDING"),
        sa.Column("qa_comment", sa.Text(), nullable=True),
        sa.Column("qa_reviewed_by", sa.Text(), nullable=True),
        sa.Column("qa_reviewed_at", sa.Text(), nullable=True),
    )
    op.create_index("ix_visit_notes_organization_id", "visit_notes", ["organization_id"], unique=False)
    op.create_index("ix_visit_notes_template_id", "visit_notes", ["template_id"], unique=False)
    op.create_index("ix_visit_notes_client_id", "visit_notes", ["client_id"], unique=False)
    op.create_index("ix_visit_notes_carer_id", "visit_notes", ["carer_id"], unique=False)
    op.create_index("ix_visit_notes_shift_id", "visit_notes", ["shift_id"], unique=False)
    op.create_index("ix_visit_notes_qa_status", "visit_notes", ["qa_status"], unique=False)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("organization_id", sa.Text(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.Text(), nullable=False),
        sa.Column("actor_id", sa.Text(), nullable=False),
        sa.Column("actor_role", sa.Text(), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.Text(), nullable=False),
    )
    op.create_index("ix_audit_events_organization_id", "audit_events", ["organization_id"], unique=False)
    op.create_index("ix_audit_events_entity_id", "audit_events", ["entity_id"], unique=False)

    # ---- triggers (sqlite) ----
    op.execute("""
    CREATE TRIGGER IF NOT EXISTS trg_visit_notes_content_write_once
    BEFORE UPDATE OF id, organization_id, template_id, template_version, schema_snapshot_json,
                     snapshot_digest, data_json, client_id, carer_id, shift_id, submitted_by_id, submitted_at
    ON visit_notes
    BEGIN
      SELECT RAISE(ABORT, 'write-once: visit note content cannot be updated');
    END;
    """)
    op.execute("""
    CREATE TRIGGER IF NOT EXISTS trg_visit_notes_no_delete
    BEFORE DELETE ON visit_notes
    BEGIN
      SELECT RAISE(ABORT, 'append-only: visit_notes cannot be deleted');
    END;
    """)

    op.execute("""
    CREATE TRIGGER IF NOT EXISTS trg_audit_events_no_update
    BEFORE UPDATE ON audit_events
    BEGIN
      SELECT RAISE(ABORT, 'append-only: audit_events cannot be updated');
    END;
    """)
    op.execute("""
    CREATE TRIGGER IF NOT EXISTS trg_audit_events_no_delete
    BEFORE DELETE ON audit_events
    BEGIN
      SELECT RAISE(ABORT, 'append-only: audit_events cannot be deleted');
    END;
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_audit_events_no_delete;")
    op.execute("DROP TRIGGER IF EXISTS trg_audit_events_no_update;")
    op.execute("DROP TRIGGER IF EXISTS trg_visit_notes_no_delete;")
    op.execute("DROP TRIGGER IF EXISTS trg_visit_notes_content_write_once;")

    op.drop_table("audit_events")
    op.drop_table("visit_notes")
    op.drop_table("form_templates")
