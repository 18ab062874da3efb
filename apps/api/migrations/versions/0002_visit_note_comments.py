"""visit note comments (append-only revisions, @mentions)

Revision ID: 0002_visit_note_comments
Revises: 0001_visit_note_engine
Create Date: 2026-10-18
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0002_visit_note_comments"
down_revision = "0001_visit_note_engine"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "visit_note_comments",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("organization_id", sa.Text(), nullable=False),
        sa.Column("visit_note_id", sa.Text(), nullable=False),
        sa.Column("comment_id", sa.Text(), nullable=False),
        sa.Column("revision", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.Text(), nullable=False),
        sa.Column("author_role", sa.Text(), nullable=False),
        sa.Column("written_by", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("mentions_json", sa.Text(), nullable=False),
        sa.Column("deleted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.Text(), nullable=False),
        sa.UniqueConstraint("comment_id", "revision", name="uq_visit_note_comments_revision"),
    )
    op.create_index("ix_visit_note_comments_organization_id", "visit_note_comments", ["organization_id"], unique=False)
    op.create_index("ix_visit_note_comments_visit_note_id", "visit_note_comments", ["visit_note_id"], unique=False)
    op.create_index("ix_visit_note_comments_comment_id", "visit_note_comments", ["comment_id"], unique=False)

    op.execute("""
    CREATE TRIGGER IF NOT EXISTS trg_visit_note_comments_no_update
    BEFORE UPDATE ON visit_note_comments
    BEGIN
      SELECT RAISE(ABORT, 'append-only: visit_note_comments cannot be updated');
    END;
    """)
    op.execute("""
    CREATE TRIGGER IF NOT EXISTS trg_visit_note_comments_no_delete
    BEFORE DELETE ON visit_note_comments
    BEGIN
      SELECT RAISE(ABORT, 'append-only: visit_note_comments cannot be deleted');
    END;
    """)


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_visit_note_comments_no_delete;")
    op.execute("DROP TRIGGER IF EXISTS trg_visit_note_comments_no_update;")
    op.drop_table("visit_note_comments")
