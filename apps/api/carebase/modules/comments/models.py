from __future__ import annotations

from sqlalchemy import DDL, UniqueConstraint, event
from sqlmodel import SQLModel, Field


# append-only: an edit or a delete is a new revision of the same comment_id
class VisitNoteComment(SQLModel, table=True):
    __tablename__ = "visit_note_comments"
    __table_args__ = (UniqueConstraint("comment_id", "revision", name="uq_visit_note_comments_revision"),)

    id: str = Field(primary_key=True)
    organization_id: str = Field(index=True)
    visit_note_id: str = Field(index=True)
    comment_id: str = Field(index=True)  # id of revision 1
    revision: int
    author_id: str
    author_role: str
    written_by: str
    content: str
    mentions_json: str
    deleted: int = Field(default=0)
    created_at: str


_NO_UPDATE_TRIGGER = DDL(
    """
    CREATE TRIGGER IF NOT EXISTS trg_visit_note_comments_no_update
    BEFORE UPDATE ON visit_note_comments
    BEGIN
      SELECT RAISE(ABORT, 'append-only: visit_note_comments cannot be updated');
    END;
    """
)

_NO_DELETE_TRIGGER = DDL(
    """
    CREATE TRIGGER IF NOT EXISTS trg_visit_note_comments_no_delete
    BEFORE DELETE ON visit_note_comments
    BEGIN
      SELECT RAISE(ABORT, 'append-only: visit_note_comments cannot be deleted');
    END;
    """
)

event.listen(VisitNoteComment.__table__, "after_create", _NO_UPDATE_TRIGGER.execute_if(dialect="sqlite"))
event.listen(VisitNoteComment.__table__, "after_create", _NO_DELETE_TRIGGER.execute_if(dialect="sqlite"))
