from __future__ import annotations

from typing import Optional

from sqlalchemy import DDL, event
from sqlmodel import SQLModel, Field


# content columns are write-once, rows are never deleted (SQLite triggers below + migration 0001)
# qa_* columns are the only mutable part: PENDING -> APPROVED|REJECTED
class VisitNote(SQLModel, table=True):
    __tablename__ = "visit_notes"

    id: str = Field(primary_key=True)
    organization_id: str = Field(index=True)
    template_id: str = Field(index=True)
    template_version: int
    schema_snapshot_json: str
    snapshot_digest: str  # sha256 of schema_snapshot_json
    data_json: str

    client_id: str = Field(index=True)
    carer_id: str = Field(index=True)
    shift_id: str = Field(index=True)
    submitted_by_id: str
    submitted_at: str

    qa_status: str = Field(default="PENDING", index=True)  # PENDING|APPROVED|REJECTED
    qa_comment: Optional[str] = Field(default=None)
    qa_reviewed_by: Optional[str] = Field(default=None)
    qa_reviewed_at: Optional[str] = Field(default=None)


_WRITE_ONCE_TRIGGER = DDL(
    """
    CREATE TRIGGER IF NOT EXISTS trg_visit_notes_content_write_once
    BEFORE UPDATE OF id, organization_id, template_id, template_version, schema_snapshot_json,
                     snapshot_digest, data_json, client_id, carer_id, shift_id, submitted_by_id, submitted_at
    ON visit_notes
    BEGIN
      SELECT RAISE(ABORT, 'write-once: visit note content cannot be updated');
    END;
    """
)

_NO_DELETE_TRIGGER = DDL(
    """
    CREATE TRIGGER IF NOT EXISTS trg_visit_notes_no_delete
    BEFORE DELETE ON visit_notes
    BEGIN
      SELECT RAISE(ABORT, 'append-only: visit_notes cannot be deleted');
    END;
    """
)

event.listen(VisitNote.__table__, "after_create", _WRITE_ONCE_TRIGGER.execute_if(dialect="sqlite"))
event.listen(VisitNote.__table__, "after_create", _NO_DELETE_TRIGGER.execute_if(dialect="sqlite"))
