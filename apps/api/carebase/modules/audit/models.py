from __future__ import annotations

from sqlalchemy import DDL, event
from sqlmodel import SQLModel, Field


# append-only (enforced by SQLite triggers in migration)
class AuditEvent(SQLModel, table=True):
    __tablename__ = "audit_events"

    id: str = Field(primary_key=True)
    organization_id: str = Field(index=True)
    action: str
    entity_type: str
    entity_id: str = Field(index=True)
    actor_id: str
    actor_role: str
    details_json: str
    created_at: str


_NO_UPDATE_TRIGGER = DDL(
    """
    CREATE TRIGGER IF NOT EXISTS trg_audit_events_no_update
    BEFORE UPDATE ON audit_events
    BEGIN
      SELECT RAISE(ABORT, 'append-only: audit_events cannot be updated');
    END;
    """
)

_NO_DELETE_TRIGGER = DDL(
    """
    CREATE TRIGGER IF NOT EXISTS trg_audit_events_no_delete
    BEFORE DELETE ON audit_events
    BEGIN
      SELECT RAISE(ABORT, 'append-only: audit_events cannot be deleted');
    END;
    """
)

event.listen(AuditEvent.__table__, "after_create", _NO_UPDATE_TRIGGER.execute_if(dialect="sqlite"))
event.listen(AuditEvent.__table__, "after_create", _NO_DELETE_TRIGGER.execute_if(dialect="sqlite"))
