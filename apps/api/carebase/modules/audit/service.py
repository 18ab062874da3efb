from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Tuple

from carebase.core.auth import AuthContext, Permission
from carebase.core.db import transaction
from carebase.core.ids import new_ulid, now_iso
from carebase.core.logs import emit
from carebase.core.store import count_rows, insert_row, select_rows, table

from . import models as _models  # noqa: F401

TABLE = "audit_events"

# actions
VISIT_NOTE_CREATED = "VISIT_NOTE_CREATED"
VISIT_NOTE_CREATED_ON_BEHALF = "VISIT_NOTE_CREATED_ON_BEHALF"
FORM_TEMPLATE_CREATED = "FORM_TEMPLATE_CREATED"
FORM_TEMPLATE_CREATED_FROM_STARTER = "FORM_TEMPLATE_CREATED_FROM_STARTER"
FORM_TEMPLATE_UPDATED = "FORM_TEMPLATE_UPDATED"
FORM_TEMPLATE_PUBLISHED = "FORM_TEMPLATE_PUBLISHED"
FORM_TEMPLATE_REOPENED = "FORM_TEMPLATE_REOPENED"
FORM_TEMPLATE_ARCHIVED = "FORM_TEMPLATE_ARCHIVED"
SUBMISSION_QA_PREFIX = "SUBMISSION_QA_"
VISIT_NOTE_COMMENT_ADDED = "VISIT_NOTE_COMMENT_ADDED"
VISIT_NOTE_COMMENT_EDITED = "VISIT_NOTE_COMMENT_EDITED"
VISIT_NOTE_COMMENT_DELETED = "VISIT_NOTE_COMMENT_DELETED"

ENTITY_TEMPLATE = "FormTemplate"
ENTITY_VISIT_NOTE = "VisitNote"
ENTITY_COMMENT = "VisitNoteComment"


def record_event(
    ctx: AuthContext,
    action: str,
    entity_type: str,
    entity_id: str,
    details: Optional[Mapping[str, Any]] = None,
) -> Optional[str]:
    """
    Append one audit event in its own transaction.

    Call after the primary write has committed. A failure here is logged
    and swallowed: the audited operation has already happened.
    """
    event_id = new_ulid()
    try:
        with transaction() as conn:
            insert_row(
                conn,
                TABLE,
                {
                    "id": event_id,
                    "organization_id": ctx.organization_id,
                    "action": action,
                    "entity_type": entity_type,
                    "entity_id": entity_id,
                    "actor_id": ctx.actor_id,
                    "actor_role": ctx.role.value,
                    "details_json": json.dumps(dict(details or {}), ensure_ascii=False, default=str),
                    "created_at": now_iso(),
                },
            )
        return event_id
    except Exception as e:
        emit(
            "warning",
            "audit.write_failed",
            "audit event could not be written",
            module="audit",
            action=action,
            entity_id=entity_id,
            error_type=type(e).__name__,
        )
        return None


def _row_to_event(row: Dict[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    try:
        d["details"] = json.loads(d.pop("details_json") or "{}")
    except (TypeError, ValueError):
        d["details"] = {}
    return d


def list_events(
    ctx: AuthContext,
    limit: int,
    offset: int,
    entity_id: Optional[str] = None,
    action: Optional[str] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    ctx.require(Permission.AUDIT_VIEW)
    tbl = table(TABLE)
    criteria = [tbl.c.organization_id == ctx.organization_id]
    if entity_id:
        criteria.append(tbl.c.entity_id == entity_id)
    if action:
        criteria.append(tbl.c.action == action)

    with transaction() as conn:
        total = count_rows(conn, TABLE, *criteria)
        rows = select_rows(conn, TABLE, *criteria, order_by=("-created_at", "-id"), limit=limit, offset=offset)
    return [_row_to_event(r) for r in rows], total
