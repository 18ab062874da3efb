"""
QA review of visit notes.

PENDING -> APPROVED | REJECTED, both terminal. The transition is a
conditional update on qa_status = 'PENDING': of two concurrent reviews
exactly one lands, the other gets AlreadyReviewed. Only qa_* columns are
written; the note's content stays as submitted.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from carebase.core.auth import AuthContext, Permission
from carebase.core.db import transaction
from carebase.core.errors import AlreadyReviewed, NotFound, ValidationFailed
from carebase.core.ids import now_iso, today_prefix
from carebase.core.store import compare_and_swap, count_rows, get_row, select_rows, table
from carebase.modules.audit import service as audit
from carebase.modules.visit_notes import service as visit_notes

DECISIONS = (visit_notes.QA_APPROVED, visit_notes.QA_REJECTED)


def review(
    ctx: AuthContext,
    note_id: str,
    decision: str,
    comment: Optional[str] = None,
) -> Dict[str, Any]:
    ctx.require(Permission.VISIT_NOTE_QA)
    decision = (decision or "").upper()
    if decision not in DECISIONS:
        raise ValidationFailed({"decision": "Must be APPROVED or REJECTED"})

    with transaction() as conn:
        row = get_row(conn, visit_notes.TABLE, note_id)
        if row is None or row["organization_id"] != ctx.organization_id:
            raise NotFound("visit note")

        prior = row["qa_status"]
        if prior != visit_notes.QA_PENDING:
            raise AlreadyReviewed(details={"qa_status": prior})

        ok = compare_and_swap(
            conn,
            visit_notes.TABLE,
            note_id,
            {"qa_status": visit_notes.QA_PENDING},
            {
                "qa_status": decision,
                "qa_comment": comment,
                "qa_reviewed_by": ctx.actor_id,
                "qa_reviewed_at": now_iso(),
            },
        )
        if not ok:
            raise AlreadyReviewed()
        out = visit_notes.row_to_note(get_row(conn, visit_notes.TABLE, note_id))

    audit.record_event(
        ctx,
        audit.SUBMISSION_QA_PREFIX + decision,
        audit.ENTITY_VISIT_NOTE,
        note_id,
        {"prior_status": prior, "comment": comment},
    )
    return out


def qa_queue(
    ctx: AuthContext,
    limit: int,
    offset: int,
    status: Optional[str] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    """Notes awaiting (or past) review, oldest first."""
    ctx.require(Permission.VISIT_NOTE_QA)
    tbl = table(visit_notes.TABLE)
    criteria = [
        tbl.c.organization_id == ctx.organization_id,
        tbl.c.qa_status == (status or visit_notes.QA_PENDING).upper(),
    ]
    with transaction() as conn:
        total = count_rows(conn, visit_notes.TABLE, *criteria)
        rows = select_rows(conn, visit_notes.TABLE, *criteria, order_by=("submitted_at", "id"), limit=limit, offset=offset)
    return [visit_notes.row_to_note(r) for r in rows], total


def qa_stats(ctx: AuthContext) -> Dict[str, int]:
    ctx.require(Permission.VISIT_NOTE_QA)
    tbl = table(visit_notes.TABLE)
    in_org = tbl.c.organization_id == ctx.organization_id
    since = today_prefix() + "T00:00:00Z"
    with transaction() as conn:
        pending = count_rows(conn, visit_notes.TABLE, in_org, tbl.c.qa_status == visit_notes.QA_PENDING)
        approved = count_rows(
            conn, visit_notes.TABLE, in_org, tbl.c.qa_status == visit_notes.QA_APPROVED, tbl.c.qa_reviewed_at >= since
        )
        rejected = count_rows(
            conn, visit_notes.TABLE, in_org, tbl.c.qa_status == visit_notes.QA_REJECTED, tbl.c.qa_reviewed_at >= since
        )
    return {"pending": pending, "approved_today": approved, "rejected_today": rejected}
