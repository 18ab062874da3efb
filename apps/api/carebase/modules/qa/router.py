from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from carebase.core.auth import AuthContext, auth_context
from carebase.core.config import clamp_limit, clamp_offset
from carebase.modules.templates.schemas import PageOut
from carebase.modules.visit_notes.schemas import VisitNoteOut, VisitNotesListOut

from .schemas import QaStatsOut, ReviewIn
from .service import qa_queue, qa_stats, review

router = APIRouter(tags=["qa"])


@router.get("/qa/visit-notes", response_model=VisitNotesListOut)
def api_qa_queue(
    status: str | None = Query(None, description="PENDING|APPROVED|REJECTED (default PENDING)"),
    limit: int | None = Query(None),
    offset: int | None = Query(None),
    ctx: AuthContext = Depends(auth_context),
) -> VisitNotesListOut:
    lim = clamp_limit(limit)
    off = clamp_offset(offset)
    items, total = qa_queue(ctx, limit=lim, offset=off, status=status)
    return VisitNotesListOut(items=items, page=PageOut(offset=off, limit=lim, total=total, has_more=(off + lim) < total))


@router.get("/qa/stats", response_model=QaStatsOut)
def api_qa_stats(ctx: AuthContext = Depends(auth_context)) -> QaStatsOut:
    return QaStatsOut(**qa_stats(ctx))


@router.post("/qa/visit-notes/{note_id}/review", response_model=VisitNoteOut)
def api_review(body: ReviewIn, note_id: str = Path(...), ctx: AuthContext = Depends(auth_context)) -> VisitNoteOut:
    return review(ctx, note_id, decision=body.decision, comment=body.comment)
