from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from carebase.core.auth import AuthContext, auth_context
from carebase.core.config import clamp_limit, clamp_offset
from carebase.modules.templates.schemas import PageOut

from .schemas import VisitNoteCreateIn, VisitNoteOut, VisitNoteRenderOut, VisitNotesListOut
from .service import get_submission, list_submissions, render_submission, submit

router = APIRouter(tags=["visit_notes"])


@router.post("/visit-notes", response_model=VisitNoteOut, status_code=201)
def api_submit_visit_note(body: VisitNoteCreateIn, ctx: AuthContext = Depends(auth_context)) -> VisitNoteOut:
    return submit(
        ctx,
        template_id=body.template_id,
        client_id=body.client_id,
        shift_id=body.shift_id,
        carer_id=body.carer_id,
        data=body.data,
    )


@router.get("/visit-notes", response_model=VisitNotesListOut)
def api_list_visit_notes(
    limit: int | None = Query(None),
    offset: int | None = Query(None),
    template_id: str | None = Query(None),
    client_id: str | None = Query(None),
    carer_id: str | None = Query(None),
    shift_id: str | None = Query(None),
    qa_status: str | None = Query(None, description="PENDING|APPROVED|REJECTED"),
    start_date: str | None = Query(None),
    end_date: str | None = Query(None),
    ctx: AuthContext = Depends(auth_context),
) -> VisitNotesListOut:
    lim = clamp_limit(limit)
    off = clamp_offset(offset)
    items, total = list_submissions(
        ctx,
        limit=lim,
        offset=off,
        template_id=template_id,
        client_id=client_id,
        carer_id=carer_id,
        shift_id=shift_id,
        qa_status=qa_status,
        start_date=start_date,
        end_date=end_date,
    )
    return VisitNotesListOut(items=items, page=PageOut(offset=off, limit=lim, total=total, has_more=(off + lim) < total))


@router.get("/visit-notes/{note_id}", response_model=VisitNoteOut)
def api_get_visit_note(note_id: str = Path(...), ctx: AuthContext = Depends(auth_context)) -> VisitNoteOut:
    return get_submission(ctx, note_id)


@router.get("/visit-notes/{note_id}/render", response_model=VisitNoteRenderOut)
def api_render_visit_note(note_id: str = Path(...), ctx: AuthContext = Depends(auth_context)) -> VisitNoteRenderOut:
    return VisitNoteRenderOut(**render_submission(ctx, note_id))
