from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from carebase.core.auth import AuthContext, auth_context
from carebase.core.config import clamp_limit, clamp_offset
from carebase.modules.templates.schemas import PageOut

from .schemas import AuditEventsListOut
from .service import list_events

router = APIRouter(tags=["audit"])


@router.get("/audit-events", response_model=AuditEventsListOut)
def api_list_audit_events(
    entity_id: str | None = Query(None),
    action: str | None = Query(None),
    limit: int | None = Query(None),
    offset: int | None = Query(None),
    ctx: AuthContext = Depends(auth_context),
) -> AuditEventsListOut:
    lim = clamp_limit(limit)
    off = clamp_offset(offset)
    items, total = list_events(ctx, limit=lim, offset=off, entity_id=entity_id, action=action)
    return AuditEventsListOut(items=items, page=PageOut(offset=off, limit=lim, total=total, has_more=(off + lim) < total))
