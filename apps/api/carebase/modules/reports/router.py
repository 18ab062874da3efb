from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from carebase.core.auth import AuthContext, auth_context

from .schemas import FieldReportOut
from .service import field_report

router = APIRouter(tags=["reports"])


@router.get("/reports/visit-note-fields", response_model=FieldReportOut)
def api_field_report(
    template_id: str = Query(..., min_length=1),
    field_id: str | None = Query(None),
    start_date: str | None = Query(None, description="YYYY-MM-DD or ISO timestamp"),
    end_date: str | None = Query(None, description="YYYY-MM-DD (inclusive) or ISO timestamp"),
    client_id: str | None = Query(None),
    carer_id: str | None = Query(None),
    ctx: AuthContext = Depends(auth_context),
) -> FieldReportOut:
    return FieldReportOut(
        **field_report(
            ctx,
            template_id=template_id,
            field_id=field_id,
            start_date=start_date,
            end_date=end_date,
            client_id=client_id,
            carer_id=carer_id,
        )
    )
