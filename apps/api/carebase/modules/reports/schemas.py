from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class ReportFieldOut(BaseModel):
    id: str
    label: str
    type: str
    section_title: str


class FieldAggregationOut(BaseModel):
    field: ReportFieldOut
    aggregation: Dict[str, Any]


class FieldReportOut(BaseModel):
    template_id: str
    template_name: Optional[str] = None
    total_responses: int
    fields: List[FieldAggregationOut]
    available_fields: List[ReportFieldOut]
