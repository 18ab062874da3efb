from __future__ import annotations

from typing import Any, Dict, List
from pydantic import BaseModel, Field

from carebase.modules.templates.schemas import PageOut


class AuditEventOut(BaseModel):
    id: str
    organization_id: str
    action: str
    entity_type: str
    entity_id: str
    actor_id: str
    actor_role: str
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: str


class AuditEventsListOut(BaseModel):
    items: List[AuditEventOut]
    page: PageOut
