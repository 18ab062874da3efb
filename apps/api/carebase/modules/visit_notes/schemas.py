from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

from carebase.modules.templates.schemas import PageOut

QaStatus = Literal["PENDING", "APPROVED", "REJECTED"]


class VisitNoteCreateIn(BaseModel):
    template_id: str = Field(min_length=1)
    client_id: str = Field(min_length=1)
    shift_id: str = Field(min_length=1)
    carer_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class VisitNoteOut(BaseModel):
    id: str
    organization_id: str
    template_id: str
    template_version: int
    schema_snapshot: Dict[str, Any]
    snapshot_digest: str
    snapshot_verified: bool = True
    data: Dict[str, Any] = Field(default_factory=dict)
    client_id: str
    carer_id: str
    shift_id: str
    submitted_by_id: str
    submitted_at: str
    qa_status: QaStatus
    qa_comment: Optional[str] = None
    qa_reviewed_by: Optional[str] = None
    qa_reviewed_at: Optional[str] = None


class VisitNotesListOut(BaseModel):
    items: List[VisitNoteOut]
    page: PageOut


class VisitNoteRenderOut(BaseModel):
    visit_note_id: str
    template_id: str
    template_name: str
    template_version: int
    qa_status: QaStatus
    qa_comment: Optional[str] = None
    submitted_at: str
    sections: List[Dict[str, Any]]
