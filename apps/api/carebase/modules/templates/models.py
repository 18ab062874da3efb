from __future__ import annotations

from typing import Optional
from sqlmodel import SQLModel, Field


# status: DRAFT|ACTIVE|ARCHIVED
# writes are conditional on row_version (compare-and-swap in service)
class FormTemplate(SQLModel, table=True):
    __tablename__ = "form_templates"

    id: str = Field(primary_key=True)
    organization_id: str = Field(index=True)
    lineage_id: str = Field(index=True)
    name: str
    description: Optional[str] = Field(default=None)
    version: int
    status: str
    is_enabled: int = Field(default=0)  # 0|1

    sections_json: str
    locked_types_json: str  # {field_id: type} for every field that was ever published

    supersedes_id: Optional[str] = Field(default=None)
    row_version: int = Field(default=1)

    created_by: str
    created_at: str
    updated_at: str
    published_at: Optional[str] = Field(default=None)
