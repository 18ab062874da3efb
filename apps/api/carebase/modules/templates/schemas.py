from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field

from carebase.modules.fields.types import FieldType

TemplateStatus = Literal["DRAFT", "ACTIVE", "ARCHIVED"]


class PageOut(BaseModel):
    offset: int
    limit: int
    total: int
    has_more: bool


class FieldDef(BaseModel):
    id: str
    label: str
    description: Optional[str] = None
    type: FieldType
    required: bool = False
    order: int = 0
    config: Dict[str, Any] = Field(default_factory=dict)


class SectionDef(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    order: int = 0
    fields: List[FieldDef] = Field(default_factory=list)


class FieldIn(BaseModel):
    id: Optional[str] = None
    label: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    type: FieldType
    required: bool = False
    order: Optional[int] = Field(default=None, ge=0)
    config: Optional[Dict[str, Any]] = None


class SectionIn(BaseModel):
    id: Optional[str] = None
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    order: Optional[int] = Field(default=None, ge=0)
    fields: List[FieldIn] = Field(default_factory=list)


class TemplateCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    is_enabled: bool = True
    sections: List[SectionIn] = Field(default_factory=list)
    base_template_id: Optional[str] = None


class TemplatePatchIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    is_enabled: Optional[bool] = None


class FieldPatchIn(BaseModel):
    label: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    type: Optional[FieldType] = None
    required: Optional[bool] = None
    order: Optional[int] = Field(default=None, ge=0)
    config: Optional[Dict[str, Any]] = None


class ReorderIn(BaseModel):
    field_ids: List[str] = Field(min_length=1)


class PublishIn(BaseModel):
    expected_row_version: Optional[int] = None
    enable: Optional[bool] = None


class ValidateIn(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)


class ValidateOut(BaseModel):
    valid: bool
    errors: Dict[str, str] = Field(default_factory=dict)


class TemplateOut(BaseModel):
    id: str
    organization_id: str
    lineage_id: str
    name: str
    description: Optional[str] = None
    version: int
    status: TemplateStatus
    is_enabled: bool
    sections: List[SectionDef] = Field(default_factory=list)
    locked_types: Dict[str, str] = Field(default_factory=dict)
    supersedes_id: Optional[str] = None
    row_version: int
    created_by: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    published_at: Optional[str] = None


class TemplatesListOut(BaseModel):
    items: List[TemplateOut]
    page: PageOut


class StarterOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    sections_count: int
    fields_count: int


class StartersListOut(BaseModel):
    starters: List[StarterOut]


class FormOut(BaseModel):
    template_id: str
    template_name: str
    version: int
    sections: List[Dict[str, Any]]
