from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Path, Query

from carebase.core.auth import AuthContext, auth_context
from carebase.core.config import clamp_limit, clamp_offset

from .schemas import (
    FieldIn,
    FieldPatchIn,
    FormOut,
    PageOut,
    PublishIn,
    ReorderIn,
    SectionIn,
    StartersListOut,
    TemplateCreateIn,
    TemplateOut,
    TemplatePatchIn,
    TemplatesListOut,
    ValidateIn,
    ValidateOut,
)
from .service import (
    add_field,
    add_section,
    archive,
    create_draft,
    create_from_starter,
    get_template,
    list_enabled,
    list_starters,
    list_templates,
    publish,
    remove_field,
    render_template_form,
    reopen,
    reorder_fields,
    update_field,
    update_metadata,
    validate_answers,
)

router = APIRouter(tags=["templates"])


@router.get("/templates", response_model=TemplatesListOut)
def api_list_templates(
    limit: int | None = Query(None),
    offset: int | None = Query(None),
    status: str | None = Query(None, description="DRAFT|ACTIVE|ARCHIVED"),
    search: str | None = Query(None),
    ctx: AuthContext = Depends(auth_context),
) -> TemplatesListOut:
    lim = clamp_limit(limit)
    off = clamp_offset(offset)
    items, total = list_templates(ctx, limit=lim, offset=off, status=status, search=search)
    has_more = (off + lim) < total
    return TemplatesListOut(items=items, page=PageOut(offset=off, limit=lim, total=total, has_more=has_more))


@router.post("/templates", response_model=TemplateOut, status_code=201)
def api_create_template(body: TemplateCreateIn, ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return create_draft(
        ctx,
        name=body.name,
        description=body.description,
        sections=[s.model_dump() for s in body.sections],
        base_template_id=body.base_template_id,
        is_enabled=body.is_enabled,
    )


@router.get("/templates/enabled", response_model=List[TemplateOut])
def api_list_enabled(ctx: AuthContext = Depends(auth_context)) -> List[TemplateOut]:
    return list_enabled(ctx)


@router.get("/templates/starters", response_model=StartersListOut)
def api_list_starters(ctx: AuthContext = Depends(auth_context)) -> StartersListOut:
    return StartersListOut(starters=list_starters(ctx))


@router.post("/templates/starters/{starter_id}", response_model=TemplateOut, status_code=201)
def api_create_from_starter(starter_id: str = Path(...), ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return create_from_starter(ctx, starter_id)


@router.get("/templates/{template_id}", response_model=TemplateOut)
def api_get_template(template_id: str = Path(...), ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return get_template(ctx, template_id)


@router.patch("/templates/{template_id}", response_model=TemplateOut)
def api_patch_template(template_id: str, body: TemplatePatchIn, ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return update_metadata(ctx, template_id, name=body.name, description=body.description, is_enabled=body.is_enabled)


@router.get("/templates/{template_id}/form", response_model=FormOut)
def api_get_form(template_id: str, ctx: AuthContext = Depends(auth_context)) -> FormOut:
    return FormOut(**render_template_form(ctx, template_id))


@router.post("/templates/{template_id}/validate", response_model=ValidateOut)
def api_validate(template_id: str, body: ValidateIn, ctx: AuthContext = Depends(auth_context)) -> ValidateOut:
    errors = validate_answers(ctx, template_id, body.data)
    return ValidateOut(valid=not errors, errors=errors)


@router.post("/templates/{template_id}/sections", response_model=TemplateOut)
def api_add_section(template_id: str, body: SectionIn, ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return add_section(ctx, template_id, body.model_dump())


@router.post("/templates/{template_id}/sections/{section_id}/fields", response_model=TemplateOut)
def api_add_field(template_id: str, section_id: str, body: FieldIn, ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return add_field(ctx, template_id, section_id, body.model_dump())


@router.post("/templates/{template_id}/sections/{section_id}/reorder", response_model=TemplateOut)
def api_reorder_fields(template_id: str, section_id: str, body: ReorderIn, ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return reorder_fields(ctx, template_id, section_id, body.field_ids)


@router.patch("/templates/{template_id}/fields/{field_id}", response_model=TemplateOut)
def api_update_field(template_id: str, field_id: str, body: FieldPatchIn, ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return update_field(ctx, template_id, field_id, body.model_dump(exclude_unset=True))


@router.delete("/templates/{template_id}/fields/{field_id}", response_model=TemplateOut)
def api_remove_field(template_id: str, field_id: str, ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return remove_field(ctx, template_id, field_id)


@router.post("/templates/{template_id}/publish", response_model=TemplateOut)
def api_publish(template_id: str, body: PublishIn | None = None, ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    body = body or PublishIn()
    return publish(ctx, template_id, expected_row_version=body.expected_row_version, enable=body.enable)


@router.post("/templates/{template_id}/reopen", response_model=TemplateOut)
def api_reopen(template_id: str, ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return reopen(ctx, template_id)


@router.post("/templates/{template_id}/archive", response_model=TemplateOut)
def api_archive(template_id: str, ctx: AuthContext = Depends(auth_context)) -> TemplateOut:
    return archive(ctx, template_id)
