from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.engine import Connection

from carebase.core.auth import AuthContext, Permission
from carebase.core.db import transaction
from carebase.core.errors import EditConflict, NotFound, PublishRejected, ValidationFailed
from carebase.core.ids import new_ulid, now_iso
from carebase.core.store import compare_and_swap, count_rows, get_row, insert_row, select_rows, table
from carebase.modules.audit import service as audit
from carebase.modules.fields.render import RenderMode, render_form
from carebase.modules.fields.types import FieldType, in_display_order
from carebase.modules.fields.validation import validate, validate_config

from . import models as _models  # noqa: F401
from .starters import get_starter, starter_summaries

TABLE = "form_templates"

STATUS_DRAFT = "DRAFT"
STATUS_ACTIVE = "ACTIVE"
STATUS_ARCHIVED = "ARCHIVED"

# config keys whose change would alter what an existing answer means
_FROZEN_CONFIG_KEYS = ("min", "max", "step", "maxLength", "max_length")


def _json_list(v: Any) -> List[Any]:
    if not v:
        return []
    try:
        out = json.loads(v)
    except (TypeError, ValueError):
        return []
    return out if isinstance(out, list) else []


def _json_dict(v: Any) -> Dict[str, Any]:
    if not v:
        return {}
    try:
        out = json.loads(v)
    except (TypeError, ValueError):
        return {}
    return out if isinstance(out, dict) else {}


def _dumps(v: Any) -> str:
    return json.dumps(v, ensure_ascii=False)


def row_to_template(row: Mapping[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    d["sections"] = _json_list(d.pop("sections_json", None))
    d["locked_types"] = _json_dict(d.pop("locked_types_json", None))
    d["is_enabled"] = bool(d.get("is_enabled"))
    return d


def _sorted_sections(sections: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out = []
    for sec in in_display_order(sections):
        s = dict(sec)
        s["fields"] = [dict(f) for f in in_display_order(s.get("fields") or [])]
        out.append(s)
    return out


def _all_fields(sections: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [f for s in sections for f in (s.get("fields") or [])]


# -------------------------
# Structure building
# -------------------------
def _field_type(raw: Any, field_id: str) -> str:
    try:
        return FieldType(raw).value
    except ValueError:
        raise ValidationFailed({field_id: "Unknown field type"}) from None


def _build_field(
    raw: Mapping[str, Any],
    index: int,
    locked_types: Mapping[str, str],
    errors: Dict[str, str],
) -> Dict[str, Any]:
    fid = str(raw.get("id") or new_ulid())
    ftype = _field_type(raw.get("type"), fid)
    locked = locked_types.get(fid)
    if locked is not None and locked != ftype:
        raise EditConflict(f"field {fid} was published as {locked} and cannot change type")

    config = dict(raw.get("config") or {})
    msg = validate_config(ftype, config)
    if msg is not None:
        errors[fid] = msg

    order = raw.get("order")
    return {
        "id": fid,
        "label": str(raw["label"]),
        "description": raw.get("description"),
        "type": ftype,
        "required": bool(raw.get("required", False)),
        "order": int(order) if order is not None else index,
        "config": config,
    }


def _build_section(
    raw: Mapping[str, Any],
    index: int,
    locked_types: Mapping[str, str],
    errors: Dict[str, str],
) -> Dict[str, Any]:
    order = raw.get("order")
    fields = [_build_field(f, i, locked_types, errors) for i, f in enumerate(raw.get("fields") or [])]
    return {
        "id": str(raw.get("id") or new_ulid()),
        "title": str(raw["title"]),
        "description": raw.get("description"),
        "order": int(order) if order is not None else index,
        "fields": fields,
    }


def _build_sections(raw_sections: List[Mapping[str, Any]], locked_types: Mapping[str, str]) -> List[Dict[str, Any]]:
    errors: Dict[str, str] = {}
    sections = [_build_section(s, i, locked_types, errors) for i, s in enumerate(raw_sections or [])]
    if errors:
        raise ValidationFailed(errors, "invalid field config")
    return sections


def _structure_problems(sections: List[Dict[str, Any]]) -> Dict[str, Any]:
    problems: Dict[str, Any] = {}
    if not sections:
        problems["sections"] = "template has no sections"
        return problems

    empty = [s["id"] for s in sections if not s.get("fields")]
    if empty:
        problems["empty_sections"] = empty

    seen: Dict[str, int] = {}
    for f in _all_fields(sections):
        seen[f["id"]] = seen.get(f["id"], 0) + 1
    dupes = sorted(k for k, n in seen.items() if n > 1)
    if dupes:
        problems["duplicate_field_ids"] = dupes

    bad_config: Dict[str, str] = {}
    for f in _all_fields(sections):
        msg = validate_config(f["type"], f.get("config"))
        if msg is not None:
            bad_config[f["id"]] = msg
    if bad_config:
        problems["field_config"] = bad_config
    return problems


# -------------------------
# Row access
# -------------------------
def _load_row(conn: Connection, ctx: AuthContext, template_id: str) -> Dict[str, Any]:
    row = get_row(conn, TABLE, template_id)
    if row is None or row["organization_id"] != ctx.organization_id:
        raise NotFound("template")
    return row


def _next_version(conn: Connection, lineage_id: str) -> int:
    tbl = table(TABLE)
    v = conn.execute(select(func.coalesce(func.max(tbl.c.version), 0)).where(tbl.c.lineage_id == lineage_id)).scalar_one()
    return int(v) + 1


def _published_max(conn: Connection, lineage_id: str, exclude_id: str) -> int:
    tbl = table(TABLE)
    v = conn.execute(
        select(func.coalesce(func.max(tbl.c.version), 0)).where(
            tbl.c.lineage_id == lineage_id,
            tbl.c.published_at.is_not(None),
            tbl.c.id != exclude_id,
        )
    ).scalar_one()
    return int(v)


def _save(conn: Connection, row: Mapping[str, Any], changes: Dict[str, Any]) -> None:
    """Conditional write on row_version; a concurrent writer wins and we raise EditConflict."""
    values = dict(changes)
    values["row_version"] = int(row["row_version"]) + 1
    values["updated_at"] = now_iso()
    ok = compare_and_swap(conn, TABLE, row["id"], {"row_version": row["row_version"]}, values)
    if not ok:
        raise EditConflict("template was modified by another request")


def _require_draft(row: Mapping[str, Any]) -> None:
    if row["status"] != STATUS_DRAFT:
        raise EditConflict(f"template is {row['status']}; structural edits need a DRAFT")


def _get(conn: Connection, template_id: str) -> Dict[str, Any]:
    row = get_row(conn, TABLE, template_id)
    if row is None:
        raise NotFound("template")
    return row_to_template(row)


def _mutate_sections(
    ctx: AuthContext,
    template_id: str,
    fn: Callable[[List[Dict[str, Any]], Dict[str, str]], None],
) -> Dict[str, Any]:
    """Load a DRAFT, apply fn(sections, locked_types) in place, write back."""
    ctx.require(Permission.FORM_TEMPLATE_MANAGE)
    with transaction() as conn:
        row = _load_row(conn, ctx, template_id)
        _require_draft(row)
        sections = _json_list(row["sections_json"])
        locked = _json_dict(row["locked_types_json"])
        fn(sections, locked)
        _save(conn, row, {"sections_json": _dumps(sections)})
        return _get(conn, template_id)


def _find_section(sections: List[Dict[str, Any]], section_id: str) -> Dict[str, Any]:
    for s in sections:
        if s.get("id") == section_id:
            return s
    raise NotFound("section")


def _find_field(sections: List[Dict[str, Any]], field_id: str) -> Tuple[Dict[str, Any], int]:
    for s in sections:
        for i, f in enumerate(s.get("fields") or []):
            if f.get("id") == field_id:
                return s, i
    raise NotFound("field")


# -------------------------
# Drafts
# -------------------------
def create_draft(
    ctx: AuthContext,
    name: str,
    description: Optional[str] = None,
    sections: Optional[List[Mapping[str, Any]]] = None,
    base_template_id: Optional[str] = None,
    is_enabled: bool = True,
    _audit_action: str = audit.FORM_TEMPLATE_CREATED,
    _audit_details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    ctx.require(Permission.FORM_TEMPLATE_MANAGE)
    with transaction() as conn:
        lineage_id = new_ulid()
        version = 1
        locked: Dict[str, str] = {}
        supersedes_id: Optional[str] = None

        if base_template_id:
            base = _load_row(conn, ctx, base_template_id)
            lineage_id = base["lineage_id"]
            version = _next_version(conn, lineage_id)
            locked = _json_dict(base["locked_types_json"])
            supersedes_id = base["id"]
            if sections is None:
                sections = _json_list(base["sections_json"])

        built = _build_sections(list(sections or []), locked)

        now = now_iso()
        tid = insert_row(
            conn,
            TABLE,
            {
                "id": new_ulid(),
                "organization_id": ctx.organization_id,
                "lineage_id": lineage_id,
                "name": name,
                "description": description,
                "version": version,
                "status": STATUS_DRAFT,
                "is_enabled": 1 if is_enabled else 0,
                "sections_json": _dumps(built),
                "locked_types_json": _dumps(locked),
                "supersedes_id": supersedes_id,
                "row_version": 1,
                "created_by": ctx.actor_id,
                "created_at": now,
                "updated_at": now,
                "published_at": None,
            },
        )
        out = _get(conn, tid)

    details = {"name": name, "version": version}
    if supersedes_id:
        details["supersedes_id"] = supersedes_id
    details.update(_audit_details or {})
    audit.record_event(ctx, _audit_action, audit.ENTITY_TEMPLATE, tid, details)
    return out


def list_starters(ctx: AuthContext) -> List[Dict[str, Any]]:
    ctx.require(Permission.FORM_TEMPLATE_MANAGE)
    return starter_summaries()


def create_from_starter(ctx: AuthContext, starter_id: str) -> Dict[str, Any]:
    ctx.require(Permission.FORM_TEMPLATE_MANAGE)
    starter = get_starter(starter_id)
    if starter is None:
        raise NotFound("starter template")
    return create_draft(
        ctx,
        name=starter["name"],
        description=starter["description"],
        sections=starter["sections"],
        is_enabled=False,
        _audit_action=audit.FORM_TEMPLATE_CREATED_FROM_STARTER,
        _audit_details={"starter_id": starter_id, "starter_name": starter["name"]},
    )


def add_section(ctx: AuthContext, template_id: str, section: Mapping[str, Any]) -> Dict[str, Any]:
    def apply(sections: List[Dict[str, Any]], locked: Dict[str, str]) -> None:
        existing_ids = {f["id"] for f in _all_fields(sections)}
        built = _build_sections([section], locked)[0]
        clash = [f["id"] for f in built["fields"] if f["id"] in existing_ids]
        if clash:
            raise ValidationFailed({fid: "Duplicate field id" for fid in clash})
        if section.get("order") is None:
            built["order"] = max([int(s.get("order") or 0) for s in sections] + [-1]) + 1
        sections.append(built)

    return _mutate_sections(ctx, template_id, apply)


def add_field(ctx: AuthContext, template_id: str, section_id: str, field: Mapping[str, Any]) -> Dict[str, Any]:
    def apply(sections: List[Dict[str, Any]], locked: Dict[str, str]) -> None:
        sec = _find_section(sections, section_id)
        fields = sec.setdefault("fields", [])
        errors: Dict[str, str] = {}
        built = _build_field(field, len(fields), locked, errors)
        if errors:
            raise ValidationFailed(errors, "invalid field config")
        if built["id"] in {f["id"] for f in _all_fields(sections)}:
            raise ValidationFailed({built["id"]: "Duplicate field id"})
        if field.get("order") is None:
            built["order"] = max([int(f.get("order") or 0) for f in fields] + [-1]) + 1
        fields.append(built)

    return _mutate_sections(ctx, template_id, apply)


def remove_field(ctx: AuthContext, template_id: str, field_id: str) -> Dict[str, Any]:
    def apply(sections: List[Dict[str, Any]], locked: Dict[str, str]) -> None:
        sec, idx = _find_field(sections, field_id)
        sec["fields"].pop(idx)

    return _mutate_sections(ctx, template_id, apply)


def reorder_fields(ctx: AuthContext, template_id: str, section_id: str, field_ids: List[str]) -> Dict[str, Any]:
    def apply(sections: List[Dict[str, Any]], locked: Dict[str, str]) -> None:
        sec = _find_section(sections, section_id)
        by_id = {f["id"]: f for f in sec.get("fields") or []}
        if len(field_ids) != len(by_id) or set(field_ids) != set(by_id):
            raise ValidationFailed({"field_ids": "must list every field of the section exactly once"})
        sec["fields"] = [dict(by_id[fid], order=i) for i, fid in enumerate(field_ids)]

    return _mutate_sections(ctx, template_id, apply)


def _check_active_patch(current: Mapping[str, Any], patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Published fields accept label/description edits and config additions only."""
    if "type" in patch and patch["type"] is not None and _field_type(patch["type"], current["id"]) != current["type"]:
        raise EditConflict("field type cannot change on an ACTIVE template")
    if "required" in patch and patch["required"] is not None and bool(patch["required"]) != bool(current.get("required")):
        raise EditConflict("required flag cannot change on an ACTIVE template")
    if "order" in patch and patch["order"] is not None and int(patch["order"]) != int(current.get("order") or 0):
        raise EditConflict("field order cannot change on an ACTIVE template")

    updated = dict(current)
    for key in ("label", "description"):
        if key in patch and patch[key] is not None:
            updated[key] = patch[key]

    if patch.get("config") is not None:
        old_cfg = dict(current.get("config") or {})
        new_cfg = dict(patch["config"])
        for key in _FROZEN_CONFIG_KEYS:
            if key in new_cfg and key in old_cfg and new_cfg[key] != old_cfg[key]:
                raise EditConflict(f"config '{key}' cannot change on an ACTIVE template")
        if "options" in new_cfg:
            old_opts = list(old_cfg.get("options") or [])
            new_opts = list(new_cfg.get("options") or [])
            if new_opts[: len(old_opts)] != old_opts:
                raise EditConflict("options can only be appended on an ACTIVE template")
        updated["config"] = {**old_cfg, **new_cfg}
    return updated


def update_field(ctx: AuthContext, template_id: str, field_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
    ctx.require(Permission.FORM_TEMPLATE_MANAGE)
    with transaction() as conn:
        row = _load_row(conn, ctx, template_id)
        status = row["status"]
        if status == STATUS_ARCHIVED:
            raise EditConflict("template is ARCHIVED")

        sections = _json_list(row["sections_json"])
        locked = _json_dict(row["locked_types_json"])
        sec, idx = _find_field(sections, field_id)
        current = sec["fields"][idx]

        if status == STATUS_ACTIVE:
            updated = _check_active_patch(current, patch)
        else:
            updated = dict(current)
            for key in ("label", "description", "required", "order", "config"):
                if key in patch and patch[key] is not None:
                    updated[key] = patch[key]
            if patch.get("type") is not None:
                new_type = _field_type(patch["type"], field_id)
                if locked.get(field_id, new_type) != new_type:
                    raise EditConflict(f"field {field_id} was published as {locked[field_id]} and cannot change type")
                updated["type"] = new_type

        msg = validate_config(updated["type"], updated.get("config"))
        if msg is not None:
            raise ValidationFailed({field_id: msg}, "invalid field config")
        sec["fields"][idx] = updated

        changes: Dict[str, Any] = {"sections_json": _dumps(sections)}
        if status == STATUS_ACTIVE:
            changes["version"] = _next_version(conn, row["lineage_id"])
            changes["published_at"] = now_iso()
        _save(conn, row, changes)
        out = _get(conn, template_id)

    audit.record_event(
        ctx,
        audit.FORM_TEMPLATE_UPDATED,
        audit.ENTITY_TEMPLATE,
        template_id,
        {"field_id": field_id, "status": status, "version": out["version"]},
    )
    return out


def update_metadata(
    ctx: AuthContext,
    template_id: str,
    name: Optional[str] = None,
    description: Optional[str] = None,
    is_enabled: Optional[bool] = None,
) -> Dict[str, Any]:
    ctx.require(Permission.FORM_TEMPLATE_MANAGE)
    with transaction() as conn:
        row = _load_row(conn, ctx, template_id)
        if row["status"] == STATUS_ARCHIVED:
            raise EditConflict("template is ARCHIVED")
        changes: Dict[str, Any] = {}
        if name is not None:
            changes["name"] = name
        if description is not None:
            changes["description"] = description
        if is_enabled is not None:
            changes["is_enabled"] = 1 if is_enabled else 0
        if changes:
            _save(conn, row, changes)
        out = _get(conn, template_id)

    if changes:
        audit.record_event(ctx, audit.FORM_TEMPLATE_UPDATED, audit.ENTITY_TEMPLATE, template_id, {"changed": sorted(changes)})
    return out


# -------------------------
# Lifecycle
# -------------------------
def publish(
    ctx: AuthContext,
    template_id: str,
    expected_row_version: Optional[int] = None,
    enable: Optional[bool] = None,
) -> Dict[str, Any]:
    ctx.require(Permission.FORM_TEMPLATE_MANAGE)
    archived_ids: List[str] = []
    with transaction() as conn:
        row = _load_row(conn, ctx, template_id)
        if expected_row_version is not None and int(expected_row_version) != int(row["row_version"]):
            raise EditConflict("template was modified since it was read", details={"row_version": row["row_version"]})
        _require_draft(row)

        sections = _sorted_sections(_json_list(row["sections_json"]))
        problems = _structure_problems(sections)
        if problems:
            raise PublishRejected(details=problems)

        locked = _json_dict(row["locked_types_json"])
        for f in _all_fields(sections):
            locked.setdefault(f["id"], f["type"])

        changes: Dict[str, Any] = {
            "status": STATUS_ACTIVE,
            "sections_json": _dumps(sections),
            "locked_types_json": _dumps(locked),
            "published_at": now_iso(),
        }
        # a published version must sit above everything already published in the lineage;
        # drafts fix their number at creation, so a sibling may have overtaken it since
        if row["published_at"] is not None or int(row["version"]) <= _published_max(conn, row["lineage_id"], template_id):
            changes["version"] = _next_version(conn, row["lineage_id"])
        if enable is not None:
            changes["is_enabled"] = 1 if enable else 0
        _save(conn, row, changes)

        # one ACTIVE template per lineage
        tbl = table(TABLE)
        live = select_rows(
            conn,
            TABLE,
            tbl.c.lineage_id == row["lineage_id"],
            tbl.c.status == STATUS_ACTIVE,
            tbl.c.id != template_id,
        )
        for prev in live:
            if compare_and_swap(
                conn,
                TABLE,
                prev["id"],
                {"status": STATUS_ACTIVE, "row_version": prev["row_version"]},
                {"status": STATUS_ARCHIVED, "is_enabled": 0, "row_version": int(prev["row_version"]) + 1, "updated_at": now_iso()},
            ):
                archived_ids.append(prev["id"])
        out = _get(conn, template_id)

    audit.record_event(
        ctx,
        audit.FORM_TEMPLATE_PUBLISHED,
        audit.ENTITY_TEMPLATE,
        template_id,
        {"version": out["version"], "superseded_ids": archived_ids},
    )
    for archived_id in archived_ids:
        audit.record_event(
            ctx, audit.FORM_TEMPLATE_ARCHIVED, audit.ENTITY_TEMPLATE, archived_id, {"superseded_by": template_id}
        )
    return out


def reopen(ctx: AuthContext, template_id: str) -> Dict[str, Any]:
    ctx.require(Permission.FORM_TEMPLATE_MANAGE)
    with transaction() as conn:
        row = _load_row(conn, ctx, template_id)
        if row["status"] != STATUS_ACTIVE:
            raise EditConflict(f"only ACTIVE templates can be reopened, this one is {row['status']}")
        _save(conn, row, {"status": STATUS_DRAFT})
        out = _get(conn, template_id)

    audit.record_event(ctx, audit.FORM_TEMPLATE_REOPENED, audit.ENTITY_TEMPLATE, template_id, {"version": out["version"]})
    return out


def archive(ctx: AuthContext, template_id: str) -> Dict[str, Any]:
    ctx.require(Permission.FORM_TEMPLATE_MANAGE)
    with transaction() as conn:
        row = _load_row(conn, ctx, template_id)
        prior = row["status"]
        if prior == STATUS_ARCHIVED:
            raise EditConflict("template is already ARCHIVED")
        _save(conn, row, {"status": STATUS_ARCHIVED, "is_enabled": 0})
        out = _get(conn, template_id)

    audit.record_event(ctx, audit.FORM_TEMPLATE_ARCHIVED, audit.ENTITY_TEMPLATE, template_id, {"prior_status": prior})
    return out


# -------------------------
# Reads
# -------------------------
def _visible(ctx: AuthContext, template: Mapping[str, Any]) -> bool:
    if ctx.can(Permission.FORM_TEMPLATE_MANAGE):
        return True
    return template["status"] == STATUS_ACTIVE and bool(template["is_enabled"])


def get_template(ctx: AuthContext, template_id: str) -> Dict[str, Any]:
    ctx.require(Permission.FORM_TEMPLATE_VIEW, Permission.FORM_TEMPLATE_MANAGE)
    with transaction() as conn:
        row = _load_row(conn, ctx, template_id)
    t = row_to_template(row)
    if not _visible(ctx, t):
        raise NotFound("template")
    return t


def list_enabled(ctx: AuthContext) -> List[Dict[str, Any]]:
    ctx.require(Permission.FORM_TEMPLATE_VIEW, Permission.FORM_TEMPLATE_MANAGE)
    tbl = table(TABLE)
    with transaction() as conn:
        rows = select_rows(
            conn,
            TABLE,
            tbl.c.organization_id == ctx.organization_id,
            tbl.c.status == STATUS_ACTIVE,
            tbl.c.is_enabled == 1,
            order_by=("name", "id"),
        )
    return [row_to_template(r) for r in rows]


def list_templates(
    ctx: AuthContext,
    limit: int,
    offset: int,
    status: Optional[str] = None,
    search: Optional[str] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    ctx.require(Permission.FORM_TEMPLATE_MANAGE)
    tbl = table(TABLE)
    criteria: List[Any] = [tbl.c.organization_id == ctx.organization_id]
    if status:
        criteria.append(tbl.c.status == status.upper())
    if search:
        like = f"%{search}%"
        criteria.append(or_(tbl.c.name.ilike(like), tbl.c.description.ilike(like)))

    with transaction() as conn:
        total = count_rows(conn, TABLE, *criteria)
        rows = select_rows(conn, TABLE, *criteria, order_by=("-updated_at", "-id"), limit=limit, offset=offset)
    return [row_to_template(r) for r in rows], total


def render_template_form(ctx: AuthContext, template_id: str) -> Dict[str, Any]:
    """Empty EDIT-mode form for a carer to fill in."""
    t = get_template(ctx, template_id)
    nodes = render_form(t, data={}, errors={}, mode=RenderMode.EDIT)
    return {
        "template_id": t["id"],
        "template_name": t["name"],
        "version": t["version"],
        "sections": [n.to_dict() for n in nodes],
    }


def validate_answers(ctx: AuthContext, template_id: str, data: Mapping[str, Any]) -> Dict[str, str]:
    t = get_template(ctx, template_id)
    return validate(t, data)
