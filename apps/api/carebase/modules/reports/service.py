"""
Per-field answer report across submitted visit notes.

Field definitions come from each note's own schema snapshot, never from
the live template: an option renamed after submission still reports under
the name the carer saw. Where snapshots of different versions disagree on
a field's config, the highest template version's definition is used.
"""
from __future__ import annotations

import json
import math
from typing import Any, Dict, List, Mapping, Optional

from carebase.core.auth import AuthContext, Permission
from carebase.core.db import transaction
from carebase.core.errors import NotFound
from carebase.core.store import get_row, select_rows, table
from carebase.modules.fields.registry import RATING_DEFAULT_MAX, RATING_DEFAULT_MIN
from carebase.modules.fields.types import FieldType, is_empty, option_values, parse_config, schema_sections
from carebase.modules.templates import service as templates
from carebase.modules.visit_notes import service as visit_notes

AGGREGATABLE = frozenset(
    {
        FieldType.YES_NO.value,
        FieldType.SINGLE_CHOICE.value,
        FieldType.MULTIPLE_CHOICE.value,
        FieldType.RATING_SCALE.value,
        FieldType.NUMBER.value,
    }
)

TEXT_SAMPLE_SIZE = 5


def _percent(count: int, total: int) -> int:
    # half up, so 1 of 8 reads 13 rather than 12
    return int(math.floor(count * 100 / total + 0.5)) if total else 0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _aggregate_yes_no(values: List[Any]) -> Dict[str, Any]:
    yes = sum(1 for v in values if v is True)
    no = sum(1 for v in values if v is False)
    total = yes + no
    return {
        "type": "yes_no",
        "yes": yes,
        "no": no,
        "yes_percentage": _percent(yes, total),
        "no_percentage": _percent(no, total),
    }


def _aggregate_choice(values: List[Any], config: Mapping[str, Any]) -> Dict[str, Any]:
    options = option_values(parse_config(config))
    counts = {o: 0 for o in options}
    for v in values:
        for picked in v if isinstance(v, list) else [v]:
            if isinstance(picked, str) and picked in counts:
                counts[picked] += 1
    total = len(values)
    return {
        "type": "choice",
        "options": [{"option": o, "count": counts[o], "percentage": _percent(counts[o], total)} for o in options],
    }


def _aggregate_rating(values: List[Any], config: Mapping[str, Any]) -> Dict[str, Any]:
    cfg = parse_config(config)
    lo = int(cfg.min) if cfg.min is not None else RATING_DEFAULT_MIN
    hi = int(cfg.max) if cfg.max is not None else RATING_DEFAULT_MAX
    ratings = [int(v) for v in values if _is_number(v)]
    average = round(sum(ratings) / len(ratings), 1) if ratings else 0
    return {
        "type": "rating",
        "average": average,
        "max_rating": hi,
        "distribution": [{"rating": r, "count": ratings.count(r)} for r in range(lo, hi + 1)],
        "total_ratings": len(ratings),
    }


def _aggregate_number(values: List[Any]) -> Dict[str, Any]:
    nums = [v for v in values if _is_number(v)]
    if not nums:
        return {"type": "number", "count": 0, "sum": 0, "average": 0, "min": 0, "max": 0}
    total = sum(nums)
    return {
        "type": "number",
        "count": len(nums),
        "sum": round(total, 2),
        "average": round(total / len(nums), 2),
        "min": min(nums),
        "max": max(nums),
    }


def _aggregate_text(values: List[Any]) -> Dict[str, Any]:
    sample = [v if isinstance(v, str) else json.dumps(v, ensure_ascii=False) for v in values[:TEXT_SAMPLE_SIZE]]
    return {"type": "text", "total_responses": len(values), "sample": sample}


def aggregate(field: Mapping[str, Any], values: List[Any]) -> Dict[str, Any]:
    t = field["type"]
    config = field.get("config") or {}
    if t == FieldType.YES_NO.value:
        return _aggregate_yes_no(values)
    if t in (FieldType.SINGLE_CHOICE.value, FieldType.MULTIPLE_CHOICE.value):
        return _aggregate_choice(values, config)
    if t == FieldType.RATING_SCALE.value:
        return _aggregate_rating(values, config)
    if t == FieldType.NUMBER.value:
        return _aggregate_number(values)
    return _aggregate_text(values)


def _snapshot_fields(notes: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Field id -> definition. Notes come highest version first, so that definition wins."""
    fields: Dict[str, Dict[str, Any]] = {}
    for note in notes:
        for sec in schema_sections(note["schema_snapshot"]):
            for f in sec["fields"]:
                if f["id"] not in fields:
                    fields[f["id"]] = {
                        "id": f["id"],
                        "label": f["label"],
                        "type": f["type"],
                        "section_title": sec["title"],
                        "config": f["config"],
                    }
    return fields


def field_report(
    ctx: AuthContext,
    template_id: str,
    field_id: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    client_id: Optional[str] = None,
    carer_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Aggregate answers per field for one template's submissions.

    Without `field_id` every aggregatable field is reported; with it, just
    that field, whatever its type (free text gets a sample).
    """
    ctx.require(Permission.VISIT_NOTE_VIEW_ALL)

    tbl = table(visit_notes.TABLE)
    criteria: List[Any] = [tbl.c.organization_id == ctx.organization_id, tbl.c.template_id == template_id]
    if client_id:
        criteria.append(tbl.c.client_id == client_id)
    if carer_id:
        criteria.append(tbl.c.carer_id == carer_id)
    if start_date:
        criteria.append(tbl.c.submitted_at >= start_date)
    if end_date:
        criteria.append(tbl.c.submitted_at <= (end_date + "T23:59:59Z" if len(end_date) == 10 else end_date))

    with transaction() as conn:
        rows = select_rows(conn, visit_notes.TABLE, *criteria, order_by=("-submitted_at", "-id"))
        template_row = None if rows else get_row(conn, templates.TABLE, template_id)

    notes = [visit_notes.row_to_note(r) for r in rows]
    notes.sort(key=lambda n: (int(n["template_version"]), n["submitted_at"]), reverse=True)
    if notes:
        template_name: Optional[str] = notes[0]["schema_snapshot"].get("template_name")
    elif template_row is not None and template_row["organization_id"] == ctx.organization_id:
        template_name = template_row["name"]
    else:
        raise NotFound("template")

    defs = _snapshot_fields(notes)
    available = [{k: d[k] for k in ("id", "label", "type", "section_title")} for d in defs.values()]
    if field_id:
        if field_id not in defs:
            raise NotFound("field")
        wanted = [defs[field_id]]
    else:
        wanted = [d for d in defs.values() if d["type"] in AGGREGATABLE]

    # a note only answers the fields its own snapshot carried
    answered_ids = [{f["id"] for sec in schema_sections(n["schema_snapshot"]) for f in sec["fields"]} for n in notes]
    out_fields: List[Dict[str, Any]] = []
    for d in wanted:
        values = [
            n["data"].get(d["id"])
            for n, ids in zip(notes, answered_ids)
            if d["id"] in ids and not is_empty(n["data"].get(d["id"]))
        ]
        out_fields.append(
            {
                "field": {k: d[k] for k in ("id", "label", "type", "section_title")},
                "aggregation": aggregate(d, values),
            }
        )

    return {
        "template_id": template_id,
        "template_name": template_name,
        "total_responses": len(notes),
        "fields": out_fields,
        "available_fields": available,
    }