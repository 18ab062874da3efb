from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Mapping, Optional, Tuple

from carebase.core.auth import AuthContext, Permission
from carebase.core.db import transaction
from carebase.core.errors import Forbidden, NotFound, TemplateNotEnabled, ValidationFailed
from carebase.core.ids import new_ulid, now_iso
from carebase.core.logs import emit
from carebase.core.storage import PendingUpload, discard_uploads, plan_inline_upload, write_uploads
from carebase.core.store import count_rows, get_row, insert_row, select_rows, table
from carebase.modules.audit import service as audit
from carebase.modules.fields.render import RenderMode, render_form
from carebase.modules.fields.types import FILE_TYPES, iter_fields
from carebase.modules.fields.validation import validate
from carebase.modules.templates import service as templates

from . import models as _models  # noqa: F401
from .snapshot import SchemaSnapshot, build_snapshot, digest_of

TABLE = "visit_notes"

QA_PENDING = "PENDING"
QA_APPROVED = "APPROVED"
QA_REJECTED = "REJECTED"


def row_to_note(row: Mapping[str, Any]) -> Dict[str, Any]:
    d = dict(row)
    snapshot_json = d.pop("schema_snapshot_json") or "{}"
    d["snapshot_verified"] = digest_of(snapshot_json) == d.get("snapshot_digest")
    if not d["snapshot_verified"]:
        emit(
            "error",
            "visit_note.snapshot_digest_mismatch",
            "stored schema snapshot does not match its digest",
            module="visit_notes",
            visit_note_id=d.get("id"),
        )
    d["schema_snapshot"] = json.loads(snapshot_json)
    d["data"] = json.loads(d.pop("data_json") or "{}")
    return d


def _plan_inline_files(snapshot: SchemaSnapshot, data: Dict[str, Any]) -> Tuple[Dict[str, Any], List[PendingUpload]]:
    """Swap inline base64 SIGNATURE/PHOTO answers for the file references they will be stored under."""
    file_types = {t.value for t in FILE_TYPES}
    pending: List[PendingUpload] = []
    for f in iter_fields(snapshot):
        value = data.get(f["id"])
        if f["type"] not in file_types or not isinstance(value, str) or value == "":
            continue
        upload = plan_inline_upload(f["type"], value)
        pending.append(upload)
        data[f["id"]] = upload.ref
    return data, pending


def submit(
    ctx: AuthContext,
    template_id: str,
    client_id: str,
    shift_id: str,
    data: Mapping[str, Any],
    carer_id: Optional[str] = None,
) -> Dict[str, Any]:
    ctx.require(Permission.VISIT_NOTE_CREATE)
    carer = carer_id or ctx.actor_id
    on_behalf = carer != ctx.actor_id
    if on_behalf and not ctx.can(Permission.VISIT_NOTE_VIEW_ALL):
        raise Forbidden()

    pending: List[PendingUpload] = []
    try:
        with transaction() as conn:
            row = get_row(conn, templates.TABLE, template_id)
            if (
                row is None
                or row["organization_id"] != ctx.organization_id
                or row["status"] != templates.STATUS_ACTIVE
                or not row["is_enabled"]
            ):
                raise TemplateNotEnabled()
            template = templates.row_to_template(row)

            errors = validate(template, data)
            if errors:
                raise ValidationFailed(errors)

            snapshot = build_snapshot(template)
            stored, pending = _plan_inline_files(snapshot, copy.deepcopy(dict(data)))

            note_id = insert_row(
                conn,
                TABLE,
                {
                    "id": new_ulid(),
                    "organization_id": ctx.organization_id,
                    "template_id": template["id"],
                    "template_version": template["version"],
                    "schema_snapshot_json": snapshot.to_json(),
                    "snapshot_digest": snapshot.digest(),
                    "data_json": json.dumps(stored, ensure_ascii=False),
                    "client_id": client_id,
                    "carer_id": carer,
                    "shift_id": shift_id,
                    "submitted_by_id": ctx.actor_id,
                    "submitted_at": now_iso(),
                    "qa_status": QA_PENDING,
                },
            )
            write_uploads(pending)
            out = row_to_note(get_row(conn, TABLE, note_id))
    except Exception:
        # nothing on disk may outlive a note that was never committed
        discard_uploads(pending)
        raise

    details: Dict[str, Any] = {
        "template_id": template["id"],
        "template_version": template["version"],
        "shift_id": shift_id,
        "client_id": client_id,
    }
    if on_behalf:
        details["carer_id"] = carer
    audit.record_event(
        ctx,
        audit.VISIT_NOTE_CREATED_ON_BEHALF if on_behalf else audit.VISIT_NOTE_CREATED,
        audit.ENTITY_VISIT_NOTE,
        note_id,
        details,
    )
    return out


def _may_see(ctx: AuthContext, row: Mapping[str, Any]) -> bool:
    if row["organization_id"] != ctx.organization_id:
        return False
    if ctx.can(Permission.VISIT_NOTE_VIEW_ALL):
        return True
    return ctx.actor_id in (row["carer_id"], row["submitted_by_id"])


def get_submission(ctx: AuthContext, note_id: str) -> Dict[str, Any]:
    ctx.require(Permission.VISIT_NOTE_CREATE, Permission.VISIT_NOTE_VIEW_ALL)
    with transaction() as conn:
        row = get_row(conn, TABLE, note_id)
    if row is None or not _may_see(ctx, row):
        raise NotFound("visit note")
    return row_to_note(row)


def list_submissions(
    ctx: AuthContext,
    limit: int,
    offset: int,
    template_id: Optional[str] = None,
    client_id: Optional[str] = None,
    carer_id: Optional[str] = None,
    shift_id: Optional[str] = None,
    qa_status: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> Tuple[List[Dict[str, Any]], int]:
    ctx.require(Permission.VISIT_NOTE_CREATE, Permission.VISIT_NOTE_VIEW_ALL)
    if not ctx.can(Permission.VISIT_NOTE_VIEW_ALL):
        carer_id = ctx.actor_id

    tbl = table(TABLE)
    criteria: List[Any] = [tbl.c.organization_id == ctx.organization_id]
    if template_id:
        criteria.append(tbl.c.template_id == template_id)
    if client_id:
        criteria.append(tbl.c.client_id == client_id)
    if carer_id:
        criteria.append(tbl.c.carer_id == carer_id)
    if shift_id:
        criteria.append(tbl.c.shift_id == shift_id)
    if qa_status:
        criteria.append(tbl.c.qa_status == qa_status.upper())
    # timestamps are ISO strings, so lexical comparison orders them
    if start_date:
        criteria.append(tbl.c.submitted_at >= start_date)
    if end_date:
        criteria.append(tbl.c.submitted_at <= (end_date + "T23:59:59Z" if len(end_date) == 10 else end_date))

    with transaction() as conn:
        total = count_rows(conn, TABLE, *criteria)
        rows = select_rows(conn, TABLE, *criteria, order_by=("-submitted_at", "-id"), limit=limit, offset=offset)
    return [row_to_note(r) for r in rows], total


def render_submission(ctx: AuthContext, note_id: str) -> Dict[str, Any]:
    """Read-only render of a note through its frozen snapshot."""
    note = get_submission(ctx, note_id)
    snapshot = SchemaSnapshot.model_validate(note["schema_snapshot"])
    nodes = render_form(snapshot, data=note["data"], errors={}, mode=RenderMode.VIEW)
    return {
        "visit_note_id": note["id"],
        "template_id": snapshot.template_id,
        "template_name": snapshot.template_name,
        "template_version": snapshot.version,
        "qa_status": note["qa_status"],
        "qa_comment": note.get("qa_comment"),
        "submitted_at": note["submitted_at"],
        "sections": [n.to_dict() for n in nodes],
    }
