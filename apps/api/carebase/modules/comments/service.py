"""
Comments on visit notes.

Rows are append-only. A comment is the chain of revisions sharing one
comment_id; editing or deleting appends the next revision, and the
(comment_id, revision) unique index makes concurrent writers collide
instead of both landing. A deleted comment keeps its tombstone.

Mentions are written inline as @[Display Name](user-id).
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from carebase.core.auth import AuthContext, Role
from carebase.core.db import transaction
from carebase.core.errors import EditConflict, Forbidden, NotFound, ValidationFailed
from carebase.core.ids import new_ulid, now_iso
from carebase.core.store import insert_row, select_rows, table
from carebase.modules.audit import service as audit
from carebase.modules.visit_notes import service as visit_notes

from . import models as _models  # noqa: F401

TABLE = "visit_note_comments"

MAX_CONTENT = 2000
MENTION_RE = re.compile(r"@\[([^\]]+)\]\(([^)]+)\)")

# may remove comments written by others
MODERATOR_ROLES = frozenset({Role.ADMIN, Role.OPS_MANAGER})


def parse_mentions(content: str) -> List[str]:
    """User ids mentioned in `content`, first occurrence order, no repeats."""
    out: List[str] = []
    for m in MENTION_RE.finditer(content or ""):
        user_id = m.group(2).strip()
        if user_id and user_id not in out:
            out.append(user_id)
    return out


def _clean_content(content: Any) -> str:
    text = content if isinstance(content, str) else ""
    if not text.strip():
        raise ValidationFailed({"content": "Comment cannot be empty"})
    if len(text) > MAX_CONTENT:
        raise ValidationFailed({"content": f"Comment must be at most {MAX_CONTENT} characters"})
    return text


def _chains(rows: Iterable[Mapping[str, Any]]) -> Dict[str, List[Mapping[str, Any]]]:
    chains: Dict[str, List[Mapping[str, Any]]] = {}
    for r in rows:
        chains.setdefault(r["comment_id"], []).append(r)
    for revs in chains.values():
        revs.sort(key=lambda r: int(r["revision"]))
    return chains


def _to_comment(revs: List[Mapping[str, Any]]) -> Dict[str, Any]:
    first, latest = revs[0], revs[-1]
    return {
        "id": first["comment_id"],
        "visit_note_id": first["visit_note_id"],
        "author_id": first["author_id"],
        "author_role": first["author_role"],
        "content": latest["content"],
        "mentions": json.loads(latest["mentions_json"] or "[]"),
        "revision": int(latest["revision"]),
        "edited": int(latest["revision"]) > 1,
        "created_at": first["created_at"],
        "updated_at": latest["created_at"],
    }


def _live(chains: Dict[str, List[Mapping[str, Any]]]) -> List[Dict[str, Any]]:
    out = [_to_comment(revs) for revs in chains.values() if not revs[-1]["deleted"]]
    out.sort(key=lambda c: (c["created_at"], c["id"]))
    return out


def _load_chain(conn, ctx: AuthContext, note_id: str, comment_id: str) -> List[Mapping[str, Any]]:
    tbl = table(TABLE)
    revs = select_rows(
        conn,
        TABLE,
        tbl.c.comment_id == comment_id,
        tbl.c.organization_id == ctx.organization_id,
        tbl.c.visit_note_id == note_id,
        order_by=("revision",),
    )
    if not revs or revs[-1]["deleted"]:
        raise NotFound("comment")
    return revs


def _append(conn, ctx: AuthContext, base: Mapping[str, Any], revision: int, content: str, mentions: List[str], deleted: bool) -> None:
    insert_row(
        conn,
        TABLE,
        {
            "id": new_ulid(),
            "organization_id": base["organization_id"],
            "visit_note_id": base["visit_note_id"],
            "comment_id": base["comment_id"],
            "revision": revision,
            "author_id": base["author_id"],
            "author_role": base["author_role"],
            "written_by": ctx.actor_id,
            "content": content,
            "mentions_json": json.dumps(mentions),
            "deleted": 1 if deleted else 0,
            "created_at": now_iso(),
        },
    )


def list_comments(ctx: AuthContext, note_id: str) -> List[Dict[str, Any]]:
    # visibility and permission follow the note itself
    visit_notes.get_submission(ctx, note_id)
    tbl = table(TABLE)
    with transaction() as conn:
        rows = select_rows(
            conn,
            TABLE,
            tbl.c.organization_id == ctx.organization_id,
            tbl.c.visit_note_id == note_id,
        )
    return _live(_chains(rows))


def add_comment(ctx: AuthContext, note_id: str, content: str) -> Dict[str, Any]:
    text = _clean_content(content)
    visit_notes.get_submission(ctx, note_id)
    mentions = parse_mentions(text)

    comment_id = new_ulid()
    base = {
        "organization_id": ctx.organization_id,
        "visit_note_id": note_id,
        "comment_id": comment_id,
        "author_id": ctx.actor_id,
        "author_role": ctx.role.value,
    }
    tbl = table(TABLE)
    with transaction() as conn:
        _append(conn, ctx, base, 1, text, mentions, deleted=False)
        revs = select_rows(conn, TABLE, tbl.c.comment_id == comment_id, order_by=("revision",))

    audit.record_event(
        ctx,
        audit.VISIT_NOTE_COMMENT_ADDED,
        audit.ENTITY_COMMENT,
        comment_id,
        {"visit_note_id": note_id, "mentions": mentions},
    )
    return _to_comment(revs)


def edit_comment(
    ctx: AuthContext,
    note_id: str,
    comment_id: str,
    content: str,
    expected_revision: Optional[int] = None,
) -> Dict[str, Any]:
    """Author-only. Mentions are recomputed from the new content."""
    text = _clean_content(content)
    visit_notes.get_submission(ctx, note_id)
    mentions = parse_mentions(text)

    tbl = table(TABLE)
    try:
        with transaction() as conn:
            revs = _load_chain(conn, ctx, note_id, comment_id)
            latest = revs[-1]
            if latest["author_id"] != ctx.actor_id:
                raise Forbidden()
            if expected_revision is not None and int(latest["revision"]) != expected_revision:
                raise EditConflict(details={"revision": int(latest["revision"])})
            previous = json.loads(latest["mentions_json"] or "[]")
            _append(conn, ctx, latest, int(latest["revision"]) + 1, text, mentions, deleted=False)
            revs = select_rows(conn, TABLE, tbl.c.comment_id == comment_id, order_by=("revision",))
    except IntegrityError:
        raise EditConflict("comment was changed by another request") from None

    audit.record_event(
        ctx,
        audit.VISIT_NOTE_COMMENT_EDITED,
        audit.ENTITY_COMMENT,
        comment_id,
        {
            "visit_note_id": note_id,
            "revision": int(revs[-1]["revision"]),
            "mentions": mentions,
            "new_mentions": [m for m in mentions if m not in previous],
        },
    )
    return _to_comment(revs)


def delete_comment(ctx: AuthContext, note_id: str, comment_id: str) -> Dict[str, Any]:
    visit_notes.get_submission(ctx, note_id)
    try:
        with transaction() as conn:
            revs = _load_chain(conn, ctx, note_id, comment_id)
            latest = revs[-1]
            if latest["author_id"] != ctx.actor_id and ctx.role not in MODERATOR_ROLES:
                raise Forbidden()
            revision = int(latest["revision"]) + 1
            _append(conn, ctx, latest, revision, "", [], deleted=True)
    except IntegrityError:
        raise EditConflict("comment was changed by another request") from None

    audit.record_event(
        ctx,
        audit.VISIT_NOTE_COMMENT_DELETED,
        audit.ENTITY_COMMENT,
        comment_id,
        {"visit_note_id": note_id, "revision": revision, "author_id": latest["author_id"]},
    )
    return {"id": comment_id, "deleted": True}


def list_mentions(ctx: AuthContext, limit: int, offset: int) -> Tuple[List[Dict[str, Any]], int]:
    """Live comments in the caller's organization whose current revision mentions the caller, newest first."""
    tbl = table(TABLE)
    needle = json.dumps(ctx.actor_id)
    with transaction() as conn:
        hits = select_rows(
            conn,
            TABLE,
            tbl.c.organization_id == ctx.organization_id,
            tbl.c.mentions_json.contains(needle),
        )
        ids = sorted({r["comment_id"] for r in hits})
        rows = select_rows(conn, TABLE, tbl.c.comment_id.in_(ids)) if ids else []

    live = [c for c in _live(_chains(rows)) if ctx.actor_id in c["mentions"]]
    live.reverse()
    return live[offset : offset + limit], len(live)
