from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query

from carebase.core.auth import AuthContext, auth_context
from carebase.core.config import clamp_limit, clamp_offset
from carebase.modules.templates.schemas import PageOut

from .schemas import CommentDeletedOut, CommentIn, CommentOut, CommentPatchIn, CommentsListOut, MentionsListOut
from .service import add_comment, delete_comment, edit_comment, list_comments, list_mentions

router = APIRouter(tags=["comments"])


@router.get("/visit-notes/{note_id}/comments", response_model=CommentsListOut)
def api_list_comments(note_id: str = Path(...), ctx: AuthContext = Depends(auth_context)) -> CommentsListOut:
    return CommentsListOut(items=list_comments(ctx, note_id))


@router.post("/visit-notes/{note_id}/comments", response_model=CommentOut, status_code=201)
def api_add_comment(body: CommentIn, note_id: str = Path(...), ctx: AuthContext = Depends(auth_context)) -> CommentOut:
    return add_comment(ctx, note_id, body.content)


@router.patch("/visit-notes/{note_id}/comments/{comment_id}", response_model=CommentOut)
def api_edit_comment(
    body: CommentPatchIn,
    note_id: str = Path(...),
    comment_id: str = Path(...),
    ctx: AuthContext = Depends(auth_context),
) -> CommentOut:
    return edit_comment(ctx, note_id, comment_id, body.content, expected_revision=body.expected_revision)


@router.delete("/visit-notes/{note_id}/comments/{comment_id}", response_model=CommentDeletedOut)
def api_delete_comment(
    note_id: str = Path(...),
    comment_id: str = Path(...),
    ctx: AuthContext = Depends(auth_context),
) -> CommentDeletedOut:
    return delete_comment(ctx, note_id, comment_id)


@router.get("/comments/mentions", response_model=MentionsListOut)
def api_list_mentions(
    limit: int | None = Query(None),
    offset: int | None = Query(None),
    ctx: AuthContext = Depends(auth_context),
) -> MentionsListOut:
    lim = clamp_limit(limit)
    off = clamp_offset(offset)
    items, total = list_mentions(ctx, limit=lim, offset=off)
    return MentionsListOut(items=items, page=PageOut(offset=off, limit=lim, total=total, has_more=(off + lim) < total))
