from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field

from carebase.modules.templates.schemas import PageOut


class CommentIn(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


class CommentPatchIn(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    expected_revision: Optional[int] = None


class CommentOut(BaseModel):
    id: str
    visit_note_id: str
    author_id: str
    author_role: str
    content: str
    mentions: List[str] = Field(default_factory=list)
    revision: int
    edited: bool = False
    created_at: str
    updated_at: str


class CommentsListOut(BaseModel):
    items: List[CommentOut]


class MentionsListOut(BaseModel):
    items: List[CommentOut]
    page: PageOut


class CommentDeletedOut(BaseModel):
    id: str
    deleted: bool = True
