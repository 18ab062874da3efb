from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DatabaseError

from carebase.core.db import get_engine
from carebase.core.errors import EditConflict, Forbidden, NotFound, ValidationFailed
from carebase.modules.audit import service as audit
from carebase.modules.comments import service as comments
from carebase.modules.visit_notes import service as visit_notes

GOOD = {"f_mood": "Happy", "f_ate": True}


@pytest.fixture()
def note(db, carer, active_template):
    return visit_notes.submit(carer, template_id=active_template["id"], client_id="client-1", shift_id="shift-1", data=GOOD)


def test_parse_mentions_dedupes_in_order() -> None:
    content = "Hi @[Sam Lee](carer-2), see @[Ops](mgr-1) and @[Sam Lee](carer-2) again. Not @this or @[x]()"
    assert comments.parse_mentions(content) == ["carer-2", "mgr-1"]
    assert comments.parse_mentions("") == []


def test_add_and_list(db, manager, carer, note) -> None:
    c = comments.add_comment(carer, note["id"], "Client asked for @[Ops](mgr-1)")
    assert c["author_id"] == "carer-1"
    assert c["mentions"] == ["mgr-1"]
    assert c["revision"] == 1 and c["edited"] is False

    listed = comments.list_comments(manager, note["id"])
    assert [x["id"] for x in listed] == [c["id"]]

    events, _ = audit.list_events(manager, limit=10, offset=0, entity_id=c["id"])
    assert [e["action"] for e in events] == [audit.VISIT_NOTE_COMMENT_ADDED]
    assert events[0]["details"] == {"visit_note_id": note["id"], "mentions": ["mgr-1"]}


def test_empty_comment_is_rejected(db, carer, note) -> None:
    with pytest.raises(ValidationFailed) as ei:
        comments.add_comment(carer, note["id"], "   ")
    assert ei.value.errors == {"content": "Comment cannot be empty"}
    with pytest.raises(ValidationFailed):
        comments.add_comment(carer, note["id"], "x" * (comments.MAX_CONTENT + 1))


def test_comments_follow_note_visibility(db, other_carer, outsider, note) -> None:
    with pytest.raises(NotFound):
        comments.add_comment(other_carer, note["id"], "not my note")
    with pytest.raises(NotFound):
        comments.list_comments(outsider, note["id"])
    with pytest.raises(NotFound):
        comments.list_comments(other_carer, "missing")


def test_edit_is_author_only_and_recomputes_mentions(db, manager, carer, note) -> None:
    c = comments.add_comment(carer, note["id"], "ping @[Ops](mgr-1)")

    with pytest.raises(Forbidden):
        comments.edit_comment(manager, note["id"], c["id"], "rewritten")

    edited = comments.edit_comment(carer, note["id"], c["id"], "ping @[Sam](carer-2) instead", expected_revision=1)
    assert edited["id"] == c["id"]
    assert edited["revision"] == 2 and edited["edited"] is True
    assert edited["mentions"] == ["carer-2"]
    assert edited["created_at"] == c["created_at"]

    with pytest.raises(EditConflict):
        comments.edit_comment(carer, note["id"], c["id"], "late", expected_revision=1)

    events, _ = audit.list_events(manager, limit=10, offset=0, entity_id=c["id"], action=audit.VISIT_NOTE_COMMENT_EDITED)
    assert events[0]["details"]["new_mentions"] == ["carer-2"]


def test_delete_by_author_or_moderator(db, manager, carer, note) -> None:
    mine = comments.add_comment(carer, note["id"], "mine")
    theirs = comments.add_comment(manager, note["id"], "from the office")

    with pytest.raises(Forbidden):
        comments.delete_comment(carer, note["id"], theirs["id"])

    assert comments.delete_comment(manager, note["id"], mine["id"]) == {"id": mine["id"], "deleted": True}
    assert [x["id"] for x in comments.list_comments(manager, note["id"])] == [theirs["id"]]

    with pytest.raises(NotFound):
        comments.delete_comment(manager, note["id"], mine["id"])
    with pytest.raises(NotFound):
        comments.edit_comment(carer, note["id"], mine["id"], "back again")

    events, _ = audit.list_events(manager, limit=10, offset=0, entity_id=mine["id"], action=audit.VISIT_NOTE_COMMENT_DELETED)
    assert events[0]["actor_id"] == "mgr-1"
    assert events[0]["details"]["author_id"] == "carer-1"


def test_comment_on_wrong_note_is_not_found(db, manager, carer, active_template, note) -> None:
    other = visit_notes.submit(carer, template_id=active_template["id"], client_id="c2", shift_id="s2", data=GOOD)
    c = comments.add_comment(carer, note["id"], "here")
    with pytest.raises(NotFound):
        comments.edit_comment(carer, other["id"], c["id"], "moved")


def test_concurrent_edit_of_same_revision_conflicts(db, carer, note, monkeypatch) -> None:
    c = comments.add_comment(carer, note["id"], "first")
    comments.edit_comment(carer, note["id"], c["id"], "second")
    real_select = comments.select_rows

    def stale_select(conn, name, *criteria, **kw):
        rows = real_select(conn, name, *criteria, **kw)
        # as read by a writer that missed the latest revision
        return rows[:-1] if kw.get("order_by") == ("revision",) and len(rows) > 1 else rows

    with monkeypatch.context() as m:
        m.setattr("carebase.modules.comments.service.select_rows", stale_select)
        with pytest.raises(EditConflict):
            comments.edit_comment(carer, note["id"], c["id"], "third")

    [current] = comments.list_comments(carer, note["id"])
    assert current["content"] == "second"
    assert current["revision"] == 2


def test_list_mentions_tracks_current_revision(db, manager, carer, other_carer, note) -> None:
    c = comments.add_comment(carer, note["id"], "cc @[Sam](carer-2)")
    comments.add_comment(carer, note["id"], "cc @[Ops](mgr-1)")

    items, total = comments.list_mentions(other_carer, limit=10, offset=0)
    assert total == 1 and items[0]["id"] == c["id"]

    comments.edit_comment(carer, note["id"], c["id"], "never mind")
    assert comments.list_mentions(other_carer, limit=10, offset=0) == ([], 0)

    items, total = comments.list_mentions(manager, limit=10, offset=0)
    assert total == 1 and items[0]["mentions"] == ["mgr-1"]


def test_comment_rows_are_append_only(db, carer, note) -> None:
    c = comments.add_comment(carer, note["id"], "kept")
    with pytest.raises(DatabaseError):
        with get_engine().begin() as conn:
            conn.execute(text("UPDATE visit_note_comments SET content = 'x' WHERE comment_id = :id"), {"id": c["id"]})
    with pytest.raises(DatabaseError):
        with get_engine().begin() as conn:
            conn.execute(text("DELETE FROM visit_note_comments WHERE comment_id = :id"), {"id": c["id"]})
