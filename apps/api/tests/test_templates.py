from __future__ import annotations

import pytest

from carebase.core.errors import EditConflict, Forbidden, NotFound, PublishRejected, ValidationFailed
from carebase.modules.audit import service as audit
from carebase.modules.templates import service as templates

from conftest import daily_sections


def test_create_draft_starts_at_version_one(db, manager) -> None:
    t = templates.create_draft(manager, name="Daily", sections=daily_sections())
    assert t["version"] == 1
    assert t["status"] == "DRAFT"
    assert t["locked_types"] == {}
    assert [s["id"] for s in t["sections"]] == ["s_visit", "s_status"]


def test_carer_cannot_author(db, carer) -> None:
    with pytest.raises(Forbidden):
        templates.create_draft(carer, name="Nope")


def test_invalid_field_config_is_rejected(db, manager) -> None:
    sections = [{"title": "S", "fields": [{"id": "f_bad", "label": "Pick", "type": "SINGLE_CHOICE", "config": {"options": []}}]}]
    with pytest.raises(ValidationFailed) as ei:
        templates.create_draft(manager, name="Bad", sections=sections)
    assert "f_bad" in ei.value.errors


def test_publish_rejects_bad_structure(db, manager) -> None:
    t = templates.create_draft(manager, name="Empty")
    with pytest.raises(PublishRejected):
        templates.publish(manager, t["id"])

    t = templates.create_draft(manager, name="Hollow", sections=[{"title": "Nothing here", "fields": []}])
    with pytest.raises(PublishRejected) as ei:
        templates.publish(manager, t["id"])
    assert "empty_sections" in ei.value.details


def test_publish_rejects_duplicate_field_ids(db, manager) -> None:
    sections = daily_sections()
    sections[1]["fields"][0]["id"] = "f_mood"
    sections[1]["fields"][0]["type"] = "SINGLE_CHOICE"
    sections[1]["fields"][0]["config"] = {"options": ["x"]}
    t = templates.create_draft(manager, name="Dupes", sections=sections)
    with pytest.raises(PublishRejected) as ei:
        templates.publish(manager, t["id"])
    assert ei.value.details["duplicate_field_ids"] == ["f_mood"]


def test_publish_locks_types_and_audits(db, manager) -> None:
    t = templates.create_draft(manager, name="Daily", sections=daily_sections())
    out = templates.publish(manager, t["id"])
    assert out["status"] == "ACTIVE"
    assert out["published_at"]
    assert out["locked_types"]["f_mood"] == "SINGLE_CHOICE"

    events, _ = audit.list_events(manager, limit=50, offset=0, entity_id=t["id"])
    assert audit.FORM_TEMPLATE_PUBLISHED in [e["action"] for e in events]


def test_publish_with_stale_row_version_conflicts(db, manager) -> None:
    t = templates.create_draft(manager, name="Daily", sections=daily_sections())
    stale = t["row_version"]
    templates.update_metadata(manager, t["id"], name="Daily v1")
    with pytest.raises(EditConflict):
        templates.publish(manager, t["id"], expected_row_version=stale)
    assert templates.publish(manager, t["id"], expected_row_version=stale + 1)["status"] == "ACTIVE"


def test_structural_edits_need_a_draft(db, manager, active_template) -> None:
    tid = active_template["id"]
    with pytest.raises(EditConflict):
        templates.add_section(manager, tid, {"title": "More", "fields": []})
    with pytest.raises(EditConflict):
        templates.add_field(manager, tid, "s_visit", {"label": "x", "type": "TEXT_SHORT"})
    with pytest.raises(EditConflict):
        templates.remove_field(manager, tid, "f_notes")
    with pytest.raises(EditConflict):
        templates.reorder_fields(manager, tid, "s_visit", ["f_notes", "f_mood"])


def test_active_edits_are_limited(db, manager, active_template) -> None:
    tid = active_template["id"]
    v = active_template["version"]

    out = templates.update_field(manager, tid, "f_mood", {"label": "Client mood", "config": {"options": ["Happy", "Sad", "Calm"]}})
    assert out["version"] == v + 1
    mood = out["sections"][0]["fields"][0]
    assert mood["label"] == "Client mood"
    assert mood["config"]["options"] == ["Happy", "Sad", "Calm"]

    with pytest.raises(EditConflict):
        templates.update_field(manager, tid, "f_mood", {"type": "TEXT_SHORT"})
    with pytest.raises(EditConflict):
        templates.update_field(manager, tid, "f_mood", {"required": False})
    with pytest.raises(EditConflict):
        templates.update_field(manager, tid, "f_mood", {"config": {"options": ["Happy"]}})

    out = templates.update_field(manager, tid, "f_notes", {"config": {"placeholder": "Anything else?"}})
    assert out["sections"][0]["fields"][1]["config"] == {"maxLength": 50, "placeholder": "Anything else?"}


def test_type_lock_survives_reopen(db, manager, active_template) -> None:
    tid = active_template["id"]
    draft = templates.reopen(manager, tid)
    assert draft["status"] == "DRAFT"

    with pytest.raises(EditConflict):
        templates.update_field(manager, tid, "f_ate", {"type": "TEXT_SHORT"})

    # a removed field id cannot come back with another type either
    templates.remove_field(manager, tid, "f_notes")
    with pytest.raises(EditConflict):
        templates.add_field(manager, tid, "s_visit", {"id": "f_notes", "label": "Notes", "type": "NUMBER"})

    # unpublished fields stay free to change
    templates.add_field(manager, tid, "s_visit", {"id": "f_new", "label": "New", "type": "TEXT_SHORT"})
    changed = templates.update_field(manager, tid, "f_new", {"type": "NUMBER"})
    assert [f for f in changed["sections"][0]["fields"] if f["id"] == "f_new"][0]["type"] == "NUMBER"

    republished = templates.publish(manager, tid)
    assert republished["version"] == active_template["version"] + 1


def test_draft_edits(db, manager) -> None:
    t = templates.create_draft(manager, name="Daily", sections=daily_sections())
    t = templates.add_section(manager, t["id"], {"title": "Sign-off", "fields": [{"id": "f_sig", "label": "Signature", "type": "SIGNATURE", "required": True}]})
    assert t["sections"][-1]["title"] == "Sign-off"
    assert t["sections"][-1]["order"] == 2

    t = templates.reorder_fields(manager, t["id"], "s_visit", ["f_notes", "f_mood"])
    assert [f["id"] for f in t["sections"][0]["fields"]] == ["f_notes", "f_mood"]

    with pytest.raises(ValidationFailed):
        templates.reorder_fields(manager, t["id"], "s_visit", ["f_notes"])
    with pytest.raises(ValidationFailed):
        templates.add_field(manager, t["id"], "s_visit", {"id": "f_sig", "label": "Again", "type": "TEXT_SHORT"})
    with pytest.raises(NotFound):
        templates.remove_field(manager, t["id"], "f_missing")


def test_superseding_draft_archives_predecessor(db, manager, active_template) -> None:
    nxt = templates.create_draft(manager, name="Daily (rev)", base_template_id=active_template["id"])
    assert nxt["version"] == active_template["version"] + 1
    assert nxt["lineage_id"] == active_template["lineage_id"]
    assert nxt["supersedes_id"] == active_template["id"]
    assert [s["id"] for s in nxt["sections"]] == ["s_visit", "s_status"]

    # the predecessor stays live until the successor is published
    assert templates.get_template(manager, active_template["id"])["status"] == "ACTIVE"
    templates.publish(manager, nxt["id"])
    prev = templates.get_template(manager, active_template["id"])
    assert prev["status"] == "ARCHIVED"
    assert prev["is_enabled"] is False


def test_archive(db, manager, active_template) -> None:
    out = templates.archive(manager, active_template["id"])
    assert out["status"] == "ARCHIVED"
    assert out["is_enabled"] is False
    with pytest.raises(EditConflict):
        templates.archive(manager, active_template["id"])
    with pytest.raises(EditConflict):
        templates.update_metadata(manager, active_template["id"], name="x")


def test_list_enabled_is_active_enabled_by_name(db, manager, carer) -> None:
    for name in ("Zeta", "Alpha", "Mid"):
        t = templates.create_draft(manager, name=name, sections=daily_sections())
        templates.publish(manager, t["id"])
    hidden = templates.create_draft(manager, name="Beta", sections=daily_sections())
    templates.publish(manager, hidden["id"], enable=False)
    templates.create_draft(manager, name="Draft only", sections=daily_sections())

    assert [t["name"] for t in templates.list_enabled(carer)] == ["Alpha", "Mid", "Zeta"]


def test_carer_cannot_see_drafts(db, manager, carer) -> None:
    t = templates.create_draft(manager, name="Daily", sections=daily_sections())
    with pytest.raises(NotFound):
        templates.get_template(carer, t["id"])


def test_other_organization_sees_nothing(db, outsider, active_template) -> None:
    with pytest.raises(NotFound):
        templates.get_template(outsider, active_template["id"])
    with pytest.raises(NotFound):
        templates.archive(outsider, active_template["id"])
    assert templates.list_enabled(outsider) == []


def test_list_templates_filters(db, manager, active_template) -> None:
    templates.create_draft(manager, name="Medication round", sections=daily_sections())
    items, total = templates.list_templates(manager, limit=10, offset=0, status="draft")
    assert total == 1 and items[0]["name"] == "Medication round"
    items, total = templates.list_templates(manager, limit=10, offset=0, search="daily")
    assert total == 1 and items[0]["id"] == active_template["id"]


def test_starters(db, manager) -> None:
    starters = {s["id"]: s for s in templates.list_starters(manager)}
    assert set(starters) == {"basic-visit-notes", "medication-check", "personal-care"}
    assert starters["basic-visit-notes"]["fields_count"] == 7

    t = templates.create_from_starter(manager, "medication-check")
    assert t["status"] == "DRAFT"
    assert t["is_enabled"] is False
    assert [s["title"] for s in t["sections"]] == ["Medication Administration", "Client Response"]
    assert templates.publish(manager, t["id"], enable=True)["is_enabled"] is True

    with pytest.raises(NotFound):
        templates.create_from_starter(manager, "nope")


def _lineage(manager, template) -> dict:
    items, _ = templates.list_templates(manager, limit=50, offset=0)
    return {t["id"]: t for t in items if t["lineage_id"] == template["lineage_id"]}


def test_successor_published_after_in_place_edit_moves_above_it(db, manager, active_template) -> None:
    draft = templates.create_draft(manager, name="Daily (rev)", base_template_id=active_template["id"])
    assert draft["version"] == 2

    # the live base takes the next number while the draft is still open
    edited = templates.update_field(manager, active_template["id"], "f_mood", {"label": "Client mood"})
    assert edited["version"] == 3

    published = templates.publish(manager, draft["id"])
    assert published["version"] == 4

    lineage = _lineage(manager, active_template)
    assert lineage[active_template["id"]]["status"] == "ARCHIVED"
    assert [t["id"] for t in lineage.values() if t["status"] == "ACTIVE"] == [draft["id"]]


def test_out_of_order_publish_keeps_versions_increasing(db, manager, active_template) -> None:
    first = templates.create_draft(manager, name="Rev A", base_template_id=active_template["id"])
    second = templates.create_draft(manager, name="Rev B", base_template_id=active_template["id"])
    assert (first["version"], second["version"]) == (2, 3)

    b = templates.publish(manager, second["id"])
    assert b["version"] == 3
    a = templates.publish(manager, first["id"])
    assert a["version"] > b["version"]

    lineage = _lineage(manager, active_template)
    assert [t["id"] for t in lineage.values() if t["status"] == "ACTIVE"] == [first["id"]]
    assert lineage[second["id"]]["status"] == "ARCHIVED"
    assert lineage[active_template["id"]]["status"] == "ARCHIVED"

    events, _ = audit.list_events(manager, limit=10, offset=0, entity_id=first["id"], action=audit.FORM_TEMPLATE_PUBLISHED)
    assert events[0]["details"]["superseded_ids"] == [second["id"]]


def test_unknown_field_type_is_a_validation_error(db, manager, active_template) -> None:
    with pytest.raises(ValidationFailed) as ei:
        templates.update_field(manager, active_template["id"], "f_mood", {"type": "HOLOGRAM"})
    assert ei.value.errors == {"f_mood": "Unknown field type"}

    draft = templates.create_draft(manager, name="Daily", sections=daily_sections())
    with pytest.raises(ValidationFailed) as ei:
        templates.update_field(manager, draft["id"], "f_notes", {"type": "HOLOGRAM"})
    assert ei.value.errors == {"f_notes": "Unknown field type"}

    sections = [{"title": "S", "fields": [{"id": "f_x", "label": "X", "type": "HOLOGRAM"}]}]
    with pytest.raises(ValidationFailed) as ei:
        templates.create_draft(manager, name="Bad", sections=sections)
    assert ei.value.errors == {"f_x": "Unknown field type"}


def test_lost_row_version_race_conflicts_without_audit(db, manager, active_template, monkeypatch) -> None:
    tid = active_template["id"]
    templates.update_metadata(manager, tid, name="Daily Visit v2")
    real_get_row = templates.get_row

    def stale_get_row(conn, name, record_id):
        row = real_get_row(conn, name, record_id)
        if row is not None and name == templates.TABLE and record_id == tid:
            # as read by a writer that lost the race
            row["row_version"] = int(row["row_version"]) - 1
        return row

    with monkeypatch.context() as m:
        m.setattr("carebase.modules.templates.service.get_row", stale_get_row)
        with pytest.raises(EditConflict):
            templates.update_metadata(manager, tid, name="Daily Visit v3")

    assert templates.get_template(manager, tid)["name"] == "Daily Visit v2"
    events, _ = audit.list_events(manager, limit=20, offset=0, entity_id=tid, action=audit.FORM_TEMPLATE_UPDATED)
    assert len(events) == 1
