from __future__ import annotations

import copy
import random
from typing import Any, Dict, List

import pytest

from carebase.modules.fields.types import FieldType
from carebase.modules.fields.validation import REQUIRED_MESSAGE, UNKNOWN_FIELD_MESSAGE, validate
from carebase.modules.visit_notes.snapshot import build_snapshot

from conftest import daily_sections


def _schema(required: bool, type_key: str = "TEXT_SHORT", config: Dict[str, Any] | None = None) -> Dict[str, Any]:
    return {
        "sections": [
            {"id": "s1", "title": "S", "fields": [{"id": "f1", "label": "F", "type": type_key, "required": required, "config": config or {}}]}
        ]
    }


@pytest.mark.parametrize("empty", [None, "", []])
def test_required_empty_is_reported(empty) -> None:
    assert validate(_schema(True), {"f1": empty}) == {"f1": REQUIRED_MESSAGE}


def test_required_missing_key_is_reported() -> None:
    assert validate(_schema(True), {}) == {"f1": REQUIRED_MESSAGE}


@pytest.mark.parametrize("empty", [None, "", []])
def test_optional_empty_is_fine(empty) -> None:
    assert validate(_schema(False), {"f1": empty}) == {}


def test_false_and_zero_satisfy_required() -> None:
    assert validate(_schema(True, "YES_NO"), {"f1": False}) == {}
    assert validate(_schema(True, "NUMBER"), {"f1": 0}) == {}
    assert validate(_schema(True, "RATING_SCALE", {"min": 0, "max": 5}), {"f1": 0}) == {}


def test_unknown_keys_are_reported() -> None:
    assert validate(_schema(False), {"f1": "ok", "stray": 1}) == {"stray": UNKNOWN_FIELD_MESSAGE}


def test_errors_follow_document_order() -> None:
    schema = {"sections": daily_sections()}
    # declared order is mood, notes, ate, rating; flip section order to check it is honoured
    schema["sections"][0]["order"] = 1
    schema["sections"][1]["order"] = 0
    errors = validate(schema, {})
    assert list(errors) == ["f_ate", "f_mood"]


def test_template_and_snapshot_validate_identically() -> None:
    template = {"id": "t1", "name": "Daily", "version": 3, "sections": daily_sections()}
    snap = build_snapshot(template)
    data = {"f_mood": "Angry", "f_ate": "yes", "f_rating": 9}
    assert validate(template, data) == validate(snap, data)


def test_data_is_not_mutated() -> None:
    data = {"f_mood": "Happy", "f_notes": "x" * 80, "f_ate": True, "extra": [1, 2]}
    before = copy.deepcopy(data)
    validate({"sections": daily_sections()}, data)
    assert data == before


# --- generated cases ---

_SAMPLES: Dict[str, List[Any]] = {
    "TEXT_SHORT": ["", "hi", "x" * 30, 5, None],
    "TEXT_LONG": ["", "a longer note", None, True],
    "NUMBER": [0, -3, 7.5, "7", None, False],
    "YES_NO": [True, False, None, "no", 0],
    "SINGLE_CHOICE": ["a", "b", "zz", None, "", ["a"]],
    "MULTIPLE_CHOICE": [[], ["a"], ["a", "b"], ["q"], "a", None],
    "DATE": ["2026-01-05", "2026-13-40", "soon", None],
    "TIME": ["09:00", "9am", None, ""],
    "DATETIME": ["2026-01-05T09:00:00Z", "nope", None],
    "SIGNATURE": ["iVBORw0KGgo=", "data:image/png;base64,AAAA", "bad data!", None, {"file_url": "storage://x"}],
    "PHOTO": [{"fileUrl": "https://x/y.png"}, {}, None, 3],
    "RATING_SCALE": [0, 1, 5, 6, 2.5, None],
}

_CONFIGS: Dict[str, Dict[str, Any]] = {
    "TEXT_SHORT": {"maxLength": 10},
    "NUMBER": {"min": -5, "max": 10},
    "SINGLE_CHOICE": {"options": ["a", "b"]},
    "MULTIPLE_CHOICE": {"options": ["a", "b"]},
    "RATING_SCALE": {"min": 1, "max": 5},
}


def _random_case(seed: int):
    rng = random.Random(seed)
    types = [t.value for t in FieldType]
    fields = []
    data: Dict[str, Any] = {}
    for i in range(rng.randint(1, 8)):
        t = rng.choice(types)
        fid = f"f{i}"
        fields.append({"id": fid, "label": fid, "type": t, "required": rng.random() < 0.5, "order": rng.randint(0, 3), "config": _CONFIGS.get(t, {})})
        if rng.random() < 0.8:
            data[fid] = rng.choice(_SAMPLES[t])
    if rng.random() < 0.2:
        data["ghost"] = "boo"
    schema = {"sections": [{"id": "s", "title": "S", "fields": fields}]}
    return schema, data, fields


@pytest.mark.parametrize("seed", range(60))
def test_validate_properties(seed: int) -> None:
    schema, data, fields = _random_case(seed)
    before = copy.deepcopy(data)

    first = validate(schema, data)
    second = validate(schema, copy.deepcopy(data))

    # deterministic, pure
    assert first == second
    assert data == before

    by_id = {f["id"]: f for f in fields}
    for f in fields:
        value = data.get(f["id"])
        empty = value is None or value == "" or value == []
        if f["required"] and empty:
            assert first[f["id"]] == REQUIRED_MESSAGE
        if not f["required"] and empty:
            assert f["id"] not in first
    for key in first:
        assert key in by_id or first[key] == UNKNOWN_FIELD_MESSAGE
    assert ("ghost" in first) == ("ghost" in data)
