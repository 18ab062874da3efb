from __future__ import annotations

import pytest

from carebase.modules.fields.registry import REGISTRY, get_kind, long_date, parse_date
from carebase.modules.fields.types import FieldConfig, FieldType, in_display_order, is_empty, parse_config


def test_every_field_type_has_a_kind() -> None:
    assert set(REGISTRY) == set(FieldType)
    for t, kind in REGISTRY.items():
        assert kind.type is t
        assert kind.widget


def test_get_kind_accepts_strings_and_rejects_unknown() -> None:
    assert get_kind("NUMBER") is REGISTRY[FieldType.NUMBER]
    assert get_kind(FieldType.PHOTO) is REGISTRY[FieldType.PHOTO]
    assert get_kind("HOLOGRAM") is None


@pytest.mark.parametrize("value", [None, "", []])
def test_empty_values(value) -> None:
    assert is_empty(value)


@pytest.mark.parametrize("value", [False, 0, 0.0, "x", ["a"], {"file_url": "storage://a"}])
def test_non_empty_values(value) -> None:
    assert not is_empty(value)


def test_config_keeps_unknown_keys() -> None:
    cfg = parse_config({"maxLength": 10, "colour": "blue"})
    assert cfg.max_length == 10
    assert cfg.model_extra == {"colour": "blue"}
    assert isinstance(parse_config(None), FieldConfig)


def test_config_with_malformed_known_keys_keeps_extras() -> None:
    cfg = parse_config({"maxLength": "abc", "colour": "blue"})
    assert cfg.max_length is None
    assert cfg.model_extra == {"colour": "blue"}


def test_number_coerce() -> None:
    kind = REGISTRY[FieldType.NUMBER]
    assert kind.coerce("") is None
    assert kind.coerce("3.5") == 3.5
    assert kind.coerce("4") == 4
    assert kind.coerce(7) == 7


@pytest.mark.parametrize(
    "type_key,value,config,expected",
    [
        ("TEXT_SHORT", 12, {}, "Must be text"),
        ("TEXT_SHORT", "abcdef", {"maxLength": 5}, "Maximum 5 characters"),
        ("NUMBER", "12", {}, "Must be a number"),
        ("NUMBER", True, {}, "Must be a number"),
        ("NUMBER", 1, {"min": 2}, "Minimum value is 2"),
        ("NUMBER", 11, {"max": 10}, "Maximum value is 10"),
        ("YES_NO", "yes", {}, "Must be yes or no"),
        ("SINGLE_CHOICE", 1, {"options": ["a"]}, "Must select an option"),
        ("SINGLE_CHOICE", "b", {"options": ["a"]}, "Invalid option selected"),
        ("MULTIPLE_CHOICE", "a", {"options": ["a"]}, "Must be an array of selections"),
        ("MULTIPLE_CHOICE", ["a", "z"], {"options": ["a"]}, "Invalid options selected"),
        ("DATE", "05/01/2026", {}, "Invalid date format"),
        ("TIME", "9:30", {}, "Invalid time format"),
        ("DATETIME", "yesterday", {}, "Invalid date/time format"),
        ("RATING_SCALE", 2.5, {"min": 1, "max": 5}, "Must be a rating number"),
        ("RATING_SCALE", 6, {"min": 1, "max": 5}, "Rating must be between 1 and 5"),
        ("SIGNATURE", "not base64!", {}, "Invalid file data"),
        ("PHOTO", "abc", {}, "Invalid file data"),
        ("SIGNATURE", "data:image/png;base64,", {}, "Invalid file data"),
        ("PHOTO", {"file_name": "a.png"}, {}, "Invalid file"),
    ],
)
def test_check_messages(type_key, value, config, expected) -> None:
    kind = get_kind(type_key)
    assert kind.check(value, parse_config(config)) == expected


@pytest.mark.parametrize(
    "type_key,value,config",
    [
        ("TEXT_LONG", "hello", {"maxLength": 5}),
        ("NUMBER", 2.5, {"min": 1, "max": 3}),
        ("YES_NO", False, {}),
        ("SINGLE_CHOICE", "b", {"options": [{"value": "b", "label": "Bee"}]}),
        ("MULTIPLE_CHOICE", ["a"], {"options": ["a", "b"]}),
        ("DATE", "2026-01-05", {}),
        ("DATE", "2026-01-05T10:00:00Z", {}),
        ("TIME", "09:30", {}),
        ("TIME", "09:30:15", {}),
        ("DATETIME", "2026-01-05T10:00:00Z", {}),
        ("SIGNATURE", "iVBORw0KGgo=", {}),
        ("SIGNATURE", "data:image/png;base64,iVBORw0KGgo=", {}),
        ("PHOTO", {"fileUrl": "https://files.example/p.jpg", "fileSize": 10}, {}),
        ("RATING_SCALE", 0, {"min": 0, "max": 10}),
    ],
)
def test_check_accepts(type_key, value, config) -> None:
    assert get_kind(type_key).check(value, parse_config(config)) is None


@pytest.mark.parametrize(
    "type_key,config,ok",
    [
        ("SINGLE_CHOICE", {"options": []}, False),
        ("MULTIPLE_CHOICE", {"options": ["a", ""]}, False),
        ("SINGLE_CHOICE", {"options": ["a"]}, True),
        ("RATING_SCALE", {"min": 1, "max": 5}, True),
        ("RATING_SCALE", {"min": 5, "max": 5}, False),
        ("RATING_SCALE", {"min": 0, "max": 11}, False),
        ("RATING_SCALE", {"min": 1.5, "max": 5}, False),
        ("RATING_SCALE", {}, False),
        ("NUMBER", {"min": 3, "max": 1}, False),
        ("NUMBER", {}, True),
        ("TEXT_SHORT", {"maxLength": 0}, False),
        ("TEXT_SHORT", {"placeholder": "x"}, True),
    ],
)
def test_config_checks(type_key, config, ok) -> None:
    kind = get_kind(type_key)
    assert (kind.check_config(parse_config(config)) is None) is ok


def test_display_order_breaks_ties_by_declaration() -> None:
    items = [{"id": "a", "order": 1}, {"id": "b", "order": 0}, {"id": "c", "order": 1}]
    assert [i["id"] for i in in_display_order(items)] == ["b", "a", "c"]


def test_long_date() -> None:
    assert long_date(parse_date("2026-01-05")) == "Monday, January 5, 2026"
