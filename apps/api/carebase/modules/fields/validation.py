from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from .registry import get_kind
from .types import is_empty, iter_fields, normalize_field, parse_config

REQUIRED_MESSAGE = "This field is required"
UNKNOWN_FIELD_MESSAGE = "Unknown field"
UNSUPPORTED_TYPE_MESSAGE = "Unsupported field type"


def validate_value(field: Any, value: Any) -> Optional[str]:
    f = normalize_field(field)
    kind = get_kind(f["type"])
    empty = kind.is_empty(value) if kind is not None else is_empty(value)
    if empty:
        return REQUIRED_MESSAGE if f["required"] else None
    if kind is None:
        return UNSUPPORTED_TYPE_MESSAGE
    return kind.check(value, parse_config(f["config"]))


def validate(schema: Any, data: Mapping[str, Any]) -> Dict[str, str]:
    """
    Check answers against a template or schema snapshot.

    Returns {field_id: message}; empty means valid. Fields are walked in
    document order, so the map's insertion order matches the form. Keys
    in `data` that are not fields of the schema are reported too.
    `data` is never modified.
    """
    errors: Dict[str, str] = {}
    known = set()
    for f in iter_fields(schema):
        known.add(f["id"])
        msg = validate_value(f, data.get(f["id"]))
        if msg is not None:
            errors[f["id"]] = msg
    for key in data:
        if key not in known:
            errors[str(key)] = UNKNOWN_FIELD_MESSAGE
    return errors


def validate_config(type_key: Any, config: Any) -> Optional[str]:
    """Authoring-time config check for a field of the given type."""
    kind = get_kind(type_key)
    if kind is None:
        return f"Unknown field type: {type_key}"
    if not isinstance(config, (Mapping, type(None))):
        return "Config must be an object"
    return kind.check_config(parse_config(config))
