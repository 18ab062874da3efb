from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class FieldType(str, Enum):
    TEXT_SHORT = "TEXT_SHORT"
    TEXT_LONG = "TEXT_LONG"
    NUMBER = "NUMBER"
    YES_NO = "YES_NO"
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    DATE = "DATE"
    TIME = "TIME"
    DATETIME = "DATETIME"
    SIGNATURE = "SIGNATURE"
    PHOTO = "PHOTO"
    RATING_SCALE = "RATING_SCALE"


FILE_TYPES = frozenset({FieldType.SIGNATURE, FieldType.PHOTO})


class FieldConfig(BaseModel):
    """
    Type-specific parameters of a field.

    Keys a given type does not use are kept as extras and ignored.
    `maxLength` is the wire name of max_length.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    options: Optional[List[Any]] = None
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None
    placeholder: Optional[str] = None
    max_length: Optional[int] = Field(default=None, alias="maxLength")
    labels: Optional[Dict[Any, Any]] = None


_TYPED_KEYS = frozenset({"options", "min", "max", "step", "placeholder", "maxLength", "max_length", "labels"})


def parse_config(raw: Any) -> FieldConfig:
    if isinstance(raw, FieldConfig):
        return raw
    if not isinstance(raw, Mapping):
        return FieldConfig()
    try:
        return FieldConfig.model_validate(dict(raw))
    except ValidationError:
        # malformed known keys: keep the extras, drop the typed view
        return FieldConfig.model_validate({k: v for k, v in raw.items() if k not in _TYPED_KEYS})


def option_values(config: FieldConfig) -> List[str]:
    """Options may be plain strings or {value, label} objects."""
    out: List[str] = []
    for opt in config.options or []:
        if isinstance(opt, Mapping):
            out.append(str(opt.get("value", "")))
        else:
            out.append(str(opt))
    return out


def is_empty(value: Any) -> bool:
    """None, "" and [] count as unanswered. False and 0 are answers."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def _as_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, BaseModel):
        return obj.model_dump(by_alias=True)
    return dict(obj)


def normalize_field(raw: Any) -> Dict[str, Any]:
    d = _as_dict(raw)
    t = d.get("type")
    if isinstance(t, Enum):
        t = t.value
    return {
        "id": str(d.get("id") or ""),
        "label": str(d.get("label") or ""),
        "description": d.get("description"),
        "type": str(t or ""),
        "required": bool(d.get("required", False)),
        "order": d.get("order") if isinstance(d.get("order"), int) else 0,
        "config": dict(d.get("config") or {}),
    }


def in_display_order(items: Iterable[Mapping[str, Any]]) -> List[Mapping[str, Any]]:
    """Sort by `order`; ties keep declaration order."""
    indexed: List[Tuple[int, int, Mapping[str, Any]]] = []
    for i, item in enumerate(items):
        order = item.get("order")
        indexed.append((order if isinstance(order, int) else 0, i, item))
    indexed.sort(key=lambda t: (t[0], t[1]))
    return [t[2] for t in indexed]


def schema_sections(schema: Any) -> List[Dict[str, Any]]:
    """Sections of a template, snapshot or plain dict, fields normalized, both in display order."""
    if isinstance(schema, BaseModel):
        raw_sections = _as_dict(schema).get("sections") or []
    elif isinstance(schema, Mapping):
        raw_sections = schema.get("sections") or []
    else:
        raw_sections = getattr(schema, "sections", None) or []

    out: List[Dict[str, Any]] = []
    for sec in in_display_order([_as_dict(s) for s in raw_sections]):
        fields = in_display_order([normalize_field(f) for f in (sec.get("fields") or [])])
        out.append(
            {
                "id": str(sec.get("id") or ""),
                "title": str(sec.get("title") or ""),
                "description": sec.get("description"),
                "order": sec.get("order") if isinstance(sec.get("order"), int) else 0,
                "fields": [dict(f) for f in fields],
            }
        )
    return out


def iter_fields(schema: Any) -> Iterator[Dict[str, Any]]:
    for sec in schema_sections(schema):
        yield from sec["fields"]
