"""
Form renderer.

Produces a JSON-serializable node tree for a field or a whole form. The
live entry form (EDIT) and the read-only historical view (VIEW) both go
through render_form, so a stored snapshot renders with the same rules the
carer saw when filling it in.
"""
from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from .registry import NO_RESPONSE, get_kind
from .types import normalize_field, parse_config, schema_sections

OnChange = Callable[[str, Any], None]


class RenderMode(str, Enum):
    EDIT = "EDIT"
    VIEW = "VIEW"


UNSUPPORTED_WIDGET = "unsupported"


@dataclass
class RenderNode:
    widget: str
    field_id: str
    label: str
    required: bool
    mode: RenderMode
    value: Any = None
    description: Optional[str] = None
    error: Optional[str] = None
    props: Dict[str, Any] = dc_field(default_factory=dict)
    display: Optional[Dict[str, Any]] = None
    on_change: Optional[OnChange] = dc_field(default=None, repr=False, compare=False)
    _coerce: Optional[Callable[[Any], Any]] = dc_field(default=None, repr=False, compare=False)

    def change(self, raw: Any) -> Any:
        """Coerce raw widget input, forward it to on_change, return the coerced value."""
        if self.mode == RenderMode.VIEW or self.widget == UNSUPPORTED_WIDGET:
            return self.value
        value = self._coerce(raw) if self._coerce is not None else raw
        self.value = value
        if self.on_change is not None:
            self.on_change(self.field_id, value)
        return value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "widget": self.widget,
            "field_id": self.field_id,
            "label": self.label,
            "required": self.required,
            "mode": self.mode.value,
            "description": self.description,
            "value": self.value,
            "error": self.error,
            "props": dict(self.props),
            "display": self.display,
        }


def render(
    field: Any,
    value: Any = None,
    on_change: Optional[OnChange] = None,
    error: Optional[str] = None,
    mode: RenderMode = RenderMode.EDIT,
) -> RenderNode:
    f = normalize_field(field)
    mode = RenderMode(mode)
    kind = get_kind(f["type"])

    if kind is None:
        # types written by a newer build still render, as a placeholder
        return RenderNode(
            widget=UNSUPPORTED_WIDGET,
            field_id=f["id"],
            label=f["label"],
            required=f["required"],
            mode=mode,
            value=value,
            description=f["description"],
            error=error,
            props={"type": f["type"]},
            display={"kind": "unsupported", "text": f"Unsupported field type: {f['type']}"},
        )

    config = parse_config(f["config"])
    display: Optional[Dict[str, Any]] = None
    if mode == RenderMode.VIEW:
        if kind.is_empty(value):
            display = {"kind": "empty", "text": NO_RESPONSE}
        else:
            try:
                display = kind.display(value, config)
            except (TypeError, ValueError):
                display = {"kind": "text", "text": str(value)}

    return RenderNode(
        widget=kind.widget,
        field_id=f["id"],
        label=f["label"],
        required=f["required"],
        mode=mode,
        value=value,
        description=f["description"],
        error=error,
        props={k: v for k, v in kind.props(config).items() if v is not None},
        display=display,
        on_change=on_change,
        _coerce=kind.coerce,
    )


@dataclass
class SectionNode:
    section_id: str
    title: str
    description: Optional[str]
    fields: List[RenderNode]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "section_id": self.section_id,
            "title": self.title,
            "description": self.description,
            "fields": [n.to_dict() for n in self.fields],
        }


def render_form(
    schema: Any,
    data: Optional[Mapping[str, Any]] = None,
    errors: Optional[Mapping[str, str]] = None,
    mode: RenderMode = RenderMode.EDIT,
    on_change: Optional[OnChange] = None,
) -> List[SectionNode]:
    data = data or {}
    errors = errors or {}
    out: List[SectionNode] = []
    for sec in schema_sections(schema):
        nodes = [
            render(f, value=data.get(f["id"]), on_change=on_change, error=errors.get(f["id"]), mode=mode)
            for f in sec["fields"]
        ]
        out.append(SectionNode(section_id=sec["id"], title=sec["title"], description=sec["description"], fields=nodes))
    return out
