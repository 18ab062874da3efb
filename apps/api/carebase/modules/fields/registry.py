"""
Field type registry.

One FieldKind per FieldType, built once at import. Validation, rendering and
coercion all dispatch through REGISTRY; nothing else switches on the type.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from carebase.core.storage import decode_inline

from .types import (
    FieldConfig,
    FieldType,
    is_empty,
    option_values,
)

CheckFn = Callable[[Any, FieldConfig], Optional[str]]
ConfigCheckFn = Callable[[FieldConfig], Optional[str]]
DisplayFn = Callable[[Any, FieldConfig], Dict[str, Any]]
PropsFn = Callable[[FieldConfig], Dict[str, Any]]
CoerceFn = Callable[[Any], Any]

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}(:\d{2})?$")

RATING_DEFAULT_MIN = 1
RATING_DEFAULT_MAX = 5
NO_RESPONSE = "No response"


@dataclass(frozen=True)
class FieldKind:
    type: FieldType
    widget: str
    check: CheckFn
    check_config: ConfigCheckFn
    display: DisplayFn
    props: PropsFn
    coerce: CoerceFn
    is_empty: Callable[[Any], bool] = is_empty


# --- formatting helpers ---
def fmt_num(v: Any) -> str:
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v)


def parse_date(value: str) -> Optional[date]:
    s = value.strip()
    if _DATE_RE.match(s):
        try:
            return date.fromisoformat(s)
        except ValueError:
            return None
    dt = parse_datetime(s)
    return dt.date() if dt is not None else None


def parse_datetime(value: str) -> Optional[datetime]:
    s = value.strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def long_date(d: date) -> str:
    return f"{d:%A}, {d:%B} {d.day}, {d.year}"


def long_datetime(dt: datetime) -> str:
    return f"{long_date(dt.date())} at {dt:%I:%M %p}"


def _text(value: Any) -> Dict[str, Any]:
    return {"kind": "text", "text": str(value)}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# --- TEXT_SHORT / TEXT_LONG ---
def _check_text(value: Any, config: FieldConfig) -> Optional[str]:
    if not isinstance(value, str):
        return "Must be text"
    if config.max_length and len(value) > config.max_length:
        return f"Maximum {config.max_length} characters"
    return None


def _check_text_config(config: FieldConfig) -> Optional[str]:
    if config.max_length is not None and config.max_length <= 0:
        return "Invalid text field config"
    return None


def _props_text(config: FieldConfig) -> Dict[str, Any]:
    return {"placeholder": config.placeholder, "maxLength": config.max_length}


def _coerce_text(raw: Any) -> Any:
    if raw is None:
        return None
    return raw if isinstance(raw, str) else str(raw)


# --- NUMBER ---
def _check_number(value: Any, config: FieldConfig) -> Optional[str]:
    if not _is_number(value):
        return "Must be a number"
    if config.min is not None and value < config.min:
        return f"Minimum value is {fmt_num(config.min)}"
    if config.max is not None and value > config.max:
        return f"Maximum value is {fmt_num(config.max)}"
    return None


def _check_number_config(config: FieldConfig) -> Optional[str]:
    if config.min is not None and config.max is not None and config.min >= config.max:
        return "Min must be less than max"
    if config.step is not None and config.step <= 0:
        return "Step must be positive"
    return None


def _props_number(config: FieldConfig) -> Dict[str, Any]:
    return {"min": config.min, "max": config.max, "step": config.step, "placeholder": config.placeholder}


def _coerce_number(raw: Any) -> Any:
    if raw is None or _is_number(raw):
        return raw
    s = str(raw).strip()
    if s == "":
        return None
    try:
        f = float(s)
    except ValueError:
        return raw
    return int(f) if f.is_integer() and "." not in s and "e" not in s.lower() else f


# --- YES_NO ---
def _check_yes_no(value: Any, config: FieldConfig) -> Optional[str]:
    return None if isinstance(value, bool) else "Must be yes or no"


def _display_yes_no(value: Any, config: FieldConfig) -> Dict[str, Any]:
    return {"kind": "badge", "text": "Yes" if value else "No", "variant": "success" if value else "error"}


def _coerce_yes_no(raw: Any) -> Any:
    if raw is None or isinstance(raw, bool):
        return raw
    s = str(raw).strip().lower()
    if s in ("yes", "true", "1", "y"):
        return True
    if s in ("no", "false", "0", "n"):
        return False
    return None if s == "" else raw


# --- SINGLE_CHOICE / MULTIPLE_CHOICE ---
def _check_single(value: Any, config: FieldConfig) -> Optional[str]:
    if not isinstance(value, str):
        return "Must select an option"
    if config.options is not None and value not in option_values(config):
        return "Invalid option selected"
    return None


def _check_multiple(value: Any, config: FieldConfig) -> Optional[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        return "Must be an array of selections"
    if config.options is not None:
        allowed = option_values(config)
        if any(v not in allowed for v in value):
            return "Invalid options selected"
    return None


def _check_choice_config(config: FieldConfig) -> Optional[str]:
    values = option_values(config)
    if not values or any(v == "" for v in values):
        return "Choice fields require at least one option"
    return None


def _props_choice(config: FieldConfig) -> Dict[str, Any]:
    return {"options": list(config.options or [])}


def _display_single(value: Any, config: FieldConfig) -> Dict[str, Any]:
    return {"kind": "badge", "text": str(value), "variant": "primary"}


def _display_multiple(value: Any, config: FieldConfig) -> Dict[str, Any]:
    items = value if isinstance(value, list) else [value]
    return {"kind": "badges", "items": [str(v) for v in items], "variant": "primary"}


def _coerce_multiple(raw: Any) -> Any:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [str(v) for v in raw]
    return [str(raw)]


# --- DATE / TIME / DATETIME ---
def _check_date(value: Any, config: FieldConfig) -> Optional[str]:
    if not isinstance(value, str):
        return "Must be a valid date"
    if parse_date(value) is None:
        return "Invalid date format"
    return None


def _check_time(value: Any, config: FieldConfig) -> Optional[str]:
    if not isinstance(value, str):
        return "Must be a valid time"
    if not _TIME_RE.match(value):
        return "Invalid time format"
    return None


def _check_datetime(value: Any, config: FieldConfig) -> Optional[str]:
    if not isinstance(value, str):
        return "Must be a valid date/time"
    if parse_datetime(value) is None:
        return "Invalid date/time format"
    return None


def _display_date(value: Any, config: FieldConfig) -> Dict[str, Any]:
    d = parse_date(value) if isinstance(value, str) else None
    return _text(long_date(d) if d is not None else value)


def _display_datetime(value: Any, config: FieldConfig) -> Dict[str, Any]:
    dt = parse_datetime(value) if isinstance(value, str) else None
    return _text(long_datetime(dt) if dt is not None else value)


# --- SIGNATURE / PHOTO ---
def file_url_of(value: Any) -> Optional[str]:
    if isinstance(value, Mapping):
        url = value.get("file_url") or value.get("fileUrl")
        return str(url) if url else None
    return None


def _check_file(value: Any, config: FieldConfig) -> Optional[str]:
    if isinstance(value, str):
        # same decoder submit uses to store the payload
        if decode_inline(value) is None:
            return "Invalid file data"
        return None
    if isinstance(value, Mapping):
        if not file_url_of(value):
            return "Invalid file"
        size = value.get("file_size", value.get("fileSize"))
        if size is not None and (not _is_number(size) or size <= 0):
            return "Invalid file"
        return None
    return "Invalid file"


def _display_file(alt: str) -> DisplayFn:
    def display(value: Any, config: FieldConfig) -> Dict[str, Any]:
        if isinstance(value, str):
            src = value if value.startswith("data:") else f"data:image/png;base64,{value}"
            return {"kind": "image", "src": src, "alt": alt}
        url = file_url_of(value)
        if url:
            return {"kind": "image", "src": url, "alt": alt}
        return {"kind": "empty", "text": "No file"}

    return display


def _props_file(config: FieldConfig) -> Dict[str, Any]:
    return {"accept": "image/*"}


def _coerce_file(raw: Any) -> Any:
    if raw is None or raw == "":
        return None
    return raw


# --- RATING_SCALE ---
def _rating_bounds(config: FieldConfig) -> tuple:
    lo = int(config.min) if config.min is not None else RATING_DEFAULT_MIN
    hi = int(config.max) if config.max is not None else RATING_DEFAULT_MAX
    return lo, hi


def _check_rating(value: Any, config: FieldConfig) -> Optional[str]:
    if not _is_number(value) or (isinstance(value, float) and not value.is_integer()):
        return "Must be a rating number"
    lo, hi = _rating_bounds(config)
    if value < lo or value > hi:
        return f"Rating must be between {lo} and {hi}"
    return None


def _check_rating_config(config: FieldConfig) -> Optional[str]:
    lo, hi = config.min, config.max
    if lo is None or hi is None:
        return "Rating scale requires min and max values"
    if not float(lo).is_integer() or not float(hi).is_integer() or lo < 0 or hi > 10:
        return "Rating scale requires min and max values"
    if lo >= hi:
        return "Min must be less than max"
    return None


def _props_rating(config: FieldConfig) -> Dict[str, Any]:
    lo, hi = _rating_bounds(config)
    labels = {str(k): v for k, v in (config.labels or {}).items()}
    return {"min": lo, "max": hi, "labels": labels}


def _display_rating(value: Any, config: FieldConfig) -> Dict[str, Any]:
    _, hi = _rating_bounds(config)
    n = int(value) if _is_number(value) else 0
    filled = max(0, min(n, hi))
    caption = {str(k): v for k, v in (config.labels or {}).items()}.get(str(n))
    return {
        "kind": "rating",
        "value": n,
        "max": hi,
        "stars": "★" * filled + "☆" * (hi - filled),
        "caption": caption,
    }


def _coerce_rating(raw: Any) -> Any:
    v = _coerce_number(raw)
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return v


# --- shared ---
def _no_config_check(config: FieldConfig) -> Optional[str]:
    return None


def _no_props(config: FieldConfig) -> Dict[str, Any]:
    return {}


def _display_text(value: Any, config: FieldConfig) -> Dict[str, Any]:
    return _text(value)


def _display_number(value: Any, config: FieldConfig) -> Dict[str, Any]:
    return {"kind": "text", "text": fmt_num(value), "mono": True}


def _identity(raw: Any) -> Any:
    return raw


def _build_registry() -> Dict[FieldType, FieldKind]:
    kinds: List[FieldKind] = [
        FieldKind(FieldType.TEXT_SHORT, "text_input", _check_text, _check_text_config, _display_text, _props_text, _coerce_text),
        FieldKind(FieldType.TEXT_LONG, "textarea", _check_text, _check_text_config, _display_text, _props_text, _coerce_text),
        FieldKind(FieldType.NUMBER, "number_input", _check_number, _check_number_config, _display_number, _props_number, _coerce_number),
        FieldKind(FieldType.YES_NO, "yes_no", _check_yes_no, _no_config_check, _display_yes_no, _no_props, _coerce_yes_no),
        FieldKind(FieldType.SINGLE_CHOICE, "single_choice_chips", _check_single, _check_choice_config, _display_single, _props_choice, _coerce_text),
        FieldKind(
            FieldType.MULTIPLE_CHOICE, "multiple_choice_chips", _check_multiple, _check_choice_config, _display_multiple, _props_choice, _coerce_multiple
        ),
        FieldKind(FieldType.DATE, "date_input", _check_date, _no_config_check, _display_date, _no_props, _coerce_text),
        FieldKind(FieldType.TIME, "time_input", _check_time, _no_config_check, _display_text, _no_props, _coerce_text),
        FieldKind(FieldType.DATETIME, "datetime_input", _check_datetime, _no_config_check, _display_datetime, _no_props, _coerce_text),
        FieldKind(FieldType.SIGNATURE, "signature_pad", _check_file, _no_config_check, _display_file("Signature"), _no_props, _coerce_file),
        FieldKind(FieldType.PHOTO, "photo_upload", _check_file, _no_config_check, _display_file("Photo"), _props_file, _coerce_file),
        FieldKind(FieldType.RATING_SCALE, "rating", _check_rating, _check_rating_config, _display_rating, _props_rating, _coerce_rating),
    ]
    registry = {k.type: k for k in kinds}
    missing = [t.value for t in FieldType if t not in registry]
    if missing:
        raise RuntimeError(f"field kinds missing for: {', '.join(missing)}")
    return registry


REGISTRY: Dict[FieldType, FieldKind] = _build_registry()


def get_kind(type_key: Any) -> Optional[FieldKind]:
    """Kind for a type key (enum or string); None when the key is not a known type."""
    if isinstance(type_key, FieldType):
        return REGISTRY.get(type_key)
    try:
        return REGISTRY.get(FieldType(str(type_key)))
    except ValueError:
        return None
