"""
Structured logging for the API.

Every line is one JSON object with the locked keys:
ts, level, message, request_id, event, module (+ free-form extras).
"""
from __future__ import annotations

import datetime
import json
import logging
from typing import Any, Dict, Optional

_log = logging.getLogger("carebase")


def configure_logging(level: str = "INFO") -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format="%(message)s")
    _log.setLevel(level)


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def emit(level: str, event: str, message: str, request_id: Optional[str] = None, module: str = "carebase", **extra: Any) -> None:
    payload: Dict[str, Any] = {
        "ts": _now_iso(),
        "level": level.lower(),
        "message": message,
        "request_id": request_id,
        "event": event,
        "module": module,
    }
    payload.update(extra)
    levelno = logging.getLevelName(level.upper())
    if not isinstance(levelno, int):
        levelno = logging.INFO
    _log.log(levelno, json.dumps(payload, ensure_ascii=False, default=str))
