"""
DB utilities (sqlite default).

Defaults:
- DATABASE_URL: sqlite:///./data/app.db
"""
from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine
from sqlmodel import SQLModel

from .config import get_settings


def get_database_url() -> str:
    return get_settings().database_url


def _repo_root() -> Path:
    # apps/api/carebase/core/db.py -> repo root = parents[4]
    return Path(__file__).resolve().parents[4]


def resolve_sqlite_path(database_url: str) -> Optional[Path]:
    if not database_url.startswith("sqlite:///"):
        return None
    p = database_url[len("sqlite:///") :]

    # absolute unix
    if p.startswith("/"):
        return Path(p)

    # absolute windows drive, both C:/ and C:\ forms
    if len(p) >= 3 and p[1] == ":" and (p[2] == "/" or p[2] == "\\"):
        return Path(p)

    # relative -> repo root
    return (_repo_root() / p).resolve()


_engine: Optional[Engine] = None
_engine_url: Optional[str] = None


def get_engine() -> Engine:
    global _engine, _engine_url
    url = get_database_url()
    if _engine is not None and _engine_url == url:
        return _engine
    if _engine is not None:
        _engine.dispose()

    connect_args = {}
    resolved = url
    if url.startswith("sqlite:///"):
        connect_args = {"check_same_thread": False}

    sp = resolve_sqlite_path(url)
    if sp is not None:
        sp.parent.mkdir(parents=True, exist_ok=True)
        resolved = "sqlite:///" + sp.as_posix()

    _engine = create_engine(resolved, future=True, connect_args=connect_args)
    _engine_url = url
    return _engine


def reset_engine() -> None:
    global _engine, _engine_url
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _engine_url = None


@contextmanager
def transaction() -> Iterator[Connection]:
    """One read-then-write exchange with the store; commits on success, rolls back on error."""
    with get_engine().begin() as conn:
        yield conn


def init_db() -> None:
    # import for table registration on SQLModel.metadata
    from carebase.modules.audit import models as _audit_models  # noqa: F401
    from carebase.modules.comments import models as _comment_models  # noqa: F401
    from carebase.modules.templates import models as _template_models  # noqa: F401
    from carebase.modules.visit_notes import models as _visit_note_models  # noqa: F401

    SQLModel.metadata.create_all(get_engine())


def db_health() -> Dict[str, Any]:
    url = get_database_url()
    kind = "sqlite" if url.startswith("sqlite") else "unknown"
    sp = resolve_sqlite_path(url)
    path = str(sp.as_posix()) if sp is not None else url

    try:
        eng = get_engine()
        with eng.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "ok", "kind": kind, "path": path}
    except Exception as e:
        return {"status": "error", "kind": kind, "path": path, "error": str(e)}
