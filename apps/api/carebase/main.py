from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from carebase.core.config import get_settings
from carebase.core.db import db_health, init_db
from carebase.core.errors import EngineError
from carebase.core.ids import now_iso
from carebase.core.logs import configure_logging, emit
from carebase.core.storage import storage_health
from carebase.modules.audit.router import router as audit_router
from carebase.modules.comments.router import router as comments_router
from carebase.modules.qa.router import router as qa_router
from carebase.modules.reports.router import router as reports_router
from carebase.modules.templates.router import router as templates_router
from carebase.modules.visit_notes.router import router as visit_notes_router

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    if get_settings().auto_create_schema:
        init_db()
    emit("info", "app.startup", "visit note engine started", module=__name__, version=settings.app_version)
    yield


app = FastAPI(title="Carebase Visit Notes API", version=settings.app_version, lifespan=_lifespan)

# === OBSERVABILITY FOUNDATIONS ===
# Contract locks:
# - /health keys: status, version, db, storage, last_error_summary
# - X-Request-Id in/out (missing -> generated; always echoed back; also on errors)
# - Error envelope keys: error, message, request_id, details

_last_error: Optional[Dict[str, Any]] = None


def _remember_error(error: str, message: str, request_id: Optional[str]) -> None:
    global _last_error
    _last_error = {"ts": now_iso(), "error": error, "message": message, "request_id": request_id}


def _err_envelope(error: str, message: str, request_id: Optional[str], details: Any, status_code: int):
    headers = {}
    if request_id:
        headers["X-Request-Id"] = request_id
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "request_id": request_id,
            "details": details,
        },
        headers=headers,
    )


@app.middleware("http")
async def _request_id_mw(request: Request, call_next):
    rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex.upper()
    request.state.request_id = rid
    emit("info", "http.request.start", f"{request.method} {request.url.path}", rid, __name__)
    try:
        resp = await call_next(request)
    except Exception as e:
        emit("error", "http.request.exception", str(e), rid, __name__)
        raise
    resp.headers["X-Request-Id"] = rid
    emit("info", "http.request.end", f"{request.method} {request.url.path} -> {getattr(resp, 'status_code', None)}", rid, __name__)
    return resp


@app.exception_handler(EngineError)
async def _engine_exc_handler(request: Request, exc: EngineError):
    rid = getattr(request.state, "request_id", None)
    emit("warning" if exc.status_code < 500 else "error", "engine.rejected", exc.message, rid, __name__, error=exc.code)
    return _err_envelope(exc.code, exc.message, rid, exc.details, exc.status_code)


@app.exception_handler(StarletteHTTPException)
async def _http_exc_handler(request: Request, exc: StarletteHTTPException):
    rid = getattr(request.state, "request_id", None)
    return _err_envelope("http_error", str(exc.detail), rid, {"status_code": exc.status_code}, exc.status_code)


@app.exception_handler(RequestValidationError)
async def _validation_exc_handler(request: Request, exc: RequestValidationError):
    rid = getattr(request.state, "request_id", None)
    return _err_envelope("validation_error", "request validation failed", rid, exc.errors(), 422)


@app.exception_handler(Exception)
async def _unhandled_exc_handler(request: Request, exc: Exception):
    rid = getattr(request.state, "request_id", None)
    emit("error", "http.unhandled", str(exc), rid, __name__, error_type=type(exc).__name__)
    _remember_error("internal_error", type(exc).__name__, rid)
    return _err_envelope("internal_error", "internal server error", rid, {"type": type(exc).__name__}, 500)
# === END OBSERVABILITY FOUNDATIONS ===


@app.get("/health")
def health():
    db = db_health()
    storage = storage_health()
    ok = db.get("status") == "ok" and storage.get("status") == "ok"
    return {
        "status": "ok" if ok else "degraded",
        "version": get_settings().app_version,
        "db": db,
        "storage": storage,
        "last_error_summary": _last_error,
    }


app.include_router(templates_router)
app.include_router(visit_notes_router)
app.include_router(qa_router)
app.include_router(comments_router)
app.include_router(reports_router)
app.include_router(audit_router)
