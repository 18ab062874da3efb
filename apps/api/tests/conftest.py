from __future__ import annotations

from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from carebase.core.auth import AuthContext, Role
from carebase.core.db import init_db, reset_engine

ORG = "org-1"


@pytest.fixture()
def db(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{(tmp_path / 'app.db').as_posix()}")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    reset_engine()
    init_db()
    yield tmp_path
    reset_engine()


@pytest.fixture()
def manager() -> AuthContext:
    return AuthContext(actor_id="mgr-1", role=Role.OPS_MANAGER, organization_id=ORG)


@pytest.fixture()
def carer() -> AuthContext:
    return AuthContext(actor_id="carer-1", role=Role.CARER, organization_id=ORG)


@pytest.fixture()
def other_carer() -> AuthContext:
    return AuthContext(actor_id="carer-2", role=Role.CARER, organization_id=ORG)


@pytest.fixture()
def outsider() -> AuthContext:
    return AuthContext(actor_id="mgr-9", role=Role.ADMIN, organization_id="org-2")


def daily_sections() -> List[Dict[str, Any]]:
    return [
        {
            "id": "s_visit",
            "title": "Visit",
            "fields": [
                {"id": "f_mood", "label": "Mood", "type": "SINGLE_CHOICE", "required": True, "config": {"options": ["Happy", "Sad"]}},
                {"id": "f_notes", "label": "Notes", "type": "TEXT_LONG", "required": False, "config": {"maxLength": 50}},
            ],
        },
        {
            "id": "s_status",
            "title": "Status",
            "fields": [
                {"id": "f_ate", "label": "Ate well?", "type": "YES_NO", "required": True},
                {"id": "f_rating", "label": "Condition", "type": "RATING_SCALE", "required": False, "config": {"min": 1, "max": 5}},
            ],
        },
    ]


@pytest.fixture()
def active_template(db, manager):
    from carebase.modules.templates import service as templates

    t = templates.create_draft(manager, name="Daily Visit", sections=daily_sections())
    return templates.publish(manager, t["id"])


@pytest.fixture()
def client(db):
    from carebase.main import app

    with TestClient(app) as c:
        yield c


def headers(ctx: AuthContext) -> Dict[str, str]:
    return {"X-Actor-Id": ctx.actor_id, "X-Actor-Role": ctx.role.value, "X-Organization-Id": ctx.organization_id}
