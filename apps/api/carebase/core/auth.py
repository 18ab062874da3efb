"""
Authorization context passed explicitly into every core operation.

Authentication itself happens upstream; the gateway forwards the resolved
actor as X-Actor-Id / X-Actor-Role / X-Organization-Id headers.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from fastapi import Header

from .errors import Forbidden, Unauthenticated


class Role(str, Enum):
    ADMIN = "ADMIN"
    OPS_MANAGER = "OPS_MANAGER"
    CLINICAL_MANAGER = "CLINICAL_MANAGER"
    SUPERVISOR = "SUPERVISOR"
    CARER = "CARER"
    SPONSOR = "SPONSOR"


class Permission(str, Enum):
    FORM_TEMPLATE_VIEW = "FORM_TEMPLATE_VIEW"
    FORM_TEMPLATE_MANAGE = "FORM_TEMPLATE_MANAGE"
    VISIT_NOTE_CREATE = "VISIT_NOTE_CREATE"
    VISIT_NOTE_VIEW_ALL = "VISIT_NOTE_VIEW_ALL"
    VISIT_NOTE_QA = "VISIT_NOTE_QA"
    AUDIT_VIEW = "AUDIT_VIEW"


_MANAGER_PERMISSIONS = frozenset(
    {
        Permission.FORM_TEMPLATE_VIEW,
        Permission.FORM_TEMPLATE_MANAGE,
        Permission.VISIT_NOTE_CREATE,
        Permission.VISIT_NOTE_VIEW_ALL,
        Permission.VISIT_NOTE_QA,
        Permission.AUDIT_VIEW,
    }
)

ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.ADMIN: _MANAGER_PERMISSIONS,
    Role.OPS_MANAGER: _MANAGER_PERMISSIONS,
    Role.CLINICAL_MANAGER: _MANAGER_PERMISSIONS,
    Role.SUPERVISOR: frozenset(
        {
            Permission.FORM_TEMPLATE_VIEW,
            Permission.VISIT_NOTE_CREATE,
            Permission.VISIT_NOTE_VIEW_ALL,
            Permission.VISIT_NOTE_QA,
        }
    ),
    Role.CARER: frozenset({Permission.FORM_TEMPLATE_VIEW, Permission.VISIT_NOTE_CREATE}),
    Role.SPONSOR: frozenset(),
}


@dataclass(frozen=True)
class AuthContext:
    actor_id: str
    role: Role
    organization_id: str

    def can(self, permission: Permission) -> bool:
        return permission in ROLE_PERMISSIONS.get(self.role, frozenset())

    def require(self, *permissions: Permission) -> None:
        """Pass if the actor holds any of the given permissions."""
        if not any(self.can(p) for p in permissions):
            raise Forbidden()


def auth_context(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
    x_organization_id: Optional[str] = Header(None),
) -> AuthContext:
    if not x_actor_id or not x_actor_role or not x_organization_id:
        raise Unauthenticated()
    try:
        role = Role(x_actor_role.strip().upper())
    except ValueError:
        raise Forbidden() from None
    return AuthContext(actor_id=x_actor_id.strip(), role=role, organization_id=x_organization_id.strip())
