"""
Role-based access policy.

Endpoints resolve the caller once (see ``core.dependencies.get_current_user``)
and call ``require_permission`` before touching a service.
"""
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, Field

from collections_service.core.exceptions import ForbiddenError


class Role(str, Enum):
    """User roles, lowest privilege first."""
    MANAGER = "manager"
    SUPERVISOR = "supervisor"
    ADMINISTRATOR = "administrator"


class Permission(str, Enum):
    """Operations guarded by the access policy."""
    CREATE_FOLLOW_UP = "create:follow_up"
    READ_FOLLOW_UP = "read:follow_up"
    REQUEST_AUTHORIZATION = "create:authorization"
    READ_AUTHORIZATION = "read:authorization"
    RESOLVE_AUTHORIZATION = "update:authorization"
    READ_RULES = "read:rules"
    MANAGE_RULES = "manage:rules"


_MANAGER_PERMISSIONS = frozenset({
    Permission.CREATE_FOLLOW_UP,
    Permission.READ_FOLLOW_UP,
    Permission.REQUEST_AUTHORIZATION,
    Permission.READ_AUTHORIZATION,
    Permission.READ_RULES,
})

ROLE_PERMISSIONS: Dict[Role, FrozenSet[Permission]] = {
    Role.MANAGER: _MANAGER_PERMISSIONS,
    Role.SUPERVISOR: _MANAGER_PERMISSIONS | {Permission.RESOLVE_AUTHORIZATION},
    Role.ADMINISTRATOR: frozenset(Permission),
}


class AuthenticatedUser(BaseModel):
    """Caller identity as resolved from the upstream auth layer."""

    id: int = Field(..., description="User ID")
    role: Role = Field(..., description="User role")
    name: Optional[str] = Field(default=None, description="Display name")

    @property
    def is_administrator(self) -> bool:
        return self.role == Role.ADMINISTRATOR


def has_permission(role: Role, permission: Permission) -> bool:
    """Check whether a role grants a permission."""
    return permission in ROLE_PERMISSIONS.get(role, frozenset())


def require_permission(user: AuthenticatedUser, permission: Permission) -> None:
    """
    Enforce the access policy for an operation.

    Raises:
        ForbiddenError: If the user's role does not grant the permission
    """
    if not has_permission(user.role, permission):
        raise ForbiddenError(
            f"Role '{user.role.value}' is not allowed to {permission.value}",
            user_id=user.id,
            role=user.role.value,
            permission=permission.value,
        )


def require_debt_access(user: AuthenticatedUser, debt_id: int, assigned_manager_id: Optional[int]) -> None:
    """
    Managers may only act on debts assigned to them; other roles act on any debt.

    Raises:
        ForbiddenError: If a manager is not the debt's assigned manager
    """
    if user.role == Role.MANAGER and assigned_manager_id != user.id:
        raise ForbiddenError(
            f"Debt {debt_id} is not assigned to manager {user.id}",
            debt_id=debt_id,
            assigned_manager_id=assigned_manager_id,
        )
