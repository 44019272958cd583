"""
ABAC (attribute-based access control) vocabulary shared by the server and
its clients.

Covers: system roles, resource types, permission actions, the Permission
pair and the canonical role → permission table.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SystemRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    DISPATCHER = "dispatcher"
    DRIVER = "driver"
    COMPLIANCE_OFFICER = "compliance_officer"
    ACCOUNTANT = "accountant"
    VIEWER = "viewer"


class ResourceType(str, Enum):
    USER = "user"
    DRIVER = "driver"
    VEHICLE = "vehicle"
    LOAD = "load"
    DOCUMENT = "document"
    IFTA_REPORT = "ifta_report"
    ORGANIZATION = "organization"
    BILLING = "billing"


class PermissionAction(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"  # implies every action on the resource
    ASSIGN = "assign"
    APPROVE = "approve"
    REPORT = "report"


# Roles that always pass role checks, on top of any explicit allow-list
UNRESTRICTED_ROLES: frozenset[SystemRole] = frozenset({SystemRole.OWNER, SystemRole.ADMIN})

# Roles the identity provider emits for organization members
IDENTITY_PROVIDER_ROLE_ALIASES: dict[str, SystemRole] = {
    "org:admin": SystemRole.OWNER,
    "org:member": SystemRole.VIEWER,
}


# ---------------------------------------------------------------------------
# Permission
# ---------------------------------------------------------------------------

class Permission(BaseModel):
    """A single (action, resource) capability, e.g. ``create:load``."""

    model_config = ConfigDict(frozen=True)

    action: PermissionAction
    resource: ResourceType

    def __str__(self) -> str:
        return f"{self.action.value}:{self.resource.value}"

    @classmethod
    def parse(cls, value: str) -> Permission:
        """Parse ``"action:resource"``. Raises ValueError on anything else."""
        parts = value.split(":")
        if len(parts) != 2:
            raise ValueError(f"Invalid permission string: {value!r}")
        action, resource = parts
        try:
            return cls(action=PermissionAction(action), resource=ResourceType(resource))
        except ValueError:
            raise ValueError(f"Unknown permission: {value!r}") from None

    def grants(self, action: PermissionAction, resource: ResourceType) -> bool:
        if self.resource != resource:
            return False
        return self.action == action or self.action == PermissionAction.MANAGE


def _p(action: PermissionAction, resource: ResourceType) -> Permission:
    return Permission(action=action, resource=resource)


# ---------------------------------------------------------------------------
# Role grants
# ---------------------------------------------------------------------------

class RoleGrant(BaseModel):
    """
    What a role is allowed to do.

    Either ``unrestricted`` (satisfies every check, including pairs that are
    never listed anywhere) or an explicit, non-empty set of permissions.
    """

    model_config = ConfigDict(frozen=True)

    unrestricted: bool = False
    permissions: frozenset[Permission] = frozenset()

    @classmethod
    def everything(cls) -> RoleGrant:
        return cls(unrestricted=True)

    @classmethod
    def of(cls, *permissions: Permission) -> RoleGrant:
        return cls(permissions=frozenset(permissions))

    def is_empty(self) -> bool:
        return not self.unrestricted and not self.permissions

    def allows(self, action: PermissionAction, resource: ResourceType) -> bool:
        if self.unrestricted:
            return True
        return any(p.grants(action, resource) for p in self.permissions)

    def as_strings(self) -> list[str]:
        if self.unrestricted:
            return ["*"]
        return sorted(str(p) for p in self.permissions)


A = PermissionAction
R = ResourceType

ROLE_PERMISSIONS: dict[SystemRole, RoleGrant] = {
    SystemRole.OWNER: RoleGrant.everything(),
    SystemRole.ADMIN: RoleGrant.everything(),
    SystemRole.DISPATCHER: RoleGrant.of(
        _p(A.CREATE, R.LOAD),
        _p(A.READ, R.LOAD),
        _p(A.UPDATE, R.LOAD),
        _p(A.DELETE, R.LOAD),
        _p(A.ASSIGN, R.DRIVER),
        _p(A.ASSIGN, R.VEHICLE),
        _p(A.READ, R.DRIVER),
        _p(A.READ, R.VEHICLE),
        _p(A.READ, R.DOCUMENT),
    ),
    SystemRole.DRIVER: RoleGrant.of(
        _p(A.READ, R.LOAD),
        _p(A.UPDATE, R.LOAD),  # status updates on assigned loads
        _p(A.CREATE, R.DOCUMENT),
        _p(A.READ, R.DOCUMENT),
    ),
    SystemRole.COMPLIANCE_OFFICER: RoleGrant.of(
        _p(A.READ, R.DRIVER),
        _p(A.READ, R.VEHICLE),
        _p(A.READ, R.DOCUMENT),
        _p(A.CREATE, R.DOCUMENT),
        _p(A.UPDATE, R.DOCUMENT),
        _p(A.APPROVE, R.DOCUMENT),
        _p(A.REPORT, R.DOCUMENT),
    ),
    SystemRole.ACCOUNTANT: RoleGrant.of(
        _p(A.READ, R.LOAD),
        _p(A.READ, R.DRIVER),
        _p(A.READ, R.VEHICLE),
        _p(A.CREATE, R.IFTA_REPORT),
        _p(A.READ, R.IFTA_REPORT),
        _p(A.UPDATE, R.IFTA_REPORT),
        _p(A.REPORT, R.IFTA_REPORT),
        _p(A.READ, R.BILLING),
    ),
    SystemRole.VIEWER: RoleGrant.of(
        _p(A.READ, R.LOAD),
        _p(A.READ, R.DRIVER),
        _p(A.READ, R.VEHICLE),
        _p(A.READ, R.DOCUMENT),
        _p(A.READ, R.IFTA_REPORT),
    ),
}

del A, R


def _validate_role_table(table: dict[SystemRole, RoleGrant]) -> None:
    missing = [role.value for role in SystemRole if role not in table]
    if missing:
        raise RuntimeError(f"Role table has no grant for: {', '.join(missing)}")
    empty = [role.value for role, grant in table.items() if grant.is_empty()]
    if empty:
        raise RuntimeError(f"Role table has empty grants for: {', '.join(empty)}")
    for role in UNRESTRICTED_ROLES:
        if not table[role].unrestricted:
            raise RuntimeError(f"Role {role.value!r} must be unrestricted")


_validate_role_table(ROLE_PERMISSIONS)
