"""
Permission resolution for FleetFusion.

Pure, synchronous checks over the static role table in
``fleetfusion_shared.schemas.abac`` and a request-scoped UserContext:

- check_* functions return an AuthorizationDecision and never raise
- has_* / can_* functions (and PermissionChecks) are the boolean forms
- authorize_* functions raise AuthorizationError on denial (via ``enforce``)
- RouteProtection gates tenant page paths by role
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Optional, Union

import structlog

from app.core.errors import ForbiddenError, UnauthorizedError
from fleetfusion_shared.schemas.abac import (
    IDENTITY_PROVIDER_ROLE_ALIASES,
    ROLE_PERMISSIONS,
    UNRESTRICTED_ROLES,
    Permission,
    PermissionAction,
    ResourceType,
    RoleGrant,
    SystemRole,
)
from fleetfusion_shared.schemas.auth import (
    AuthorizationDecision,
    DenialReason,
    UserContext,
)

log = structlog.get_logger()

ActionLike = Union[PermissionAction, str]
ResourceLike = Union[ResourceType, str]
RoleLike = Union[SystemRole, str]


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------

def resolve_role(raw: Optional[str]) -> Optional[SystemRole]:
    """Map a raw role string to a SystemRole.

    Returns None for a missing role. Unknown roles fall back to viewer and are
    logged as a configuration warning.
    """
    if not raw:
        return None
    if isinstance(raw, SystemRole):
        return raw
    alias = IDENTITY_PROVIDER_ROLE_ALIASES.get(raw)
    if alias is not None:
        return alias
    try:
        return SystemRole(raw)
    except ValueError:
        log.warning(
            "permissions.unknown_role",
            role=raw,
            fallback=SystemRole.VIEWER.value,
        )
        return SystemRole.VIEWER


def get_permissions_for_role(role: RoleLike) -> RoleGrant:
    resolved = resolve_role(role) or SystemRole.VIEWER
    return ROLE_PERMISSIONS[resolved]


def _coerce_roles(roles: Iterable[RoleLike]) -> set[SystemRole]:
    result: set[SystemRole] = set()
    for role in roles:
        try:
            result.add(SystemRole(role))
        except ValueError:
            log.warning("permissions.unknown_allowed_role", role=str(role))
    return result


def _precheck(user: Optional[UserContext]) -> Optional[AuthorizationDecision]:
    """Deny malformed or inactive users before looking at the role table."""
    if user is None:
        return AuthorizationDecision.deny(DenialReason.UNAUTHORIZED, "No authenticated user")
    if not user.organization_id:
        return AuthorizationDecision.deny(DenialReason.UNAUTHORIZED, "Session has no organization")
    if not user.role:
        return AuthorizationDecision.deny(DenialReason.UNAUTHORIZED, "Session has no role")
    if not user.is_active:
        return AuthorizationDecision.deny(DenialReason.INACTIVE, "User is inactive")
    return None


# ---------------------------------------------------------------------------
# Permission checks
# ---------------------------------------------------------------------------

def check_permission(
    user: Optional[UserContext],
    action: ActionLike,
    resource: ResourceLike,
) -> AuthorizationDecision:
    """Decide whether ``user`` may perform ``action`` on ``resource``."""
    denial = _precheck(user)
    if denial is not None:
        return denial

    try:
        action = PermissionAction(action)
        resource = ResourceType(resource)
    except ValueError:
        log.warning("permissions.unknown_permission", action=str(action), resource=str(resource))
        return AuthorizationDecision.deny(
            DenialReason.FORBIDDEN, f"Unknown permission {action}:{resource}"
        )

    role = resolve_role(user.role)
    if ROLE_PERMISSIONS[role].allows(action, resource):
        return AuthorizationDecision.allow()
    if any(p.grants(action, resource) for p in user.permissions):
        return AuthorizationDecision.allow()

    return AuthorizationDecision.deny(
        DenialReason.FORBIDDEN,
        f"Role {role.value!r} lacks {action.value}:{resource.value}",
    )


def has_permission(
    user: Optional[UserContext],
    action: ActionLike,
    resource: ResourceLike,
) -> bool:
    return check_permission(user, action, resource).allowed


def has_any_permission(user: Optional[UserContext], permissions: Iterable[Permission]) -> bool:
    return any(has_permission(user, p.action, p.resource) for p in permissions)


def has_all_permissions(user: Optional[UserContext], permissions: Iterable[Permission]) -> bool:
    # all() of an empty iterable is True; still require a usable user
    if _precheck(user) is not None:
        return False
    return all(has_permission(user, p.action, p.resource) for p in permissions)


def effective_permissions(user: Optional[UserContext]) -> list[str]:
    """Sorted ``action:resource`` strings the user holds; ``["*"]`` when unrestricted."""
    if _precheck(user) is not None:
        return []
    grant = ROLE_PERMISSIONS[resolve_role(user.role)]
    if grant.unrestricted:
        return ["*"]
    return sorted({str(p) for p in grant.permissions} | {str(p) for p in user.permissions})


def can_manage_users(user: Optional[UserContext]) -> bool:
    return has_permission(user, PermissionAction.MANAGE, ResourceType.USER)


def can_view_billing(user: Optional[UserContext]) -> bool:
    return has_permission(user, PermissionAction.READ, ResourceType.BILLING)


def can_manage_settings(user: Optional[UserContext]) -> bool:
    return has_permission(user, PermissionAction.UPDATE, ResourceType.ORGANIZATION)


def _predicate(action: PermissionAction, resource: ResourceType):
    def check(user: Optional[UserContext]) -> bool:
        return has_permission(user, action, resource)

    check.__name__ = f"can_{action.value}_{resource.value}"
    return check


class PermissionChecks:
    """Named boolean checks for page guards and server actions, per resource."""

    can_view_vehicles = staticmethod(_predicate(PermissionAction.READ, ResourceType.VEHICLE))
    can_create_vehicles = staticmethod(_predicate(PermissionAction.CREATE, ResourceType.VEHICLE))
    can_update_vehicles = staticmethod(_predicate(PermissionAction.UPDATE, ResourceType.VEHICLE))
    can_delete_vehicles = staticmethod(_predicate(PermissionAction.DELETE, ResourceType.VEHICLE))

    can_view_drivers = staticmethod(_predicate(PermissionAction.READ, ResourceType.DRIVER))
    can_create_drivers = staticmethod(_predicate(PermissionAction.CREATE, ResourceType.DRIVER))
    can_update_drivers = staticmethod(_predicate(PermissionAction.UPDATE, ResourceType.DRIVER))
    can_delete_drivers = staticmethod(_predicate(PermissionAction.DELETE, ResourceType.DRIVER))

    can_view_loads = staticmethod(_predicate(PermissionAction.READ, ResourceType.LOAD))
    can_create_loads = staticmethod(_predicate(PermissionAction.CREATE, ResourceType.LOAD))
    can_update_loads = staticmethod(_predicate(PermissionAction.UPDATE, ResourceType.LOAD))
    can_delete_loads = staticmethod(_predicate(PermissionAction.DELETE, ResourceType.LOAD))
    can_assign_loads = staticmethod(_predicate(PermissionAction.ASSIGN, ResourceType.LOAD))

    can_view_documents = staticmethod(_predicate(PermissionAction.READ, ResourceType.DOCUMENT))
    can_create_documents = staticmethod(_predicate(PermissionAction.CREATE, ResourceType.DOCUMENT))
    can_update_documents = staticmethod(_predicate(PermissionAction.UPDATE, ResourceType.DOCUMENT))
    can_delete_documents = staticmethod(_predicate(PermissionAction.DELETE, ResourceType.DOCUMENT))
    can_approve_documents = staticmethod(_predicate(PermissionAction.APPROVE, ResourceType.DOCUMENT))

    can_view_ifta = staticmethod(_predicate(PermissionAction.READ, ResourceType.IFTA_REPORT))
    can_create_ifta = staticmethod(_predicate(PermissionAction.CREATE, ResourceType.IFTA_REPORT))
    can_update_ifta = staticmethod(_predicate(PermissionAction.UPDATE, ResourceType.IFTA_REPORT))
    can_report_ifta = staticmethod(_predicate(PermissionAction.REPORT, ResourceType.IFTA_REPORT))

    can_view_organization = staticmethod(_predicate(PermissionAction.READ, ResourceType.ORGANIZATION))
    can_update_organization = staticmethod(
        _predicate(PermissionAction.UPDATE, ResourceType.ORGANIZATION)
    )

    can_view_billing = staticmethod(_predicate(PermissionAction.READ, ResourceType.BILLING))
    can_manage_billing = staticmethod(_predicate(PermissionAction.MANAGE, ResourceType.BILLING))

    can_view_users = staticmethod(_predicate(PermissionAction.READ, ResourceType.USER))
    can_create_users = staticmethod(_predicate(PermissionAction.CREATE, ResourceType.USER))
    can_update_users = staticmethod(_predicate(PermissionAction.UPDATE, ResourceType.USER))
    can_delete_users = staticmethod(_predicate(PermissionAction.DELETE, ResourceType.USER))
    can_manage_users = staticmethod(_predicate(PermissionAction.MANAGE, ResourceType.USER))


# ---------------------------------------------------------------------------
# Role checks
# ---------------------------------------------------------------------------

def check_roles(
    user: Optional[UserContext],
    allowed_roles: Iterable[RoleLike],
) -> AuthorizationDecision:
    """Admit the user if their role is in ``allowed_roles``; owner and admin always pass."""
    denial = _precheck(user)
    if denial is not None:
        return denial

    allowed = _coerce_roles(allowed_roles) | UNRESTRICTED_ROLES
    role = resolve_role(user.role)
    if role in allowed:
        return AuthorizationDecision.allow()
    return AuthorizationDecision.deny(
        DenialReason.FORBIDDEN, f"Role {role.value!r} is not allowed"
    )


def has_role(user: Optional[UserContext], role: RoleLike) -> bool:
    if _precheck(user) is not None:
        return False
    return resolve_role(user.role) in _coerce_roles([role])


def has_any_role(user: Optional[UserContext], roles: Iterable[RoleLike]) -> bool:
    """Exact membership test; unlike check_roles, admin/owner are not implied."""
    if _precheck(user) is not None:
        return False
    return resolve_role(user.role) in _coerce_roles(roles)


def is_admin(user: Optional[UserContext]) -> bool:
    return has_any_role(user, UNRESTRICTED_ROLES)


def belongs_to_organization(user: Optional[UserContext], organization_id: str) -> bool:
    """Case-sensitive tenant check."""
    if user is None:
        return False
    return user.organization_id == organization_id


# ---------------------------------------------------------------------------
# Raising forms
# ---------------------------------------------------------------------------

def enforce(decision: AuthorizationDecision) -> None:
    """Raise the matching AuthorizationError for a denied decision."""
    if decision.allowed:
        return
    if decision.reason == DenialReason.UNAUTHORIZED:
        raise UnauthorizedError(decision.detail or "Authentication required")
    raise ForbiddenError(decision.detail or "Access denied")


def authorize_roles(user: Optional[UserContext], allowed_roles: Iterable[RoleLike]) -> None:
    enforce(check_roles(user, allowed_roles))


def authorize_permission(
    user: Optional[UserContext],
    action: ActionLike,
    resource: ResourceLike,
) -> None:
    enforce(check_permission(user, action, resource))


# ---------------------------------------------------------------------------
# Resource ownership
# ---------------------------------------------------------------------------

class ResourcePermissions:
    """Record-level checks: broad read access, or a driver's own records."""

    @staticmethod
    def _is_own_record(user: Optional[UserContext], owner_id: Optional[str]) -> bool:
        if owner_id is None or not has_role(user, SystemRole.DRIVER):
            return False
        return user.user_id == owner_id

    @staticmethod
    def can_access_driver(user: Optional[UserContext], driver_id: str) -> bool:
        if has_permission(user, PermissionAction.READ, ResourceType.DRIVER):
            return True
        return ResourcePermissions._is_own_record(user, driver_id)

    @staticmethod
    def can_access_load(user: Optional[UserContext], load_driver_id: Optional[str] = None) -> bool:
        if has_permission(user, PermissionAction.READ, ResourceType.LOAD):
            return True
        return ResourcePermissions._is_own_record(user, load_driver_id)

    @staticmethod
    def can_access_compliance_document(
        user: Optional[UserContext], document_driver_id: Optional[str] = None
    ) -> bool:
        if has_permission(user, PermissionAction.READ, ResourceType.DOCUMENT):
            return True
        return ResourcePermissions._is_own_record(user, document_driver_id)


# ---------------------------------------------------------------------------
# Route protection
# ---------------------------------------------------------------------------

_ALL_ROLES = tuple(SystemRole)
_PARAM = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")


def _compile_route(pattern: str) -> re.Pattern[str]:
    """``/:orgId/drivers/:userId`` → anchored regex with named groups."""
    regex = _PARAM.sub(lambda m: f"(?P<{m.group(1)}>[^/]+)", pattern)
    return re.compile(f"^{regex}$")


class RouteProtection:
    """The canonical tenant route → allowed roles table."""

    PROTECTED_ROUTES: dict[str, tuple[SystemRole, ...]] = {
        "/:orgId/dashboard/:userId": _ALL_ROLES,
        "/:orgId/compliance/:userId": (
            SystemRole.COMPLIANCE_OFFICER,
            SystemRole.ADMIN,
        ),
        "/:orgId/drivers": (
            SystemRole.ADMIN,
            SystemRole.DISPATCHER,
            SystemRole.COMPLIANCE_OFFICER,
            SystemRole.VIEWER,
            SystemRole.ACCOUNTANT,
        ),
        "/:orgId/drivers/:userId": (
            SystemRole.DRIVER,
            SystemRole.ADMIN,
            SystemRole.DISPATCHER,
            SystemRole.COMPLIANCE_OFFICER,
        ),
        "/:orgId/dispatch/:userId": (
            SystemRole.DISPATCHER,
            SystemRole.ADMIN,
        ),
        "/:orgId/analytics": (
            SystemRole.ADMIN,
            SystemRole.DISPATCHER,
            SystemRole.COMPLIANCE_OFFICER,
            SystemRole.VIEWER,
            SystemRole.ACCOUNTANT,
        ),
        "/:orgId/vehicles": (
            SystemRole.ADMIN,
            SystemRole.DISPATCHER,
            SystemRole.COMPLIANCE_OFFICER,
            SystemRole.VIEWER,
            SystemRole.ACCOUNTANT,
        ),
        "/:orgId/ifta": (
            SystemRole.ADMIN,
            SystemRole.ACCOUNTANT,
        ),
        "/:orgId/settings": (SystemRole.ADMIN,),
        "/:orgId/admin": (SystemRole.ADMIN,),
    }

    _compiled: list[tuple[re.Pattern[str], tuple[SystemRole, ...]]] = [
        (_compile_route(pattern), roles) for pattern, roles in PROTECTED_ROUTES.items()
    ]

    @staticmethod
    def normalize(path: str) -> str:
        path = path.split("?", 1)[0].split("#", 1)[0]
        return "/" + path.strip("/")

    @classmethod
    def match(cls, path: str) -> Optional[tuple[re.Match[str], tuple[SystemRole, ...]]]:
        normalized = cls.normalize(path)
        for regex, roles in cls._compiled:
            m = regex.match(normalized)
            if m:
                return m, roles
        return None

    @classmethod
    def check_route(cls, user: Optional[UserContext], path: str) -> AuthorizationDecision:
        denial = _precheck(user)
        if denial is not None:
            return denial

        matched = cls.match(path)
        if matched is None:
            # Unlisted paths are open to any active, authenticated user
            return AuthorizationDecision.allow()

        m, roles = matched
        org_id = m.groupdict().get("orgId")
        if org_id is not None and not belongs_to_organization(user, org_id):
            return AuthorizationDecision.deny(
                DenialReason.CROSS_TENANT, "Path belongs to another organization"
            )
        return check_roles(user, roles)

    @classmethod
    def can_access_route(cls, user: Optional[UserContext], path: str) -> bool:
        return cls.check_route(user, path).allowed
