"""
Authentication and authorization dependencies for FleetFusion.

- Session tokens: identity-provider style JWT claims (PyJWT, HS256)
- UserContext construction from claims, backed by the membership mirror and
  the application's AuthCache
- FastAPI dependencies for org membership, role and permission gates
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import APIKeyHeader
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.cache import AuthCache, get_auth_cache
from app.core.config import get_settings
from app.core.database import get_session
from app.core.errors import ForbiddenError, UnauthorizedError
from app.core.permissions import (
    authorize_roles,
    belongs_to_organization,
    check_permission,
    enforce,
)
from app.models.membership import OrganizationMembership
from app.models.user import User
from fleetfusion_shared.schemas.abac import Permission, PermissionAction, ResourceType
from fleetfusion_shared.schemas.auth import MirroredUser, UserContext

log = structlog.get_logger()
settings = get_settings()

bearer_header = APIKeyHeader(name="Authorization", auto_error=False)

SESSION_COOKIE = "__session"


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------

def create_session_token(
    user_id: str,
    organization_id: Optional[str],
    role: Optional[str],
    *,
    permissions: Iterable[str] = (),
    is_active: bool = True,
    onboarding_complete: bool = True,
    email: Optional[str] = None,
    name: Optional[str] = None,
    expires_delta: timedelta | None = None,
) -> tuple[str, str]:
    """Create a signed session token. Returns (token, jti)."""
    jti = str(uuid.uuid4())
    now = datetime.now(timezone.utc)
    exp = now + (expires_delta or timedelta(minutes=settings.jwt_expire_minutes))
    payload: dict[str, Any] = {
        "sub": user_id,
        "org_id": organization_id,
        "email": email,
        "name": name,
        "metadata": {
            "role": role,
            "permissions": list(permissions),
            "isActive": is_active,
            "onboardingComplete": onboarding_complete,
        },
        "iat": now,
        "exp": exp,
        "jti": jti,
    }
    token = jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)
    return token, jti


def decode_session_token(token: str) -> dict:
    """Decode and verify a session token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def parse_override_permissions(raw: Any) -> list[Permission]:
    """Parse ``["action:resource", ...]``; malformed entries are dropped with a warning."""
    if not isinstance(raw, list):
        return []
    parsed: list[Permission] = []
    for value in raw:
        try:
            parsed.append(Permission.parse(str(value)))
        except ValueError:
            log.warning("auth.invalid_permission_claim", permission=str(value))
    return parsed


# ---------------------------------------------------------------------------
# UserContext
# ---------------------------------------------------------------------------

async def load_mirrored_user(
    user_id: str,
    org_id: Optional[str],
    session: AsyncSession,
    cache: AuthCache,
) -> MirroredUser:
    """The mirror's view of a user in one organization, cached by user id."""
    cached = cache.get_user(user_id)
    if cached is not None and cached.organization_id == org_id:
        return cached

    db_user = await session.get(User, user_id)
    membership_role = None
    if org_id:
        membership = await session.get(OrganizationMembership, (user_id, org_id))
        if membership is not None:
            membership_role = membership.role

    mirrored = MirroredUser(
        user_id=user_id,
        organization_id=org_id,
        membership_role=membership_role,
        is_active=db_user.is_active if db_user is not None else True,
        email=db_user.email if db_user is not None else None,
    )
    cache.set_user(user_id, mirrored)
    return mirrored


async def build_user_context(
    claims: dict,
    session: AsyncSession,
    cache: AuthCache,
) -> UserContext:
    """Turn verified session claims into a UserContext.

    Role, override permissions and the active flag are read from the claims on
    every call. ``metadata.role`` wins over ``org_role``; with neither, the
    mirrored membership role is used. A mirrored user marked inactive stays
    inactive whatever the claims say.
    """
    user_id = claims.get("sub")
    if not user_id:
        raise UnauthorizedError("Session has no subject")

    metadata = claims.get("metadata") or {}
    org_id = claims.get("org_id") or metadata.get("organizationId")
    mirrored = await load_mirrored_user(user_id, org_id, session, cache)

    role = metadata.get("role") or claims.get("org_role") or mirrored.membership_role
    is_active = bool(metadata.get("isActive", True)) and mirrored.is_active

    user = UserContext(
        user_id=user_id,
        organization_id=org_id,
        role=role,
        permissions=parse_override_permissions(metadata.get("permissions")),
        is_active=is_active,
        email=claims.get("email") or mirrored.email,
        name=claims.get("name"),
        onboarding_complete=bool(metadata.get("onboardingComplete", False)),
    )
    log.debug("auth.context_built", user_id=user_id, org_id=org_id, role=role)
    return user


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

def _extract_token(request: Request, authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    return request.cookies.get(SESSION_COOKIE)


async def get_user_context(
    request: Request,
    authorization: Optional[str] = Depends(bearer_header),
    session: AsyncSession = Depends(get_session),
    cache: AuthCache = Depends(get_auth_cache),
) -> UserContext:
    """Main authentication dependency: Bearer header first, then session cookie."""
    token = _extract_token(request, authorization)
    if not token:
        raise UnauthorizedError()

    try:
        claims = decode_session_token(token)
    except jwt.PyJWTError:
        raise UnauthorizedError("Invalid or expired session")

    user = await build_user_context(claims, session, cache)
    request.state.user = user
    structlog.contextvars.bind_contextvars(user_id=user.user_id, org_id=user.organization_id)
    return user


# ---------------------------------------------------------------------------
# Authorization dependencies
# ---------------------------------------------------------------------------

async def require_org_member(
    orgId: str,
    user: UserContext = Depends(get_user_context),
) -> UserContext:
    """The caller's session must be scoped to the organization in the path."""
    if not belongs_to_organization(user, orgId):
        log.info("auth.cross_tenant_denied", user_id=user.user_id, requested_org=orgId)
        raise ForbiddenError("Organization access denied")
    return user


def require_roles(*roles: str):
    """Dependency factory: caller's role must be in ``roles`` (owner/admin always pass)."""

    async def dependency(user: UserContext = Depends(require_org_member)) -> UserContext:
        authorize_roles(user, roles)
        return user

    return dependency


def require_permission(action: PermissionAction, resource: ResourceType):
    """Dependency factory: caller must hold ``action`` on ``resource``."""

    async def dependency(user: UserContext = Depends(require_org_member)) -> UserContext:
        decision = check_permission(user, action, resource)
        if not decision.allowed:
            log.info(
                "auth.permission_denied",
                user_id=user.user_id,
                action=action.value,
                resource=resource.value,
                reason=decision.reason.value if decision.reason else None,
            )
        enforce(decision)
        return user

    return dependency
