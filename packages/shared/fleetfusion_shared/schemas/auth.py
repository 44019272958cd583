"""
Request-scoped authorization schemas.

UserContext is built fresh per request from identity-provider session claims
and is never persisted. AuthorizationDecision is what the resolver returns
instead of raising.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .abac import Permission, PermissionAction, ResourceType


class DenialReason(str, Enum):
    UNAUTHORIZED = "unauthorized"  # no session, or session missing role/org
    INACTIVE = "inactive"
    FORBIDDEN = "forbidden"
    CROSS_TENANT = "cross_tenant"


class UserContext(BaseModel):
    """The caller, as seen by the permission layer."""

    user_id: str
    organization_id: Optional[str] = None
    role: Optional[str] = None  # raw role string; resolved at check time
    permissions: list[Permission] = Field(
        default_factory=list,
        description="Explicit grants on top of the role's table entry",
    )
    is_active: bool = True
    email: Optional[str] = None
    name: Optional[str] = None
    onboarding_complete: bool = False


class MirroredUser(BaseModel):
    """What the membership mirror knows about a user within one organization.

    Cached between requests; merged with fresh session claims on every request.
    """

    user_id: str
    organization_id: Optional[str] = None
    membership_role: Optional[str] = None
    is_active: bool = True
    email: Optional[str] = None


class AuthorizationDecision(BaseModel):
    allowed: bool
    reason: Optional[DenialReason] = None
    detail: str = ""

    @classmethod
    def allow(cls) -> AuthorizationDecision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DenialReason, detail: str = "") -> AuthorizationDecision:
        return cls(allowed=False, reason=reason, detail=detail)

    def __bool__(self) -> bool:
        return self.allowed


# ---------------------------------------------------------------------------
# Request / response schemas
# ---------------------------------------------------------------------------

class AccessCheckRequest(BaseModel):
    action: PermissionAction
    resource: ResourceType


class AccessCheckResponse(BaseModel):
    action: PermissionAction
    resource: ResourceType
    decision: AuthorizationDecision


class RouteCheckResponse(BaseModel):
    path: str
    decision: AuthorizationDecision


class MeResponse(BaseModel):
    user: UserContext
    resolved_role: str
    effective_permissions: list[str]
