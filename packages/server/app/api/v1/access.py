"""
Access-check endpoints for page guards and server actions.

GET  /api/v1/orgs/{orgId}/me             Caller's context and effective permissions
POST /api/v1/orgs/{orgId}/authorize      Decide one (action, resource) pair
GET  /api/v1/orgs/{orgId}/routes/check   Route-protection decision for a page path
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.core.auth import require_org_member
from app.core.permissions import (
    RouteProtection,
    check_permission,
    effective_permissions,
    resolve_role,
)
from fleetfusion_shared.schemas.auth import (
    AccessCheckRequest,
    AccessCheckResponse,
    MeResponse,
    RouteCheckResponse,
    UserContext,
)

router = APIRouter()


@router.get("/me", response_model=MeResponse, tags=["Access"])
async def get_me(
    user: UserContext = Depends(require_org_member),
):
    """The caller's UserContext, resolved role and effective permissions."""
    role = resolve_role(user.role)
    return MeResponse(
        user=user,
        resolved_role=role.value if role else "",
        effective_permissions=effective_permissions(user),
    )


@router.post("/authorize", response_model=AccessCheckResponse, tags=["Access"])
async def authorize(
    body: AccessCheckRequest,
    user: UserContext = Depends(require_org_member),
):
    """Denial is a normal answer here, returned with 200 and a reason."""
    decision = check_permission(user, body.action, body.resource)
    return AccessCheckResponse(action=body.action, resource=body.resource, decision=decision)


@router.get("/routes/check", response_model=RouteCheckResponse, tags=["Access"])
async def check_route(
    path: str = Query(..., min_length=1, max_length=512),
    user: UserContext = Depends(require_org_member),
):
    return RouteCheckResponse(path=path, decision=RouteProtection.check_route(user, path))
