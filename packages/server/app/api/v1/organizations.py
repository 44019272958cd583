"""
Organization API endpoints (read-only; the identity provider owns writes).

GET /api/v1/orgs/{orgId}           Organization metadata
GET /api/v1/orgs/{orgId}/members   Mirrored memberships (requires read:user)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import require_org_member, require_permission
from app.core.cache import AuthCache, get_auth_cache
from app.core.database import get_session
from app.services import memberships as membership_service
from fleetfusion_shared.schemas.abac import PermissionAction, ResourceType
from fleetfusion_shared.schemas.auth import UserContext
from fleetfusion_shared.schemas.organizations import (
    MemberListResponse,
    MemberResponse,
    OrganizationMetadata,
)

router = APIRouter()


@router.get("", response_model=OrganizationMetadata, tags=["Organizations"])
async def get_org(
    user: UserContext = Depends(require_org_member),
    session: AsyncSession = Depends(get_session),
    cache: AuthCache = Depends(get_auth_cache),
):
    """Get organization metadata (cached)."""
    meta = await membership_service.get_organization_metadata(
        user.organization_id, session, cache
    )
    if meta is None:
        raise HTTPException(status_code=404, detail="Organization not found")
    return meta


@router.get("/members", response_model=MemberListResponse, tags=["Organizations"])
async def list_members(
    user: UserContext = Depends(require_permission(PermissionAction.READ, ResourceType.USER)),
    session: AsyncSession = Depends(get_session),
):
    """List mirrored members of the org."""
    items = await membership_service.list_members(user.organization_id, session)
    return MemberListResponse(data=[MemberResponse(**item) for item in items])
