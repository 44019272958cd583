"""
API v1 Router

All org-scoped endpoints are prefixed with /orgs/{orgId}.
"""

from fastapi import APIRouter

from . import access, organizations, webhooks

router = APIRouter()

router.include_router(organizations.router, prefix="/orgs/{orgId}", tags=["Organizations"])
router.include_router(access.router, prefix="/orgs/{orgId}", tags=["Access"])
router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/orgs/{orgId}",
            "/orgs/{orgId}/me",
            "/orgs/{orgId}/authorize",
            "/orgs/{orgId}/routes/check",
            "/orgs/{orgId}/members",
            "/webhooks/identity",
        ],
    }
