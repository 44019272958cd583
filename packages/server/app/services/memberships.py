"""
Membership mirror service: keeps users, organizations and memberships in the
relational store in step with the identity provider, and serves reads of it.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.cache import AuthCache
from app.models.membership import OrganizationMembership
from app.models.organization import Organization
from app.models.user import User
from fleetfusion_shared.schemas.organizations import (
    OrganizationMetadata,
    SubscriptionStatus,
    SubscriptionTier,
)
from fleetfusion_shared.schemas.webhooks import OrganizationPayload

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

async def upsert_user(
    session: AsyncSession,
    *,
    user_id: str,
    email: Optional[str],
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    profile_image: Optional[str] = None,
    is_active: bool = True,
    onboarding_complete: bool = False,
) -> User:
    user = await session.get(User, user_id)
    if user is None:
        user = User(id=user_id)
    user.email = email
    user.first_name = first_name
    user.last_name = last_name
    user.profile_image = profile_image
    user.is_active = is_active
    user.onboarding_complete = onboarding_complete
    session.add(user)
    await session.flush()
    log.info("membership.user_upserted", user_id=user_id, is_active=is_active)
    return user


async def delete_user(user_id: str, session: AsyncSession) -> bool:
    """Delete a user and all of their memberships. Returns False if unknown."""
    user = await session.get(User, user_id)
    if user is None:
        return False
    await session.execute(
        delete(OrganizationMembership).where(OrganizationMembership.user_id == user_id)
    )
    await session.delete(user)
    await session.flush()
    log.info("membership.user_deleted", user_id=user_id)
    return True


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

async def upsert_organization(payload: OrganizationPayload, session: AsyncSession) -> Organization:
    meta = payload.public_metadata
    org = await session.get(Organization, payload.id)
    if org is None:
        org = Organization(id=payload.id, name=payload.name or payload.id)
    org.name = payload.name or org.name
    org.slug = payload.slug
    org.dot_number = meta.dot_number
    org.mc_number = meta.mc_number
    org.billing_email = meta.billing_email
    org.max_users = payload.max_allowed_memberships or meta.max_users
    org.is_active = meta.is_active
    settings = dict(org.settings or {})
    if meta.subscription_tier:
        settings["subscriptionTier"] = meta.subscription_tier
    if meta.subscription_status:
        settings["subscriptionStatus"] = meta.subscription_status
    org.settings = settings
    session.add(org)
    await session.flush()
    log.info("membership.organization_upserted", org_id=payload.id)
    return org


async def ensure_organization(org_id: str, name: Optional[str], session: AsyncSession) -> Organization:
    """Make sure a membership's organization row exists before linking to it."""
    org = await session.get(Organization, org_id)
    if org is None:
        org = Organization(id=org_id, name=name or org_id)
        session.add(org)
        await session.flush()
    return org


async def delete_organization(org_id: str, session: AsyncSession) -> bool:
    org = await session.get(Organization, org_id)
    if org is None:
        return False
    await session.execute(
        delete(OrganizationMembership).where(OrganizationMembership.organization_id == org_id)
    )
    await session.delete(org)
    await session.flush()
    log.info("membership.organization_deleted", org_id=org_id)
    return True


def _metadata_from_row(org: Organization) -> OrganizationMetadata:
    settings = org.settings or {}
    try:
        tier = SubscriptionTier(settings.get("subscriptionTier", SubscriptionTier.FREE.value))
    except ValueError:
        tier = SubscriptionTier.FREE
    try:
        status = SubscriptionStatus(
            settings.get("subscriptionStatus", SubscriptionStatus.TRIAL.value)
        )
    except ValueError:
        status = SubscriptionStatus.TRIAL
    return OrganizationMetadata(
        id=org.id,
        name=org.name,
        slug=org.slug,
        dot_number=org.dot_number,
        mc_number=org.mc_number,
        billing_email=org.billing_email,
        max_users=org.max_users,
        is_active=org.is_active,
        subscription_tier=tier,
        subscription_status=status,
    )


async def get_organization_metadata(
    org_id: str, session: AsyncSession, cache: AuthCache
) -> Optional[OrganizationMetadata]:
    """Organization metadata, served from the cache when fresh."""
    cached = cache.get_organization(org_id)
    if cached is not None:
        return cached
    org = await session.get(Organization, org_id)
    if org is None:
        return None
    meta = _metadata_from_row(org)
    cache.set_organization(org_id, meta)
    return meta


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------

async def get_membership(
    user_id: str, org_id: str, session: AsyncSession
) -> Optional[OrganizationMembership]:
    return await session.get(OrganizationMembership, (user_id, org_id))


async def upsert_membership(
    user_id: str, org_id: str, role: str, session: AsyncSession
) -> OrganizationMembership:
    membership = await get_membership(user_id, org_id, session)
    if membership is None:
        membership = OrganizationMembership(user_id=user_id, organization_id=org_id, role=role)
    else:
        membership.role = role
    session.add(membership)
    await session.flush()
    log.info("membership.upserted", user_id=user_id, org_id=org_id, role=role)
    return membership


async def delete_membership(user_id: str, org_id: str, session: AsyncSession) -> bool:
    """Remove a membership. The user row is kept."""
    membership = await get_membership(user_id, org_id, session)
    if membership is None:
        return False
    await session.delete(membership)
    await session.flush()
    log.info("membership.deleted", user_id=user_id, org_id=org_id)
    return True


async def list_members(org_id: str, session: AsyncSession) -> list[dict]:
    """All mirrored members of an org with their role."""
    result = await session.execute(
        select(User, OrganizationMembership)
        .join(OrganizationMembership, OrganizationMembership.user_id == User.id)
        .where(OrganizationMembership.organization_id == org_id)
        .order_by(OrganizationMembership.created_at)
    )
    rows = result.all()
    return [
        {
            "user_id": user.id,
            "email": user.email,
            "first_name": user.first_name,
            "last_name": user.last_name,
            "role": membership.role,
            "is_active": user.is_active,
            "created_at": membership.created_at,
        }
        for user, membership in rows
    ]
