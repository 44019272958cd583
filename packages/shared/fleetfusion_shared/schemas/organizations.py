"""
Organization-related Pydantic schemas.

Covers: organization metadata (as cached and returned by the API) and the
mirrored membership listing.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SubscriptionTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    TRIAL = "trial"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrganizationMetadata(BaseModel):
    id: str
    name: str
    slug: Optional[str] = None
    dot_number: Optional[str] = None
    mc_number: Optional[str] = None
    billing_email: Optional[str] = None
    max_users: Optional[int] = Field(default=None, ge=0)
    is_active: bool = True
    subscription_tier: SubscriptionTier = SubscriptionTier.FREE
    subscription_status: SubscriptionStatus = SubscriptionStatus.TRIAL

    model_config = {"from_attributes": True}


class MemberResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str
    is_active: bool = True
    created_at: datetime


class MemberListResponse(BaseModel):
    data: list[MemberResponse]
