"""
Identity-provider webhook payloads.

Only the fields the membership mirror reads are modelled; everything else in
the payload is ignored.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class WebhookEventType(str, Enum):
    USER_CREATED = "user.created"
    USER_UPDATED = "user.updated"
    USER_DELETED = "user.deleted"
    ORGANIZATION_CREATED = "organization.created"
    ORGANIZATION_UPDATED = "organization.updated"
    ORGANIZATION_DELETED = "organization.deleted"
    MEMBERSHIP_CREATED = "organizationMembership.created"
    MEMBERSHIP_UPDATED = "organizationMembership.updated"
    MEMBERSHIP_DELETED = "organizationMembership.deleted"


USER_EVENTS = {
    WebhookEventType.USER_CREATED,
    WebhookEventType.USER_UPDATED,
    WebhookEventType.USER_DELETED,
}
ORGANIZATION_EVENTS = {
    WebhookEventType.ORGANIZATION_CREATED,
    WebhookEventType.ORGANIZATION_UPDATED,
    WebhookEventType.ORGANIZATION_DELETED,
}
MEMBERSHIP_EVENTS = {
    WebhookEventType.MEMBERSHIP_CREATED,
    WebhookEventType.MEMBERSHIP_UPDATED,
    WebhookEventType.MEMBERSHIP_DELETED,
}


class WebhookStatus(str, Enum):
    PROCESSED = "processed"
    FAILED = "failed"


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class EmailAddress(_Payload):
    email_address: str


class UserPublicMetadata(_Payload):
    role: Optional[str] = None
    is_active: bool = Field(default=True, alias="isActive")
    onboarding_complete: bool = Field(default=False, alias="onboardingComplete")


class OrganizationRef(_Payload):
    id: str
    name: Optional[str] = None
    slug: Optional[str] = None


class UserMembershipRef(_Payload):
    organization: OrganizationRef


class UserPayload(_Payload):
    id: str
    email_addresses: list[EmailAddress] = Field(default_factory=list)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    public_metadata: UserPublicMetadata = Field(default_factory=UserPublicMetadata)
    organization_memberships: list[UserMembershipRef] = Field(default_factory=list)

    @property
    def primary_email(self) -> Optional[str]:
        return self.email_addresses[0].email_address if self.email_addresses else None

    @property
    def primary_organization_id(self) -> Optional[str]:
        if not self.organization_memberships:
            return None
        return self.organization_memberships[0].organization.id


# ---------------------------------------------------------------------------
# Organizations
# ---------------------------------------------------------------------------

class OrganizationPublicMetadata(_Payload):
    dot_number: Optional[str] = Field(default=None, alias="dotNumber")
    mc_number: Optional[str] = Field(default=None, alias="mcNumber")
    billing_email: Optional[str] = Field(default=None, alias="billingEmail")
    max_users: Optional[int] = Field(default=None, alias="maxUsers")
    is_active: bool = Field(default=True, alias="isActive")
    subscription_tier: Optional[str] = Field(default=None, alias="subscriptionTier")
    subscription_status: Optional[str] = Field(default=None, alias="subscriptionStatus")


class OrganizationPayload(_Payload):
    id: str
    name: str = ""
    slug: Optional[str] = None
    max_allowed_memberships: Optional[int] = None
    public_metadata: OrganizationPublicMetadata = Field(
        default_factory=OrganizationPublicMetadata
    )


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------

class PublicUserData(_Payload):
    user_id: str
    identifier: Optional[str] = None  # email for email-based accounts
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


class MembershipPayload(_Payload):
    id: Optional[str] = None
    role: str
    organization: OrganizationRef
    public_user_data: PublicUserData


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------

class WebhookEvent(_Payload):
    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    id: Optional[str] = None


class WebhookResult(BaseModel):
    message: str
    event_id: Optional[str] = None
