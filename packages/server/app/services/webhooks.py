"""
Identity-provider webhook processing.

Verifies Svix signatures, deduplicates by event id, applies user /
organization / membership lifecycle events to the mirror, and invalidates the
auth cache for whatever changed. Every event is recorded as processed or
failed.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from svix.webhooks import Webhook
from svix.webhooks import WebhookVerificationError as SvixVerificationError

from app.core.cache import AuthCache
from app.models.webhook_event import WebhookEventRecord
from app.services import memberships as membership_service
from fleetfusion_shared.schemas.webhooks import (
    MEMBERSHIP_EVENTS,
    ORGANIZATION_EVENTS,
    USER_EVENTS,
    MembershipPayload,
    OrganizationPayload,
    UserPayload,
    WebhookEvent,
    WebhookEventType,
    WebhookStatus,
)

log = structlog.get_logger()


class WebhookVerificationError(Exception):
    """Signature, timestamp or body could not be verified."""


class WebhookValidationError(Exception):
    """A verified event is missing fields required to apply it."""


class ProcessingOutcome(str, Enum):
    PROCESSED = "processed"
    ALREADY_PROCESSED = "already_processed"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

def verify_signature(secret: str, headers: Mapping[str, str], body: bytes) -> dict[str, Any]:
    """Verify a Svix-signed webhook and return its decoded JSON body.

    Svix rejects timestamps more than five minutes from now and accepts any of
    several space-separated ``v1,`` signatures, so secret rotation works.
    """
    if not secret:
        raise WebhookVerificationError("Webhook secret is not configured")
    try:
        return Webhook(secret).verify(body, dict(headers))
    except SvixVerificationError as exc:
        raise WebhookVerificationError(str(exc)) from exc
    except ValueError as exc:
        raise WebhookVerificationError("Webhook secret or body is malformed") from exc


# ---------------------------------------------------------------------------
# Field extraction
# ---------------------------------------------------------------------------

def _event_type(raw: str) -> Optional[WebhookEventType]:
    try:
        return WebhookEventType(raw)
    except ValueError:
        return None


def extract_ids(event_type: str, data: dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    """(organization_id, user_id) referenced by an event, where present."""
    kind = _event_type(event_type)
    if kind in ORGANIZATION_EVENTS:
        return data.get("id"), None
    if kind in MEMBERSHIP_EVENTS:
        org = data.get("organization") or {}
        user = data.get("public_user_data") or {}
        return org.get("id"), user.get("user_id")
    if kind in USER_EVENTS:
        memberships = data.get("organization_memberships") or []
        org_id = None
        if memberships:
            org_id = (memberships[0].get("organization") or {}).get("id")
        return org_id, data.get("id")
    return None, None


def extract_email(event_type: str, data: dict[str, Any]) -> Optional[str]:
    kind = _event_type(event_type)
    if kind in USER_EVENTS:
        addresses = data.get("email_addresses") or []
        return addresses[0].get("email_address") if addresses else None
    if kind in MEMBERSHIP_EVENTS:
        return (data.get("public_user_data") or {}).get("identifier")
    return None


def validate_event(event_type: str, data: dict[str, Any]) -> None:
    kind = _event_type(event_type)
    if kind in (WebhookEventType.USER_CREATED, WebhookEventType.USER_UPDATED):
        if not extract_email(event_type, data):
            raise WebhookValidationError("Missing user email")


# ---------------------------------------------------------------------------
# Event application
# ---------------------------------------------------------------------------

async def apply_event(
    event_type: str,
    data: dict[str, Any],
    session: AsyncSession,
    cache: AuthCache,
) -> None:
    """Apply one event to the mirror. Unhandled event types are ignored."""
    kind = _event_type(event_type)

    if kind in (WebhookEventType.USER_CREATED, WebhookEventType.USER_UPDATED):
        user = UserPayload.model_validate(data)
        if not user.primary_email:
            raise WebhookValidationError("Missing user email")
        await membership_service.upsert_user(
            session,
            user_id=user.id,
            email=user.primary_email,
            first_name=user.first_name,
            last_name=user.last_name,
            profile_image=user.profile_image_url,
            is_active=user.public_metadata.is_active,
            onboarding_complete=user.public_metadata.onboarding_complete,
        )
        cache.invalidate_user(user.id)

    elif kind == WebhookEventType.USER_DELETED:
        user_id = data.get("id")
        if user_id:
            await membership_service.delete_user(user_id, session)
            cache.invalidate_user(user_id)

    elif kind in (WebhookEventType.ORGANIZATION_CREATED, WebhookEventType.ORGANIZATION_UPDATED):
        org = OrganizationPayload.model_validate(data)
        await membership_service.upsert_organization(org, session)
        cache.invalidate_organization(org.id)

    elif kind == WebhookEventType.ORGANIZATION_DELETED:
        org_id = data.get("id")
        if org_id:
            await membership_service.delete_organization(org_id, session)
            cache.invalidate_organization(org_id)

    elif kind in (WebhookEventType.MEMBERSHIP_CREATED, WebhookEventType.MEMBERSHIP_UPDATED):
        membership = MembershipPayload.model_validate(data)
        member = membership.public_user_data
        if not member.identifier:
            raise WebhookValidationError("Membership event missing user email")
        await membership_service.ensure_organization(
            membership.organization.id, membership.organization.name, session
        )
        await membership_service.upsert_user(
            session,
            user_id=member.user_id,
            email=member.identifier,
            first_name=member.first_name,
            last_name=member.last_name,
            profile_image=member.profile_image_url,
            is_active=True,
            onboarding_complete=True,
        )
        await membership_service.upsert_membership(
            member.user_id, membership.organization.id, membership.role, session
        )
        cache.invalidate_user(member.user_id)

    elif kind == WebhookEventType.MEMBERSHIP_DELETED:
        org_id, user_id = extract_ids(event_type, data)
        if user_id and org_id:
            await membership_service.delete_membership(user_id, org_id, session)
            cache.invalidate_user(user_id)

    else:
        log.info("webhook.ignored", event_type=event_type)


async def _record(
    session: AsyncSession,
    event_id: str,
    event: WebhookEvent,
    status: WebhookStatus,
    error: Optional[str],
) -> None:
    org_id, user_id = extract_ids(event.type, event.data)
    record = await session.get(WebhookEventRecord, event_id)
    if record is None:
        record = WebhookEventRecord(
            event_id=event_id,
            event_type=event.type,
            organization_id=org_id,
            user_id=user_id,
            status=status.value,
            payload=event.model_dump(),
        )
    record.status = status.value
    record.processing_error = error
    session.add(record)
    await session.flush()


async def process_event(
    event_id: str,
    event: WebhookEvent,
    session: AsyncSession,
    cache: AuthCache,
) -> tuple[ProcessingOutcome, Optional[str]]:
    """Deduplicate, apply and record one verified event.

    Raises WebhookValidationError before touching the mirror when required
    fields are missing.
    """
    existing = await session.get(WebhookEventRecord, event_id)
    if existing is not None and existing.status == WebhookStatus.PROCESSED.value:
        log.info("webhook.duplicate", event_id=event_id, event_type=event.type)
        return ProcessingOutcome.ALREADY_PROCESSED, None

    validate_event(event.type, event.data)

    try:
        await apply_event(event.type, event.data, session, cache)
    except (SQLAlchemyError, ValidationError, WebhookValidationError) as exc:
        await session.rollback()
        error = str(exc)
        log.error("webhook.failed", event_id=event_id, event_type=event.type, error=error)
        await _record(session, event_id, event, WebhookStatus.FAILED, error)
        return ProcessingOutcome.FAILED, error

    await _record(session, event_id, event, WebhookStatus.PROCESSED, None)
    log.info("webhook.processed", event_id=event_id, event_type=event.type)
    return ProcessingOutcome.PROCESSED, None
