"""
Identity-provider webhook endpoint.

POST /api/v1/webhooks/identity  verify, deduplicate and apply a lifecycle event
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import JSONResponse

from app.core.cache import AuthCache, get_auth_cache
from app.core.config import get_settings
from app.core.database import get_session
from app.services import webhooks as webhook_service
from fleetfusion_shared.schemas.webhooks import WebhookEvent, WebhookResult

log = structlog.get_logger()
settings = get_settings()
router = APIRouter()


@router.post("/identity", tags=["Webhooks"])
async def receive_identity_event(
    request: Request,
    session: AsyncSession = Depends(get_session),
    cache: AuthCache = Depends(get_auth_cache),
):
    """Mirror user, organization and membership changes from the identity provider."""
    body = await request.body()
    try:
        raw = webhook_service.verify_signature(settings.webhook_secret, request.headers, body)
        event = WebhookEvent.model_validate(raw)
    except (webhook_service.WebhookVerificationError, ValueError) as exc:
        log.warning("webhook.rejected", error=str(exc))
        return JSONResponse({"error": "Invalid webhook signature"}, status_code=400)

    event_id = request.headers.get("svix-id") or event.id or event.data.get("id")
    if not isinstance(event_id, str) or not event_id.strip():
        return JSONResponse({"error": "Missing or invalid eventId"}, status_code=400)

    try:
        outcome, error = await webhook_service.process_event(event_id, event, session, cache)
    except webhook_service.WebhookValidationError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    if outcome == webhook_service.ProcessingOutcome.ALREADY_PROCESSED:
        return WebhookResult(message="Event already processed", event_id=event_id)
    if outcome == webhook_service.ProcessingOutcome.FAILED:
        return JSONResponse({"error": error}, status_code=500)
    return WebhookResult(message="Webhook processed successfully", event_id=event_id)
