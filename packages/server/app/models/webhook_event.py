"""Processed identity-provider webhook events, keyed by event id for deduplication."""

from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


class WebhookEventRecord(SQLModel, table=True):
    __tablename__ = "webhook_events"

    event_id: str = Field(primary_key=True)
    event_type: str = Field(nullable=False, index=True)
    organization_id: Optional[str] = Field(default=None, index=True)
    user_id: Optional[str] = Field(default=None, index=True)
    status: str = Field(nullable=False)  # processed | failed
    processing_error: Optional[str] = None
    payload: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
    processed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
