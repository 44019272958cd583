"""Organization (tenant) model, mirrored from the identity provider."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class Organization(TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    id: str = Field(primary_key=True, max_length=64)
    name: str = Field(nullable=False, index=True)
    slug: Optional[str] = Field(default=None, index=True)
    dot_number: Optional[str] = None
    mc_number: Optional[str] = None
    billing_email: Optional[str] = None
    max_users: Optional[int] = None
    is_active: bool = Field(default=True, nullable=False)
    settings: dict = Field(default_factory=dict, sa_type=sa.JSON, nullable=False)
