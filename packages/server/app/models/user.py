"""User model, mirrored from the identity provider (id is the provider's user id)."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class User(TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True, max_length=64)
    email: Optional[str] = Field(default=None, index=True)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image: Optional[str] = None
    is_active: bool = Field(default=True, nullable=False)
    onboarding_complete: bool = Field(default=False, nullable=False)
