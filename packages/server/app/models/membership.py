"""User-Organization membership (join table). The identity provider is the source of truth."""

from sqlmodel import Field, SQLModel

from .base import TimestampMixin


class OrganizationMembership(TimestampMixin, SQLModel, table=True):
    __tablename__ = "organization_memberships"

    user_id: str = Field(foreign_key="users.id", primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", primary_key=True)
    role: str = Field(nullable=False, default="viewer")  # raw role string as received
