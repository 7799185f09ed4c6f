# app/schemas/user.py
from datetime import datetime

from pydantic import ConfigDict
from sqlmodel import SQLModel

from app.core.roles import Role, parse_role, role_display_name


class UserRecord(SQLModel):
    """
    Identity user as seen by the sync service.

    Merges the Supabase auth user (email, app_metadata, user_metadata)
    with the server-only profile row (stripe_customer_id).

    `stored_role` is the raw app_metadata.role value, kept so that
    reconciliation can tell "missing" or "invalid" apart from a valid
    customer role. Everything else should read `role`.
    """

    id: str
    email: str | None = None
    name: str | None = None
    stored_role: str | None = None
    stripe_customer_id: str | None = None
    migrated_from_wordpress: bool = False
    # set by the frontend once a migrated user has chosen a new password
    password_set: bool = False

    @property
    def role(self) -> Role:
        return parse_role(self.stored_role, self.id)


class UserRead(SQLModel):
    """Response schema for GET /users/me."""

    model_config = ConfigDict(extra="forbid")

    id: str
    email: str | None
    name: str | None
    role: Role
    role_display_name: str
    billing_linked: bool
    migrated_from_wordpress: bool

    @classmethod
    def from_record(cls, record: UserRecord) -> "UserRead":
        role = record.role
        return cls(
            id=record.id,
            email=record.email,
            name=record.name,
            role=role,
            role_display_name=role_display_name(role),
            billing_linked=record.stripe_customer_id is not None,
            migrated_from_wordpress=record.migrated_from_wordpress,
        )


class MigrationFlagCleared(SQLModel):
    success: bool = True
    cleared: bool


class RoleTransitionRead(SQLModel):
    previous_role: str | None
    new_role: str
    trigger: str
    created_at: datetime
