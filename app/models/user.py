# app/models/user.py
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class User(SQLModel, table=True):
    """
    Server-only profile row for an identity user.

    Identity:
      - id: MUST match Supabase auth.users.id (JWT "sub")

    Holds the fields that must not travel in the session token:
      - stripe_customer_id: link into the billing system. Absent means
        "not yet linked"; once set it is authoritative and is never
        overwritten by the application.

    The access role is NOT stored here; it lives in the Supabase user's
    app_metadata so the client can read it from its session.
    """

    __tablename__ = "users"

    id: str = Field(
        primary_key=True,
        index=True,
        description="Matches Supabase auth.users.id",
    )

    email: str = Field(
        index=True,
        description="Canonical email from Supabase auth.users",
    )

    name: str | None = Field(
        default=None,
        max_length=200,
        description="Display name; mirrored from user_metadata.full_name",
    )

    stripe_customer_id: str | None = Field(
        default=None,
        index=True,
        description="Linked Stripe customer id",
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Creation timestamp (UTC)",
    )
