# app/models/role_transition.py
import uuid
from datetime import datetime, timezone

from sqlmodel import SQLModel, Field


class RoleTransition(SQLModel, table=True):
    """
    Audit row written each time reconciliation rewrites a user's role.

    previous_role is the raw stored value (may be missing or invalid),
    new_role is always a valid Role value.
    """

    __tablename__ = "role_transitions"

    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
    )

    user_id: str = Field(index=True)

    previous_role: str | None = None
    new_role: str

    # what invoked reconcile: repair, billing_webhook, backfill, ...
    trigger: str = Field(max_length=50)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
