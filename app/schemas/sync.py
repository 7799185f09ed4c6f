# app/schemas/sync.py
from sqlmodel import SQLModel, Field

from app.core.roles import Role
from app.schemas.billing import Subscription


class ReconcileResult(SQLModel):
    """
    Outcome of one reconciliation run.

    `error` carries a failed role write; `name_sync_error` a failed
    best-effort name sync. Neither aborts the run: the caller decides
    whether to log them (webhooks) or show them (repair endpoint).
    """

    user_id: str
    previous_role: str | None = None
    new_role: Role
    changed: bool = False
    role_written: bool = False
    customer_id: str | None = None
    active_subscription: Subscription | None = None
    subscriptions: list[Subscription] = Field(default_factory=list)
    error: str | None = None
    name_synced: bool = False
    name_sync_error: str | None = None


class LinkResult(SQLModel):
    customer_id: str | None = None
    already_linked: bool = False
    created: bool = False

    @property
    def linked(self) -> bool:
        return self.customer_id is not None


class NameSyncResult(SQLModel):
    synced: bool
    name: str | None = None
    customer_id: str | None = None
    reason: str | None = None


class SubscriptionStatus(SQLModel):
    has_active_subscription: bool
    role: Role
    customer_id: str | None = None
    subscriptions: list[Subscription] = Field(default_factory=list)
