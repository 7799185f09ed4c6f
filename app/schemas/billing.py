# app/schemas/billing.py
from datetime import datetime

from sqlmodel import SQLModel, Field


class BillingCustomer(SQLModel):
    """
    Stripe customer, reduced to what the sync service uses.

    identity_user_id is the best-effort back-reference stored in the
    customer's metadata; it is not guaranteed to be present.
    """

    id: str
    email: str | None = None
    name: str | None = None
    identity_user_id: str | None = None


class Subscription(SQLModel):
    id: str
    status: str
    customer_id: str | None = None
    current_period_end: datetime | None = None
    cancel_at_period_end: bool = False
    trial_end: datetime | None = None
    created: datetime | None = None
    identity_user_id: str | None = None


class CheckoutSession(SQLModel):
    id: str
    mode: str
    payment_status: str | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    subscription_id: str | None = None
    # smallest currency unit, as reported by Stripe
    amount_total: int | None = None
    currency: str | None = None
    created: datetime | None = None
    shipping_address: dict | None = None


class OrderLine(SQLModel):
    name: str | None = None
    quantity: int | None = None
    amount: float = 0.0


class Order(SQLModel):
    """A paid one-time checkout session, shaped for order history."""

    id: str
    date: datetime | None = None
    total: float = 0.0
    currency: str = "USD"
    status: str | None = None
    items: list[OrderLine] = Field(default_factory=list)
    shipping: dict | None = None


class OrderHistory(SQLModel):
    orders: list[Order]


class CancelledSubscription(SQLModel):
    id: str
    status: str
    cancel_at_period_end: bool
    access_until: datetime | None = None


class CancelSubscriptionResult(SQLModel):
    success: bool = True
    message: str = "Subscription cancelled successfully"
    subscriptions: list[CancelledSubscription]


class PortalSession(SQLModel):
    url: str


class SignInLinkRequest(SQLModel):
    session_id: str


class SignInLink(SQLModel):
    url: str
    email: str
