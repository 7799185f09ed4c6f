# app/schemas/webhook.py
from typing import Any, Literal

from sqlmodel import SQLModel, Field


class IdentityUserData(SQLModel):
    """`data` of a user.created event: the new Supabase user."""

    id: str
    email: str | None = None
    app_metadata: dict[str, Any] = Field(default_factory=dict)
    user_metadata: dict[str, Any] = Field(default_factory=dict)


class SessionData(SQLModel):
    """`data` of a session.created event (a login)."""

    id: str | None = None
    user_id: str


class UserCreatedEvent(SQLModel):
    type: Literal["user.created"] = "user.created"
    data: IdentityUserData


class SessionCreatedEvent(SQLModel):
    type: Literal["session.created"] = "session.created"
    data: SessionData


class UnhandledEvent(SQLModel):
    type: str
    data: dict[str, Any] = Field(default_factory=dict)


IdentityEvent = UserCreatedEvent | SessionCreatedEvent | UnhandledEvent

_EVENT_TYPES: dict[str, type[SQLModel]] = {
    "user.created": UserCreatedEvent,
    "session.created": SessionCreatedEvent,
}


def parse_identity_event(payload: dict[str, Any]) -> IdentityEvent:
    """
    Map a verified {type, data} envelope onto its event class.

    Unknown types become UnhandledEvent so they can be acknowledged.
    """
    event_type = str(payload.get("type") or "")
    event_cls = _EVENT_TYPES.get(event_type, UnhandledEvent)
    return event_cls.model_validate({"type": event_type, "data": payload.get("data") or {}})


class WebhookAck(SQLModel):
    received: bool = True
    event_type: str | None = None
    handled: bool = False
