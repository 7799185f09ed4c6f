# app/schemas/gate.py
from sqlmodel import SQLModel

from app.core.roles import Role
from app.services.entitlement_gate import GateState


class GateRead(SQLModel):
    """Response schema for GET /gate."""

    path: str
    state: GateState
    required_role: Role | None = None
    role: Role | None = None
    redirect_url: str | None = None
