# app/services/entitlement_gate.py
"""
Entitlement gate for protected content.

A UX guard, not a security boundary: every protected resource is
checked again server-side where it is served. States:

    LOADING -> UNAUTHENTICATED | INSUFFICIENT_ROLE | AUTHORIZED

LOADING never redirects. Without a resolved role claim the viewer is
treated as a customer.
"""
from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote

from app.core.roles import DEFAULT_ROLE, Role, has_minimum_role, parse_role


class GateState(str, Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    INSUFFICIENT_ROLE = "insufficient_role"
    AUTHORIZED = "authorized"


@dataclass(frozen=True)
class SessionSnapshot:
    is_loaded: bool
    is_signed_in: bool
    role_claim: str | None = None
    user_id: str | None = None


@dataclass(frozen=True)
class GateDecision:
    state: GateState
    role: Role | None = None
    redirect_url: str | None = None

    @property
    def allowed(self) -> bool:
        return self.state is GateState.AUTHORIZED


def _session_role(session: SessionSnapshot) -> Role:
    if not session.role_claim:
        return DEFAULT_ROLE
    return parse_role(session.role_claim, session.user_id)


def redirect_with_return(target: str, current_path: str) -> str:
    return f"{target}?redirect_url={quote(current_path, safe='')}"


def evaluate_gate(
    session: SessionSnapshot,
    required_role: Role | None,
    current_path: str,
    signup_path: str = "/signup",
    upgrade_path: str = "/upgrade",
) -> GateDecision:
    """
    Decide what to render for `current_path`.

    required_role=None means public content: always AUTHORIZED.
    Role.CUSTOMER means any signed-in user; Role.SUBSCRIBER premium content.
    """
    if required_role is None:
        role = _session_role(session) if session.is_loaded and session.is_signed_in else None
        return GateDecision(state=GateState.AUTHORIZED, role=role)

    if not session.is_loaded:
        return GateDecision(state=GateState.LOADING)

    if not session.is_signed_in:
        return GateDecision(
            state=GateState.UNAUTHENTICATED,
            redirect_url=redirect_with_return(signup_path, current_path),
        )

    role = _session_role(session)
    if not has_minimum_role(role, required_role):
        return GateDecision(
            state=GateState.INSUFFICIENT_ROLE,
            role=role,
            redirect_url=redirect_with_return(upgrade_path, current_path),
        )

    return GateDecision(state=GateState.AUTHORIZED, role=role)
