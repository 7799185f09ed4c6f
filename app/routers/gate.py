# app/routers/gate.py
from fastapi import APIRouter, Depends, Query

from app.core.auth import AuthSession, get_current_session
from app.core.config import get_settings
from app.core.roles import required_role_for_path
from app.schemas.gate import GateRead
from app.services.entitlement_gate import SessionSnapshot, evaluate_gate

router = APIRouter(prefix="/gate", tags=["Gate"])

settings = get_settings()


@router.get("", response_model=GateRead)
def check_gate(
    path: str = Query(..., min_length=1),
    session: AuthSession | None = Depends(get_current_session),
):
    """
    Evaluate the entitlement gate for a frontend path.

    Uses the role claim in the bearer token. Guests get a signup
    redirect; customers on subscriber content get an upgrade redirect.
    """
    required = required_role_for_path(path)
    snapshot = SessionSnapshot(
        is_loaded=True,
        is_signed_in=session is not None,
        role_claim=session.role_claim if session else None,
        user_id=session.user_id if session else None,
    )
    decision = evaluate_gate(
        snapshot,
        required,
        path,
        signup_path=settings.SIGNUP_PATH,
        upgrade_path=settings.UPGRADE_PATH,
    )
    return GateRead(
        path=path,
        state=decision.state,
        required_role=required,
        role=decision.role,
        redirect_url=decision.redirect_url,
    )
