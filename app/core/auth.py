# app/core/auth.py
from dataclasses import dataclass
from typing import Any

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import get_settings
from app.core.errors import Unauthenticated

# HTTP Bearer scheme:
# - auto_error=False => missing Authorization header will NOT raise immediately
#   so we can support "guest" mode (unauthenticated).
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthSession:
    """
    Claims of a verified Supabase access token.

    role_claim is the role cached in app_metadata when the token was
    issued. It is advisory: billing decisions re-derive the role.
    """

    user_id: str
    email: str | None = None
    role_claim: str | None = None


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify a Supabase access token (JWT).

    Verification:
      - signature (HS256 using SUPABASE_JWT_SECRET)
      - expiration time (exp)
      - audience is NOT verified (Supabase 'aud' may vary)

    Raises:
        Unauthenticated: if token is invalid/expired.
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.SUPABASE_JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError as exc:
        raise Unauthenticated("Invalid or expired token") from exc


def get_current_session(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> AuthSession | None:
    """
    Resolve the caller from the bearer token.

    Returns:
        AuthSession if a token was sent, else None for guests.

    Raises:
        Unauthenticated: token present but invalid or missing 'sub'.
    """
    if credentials is None:
        return None  # guest mode

    payload = decode_access_token(credentials.credentials)
    sub = payload.get("sub")
    if not sub:
        raise Unauthenticated("Token missing sub")

    app_metadata = payload.get("app_metadata") or {}
    return AuthSession(
        user_id=sub,
        email=payload.get("email"),
        role_claim=app_metadata.get("role"),
    )


def require_auth(session: AuthSession | None = Depends(get_current_session)) -> AuthSession:
    """
    Enforce authentication.

    If attached to a route, guests (missing/invalid JWT)
    will be rejected with 401.
    """
    if session is None:
        raise Unauthenticated("Authentication required")
    return session
