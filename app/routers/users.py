# app/routers/users.py
from fastapi import APIRouter, Depends, Query

from app.core.auth import AuthSession, require_auth
from app.core.dependencies import get_audit_repo, get_identity_repo
from app.repositories.identity_repo import IdentityRepository
from app.repositories.role_audit_repo import RoleAuditRepository
from app.schemas.user import MigrationFlagCleared, RoleTransitionRead, UserRead

router = APIRouter(prefix="/users", tags=["Users"])


# -------- Self profile --------


@router.get("/me", response_model=UserRead)
def read_me(
    current: AuthSession = Depends(require_auth),
    identity: IdentityRepository = Depends(get_identity_repo),
):
    """
    Return the authenticated user's identity record.

    The role is read from the identity store (not the token claim) and
    parsed; an invalid stored value reads as customer.

    Auth:
      - Requires valid Supabase JWT.
    """
    return UserRead.from_record(identity.get_user(current.user_id))


@router.post("/me/clear-migration-flag", response_model=MigrationFlagCleared)
def clear_migration_flag(
    current: AuthSession = Depends(require_auth),
    identity: IdentityRepository = Depends(get_identity_repo),
):
    """
    Clear the migrated-account flag once the mandated password reset is done.

    Calling it again is harmless (cleared=false).
    """
    return MigrationFlagCleared(cleared=identity.clear_migration_flag(current.user_id))


@router.get("/me/role-history", response_model=list[RoleTransitionRead])
def read_role_history(
    current: AuthSession = Depends(require_auth),
    audit: RoleAuditRepository = Depends(get_audit_repo),
    limit: int = Query(20, ge=1, le=100),
):
    """Most recent role changes for the authenticated user, newest first."""
    return audit.list_for_user(current.user_id, limit)
