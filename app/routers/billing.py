# app/routers/billing.py
from fastapi import APIRouter, Depends

from app.core.auth import AuthSession, require_auth
from app.core.config import get_settings
from app.core.dependencies import get_account_service, get_sync_service
from app.schemas.billing import (
    CancelSubscriptionResult,
    OrderHistory,
    PortalSession,
    SignInLink,
    SignInLinkRequest,
)
from app.schemas.sync import LinkResult, NameSyncResult, ReconcileResult, SubscriptionStatus
from app.services.account_service import AccountService
from app.services.sync_service import SyncService

router = APIRouter(prefix="/billing", tags=["Billing"])

# Repair endpoint is also served unprefixed at /fix-subscription-role
repair_router = APIRouter(tags=["Billing"])

settings = get_settings()


# -------- Role sync --------


def _fix_subscription_role(current: AuthSession, sync: SyncService) -> ReconcileResult:
    return sync.reconcile(current.user_id, allow_create=False, trigger="repair")


@router.post("/fix-subscription-role", response_model=ReconcileResult)
def fix_subscription_role(
    current: AuthSession = Depends(require_auth),
    sync: SyncService = Depends(get_sync_service),
):
    """
    Re-derive the caller's role from billing and store it.

    Returns previous/new role and the raw subscription list for
    diagnostics. A failed role write is returned in `error` rather
    than raised; a failed read surfaces as {"error": ...} with its
    status code.
    """
    return _fix_subscription_role(current, sync)


@repair_router.post("/fix-subscription-role", response_model=ReconcileResult)
def fix_subscription_role_alias(
    current: AuthSession = Depends(require_auth),
    sync: SyncService = Depends(get_sync_service),
):
    return _fix_subscription_role(current, sync)


@router.post("/link-customer", response_model=LinkResult)
def link_customer(
    current: AuthSession = Depends(require_auth),
    sync: SyncService = Depends(get_sync_service),
):
    """
    Link the caller to a billing customer, creating one if none matches
    their email. Already-linked users return immediately.
    """
    return sync.link_on_first_contact(current.user_id, allow_create=True)


@router.post("/sync-name", response_model=NameSyncResult)
def sync_name(
    current: AuthSession = Depends(require_auth),
    sync: SyncService = Depends(get_sync_service),
):
    """Copy the billing customer's name onto the caller's profile."""
    return sync.sync_name_from_billing(current.user_id)


@router.get("/subscription-status", response_model=SubscriptionStatus)
def subscription_status(
    current: AuthSession = Depends(require_auth),
    sync: SyncService = Depends(get_sync_service),
):
    """Live subscription summary from billing. Does not write the role."""
    return sync.subscription_status(current.user_id)


# -------- Self-service billing --------


@router.post("/portal", response_model=PortalSession)
def create_portal_session(
    current: AuthSession = Depends(require_auth),
    account: AccountService = Depends(get_account_service),
):
    return account.create_portal_session(current.user_id, f"{settings.FRONTEND_URL}/my-account")


@router.post("/cancel-subscription", response_model=CancelSubscriptionResult)
def cancel_subscription(
    current: AuthSession = Depends(require_auth),
    account: AccountService = Depends(get_account_service),
):
    """
    Cancel the caller's active subscriptions at period end.

    Access continues until `access_until`; the role is downgraded by
    the subscription webhook when the period ends.
    """
    return account.cancel_subscriptions(current.user_id)


@router.get("/orders", response_model=OrderHistory)
def list_orders(
    current: AuthSession = Depends(require_auth),
    account: AccountService = Depends(get_account_service),
):
    return account.list_orders(current.user_id)


@router.post("/sign-in-link", response_model=SignInLink)
def create_sign_in_link(
    payload: SignInLinkRequest,
    account: AccountService = Depends(get_account_service),
):
    """
    Sign-in link for the buyer of a paid subscription checkout.

    Auth:
      - None; the checkout session id is the credential.
    """
    return account.sign_in_link_for_checkout(payload.session_id)
