# app/services/account_service.py
import logging

from app.core.errors import NotFound
from app.repositories.billing_repo import BillingRepository
from app.repositories.identity_repo import IdentityRepository
from app.schemas.billing import (
    CancelledSubscription,
    CancelSubscriptionResult,
    Order,
    OrderHistory,
    PortalSession,
    SignInLink,
)
from app.schemas.user import UserRecord
from app.services.role_resolver import ENTITLED_STATUSES

logger = logging.getLogger(__name__)


class AccountService:
    """
    Self-service billing operations for a signed-in user.

    Responsibilities:
      - order history (paid one-time checkouts)
      - billing portal sessions
      - cancelling subscriptions at period end
      - sign-in links after a subscription checkout

    Role changes caused by these operations arrive later through the
    billing webhook; nothing here writes the role.
    """

    def __init__(self, identity: IdentityRepository, billing: BillingRepository):
        self.identity = identity
        self.billing = billing

    # ---- internal helpers ----

    def _customer_id(self, user: UserRecord) -> str | None:
        if user.stripe_customer_id:
            return user.stripe_customer_id
        if not user.email:
            return None
        customer = self.billing.find_customer_by_email(user.email)
        return customer.id if customer else None

    # ---- public operations ----

    def list_orders(self, user_id: str) -> OrderHistory:
        """
        Paid one-time orders, newest first.

        Uses the linked customer when there is one; otherwise falls back
        to the bounded email scan of recent checkout sessions.
        """
        user = self.identity.get_user(user_id)
        if user.stripe_customer_id:
            sessions = self.billing.list_paid_checkout_sessions(customer_id=user.stripe_customer_id)
        elif user.email:
            sessions = self.billing.list_paid_checkout_sessions(email=user.email)
        else:
            sessions = []

        orders = [
            Order(
                id=s.id,
                date=s.created,
                total=(s.amount_total or 0) / 100,
                currency=(s.currency or "usd").upper(),
                status=s.payment_status,
                items=self.billing.list_line_items(s.id),
                shipping=s.shipping_address,
            )
            for s in sessions
        ]
        orders.sort(key=lambda o: o.date.timestamp() if o.date else 0, reverse=True)
        return OrderHistory(orders=orders)

    def create_portal_session(self, user_id: str, return_url: str) -> PortalSession:
        user = self.identity.get_user(user_id)
        customer_id = self._customer_id(user)
        if customer_id is None:
            raise NotFound("No billing information found. Please make a purchase first.")
        return PortalSession(url=self.billing.create_portal_session(customer_id, return_url))

    def cancel_subscriptions(self, user_id: str) -> CancelSubscriptionResult:
        """
        Cancel every active or trialing subscription at period end.

        The user keeps access until then; the subscription webhook
        downgrades the role once the subscription actually ends.
        """
        user = self.identity.get_user(user_id)
        customer_id = self._customer_id(user)
        if customer_id is None:
            raise NotFound("No billing customer found")

        active = [
            s
            for s in self.billing.list_subscriptions(customer_id, status="all")
            if s.status in ENTITLED_STATUSES
        ]
        if not active:
            raise NotFound("No active subscription found")

        cancelled: list[CancelledSubscription] = []
        for subscription in active:
            updated = self.billing.cancel_at_period_end(subscription.id)
            logger.info("Subscription %s set to cancel at period end", updated.id)
            cancelled.append(
                CancelledSubscription(
                    id=updated.id,
                    status=updated.status,
                    cancel_at_period_end=updated.cancel_at_period_end,
                    access_until=updated.trial_end or updated.current_period_end,
                )
            )
        return CancelSubscriptionResult(subscriptions=cancelled)

    def sign_in_link_for_checkout(self, session_id: str) -> SignInLink:
        """
        Sign-in link for the buyer of a paid subscription checkout.

        Raises:
            NotFound: the session is not a paid subscription checkout,
            has no email, or the email has no identity user yet.
        """
        session = self.billing.get_checkout_session(session_id)
        if session.mode != "subscription" or not session.subscription_id:
            raise NotFound("No subscription found for this session")
        if session.payment_status not in ("paid", "no_payment_required"):
            raise NotFound("Checkout session is not paid")
        if not session.customer_email:
            raise NotFound("Checkout session has no customer email")
        if self.identity.find_user_id_by_email(session.customer_email) is None:
            raise NotFound("No account found yet. Account may still be processing.")

        url = self.identity.create_sign_in_link(session.customer_email)
        return SignInLink(url=url, email=session.customer_email)
