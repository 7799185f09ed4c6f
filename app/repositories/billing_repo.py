# app/repositories/billing_repo.py
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import stripe

from app.core.errors import NotFound, Unauthenticated, UpstreamUnavailable
from app.schemas.billing import (
    BillingCustomer,
    CheckoutSession,
    OrderLine,
    Subscription,
)

logger = logging.getLogger(__name__)

# metadata key holding the identity user id on customers/subscriptions
IDENTITY_METADATA_KEY = "identity_user_id"


def to_plain(obj: Any) -> Any:
    """
    Recursively convert Stripe objects into plain dicts and lists.

    Newer stripe releases no longer subclass dict, so every response
    and event is converted once here and read with dict access after.
    """
    if hasattr(obj, "to_dict"):
        obj = obj.to_dict()
    if isinstance(obj, dict):
        return {key: to_plain(value) for key, value in obj.items()}
    if isinstance(obj, list):
        return [to_plain(value) for value in obj]
    return obj


def _ts(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _metadata(obj: Any) -> dict[str, Any]:
    return dict(obj.get("metadata") or {})


def _to_customer(obj: Any) -> BillingCustomer:
    return BillingCustomer(
        id=obj["id"],
        email=obj.get("email"),
        name=obj.get("name"),
        identity_user_id=_metadata(obj).get(IDENTITY_METADATA_KEY),
    )


def _to_subscription(obj: Any) -> Subscription:
    period_end = obj.get("current_period_end")
    if period_end is None:
        # newer API versions report the period per subscription item
        items = (obj.get("items") or {}).get("data") or []
        if items:
            period_end = items[0].get("current_period_end")

    customer = obj.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")

    return Subscription(
        id=obj["id"],
        status=obj["status"],
        customer_id=customer,
        current_period_end=_ts(period_end),
        cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
        trial_end=_ts(obj.get("trial_end")),
        created=_ts(obj.get("created")),
        identity_user_id=_metadata(obj).get(IDENTITY_METADATA_KEY),
    )


def _to_checkout_session(obj: Any) -> CheckoutSession:
    details = obj.get("customer_details") or {}
    shipping = obj.get("shipping_details") or {}
    customer = obj.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    subscription = obj.get("subscription")
    if isinstance(subscription, dict):
        subscription = subscription.get("id")

    return CheckoutSession(
        id=obj["id"],
        mode=obj.get("mode") or "",
        payment_status=obj.get("payment_status"),
        customer_id=customer,
        customer_email=obj.get("customer_email") or details.get("email"),
        subscription_id=subscription,
        amount_total=obj.get("amount_total"),
        currency=obj.get("currency"),
        created=_ts(obj.get("created")),
        shipping_address=shipping.get("address"),
    )


class BillingRepository:
    """
    Billing provider adapter (Stripe). Source of truth for payment state.

    The API key is passed on every call instead of being set on the
    stripe module, so several instances (and test doubles) can coexist.
    """

    def __init__(
        self,
        api_key: str,
        session_scan_limit: int = 100,
        subscription_limit: int = 100,
    ):
        self.api_key = api_key
        self.session_scan_limit = session_scan_limit
        self.subscription_limit = subscription_limit

    def _call(self, action: str, fn: Callable[[], Any]) -> Any:
        if not self.api_key:
            raise Unauthenticated("Billing provider key is not configured")
        try:
            return to_plain(fn())
        except stripe.InvalidRequestError as exc:
            if exc.http_status == 404:
                raise NotFound(f"Billing object not found ({action})") from exc
            raise UpstreamUnavailable(f"Billing provider rejected {action}: {exc.user_message or exc}") from exc
        except (stripe.AuthenticationError, stripe.PermissionError) as exc:
            raise Unauthenticated(f"Billing provider refused credentials during {action}") from exc
        except stripe.StripeError as exc:
            raise UpstreamUnavailable(f"Billing provider error during {action}: {exc}") from exc

    # ---- customers ----

    def find_customer_by_email(self, email: str) -> BillingCustomer | None:
        """
        First customer with this email, or None.

        Stripe allows duplicate customers per email; the first result
        wins, which is not necessarily the most recent one.
        """
        result = self._call(
            "customers.list",
            lambda: stripe.Customer.list(email=email, limit=1, api_key=self.api_key),
        )
        data = result["data"]
        return _to_customer(data[0]) if data else None

    def get_customer(self, customer_id: str) -> BillingCustomer:
        obj = self._call(
            "customers.retrieve",
            lambda: stripe.Customer.retrieve(customer_id, api_key=self.api_key),
        )
        if obj.get("deleted"):
            raise NotFound(f"Billing customer {customer_id} was deleted")
        return _to_customer(obj)

    def create_customer(
        self,
        email: str,
        name: str | None = None,
        identity_user_id: str | None = None,
    ) -> BillingCustomer:
        params: dict[str, Any] = {"email": email}
        if name:
            params["name"] = name
        if identity_user_id:
            params["metadata"] = {IDENTITY_METADATA_KEY: identity_user_id}
        obj = self._call(
            "customers.create",
            lambda: stripe.Customer.create(api_key=self.api_key, **params),
        )
        logger.info("Created billing customer %s for %s", obj["id"], email)
        return _to_customer(obj)

    def tag_customer(self, customer_id: str, identity_user_id: str) -> None:
        """Store the identity back-reference in the customer's metadata."""
        self._call(
            "customers.update",
            lambda: stripe.Customer.modify(
                customer_id,
                metadata={IDENTITY_METADATA_KEY: identity_user_id},
                api_key=self.api_key,
            ),
        )

    def list_customers_with_subscriptions(self, limit: int = 100) -> list[tuple[BillingCustomer, list[Subscription]]]:
        result = self._call(
            "customers.list",
            lambda: stripe.Customer.list(
                limit=limit,
                expand=["data.subscriptions"],
                api_key=self.api_key,
            ),
        )
        rows = []
        for obj in result["data"]:
            subs = ((obj.get("subscriptions") or {}).get("data")) or []
            rows.append((_to_customer(obj), [_to_subscription(s) for s in subs]))
        return rows

    # ---- subscriptions ----

    def list_subscriptions(self, customer_id: str, status: str = "all") -> list[Subscription]:
        result = self._call(
            "subscriptions.list",
            lambda: stripe.Subscription.list(
                customer=customer_id,
                status=status,
                limit=self.subscription_limit,
                api_key=self.api_key,
            ),
        )
        return [_to_subscription(obj) for obj in result["data"]]

    def get_subscription(self, subscription_id: str) -> Subscription:
        obj = self._call(
            "subscriptions.retrieve",
            lambda: stripe.Subscription.retrieve(subscription_id, api_key=self.api_key),
        )
        return _to_subscription(obj)

    def cancel_at_period_end(self, subscription_id: str) -> Subscription:
        obj = self._call(
            "subscriptions.update",
            lambda: stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=True,
                api_key=self.api_key,
            ),
        )
        return _to_subscription(obj)

    # ---- checkout sessions ----

    def get_checkout_session(self, session_id: str) -> CheckoutSession:
        obj = self._call(
            "checkout.sessions.retrieve",
            lambda: stripe.checkout.Session.retrieve(session_id, api_key=self.api_key),
        )
        return _to_checkout_session(obj)

    def list_paid_checkout_sessions(
        self,
        customer_id: str | None = None,
        email: str | None = None,
        mode: str = "payment",
    ) -> list[CheckoutSession]:
        """
        Paid checkout sessions of the given mode.

        By customer id when one is linked. Otherwise the most recent
        `session_scan_limit` sessions are scanned and filtered by email,
        so older orders are not found by that path.
        """
        if customer_id:
            result = self._call(
                "checkout.sessions.list",
                lambda: stripe.checkout.Session.list(
                    customer=customer_id,
                    limit=100,
                    api_key=self.api_key,
                ),
            )
            sessions = [_to_checkout_session(obj) for obj in result["data"]]
        elif email:
            logger.info(
                "No linked customer; scanning the %d most recent checkout sessions for %s",
                self.session_scan_limit,
                email,
            )
            result = self._call(
                "checkout.sessions.list",
                lambda: stripe.checkout.Session.list(
                    limit=self.session_scan_limit,
                    api_key=self.api_key,
                ),
            )
            sessions = [
                s
                for s in (_to_checkout_session(obj) for obj in result["data"])
                if s.customer_email and s.customer_email.lower() == email.lower()
            ]
        else:
            raise ValueError("customer_id or email is required")

        return [s for s in sessions if s.mode == mode and s.payment_status == "paid"]

    def list_line_items(self, session_id: str) -> list[OrderLine]:
        result = self._call(
            "checkout.sessions.listLineItems",
            lambda: stripe.checkout.Session.list_line_items(
                session_id,
                limit=100,
                api_key=self.api_key,
            ),
        )
        return [
            OrderLine(
                name=obj.get("description"),
                quantity=obj.get("quantity"),
                amount=(obj.get("amount_total") or 0) / 100,
            )
            for obj in result["data"]
        ]

    # ---- billing portal ----

    def create_portal_session(self, customer_id: str, return_url: str) -> str:
        obj = self._call(
            "billingPortal.sessions.create",
            lambda: stripe.billing_portal.Session.create(
                customer=customer_id,
                return_url=return_url,
                api_key=self.api_key,
            ),
        )
        return obj["url"]
