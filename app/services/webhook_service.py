# app/services/webhook_service.py
import logging
from collections.abc import Callable, Mapping
from typing import Any

import stripe
from pydantic import ValidationError
from standardwebhooks import Webhook, WebhookVerificationError

from app.core.errors import ServiceError, SignatureInvalid
from app.repositories.billing_repo import IDENTITY_METADATA_KEY, BillingRepository, to_plain
from app.repositories.identity_repo import IdentityRepository
from app.schemas.sync import ReconcileResult
from app.schemas.webhook import (
    SessionCreatedEvent,
    UserCreatedEvent,
    WebhookAck,
    parse_identity_event,
)
from app.services.sync_service import SyncService

logger = logging.getLogger(__name__)

# Standard Webhooks headers; Svix-signed deliveries use the svix- prefix
IDENTITY_SIGNATURE_HEADERS = ("webhook-id", "webhook-timestamp", "webhook-signature")


class WebhookService:
    """
    Verifies inbound provider events and dispatches them to the sync service.

    Per delivery: Unverified -> Verified -> Dispatched. A delivery that
    fails verification raises SignatureInvalid and nothing else happens.
    Once verified, the delivery is always acknowledged: handler failures
    are logged, never returned, so the provider does not redeliver an
    event whose failure redelivery cannot fix.
    """

    def __init__(
        self,
        sync: SyncService,
        identity: IdentityRepository,
        billing: BillingRepository,
        identity_secret: str,
        billing_secret: str,
    ):
        self.sync = sync
        self.identity = identity
        self.billing = billing
        self.identity_secret = identity_secret
        self.billing_secret = billing_secret

        self._identity_handlers: dict[type, Callable[[Any], None]] = {
            UserCreatedEvent: self._on_user_created,
            SessionCreatedEvent: self._on_session_created,
        }
        self._billing_handlers: dict[str, Callable[[Any], None]] = {
            "checkout.session.completed": self._on_checkout_completed,
            "customer.subscription.created": self._on_subscription_changed,
            "customer.subscription.updated": self._on_subscription_changed,
            "customer.subscription.deleted": self._on_subscription_changed,
            "invoice.payment_succeeded": self._on_invoice,
            "invoice.payment_failed": self._on_invoice,
        }

    # ---- verification ----

    def verify_identity(self, body: bytes, headers: Mapping[str, str]) -> dict[str, Any]:
        """
        Check the Standard Webhooks signature and return the decoded envelope.

        Raises:
            SignatureInvalid: a required header is missing or the
            signature does not verify.
        """
        signed_headers: dict[str, str] = {}
        for name in IDENTITY_SIGNATURE_HEADERS:
            value = headers.get(name) or headers.get(name.replace("webhook-", "svix-"))
            if not value:
                logger.warning("Identity webhook rejected: missing %s header", name)
                raise SignatureInvalid(f"Missing {name} header")
            signed_headers[name] = value

        if not self.identity_secret:
            raise ServiceError("Identity webhook secret not configured")

        try:
            return Webhook(self.identity_secret).verify(body, signed_headers)
        except WebhookVerificationError as exc:
            logger.warning("Identity webhook rejected: %s", exc)
            raise SignatureInvalid("Webhook verification failed") from exc

    def verify_billing(self, body: bytes, signature: str | None) -> dict[str, Any]:
        """
        Check the Stripe-Signature header and return the event as a plain dict.

        Raises:
            SignatureInvalid: header missing, payload malformed or
            signature mismatch.
        """
        if not signature:
            logger.warning("Billing webhook rejected: missing Stripe-Signature header")
            raise SignatureInvalid("Missing Stripe-Signature header")

        if not self.billing_secret:
            raise ServiceError("Billing webhook secret not configured")

        try:
            event = stripe.Webhook.construct_event(body, signature, self.billing_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("Billing webhook rejected: %s", exc)
            raise SignatureInvalid("Webhook signature verification failed") from exc
        return to_plain(event)

    # ---- dispatch ----

    def handle_identity_event(self, payload: dict[str, Any]) -> WebhookAck:
        event_type = payload.get("type")
        try:
            event = parse_identity_event(payload)
        except ValidationError:
            logger.exception("Malformed %s identity event; acknowledging", event_type)
            return WebhookAck(event_type=event_type)

        handler = self._identity_handlers.get(type(event))
        if handler is None:
            logger.info("Unhandled identity event type: %s", event_type)
            return WebhookAck(event_type=event_type)

        try:
            handler(event)
        except Exception:
            logger.exception("Identity event %s failed; acknowledged without retry", event_type)
            return WebhookAck(event_type=event_type)
        return WebhookAck(event_type=event_type, handled=True)

    def handle_billing_event(self, event: Mapping[str, Any]) -> WebhookAck:
        event_type = event["type"]
        handler = self._billing_handlers.get(event_type)
        if handler is None:
            logger.info("Unhandled billing event type: %s", event_type)
            return WebhookAck(event_type=event_type)

        try:
            handler(event["data"]["object"])
        except Exception:
            logger.exception("Billing event %s failed; acknowledged without retry", event_type)
            return WebhookAck(event_type=event_type)
        return WebhookAck(event_type=event_type, handled=True)

    # ---- identity handlers ----

    def _on_user_created(self, event: UserCreatedEvent) -> None:
        if self.sync.assign_default_role(event.data.id):
            logger.info("Assigned default role to new user %s", event.data.id)

    def _on_session_created(self, event: SessionCreatedEvent) -> None:
        user_id = event.data.user_id
        link = self.sync.link_on_first_contact(user_id, allow_create=True)
        if link.linked:
            self.sync.sync_name_from_billing(user_id)

    # ---- billing handlers ----

    @staticmethod
    def _identity_hint(obj: Mapping[str, Any]) -> str | None:
        metadata = obj.get("metadata") or {}
        return metadata.get(IDENTITY_METADATA_KEY) or obj.get("client_reference_id")

    def reconcile_for_customer(self, customer_id: str | None, hint: str | None = None) -> ReconcileResult | None:
        """
        Reconcile whoever owns `customer_id`.

        The owner is the hinted user (event metadata), else the profile
        linked to the customer, else the customer's own back-reference.
        """
        user_id = hint
        if user_id and customer_id:
            # get_user provisions the profile row the link is stored on
            self.identity.get_user(user_id)
            self.identity.link_billing_customer(user_id, customer_id)
        if user_id is None and customer_id:
            user_id = self.identity.find_user_id_by_customer(customer_id)
        if user_id is None and customer_id:
            user_id = self.billing.get_customer(customer_id).identity_user_id
        if user_id is None:
            logger.warning("No identity user found for billing customer %s", customer_id)
            return None

        result = self.sync.reconcile(user_id, trigger="billing_webhook")
        if result.error:
            logger.error("Role write for user %s failed after billing event: %s", user_id, result.error)
        return result

    def _on_checkout_completed(self, obj: Mapping[str, Any]) -> None:
        if obj.get("mode") != "subscription":
            logger.info("Checkout session %s (mode %s) needs no role sync", obj.get("id"), obj.get("mode"))
            return
        self.reconcile_for_customer(obj.get("customer"), self._identity_hint(obj))

    def _on_subscription_changed(self, obj: Mapping[str, Any]) -> None:
        self.reconcile_for_customer(obj.get("customer"), self._identity_hint(obj))

    def _on_invoice(self, obj: Mapping[str, Any]) -> None:
        # current API versions nest subscription_details under parent
        parent = obj.get("parent") or {}
        details = obj.get("subscription_details") or parent.get("subscription_details") or {}
        self.reconcile_for_customer(obj.get("customer"), self._identity_hint(details))
