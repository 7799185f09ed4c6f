# app/services/sync_service.py
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import NotFound, ServiceError
from app.core.roles import Role
from app.repositories.billing_repo import BillingRepository
from app.repositories.identity_repo import IdentityRepository
from app.repositories.role_audit_repo import RoleAuditRepository
from app.schemas.billing import BillingCustomer
from app.schemas.sync import LinkResult, NameSyncResult, ReconcileResult, SubscriptionStatus
from app.schemas.user import UserRecord
from app.services.role_resolver import first_entitled, resolve_role

logger = logging.getLogger(__name__)


class SyncService:
    """
    Keeps the identity store's cached role in line with billing state.

    Responsibilities:
      - link an identity user to a billing customer (lookup by email,
        optional create), never replacing an existing link
      - re-derive the role from billing and write it back when it differs
      - one-way display-name sync from billing to identity
      - record every role write in the audit trail

    Nothing here retries. Repository errors propagate, except where an
    operation documents that it reports them on its result instead.
    """

    def __init__(
        self,
        identity: IdentityRepository,
        billing: BillingRepository,
        audit: RoleAuditRepository | None = None,
    ):
        self.identity = identity
        self.billing = billing
        self.audit = audit

    # ---- internal helpers ----

    def _tag_customer(self, customer: BillingCustomer, user_id: str) -> None:
        try:
            self.billing.tag_customer(customer.id, user_id)
        except ServiceError as exc:
            logger.warning("Could not tag billing customer %s with user %s: %s", customer.id, user_id, exc)

    def _resolve_customer(
        self,
        user: UserRecord,
        allow_create: bool,
    ) -> tuple[BillingCustomer | None, bool]:
        """
        Find (and link) the user's billing customer.

        Returns (customer or None, created).
        """
        if user.stripe_customer_id:
            return self.billing.get_customer(user.stripe_customer_id), False

        if not user.email:
            logger.warning("User %s has no email; cannot look up a billing customer", user.id)
            return None, False

        customer = self.billing.find_customer_by_email(user.email)
        created = False
        if customer is None:
            if not allow_create:
                return None, False
            customer = self.billing.create_customer(user.email, user.name, user.id)
            created = True

        linked_id = self.identity.link_billing_customer(user.id, customer.id)
        if linked_id != customer.id:
            # another invocation linked first; its customer is authoritative
            return self.billing.get_customer(linked_id), False

        if customer.identity_user_id is None:
            self._tag_customer(customer, user.id)
        return customer, created

    def _customer_id_for(
        self,
        user: UserRecord,
        allow_create: bool,
    ) -> tuple[str | None, BillingCustomer | None]:
        """
        Billing customer id for role derivation.

        A linked user needs no customer lookup; the customer object is
        only returned when resolving it was necessary anyway.
        """
        if user.stripe_customer_id:
            return user.stripe_customer_id, None
        customer, _ = self._resolve_customer(user, allow_create)
        return (customer.id if customer else None), customer

    def _sync_name(self, user: UserRecord, customer: BillingCustomer) -> bool:
        """Copy billing's name onto the identity record if they differ."""
        name = (customer.name or "").strip()
        if not name or name == (user.name or ""):
            return False
        self.identity.update_name(user.id, name)
        logger.info("Synced name for user %s from billing customer %s", user.id, customer.id)
        return True

    def _record_transition(self, user_id: str, previous: str | None, new: Role, trigger: str) -> None:
        logger.info("Role for user %s: %s -> %s (%s)", user_id, previous or "<unset>", new.value, trigger)
        if self.audit is None:
            return
        try:
            self.audit.record(user_id, previous, new.value, trigger)
        except SQLAlchemyError:
            logger.exception("Failed to write role audit row for user %s", user_id)

    # ---- public operations ----

    def reconcile(
        self,
        user_id: str,
        *,
        allow_create: bool = False,
        trigger: str = "repair",
    ) -> ReconcileResult:
        """
        Re-derive the user's role from billing and store it if it changed.

        Steps:
          1. Load the identity record; link a billing customer if needed.
          2. List all of the customer's subscriptions.
          3. Resolve the role.
          4. Write it when it differs from the stored value. A failed
             write is reported in `result.error`, not raised.
          5. Best effort: fetch the billing customer and copy its name
             onto the identity record. Failures land in `name_sync_error`.

        Raises:
            NotFound: the identity user does not exist.
            UpstreamUnavailable / Unauthenticated: a read failed.
        """
        user = self.identity.get_user(user_id)
        customer_id, customer = self._customer_id_for(user, allow_create)

        subscriptions = self.billing.list_subscriptions(customer_id, status="all") if customer_id else []
        role = resolve_role(subscriptions)

        result = ReconcileResult(
            user_id=user.id,
            previous_role=user.stored_role,
            new_role=role,
            customer_id=customer_id,
            active_subscription=first_entitled(subscriptions),
            subscriptions=subscriptions,
        )

        if user.stored_role != role.value:
            result.changed = True
            try:
                result.role_written = self.identity.set_role(user.id, role)
            except ServiceError as exc:
                logger.error("Role write for user %s failed: %s", user.id, exc)
                result.error = exc.message
            else:
                self._record_transition(user.id, user.stored_role, role, trigger)

        if customer_id is not None:
            try:
                if customer is None:
                    customer = self.billing.get_customer(customer_id)
                result.name_synced = self._sync_name(user, customer)
            except ServiceError as exc:
                logger.warning("Name sync for user %s failed: %s", user.id, exc)
                result.name_sync_error = exc.message

        return result

    def link_on_first_contact(self, user_id: str, *, allow_create: bool = True) -> LinkResult:
        """
        Make sure the user is linked to a billing customer.

        Already-linked users return immediately without touching billing,
        so repeated calls never create duplicate customers.
        """
        user = self.identity.get_user(user_id)
        if user.stripe_customer_id:
            return LinkResult(customer_id=user.stripe_customer_id, already_linked=True)

        customer, created = self._resolve_customer(user, allow_create)
        return LinkResult(customer_id=customer.id if customer else None, created=created)

    def sync_name_from_billing(self, user_id: str) -> NameSyncResult:
        """
        Overwrite the identity name with the billing customer's name.

        Raises:
            NotFound: no billing customer exists for the user.
        """
        user = self.identity.get_user(user_id)
        customer, _ = self._resolve_customer(user, allow_create=False)
        if customer is None:
            raise NotFound("No billing customer found for this user")

        if not (customer.name or "").strip():
            return NameSyncResult(
                synced=False,
                customer_id=customer.id,
                reason="Billing customer has no name set",
            )

        changed = self._sync_name(user, customer)
        return NameSyncResult(
            synced=True,
            name=customer.name.strip(),
            customer_id=customer.id,
            reason=None if changed else "Name already up to date",
        )

    def assign_default_role(self, user_id: str) -> bool:
        """
        Give a new user the customer role unless one is already set.

        A role written concurrently during signup (e.g. by a checkout
        webhook) wins. Returns True when the default was written.
        """
        user = self.identity.get_user(user_id)
        if user.stored_role:
            return False
        written = self.identity.set_role(user.id, Role.CUSTOMER)
        if written:
            self._record_transition(user.id, None, Role.CUSTOMER, "user_created")
        return written

    def subscription_status(self, user_id: str) -> SubscriptionStatus:
        """Live subscription summary straight from billing. Writes nothing but links."""
        user = self.identity.get_user(user_id)
        customer_id, _ = self._customer_id_for(user, allow_create=False)
        subscriptions = self.billing.list_subscriptions(customer_id, status="all") if customer_id else []
        role = resolve_role(subscriptions)
        return SubscriptionStatus(
            has_active_subscription=role is Role.SUBSCRIBER,
            role=role,
            customer_id=customer_id,
            subscriptions=subscriptions,
        )
