# tests/conftest.py
import base64
import os
from datetime import datetime, timedelta, timezone

# Settings are read once and cached; set them before importing app.
IDENTITY_SECRET = "whsec_" + base64.b64encode(b"identity-webhook-test-secret").decode()
BILLING_SECRET = "whsec_billing_test_secret"
JWT_SECRET = "test-jwt-secret"

os.environ["SUPABASE_URL"] = "http://localhost:54321"
os.environ["SUPABASE_KEY"] = "test-anon-key"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SUPABASE_JWT_SECRET"] = JWT_SECRET
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = BILLING_SECRET
os.environ["IDENTITY_WEBHOOK_SECRET"] = IDENTITY_SECRET

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from app.core import dependencies
from app.core.errors import NotFound
from app.main import app
from app.schemas.billing import (
    BillingCustomer,
    CheckoutSession,
    OrderLine,
    Subscription,
)
from app.schemas.user import UserRecord
from app.services.account_service import AccountService
from app.services.sync_service import SyncService
from app.services.webhook_service import WebhookService


class FakeIdentity:
    """In-memory identity store with the IdentityRepository interface."""

    def __init__(self):
        self.users: dict[str, UserRecord] = {}
        self.role_writes: list[tuple[str, str]] = []
        self.name_writes: list[tuple[str, str]] = []
        self.role_write_error: Exception | None = None

    def add_user(self, user_id, email, role=None, name=None, customer_id=None, migrated=False):
        self.users[user_id] = UserRecord(
            id=user_id,
            email=email,
            name=name,
            stored_role=role,
            stripe_customer_id=customer_id,
            migrated_from_wordpress=migrated,
        )
        return self.users[user_id]

    def get_user(self, user_id):
        if user_id not in self.users:
            raise NotFound(f"Identity user {user_id} not found")
        return self.users[user_id].model_copy()

    def iter_users(self, per_page=100, provision=True):
        for user_id in list(self.users):
            yield self.get_user(user_id)

    def ensure_profile(self, user_id, email, name=None):
        user = self.users[user_id]
        return user.stripe_customer_id, user.name

    def find_user_id_by_customer(self, customer_id):
        for user in self.users.values():
            if user.stripe_customer_id == customer_id:
                return user.id
        return None

    def find_user_id_by_email(self, email):
        for user in self.users.values():
            if user.email == email:
                return user.id
        return None

    def set_role(self, user_id, role):
        if self.role_write_error is not None:
            raise self.role_write_error
        user = self.users[user_id]
        if user.stored_role == role.value:
            return False
        user.stored_role = role.value
        self.role_writes.append((user_id, role.value))
        return True

    def link_billing_customer(self, user_id, customer_id):
        user = self.users[user_id]
        if user.stripe_customer_id:
            return user.stripe_customer_id
        user.stripe_customer_id = customer_id
        return customer_id

    def update_name(self, user_id, name):
        self.users[user_id].name = name
        self.name_writes.append((user_id, name))

    def clear_migration_flag(self, user_id):
        user = self.users[user_id]
        if not user.migrated_from_wordpress:
            return False
        user.migrated_from_wordpress = False
        return True

    def create_sign_in_link(self, email):
        return f"https://auth.example.test/verify?email={email}"


class FakeBilling:
    """In-memory billing provider with the BillingRepository interface."""

    def __init__(self):
        self.customers: dict[str, BillingCustomer] = {}
        self.subscriptions: dict[str, list[Subscription]] = {}
        self.sessions: dict[str, CheckoutSession] = {}
        self.line_items: dict[str, list[OrderLine]] = {}
        self.created: list[str] = []
        self.tagged: list[tuple[str, str]] = []
        self.calls: list[str] = []

    def add_customer(self, customer_id, email, name=None, identity_user_id=None):
        self.customers[customer_id] = BillingCustomer(
            id=customer_id, email=email, name=name, identity_user_id=identity_user_id
        )
        self.subscriptions.setdefault(customer_id, [])
        return self.customers[customer_id]

    def add_subscription(self, customer_id, sub_id, status, **fields):
        sub = Subscription(id=sub_id, status=status, customer_id=customer_id, **fields)
        self.subscriptions.setdefault(customer_id, []).append(sub)
        return sub

    def set_status(self, sub_id, status):
        for subs in self.subscriptions.values():
            for index, sub in enumerate(subs):
                if sub.id == sub_id:
                    subs[index] = sub.model_copy(update={"status": status})

    def find_customer_by_email(self, email):
        self.calls.append("find_customer_by_email")
        for customer in self.customers.values():
            if customer.email and customer.email.lower() == email.lower():
                return customer.model_copy()
        return None

    def get_customer(self, customer_id):
        self.calls.append("get_customer")
        if customer_id not in self.customers:
            raise NotFound(f"Billing customer {customer_id} not found")
        return self.customers[customer_id].model_copy()

    def create_customer(self, email, name=None, identity_user_id=None):
        customer_id = f"cus_new{len(self.created) + 1}"
        self.created.append(customer_id)
        return self.add_customer(customer_id, email, name, identity_user_id).model_copy()

    def tag_customer(self, customer_id, identity_user_id):
        self.tagged.append((customer_id, identity_user_id))
        self.customers[customer_id].identity_user_id = identity_user_id

    def list_customers_with_subscriptions(self, limit=100):
        return [(c.model_copy(), list(self.subscriptions.get(c.id, []))) for c in self.customers.values()]

    def list_subscriptions(self, customer_id, status="all"):
        self.calls.append("list_subscriptions")
        return list(self.subscriptions.get(customer_id, []))

    def cancel_at_period_end(self, subscription_id):
        for subs in self.subscriptions.values():
            for index, sub in enumerate(subs):
                if sub.id == subscription_id:
                    subs[index] = sub.model_copy(update={"cancel_at_period_end": True})
                    return subs[index]
        raise NotFound(f"Subscription {subscription_id} not found")

    def get_checkout_session(self, session_id):
        if session_id not in self.sessions:
            raise NotFound(f"Checkout session {session_id} not found")
        return self.sessions[session_id]

    def list_paid_checkout_sessions(self, customer_id=None, email=None, mode="payment"):
        sessions = [
            s
            for s in self.sessions.values()
            if (customer_id and s.customer_id == customer_id)
            or (not customer_id and email and s.customer_email == email)
        ]
        return [s for s in sessions if s.mode == mode and s.payment_status == "paid"]

    def list_line_items(self, session_id):
        return list(self.line_items.get(session_id, []))

    def create_portal_session(self, customer_id, return_url):
        return f"https://billing.example.test/portal/{customer_id}"


class FakeAudit:
    def __init__(self):
        self.rows: list[tuple[str, str | None, str, str]] = []

    def record(self, user_id, previous_role, new_role, trigger):
        self.rows.append((user_id, previous_role, new_role, trigger))

    def list_for_user(self, user_id, limit=50):
        return []


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def billing():
    return FakeBilling()


@pytest.fixture
def audit():
    return FakeAudit()


@pytest.fixture
def sync(identity, billing, audit):
    return SyncService(identity, billing, audit)


@pytest.fixture
def webhook_service(sync, identity, billing):
    return WebhookService(
        sync,
        identity,
        billing,
        identity_secret=IDENTITY_SECRET,
        billing_secret=BILLING_SECRET,
    )


@pytest.fixture
def client(identity, billing, audit, sync, webhook_service):
    app.dependency_overrides[dependencies.get_identity_repo] = lambda: identity
    app.dependency_overrides[dependencies.get_billing_repo] = lambda: billing
    app.dependency_overrides[dependencies.get_audit_repo] = lambda: audit
    app.dependency_overrides[dependencies.get_sync_service] = lambda: sync
    app.dependency_overrides[dependencies.get_account_service] = lambda: AccountService(identity, billing)
    app.dependency_overrides[dependencies.get_webhook_service] = lambda: webhook_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_token(user_id, email=None, role=None, expires_in=3600):
    claims = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        "app_metadata": {"role": role} if role else {},
    }
    return jwt.encode(claims, JWT_SECRET, algorithm="HS256")


@pytest.fixture
def auth_headers():
    def _headers(user_id, email=None, role=None):
        return {"Authorization": f"Bearer {make_token(user_id, email, role)}"}

    return _headers
