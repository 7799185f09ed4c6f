# tests/test_role_resolver.py
import itertools

import pytest

from app.core.roles import Role
from app.schemas.billing import Subscription
from app.services.role_resolver import first_entitled, resolve_role

STATUSES = ["active", "trialing", "past_due", "canceled", "unpaid", "incomplete", "incomplete_expired", "paused"]


def _subs(*statuses):
    return [Subscription(id=f"sub_{i}", status=s) for i, s in enumerate(statuses)]


def test_empty_list_is_customer():
    assert resolve_role([]) is Role.CUSTOMER


@pytest.mark.parametrize("status", STATUSES)
def test_single_subscription(status):
    expected = Role.SUBSCRIBER if status in ("active", "trialing") else Role.CUSTOMER
    assert resolve_role(_subs(status)) is expected


def test_subscriber_iff_any_active_or_trialing():
    for combo in itertools.product(STATUSES, repeat=2):
        role = resolve_role(_subs(*combo))
        entitled = any(s in ("active", "trialing") for s in combo)
        assert role is (Role.SUBSCRIBER if entitled else Role.CUSTOMER)


def test_past_due_does_not_entitle():
    assert resolve_role(_subs("past_due", "canceled")) is Role.CUSTOMER


def test_first_entitled_skips_inactive():
    subs = _subs("canceled", "trialing", "active")
    assert first_entitled(subs).id == "sub_1"
