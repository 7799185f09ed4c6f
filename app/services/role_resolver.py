# app/services/role_resolver.py
from collections.abc import Iterable

from app.core.roles import Role
from app.schemas.billing import Subscription

# past_due, unpaid and incomplete do not entitle
ENTITLED_STATUSES = frozenset({"active", "trialing"})


def is_entitled(subscription: Subscription) -> bool:
    return subscription.status in ENTITLED_STATUSES


def first_entitled(subscriptions: Iterable[Subscription]) -> Subscription | None:
    for subscription in subscriptions:
        if is_entitled(subscription):
            return subscription
    return None


def resolve_role(subscriptions: Iterable[Subscription]) -> Role:
    """
    Derive the access role from a customer's subscriptions.

    subscriber iff at least one subscription is active or trialing,
    customer otherwise (including the empty list).
    """
    if first_entitled(subscriptions) is not None:
        return Role.SUBSCRIBER
    return Role.CUSTOMER
