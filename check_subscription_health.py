# check_subscription_health.py
"""
Find paying billing customers with no linked identity user.

A customer is orphaned when it has an active, trialing or past_due
subscription but neither carries an identity_user_id in its metadata
nor is linked from any profile row.

Usage:
    python check_subscription_health.py [--limit N]
"""
import argparse
import logging

from app.core.dependencies import get_billing_repo, get_identity_repo

WATCHED_STATUSES = {"active", "trialing", "past_due"}


def find_orphans(limit: int):
    billing = get_billing_repo()
    identity = get_identity_repo()

    orphans = []
    for customer, subscriptions in billing.list_customers_with_subscriptions(limit=limit):
        watched = [s for s in subscriptions if s.status in WATCHED_STATUSES]
        if not watched:
            continue
        if customer.identity_user_id:
            continue
        if identity.find_user_id_by_customer(customer.id):
            continue
        orphans.append((customer, watched))
    return orphans


def main(argv=None):
    parser = argparse.ArgumentParser(description="Report billing customers with no identity user.")
    parser.add_argument("--limit", type=int, default=100, help="customers to scan")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    orphans = find_orphans(args.limit)
    if not orphans:
        print("All subscribed customers are linked to an identity user.")
        return 0

    print(f"{len(orphans)} subscribed customer(s) without an identity user:")
    for customer, subscriptions in orphans:
        statuses = ", ".join(f"{s.id} ({s.status})" for s in subscriptions)
        print(f"  {customer.id} <{customer.email or 'no email'}>: {statuses}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
