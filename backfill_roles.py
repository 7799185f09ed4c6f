# backfill_roles.py
"""
Re-derive every identity user's role from billing.

Usage:
    python backfill_roles.py [--dry-run] [--clear-migration-flags]

--dry-run reports the role each user would get without linking or
writing anything.
"""
import argparse
import logging

from app.core.dependencies import get_billing_repo, get_identity_repo, get_sync_service
from app.core.errors import ServiceError
from app.schemas.user import UserRecord
from app.services.role_resolver import resolve_role


def preview_role(user: UserRecord) -> tuple[str | None, str]:
    billing = get_billing_repo()
    customer_id = user.stripe_customer_id
    if customer_id is None and user.email:
        customer = billing.find_customer_by_email(user.email)
        customer_id = customer.id if customer else None
    subscriptions = billing.list_subscriptions(customer_id) if customer_id else []
    return customer_id, resolve_role(subscriptions).value


def main(argv=None):
    parser = argparse.ArgumentParser(description="Backfill roles from billing state.")
    parser.add_argument("--dry-run", action="store_true", help="report without writing")
    parser.add_argument(
        "--clear-migration-flags",
        action="store_true",
        help="clear the migrated-account flag for users who already set a password",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    identity = get_identity_repo()
    sync = get_sync_service()

    scanned = changed = flags_cleared = failed = 0
    for user in identity.iter_users(provision=not args.dry_run):
        scanned += 1
        try:
            if args.dry_run:
                customer_id, role = preview_role(user)
                if user.stored_role != role:
                    changed += 1
                    print(f"[dry-run] {user.email}: {user.stored_role or '<unset>'} -> {role} (customer {customer_id})")
            else:
                result = sync.reconcile(user.id, trigger="backfill")
                if result.error:
                    failed += 1
                    print(f"FAILED {user.email}: {result.error}")
                elif result.changed:
                    changed += 1
                    print(f"{user.email}: {result.previous_role or '<unset>'} -> {result.new_role.value}")

            if args.clear_migration_flags and user.migrated_from_wordpress and user.password_set:
                if args.dry_run:
                    print(f"[dry-run] {user.email}: would clear migration flag")
                elif identity.clear_migration_flag(user.id):
                    print(f"{user.email}: migration flag cleared")
                flags_cleared += 1
        except ServiceError as exc:
            failed += 1
            print(f"FAILED {user.email}: {exc.message}")

    print(
        f"Scanned {scanned} users: {changed} role changes, "
        f"{flags_cleared} migration flags cleared, {failed} failures."
    )
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
