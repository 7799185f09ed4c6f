# app/core/dependencies.py
"""
Process-wide adapter and service instances, exposed as FastAPI
dependencies.

Each provider is cached, so adapters are built once per process on
first use rather than at import. Tests swap them through
`app.dependency_overrides`.
"""
from functools import lru_cache

from app.core.config import get_settings
from app.core.supabase_client import supabase_admin
from app.database import engine
from app.repositories.billing_repo import BillingRepository
from app.repositories.identity_repo import IdentityRepository
from app.repositories.role_audit_repo import RoleAuditRepository
from app.services.account_service import AccountService
from app.services.sync_service import SyncService
from app.services.webhook_service import WebhookService


@lru_cache
def get_identity_repo() -> IdentityRepository:
    return IdentityRepository(supabase_admin(), engine)


@lru_cache
def get_billing_repo() -> BillingRepository:
    settings = get_settings()
    return BillingRepository(
        settings.STRIPE_SECRET_KEY,
        session_scan_limit=settings.ORDER_SCAN_LIMIT,
        subscription_limit=settings.SUBSCRIPTION_LIST_LIMIT,
    )


@lru_cache
def get_audit_repo() -> RoleAuditRepository:
    return RoleAuditRepository(engine)


@lru_cache
def get_sync_service() -> SyncService:
    return SyncService(get_identity_repo(), get_billing_repo(), get_audit_repo())


@lru_cache
def get_account_service() -> AccountService:
    return AccountService(get_identity_repo(), get_billing_repo())


@lru_cache
def get_webhook_service() -> WebhookService:
    settings = get_settings()
    return WebhookService(
        get_sync_service(),
        get_identity_repo(),
        get_billing_repo(),
        identity_secret=settings.IDENTITY_WEBHOOK_SECRET,
        billing_secret=settings.STRIPE_WEBHOOK_SECRET,
    )
