# app/core/config.py
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized application settings loaded from environment.

    Required env vars (.env):
      - SUPABASE_URL
      - SUPABASE_KEY (anon key)
      - DATABASE_URL (profile + audit tables; Supabase Postgres in prod)
      - SUPABASE_JWT_SECRET (JWT signing secret from Supabase project settings)

    Optional:
      - SUPABASE_SERVICE_ROLE_KEY (admin Auth client; without it every
        identity write is rejected as unauthenticated)
      - STRIPE_SECRET_KEY / STRIPE_WEBHOOK_SECRET
      - IDENTITY_WEBHOOK_SECRET (Standard Webhooks "whsec_..." secret)
    """

    PROJECT_NAME: str = "Cake Academy API"
    API_V1_STR: str = "/api/v1"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Supabase / DB config
    SUPABASE_URL: str
    SUPABASE_KEY: str
    DATABASE_URL: str

    # JWT verification (backend-side)
    SUPABASE_JWT_SECRET: str
    SUPABASE_JWT_ALG: str = "HS256"

    # Service role key bypasses RLS and unlocks auth.admin (backend only)
    SUPABASE_SERVICE_ROLE_KEY: str | None = None

    # Billing
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    # Identity provider webhooks
    IDENTITY_WEBHOOK_SECRET: str = ""

    # Frontend routes used for redirects and return URLs
    FRONTEND_URL: str = "http://localhost:3000"
    SIGNUP_PATH: str = "/signup"
    UPGRADE_PATH: str = "/upgrade"

    # How many recent checkout sessions the email fallback scans.
    # Orders older than this window are not found by that path.
    ORDER_SCAN_LIMIT: int = 100
    SUBSCRIPTION_LIST_LIMIT: int = 100

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()
