# app/core/supabase_client.py
from functools import lru_cache
from supabase import create_client, Client

from app.core.config import get_settings


@lru_cache
def supabase_admin() -> Client | None:
    """
    Create the Supabase client used for identity administration.

    Use cases:
      - reading users (auth.admin.get_user_by_id / list_users)
      - writing app_metadata (role, migration flag) and user_metadata (name)
      - generating sign-in links

    Returns None when SUPABASE_SERVICE_ROLE_KEY is not configured; the
    identity repository then rejects every admin call as unauthenticated.

    WARNING:
      - Never expose service role key to frontend.
      - Only backend should call this.
    """
    settings = get_settings()
    if not settings.SUPABASE_SERVICE_ROLE_KEY:
        return None
    return create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
