# app/repositories/identity_repo.py
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import httpx
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select
from supabase import AuthApiError, AuthError, Client

from app.core.errors import NotFound, Unauthenticated, UpstreamUnavailable
from app.core.roles import Role
from app.models.user import User
from app.schemas.user import UserRecord

logger = logging.getLogger(__name__)

ROLE_KEY = "role"
MIGRATION_FLAG_KEY = "migrated_from_wordpress"


class IdentityRepository:
    """
    Identity store adapter.

    Two backing stores make up one identity record:
      - Supabase Auth (admin API): email, app_metadata.role,
        app_metadata.migrated_from_wordpress, user_metadata.full_name
      - the `users` profile table: stripe_customer_id (server only)

    Supabase and profile-store failures are translated into the
    service error taxonomy; nothing is retried here.
    """

    def __init__(self, client: Client | None, engine: Engine):
        self.client = client
        self.engine = engine

    # ---- internal helpers ----

    def _call(self, action: str, fn: Callable[[], Any]) -> Any:
        try:
            return fn()
        except AuthApiError as exc:
            if exc.status == 404:
                raise NotFound(f"Identity user not found ({action})") from exc
            if exc.status in (401, 403):
                raise Unauthenticated(f"Identity provider rejected {action}: {exc.message}") from exc
            raise UpstreamUnavailable(f"Identity provider error during {action}: {exc.message}") from exc
        except (AuthError, httpx.HTTPError) as exc:
            raise UpstreamUnavailable(f"Identity provider unreachable during {action}: {exc}") from exc

    def _admin(self):
        if self.client is None:
            raise Unauthenticated("Identity admin credentials are not configured")
        return self.client.auth.admin

    def _fetch_auth_user(self, user_id: str):
        response = self._call("get_user", lambda: self._admin().get_user_by_id(user_id))
        if response is None or response.user is None:
            raise NotFound(f"Identity user {user_id} not found")
        return response.user

    def _update_auth_user(self, user_id: str, attributes: dict[str, Any]) -> None:
        self._call("update_user", lambda: self._admin().update_user_by_id(user_id, attributes))

    @staticmethod
    def _display_name(user_metadata: dict[str, Any]) -> str | None:
        name = user_metadata.get("full_name") or user_metadata.get("name")
        if name:
            return str(name).strip() or None
        first = str(user_metadata.get("first_name") or "").strip()
        last = str(user_metadata.get("last_name") or "").strip()
        return " ".join(part for part in (first, last) if part) or None

    @contextmanager
    def _profile_session(self, action: str) -> Iterator[Session]:
        try:
            with Session(self.engine) as session:
                yield session
        except SQLAlchemyError as exc:
            raise UpstreamUnavailable(f"Profile store error during {action}: {exc}") from exc

    def _read_profile(self, user_id: str) -> tuple[str | None, str | None]:
        with self._profile_session("read_profile") as session:
            profile = session.get(User, user_id)
            if profile is None:
                return None, None
            return profile.stripe_customer_id, profile.name

    def _to_record(self, auth_user, provision: bool = True) -> UserRecord:
        app_metadata = auth_user.app_metadata or {}
        user_metadata = auth_user.user_metadata or {}
        name = self._display_name(user_metadata)

        if provision:
            stripe_customer_id, profile_name = self.ensure_profile(auth_user.id, auth_user.email, name)
        else:
            stripe_customer_id, profile_name = self._read_profile(auth_user.id)

        raw_role = app_metadata.get(ROLE_KEY)
        return UserRecord(
            id=auth_user.id,
            email=auth_user.email,
            name=name or profile_name,
            stored_role=None if raw_role is None else str(raw_role),
            stripe_customer_id=stripe_customer_id,
            migrated_from_wordpress=bool(app_metadata.get(MIGRATION_FLAG_KEY)),
            password_set=bool(user_metadata.get("password_set")),
        )

    # ---- profile table ----

    def ensure_profile(
        self,
        user_id: str,
        email: str | None,
        name: str | None = None,
    ) -> tuple[str | None, str | None]:
        """
        Create the profile row on first contact, keep email current.

        Returns (stripe_customer_id, name) as stored. When two first-contact
        events insert concurrently, the loser re-reads the winner's row.
        """
        with self._profile_session("ensure_profile") as session:
            profile = session.get(User, user_id)
            if profile is None:
                profile = User(id=user_id, email=email or "", name=name)
                session.add(profile)
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    profile = session.get(User, user_id)
                    if profile is None:
                        raise
                    logger.info("Profile for user %s was created concurrently", user_id)
                else:
                    session.refresh(profile)
            elif email and profile.email != email:
                profile.email = email
                session.add(profile)
                session.commit()
                session.refresh(profile)
            return profile.stripe_customer_id, profile.name

    def find_user_id_by_customer(self, customer_id: str) -> str | None:
        with self._profile_session("find_user_by_customer") as session:
            stmt = select(User).where(User.stripe_customer_id == customer_id)
            profile = session.exec(stmt).first()
            return profile.id if profile else None

    def find_user_id_by_email(self, email: str) -> str | None:
        with self._profile_session("find_user_by_email") as session:
            stmt = select(User).where(User.email == email)
            profile = session.exec(stmt).first()
            return profile.id if profile else None

    # ---- public operations ----

    def get_user(self, user_id: str) -> UserRecord:
        """
        Load the merged identity record.

        Raises:
            NotFound: the identity user does not exist.
        """
        return self._to_record(self._fetch_auth_user(user_id))

    def iter_users(self, per_page: int = 100, provision: bool = True) -> Iterator[UserRecord]:
        """
        Page through every identity user (maintenance scripts).

        provision=False only reads profile rows, so the scan writes nothing.
        """
        page = 1
        while True:
            users = self._call(
                "list_users",
                lambda: self._admin().list_users(page=page, per_page=per_page),
            )
            for auth_user in users:
                yield self._to_record(auth_user, provision)
            if len(users) < per_page:
                return
            page += 1

    def set_role(self, user_id: str, role: Role) -> bool:
        """
        Write app_metadata.role.

        Idempotent: if the stored value already equals `role` nothing is
        written and False is returned.
        """
        auth_user = self._fetch_auth_user(user_id)
        current = (auth_user.app_metadata or {}).get(ROLE_KEY)
        if current == role.value:
            return False
        self._update_auth_user(user_id, {"app_metadata": {ROLE_KEY: role.value}})
        return True

    def link_billing_customer(self, user_id: str, customer_id: str) -> str:
        """
        Store the billing customer id only if none is linked yet.

        The row is locked for the read-compare-write so a concurrent
        link cannot be clobbered. Returns the id that is linked after
        the call, which may be a previously stored one.
        """
        with self._profile_session("link_billing_customer") as session:
            stmt = select(User).where(User.id == user_id).with_for_update()
            profile = session.exec(stmt).first()
            if profile is None:
                raise NotFound(f"Profile for identity user {user_id} not found")

            if profile.stripe_customer_id:
                if profile.stripe_customer_id != customer_id:
                    logger.warning(
                        "User %s already linked to %s; not relinking to %s",
                        user_id,
                        profile.stripe_customer_id,
                        customer_id,
                    )
                return profile.stripe_customer_id

            profile.stripe_customer_id = customer_id
            session.add(profile)
            session.commit()
            logger.info("Linked user %s to billing customer %s", user_id, customer_id)
            return customer_id

    def update_name(self, user_id: str, name: str) -> None:
        """Overwrite the display name (user_metadata + profile)."""
        self._update_auth_user(user_id, {"user_metadata": {"full_name": name}})
        with self._profile_session("update_name") as session:
            profile = session.get(User, user_id)
            if profile is not None:
                profile.name = name
                session.add(profile)
                session.commit()

    def clear_migration_flag(self, user_id: str) -> bool:
        """
        Remove app_metadata.migrated_from_wordpress.

        Supabase drops app_metadata keys set to null. Returns False (and
        writes nothing) when the flag is already absent.
        """
        auth_user = self._fetch_auth_user(user_id)
        if not (auth_user.app_metadata or {}).get(MIGRATION_FLAG_KEY):
            return False
        self._update_auth_user(user_id, {"app_metadata": {MIGRATION_FLAG_KEY: None}})
        logger.info("Cleared migration flag for user %s", user_id)
        return True

    def create_sign_in_link(self, email: str) -> str:
        """Generate a one-time magic sign-in link for `email`."""
        response = self._call(
            "generate_link",
            lambda: self._admin().generate_link({"type": "magiclink", "email": email}),
        )
        return response.properties.action_link
