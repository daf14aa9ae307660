"""
Supabase Auth backend adapter - Implements ManagedIdentityBackend protocol.

Wraps a supabase-py client so the rest of the app never calls Supabase
Auth directly. The client keeps its own session; when built with
create_supabase_backend() that session lives in our KeyValueStore, under
keys the session authority can sweep on logout.
"""

import logging
from collections.abc import Callable
from typing import Any

import httpx
from supabase import AuthApiError, AuthError, Client, ClientOptions, create_client

from accessgate.domain.exceptions import (
    AccessGateError,
    AlreadyExists,
    BackendUnavailable,
    InvalidCredential,
    Unauthenticated,
)
from accessgate.domain.models import Identity, Profile
from accessgate.domain.ports import AuthEvent, AuthStateListener, KeyValueStore

logger = logging.getLogger(__name__)

_ALREADY_EXISTS_CODES = {"user_already_exists", "email_exists"}


class KeyValueSessionStorage:
    """Adapts a KeyValueStore to the storage interface supabase-py expects."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def get_item(self, key: str) -> str | None:
        return self._store.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._store.set(key, value)

    def remove_item(self, key: str) -> None:
        self._store.remove(key)


class SupabaseIdentityBackend:
    """
    Implements ManagedIdentityBackend protocol via supabase-py.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    session_key_prefixes: tuple[str, ...] = ("sb-", "supabase.auth.")

    def __init__(self, client: Client, app_base_url: str) -> None:
        self._client = client
        self._app_base_url = app_base_url.rstrip("/")

    def authenticate(self, email: str, password: str) -> Identity:
        try:
            response = self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except (AuthError, httpx.HTTPError) as e:
            raise _translate(e, InvalidCredential) from e

        if response.user is None or response.session is None:
            raise InvalidCredential("sign-in returned no session")
        return _to_identity(response.user, access_token=response.session.access_token)

    def register(self, profile: Profile, password: str) -> Identity:
        try:
            response = self._client.auth.sign_up(
                {
                    "email": profile.email,
                    "password": password,
                    "options": {
                        "email_redirect_to": f"{self._app_base_url}/dashboard",
                        "data": {
                            "first_name": profile.first_name,
                            "last_name": profile.last_name,
                        },
                    },
                }
            )
        except (AuthError, httpx.HTTPError) as e:
            raise _translate(e, InvalidCredential) from e

        user = response.user
        if user is None:
            raise BackendUnavailable("sign-up returned no user")
        # With email confirmation on, Supabase answers a duplicate sign-up
        # with an obfuscated user that has no identities.
        if user.identities is not None and len(user.identities) == 0:
            raise AlreadyExists(profile.email)

        access_token = response.session.access_token if response.session else None
        return _to_identity(user, access_token=access_token)

    def get_current_identity(self, session_token: str) -> Identity:
        try:
            response = self._client.auth.get_user(session_token)
        except (AuthError, httpx.HTTPError) as e:
            raise _translate(e, Unauthenticated) from e
        if response is None or response.user is None:
            raise Unauthenticated("session token not accepted")
        return _to_identity(response.user, access_token=session_token)

    def reset_credential(self, email: str) -> None:
        try:
            self._client.auth.reset_password_for_email(
                email, {"redirect_to": f"{self._app_base_url}/reset-password"}
            )
        except (AuthError, httpx.HTTPError) as e:
            error = _translate(e, InvalidCredential)
            if isinstance(error, BackendUnavailable):
                raise error from e
            # Unknown emails stay indistinguishable from known ones
            logger.info(f"Credential reset for {email} not sent: {e}")

    def current_identity(self) -> Identity | None:
        try:
            session = self._client.auth.get_session()
        except (AuthError, httpx.HTTPError) as e:
            logger.warning(f"Could not read managed session: {e}")
            return None
        if session is None or session.user is None:
            return None
        return _to_identity(session.user, access_token=session.access_token)

    def sign_out(self) -> None:
        try:
            self._client.auth.sign_out({"scope": "global"})
        except (AuthError, httpx.HTTPError) as e:
            raise _translate(e, BackendUnavailable) from e

    def on_auth_state_change(self, listener: AuthStateListener) -> Callable[[], None]:
        def callback(event: str, session: Any) -> None:
            try:
                auth_event = AuthEvent(event)
            except ValueError:
                logger.debug(f"Ignoring managed auth event {event}")
                return
            user = getattr(session, "user", None) if session is not None else None
            identity = (
                _to_identity(user, access_token=session.access_token) if user is not None else None
            )
            listener(auth_event, identity)

        subscription = self._client.auth.on_auth_state_change(callback)
        return subscription.unsubscribe


def create_supabase_backend(
    url: str, key: str, app_base_url: str, store: KeyValueStore | None = None
) -> SupabaseIdentityBackend:
    """
    Build a backend around a fresh Supabase client.

    Args:
        url: Supabase project URL
        key: Anon (client) or service-role (server) key
        app_base_url: Origin used for email redirect links
        store: Session persistence; the client keeps sessions in memory if None
    """
    if store is None:
        client = create_client(url, key)
    else:
        options = ClientOptions(
            storage=KeyValueSessionStorage(store),
            persist_session=True,
            auto_refresh_token=False,
        )
        client = create_client(url, key, options=options)
    return SupabaseIdentityBackend(client, app_base_url)


def _to_identity(user: Any, access_token: str | None = None) -> Identity:
    metadata = dict(getattr(user, "user_metadata", None) or {})
    role = getattr(user, "role", None)
    return Identity(
        id=str(user.id),
        email=user.email or "",
        email_verified=getattr(user, "email_confirmed_at", None) is not None,
        access_token=access_token,
        roles=(role,) if role else (),
        metadata=metadata,
    )


def _translate(error: Exception, default: type[AccessGateError]) -> AccessGateError:
    """Map a supabase/httpx failure onto the domain error kinds."""
    if not isinstance(error, AuthApiError):
        return BackendUnavailable(str(error))

    status = getattr(error, "status", None) or 0
    code = getattr(error, "code", None)
    message = getattr(error, "message", None) or str(error)

    if status >= 500:
        return BackendUnavailable(message)
    if code in _ALREADY_EXISTS_CODES or "already registered" in message.lower():
        return AlreadyExists(message)
    if code == "weak_password":
        return InvalidCredential(message)
    return default(message)
