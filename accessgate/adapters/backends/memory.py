"""
In-memory identity backend - Implements ManagedIdentityBackend and
BearerIdentityBackend protocols.

Stands in for the managed backend in development (no Supabase project
configured) and in tests. Passwords are bcrypt-hashed; lookups of unknown
emails still run a bcrypt comparison against a dummy hash so the response
time does not reveal whether an account exists.

The current session token is persisted under SESSION_KEY in the optional
KeyValueStore, matching the "sb-" prefix a Supabase client uses, so the
session authority's logout sweep treats both backends the same way.
"""

import logging
import secrets
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

import bcrypt

from accessgate.domain.exceptions import (
    AlreadyExists,
    InvalidCredential,
    NotFound,
    Unauthenticated,
)
from accessgate.domain.models import Identity, Profile
from accessgate.domain.ports import AuthEvent, AuthStateListener, KeyValueStore

logger = logging.getLogger(__name__)

SESSION_KEY = "sb-local-auth-token"
MIN_PASSWORD_LENGTH = 6

_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(4))


@dataclass
class _UserRecord:
    id: str
    email: str
    password_hash: bytes
    metadata: dict[str, str] = field(default_factory=dict)
    email_verified: bool = False


class InMemoryIdentityBackend:
    """
    Process-local identity backend with sessions and an auth-state stream.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    session_key_prefixes: tuple[str, ...] = ("sb-",)

    def __init__(
        self,
        store: KeyValueStore | None = None,
        bcrypt_cost: int = 10,
        auto_confirm: bool = True,
    ) -> None:
        """
        Args:
            store: Where the current session token is persisted (optional)
            bcrypt_cost: bcrypt work factor for stored passwords
            auto_confirm: Mark new identities as email-verified immediately
        """
        self._store = store
        self._bcrypt_cost = bcrypt_cost
        self._auto_confirm = auto_confirm
        self._lock = threading.Lock()
        self._users: dict[str, _UserRecord] = {}
        self._sessions: dict[str, str] = {}
        self._current_token: str | None = None
        self._listeners: list[AuthStateListener] = []
        self.reset_requests: list[str] = []

    def authenticate(self, email: str, password: str) -> Identity:
        email = email.strip().lower()
        with self._lock:
            record = self._users.get(email)
        stored_hash = record.password_hash if record is not None else _DUMMY_BCRYPT_HASH
        password_ok = bcrypt.checkpw(password.encode(), stored_hash)
        if record is None or not password_ok:
            raise InvalidCredential("Invalid login credentials")

        token = secrets.token_urlsafe(32)
        with self._lock:
            self._sessions[token] = record.email
            self._current_token = token
            if self._store is not None:
                self._store.set(SESSION_KEY, token)
        identity = _to_identity(record, access_token=token)
        logger.info(f"Signed in {record.email}")
        self._emit(AuthEvent.SIGNED_IN, identity)
        return identity

    def register(self, profile: Profile, password: str) -> Identity:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise InvalidCredential(
                f"Password should be at least {MIN_PASSWORD_LENGTH} characters"
            )
        email = profile.email.strip().lower()
        password_hash = bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=self._bcrypt_cost))
        with self._lock:
            if email in self._users:
                raise AlreadyExists("User already registered")
            record = _UserRecord(
                id=str(uuid.uuid4()),
                email=email,
                password_hash=password_hash,
                metadata={"first_name": profile.first_name, "last_name": profile.last_name},
                email_verified=self._auto_confirm,
            )
            self._users[email] = record
        logger.info(f"Registered identity {record.id} for {email}")
        return _to_identity(record)

    def get_current_identity(self, session_token: str) -> Identity:
        with self._lock:
            email = self._sessions.get(session_token)
            record = self._users.get(email) if email is not None else None
        if record is None:
            raise Unauthenticated("session token not accepted")
        return _to_identity(record, access_token=session_token)

    def reset_credential(self, email: str) -> None:
        email = email.strip().lower()
        with self._lock:
            known = email in self._users
            if known:
                self.reset_requests.append(email)
        if known:
            logger.info(f"Credential reset requested for {email}")

    def current_identity(self) -> Identity | None:
        with self._lock:
            token = self._current_token
            if token is None and self._store is not None:
                token = self._store.get(SESSION_KEY)
            email = self._sessions.get(token) if token is not None else None
            record = self._users.get(email) if email is not None else None
        if record is None:
            return None
        return _to_identity(record, access_token=token)

    def sign_out(self) -> None:
        """Global sign-out: drops every session of the current user."""
        with self._lock:
            token = self._current_token
            email = self._sessions.get(token) if token is not None else None
            if email is not None:
                self._sessions = {t: e for t, e in self._sessions.items() if e != email}
            self._current_token = None
            if self._store is not None:
                self._store.remove(SESSION_KEY)
        if email is not None:
            self._emit(AuthEvent.SIGNED_OUT, None)

    def on_auth_state_change(self, listener: AuthStateListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def find_identity(self, email: str) -> Identity | None:
        with self._lock:
            record = self._users.get(email.strip().lower())
        return _to_identity(record) if record is not None else None

    def delete_identity(self, identity_id: str) -> None:
        with self._lock:
            for email, record in self._users.items():
                if record.id == identity_id:
                    del self._users[email]
                    self._sessions = {t: e for t, e in self._sessions.items() if e != email}
                    return
        raise NotFound(identity_id)

    def _emit(self, event: AuthEvent, identity: Identity | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(event, identity)


def _to_identity(record: _UserRecord, access_token: str | None = None) -> Identity:
    return Identity(
        id=record.id,
        email=record.email,
        email_verified=record.email_verified,
        access_token=access_token,
        roles=("authenticated",),
        metadata=dict(record.metadata),
    )
