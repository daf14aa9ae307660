"""
Session authority - One observable identity from three credential sources.

Sources, in fixed precedence:

1. Demo     - local flag + email, gated by the master code, no backend call
2. Bearer   - persisted application token, validated against the bearer
              backend on every resolution; purged on any failure
3. Managed  - the managed backend's own session, kept current through its
              auth-state push stream

Demo is a deliberate evaluation override, so an incidental managed sign-in
event never downgrades it. The resolved session is always computed from the
per-source state by precedence, which keeps at most one source authoritative.

Resolution attempts are tagged with a monotonically increasing sequence
number. A bearer validation that completes after a newer resolution started
is discarded instead of overwriting newer state. The managed slot carries its
own version, bumped by every push event, login and logout; a resolution only
writes the managed identity it read if that version is unchanged.
"""

import json
import logging
import secrets
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from .exceptions import AccessGateError, InvalidCredential
from .models import Identity
from .ports import (
    AuthEvent,
    CredentialBackend,
    KeyValueStore,
    ManagedIdentityBackend,
)
from .staging import STAGING_KEY

logger = logging.getLogger(__name__)

# Demo-mode keys
DEMO_FLAG_KEY = "accessgate_auth"
DEMO_EMAIL_KEY = "accessgate_email"
DEMO_FLAG_VALUE = "authenticated"

# Bearer-mode keys
BEARER_TOKEN_KEY = "accessgate_token"
BEARER_FLAG_KEY = "accessgate_backend_auth"
BEARER_EMAIL_KEY = "accessgate_user_email"
BEARER_USER_KEY = "accessgate_user_data"

_DEMO_KEYS = (DEMO_FLAG_KEY, DEMO_EMAIL_KEY)
_BEARER_KEYS = (BEARER_TOKEN_KEY, BEARER_FLAG_KEY, BEARER_EMAIL_KEY, BEARER_USER_KEY)


class SessionMode(str, Enum):
    UNKNOWN = "unknown"
    NONE = "none"
    DEMO = "demo"
    BEARER = "bearer"
    MANAGED = "managed"


@dataclass(frozen=True)
class UnknownSession:
    """Before the first resolution completes."""

    mode = SessionMode.UNKNOWN


@dataclass(frozen=True)
class NoSession:
    mode = SessionMode.NONE


@dataclass(frozen=True)
class DemoSession:
    email: str | None
    mode = SessionMode.DEMO


@dataclass(frozen=True)
class BearerSession:
    token: str
    user: Identity | None
    mode = SessionMode.BEARER


@dataclass(frozen=True)
class ManagedSession:
    user: Identity
    email_verified: bool
    mode = SessionMode.MANAGED


Session = UnknownSession | NoSession | DemoSession | BearerSession | ManagedSession

SessionListener = Callable[[Session], None]


def is_authenticated(session: Session) -> bool:
    return isinstance(session, DemoSession | BearerSession | ManagedSession)


class SessionAuthority:
    """
    Owns the session state of one client instance.

    Lifecycle: init() subscribes to the managed backend and resolves the
    initial session; subscribe() registers observers; dispose() detaches
    from the backend and drops observers.
    """

    def __init__(
        self,
        managed_backend: ManagedIdentityBackend,
        bearer_backend: CredentialBackend,
        store: KeyValueStore,
        demo_master_code: str,
    ) -> None:
        self._managed_backend = managed_backend
        self._bearer_backend = bearer_backend
        self._store = store
        self._demo_master_code = demo_master_code

        self._lock = threading.RLock()
        self._listeners: list[SessionListener] = []
        self._unsubscribe_managed: Callable[[], None] | None = None
        self._sequence = 0
        self._managed_version = 0
        self._resolved = False

        self._demo_email: str | None = None
        self._demo_active = False
        self._bearer: BearerSession | None = None
        self._managed: ManagedSession | None = None
        self._session: Session = UnknownSession()

    @property
    def session(self) -> Session:
        with self._lock:
            return self._session

    def init(self) -> Session:
        """Subscribe to the managed auth stream and resolve the initial session."""
        with self._lock:
            if self._unsubscribe_managed is None:
                self._unsubscribe_managed = self._managed_backend.on_auth_state_change(
                    self._on_managed_event
                )
        return self.resolve()

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register an observer called with the session after every change."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def dispose(self) -> None:
        with self._lock:
            unsubscribe = self._unsubscribe_managed
            self._unsubscribe_managed = None
            self._listeners.clear()
        if unsubscribe is not None:
            unsubscribe()

    def resolve(self) -> Session:
        """
        Rebuild session state from the local store and the managed backend.

        Bearer tokens are never trusted without a round-trip to the bearer
        backend; if validation fails, every bearer key is purged.
        """
        with self._lock:
            self._sequence += 1
            sequence = self._sequence
            managed_version = self._managed_version
            demo_active = self._store.get(DEMO_FLAG_KEY) == DEMO_FLAG_VALUE
            demo_email = self._store.get(DEMO_EMAIL_KEY)
            token = self._store.get(BEARER_TOKEN_KEY)

        bearer: BearerSession | None = None
        bearer_failed = False
        if token:
            try:
                user = self._bearer_backend.get_current_identity(token)
                bearer = BearerSession(token=token, user=user)
            except AccessGateError as e:
                logger.warning("Stored bearer token rejected, purging bearer state: %s", e)
                bearer_failed = True

        managed_identity = self._managed_backend.current_identity()

        with self._lock:
            if sequence != self._sequence:
                logger.debug("Discarding superseded session resolution %d", sequence)
                return self._session
            if bearer_failed:
                self._purge(_BEARER_KEYS)
            self._demo_active = demo_active
            self._demo_email = demo_email
            self._bearer = bearer
            if managed_version == self._managed_version:
                self._managed = (
                    ManagedSession(
                        user=managed_identity, email_verified=managed_identity.email_verified
                    )
                    if managed_identity is not None
                    else None
                )
            else:
                logger.debug("Managed state changed during resolution %d, keeping it", sequence)
            self._resolved = True
            return self._publish()

    def login(self, email: str, password: str) -> Session:
        """
        Authenticate against the managed backend.

        Raises:
            InvalidCredential: Credential rejected (state unchanged)
            BackendUnavailable: Backend unreachable (state unchanged)
        """
        identity = self._managed_backend.authenticate(email, password)
        with self._lock:
            self._sequence += 1
            self._managed_version += 1
            self._managed = ManagedSession(user=identity, email_verified=identity.email_verified)
            self._resolved = True
            logger.info("Managed login for %s", identity.email)
            return self._publish()

    def enter_demo(self, code: str, email: str | None = None) -> bool:
        """Activate demo mode if code matches the master code."""
        if not secrets.compare_digest(code.encode(), self._demo_master_code.encode()):
            return False
        with self._lock:
            self._sequence += 1
            self._store.set(DEMO_FLAG_KEY, DEMO_FLAG_VALUE)
            if email:
                self._store.set(DEMO_EMAIL_KEY, email)
            self._demo_active = True
            self._demo_email = email or self._store.get(DEMO_EMAIL_KEY)
            self._resolved = True
            self._publish()
        return True

    def set_backend_auth(self, token: str, user: Identity | None = None) -> Session:
        """
        Promote to bearer mode with a token obtained elsewhere.

        Makes no backend call; the caller already holds the login result.
        """
        with self._lock:
            self._sequence += 1
            self._store.set(BEARER_TOKEN_KEY, token)
            self._store.set(BEARER_FLAG_KEY, "true")
            if user is not None:
                self._store.set(BEARER_EMAIL_KEY, user.email)
                self._store.set(BEARER_USER_KEY, _dump_identity(user))
            self._bearer = BearerSession(token=token, user=user)
            self._resolved = True
            return self._publish()

    def login_bearer(self, email: str, password: str) -> Session:
        """
        Log in to the bearer backend and promote to bearer mode.

        Raises:
            InvalidCredential: Credential rejected (state unchanged)
            BackendUnavailable: Backend unreachable (state unchanged)
        """
        identity = self._bearer_backend.authenticate(email, password)
        if not identity.access_token:
            raise InvalidCredential("bearer login returned no token")
        logger.info("Bearer login for %s", identity.email)
        return self.set_backend_auth(identity.access_token, identity)

    def logout(self) -> Session:
        """
        Sign out of the managed backend, then clear every source.

        The managed sign-out reads its session from the local store, so it
        runs before the sweep. Local state is always cleared; a failing
        sign-out is logged only.
        """
        with self._lock:
            self._sequence += 1
            self._managed_version += 1
            try:
                self._managed_backend.sign_out()
            except Exception as e:
                logger.warning("Managed sign-out failed, local session cleared anyway: %s", e)
            self._purge(_DEMO_KEYS + _BEARER_KEYS)
            prefixes = tuple(self._managed_backend.session_key_prefixes)
            self._purge(key for key in self._store.keys() if key.startswith(prefixes))
            self._purge((STAGING_KEY,))
            self._demo_active = False
            self._demo_email = None
            self._bearer = None
            self._managed = None
            self._resolved = True
            return self._publish()

    def reset_credential(self, email: str) -> None:
        self._managed_backend.reset_credential(email)

    def _on_managed_event(self, event: AuthEvent, identity: Identity | None) -> None:
        with self._lock:
            self._managed_version += 1
            if event == AuthEvent.SIGNED_OUT or identity is None:
                self._managed = None
            else:
                self._managed = ManagedSession(user=identity, email_verified=identity.email_verified)
            if not self._resolved:
                # Initial resolution publishes the combined state
                return
            logger.debug("Managed auth event %s", event.value)
            self._publish()

    def _publish(self) -> Session:
        if self._demo_active:
            session: Session = DemoSession(email=self._demo_email)
        elif self._bearer is not None:
            session = self._bearer
        elif self._managed is not None:
            session = self._managed
        else:
            session = NoSession()

        changed = session != self._session
        self._session = session
        if changed:
            for listener in list(self._listeners):
                try:
                    listener(session)
                except Exception:
                    logger.exception("Session listener failed on %s", session.mode.value)
        return session

    def _purge(self, keys: Iterable[str]) -> None:
        for key in list(keys):
            self._store.remove(key)


def _dump_identity(identity: Identity) -> str:
    return json.dumps(
        {
            "id": identity.id,
            "email": identity.email,
            "roles": list(identity.roles),
        }
    )
