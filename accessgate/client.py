"""
Client-side wiring - Builds the SessionAuthority for one client instance.

The server never holds end-user sessions; this is the entry point for a
client process (CLI, desktop shell, test harness) that signs a user in.
"""

import logging

from accessgate.adapters.backends import build_bearer_backend, build_managed_backend
from accessgate.adapters.storage.local import JsonFileStore
from accessgate.config.settings import Settings, get_settings
from accessgate.domain.exceptions import AccessGateError
from accessgate.domain.invitations import Account, InvitationService, SetupPayload
from accessgate.domain.ports import KeyValueStore
from accessgate.domain.session import SessionAuthority

logger = logging.getLogger(__name__)


def create_session_authority(
    settings: Settings | None = None, store: KeyValueStore | None = None
) -> SessionAuthority:
    """
    Build a SessionAuthority over both credential backends.

    Args:
        settings: Defaults to get_settings()
        store: Local key-value store; a JsonFileStore at
            settings.session_store_path when None

    The caller owns the lifecycle: init() before use, dispose() when done.
    """
    settings = settings or get_settings()
    store = store if store is not None else JsonFileStore(settings.session_store_path)
    return SessionAuthority(
        managed_backend=build_managed_backend(settings, store=store),
        bearer_backend=build_bearer_backend(settings),
        store=store,
        demo_master_code=settings.demo_master_code,
    )


def complete_setup(
    service: InvitationService,
    authority: SessionAuthority,
    raw_token: str,
    payload: SetupPayload,
) -> Account:
    """
    Spend a setup token, then sign the new account in to the bearer backend.

    Consumption errors propagate unchanged. A failed bearer login leaves
    the account created and the session as it was; the bearer identity is
    picked up on the next login instead.
    """
    account = service.consume(raw_token, payload)
    try:
        authority.login_bearer(account.email, payload.password)
    except AccessGateError as e:
        logger.warning("Bearer login after setup for %s failed, deferring: %s", account.email, e)
    return account
