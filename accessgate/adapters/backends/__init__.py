"""Credential backend adapters - Managed (Supabase/in-memory) and bearer API."""

import logging

from accessgate.config.settings import Settings
from accessgate.domain.ports import KeyValueStore, ManagedIdentityBackend

from .bearer import BearerApiBackend
from .memory import InMemoryIdentityBackend
from .supabase import SupabaseIdentityBackend, create_supabase_backend

logger = logging.getLogger(__name__)


def build_managed_backend(
    settings: Settings, store: KeyValueStore | None = None
) -> ManagedIdentityBackend:
    """Supabase when configured, otherwise the in-process backend."""
    if settings.supabase_url and settings.supabase_key:
        logger.info("Using Supabase managed identity backend")
        return create_supabase_backend(
            settings.supabase_url, settings.supabase_key, settings.app_base_url, store=store
        )
    logger.warning("SUPABASE_URL/SUPABASE_KEY not set, using in-memory identity backend")
    return InMemoryIdentityBackend(store=store, bcrypt_cost=settings.bcrypt_cost)


def build_bearer_backend(settings: Settings) -> BearerApiBackend:
    return BearerApiBackend(
        base_url=settings.bearer_api_url,
        timeout=settings.bearer_timeout_seconds,
        admin_token=settings.bearer_admin_token,
    )


__all__ = [
    "BearerApiBackend",
    "InMemoryIdentityBackend",
    "SupabaseIdentityBackend",
    "build_bearer_backend",
    "build_managed_backend",
    "create_supabase_backend",
]
