"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- A controllable clock
- In-memory repository, identity backend and key-value store
- A wired InvitationService with a mocked email sender and bearer backend
- A PostgreSQL pool that skips the test when the database is unreachable
"""

from collections.abc import Generator
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from accessgate.adapters.backends.bearer import BearerApiBackend
from accessgate.adapters.backends.memory import InMemoryIdentityBackend
from accessgate.adapters.repository.memory import InMemoryInvitationRepository
from accessgate.adapters.repository.postgres import run_migrations
from accessgate.adapters.smtp.console import ConsoleEmailSender
from accessgate.adapters.storage.local import MemoryStore
from accessgate.config.settings import get_settings
from accessgate.domain.invitations import InvitationService
from accessgate.domain.models import Identity, WaitlistSubmission
from fakes import APP_BASE_URL, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def repository() -> InMemoryInvitationRepository:
    return InMemoryInvitationRepository()


@pytest.fixture
def email_sender() -> MagicMock:
    return MagicMock(spec=ConsoleEmailSender)


@pytest.fixture
def managed_backend() -> InMemoryIdentityBackend:
    # Minimum bcrypt cost keeps the suite fast
    return InMemoryIdentityBackend(bcrypt_cost=4)


@pytest.fixture
def bearer_backend() -> MagicMock:
    backend = MagicMock(spec=BearerApiBackend)
    backend.register.return_value = Identity(id="42", email="bearer@example.com")
    backend.find_identity.return_value = None
    return backend


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def service(
    repository: InMemoryInvitationRepository,
    email_sender: MagicMock,
    managed_backend: InMemoryIdentityBackend,
    bearer_backend: MagicMock,
    clock: FakeClock,
) -> InvitationService:
    return InvitationService(
        repository=repository,
        email_sender=email_sender,
        managed_backend=managed_backend,
        bearer_backend=bearer_backend,
        app_base_url=APP_BASE_URL,
        clock=clock,
    )


@pytest.fixture
def submission(repository: InMemoryInvitationRepository) -> WaitlistSubmission:
    return repository.add_submission("Ada", "Lovelace", "Ada@Example.com")


@pytest.fixture(scope="session")
def postgres_pool() -> Generator[ConnectionPool, None, None]:
    """Connection pool against Settings.database_url, migrated once per session."""
    settings = get_settings()
    pool = ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=10, open=True)
    try:
        pool.wait(timeout=5.0)
    except PoolTimeout:
        pool.close()
        pytest.skip(f"PostgreSQL not reachable at {settings.database_url}")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture
def clean_postgres(postgres_pool: ConnectionPool) -> ConnectionPool:
    """Empty the invitation tables before a test (approvals and links cascade)."""
    with postgres_pool.connection() as conn:
        conn.execute("DELETE FROM waitlist_submissions")
        conn.commit()
    return postgres_pool

