"""Repository adapters - Database implementations."""

from .memory import InMemoryInvitationRepository
from .postgres import PostgresInvitationRepository, run_migrations

__all__ = ["InMemoryInvitationRepository", "PostgresInvitationRepository", "run_migrations"]
