"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting the invitation
service and the operator gate into routes.
"""

import secrets

import bcrypt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from psycopg_pool import ConnectionPool

from accessgate.adapters.repository.postgres import PostgresInvitationRepository
from accessgate.adapters.smtp.console import ConsoleEmailSender
from accessgate.config.settings import Settings, get_settings
from accessgate.domain.invitations import InvitationService

# Module-level singleton - ConsoleEmailSender is stateless
_email_sender = ConsoleEmailSender()

# Compared against when no operator hash is configured, so a rejected
# request costs the same bcrypt work as a checked one.
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10))


def get_pool(request: Request) -> ConnectionPool:
    """
    Get connection pool from app state.

    The pool is created during app lifespan startup and stored in app.state.
    """
    return request.app.state.pool


def get_repository(request: Request) -> PostgresInvitationRepository:
    """Create repository with connection pool from app state."""
    return PostgresInvitationRepository(get_pool(request))


def get_email_sender() -> ConsoleEmailSender:
    """Get console email sender (singleton)."""
    return _email_sender


def get_invitation_service(request: Request) -> InvitationService:
    """
    Create invitation service with injected dependencies.

    Wires the repository, email sender and both credential backends built
    during lifespan startup.
    """
    settings = get_settings()
    return InvitationService(
        repository=get_repository(request),
        email_sender=get_email_sender(),
        managed_backend=request.app.state.managed_backend,
        bearer_backend=request.app.state.bearer_backend,
        app_base_url=settings.app_base_url,
    )


# HTTP BASIC AUTH security scheme for OpenAPI documentation
http_basic = HTTPBasic()


def get_operator(
    credentials: HTTPBasicCredentials = Depends(http_basic),
    settings: Settings = Depends(get_settings),
) -> str:
    """
    Authenticate the operator via HTTP BASIC AUTH.

    Both the email comparison and the bcrypt check always run, and every
    failure returns the same 401.

    Returns:
        Normalized operator email (recorded as reviewed_by)
    """
    email = credentials.username.strip().lower()
    expected_email = settings.operator_email.strip().lower()
    email_ok = secrets.compare_digest(email.encode(), expected_email.encode())

    configured_hash = settings.operator_password_hash
    stored_hash = configured_hash.encode() if configured_hash else _DUMMY_BCRYPT_HASH
    password_ok = bcrypt.checkpw(credentials.password.encode(), stored_hash)

    if not (email_ok and password_ok and configured_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid operator credentials",
            headers={"WWW-Authenticate": "Basic"},
        )
    return email
