"""
Unit tests for domain ports and exceptions.

Tests verify:
- Port interfaces are properly defined
- Exceptions are properly structured
- Domain purity (zero framework imports)
"""

import json
import subprocess
from enum import Enum

import pytest

from accessgate.adapters.backends.bearer import BearerApiBackend
from accessgate.adapters.backends.memory import InMemoryIdentityBackend
from accessgate.adapters.repository.memory import InMemoryInvitationRepository
from accessgate.adapters.repository.postgres import PostgresInvitationRepository
from accessgate.domain.exceptions import (
    AccessGateError,
    AlreadyConsumed,
    AlreadyExists,
    BackendUnavailable,
    InsufficientAnswers,
    InvalidCredential,
    InvalidTransition,
    NotFound,
    SubmissionNotFound,
    TokenExpired,
    TokenInvalid,
    Unauthenticated,
)
from accessgate.domain.models import SubmissionStatus
from accessgate.domain.ports import (
    AuthEvent,
    BearerIdentityBackend,
    InvitationRepository,
    ManagedIdentityBackend,
)


def protocol_methods(protocol: type) -> set[str]:
    return {
        name
        for name, value in vars(protocol).items()
        if callable(value) and not name.startswith("_")
    }


class TestSubmissionStatusEnum:
    """Tests for SubmissionStatus enum."""

    def test_is_str_enum(self) -> None:
        """SubmissionStatus uses str mixin for JSON serialization."""
        assert issubclass(SubmissionStatus, Enum)
        assert issubclass(SubmissionStatus, str)
        assert json.dumps(SubmissionStatus.PENDING) == '"pending"'

    def test_values(self) -> None:
        assert {s.value for s in SubmissionStatus} == {
            "pending",
            "approved",
            "rejected",
            "registered",
        }


class TestAuthEventEnum:
    """Tests for AuthEvent enum."""

    def test_wire_names(self) -> None:
        """Event values match the names the managed backend pushes."""
        assert AuthEvent("SIGNED_IN") is AuthEvent.SIGNED_IN
        assert AuthEvent("SIGNED_OUT") is AuthEvent.SIGNED_OUT

    def test_unknown_event(self) -> None:
        with pytest.raises(ValueError):
            AuthEvent("MFA_CHALLENGE_VERIFIED")


class TestAdaptersSatisfyPorts:
    """Adapters provide every method their port declares."""

    @pytest.mark.parametrize(
        "adapter", [InMemoryInvitationRepository, PostgresInvitationRepository]
    )
    def test_repositories(self, adapter: type) -> None:
        missing = protocol_methods(InvitationRepository) - set(dir(adapter))
        assert not missing, f"{adapter.__name__} lacks {missing}"

    def test_memory_backend_is_managed(self) -> None:
        missing = protocol_methods(ManagedIdentityBackend) - set(dir(InMemoryIdentityBackend))
        assert not missing
        assert InMemoryIdentityBackend.session_key_prefixes

    def test_bearer_backend(self) -> None:
        missing = protocol_methods(BearerIdentityBackend) - set(dir(BearerApiBackend))
        assert not missing


class TestDomainExceptions:
    """Tests for domain exceptions."""

    @pytest.mark.parametrize(
        "error",
        [
            TokenInvalid,
            TokenExpired,
            AlreadyConsumed,
            InvalidCredential,
            AlreadyExists,
            Unauthenticated,
            InsufficientAnswers,
            BackendUnavailable,
            NotFound,
            SubmissionNotFound,
            InvalidTransition,
        ],
    )
    def test_inherits_base(self, error: type[Exception]) -> None:
        """Every domain error can be caught as AccessGateError."""
        assert issubclass(error, AccessGateError)

    def test_token_failures_are_distinct(self) -> None:
        """Expired, consumed and unknown tokens are not subclasses of each other."""
        kinds = [TokenInvalid, TokenExpired, AlreadyConsumed]
        for kind in kinds:
            for other in kinds:
                if kind is not other:
                    assert not issubclass(kind, other)

    def test_base_is_exception(self) -> None:
        assert issubclass(AccessGateError, Exception)


class TestDomainPurity:
    """Tests for domain purity - zero framework imports."""

    @pytest.mark.parametrize(
        "pattern",
        [
            "from fastapi",
            "import fastapi",
            "from pydantic",
            "import pydantic",
            "from psycopg",
            "import psycopg",
            "import httpx",
            "from supabase",
            "import bcrypt",
        ],
    )
    def test_no_framework_imports_in_domain(self, pattern: str) -> None:
        result = subprocess.run(
            ["grep", "-r", pattern, "accessgate/domain/"],
            capture_output=True,
            text=True,
        )
        assert result.returncode != 0, f"'{pattern}' found: {result.stdout}"
