"""
Adversarial tests for setup-token guessing and operator brute force.

Verifies that an attacker probing setup links or operator credentials:
- Cannot reach a live approval with guessed or near-miss tokens
- Learns nothing from the response beyond "invalid"
"""

import string
from base64 import b64encode
from collections.abc import Generator
from unittest.mock import MagicMock

import bcrypt
import pytest
from fastapi.testclient import TestClient

from accessgate.api.dependencies import get_invitation_service
from accessgate.api.main import app
from accessgate.config.settings import Settings, get_settings
from accessgate.domain.exceptions import TokenInvalid
from accessgate.domain.invitations import InvitationService
from accessgate.domain.models import WaitlistSubmission
from accessgate.domain.tokens import generate_token
from fakes import last_sent_token

pytestmark = pytest.mark.adversarial

URL_SAFE = set(string.ascii_letters + string.digits + "-_")


@pytest.fixture
def client(service: InvitationService) -> Generator[TestClient, None, None]:
    password_hash = bcrypt.hashpw(b"operator-secret", bcrypt.gensalt(4)).decode()
    settings = Settings(operator_email="operator@example.com", operator_password_hash=password_hash)
    app.dependency_overrides[get_invitation_service] = lambda: service
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestTokenEntropy:
    """Generated tokens are unguessable."""

    def test_tokens_unique_and_url_safe(self) -> None:
        tokens = {generate_token() for _ in range(1000)}

        assert len(tokens) == 1000
        for token in tokens:
            assert len(token) >= 43
            assert set(token) <= URL_SAFE


class TestTokenGuessing:
    """Guessed tokens never resolve."""

    def test_random_guesses_rejected(
        self, service: InvitationService, submission: WaitlistSubmission
    ) -> None:
        service.approve(submission.id)

        for _ in range(200):
            with pytest.raises(TokenInvalid):
                service.validate(generate_token())

    def test_near_miss_rejected(
        self,
        service: InvitationService,
        submission: WaitlistSubmission,
        email_sender: MagicMock,
    ) -> None:
        """Flipping one character, truncating or padding the real token fails."""
        service.approve(submission.id)
        token = last_sent_token(email_sender)
        flipped = ("A" if token[0] != "A" else "B") + token[1:]

        for candidate in (flipped, token[:-1], token + "x", token.upper(), f" {token} "):
            with pytest.raises(TokenInvalid):
                service.validate(candidate)

    def test_responses_indistinguishable(
        self, client: TestClient, service: InvitationService, submission: WaitlistSubmission
    ) -> None:
        """Unknown and malformed tokens get the same status and body."""
        service.approve(submission.id)

        responses = [
            client.get(f"/v1/setup/{candidate}")
            for candidate in (generate_token(), "x", "%20", "' OR 1=1 --")
        ]

        assert {r.status_code for r in responses} == {404}
        assert {r.text for r in responses} == {'{"detail":"Invalid setup link"}'}


class TestOperatorBruteForce:
    """Operator credential guessing."""

    @pytest.mark.parametrize(
        ("email", "password"),
        [
            ("operator@example.com", "guess1"),
            ("operator@example.com", ""),
            ("admin@example.com", "operator-secret"),
            ("", ""),
        ],
    )
    def test_wrong_credentials_uniform(
        self, client: TestClient, email: str, password: str
    ) -> None:
        encoded = b64encode(f"{email}:{password}".encode()).decode()

        response = client.get("/v1/admin/submissions", headers={"Authorization": f"Basic {encoded}"})

        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid operator credentials"}
