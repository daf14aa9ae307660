"""
Unit tests for API v1 routes.

Tests endpoint responses with a mocked InvitationService and the
operator gate overridden.
"""

from collections.abc import Generator
from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from accessgate.api.dependencies import get_invitation_service, get_operator
from accessgate.api.v1.routes import router
from accessgate.domain.exceptions import (
    AlreadyConsumed,
    AlreadyExists,
    BackendUnavailable,
    InsufficientAnswers,
    InvalidCredential,
    InvalidTransition,
    SubmissionNotFound,
    TokenExpired,
    TokenInvalid,
)
from accessgate.domain.invitations import (
    Account,
    ApprovalResult,
    CleanupReport,
    InvitationService,
    SetupContext,
    SetupPayload,
)
from accessgate.domain.models import (
    ApprovedUser,
    BeliefTag,
    Identity,
    SubmissionStatus,
    WaitlistSubmission,
)
from accessgate.domain.onboarding import OnboardingAnswer

OPERATOR = "operator@example.com"
EXPIRES_AT = datetime(2025, 3, 8, 12, 0, tzinfo=UTC)

SUBMISSION = WaitlistSubmission(
    id="sub-1",
    first_name="Ada",
    last_name="Lovelace",
    email="ada@example.com",
    status=SubmissionStatus.APPROVED,
)
APPROVED_USER = ApprovedUser(
    id="au-1",
    waitlist_submission_id="sub-1",
    setup_token="raw-token",
    expires_at=EXPIRES_AT,
)
SETUP_BODY = {"password": "Secure123", "confirm_password": "Secure123"}


@pytest.fixture
def mock_service() -> MagicMock:
    return MagicMock(spec=InvitationService)


@pytest.fixture
def app(mock_service: MagicMock) -> Generator[FastAPI, None, None]:
    """Create test FastAPI application with overridden dependencies."""
    test_app = FastAPI()
    test_app.include_router(router, prefix="/v1")
    test_app.dependency_overrides[get_invitation_service] = lambda: mock_service
    test_app.dependency_overrides[get_operator] = lambda: OPERATOR
    yield test_app
    test_app.dependency_overrides.clear()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


class TestListSubmissions:
    """Tests for GET /v1/admin/submissions."""

    def test_lists_all(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.list_submissions.return_value = [SUBMISSION]

        response = client.get("/v1/admin/submissions")

        assert response.status_code == 200
        assert response.json()[0]["email"] == "ada@example.com"
        assert response.json()[0]["status"] == "approved"
        mock_service.list_submissions.assert_called_once_with(None)

    def test_status_filter(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.list_submissions.return_value = []

        response = client.get("/v1/admin/submissions", params={"status": "pending"})

        assert response.status_code == 200
        mock_service.list_submissions.assert_called_once_with(SubmissionStatus.PENDING)

    def test_unknown_status_rejected(self, client: TestClient) -> None:
        response = client.get("/v1/admin/submissions", params={"status": "archived"})
        assert response.status_code == 422


class TestApprove:
    """Tests for POST /v1/admin/submissions/{id}/approve."""

    def test_approve_returns_result_without_token(
        self, client: TestClient, mock_service: MagicMock
    ) -> None:
        mock_service.approve.return_value = ApprovalResult(
            approved_user=APPROVED_USER, email="ada@example.com", email_sent=True
        )

        response = client.post("/v1/admin/submissions/sub-1/approve", json={"notes": "welcome"})

        assert response.status_code == 200
        body = response.json()
        assert body["submission_id"] == "sub-1"
        assert body["email_sent"] is True
        assert "raw-token" not in response.text
        mock_service.approve.assert_called_once_with(
            "sub-1", reviewed_by=OPERATOR, notes="welcome"
        )

    def test_approve_without_body(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.approve.return_value = ApprovalResult(
            approved_user=APPROVED_USER,
            email="ada@example.com",
            email_sent=False,
            email_error="smtp down",
        )

        response = client.post("/v1/admin/submissions/sub-1/approve")

        assert response.status_code == 200
        assert response.json()["email_error"] == "smtp down"
        mock_service.approve.assert_called_once_with("sub-1", reviewed_by=OPERATOR, notes=None)

    def test_unknown_submission_404(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.approve.side_effect = SubmissionNotFound("sub-x")

        response = client.post("/v1/admin/submissions/sub-x/approve")

        assert response.status_code == 404
        assert response.json() == {"detail": "Submission not found"}

    def test_invalid_transition_409(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.approve.side_effect = InvalidTransition("cannot approve in status rejected")

        response = client.post("/v1/admin/submissions/sub-1/approve")

        assert response.status_code == 409
        assert "rejected" in response.json()["detail"]


class TestResendAndReject:
    """Tests for the resend and reject endpoints."""

    def test_resend(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.resend.return_value = ApprovalResult(
            approved_user=APPROVED_USER, email="ada@example.com", email_sent=True
        )

        response = client.post("/v1/admin/submissions/sub-1/resend")

        assert response.status_code == 200
        mock_service.resend.assert_called_once_with("sub-1", reviewed_by=OPERATOR)

    def test_reject(self, client: TestClient, mock_service: MagicMock) -> None:
        rejected = WaitlistSubmission(
            id="sub-1",
            first_name="Ada",
            last_name="Lovelace",
            email="ada@example.com",
            status=SubmissionStatus.REJECTED,
            admin_notes="not yet",
            reviewed_by=OPERATOR,
        )
        mock_service.reject.return_value = rejected

        response = client.post("/v1/admin/submissions/sub-1/reject", json={"notes": "not yet"})

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        mock_service.reject.assert_called_once_with("sub-1", notes="not yet", reviewed_by=OPERATOR)


class TestCleanup:
    """Tests for POST /v1/admin/cleanup."""

    def test_cleanup_report(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.cleanup.return_value = CleanupReport(
            email="ada@example.com", submission_reset=True, bearer_identity_deleted=False
        )

        response = client.post("/v1/admin/cleanup", json={"email": "ada@example.com"})

        assert response.status_code == 200
        assert response.json() == {
            "email": "ada@example.com",
            "submission_reset": True,
            "bearer_identity_deleted": False,
        }

    def test_cleanup_invalid_email(self, client: TestClient) -> None:
        response = client.post("/v1/admin/cleanup", json={"email": "nope"})
        assert response.status_code == 422


class TestGetSetup:
    """Tests for GET /v1/setup/{token}."""

    def test_valid_token(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.validate.return_value = SetupContext(
            approved_user=APPROVED_USER, submission=SUBMISSION
        )

        response = client.get("/v1/setup/raw-token")

        assert response.status_code == 200
        assert response.json()["first_name"] == "Ada"
        mock_service.validate.assert_called_once_with("raw-token")

    @pytest.mark.parametrize(
        ("error", "status_code", "detail"),
        [
            (TokenInvalid("x"), 404, "Invalid setup link"),
            (TokenExpired("x"), 410, "Setup link has expired"),
            (AlreadyConsumed("x"), 409, "Setup link has already been used"),
        ],
    )
    def test_token_errors(
        self,
        client: TestClient,
        mock_service: MagicMock,
        error: Exception,
        status_code: int,
        detail: str,
    ) -> None:
        """Each token failure kind has its own status and message."""
        mock_service.validate.side_effect = error

        response = client.get("/v1/setup/some-token")

        assert response.status_code == status_code
        assert response.json() == {"detail": detail}


class TestCompleteSetup:
    """Tests for POST /v1/setup/{token}."""

    def test_success_returns_201(self, client: TestClient, mock_service: MagicMock) -> None:
        mock_service.consume.return_value = Account(
            email="ada@example.com",
            identity=Identity(id="u-1", email="ada@example.com"),
            bearer_registered=True,
            contradiction_tolerance=0.75,
            belief_sensitivity=BeliefTag.HIGH,
        )

        response = client.post(
            "/v1/setup/raw-token",
            json={
                **SETUP_BODY,
                "machine_name": "Jarvis",
                "answers": [{"score": 0.5}, {"score": 1.0, "belief_tag": "high"}],
            },
        )

        assert response.status_code == 201
        assert response.json() == {
            "message": "Account created",
            "email": "ada@example.com",
            "identity_created": True,
            "bearer_registered": True,
            "contradiction_tolerance": 0.75,
            "belief_sensitivity": "high",
        }
        mock_service.consume.assert_called_once_with(
            "raw-token",
            SetupPayload(
                password="Secure123",
                machine_name="Jarvis",
                answers=[
                    OnboardingAnswer(score=0.5),
                    OnboardingAnswer(score=1.0, belief_tag=BeliefTag.HIGH),
                ],
            ),
        )

    def test_existing_identity_reported(
        self, client: TestClient, mock_service: MagicMock
    ) -> None:
        mock_service.consume.return_value = Account(
            email="ada@example.com",
            identity=None,
            bearer_registered=False,
            contradiction_tolerance=0.0,
            belief_sensitivity=None,
        )

        response = client.post("/v1/setup/raw-token", json=SETUP_BODY)

        assert response.status_code == 201
        assert response.json()["identity_created"] is False

    def test_password_mismatch_never_reaches_service(
        self, client: TestClient, mock_service: MagicMock
    ) -> None:
        response = client.post(
            "/v1/setup/raw-token",
            json={"password": "Secure123", "confirm_password": "Other1234"},
        )

        assert response.status_code == 422
        mock_service.consume.assert_not_called()

    @pytest.mark.parametrize(
        ("error", "status_code"),
        [
            (TokenInvalid("x"), 404),
            (TokenExpired("x"), 410),
            (AlreadyConsumed("x"), 409),
            (InvalidCredential("Password should be longer"), 400),
            (AlreadyExists("x"), 409),
            (InsufficientAnswers("x"), 422),
            (BackendUnavailable("x"), 503),
        ],
    )
    def test_error_mapping(
        self,
        client: TestClient,
        mock_service: MagicMock,
        error: Exception,
        status_code: int,
    ) -> None:
        mock_service.consume.side_effect = error

        response = client.post("/v1/setup/raw-token", json=SETUP_BODY)

        assert response.status_code == status_code


class TestPreviewScore:
    """Tests for POST /v1/onboarding/score."""

    def test_score(self, client: TestClient) -> None:
        response = client.post(
            "/v1/onboarding/score",
            json={"answers": [{"score": 0.2}, {"score": 0.4, "belief_tag": "low"}]},
        )

        assert response.status_code == 200
        assert response.json() == {"contradiction_tolerance": 0.3, "belief_sensitivity": "low"}

    def test_empty_answers_422(self, client: TestClient) -> None:
        response = client.post("/v1/onboarding/score", json={"answers": []})

        assert response.status_code == 422
        assert response.json() == {"detail": "At least one answer is required"}
