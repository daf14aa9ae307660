"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
"""

import re
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from accessgate.domain.invitations import ApprovalResult, SetupContext
from accessgate.domain.models import BeliefTag, SubmissionStatus, WaitlistSubmission
from accessgate.domain.onboarding import OnboardingAnswer

_UPPERCASE = re.compile(r"[A-Z]")
_LOWERCASE = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")


class SubmissionResponse(BaseModel):
    """A waitlist submission as shown to the operator."""

    id: str
    first_name: str
    last_name: str
    email: str
    status: SubmissionStatus
    admin_notes: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_submission(cls, submission: WaitlistSubmission) -> "SubmissionResponse":
        return cls(
            id=submission.id,
            first_name=submission.first_name,
            last_name=submission.last_name,
            email=submission.email,
            status=submission.status,
            admin_notes=submission.admin_notes,
            reviewed_by=submission.reviewed_by,
            reviewed_at=submission.reviewed_at,
            created_at=submission.created_at,
        )


class ReviewRequest(BaseModel):
    """Optional operator notes attached to an approval or rejection."""

    notes: str | None = Field(None, max_length=2000)


class ApprovalResponse(BaseModel):
    """
    Response model for approve/resend.

    The raw setup token is never returned; it only travels in the email.
    """

    submission_id: str
    email: str
    expires_at: datetime
    email_sent: bool
    email_error: str | None = None

    @classmethod
    def from_result(cls, result: ApprovalResult) -> "ApprovalResponse":
        return cls(
            submission_id=result.approved_user.waitlist_submission_id,
            email=result.email,
            expires_at=result.approved_user.expires_at,
            email_sent=result.email_sent,
            email_error=result.email_error,
        )


class CleanupRequest(BaseModel):
    email: EmailStr


class CleanupResponse(BaseModel):
    email: str
    submission_reset: bool
    bearer_identity_deleted: bool


class SetupInfoResponse(BaseModel):
    """What the setup page shows for a valid link."""

    email: str
    first_name: str
    last_name: str
    expires_at: datetime

    @classmethod
    def from_context(cls, context: SetupContext) -> "SetupInfoResponse":
        return cls(
            email=context.submission.email,
            first_name=context.submission.first_name,
            last_name=context.submission.last_name,
            expires_at=context.approved_user.expires_at,
        )


class AnswerModel(BaseModel):
    """One onboarding answer: a score in [0, 1] plus an optional tag."""

    score: float = Field(..., ge=0.0, le=1.0)
    belief_tag: BeliefTag | None = None

    def to_domain(self) -> OnboardingAnswer:
        return OnboardingAnswer(score=self.score, belief_tag=self.belief_tag)


class SetupRequest(BaseModel):
    """Request model for completing account setup with a setup link."""

    password: str = Field(..., min_length=8, description="Password (min 8 characters)")
    confirm_password: str
    machine_name: str = Field("Assistant", min_length=1, max_length=100)
    answers: list[AnswerModel] | None = None

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        if not (_UPPERCASE.search(value) and _LOWERCASE.search(value) and _DIGIT.search(value)):
            raise ValueError(
                "password must contain an uppercase letter, a lowercase letter and a digit"
            )
        return value

    @model_validator(mode="after")
    def passwords_match(self) -> "SetupRequest":
        if self.password != self.confirm_password:
            raise ValueError("passwords do not match")
        return self


class SetupResponse(BaseModel):
    """Response model for a successful setup."""

    message: str
    email: str
    identity_created: bool
    bearer_registered: bool
    contradiction_tolerance: float
    belief_sensitivity: BeliefTag | None = None


class ScoreRequest(BaseModel):
    answers: list[AnswerModel]


class ScoreResponse(BaseModel):
    contradiction_tolerance: float
    belief_sensitivity: BeliefTag | None = None


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
