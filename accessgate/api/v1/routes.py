"""
API v1 routes.

Operator endpoints (HTTP BASIC AUTH):
- GET  /v1/admin/submissions                 - List waitlist submissions
- POST /v1/admin/submissions/{id}/approve    - Approve and email a setup link
- POST /v1/admin/submissions/{id}/resend     - Rotate and resend the setup link
- POST /v1/admin/submissions/{id}/reject     - Reject a pending submission
- POST /v1/admin/cleanup                     - Unwind a broken registration

Requester endpoints:
- GET  /v1/setup/{token}                     - Validate a setup link
- POST /v1/setup/{token}                     - Consume it and create the account
- POST /v1/onboarding/score                  - Preview onboarding scores

Routes are sync functions: the service does blocking database and HTTP
work, which FastAPI runs in its threadpool.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from accessgate.api.dependencies import get_invitation_service, get_operator
from accessgate.api.models import (
    ApprovalResponse,
    CleanupRequest,
    CleanupResponse,
    ErrorResponse,
    ReviewRequest,
    ScoreRequest,
    ScoreResponse,
    SetupInfoResponse,
    SetupRequest,
    SetupResponse,
    SubmissionResponse,
)
from accessgate.domain.exceptions import (
    AccessGateError,
    AlreadyConsumed,
    AlreadyExists,
    BackendUnavailable,
    InsufficientAnswers,
    InvalidCredential,
    InvalidTransition,
    SubmissionNotFound,
    TokenExpired,
    TokenInvalid,
    Unauthenticated,
)
from accessgate.domain.invitations import InvitationService, SetupPayload
from accessgate.domain.models import SubmissionStatus
from accessgate.domain.onboarding import score_answers

router = APIRouter()

# Most specific first; each kind gets its own detail so clients can tell
# an expired link from a used one.
_ERROR_RESPONSES: list[tuple[type[AccessGateError], int, str | None]] = [
    (TokenInvalid, status.HTTP_404_NOT_FOUND, "Invalid setup link"),
    (TokenExpired, status.HTTP_410_GONE, "Setup link has expired"),
    (AlreadyConsumed, status.HTTP_409_CONFLICT, "Setup link has already been used"),
    (InsufficientAnswers, 422, "At least one answer is required"),
    (SubmissionNotFound, status.HTTP_404_NOT_FOUND, "Submission not found"),
    (InvalidTransition, status.HTTP_409_CONFLICT, None),
    (InvalidCredential, status.HTTP_400_BAD_REQUEST, None),
    (AlreadyExists, status.HTTP_409_CONFLICT, "Account already exists"),
    (Unauthenticated, status.HTTP_401_UNAUTHORIZED, "Not authenticated"),
    (BackendUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE, "Identity backend unavailable"),
]


def to_http_error(error: AccessGateError) -> HTTPException:
    """Map a domain error onto an HTTPException. A None detail uses the error text."""
    for kind, status_code, detail in _ERROR_RESPONSES:
        if isinstance(error, kind):
            return HTTPException(status_code=status_code, detail=detail or str(error))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


_SETUP_ERRORS: dict[int | str, dict] = {
    404: {"model": ErrorResponse, "description": "Unknown or superseded setup link"},
    409: {"model": ErrorResponse, "description": "Setup link already used"},
    410: {"model": ErrorResponse, "description": "Setup link expired"},
}

_OPERATOR_ERRORS: dict[int | str, dict] = {
    401: {"model": ErrorResponse, "description": "Invalid operator credentials"},
    404: {"model": ErrorResponse, "description": "Submission not found"},
    409: {"model": ErrorResponse, "description": "Not allowed in the current status"},
}


@router.get(
    "/admin/submissions",
    response_model=list[SubmissionResponse],
    responses={401: _OPERATOR_ERRORS[401]},
    tags=["admin"],
    summary="List waitlist submissions",
    description="Newest first, optionally filtered by status.",
)
def list_submissions(
    status_filter: SubmissionStatus | None = Query(None, alias="status"),
    operator: str = Depends(get_operator),
    service: InvitationService = Depends(get_invitation_service),
) -> list[SubmissionResponse]:
    return [SubmissionResponse.from_submission(s) for s in service.list_submissions(status_filter)]


@router.post(
    "/admin/submissions/{submission_id}/approve",
    response_model=ApprovalResponse,
    responses=_OPERATOR_ERRORS,
    tags=["admin"],
    summary="Approve a submission",
    description="Mints a setup token valid for 7 days and emails the setup link. "
    "Approving an already approved submission rotates the token.",
)
def approve_submission(
    submission_id: str,
    request_data: ReviewRequest | None = None,
    operator: str = Depends(get_operator),
    service: InvitationService = Depends(get_invitation_service),
) -> ApprovalResponse:
    notes = request_data.notes if request_data is not None else None
    try:
        result = service.approve(submission_id, reviewed_by=operator, notes=notes)
    except AccessGateError as e:
        raise to_http_error(e) from None
    return ApprovalResponse.from_result(result)


@router.post(
    "/admin/submissions/{submission_id}/resend",
    response_model=ApprovalResponse,
    responses=_OPERATOR_ERRORS,
    tags=["admin"],
    summary="Resend the setup link",
    description="Rotates the token of an approved submission and emails it again. "
    "The previous link stops working.",
)
def resend_invitation(
    submission_id: str,
    operator: str = Depends(get_operator),
    service: InvitationService = Depends(get_invitation_service),
) -> ApprovalResponse:
    try:
        result = service.resend(submission_id, reviewed_by=operator)
    except AccessGateError as e:
        raise to_http_error(e) from None
    return ApprovalResponse.from_result(result)


@router.post(
    "/admin/submissions/{submission_id}/reject",
    response_model=SubmissionResponse,
    responses=_OPERATOR_ERRORS,
    tags=["admin"],
    summary="Reject a submission",
)
def reject_submission(
    submission_id: str,
    request_data: ReviewRequest | None = None,
    operator: str = Depends(get_operator),
    service: InvitationService = Depends(get_invitation_service),
) -> SubmissionResponse:
    notes = request_data.notes if request_data is not None else None
    try:
        submission = service.reject(submission_id, notes=notes, reviewed_by=operator)
    except AccessGateError as e:
        raise to_http_error(e) from None
    return SubmissionResponse.from_submission(submission)


@router.post(
    "/admin/cleanup",
    response_model=CleanupResponse,
    responses={401: _OPERATOR_ERRORS[401]},
    tags=["admin"],
    summary="Unwind a broken registration",
    description="Deletes the bearer identity (best-effort) and the approval rows, "
    "and resets the submission to pending.",
)
def cleanup_registration(
    request_data: CleanupRequest,
    operator: str = Depends(get_operator),
    service: InvitationService = Depends(get_invitation_service),
) -> CleanupResponse:
    report = service.cleanup(request_data.email)
    return CleanupResponse(
        email=report.email,
        submission_reset=report.submission_reset,
        bearer_identity_deleted=report.bearer_identity_deleted,
    )


@router.get(
    "/setup/{token}",
    response_model=SetupInfoResponse,
    responses=_SETUP_ERRORS,
    tags=["setup"],
    summary="Validate a setup link",
)
def get_setup(
    token: str,
    service: InvitationService = Depends(get_invitation_service),
) -> SetupInfoResponse:
    try:
        context = service.validate(token)
    except AccessGateError as e:
        raise to_http_error(e) from None
    return SetupInfoResponse.from_context(context)


@router.post(
    "/setup/{token}",
    response_model=SetupResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        **_SETUP_ERRORS,
        400: {"model": ErrorResponse, "description": "Password rejected by identity backend"},
        422: {"description": "Validation error or no onboarding answers"},
        503: {"model": ErrorResponse, "description": "Identity backend unavailable"},
    },
    tags=["setup"],
    summary="Complete account setup",
    description="Spends the setup link and creates the account. A link can be used once.",
)
def complete_setup(
    token: str,
    request_data: SetupRequest,
    service: InvitationService = Depends(get_invitation_service),
) -> SetupResponse:
    answers = (
        [answer.to_domain() for answer in request_data.answers]
        if request_data.answers is not None
        else None
    )
    payload = SetupPayload(
        password=request_data.password,
        machine_name=request_data.machine_name,
        answers=answers,
    )
    try:
        account = service.consume(token, payload)
    except AccessGateError as e:
        raise to_http_error(e) from None
    return SetupResponse(
        message="Account created",
        email=account.email,
        identity_created=account.identity is not None,
        bearer_registered=account.bearer_registered,
        contradiction_tolerance=account.contradiction_tolerance,
        belief_sensitivity=account.belief_sensitivity,
    )


@router.post(
    "/onboarding/score",
    response_model=ScoreResponse,
    responses={422: {"description": "Validation error or no answers"}},
    tags=["setup"],
    summary="Preview onboarding scores",
)
def preview_score(request_data: ScoreRequest) -> ScoreResponse:
    try:
        score = score_answers([answer.to_domain() for answer in request_data.answers])
    except AccessGateError as e:
        raise to_http_error(e) from None
    return ScoreResponse(
        contradiction_tolerance=score.contradiction_tolerance,
        belief_sensitivity=score.belief_sensitivity,
    )
