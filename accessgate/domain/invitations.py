"""
Invitation lifecycle domain service - Waitlist to account state machine.

Submission State Machine
========================

States:
- PENDING: Waitlist request awaiting operator review
- APPROVED: Setup token minted and emailed, account not yet created
- REJECTED: Operator declined the request
- REGISTERED: Setup token consumed, identity created

Valid Transitions:
    PENDING  -> APPROVED    (approve: token minted, expires in 7 days)
    APPROVED -> APPROVED    (approve/resend: token rotated, expiry reset)
    PENDING  -> REJECTED    (reject)
    APPROVED -> REGISTERED  (consume)
    any      -> PENDING     (cleanup: compensating unwind)

Token Consumption
=================

The account_created flag is the "invitation spent" signal. It flips through
a single conditional write in the repository (compare-and-swap), so two
concurrent consumptions of one token cannot both succeed. Once flipped it
never flips back; if identity creation fails afterwards the operator
unwinds with cleanup() rather than re-consuming the token.

Backend Consistency
===================

The managed backend is the source of truth and must succeed (AlreadyExists
is tolerated). The bearer backend is best-effort: its failures are logged
and the bearer identity is created lazily on first login.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from .exceptions import (
    AccessGateError,
    AlreadyConsumed,
    AlreadyExists,
    InvalidCredential,
    InvalidTransition,
    SubmissionNotFound,
    TokenExpired,
    TokenInvalid,
)
from .models import (
    ApprovedUser,
    BeliefTag,
    EmailKind,
    Identity,
    Profile,
    SubmissionStatus,
    WaitlistSubmission,
)
from .onboarding import OnboardingAnswer, OnboardingScore, score_answers
from .ports import (
    BearerIdentityBackend,
    CredentialBackend,
    EmailSender,
    InvitationRepository,
)
from .tokens import SETUP_TOKEN_TTL_DAYS, generate_token, hash_token, token_matches

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class ApprovalResult:
    """Outcome of approve/resend. The approval stands even if the email failed."""

    approved_user: ApprovedUser
    email: str
    email_sent: bool
    email_error: str | None = None


@dataclass(frozen=True)
class SetupContext:
    """A validated setup token together with the submission it belongs to."""

    approved_user: ApprovedUser
    submission: WaitlistSubmission


@dataclass(frozen=True)
class SetupPayload:
    """Requester input for completing registration."""

    password: str
    machine_name: str = "Assistant"
    answers: Sequence[OnboardingAnswer] | None = None


@dataclass(frozen=True)
class Account:
    """Result of a successful token consumption."""

    email: str
    identity: Identity | None  # None when the managed identity already existed
    bearer_registered: bool
    contradiction_tolerance: float
    belief_sensitivity: BeliefTag | None


@dataclass(frozen=True)
class CleanupReport:
    email: str
    submission_reset: bool
    bearer_identity_deleted: bool


@dataclass
class InvitationService:
    """
    Domain service for the invitation lifecycle.

    Orchestrates approval, token validation and consumption, rejection and
    cleanup across the repository, the email sender and both credential
    backends.
    """

    repository: InvitationRepository
    email_sender: EmailSender
    managed_backend: CredentialBackend
    bearer_backend: BearerIdentityBackend
    app_base_url: str
    clock: Callable[[], datetime] = field(default=_utcnow)

    def approve(
        self, submission_id: str, reviewed_by: str | None = None, notes: str | None = None
    ) -> ApprovalResult:
        """
        Approve a submission and email a fresh setup link.

        Re-approving an APPROVED submission rotates its token on the existing
        row; the previous token stops resolving immediately.

        Raises:
            SubmissionNotFound: Unknown submission id
            InvalidTransition: Submission is REJECTED or REGISTERED
        """
        submission = self._get_submission(submission_id)
        if submission.status not in (SubmissionStatus.PENDING, SubmissionStatus.APPROVED):
            raise InvalidTransition(
                f"cannot approve submission {submission_id} in status {submission.status.value}"
            )
        return self._issue(submission, reviewed_by, notes)

    def resend(self, submission_id: str, reviewed_by: str | None = None) -> ApprovalResult:
        """
        Rotate the token of an APPROVED submission and send it again.

        Raises:
            SubmissionNotFound: Unknown submission id
            InvalidTransition: Submission is not APPROVED
        """
        submission = self._get_submission(submission_id)
        if submission.status != SubmissionStatus.APPROVED:
            raise InvalidTransition(
                f"cannot resend for submission {submission_id} in status {submission.status.value}"
            )
        return self._issue(submission, reviewed_by, submission.admin_notes)

    def validate(self, raw_token: str) -> SetupContext:
        """
        Check that a raw setup token can be consumed.

        Expiry is checked before consumption, so an expired token reports
        TokenExpired whether or not it was used.

        Raises:
            TokenInvalid: Token unknown, superseded, or its submission is gone
            TokenExpired: now >= expires_at
            AlreadyConsumed: Account already created with this token

        The approval row is found by raw token; the unused magic link must
        hold the same token's hash, or the token is treated as superseded.
        """
        if not raw_token or not raw_token.strip():
            raise TokenInvalid("missing setup token")

        approved_user = self.repository.find_approved_user_by_token(raw_token)
        if approved_user is None:
            raise TokenInvalid("unknown setup token")
        if approved_user.is_expired(self.clock()):
            raise TokenExpired("setup token has expired")
        if approved_user.account_created:
            raise AlreadyConsumed("setup token has already been used")
        links = self.repository.list_magic_links(approved_user.id)
        if not any(not link.used and token_matches(raw_token, link.token_hash) for link in links):
            # A concurrent consumption may have spent the link since the first read
            current = self.repository.get_approved_user(approved_user.id)
            if current is not None and current.account_created:
                raise AlreadyConsumed("setup token has already been used")
            raise TokenInvalid("setup token has no live magic link")

        submission = self.repository.get_submission(approved_user.waitlist_submission_id)
        if submission is None:
            raise TokenInvalid("setup token has no waitlist submission")
        return SetupContext(approved_user=approved_user, submission=submission)

    def consume(self, raw_token: str, payload: SetupPayload) -> Account:
        """
        Spend a setup token and create the account.

        Payload checks and scoring run before the flag flip, so a bad
        payload never burns the invitation.

        Raises:
            TokenInvalid, TokenExpired, AlreadyConsumed: Token not consumable
            InvalidCredential: Empty password, or managed backend rejected it
            InsufficientAnswers: answers given but empty
            BackendUnavailable: Managed backend unreachable after the flip
        """
        context = self.validate(raw_token)
        if not payload.password:
            raise InvalidCredential("password is required")

        score = (
            score_answers(payload.answers)
            if payload.answers is not None
            else OnboardingScore(contradiction_tolerance=0.0, belief_sensitivity=None)
        )
        submission = context.submission
        approved_user = context.approved_user

        now = self.clock()
        if not self.repository.mark_account_created(approved_user.id, now):
            current = self.repository.get_approved_user(approved_user.id)
            if current is not None and not current.account_created and current.is_expired(now):
                raise TokenExpired("setup token expired during consumption")
            logger.info("Setup token for %s lost consumption race", submission.email)
            raise AlreadyConsumed("setup token has already been used")

        logger.info("Setup token consumed for %s", submission.email)

        profile = Profile(
            email=submission.email,
            first_name=submission.first_name,
            last_name=submission.last_name,
            machine_name=payload.machine_name,
            contradiction_tolerance=score.contradiction_tolerance,
            belief_sensitivity=score.belief_sensitivity,
        )

        identity: Identity | None
        try:
            identity = self.managed_backend.register(profile, payload.password)
        except AlreadyExists:
            logger.warning("Managed identity for %s already exists, continuing", submission.email)
            identity = None
        except AccessGateError:
            logger.error(
                "Invitation for %s is spent but managed identity creation failed; "
                "operator cleanup required",
                submission.email,
            )
            raise

        bearer_registered = self._register_bearer(profile, payload.password)

        self.repository.mark_submission_registered(submission.id)
        self.repository.mark_magic_link_used(approved_user.id, now)

        return Account(
            email=submission.email,
            identity=identity,
            bearer_registered=bearer_registered,
            contradiction_tolerance=score.contradiction_tolerance,
            belief_sensitivity=score.belief_sensitivity,
        )

    def reject(
        self, submission_id: str, notes: str | None = None, reviewed_by: str | None = None
    ) -> WaitlistSubmission:
        """
        Reject a PENDING submission. Rejecting twice is a no-op.

        Raises:
            SubmissionNotFound: Unknown submission id
            InvalidTransition: Submission is APPROVED or REGISTERED
        """
        submission = self._get_submission(submission_id)
        if not self.repository.reject_submission(submission_id, notes, reviewed_by, self.clock()):
            raise InvalidTransition(
                f"cannot reject submission {submission_id} in status {submission.status.value}"
            )
        logger.info("Submission %s rejected by %s", submission_id, reviewed_by)
        return self._get_submission(submission_id)

    def cleanup(self, email: str) -> CleanupReport:
        """
        Unwind a broken registration for an email.

        Deletes the bearer identity (best-effort), then deletes approval and
        magic-link rows and resets the submission to PENDING. Bearer backend
        failures are logged and never raised.
        """
        normalized_email = self._normalize_email(email)

        bearer_deleted = False
        try:
            identity = self.bearer_backend.find_identity(normalized_email)
            if identity is not None and identity.id is not None:
                self.bearer_backend.delete_identity(identity.id)
                bearer_deleted = True
                logger.info("Deleted bearer identity %s for %s", identity.id, normalized_email)
            else:
                logger.info("No bearer identity found for %s", normalized_email)
        except AccessGateError as e:
            logger.warning("Bearer identity cleanup failed for %s: %s", normalized_email, e)

        submission = self.repository.reset_submission(normalized_email)
        if submission is None:
            logger.info("No waitlist submission for %s to reset", normalized_email)
        else:
            logger.info("Submission %s reset to pending", submission.id)

        return CleanupReport(
            email=normalized_email,
            submission_reset=submission is not None,
            bearer_identity_deleted=bearer_deleted,
        )

    def list_submissions(
        self, status: SubmissionStatus | None = None
    ) -> list[WaitlistSubmission]:
        return self.repository.list_submissions(status)

    def setup_url(self, raw_token: str) -> str:
        return f"{self.app_base_url.rstrip('/')}/setup?token={raw_token}"

    def _issue(
        self, submission: WaitlistSubmission, reviewed_by: str | None, notes: str | None
    ) -> ApprovalResult:
        raw_token = generate_token()
        now = self.clock()
        expires_at = now + timedelta(days=SETUP_TOKEN_TTL_DAYS)

        approved_user = self.repository.save_approval(
            submission_id=submission.id,
            setup_token=raw_token,
            token_hash=hash_token(raw_token),
            expires_at=expires_at,
            reviewed_by=reviewed_by,
            notes=notes,
            now=now,
        )
        if approved_user is None:
            raise InvalidTransition(f"submission {submission.id} changed status during approval")

        logger.info("Submission %s approved, setup token expires %s", submission.id, expires_at)

        try:
            self.email_sender.send(EmailKind.INVITATION, submission.email, self.setup_url(raw_token))
        except Exception as e:
            logger.warning("Invitation email to %s failed: %s", submission.email, e)
            return ApprovalResult(
                approved_user=approved_user,
                email=submission.email,
                email_sent=False,
                email_error=str(e),
            )

        return ApprovalResult(approved_user=approved_user, email=submission.email, email_sent=True)

    def _register_bearer(self, profile: Profile, password: str) -> bool:
        try:
            self.bearer_backend.register(profile, password)
        except AlreadyExists:
            logger.info("Bearer identity for %s already exists", profile.email)
            return True
        except AccessGateError as e:
            logger.warning("Bearer registration for %s failed, deferring: %s", profile.email, e)
            return False
        return True

    def _get_submission(self, submission_id: str) -> WaitlistSubmission:
        submission = self.repository.get_submission(submission_id)
        if submission is None:
            raise SubmissionNotFound(submission_id)
        return submission

    def _normalize_email(self, email: str) -> str:
        """
        Normalize email address for consistent storage and lookup.

        Applies: strip whitespace + lowercase
        """
        return email.strip().lower()
