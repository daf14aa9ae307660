"""
In-memory repository adapter - Implements InvitationRepository protocol.

Thread-safe dictionary storage for development and tests. Every public
method holds one lock for its whole body, so each operation is atomic the
same way a single SQL statement or transaction is in the PostgreSQL
adapter; mark_account_created is a true compare-and-swap.
"""

import threading
import uuid
from dataclasses import replace
from datetime import UTC, datetime

from accessgate.domain.models import (
    ApprovedUser,
    MagicLink,
    SubmissionStatus,
    WaitlistSubmission,
)

_APPROVABLE = (SubmissionStatus.PENDING, SubmissionStatus.APPROVED)
_REJECTABLE = (SubmissionStatus.PENDING, SubmissionStatus.REJECTED)


class InMemoryInvitationRepository:
    """
    Implements InvitationRepository protocol with process-local state.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._submissions: dict[str, WaitlistSubmission] = {}
        self._approved_users: dict[str, ApprovedUser] = {}
        self._magic_links: dict[str, MagicLink] = {}

    def add_submission(self, first_name: str, last_name: str, email: str) -> WaitlistSubmission:
        """Record a new PENDING waitlist submission (external intake)."""
        normalized_email = email.strip().lower()
        with self._lock:
            if any(s.email == normalized_email for s in self._submissions.values()):
                raise ValueError(f"submission for {normalized_email} already exists")
            submission = WaitlistSubmission(
                id=str(uuid.uuid4()),
                first_name=first_name,
                last_name=last_name,
                email=normalized_email,
                status=SubmissionStatus.PENDING,
                created_at=datetime.now(UTC),
            )
            self._submissions[submission.id] = submission
            return submission

    def get_submission(self, submission_id: str) -> WaitlistSubmission | None:
        with self._lock:
            return self._submissions.get(submission_id)

    def list_submissions(
        self, status: SubmissionStatus | None = None
    ) -> list[WaitlistSubmission]:
        with self._lock:
            submissions = [
                s for s in self._submissions.values() if status is None or s.status == status
            ]
        epoch = datetime.min.replace(tzinfo=UTC)
        return sorted(submissions, key=lambda s: s.created_at or epoch, reverse=True)

    def save_approval(
        self,
        submission_id: str,
        setup_token: str,
        token_hash: str,
        expires_at: datetime,
        reviewed_by: str | None,
        notes: str | None,
        now: datetime,
    ) -> ApprovedUser | None:
        with self._lock:
            submission = self._submissions.get(submission_id)
            if submission is None or submission.status not in _APPROVABLE:
                return None

            existing = self._find_approved_user_by_submission(submission_id)
            if existing is not None and existing.account_created:
                return None

            if existing is None:
                approved_user = ApprovedUser(
                    id=str(uuid.uuid4()),
                    waitlist_submission_id=submission_id,
                    setup_token=setup_token,
                    expires_at=expires_at,
                    account_created=False,
                    created_at=now,
                )
            else:
                approved_user = replace(existing, setup_token=setup_token, expires_at=expires_at)
            self._approved_users[approved_user.id] = approved_user

            self._submissions[submission_id] = replace(
                submission,
                status=SubmissionStatus.APPROVED,
                admin_notes=notes if notes is not None else submission.admin_notes,
                reviewed_by=reviewed_by,
                reviewed_at=now,
            )

            for link_id in [
                link.id
                for link in self._magic_links.values()
                if link.approved_user_id == approved_user.id
            ]:
                del self._magic_links[link_id]
            link = MagicLink(
                id=str(uuid.uuid4()),
                approved_user_id=approved_user.id,
                email=submission.email,
                token_hash=token_hash,
                expires_at=expires_at,
                created_at=now,
            )
            self._magic_links[link.id] = link
            return approved_user

    def find_approved_user_by_token(self, setup_token: str) -> ApprovedUser | None:
        with self._lock:
            for approved_user in self._approved_users.values():
                if approved_user.setup_token == setup_token:
                    return approved_user
            return None

    def get_approved_user(self, approved_user_id: str) -> ApprovedUser | None:
        with self._lock:
            return self._approved_users.get(approved_user_id)

    def mark_account_created(self, approved_user_id: str, now: datetime) -> bool:
        with self._lock:
            approved_user = self._approved_users.get(approved_user_id)
            if (
                approved_user is None
                or approved_user.account_created
                or approved_user.expires_at <= now
            ):
                return False
            self._approved_users[approved_user_id] = replace(approved_user, account_created=True)
            return True

    def mark_submission_registered(self, submission_id: str) -> None:
        with self._lock:
            submission = self._submissions.get(submission_id)
            if submission is not None:
                self._submissions[submission_id] = replace(
                    submission, status=SubmissionStatus.REGISTERED
                )

    def mark_magic_link_used(self, approved_user_id: str, used_at: datetime) -> None:
        with self._lock:
            for link in list(self._magic_links.values()):
                if link.approved_user_id == approved_user_id and not link.used:
                    self._magic_links[link.id] = replace(link, used=True, used_at=used_at)

    def list_magic_links(self, approved_user_id: str) -> list[MagicLink]:
        with self._lock:
            return [
                link
                for link in self._magic_links.values()
                if link.approved_user_id == approved_user_id
            ]

    def reject_submission(
        self, submission_id: str, notes: str | None, reviewed_by: str | None, now: datetime
    ) -> bool:
        with self._lock:
            submission = self._submissions.get(submission_id)
            if submission is None or submission.status not in _REJECTABLE:
                return False
            if submission.status == SubmissionStatus.REJECTED:
                return True
            self._submissions[submission_id] = replace(
                submission,
                status=SubmissionStatus.REJECTED,
                admin_notes=notes if notes is not None else submission.admin_notes,
                reviewed_by=reviewed_by,
                reviewed_at=now,
            )
            return True

    def reset_submission(self, email: str) -> WaitlistSubmission | None:
        with self._lock:
            submission = self._find_submission_by_email(email)
            if submission is None:
                return None
            approved_user = self._find_approved_user_by_submission(submission.id)
            if approved_user is not None:
                del self._approved_users[approved_user.id]
                for link_id in [
                    link.id
                    for link in self._magic_links.values()
                    if link.approved_user_id == approved_user.id
                ]:
                    del self._magic_links[link_id]
            reset = replace(
                submission,
                status=SubmissionStatus.PENDING,
                admin_notes=None,
                reviewed_by=None,
                reviewed_at=None,
            )
            self._submissions[submission.id] = reset
            return reset

    def _find_submission_by_email(self, email: str) -> WaitlistSubmission | None:
        for submission in self._submissions.values():
            if submission.email == email:
                return submission
        return None

    def _find_approved_user_by_submission(self, submission_id: str) -> ApprovedUser | None:
        for approved_user in self._approved_users.values():
            if approved_user.waitlist_submission_id == submission_id:
                return approved_user
        return None
