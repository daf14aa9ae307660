"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.
"""

from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Protocol

from .models import (
    ApprovedUser,
    EmailKind,
    Identity,
    MagicLink,
    Profile,
    SubmissionStatus,
    WaitlistSubmission,
)


class AuthEvent(str, Enum):
    """Events pushed by the managed backend's auth-state stream."""

    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


AuthStateListener = Callable[[AuthEvent, Identity | None], None]


class InvitationRepository(Protocol):
    """Port interface for waitlist, approval and magic-link persistence."""

    def get_submission(self, submission_id: str) -> WaitlistSubmission | None:
        """Return the submission with this id, or None."""
        ...

    def list_submissions(
        self, status: SubmissionStatus | None = None
    ) -> list[WaitlistSubmission]:
        """Return submissions (optionally filtered by status), newest first."""
        ...

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
        """
        Approve a submission and (re)issue its setup token in one transaction.

        1. Moves the submission to APPROVED (only from PENDING or APPROVED)
           and stamps review metadata.
        2. Inserts the ApprovedUser row, or rotates token and expiry on the
           existing row for this submission (account_created stays False).
        3. Deletes every MagicLink of that ApprovedUser and inserts a fresh
           unused one holding token_hash.

        Returns:
            The approval record, or None if the submission was not in an
            approvable state when the write happened.
        """
        ...

    def find_approved_user_by_token(self, setup_token: str) -> ApprovedUser | None:
        """Look up the approval record currently holding this raw token."""
        ...

    def mark_account_created(self, approved_user_id: str, now: datetime) -> bool:
        """
        Atomically flip account_created False -> True.

        Single conditional write: succeeds only where account_created is
        False and expires_at > now. Never read-then-write.

        Returns:
            True if this call performed the flip, False otherwise.
        """
        ...

    def get_approved_user(self, approved_user_id: str) -> ApprovedUser | None:
        """Return the approval record with this id, or None."""
        ...

    def mark_submission_registered(self, submission_id: str) -> None:
        """Set submission status to REGISTERED."""
        ...

    def mark_magic_link_used(self, approved_user_id: str, used_at: datetime) -> None:
        """Mark the unused MagicLink of this ApprovedUser as used."""
        ...

    def list_magic_links(self, approved_user_id: str) -> list[MagicLink]:
        """Return every MagicLink of this ApprovedUser."""
        ...

    def reject_submission(
        self, submission_id: str, notes: str | None, reviewed_by: str | None, now: datetime
    ) -> bool:
        """
        Move a PENDING (or already REJECTED) submission to REJECTED.

        Returns:
            True if the submission was updated, False if its status forbids it.
        """
        ...

    def reset_submission(self, email: str) -> WaitlistSubmission | None:
        """
        Delete approval and magic-link rows and reset the submission to PENDING.

        Review metadata (admin_notes, reviewed_by, reviewed_at) is cleared.

        Returns:
            The reset submission, or None if no submission has this email.
        """
        ...


class EmailSender(Protocol):
    """Port interface for email delivery."""

    def send(self, kind: EmailKind, to: str, setup_url: str) -> None:
        """
        Deliver a transactional email.

        Raises on delivery failure; the lifecycle reports it to its caller.
        """
        ...


class CredentialBackend(Protocol):
    """Capability set shared by every credential backend."""

    def authenticate(self, email: str, password: str) -> Identity:
        """
        Raises:
            InvalidCredential: Credential rejected
            BackendUnavailable: Transport failure
        """
        ...

    def register(self, profile: Profile, password: str) -> Identity:
        """
        Raises:
            AlreadyExists: Identity with this email exists
            InvalidCredential: Credential fails backend policy
            BackendUnavailable: Transport failure
        """
        ...

    def get_current_identity(self, session_token: str) -> Identity:
        """
        Raises:
            Unauthenticated: Token not accepted
            BackendUnavailable: Transport failure
        """
        ...

    def reset_credential(self, email: str) -> None:
        """Trigger a credential reset notification. Success-shaped for unknown emails."""
        ...


class ManagedIdentityBackend(CredentialBackend, Protocol):
    """Backend owning its own session store and auth-state push stream."""

    # Local store key prefixes used by this backend's session scheme
    session_key_prefixes: tuple[str, ...]

    def current_identity(self) -> Identity | None:
        """Identity of the backend's current local session, if any."""
        ...

    def sign_out(self) -> None:
        """Global sign-out of the current session."""
        ...

    def on_auth_state_change(self, listener: AuthStateListener) -> Callable[[], None]:
        """Subscribe to auth-state events. Returns an unsubscribe callable."""
        ...


class BearerIdentityBackend(CredentialBackend, Protocol):
    """Application API backend; adds the operator lookups cleanup needs."""

    def find_identity(self, email: str) -> Identity | None:
        """Return the identity registered with this email, or None."""
        ...

    def delete_identity(self, identity_id: str) -> None:
        """Delete an identity by id."""
        ...


class KeyValueStore(Protocol):
    """Local persistent key-value store (client side)."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...
