"""
Domain records - Plain dataclasses for persisted and transient state.

Rows returned by the invitation store adapters are converted into these
immutable records so the domain never handles driver-specific row types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SubmissionStatus(str, Enum):
    """
    Waitlist submission lifecycle states.

    State Transitions:
    - PENDING -> APPROVED   (operator approval, token minted)
    - PENDING -> REJECTED   (operator rejection)
    - APPROVED -> APPROVED  (resend: token rotated, expiry reset)
    - APPROVED -> REGISTERED (setup token consumed)

    Cleanup moves any state back to PENDING.
    """

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REGISTERED = "registered"


class BeliefTag(str, Enum):
    """Categorical tag attached to an onboarding answer."""

    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"


class EmailKind(str, Enum):
    """Kinds of transactional email the lifecycle emits."""

    INVITATION = "invitation"


@dataclass(frozen=True)
class WaitlistSubmission:
    id: str
    first_name: str
    last_name: str
    email: str
    status: SubmissionStatus
    admin_notes: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class ApprovedUser:
    """
    Approval record holding the live setup token.

    A token is consumable iff account_created is False and now < expires_at.
    """

    id: str
    waitlist_submission_id: str
    setup_token: str
    expires_at: datetime
    account_created: bool = False
    created_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class MagicLink:
    id: str
    approved_user_id: str
    email: str
    token_hash: str
    expires_at: datetime
    used: bool = False
    used_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class Identity:
    """
    Identity as reported by a credential backend.

    access_token is set when the backend issued a session or bearer token
    alongside the identity (login, sign-up with immediate session).
    """

    id: str | None
    email: str
    email_verified: bool = False
    access_token: str | None = None
    roles: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Profile:
    """Registration bundle sent to the credential backends."""

    email: str
    first_name: str
    last_name: str
    machine_name: str = "Assistant"
    contradiction_tolerance: float = 0.0
    belief_sensitivity: BeliefTag | None = None

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
