"""
Domain layer - Pure business logic with zero framework imports.

This package contains the invitation lifecycle, the session authority,
the token codec and the onboarding scorer. It defines its own port
interfaces for infrastructure abstraction, ensuring true hexagonal
architecture decoupling.
"""

from .exceptions import (
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
from .invitations import InvitationService, SetupPayload
from .onboarding import OnboardingAnswer, score_answers
from .ports import (
    BearerIdentityBackend,
    CredentialBackend,
    EmailSender,
    InvitationRepository,
    KeyValueStore,
    ManagedIdentityBackend,
)
from .session import SessionAuthority

__all__ = [
    "AccessGateError",
    "AlreadyConsumed",
    "AlreadyExists",
    "BackendUnavailable",
    "BearerIdentityBackend",
    "CredentialBackend",
    "EmailSender",
    "InsufficientAnswers",
    "InvalidCredential",
    "InvalidTransition",
    "InvitationRepository",
    "InvitationService",
    "KeyValueStore",
    "ManagedIdentityBackend",
    "NotFound",
    "OnboardingAnswer",
    "SessionAuthority",
    "SetupPayload",
    "SubmissionNotFound",
    "TokenExpired",
    "TokenInvalid",
    "Unauthenticated",
    "score_answers",
]
