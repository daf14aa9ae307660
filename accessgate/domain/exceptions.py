"""
Domain exceptions - Semantic error types for invitations and sessions.

This module defines domain-specific exceptions that communicate
business rule violations without leaking infrastructure details.
Callers must be able to tell "expired" from "already used" from
"wrong password", so each failure has its own type.
"""


class AccessGateError(Exception):
    """Base class for all accessgate domain errors."""

    pass


class TokenInvalid(AccessGateError):
    """Setup token is unknown, malformed, or has been superseded."""

    pass


class TokenExpired(AccessGateError):
    """Setup token is at or past its expiry time."""

    pass


class AlreadyConsumed(AccessGateError):
    """Setup token has already been used to create an account."""

    pass


class InvalidCredential(AccessGateError):
    """Credential was rejected by a backend or fails local policy."""

    pass


class AlreadyExists(AccessGateError):
    """Identity already exists in the backend."""

    pass


class Unauthenticated(AccessGateError):
    """Session token is missing, invalid, or no longer accepted."""

    pass


class InsufficientAnswers(AccessGateError):
    """Onboarding scorer was given no answers."""

    pass


class BackendUnavailable(AccessGateError):
    """Transport failure or malformed response, distinct from a well-formed rejection."""

    pass


class NotFound(AccessGateError):
    """Identity targeted by a backend operation does not exist."""

    pass


class SubmissionNotFound(AccessGateError):
    """No waitlist submission matches the given id or email."""

    pass


class InvalidTransition(AccessGateError):
    """Operation is not allowed from the submission's current status."""

    pass
