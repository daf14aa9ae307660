"""
Token codec - Setup token generation and hashing.

Raw tokens are the secret: they travel only inside the invitation URL and
the approved_users lookup column. Magic-link rows store the SHA-256 digest
so a leaked audit table never yields a usable token. No key is involved;
the digest is tamper evidence, not confidentiality.
"""

import hashlib
import secrets

from .exceptions import TokenInvalid

# Fixed validity window for setup tokens
SETUP_TOKEN_TTL_DAYS = 7

# 32 random bytes = 256 bits of entropy
_TOKEN_BYTES = 32


def generate_token() -> str:
    """Return a new URL-safe setup token."""
    return secrets.token_urlsafe(_TOKEN_BYTES)


def hash_token(raw_token: str) -> str:
    """
    Return the SHA-256 hex digest (64 chars) of a raw token.

    Raises:
        TokenInvalid: If the token is empty or whitespace
    """
    if not raw_token or not raw_token.strip():
        raise TokenInvalid("empty token")
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def token_matches(raw_token: str, token_hash: str) -> bool:
    """Constant-time check that raw_token hashes to token_hash."""
    try:
        candidate = hash_token(raw_token)
    except TokenInvalid:
        return False
    return secrets.compare_digest(candidate, token_hash)
