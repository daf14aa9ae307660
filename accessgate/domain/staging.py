"""
Registration staging - Client-side cache between account setup and onboarding.

Holds the requester's name and email in the local key-value store while
the onboarding questionnaire is filled in. The password is never staged.
"""

import json
import logging
from dataclasses import asdict, dataclass

from .ports import KeyValueStore

logger = logging.getLogger(__name__)

STAGING_KEY = "accessgate_setup"


@dataclass(frozen=True)
class StagedRegistration:
    email: str
    first_name: str
    last_name: str


class RegistrationStaging:
    """Reads and writes the single staged registration entry."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def save(self, staged: StagedRegistration) -> None:
        self._store.set(STAGING_KEY, json.dumps(asdict(staged)))

    def load(self) -> StagedRegistration | None:
        """Return the staged entry, or None if absent or unreadable."""
        raw = self._store.get(STAGING_KEY)
        if raw is None:
            return None
        try:
            data = json.loads(raw)
            return StagedRegistration(
                email=data["email"],
                first_name=data["first_name"],
                last_name=data["last_name"],
            )
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("Discarding unreadable staged registration: %s", e)
            self.clear()
            return None

    def clear(self) -> None:
        self._store.remove(STAGING_KEY)
