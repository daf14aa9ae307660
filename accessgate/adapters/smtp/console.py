"""
Console email sender adapter - Implements EmailSender protocol.

This module provides a console-based implementation of the domain's
email sender port, logging setup links to stdout for demo purposes.
"""

import logging

from accessgate.domain.models import EmailKind

logger = logging.getLogger(__name__)


class ConsoleEmailSender:
    """
    Implements EmailSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints setup links to stdout.
    """

    def send(self, kind: EmailKind, to: str, setup_url: str) -> None:
        """
        Log the email to console (simulates email delivery).

        In production, this would be replaced with a transactional email
        adapter. The setup URL is logged at INFO level to be visible in
        docker-compose logs.

        Args:
            kind: Email kind (only INVITATION today)
            to: Recipient email address
            setup_url: Account setup link carrying the raw token
        """
        logger.info("[%s] Email: %s Setup URL: %s", kind.name, to, setup_url)
