"""
Console notification sender adapter - Implements NotificationSender protocol.

This module provides a console-based implementation of the domain's
notification port, logging customer emails to stdout for demo purposes.
"""

import logging
from typing import Any

from src.domain.exceptions import NotificationFailed
from src.domain.ports import NotificationKind

logger = logging.getLogger(__name__)

SUBJECTS = {
    NotificationKind.EXPIRY_WARNING: "Your company registration has expired",
    NotificationKind.PAYMENT_APPROVED: "Payment approved",
    NotificationKind.REGISTRATION_COMPLETED: "Company registration completed",
}


class ConsoleNotificationSender:
    """
    Implements NotificationSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For demo/development purposes - prints notifications to stdout.
    """

    def send(self, kind: NotificationKind, recipient: str, template_data: dict[str, Any]) -> None:
        """
        Log a notification to console (simulates email delivery).

        In production, this would be replaced with an SMTP adapter.
        The notification is logged at INFO level to be visible in docker-compose logs.

        Args:
            kind: Which customer notification to send
            recipient: Recipient email address
            template_data: Values rendered into the message

        Raises:
            NotificationFailed: Recipient is not an email address
        """
        if not recipient or "@" not in recipient:
            raise NotificationFailed(f"Invalid recipient address: {recipient!r}")

        logger.info(
            "[NOTIFICATION] Kind: %s To: %s Subject: %s Data: %s",
            kind.value,
            recipient,
            SUBJECTS.get(kind, kind.value),
            template_data,
        )
