"""
Console notification adapter - Implements NotificationSender protocol.

This module provides a console-based implementation of the domain's
notification port, logging status mails instead of sending them.
"""

import logging
from collections.abc import Mapping

logger = logging.getLogger(__name__)


class ConsoleNotificationSender:
    """
    Implements NotificationSender protocol via console logging.

    Uses structural subtyping - no explicit inheritance from Protocol.
    For development, or when no mail service is configured.
    """

    def send_notification(
        self,
        template: str,
        variables: Mapping[str, str],
        recipient: str,
        language: str,
    ) -> None:
        """
        Log the notification to console (simulates mail delivery).

        Args:
            template: Mail template id, e.g. change-status-approved
            variables: Template variables
            recipient: Recipient email address
            language: Preferred language of the recipient
        """
        logger.info(
            "[NOTIFICATION] Template: %s To: %s Lang: %s Variables: %s",
            template,
            recipient,
            language,
            dict(sorted(variables.items())),
        )
