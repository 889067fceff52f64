"""
HTTP notification adapter - Implements NotificationSender against the mail service.

Sends template requests to {base}/api/v1/mail. Failures are reported as
MailUnavailable and not retried.
"""

import logging
from collections.abc import Mapping

import httpx
from pydantic import BaseModel

from src.domain.exceptions import MailUnavailable

logger = logging.getLogger(__name__)


class MailSendDto(BaseModel):
    """Template mail request."""

    cid: str
    lang: str
    to: list[str]
    variables: dict[str, str]


class HttpNotificationSender:
    """
    Implements NotificationSender protocol via httpx.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, client: httpx.Client, base_url: str, api_token: str = "") -> None:
        self._client = client
        self._url = f"{base_url.rstrip('/')}/api/v1/mail"
        self._headers = {"X-Api-Key": api_token} if api_token else {}

    def send_notification(
        self,
        template: str,
        variables: Mapping[str, str],
        recipient: str,
        language: str,
    ) -> None:
        body = MailSendDto(cid=template, lang=language, to=[recipient], variables=dict(variables))
        try:
            response = self._client.post(self._url, json=body.model_dump(), headers=self._headers)
        except httpx.RequestError as e:
            logger.error("mail service request for %s failed: %s", template, e)
            raise MailUnavailable(f"mail service unreachable: {e}") from e

        if response.status_code >= 300:
            logger.error(
                "mail service rejected %s to %s: status %d", template, recipient, response.status_code
            )
            raise MailUnavailable(f"mail service returned status {response.status_code}")
