"""Brevo transactional email provider."""

import logging
import re
from typing import Any, Dict, Optional

import aiohttp

from attendance_sync.core.config import settings
from .email_service import BaseEmailProvider, EmailMessage, EmailDeliveryResult

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>?")


class BrevoProvider(BaseEmailProvider):
    """Sends mail through the Brevo ``/v3/smtp/email`` endpoint."""

    api_url = "https://api.brevo.com/v3/smtp/email"

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key if api_key is not None else settings.BREVO_API_KEY
        self.default_from_email = from_email if from_email is not None else settings.DEFAULT_FROM_EMAIL
        self.default_from_name = from_name if from_name is not None else settings.DEFAULT_FROM_NAME
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    def is_available(self) -> bool:
        """Check if Brevo is properly configured."""
        return bool(self.api_key and self.default_from_email)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    def _create_payload(self, message: EmailMessage) -> Dict[str, Any]:
        html = message.html_content or ""
        return {
            "sender": {
                "name": message.from_name or self.default_from_name,
                "email": message.from_email or self.default_from_email,
            },
            "to": [{"email": message.to_email}],
            "subject": message.subject,
            "htmlContent": html,
            "textContent": message.text_content or _TAG_RE.sub("", html),
        }

    async def send_email(self, message: EmailMessage) -> EmailDeliveryResult:
        """Send a single email via Brevo."""
        if not self.is_available():
            return EmailDeliveryResult(
                success=False,
                error_code="NOT_CONFIGURED",
                error_message="Brevo is not properly configured",
                to_email=message.to_email,
            )

        headers = {
            "api-key": self.api_key,
            "content-type": "application/json",
            "accept": "application/json",
        }

        try:
            session = self._get_session()
            async with session.post(self.api_url, json=self._create_payload(message), headers=headers) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = {}
                data = data if isinstance(data, dict) else {}

                if 200 <= response.status < 300:
                    return EmailDeliveryResult(
                        success=True,
                        message_id=data.get("messageId"),
                        provider_response={"status_code": response.status},
                        to_email=message.to_email,
                    )

                return EmailDeliveryResult(
                    success=False,
                    error_code=str(response.status),
                    error_message=data.get("message", f"HTTP {response.status}"),
                    provider_response=data,
                    to_email=message.to_email,
                )

        except aiohttp.ClientError as e:
            logger.error(f"Brevo HTTP error: {e}")
            return EmailDeliveryResult(
                success=False,
                error_code="HTTP_ERROR",
                error_message=str(e),
                to_email=message.to_email,
            )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
