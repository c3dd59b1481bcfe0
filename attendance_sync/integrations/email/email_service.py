"""Email notification service with template rendering and a pluggable provider."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from attendance_sync.core.config import settings
from .template_manager import EmailTemplateManager

logger = logging.getLogger(__name__)


@dataclass
class EmailMessage:
    """Email message data structure."""
    to_email: str
    subject: str
    html_content: Optional[str] = None
    text_content: Optional[str] = None
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    template_id: Optional[str] = None
    template_data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EmailDeliveryResult:
    """Result of email delivery attempt."""
    success: bool
    message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    provider_response: Dict[str, Any] = field(default_factory=dict)
    to_email: str = ""


class BaseEmailProvider(ABC):
    """Abstract base class for email providers."""

    @abstractmethod
    async def send_email(self, message: EmailMessage) -> EmailDeliveryResult:
        """Send a single email message."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the provider is properly configured and available."""
        pass

    async def close(self) -> None:
        pass


class EmailService:
    """
    Renders templates and hands messages to the configured provider.

    ``send_email`` never raises: every failure comes back as an
    ``EmailDeliveryResult`` with an error code.
    """

    def __init__(
        self,
        provider: Optional[BaseEmailProvider] = None,
        template_manager: Optional[EmailTemplateManager] = None,
    ):
        self.provider = provider if provider is not None else self._initialize_provider()
        self.template_manager = template_manager or EmailTemplateManager()

    def _initialize_provider(self) -> Optional[BaseEmailProvider]:
        if settings.BREVO_API_KEY:
            from .brevo_provider import BrevoProvider
            return BrevoProvider()
        logger.warning("No email provider configured; sync emails will be skipped")
        return None

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: Optional[str] = None,
        text_content: Optional[str] = None,
        template_id: Optional[str] = None,
        template_data: Optional[Dict[str, Any]] = None,
    ) -> EmailDeliveryResult:
        """
        Send a single email message.

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_content: HTML email content
            text_content: Plain text email content
            template_id: Email template ID to render instead of raw content
            template_data: Data for template rendering

        Returns:
            Delivery result with success status and details
        """
        message = EmailMessage(
            to_email=to_email,
            subject=subject,
            html_content=html_content,
            text_content=text_content,
            template_id=template_id,
            template_data=template_data or {},
        )

        if template_id:
            rendered = await self.template_manager.render_template(
                template_id, {"subject": subject, **message.template_data}
            )
            if not rendered["success"]:
                return EmailDeliveryResult(
                    success=False,
                    error_code="TEMPLATE_ERROR",
                    error_message=f"Template rendering failed: {rendered.get('error')}",
                    to_email=to_email,
                )
            message.subject = rendered["subject"] or message.subject
            message.html_content = rendered["html_content"]
            message.text_content = rendered["text_content"]

        if self.provider is None:
            return EmailDeliveryResult(
                success=False,
                error_code="NO_PROVIDER",
                error_message="No email provider configured",
                to_email=to_email,
            )

        if not self.provider.is_available():
            return EmailDeliveryResult(
                success=False,
                error_code="PROVIDER_UNAVAILABLE",
                error_message="Email provider is not available",
                to_email=to_email,
            )

        try:
            return await self.provider.send_email(message)
        except Exception as e:
            logger.error(f"Error sending email: {e}")
            return EmailDeliveryResult(
                success=False,
                error_code="SEND_ERROR",
                error_message=str(e),
                to_email=to_email,
            )

    async def close(self) -> None:
        if self.provider is not None:
            await self.provider.close()
