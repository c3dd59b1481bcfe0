"""Email delivery for sync notifications."""

from .email_service import (
    EmailService,
    EmailMessage,
    EmailDeliveryResult,
    BaseEmailProvider,
)
from .template_manager import EmailTemplateManager

__all__ = [
    "EmailService",
    "EmailMessage",
    "EmailDeliveryResult",
    "BaseEmailProvider",
    "EmailTemplateManager",
]
