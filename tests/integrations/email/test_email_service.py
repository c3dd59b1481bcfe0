"""Tests for email rendering and delivery."""

import pytest
from unittest.mock import AsyncMock, Mock, patch

from attendance_sync.integrations.email import (
    EmailDeliveryResult,
    EmailMessage,
    EmailService,
    EmailTemplateManager,
)
from attendance_sync.integrations.email.brevo_provider import BrevoProvider


@pytest.fixture
def template_manager():
    return EmailTemplateManager()


@pytest.fixture
def mock_provider():
    provider = Mock()
    provider.is_available = Mock(return_value=True)
    provider.send_email = AsyncMock(return_value=EmailDeliveryResult(success=True, message_id="msg-1"))
    provider.close = AsyncMock()
    return provider


class TestTemplates:

    @pytest.mark.asyncio
    async def test_attendance_conflict(self, template_manager):
        rendered = await template_manager.render_template("attendance_conflict", {
            "subject": "Attendance Conflict: Data Structures",
            "username": "alice",
            "dashboard_url": "https://app.test/dashboard",
            "course_label": "Data Structures",
            "date": "20251024",
            "session": "III",
        })

        assert rendered["success"] is True
        assert rendered["subject"] == "Attendance Conflict: Data Structures"
        html = rendered["html_content"]
        assert "Data Structures" in html
        assert "24-10-2025 (III)" in html
        assert "https://app.test/dashboard" in html
        assert "alice" in html
        assert rendered["text_content"] is None

    @pytest.mark.asyncio
    async def test_course_mismatch(self, template_manager):
        rendered = await template_manager.render_template("course_mismatch", {
            "username": "alice",
            "manual_course_name": "Data Structures",
            "course_label": "Operating Systems",
            "date": "2025-10-24",
            "session": "III",
        })

        assert "Data Structures" in rendered["html_content"]
        assert "Operating Systems" in rendered["html_content"]
        assert "2025-10-24 (III)" in rendered["html_content"]

    @pytest.mark.asyncio
    async def test_revision_class(self, template_manager):
        rendered = await template_manager.render_template("revision_class", {
            "username": "alice",
            "course_name": "Data Structures",
            "date": "2025-10-24",
            "session": "III",
        })

        assert rendered["success"] is True
        assert "Revision" in rendered["html_content"]
        # No dashboard link without a URL
        assert "Open dashboard" not in rendered["html_content"]

    @pytest.mark.asyncio
    async def test_values_are_escaped(self, template_manager):
        rendered = await template_manager.render_template("revision_class", {
            "username": "<script>alert(1)</script>",
            "course_name": "DS",
            "date": "2025-10-24",
            "session": "I",
        })

        assert "<script>" not in rendered["html_content"]
        assert "&lt;script&gt;" in rendered["html_content"]

    @pytest.mark.asyncio
    async def test_unknown_template(self, template_manager):
        rendered = await template_manager.render_template("missing", {})

        assert rendered["success"] is False
        assert "missing" in rendered["error"]


class TestEmailService:

    @pytest.mark.asyncio
    async def test_renders_and_sends(self, mock_provider, template_manager):
        service = EmailService(provider=mock_provider, template_manager=template_manager)

        result = await service.send_email(
            to_email="alice@example.com",
            subject="Revision Class: Data Structures",
            template_id="revision_class",
            template_data={"username": "alice", "course_name": "Data Structures",
                           "date": "2025-10-24", "session": "III"},
        )

        assert result.success is True
        message: EmailMessage = mock_provider.send_email.await_args.args[0]
        assert message.to_email == "alice@example.com"
        assert message.subject == "Revision Class: Data Structures"
        assert "Data Structures" in message.html_content

    @pytest.mark.asyncio
    async def test_template_error(self, mock_provider, template_manager):
        service = EmailService(provider=mock_provider, template_manager=template_manager)

        result = await service.send_email(to_email="a@example.com", subject="x", template_id="missing")

        assert result.success is False
        assert result.error_code == "TEMPLATE_ERROR"
        mock_provider.send_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_provider(self, template_manager):
        with patch("attendance_sync.integrations.email.email_service.settings") as mock_settings:
            mock_settings.BREVO_API_KEY = ""
            service = EmailService(template_manager=template_manager)

        result = await service.send_email(to_email="a@example.com", subject="x", html_content="<p>x</p>")

        assert service.provider is None
        assert result.error_code == "NO_PROVIDER"

    def test_selects_brevo_when_configured(self, template_manager):
        with patch("attendance_sync.integrations.email.email_service.settings") as mock_settings:
            mock_settings.BREVO_API_KEY = "brevo-key"
            service = EmailService(template_manager=template_manager)

        assert isinstance(service.provider, BrevoProvider)

    @pytest.mark.asyncio
    async def test_provider_unavailable(self, mock_provider):
        mock_provider.is_available.return_value = False
        service = EmailService(provider=mock_provider)

        result = await service.send_email(to_email="a@example.com", subject="x", html_content="<p>x</p>")

        assert result.error_code == "PROVIDER_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_provider_exception_is_reported(self, mock_provider):
        mock_provider.send_email.side_effect = RuntimeError("socket closed")
        service = EmailService(provider=mock_provider)

        result = await service.send_email(to_email="a@example.com", subject="x", html_content="<p>x</p>")

        assert result.success is False
        assert result.error_code == "SEND_ERROR"
        assert "socket closed" in result.error_message

    @pytest.mark.asyncio
    async def test_close(self, mock_provider):
        await EmailService(provider=mock_provider).close()

        mock_provider.close.assert_awaited_once()


class TestBrevoProvider:

    def test_availability(self):
        assert BrevoProvider(api_key="key", from_email="sync@example.com").is_available() is True
        assert BrevoProvider(api_key="", from_email="sync@example.com").is_available() is False
        assert BrevoProvider(api_key="key", from_email="").is_available() is False

    def test_payload(self):
        provider = BrevoProvider(api_key="key", from_email="sync@example.com", from_name="Attendance Sync")
        message = EmailMessage(to_email="alice@example.com", subject="Hi", html_content="<p>Hello <b>there</b></p>")

        payload = provider._create_payload(message)

        assert payload["sender"] == {"name": "Attendance Sync", "email": "sync@example.com"}
        assert payload["to"] == [{"email": "alice@example.com"}]
        assert payload["htmlContent"] == "<p>Hello <b>there</b></p>"
        assert payload["textContent"] == "Hello there"

    @pytest.mark.asyncio
    async def test_unconfigured_send(self):
        provider = BrevoProvider(api_key="", from_email="")

        result = await provider.send_email(EmailMessage(to_email="a@example.com", subject="x"))

        assert result.success is False
        assert result.error_code == "NOT_CONFIGURED"
