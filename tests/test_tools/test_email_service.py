"""
Tests for Email Service Tool
"""

import smtplib
import pytest
from unittest.mock import patch

from tools.email_service import EmailService, ReminderMedicine


@pytest.fixture
def medicines():
    return [
        ReminderMedicine(name="Metformin", dosage="500mg", instructions="Take with meals"),
        ReminderMedicine(name="Amlodipine", dosage="5mg"),
    ]


class TestEmailService:

    @pytest.mark.unit
    def test_build_reminder(self, medicines):
        service = EmailService(host="", sender="MedAdhere <no-reply@example.com>")

        message = service.build_reminder("anita@example.com", "Anita", medicines, "morning")

        assert message["To"] == "anita@example.com"
        assert message["Subject"] == "Medication Reminder - morning dose"
        text = message.get_body(preferencelist=("plain",)).get_content()
        assert "Metformin - 500mg - Take with meals" in text
        assert "Amlodipine - 5mg" in text

    @pytest.mark.unit
    def test_html_is_escaped(self):
        service = EmailService(host="")
        message = service.build_reminder("x@example.com", "<b>Eve</b>", [ReminderMedicine("A&B", "1")], "evening")

        html = message.get_body(preferencelist=("html",)).get_content()
        assert "&lt;b&gt;Eve&lt;/b&gt;" in html
        assert "A&amp;B" in html

    @pytest.mark.asyncio
    async def test_without_smtp_host_logs_and_succeeds(self, medicines):
        service = EmailService(host="")
        assert not service.enabled

        with patch("tools.email_service.smtplib.SMTP") as smtp:
            sent = await service.send_reminder_email("anita@example.com", "Anita", medicines, "morning")

        assert sent is True
        smtp.assert_not_called()

    @pytest.mark.asyncio
    async def test_smtp_delivery(self, medicines):
        service = EmailService(host="smtp.example.com", port=2525, username="user", password="pw", use_tls=True)

        with patch("tools.email_service.smtplib.SMTP") as smtp:
            sent = await service.send_reminder_email("anita@example.com", "Anita", medicines, "afternoon")

        assert sent is True
        smtp.assert_called_once_with("smtp.example.com", 2525, timeout=30)
        connection = smtp.return_value.__enter__.return_value
        connection.starttls.assert_called_once()
        connection.login.assert_called_once_with("user", "pw")
        connection.send_message.assert_called_once()

    @pytest.mark.asyncio
    async def test_smtp_failure_returns_false(self, medicines):
        service = EmailService(host="smtp.example.com")

        with patch("tools.email_service.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")):
            sent = await service.send_reminder_email("anita@example.com", "Anita", medicines, "evening")

        assert sent is False
