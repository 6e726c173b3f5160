"""
Email Service Tool
Reminder emails sent over SMTP
"""

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from html import escape
from typing import List, Optional

from config import settings


logger = logging.getLogger(__name__)


@dataclass
class ReminderMedicine:
    """One line of a reminder email"""
    name: str
    dosage: str
    instructions: Optional[str] = None


REMINDER_SUBJECT = "Medication Reminder - {period} dose"

REMINDER_HTML = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #4a5568;">Medication Reminder</h2>
  <p>Hello {patient_name},</p>
  <p>It's time to take your {period} medication:</p>
  <ul>
    {medicine_items}
  </ul>
  <p>Please remember to mark these medications as taken in your dashboard.</p>
  <p>Best regards,<br>MedAdhere Team</p>
</div>
"""

REMINDER_TEXT = """Hello {patient_name},

It's time to take your {period} medication:

{medicine_lines}

Please remember to mark these medications as taken in your dashboard.

- MedAdhere Team
"""


class EmailService:
    """
    Sends reminder emails. Without an SMTP host configured the message is
    only logged and reported as sent.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        sender: Optional[str] = None
    ):
        self.host = host if host is not None else settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.username = username if username is not None else settings.SMTP_USER
        self.password = password if password is not None else settings.SMTP_PASSWORD
        self.use_tls = settings.SMTP_USE_TLS if use_tls is None else use_tls
        self.sender = sender or settings.EMAIL_FROM

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    def build_reminder(
        self,
        patient_email: str,
        patient_name: str,
        medicines: List[ReminderMedicine],
        period: str
    ) -> EmailMessage:
        def _line(med: ReminderMedicine) -> str:
            parts = [med.name, med.dosage]
            if med.instructions:
                parts.append(med.instructions)
            return " - ".join(parts)

        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = patient_email
        message["Subject"] = REMINDER_SUBJECT.format(period=period)
        message.set_content(REMINDER_TEXT.format(
            patient_name=patient_name,
            period=period,
            medicine_lines="\n".join(f"- {_line(m)}" for m in medicines),
        ))
        message.add_alternative(REMINDER_HTML.format(
            patient_name=escape(patient_name),
            period=escape(period),
            medicine_items="".join(f"<li>{escape(_line(m))}</li>" for m in medicines),
        ), subtype="html")
        return message

    async def send_reminder_email(
        self,
        patient_email: str,
        patient_name: str,
        medicines: List[ReminderMedicine],
        period: str
    ) -> bool:
        """
        Send a reminder listing the medicines due in ``period``.

        Returns:
            True when the message was handed to the mail server (or logged
            in development mode), False on any delivery error
        """
        message = self.build_reminder(patient_email, patient_name, medicines, period)

        if not self.enabled:
            logger.info(f"[EMAIL] To {patient_email}: {message['Subject']} ({len(medicines)} medicine(s))")
            return True

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending {period} reminder email to {patient_email}: {e}")
            return False

        logger.info(f"Medication reminder email sent to {patient_email}")
        return True

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password or "")
            smtp.send_message(message)


# Singleton instance
email_service = EmailService()
