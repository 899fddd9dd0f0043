"""
Outbound email over SMTP.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional

import config

logger = logging.getLogger(__name__)


class Mailer:
    def __init__(self, host: Optional[str], port: int, user: Optional[str] = None,
                 password: Optional[str] = None, secure: bool = False):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.secure = secure

    def send(self, to: str, subject: str, body: str, sender: Optional[str] = None,
             reply_to: Optional[str] = None) -> None:
        if not self.host:
            raise RuntimeError("Email transport not configured (EMAIL_HOST is empty)")

        msg = EmailMessage()
        msg["From"] = sender or self.user
        msg["To"] = to
        msg["Subject"] = subject
        if reply_to:
            msg["Reply-To"] = reply_to
        msg.set_content(body)

        context = ssl.create_default_context()
        if self.secure:
            with smtplib.SMTP_SSL(self.host, self.port, context=context) as smtp:
                self._deliver(smtp, msg)
        else:
            with smtplib.SMTP(self.host, self.port) as smtp:
                smtp.ehlo()
                # upgrade only when the relay offers it
                if smtp.has_extn("starttls"):
                    smtp.starttls(context=context)
                    smtp.ehlo()
                self._deliver(smtp, msg)
        logger.info("mail sent to %s: %s", to, subject)

    def _deliver(self, smtp: smtplib.SMTP, msg: EmailMessage) -> None:
        if self.user:
            smtp.login(self.user, self.password or "")
        smtp.send_message(msg)


def get_mailer() -> Mailer:
    return Mailer(
        host=config.EMAIL_HOST,
        port=config.EMAIL_PORT,
        user=config.EMAIL_USER,
        password=config.EMAIL_PASS,
        secure=config.EMAIL_SECURE,
    )


def send_contact_message(mailer: Mailer, name: str, email: str, phone: Optional[str], message: str) -> None:
    """Background task for the contact form; failures are logged, never raised to the client."""
    try:
        mailer.send(
            to=config.CONTACT_EMAIL or mailer.user,
            subject=f"New contact message from {name}",
            body=(
                "You have a new contact message:\n\n"
                f"Name: {name}\n"
                f"Email: {email}\n"
                f"Phone: {phone or '-'}\n\n"
                f"Message:\n{message}"
            ),
            reply_to=email,
        )
    except Exception:
        logger.exception("failed to send contact message from %s", email)
