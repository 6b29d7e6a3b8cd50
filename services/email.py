"""SMTP transport for login code emails"""

import smtplib

import logfire

from typing import Optional

from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from utils.config import Settings


class EmailService:
    """Sends HTML emails, optionally with a plain text alternative, over SMTP with STARTTLS."""

    def __init__(
        self,
        smtp_server: str,
        smtp_port: int,
        username: Optional[str],
        password: Optional[str],
        from_email: str,
        timeout: float = 10.0,
    ):
        self.smtp_server = smtp_server
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.timeout = timeout

    def send_email(self, to: str, subject: str, html: str, plain_text: Optional[str] = None) -> bool:
        """Send an email. Blocks, so async callers run it in a worker thread.

        Args:
            to (str): Recipient email address
            subject (str): Subject line
            html (str): HTML body
            plain_text (Optional[str], optional): Text alternative for clients without HTML. Defaults to None.

        Returns:
            bool: True if the SMTP server accepted the message, False otherwise.
        """
        message = self.build_message(to, subject, html, plain_text)

        try:
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logfire.error(f"Failed to send email to {to}: {e}")
            return False

        logfire.info(f"Email sent successfully to {to}")
        return True

    def build_message(
        self, to: str, subject: str, html: str, plain_text: Optional[str] = None
    ) -> MIMEText | MIMEMultipart:
        if plain_text is None:
            message = MIMEText(html, "html")
        else:
            message = MIMEMultipart("alternative")
            # Clients show the last part they can render
            message.attach(MIMEText(plain_text, "plain"))
            message.attach(MIMEText(html, "html"))

        message["Subject"] = subject
        message["From"] = self.from_email
        message["To"] = to
        return message


def get_email_service(settings: Settings) -> EmailService | None:
    """Build the SMTP service, or None when no SMTP server is configured."""
    if not settings.smtp_server:
        return None

    return EmailService(
        smtp_server=settings.smtp_server,
        smtp_port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        from_email=settings.from_email or settings.smtp_username or "",
        timeout=settings.delivery_timeout_seconds,
    )
