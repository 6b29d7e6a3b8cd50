"""Out-of-band delivery of one-time codes."""

import asyncio

import logfire

from models.helpers import DeliveryChannel

from .email import EmailService
from .sms import SMSService
from .template import EmailTemplates

from utils.exceptions import DeliveryError


def login_code_message(code: str, expires_in_minutes: int) -> str:
    return f"Your Hello Samaj login code is {code}. It expires in {expires_in_minutes} minutes."


class CodeDispatcher:
    """Routes a code to the email or SMS transport with a bounded timeout."""

    def __init__(
        self,
        email_service: EmailService | None,
        sms_service: SMSService | None,
        templates: EmailTemplates,
        timeout: float = 10.0,
    ):
        self.email_service = email_service
        self.sms_service = sms_service
        self.templates = templates
        self.timeout = timeout

    async def dispatch(
        self,
        channel: DeliveryChannel,
        destination: str,
        code: str,
        expires_in_minutes: int,
    ) -> None:
        """Deliver `code` to `destination` over `channel`.

        Raises:
            DeliveryError: If the transport is not configured, rejects the
                message or does not answer within the timeout.
        """
        try:
            delivered = await asyncio.wait_for(
                self._send(channel, destination, code, expires_in_minutes),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logfire.error(f"Timed out delivering login code over {channel.value} to {destination}")
            raise DeliveryError()

        if not delivered:
            raise DeliveryError()

    async def _send(
        self,
        channel: DeliveryChannel,
        destination: str,
        code: str,
        expires_in_minutes: int,
    ) -> bool:
        if channel == DeliveryChannel.SMS:
            if self.sms_service is None:
                logfire.error("SMS delivery requested but no SMS gateway is configured")
                return False
            return await self.sms_service.send_sms(destination, login_code_message(code, expires_in_minutes))

        if self.email_service is None:
            logfire.error("Email delivery requested but SMTP is not configured")
            return False

        html = self.templates.login_code(code, expires_in_minutes)
        return await asyncio.to_thread(
            self.email_service.send_email,
            to=destination,
            subject="Your Hello Samaj Login Code",
            html=html,
            plain_text=login_code_message(code, expires_in_minutes),
        )
