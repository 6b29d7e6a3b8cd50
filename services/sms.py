"""Client for the HTTP SMS gateway used to deliver one-time codes."""

import logfire

from fastapi import status
from httpx import AsyncClient, HTTPError, TimeoutException

from utils.config import Settings


class SMSService:
    """Sends text messages through a JSON HTTP gateway.

    The gateway is expected to accept `POST {"to": ..., "message": ...}` with
    a bearer API key and answer with a 2xx status on success.
    """

    def __init__(self, gateway_url: str, api_key: str, timeout: float = 10.0):
        self.gateway_url = gateway_url
        self.api_key = api_key
        self.timeout = timeout

    async def send_sms(self, to: str, message: str) -> bool:
        """Send `message` to the phone number `to`.

        Returns:
            bool: True if the gateway accepted the message, False otherwise.
        """
        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload = {"to": to, "message": message}

        try:
            async with AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.gateway_url, json=payload, headers=headers)
        except TimeoutException as e:
            logfire.error(f"SMS gateway timed out while sending to {to}: {e}")
            return False
        except HTTPError as e:
            logfire.error(f"HTTP error occurred while sending SMS to {to}: {e}")
            return False

        if status.HTTP_200_OK <= response.status_code < status.HTTP_300_MULTIPLE_CHOICES:
            logfire.info(f"SMS sent successfully to {to}")
            return True

        logfire.error(f"SMS gateway rejected message to {to}: {response.status_code} {response.text}")
        return False


def get_sms_service(settings: Settings) -> SMSService | None:
    """Build the SMS service, or None when no gateway is configured."""
    if not settings.sms_gateway_url:
        return None

    return SMSService(
        gateway_url=settings.sms_gateway_url,
        api_key=settings.sms_gateway_api_key or "",
        timeout=settings.delivery_timeout_seconds,
    )
