"""Pending one-time-code challenges."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from typing import Annotated

from .helpers import DeliveryChannel


class PendingVerification(BaseModel):
    """One in-flight login challenge, addressed by an opaque handle."""

    handle: Annotated[str, Field(description="Unguessable single-use handle returned to the client")]
    account_id: str
    channel: DeliveryChannel
    destination: Annotated[str, Field(description="Email address or phone number the code was sent to")]
    code: str
    created_at: datetime
    expires_at: datetime
    attempts: Annotated[int, Field(default=0, ge=0)]  # failed guesses so far

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now > self.expires_at
