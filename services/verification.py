"""Service for issuing and checking login one-time codes."""

import secrets

import logfire

from datetime import datetime, timedelta
from typing import Callable

from fastapi import Request
from pydantic import BaseModel

from models.helpers import DeliveryChannel
from models.verification import PendingVerification

from security.helpers import generate_verification_code, generate_verification_handle, utcnow

from .accounts import AccountStore
from .delivery import CodeDispatcher
from .otp_store import PendingVerificationStore

from utils.exceptions import (
    AttemptsExhausted,
    AuthError,
    Expired,
    InvalidChannel,
    NotFound,
)


class IssuedChallenge(BaseModel):
    """What the caller learns about a freshly issued code. Never the code itself."""

    handle: str
    channel: DeliveryChannel
    destination: str
    message: str
    expires_in_minutes: int


class VerifiedIdentity(BaseModel):
    account_id: str
    channel: DeliveryChannel
    destination: str


class LoginVerificationService:
    """Issues one-time login codes and verifies them.

    Verification only establishes who the caller is; tokens are minted by
    the session service so that each login surface can apply its own role
    checks in between.
    """

    def __init__(
        self,
        account_store: AccountStore,
        pending_store: PendingVerificationStore,
        dispatcher: CodeDispatcher,
        code_length: int = 6,
        code_expiry: timedelta = timedelta(minutes=10),
        max_attempts: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.account_store = account_store
        self.pending_store = pending_store
        self.dispatcher = dispatcher
        self.code_length = code_length
        self.code_expiry = code_expiry
        self.max_attempts = max_attempts
        self.clock = clock
        self.code_generator: Callable[[int], str] = generate_verification_code

    @property
    def expires_in_minutes(self) -> int:
        return int(self.code_expiry.total_seconds() // 60)

    async def issue(self, identifier: str, channel: DeliveryChannel) -> IssuedChallenge:
        """Generate a code for the account behind `identifier` and deliver it.

        Any earlier live code for the same account stops being valid.

        Args:
            identifier (str): Login identifier (email) of an existing account.
            channel (DeliveryChannel): Where the code should be delivered.

        Raises:
            NotFound: If `identifier` does not belong to an account.
            InvalidChannel: If the account has nothing registered for `channel`.
            DeliveryError: If the code could not be delivered. Nothing is left stored in that case.

        Returns:
            IssuedChallenge: The handle to verify against, plus delivery details.
        """
        account = await self.account_store.get_by_email(identifier)
        if account is None:
            raise NotFound("User does not exist")

        destination = account.phone_number if channel == DeliveryChannel.SMS else account.email
        if not destination:
            kind = "phone number" if channel == DeliveryChannel.SMS else "email"
            raise InvalidChannel(f"User does not have a {kind} registered")

        with logfire.span(f"Issuing login code over {channel.value} for account {account.id}"):
            now = self.clock()
            record = PendingVerification(
                handle=generate_verification_handle(),
                account_id=account.id,
                channel=channel,
                destination=destination,
                code=self.code_generator(self.code_length),
                created_at=now,
                expires_at=now + self.code_expiry,
            )

            await self.pending_store.save(record)

            delivered = False
            try:
                await self.dispatcher.dispatch(
                    channel, destination, record.code, self.expires_in_minutes
                )
                delivered = True
            finally:
                # A code nobody received must not stay verifiable, also on cancellation
                if not delivered:
                    await self.pending_store.delete(record.handle)
                    logfire.error(f"Login code delivery failed for account {account.id}, challenge discarded")

            logfire.info(f"Login code sent over {channel.value} for account {account.id}")

        return IssuedChallenge(
            handle=record.handle,
            channel=channel,
            destination=destination,
            message=f"OTP sent successfully via {channel.value}",
            expires_in_minutes=self.expires_in_minutes,
        )

    async def verify(self, handle: str, code: str, channel: DeliveryChannel) -> VerifiedIdentity:
        """Check `code` against the challenge behind `handle`.

        A wrong code leaves the challenge usable until `max_attempts` failed
        guesses have been made. A correct code consumes it.

        Raises:
            NotFound: If the handle is unknown or was already used.
            Expired: If the code's window has passed.
            AuthError: If the code or channel is wrong.
            AttemptsExhausted: If this guess used up the last attempt.

        Returns:
            VerifiedIdentity: The account the code was issued for.
        """
        record = await self.pending_store.get(handle)
        if record is None:
            raise NotFound("Invalid or already used verification token")

        if record.is_expired(self.clock()):
            await self.pending_store.delete(handle)
            logfire.info(f"Expired login code submitted for account {record.account_id}")
            raise Expired()

        if record.channel != channel:
            raise AuthError("Delivery method does not match the one the code was sent with")

        # Bytes, since compare_digest rejects non-ASCII str
        if not secrets.compare_digest(record.code.encode(), code.encode()):
            attempts = await self.pending_store.record_failed_attempt(handle)
            if attempts is None:
                raise NotFound("Invalid or already used verification token")

            if attempts >= self.max_attempts:
                await self.pending_store.delete(handle)
                logfire.warning(f"Login code attempts exhausted for account {record.account_id}")
                raise AttemptsExhausted()

            remaining = self.max_attempts - attempts
            raise AuthError(f"Invalid OTP. {remaining} attempts remaining.")

        # Only one concurrent verifier can win the consume
        consumed = await self.pending_store.consume(handle)
        if consumed is None:
            raise NotFound("Invalid or already used verification token")

        logfire.info(f"Login code verified for account {consumed.account_id}")
        return VerifiedIdentity(
            account_id=consumed.account_id,
            channel=consumed.channel,
            destination=consumed.destination,
        )


def get_verification_service(request: Request) -> LoginVerificationService:
    """Dependency returning the verification service created at startup."""
    return request.app.state.verification_service
