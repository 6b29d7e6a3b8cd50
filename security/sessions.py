"""
Session token service.

A successful login yields a short-lived access token, which is never stored,
and a long-lived token that is persisted on the account. Each account holds
at most one long-lived token: a new login replaces the previous one and a
logout clears it.
"""

import logfire

from datetime import datetime, timedelta
from typing import Callable

from fastapi import Request
from pydantic import BaseModel

from schema.users import Account, UserProfile

from services.accounts import AccountStore

from utils.config import Settings
from utils.exceptions import AuthError, InternalError, NotFound

from .helpers import create_access_token, create_refresh_token, decode_refresh_token, utcnow

SHORT_SESSION = timedelta(days=1)
REMEMBERED_SESSION = timedelta(days=30)


class SessionTokens(BaseModel):
    access_token: str
    refresh_token: str
    refresh_token_expiry: datetime
    max_age: int  # cookie lifetime in seconds
    account: UserProfile


class RenewedAccess(BaseModel):
    access_token: str
    refresh_token_expiry: datetime
    account: UserProfile


def session_lifetime(stay_signed_in: bool) -> timedelta:
    return REMEMBERED_SESSION if stay_signed_in else SHORT_SESSION


class SessionTokenService:
    """Mints, renews and revokes session tokens."""

    def __init__(
        self,
        account_store: AccountStore,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.account_store = account_store
        self.secret_key = settings.secret_key
        self.access_token_expiry = settings.access_token_expiry
        self.clock = clock

    def _access_token(self, account: Account) -> str:
        return create_access_token(account, self.secret_key, self.access_token_expiry, now=self.clock())

    async def issue_session(self, account_id: str, stay_signed_in: bool = False) -> SessionTokens:
        """Mint an access token and a long-lived token for `account_id`.

        Args:
            account_id (str): Account that just authenticated.
            stay_signed_in (bool, optional): Keep the long-lived token for 30 days instead of 1. Defaults to False.

        Raises:
            NotFound: If the account no longer exists.
            InternalError: If the long-lived token could not be persisted.

        Returns:
            SessionTokens: Both tokens, the long-lived token expiry and the public profile.
        """
        account = await self.account_store.get_by_id(account_id)
        if account is None:
            raise NotFound("User not found")

        with logfire.span(f"Issuing session for account {account_id}"):
            lifetime = session_lifetime(stay_signed_in)
            now = self.clock()
            expiry = now + lifetime

            access_token = self._access_token(account)
            refresh_token = create_refresh_token(account.id, self.secret_key, expiry, now=now)

            try:
                stored = await self.account_store.set_refresh_token(account.id, refresh_token, expiry)
            except Exception as e:
                logfire.error(f"Failed to persist long-lived token for account {account_id}: {e}")
                raise InternalError()

            if not stored:
                logfire.error(f"Account {account_id} disappeared before its session could be stored")
                raise InternalError()

            logfire.info(f"Session issued for account {account_id}, stay signed in: {stay_signed_in}")

        return SessionTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            refresh_token_expiry=expiry,
            max_age=int(lifetime.total_seconds()),
            account=account.public_profile(),
        )

    async def renew(self, refresh_token: str) -> RenewedAccess:
        """Mint a fresh access token from the account's current long-lived token.

        Raises:
            AuthError: If the token is invalid, expired, revoked or superseded by a newer login.
        """
        token_data = decode_refresh_token(refresh_token, self.secret_key, now=self.clock())
        if token_data is None:
            # An expired token that is still stored is dropped
            holder = await self.account_store.get_by_refresh_token(refresh_token)
            if holder is not None:
                await self.account_store.clear_refresh_token(holder.id)
            raise AuthError("Invalid or expired refresh token", status_code=401)

        account = await self.account_store.get_by_id(token_data.sub)
        if (
            account is None
            or account.refresh_token != refresh_token
            or account.refresh_token_expiry is None
        ):
            raise AuthError("Refresh token is expired or has been revoked", status_code=401)

        logfire.info(f"Access token renewed for account {account.id}")
        return RenewedAccess(
            access_token=self._access_token(account),
            refresh_token_expiry=account.refresh_token_expiry,
            account=account.public_profile(),
        )

    async def revoke(self, refresh_token: str) -> None:
        """Clear `refresh_token` from whichever account holds it.

        Unknown or already revoked tokens are not an error.
        """
        account = await self.account_store.get_by_refresh_token(refresh_token)
        if account is None:
            logfire.info("Logout with a long-lived token that is not active")
            return

        await self.account_store.clear_refresh_token(account.id)
        logfire.info(f"Account {account.id} logged out")


def get_session_service(request: Request) -> SessionTokenService:
    """Dependency returning the session service created at startup."""
    return request.app.state.session_service
