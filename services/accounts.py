"""Identity store backed by the `User` beanie document."""

import pytz

import logfire

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, List, Optional

from bson import ObjectId
from beanie import PydanticObjectId
from beanie.operators import Or, Set
from fastapi import Request
from pymongo.errors import DuplicateKeyError

from models.users import User
from schema.users import Account

from utils.exceptions import InvalidInput


class AccountStore(ABC):
    """Lookup and single-record updates of accounts.

    The refresh token and its expiry can only be changed together, through
    `set_refresh_token` and `clear_refresh_token`.
    """

    @abstractmethod
    async def get_by_id(self, account_id: str) -> Optional[Account]:
        raise NotImplementedError

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[Account]:
        raise NotImplementedError

    @abstractmethod
    async def get_by_refresh_token(self, refresh_token: str) -> Optional[Account]:
        raise NotImplementedError

    @abstractmethod
    async def list_all(self) -> List[Account]:
        raise NotImplementedError

    @abstractmethod
    async def create(self, fields: dict[str, Any]) -> Account:
        """Insert a new account.

        Raises:
            InvalidInput: If the email or phone number is already registered.
        """
        raise NotImplementedError

    @abstractmethod
    async def update(self, account_id: str, fields: dict[str, Any]) -> Optional[Account]:
        """Overwrite `fields` on an existing account.

        Raises:
            InvalidInput: If the new email or phone number belongs to another account.

        Returns:
            Optional[Account]: The updated account, or None if no account matched `account_id`.
        """
        raise NotImplementedError

    @abstractmethod
    async def set_refresh_token(
        self, account_id: str, refresh_token: str, expiry: datetime
    ) -> bool:
        """Replace the account's long-lived token.

        Returns:
            bool: False if no account matched `account_id`.
        """
        raise NotImplementedError

    @abstractmethod
    async def clear_refresh_token(self, account_id: str) -> None:
        raise NotImplementedError


def _to_account(user: User) -> Account:
    return Account(**user.model_dump())


class BeanieAccountStore(AccountStore):
    """`AccountStore` on top of MongoDB through beanie."""

    async def get_by_id(self, account_id: str) -> Optional[Account]:
        if not ObjectId.is_valid(account_id):
            return None

        user = await User.get(PydanticObjectId(account_id))
        return _to_account(user) if user else None

    async def get_by_email(self, email: str) -> Optional[Account]:
        user = await User.find_one(User.email == email.strip().lower())
        return _to_account(user) if user else None

    async def get_by_refresh_token(self, refresh_token: str) -> Optional[Account]:
        user = await User.find_one(User.refresh_token == refresh_token)
        return _to_account(user) if user else None

    async def list_all(self) -> List[Account]:
        return [_to_account(user) for user in await User.find_all().to_list()]

    async def create(self, fields: dict[str, Any]) -> Account:
        existing = await User.find_one(
            Or(User.email == fields["email"], User.phone_number == fields["phone_number"])
        )
        if existing:
            raise InvalidInput("User already exists with this email or phone number")

        user = User(**fields)
        try:
            await user.insert()
        except DuplicateKeyError:
            # Lost a race with a concurrent registration or the username is taken
            logfire.warning(f"Duplicate key while creating user: {fields['email']}")
            raise InvalidInput("User already exists with this email, phone number or username")

        logfire.info(f"Saved new user to database: {user.email}")
        return _to_account(user)

    async def update(self, account_id: str, fields: dict[str, Any]) -> Optional[Account]:
        if not ObjectId.is_valid(account_id):
            return None

        try:
            result = await User.find_one(User.id == PydanticObjectId(account_id)).update(
                Set({**fields, User.updated_at: datetime.now(pytz.utc)})
            )
        except DuplicateKeyError:
            logfire.warning(f"Duplicate key while updating user {account_id}")
            raise InvalidInput("User already exists with this email or phone number")

        if result is None or not result.matched_count:
            return None

        logfire.info(f"Updated user {account_id}: {sorted(fields)}")
        return await self.get_by_id(account_id)

    async def set_refresh_token(
        self, account_id: str, refresh_token: str, expiry: datetime
    ) -> bool:
        if not ObjectId.is_valid(account_id):
            return False

        result = await User.find_one(User.id == PydanticObjectId(account_id)).update(
            Set(
                {
                    User.refresh_token: refresh_token,
                    User.refresh_token_expiry: expiry,
                    User.updated_at: datetime.now(pytz.utc),
                }
            )
        )
        return bool(result is not None and result.matched_count)

    async def clear_refresh_token(self, account_id: str) -> None:
        if not ObjectId.is_valid(account_id):
            return

        await User.find_one(User.id == PydanticObjectId(account_id)).update(
            Set(
                {
                    User.refresh_token: None,
                    User.refresh_token_expiry: None,
                    User.updated_at: datetime.now(pytz.utc),
                }
            )
        )


def get_account_store(request: Request) -> AccountStore:
    """Dependency returning the account store created at startup."""
    return request.app.state.account_store
