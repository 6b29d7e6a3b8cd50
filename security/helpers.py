"""Contains all security related helper functions
"""
import json
import secrets
import string

from datetime import datetime, timedelta, timezone

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer

from passlib.context import CryptContext
from jose import jwe
from jose.exceptions import JOSEError

from pydantic import ValidationError
from typing import Annotated, Optional

from models.helpers import UserRole
from schema.auth import AccessTokenData, RefreshTokenData
from schema.users import Account

from services.accounts import AccountStore, get_account_store

from utils.config import Settings, get_settings
from utils.exceptions import AuthError, Forbidden, NotFound

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "longLivedToken"


pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Only used to pick the bearer token out of the Authorization header
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/v1/users/verify-otp", auto_error=False)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_verification_code(length: int = 6) -> str:
    """Generate a secure random numeric verification code.

    Args:
        length (int, optional): Number of digits. Defaults to 6.

    Returns:
        str: The generated verification code.
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_verification_handle() -> str:
    """Generate the opaque handle a client uses to refer to a pending verification."""
    return secrets.token_urlsafe(32)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verifies that `plain_password` and `hashed_password` are equal.

    Args:
        plain_password (str): The plain text password to verify.
        hashed_password (str): The hashed password to compare against.

    Returns:
        bool: True if the passwords match, False otherwise.
    """
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


async def authenticate_user(store: AccountStore, email: str, password: str) -> Account:
    """Checks primary credentials.

    Args:
        store (AccountStore): Identity store to look the account up in.
        email (str): The email of the user.
        password (str): The password of the user.

    Raises:
        NotFound: If no account is registered with `email`.
        AuthError: If the password does not match.

    Returns:
        Account: The authenticated account.
    """
    account = await store.get_by_email(email)

    if not account:
        raise NotFound("User does not exist", status_code=400)
    if not verify_password(password, account.password):
        raise AuthError("Invalid password")
    return account


def _encrypt(payload: dict, secret_key: str) -> str:
    token = jwe.encrypt(
        json.dumps(payload).encode("utf-8"), secret_key, algorithm="dir", encryption="A256GCM"
    )
    return token.decode("utf-8")


def _decrypt(token: str, secret_key: str) -> Optional[dict]:
    try:
        payload_bytes = jwe.decrypt(token.encode("utf-8"), secret_key)
        return json.loads(payload_bytes)
    except (JOSEError, ValueError, TypeError):
        return None


def create_access_token(
    account: Account, secret_key: str, expires_delta: timedelta, now: Optional[datetime] = None
) -> str:
    """Creates a new access token.

    The token is self-contained and never stored server side.

    Args:
        account (Account): Account the token is issued for.
        secret_key (str): 32 byte key for direct JWE encryption.
        expires_delta (timedelta): Lifetime of the token.
        now (Optional[datetime], optional): Issue time. Defaults to the current time.

    Returns:
        str: The encoded JWE token.
    """
    expire = (now or utcnow()) + expires_delta
    payload = {
        "sub": account.id,
        "email": account.email,
        "phone_number": account.phone_number,
        "username": account.username,
        "role": account.role.value,
        "type": "access",
        "exp": expire.timestamp(),
    }
    return _encrypt(payload, secret_key)


def create_refresh_token(
    account_id: str, secret_key: str, expires_at: datetime, now: Optional[datetime] = None
) -> str:
    """Creates a new long-lived token with a unique JTI.

    Args:
        account_id (str): The account ID.
        secret_key (str): 32 byte key for direct JWE encryption.
        expires_at (datetime): Absolute expiry of the token.
        now (Optional[datetime], optional): Issue time. Defaults to the current time.

    Returns:
        str: The encoded JWE token.
    """
    payload = {
        "sub": account_id,
        "jti": secrets.token_urlsafe(32),
        "type": "refresh",
        "iat": (now or utcnow()).timestamp(),
        "exp": expires_at.timestamp(),
    }
    return _encrypt(payload, secret_key)


def decode_access_token(
    token: str, secret_key: str, now: Optional[datetime] = None
) -> AccessTokenData | None:
    """Decode and validate an access token.

    Returns:
        AccessTokenData | None: Token data if valid, None if invalid or expired.
    """
    payload = _decrypt(token, secret_key)
    if not payload or payload.get("type") != "access":
        return None

    try:
        token_data = AccessTokenData(**payload)
    except ValidationError:
        return None

    #* Validate that the token has not expired
    if (now or utcnow()).timestamp() > token_data.exp:
        return None
    return token_data


def decode_refresh_token(
    token: str, secret_key: str, now: Optional[datetime] = None
) -> RefreshTokenData | None:
    """Decode and validate a long-lived token.

    Returns:
        RefreshTokenData | None: Token data if valid, None if invalid or expired.
    """
    payload = _decrypt(token, secret_key)
    if not payload or payload.get("type") != "refresh":
        return None

    try:
        token_data = RefreshTokenData(**payload)
    except ValidationError:
        return None

    if (now or utcnow()).timestamp() > token_data.exp:
        return None
    return token_data


async def get_current_user(
    request: Request,
    bearer_token: Annotated[Optional[str], Depends(oauth2_scheme)],
    store: Annotated[AccountStore, Depends(get_account_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Account:
    """Resolve the account behind the access token.

    The token is read from the `accessToken` cookie, or from an
    `Authorization: Bearer` header for clients without cookies.

    Raises:
        AuthError: If the token is missing, invalid, expired or its account is gone.
    """
    token = request.cookies.get(ACCESS_TOKEN_COOKIE) or bearer_token
    if not token:
        raise AuthError("Unauthorized request", status_code=401)

    token_data = decode_access_token(token, settings.secret_key)
    if token_data is None:
        raise AuthError("Invalid or expired access token", status_code=401)

    account = await store.get_by_id(token_data.sub)
    if account is None:
        raise AuthError("Invalid access token", status_code=401)
    return account


async def get_current_super_admin(
    current_user: Annotated[Account, Depends(get_current_user)],
) -> Account:
    if current_user.role != UserRole.SUPER_ADMIN:
        raise Forbidden("Only super admins can access this endpoint")
    return current_user


async def get_optional_user(
    request: Request,
    bearer_token: Annotated[Optional[str], Depends(oauth2_scheme)],
    store: Annotated[AccountStore, Depends(get_account_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Optional[Account]:
    """Like `get_current_user`, but anonymous callers (or stale tokens) yield None."""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE) or bearer_token
    if not token:
        return None

    token_data = decode_access_token(token, settings.secret_key)
    if token_data is None:
        return None
    return await store.get_by_id(token_data.sub)
