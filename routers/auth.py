"""
Auth router for the OTP login flow, token renewal and logout.
"""

import logfire

from fastapi import APIRouter, Depends, Request, Response, status

from typing import Annotated, Optional

from models.helpers import ADMIN_ROLES
from schema.auth import (
    ApiResponse,
    LoginData,
    RefreshTokenRequest,
    SendOTPData,
    SendOTPRequest,
    VerifyOTPRequest,
)

from security.helpers import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, authenticate_user
from security.sessions import SessionTokenService, SessionTokens, get_session_service

from services.accounts import AccountStore, get_account_store
from services.verification import LoginVerificationService, get_verification_service

from utils.config import Settings, get_settings
from utils.exceptions import Forbidden, InvalidInput

router = APIRouter(
    prefix="/api/v1/users",
    tags=["Auth"],
)

AccountStoreDep = Annotated[AccountStore, Depends(get_account_store)]
VerificationDep = Annotated[LoginVerificationService, Depends(get_verification_service)]
SessionDep = Annotated[SessionTokenService, Depends(get_session_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]


def set_session_cookies(response: Response, tokens: SessionTokens, settings: Settings) -> None:
    """Attach both session cookies, living as long as the long-lived token."""
    for key, value in (
        (ACCESS_TOKEN_COOKIE, tokens.access_token),
        (REFRESH_TOKEN_COOKIE, tokens.refresh_token),
    ):
        response.set_cookie(
            key=key,
            value=value,
            max_age=tokens.max_age,
            httponly=True,
            secure=settings.is_production,
            samesite="lax",
        )


def clear_session_cookies(response: Response, settings: Settings) -> None:
    for key in (ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE):
        response.delete_cookie(
            key=key,
            httponly=True,
            secure=settings.is_production,
            samesite="strict",
        )


async def begin_login(
    payload: SendOTPRequest,
    store: AccountStore,
    verification_service: LoginVerificationService,
    admin_only: bool = False,
) -> ApiResponse:
    account = await authenticate_user(store, payload.email, payload.password)

    if admin_only and account.role not in ADMIN_ROLES:
        logfire.warning(f"Non-admin account {account.id} tried the admin login")
        raise Forbidden("This endpoint is for admin users only")

    challenge = await verification_service.issue(account.email, payload.delivery_method)

    data = SendOTPData(
        token=challenge.handle,
        identifier=challenge.destination,
        delivery_method=challenge.channel,
        expires_in_minutes=challenge.expires_in_minutes,
    )
    return ApiResponse(
        status_code=status.HTTP_200_OK,
        data=data.model_dump(mode="json", by_alias=True),
        message=challenge.message,
    )


async def complete_login(
    payload: VerifyOTPRequest,
    response: Response,
    store: AccountStore,
    verification_service: LoginVerificationService,
    session_service: SessionTokenService,
    settings: Settings,
    admin_only: bool = False,
) -> ApiResponse:
    identity = await verification_service.verify(payload.token, payload.otp, payload.delivery_method)

    if admin_only:
        account = await store.get_by_id(identity.account_id)
        if account is not None and account.role not in ADMIN_ROLES:
            raise Forbidden("This endpoint is for admin users only")

    tokens = await session_service.issue_session(identity.account_id, payload.remember_me)
    set_session_cookies(response, tokens, settings)

    data = LoginData(
        logged_in_user=tokens.account,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )
    return ApiResponse(
        status_code=status.HTTP_200_OK,
        data=data.model_dump(mode="json", by_alias=True),
        message="Admin logged in successfully" if admin_only else "User logged in successfully",
    )


@router.post("/send-otp", response_model=ApiResponse)
async def send_login_otp(
    payload: SendOTPRequest,
    store: AccountStoreDep,
    verification_service: VerificationDep,
):
    """Check email and password, then send a one-time code over the chosen channel.

    The returned `token` identifies the pending verification and must be sent
    back with the code to `/verify-otp`.

    ## Possible Errors
    - 400 Bad Request: missing fields, unknown delivery method, unknown user, wrong password or no phone/email on file.
    - 500 Internal Server Error: the code could not be delivered. Safe to retry.
    """
    return await begin_login(payload, store, verification_service)


@router.post("/verify-otp", response_model=ApiResponse)
async def verify_login_otp(
    payload: VerifyOTPRequest,
    response: Response,
    store: AccountStoreDep,
    verification_service: VerificationDep,
    session_service: SessionDep,
    settings: SettingsDep,
):
    """Exchange a pending verification token and its code for a session.

    Sets the `accessToken` and `longLivedToken` cookies. With `rememberMe` the
    session lasts 30 days, otherwise 1 day.

    ## Possible Errors
    - 400 Bad Request: missing fields, wrong code or expired code.
    - 404 Not Found: unknown or already used token, or the user no longer exists.
    - 429 Too Many Requests: too many wrong codes, request a new one.
    """
    return await complete_login(
        payload, response, store, verification_service, session_service, settings
    )


@router.post("/admin/send-otp", response_model=ApiResponse)
async def send_admin_login_otp(
    payload: SendOTPRequest,
    store: AccountStoreDep,
    verification_service: VerificationDep,
):
    """Same as `/send-otp` but only for ward and super admins (403 otherwise)."""
    return await begin_login(payload, store, verification_service, admin_only=True)


@router.post("/admin/verify-otp", response_model=ApiResponse)
async def verify_admin_login_otp(
    payload: VerifyOTPRequest,
    response: Response,
    store: AccountStoreDep,
    verification_service: VerificationDep,
    session_service: SessionDep,
    settings: SettingsDep,
):
    """Same as `/verify-otp` but only for ward and super admins (403 otherwise)."""
    return await complete_login(
        payload,
        response,
        store,
        verification_service,
        session_service,
        settings,
        admin_only=True,
    )


@router.post("/refresh-token", response_model=ApiResponse)
async def refresh_access_token(
    request: Request,
    response: Response,
    session_service: SessionDep,
    settings: SettingsDep,
    payload: Optional[RefreshTokenRequest] = None,
):
    """Issue a new access token from the `longLivedToken` cookie (or `refreshToken` in the body)."""
    refresh_token = request.cookies.get(REFRESH_TOKEN_COOKIE) or (
        payload.refresh_token if payload else None
    )
    if not refresh_token:
        raise InvalidInput("No refresh token found")

    renewed = await session_service.renew(refresh_token)

    remaining = int((renewed.refresh_token_expiry - session_service.clock()).total_seconds())
    response.set_cookie(
        key=ACCESS_TOKEN_COOKIE,
        value=renewed.access_token,
        max_age=max(remaining, 0),
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )

    return ApiResponse(
        status_code=status.HTTP_200_OK,
        data={"accessToken": renewed.access_token},
        message="Access token refreshed",
    )


@router.post("/logout", response_model=ApiResponse)
async def logout(
    request: Request,
    response: Response,
    session_service: SessionDep,
    settings: SettingsDep,
):
    """Revoke the long-lived token held in the `longLivedToken` cookie and clear both cookies.

    Logging out with a token that is no longer active still succeeds.
    """
    refresh_token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if not refresh_token:
        raise InvalidInput("No refresh token found")

    await session_service.revoke(refresh_token)
    clear_session_cookies(response, settings)

    return ApiResponse(
        status_code=status.HTTP_200_OK,
        data={},
        message="User logged out successfully",
    )
