""" User router for registration, account lookups and profile updates.
"""

import logfire

from fastapi import APIRouter, status, Depends, Response

from typing import Annotated, Optional

from models.helpers import UserRole

from schema.auth import ApiResponse, LoginData
from schema.users import Account, CreateUserRequest, UpdateUserRequest

from security.helpers import get_current_user, get_current_super_admin, get_optional_user, get_password_hash
from security.sessions import SessionTokenService, get_session_service

from services.accounts import AccountStore, get_account_store
from services.validation import prepare_account_update, validate_date_of_birth, username_from_fullname

from utils.config import Settings, get_settings
from utils.exceptions import Forbidden, NotFound

from .auth import set_session_cookies

router = APIRouter(
    prefix="/api/v1/users",
    tags=["Users"],
)


@router.post("/register", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    payload: CreateUserRequest,
    response: Response,
    caller: Annotated[Optional[Account], Depends(get_optional_user)],
    store: Annotated[AccountStore, Depends(get_account_store)],
    session_service: Annotated[SessionTokenService, Depends(get_session_service)],
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Create a new account.

    Anyone can sign up as a regular user and is logged in for one day.
    Ward admin and super admin accounts can only be created by a logged in
    super admin; the super admin's own session is left untouched.

    The profile picture must already be uploaded; only its URL is stored.

    ## Possible Errors
    - 400 Bad Request: a field is missing or invalid, or the email or phone number is already registered.
    - 403 Forbidden: an admin role was requested by someone who is not a super admin.
    """
    by_super_admin = caller is not None and caller.role == UserRole.SUPER_ADMIN
    if payload.role != UserRole.USER and not by_super_admin:
        raise Forbidden("Only super admins can create admin accounts")

    with logfire.span(f"Registering new user: {payload.email}"):
        fields = payload.model_dump()
        fields["password"] = get_password_hash(payload.password)
        fields["username"] = username_from_fullname(payload.fullname)
        fields["dob"] = validate_date_of_birth(payload.dob)

        account = await store.create(fields)

        if by_super_admin:
            logfire.info(f"Super admin {caller.id} created {account.role.value} account {account.id}")
            return ApiResponse(
                status_code=status.HTTP_201_CREATED,
                data={"user": account.public_profile().model_dump(mode="json", by_alias=True)},
                message="User created successfully",
            )

        tokens = await session_service.issue_session(account.id, stay_signed_in=False)

    set_session_cookies(response, tokens, settings)

    data = LoginData(
        logged_in_user=tokens.account,
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
    )
    return ApiResponse(
        status_code=status.HTTP_201_CREATED,
        data=data.model_dump(mode="json", by_alias=True),
        message="User registered and logged in successfully",
    )


@router.get("/me", response_model=ApiResponse)
async def get_current_user_details(
    current_user: Annotated[Account, Depends(get_current_user)],
):
    """Get details of the authenticated user."""
    return ApiResponse(
        status_code=status.HTTP_200_OK,
        data={"user": current_user.public_profile().model_dump(mode="json", by_alias=True)},
        message="Current user fetched successfully",
    )


@router.get("/get-all-users", response_model=ApiResponse)
async def get_all_users(
    current_user: Annotated[Account, Depends(get_current_super_admin)],
    store: Annotated[AccountStore, Depends(get_account_store)],
):
    """List every account. Super admins only."""
    accounts = await store.list_all()
    if not accounts:
        raise NotFound("No users found")

    return ApiResponse(
        status_code=status.HTTP_200_OK,
        data=[account.public_profile().model_dump(mode="json", by_alias=True) for account in accounts],
        message="Users retrieved successfully",
    )


@router.get("/get-user/{user_id}", response_model=ApiResponse)
async def get_user_by_id(
    user_id: str,
    current_user: Annotated[Account, Depends(get_current_user)],
    store: Annotated[AccountStore, Depends(get_account_store)],
):
    """Get the public profile of any account. Requires a logged in caller."""
    account = await store.get_by_id(user_id)
    if account is None:
        raise NotFound("User not found")

    return ApiResponse(
        status_code=status.HTTP_200_OK,
        data=account.public_profile().model_dump(mode="json", by_alias=True),
        message="User retrieved successfully",
    )


@router.patch("/update-user/{user_id}", response_model=ApiResponse)
# Path the web client was shipped with
@router.patch("/upadte-user/{user_id}", response_model=ApiResponse, include_in_schema=False)
async def update_user(
    user_id: str,
    payload: UpdateUserRequest,
    current_user: Annotated[Account, Depends(get_current_user)],
    store: Annotated[AccountStore, Depends(get_account_store)],
):
    """Update an account's profile.

    Users can update their own account, super admins any account. Only super
    admins can change `role` and `assignedWards`; for anybody else those
    fields are ignored, as are `password` and `refreshToken`.

    ## Possible Errors
    - 400 Bad Request: a field is invalid, or the new email or phone number is already registered.
    - 403 Forbidden: the caller is neither the owner nor a super admin.
    - 404 Not Found: no account with this id.
    """
    by_super_admin = current_user.role == UserRole.SUPER_ADMIN
    if not by_super_admin and current_user.id != user_id:
        raise Forbidden("You are not authorized to update this user")

    account = await store.get_by_id(user_id)
    if account is None:
        raise NotFound("User not found")

    with logfire.span(f"Updating user {user_id}"):
        changes = prepare_account_update(account, payload.changes(), by_super_admin)
        if changes:
            account = await store.update(user_id, changes)
            if account is None:
                raise NotFound("User not found")

    return ApiResponse(
        status_code=status.HTTP_200_OK,
        data=account.public_profile().model_dump(mode="json", by_alias=True),
        message="User updated successfully",
    )
