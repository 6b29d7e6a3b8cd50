"""Defines schema of requests and responses related to OTP login and sessions"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from typing import Annotated, Any, Optional

from models.helpers import DeliveryChannel

from schema.users import UserProfile

from utils.exceptions import InvalidChannel


def parse_delivery_channel(value: Any) -> DeliveryChannel:
    try:
        return DeliveryChannel(value)
    except ValueError:
        raise InvalidChannel()


class ApiResponse(BaseModel):
    """Envelope wrapping every successful response."""

    model_config = ConfigDict(populate_by_name=True)

    status_code: Annotated[int, Field(serialization_alias="statusCode")]
    data: Any
    message: str
    success: bool = True


class SendOTPRequest(BaseModel):
    """Primary credentials plus the channel the code should be delivered on."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: Annotated[str, Field(min_length=1)]
    delivery_method: Annotated[DeliveryChannel, Field(alias="deliveryMethod")]

    @field_validator("delivery_method", mode="before")
    @classmethod
    def check_delivery_method(cls, value: Any) -> DeliveryChannel:
        return parse_delivery_channel(value)


class SendOTPData(BaseModel):
    token: Annotated[str, Field(description="Handle identifying the pending verification")]
    identifier: Annotated[str, Field(description="Email address or phone number the code was sent to")]
    delivery_method: Annotated[DeliveryChannel, Field(serialization_alias="deliveryMethod")]
    expires_in_minutes: Annotated[int, Field(serialization_alias="expiresInMinutes")]


class VerifyOTPRequest(BaseModel):
    """Handle and code submitted to complete a login."""

    model_config = ConfigDict(populate_by_name=True)

    token: Annotated[str, Field(min_length=1)]
    otp: Annotated[str, Field(min_length=1, max_length=10, pattern=r"^[0-9]+$")]
    delivery_method: Annotated[DeliveryChannel, Field(alias="deliveryMethod")]
    remember_me: Annotated[bool, Field(default=False, alias="rememberMe")]

    @field_validator("otp", mode="before")
    @classmethod
    def strip_code(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("delivery_method", mode="before")
    @classmethod
    def check_delivery_method(cls, value: Any) -> DeliveryChannel:
        return parse_delivery_channel(value)


class LoginData(BaseModel):
    logged_in_user: Annotated[UserProfile, Field(serialization_alias="loggedInUser")]
    access_token: Annotated[str, Field(serialization_alias="accessToken")]
    refresh_token: Annotated[str, Field(serialization_alias="refreshToken")]


class RefreshTokenRequest(BaseModel):
    """Optional body for clients that cannot send cookies."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Annotated[Optional[str], Field(default=None, alias="refreshToken")]


class AccessTokenData(BaseModel):
    """Claims carried by an access token."""

    sub: str
    email: EmailStr
    phone_number: Optional[str] = None
    username: str
    role: str
    exp: float


class RefreshTokenData(BaseModel):
    """Claims carried by a long-lived token."""

    sub: str
    jti: str  # Unique token identifier
    iat: float
    exp: float
