"""Contains the schema definition for requests and responses related to users
"""

from datetime import date, datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator, model_validator

from typing import Annotated, Self, List, Optional

from models.helpers import UserRole, City, Gender

from services.validation import (
    validate_gmail,
    validate_password_strength,
    validate_city,
    validate_ward_number,
    validate_gender,
    validate_date_of_birth,
    validate_role_assignment,
)


class UserProfile(BaseModel):
    """Public view of an account, safe to return to clients."""

    id: Annotated[str, Field(description="Unique identifier for the user", serialization_alias="_id")]
    fullname: str
    username: str
    email: EmailStr
    phone_number: Annotated[str, Field(serialization_alias="phoneNumber")]
    city: City
    ward_number: Annotated[str, Field(serialization_alias="wardNumber")]
    tole: Annotated[str, Field(default="")]
    gender: Gender
    dob: datetime
    role: UserRole
    assigned_wards: Annotated[List[str], Field(default=[], serialization_alias="assignedWards")]
    profile_pic: Annotated[str, Field(default="", serialization_alias="profilePic")]
    complaints_count: Annotated[int, Field(default=0, serialization_alias="complaintsCount")]
    created_at: Annotated[Optional[datetime], Field(default=None, serialization_alias="createdAt")]
    updated_at: Annotated[Optional[datetime], Field(default=None, serialization_alias="updatedAt")]


class Account(UserProfile):
    """Full account record as held by the identity store."""

    password: str  # bcrypt hash
    refresh_token: Optional[str] = None
    refresh_token_expiry: Optional[datetime] = None

    # MongoDB hands back naive datetimes, all of ours are UTC
    @field_validator("refresh_token_expiry")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def public_profile(self) -> UserProfile:
        return UserProfile(**self.model_dump(exclude={"password", "refresh_token", "refresh_token_expiry"}))


class CreateUserRequest(BaseModel):
    """Describes the structure of the register user request."""

    model_config = ConfigDict(populate_by_name=True)

    fullname: Annotated[str, Field(min_length=2, max_length=100)]
    email: Annotated[EmailStr, Field(max_length=100)]
    phone_number: Annotated[str, Field(alias="phoneNumber", min_length=7, max_length=15)]
    password: str
    city: City
    ward_number: Annotated[str, Field(alias="wardNumber")]
    tole: Annotated[str, Field(default="")]
    gender: Gender
    dob: date
    role: Annotated[UserRole, Field(default=UserRole.USER)]
    assigned_wards: Annotated[List[str], Field(default=[], alias="assignedWards")]
    profile_pic: Annotated[str, Field(default="", alias="profilePic", description="URL of an already uploaded profile picture")]

    @field_validator("email")
    @classmethod
    def check_that_email_is_gmail(cls, value: str) -> str:
        return validate_gmail(value)

    @field_validator("password")
    @classmethod
    def check_password_strength(cls, value: str) -> str:
        return validate_password_strength(value)

    @field_validator("city", mode="before")
    @classmethod
    def check_city(cls, value: str) -> City:
        return validate_city(value)

    @field_validator("gender", mode="before")
    @classmethod
    def check_gender(cls, value: str) -> Gender:
        return validate_gender(value)

    @field_validator("dob")
    @classmethod
    def check_date_of_birth(cls, value: date) -> date:
        validate_date_of_birth(value)
        return value

    # * Ward bounds depend on the city, role assignment on the role
    @model_validator(mode="after")
    def check_ward_and_role(self) -> Self:
        self.ward_number = validate_ward_number(self.city, self.ward_number)
        self.assigned_wards = validate_role_assignment(self.role, self.assigned_wards)
        return self


class UpdateUserRequest(BaseModel):
    """Partial update of an account. Unknown keys such as `password` or
    `refreshToken` are ignored.
    """

    model_config = ConfigDict(populate_by_name=True)

    fullname: Optional[Annotated[str, Field(min_length=2, max_length=100)]] = None
    email: Optional[Annotated[EmailStr, Field(max_length=100)]] = None
    phone_number: Annotated[
        Optional[Annotated[str, Field(min_length=7, max_length=15)]], Field(default=None, alias="phoneNumber")
    ]
    city: Optional[City] = None
    ward_number: Annotated[Optional[str], Field(default=None, alias="wardNumber")]
    tole: Optional[str] = None
    gender: Optional[Gender] = None
    dob: Optional[date] = None
    role: Optional[UserRole] = None
    assigned_wards: Annotated[Optional[List[str]], Field(default=None, alias="assignedWards")]
    profile_pic: Annotated[Optional[str], Field(default=None, alias="profilePic")]

    @field_validator("email")
    @classmethod
    def check_that_email_is_gmail(cls, value: Optional[str]) -> Optional[str]:
        return validate_gmail(value) if value is not None else value

    @field_validator("city", mode="before")
    @classmethod
    def check_city(cls, value: Optional[str]) -> Optional[City]:
        return validate_city(value) if value is not None else value

    @field_validator("gender", mode="before")
    @classmethod
    def check_gender(cls, value: Optional[str]) -> Optional[Gender]:
        return validate_gender(value) if value is not None else value

    @field_validator("dob")
    @classmethod
    def check_date_of_birth(cls, value: Optional[date]) -> Optional[date]:
        if value is not None:
            validate_date_of_birth(value)
        return value

    def changes(self) -> dict:
        """Fields the client actually sent, with explicit nulls dropped."""
        return {
            field: value
            for field, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }
