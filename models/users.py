import pytz

from datetime import datetime

from pydantic import Field, EmailStr, field_serializer
from typing import Annotated, List, Optional

import pymongo
from beanie import Document, Indexed, PydanticObjectId

from .helpers import UserRole, City, Gender


class User(Document):
    """Account of a citizen or administrator.

    The refresh token and its expiry are only ever written together
    through the account store.
    """
    fullname: Annotated[str, Field(min_length=2, max_length=100)]
    username: Annotated[str, Indexed(unique=True)]
    email: Annotated[EmailStr, Indexed(index_type=pymongo.ASCENDING, unique=True)]
    phone_number: Annotated[str, Indexed(unique=True), Field(serialization_alias="phoneNumber")]
    password: Annotated[str, Field()]  # bcrypt hash
    city: Annotated[City, Field()]
    ward_number: Annotated[str, Field(serialization_alias="wardNumber")]
    tole: Annotated[str, Field(default="")]
    gender: Annotated[Gender, Field()]
    dob: Annotated[datetime, Field()]
    role: Annotated[UserRole, Field(default=UserRole.USER)]
    assigned_wards: Annotated[List[str], Field(default=[], serialization_alias="assignedWards")]
    profile_pic: Annotated[str, Field(default="", serialization_alias="profilePic")]
    complaints_count: Annotated[int, Field(default=0, ge=0, serialization_alias="complaintsCount")]
    refresh_token: Annotated[Optional[str], Indexed(), Field(default=None)]
    refresh_token_expiry: Annotated[Optional[datetime], Field(default=None)]
    created_at: Annotated[datetime, Field(default_factory=lambda: datetime.now(pytz.utc))]
    updated_at: Annotated[datetime, Field(default_factory=lambda: datetime.now(pytz.utc))]

    @field_serializer("id")
    def convert_pydantic_object_id_to_string(self, id: PydanticObjectId):
        return str(id)

    class Settings:
        name = "users"
