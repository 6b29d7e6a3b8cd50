"""Canonical validation rules for account details.

Request schemas call into these helpers so that registration and any other
entry point share exactly one definition of what a valid account looks like.
"""

import re

from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any

from models.helpers import City, Gender, UserRole

from utils.exceptions import InvalidInput

if TYPE_CHECKING:
    from schema.users import Account


# Highest ward number per city, wards start at 1
WARD_LIMITS: dict[City, int] = {
    City.KATHMANDU: 32,
    City.LALITPUR: 29,
    City.BHAKTAPUR: 10,
}

PASSWORD_PATTERN = re.compile(
    r"^(?=.*[A-Z])(?=.*\d)(?=.*[!@#$%^&*])[A-Za-z\d!@#$%^&*]{6,}$"
)

GMAIL_SUFFIX = "@gmail.com"


def validate_gmail(email: str) -> str:
    """Only Gmail addresses are accepted for new accounts.

    Args:
        email (str): Email address to check.

    Raises:
        InvalidInput: If the address is not a Gmail address.

    Returns:
        str: The normalised (trimmed, lower case) email address.
    """
    normalised = email.strip().lower()
    if not normalised.endswith(GMAIL_SUFFIX):
        raise InvalidInput("Email must be a valid Gmail address")
    return normalised


def validate_password_strength(password: str) -> str:
    """Check `password` against the account password policy.

    The policy is at least 6 characters with one capital letter, one number
    and one special character from `!@#$%^&*`.

    Raises:
        InvalidInput: If the password does not satisfy the policy.
    """
    if not PASSWORD_PATTERN.match(password):
        raise InvalidInput(
            "Password must be at least 6 characters long and include at least one capital letter, one number, and one special character"
        )
    return password


def validate_city(city: str) -> City:
    try:
        return City(city)
    except ValueError:
        raise InvalidInput("City must be Kathmandu, Lalitpur, or Bhaktapur")


def validate_ward_number(city: City, ward_number: str | int) -> str:
    """Check that `ward_number` exists in `city`.

    Args:
        city (City): City the ward belongs to.
        ward_number (str | int): Ward number as submitted by the client.

    Raises:
        InvalidInput: If the ward number is not a number or is out of range for the city.

    Returns:
        str: The ward number as a string without surrounding whitespace.
    """
    try:
        ward = int(str(ward_number).strip())
    except ValueError:
        raise InvalidInput("Ward number must be a number")

    limit = WARD_LIMITS[city]
    if ward < 1 or ward > limit:
        raise InvalidInput(
            f"Ward number for {city.value} must be between 1 and {limit}"
        )
    return str(ward)


def validate_gender(gender: str) -> Gender:
    try:
        return Gender(gender.strip().lower())
    except ValueError:
        raise InvalidInput("Gender must be male or female")


def validate_date_of_birth(dob: date | datetime) -> datetime:
    """A date of birth must lie in the past.

    Returns:
        datetime: The date of birth as a timezone aware datetime.
    """
    if not isinstance(dob, datetime):
        dob = datetime(dob.year, dob.month, dob.day)
    if dob.tzinfo is None:
        dob = dob.replace(tzinfo=timezone.utc)

    if dob > datetime.now(timezone.utc):
        raise InvalidInput("Invalid date of birth")
    return dob


def validate_role_assignment(role: UserRole, assigned_wards: list[str]) -> list[str]:
    """Ward admins must be assigned at least one ward, other roles get none.

    Returns:
        list[str]: The wards to store on the account.
    """
    if role == UserRole.WARD_ADMIN:
        if not assigned_wards:
            raise InvalidInput("Ward admins must have at least one assigned ward")
        return assigned_wards
    return []


def username_from_fullname(fullname: str) -> str:
    """Derive a username from a full name, e.g. `Ram Bahadur` -> `ram_bahadur`."""
    return re.sub(r"\s+", "_", fullname.strip().lower())


def prepare_account_update(account: "Account", changes: dict[str, Any], by_super_admin: bool) -> dict[str, Any]:
    """Check a partial update of `account` against the same rules as registration.

    Fields that depend on each other are validated against the stored value
    when only one side changes, e.g. a new city is checked against the
    current ward number.

    Args:
        account (Account): The account as currently stored.
        changes (dict[str, Any]): Fields the client wants to change, already individually validated.
        by_super_admin (bool): Only super admins may change `role` and `assigned_wards`.
            For anybody else those fields are dropped.

    Raises:
        InvalidInput: If the resulting account would be invalid.

    Returns:
        dict[str, Any]: The fields to write.
    """
    changes = dict(changes)
    if not by_super_admin:
        changes.pop("role", None)
        changes.pop("assigned_wards", None)

    if "city" in changes or "ward_number" in changes:
        city = changes.get("city", account.city)
        changes["ward_number"] = validate_ward_number(city, changes.get("ward_number", account.ward_number))

    if "role" in changes or "assigned_wards" in changes:
        role = changes.get("role", account.role)
        changes["assigned_wards"] = validate_role_assignment(
            role, changes.get("assigned_wards", account.assigned_wards)
        )

    if "dob" in changes:
        changes["dob"] = validate_date_of_birth(changes["dob"])

    return changes
