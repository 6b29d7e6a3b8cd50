"""Contains all models commonly used across different modules."""
from enum import Enum


class UserRole(str, Enum):
    """Enumeration of account roles."""
    USER = "user"
    WARD_ADMIN = "ward_admin"
    SUPER_ADMIN = "super_admin"


ADMIN_ROLES = frozenset({UserRole.WARD_ADMIN, UserRole.SUPER_ADMIN})


class DeliveryChannel(str, Enum):
    """Channels a one-time code can be delivered through."""
    EMAIL = "email"
    SMS = "sms"


class City(str, Enum):
    """Cities served by the application."""
    KATHMANDU = "Kathmandu"
    LALITPUR = "Lalitpur"
    BHAKTAPUR = "Bhaktapur"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"

