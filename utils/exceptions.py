"""Error taxonomy shared by the services and rendered by the API boundary."""

from fastapi import status


class ApiError(Exception):
    """Base class for errors that map onto an HTTP response.

    Args:
        message (str): Human readable message returned to the client.
        status_code (int | None, optional): Overrides the class default status code.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal Server Error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidInput(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class InvalidChannel(InvalidInput):
    default_message = "Invalid delivery method. Use sms or email"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class AuthError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Authentication failed"


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to perform this action"


class Expired(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Verification code expired. Please request a new code."


class AttemptsExhausted(ApiError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many failed attempts. Please request a new code."


class DeliveryError(ApiError):
    """Outbound transport rejected or timed out. Safe to retry."""

    default_message = "Sorry, we can't send the verification code at the moment. Please try again later."


class InternalError(ApiError):
    """Storage failure that the caller cannot recover from by retrying."""

    default_message = "Something went wrong while generating access token and refresh token"
