"""Application settings loaded from the environment."""

import os

from functools import lru_cache
from datetime import timedelta

from dotenv import load_dotenv

from pydantic import BaseModel, Field

from typing import Annotated, Literal

load_dotenv()


class Settings(BaseModel):
    """Runtime configuration shared by the services.

    Every component receives the values it needs from an instance of this
    model instead of reading environment variables on its own.
    """

    app_env: Annotated[str, Field(default="development")]
    secret_key: Annotated[str, Field(min_length=32, max_length=32, description="Key used for direct JWE encryption")]
    access_token_expire_minutes: Annotated[int, Field(default=15, gt=0)]

    otp_code_length: Annotated[int, Field(default=6, ge=4, le=10)]
    otp_expire_minutes: Annotated[int, Field(default=10, gt=0)]
    otp_max_attempts: Annotated[int, Field(default=5, gt=0)]
    otp_store: Annotated[Literal["redis", "memory"], Field(default="redis")]
    delivery_timeout_seconds: Annotated[float, Field(default=10.0, gt=0)]

    redis_url: Annotated[str, Field(default="redis://localhost:6379/0")]
    database_connection_string: Annotated[str, Field(default="mongodb://localhost:27017")]
    database_name: Annotated[str, Field(default="hello_samaj")]

    smtp_server: Annotated[str | None, Field(default=None)]
    smtp_port: Annotated[int, Field(default=587)]
    smtp_username: Annotated[str | None, Field(default=None)]
    smtp_password: Annotated[str | None, Field(default=None)]
    from_email: Annotated[str | None, Field(default=None)]

    sms_gateway_url: Annotated[str | None, Field(default=None)]
    sms_gateway_api_key: Annotated[str | None, Field(default=None)]

    cors_origins: Annotated[list[str], Field(default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"])]
    logfire_write_token: Annotated[str | None, Field(default=None)]

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def code_expiry(self) -> timedelta:
        return timedelta(minutes=self.otp_expire_minutes)

    @property
    def access_token_expiry(self) -> timedelta:
        return timedelta(minutes=self.access_token_expire_minutes)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and `.env`, if present)."""
        values = {
            "app_env": os.getenv("APP_ENV"),
            "secret_key": os.getenv("SECRET_KEY"),
            "access_token_expire_minutes": os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES"),
            "otp_code_length": os.getenv("OTP_CODE_LENGTH"),
            "otp_expire_minutes": os.getenv("OTP_EXPIRE_MINUTES"),
            "otp_max_attempts": os.getenv("OTP_MAX_ATTEMPTS"),
            "otp_store": os.getenv("OTP_STORE"),
            "delivery_timeout_seconds": os.getenv("DELIVERY_TIMEOUT_SECONDS"),
            "redis_url": os.getenv("REDIS_URL"),
            "database_connection_string": os.getenv("DATABASE_CONNECTION_STRING"),
            "database_name": os.getenv("DATABASE_NAME"),
            "smtp_server": os.getenv("SMTP_SERVER"),
            "smtp_port": os.getenv("SMTP_PORT"),
            "smtp_username": os.getenv("SMTP_USERNAME"),
            "smtp_password": os.getenv("SMTP_PASSWORD"),
            "from_email": os.getenv("FROM_EMAIL"),
            "sms_gateway_url": os.getenv("SMS_GATEWAY_URL"),
            "sms_gateway_api_key": os.getenv("SMS_GATEWAY_API_KEY"),
            "logfire_write_token": os.getenv("LOGFIRE_WRITE_TOKEN"),
        }

        origins = [
            origin
            for origin in (os.getenv("CORS_ORIGIN"), os.getenv("USER_CORS_ORIGIN"))
            if origin
        ]
        if origins:
            values["cors_origins"] = origins

        # Unset variables fall back to the field defaults
        return cls(**{key: value for key, value in values.items() if value is not None})


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings.from_env()
