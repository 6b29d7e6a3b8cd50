"""Logfire setup shared by the application."""

import logfire

from .config import Settings


def configure_logging(settings: Settings) -> None:
    """Configure logfire. Spans only leave the process when a write token is set."""
    logfire.configure(
        token=settings.logfire_write_token,
        service_name="hello-samaj-api",
        environment=settings.app_env,
        send_to_logfire="if-token-present",
    )


def instrument_libraries() -> None:
    """Trace MongoDB, Redis and outbound HTTP (SMS gateway) calls."""
    logfire.instrument_pymongo()
    logfire.instrument_redis()
    logfire.instrument_httpx()
