import logfire

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import redis.asyncio

from motor.motor_asyncio import AsyncIOMotorClient
from beanie import init_beanie

from models.users import User

from routers import auth, users

from security.sessions import SessionTokenService

from services.accounts import BeanieAccountStore
from services.delivery import CodeDispatcher
from services.email import get_email_service
from services.otp_store import MemoryPendingVerificationStore, RedisPendingVerificationStore
from services.sms import get_sms_service
from services.template import EmailTemplates
from services.verification import LoginVerificationService

from utils.config import get_settings
from utils.exceptions import ApiError
from utils.logger import configure_logging, instrument_libraries

settings = get_settings()

# Configure logfire BEFORE creating FastAPI app
configure_logging(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logfire.info("Starting Hello Samaj API...")
    instrument_libraries()

    client = AsyncIOMotorClient(
        settings.database_connection_string, tz_aware=True
    )  # * Connect to MongoDB

    await init_beanie(
        database=client[settings.database_name],
        document_models=[User],
    )
    logfire.info("Database initialized successfully")

    redis_connection = None
    if settings.otp_store == "redis":
        redis_connection = redis.asyncio.from_url(settings.redis_url, decode_responses=True)
        await redis_connection.ping()
        pending_store = RedisPendingVerificationStore(redis_connection)
        logfire.info("Redis connection established")
    else:
        pending_store = MemoryPendingVerificationStore()
        logfire.warning("Using in-memory OTP store, only safe with a single worker")

    account_store = BeanieAccountStore()
    dispatcher = CodeDispatcher(
        email_service=get_email_service(settings),
        sms_service=get_sms_service(settings),
        templates=EmailTemplates(),
        timeout=settings.delivery_timeout_seconds,
    )

    app.state.account_store = account_store
    app.state.verification_service = LoginVerificationService(
        account_store=account_store,
        pending_store=pending_store,
        dispatcher=dispatcher,
        code_length=settings.otp_code_length,
        code_expiry=settings.code_expiry,
        max_attempts=settings.otp_max_attempts,
    )
    app.state.session_service = SessionTokenService(account_store, settings)

    yield

    logfire.info("Shutting down Hello Samaj API...")
    client.close()
    if redis_connection is not None:
        await redis_connection.aclose()
    logfire.info("Application shutdown complete")


def error_body(status_code: int, message: str) -> dict:
    return {"success": False, "message": message, "statusCode": status_code}


def describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"

    error = errors[0]
    field = error["loc"][-1] if error.get("loc") else "body"
    if error.get("type") == "missing":
        return f"Field '{field}' is required"
    return f"Invalid value for '{field}': {error.get('msg', 'invalid')}"


app = FastAPI(
    title="Hello Samaj API",
    description="Accounts and OTP based login for the Hello Samaj civic complaint platform.",
    lifespan=lifespan,
)


@app.exception_handler(ApiError)
async def handle_api_error(request: Request, exc: ApiError):
    if exc.status_code >= 500:
        logfire.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logfire.info(f"{request.method} {request.url.path} rejected with {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, exc.message))


@app.exception_handler(RequestValidationError)
async def handle_request_validation_error(request: Request, exc: RequestValidationError):
    message = describe_validation_error(exc)
    return JSONResponse(status_code=400, content=error_body(400, message))


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logfire.exception(f"Unexpected error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=error_body(500, "Internal Server Error"))


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS", "PUT"],
    allow_headers=["Content-Type", "Authorization"],
)
app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["127.0.0.1"])
app.add_middleware(GZipMiddleware, minimum_size=500)

app.include_router(auth.router)
app.include_router(users.router)
