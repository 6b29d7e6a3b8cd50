import os

from tests.fakes import TEST_PASSWORD, TEST_SECRET_KEY

# main.py reads its settings at import time
os.environ.setdefault("SECRET_KEY", TEST_SECRET_KEY)
os.environ.setdefault("OTP_STORE", "memory")

from collections.abc import AsyncGenerator
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from models.helpers import City, Gender, UserRole
from schema.users import Account
from security.helpers import get_password_hash
from security.sessions import SessionTokenService, get_session_service
from services.accounts import get_account_store
from services.delivery import CodeDispatcher
from services.otp_store import MemoryPendingVerificationStore
from services.template import EmailTemplates
from services.verification import LoginVerificationService, get_verification_service
from utils.config import Settings, get_settings

from tests.fakes import FakeClock, FakeEmailService, FakeSMSService, MemoryAccountStore


@pytest.fixture
def settings() -> Settings:
    return Settings(secret_key=TEST_SECRET_KEY, otp_store="memory", delivery_timeout_seconds=0.5)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def account_store() -> MemoryAccountStore:
    return MemoryAccountStore()


@pytest.fixture
def pending_store() -> MemoryPendingVerificationStore:
    return MemoryPendingVerificationStore()


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def sms_service() -> FakeSMSService:
    return FakeSMSService()


@pytest.fixture
def dispatcher(email_service, sms_service, settings) -> CodeDispatcher:
    return CodeDispatcher(
        email_service=email_service,
        sms_service=sms_service,
        templates=EmailTemplates(),
        timeout=settings.delivery_timeout_seconds,
    )


@pytest.fixture
def verification_service(account_store, pending_store, dispatcher, clock, settings) -> LoginVerificationService:
    return LoginVerificationService(
        account_store=account_store,
        pending_store=pending_store,
        dispatcher=dispatcher,
        code_length=settings.otp_code_length,
        code_expiry=settings.code_expiry,
        max_attempts=settings.otp_max_attempts,
        clock=clock,
    )


@pytest.fixture
def session_service(account_store, settings) -> SessionTokenService:
    return SessionTokenService(account_store, settings)


async def create_account(
    store: MemoryAccountStore,
    email: str = "ram.sharma@gmail.com",
    phone_number: str = "9800000001",
    role: UserRole = UserRole.USER,
    password: str = TEST_PASSWORD,
) -> Account:
    return await store.create(
        {
            "fullname": "ram sharma",
            "username": email.split("@")[0],
            "email": email,
            "phone_number": phone_number,
            "password": get_password_hash(password),
            "city": City.KATHMANDU,
            "ward_number": "4",
            "tole": "baneshwor",
            "gender": Gender.MALE,
            "dob": datetime(1995, 5, 17, tzinfo=timezone.utc),
            "role": role,
            "assigned_wards": ["4"] if role == UserRole.WARD_ADMIN else [],
        }
    )


@pytest_asyncio.fixture
async def user(account_store) -> Account:
    return await create_account(account_store)


@pytest_asyncio.fixture
async def ward_admin(account_store) -> Account:
    return await create_account(
        account_store,
        email="ward.admin@gmail.com",
        phone_number="9800000002",
        role=UserRole.WARD_ADMIN,
    )


@pytest_asyncio.fixture
async def super_admin(account_store) -> Account:
    return await create_account(
        account_store,
        email="super.admin@gmail.com",
        phone_number="9800000003",
        role=UserRole.SUPER_ADMIN,
    )


@pytest_asyncio.fixture
async def client(
    settings, account_store, verification_service, session_service
) -> AsyncGenerator[AsyncClient, None]:
    """Client talking to the app with in-memory stores and fake transports."""
    from main import app

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_account_store] = lambda: account_store
    app.dependency_overrides[get_verification_service] = lambda: verification_service
    app.dependency_overrides[get_session_service] = lambda: session_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
