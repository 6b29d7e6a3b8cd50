from datetime import timedelta

import pytest

from security.helpers import decode_access_token, decode_refresh_token, utcnow
from security.sessions import SessionTokenService
from utils.exceptions import AuthError, InternalError, NotFound

from tests.fakes import TEST_SECRET_KEY


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("stay_signed_in", "lifetime"),
    [(False, timedelta(days=1)), (True, timedelta(days=30))],
)
async def test_long_lived_token_lifetime(session_service, account_store, user, stay_signed_in, lifetime) -> None:
    before = utcnow()
    tokens = await session_service.issue_session(user.id, stay_signed_in)

    assert abs(tokens.refresh_token_expiry - (before + lifetime)) < timedelta(seconds=5)
    assert tokens.max_age == int(lifetime.total_seconds())

    stored = account_store.accounts[user.id]
    assert stored.refresh_token == tokens.refresh_token
    assert stored.refresh_token_expiry == tokens.refresh_token_expiry


@pytest.mark.asyncio
async def test_tokens_carry_the_account(session_service, user) -> None:
    tokens = await session_service.issue_session(user.id)

    access = decode_access_token(tokens.access_token, TEST_SECRET_KEY)
    refresh = decode_refresh_token(tokens.refresh_token, TEST_SECRET_KEY)

    assert access.sub == user.id
    assert access.email == user.email
    assert refresh.sub == user.id
    assert tokens.account.id == user.id
    assert "password" not in tokens.account.model_dump()


@pytest.mark.asyncio
async def test_tokens_do_not_cross_types(session_service, user) -> None:
    tokens = await session_service.issue_session(user.id)

    assert decode_access_token(tokens.refresh_token, TEST_SECRET_KEY) is None
    assert decode_refresh_token(tokens.access_token, TEST_SECRET_KEY) is None


@pytest.mark.asyncio
async def test_tampered_or_foreign_tokens_are_rejected(session_service, user) -> None:
    tokens = await session_service.issue_session(user.id)

    assert decode_access_token(tokens.access_token[:-4] + "AAAA", TEST_SECRET_KEY) is None
    assert decode_access_token(tokens.access_token, "another-secret-key-of-32-chars!!") is None
    assert decode_refresh_token("not-a-token", TEST_SECRET_KEY) is None


@pytest.mark.asyncio
async def test_issue_session_for_missing_account(session_service) -> None:
    with pytest.raises(NotFound):
        await session_service.issue_session("665f1c2e9b1d4a0012345678")


@pytest.mark.asyncio
async def test_issue_session_persistence_failure(session_service, account_store, user) -> None:
    account_store.fail_writes = True

    with pytest.raises(InternalError):
        await session_service.issue_session(user.id)


@pytest.mark.asyncio
async def test_renew_returns_fresh_access_token(session_service, user) -> None:
    tokens = await session_service.issue_session(user.id, stay_signed_in=True)

    renewed = await session_service.renew(tokens.refresh_token)

    assert decode_access_token(renewed.access_token, TEST_SECRET_KEY).sub == user.id
    assert renewed.refresh_token_expiry == tokens.refresh_token_expiry


@pytest.mark.asyncio
async def test_new_login_supersedes_previous_long_lived_token(session_service, user) -> None:
    first = await session_service.issue_session(user.id)
    second = await session_service.issue_session(user.id)

    assert first.refresh_token != second.refresh_token
    with pytest.raises(AuthError) as exc_info:
        await session_service.renew(first.refresh_token)
    assert exc_info.value.status_code == 401

    await session_service.renew(second.refresh_token)


@pytest.mark.asyncio
async def test_renew_after_stored_expiry_clears_token(account_store, settings, clock, user) -> None:
    service = SessionTokenService(account_store, settings, clock=clock)
    tokens = await service.issue_session(user.id)

    clock.advance(days=1, seconds=1)

    with pytest.raises(AuthError):
        await service.renew(tokens.refresh_token)
    assert account_store.accounts[user.id].refresh_token is None


@pytest.mark.asyncio
async def test_revoke_clears_the_token(session_service, account_store, user) -> None:
    tokens = await session_service.issue_session(user.id)

    await session_service.revoke(tokens.refresh_token)

    assert account_store.accounts[user.id].refresh_token is None
    assert account_store.accounts[user.id].refresh_token_expiry is None
    with pytest.raises(AuthError):
        await session_service.renew(tokens.refresh_token)


@pytest.mark.asyncio
async def test_revoke_is_idempotent(session_service, account_store, user) -> None:
    tokens = await session_service.issue_session(user.id)

    await session_service.revoke(tokens.refresh_token)
    await session_service.revoke(tokens.refresh_token)
    await session_service.revoke("never-issued")

    assert account_store.accounts[user.id].refresh_token is None


@pytest.mark.asyncio
async def test_revoking_a_superseded_token_keeps_the_current_one(session_service, account_store, user) -> None:
    first = await session_service.issue_session(user.id)
    second = await session_service.issue_session(user.id)

    await session_service.revoke(first.refresh_token)

    assert account_store.accounts[user.id].refresh_token == second.refresh_token


@pytest.mark.asyncio
async def test_tokens_follow_the_injected_clock(account_store, settings, clock, user) -> None:
    clock.advance(days=-3)
    service = SessionTokenService(account_store, settings, clock=clock)

    tokens = await service.issue_session(user.id)

    # Issued three days ago by the service clock, so already stale by the wall clock
    assert decode_access_token(tokens.access_token, TEST_SECRET_KEY) is None
    access = decode_access_token(tokens.access_token, TEST_SECRET_KEY, now=clock())
    assert access.exp == (clock() + settings.access_token_expiry).timestamp()
    assert decode_refresh_token(tokens.refresh_token, TEST_SECRET_KEY, now=clock()).sub == user.id
