# tests/test_sessions.py
import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from expense_portal.sessions import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionData,
    SessionManager,
    SessionState,
    TokenSet,
    build_session_store,
)
from expense_portal.utils import SessionCookieSigner

from .conftest import TEST_SESSION_SECRET, TEST_SESSION_TTL


def _authenticated_session() -> SessionData:
    session_data = SessionData.new(TEST_SESSION_TTL)
    session_data.tokens = TokenSet(
        access_token="A1",
        refresh_token="R1",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    return session_data


def test_token_set_expiry_includes_skew():
    now = datetime.now(timezone.utc)
    assert TokenSet(access_token="A1", expires_at=now + timedelta(seconds=10)).is_expired()
    assert not TokenSet(access_token="A1", expires_at=now + timedelta(minutes=5)).is_expired()
    assert not TokenSet(access_token="A1").is_expired()


def test_merged_with_keeps_refresh_token_when_omitted():
    current = TokenSet(access_token="A1", refresh_token="R1", scopes=["openid"])
    refreshed = current.merged_with(TokenSet(access_token="A2"))
    assert refreshed.access_token == "A2"
    assert refreshed.refresh_token == "R1"
    assert refreshed.scopes == ["openid"]

    rotated = current.merged_with(TokenSet(access_token="A3", refresh_token="R2"))
    assert rotated.refresh_token == "R2"


def test_session_states():
    session_data = SessionData.new(TEST_SESSION_TTL)
    assert session_data.state == SessionState.ANONYMOUS

    session_data.tokens = TokenSet(access_token="A1")
    assert session_data.state == SessionState.AUTHENTICATED

    session_data.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    assert session_data.state == SessionState.EXPIRED


@pytest.mark.asyncio
async def test_in_memory_store_round_trip(session_store):
    session_data = _authenticated_session()
    await session_store.set(session_data)
    assert session_data.persisted

    loaded = await session_store.get(session_data.session_id)
    assert loaded is not None
    assert loaded is not session_data
    assert loaded.persisted
    assert loaded.tokens.access_token == "A1"
    assert loaded.tokens.refresh_token == "R1"


@pytest.mark.asyncio
async def test_in_memory_store_drops_expired_sessions(session_store):
    session_data = _authenticated_session()
    session_data.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    await session_store.set(session_data)

    assert await session_store.get(session_data.session_id) is None


@pytest.mark.asyncio
async def test_in_memory_store_destroy_is_idempotent(session_store):
    session_data = _authenticated_session()
    await session_store.set(session_data)

    await session_store.destroy(session_data.session_id)
    await session_store.destroy(session_data.session_id)
    assert await session_store.get(session_data.session_id) is None


@pytest.mark.asyncio
async def test_refresh_lock_serializes_per_session(session_store):
    order = []

    async def worker(name: str):
        async with session_store.refresh_lock("same-session"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("first"), worker("second"))
    assert order in (
        ["first-in", "first-out", "second-in", "second-out"],
        ["second-in", "second-out", "first-in", "first-out"],
    )


def test_build_session_store_selection():
    assert isinstance(build_session_store(None, TEST_SESSION_TTL, is_production=False), InMemorySessionStore)
    assert isinstance(
        build_session_store("redis://localhost:6379/0", TEST_SESSION_TTL, is_production=True), RedisSessionStore
    )
    with pytest.raises(ValueError):
        build_session_store(None, TEST_SESSION_TTL, is_production=True)


def test_cookie_signer_rejects_forged_and_foreign_cookies():
    signer = SessionCookieSigner(TEST_SESSION_SECRET, TEST_SESSION_TTL)
    cookie = signer.sign("session-id-1")

    assert cookie != "session-id-1"
    assert signer.unsign(cookie) == "session-id-1"
    assert signer.unsign("session-id-1") is None
    assert signer.unsign(None) is None
    assert SessionCookieSigner("another-secret", TEST_SESSION_TTL).unsign(cookie) is None


def test_cookie_signer_without_secret_is_ephemeral():
    signer = SessionCookieSigner(None, TEST_SESSION_TTL)
    assert signer.ephemeral
    assert signer.unsign(signer.sign("abc")) == "abc"


@pytest.mark.asyncio
async def test_session_manager_resolves_cookies(session_manager: SessionManager):
    session_data = _authenticated_session()
    await session_manager.save_session(session_data)

    loaded = await session_manager.get_session(session_manager.cookie_value(session_data))
    assert loaded.session_id == session_data.session_id
    assert loaded.is_authenticated

    forged = await session_manager.get_session("not-a-valid-cookie")
    assert forged.session_id != session_data.session_id
    assert forged.state == SessionState.ANONYMOUS
    assert not forged.persisted


@pytest.mark.asyncio
async def test_delete_session_clears_tokens(session_manager: SessionManager, session_store):
    session_data = _authenticated_session()
    await session_manager.save_session(session_data)

    await session_manager.delete_session(session_data)
    assert session_data.tokens is None
    assert not session_data.persisted
    assert await session_store.get(session_data.session_id) is None


@pytest.mark.asyncio
async def test_in_memory_store_forgets_lock_of_expired_session(session_store):
    session_data = _authenticated_session()
    await session_store.set(session_data)
    async with session_store.refresh_lock(session_data.session_id):
        pass
    assert session_data.session_id in session_store._locks

    session_data.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
    await session_store.set(session_data)

    assert await session_store.get(session_data.session_id) is None
    assert session_data.session_id not in session_store._locks
