# tests/test_redis_session_store.py
import asyncio
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

from expense_portal.oauth import TokenLifecycleManager
from expense_portal.sessions import RedisSessionStore, SessionData, SessionManager, TokenSet
from expense_portal.utils import SessionCookieSigner

from .conftest import TEST_SESSION_SECRET, TEST_SESSION_TTL


@pytest.fixture
def redis_store() -> RedisSessionStore:
    store = RedisSessionStore("redis://localhost:6379/0", session_ttl_seconds=TEST_SESSION_TTL)
    # Stands in for the connection initialize() would open
    store._redis_client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer())
    return store


def _authenticated_session() -> SessionData:
    session_data = SessionData.new(TEST_SESSION_TTL)
    session_data.tokens = TokenSet(
        access_token="A1",
        refresh_token="R1",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    return session_data


@pytest.mark.asyncio
async def test_round_trip(redis_store: RedisSessionStore):
    session_data = _authenticated_session()
    await redis_store.set(session_data)
    assert session_data.persisted

    loaded = await redis_store.get(session_data.session_id)
    assert loaded is not None
    assert loaded.persisted
    assert loaded.tokens.access_token == "A1"
    assert loaded.tokens.refresh_token == "R1"
    assert await redis_store.ping()


@pytest.mark.asyncio
async def test_set_applies_remaining_ttl(redis_store: RedisSessionStore):
    session_data = _authenticated_session()
    session_data.expires_at = datetime.now(timezone.utc) + timedelta(seconds=120)
    await redis_store.set(session_data)

    ttl = await redis_store._redis_client.ttl(redis_store._construct_key(session_data.session_id))
    assert 0 < ttl <= 120


@pytest.mark.asyncio
async def test_destroy_is_idempotent(redis_store: RedisSessionStore):
    session_data = _authenticated_session()
    await redis_store.set(session_data)

    await redis_store.destroy(session_data.session_id)
    await redis_store.destroy(session_data.session_id)
    assert await redis_store.get(session_data.session_id) is None


@pytest.mark.asyncio
async def test_unreadable_record_is_treated_as_missing(redis_store: RedisSessionStore):
    await redis_store._redis_client.set(redis_store._construct_key("broken"), b"not json")
    assert await redis_store.get("broken") is None


@pytest.mark.asyncio
async def test_uninitialized_store_raises():
    store = RedisSessionStore("redis://localhost:6379/0", session_ttl_seconds=TEST_SESSION_TTL)
    with pytest.raises(RuntimeError):
        await store.get("any")


@pytest.mark.asyncio
async def test_refresh_lock_serializes_per_session(redis_store: RedisSessionStore):
    order = []

    async def worker(name: str):
        async with redis_store.refresh_lock("same-session"):
            order.append(f"{name}-in")
            await asyncio.sleep(0.05)
            order.append(f"{name}-out")

    await asyncio.gather(worker("first"), worker("second"))
    assert order in (
        ["first-in", "first-out", "second-in", "second-out"],
        ["second-in", "second-out", "first-in", "first-out"],
    )


@pytest.mark.asyncio
async def test_single_flight_refresh_with_redis(redis_store, identity_client, fake_google):
    session_manager = SessionManager(
        store=redis_store, signer=SessionCookieSigner(TEST_SESSION_SECRET, TEST_SESSION_TTL)
    )
    lifecycle = TokenLifecycleManager(session_manager, identity_client)
    session_data = await lifecycle.complete_login("abc123", "http://localhost:8000")
    fake_google.revoke_access_token("A1")
    first_copy = await redis_store.get(session_data.session_id)
    second_copy = await redis_store.get(session_data.session_id)

    profiles = await asyncio.gather(
        lifecycle.current_user(first_copy),
        lifecycle.current_user(second_copy),
    )

    assert [p.name for p in profiles] == ["Ana Silva", "Ana Silva"]
    assert fake_google.refresh_calls == 1
    stored = await redis_store.get(session_data.session_id)
    assert stored.tokens.access_token == "A2"
    assert stored.tokens.refresh_token == "R1"
