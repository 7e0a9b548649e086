# expense_portal/sessions/session_store.py
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import redis.asyncio as aioredis

from .session_data import SessionData

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 3600 * 24
# Upper bound for one refresh round trip while a session's refresh lock is held
REFRESH_LOCK_TIMEOUT_SECONDS = 30


class AbstractSessionStore(ABC):
    """
    Interface for session storage. Implementations must make get/set/destroy
    atomic per session id.
    """

    def __init__(self, session_ttl_seconds: Optional[int] = None):
        self.session_ttl_seconds = session_ttl_seconds or DEFAULT_SESSION_TTL_SECONDS

    @abstractmethod
    async def get(self, session_id: str) -> Optional[SessionData]:
        """Load session data by id, or None if absent or expired."""
        pass

    @abstractmethod
    async def set(self, session_data: SessionData) -> None:
        """Write session data. Returns only once the write is visible to other readers."""
        pass

    @abstractmethod
    async def destroy(self, session_id: str) -> None:
        """Delete a session. Deleting a missing session is not an error."""
        pass

    @abstractmethod
    def refresh_lock(self, session_id: str):
        """Async context manager serializing token refreshes for one session."""
        pass

    async def initialize(self) -> None:
        pass

    async def teardown(self) -> None:
        pass

    async def ping(self) -> bool:
        return True

    def _construct_key(self, session_id: str) -> str:
        """
        Standardized key for session storage.
        Format: expense_portal:session:{session_id}
        """
        if not session_id:
            raise ValueError("session_id is required to construct a session key.")
        return f"expense_portal:session:{session_id}"


class InMemorySessionStore(AbstractSessionStore):
    """Process-local store for development. Sessions do not survive a restart or span replicas."""

    def __init__(self, session_ttl_seconds: Optional[int] = None):
        super().__init__(session_ttl_seconds)
        self._sessions: Dict[str, str] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        logger.info(f"InMemorySessionStore initialized. Session TTL: {self.session_ttl_seconds}s")

    async def get(self, session_id: str) -> Optional[SessionData]:
        key = self._construct_key(session_id)
        raw = self._sessions.get(key)
        if raw is None:
            logger.debug(f"No session found for key: '{key}'")
            return None
        try:
            session_data = SessionData.model_validate_json(raw)
        except Exception as e:
            logger.error(f"Error deserializing session for key {key}: {e}", exc_info=True)
            return None
        if session_data.is_expired():
            logger.info(f"Session for key '{key}' expired. Removing it.")
            self._sessions.pop(key, None)
            self._locks.pop(session_id, None)
            return None
        session_data.persisted = True
        return session_data

    async def set(self, session_data: SessionData) -> None:
        key = self._construct_key(session_data.session_id)
        session_data.touch()
        # Stored as JSON so callers never share a mutable object with the store
        self._sessions[key] = session_data.model_dump_json()
        session_data.persisted = True
        logger.debug(f"Saved session for key: '{key}'")

    async def destroy(self, session_id: str) -> None:
        key = self._construct_key(session_id)
        if self._sessions.pop(key, None) is not None:
            logger.info(f"Session deleted for key: {key}")
        else:
            logger.info(f"No session found to delete for key: {key}")
        self._locks.pop(session_id, None)

    @asynccontextmanager
    async def refresh_lock(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            yield


class RedisSessionStore(AbstractSessionStore):
    """
    Redis-backed store shared by every replica, with automatic TTL management.
    """

    def __init__(self, redis_url: str, session_ttl_seconds: Optional[int] = None):
        super().__init__(session_ttl_seconds)
        if not redis_url:
            raise ValueError("redis_url is required for RedisSessionStore.")
        self.redis_url = redis_url
        self._redis_client: Optional[aioredis.Redis] = None
        logger.info(f"RedisSessionStore initialized. Session TTL: {self.session_ttl_seconds}s")

    async def initialize(self) -> None:
        """
        Establishes the Redis connection. Skips initialization if a client already exists.
        """
        if self._redis_client:
            logger.warning("Redis client already initialized. Skipping re-initialization.")
            return
        try:
            # Keep as bytes for explicit encoding control
            self._redis_client = aioredis.from_url(self.redis_url, decode_responses=False)
            await self._redis_client.ping()
            logger.info("Successfully connected to Redis and pinged.")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}", exc_info=True)
            self._redis_client = None
            raise

    async def teardown(self) -> None:
        if self._redis_client:
            logger.info("Closing Redis connection.")
            await self._redis_client.aclose()
            self._redis_client = None
            logger.info("Redis connection closed.")
        else:
            logger.info("No active Redis connection to close.")

    async def _get_client(self) -> aioredis.Redis:
        if not self._redis_client:
            logger.error("Redis client not initialized. Call initialize() first.")
            raise RuntimeError("RedisSessionStore not initialized. Call initialize() first.")
        return self._redis_client

    async def ping(self) -> bool:
        client = await self._get_client()
        return bool(await client.ping())

    async def get(self, session_id: str) -> Optional[SessionData]:
        client = await self._get_client()
        key = self._construct_key(session_id)
        logger.debug(f"Attempting to load session for key: '{key}'")

        session_json_bytes = await client.get(key)
        if not session_json_bytes:
            logger.debug(f"No session found for key: '{key}'")
            return None
        try:
            session_data = SessionData.model_validate_json(session_json_bytes.decode("utf-8"))
        except Exception as e:
            logger.error(f"Error deserializing session for key {key}: {e}", exc_info=True)
            return None
        session_data.persisted = True
        return session_data

    async def set(self, session_data: SessionData) -> None:
        client = await self._get_client()
        key = self._construct_key(session_data.session_id)
        session_data.touch()
        ttl = session_data.remaining_ttl_seconds(self.session_ttl_seconds)

        set_result = await client.set(key, session_data.model_dump_json().encode("utf-8"), ex=ttl)
        if not set_result:
            logger.error(f"Failed to save session for key: '{key}'. SET result: {set_result}")
            raise RuntimeError(f"Redis did not acknowledge SET for session key '{key}'.")
        session_data.persisted = True
        logger.debug(f"Successfully saved session for key: '{key}', TTL: {ttl}s")

    async def destroy(self, session_id: str) -> None:
        client = await self._get_client()
        key = self._construct_key(session_id)
        deleted_count = await client.delete(key)
        if deleted_count > 0:
            logger.info(f"Session deleted successfully for key: {key}")
        else:
            logger.info(f"No session found to delete for key: {key}")

    @asynccontextmanager
    async def refresh_lock(self, session_id: str) -> AsyncIterator[None]:
        client = await self._get_client()
        lock = client.lock(
            f"{self._construct_key(session_id)}:refresh_lock",
            timeout=REFRESH_LOCK_TIMEOUT_SECONDS,
            blocking_timeout=REFRESH_LOCK_TIMEOUT_SECONDS,
        )
        async with lock:
            yield


def build_session_store(
    redis_url: Optional[str],
    session_ttl_seconds: int,
    is_production: bool,
) -> AbstractSessionStore:
    """
    Factory returning the session store for the deployment.

    Production requires Redis so every replica sees the same sessions.
    """
    if redis_url:
        logger.info("Using RedisSessionStore for sessions.")
        return RedisSessionStore(redis_url, session_ttl_seconds=session_ttl_seconds)
    if is_production:
        raise ValueError("REDIS_URL must be configured when ENVIRONMENT=production.")
    logger.warning("REDIS_URL not set. Using InMemorySessionStore (development only).")
    return InMemorySessionStore(session_ttl_seconds=session_ttl_seconds)
