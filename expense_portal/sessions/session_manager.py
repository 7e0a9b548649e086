# expense_portal/sessions/session_manager.py
import logging
from typing import Optional

from redis.exceptions import RedisError

from ..errors import SessionPersistenceError
from ..utils.security import SessionCookieSigner
from .session_data import SessionData
from .session_store import AbstractSessionStore

logger = logging.getLogger(__name__)


class SessionManager:
    """Manages session lifecycle including creation, retrieval, persistence, and deletion."""

    def __init__(self, store: AbstractSessionStore, signer: SessionCookieSigner):
        if not isinstance(store, AbstractSessionStore):
            raise TypeError("SessionManager requires an instance of AbstractSessionStore.")
        self.store = store
        self.signer = signer
        logger.info(f"SessionManager initialized with store: {type(store).__name__}")

    @property
    def ttl_seconds(self) -> int:
        return self.store.session_ttl_seconds

    def new_session(self) -> SessionData:
        """A fresh anonymous session. Not written to the store until it carries tokens."""
        return SessionData.new(self.ttl_seconds)

    async def load(self, session_id: str) -> Optional[SessionData]:
        try:
            return await self.store.get(session_id)
        except (RedisError, RuntimeError) as e:
            logger.error(f"load: Session store read failed for session {session_id[:8]}...: {e}", exc_info=True)
            raise SessionPersistenceError(provider_message=str(e)) from e

    async def get_session(self, cookie_value: Optional[str]) -> SessionData:
        """
        Resolve the session carried by a request cookie.

        Missing, forged, expired or unknown cookies all yield a new anonymous session.
        """
        session_id = self.signer.unsign(cookie_value)
        if session_id:
            session_data = await self.load(session_id)
            if session_data:
                logger.debug(f"get_session: Existing session loaded: {session_id[:8]}...")
                return session_data
            logger.info(f"get_session: Cookie referenced unknown or expired session {session_id[:8]}...")
        return self.new_session()

    async def save_session(self, session_data: SessionData) -> None:
        """
        Persist session data and wait for the store to acknowledge the write.
        """
        if not isinstance(session_data, SessionData):
            logger.error(f"save_session: Attempted to save non-SessionData object: {type(session_data)}")
            raise TypeError("session_data must be an instance of SessionData.")
        try:
            await self.store.set(session_data)
            logger.info(f"save_session: Successfully saved session {session_data.session_id[:8]}...")
        except (RedisError, RuntimeError) as e:
            logger.error(
                f"save_session: Failed to save session {session_data.session_id[:8]}...: {e}",
                exc_info=True
            )
            raise SessionPersistenceError(provider_message=str(e)) from e

    async def delete_session(self, session_data: SessionData) -> None:
        """Delete a session from the store. Safe to call for sessions that were never saved."""
        try:
            await self.store.destroy(session_data.session_id)
        except (RedisError, RuntimeError) as e:
            logger.error(
                f"delete_session: Error deleting session {session_data.session_id[:8]}...: {e}",
                exc_info=True
            )
            raise SessionPersistenceError(provider_message=str(e)) from e
        session_data.tokens = None
        session_data.persisted = False

    def cookie_value(self, session_data: SessionData) -> str:
        return self.signer.sign(session_data.session_id)
