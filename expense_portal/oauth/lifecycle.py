# expense_portal/oauth/lifecycle.py
import logging
from typing import Optional, Tuple

from redis.exceptions import LockError

from ..errors import (
    RefreshFailedError,
    ServerMisconfigured,
    SessionPersistenceError,
    TokenInvalidError,
    Unauthenticated,
)
from ..sessions import SessionData, SessionManager, SessionState, TokenSet
from .google_client import GoogleIdentityClient, build_redirect_uri
from .models import UserProfile

logger = logging.getLogger(__name__)


class TokenLifecycleManager:
    """
    Orchestrates the per-session OAuth state machine:

        Anonymous -> Authenticating -> Authenticated -> (Refreshing) -> Authenticated | Expired

    Authenticating only exists during the round trip to Google, so nothing is stored for
    it. Expired is terminal: the session record is destroyed and the user has to log in
    again. Every refreshed TokenSet is written to the store before the calling operation
    returns.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        identity_client: Optional[GoogleIdentityClient],
        public_base_url: Optional[str] = None,
    ):
        self.session_manager = session_manager
        self.identity_client = identity_client
        self.public_base_url = public_base_url
        logger.info(
            f"TokenLifecycleManager initialized. Identity client: "
            f"{'configured' if identity_client else 'NOT CONFIGURED'}, "
            f"public_base_url: {public_base_url!r}"
        )

    def _client(self) -> GoogleIdentityClient:
        if self.identity_client is None:
            logger.critical("Google OAuth client is not configured (GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET).")
            raise ServerMisconfigured(provider_message="Google OAuth client id/secret missing")
        return self.identity_client

    def redirect_uri_for(self, request_origin: str) -> str:
        return build_redirect_uri(request_origin, self.public_base_url)

    def begin_login(self, request_origin: str) -> str:
        """Authorization URL for the login redirect. Does not touch any session."""
        redirect_uri = self.redirect_uri_for(request_origin)
        auth_url = self._client().build_authorization_url(redirect_uri)
        logger.info(f"begin_login: Redirecting to Google. Redirect URI: {redirect_uri}")
        return auth_url

    async def complete_login(
        self,
        code: str,
        request_origin: str,
        previous_session: Optional[SessionData] = None,
    ) -> SessionData:
        """
        Exchange the code and durably persist a brand-new session holding the tokens.

        The write is awaited before returning, so the redirect that follows can land on
        any replica and still find the session.
        """
        redirect_uri = self.redirect_uri_for(request_origin)
        tokens = await self._client().exchange_code(code, redirect_uri)

        # A new id on every login; an id seen before authentication is never promoted.
        session_data = self.session_manager.new_session()
        session_data.tokens = tokens
        await self.session_manager.save_session(session_data)
        logger.info(f"complete_login: Session {session_data.session_id[:8]}... persisted.")

        if previous_session is not None and previous_session.persisted:
            try:
                await self.session_manager.delete_session(previous_session)
            except SessionPersistenceError:
                logger.warning("complete_login: Could not delete the previous session; it will expire by TTL.")
        return session_data

    async def current_user(self, session_data: SessionData) -> UserProfile:
        """
        Profile of the logged-in user, applying refresh-on-invalid: at most one refresh
        per call, then the session is expired.
        """
        tokens, already_refreshed = await self._ensure_fresh(session_data)
        client = self._client()
        try:
            return await client.fetch_profile(tokens)
        except TokenInvalidError as e:
            logger.info(f"current_user: Access token rejected ({e.provider_message}).")
            if already_refreshed:
                await self.expire_session(session_data, reason="token rejected right after refresh")
                raise Unauthenticated() from e
            tokens = await self.refresh_after_rejection(session_data, tokens)

        try:
            return await client.fetch_profile(tokens)
        except TokenInvalidError as e:
            await self.expire_session(session_data, reason="refreshed token rejected")
            raise Unauthenticated() from e

    async def ensure_fresh_tokens(self, session_data: SessionData) -> TokenSet:
        """Tokens safe to use right now. Expired access tokens are refreshed first."""
        tokens, _ = await self._ensure_fresh(session_data)
        return tokens

    async def _ensure_fresh(self, session_data: SessionData) -> Tuple[TokenSet, bool]:
        state = session_data.state
        if state == SessionState.EXPIRED:
            await self.expire_session(session_data, reason="session TTL elapsed")
            raise Unauthenticated()
        if state == SessionState.ANONYMOUS or session_data.tokens is None:
            raise Unauthenticated()

        tokens = session_data.tokens
        if not tokens.is_expired():
            return tokens, False
        logger.info(f"Access token for session {session_data.session_id[:8]}... expired. Refreshing before use.")
        return await self.refresh_after_rejection(session_data, tokens), True

    async def refresh_after_rejection(self, session_data: SessionData, rejected: TokenSet) -> TokenSet:
        """
        Refresh the session's tokens, single-flight per session id.

        Concurrent callers wait on the store's refresh lock; whoever enters after a
        successful refresh finds a different access token in the store and reuses it
        instead of spending the refresh token a second time.
        """
        session_id = session_data.session_id
        try:
            async with self.session_manager.store.refresh_lock(session_id):
                stored = await self.session_manager.load(session_id)
                if stored is None or stored.tokens is None:
                    session_data.tokens = None
                    session_data.persisted = False
                    logger.info(f"refresh: Session {session_id[:8]}... no longer exists.")
                    raise Unauthenticated()

                if stored.tokens.access_token != rejected.access_token and not stored.tokens.is_expired():
                    logger.info(f"refresh: Session {session_id[:8]}... already refreshed by a concurrent request.")
                    session_data.tokens = stored.tokens
                    return stored.tokens

                try:
                    refreshed = await self._client().refresh(stored.tokens)
                except RefreshFailedError as e:
                    await self.expire_session(session_data, reason=f"refresh failed: {e.provider_message}")
                    raise Unauthenticated() from e

                session_data.tokens = refreshed
                await self.session_manager.save_session(session_data)
                logger.info(f"refresh: Session {session_id[:8]}... refreshed and persisted.")
                return refreshed
        except LockError as e:
            logger.error(f"refresh: Could not acquire refresh lock for session {session_id[:8]}...: {e}")
            raise SessionPersistenceError(provider_message=str(e)) from e

    async def logout(self, session_data: SessionData) -> None:
        """Destroy the session record. Calling it again, or for anonymous sessions, is harmless."""
        await self.session_manager.delete_session(session_data)
        logger.info(f"logout: Session {session_data.session_id[:8]}... destroyed.")

    async def expire_session(self, session_data: SessionData, reason: str) -> None:
        logger.info(f"Session {session_data.session_id[:8]}... expired: {reason}. Destroying record.")
        await self.session_manager.delete_session(session_data)
