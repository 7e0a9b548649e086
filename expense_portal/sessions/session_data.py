# expense_portal/sessions/session_data.py
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime, timedelta, timezone
from enum import Enum
import secrets

# Tokens this close to expiry are treated as already expired
TOKEN_EXPIRY_SKEW = timedelta(seconds=30)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_session_id() -> str:
    return secrets.token_urlsafe(32)


class SessionState(str, Enum):
    """Lifecycle states of a session. Derived from SessionData, never stored."""
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    EXPIRED = "expired"


class TokenSet(BaseModel):
    """Access/refresh credential pair issued by Google for one session."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=list)
    obtained_at: datetime = Field(default_factory=_utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        now = now or _utcnow()
        return self.expires_at <= now + TOKEN_EXPIRY_SKEW

    def merged_with(self, refreshed: "TokenSet") -> "TokenSet":
        """
        Combine a refresh response with the current set.

        Google usually omits refresh_token on refresh; the existing one is kept.
        """
        return refreshed.model_copy(update={
            "refresh_token": refreshed.refresh_token or self.refresh_token,
            "scopes": refreshed.scopes or self.scopes,
        })


class SessionData(BaseModel):
    """
    Server-side record linking a client's session cookie to its TokenSet.

    Only the session_id travels to the browser (signed inside the cookie).
    """

    session_id: str = Field(default_factory=generate_session_id)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    expires_at: Optional[datetime] = None
    tokens: Optional[TokenSet] = None

    # Set when the record was loaded from, or written to, the store
    persisted: bool = Field(default=False, exclude=True)

    model_config = {"validate_assignment": True}

    @classmethod
    def new(cls, ttl_seconds: int) -> "SessionData":
        now = _utcnow()
        return cls(created_at=now, updated_at=now, expires_at=now + timedelta(seconds=ttl_seconds))

    @property
    def is_authenticated(self) -> bool:
        return self.tokens is not None and bool(self.tokens.access_token)

    @property
    def state(self) -> SessionState:
        if self.is_expired():
            return SessionState.EXPIRED
        if not self.is_authenticated:
            return SessionState.ANONYMOUS
        return SessionState.AUTHENTICATED

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or _utcnow())

    def remaining_ttl_seconds(self, default_ttl: int) -> int:
        if self.expires_at is None:
            return default_ttl
        return max(int((self.expires_at - _utcnow()).total_seconds()), 1)

    def touch(self) -> None:
        """Updates the updated_at timestamp to current UTC time."""
        self.updated_at = _utcnow()
