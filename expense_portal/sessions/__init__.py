# expense_portal/sessions/__init__.py
"""
Session management for the expense portal.

Provides the session/token data structures, the storage abstraction with its
in-memory and Redis implementations, and the session manager.
"""

from .session_data import SessionData, SessionState, TokenSet
from .session_store import (
    AbstractSessionStore,
    InMemorySessionStore,
    RedisSessionStore,
    build_session_store,
)
from .session_manager import SessionManager

__all__ = [
    "SessionData",
    "SessionState",
    "TokenSet",
    "AbstractSessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "build_session_store",
    "SessionManager",
]
