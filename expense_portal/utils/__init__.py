# expense_portal/utils/__init__.py

"""
Utility module initialization file.

Exposes the session cookie signing helpers.
"""

from .security import SessionCookieSigner, generate_session_secret

__all__ = ["SessionCookieSigner", "generate_session_secret"]
