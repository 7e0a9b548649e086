# expense_portal/oauth/__init__.py
"""
Google login for the expense portal: the identity provider client, the per-session
token lifecycle manager and the /auth and /api/user routes.
"""

from .models import OAuthProviderSettings, UserProfile
from .google_client import GoogleIdentityClient, build_redirect_uri
from .lifecycle import TokenLifecycleManager
from .endpoints import auth_router

__all__ = [
    "OAuthProviderSettings",
    "UserProfile",
    "GoogleIdentityClient",
    "build_redirect_uri",
    "TokenLifecycleManager",
    "auth_router",
]
