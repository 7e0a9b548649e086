# expense_portal/oauth/models.py
from pydantic import BaseModel, Field, HttpUrl
from typing import Optional, List

GOOGLE_AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class OAuthProviderSettings(BaseModel):
    """Configuration for the external OAuth provider the portal logs users in with."""
    provider_name: str = Field(default="google", description="Unique name for this provider.")
    client_id: str = Field(description="Client ID obtained from the provider.")
    client_secret: str = Field(description="Client Secret obtained from the provider.")
    authorization_url: HttpUrl = Field(default=GOOGLE_AUTHORIZATION_URL, validate_default=True)
    token_url: HttpUrl = Field(default=GOOGLE_TOKEN_URL, validate_default=True)
    userinfo_url: HttpUrl = Field(default=GOOGLE_USERINFO_URL, validate_default=True)
    default_scopes: List[str] = Field(description="Scopes requested on every login.")


class UserProfile(BaseModel):
    """Subset of the provider's userinfo response the portal uses."""
    name: str
    email: Optional[str] = None
    picture: Optional[str] = None
