# expense_portal/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from typing import Any, List, Optional, Union
import logging
from pathlib import Path

# Configure logging for settings module
logger = logging.getLogger(__name__)
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s SETTINGS.PY - [%(levelname)s] - %(message)s'
    )

# This settings.py file is at <project>/expense_portal/settings.py
PROJECT_ROOT = Path(__file__).parent.parent.resolve()
DOTENV_PATH = PROJECT_ROOT / ".env"

DEFAULT_GOOGLE_SCOPES = [
    "openid",
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/drive.file",
]


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    app_name: str = "Expense Portal"
    debug_mode: bool = False
    log_level: str = "INFO"
    environment: str = Field(
        default="development",
        description="'development' allows the in-memory session store; 'production' requires REDIS_URL."
    )

    # Google OAuth client
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    # Union lets the env value arrive as a comma separated string; the validator turns it into a list
    google_scopes: Union[str, List[str]] = Field(default_factory=lambda: list(DEFAULT_GOOGLE_SCOPES))

    # Drive folder receiving the receipts
    drive_folder_id: Optional[str] = Field(
        default=None,
        description="ID of the shared Google Drive folder that receives uploaded receipts."
    )

    # Fixed external origin, e.g. https://despesas.example.com. Derived from the request when unset.
    public_base_url: Optional[str] = None

    # Session handling
    session_secret: Optional[str] = Field(
        default=None,
        description="Secret used to authenticate the session cookie. MUST be set for production."
    )
    session_ttl_seconds: int = 3600 * 24
    session_cookie_name: str = "expense_session"
    session_cookie_secure: bool = False
    redis_url: Optional[str] = Field(
        default=None,
        description="redis:// connection string for the shared session store."
    )

    # Outbound calls to Google
    http_timeout_seconds: float = 20.0

    model_config = SettingsConfigDict(
        env_file=DOTENV_PATH if DOTENV_PATH.exists() else None,
        extra="ignore",
        env_file_encoding='utf-8'
    )

    @field_validator("google_scopes", mode="before")
    @classmethod
    def parse_scopes(cls, v: Any) -> Any:
        # Accept "a,b c" from the environment as well as JSON lists
        if isinstance(v, str):
            return [s.strip() for s in v.replace(',', ' ').split() if s.strip()]
        return v

    @field_validator("public_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().rstrip('/')
            return v or None
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    @property
    def google_oauth_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


def load_settings() -> Settings:
    """Build a Settings instance from the environment and log the masked result."""
    settings = Settings()
    logger.info(
        f"SETTINGS.PY: environment='{settings.environment}', debug_mode={settings.debug_mode}, "
        f"log_level='{settings.log_level}'"
    )
    logger.info(
        f"SETTINGS.PY: google_client_id={'********' if settings.google_client_id else 'None'}, "
        f"google_client_secret={'********' if settings.google_client_secret else 'None'}, "
        f"session_secret={'********' if settings.session_secret else 'None'}"
    )
    logger.info(
        f"SETTINGS.PY: drive_folder_id={'SET' if settings.drive_folder_id else 'None'}, "
        f"public_base_url={settings.public_base_url!r}, redis_url={'SET' if settings.redis_url else 'None'}"
    )
    return settings
