# expense_portal/utils/security.py
import hashlib
import logging
from base64 import urlsafe_b64encode
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


def generate_session_secret() -> str:
    """Generates a new random secret suitable for SESSION_SECRET."""
    return Fernet.generate_key().decode('utf-8')


def derive_fernet_key(secret: str) -> bytes:
    """Fernet needs 32 url-safe base64 bytes; any secret string is stretched with SHA-256."""
    return urlsafe_b64encode(hashlib.sha256(secret.encode('utf-8')).digest())


class SessionCookieSigner:
    """Authenticates session ids placed in the browser cookie using Fernet."""

    def __init__(self, session_secret: Optional[str], max_age_seconds: int):
        self.max_age_seconds = max_age_seconds
        if not session_secret:
            logger.critical(
                "CRITICAL: SESSION_SECRET is not set. Using a random per-process key; "
                "sessions will not survive restarts or work across replicas."
            )
            self.ephemeral = True
            self._fernet = Fernet(Fernet.generate_key())
        else:
            self.ephemeral = False
            self._fernet = Fernet(derive_fernet_key(session_secret))
            logger.info("SessionCookieSigner initialized with configured SESSION_SECRET.")

    def sign(self, session_id: str) -> str:
        return self._fernet.encrypt(session_id.encode('utf-8')).decode('utf-8')

    def unsign(self, cookie_value: Optional[str]) -> Optional[str]:
        """
        Returns the session id carried by a cookie, or None when the cookie is
        missing, tampered with, signed with another secret, or older than the TTL.
        """
        if not cookie_value:
            return None
        try:
            return self._fernet.decrypt(
                cookie_value.encode('utf-8'), ttl=self.max_age_seconds
            ).decode('utf-8')
        except InvalidToken:
            logger.warning("Rejected session cookie: invalid signature or expired.")
            return None
