# expense_portal/oauth/google_client.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from ..errors import AuthExchangeError, ProviderUnavailableError, RefreshFailedError, TokenInvalidError
from ..sessions.session_data import TokenSet
from .models import OAuthProviderSettings, UserProfile

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/auth/callback"


def build_redirect_uri(request_origin: str, public_base_url: Optional[str] = None) -> str:
    """
    Callback URL registered with Google.

    A configured public base URL wins; otherwise the origin (scheme://host[:port]) of the
    current request is used, so one deployment can answer under several hostnames. The
    same string must be sent in the authorization request and in the code exchange.
    """
    base = (public_base_url or request_origin).rstrip('/')
    return f"{base}{CALLBACK_PATH}"


def _provider_error_text(response: httpx.Response) -> str:
    """Extract a readable message from an OAuth or Google API error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error")
    if isinstance(error, dict):
        return error.get("message") or response.text
    description = body.get("error_description")
    if error and description:
        return f"{error}: {description}"
    return str(error or response.text)


def _parse_token_response(payload: Dict[str, Any], fallback_scopes: Optional[list] = None) -> TokenSet:
    access_token = payload.get("access_token")
    if not access_token:
        raise ValueError("'access_token' missing from token response")

    expires_at = None
    expires_in_value = payload.get("expires_in")
    if expires_in_value is not None:
        try:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in_value))
        except (TypeError, ValueError):
            logger.warning(f"Could not convert expires_in value '{expires_in_value}' to an integer.")

    scopes_str = payload.get("scope")
    if scopes_str:
        scopes = sorted(set(s.strip() for s in scopes_str.replace(',', ' ').split() if s.strip()))
    else:
        scopes = list(fallback_scopes or [])

    return TokenSet(
        access_token=access_token,
        refresh_token=payload.get("refresh_token"),
        expires_at=expires_at,
        scopes=scopes,
    )


class GoogleIdentityClient:
    """Wraps the Google OAuth 2.0 endpoints: authorization URL, code exchange, refresh and userinfo."""

    def __init__(self, provider_settings: OAuthProviderSettings, http_client: httpx.AsyncClient):
        self.provider_settings = provider_settings
        self.http_client = http_client
        logger.info(f"GoogleIdentityClient initialized for provider '{provider_settings.provider_name}'.")

    def build_authorization_url(self, redirect_uri: str) -> str:
        """
        Deterministic for a given client id, redirect URI and scope set. Offline access plus
        a forced consent prompt make Google issue a refresh token on every login.
        """
        params = {
            "response_type": "code",
            "client_id": self.provider_settings.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(self.provider_settings.default_scopes),
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
        }
        return f"{self.provider_settings.authorization_url}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        token_request_data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.provider_settings.client_id,
            "client_secret": self.provider_settings.client_secret,
        }
        try:
            response = await self.http_client.post(
                str(self.provider_settings.token_url),
                data=token_request_data,
                headers={"Accept": "application/json"},
            )
        except httpx.TimeoutException as e:
            logger.error(f"Timeout during authorization code exchange: {e}")
            raise AuthExchangeError(provider_message=f"timeout: {e}") from e
        except httpx.RequestError as e:
            logger.error(f"Transport error during authorization code exchange: {e}")
            raise AuthExchangeError(provider_message=str(e)) from e

        if response.status_code != 200:
            error_text = _provider_error_text(response)
            logger.error(
                f"Authorization code exchange failed: {response.status_code} - {error_text} "
                f"(redirect_uri={redirect_uri})"
            )
            raise AuthExchangeError(provider_message=error_text)

        try:
            tokens = _parse_token_response(response.json(), self.provider_settings.default_scopes)
        except ValueError as e:
            logger.error(f"Unusable token response from code exchange: {e}")
            raise AuthExchangeError(provider_message=str(e)) from e

        logger.info(
            f"Authorization code exchanged. Refresh token: {'SET' if tokens.refresh_token else 'NOT_SET'}, "
            f"expires_at: {tokens.expires_at}"
        )
        return tokens

    async def fetch_profile(self, tokens: TokenSet) -> UserProfile:
        try:
            response = await self.http_client.get(
                str(self.provider_settings.userinfo_url),
                headers={"Authorization": f"Bearer {tokens.access_token}"},
            )
        except httpx.RequestError as e:
            logger.error(f"Userinfo request failed: {e}")
            raise ProviderUnavailableError(provider_message=str(e)) from e

        if response.status_code in (401, 403):
            error_text = _provider_error_text(response)
            logger.info(f"Userinfo rejected the access token: {response.status_code} - {error_text}")
            raise TokenInvalidError(provider_message=error_text)
        if response.status_code != 200:
            error_text = _provider_error_text(response)
            logger.error(f"Userinfo request failed: {response.status_code} - {error_text}")
            raise ProviderUnavailableError(provider_message=error_text)

        data = response.json()
        name = data.get("name") or data.get("given_name") or data.get("email") or ""
        return UserProfile(name=name, email=data.get("email"), picture=data.get("picture"))

    async def refresh(self, tokens: TokenSet) -> TokenSet:
        """
        Exchange the refresh token for a new access token. The returned set keeps the
        previous refresh token when Google does not send a new one.
        """
        if not tokens.refresh_token:
            logger.warning("No refresh token available. Cannot refresh.")
            raise RefreshFailedError(provider_message="no refresh_token in session")

        refresh_payload = {
            "grant_type": "refresh_token",
            "refresh_token": tokens.refresh_token,
            "client_id": self.provider_settings.client_id,
            "client_secret": self.provider_settings.client_secret,
        }
        try:
            response = await self.http_client.post(
                str(self.provider_settings.token_url),
                data=refresh_payload,
                headers={"Accept": "application/json"},
            )
        except httpx.RequestError as e:
            logger.error(f"Token refresh request failed: {e}")
            raise ProviderUnavailableError(provider_message=str(e)) from e

        logger.info(f"Token refresh API responded with status: {response.status_code}")
        if 400 <= response.status_code < 500:
            error_text = _provider_error_text(response)
            logger.warning(f"Refresh token rejected: {response.status_code} - {error_text}")
            raise RefreshFailedError(provider_message=error_text)
        if response.status_code != 200:
            error_text = _provider_error_text(response)
            logger.error(f"Token refresh failed: {response.status_code} - {error_text}")
            raise ProviderUnavailableError(provider_message=error_text)

        try:
            refreshed = _parse_token_response(response.json(), tokens.scopes)
        except ValueError as e:
            logger.error(f"Unusable token response from refresh: {e}")
            raise RefreshFailedError(provider_message=str(e)) from e
        return tokens.merged_with(refreshed)
