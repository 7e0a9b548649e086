# tests/conftest.py
import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl

import httpx
import pytest

from expense_portal.oauth import GoogleIdentityClient, OAuthProviderSettings, TokenLifecycleManager
from expense_portal.sessions import InMemorySessionStore, SessionManager
from expense_portal.settings import DEFAULT_GOOGLE_SCOPES, Settings
from expense_portal.utils import SessionCookieSigner

TEST_SESSION_SECRET = "test-session-secret-not-for-production"
TEST_SESSION_TTL = 3600
DRIVE_FOLDER_ID = "folder-123"
PUBLIC_BASE_URL = "https://despesas.example.com"


class FakeGoogle:
    """
    In-process stand-in for the Google token, userinfo and Drive upload endpoints.

    Code "abc123" yields A1/R1. Refreshing R1 issues A2, A3... without a new refresh token,
    like Google does.
    """

    def __init__(self):
        self.codes: Dict[str, Dict[str, Any]] = {
            "abc123": {
                "access_token": "A1",
                "refresh_token": "R1",
                "expires_in": 3600,
                "token_type": "Bearer",
                "scope": " ".join(DEFAULT_GOOGLE_SCOPES),
            }
        }
        self.valid_access_tokens = {"A1"}
        self.valid_refresh_tokens = {"R1"}
        self.profile = {"name": "Ana Silva", "email": "ana.silva@example.com"}
        self.token_status_override: Optional[int] = None
        self.drive_status_override: Optional[int] = None
        self.drive_exception: Optional[Exception] = None

        self.refresh_calls = 0
        self.last_redirect_uri: Optional[str] = None
        self.drive_attempts = 0
        self.drive_files: List[Dict[str, Any]] = []
        self._issued = 1

    def revoke_access_token(self, token: str) -> None:
        self.valid_access_tokens.discard(token)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.url.host == "oauth2.googleapis.com" and path == "/token":
            return self._token(request)
        if path == "/oauth2/v2/userinfo":
            return self._userinfo(request)
        if path == "/upload/drive/v3/files":
            return self._drive_upload(request)
        return httpx.Response(404, json={"error": "not_found"})

    @staticmethod
    def _bearer(request: httpx.Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        if header.startswith("Bearer "):
            return header[len("Bearer "):]
        return None

    def _token(self, request: httpx.Request) -> httpx.Response:
        form = dict(parse_qsl(request.content.decode("utf-8")))
        if self.token_status_override:
            return httpx.Response(self.token_status_override, json={"error": "backend_error"})

        if form.get("grant_type") == "authorization_code":
            self.last_redirect_uri = form.get("redirect_uri")
            payload = self.codes.get(form.get("code"))
            if payload is None:
                return httpx.Response(
                    400, json={"error": "invalid_grant", "error_description": "Malformed auth code."}
                )
            return httpx.Response(200, json=payload)

        if form.get("grant_type") == "refresh_token":
            self.refresh_calls += 1
            if form.get("refresh_token") not in self.valid_refresh_tokens:
                return httpx.Response(
                    400, json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."}
                )
            self._issued += 1
            access_token = f"A{self._issued}"
            self.valid_access_tokens.add(access_token)
            return httpx.Response(
                200, json={"access_token": access_token, "expires_in": 3600, "token_type": "Bearer"}
            )

        return httpx.Response(400, json={"error": "unsupported_grant_type"})

    def _userinfo(self, request: httpx.Request) -> httpx.Response:
        if self._bearer(request) not in self.valid_access_tokens:
            return httpx.Response(401, json={"error": {"code": 401, "message": "Invalid Credentials"}})
        return httpx.Response(200, json=self.profile)

    def _drive_upload(self, request: httpx.Request) -> httpx.Response:
        self.drive_attempts += 1
        if self.drive_exception is not None:
            raise self.drive_exception
        if self.drive_status_override:
            return httpx.Response(
                self.drive_status_override,
                json={"error": {"code": self.drive_status_override, "message": "Internal Error"}},
            )
        if self._bearer(request) not in self.valid_access_tokens:
            return httpx.Response(401, json={"error": {"code": 401, "message": "Invalid Credentials"}})

        body = request.content
        # First part is the JSON metadata
        metadata_part = body.split(b"\r\n\r\n", 1)[1].split(b"\r\n--", 1)[0]
        metadata = json.loads(metadata_part)
        file_id = f"file-{len(self.drive_files) + 1}"
        self.drive_files.append({
            "id": file_id,
            "metadata": metadata,
            "params": dict(request.url.params),
            "content_type": request.headers.get("Content-Type"),
            "content_length": request.headers.get("Content-Length"),
            "body": body,
        })
        return httpx.Response(200, json={
            "id": file_id,
            "name": metadata["name"],
            "webViewLink": f"https://drive.google.com/file/d/{file_id}/view",
            "parents": metadata.get("parents", []),
        })


def make_settings(**overrides) -> Settings:
    values = dict(
        google_client_id="client-id.apps.googleusercontent.com",
        google_client_secret="client-secret",
        session_secret=TEST_SESSION_SECRET,
        session_ttl_seconds=TEST_SESSION_TTL,
        drive_folder_id=DRIVE_FOLDER_ID,
        public_base_url=None,
        redis_url=None,
        environment="development",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def fake_google() -> FakeGoogle:
    return FakeGoogle()


@pytest.fixture
def http_client(fake_google: FakeGoogle) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_google.handler))


@pytest.fixture
def provider_settings() -> OAuthProviderSettings:
    return OAuthProviderSettings(
        client_id="client-id.apps.googleusercontent.com",
        client_secret="client-secret",
        default_scopes=list(DEFAULT_GOOGLE_SCOPES),
    )


@pytest.fixture
def identity_client(provider_settings, http_client) -> GoogleIdentityClient:
    return GoogleIdentityClient(provider_settings, http_client)


@pytest.fixture
def session_store() -> InMemorySessionStore:
    return InMemorySessionStore(session_ttl_seconds=TEST_SESSION_TTL)


@pytest.fixture
def session_manager(session_store) -> SessionManager:
    return SessionManager(store=session_store, signer=SessionCookieSigner(TEST_SESSION_SECRET, TEST_SESSION_TTL))


@pytest.fixture
def lifecycle(session_manager, identity_client) -> TokenLifecycleManager:
    return TokenLifecycleManager(session_manager, identity_client, public_base_url=PUBLIC_BASE_URL)
