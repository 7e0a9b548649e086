# expense_portal/dependencies.py
import logging
from typing import TYPE_CHECKING

from fastapi import Request, Response

from .errors import ServerMisconfigured
from .sessions import SessionData, SessionManager
from .settings import Settings

if TYPE_CHECKING:
    from .expenses.gateway import UploadGateway
    from .oauth.lifecycle import TokenLifecycleManager

logger = logging.getLogger(__name__)


def _component(request: Request, name: str):
    component = getattr(request.app.state, name, None)
    if component is None:
        logger.critical(f"CRITICAL: '{name}' not initialized on app.state. Was the app built with create_app()?")
        raise ServerMisconfigured(provider_message=f"app.state.{name} missing")
    return component


async def get_settings(request: Request) -> Settings:
    return _component(request, "settings")


async def get_session_manager(request: Request) -> SessionManager:
    return _component(request, "session_manager")


async def get_lifecycle_manager(request: Request) -> "TokenLifecycleManager":
    return _component(request, "lifecycle_manager")


async def get_upload_gateway(request: Request) -> "UploadGateway":
    return _component(request, "upload_gateway")


async def get_current_session(request: Request) -> SessionData:
    """Session referenced by the request cookie, or a new anonymous one."""
    session_manager: SessionManager = _component(request, "session_manager")
    settings: Settings = _component(request, "settings")
    return await session_manager.get_session(request.cookies.get(settings.session_cookie_name))


def request_origin(request: Request) -> str:
    """Effective scheme://host[:port] the client used to reach this deployment."""
    return f"{request.url.scheme}://{request.url.netloc}"


def set_session_cookie(
    response: Response, session_manager: SessionManager, settings: Settings, session_data: SessionData
) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        session_manager.cookie_value(session_data),
        max_age=session_manager.ttl_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        settings.session_cookie_name,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )
