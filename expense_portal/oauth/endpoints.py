# expense_portal/oauth/endpoints.py
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from ..dependencies import (
    clear_session_cookie,
    get_current_session,
    get_lifecycle_manager,
    get_session_manager,
    get_settings,
    request_origin,
    set_session_cookie,
)
from ..errors import ExpensePortalError, Unauthenticated
from ..sessions import SessionData, SessionManager
from ..settings import Settings
from .lifecycle import TokenLifecycleManager

logger = logging.getLogger(__name__)
auth_router = APIRouter()

LOGIN_FAILED_MESSAGE = "Falha na autenticação. Tente novamente."


@auth_router.get("/auth/login", name="auth_login", response_class=RedirectResponse)
@auth_router.get("/auth/google", include_in_schema=False, response_class=RedirectResponse)
async def login(
    request: Request,
    lifecycle: Annotated[TokenLifecycleManager, Depends(get_lifecycle_manager)],
):
    auth_url = lifecycle.begin_login(request_origin(request))
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@auth_router.get("/auth/callback", name="auth_callback")
async def auth_callback(
    request: Request,
    lifecycle: Annotated[TokenLifecycleManager, Depends(get_lifecycle_manager)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
    code: Annotated[Optional[str], Query()] = None,
    error: Annotated[Optional[str], Query()] = None,
):
    """
    Google redirects here after consent. The session is persisted before the redirect
    to "/" is sent.
    """
    logger.info(f"OAuth callback received. Code: {'SET' if code else 'NOT_SET'}, error: {error!r}")
    if error or not code:
        logger.error(f"OAuth callback without a usable code. Provider error: {error!r}")
        return PlainTextResponse(LOGIN_FAILED_MESSAGE, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    try:
        previous_session = await session_manager.get_session(request.cookies.get(settings.session_cookie_name))
        session_data = await lifecycle.complete_login(
            code, request_origin(request), previous_session=previous_session
        )
    except ExpensePortalError as e:
        logger.error(f"Login could not be completed: {type(e).__name__}: {e.provider_message or e.detail}")
        return PlainTextResponse(LOGIN_FAILED_MESSAGE, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    response = RedirectResponse(url="/", status_code=status.HTTP_302_FOUND)
    set_session_cookie(response, session_manager, settings, session_data)
    return response


@auth_router.get("/api/user", name="api_user")
async def get_user(
    lifecycle: Annotated[TokenLifecycleManager, Depends(get_lifecycle_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
    current_session: Annotated[SessionData, Depends(get_current_session)],
):
    try:
        profile = await lifecycle.current_user(current_session)
    except Unauthenticated:
        response = JSONResponse({"loggedIn": False}, status_code=status.HTTP_401_UNAUTHORIZED)
        clear_session_cookie(response, settings)
        return response
    return {"loggedIn": True, "name": profile.name}


@auth_router.post("/api/logout", name="api_logout")
async def logout(
    lifecycle: Annotated[TokenLifecycleManager, Depends(get_lifecycle_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
    current_session: Annotated[SessionData, Depends(get_current_session)],
):
    await lifecycle.logout(current_session)
    response = JSONResponse({"success": True})
    clear_session_cookie(response, settings)
    return response
