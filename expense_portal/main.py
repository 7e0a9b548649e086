# expense_portal/main.py
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .errors import ExpensePortalError, ServerMisconfigured
from .expenses import GoogleDriveService, UploadGateway, expenses_router
from .oauth import GoogleIdentityClient, OAuthProviderSettings, TokenLifecycleManager, auth_router
from .sessions import AbstractSessionStore, SessionManager, build_session_store
from .settings import Settings, load_settings
from .utils import SessionCookieSigner

logger = logging.getLogger(__name__)


def _configure_logging(settings: Settings) -> None:
    level = "DEBUG" if settings.debug_mode else settings.log_level.upper()
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=level,
            format='%(asctime)s - %(name)s [%(levelname)s] - %(message)s'
        )
    logging.getLogger("expense_portal").setLevel(level)


def _build_identity_client(settings: Settings, http_client: httpx.AsyncClient) -> Optional[GoogleIdentityClient]:
    if not settings.google_oauth_configured:
        logger.critical("GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set. Login will fail until configured.")
        return None
    provider_settings = OAuthProviderSettings(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        default_scopes=settings.google_scopes,
    )
    return GoogleIdentityClient(provider_settings, http_client)


def create_app(
    settings: Optional[Settings] = None,
    session_store: Optional[AbstractSessionStore] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    """
    Application factory. Every component is built from the given Settings during the
    lifespan and published on ``app.state``; request handlers reach them through
    ``expense_portal.dependencies``.

    ``session_store`` and ``http_client`` may be supplied to replace the store chosen from
    the settings and the outbound HTTP client (used by the test-suite).
    """
    settings = settings or load_settings()
    _configure_logging(settings)

    @asynccontextmanager
    async def app_lifespan(app_instance: FastAPI):
        logger.info("Application startup initiated.")
        try:
            store = session_store or build_session_store(
                settings.redis_url, settings.session_ttl_seconds, settings.is_production
            )
        except ValueError as e:
            logger.critical(f"Session store cannot be built: {e}")
            raise ServerMisconfigured(provider_message=str(e)) from e
        await store.initialize()

        owns_http_client = http_client is None
        client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

        signer = SessionCookieSigner(settings.session_secret, settings.session_ttl_seconds)
        if signer.ephemeral and settings.is_production:
            logger.critical("SESSION_SECRET is not set in production. Sessions will not survive a restart.")
        session_manager = SessionManager(store=store, signer=signer)
        lifecycle_manager = TokenLifecycleManager(
            session_manager,
            _build_identity_client(settings, client),
            public_base_url=settings.public_base_url,
        )
        if not settings.drive_folder_id:
            logger.critical("DRIVE_FOLDER_ID not set. Expense submissions will fail until configured.")
        upload_gateway = UploadGateway(
            lifecycle_manager, GoogleDriveService(client), settings.drive_folder_id
        )

        app_instance.state.settings = settings
        app_instance.state.session_store = store
        app_instance.state.session_manager = session_manager
        app_instance.state.lifecycle_manager = lifecycle_manager
        app_instance.state.upload_gateway = upload_gateway
        logger.info("All components initialized.")

        try:
            yield
        finally:
            logger.info("Application shutdown initiated.")
            if owns_http_client:
                await client.aclose()
            try:
                await store.teardown()
            except Exception as e_td:
                logger.error(f"Teardown error: {e_td}", exc_info=True)
            logger.info("All components torn down.")

    app = FastAPI(
        title=settings.app_name,
        description="Submit expenses with their receipts to the company's Google Drive.",
        version="0.1.0",
        lifespan=app_lifespan,
        debug=settings.debug_mode,
    )

    @app.exception_handler(ExpensePortalError)
    async def expense_portal_error_handler(request: Request, exc: ExpensePortalError):
        log = logger.critical if isinstance(exc, ServerMisconfigured) else logger.warning
        log(
            f"{request.method} {request.url.path} -> {exc.status_code} {type(exc).__name__}: "
            f"{exc.message} (provider: {exc.provider_message})"
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info(f"{request.method} {request.url.path} -> 400 invalid request: {exc.errors()}")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "message": "Requisição inválida."},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": "Erro interno do servidor."},
        )

    app.include_router(auth_router, tags=["Authentication"])
    app.include_router(expenses_router, tags=["Expenses"])

    @app.get("/", tags=["General"])
    async def read_root():
        return {"message": f"Welcome to {settings.app_name}"}

    @app.get("/health", tags=["General"])
    async def health_check(request: Request):
        store: AbstractSessionStore = request.app.state.session_store
        try:
            store_ok = await store.ping()
        except Exception as e:
            logger.error(f"Health check: session store ping failed: {e}")
            store_ok = False
        return {
            "status": "healthy" if store_ok else "degraded",
            "session_store": type(store).__name__,
            "google_oauth_configured": settings.google_oauth_configured,
            "drive_folder_configured": bool(settings.drive_folder_id),
        }

    logger.info(f"{settings.app_name} application created. Debug mode: {settings.debug_mode}")
    return app
