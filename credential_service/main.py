"""Credential Service - Main FastAPI Application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from credential_service.api import auth_router, users_router
from credential_service.config import Settings, get_settings
from credential_service.core.errors import AccountServiceError, ErrorKind
from credential_service.core.key_provider import KeyMaterialProvider
from credential_service.core.logging import RequestLoggingMiddleware, get_logger, setup_logging
from credential_service.core.token_service import TokenService
from credential_service.database import init_db, close_db

logger = get_logger(__name__)

STATUS_BY_KIND = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_CONTENT,
    ErrorKind.AUTHENTICATION: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FATAL_CONFIGURATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


async def account_error_handler(request: Request, exc: AccountServiceError) -> JSONResponse:
    """Translate core error kinds to HTTP responses."""
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    headers = {"WWW-Authenticate": "Bearer"} if exc.kind == ErrorKind.AUTHENTICATION else None
    if exc.kind == ErrorKind.FATAL_CONFIGURATION:
        logger.critical("Fatal configuration error while serving request", error=exc.message)
        return JSONResponse(status_code=status_code, content={"detail": "Internal server error"})
    return JSONResponse(status_code=status_code, content={"detail": exc.message}, headers=headers)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings: Settings = app.state.settings

    # Startup: key material is loaded exactly once, before serving; failure aborts boot
    keys = KeyMaterialProvider.from_settings(settings)
    keys.load()
    app.state.keys = keys
    app.state.tokens = TokenService.from_settings(settings, keys)

    await init_db()
    logger.info("Credential service started", environment=settings.environment)
    yield
    # Shutdown
    await close_db()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application."""
    settings = settings or get_settings()
    setup_logging(json_output=settings.log_json, level=settings.log_level)

    app = FastAPI(
        title="Credential Service",
        description="Password credentials and encrypted bearer tokens for user accounts",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(AccountServiceError, account_error_handler)

    app.include_router(auth_router)
    app.include_router(users_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        keys = getattr(app.state, "keys", None)
        return {
            "status": "healthy",
            "keys_loaded": bool(keys and keys.is_loaded),
        }

    return app
