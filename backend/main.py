"""
Main FastAPI application entry point
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException as FastAPIHTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from insider.api.routes import (achievements, assistant, auth, discovery,
                                e2ee_ai_consent, e2ee_devices, e2ee_sessions,
                                e2ee_verification, favorites, health,
                                messages, metrics, notifications, prompts,
                                resources, users)
from insider.core.config import get_settings
from insider.core.database import get_session_local
from insider.core.errors import InsiderError
from insider.core.llm_client import get_llm_client
from insider.core.logging_config import LoggingConfig
from insider.core.middleware import LoggingContextMiddleware
from insider.core.middleware_metrics import MetricsMiddleware
from insider.services.achievement_service import AchievementService
from insider.services.auth_service import AuthService
from insider.services.rag_service import get_document_index

APP_VERSION = "1.0.0"

# Configure logging first
LoggingConfig.configure()

logger = LoggingConfig.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI app"""
    settings = get_settings()
    logger.info(f"Starting {settings.app_name} in {settings.app_env} mode...")

    db = get_session_local()()
    try:
        AuthService(db).cleanup_expired_sessions()
        AchievementService(db).ensure_catalog()
        db.commit()
    except SQLAlchemyError as e:
        logger.warning(f"Could not prepare the database at startup: {e}")
    finally:
        db.close()

    index = get_document_index()
    logger.info(f"Documentation index ready: {len(index.chunks)} chunks in {len(index.stats())} categories")
    if not get_llm_client().is_configured():
        logger.warning("No site Anthropic API key configured; the assistant needs per-user keys")

    yield

    logger.info(f"Shutting down {settings.app_name}...")
    await get_llm_client().close()


_settings = get_settings()
app = FastAPI(
    title=_settings.app_name,
    description="Claude Insider backend: documentation assistant, resources, prompts and E2EE messaging",
    version=APP_VERSION,
    lifespan=lifespan,
)

# Logging context first so every request gets a request id
app.add_middleware(LoggingContextMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InsiderError)
async def insider_exception_handler(request: Request, exc: InsiderError):
    """Map domain errors raised by services to their HTTP status"""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.detail}")
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "type": type(exc).__name__}
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to log all unhandled errors"""
    # Don't handle HTTPException - let FastAPI handle it
    if isinstance(exc, FastAPIHTTPException):
        raise exc

    logger.error(
        "Unhandled exception",
        exc_info=True,
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
            "method": request.method,
        }
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


# Include routers
app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(notifications.router)
app.include_router(achievements.router)

# E2EE
app.include_router(e2ee_devices.router)
app.include_router(e2ee_sessions.router)
app.include_router(e2ee_verification.router)
app.include_router(e2ee_ai_consent.router)
app.include_router(messages.router)

# Content
app.include_router(resources.router)
app.include_router(favorites.router)
app.include_router(discovery.router)
app.include_router(prompts.router)
app.include_router(assistant.router)


@app.get("/api")
async def root():
    """Root API endpoint"""
    settings = get_settings()
    return {
        "name": settings.app_name,
        "version": APP_VERSION,
        "status": "running",
        "environment": settings.app_env,
    }


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.app_env == "development",
    )
