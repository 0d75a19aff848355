"""
Health check endpoints
"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from insider.core.config import get_settings
from insider.core.database import get_db
from insider.core.llm_client import get_llm_client
from insider.core.logging_config import LoggingConfig
from insider.core.utils import utcnow
from insider.services.rag_service import get_document_index

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(tags=["health"])

SERVICE_VERSION = "1.0.0"


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint

    Returns:
        dict: Health status
    """
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "service": get_settings().app_name
    }


@router.get("/health/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """
    Detailed health check with component status

    Returns:
        dict: Detailed health status of all components
    """
    settings = get_settings()
    health_status = {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "service": settings.app_name,
        "version": SERVICE_VERSION,
        "environment": settings.app_env,
        "components": {}
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        db.commit()
        health_status["components"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except SQLAlchemyError as e:
        health_status["status"] = "unhealthy"
        health_status["components"]["database"] = {
            "status": "unhealthy",
            "message": f"Database connection failed: {str(e)}",
            "error": type(e).__name__
        }

    # LLM is optional; without a site key only users with their own key get answers
    llm_configured = get_llm_client().is_configured()
    health_status["components"]["llm"] = {
        "status": "healthy" if llm_configured else "warning",
        "message": "Site API key configured" if llm_configured else "No site API key configured",
        "model": settings.llm_model
    }

    chunks = len(get_document_index().chunks)
    health_status["components"]["rag_index"] = {
        "status": "healthy" if chunks else "warning",
        "message": f"{chunks} documentation chunks indexed",
        "chunks": chunks
    }

    if health_status["status"] == "healthy" and any(
        comp.get("status") == "warning" for comp in health_status["components"].values()
    ):
        health_status["status"] = "degraded"

    return health_status
