"""
Prometheus metrics endpoint
"""
from fastapi import APIRouter
from fastapi.responses import Response

from insider.core.logging_config import LoggingConfig
from insider.core.metrics import get_metrics, get_metrics_content_type

logger = LoggingConfig.get_logger(__name__)

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def metrics():
    """Prometheus metrics in text exposition format"""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


@router.get("/metrics/logging")
async def logging_metrics():
    """Count of emitted log records by level"""
    return LoggingConfig.get_metrics()
