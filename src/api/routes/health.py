"""
Health Routes
=============

FastAPI routes for health check endpoints.
"""

from fastapi import APIRouter, Depends

from src import __version__
from src.api.dependencies import get_rendering_context
from src.config.logging import get_logger
from src.core.context import RenderingContext
from src.models.schemas import HealthStatus

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthStatus)
async def health_check(
    context: RenderingContext = Depends(get_rendering_context),
) -> HealthStatus:
    """
    Get application health status.

    The service is healthy when the renderer jar and the java runtime are
    present, degraded when the renderer version could not be read.
    """
    renderer = context.renderer
    available = renderer.is_available()
    if not available:
        status = "unhealthy"
    elif renderer.version is None:
        status = "degraded"
    else:
        status = "healthy"

    health_status = HealthStatus(
        status=status,
        version=__version__,
        renderer=available,
        renderer_version=renderer.version,
        security_profile=context.security_profile,
        preamble_lines=len(context.preamble),
    )
    logger.info("Health check completed", status=status)
    return health_status
