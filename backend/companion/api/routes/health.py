"""
Health check endpoints
"""
from fastapi import APIRouter, Request

from companion.core.config import get_settings
from companion.core.logging_config import LoggingConfig
from companion.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint

    Returns:
        dict: Health status
    """
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "service": get_settings().app_name,
    }


@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """Health status including the text-generation server"""
    llm = getattr(request.app.state, "llm", None)
    llm_ok = await llm.health_check() if llm is not None else False
    if not llm_ok:
        logger.warning("LLM server unreachable")
    return {
        "status": "healthy" if llm_ok else "degraded",
        "timestamp": utc_now().isoformat(),
        "service": get_settings().app_name,
        "components": {"llm": "healthy" if llm_ok else "unreachable"},
    }
