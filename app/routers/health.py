"""Health check endpoints."""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
import logging

from ..core.config import settings
from ..core.database import health_check_db
from ..services.chat.runtime import ChatRuntime, get_chat_runtime

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
async def health_check(runtime: ChatRuntime = Depends(get_chat_runtime)):
    """Basic health check"""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "online_users": len(runtime.registry),
    }

@router.get("/db")
async def database_health():
    """Database connectivity check"""
    if await health_check_db():
        return {"status": "healthy", "database": "connected"}
    logger.warning("Database health check reported unhealthy")
    return JSONResponse(status_code=503, content={"status": "unhealthy", "database": "unreachable"})
