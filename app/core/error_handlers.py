from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

from .exceptions import ChatException

logger = logging.getLogger(__name__)

async def chat_exception_handler(request: Request, exc: ChatException):
    """Handle chat/notification layer exceptions"""
    if exc.status_code >= 500:
        logger.error(f"Chat error: {exc.message} - Path: {request.url.path}")
    else:
        logger.warning(f"Chat error: {exc.message} - Path: {request.url.path}")
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, "type": exc.code},
        headers=headers,
    )

async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.exception(f"Unexpected error: {str(exc)} - Path: {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "type": "InternalError"}
    )

def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(ChatException, chat_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
