# app/routers/chat/websocket_router.py
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from ...core.cache import CacheManager, get_cache
from ...core.database import get_session_factory
from ...core.security import extract_bearer_token
from ...services.chat.runtime import ChatRuntime, get_chat_runtime
from ...services.chat.session import ChatSession

logger = logging.getLogger(__name__)
router = APIRouter()


@router.websocket("/ws/chat")
async def websocket_endpoint(
    websocket: WebSocket,
    runtime: ChatRuntime = Depends(get_chat_runtime),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    cache: CacheManager = Depends(get_cache),
):
    """WebSocket endpoint for real-time chat and live notifications"""
    await websocket.accept()
    session = ChatSession(websocket, runtime, session_factory, cache=cache)

    try:
        token = extract_bearer_token(websocket.headers, websocket.query_params)
        if not await session.authenticate(token):
            return

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            raw = message.get("text")
            if raw is None and message.get("bytes") is not None:
                raw = message["bytes"].decode("utf-8", errors="replace")
            if raw is None:
                continue
            await session.handle_text(raw)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error for user {session.user_id}: {e}")
    finally:
        await session.close()
