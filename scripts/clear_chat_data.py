#!/usr/bin/env python3
"""Delete every chat message and room. Notifications and profiles are kept."""

import asyncio
import logging

from app.core.cache import cache
from app.core.database import AsyncSessionLocal, close_db_connections
from app.core.logging import setup_logging
from app.services.chat.authorization import RoomAuthorizer
from app.services.chat.store_gateway import MessageStoreGateway

logger = logging.getLogger("clear_chat_data")

async def clear_chat_data():
    async with AsyncSessionLocal() as db:
        messages, rooms = await MessageStoreGateway(db).clear_all()
        forgotten = await RoomAuthorizer(db, cache).forget_all_rooms()
    logger.info(f"Deleted {messages} chat messages and {rooms} chat rooms, {forgotten} cached room entries")
    await cache.disconnect()
    await close_db_connections()

if __name__ == "__main__":
    setup_logging()
    asyncio.run(clear_chat_data())
