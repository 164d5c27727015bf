# app/services/chat/session.py
"""Per-connection chat protocol.

    CONNECTING --authenticate--> AUTHENTICATED <--join/leave--> IN_ROOM
         |                             |                          |
         +-------- bad token ----------+--------- close ----------+--> CLOSED

Inbound frames of one connection are handled one at a time in arrival
order. Every error except a failed handshake becomes an `error` frame to
this connection only; the session stays usable.
"""
import enum
import json
import logging
from typing import Callable, Optional, Set
from uuid import UUID

from fastapi import status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from ...core.cache import CacheManager
from ...core.config import settings
from ...core.exceptions import ChatException, NotAuthorized, PersistenceFailure, Unauthenticated
from ...core.security import TokenClaims, verify_token
from ...schemas.chat_schemas import (
    JoinRoomFrame, LeaveRoomFrame, MarkReadFrame, PingFrame, SendMessageFrame, TypingFrame, parse_frame,
)
from .authorization import ChatIdentity, ProfileDirectory, RoomAuthorizer
from .connection_registry import Connection
from .runtime import ChatRuntime
from .store_gateway import MessageStoreGateway, serialize_message

logger = logging.getLogger(__name__)

REPLACED_CLOSE_CODE = status.WS_1000_NORMAL_CLOSURE
REPLACED_CLOSE_REASON = "Replaced by a newer connection"
UNAUTHORIZED_REASON = "Unauthorized"
AUTH_FAILED_REASON = "Authentication failed"


class SessionState(enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    IN_ROOM = "in_room"
    CLOSED = "closed"


class ChatSession:
    def __init__(
        self,
        connection: Connection,
        runtime: ChatRuntime,
        session_factory: async_sessionmaker,
        cache: Optional[CacheManager] = None,
        token_verifier: Callable[[Optional[str]], TokenClaims] = verify_token,
        history_limit: Optional[int] = None,
    ):
        self.connection = connection
        self.runtime = runtime
        self.session_factory = session_factory
        self.cache = cache
        self.token_verifier = token_verifier
        self.history_limit = history_limit or settings.history_limit

        self.state = SessionState.CONNECTING
        self.identity: Optional[ChatIdentity] = None
        self.joined_rooms: Set[UUID] = set()

    def __repr__(self):
        user = self.identity.user_id if self.identity else None
        return f"<ChatSession user={user} state={self.state.value} rooms={len(self.joined_rooms)}>"

    @property
    def user_id(self) -> Optional[UUID]:
        return self.identity.user_id if self.identity else None

    @property
    def is_current(self) -> bool:
        """Still the registered connection for this user"""
        return self.identity is not None and self.runtime.registry.resolve(self.identity.user_id) is self.connection

    def _set_state(self, new_state: SessionState):
        if new_state != self.state:
            logger.debug(f"Session {self.user_id}: {self.state.value} -> {new_state.value}")
            self.state = new_state

    def _sync_room_state(self):
        if self.state in (SessionState.AUTHENTICATED, SessionState.IN_ROOM):
            self._set_state(SessionState.IN_ROOM if self.joined_rooms else SessionState.AUTHENTICATED)

    async def _send(self, event: dict):
        try:
            await self.connection.send_text(json.dumps(event, default=str))
        except Exception as e:
            logger.warning(f"Could not send {event.get('type')} to {self.user_id}: {e}")

    async def _send_error(self, error: ChatException):
        await self._send({"type": "error", "message": error.message, "code": error.code})

    # Lifecycle

    async def authenticate(self, token: Optional[str]) -> bool:
        """Verify the handshake token and register the connection.

        On failure the connection is closed with 1008 and the session ends
        in CLOSED.
        """
        if self.state != SessionState.CONNECTING:
            raise RuntimeError(f"authenticate() called in state {self.state.value}")

        try:
            claims = self.token_verifier(token)
        except Unauthenticated as e:
            logger.info(f"Websocket authentication rejected: {e.message}")
            await self._reject(e)
            return False

        try:
            async with self.session_factory() as db:
                self.identity = await ProfileDirectory(db).build_identity(claims.user_id, claims.role)
        except SQLAlchemyError as e:
            logger.error(f"Profile lookup failed during handshake for {claims.user_id}: {e}")
            await self._reject(Unauthenticated(AUTH_FAILED_REASON))
            return False

        user_id = self.identity.user_id
        previous = self.runtime.registry.register(user_id, self.connection)
        # A new connection starts with no rooms; leftovers belong to an older socket
        self.runtime.membership.leave_all(user_id)
        if previous is not None:
            if self.runtime.close_replaced_connections:
                try:
                    await previous.close(code=REPLACED_CLOSE_CODE, reason=REPLACED_CLOSE_REASON)
                except Exception as e:
                    logger.warning(f"Error closing replaced connection for {user_id}: {e}")

        self._set_state(SessionState.AUTHENTICATED)
        logger.info(f"User {user_id} ({claims.role.value}) connected to chat")
        await self._send({"type": "connected", "userId": str(user_id)})
        return True

    async def _reject(self, error: Unauthenticated):
        self._set_state(SessionState.CLOSED)
        await self._send_error(error)
        # The error frame carries the detail; the close reason is one of two fixed strings
        reason = UNAUTHORIZED_REASON if error.message == UNAUTHORIZED_REASON else AUTH_FAILED_REASON
        try:
            await self.connection.close(code=status.WS_1008_POLICY_VIOLATION, reason=reason)
        except Exception as e:
            logger.debug(f"Close after failed authentication raised: {e}")

    async def close(self):
        """Disconnect cleanup. Safe to call more than once and from any state."""
        if self.state == SessionState.CLOSED:
            return
        self._set_state(SessionState.CLOSED)

        if self.identity is not None:
            user_id = self.identity.user_id
            registry = self.runtime.registry
            registry.unregister(user_id, self.connection)
            # A failed send may have dropped the entry already; rooms stay only with a newer socket
            if registry.resolve(user_id) is None:
                self.runtime.membership.leave_all(user_id)
            logger.info(f"User {user_id} disconnected from chat")
        self.joined_rooms.clear()

    # Inbound frames

    async def handle_text(self, raw: str):
        if self.state in (SessionState.CONNECTING, SessionState.CLOSED):
            logger.debug(f"Dropping frame received in state {self.state.value}")
            return

        if not self.is_current:
            await self._send_error(NotAuthorized(REPLACED_CLOSE_REASON))
            return

        try:
            frame = parse_frame(raw)
            await self._dispatch(frame)
        except ChatException as e:
            await self._send_error(e)
        except Exception as e:
            logger.exception(f"Unexpected error handling frame from {self.user_id}: {e}")
            await self._send_error(PersistenceFailure("Failed to process message"))

    async def _dispatch(self, frame):
        if isinstance(frame, JoinRoomFrame):
            await self.join_room(frame.room_id)
        elif isinstance(frame, LeaveRoomFrame):
            await self.leave_room(frame.room_id)
        elif isinstance(frame, SendMessageFrame):
            await self.send_message(frame.room_id, frame.content)
        elif isinstance(frame, TypingFrame):
            await self.typing(frame.room_id)
        elif isinstance(frame, MarkReadFrame):
            await self.mark_read(frame.room_id)
        elif isinstance(frame, PingFrame):
            await self._send({"type": "pong"})

    async def join_room(self, room_id: UUID):
        async with self.session_factory() as db:
            authorizer = RoomAuthorizer(db, self.cache)
            if not await authorizer.can_access_room(self.identity, room_id):
                raise NotAuthorized("Cannot join room: not authorized")

            # History first: a failed load leaves the session outside the room
            recent = await MessageStoreGateway(db).list_messages(
                room_id, self.identity.user_id, self.identity.role,
                newest_first=True, limit=self.history_limit,
            )

        self.runtime.membership.join(room_id, self.identity.user_id)
        self.joined_rooms.add(room_id)
        self._sync_room_state()
        await self._send({"type": "room-joined", "roomId": str(room_id)})
        await self._send({
            "type": "room-history",
            "roomId": str(room_id),
            "messages": [serialize_message(m) for m in reversed(recent)],
        })

    async def leave_room(self, room_id: UUID):
        self.runtime.membership.leave(room_id, self.identity.user_id)
        self.joined_rooms.discard(room_id)
        self._sync_room_state()
        await self._send({"type": "room-left", "roomId": str(room_id)})

    def _require_joined(self, room_id: UUID, action: str):
        if room_id not in self.joined_rooms:
            raise NotAuthorized(f"Join the room before {action}")

    async def send_message(self, room_id: UUID, content: str):
        self._require_joined(room_id, "sending messages")

        # post_message re-checks participation in the same transaction as the insert
        async with self.session_factory() as db:
            message = await MessageStoreGateway(db).post_message(
                room_id, self.identity.user_id, self.identity.role, content
            )
            payload = serialize_message(message)

        await self.runtime.dispatcher.broadcast_to_room(room_id, {
            "type": "new-message",
            "roomId": str(room_id),
            "message": payload,
        })

    async def typing(self, room_id: UUID):
        self._require_joined(room_id, "sending typing indicators")
        await self.runtime.dispatcher.broadcast_to_room(
            room_id,
            {"type": "user-typing", "userId": str(self.identity.user_id), "roomId": str(room_id)},
            exclude_user_id=self.identity.user_id,
        )

    async def mark_read(self, room_id: UUID):
        async with self.session_factory() as db:
            updated = await MessageStoreGateway(db).mark_read(room_id, self.identity.user_id, self.identity.role)

        logger.debug(f"User {self.identity.user_id} marked {updated} messages read in room {room_id}")
        await self.runtime.dispatcher.broadcast_to_room(room_id, {
            "type": "messages-read",
            "userId": str(self.identity.user_id),
            "roomId": str(room_id),
        })
