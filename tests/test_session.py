import json
import uuid
from datetime import timedelta

import pytest
from jose import jwt

from app.core.config import settings
from app.core.exceptions import PersistenceFailure
from app.core.security import create_access_token
from app.models.user import UserRole
from app.services.chat.room_variants import PATIENT_NURSE
from app.services.chat.session import REPLACED_CLOSE_REASON, ChatSession, SessionState
from app.services.chat.store_gateway import MessageStoreGateway

from conftest import FakeConnection, create_member, token_for


@pytest.fixture
async def room_setup(session_factory):
    patient = await create_member(session_factory, UserRole.PATIENT, "Pat")
    nurse = await create_member(session_factory, UserRole.NURSE, "Nina")
    async with session_factory() as db:
        room, _ = await MessageStoreGateway(db).get_or_create_room(
            PATIENT_NURSE, {UserRole.PATIENT: patient.profile_id, UserRole.NURSE: nurse.profile_id}
        )
    return room, patient, nurse


async def _connect(runtime, session_factory, identity, connection=None):
    connection = connection or FakeConnection()
    session = ChatSession(connection, runtime, session_factory)
    assert await session.authenticate(token_for(identity))
    return session, connection


def _frame(**fields) -> str:
    return json.dumps({key: str(value) if isinstance(value, uuid.UUID) else value for key, value in fields.items()})


async def test_authenticate_registers_and_greets(runtime, session_factory, room_setup):
    _, patient, _ = room_setup
    session, connection = await _connect(runtime, session_factory, patient)

    assert session.state == SessionState.AUTHENTICATED
    assert session.identity.profile_id == patient.profile_id
    assert runtime.registry.resolve(patient.user_id) is connection
    assert connection.sent == [{"type": "connected", "userId": str(patient.user_id)}]


@pytest.mark.parametrize("token, reason", [
    (None, "Unauthorized"),
    ("garbage", "Authentication failed"),
])
async def test_bad_token_closes_with_policy_violation(runtime, session_factory, token, reason):
    connection = FakeConnection()
    session = ChatSession(connection, runtime, session_factory)

    assert await session.authenticate(token) is False
    assert session.state == SessionState.CLOSED
    assert connection.closed and connection.close_code == 1008
    assert connection.close_reason == reason
    assert connection.of_type("error")[0]["code"] == "Unauthenticated"
    assert len(runtime.registry) == 0


async def test_expired_token_is_rejected(runtime, session_factory, room_setup):
    _, patient, _ = room_setup
    token = create_access_token(patient.user_id, UserRole.PATIENT, expires_delta=timedelta(seconds=-1))
    connection = FakeConnection()

    assert await ChatSession(connection, runtime, session_factory).authenticate(token) is False
    assert connection.close_code == 1008
    assert connection.close_reason == "Authentication failed"
    # The error frame keeps the specific cause
    assert connection.of_type("error")[0]["message"] == "Token expired"


async def test_token_without_role_closes_with_generic_reason(runtime, session_factory):
    token = jwt.encode({"sub": str(uuid.uuid4())}, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
    connection = FakeConnection()

    assert await ChatSession(connection, runtime, session_factory).authenticate(token) is False
    assert connection.close_code == 1008
    assert connection.close_reason == "Authentication failed"
    assert connection.of_type("error")[0]["message"] == "Invalid token payload"


async def test_join_sends_room_joined_then_history(runtime, session_factory, room_setup):
    room, patient, nurse = room_setup
    async with session_factory() as db:
        await MessageStoreGateway(db).post_message(room.id, patient.user_id, UserRole.PATIENT, "earlier")

    session, connection = await _connect(runtime, session_factory, nurse)
    await session.handle_text(_frame(type="join-room", roomId=room.id))

    assert connection.types == ["connected", "room-joined", "room-history"]
    history = connection.of_type("room-history")[0]
    assert [m["content"] for m in history["messages"]] == ["earlier"]
    assert session.state == SessionState.IN_ROOM
    assert runtime.membership.is_member(room.id, nurse.user_id)


async def test_history_is_limited_to_most_recent(runtime, session_factory, room_setup):
    room, patient, nurse = room_setup
    async with session_factory() as db:
        gateway = MessageStoreGateway(db)
        for n in range(5):
            await gateway.post_message(room.id, patient.user_id, UserRole.PATIENT, f"m{n}")

    connection = FakeConnection()
    session = ChatSession(connection, runtime, session_factory, history_limit=3)
    await session.authenticate(token_for(nurse))
    await session.handle_text(_frame(type="join-room", roomId=room.id))

    history = connection.of_type("room-history")[0]["messages"]
    assert [m["content"] for m in history] == ["m2", "m3", "m4"]


async def test_send_requires_prior_join(runtime, session_factory, room_setup):
    room, patient, _ = room_setup
    session, connection = await _connect(runtime, session_factory, patient)

    await session.handle_text(_frame(type="send-message", roomId=room.id, content="too early"))

    error = connection.of_type("error")[0]
    assert error["code"] == "NotAuthorized"
    async with session_factory() as db:
        messages = await MessageStoreGateway(db).list_messages(room.id, patient.user_id, UserRole.PATIENT)
    assert messages == []


async def test_outsider_cannot_join_or_send(runtime, session_factory, room_setup):
    room, _, _ = room_setup
    outsider = await create_member(session_factory, UserRole.NURSE, "Other")
    session, connection = await _connect(runtime, session_factory, outsider)

    await session.handle_text(_frame(type="join-room", roomId=room.id))
    await session.handle_text(_frame(type="send-message", roomId=room.id, content="hi"))

    errors = connection.of_type("error")
    assert [e["code"] for e in errors] == ["NotAuthorized", "NotAuthorized"]
    assert not runtime.membership.is_member(room.id, outsider.user_id)
    assert session.state == SessionState.AUTHENTICATED


async def test_message_broadcast_to_joined_members(runtime, session_factory, room_setup):
    room, patient, nurse = room_setup
    patient_session, patient_conn = await _connect(runtime, session_factory, patient)
    nurse_session, nurse_conn = await _connect(runtime, session_factory, nurse)
    await patient_session.handle_text(_frame(type="join-room", roomId=room.id))
    await nurse_session.handle_text(_frame(type="join-room", roomId=room.id))

    await patient_session.handle_text(_frame(type="send-message", roomId=room.id, content="hello"))

    received = nurse_conn.of_type("new-message")
    assert len(received) == 1
    assert received[0]["roomId"] == str(room.id)
    assert received[0]["message"]["content"] == "hello"
    assert received[0]["message"]["senderRole"] == "PATIENT"
    # Sender gets the echo too
    assert len(patient_conn.of_type("new-message")) == 1


async def test_typing_excludes_sender_and_requires_join(runtime, session_factory, room_setup):
    room, patient, nurse = room_setup
    patient_session, patient_conn = await _connect(runtime, session_factory, patient)
    nurse_session, nurse_conn = await _connect(runtime, session_factory, nurse)

    await patient_session.handle_text(_frame(type="typing", roomId=room.id))
    assert patient_conn.of_type("error")[0]["code"] == "NotAuthorized"

    await patient_session.handle_text(_frame(type="join-room", roomId=room.id))
    await nurse_session.handle_text(_frame(type="join-room", roomId=room.id))
    await patient_session.handle_text(_frame(type="typing", roomId=room.id))

    assert nurse_conn.of_type("user-typing") == [{"type": "user-typing", "userId": str(patient.user_id), "roomId": str(room.id)}]
    assert patient_conn.of_type("user-typing") == []


async def test_mark_read_without_join(runtime, session_factory, room_setup):
    room, patient, nurse = room_setup
    async with session_factory() as db:
        await MessageStoreGateway(db).post_message(room.id, patient.user_id, UserRole.PATIENT, "unread")

    patient_session, patient_conn = await _connect(runtime, session_factory, patient)
    await patient_session.handle_text(_frame(type="join-room", roomId=room.id))
    nurse_session, nurse_conn = await _connect(runtime, session_factory, nurse)

    await nurse_session.handle_text(_frame(type="mark-read", roomId=room.id))

    assert nurse_conn.of_type("error") == []
    assert patient_conn.of_type("messages-read") == [
        {"type": "messages-read", "userId": str(nurse.user_id), "roomId": str(room.id)}
    ]


async def test_malformed_frames_keep_session_usable(runtime, session_factory, room_setup):
    room, patient, _ = room_setup
    session, connection = await _connect(runtime, session_factory, patient)

    await session.handle_text("{not json")
    await session.handle_text(_frame(type="teleport"))
    await session.handle_text(_frame(type="join-room", roomId="nope"))
    await session.handle_text(_frame(type="ping"))

    assert [e["code"] for e in connection.of_type("error")] == ["InvalidMessageFormat"] * 3
    assert connection.types[-1] == "pong"
    assert session.state == SessionState.AUTHENTICATED

    await session.handle_text(_frame(type="join-room", roomId=room.id))
    assert "room-joined" in connection.types


async def test_leave_room(runtime, session_factory, room_setup):
    room, patient, _ = room_setup
    session, connection = await _connect(runtime, session_factory, patient)
    await session.handle_text(_frame(type="join-room", roomId=room.id))

    await session.handle_text(_frame(type="leave-room", roomId=room.id))

    assert connection.types[-1] == "room-left"
    assert session.state == SessionState.AUTHENTICATED
    assert not runtime.membership.is_member(room.id, patient.user_id)


async def test_reconnect_replaces_and_closes_old_connection(runtime, session_factory, room_setup):
    room, patient, _ = room_setup
    old_session, old_conn = await _connect(runtime, session_factory, patient)
    await old_session.handle_text(_frame(type="join-room", roomId=room.id))

    new_session, new_conn = await _connect(runtime, session_factory, patient)

    assert runtime.registry.resolve(patient.user_id) is new_conn
    assert old_conn.closed and old_conn.close_reason == REPLACED_CLOSE_REASON
    # Memberships of the replaced connection are gone
    assert not runtime.membership.is_member(room.id, patient.user_id)

    # Late frames and the late disconnect of the old socket touch nothing
    await old_session.handle_text(_frame(type="ping"))
    assert old_conn.of_type("pong") == []
    await old_session.close()
    assert runtime.registry.resolve(patient.user_id) is new_conn


async def test_close_is_idempotent(runtime, session_factory, room_setup):
    room, patient, _ = room_setup
    session, _ = await _connect(runtime, session_factory, patient)
    await session.handle_text(_frame(type="join-room", roomId=room.id))

    await session.close()
    await session.close()

    assert session.state == SessionState.CLOSED
    assert not runtime.registry.is_user_online(patient.user_id)
    assert runtime.membership.members(room.id) == set()
    # Frames after close are dropped
    await session.handle_text(_frame(type="ping"))


async def test_close_after_failed_send_releases_rooms(runtime, session_factory, room_setup):
    room, patient, _ = room_setup
    session, connection = await _connect(runtime, session_factory, patient)
    await session.handle_text(_frame(type="join-room", roomId=room.id))

    connection.fail_sends = True
    assert await runtime.notifier.notify(patient.user_id, {"type": "notification"}) is False
    await session.close()

    assert runtime.membership.members(room.id) == set()

    new_session, new_conn = await _connect(runtime, session_factory, patient)
    await runtime.dispatcher.broadcast_to_room(room.id, {"type": "new-message", "roomId": str(room.id)})

    assert new_session.joined_rooms == set()
    assert new_conn.types == ["connected"]


async def test_failed_history_load_does_not_join(runtime, session_factory, room_setup, monkeypatch):
    room, patient, _ = room_setup
    session, connection = await _connect(runtime, session_factory, patient)

    async def failing_list_messages(self, *args, **kwargs):
        raise PersistenceFailure("Failed to load messages")

    monkeypatch.setattr(MessageStoreGateway, "list_messages", failing_list_messages)
    await session.handle_text(_frame(type="join-room", roomId=room.id))

    assert connection.types == ["connected", "error"]
    assert connection.of_type("error")[0]["code"] == "PersistenceFailure"
    assert session.joined_rooms == set()
    assert session.state == SessionState.AUTHENTICATED
    assert not runtime.membership.is_member(room.id, patient.user_id)
