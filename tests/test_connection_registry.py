import uuid

from app.services.chat.connection_registry import ConnectionRegistry
from app.services.chat.room_membership import RoomMembership

from conftest import FakeConnection


def test_register_replaces_and_returns_previous():
    registry = ConnectionRegistry()
    user_id = uuid.uuid4()
    first, second = FakeConnection(), FakeConnection()

    assert registry.register(user_id, first) is None
    assert registry.register(user_id, second) is first
    assert registry.resolve(user_id) is second
    assert len(registry) == 1
    # Replacing never closes; that is the session's policy
    assert not first.closed


def test_unregister_only_removes_own_connection():
    registry = ConnectionRegistry()
    user_id = uuid.uuid4()
    old, new = FakeConnection(), FakeConnection()

    registry.register(user_id, old)
    registry.register(user_id, new)

    assert registry.unregister(user_id, old) is False
    assert registry.resolve(user_id) is new
    assert registry.unregister(user_id, new) is True
    assert not registry.is_user_online(user_id)


async def test_send_to_user_offline_returns_false():
    registry = ConnectionRegistry()
    assert await registry.send_to_user(uuid.uuid4(), {"type": "pong"}) is False


async def test_failed_send_drops_entry():
    registry = ConnectionRegistry()
    user_id = uuid.uuid4()
    registry.register(user_id, FakeConnection(fail_sends=True))

    assert await registry.send_to_user(user_id, {"type": "pong"}) is False
    assert not registry.is_user_online(user_id)


async def test_broadcast_all_filters_by_predicate():
    registry = ConnectionRegistry()
    alice, bob = uuid.uuid4(), uuid.uuid4()
    alice_conn, bob_conn = FakeConnection(), FakeConnection()
    registry.register(alice, alice_conn)
    registry.register(bob, bob_conn)

    sent = await registry.broadcast_all(lambda user_key: user_key == str(bob), {"type": "announcement"})

    assert sent == 1
    assert alice_conn.sent == []
    assert bob_conn.types == ["announcement"]


async def test_close_all_clears_registry():
    registry = ConnectionRegistry()
    connections = [FakeConnection() for _ in range(3)]
    for connection in connections:
        registry.register(uuid.uuid4(), connection)

    await registry.close_all()

    assert len(registry) == 0
    assert all(c.closed and c.close_code == 1001 for c in connections)


def test_membership_join_leave():
    membership = RoomMembership()
    room_id, user_id = uuid.uuid4(), uuid.uuid4()

    membership.join(room_id, user_id)
    membership.join(room_id, user_id)
    assert membership.members(room_id) == {str(user_id)}
    assert membership.is_member(room_id, user_id)

    assert membership.leave(room_id, user_id) is True
    assert membership.leave(room_id, user_id) is False
    # Empty rooms are removed
    assert membership.room_subscriptions == {}


def test_membership_leave_all():
    membership = RoomMembership()
    user_id, other = uuid.uuid4(), uuid.uuid4()
    rooms = [uuid.uuid4() for _ in range(3)]
    for room_id in rooms:
        membership.join(room_id, user_id)
    membership.join(rooms[0], other)

    assert membership.rooms_for(user_id) == {str(r) for r in rooms}
    assert membership.leave_all(user_id) == 3
    assert membership.rooms_for(user_id) == set()
    assert membership.members(rooms[0]) == {str(other)}


def test_members_returns_a_copy():
    membership = RoomMembership()
    room_id = uuid.uuid4()
    membership.join(room_id, uuid.uuid4())

    snapshot = membership.members(room_id)
    snapshot.clear()

    assert len(membership.members(room_id)) == 1
