import uuid

from app.core.cache import CacheManager
from app.services.chat.authorization import RoomAuthorizer


class FakeRedis:
    """Just enough of redis.asyncio for key scans and deletes."""

    def __init__(self, data):
        self.data = dict(data)

    async def scan_iter(self, match=None):
        prefix = match.split("*")[0]
        for key in list(self.data):
            if key.startswith(prefix) and key.endswith(match.rsplit("*", 1)[-1]):
                yield key

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed


def _enabled_cache(data) -> CacheManager:
    manager = CacheManager(url="redis://unused", enabled=True)
    manager.redis = FakeRedis(data)
    return manager


async def test_delete_pattern_removes_matching_keys():
    room_a, room_b = uuid.uuid4(), uuid.uuid4()
    manager = _enabled_cache({
        f"chat:room:{room_a}:participants": "{}",
        f"chat:room:{room_b}:participants": "{}",
        "session:abc": "{}",
    })

    assert await RoomAuthorizer(db=None, cache=manager).forget_all_rooms() == 2
    assert list(manager.redis.data) == ["session:abc"]


async def test_delete_pattern_is_a_noop_when_disabled():
    manager = CacheManager(url="redis://unused", enabled=False)
    assert await manager.delete_pattern("chat:room:*") == 0
