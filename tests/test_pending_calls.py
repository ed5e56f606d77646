from datetime import datetime, timedelta, timezone

import pytest

from app.models.assistant import PendingCall, ToolPreview
from app.core.config import Settings
from app.services import pending_calls
from app.services.pending_calls import InMemoryPendingCallStore, RedisPendingCallStore

pytestmark = pytest.mark.anyio

NOW = datetime(2026, 6, 10, 12, 0, tzinfo=timezone.utc)


def _pending(call_id: str = "call-1") -> PendingCall:
    return PendingCall(
        id=call_id,
        tool_name="add_guest",
        args={"firstName": "Jane", "clientId": "client-1"},
        preview=ToolPreview(tool_name="add_guest", action="Create/Update", description="Add guest Jane to wedding"),
        user_id="user-1",
        company_id="company-1",
        client_id="client-1",
        created_at=NOW,
        expires_at=NOW + timedelta(minutes=5),
    )


class FakeRedis:
    def __init__(self) -> None:
        self.values = {}
        self.ttls = {}

    async def setex(self, key, seconds, value):
        self.values[key] = value
        self.ttls[key] = seconds

    async def get(self, key):
        return self.values.get(key)

    async def delete(self, key):
        return 1 if self.values.pop(key, None) is not None else 0

    async def getdel(self, key):
        return self.values.pop(key, None)


def test_pending_call_expiry_boundary():
    call = _pending()

    assert call.is_expired(NOW + timedelta(minutes=4, seconds=59)) is False
    assert call.is_expired(NOW + timedelta(minutes=5)) is True


async def test_in_memory_take_returns_call_once():
    store = InMemoryPendingCallStore()
    await store.set(_pending())

    first = await store.take("call-1")
    second = await store.take("call-1")

    assert first is not None and first.tool_name == "add_guest"
    assert second is None
    assert len(store) == 0


async def test_in_memory_delete_is_idempotent():
    store = InMemoryPendingCallStore()
    await store.set(_pending())

    assert await store.delete("call-1") is True
    assert await store.delete("call-1") is False
    assert await store.get("call-1") is None


async def test_redis_store_round_trips_with_retention_window():
    client = FakeRedis()
    store = RedisPendingCallStore(client, "chatbot:pending-call", ttl_seconds=300)
    await store.set(_pending())

    assert client.ttls["chatbot:pending-call:call-1"] == 600
    loaded = await store.get("call-1")
    assert loaded.args == {"firstName": "Jane", "clientId": "client-1"}
    assert loaded.expires_at == NOW + timedelta(minutes=5)
    assert loaded.preview.description == "Add guest Jane to wedding"


async def test_redis_take_is_single_use():
    client = FakeRedis()
    store = RedisPendingCallStore(client, "pc", ttl_seconds=300)
    await store.set(_pending())

    assert (await store.take("call-1")).id == "call-1"
    assert await store.take("call-1") is None
    assert await store.delete("call-1") is False


async def test_factory_builds_lazy_redis_store(monkeypatch):
    monkeypatch.setattr(pending_calls, "_store_instance", None)
    monkeypatch.setattr(
        pending_calls,
        "get_settings",
        lambda: Settings(redis_url="redis://127.0.0.1:1/0", pending_call_prefix="pc", pending_call_ttl_seconds=60),
    )

    # no server listens on port 1; building the client must not connect
    store = await pending_calls.get_pending_call_store()

    assert isinstance(store, RedisPendingCallStore)
    assert await pending_calls.get_pending_call_store() is store


async def test_factory_falls_back_to_memory_without_redis(monkeypatch):
    monkeypatch.setattr(pending_calls, "_store_instance", None)
    monkeypatch.setattr(pending_calls, "get_settings", lambda: Settings(redis_url=None))

    assert isinstance(await pending_calls.get_pending_call_store(), InMemoryPendingCallStore)
