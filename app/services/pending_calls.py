from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis.asyncio as redis

from app.core.config import get_settings
from app.models.assistant import PendingCall

logger = logging.getLogger(__name__)


class PendingCallStore(ABC):
    """Key-value storage for previewed mutations awaiting confirmation.

    Confirmation can reach a different process than the one that produced the
    preview, so production deployments use a shared backend. Expiry is judged
    by the caller from ``PendingCall.expires_at``; backend TTLs only reclaim
    space.
    """

    @abstractmethod
    async def set(self, call: PendingCall) -> None:
        ...

    @abstractmethod
    async def get(self, call_id: str) -> Optional[PendingCall]:
        ...

    @abstractmethod
    async def delete(self, call_id: str) -> bool:
        ...

    @abstractmethod
    async def take(self, call_id: str) -> Optional[PendingCall]:
        """Atomically fetch and remove; concurrent callers see it at most once."""


class InMemoryPendingCallStore(PendingCallStore):
    """Single-process store. Only suitable when one worker serves all requests."""

    def __init__(self) -> None:
        self._data: Dict[str, PendingCall] = {}

    async def set(self, call: PendingCall) -> None:
        self._data[call.id] = call

    async def get(self, call_id: str) -> Optional[PendingCall]:
        return self._data.get(call_id)

    async def delete(self, call_id: str) -> bool:
        return self._data.pop(call_id, None) is not None

    async def take(self, call_id: str) -> Optional[PendingCall]:
        return self._data.pop(call_id, None)

    def __len__(self) -> int:
        return len(self._data)


class RedisPendingCallStore(PendingCallStore):
    def __init__(self, redis_client: redis.Redis, prefix: str, ttl_seconds: int) -> None:
        self.client = redis_client
        self.prefix = prefix
        # keep expired records around long enough to answer "expired" instead of "not found"
        self.retention_seconds = ttl_seconds * 2

    def _key(self, call_id: str) -> str:
        return f"{self.prefix}:{call_id}"

    @staticmethod
    def _decode(raw: Optional[str]) -> Optional[PendingCall]:
        if not raw:
            return None
        return PendingCall.model_validate_json(raw)

    async def set(self, call: PendingCall) -> None:
        await self.client.setex(self._key(call.id), self.retention_seconds, call.model_dump_json(by_alias=True))

    async def get(self, call_id: str) -> Optional[PendingCall]:
        return self._decode(await self.client.get(self._key(call_id)))

    async def delete(self, call_id: str) -> bool:
        return bool(await self.client.delete(self._key(call_id)))

    async def take(self, call_id: str) -> Optional[PendingCall]:
        return self._decode(await self.client.getdel(self._key(call_id)))


_store_instance: Optional[PendingCallStore] = None


async def get_pending_call_store() -> PendingCallStore:
    global _store_instance
    if _store_instance:
        return _store_instance

    settings = get_settings()
    if settings.redis_url:
        client = redis.from_url(settings.redis_url, decode_responses=True)
        _store_instance = RedisPendingCallStore(client, settings.pending_call_prefix, settings.pending_call_ttl_seconds)
    else:
        logger.warning("REDIS_URL not set, pending calls are kept in process memory (single instance only)")
        _store_instance = InMemoryPendingCallStore()
    return _store_instance
