"""Conversation memory: a bounded, inactivity-expiring cache per chat session.

Sessions are keyed by ``"<user_id>:<client_id or global>"``. The cache evicts
the least recently *accessed* entry when full, and treats entries idle for
longer than the TTL as absent. A scheduler job sweeps idle entries
periodically; its lifecycle belongs to the application lifespan.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.core.config import get_settings
from app.models.memory import ConversationMemory, PronounResolution, RecentEntity

logger = logging.getLogger(__name__)

MAX_TOPICS = 5
MAX_RECENT_ENTITIES = 10

PRONOUN_PATTERNS = (
    re.compile(r"\b(them|they|those)\b", re.IGNORECASE),
    re.compile(r"\b(it|that|this)\b", re.IGNORECASE),
    re.compile(r"\b(him|her|they)\b", re.IGNORECASE),
)

Clock = Callable[[], float]


@dataclass
class _CacheEntry:
    memory: ConversationMemory
    last_access: float


class BoundedMemoryCache:
    """LRU-by-access cache with an inactivity TTL.

    All operations take the same lock so the slot count and the eviction
    choice stay consistent under concurrent sessions.
    """

    def __init__(self, capacity: int = 500, ttl_seconds: float = 3600, *, clock: Clock = time.monotonic) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[ConversationMemory]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            now = self._clock()
            if now - entry.last_access > self.ttl_seconds:
                del self._entries[key]
                return None
            entry.last_access = now
            return entry.memory

    def set(self, key: str, memory: ConversationMemory) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.capacity:
                self._evict_oldest()
            self._entries[key] = _CacheEntry(memory=memory, last_access=self._clock())

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def cleanup(self) -> int:
        """Drop every entry idle past the TTL; returns how many were removed."""
        with self._lock:
            cutoff = self._clock() - self.ttl_seconds
            expired = [key for key, entry in self._entries.items() if entry.last_access < cutoff]
            for key in expired:
                del self._entries[key]
            remaining = len(self._entries)
        if expired:
            logger.info("Memory sweep removed=%s remaining=%s", len(expired), remaining)
        return len(expired)

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def _evict_oldest(self) -> None:
        # caller holds the lock
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda key: self._entries[key].last_access)
        del self._entries[oldest_key]
        logger.debug("Memory cache evicted key=%s", oldest_key)


def memory_key(user_id: str, client_id: Optional[str] = None) -> str:
    return f"{user_id}:{client_id or 'global'}"


class ConversationMemoryService:
    def __init__(self, cache: BoundedMemoryCache) -> None:
        self.cache = cache

    def get_memory(self, user_id: str, client_id: Optional[str] = None) -> ConversationMemory:
        key = memory_key(user_id, client_id)
        memory = self.cache.get(key)
        if memory is None:
            memory = ConversationMemory()
            self.cache.set(key, memory)
        return memory

    def peek(self, user_id: str, client_id: Optional[str] = None) -> Optional[ConversationMemory]:
        return self.cache.get(memory_key(user_id, client_id))

    def clear(self, user_id: str, client_id: Optional[str] = None) -> None:
        self.cache.delete(memory_key(user_id, client_id))

    def update(
        self,
        user_id: str,
        client_id: Optional[str] = None,
        *,
        topic: Optional[str] = None,
        entity: Optional[RecentEntity] = None,
        follow_up: Optional[str] = None,
        clear_follow_ups: bool = False,
    ) -> ConversationMemory:
        memory = self.get_memory(user_id, client_id)
        memory.message_count += 1

        if topic:
            memory.last_topics = [topic, *memory.last_topics[: MAX_TOPICS - 1]]

        if entity is not None:
            remaining = [item for item in memory.recent_entities if item.id != entity.id]
            entity = replace(entity, last_mentioned=datetime.now(timezone.utc))
            memory.recent_entities = [entity, *remaining[: MAX_RECENT_ENTITIES - 1]]

        if follow_up:
            memory.pending_follow_ups.append(follow_up)

        if clear_follow_ups:
            memory.pending_follow_ups = []

        return memory

    @staticmethod
    def resolve_pronouns(message: str, memory: ConversationMemory) -> Optional[PronounResolution]:
        if not memory.recent_entities:
            return None
        if not any(pattern.search(message or "") for pattern in PRONOUN_PATTERNS):
            return None
        head = memory.recent_entities[0]
        return PronounResolution(entity_type=head.type, entity_id=head.id, entity_name=head.name)

    @staticmethod
    def format_for_prompt(memory: ConversationMemory) -> List[str]:
        lines: List[str] = []
        if memory.last_topics:
            lines.append(f"- Recent Topics: {', '.join(memory.last_topics[:3])}")
        if memory.recent_entities:
            discussed = ", ".join(f"{item.name} ({item.type})" for item in memory.recent_entities[:3])
            lines.append(f"- Recently Discussed: {discussed}")
        if memory.pending_follow_ups:
            lines.append(f"- Pending Follow-ups: {'; '.join(memory.pending_follow_ups)}")
        return lines


class MemorySweeper:
    """Runs ``cache.cleanup`` on an interval inside the application's event loop."""

    JOB_ID = "conversation-memory-sweep"

    def __init__(self, cache: BoundedMemoryCache, interval_minutes: int = 30) -> None:
        self.cache = cache
        self.interval_minutes = interval_minutes
        self._scheduler: Optional[AsyncIOScheduler] = None

    def start(self) -> None:
        if self.is_running:
            logger.warning("Memory sweeper already running")
            return
        self._scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
            },
        )
        self._scheduler.add_job(
            self.sweep,
            "interval",
            minutes=self.interval_minutes,
            id=self.JOB_ID,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info("Memory sweeper started interval_minutes=%s", self.interval_minutes)

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Memory sweeper stopped")

    def sweep(self) -> int:
        return self.cache.cleanup()

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running


@lru_cache
def get_memory_service() -> ConversationMemoryService:
    settings = get_settings()
    cache = BoundedMemoryCache(settings.memory_cache_capacity, settings.memory_ttl_seconds)
    return ConversationMemoryService(cache)
