from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RecentEntity:
    type: str
    id: str
    name: str
    last_mentioned: datetime = field(default_factory=_utcnow)


@dataclass
class ConversationMemory:
    """Per-session recall used for pronoun resolution and prompt context."""

    last_topics: List[str] = field(default_factory=list)
    recent_entities: List[RecentEntity] = field(default_factory=list)
    pending_follow_ups: List[str] = field(default_factory=list)
    session_started: datetime = field(default_factory=_utcnow)
    message_count: int = 0


@dataclass(frozen=True)
class PronounResolution:
    entity_type: str
    entity_id: str
    entity_name: str
