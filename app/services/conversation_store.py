"""Persistence for assistant chat sessions and their message history.

Conversation memory (topics, recently mentioned entities) lives in the
in-process cache; this store keeps the transcript so a session can be listed
and resumed later.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from supabase import Client, create_client

from app.core.config import get_settings
from app.models.conversation import Conversation, ConversationMessage, MessageRole, MessageStatus

logger = logging.getLogger(__name__)

CONVERSATIONS_TABLE = "chatbot_conversations"
MESSAGES_TABLE = "chatbot_messages"

DEFAULT_PAGE_SIZE = 20
DEFAULT_HISTORY_LIMIT = 50
TITLE_MAX_LENGTH = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_conversation_title(first_message: str) -> str:
    title = (first_message or "").strip().replace("\n", " ")
    if len(title) > TITLE_MAX_LENGTH:
        title = title[: TITLE_MAX_LENGTH - 3] + "..."
    return title or "New Conversation"


class ConversationStore(ABC):
    @abstractmethod
    async def create(
        self,
        user_id: str,
        company_id: str,
        client_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Conversation:
        ...

    @abstractmethod
    async def get(self, conversation_id: str) -> Optional[Conversation]:
        ...

    @abstractmethod
    async def list(
        self,
        user_id: str,
        company_id: str,
        *,
        client_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> Tuple[List[Conversation], int]:
        """Most recently updated first, plus the unpaginated total.

        ``client_id`` of None lists every session of the user in the company.
        """

    @abstractmethod
    async def get_recent(
        self,
        user_id: str,
        company_id: str,
        client_id: Optional[str],
        within: timedelta,
    ) -> Optional[Conversation]:
        """Latest session for exactly this client (None means no client) updated inside ``within``."""

    @abstractmethod
    async def update(self, conversation_id: str, *, title: Optional[str] = None, summary: Optional[str] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, conversation_id: str) -> bool:
        ...

    @abstractmethod
    async def save_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        *,
        tool_name: Optional[str] = None,
        tool_args: Optional[Dict[str, Any]] = None,
        tool_result: Optional[Dict[str, Any]] = None,
        status: MessageStatus = "success",
    ) -> ConversationMessage:
        """Append a message and bump the session's message count and timestamps."""

    @abstractmethod
    async def load_history(self, conversation_id: str, *, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ConversationMessage]:
        """The latest ``limit`` messages in chronological order."""


class InMemoryConversationStore(ConversationStore):
    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self._clock = clock
        self._new_id = id_factory
        self._conversations: Dict[str, Conversation] = {}
        self._messages: Dict[str, List[ConversationMessage]] = {}

    async def create(
        self,
        user_id: str,
        company_id: str,
        client_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Conversation:
        now = self._clock()
        conversation = Conversation(
            id=self._new_id(),
            user_id=user_id,
            company_id=company_id,
            client_id=client_id or None,
            title=title or None,
            created_at=now,
            updated_at=now,
        )
        self._conversations[conversation.id] = conversation
        self._messages[conversation.id] = []
        return conversation.model_copy()

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        return conversation.model_copy() if conversation else None

    def _owned(self, user_id: str, company_id: str) -> List[Conversation]:
        rows = [
            item
            for item in self._conversations.values()
            if item.user_id == user_id and item.company_id == company_id
        ]
        return sorted(rows, key=lambda item: item.updated_at, reverse=True)

    async def list(
        self,
        user_id: str,
        company_id: str,
        *,
        client_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> Tuple[List[Conversation], int]:
        rows = self._owned(user_id, company_id)
        if client_id is not None:
            rows = [item for item in rows if item.client_id == client_id]
        page = [item.model_copy() for item in rows[offset : offset + limit]]
        return page, len(rows)

    async def get_recent(
        self,
        user_id: str,
        company_id: str,
        client_id: Optional[str],
        within: timedelta,
    ) -> Optional[Conversation]:
        cutoff = self._clock() - within
        for item in self._owned(user_id, company_id):
            if item.client_id == (client_id or None) and item.updated_at > cutoff:
                return item.model_copy()
        return None

    async def update(self, conversation_id: str, *, title: Optional[str] = None, summary: Optional[str] = None) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return
        if title is not None:
            conversation.title = title
        if summary is not None:
            conversation.summary = summary
        conversation.updated_at = self._clock()

    async def delete(self, conversation_id: str) -> bool:
        self._messages.pop(conversation_id, None)
        return self._conversations.pop(conversation_id, None) is not None

    async def save_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        *,
        tool_name: Optional[str] = None,
        tool_args: Optional[Dict[str, Any]] = None,
        tool_result: Optional[Dict[str, Any]] = None,
        status: MessageStatus = "success",
    ) -> ConversationMessage:
        conversation = self._conversations[conversation_id]
        now = self._clock()
        message = ConversationMessage(
            id=self._new_id(),
            conversation_id=conversation_id,
            role=role,
            content=content,
            tool_name=tool_name,
            tool_args=tool_args,
            tool_result=tool_result,
            status=status,
            created_at=now,
        )
        self._messages[conversation_id].append(message)
        conversation.message_count += 1
        conversation.last_message_at = now
        conversation.updated_at = now
        return message

    async def load_history(self, conversation_id: str, *, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ConversationMessage]:
        messages = self._messages.get(conversation_id, [])
        return list(messages[-limit:]) if limit > 0 else []

    def __len__(self) -> int:
        return len(self._conversations)


class SupabaseConversationStore(ConversationStore):
    """Backed by the ``chatbot_conversations`` / ``chatbot_messages`` tables.

    Deleting a conversation cascades to its messages in the database.
    """

    def __init__(self, client: Client, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self.client = client
        self._clock = clock

    def _conversations(self):
        return self.client.table(CONVERSATIONS_TABLE)

    def _create_sync(self, row: Dict[str, Any]) -> Conversation:
        response = self._conversations().insert(row).execute()
        return Conversation.model_validate(response.data[0])

    def _get_sync(self, conversation_id: str) -> Optional[Conversation]:
        response = self._conversations().select("*").eq("id", conversation_id).limit(1).execute()
        rows = response.data or []
        return Conversation.model_validate(rows[0]) if rows else None

    def _list_sync(
        self,
        user_id: str,
        company_id: str,
        client_id: Optional[str],
        limit: int,
        offset: int,
    ) -> Tuple[List[Conversation], int]:
        query = (
            self._conversations()
            .select("*", count="exact")
            .eq("user_id", user_id)
            .eq("company_id", company_id)
        )
        if client_id is not None:
            query = query.eq("client_id", client_id)
        response = query.order("updated_at", desc=True).range(offset, offset + limit - 1).execute()
        rows = [Conversation.model_validate(row) for row in response.data or []]
        return rows, response.count or 0

    def _get_recent_sync(
        self,
        user_id: str,
        company_id: str,
        client_id: Optional[str],
        cutoff: datetime,
    ) -> Optional[Conversation]:
        query = (
            self._conversations()
            .select("*")
            .eq("user_id", user_id)
            .eq("company_id", company_id)
            .gt("updated_at", cutoff.isoformat())
        )
        query = query.eq("client_id", client_id) if client_id else query.is_("client_id", "null")
        response = query.order("updated_at", desc=True).limit(1).execute()
        rows = response.data or []
        return Conversation.model_validate(rows[0]) if rows else None

    def _update_sync(self, conversation_id: str, changes: Dict[str, Any]) -> None:
        self._conversations().update(changes).eq("id", conversation_id).execute()

    def _delete_sync(self, conversation_id: str) -> bool:
        response = self._conversations().delete().eq("id", conversation_id).execute()
        return bool(response.data)

    def _save_message_sync(self, row: Dict[str, Any]) -> ConversationMessage:
        response = self.client.table(MESSAGES_TABLE).insert(row).execute()
        message = ConversationMessage.model_validate(response.data[0])

        # PostgREST has no atomic increment without an RPC; read then write.
        current = self._get_sync(message.conversation_id)
        now = self._clock().isoformat()
        self._update_sync(
            message.conversation_id,
            {
                "message_count": (current.message_count if current else 0) + 1,
                "last_message_at": now,
                "updated_at": now,
            },
        )
        return message

    def _load_history_sync(self, conversation_id: str, limit: int) -> List[ConversationMessage]:
        response = (
            self.client.table(MESSAGES_TABLE)
            .select("*")
            .eq("conversation_id", conversation_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        rows = [ConversationMessage.model_validate(row) for row in response.data or []]
        rows.reverse()
        return rows

    async def create(
        self,
        user_id: str,
        company_id: str,
        client_id: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Conversation:
        row = {
            "user_id": user_id,
            "company_id": company_id,
            "client_id": client_id or None,
            "title": title or None,
            "message_count": 0,
        }
        return await asyncio.to_thread(self._create_sync, row)

    async def get(self, conversation_id: str) -> Optional[Conversation]:
        return await asyncio.to_thread(self._get_sync, conversation_id)

    async def list(
        self,
        user_id: str,
        company_id: str,
        *,
        client_id: Optional[str] = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> Tuple[List[Conversation], int]:
        return await asyncio.to_thread(self._list_sync, user_id, company_id, client_id, limit, offset)

    async def get_recent(
        self,
        user_id: str,
        company_id: str,
        client_id: Optional[str],
        within: timedelta,
    ) -> Optional[Conversation]:
        cutoff = self._clock() - within
        return await asyncio.to_thread(self._get_recent_sync, user_id, company_id, client_id, cutoff)

    async def update(self, conversation_id: str, *, title: Optional[str] = None, summary: Optional[str] = None) -> None:
        changes: Dict[str, Any] = {"updated_at": self._clock().isoformat()}
        if title is not None:
            changes["title"] = title
        if summary is not None:
            changes["summary"] = summary
        await asyncio.to_thread(self._update_sync, conversation_id, changes)

    async def delete(self, conversation_id: str) -> bool:
        return await asyncio.to_thread(self._delete_sync, conversation_id)

    async def save_message(
        self,
        conversation_id: str,
        role: MessageRole,
        content: str,
        *,
        tool_name: Optional[str] = None,
        tool_args: Optional[Dict[str, Any]] = None,
        tool_result: Optional[Dict[str, Any]] = None,
        status: MessageStatus = "success",
    ) -> ConversationMessage:
        row = {
            "conversation_id": conversation_id,
            "role": role,
            "content": content,
            "tool_name": tool_name,
            "tool_args": tool_args,
            "tool_result": tool_result,
            "status": status,
        }
        return await asyncio.to_thread(self._save_message_sync, row)

    async def load_history(self, conversation_id: str, *, limit: int = DEFAULT_HISTORY_LIMIT) -> List[ConversationMessage]:
        return await asyncio.to_thread(self._load_history_sync, conversation_id, limit)


@lru_cache
def get_conversation_store() -> ConversationStore:
    settings = get_settings()
    if settings.supabase_url and settings.supabase_service_role_key:
        client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        return SupabaseConversationStore(client)
    logger.warning("Supabase not configured, conversations are kept in process memory (not persistent)")
    return InMemoryConversationStore()
