"""Scoped read access to clients, guests, vendors and events.

Clients and vendors are scoped by company (tenant); guests and events are
scoped by client. Soft-deleted rows (``deleted_at`` set) are never returned.
"""

from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client, create_client

from app.core.config import get_settings

logger = logging.getLogger(__name__)

EntityRecord = Dict[str, Any]

# table name, scope column, searchable name columns
ENTITY_TABLES: Dict[str, Tuple[str, str, Tuple[str, ...]]] = {
    "client": (
        "clients",
        "company_id",
        ("partner1_first_name", "partner1_last_name", "partner2_first_name", "partner2_last_name", "wedding_name"),
    ),
    "guest": ("guests", "client_id", ("first_name", "last_name")),
    "vendor": ("vendors", "company_id", ("name",)),
    "event": ("events", "client_id", ("title", "event_type")),
}

SEARCH_LIMIT = 10


class EntityRepository(ABC):
    @abstractmethod
    async def get(self, entity_type: str, scope_id: str, entity_id: str) -> Optional[EntityRecord]:
        """Fetch one record by id inside its scope (company or client)."""

    @abstractmethod
    async def search(
        self,
        entity_type: str,
        scope_id: str,
        query: str,
        *,
        limit: int = SEARCH_LIMIT,
    ) -> List[EntityRecord]:
        """Case-insensitive substring search over the entity's name columns."""

    @abstractmethod
    async def list(self, entity_type: str, scope_id: str) -> List[EntityRecord]:
        ...

    async def client_belongs_to_company(self, client_id: str, company_id: str) -> bool:
        if not client_id or not company_id:
            return False
        return await self.get("client", company_id, client_id) is not None


class InMemoryEntityRepository(EntityRepository):
    """Dict-backed repository for local development and tests."""

    def __init__(self) -> None:
        self._rows: Dict[str, List[EntityRecord]] = {entity_type: [] for entity_type in ENTITY_TABLES}

    def add(self, entity_type: str, record: EntityRecord) -> EntityRecord:
        self._table(entity_type).append(dict(record))
        return record

    def _table(self, entity_type: str) -> List[EntityRecord]:
        if entity_type not in self._rows:
            raise ValueError(f"Unknown entity type: {entity_type}")
        return self._rows[entity_type]

    def _scoped(self, entity_type: str, scope_id: str) -> List[EntityRecord]:
        _, scope_column, _ = ENTITY_TABLES[entity_type]
        return [
            dict(row)
            for row in self._table(entity_type)
            if row.get(scope_column) == scope_id and not row.get("deleted_at")
        ]

    async def get(self, entity_type: str, scope_id: str, entity_id: str) -> Optional[EntityRecord]:
        for row in self._scoped(entity_type, scope_id):
            if str(row.get("id")) == str(entity_id):
                return row
        return None

    async def search(
        self,
        entity_type: str,
        scope_id: str,
        query: str,
        *,
        limit: int = SEARCH_LIMIT,
    ) -> List[EntityRecord]:
        _, _, name_columns = ENTITY_TABLES[entity_type]
        needle = (query or "").strip().lower()
        matches: List[EntityRecord] = []
        for row in self._scoped(entity_type, scope_id):
            if any(needle in str(row.get(column) or "").lower() for column in name_columns):
                matches.append(row)
            if len(matches) >= limit:
                break
        return matches

    async def list(self, entity_type: str, scope_id: str) -> List[EntityRecord]:
        return self._scoped(entity_type, scope_id)


_UNSAFE_FILTER_CHARS = re.compile(r"[,()*%\\]")


class SupabaseEntityRepository(EntityRepository):
    """PostgREST-backed repository.

    The Supabase client performs blocking I/O, so every query runs in a worker
    thread.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    def _base_query(self, entity_type: str, scope_id: str):
        table_name, scope_column, _ = ENTITY_TABLES[entity_type]
        query = self.client.table(table_name).select("*").eq(scope_column, scope_id)
        if entity_type != "vendor":
            query = query.is_("deleted_at", "null")
        return query

    def _get_sync(self, entity_type: str, scope_id: str, entity_id: str) -> Optional[EntityRecord]:
        response = self._base_query(entity_type, scope_id).eq("id", entity_id).limit(1).execute()
        rows = response.data or []
        return rows[0] if rows else None

    def _search_sync(self, entity_type: str, scope_id: str, query: str, limit: int) -> List[EntityRecord]:
        _, _, name_columns = ENTITY_TABLES[entity_type]
        term = _UNSAFE_FILTER_CHARS.sub(" ", query or "").strip()
        if not term:
            return []
        expression = ",".join(f"{column}.ilike.*{term}*" for column in name_columns)
        response = self._base_query(entity_type, scope_id).or_(expression).limit(limit).execute()
        return list(response.data or [])

    def _list_sync(self, entity_type: str, scope_id: str) -> List[EntityRecord]:
        response = self._base_query(entity_type, scope_id).execute()
        return list(response.data or [])

    async def get(self, entity_type: str, scope_id: str, entity_id: str) -> Optional[EntityRecord]:
        return await asyncio.to_thread(self._get_sync, entity_type, scope_id, entity_id)

    async def search(
        self,
        entity_type: str,
        scope_id: str,
        query: str,
        *,
        limit: int = SEARCH_LIMIT,
    ) -> List[EntityRecord]:
        return await asyncio.to_thread(self._search_sync, entity_type, scope_id, query, limit)

    async def list(self, entity_type: str, scope_id: str) -> List[EntityRecord]:
        return await asyncio.to_thread(self._list_sync, entity_type, scope_id)


@lru_cache
def get_entity_repository() -> EntityRepository:
    settings = get_settings()
    if settings.supabase_url and settings.supabase_service_role_key:
        client = create_client(settings.supabase_url, settings.supabase_service_role_key)
        return SupabaseEntityRepository(client)
    logger.warning("Supabase not configured, using in-memory entity repository (not persistent)")
    return InMemoryEntityRepository()
