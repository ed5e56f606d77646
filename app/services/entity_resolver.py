"""Fuzzy entity resolution for natural-language commands.

Resolution order for every entity type:

1. A UUID query is looked up directly inside the scope; a hit wins with
   confidence 1.0.
2. Otherwise up to ``SEARCH_LIMIT`` substring matches are scored with
   :func:`calculate_similarity` and ranked.
3. The top candidate is returned when it clears the type's confidence floor
   and is either alone or ahead of the runner-up by the decisive gap. A single
   low-confidence candidate is still returned. Anything else is ambiguous and
   lists the top five.

Thresholds (one pair per type, see ``ENTITY_PROFILES``)::

    type     floor  gap
    client   0.80   0.10
    guest    0.80   0.10
    vendor   0.80   0.10
    event    0.70   0.10   event text includes the event type, so scores run lower
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from fastapi import Depends

from app.models.entity import EntityResolutionResult, ResolutionOption, ResolvedEntity
from app.services.entity_repository import (
    SEARCH_LIMIT,
    EntityRecord,
    EntityRepository,
    get_entity_repository,
)
from app.services.similarity import calculate_similarity

logger = logging.getLogger(__name__)

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
MAX_OPTIONS = 5

Scorer = Callable[[str, str], float]


def _join(*parts: Any) -> str:
    return " ".join(str(part) for part in parts if part).strip()


def client_display_name(row: EntityRecord) -> str:
    partner1 = _join(row.get("partner1_first_name"), row.get("partner1_last_name"))
    partner2 = row.get("partner2_first_name") or "Partner"
    return f"{partner1} & {partner2}".strip()


def guest_display_name(row: EntityRecord) -> str:
    return _join(row.get("first_name"), row.get("last_name"))


def vendor_display_name(row: EntityRecord) -> str:
    return f"{row.get('name', '')} ({row.get('category') or 'vendor'})"


def event_display_name(row: EntityRecord) -> str:
    return f"{row.get('title', '')} ({row.get('event_type') or 'event'})"


@dataclass(frozen=True)
class EntityProfile:
    entity_type: str
    plural: str
    confidence_floor: float
    decisive_gap: float
    display_name: Callable[[EntityRecord], str]
    match_text: Callable[[EntityRecord], str]
    client_scoped: bool


ENTITY_PROFILES: Dict[str, EntityProfile] = {
    "client": EntityProfile(
        entity_type="client",
        plural="clients",
        confidence_floor=0.8,
        decisive_gap=0.1,
        display_name=client_display_name,
        match_text=lambda row: _join(
            row.get("partner1_first_name"),
            row.get("partner1_last_name"),
            row.get("partner2_first_name"),
            row.get("partner2_last_name"),
            row.get("wedding_name"),
        ),
        client_scoped=False,
    ),
    "guest": EntityProfile(
        entity_type="guest",
        plural="guests",
        confidence_floor=0.8,
        decisive_gap=0.1,
        display_name=guest_display_name,
        match_text=guest_display_name,
        client_scoped=True,
    ),
    "vendor": EntityProfile(
        entity_type="vendor",
        plural="vendors",
        confidence_floor=0.8,
        decisive_gap=0.1,
        display_name=vendor_display_name,
        match_text=lambda row: str(row.get("name") or ""),
        client_scoped=False,
    ),
    "event": EntityProfile(
        entity_type="event",
        plural="events",
        confidence_floor=0.7,
        decisive_gap=0.1,
        display_name=event_display_name,
        match_text=lambda row: _join(row.get("title"), row.get("event_type")),
        client_scoped=True,
    ),
}


class EntityResolver:
    def __init__(self, repository: EntityRepository, *, scorer: Scorer = calculate_similarity) -> None:
        self.repository = repository
        self.scorer = scorer

    async def resolve_client(self, query: str, company_id: str) -> EntityResolutionResult:
        return await self._resolve(ENTITY_PROFILES["client"], query, company_id)

    async def resolve_vendor(self, query: str, company_id: str) -> EntityResolutionResult:
        return await self._resolve(ENTITY_PROFILES["vendor"], query, company_id)

    async def resolve_guest(
        self,
        query: str,
        client_id: str,
        company_id: Optional[str] = None,
    ) -> EntityResolutionResult:
        denied = await self._check_client_scope(client_id, company_id)
        if denied:
            return denied
        return await self._resolve(ENTITY_PROFILES["guest"], query, client_id)

    async def resolve_event(
        self,
        query: str,
        client_id: str,
        company_id: Optional[str] = None,
    ) -> EntityResolutionResult:
        denied = await self._check_client_scope(client_id, company_id)
        if denied:
            return denied
        return await self._resolve(ENTITY_PROFILES["event"], query, client_id)

    async def resolve(
        self,
        entity_type: str,
        query: str,
        *,
        company_id: str,
        client_id: Optional[str] = None,
    ) -> EntityResolutionResult:
        profile = ENTITY_PROFILES.get(entity_type)
        if profile is None:
            return EntityResolutionResult.ambiguous(f"Unknown entity type: {entity_type}")
        if profile.client_scoped:
            if not client_id:
                return EntityResolutionResult.ambiguous(f"Client context required to resolve {entity_type}")
            if entity_type == "guest":
                return await self.resolve_guest(query, client_id, company_id)
            return await self.resolve_event(query, client_id, company_id)
        if entity_type == "client":
            return await self.resolve_client(query, company_id)
        return await self.resolve_vendor(query, company_id)

    async def resolve_many(
        self,
        queries: Iterable[Tuple[str, str]],
        company_id: str,
        client_id: Optional[str] = None,
    ) -> Dict[str, EntityResolutionResult]:
        results: Dict[str, EntityResolutionResult] = {}
        for entity_type, query in queries:
            results[f"{entity_type}:{query}"] = await self.resolve(
                entity_type,
                query,
                company_id=company_id,
                client_id=client_id,
            )
        return results

    async def _check_client_scope(
        self,
        client_id: str,
        company_id: Optional[str],
    ) -> Optional[EntityResolutionResult]:
        # Same answer for "missing" and "other tenant" so existence is not leaked.
        if company_id and not await self.repository.client_belongs_to_company(client_id, company_id):
            logger.warning("Client scope check failed client=%s company=%s", client_id, company_id)
            return EntityResolutionResult.ambiguous("Client not found or access denied")
        return None

    async def _resolve(self, profile: EntityProfile, query: str, scope_id: str) -> EntityResolutionResult:
        query = (query or "").strip()
        if not query:
            return EntityResolutionResult.ambiguous(f"No {profile.plural} found matching \"{query}\"")

        if UUID_RE.match(query):
            row = await self.repository.get(profile.entity_type, scope_id, query)
            if row:
                return EntityResolutionResult.resolved(self._to_entity(profile, row, 1.0))

        matches = await self.repository.search(profile.entity_type, scope_id, query, limit=SEARCH_LIMIT)
        if not matches:
            return EntityResolutionResult.ambiguous(f"No {profile.plural} found matching \"{query}\"")

        scored: List[Tuple[float, EntityRecord]] = sorted(
            ((self.scorer(query, profile.match_text(row)), row) for row in matches[:SEARCH_LIMIT]),
            key=lambda item: item[0],
            reverse=True,
        )
        top_score, top_row = scored[0]
        runner_up = scored[1][0] if len(scored) > 1 else None

        decisive = runner_up is None or (top_score - runner_up) >= profile.decisive_gap
        if top_score > profile.confidence_floor and decisive:
            return EntityResolutionResult.resolved(self._to_entity(profile, top_row, top_score))

        if len(scored) > 1:
            logger.info(
                "Ambiguous %s reference query=%r candidates=%s top=%.2f",
                profile.entity_type,
                query,
                len(scored),
                top_score,
            )
            options = [
                ResolutionOption(id=str(row["id"]), display_name=profile.display_name(row), score=score)
                for score, row in scored[:MAX_OPTIONS]
            ]
            return EntityResolutionResult.ambiguous(
                f"Multiple {profile.plural} match \"{query}\". Please select one:",
                options,
            )

        return EntityResolutionResult.resolved(self._to_entity(profile, top_row, top_score))

    @staticmethod
    def _to_entity(profile: EntityProfile, row: EntityRecord, confidence: float) -> ResolvedEntity:
        return ResolvedEntity(
            type=profile.entity_type,
            id=str(row["id"]),
            display_name=profile.display_name(row),
            confidence=confidence,
            data=dict(row),
        )


def get_entity_resolver(repository: EntityRepository = Depends(get_entity_repository)) -> EntityResolver:
    return EntityResolver(repository)
