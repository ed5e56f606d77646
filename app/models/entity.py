from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

EntityType = Literal["client", "guest", "vendor", "event"]
DuplicateMatchType = Literal["exact_name", "similar_name", "same_email", "same_phone"]


@dataclass
class ResolvedEntity:
    type: str
    id: str
    display_name: str
    confidence: float
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ResolutionOption:
    id: str
    display_name: str
    score: float


@dataclass
class EntityResolutionResult:
    """Either a single resolved entity or a ranked list of candidates.

    An ambiguous result with no options means nothing usable was found (no
    match, or the scope was not accessible to the caller).
    """

    is_ambiguous: bool
    entity: Optional[ResolvedEntity] = None
    message: Optional[str] = None
    options: List[ResolutionOption] = field(default_factory=list)

    @classmethod
    def resolved(cls, entity: ResolvedEntity) -> "EntityResolutionResult":
        return cls(is_ambiguous=False, entity=entity)

    @classmethod
    def ambiguous(
        cls,
        message: str,
        options: Optional[List[ResolutionOption]] = None,
    ) -> "EntityResolutionResult":
        return cls(is_ambiguous=True, message=message, options=list(options or []))


@dataclass
class DuplicateCandidate:
    id: str
    display_name: str
    match_type: DuplicateMatchType
    similarity: float
    details: str


@dataclass
class DuplicateCheckResult:
    has_potential_duplicates: bool
    candidates: List[DuplicateCandidate]
    message: str
