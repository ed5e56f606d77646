"""Advisory duplicate detection before guests or vendors are created.

Each existing record contributes at most one candidate, taking the first
signal that matches in this order: exact normalised name, name similarity at
or above the threshold, same email, same phone (last 10 digits). The result
never blocks a write; callers surface it as a warning.

Every check scans the full scope (O(n) per insert). Large guest lists would
benefit from an indexed pre-filter, but the semantics stay a full scan.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Optional

from fastapi import Depends

from app.core.config import get_settings
from app.models.entity import DuplicateCandidate, DuplicateCheckResult
from app.services.entity_repository import EntityRecord, EntityRepository, get_entity_repository
from app.services.entity_resolver import guest_display_name, vendor_display_name
from app.services.similarity import calculate_similarity

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.75
MAX_CANDIDATES = 5
PHONE_DIGITS = 10

_NON_DIGIT_RE = re.compile(r"\D")


def normalize_name(value: Optional[str]) -> str:
    return " ".join((value or "").split()).lower()


def phones_match(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    digits_a = _NON_DIGIT_RE.sub("", a)
    digits_b = _NON_DIGIT_RE.sub("", b)
    if len(digits_a) < PHONE_DIGITS or len(digits_b) < PHONE_DIGITS:
        return False
    return digits_a[-PHONE_DIGITS:] == digits_b[-PHONE_DIGITS:]


def emails_match(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    return a.strip().lower() == b.strip().lower()


class DuplicateDetector:
    def __init__(
        self,
        repository: EntityRepository,
        *,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> None:
        self.repository = repository
        self.similarity_threshold = similarity_threshold

    async def check_guest_duplicates(
        self,
        first_name: str,
        last_name: Optional[str],
        email: Optional[str],
        phone: Optional[str],
        client_id: str,
    ) -> DuplicateCheckResult:
        full_name = normalize_name(f"{first_name} {last_name or ''}")
        existing = await self.repository.list("guest", client_id)

        def details(row: EntityRecord, exact: bool) -> str:
            group = row.get("group_name")
            if exact:
                return f"Group: {group}" if group else "Existing guest"
            return f", Group: {group}" if group else ""

        candidates = self._scan(
            full_name,
            email,
            phone,
            existing,
            display_name=guest_display_name,
            name_of=lambda row: guest_display_name(row),
            extra_details=details,
        )
        return self._build_guest_result(candidates)

    async def check_vendor_duplicates(
        self,
        name: str,
        email: Optional[str],
        phone: Optional[str],
        company_id: str,
    ) -> DuplicateCheckResult:
        existing = await self.repository.list("vendor", company_id)

        def details(_row: EntityRecord, exact: bool) -> str:
            return "Exact name match" if exact else ""

        candidates = self._scan(
            normalize_name(name),
            email,
            phone,
            existing,
            display_name=vendor_display_name,
            name_of=lambda row: str(row.get("name") or ""),
            extra_details=details,
        )
        return self._build_vendor_result(candidates)

    def _scan(
        self,
        new_name: str,
        email: Optional[str],
        phone: Optional[str],
        existing: List[EntityRecord],
        *,
        display_name: Callable[[EntityRecord], str],
        name_of: Callable[[EntityRecord], str],
        extra_details: Callable[[EntityRecord, bool], str],
    ) -> List[DuplicateCandidate]:
        candidates: List[DuplicateCandidate] = []
        for row in existing:
            existing_name = normalize_name(name_of(row))
            shown = display_name(row)
            row_id = str(row.get("id"))

            if new_name and new_name == existing_name:
                candidates.append(
                    DuplicateCandidate(
                        id=row_id,
                        display_name=shown,
                        match_type="exact_name",
                        similarity=1.0,
                        details=extra_details(row, True),
                    )
                )
                continue

            similarity = calculate_similarity(new_name, existing_name)
            if similarity >= self.similarity_threshold:
                candidates.append(
                    DuplicateCandidate(
                        id=row_id,
                        display_name=shown,
                        match_type="similar_name",
                        similarity=similarity,
                        details=f"{round(similarity * 100)}% name match{extra_details(row, False)}",
                    )
                )
                continue

            if emails_match(email, row.get("email")):
                candidates.append(
                    DuplicateCandidate(
                        id=row_id,
                        display_name=shown,
                        match_type="same_email",
                        similarity=1.0,
                        details=f"Same email: {row.get('email')}",
                    )
                )
                continue

            if phones_match(phone, row.get("phone")):
                candidates.append(
                    DuplicateCandidate(
                        id=row_id,
                        display_name=shown,
                        match_type="same_phone",
                        similarity=1.0,
                        details=f"Same phone: {row.get('phone')}",
                    )
                )

        candidates.sort(key=lambda candidate: candidate.similarity, reverse=True)
        if candidates:
            logger.info("Potential duplicates found count=%s", len(candidates))
        return candidates

    @staticmethod
    def _first(candidates: List[DuplicateCandidate], match_type: str) -> Optional[DuplicateCandidate]:
        return next((c for c in candidates if c.match_type == match_type), None)

    def _build_guest_result(self, candidates: List[DuplicateCandidate]) -> DuplicateCheckResult:
        if not candidates:
            return DuplicateCheckResult(has_potential_duplicates=False, candidates=[], message="No duplicates found")

        message = "Potential duplicate detected: "
        exact = self._first(candidates, "exact_name")
        similar = self._first(candidates, "similar_name")
        email = self._first(candidates, "same_email")
        phone = self._first(candidates, "same_phone")
        if exact:
            message += f"Exact name match with \"{exact.display_name}\". "
        elif similar:
            message += f"Similar to \"{similar.display_name}\" ({similar.details}). "
        elif email:
            message += f"{email.details}. "
        elif phone:
            message += f"{phone.details}. "
        message += "Is this the same person?"

        return DuplicateCheckResult(
            has_potential_duplicates=True,
            candidates=candidates[:MAX_CANDIDATES],
            message=message,
        )

    def _build_vendor_result(self, candidates: List[DuplicateCandidate]) -> DuplicateCheckResult:
        if not candidates:
            return DuplicateCheckResult(has_potential_duplicates=False, candidates=[], message="No duplicates found")

        exact = self._first(candidates, "exact_name")
        if exact:
            message = f"Potential duplicate vendor: \"{exact.display_name}\" already exists. "
        else:
            top = candidates[0]
            message = f"Potential duplicate vendor: Similar to \"{top.display_name}\" ({top.details}). "
        message += "Is this the same vendor?"

        return DuplicateCheckResult(
            has_potential_duplicates=True,
            candidates=candidates[:MAX_CANDIDATES],
            message=message,
        )


def get_duplicate_detector(repository: EntityRepository = Depends(get_entity_repository)) -> DuplicateDetector:
    settings = get_settings()
    return DuplicateDetector(repository, similarity_threshold=settings.duplicate_similarity_threshold)
