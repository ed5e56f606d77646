"""Levenshtein-based string similarity used for fuzzy entity matching."""

from __future__ import annotations

from rapidfuzz.distance import Levenshtein


def calculate_similarity(a: str, b: str) -> float:
    """Return a score in [0, 1]; 1 means equal after trim + lowercase."""
    a_norm = (a or "").strip().lower()
    b_norm = (b or "").strip().lower()

    if a_norm == b_norm:
        return 1.0

    # 1 - distance / max(len(a), len(b))
    return Levenshtein.normalized_similarity(a_norm, b_norm)
