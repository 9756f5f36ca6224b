"""Edit-distance similarity used by city normalization and reference matching."""

from __future__ import annotations

from rapidfuzz import process as rf_process
from rapidfuzz.distance import Levenshtein


def edit_distance(left: str, right: str) -> int:
    return Levenshtein.distance(left, right)


def is_similar(left: str, right: str, threshold: int = 2) -> bool:
    # Above the cutoff rapidfuzz returns threshold + 1.
    return Levenshtein.distance(left, right, score_cutoff=threshold) <= threshold


def similar_values(target: str, candidates, threshold: int, limit: int) -> list:
    """Return up to ``limit`` candidates within ``threshold`` edits.

    Closest matches come first; equally distant candidates keep their input order.
    """
    matches = rf_process.extract(
        target,
        list(candidates),
        scorer=Levenshtein.distance,
        score_cutoff=threshold,
        limit=limit,
    )
    return [choice for choice, _score, _index in matches]
