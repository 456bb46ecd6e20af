"""Similarity scoring for search candidates.

Vector candidates carry raw distances (smaller is closer). They are
min-max normalized within one candidate batch so scores spread across
[0, 1]. A consequence is that similarity values are only comparable
inside a single search call; a different query produces a different
min/max basis.

Lexical candidates carry a substring flag and a trigram similarity,
which the hybrid strategy blends with the vector score.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from lecture_search.search.models import CandidateRow


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a value into [low, high]."""
    return max(low, min(high, value))


def normalize(raw_distances: Sequence[float]) -> dict[int, float]:
    """Map each distance index to a similarity in [0, 1].

    The closest candidate gets 1.0 and the farthest 0.0. When every
    distance is equal (including a single candidate) all get 1.0.

    Args:
        raw_distances: Distances for the whole candidate batch.

    Returns:
        Mapping from position in ``raw_distances`` to similarity.

    Example:
        >>> normalize([0.0, 5.0, 10.0])
        {0: 1.0, 1: 0.5, 2: 0.0}
    """
    if not raw_distances:
        return {}

    min_dist = min(raw_distances)
    max_dist = max(raw_distances)
    if max_dist == min_dist:
        return {index: 1.0 for index in range(len(raw_distances))}

    spread = max_dist - min_dist
    return {
        index: clamp(1.0 - (distance - min_dist) / spread)
        for index, distance in enumerate(raw_distances)
    }


def score_vector_candidates(rows: Sequence[CandidateRow]) -> list[CandidateRow]:
    """Populate ``similarity`` on vector candidates from their distances."""
    similarities = normalize([row.raw_score for row in rows])
    return [
        replace(row, similarity=similarities[index]) for index, row in enumerate(rows)
    ]


def blend(
    vector_rows: Sequence[CandidateRow],
    lexical_rows: Sequence[CandidateRow],
    weights: tuple[float, float, float],
    min_similarity: float = 0.0,
) -> list[CandidateRow]:
    """Merge vector and lexical evidence into one scored candidate list.

    Rows that refer to the same evidence (same video, kind and chunk or
    text) are combined. Each merged row scores
    ``wl * substring + wt * trigram + wv * vector`` with weights that sum
    to one. Vector rows must already be scored.

    Args:
        vector_rows: Scored vector candidates in retrieval order.
        lexical_rows: Lexical candidates in retrieval order.
        weights: Normalized (lexical, trigram, vector) weights.
        min_similarity: Rows scoring below this are dropped.

    Returns:
        Scored rows in first-seen order, lexical evidence first.
    """
    lexical_weight, trigram_weight, vector_weight = weights

    merged: dict[tuple, CandidateRow] = {}
    substring: dict[tuple, float] = {}
    trigram: dict[tuple, float] = {}
    vector: dict[tuple, float] = {}

    for row in lexical_rows:
        key = row.evidence_key
        merged.setdefault(key, row)
        substring[key] = max(substring.get(key, 0.0), 1.0 if row.substring_match else 0.0)
        trigram[key] = max(trigram.get(key, 0.0), clamp(row.raw_score))

    for row in vector_rows:
        key = row.evidence_key
        if key not in merged:
            merged[key] = row
        vector[key] = max(vector.get(key, 0.0), row.similarity or 0.0)

    scored: list[CandidateRow] = []
    for key, row in merged.items():
        similarity = clamp(
            lexical_weight * substring.get(key, 0.0)
            + trigram_weight * trigram.get(key, 0.0)
            + vector_weight * vector.get(key, 0.0)
        )
        if similarity < min_similarity:
            continue
        scored.append(replace(row, similarity=similarity))
    return scored
