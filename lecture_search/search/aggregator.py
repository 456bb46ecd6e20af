"""Group scored candidates into per-video search results."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from lecture_search.search.models import (
    CandidateRow,
    MatchKind,
    SearchMatch,
    SearchResult,
)

logger = logging.getLogger(__name__)


def select_trigger(matches: Sequence[SearchMatch]) -> SearchMatch:
    """Pick the match that represents why a video matched.

    The first transcription match wins because it carries a timestamp;
    otherwise the first match is used.

    Raises:
        ValueError: If ``matches`` is empty.
    """
    if not matches:
        raise ValueError("cannot select a trigger from no matches")
    for match in matches:
        if match.kind is MatchKind.TRANSCRIPTION:
            return match
    return matches[0]


def aggregate(
    candidates: Sequence[CandidateRow],
    result_limit: int,
) -> list[SearchResult]:
    """Group candidates by video, rank videos and keep the top page.

    Matches keep retrieval order within a video. Videos are sorted by
    ``max_similarity`` descending; equal scores keep first-seen order.

    Args:
        candidates: Scored candidate rows in retrieval order.
        result_limit: Maximum number of videos returned.

    Returns:
        At most ``result_limit`` results, best first. Empty input gives an
        empty list.
    """
    if result_limit <= 0:
        return []

    grouped: dict[str, list[SearchMatch]] = {}
    for row in candidates:
        grouped.setdefault(row.video_id, []).append(SearchMatch.from_candidate(row))

    results = [
        SearchResult(
            video_id=video_id,
            matches=tuple(matches),
            max_similarity=max(match.similarity for match in matches),
            trigger=select_trigger(matches),
        )
        for video_id, matches in grouped.items()
    ]
    # sorted() is stable, so ties stay in first-seen order
    results = sorted(results, key=lambda result: result.max_similarity, reverse=True)

    logger.debug(
        f"Aggregated {len(candidates)} candidates into {len(results)} videos, "
        f"keeping {min(len(results), result_limit)}"
    )
    return results[:result_limit]
