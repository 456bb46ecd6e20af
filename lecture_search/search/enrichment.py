"""Bulk display lookups for ranked video ids.

These run after the core search so callers can show subject, date and
tags next to each result. Both lookups are independent reads and may be
awaited concurrently.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from lecture_search.search.database import Database

logger = logging.getLogger(__name__)

VIDEO_METADATA_SQL = """
SELECT video_id, hebrew_date, subject, day_of_week
FROM video_metadata
WHERE video_id = ANY(:video_ids)
"""

VIDEO_TAGS_SQL = """
SELECT tg.video_id, t.id, t.name, t.type
FROM tags t
JOIN taggings tg ON t.id = tg.tag_id
WHERE tg.video_id = ANY(:video_ids)
ORDER BY t.type, t.name
"""


async def get_video_metadata(
    database: Database,
    video_ids: Sequence[str],
) -> dict[str, dict[str, Any]]:
    """Fetch metadata rows keyed by video id.

    Returns:
        Mapping of video id to its metadata row. Empty input returns an
        empty mapping without querying storage.
    """
    if not video_ids:
        return {}
    rows = await database.fetch_all(VIDEO_METADATA_SQL, {"video_ids": list(video_ids)})
    return {str(row["video_id"]): row for row in rows}


async def get_videos_tags_map(
    database: Database,
    video_ids: Sequence[str],
) -> dict[str, list[dict[str, Any]]]:
    """Fetch tags for many videos at once.

    Returns:
        Mapping of video id to its tags (``id``, ``name``, ``type``),
        ordered by type then name. Videos without tags are absent.
    """
    if not video_ids:
        return {}
    rows = await database.fetch_all(VIDEO_TAGS_SQL, {"video_ids": list(video_ids)})

    tags_map: dict[str, list[dict[str, Any]]] = {}
    for row in rows:
        tag = dict(row)
        video_id = str(tag.pop("video_id"))
        tags_map.setdefault(video_id, []).append(tag)
    logger.debug(f"Loaded tags for {len(tags_map)} of {len(video_ids)} videos")
    return tags_map
