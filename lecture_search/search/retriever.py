"""Candidate retrieval from the vector and lexical indices.

Two retrieval paths share one storage collaborator:

- ``retrieve_nearest``: k-NN over transcript-chunk embeddings (pgvector
  ``<->`` L2 distance), over-fetching ``nearest_limit`` neighbors, joining
  each to its transcript chunk and keeping at most ``result_limit``.
- ``retrieve_lexical``: case-insensitive substring and pg_trgm fuzzy
  matches over video subjects and transcript chunks.

Raw rows are mapped to ``CandidateRow`` here and never leave this module
untyped. Storage failures and timeouts raise ``RetrievalError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from lecture_search.search.errors import DatabaseNotConfiguredError, RetrievalError
from lecture_search.search.models import CandidateRow, CandidateSource, MatchKind

if TYPE_CHECKING:
    from lecture_search.search.config import SearchConfig
    from lecture_search.search.database import Database

logger = logging.getLogger(__name__)

TRANSCRIPTION_CHUNK_SOURCE = "transcription_chunk"

# Ties on distance fall back to chunk id so ordering is deterministic.
NEAREST_CHUNKS_SQL = """
WITH nearest AS (
    SELECT e.id, e.source_type, e.source_id,
           e.embedding <-> CAST(CAST(:query_vector AS text) AS vector) AS distance
    FROM embeddings e
    ORDER BY e.embedding <-> CAST(CAST(:query_vector AS text) AS vector)
    LIMIT :nearest_limit
)
SELECT c.video_id,
       c.id AS chunk_id,
       c.segment_id,
       c.start_time,
       c.end_time,
       c.text AS cached_text,
       n.distance
FROM nearest n
JOIN transcription_chunks c
  ON n.source_type = :source_type AND c.id = n.source_id
ORDER BY n.distance ASC, c.id ASC
LIMIT :result_limit
"""

SUBJECT_MATCHES_SQL = """
SELECT m.video_id,
       m.subject AS cached_text,
       word_similarity(:query, m.subject) AS trigram_score,
       (m.subject ILIKE :pattern ESCAPE '\\') AS substring_match
FROM video_metadata m
WHERE m.subject ILIKE :pattern ESCAPE '\\'
   OR word_similarity(:query, m.subject) >= :threshold
ORDER BY substring_match DESC, trigram_score DESC, m.video_id ASC
LIMIT :limit
"""

TRANSCRIPT_MATCHES_SQL = """
SELECT c.video_id,
       c.id AS chunk_id,
       c.segment_id,
       c.start_time,
       c.end_time,
       c.text AS cached_text,
       word_similarity(:query, c.text) AS trigram_score,
       (c.text ILIKE :pattern ESCAPE '\\') AS substring_match
FROM transcription_chunks c
WHERE c.text ILIKE :pattern ESCAPE '\\'
   OR word_similarity(:query, c.text) >= :threshold
ORDER BY substring_match DESC, trigram_score DESC, c.id ASC
LIMIT :limit
"""


def vector_literal(vector: Sequence[float]) -> str:
    """Render a vector in pgvector text format, e.g. ``[0.1,0.2]``."""
    return "[" + ",".join(str(float(value)) for value in vector) + "]"


def like_pattern(query: str) -> str:
    """Build an ILIKE substring pattern with wildcards escaped."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def describe_storage_error(error: BaseException) -> str:
    """Name a storage failure without its SQL, parameters or driver text.

    Driver messages can echo bound values (including the query vector),
    so only exception class names are reported.
    """
    orig = getattr(error, "orig", None)
    if orig is not None:
        return f"{type(error).__name__} ({type(orig).__name__})"
    return type(error).__name__


def _optional_float(value: Any) -> float | None:
    return None if value is None else float(value)


def _optional_str(value: Any) -> str | None:
    return None if value is None else str(value)


def row_to_vector_candidate(row: dict[str, Any]) -> CandidateRow:
    """Map a nearest-neighbor row to a transcription candidate."""
    return CandidateRow(
        video_id=str(row["video_id"]),
        kind=MatchKind.TRANSCRIPTION,
        text=row.get("cached_text") or "",
        raw_score=float(row["distance"]),
        source=CandidateSource.VECTOR,
        chunk_id=row.get("chunk_id"),
        segment_id=_optional_str(row.get("segment_id")),
        start_time=_optional_float(row.get("start_time")),
        end_time=_optional_float(row.get("end_time")),
    )


def row_to_subject_candidate(row: dict[str, Any]) -> CandidateRow:
    """Map a subject lexical row to a subject candidate."""
    return CandidateRow(
        video_id=str(row["video_id"]),
        kind=MatchKind.SUBJECT,
        text=row.get("cached_text") or "",
        raw_score=float(row.get("trigram_score") or 0.0),
        source=CandidateSource.LEXICAL,
        substring_match=bool(row.get("substring_match")),
    )


def row_to_transcript_candidate(row: dict[str, Any]) -> CandidateRow:
    """Map a transcript lexical row to a transcription candidate."""
    return CandidateRow(
        video_id=str(row["video_id"]),
        kind=MatchKind.TRANSCRIPTION,
        text=row.get("cached_text") or "",
        raw_score=float(row.get("trigram_score") or 0.0),
        source=CandidateSource.LEXICAL,
        chunk_id=row.get("chunk_id"),
        segment_id=_optional_str(row.get("segment_id")),
        start_time=_optional_float(row.get("start_time")),
        end_time=_optional_float(row.get("end_time")),
        substring_match=bool(row.get("substring_match")),
    )


class CandidateRetriever:
    """Fetches raw search candidates from storage.

    Attributes:
        database: Pooled storage collaborator.
        config: Search configuration (timeouts, trigram threshold).
    """

    def __init__(self, database: Database, config: SearchConfig) -> None:
        self.database = database
        self.config = config

    async def retrieve_nearest(
        self,
        query_vector: Sequence[float],
        nearest_limit: int,
        result_limit: int,
    ) -> list[CandidateRow]:
        """Return transcript chunks nearest to the query vector.

        Args:
            query_vector: Query embedding.
            nearest_limit: Raw neighbors fetched before the chunk join.
            result_limit: Maximum rows returned after the join.

        Returns:
            Candidates ordered by ascending distance, then chunk id.

        Raises:
            ValueError: If the vector is empty or limits are inconsistent.
            RetrievalError: If storage fails or times out.
        """
        if not query_vector:
            raise ValueError("query_vector must be non-empty")
        if result_limit <= 0 or nearest_limit < result_limit:
            raise ValueError(
                f"require nearest_limit >= result_limit > 0, "
                f"got nearest_limit={nearest_limit}, result_limit={result_limit}"
            )

        rows = await self._fetch(
            "nearest",
            NEAREST_CHUNKS_SQL,
            {
                "query_vector": vector_literal(query_vector),
                "nearest_limit": nearest_limit,
                "result_limit": result_limit,
                "source_type": TRANSCRIPTION_CHUNK_SOURCE,
            },
        )
        candidates = [row_to_vector_candidate(row) for row in rows]
        logger.debug(
            f"Nearest retrieval: {len(candidates)} chunks "
            f"(nearest_limit={nearest_limit}, result_limit={result_limit})"
        )
        return candidates

    async def retrieve_lexical(self, query_text: str, limit: int) -> list[CandidateRow]:
        """Return substring and trigram matches for the query text.

        Subject matches come first, then transcript matches; each group is
        ordered substring hits first, then by trigram similarity.

        Raises:
            ValueError: If the query is empty or the limit is not positive.
            RetrievalError: If storage fails or times out.
        """
        query_text = query_text.strip()
        if not query_text:
            raise ValueError("query_text must be non-empty")
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit}")

        params = {
            "query": query_text,
            "pattern": like_pattern(query_text),
            "threshold": self.config.trigram_threshold,
            "limit": limit,
        }
        subject_rows = await self._fetch("subject", SUBJECT_MATCHES_SQL, params)
        transcript_rows = await self._fetch("transcript", TRANSCRIPT_MATCHES_SQL, params)

        candidates = [row_to_subject_candidate(row) for row in subject_rows]
        candidates.extend(row_to_transcript_candidate(row) for row in transcript_rows)
        logger.debug(
            f"Lexical retrieval: {len(subject_rows)} subject, "
            f"{len(transcript_rows)} transcript matches"
        )
        return candidates

    async def _fetch(
        self,
        operation: str,
        sql: str,
        params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Run a query under the configured timeout.

        Raises:
            RetrievalError: Wrapping the storage error or timeout.
        """
        timeout = self.config.db_query_timeout
        try:
            return await asyncio.wait_for(
                self.database.fetch_all(sql, params), timeout=timeout
            )
        except DatabaseNotConfiguredError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"Retrieval '{operation}' timed out after {timeout}s")
            raise RetrievalError(f"{operation} query timed out after {timeout}s") from e
        except (SQLAlchemyError, OSError) as e:
            reason = describe_storage_error(e)
            logger.error(f"Retrieval '{operation}' failed: {reason}")
            raise RetrievalError(f"{operation} query failed: {reason}") from e
