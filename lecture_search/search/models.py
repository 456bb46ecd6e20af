"""Value objects produced by a single search call.

All types are immutable and call-scoped: they are built fresh for every
search and never shared between concurrent calls.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

Vector = list[float]


class MatchKind(str, Enum):
    """Where a piece of evidence came from."""

    SUBJECT = "subject"
    TRANSCRIPTION = "transcription"


class CandidateSource(str, Enum):
    """Which index produced a candidate row."""

    VECTOR = "vector"
    LEXICAL = "lexical"


@dataclass(frozen=True)
class CandidateRow:
    """One raw hit from retrieval.

    Attributes:
        video_id: Owning video.
        kind: Subject or transcription evidence.
        text: Cached source text of the hit.
        raw_score: Distance for vector hits (smaller is closer), trigram
            similarity for lexical hits (larger is closer).
        source: Index that produced the row.
        chunk_id: Transcript chunk id, when the hit is a chunk.
        segment_id: Transcript segment reference, when known.
        start_time: Offset into the video in seconds.
        end_time: Offset into the video in seconds.
        substring_match: True when the lexical hit contains the query text.
        similarity: Normalized score in [0, 1]; None until scored.
    """

    video_id: str
    kind: MatchKind
    text: str
    raw_score: float
    source: CandidateSource = CandidateSource.VECTOR
    chunk_id: int | None = None
    segment_id: str | None = None
    start_time: float | None = None
    end_time: float | None = None
    substring_match: bool = False
    similarity: float | None = None

    @property
    def evidence_key(self) -> tuple[str, MatchKind, Any]:
        """Identity of the underlying evidence, shared across indices."""
        return (
            self.video_id,
            self.kind,
            self.chunk_id if self.chunk_id is not None else self.text,
        )


@dataclass(frozen=True)
class SearchMatch:
    """One piece of textual evidence supporting a video's relevance."""

    kind: MatchKind
    text: str
    similarity: float
    segment_id: str | None = None
    start_time: float | None = None
    end_time: float | None = None

    @classmethod
    def from_candidate(cls, row: CandidateRow) -> SearchMatch:
        """Build a match from a scored candidate row.

        Raises:
            ValueError: If the row has not been scored.
        """
        if row.similarity is None:
            raise ValueError(f"candidate for video {row.video_id} has no similarity")
        return cls(
            kind=row.kind,
            text=row.text,
            similarity=row.similarity,
            segment_id=row.segment_id,
            start_time=row.start_time,
            end_time=row.end_time,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "type": self.kind.value,
            "text": self.text,
            "similarity": self.similarity,
            "segment_id": self.segment_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass(frozen=True)
class SearchResult:
    """All matches for one video within one search call.

    Attributes:
        video_id: Matched video.
        matches: Evidence in retrieval order (never empty).
        max_similarity: Highest match similarity; the video's rank key.
        trigger: Representative match: the first transcription match,
            otherwise the first match.
    """

    video_id: str
    matches: tuple[SearchMatch, ...]
    max_similarity: float
    trigger: SearchMatch

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "video_id": self.video_id,
            "matches": [match.to_dict() for match in self.matches],
            "max_similarity": self.max_similarity,
            "trigger": self.trigger.to_dict(),
        }


@dataclass(frozen=True)
class SearchOutcome:
    """Ranked results plus the query vector used to produce them.

    Similarity values are normalized within this call only and are not
    comparable across different searches.
    """

    results: tuple[SearchResult, ...] = ()
    query_vector: Vector | None = None
    strategy: str = "vector"
    candidate_count: int = 0

    @property
    def total(self) -> int:
        """Number of ranked videos."""
        return len(self.results)
