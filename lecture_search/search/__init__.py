"""Hybrid search over a video lecture archive.

Ranks videos for a free-text query by combining dense-vector nearest
neighbors over transcript chunks with (optionally) substring and trigram
matches, and reports the evidence that made each video match.

Components:
    SearchConfig: Pydantic settings for storage, embeddings and ranking.
    EmbeddingClient: Remote embedding provider; returns None when unavailable.
    Database: Lazily-initialized async connection pool.
    CandidateRetriever: k-NN and lexical candidate retrieval.
    normalize: Min-max distance normalization within one batch.
    aggregate: Per-video grouping, ranking and truncation.
    SearchOrchestrator: Entry point running one search call.

Example:
    >>> from lecture_search.search import get_orchestrator
    >>> outcome = await get_orchestrator().search("shabbat candles", result_limit=10)
    >>> outcome.results[0].trigger.start_time
    12.5
"""

from lecture_search.search.aggregator import aggregate, select_trigger
from lecture_search.search.config import SearchConfig, get_search_config
from lecture_search.search.database import Database, get_database
from lecture_search.search.embeddings import (
    EmbeddingClient,
    create_embedding_client,
    get_embedding_client,
)
from lecture_search.search.errors import (
    DatabaseNotConfiguredError,
    EmbeddingUnavailableError,
    InvalidQueryError,
    RetrievalError,
    SearchError,
)
from lecture_search.search.models import (
    CandidateRow,
    CandidateSource,
    MatchKind,
    SearchMatch,
    SearchOutcome,
    SearchResult,
)
from lecture_search.search.orchestrator import SearchOrchestrator, get_orchestrator
from lecture_search.search.retriever import CandidateRetriever
from lecture_search.search.scoring import blend, normalize, score_vector_candidates

__all__ = [
    "CandidateRetriever",
    "CandidateRow",
    "CandidateSource",
    "Database",
    "DatabaseNotConfiguredError",
    "EmbeddingClient",
    "EmbeddingUnavailableError",
    "InvalidQueryError",
    "MatchKind",
    "RetrievalError",
    "SearchConfig",
    "SearchError",
    "SearchMatch",
    "SearchOrchestrator",
    "SearchOutcome",
    "SearchResult",
    "aggregate",
    "blend",
    "create_embedding_client",
    "get_database",
    "get_embedding_client",
    "get_orchestrator",
    "get_search_config",
    "normalize",
    "score_vector_candidates",
    "select_trigger",
]
