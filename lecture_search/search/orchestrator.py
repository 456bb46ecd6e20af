"""Search entry point coordinating embedding, retrieval, scoring and ranking.

Steps run strictly in sequence because each consumes the previous output:

1. Empty query -> empty outcome, embedding provider not called.
2. Embed the query. Unavailable -> empty outcome (vector strategy).
3. Retrieve nearest transcript chunks, over-fetching
   ``max(min_nearest_limit, result_limit * nearest_multiplier)`` neighbors.
4. Min-max normalize distances into similarities.
5. Group by video, rank and truncate.

The hybrid strategy additionally retrieves lexical and trigram matches,
blends them with the vector score and keeps working when the embedding
provider is unavailable.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from lecture_search.search.aggregator import aggregate
from lecture_search.search.config import get_search_config
from lecture_search.search.database import get_database
from lecture_search.search.embeddings import get_embedding_client
from lecture_search.search.models import SearchOutcome
from lecture_search.search.retriever import CandidateRetriever
from lecture_search.search.scoring import blend, score_vector_candidates

if TYPE_CHECKING:
    from lecture_search.search.config import SearchConfig
    from lecture_search.search.embeddings import EmbeddingClient
    from lecture_search.search.models import CandidateRow, Vector

logger = logging.getLogger(__name__)


class SearchOrchestrator:
    """Runs one search call end to end.

    Holds no per-call state, so one instance can serve concurrent calls.

    Attributes:
        embedding_client: Remote embedding provider.
        retriever: Candidate retriever over the storage pool.
        config: Search configuration.
    """

    def __init__(
        self,
        embedding_client: EmbeddingClient,
        retriever: CandidateRetriever,
        config: SearchConfig,
    ) -> None:
        self.embedding_client = embedding_client
        self.retriever = retriever
        self.config = config

    async def search(
        self,
        query_text: str,
        result_limit: int | None = None,
        min_similarity: float | None = None,
    ) -> SearchOutcome:
        """Search videos for the query text.

        Args:
            query_text: Free-text query.
            result_limit: Maximum videos returned (default from config).
            min_similarity: Similarity floor. Only the hybrid strategy
                applies it; the vector strategy ignores it.

        Returns:
            SearchOutcome with ranked results and the query vector (None
            when no vector was produced).

        Raises:
            ValueError: If ``result_limit`` is not positive.
            RetrievalError: If storage fails or times out.
        """
        if result_limit is None:
            result_limit = self.config.default_result_limit
        if result_limit <= 0:
            raise ValueError(f"result_limit must be positive, got {result_limit}")
        if min_similarity is None:
            min_similarity = self.config.default_min_similarity

        strategy = self.config.strategy
        query_text = query_text.strip()
        if not query_text:
            return SearchOutcome(strategy=strategy)

        if strategy == "hybrid":
            outcome = await self._search_hybrid(query_text, result_limit, min_similarity)
        else:
            outcome = await self._search_vector(query_text, result_limit)

        logger.info(
            f"Search complete: {outcome.total} results from "
            f"{outcome.candidate_count} candidates for query {query_text!r} "
            f"(strategy={strategy})"
        )
        return outcome

    async def _search_vector(self, query_text: str, result_limit: int) -> SearchOutcome:
        query_vector = await self.embedding_client.embed(query_text)
        if query_vector is None:
            logger.warning(f"No embedding for query {query_text!r}; returning no results")
            return SearchOutcome(strategy="vector")

        candidates = await self._nearest(query_vector, result_limit)
        scored = score_vector_candidates(candidates)
        return SearchOutcome(
            results=tuple(aggregate(scored, result_limit)),
            query_vector=query_vector,
            strategy="vector",
            candidate_count=len(scored),
        )

    async def _search_hybrid(
        self,
        query_text: str,
        result_limit: int,
        min_similarity: float,
    ) -> SearchOutcome:
        query_vector = await self.embedding_client.embed(query_text)
        nearest_limit = self.config.nearest_limit(result_limit)

        vector_rows: list[CandidateRow] = []
        if query_vector is not None:
            vector_rows = score_vector_candidates(
                await self._nearest(query_vector, result_limit)
            )
        else:
            logger.warning(
                f"No embedding for query {query_text!r}; continuing with lexical matches"
            )

        lexical_rows = await self.retriever.retrieve_lexical(query_text, nearest_limit)
        scored = blend(
            vector_rows,
            lexical_rows,
            self.config.blend_weights,
            min_similarity=min_similarity,
        )
        return SearchOutcome(
            results=tuple(aggregate(scored, result_limit)),
            query_vector=query_vector,
            strategy="hybrid",
            candidate_count=len(scored),
        )

    async def _nearest(self, query_vector: Vector, result_limit: int) -> list[CandidateRow]:
        nearest_limit = self.config.nearest_limit(result_limit)
        return await self.retriever.retrieve_nearest(
            query_vector,
            nearest_limit=nearest_limit,
            result_limit=result_limit,
        )


def get_orchestrator() -> SearchOrchestrator:
    """Get a SearchOrchestrator wired to the process-wide collaborators.

    A new orchestrator is built each call; the pool, embedding client and
    configuration it wraps are shared.
    """
    config = get_search_config()
    return SearchOrchestrator(
        embedding_client=get_embedding_client(),
        retriever=CandidateRetriever(get_database(), config),
        config=config,
    )
