"""Tests for the lecture-search server module."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from starlette.applications import Starlette
from starlette.routing import Route
from starlette.testclient import TestClient

from lecture_search import server
from lecture_search.search.config import SearchConfig
from lecture_search.search.enrichment import VIDEO_METADATA_SQL, VIDEO_TAGS_SQL
from lecture_search.search.errors import InvalidQueryError, RetrievalError
from lecture_search.search.models import (
    MatchKind,
    SearchMatch,
    SearchOutcome,
    SearchResult,
)
from lecture_search.server import mcp, parse_search_params


def _result(video_id: str, similarity: float) -> SearchResult:
    match = SearchMatch(
        kind=MatchKind.TRANSCRIPTION,
        text=f"chunk of {video_id}",
        similarity=similarity,
        segment_id="s1",
        start_time=12.5,
        end_time=20.0,
    )
    return SearchResult(
        video_id=video_id,
        matches=(match,),
        max_similarity=similarity,
        trigger=match,
    )


OUTCOME = SearchOutcome(
    results=(_result("V1", 1.0), _result("V2", 0.0)),
    query_vector=[0.1, 0.2, 0.3],
    candidate_count=2,
)

METADATA_ROWS = [
    {
        "video_id": "V1",
        "hebrew_date": "י״ב תשרי",
        "subject": "הלכות שבת",
        "day_of_week": "Sunday",
    }
]

TAG_ROWS = [{"video_id": "V1", "id": 3, "name": "5784", "type": "date"}]


def _database() -> MagicMock:
    responses = {VIDEO_METADATA_SQL: METADATA_ROWS, VIDEO_TAGS_SQL: TAG_ROWS}

    async def fetch_all(sql: str, params: dict[str, Any] | None = None) -> list:
        return [dict(row) for row in responses[sql]]

    database = MagicMock()
    database.fetch_all = AsyncMock(side_effect=fetch_all)
    database.is_initialized = False
    return database


def _orchestrator(outcome: SearchOutcome = OUTCOME) -> MagicMock:
    orchestrator = MagicMock()
    orchestrator.search = AsyncMock(return_value=outcome)
    return orchestrator


@pytest.fixture
def client() -> TestClient:
    app = Starlette(
        routes=[
            Route("/search", server.search_endpoint, methods=["GET"]),
            Route("/health", server.health_endpoint, methods=["GET"]),
        ]
    )
    return TestClient(app)


class TestServerInitialization:
    """Tests for server initialization."""

    def test_mcp_instance_exists(self) -> None:
        """Test that FastMCP instance is created."""
        assert mcp is not None
        assert mcp.name == "Lecture Search"


class TestParseSearchParams:
    """Tests for request validation."""

    def test_defaults(self) -> None:
        params = parse_search_params("שבת", config=SearchConfig())

        assert params.query == "שבת"
        assert params.limit == 50
        assert params.min_similarity == 0.1

    def test_trims_query(self) -> None:
        assert parse_search_params("  candles ").query == "candles"

    @pytest.mark.parametrize("query", [None, "", "   "])
    def test_missing_query(self, query: str | None) -> None:
        with pytest.raises(InvalidQueryError, match="required"):
            parse_search_params(query)

    @pytest.mark.parametrize(
        ("limit", "expected"),
        [("10", 10), ("0", 1), ("9999", 200), ("10.5", 10), (" 7 ", 7)],
    )
    def test_limit_clamped(self, limit: str, expected: int) -> None:
        assert parse_search_params("q", limit=limit).limit == expected

    @pytest.mark.parametrize("limit", ["ten", "nan", "inf"])
    def test_invalid_limit(self, limit: str) -> None:
        with pytest.raises(InvalidQueryError, match="limit"):
            parse_search_params("q", limit=limit)

    @pytest.mark.parametrize("min_similarity", ["abc", "1.5", "-0.1"])
    def test_invalid_min_similarity(self, min_similarity: str) -> None:
        with pytest.raises(InvalidQueryError):
            parse_search_params("q", min_similarity=min_similarity)


class TestSearchEndpoint:
    """Tests for GET /search."""

    def test_success_payload(self, client: TestClient) -> None:
        """Results are enriched and the query vector is included."""
        orchestrator = _orchestrator()
        with (
            patch.object(server, "get_orchestrator", return_value=orchestrator),
            patch.object(server, "get_database", return_value=_database()),
        ):
            response = client.get(
                "/search", params={"q": "שבת", "limit": "10", "minSimilarity": "0.2"}
            )

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert body["query"] == "שבת"
        assert body["queryVector"] == [0.1, 0.2, 0.3]

        first = body["results"][0]
        assert first["video_id"] == "V1"
        assert first["subject"] == "הלכות שבת"
        assert first["hebrew_date"] == "י״ב תשרי"
        assert first["day_of_week"] == "Sunday"
        assert first["tags"] == [{"id": 3, "name": "5784", "type": "date"}]
        assert first["max_similarity"] == 1.0
        assert first["trigger"]["start_time"] == 12.5
        assert first["matches"][0]["type"] == "transcription"

        second = body["results"][1]
        assert second["subject"] is None
        assert second["tags"] == []

        orchestrator.search.assert_awaited_once_with(
            "שבת", result_limit=10, min_similarity=0.2
        )

    def test_empty_results_omit_vector(self, client: TestClient) -> None:
        """When no vector was produced the key is absent."""
        database = _database()
        with (
            patch.object(
                server,
                "get_orchestrator",
                return_value=_orchestrator(SearchOutcome()),
            ),
            patch.object(server, "get_database", return_value=database),
        ):
            response = client.get("/search", params={"q": "שבת"})

        assert response.status_code == 200
        assert response.json() == {"results": [], "total": 0, "query": "שבת"}
        database.fetch_all.assert_not_called()

    @pytest.mark.parametrize("params", [{}, {"q": ""}, {"q": "   "}])
    def test_missing_query_is_400(self, client: TestClient, params: dict) -> None:
        """A missing or blank query is a client error."""
        orchestrator = _orchestrator()
        with patch.object(server, "get_orchestrator", return_value=orchestrator):
            response = client.get("/search", params=params)

        assert response.status_code == 400
        assert response.json() == {"error": "Search query is required"}
        orchestrator.search.assert_not_called()

    def test_retrieval_failure_is_500(self, client: TestClient) -> None:
        """Storage failures surface as an internal error."""
        orchestrator = MagicMock()
        orchestrator.search = AsyncMock(side_effect=RetrievalError("nearest query timed out"))
        with patch.object(server, "get_orchestrator", return_value=orchestrator):
            response = client.get("/search", params={"q": "שבת"})

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to perform search"
        assert body["details"] == "nearest query timed out"


class TestHealth:
    """Tests for health reporting."""

    def _call_health_check(self) -> dict:
        """Helper to call health_check, handling FunctionTool wrapper."""
        health_fn = server.health_check
        if hasattr(health_fn, "fn"):
            return health_fn.fn()
        return health_fn()

    def test_health_check_tool(self) -> None:
        result = self._call_health_check()

        assert result["status"] == "healthy"
        assert result["server"] == "lecture-search"
        assert result["strategy"] == "vector"
        assert result["database_configured"] is False
        assert result["database_connected"] is False

    def test_health_endpoint(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestSearchVideosTool:
    """Tests for the search_videos MCP tool."""

    async def _call_search_videos(self, **kwargs: Any) -> dict:
        """Helper to call search_videos, handling FunctionTool wrapper."""
        search_fn = server.search_videos
        if hasattr(search_fn, "fn"):
            return await search_fn.fn(**kwargs)
        return await search_fn(**kwargs)

    @pytest.mark.asyncio
    async def test_returns_payload_without_vector(self) -> None:
        with (
            patch.object(server, "get_orchestrator", return_value=_orchestrator()),
            patch.object(server, "get_database", return_value=_database()),
        ):
            result = await self._call_search_videos(query="שבת", limit=5)

        assert result["total"] == 2
        assert "queryVector" not in result
        assert result["results"][0]["subject"] == "הלכות שבת"

    @pytest.mark.asyncio
    async def test_empty_query_raises(self) -> None:
        with pytest.raises(ValueError, match="required"):
            await self._call_search_videos(query="  ")


class TestLifespan:
    """Tests for server startup/shutdown hooks."""

    @pytest.mark.asyncio
    async def test_releases_resources(self) -> None:
        database = MagicMock()
        database.dispose = AsyncMock()
        embedding_client = MagicMock()
        embedding_client.aclose = AsyncMock()
        with (
            patch.object(server, "get_database", return_value=database),
            patch.object(server, "get_embedding_client", return_value=embedding_client),
        ):
            async with server.server_lifespan(mcp):
                database.dispose.assert_not_called()
                embedding_client.aclose.assert_not_called()

        database.dispose.assert_awaited_once()
        embedding_client.aclose.assert_awaited_once()
