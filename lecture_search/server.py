#!/usr/bin/env python3
"""Lecture Search server.

Serves hybrid search over the lecture archive through two surfaces on one
FastMCP server:

- HTTP: ``GET /search?q=<text>&limit=<int>&minSimilarity=<float>`` and
  ``GET /health`` (available with the sse and http transports).
- MCP tools: ``search_videos`` and ``health_check``.

Usage:
    # Install dependencies
    uv sync

    # Run the HTTP server (search route + streamable MCP endpoint)
    uv run lecture-search --transport http --port 8000

    # Run with stdio (MCP tools only)
    uv run lecture-search --transport stdio

Environment:
    See lecture_search.search.config for SEARCH_* settings. At minimum set
    SEARCH_DATABASE_URL (or DATABASE_URL) and OPENAI_API_KEY.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError
from starlette.requests import Request
from starlette.responses import JSONResponse

from lecture_search.search.config import SearchConfig, get_search_config
from lecture_search.search.database import get_database
from lecture_search.search.embeddings import get_embedding_client
from lecture_search.search.enrichment import get_video_metadata, get_videos_tags_map
from lecture_search.search.errors import InvalidQueryError
from lecture_search.search.orchestrator import get_orchestrator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

# =============================================================================
# Check for FastMCP availability
# =============================================================================

try:
    from fastmcp import FastMCP
except ImportError:
    print(
        "Error: FastMCP is not installed. Install with:\n  uv sync\n",
        file=sys.stderr,
    )
    sys.exit(1)

logger = logging.getLogger(__name__)

SERVER_NAME = "lecture-search"


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def server_lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Release the embedding HTTP client and database pool on shutdown."""
    try:
        yield
    finally:
        await get_embedding_client().aclose()
        await get_database().dispose()


# =============================================================================
# Initialize FastMCP Server
# =============================================================================

mcp = FastMCP(
    name="Lecture Search",
    instructions="""Search a video lecture archive by meaning.

Available tools:
- search_videos: Rank lecture videos for a free-text query. Each result
  lists the matching transcript snippets with start/end times and a
  trigger match to jump to.
- health_check: Report server status and active ranking strategy.

Similarity values are normalized per search and cannot be compared
between different queries.
""",
    lifespan=server_lifespan,
)


# =============================================================================
# Pydantic Models for Inputs
# =============================================================================


class SearchParams(BaseModel):
    """Validated search request."""

    query: str = Field(
        min_length=1,
        description="Free-text search query (trimmed)",
    )
    limit: int = Field(
        ge=1,
        description="Maximum number of videos to return",
    )
    min_similarity: float = Field(
        ge=0.0,
        le=1.0,
        description="Similarity floor (applied by the hybrid strategy only)",
    )


def _parse_limit(value: Any) -> int:
    """Parse a limit, truncating fractional values ("10.5" -> 10)."""
    try:
        return int(value)
    except ValueError:
        return int(float(value))


def parse_search_params(
    query: str | None,
    limit: Any = None,
    min_similarity: Any = None,
    config: SearchConfig | None = None,
) -> SearchParams:
    """Validate raw search inputs and apply defaults.

    ``limit`` is clamped to ``[1, max_result_limit]``.

    Raises:
        InvalidQueryError: If the query is missing or blank, or a numeric
            parameter cannot be parsed.
    """
    config = config or get_search_config()

    query = (query or "").strip()
    if not query:
        raise InvalidQueryError("Search query is required")

    try:
        parsed_limit = (
            config.default_result_limit if limit in (None, "") else _parse_limit(limit)
        )
    except (TypeError, ValueError, OverflowError) as e:
        raise InvalidQueryError(f"Invalid limit: {limit!r}") from e
    parsed_limit = max(1, min(parsed_limit, config.max_result_limit))

    try:
        parsed_min_similarity = (
            config.default_min_similarity
            if min_similarity in (None, "")
            else float(min_similarity)
        )
    except (TypeError, ValueError) as e:
        raise InvalidQueryError(f"Invalid minSimilarity: {min_similarity!r}") from e

    try:
        return SearchParams(
            query=query,
            limit=parsed_limit,
            min_similarity=parsed_min_similarity,
        )
    except ValidationError as e:
        raise InvalidQueryError(f"Invalid search parameters: {e.errors()[0]['msg']}") from e


# =============================================================================
# Search Execution
# =============================================================================


async def run_search(params: SearchParams, include_vector: bool = True) -> dict[str, Any]:
    """Run a search and enrich results with metadata and tags.

    Args:
        params: Validated search request.
        include_vector: Add ``queryVector`` to the payload when one exists.

    Returns:
        Response payload with ``results``, ``total`` and ``query``.

    Raises:
        RetrievalError: If candidate retrieval fails or times out.
    """
    outcome = await get_orchestrator().search(
        params.query,
        result_limit=params.limit,
        min_similarity=params.min_similarity,
    )

    video_ids = [result.video_id for result in outcome.results]
    database = get_database()
    metadata, tags_map = await asyncio.gather(
        get_video_metadata(database, video_ids),
        get_videos_tags_map(database, video_ids),
    )

    enriched = []
    for result in outcome.results:
        video_metadata = metadata.get(result.video_id, {})
        enriched.append(
            {
                "video_id": result.video_id,
                "subject": video_metadata.get("subject"),
                "hebrew_date": video_metadata.get("hebrew_date"),
                "day_of_week": video_metadata.get("day_of_week"),
                "tags": tags_map.get(result.video_id, []),
                "matches": [match.to_dict() for match in result.matches],
                "max_similarity": result.max_similarity,
                "trigger": result.trigger.to_dict(),
            }
        )

    payload: dict[str, Any] = {
        "results": enriched,
        "total": len(enriched),
        "query": params.query,
    }
    if include_vector and outcome.query_vector is not None:
        payload["queryVector"] = outcome.query_vector
    return payload


# =============================================================================
# HTTP Routes
# =============================================================================


@mcp.custom_route("/search", methods=["GET"])
async def search_endpoint(request: Request) -> JSONResponse:
    """Handle ``GET /search``.

    Returns 200 with results, 400 when the query is missing or invalid,
    and 500 when the search could not be completed.
    """
    query_params: Mapping[str, str] = request.query_params
    try:
        params = parse_search_params(
            query_params.get("q"),
            limit=query_params.get("limit"),
            min_similarity=query_params.get("minSimilarity"),
        )
    except InvalidQueryError as e:
        return JSONResponse({"error": str(e)}, status_code=400)

    try:
        payload = await run_search(params)
    except Exception as e:
        logger.exception(f"Search failed for query {params.query!r}: {e}")
        return JSONResponse(
            {"error": "Failed to perform search", "details": str(e)},
            status_code=500,
        )
    return JSONResponse(payload)


@mcp.custom_route("/health", methods=["GET"])
async def health_endpoint(request: Request) -> JSONResponse:
    """Handle ``GET /health``."""
    return JSONResponse(health_check_payload())


# =============================================================================
# Tool Implementations
# =============================================================================


@mcp.tool
async def search_videos(
    query: str,
    limit: int | None = None,
    min_similarity: float | None = None,
) -> dict[str, Any]:
    """Search lecture videos by meaning.

    Args:
        query: Free-text search query.
        limit: Maximum number of videos to return (default: 50).
        min_similarity: Similarity floor, applied by the hybrid strategy.

    Returns:
        Dictionary with:
            - results: Ranked videos with subject, tags, matches,
              max_similarity and trigger (start_time/end_time for jumping)
            - total: Number of videos returned
            - query: The trimmed query

    Raises:
        ValueError: If the query is empty or parameters are invalid.
    """
    try:
        params = parse_search_params(query, limit=limit, min_similarity=min_similarity)
    except InvalidQueryError as e:
        raise ValueError(str(e)) from e

    logger.info(f"search_videos called: query={params.query!r}, limit={params.limit}")
    return await run_search(params, include_vector=False)


def health_check_payload() -> dict[str, Any]:
    """Build the health status payload."""
    config = get_search_config()
    return {
        "status": "healthy",
        "server": SERVER_NAME,
        "strategy": config.strategy,
        "embedding_model": config.embedding_model,
        "database_configured": config.database_url is not None,
        "database_connected": get_database().is_initialized,
    }


@mcp.tool
def health_check() -> dict[str, Any]:
    """Check server health status.

    Returns:
        Health status information.
    """
    return health_check_payload()


# =============================================================================
# Prompts for Guidance
# =============================================================================


@mcp.prompt
def search_guide() -> str:
    """Guide for using the lecture search tools."""
    return """# Lecture Search Guide

1. **Search**
   `search_videos("laws of shabbat candles", limit=10)`
   - Results are ranked by `max_similarity` (best first)
   - `trigger.start_time` is the moment to jump to in the video

2. **Reading scores**
   - Scores are normalized within one search: the best match scores 1.0
   - Do not compare scores between different queries

3. **Empty results**
   An empty result list means nothing relevant was found, or the
   embedding service was unavailable.
"""


# =============================================================================
# Main Entry Point
# =============================================================================


def main() -> None:
    """Run the search server."""
    parser = argparse.ArgumentParser(
        description="Lecture archive search server",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "http"],
        default="http",
        help="Transport mode (default: http, which also serves GET /search)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for sse/http transport (default: 8000)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host for sse/http transport (default: 127.0.0.1)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=get_search_config().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.transport == "stdio":
        mcp.run(transport="stdio")
    else:
        mcp.run(
            transport=args.transport,
            host=args.host,
            port=args.port,
        )


if __name__ == "__main__":
    main()
