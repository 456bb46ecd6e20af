"""Remote embedding provider client.

Converts query text into a fixed-length vector by calling an
OpenAI-compatible embeddings endpoint:

    POST {embedding_api_url}
    Authorization: Bearer <key>
    {"input": "<text>", "model": "<model id>"}
    -> {"data": [{"embedding": [0.1, ...]}]}

Failures are soft: transport errors, timeouts, non-2xx responses and
malformed payloads all make ``embed`` return ``None`` and log a warning.
A single attempt is made per call and no embedding is cached. Connections
are pooled by one ``httpx.AsyncClient`` per ``EmbeddingClient``.
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import TYPE_CHECKING, Any

import httpx

from lecture_search.search.config import SearchConfig, get_search_config
from lecture_search.search.errors import EmbeddingUnavailableError

if TYPE_CHECKING:
    from lecture_search.search.models import Vector

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Client for the remote text-embedding service.

    Attributes:
        config: Search configuration with endpoint, model and timeout.
    """

    def __init__(
        self,
        config: SearchConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the embedding client.

        Args:
            config: Search configuration.
            http_client: Optional shared client. When omitted a client is
                created on first use, reused across calls and closed by
                ``aclose``.
        """
        self.config = config
        self._http_client = http_client
        self._owns_http_client = http_client is None

    @property
    def model(self) -> str:
        """Embedding model identifier."""
        return self.config.embedding_model

    async def embed(self, text: str) -> Vector | None:
        """Embed query text.

        Args:
            text: Non-empty query text.

        Returns:
            The embedding vector, or None when the provider is unavailable.
        """
        text = text.strip()
        if not text:
            return None

        try:
            return await self._request_embedding(text)
        except EmbeddingUnavailableError as e:
            logger.warning(f"Embedding unavailable, model={self.model}: {e}")
            return None

    async def _request_embedding(self, text: str) -> Vector:
        """Perform the HTTP call and validate the response shape.

        Raises:
            EmbeddingUnavailableError: On any transport or payload problem.
        """
        if not self.config.embedding_api_key:
            raise EmbeddingUnavailableError("no embedding API key configured")

        headers = {
            "Authorization": f"Bearer {self.config.embedding_api_key}",
            "Content-Type": "application/json",
        }
        payload = {"input": text, "model": self.model}

        try:
            response = await self._get_http_client().post(
                self.config.embedding_api_url,
                headers=headers,
                json=payload,
                timeout=self.config.embedding_timeout,
            )
        except httpx.TimeoutException as e:
            raise EmbeddingUnavailableError(
                f"request timed out after {self.config.embedding_timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingUnavailableError(f"transport error: {e}") from e

        if not response.is_success:
            raise EmbeddingUnavailableError(f"HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise EmbeddingUnavailableError("response is not JSON") from e

        return self._extract_vector(body)

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.embedding_timeout)
        return self._http_client

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    def _extract_vector(self, body: Any) -> Vector:
        """Pull ``data[0].embedding`` out of a response body."""
        try:
            embedding = body["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as e:
            raise EmbeddingUnavailableError("response missing data[0].embedding") from e

        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingUnavailableError("embedding is not a non-empty array")

        vector: Vector = []
        for value in embedding:
            # bool is an int subclass; reject it explicitly
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise EmbeddingUnavailableError("embedding contains non-numeric values")
            if not math.isfinite(value):
                raise EmbeddingUnavailableError("embedding contains non-finite values")
            vector.append(float(value))

        if len(vector) != self.config.embedding_dimensions:
            raise EmbeddingUnavailableError(
                f"expected {self.config.embedding_dimensions} dimensions, got {len(vector)}"
            )
        return vector


def create_embedding_client(
    config: SearchConfig | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> EmbeddingClient:
    """Create a new embedding client.

    Args:
        config: Search configuration. Uses the cached config if omitted.
        http_client: Optional shared httpx client.

    Returns:
        Configured EmbeddingClient.
    """
    return EmbeddingClient(config or get_search_config(), http_client=http_client)


@lru_cache
def get_embedding_client() -> EmbeddingClient:
    """Get the cached process-wide embedding client."""
    return create_embedding_client()
