"""Exceptions raised by the search engine."""

from __future__ import annotations


class SearchError(Exception):
    """Base class for search failures."""


class InvalidQueryError(SearchError):
    """The caller supplied a missing, empty or malformed search request."""


class EmbeddingUnavailableError(SearchError):
    """The embedding provider could not produce a usable vector.

    Raised inside the embedding client only; ``EmbeddingClient.embed``
    converts it into a ``None`` return value.
    """


class RetrievalError(SearchError):
    """Candidate retrieval failed because storage errored or timed out."""


class DatabaseNotConfiguredError(RetrievalError):
    """No database URL is configured."""
