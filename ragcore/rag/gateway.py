"""Storage gateway contract consumed by the pipeline.

A gateway is scoped to one collection and owns embedding: callers pass raw
text and the gateway computes vectors through its embedding provider.
"""
from abc import ABC, abstractmethod
from typing import List

from ragcore.models import DocumentChunk

DEFAULT_QUERY_LIMIT = 10


class StorageGateway(ABC):
    """Abstract vector storage for document chunks."""

    @abstractmethod
    async def ensure_collection(self, vector_size: int) -> None:
        """Create the collection if absent (idempotent).

        Raises:
            ValidationError: If vector_size is not positive
        """

    @abstractmethod
    async def upsert(self, chunks: List[DocumentChunk]) -> None:
        """Insert or overwrite chunks by id. No-op on empty input."""

    @abstractmethod
    async def query_similar(self, query_text: str, limit: int) -> List[DocumentChunk]:
        """Return up to ``limit`` chunks, most similar first.

        A non-positive limit is replaced by ``DEFAULT_QUERY_LIMIT``.
        """

    @abstractmethod
    async def query_by_document(self, document_id: str) -> List[DocumentChunk]:
        """Return every chunk of a document, in no particular order."""

    @abstractmethod
    async def get_by_id(self, chunk_id: int) -> DocumentChunk:
        """Fetch one chunk.

        Raises:
            NotFoundError: If no chunk has this id
        """

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> int:
        """Remove every chunk of a document, returning how many were removed."""

    @abstractmethod
    async def delete_by_id(self, chunk_id: int) -> None:
        """Remove one chunk (no-op when absent)."""

    @abstractmethod
    async def health_check(self) -> None:
        """Raise UpstreamError when the backend cannot serve requests."""


def resolve_limit(limit: int) -> int:
    """Clamp a query limit to a positive value."""
    return limit if limit > 0 else DEFAULT_QUERY_LIMIT
