"""Retriever for semantic search over stored chunks.

Handles:
- Query validation
- Similarity search through the storage gateway
- Document- and id-scoped lookups
"""
from typing import List, Optional

import structlog

from ragcore.errors import RAGError, UpstreamError, ValidationError
from ragcore.models import DocumentChunk
from ragcore.rag.gateway import DEFAULT_QUERY_LIMIT, StorageGateway
from ragcore.rag.identity import is_valid_chunk_id

logger = structlog.get_logger()


class Retriever:
    """Thin retrieval layer over a storage gateway."""

    def __init__(self, gateway: StorageGateway, default_limit: int = DEFAULT_QUERY_LIMIT):
        """Initialize the retriever.

        Args:
            gateway: Storage gateway to query
            default_limit: Number of results when the caller gives none
        """
        self.gateway = gateway
        self.default_limit = default_limit if default_limit > 0 else DEFAULT_QUERY_LIMIT

        logger.info("retriever_initialized", default_limit=self.default_limit)

    async def retrieve(self, query: str, limit: Optional[int] = None) -> List[DocumentChunk]:
        """Retrieve the chunks most similar to a query.

        Args:
            query: User query text
            limit: Number of results to return (non-positive uses the default)

        Returns:
            Chunks ordered by similarity, best first

        Raises:
            ValidationError: If the query is empty
            UpstreamError: If the gateway fails
        """
        if not query or not query.strip():
            raise ValidationError("Query cannot be empty")

        if not limit or limit <= 0:
            limit = self.default_limit

        logger.info("retrieval_started", query_length=len(query), limit=limit)

        try:
            chunks = await self.gateway.query_similar(query, limit)
        except RAGError:
            raise
        except Exception as e:
            logger.error(
                "retrieval_failed",
                error=str(e),
                error_type=type(e).__name__,
                query_preview=query[:100],
            )
            raise UpstreamError("Retrieval failed", stage="retrieval", cause=e) from e

        logger.info("retrieval_completed", results_returned=len(chunks))
        return chunks

    async def retrieve_by_document(self, document_id: str) -> List[DocumentChunk]:
        """Return every chunk of a document, ordered by chunk index."""
        if not document_id:
            raise ValidationError("Document ID cannot be empty")

        chunks = await self.gateway.query_by_document(document_id)
        return sorted(chunks, key=lambda chunk: chunk.chunk_index)

    async def retrieve_by_id(self, chunk_id: int) -> DocumentChunk:
        """Fetch one chunk by id.

        Raises:
            ValidationError: If chunk_id is not a non-zero unsigned 64-bit id
            NotFoundError: If no chunk has this id
        """
        if not is_valid_chunk_id(chunk_id):
            raise ValidationError(f"Invalid chunk id: {chunk_id}")

        return await self.gateway.get_by_id(chunk_id)
