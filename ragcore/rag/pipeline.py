"""RAG pipeline coordinator.

Exposes the operations a transport layer calls: ingestion, search, answer
generation, document lookups and deletion, and a health check. Every failure
leaves here tagged with the stage that raised it.
"""
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import structlog

from ragcore.config import Settings
from ragcore.errors import RAGError, ValidationError, stage
from ragcore.models import (
    DeleteResult,
    DirectoryIngestResult,
    DocumentChunk,
    HealthStatus,
    IngestResult,
    Metadata,
    RAGResult,
    RankedChunk,
    SearchResult,
)
from ragcore.rag.chunker import TextChunker
from ragcore.rag.embedding import create_embedding_provider
from ragcore.rag.gateway import StorageGateway
from ragcore.rag.generator import (
    GenerationProvider,
    GeneratorService,
    ResponseStream,
    create_generation_provider,
)
from ragcore.rag.ingest import IngestService
from ragcore.rag.ranker import Ranker
from ragcore.rag.retriever import Retriever
from ragcore.rag.store_faiss import create_gateway

logger = structlog.get_logger()

DEFAULT_SEARCH_LIMIT = 10
DEFAULT_RAG_LIMIT = 5


class RAGPipeline:
    """Retrieve, rank and generate over one storage collection."""

    def __init__(
        self,
        gateway: StorageGateway,
        chunker: TextChunker,
        generator: GeneratorService,
        ranker: Optional[Ranker] = None,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
        rag_limit: int = DEFAULT_RAG_LIMIT,
    ):
        self.gateway = gateway
        self.ingestor = IngestService(gateway, chunker)
        self.retriever = Retriever(gateway, default_limit=search_limit)
        self.ranker = ranker or Ranker()
        self.generator = generator
        self.search_limit = search_limit
        self.rag_limit = rag_limit

    async def ingest(
        self,
        document_id: str,
        content: str,
        metadata: Optional[Metadata] = None,
    ) -> IngestResult:
        """Ingest one document, replacing any earlier version."""
        return await self.ingestor.ingest_text(document_id, content, metadata)

    async def ingest_directory(
        self,
        directory: Path,
        recursive: bool = False,
        file_pattern: str = "",
        metadata: Optional[Metadata] = None,
    ) -> DirectoryIngestResult:
        """Ingest every matching file under ``directory``."""
        return await self.ingestor.ingest_directory(directory, recursive, file_pattern, metadata)

    async def _ranked(
        self,
        query: str,
        limit: Optional[int],
        threshold: float,
        default_limit: int,
    ) -> List[RankedChunk]:
        with stage("validation"):
            if not query or not query.strip():
                raise ValidationError("Query cannot be empty")

        if not limit or limit <= 0:
            limit = default_limit

        with stage("retrieval"):
            chunks = await self.retriever.retrieve(query, limit)

        with stage("ranking"):
            ranked = self.ranker.rank(query, chunks)

        if threshold > 0:
            with stage("filtering"):
                ranked = self.ranker.filter_by_threshold(ranked, threshold)

        return ranked

    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
        threshold: float = 0.0,
    ) -> SearchResult:
        """Retrieve and rank chunks for a query.

        Args:
            query: Search text
            limit: Maximum number of chunks to retrieve (default 10)
            threshold: Minimum ranking score; ignored unless positive
        """
        ranked = await self._ranked(query, limit, threshold, self.search_limit)

        logger.info("search_completed", query_preview=query[:100], results=len(ranked))

        return SearchResult(query=query, results=ranked, total=len(ranked))

    async def rag_query(
        self,
        query: str,
        limit: Optional[int] = None,
        threshold: float = 0.0,
    ) -> RAGResult:
        """Answer a question from the stored chunks.

        Args:
            query: Question text
            limit: Maximum number of chunks used as context (default 5)
            threshold: Minimum ranking score; ignored unless positive
        """
        start = time.monotonic()
        ranked = await self._ranked(query, limit, threshold, self.rag_limit)

        with stage("generation"):
            response = await self.generator.generate(query, ranked)

        processing_time = time.monotonic() - start

        logger.info(
            "rag_query_completed",
            query_preview=query[:100],
            context_chunks=len(ranked),
            sources=response.sources,
            processing_time=round(processing_time, 3),
        )

        return RAGResult(
            query=query,
            generated_response=response,
            retrieved_chunks=ranked,
            processing_time=processing_time,
        )

    async def stream_query(
        self,
        query: str,
        limit: Optional[int] = None,
        threshold: float = 0.0,
    ) -> ResponseStream:
        """Like ``rag_query`` but returns the answer as a stream.

        Retrieval errors are raised here; generation errors are raised while
        iterating the stream.
        """
        ranked = await self._ranked(query, limit, threshold, self.rag_limit)
        return self.generator.stream(query, ranked)

    async def delete_document(self, document_id: str) -> DeleteResult:
        with stage("validation"):
            if not document_id or not document_id.strip():
                raise ValidationError("Document ID cannot be empty")

        with stage("storage"):
            deleted = await self.gateway.delete_by_document(document_id)

        logger.info("document_delete_completed", document_id=document_id, chunks_deleted=deleted)
        return DeleteResult(document_id=document_id, status="deleted")

    async def get_document_chunks(self, document_id: str) -> List[DocumentChunk]:
        """All chunks of a document, ordered by chunk index."""
        with stage("validation"):
            if not document_id or not document_id.strip():
                raise ValidationError("Document ID cannot be empty")

        with stage("storage"):
            return await self.retriever.retrieve_by_document(document_id)

    async def get_chunk(self, chunk_id: int) -> DocumentChunk:
        with stage("storage"):
            return await self.retriever.retrieve_by_id(chunk_id)

    async def health_check(self) -> HealthStatus:
        """Check storage and generation backends.

        Status is "healthy" when every service answers, else "degraded".
        """
        services = {}
        checks = {
            "storage": self.gateway.health_check,
            "generation": self.generator.provider.health_check,
        }

        for name, check in checks.items():
            try:
                await check()
                services[name] = "healthy"
            except RAGError as e:
                logger.warning("health_check_failed", service=name, error=str(e))
                services[name] = f"unhealthy: {e.message}"

        status = "healthy" if all(v == "healthy" for v in services.values()) else "degraded"
        return HealthStatus(status=status, timestamp=datetime.now(timezone.utc), services=services)


async def build_pipeline(
    settings: Settings,
    generation_provider: Optional[GenerationProvider] = None,
) -> RAGPipeline:
    """Wire providers, storage and services from settings.

    Detects the embedding dimension when it is not configured and makes sure
    the collection exists before returning.
    """
    embedder = create_embedding_provider(settings)
    gateway = create_gateway(settings, embedder)

    dimension = settings.embedding.dimensions or await embedder.detect_dimension()
    await gateway.ensure_collection(dimension)

    chunker = TextChunker(
        chunk_size=settings.chunking.chunk_size,
        chunk_overlap=settings.chunking.chunk_overlap,
        strategy=settings.chunking.strategy,
    )
    generator = GeneratorService(
        provider=generation_provider or create_generation_provider(settings),
        model=settings.generation.model,
        temperature=settings.generation.temperature,
        max_tokens=settings.generation.max_tokens,
    )

    logger.info(
        "pipeline_built",
        collection=settings.storage.collection,
        embedding_provider=settings.embedding.provider.value,
        generation_provider=settings.generation.provider.value,
        dimension=dimension,
    )

    return RAGPipeline(
        gateway=gateway,
        chunker=chunker,
        generator=generator,
        search_limit=settings.retrieval.search_limit,
        rag_limit=settings.retrieval.rag_limit,
    )
