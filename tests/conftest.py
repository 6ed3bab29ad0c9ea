"""Shared fixtures and in-memory fakes for unit tests."""
import asyncio
from dataclasses import replace
from typing import Dict, List, Optional

import pytest

from ragcore.errors import NotFoundError, UpstreamError, ValidationError
from ragcore.models import DocumentChunk
from ragcore.rag.chunker import TextChunker
from ragcore.rag.gateway import StorageGateway, resolve_limit
from ragcore.rag.generator import GenerationProvider, GeneratorService
from ragcore.rag.pipeline import RAGPipeline


class InMemoryGateway(StorageGateway):
    """Dict-backed gateway returning chunks in insertion order."""

    def __init__(self):
        self.chunks: Dict[int, DocumentChunk] = {}
        self.vector_size: Optional[int] = None
        self.upsert_calls = 0
        self.fail_with: Optional[Exception] = None

    async def ensure_collection(self, vector_size: int) -> None:
        if vector_size <= 0:
            raise ValidationError("Vector size must be positive")
        self.vector_size = vector_size

    async def upsert(self, chunks: List[DocumentChunk]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.upsert_calls += 1
        for chunk in chunks:
            self.chunks[chunk.id] = replace(chunk)

    async def query_similar(self, query_text: str, limit: int) -> List[DocumentChunk]:
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.chunks.values())[: resolve_limit(limit)]

    async def query_by_document(self, document_id: str) -> List[DocumentChunk]:
        return [c for c in self.chunks.values() if c.document_id == document_id]

    async def get_by_id(self, chunk_id: int) -> DocumentChunk:
        try:
            return self.chunks[chunk_id]
        except KeyError:
            raise NotFoundError(f"Chunk not found: {chunk_id}")

    async def delete_by_document(self, document_id: str) -> int:
        ids = [i for i, c in self.chunks.items() if c.document_id == document_id]
        for i in ids:
            del self.chunks[i]
        return len(ids)

    async def delete_by_id(self, chunk_id: int) -> None:
        self.chunks.pop(chunk_id, None)

    async def health_check(self) -> None:
        if self.fail_with is not None:
            raise UpstreamError("backend down", stage="storage")


class SpyGenerationProvider(GenerationProvider):
    """Records every prompt; optionally fails or blocks until released."""

    def __init__(self, response: str = "spy answer", error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.prompts: List[str] = []
        self.calls: List[dict] = []
        self.release: Optional[asyncio.Event] = None
        self.started: Optional[asyncio.Event] = None
        self.cancelled = False

    def block(self) -> None:
        """Make ``complete`` wait until ``release`` is set."""
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    async def complete(self, prompt, *, model, temperature, max_tokens):
        self.prompts.append(prompt)
        self.calls.append({"model": model, "temperature": temperature, "max_tokens": max_tokens})

        if self.release is not None:
            self.started.set()
            try:
                await self.release.wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise

        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def gateway():
    return InMemoryGateway()


@pytest.fixture
def spy_provider():
    return SpyGenerationProvider()


@pytest.fixture
def make_pipeline(gateway, spy_provider):
    """Factory for a pipeline over the in-memory gateway and spy provider."""

    def _make(chunk_size: int = 1000, chunk_overlap: int = 200) -> RAGPipeline:
        return RAGPipeline(
            gateway=gateway,
            chunker=TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap),
            generator=GeneratorService(spy_provider, model="test-model"),
        )

    return _make
