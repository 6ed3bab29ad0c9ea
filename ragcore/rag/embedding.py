"""Embedding providers.

Three implementations sit behind ``EmbeddingProvider``: Ollama,
OpenAI-compatible and a deterministic hash embedder for offline use. One is
chosen at startup by ``create_embedding_provider``.
"""
import hashlib
import math
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
import structlog

from ragcore.config import Provider, Settings
from ragcore.errors import ConfigError, UpstreamError, ValidationError
from ragcore.llm_client import OllamaClient, OpenAIClient

logger = structlog.get_logger()


class EmbeddingProvider(ABC):
    """Turns text into fixed-length vectors."""

    model: str

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed one text.

        Raises:
            UpstreamError: If the provider fails or returns an empty vector
        """

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts, preserving order."""
        return [await self.embed(text) for text in texts]

    async def detect_dimension(self) -> int:
        """Detect embedding dimension by embedding a test string."""
        logger.info("detecting_embedding_dimension", model=self.model)
        dimension = len(await self.embed("test"))
        logger.info("embedding_dimension_detected", dimension=dimension)
        return dimension


def _check_vector(vector: List[float], model: str) -> List[float]:
    if not vector:
        raise UpstreamError(f"Empty embedding returned by {model}")
    if not any(vector):
        raise UpstreamError(f"Zero vector returned by {model}")
    return vector


class OllamaEmbedding(EmbeddingProvider):
    """Embeddings from a local Ollama server."""

    def __init__(self, client: OllamaClient, model: str):
        self.client = client
        self.model = model

    async def embed(self, text: str) -> List[float]:
        if not text:
            raise ValidationError("Text to embed cannot be empty")

        try:
            response = await self.client.embeddings(prompt=text, model=self.model)
        except httpx.HTTPError as e:
            logger.error(
                "embedding_generation_failed",
                text_preview=text[:100],
                error=str(e),
            )
            raise UpstreamError("Failed to generate embedding", cause=e) from e

        return _check_vector(response.get("embedding", []), self.model)


class OpenAIEmbedding(EmbeddingProvider):
    """Embeddings from an OpenAI-compatible endpoint, batched per call."""

    def __init__(self, client: OpenAIClient, model: str):
        self.client = client
        self.model = model

    async def embed(self, text: str) -> List[float]:
        return (await self.embed_many([text]))[0]

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        if any(not text for text in texts):
            raise ValidationError("Texts to embed cannot be empty")

        try:
            response = await self.client.embeddings(inputs=texts, model=self.model)
        except httpx.HTTPError as e:
            logger.error("embedding_generation_failed", input_count=len(texts), error=str(e))
            raise UpstreamError("Failed to generate embeddings", cause=e) from e

        data = sorted(response.get("data", []), key=lambda item: item.get("index", 0))
        if len(data) != len(texts):
            raise UpstreamError(
                f"Embedding count mismatch: expected {len(texts)}, got {len(data)}",
            )

        return [_check_vector(item.get("embedding", []), self.model) for item in data]


class HashEmbedding(EmbeddingProvider):
    """Deterministic pseudo-embeddings derived from an MD5 digest.

    Identical texts map to identical unit vectors; there is no semantic
    similarity between different texts.
    """

    def __init__(self, dimensions: int = 384, model: str = "hash"):
        if dimensions <= 0:
            raise ValidationError("Hash embedding dimensions must be positive")
        self.dimensions = dimensions
        self.model = model

    async def embed(self, text: str) -> List[float]:
        if not text:
            raise ValidationError("Text to embed cannot be empty")

        digest = hashlib.md5(text.encode("utf-8")).digest()
        vector = []
        for i in range(self.dimensions):
            value = digest[i % len(digest)] / 255.0
            vector.append(math.sin(2 * math.pi * value + i * 0.1))

        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector]

    async def detect_dimension(self) -> int:
        return self.dimensions


def create_embedding_provider(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> EmbeddingProvider:
    """Build the embedding provider selected in settings."""
    provider = settings.embedding.provider

    if provider is Provider.OLLAMA:
        client = OllamaClient(
            base_url=settings.ollama_base_url,
            timeout=settings.request_timeout,
            transport=transport,
        )
        return OllamaEmbedding(client, settings.embedding.model)

    if provider is Provider.OPENAI:
        client = OpenAIClient(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.request_timeout,
            transport=transport,
        )
        return OpenAIEmbedding(client, settings.embedding.model)

    if provider is Provider.MOCK:
        return HashEmbedding(dimensions=settings.embedding.dimensions or 384)

    raise ConfigError(f"Unsupported embedding provider: {provider}")
