"""Tests for HTTP clients and the providers built on them."""
import json

import httpx
import pytest

from ragcore.config import EmbeddingSettings, GenerationSettings, Provider, Settings
from ragcore.errors import UpstreamError, ValidationError
from ragcore.llm_client import OllamaClient, OpenAIClient
from ragcore.rag.embedding import (
    HashEmbedding,
    OllamaEmbedding,
    OpenAIEmbedding,
    create_embedding_provider,
)
from ragcore.rag.generator import (
    MockGeneration,
    OllamaGeneration,
    OpenAIGeneration,
    create_generation_provider,
)


def recording_transport(handler):
    requests = []

    def _handle(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return httpx.MockTransport(_handle), requests


@pytest.mark.asyncio
async def test_ollama_chat_sends_options():
    transport, requests = recording_transport(
        lambda r: httpx.Response(200, json={"message": {"role": "assistant", "content": "hi"}})
    )
    client = OllamaClient(base_url="http://ollama:11434/", transport=transport)

    data = await client.chat([{"role": "user", "content": "q"}], model="m", temperature=0.3, max_tokens=20)

    assert data["message"]["content"] == "hi"
    assert str(requests[0].url) == "http://ollama:11434/api/chat"
    body = json.loads(requests[0].content)
    assert body["stream"] is False
    assert body["options"] == {"temperature": 0.3, "num_predict": 20}


@pytest.mark.asyncio
async def test_ollama_http_error_propagates():
    transport, _ = recording_transport(lambda r: httpx.Response(500, json={"error": "boom"}))
    client = OllamaClient(transport=transport)

    with pytest.raises(httpx.HTTPStatusError):
        await client.embeddings("text", model="m")


@pytest.mark.asyncio
async def test_ollama_embedding_provider():
    transport, requests = recording_transport(lambda r: httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3]}))
    provider = OllamaEmbedding(OllamaClient(transport=transport), model="embed")

    assert await provider.embed("hello") == [0.1, 0.2, 0.3]
    assert await provider.detect_dimension() == 3
    assert json.loads(requests[0].content) == {"model": "embed", "prompt": "hello"}


@pytest.mark.asyncio
async def test_embedding_provider_rejects_zero_vectors_and_http_errors():
    zero, _ = recording_transport(lambda r: httpx.Response(200, json={"embedding": [0.0, 0.0]}))
    with pytest.raises(UpstreamError):
        await OllamaEmbedding(OllamaClient(transport=zero), model="m").embed("x")

    empty, _ = recording_transport(lambda r: httpx.Response(200, json={}))
    with pytest.raises(UpstreamError):
        await OllamaEmbedding(OllamaClient(transport=empty), model="m").embed("x")

    failing, _ = recording_transport(lambda r: httpx.Response(503))
    with pytest.raises(UpstreamError) as excinfo:
        await OllamaEmbedding(OllamaClient(transport=failing), model="m").embed("x")
    assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)

    with pytest.raises(ValidationError):
        await OllamaEmbedding(OllamaClient(transport=failing), model="m").embed("")


@pytest.mark.asyncio
async def test_openai_embeddings_are_batched_and_reordered():
    def handler(request):
        assert request.headers["Authorization"] == "Bearer sk-test"
        return httpx.Response(200, json={"data": [
            {"index": 1, "embedding": [0.0, 1.0]},
            {"index": 0, "embedding": [1.0, 0.0]},
        ]})

    transport, requests = recording_transport(handler)
    provider = OpenAIEmbedding(OpenAIClient(api_key="sk-test", transport=transport), model="e")

    vectors = await provider.embed_many(["a", "b"])

    assert vectors == [[1.0, 0.0], [0.0, 1.0]]
    assert len(requests) == 1
    assert json.loads(requests[0].content) == {"model": "e", "input": ["a", "b"]}


@pytest.mark.asyncio
async def test_openai_embedding_count_mismatch():
    transport, _ = recording_transport(lambda r: httpx.Response(200, json={"data": []}))
    provider = OpenAIEmbedding(OpenAIClient(api_key="k", transport=transport), model="e")

    with pytest.raises(UpstreamError):
        await provider.embed("a")


@pytest.mark.asyncio
async def test_openai_generation():
    transport, requests = recording_transport(
        lambda r: httpx.Response(200, json={"choices": [{"message": {"content": "answer"}}]})
    )
    provider = OpenAIGeneration(OpenAIClient(api_key="k", base_url="http://llm/v1", transport=transport))

    text = await provider.complete("prompt", model="gpt", temperature=0.1, max_tokens=10)

    assert text == "answer"
    assert str(requests[0].url) == "http://llm/v1/chat/completions"
    body = json.loads(requests[0].content)
    assert body["messages"] == [{"role": "user", "content": "prompt"}]
    assert body["max_tokens"] == 10


@pytest.mark.asyncio
async def test_generation_provider_errors():
    no_choices, _ = recording_transport(lambda r: httpx.Response(200, json={"choices": []}))
    with pytest.raises(UpstreamError):
        await OpenAIGeneration(OpenAIClient(api_key="k", transport=no_choices)).complete(
            "p", model="m", temperature=0.0, max_tokens=1
        )

    down, _ = recording_transport(lambda r: httpx.Response(500))
    provider = OllamaGeneration(OllamaClient(transport=down))
    with pytest.raises(UpstreamError) as excinfo:
        await provider.complete("p", model="m", temperature=0.0, max_tokens=1)
    assert excinfo.value.stage == "generation"

    with pytest.raises(UpstreamError):
        await provider.health_check()


@pytest.mark.asyncio
async def test_list_models():
    transport, _ = recording_transport(lambda r: httpx.Response(200, json={"models": [{"name": "gemma3:12b"}]}))
    assert await OllamaClient(transport=transport).list_models() == ["gemma3:12b"]


def test_factories_follow_settings():
    settings = Settings(
        embedding=EmbeddingSettings(provider=Provider.MOCK, dimensions=16),
        generation=GenerationSettings(provider=Provider.MOCK),
    )
    embedder = create_embedding_provider(settings)
    assert isinstance(embedder, HashEmbedding)
    assert embedder.dimensions == 16
    assert isinstance(create_generation_provider(settings), MockGeneration)

    ollama = Settings()
    assert isinstance(create_embedding_provider(ollama), OllamaEmbedding)
    assert isinstance(create_generation_provider(ollama), OllamaGeneration)

    openai = Settings(
        embedding=EmbeddingSettings(provider=Provider.OPENAI),
        generation=GenerationSettings(provider=Provider.OPENAI),
        openai_api_key="k",
    )
    assert isinstance(create_embedding_provider(openai), OpenAIEmbedding)
    assert isinstance(create_generation_provider(openai), OpenAIGeneration)


@pytest.mark.asyncio
async def test_hash_embedding_is_deterministic_unit_vector():
    embedder = HashEmbedding(dimensions=32)

    first = await embedder.embed("same text")
    second = await embedder.embed("same text")

    assert first == second
    assert len(first) == 32
    assert abs(sum(v * v for v in first) - 1.0) < 1e-9
    assert first != await embedder.embed("other text")
