"""Tests for settings loading."""
from pathlib import Path

import pytest

from ragcore.config import ChunkingStrategy, Provider, load_settings
from ragcore.errors import ConfigError


def test_defaults():
    settings = load_settings({})

    assert settings.chunking.chunk_size == 1000
    assert settings.chunking.chunk_overlap == 200
    assert settings.chunking.strategy is ChunkingStrategy.FIXED
    assert settings.embedding.provider is Provider.OLLAMA
    assert settings.embedding.dimensions == 0
    assert settings.generation.model == "gemma3:12b"
    assert settings.storage.collection == "documents"
    assert settings.retrieval.search_limit == 10
    assert settings.retrieval.rag_limit == 5
    assert settings.request_timeout == 60.0


def test_reads_environment():
    settings = load_settings({
        "DATA_DIR": "/tmp/rag",
        "COLLECTION_NAME": "notes",
        "CHUNK_SIZE": "500",
        "CHUNKING_STRATEGY": "Sentence",
        "EMBEDDING_PROVIDER": "mock",
        "EMBEDDING_DIMENSIONS": "128",
        "LLM_PROVIDER": "openai",
        "OPENAI_API_KEY": "sk-secret",
        "LLM_TEMPERATURE": "0.1",
        "RAG_LIMIT": "3",
    })

    assert settings.storage.data_dir == Path("/tmp/rag")
    assert settings.storage.collection == "notes"
    assert settings.chunking.chunk_size == 500
    assert settings.chunking.strategy is ChunkingStrategy.SENTENCE
    assert settings.embedding.provider is Provider.MOCK
    assert settings.embedding.dimensions == 128
    assert settings.generation.provider is Provider.OPENAI
    assert settings.generation.temperature == 0.1
    assert settings.retrieval.rag_limit == 3


def test_malformed_numbers_fall_back_to_defaults():
    settings = load_settings({"CHUNK_SIZE": "big", "LLM_TEMPERATURE": "warm", "REQUEST_TIMEOUT": ""})

    assert settings.chunking.chunk_size == 1000
    assert settings.generation.temperature == 0.7
    assert settings.request_timeout == 60.0


@pytest.mark.parametrize("env", [
    {"EMBEDDING_PROVIDER": "cohere"},
    {"CHUNKING_STRATEGY": "semantic"},
    {"LLM_PROVIDER": "openai"},
    {"EMBEDDING_DIMENSIONS": "-4"},
])
def test_invalid_settings_raise(env):
    with pytest.raises(ConfigError):
        load_settings(env)


def test_api_key_is_hidden_from_repr():
    settings = load_settings({"LLM_PROVIDER": "openai", "OPENAI_API_KEY": "sk-secret"})
    assert "sk-secret" not in repr(settings)
