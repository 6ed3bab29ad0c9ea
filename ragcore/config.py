"""Application configuration with sensible defaults.

Environment variables are read once by ``load_settings`` and the resulting
``Settings`` value is passed explicitly into constructors.
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from ragcore.errors import ConfigError

BASE_DIR = Path.cwd()


class Provider(str, Enum):
    """Closed set of provider implementations."""

    OLLAMA = "ollama"
    OPENAI = "openai"
    MOCK = "mock"


class ChunkingStrategy(str, Enum):
    """How documents are split into chunks during ingestion."""

    FIXED = "fixed"
    PARAGRAPH = "paragraph"
    SENTENCE = "sentence"


@dataclass
class ChunkingSettings:
    chunk_size: int = 1000
    chunk_overlap: int = 200
    strategy: ChunkingStrategy = ChunkingStrategy.FIXED


@dataclass
class EmbeddingSettings:
    provider: Provider = Provider.OLLAMA
    model: str = "mxbai-embed-large:latest"
    # 0 = detect at startup by embedding a probe string
    dimensions: int = 0


@dataclass
class GenerationSettings:
    provider: Provider = Provider.OLLAMA
    model: str = "gemma3:12b"
    temperature: float = 0.7
    max_tokens: int = 1000


@dataclass
class StorageSettings:
    data_dir: Path = BASE_DIR / "data"
    collection: str = "documents"


@dataclass
class RetrievalSettings:
    search_limit: int = 10
    rag_limit: int = 5


@dataclass
class Settings:
    """Complete runtime configuration."""

    chunking: ChunkingSettings = field(default_factory=ChunkingSettings)
    embedding: EmbeddingSettings = field(default_factory=EmbeddingSettings)
    generation: GenerationSettings = field(default_factory=GenerationSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    retrieval: RetrievalSettings = field(default_factory=RetrievalSettings)

    ollama_base_url: str = "http://localhost:11434"
    openai_base_url: str = "https://api.openai.com/v1"
    openai_api_key: str = field(default="", repr=False)
    request_timeout: float = 60.0

    log_level: str = "INFO"

    def validate(self) -> None:
        """Ensure required settings are present.

        Raises:
            ConfigError: If a provider lacks its credentials or a size is invalid
        """
        uses_openai = Provider.OPENAI in (
            self.embedding.provider,
            self.generation.provider,
        )
        if uses_openai and not self.openai_api_key:
            raise ConfigError("OPENAI_API_KEY is required when using the openai provider")
        if not self.storage.collection:
            raise ConfigError("COLLECTION_NAME is required")
        if self.embedding.dimensions < 0:
            raise ConfigError("EMBEDDING_DIMENSIONS cannot be negative")


def _get(env: Mapping[str, str], key: str, default: str) -> str:
    value = env.get(key)
    return value if value else default


def _get_int(env: Mapping[str, str], key: str, default: int) -> int:
    try:
        return int(_get(env, key, str(default)))
    except ValueError:
        return default


def _get_float(env: Mapping[str, str], key: str, default: float) -> float:
    try:
        return float(_get(env, key, str(default)))
    except ValueError:
        return default


def _get_enum(env: Mapping[str, str], key: str, enum_cls, default):
    raw = _get(env, key, default.value).strip().lower()
    try:
        return enum_cls(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigError(f"Unsupported {key} '{raw}' (expected one of: {allowed})")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build ``Settings`` from environment variables.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        Validated Settings

    Raises:
        ConfigError: On unknown provider/strategy names or missing credentials
    """
    env = os.environ if environ is None else environ

    settings = Settings(
        chunking=ChunkingSettings(
            chunk_size=_get_int(env, "CHUNK_SIZE", 1000),
            chunk_overlap=_get_int(env, "CHUNK_OVERLAP", 200),
            strategy=_get_enum(env, "CHUNKING_STRATEGY", ChunkingStrategy, ChunkingStrategy.FIXED),
        ),
        embedding=EmbeddingSettings(
            provider=_get_enum(env, "EMBEDDING_PROVIDER", Provider, Provider.OLLAMA),
            model=_get(env, "EMBEDDING_MODEL", "mxbai-embed-large:latest"),
            dimensions=_get_int(env, "EMBEDDING_DIMENSIONS", 0),
        ),
        generation=GenerationSettings(
            provider=_get_enum(env, "LLM_PROVIDER", Provider, Provider.OLLAMA),
            model=_get(env, "LLM_MODEL", "gemma3:12b"),
            temperature=_get_float(env, "LLM_TEMPERATURE", 0.7),
            max_tokens=_get_int(env, "LLM_MAX_TOKENS", 1000),
        ),
        storage=StorageSettings(
            data_dir=Path(_get(env, "DATA_DIR", str(BASE_DIR / "data"))),
            collection=_get(env, "COLLECTION_NAME", "documents"),
        ),
        retrieval=RetrievalSettings(
            search_limit=_get_int(env, "SEARCH_LIMIT", 10),
            rag_limit=_get_int(env, "RAG_LIMIT", 5),
        ),
        ollama_base_url=_get(env, "OLLAMA_BASE_URL", "http://localhost:11434"),
        openai_base_url=_get(env, "OPENAI_BASE_URL", "https://api.openai.com/v1"),
        openai_api_key=_get(env, "OPENAI_API_KEY", ""),
        request_timeout=_get_float(env, "REQUEST_TIMEOUT", 60.0),
        log_level=_get(env, "LOG_LEVEL", "INFO"),
    )

    settings.validate()
    return settings
