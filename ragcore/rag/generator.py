"""Answer generation over ranked context.

Handles:
- Context and prompt construction
- Completion through a generation provider (Ollama, OpenAI-compatible, mock)
- Source attribution
- A single-shot streaming wrapper around the blocking call
"""
import asyncio
import re
from abc import ABC, abstractmethod
from typing import Any, Coroutine, List, Optional

import httpx
import structlog

from ragcore.config import Provider, Settings
from ragcore.errors import ConfigError, GenerationError, UpstreamError
from ragcore.llm_client import OllamaClient, OpenAIClient
from ragcore.models import GeneratedResponse, RankedChunk

logger = structlog.get_logger()

FALLBACK_RESPONSE = "I don't have enough information to answer your question."

PROMPT_TEMPLATE = """Based on the following context, please answer the question. If the context doesn't contain enough information to answer the question, please say so.

Context:
{context}

Question: {query}

Answer:"""


class GenerationProvider(ABC):
    """Turns a prompt into completion text."""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> str:
        """Complete a prompt sent as a single user message.

        Raises:
            UpstreamError: If the provider fails or returns no text
        """

    async def health_check(self) -> None:
        """Raise UpstreamError when the provider cannot serve requests."""


class OllamaGeneration(GenerationProvider):
    """Chat completions from a local Ollama server."""

    def __init__(self, client: OllamaClient):
        self.client = client

    async def complete(self, prompt, *, model, temperature, max_tokens):
        try:
            response = await self.client.chat(
                messages=[{"role": "user", "content": prompt}],
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except httpx.HTTPError as e:
            raise UpstreamError("Ollama chat request failed", stage="generation", cause=e) from e

        content = response.get("message", {}).get("content", "")
        if not content:
            raise UpstreamError("Ollama returned an empty response", stage="generation")
        return content

    async def health_check(self) -> None:
        try:
            await self.client.list_models()
        except httpx.HTTPError as e:
            raise UpstreamError("Ollama is unreachable", stage="generation", cause=e) from e


class OpenAIGeneration(GenerationProvider):
    """Chat completions from an OpenAI-compatible endpoint."""

    def __init__(self, client: OpenAIClient):
        self.client = client

    async def complete(self, prompt, *, model, temperature, max_tokens):
        try:
            response = await self.client.chat_completions(
                messages=[{"role": "user", "content": prompt}],
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except httpx.HTTPError as e:
            raise UpstreamError(
                "Failed to create chat completion", stage="generation", cause=e
            ) from e

        choices = response.get("choices") or []
        if not choices:
            raise UpstreamError("No response choices returned", stage="generation")
        return choices[0].get("message", {}).get("content") or ""

    async def health_check(self) -> None:
        try:
            await self.client.list_models()
        except httpx.HTTPError as e:
            raise UpstreamError("OpenAI API is unreachable", stage="generation", cause=e) from e


class MockGeneration(GenerationProvider):
    """Offline provider that echoes the first contexts of the prompt."""

    CONTEXT_PATTERN = re.compile(
        r"^Context \d+: (.*?)(?=\n\nContext \d+: |\n\nQuestion: )",
        re.DOTALL | re.MULTILINE,
    )
    QUESTION_PATTERN = re.compile(r"\n\nQuestion: (.*?)\n\nAnswer:$", re.DOTALL)

    def __init__(self, max_contexts: int = 3):
        self.max_contexts = max_contexts

    async def complete(self, prompt, *, model, temperature, max_tokens):
        contexts = self.CONTEXT_PATTERN.findall(prompt)[: self.max_contexts]
        question = self.QUESTION_PATTERN.search(prompt)
        topic = question.group(1) if question else "your question"
        return f"Based on the provided information about {topic}, here's what I found: {' '.join(contexts)}"


def create_generation_provider(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> GenerationProvider:
    """Build the generation provider selected in settings."""
    provider = settings.generation.provider

    if provider is Provider.OLLAMA:
        return OllamaGeneration(
            OllamaClient(
                base_url=settings.ollama_base_url,
                timeout=settings.request_timeout,
                transport=transport,
            )
        )

    if provider is Provider.OPENAI:
        return OpenAIGeneration(
            OpenAIClient(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                timeout=settings.request_timeout,
                transport=transport,
            )
        )

    if provider is Provider.MOCK:
        return MockGeneration()

    raise ConfigError(f"Unsupported generation provider: {provider}")


def _retrieve_exception(task: "asyncio.Task[Any]") -> None:
    # Marks the failure as seen for streams that are dropped unread
    if not task.cancelled() and task.exception() is not None:
        logger.warning("stream_generation_failed", error=str(task.exception()))


class ResponseStream:
    """Async iterator over one background generation.

    Yields the full answer text once, then stops. Provider errors are raised
    from the iterator. ``cancel`` or ``aclose`` abort the in-flight call and
    the stream then stops without yielding.
    """

    def __init__(self, generation: Coroutine[Any, Any, GeneratedResponse]):
        self._task = asyncio.get_running_loop().create_task(generation)
        self._task.add_done_callback(_retrieve_exception)
        self._cancelled = False
        self._exhausted = False
        self.result: Optional[GeneratedResponse] = None

    def __aiter__(self) -> "ResponseStream":
        return self

    async def __anext__(self) -> str:
        if self._exhausted or self._cancelled:
            raise StopAsyncIteration
        self._exhausted = True

        try:
            self.result = await self._task
        except asyncio.CancelledError:
            if self._cancelled:
                raise StopAsyncIteration
            raise

        return self.result.response

    @property
    def done(self) -> bool:
        return self._task.done()

    def cancel(self) -> None:
        """Abort the generation if it is still running."""
        self._cancelled = True
        self._task.cancel()

    async def aclose(self) -> None:
        """Cancel and wait for the background task to finish."""
        self.cancel()
        await asyncio.gather(self._task, return_exceptions=True)


class GeneratorService:
    """Builds prompts from ranked chunks and asks a provider for an answer."""

    def __init__(
        self,
        provider: GenerationProvider,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ):
        """Initialize the generator.

        Args:
            provider: Completion backend
            model: Model name passed to the provider
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate
        """
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

        logger.info(
            "generator_initialized",
            provider=type(provider).__name__,
            model=model,
        )

    async def generate(self, query: str, chunks: List[RankedChunk]) -> GeneratedResponse:
        """Generate an answer grounded in ``chunks``.

        Without chunks the fallback answer is returned and the provider is
        not called.

        Raises:
            GenerationError: If the provider fails
        """
        if not chunks:
            logger.info("generation_skipped_no_context", query_preview=query[:100])
            return GeneratedResponse(response=FALLBACK_RESPONSE, sources=[])

        prompt = self.build_prompt(query, self.build_context(chunks))

        logger.info(
            "generation_started",
            model=self.model,
            context_chunks=len(chunks),
            prompt_length=len(prompt),
        )

        try:
            text = await self.provider.complete(
                prompt,
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except GenerationError:
            raise
        except Exception as e:
            logger.error(
                "generation_failed",
                error=str(e),
                error_type=type(e).__name__,
                model=self.model,
            )
            raise GenerationError("Failed to generate response", cause=e) from e

        logger.info("generation_completed", response_length=len(text))

        return GeneratedResponse(response=text, sources=self.extract_sources(chunks))

    def stream(self, query: str, chunks: List[RankedChunk]) -> ResponseStream:
        """Run ``generate`` in the background and expose it as a stream.

        Must be called from a running event loop.
        """
        return ResponseStream(self.generate(query, chunks))

    def build_context(self, chunks: List[RankedChunk]) -> str:
        """Number chunk contents in input order, separated by blank lines."""
        return "\n\n".join(
            f"Context {i}: {chunk.content}" for i, chunk in enumerate(chunks, 1)
        )

    def build_prompt(self, query: str, context: str) -> str:
        return PROMPT_TEMPLATE.format(context=context, query=query)

    def extract_sources(self, chunks: List[RankedChunk]) -> List[str]:
        """Document ids of ``chunks`` in first-seen order, without duplicates."""
        sources: List[str] = []
        seen = set()
        for chunk in chunks:
            if chunk.document_id not in seen:
                seen.add(chunk.document_id)
                sources.append(chunk.document_id)
        return sources
