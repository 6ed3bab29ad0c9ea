"""Text chunking with overlap for RAG pipeline.

Implements character-based chunking to avoid tokenizer dependencies.
"""
import re
from dataclasses import dataclass
from typing import List

import structlog

from ragcore.config import ChunkingStrategy

logger = structlog.get_logger()

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200

SENTENCE_TERMINATORS = ".!?"
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])")
_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")


@dataclass
class TextChunk:
    """Represents a chunk of text with position information.

    Positions are offsets into the whitespace-normalized text.
    """

    content: str
    char_start: int
    char_end: int
    chunk_index: int


def normalize_whitespace(text: str) -> str:
    """Collapse whitespace runs into single spaces and trim."""
    return " ".join(text.split())


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        strategy: ChunkingStrategy = ChunkingStrategy.FIXED,
    ):
        """Initialize the text chunker.

        Out-of-range values are clamped rather than rejected: a non-positive
        size or negative overlap falls back to the default, and an overlap
        not smaller than the size becomes a quarter of the size.

        Args:
            chunk_size: Size of each chunk in characters
            chunk_overlap: Overlap between chunks in characters
            strategy: Grouping used by ``chunk``
        """
        if chunk_size <= 0:
            chunk_size = DEFAULT_CHUNK_SIZE
        if chunk_overlap < 0:
            chunk_overlap = DEFAULT_CHUNK_OVERLAP
        if chunk_overlap >= chunk_size:
            chunk_overlap = chunk_size // 4

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.strategy = ChunkingStrategy(strategy)

        logger.info(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            strategy=self.strategy.value,
        )

    def chunk(self, text: str) -> List[str]:
        """Split text using the configured strategy."""
        if self.strategy is ChunkingStrategy.PARAGRAPH:
            return self.chunk_by_paragraphs(text)
        if self.strategy is ChunkingStrategy.SENTENCE:
            return self.chunk_by_sentences(text)
        return self.chunk_text(text)

    def chunk_text(self, text: str) -> List[str]:
        """Split text into overlapping segments.

        Args:
            text: Text to chunk

        Returns:
            Ordered list of segment strings
        """
        return [chunk.content for chunk in self.split_text(text)]

    def split_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks with positions.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects
        """
        if not text:
            return []

        text = normalize_whitespace(text)
        text_length = len(text)

        if not text:
            return []

        # Handle text shorter than chunk size
        if text_length <= self.chunk_size:
            return [TextChunk(content=text, char_start=0, char_end=text_length, chunk_index=0)]

        chunks: List[TextChunk] = []
        start = 0

        while start < text_length:
            end = min(start + self.chunk_size, text_length)

            # Only search for a boundary if we're not at the end of the text
            if end < text_length:
                end = self._find_break_point(text, start, end)

            content = text[start:end].strip()
            if content:
                chunks.append(
                    TextChunk(
                        content=content,
                        char_start=start,
                        char_end=end,
                        chunk_index=len(chunks),
                    )
                )

            if end >= text_length:
                break

            # Move to next chunk with overlap, always making progress
            next_start = end - self.chunk_overlap
            if next_start <= start:
                next_start = end
            start = next_start

        logger.debug(
            "text_chunked",
            text_length=text_length,
            chunk_count=len(chunks),
        )

        return chunks

    def _find_break_point(self, text: str, start: int, max_end: int) -> int:
        """Find the best cut inside the second half of the window.

        Priority: sentence end followed by whitespace, newline, any
        whitespace. Falls back to ``max_end``.
        """
        lower_bound = start + self.chunk_size // 2

        for i in range(max_end - 1, lower_bound, -1):
            if text[i] in SENTENCE_TERMINATORS and i + 1 < len(text) and text[i + 1].isspace():
                return i + 1

        for i in range(max_end - 1, lower_bound, -1):
            if text[i] == "\n":
                return i + 1

        for i in range(max_end - 1, lower_bound, -1):
            if text[i].isspace():
                return i + 1

        return max_end

    def chunk_by_paragraphs(self, text: str) -> List[str]:
        """Keep paragraphs whole, chunking only those above the chunk size."""
        chunks: List[str] = []

        for paragraph in _PARAGRAPH_SPLIT.split(text):
            paragraph = normalize_whitespace(paragraph)
            if not paragraph:
                continue

            if len(paragraph) <= self.chunk_size:
                chunks.append(paragraph)
            else:
                chunks.extend(self.chunk_text(paragraph))

        return chunks

    def chunk_by_sentences(self, text: str) -> List[str]:
        """Greedily pack whole sentences into chunks.

        Sentences are split after every ``.``, ``!`` and ``?`` with no
        abbreviation handling, so "e.g." ends a sentence. A sentence longer
        than the chunk size is split with ``chunk_text``.
        """
        chunks: List[str] = []
        current: List[str] = []
        current_len = 0

        for sentence in split_sentences(text):
            if len(sentence) > self.chunk_size:
                if current:
                    chunks.append(" ".join(current))
                    current, current_len = [], 0
                chunks.extend(self.chunk_text(sentence))
                continue

            added = len(sentence) + (1 if current else 0)
            if current and current_len + added > self.chunk_size:
                chunks.append(" ".join(current))
                current, current_len = [], 0
                added = len(sentence)

            current.append(sentence)
            current_len += added

        if current:
            chunks.append(" ".join(current))

        return chunks

    def get_chunk_stats(self, chunks: List[str]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of chunk strings

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
                "overlap": self.chunk_overlap,
            }

        chunk_sizes = [len(c) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


def split_sentences(text: str) -> List[str]:
    """Naive sentence splitter treating ``.``, ``!`` and ``?`` as hard ends."""
    sentences = []
    for piece in _SENTENCE_SPLIT.split(text):
        piece = normalize_whitespace(piece)
        if piece:
            sentences.append(piece)
    return sentences


def chunk_text(text: str, chunk_size: int, overlap: int) -> List[str]:
    """Chunk text with an ad-hoc chunker (convenience function).

    Args:
        text: Text to chunk
        chunk_size: Window size in characters
        overlap: Overlap between consecutive chunks

    Returns:
        Ordered list of segment strings
    """
    return TextChunker(chunk_size=chunk_size, chunk_overlap=overlap).chunk_text(text)
