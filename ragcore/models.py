"""Data model for chunks, ranked results and pipeline responses."""
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


@dataclass
class Metadata:
    """Descriptive attributes shared by every chunk of a document."""

    title: str = ""
    author: str = ""
    source: str = ""
    language: str = ""
    content_type: str = ""
    tags: List[str] = field(default_factory=list)
    custom: Dict[str, str] = field(default_factory=dict)

    def copy(self) -> "Metadata":
        return Metadata(
            title=self.title,
            author=self.author,
            source=self.source,
            language=self.language,
            content_type=self.content_type,
            tags=list(self.tags),
            custom=dict(self.custom),
        )

    def merged_with(self, other: "Metadata") -> "Metadata":
        """Return a copy where non-empty values of ``other`` win."""
        merged = self.copy()
        for name in ("title", "author", "source", "language", "content_type"):
            value = getattr(other, name)
            if value:
                setattr(merged, name, value)
        if other.tags:
            merged.tags = list(other.tags)
        merged.custom.update(other.custom)
        return merged


@dataclass
class DocumentChunk:
    """A bounded text segment of a document, the unit of storage."""

    id: int
    document_id: str
    content: str
    chunk_index: int
    metadata: Metadata = field(default_factory=Metadata)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class RankedChunk(DocumentChunk):
    """A chunk annotated with a query-scoped relevance score."""

    score: float = 0.0

    @classmethod
    def from_chunk(cls, chunk: DocumentChunk, score: float) -> "RankedChunk":
        values = {f.name: getattr(chunk, f.name) for f in fields(DocumentChunk)}
        return cls(score=score, **values)


@dataclass
class GeneratedResponse:
    """Answer text plus the documents that contributed context."""

    response: str
    sources: List[str] = field(default_factory=list)


# Pipeline contract, consumed by a transport layer


class IngestResult(BaseModel):
    document_id: str
    chunks_count: int
    status: str
    processing_time: float = 0.0


class SearchResult(BaseModel):
    query: str
    results: List[RankedChunk]
    total: int


class RAGResult(BaseModel):
    query: str
    generated_response: GeneratedResponse
    retrieved_chunks: List[RankedChunk]
    processing_time: float


class DeleteResult(BaseModel):
    document_id: str
    status: str


class FileIngestResult(BaseModel):
    """Outcome for one file of a directory ingestion."""

    file_path: str
    document_id: str
    status: str  # success | failed | skipped
    chunks_count: int = 0
    error: Optional[str] = None


class DirectoryIngestResult(BaseModel):
    directory_path: str
    processed_files: int
    successful_ingestions: List[IngestResult] = Field(default_factory=list)
    skipped_files: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
    results: List[FileIngestResult] = Field(default_factory=list)
    processing_time: float = 0.0


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
    services: Dict[str, str]
