"""Ingest service for indexing documents.

Orchestrates:
- Validation and chunking of a single document
- Chunk id assignment and timestamping
- Storage through the gateway, then pruning of stale chunks
- Directory scanning with per-file outcomes
"""
import time
from datetime import datetime, timezone
from fnmatch import fnmatchcase
from pathlib import Path
from typing import List, Optional

import structlog

from ragcore.errors import RAGError, ValidationError, stage
from ragcore.models import (
    DirectoryIngestResult,
    DocumentChunk,
    FileIngestResult,
    IngestResult,
    Metadata,
)
from ragcore.rag.chunker import TextChunker
from ragcore.rag.gateway import StorageGateway
from ragcore.rag.identity import chunk_id
from ragcore.rag.md_parser import MarkdownParser

logger = structlog.get_logger()

MARKDOWN_SUFFIXES = (".md", ".markdown")


class IngestService:
    """Turns documents into stored chunks."""

    def __init__(
        self,
        gateway: StorageGateway,
        chunker: TextChunker,
        parser: Optional[MarkdownParser] = None,
    ):
        """Initialize the ingest service.

        Args:
            gateway: Storage gateway receiving the chunks
            chunker: Chunker applied to document text
            parser: Markdown parser for frontmatter in directory ingestion
        """
        self.gateway = gateway
        self.chunker = chunker
        self.parser = parser or MarkdownParser()

        logger.info(
            "ingest_service_initialized",
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
            strategy=self.chunker.strategy.value,
        )

    async def ingest_text(
        self,
        document_id: str,
        content: str,
        metadata: Optional[Metadata] = None,
    ) -> IngestResult:
        """Chunk and store one document, replacing any previous version.

        Content that yields no chunks is reported as a success with zero
        chunks and leaves storage untouched.

        Stale chunks of a longer previous version are pruned after the upsert
        commits. If pruning fails the new chunks stay stored, the stale tail
        remains, and the failure is raised tagged with the storage stage.

        Args:
            document_id: Caller-chosen document identifier
            content: Raw document text
            metadata: Metadata copied onto every chunk

        Returns:
            IngestResult with the number of chunks stored

        Raises:
            RAGError: Tagged with the failing stage; nothing is partially
                reported as success
        """
        start = time.monotonic()

        with stage("validation"):
            if not document_id or not document_id.strip():
                raise ValidationError("Document ID cannot be empty")

        with stage("chunking"):
            segments = self.chunker.chunk(content or "")

        if not segments:
            logger.info("document_empty", document_id=document_id)
            return IngestResult(
                document_id=document_id,
                chunks_count=0,
                status="success",
                processing_time=time.monotonic() - start,
            )

        metadata = metadata or Metadata()
        now = datetime.now(timezone.utc)
        chunks = [
            DocumentChunk(
                id=chunk_id(document_id, index),
                document_id=document_id,
                content=segment,
                chunk_index=index,
                metadata=metadata.copy(),
                created_at=now,
                updated_at=now,
            )
            for index, segment in enumerate(segments)
        ]

        with stage("storage"):
            await self.gateway.upsert(chunks)
            pruned = await self._prune_stale_chunks(document_id, len(chunks))

        processing_time = time.monotonic() - start

        logger.info(
            "document_ingested",
            document_id=document_id,
            chunks_count=len(chunks),
            pruned=pruned,
            processing_time=round(processing_time, 3),
        )

        return IngestResult(
            document_id=document_id,
            chunks_count=len(chunks),
            status="success",
            processing_time=processing_time,
        )

    async def _prune_stale_chunks(self, document_id: str, chunk_count: int) -> int:
        """Delete chunks left over from a longer previous version."""
        stale = [
            chunk for chunk in await self.gateway.query_by_document(document_id)
            if chunk.chunk_index >= chunk_count
        ]
        for chunk in stale:
            await self.gateway.delete_by_id(chunk.id)

        if stale:
            logger.info("stale_chunks_pruned", document_id=document_id, count=len(stale))
        return len(stale)

    async def ingest_directory(
        self,
        directory: Path,
        recursive: bool = False,
        file_pattern: str = "",
        metadata: Optional[Metadata] = None,
    ) -> DirectoryIngestResult:
        """Ingest every matching file of a directory.

        Each file is ingested independently: a failure is recorded and the
        batch continues. Empty files are skipped.

        Raises:
            ValidationError: If the directory does not exist
        """
        start = time.monotonic()
        directory = Path(directory)

        with stage("validation"):
            if not directory.is_dir():
                raise ValidationError(f"Directory does not exist: {directory}")

        files = self.scan_directory(directory, recursive, file_pattern)

        logger.info(
            "directory_ingest_started",
            directory=str(directory),
            file_count=len(files),
            recursive=recursive,
            file_pattern=file_pattern,
        )

        result = DirectoryIngestResult(directory_path=str(directory), processed_files=len(files))

        for file_path in files:
            file_result = await self.process_file(file_path, directory, metadata)
            result.results.append(file_result)

            if file_result.status == "success":
                result.successful_ingestions.append(
                    IngestResult(
                        document_id=file_result.document_id,
                        chunks_count=file_result.chunks_count,
                        status=file_result.status,
                    )
                )
            elif file_result.status == "skipped":
                result.skipped_files.append(file_result.file_path)
            else:
                result.errors.append(f"{file_result.file_path}: {file_result.error}")

        result.processing_time = time.monotonic() - start

        logger.info(
            "directory_ingest_completed",
            directory=str(directory),
            processed=result.processed_files,
            succeeded=len(result.successful_ingestions),
            skipped=len(result.skipped_files),
            failed=len(result.errors),
        )

        return result

    def scan_directory(self, directory: Path, recursive: bool, file_pattern: str) -> List[Path]:
        """List files to ingest, sorted by path."""
        candidates = directory.rglob("*") if recursive else directory.iterdir()
        return sorted(
            path for path in candidates
            if path.is_file() and self.matches_pattern(path.name, file_pattern)
        )

    async def process_file(
        self,
        file_path: Path,
        directory: Path,
        metadata: Optional[Metadata] = None,
    ) -> FileIngestResult:
        """Ingest one file, reporting the outcome instead of raising."""
        document_id = self.generate_document_id(file_path, directory)
        result = FileIngestResult(
            file_path=str(file_path),
            document_id=document_id,
            status="failed",
        )

        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("file_read_failed", path=str(file_path), error=str(e))
            result.error = f"failed to read file: {e}"
            return result

        file_metadata = (metadata or Metadata()).copy()
        if not file_metadata.source:
            file_metadata.source = str(file_path.relative_to(directory))

        if file_path.suffix.lower() in MARKDOWN_SUFFIXES:
            doc = self.parser.parse(content)
            content = doc.text_without_frontmatter
            file_metadata = file_metadata.merged_with(doc.metadata)

        if not content.strip():
            logger.info("empty_file_skipped", path=str(file_path))
            result.status = "skipped"
            result.error = "file is empty"
            return result

        try:
            ingested = await self.ingest_text(document_id, content, file_metadata)
        except RAGError as e:
            logger.error(
                "file_ingestion_failed",
                path=str(file_path),
                error=str(e),
            )
            result.error = f"failed to ingest: {e}"
            return result

        result.status = "success"
        result.chunks_count = ingested.chunks_count
        return result

    @staticmethod
    def generate_document_id(file_path: Path, directory: Path) -> str:
        """Derive a document id from the path relative to the ingest root."""
        relative = file_path.relative_to(directory).as_posix()
        return relative.replace("/", "_").lstrip("./")

    @staticmethod
    def matches_pattern(filename: str, file_pattern: str) -> bool:
        """Match a file name against comma-separated glob patterns."""
        if not file_pattern:
            return True

        patterns = [p.strip() for p in file_pattern.split(",") if p.strip()]
        if not patterns:
            return True
        return any(fnmatchcase(filename, pattern) for pattern in patterns)
