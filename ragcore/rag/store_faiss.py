"""FAISS-backed storage gateway.

Handles:
- Collection creation with a fixed dimensionality (cosine similarity)
- Index persistence next to a SQLite payload table
- Upsert, similarity search, filtered scans and deletes by chunk id
"""
from pathlib import Path
from typing import Dict, List, Optional

import faiss
import numpy as np
import structlog

from ragcore.config import Settings
from ragcore.db import PayloadStore
from ragcore.errors import DecodeError, NotFoundError, UpstreamError, ValidationError
from ragcore.models import DocumentChunk
from ragcore.rag.codec import decode_chunk, encode_chunk
from ragcore.rag.embedding import EmbeddingProvider
from ragcore.rag.gateway import StorageGateway, resolve_limit
from ragcore.rag.identity import is_valid_chunk_id, to_signed64

logger = structlog.get_logger()


class FAISSStorageGateway(StorageGateway):
    """Inner-product FAISS index over normalized vectors plus SQLite payloads."""

    def __init__(
        self,
        embedder: EmbeddingProvider,
        index_dir: Path,
        collection: str = "documents",
    ):
        """Initialize the FAISS gateway.

        Args:
            embedder: Provider used to embed chunk contents and queries
            index_dir: Directory holding the index and payload files
            collection: Collection name, used as the file stem
        """
        self.embedder = embedder
        self.index_dir = Path(index_dir)
        self.collection = collection

        self.index_path = self.index_dir / f"{collection}.index"
        self.payloads = PayloadStore(self.index_dir / f"{collection}.sqlite")

        self.index: Optional[faiss.Index] = None
        self.dimension: Optional[int] = None

        logger.info(
            "faiss_gateway_initialized",
            index_dir=str(self.index_dir),
            collection=collection,
        )

    async def ensure_collection(self, vector_size: int) -> None:
        """Load the collection from disk or create it.

        Raises:
            ValidationError: If vector_size is not positive or does not match
                an existing collection
        """
        if vector_size <= 0:
            raise ValidationError(f"Vector size must be positive, got {vector_size}")

        if self.index is None and self.index_path.exists():
            self._load_index()

        if self.index is not None:
            if self.dimension != vector_size:
                raise ValidationError(
                    f"Dimension mismatch: collection '{self.collection}' has "
                    f"dim={self.dimension}, requested dim={vector_size}. "
                    "Please rebuild the index."
                )
            self.payloads.init_schema()
            return

        self.index_dir.mkdir(parents=True, exist_ok=True)
        self.payloads.init_schema()

        self.dimension = vector_size
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(vector_size))
        self._save_index()

        logger.info(
            "collection_created",
            collection=self.collection,
            dimension=vector_size,
            index_type="IndexIDMap2(IndexFlatIP)",
        )

    def _load_index(self) -> None:
        try:
            self.index = faiss.read_index(str(self.index_path))
        except RuntimeError as e:
            raise UpstreamError("Failed to load FAISS index", stage="storage", cause=e) from e

        self.dimension = self.index.d

        logger.info(
            "faiss_index_loaded",
            collection=self.collection,
            dimension=self.dimension,
            vector_count=self.index.ntotal,
        )

    def _save_index(self) -> None:
        faiss.write_index(self.index, str(self.index_path))

    def _require_index(self) -> faiss.Index:
        if self.index is None:
            raise UpstreamError(
                f"Collection '{self.collection}' not initialized. Call ensure_collection() first.",
                stage="storage",
            )
        return self.index

    def _to_matrix(self, vectors: List[List[float]]) -> np.ndarray:
        matrix = np.array(vectors, dtype=np.float32)
        if matrix.ndim != 2 or matrix.shape[1] != self.dimension:
            raise ValidationError(
                f"Embedding dimension mismatch: expected {self.dimension}, "
                f"got {matrix.shape[-1] if matrix.ndim else 0}"
            )
        faiss.normalize_L2(matrix)
        return matrix

    async def upsert(self, chunks: List[DocumentChunk]) -> None:
        """Embed and store chunks, overwriting existing ids."""
        if not chunks:
            return

        index = self._require_index()

        for chunk in chunks:
            if not is_valid_chunk_id(chunk.id):
                raise ValidationError(f"Invalid chunk id: {chunk.id}")

        embeddings = await self.embedder.embed_many([chunk.content for chunk in chunks])
        matrix = self._to_matrix(embeddings)

        # Last write wins when a batch repeats an id
        latest: Dict[int, int] = {}
        for position, chunk in enumerate(chunks):
            latest[to_signed64(chunk.id)] = position

        point_ids = np.array(list(latest.keys()), dtype=np.int64)
        vectors = matrix[list(latest.values())]
        rows = [
            (point_id, chunks[position].document_id, encode_chunk(chunks[position]))
            for point_id, position in latest.items()
        ]

        def write_vectors() -> None:
            index.remove_ids(point_ids)
            index.add_with_ids(vectors, point_ids)
            self._save_index()

        try:
            self.payloads.upsert_payloads(rows, before_commit=write_vectors)
        except Exception as e:
            raise UpstreamError("Failed to upsert chunks", stage="storage", cause=e) from e

        logger.info(
            "chunks_upserted",
            collection=self.collection,
            count=len(rows),
            total_vectors=index.ntotal,
        )

    async def query_similar(self, query_text: str, limit: int) -> List[DocumentChunk]:
        """Return the chunks closest to ``query_text`` by cosine similarity."""
        if not query_text or not query_text.strip():
            raise ValidationError("Query cannot be empty")

        index = self._require_index()
        limit = resolve_limit(limit)

        top_k = min(limit, index.ntotal)
        if top_k == 0:
            logger.info("empty_index_no_results", collection=self.collection)
            return []

        query_vector = self._to_matrix([await self.embedder.embed(query_text)])
        scores, indices = index.search(query_vector, top_k)

        point_ids = [int(i) for i in indices[0].tolist() if i != -1]
        payloads = self.payloads.get_payloads(point_ids)

        results = []
        for point_id in point_ids:
            payload = payloads.get(point_id)
            if payload is None:
                logger.error("vector_without_payload", point_id=point_id)
                raise DecodeError(f"Vector {point_id} has no stored payload")
            results.append(decode_chunk(payload))

        logger.info(
            "vector_search_completed",
            top_k=top_k,
            results_found=len(results),
            top_score=float(scores[0][0]) if results else None,
        )

        return results

    async def query_by_document(self, document_id: str) -> List[DocumentChunk]:
        if not document_id:
            raise ValidationError("Document ID cannot be empty")

        payloads = self.payloads.get_document_payloads(document_id)
        return [decode_chunk(payload) for payload in payloads.values()]

    async def get_by_id(self, chunk_id: int) -> DocumentChunk:
        if not is_valid_chunk_id(chunk_id):
            raise ValidationError(f"Invalid chunk id: {chunk_id}")

        point_id = to_signed64(chunk_id)
        payload = self.payloads.get_payloads([point_id]).get(point_id)
        if payload is None:
            raise NotFoundError(f"Chunk not found: {chunk_id}")
        return decode_chunk(payload)

    async def delete_by_document(self, document_id: str) -> int:
        if not document_id:
            raise ValidationError("Document ID cannot be empty")

        point_ids = list(self.payloads.get_document_payloads(document_id).keys())
        deleted = self._delete_points(point_ids)

        logger.info("document_deleted", document_id=document_id, chunk_count=deleted)
        return deleted

    async def delete_by_id(self, chunk_id: int) -> None:
        if not is_valid_chunk_id(chunk_id):
            raise ValidationError(f"Invalid chunk id: {chunk_id}")

        self._delete_points([to_signed64(chunk_id)])
        logger.info("chunk_deleted", chunk_id=chunk_id)

    def _delete_points(self, point_ids: List[int]) -> int:
        if not point_ids:
            return 0

        index = self._require_index()

        def remove_vectors() -> None:
            index.remove_ids(np.array(point_ids, dtype=np.int64))
            self._save_index()

        try:
            return self.payloads.delete_payloads(point_ids, before_commit=remove_vectors)
        except Exception as e:
            raise UpstreamError("Failed to delete chunks", stage="storage", cause=e) from e

    async def health_check(self) -> None:
        index = self._require_index()
        try:
            stored = self.payloads.get_point_count()
        except Exception as e:
            raise UpstreamError("Payload store health check failed", stage="storage", cause=e) from e

        if stored != index.ntotal:
            logger.warning(
                "index_payload_count_mismatch",
                vectors=index.ntotal,
                payloads=stored,
            )

    def get_stats(self) -> dict:
        """Get statistics about the collection."""
        if self.index is None:
            return {"initialized": False, "vector_count": 0, "dimension": None}

        return {
            "initialized": True,
            "collection": self.collection,
            "vector_count": self.index.ntotal,
            "dimension": self.dimension,
            "embedding_model": self.embedder.model,
            "index_exists_on_disk": self.index_path.exists(),
        }


def create_gateway(settings: Settings, embedder: EmbeddingProvider) -> FAISSStorageGateway:
    """Build the FAISS gateway for the configured collection."""
    return FAISSStorageGateway(
        embedder=embedder,
        index_dir=settings.storage.data_dir,
        collection=settings.storage.collection,
    )
