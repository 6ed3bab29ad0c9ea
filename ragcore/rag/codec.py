"""Mapping between ``DocumentChunk`` and the flat payload persisted by storage.

Only the chunk id is strictly required on decode. Every other field degrades
to an empty value so that a partially written payload stays readable.

Custom metadata is flattened into the payload namespace as ``custom_<key>``.
A custom key that itself starts with ``custom_`` is not escaped and cannot be
told apart from a flattened key after a round trip.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from ragcore.errors import DecodeError
from ragcore.models import DocumentChunk, Metadata
from ragcore.rag.identity import MAX_ID

CUSTOM_PREFIX = "custom_"
OPTIONAL_FIELDS = ("title", "author", "source", "language", "content_type")


def format_timestamp(value: Optional[datetime]) -> str:
    """RFC 3339 string for ``value`` (empty when unset)."""
    if value is None:
        return ""
    return value.isoformat()


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp, returning None when malformed."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def encode_chunk(chunk: DocumentChunk) -> Dict[str, Any]:
    """Flatten a chunk into a storage payload.

    Args:
        chunk: Chunk to encode

    Returns:
        Attribute map with identity fields always present and metadata
        fields present only when non-empty
    """
    payload: Dict[str, Any] = {
        "id": chunk.id,
        "document_id": chunk.document_id,
        "content": chunk.content,
        "chunk_index": chunk.chunk_index,
        "created_at": format_timestamp(chunk.created_at),
        "updated_at": format_timestamp(chunk.updated_at),
    }

    metadata = chunk.metadata
    for name in OPTIONAL_FIELDS:
        value = getattr(metadata, name)
        if value:
            payload[name] = value

    if metadata.tags:
        payload["tags"] = list(metadata.tags)

    for key, value in metadata.custom.items():
        payload[CUSTOM_PREFIX + key] = value

    return payload


def decode_chunk(payload: Dict[str, Any]) -> DocumentChunk:
    """Rebuild a chunk from a storage payload.

    Args:
        payload: Attribute map produced by ``encode_chunk``

    Returns:
        DocumentChunk

    Raises:
        DecodeError: If the id is missing, non-numeric, zero or out of range
    """
    if payload is None:
        raise DecodeError("Payload is missing")

    chunk_id = _decode_id(payload.get("id"))

    metadata = Metadata(
        title=_get_string(payload, "title"),
        author=_get_string(payload, "author"),
        source=_get_string(payload, "source"),
        language=_get_string(payload, "language"),
        content_type=_get_string(payload, "content_type"),
        tags=_get_tags(payload.get("tags")),
        custom={
            key[len(CUSTOM_PREFIX):]: value if isinstance(value, str) else ""
            for key, value in payload.items()
            if key.startswith(CUSTOM_PREFIX) and len(key) > len(CUSTOM_PREFIX)
        },
    )

    return DocumentChunk(
        id=chunk_id,
        document_id=_get_string(payload, "document_id"),
        content=_get_string(payload, "content"),
        chunk_index=_get_int(payload, "chunk_index"),
        metadata=metadata,
        created_at=parse_timestamp(payload.get("created_at")),
        updated_at=parse_timestamp(payload.get("updated_at")),
    )


def _decode_id(raw: Any) -> int:
    if raw is None:
        raise DecodeError("Payload is missing the chunk id")

    if isinstance(raw, bool):
        raise DecodeError(f"Chunk id must be numeric, got {raw!r}")

    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and raw.strip().isdecimal():
        value = int(raw.strip())
    else:
        raise DecodeError(f"Chunk id must be numeric, got {raw!r}")

    if value == 0:
        raise DecodeError("Chunk id cannot be zero")
    if value < 0 or value > MAX_ID:
        raise DecodeError(f"Chunk id {value} is outside the unsigned 64-bit range")

    return value


def _get_string(payload: Dict[str, Any], key: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else ""


def _get_int(payload: Dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return 0
    return 0


def _get_tags(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [tag for tag in value if isinstance(tag, str) and tag]
