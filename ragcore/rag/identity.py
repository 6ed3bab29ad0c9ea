"""Deterministic chunk identifiers.

A chunk id is the 64-bit FNV-1a hash of ``"{document_id}_{chunk_index}"``,
so re-ingesting a document overwrites its chunks instead of duplicating them.
Collisions are not detected.
"""

FNV_OFFSET_BASIS = 0xCBF29CE484222325
FNV_PRIME = 0x100000001B3
MASK_64 = 0xFFFFFFFFFFFFFFFF
MAX_ID = MASK_64


def fnv1a_64(data: bytes) -> int:
    """64-bit FNV-1a hash of ``data``."""
    value = FNV_OFFSET_BASIS
    for byte in data:
        value ^= byte
        value = (value * FNV_PRIME) & MASK_64
    return value


def chunk_id(document_id: str, chunk_index: int) -> int:
    """Return the id of chunk ``chunk_index`` of ``document_id``.

    Args:
        document_id: Parent document identifier
        chunk_index: Position of the chunk within the document

    Returns:
        Unsigned 64-bit integer
    """
    return fnv1a_64(f"{document_id}_{chunk_index}".encode("utf-8"))


def to_signed64(value: int) -> int:
    """Map an unsigned 64-bit id onto the signed range used by FAISS/SQLite."""
    return value - (1 << 64) if value >= (1 << 63) else value


def from_signed64(value: int) -> int:
    """Inverse of ``to_signed64``."""
    return value + (1 << 64) if value < 0 else value


def is_valid_chunk_id(value: int) -> bool:
    """True when ``value`` is a non-zero unsigned 64-bit id."""
    return 0 < value <= MAX_ID
