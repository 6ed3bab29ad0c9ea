"""Tests for deterministic chunk ids."""
from ragcore.rag.identity import MAX_ID, chunk_id, fnv1a_64, from_signed64, is_valid_chunk_id, to_signed64


def test_fnv1a_known_vectors():
    assert fnv1a_64(b"") == 0xCBF29CE484222325
    assert fnv1a_64(b"a") == 0xAF63DC4C8601EC8C


def test_chunk_id_is_repeatable():
    assert chunk_id("doc-1", 0) == chunk_id("doc-1", 0)
    assert chunk_id("doc-1", 0) == fnv1a_64(b"doc-1_0")


def test_chunk_ids_are_distinct_across_documents_and_indices():
    ids = {chunk_id(f"doc-{d}", i) for d in range(10) for i in range(100)}
    assert len(ids) == 1000


def test_chunk_id_fits_unsigned_64_bits():
    for i in range(50):
        value = chunk_id("bounds", i)
        assert 0 <= value < 2**64


def test_signed_conversion_round_trip():
    for value in (1, 2**63 - 1, 2**63, 2**64 - 1, chunk_id("doc", 3)):
        signed = to_signed64(value)
        assert -(2**63) <= signed < 2**63
        assert from_signed64(signed) == value

    assert to_signed64(2**64 - 1) == -1


def test_valid_chunk_id_range():
    assert is_valid_chunk_id(1)
    assert is_valid_chunk_id(MAX_ID)
    assert is_valid_chunk_id(chunk_id("doc", 0))

    assert not is_valid_chunk_id(0)
    assert not is_valid_chunk_id(-5)
    assert not is_valid_chunk_id(2**64)
    assert not is_valid_chunk_id(1 << 70)
