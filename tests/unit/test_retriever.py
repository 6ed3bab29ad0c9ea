"""Tests for the retriever."""
import pytest

from ragcore.errors import NotFoundError, UpstreamError, ValidationError
from ragcore.models import DocumentChunk
from ragcore.rag.identity import chunk_id
from ragcore.rag.retriever import Retriever


async def seed(gateway, document_id="doc", count=3):
    chunks = [
        DocumentChunk(id=chunk_id(document_id, i), document_id=document_id, content=f"part {i}", chunk_index=i)
        for i in reversed(range(count))
    ]
    await gateway.upsert(chunks)
    return chunks


@pytest.mark.asyncio
async def test_retrieve_uses_default_limit(gateway):
    await seed(gateway, count=8)
    retriever = Retriever(gateway, default_limit=5)

    assert len(await retriever.retrieve("part")) == 5
    assert len(await retriever.retrieve("part", limit=0)) == 5
    assert len(await retriever.retrieve("part", limit=2)) == 2


@pytest.mark.asyncio
async def test_retrieve_rejects_empty_query(gateway):
    with pytest.raises(ValidationError):
        await Retriever(gateway).retrieve("  ")


@pytest.mark.asyncio
async def test_retrieve_wraps_unexpected_gateway_errors(gateway):
    gateway.fail_with = ConnectionError("refused")

    with pytest.raises(UpstreamError) as excinfo:
        await Retriever(gateway).retrieve("query")

    assert excinfo.value.stage == "retrieval"


@pytest.mark.asyncio
async def test_retrieve_by_document_is_sorted_by_index(gateway):
    await seed(gateway, count=4)
    await seed(gateway, document_id="other", count=2)

    chunks = await Retriever(gateway).retrieve_by_document("doc")

    assert [c.chunk_index for c in chunks] == [0, 1, 2, 3]


@pytest.mark.asyncio
async def test_retrieve_by_id(gateway):
    await seed(gateway)
    retriever = Retriever(gateway)

    chunk = await retriever.retrieve_by_id(chunk_id("doc", 1))
    assert chunk.content == "part 1"

    with pytest.raises(NotFoundError):
        await retriever.retrieve_by_id(chunk_id("missing", 0))
    with pytest.raises(ValidationError):
        await retriever.retrieve_by_id(0)


@pytest.mark.asyncio
@pytest.mark.parametrize("bad_id", [-5, -1, 2**64, 1 << 70])
async def test_retrieve_by_id_rejects_out_of_range_ids(gateway, bad_id):
    await seed(gateway)

    with pytest.raises(ValidationError):
        await Retriever(gateway).retrieve_by_id(bad_id)
