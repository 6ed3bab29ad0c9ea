"""Keyword-overlap ranking of retrieved chunks."""
from typing import List

import structlog

from ragcore.models import DocumentChunk, RankedChunk

logger = structlog.get_logger()


class Ranker:
    """Scores chunks by the fraction of query terms they contain."""

    def score(self, query: str, content: str) -> float:
        """Fraction of whitespace-separated query terms found in content.

        Matching is case-insensitive substring search, so "cat" matches
        "category". A query with no terms scores 0.
        """
        terms = query.lower().split()
        if not terms:
            return 0.0

        haystack = content.lower()
        matches = sum(1 for term in terms if term in haystack)
        return matches / len(terms)

    def rank(self, query: str, chunks: List[DocumentChunk]) -> List[RankedChunk]:
        """Score and sort chunks, highest score first.

        Ties keep their retrieval order.
        """
        ranked = [RankedChunk.from_chunk(chunk, self.score(query, chunk.content)) for chunk in chunks]
        ranked.sort(key=lambda chunk: chunk.score, reverse=True)

        logger.debug(
            "chunks_ranked",
            count=len(ranked),
            top_score=ranked[0].score if ranked else None,
        )
        return ranked

    def filter_by_threshold(self, ranked: List[RankedChunk], threshold: float) -> List[RankedChunk]:
        """Keep chunks scoring at least ``threshold``, order preserved."""
        return [chunk for chunk in ranked if chunk.score >= threshold]

    def top_k(self, ranked: List[RankedChunk], k: int) -> List[RankedChunk]:
        """First ``k`` chunks; all of them when k <= 0 or k exceeds the count."""
        if k <= 0 or k >= len(ranked):
            return list(ranked)
        return ranked[:k]
