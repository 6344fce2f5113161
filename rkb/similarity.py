"""
Exact (brute-force) cosine similarity search over the vector store.

Every query re-reads the candidate set and scores it in full; there is no
approximate index. Degenerate inputs score 0.0 instead of raising.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

import numpy as np

from rkb.schemas import (
    ChunkRef,
    ClaimRef,
    Embedding,
    EmbeddingSource,
    SimilarityResult,
    SummaryRef,
    VideoRef,
)
from rkb.vectors import VectorStore

if TYPE_CHECKING:
    from rkb.store import Database

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Returns 0.0 when the lengths differ, either vector is empty, or either
    has zero norm.
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm_a = float(np.linalg.norm(va))
    norm_b = float(np.linalg.norm(vb))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(va, vb)) / (norm_a * norm_b)


class SimilaritySearch:
    """
    Rank stored embeddings by cosine similarity to a query vector.

    Usage:
        search = SimilaritySearch(vectors, db)
        hits = search.search(query_vector, source_type=EmbeddingSource.CHUNK, limit=5)
        results = search.describe(hits)
    """

    def __init__(self, vectors: VectorStore, db: Database | None = None):
        self.vectors = vectors
        self.db = db

    def search(
        self,
        query_vector: Sequence[float],
        source_type: EmbeddingSource | None = None,
        limit: int | None = 10,
    ) -> list[tuple[Embedding, float]]:
        """
        Score every candidate against the query vector.

        Args:
            query_vector: Query embedding
            source_type: Restrict candidates to one kind (default: all)
            limit: Maximum results; None returns every candidate

        Returns:
            (embedding, score) pairs in non-increasing score order
        """
        candidates = self.vectors.list(source_type)
        scored = [(emb, cosine_similarity(query_vector, emb.vector)) for emb in candidates]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        logger.debug(f"Scored {len(scored)} candidates")

        if limit is not None:
            scored = scored[:limit]
        return scored

    def similar_to(
        self,
        source_type: EmbeddingSource,
        source_id: str,
        model: str,
        limit: int = 10,
    ) -> list[tuple[Embedding, float]] | None:
        """
        Find neighbours of an already stored embedding, excluding the item itself.

        Returns:
            Ranked neighbours, or None if the item has no embedding under this model
        """
        anchor = self.vectors.get(source_type, source_id, model)
        if anchor is None:
            return None

        hits = self.search(anchor.vector, limit=None)
        hits = [
            (emb, score)
            for emb, score in hits
            if not (emb.source_type == source_type and emb.source_id == source_id)
        ]
        return hits[:limit]

    def text_for(self, embedding: Embedding) -> str | None:
        """Look up the text an embedding was computed from."""
        if self.db is None:
            return None

        ref = embedding.ref
        if isinstance(ref, VideoRef):
            video = self.db.get_video(ref.video_id)
            if video is None:
                return None
            return f"{video.title}\n{video.description or ''}"
        if isinstance(ref, ChunkRef):
            for chunk in self.db.get_transcript_chunks(ref.video_id):
                if chunk.chunk_index == ref.chunk_index:
                    return chunk.text
            return None
        if isinstance(ref, ClaimRef):
            claim = self.db.get_claim(ref.claim_id)
            return claim.text if claim else None
        if isinstance(ref, SummaryRef):
            layer = self.db.get_transcript_layer(ref.video_id, ref.layer)
            return layer.content if layer else None
        return None

    def video_for(self, embedding: Embedding) -> str | None:
        """Resolve the video an embedding belongs to."""
        ref = embedding.ref
        if isinstance(ref, ClaimRef):
            if self.db is None:
                return None
            claim = self.db.get_claim(ref.claim_id)
            return claim.video_id if claim else None
        return ref.video_id if ref is not None else None

    def describe(self, hits: list[tuple[Embedding, float]]) -> list[SimilarityResult]:
        """Decorate ranked hits with their source text and owning video."""
        return [
            SimilarityResult(
                source_type=emb.source_type,
                source_id=emb.source_id,
                score=score,
                text=self.text_for(emb) or "",
                video_id=self.video_for(emb),
            )
            for emb, score in hits
        ]
