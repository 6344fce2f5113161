"""
Hybrid ranking: fuse lexical rank and semantic similarity per video.

Keyword score is rank-normalised, (N - i) / N for the i-th of N lexical
hits, so only relative position matters. Semantic score is the best of the
video's own embedding and any of its chunk embeddings. The two are
combined linearly with caller-supplied weights; setting one weight to 0
yields pure keyword or pure semantic ranking from the same path.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from rkb.schemas import (
    ChunkMatch,
    ChunkRef,
    EmbeddingSource,
    HybridResult,
)
from rkb.similarity import SimilaritySearch, cosine_similarity
from rkb.vectors import VectorStore

if TYPE_CHECKING:
    from rkb.store import Database

logger = logging.getLogger(__name__)

CLAIM_MATCH_THRESHOLD = 0.5


def keyword_scores(video_ids: Sequence[str]) -> dict[str, float]:
    """Map lexical hits, best first, to rank-normalised scores in (0, 1]."""
    total = len(video_ids)
    scores: dict[str, float] = {}
    for rank, video_id in enumerate(video_ids):
        scores.setdefault(video_id, (total - rank) / total)
    return scores


class HybridRanker:
    """
    Combine the lexical index and similarity search into one ranking.

    Usage:
        ranker = HybridRanker(db, vectors, model="all-MiniLM-L6-v2")
        results = ranker.hybrid("fall of rome", query_vector, 0.5, 0.5, limit=10)
    """

    def __init__(
        self,
        db: Database,
        vectors: VectorStore,
        model: str,
        claim_threshold: float = CLAIM_MATCH_THRESHOLD,
    ):
        self.db = db
        self.vectors = vectors
        self.similarity = SimilaritySearch(vectors, db)
        self.model = model
        self.claim_threshold = claim_threshold

    def semantic_scores(self, query_vector: Sequence[float]) -> dict[str, float]:
        """Best similarity per video across video and chunk embeddings."""
        scores: dict[str, float] = {}
        for emb, score in self.similarity.search(query_vector, EmbeddingSource.VIDEO, limit=None):
            scores[emb.source_id] = max(scores.get(emb.source_id, score), score)

        for emb, score in self.similarity.search(query_vector, EmbeddingSource.CHUNK, limit=None):
            ref = emb.ref
            if not isinstance(ref, ChunkRef):
                logger.warning(f"Skipping malformed chunk embedding id: {emb.source_id}")
                continue
            scores[ref.video_id] = max(scores.get(ref.video_id, 0.0), score)
        return scores

    def hybrid(
        self,
        query: str,
        query_vector: Sequence[float] | None = None,
        keyword_weight: float = 0.5,
        semantic_weight: float = 0.5,
        limit: int = 10,
    ) -> list[HybridResult]:
        """
        Rank videos by weighted keyword + semantic score.

        Args:
            query: Full-text query for the lexical index
            query_vector: Query embedding (optional; semantic score is 0 without it)
            keyword_weight: Weight of the rank-normalised keyword score
            semantic_weight: Weight of the semantic similarity score
            limit: Maximum number of videos

        Returns:
            Results ordered by combined score, each with matching chunks and claims
        """
        lexical = self.db.index.search(query)
        kw_scores = keyword_scores([hit.video.id for hit in lexical])
        sem_scores = self.semantic_scores(query_vector) if query_vector is not None else {}

        # Keyword order first, then semantic-only videos; sort is stable on ties
        candidates = list(dict.fromkeys([*kw_scores, *sem_scores]))
        combined = []
        for video_id in candidates:
            kw = kw_scores.get(video_id, 0.0)
            sem = sem_scores.get(video_id, 0.0)
            combined.append((video_id, kw, sem, kw * keyword_weight + sem * semantic_weight))
        combined.sort(key=lambda item: item[3], reverse=True)

        results: list[HybridResult] = []
        for video_id, kw, sem, score in combined:
            if len(results) >= limit:
                break
            video = self.db.get_video(video_id)
            if video is None:
                logger.debug(f"Skipping embedding for missing video: {video_id}")
                continue
            results.append(
                HybridResult(
                    video=video,
                    keyword_score=kw,
                    semantic_score=sem,
                    combined_score=score,
                    matching_chunks=self._matching_chunks(video_id, query_vector),
                    matching_claims=self._matching_claims(video_id, query_vector),
                )
            )
        return results

    def _matching_chunks(
        self, video_id: str, query_vector: Sequence[float] | None
    ) -> list[ChunkMatch]:
        if query_vector is None:
            return []

        matches = []
        for chunk in self.db.get_transcript_chunks(video_id):
            emb = self.vectors.get(EmbeddingSource.CHUNK, chunk.ref.encode(), self.model)
            if emb is None:
                continue
            matches.append(ChunkMatch(chunk=chunk, score=cosine_similarity(query_vector, emb.vector)))
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    def _matching_claims(self, video_id: str, query_vector: Sequence[float] | None):
        if query_vector is None:
            return []

        matches = []
        for claim in self.db.list_claims_for_video(video_id):
            emb = self.vectors.get(EmbeddingSource.CLAIM, str(claim.id), self.model)
            if emb is None:
                continue
            if cosine_similarity(query_vector, emb.vector) > self.claim_threshold:
                matches.append(claim)
        return matches
