"""
KnowledgeBase: one handle wiring storage, vectors and the query engines.

Each caller (a CLI invocation, an HTTP request) opens its own instance and
closes it when done; nothing is shared between handles except the files
on disk.
"""

from __future__ import annotations

import logging
import random
from pathlib import Path
from typing import Any, Sequence

from rkb import chunking, ingest
from rkb.config import load_config
from rkb.errors import InvalidInputError
from rkb.fusion import HybridRanker
from rkb.graph import ClaimGraph
from rkb.lexical import LexicalIndex
from rkb.schemas import (
    EmbeddingSource,
    HybridResult,
    ReviewQueue,
    SimilarityResult,
)
from rkb.similarity import SimilaritySearch
from rkb.store import Database
from rkb.vectors import VectorStore

logger = logging.getLogger(__name__)


class KnowledgeBase:
    """
    Research knowledge base handle.

    Usage:
        with KnowledgeBase() as kb:
            hits = kb.index.search("bronze age")
            results = kb.hybrid("bronze age", query_vector)
            queue = kb.review()
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        vector_db_path: str | Path | None = None,
        model: str | None = None,
        config_path: Path | None = None,
        config: dict[str, Any] | None = None,
        rng: random.Random | None = None,
    ):
        """
        Open storage and wire the components.

        Args:
            db_path: SQLite database file (default: from config)
            vector_db_path: LanceDB directory (default: from config)
            model: Model name vectors are stored and queried under (default: from config)
            config_path: Path to config.yaml
            config: Already loaded config (takes precedence over config_path)
            rng: Random source for review sampling
        """
        self.config = config or load_config(config_path)

        self.db = Database(db_path or self.config["data"]["db_path"])
        self.vectors = VectorStore(vector_db_path or self.config["data"]["vector_db_path"])
        self.model = model or self.config["embeddings"]["model"]

        self.similarity = SimilaritySearch(self.vectors, self.db)
        self.ranker = HybridRanker(
            self.db,
            self.vectors,
            self.model,
            claim_threshold=self.config["hybrid"]["claim_threshold"],
        )
        self.graph = ClaimGraph(self.db, rng=rng)

    @property
    def index(self) -> LexicalIndex:
        return self.db.index

    @property
    def default_limit(self) -> int:
        return self.config["retrieval"]["default_limit"]

    def close(self) -> None:
        self.db.close()

    def __enter__(self) -> KnowledgeBase:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------

    def semantic(
        self,
        query_vector: Sequence[float],
        source: EmbeddingSource | str | None = None,
        limit: int | None = None,
    ) -> list[SimilarityResult]:
        """Similarity search decorated with source text and owning video."""
        source_type = ingest.parse_source(source) if source is not None else None
        hits = self.similarity.search(
            ingest.validate_vector(query_vector),
            source_type,
            limit=self.default_limit if limit is None else limit,
        )
        return self.similarity.describe(hits)

    def similar(
        self,
        source: EmbeddingSource | str,
        source_id: str,
        limit: int | None = None,
    ) -> list[SimilarityResult] | None:
        """Neighbours of a stored item; None when the item has no embedding."""
        hits = self.similarity.similar_to(
            ingest.parse_source(source),
            source_id,
            self.model,
            limit=self.default_limit if limit is None else limit,
        )
        return self.similarity.describe(hits) if hits is not None else None

    def hybrid(
        self,
        query: str,
        query_vector: Sequence[float] | None = None,
        keyword_weight: float | None = None,
        semantic_weight: float | None = None,
        limit: int | None = None,
    ) -> list[HybridResult]:
        """Hybrid ranking with weights and limit defaulting to config."""
        weights = self.config["hybrid"]
        if query_vector is not None:
            query_vector = ingest.validate_vector(query_vector)
        return self.ranker.hybrid(
            query,
            query_vector,
            keyword_weight=weights["keyword_weight"] if keyword_weight is None else keyword_weight,
            semantic_weight=weights["semantic_weight"] if semantic_weight is None else semantic_weight,
            limit=self.default_limit if limit is None else limit,
        )

    def review(self, stale_days: int | None = None, random_n: int | None = None) -> ReviewQueue:
        review = self.config["review"]
        return self.graph.review_queue(
            stale_days=review["stale_days"] if stale_days is None else stale_days,
            random_n=review["random_count"] if random_n is None else random_n,
        )

    # ------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------

    def chunk(
        self,
        video_id: str,
        target_tokens: int | None = None,
        overlap_percent: int | None = None,
    ) -> dict[str, int]:
        """Chunk one video, or every video when video_id is "all"."""
        settings = self.config["chunking"]
        target_tokens = target_tokens or settings["target_tokens"]
        overlap_percent = settings["overlap_percent"] if overlap_percent is None else overlap_percent
        if not 0 <= overlap_percent < 100:
            raise InvalidInputError(f"Overlap must be between 0 and 99 percent, got {overlap_percent}")

        if video_id == "all":
            return chunking.chunk_all(self.db, target_tokens, overlap_percent)
        return {video_id: chunking.chunk_video(self.db, video_id, target_tokens, overlap_percent)}

    def embed_missing(self, source: str = "all", encoder=None) -> int:
        return ingest.embed_missing(
            self.db,
            self.vectors,
            self.model,
            batch_size=self.config["embeddings"]["batch_size"],
            source=source,
            encoder=encoder,
        )
