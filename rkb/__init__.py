"""
Research Knowledge Base - retrieval and claim-graph engine over video transcripts.

Modules:
    - schemas: Pydantic models and closed vocabularies
    - store: SQLite storage for videos, transcripts, claims and chunks
    - vectors: LanceDB-backed embedding store
    - similarity: Brute-force cosine similarity search
    - lexical: Weighted full-text index with timestamped segment matches
    - fusion: Hybrid keyword + semantic ranking
    - graph: Claim links, orphan/stale detection and the review queue
    - chunking: Transcript chunk building
    - ingest: Embedding import/export and local generation
    - kb: Wiring of all components from config
    - cli / serve: Command line and HTTP entry points
"""

__version__ = "0.1.0"
