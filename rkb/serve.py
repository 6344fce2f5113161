"""
FastAPI server for the research knowledge base.

Endpoints:
    GET    /health                 - Health check
    GET    /search                 - Keyword search with timestamped matches
    POST   /semantic               - Similarity search with a query vector
    POST   /hybrid                 - Combined keyword + semantic ranking
    GET    /claims/{id}/links      - Outgoing and incoming links of a claim
    POST   /links                  - Link two claims
    DELETE /links                  - Remove links between two claims
    GET    /review                 - Claim review queue
    POST   /embeddings             - Store one embedding
    GET    /embeddings/missing     - Items lacking an embedding
    GET    /stats                  - Claim graph and embedding statistics

Usage:
    rkb-serve
    uvicorn rkb.serve:app --reload
"""

from __future__ import annotations

import argparse
import logging
import os
from pathlib import Path
from typing import Iterator

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from rkb.config import load_config
from rkb.errors import InvalidInputError
from rkb.ingest import export_for_embedding, save_embedding
from rkb.kb import KnowledgeBase
from rkb.schemas import (
    ClaimLink,
    ClaimNeighbors,
    ClaimStats,
    Embedding,
    EmbeddingStats,
    ExportItem,
    HybridResult,
    LexicalHit,
    ReviewQueue,
    SimilarityResult,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Research Knowledge Base API",
    description="Search, similarity and claim-graph API over video transcripts",
    version="0.1.0",
)


# Environment variable holding the --config path given to main()
CONFIG_ENV = "RKB_CONFIG"


def get_kb() -> Iterator[KnowledgeBase]:
    """Open a knowledge base handle for the duration of one request."""
    config_path = os.environ.get(CONFIG_ENV)
    kb = KnowledgeBase(config_path=Path(config_path) if config_path else None)
    try:
        yield kb
    finally:
        kb.close()


# Request/Response models
class SemanticRequest(BaseModel):
    vector: list[float] = Field(..., description="Query embedding")
    source_type: str | None = Field(default=None, description="Restrict to video, chunk, claim or summary")
    limit: int = Field(default=10, ge=1, le=100)


class HybridRequest(BaseModel):
    query: str = Field(..., description="Full-text query")
    vector: list[float] | None = Field(default=None, description="Optional query embedding")
    keyword_weight: float | None = Field(default=None, ge=0)
    semantic_weight: float | None = Field(default=None, ge=0)
    limit: int = Field(default=10, ge=1, le=100)


class LinkRequest(BaseModel):
    source_claim_id: int
    target_claim_id: int
    link_type: str = "related"


class EmbeddingRequest(BaseModel):
    source_type: str
    source_id: str
    vector: list[float]
    model: str | None = None


class StatsResponse(BaseModel):
    claims: ClaimStats
    embeddings: EmbeddingStats
    video_count: int


def _invalid(e: InvalidInputError) -> HTTPException:
    return HTTPException(status_code=422, detail=str(e))


# Endpoints
@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/search", response_model=list[LexicalHit])
def search(
    q: str = Query(..., description="Full-text query"),
    limit: int = Query(default=10, ge=1, le=100),
    kb: KnowledgeBase = Depends(get_kb),
):
    """Keyword search; each hit lists the transcript segments containing the query."""
    try:
        return kb.index.search(q, limit=limit)
    except InvalidInputError as e:
        raise _invalid(e)


@app.post("/semantic", response_model=list[SimilarityResult])
def semantic(request: SemanticRequest, kb: KnowledgeBase = Depends(get_kb)):
    try:
        return kb.semantic(request.vector, request.source_type, limit=request.limit)
    except InvalidInputError as e:
        raise _invalid(e)


@app.post("/hybrid", response_model=list[HybridResult])
def hybrid(request: HybridRequest, kb: KnowledgeBase = Depends(get_kb)):
    try:
        return kb.hybrid(
            request.query,
            request.vector,
            keyword_weight=request.keyword_weight,
            semantic_weight=request.semantic_weight,
            limit=request.limit,
        )
    except InvalidInputError as e:
        raise _invalid(e)


@app.get("/claims/{claim_id}/links", response_model=ClaimNeighbors)
def claim_links(claim_id: int, kb: KnowledgeBase = Depends(get_kb)):
    neighbors = kb.graph.neighbors(claim_id)
    if neighbors is None:
        raise HTTPException(status_code=404, detail=f"Claim #{claim_id} not found")
    return neighbors


@app.post("/links", response_model=ClaimLink)
def create_link(request: LinkRequest, kb: KnowledgeBase = Depends(get_kb)):
    try:
        link = kb.graph.link(request.source_claim_id, request.target_claim_id, request.link_type)
    except InvalidInputError as e:
        raise _invalid(e)
    if link is None:
        raise HTTPException(
            status_code=404,
            detail=f"Claim #{request.source_claim_id} or #{request.target_claim_id} not found",
        )
    return link


@app.delete("/links")
def delete_link(
    source_claim_id: int = Query(...),
    target_claim_id: int = Query(...),
    kb: KnowledgeBase = Depends(get_kb),
):
    if not kb.graph.unlink(source_claim_id, target_claim_id):
        raise HTTPException(
            status_code=404,
            detail=f"Link not found: #{source_claim_id} -> #{target_claim_id}",
        )
    return {"removed": True}


@app.get("/review", response_model=ReviewQueue)
def review(
    stale_days: int | None = Query(default=None, ge=0),
    random_n: int | None = Query(default=None, ge=0, le=100),
    kb: KnowledgeBase = Depends(get_kb),
):
    """Stale claims, orphan claims and a random sample; sampled claims are marked accessed."""
    return kb.review(stale_days=stale_days, random_n=random_n)


@app.post("/embeddings", response_model=Embedding)
def create_embedding(request: EmbeddingRequest, kb: KnowledgeBase = Depends(get_kb)):
    try:
        return save_embedding(
            kb.vectors,
            request.source_type,
            request.source_id,
            request.model or kb.model,
            request.vector,
        )
    except InvalidInputError as e:
        raise _invalid(e)


@app.get("/embeddings/missing", response_model=list[ExportItem])
def missing_embeddings(
    source: str = Query(default="all", description="all, video, chunk or claim"),
    kb: KnowledgeBase = Depends(get_kb),
):
    try:
        return export_for_embedding(kb.db, kb.vectors, source)
    except InvalidInputError as e:
        raise _invalid(e)


@app.get("/stats", response_model=StatsResponse)
def get_stats(kb: KnowledgeBase = Depends(get_kb)):
    return StatsResponse(
        claims=kb.graph.stats(),
        embeddings=kb.vectors.stats(),
        video_count=len(kb.db.list_videos()),
    )


def main():
    """Run the FastAPI server."""
    parser = argparse.ArgumentParser(description="Run the Research Knowledge Base API server")
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config or 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind to (default: from config or 8000)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.yaml",
    )

    args = parser.parse_args()

    if args.config is not None:
        os.environ[CONFIG_ENV] = str(args.config.resolve())
    config = load_config(args.config)
    server_config = config.get("server", {})

    host = args.host or server_config.get("host", "127.0.0.1")
    port = args.port or server_config.get("port", 8000)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    logger.info(f"Starting server at http://{host}:{port}")
    logger.info(f"API docs available at http://{host}:{port}/docs")

    uvicorn.run(
        "rkb.serve:app",
        host=host,
        port=port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
