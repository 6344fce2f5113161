"""
Command line interface for the research knowledge base.

Usage:
    rkb search "bronze age collapse"
    rkb chunk all --tokens 2000 --overlap 15
    rkb import-embeddings vectors.json
    rkb hybrid "fall of rome" --vector "[0.1, 0.2, ...]" --kw 0.3 --sem 0.7
    rkb link 12 34 --type supports
    rkb review
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from rkb.errors import KnowledgeBaseError, NotFoundError
from rkb.ingest import export_for_embedding, import_embeddings, parse_vector, save_embedding
from rkb.kb import KnowledgeBase
from rkb.schemas import Claim, SimilarityResult

logger = logging.getLogger(__name__)

LIST_PREVIEW = 20
QUEUE_PREVIEW = 5


def _preview(text: str, width: int) -> str:
    text = text.replace("\n", " ")
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


def _print_claims(claims: list[Claim], limit: int, kb: KnowledgeBase | None = None) -> None:
    for claim in claims[:limit]:
        if kb is not None:
            print(f"  [{claim.id}] ({kb.graph.link_count(claim.id)} links) {_preview(claim.text, 50)}")
        else:
            print(f"  [{claim.id}] {_preview(claim.text, 50)}")
    if len(claims) > limit:
        print(f"  ... and {len(claims) - limit} more")


def _print_similarity(results: list[SimilarityResult]) -> None:
    print(f"{'SCORE':<8} {'TYPE':<10} {'ID':<15} TEXT")
    print("-" * 80)
    for r in results:
        print(f"{r.score:<8.4f} {r.source_type.value:<10} {_preview(r.source_id, 13):<15} {_preview(r.text, 40)}")


# ============================================================
# Commands
# ============================================================


def cmd_rebuild_index(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    count = kb.index.rebuild()
    print(f"Rebuilt search index for {count} videos.")


def cmd_search(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    hits = kb.index.search(args.query, limit=kb.default_limit if args.limit is None else args.limit)
    if not hits:
        print(f"No results found for: {args.query}")
        return

    for hit in hits:
        print(f"{hit.relevance:8.3f}  {hit.video.id:<12} {hit.video.title}")
        for match in hit.matches[:3]:
            minutes, seconds = divmod(int(match.start_time), 60)
            print(f"          [{minutes:02d}:{seconds:02d}] {_preview(match.text, 60)}")
        if len(hit.matches) > 3:
            print(f"          ... {len(hit.matches) - 3} more matches")


def cmd_chunk(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    counts = kb.chunk(args.video_id, target_tokens=args.tokens, overlap_percent=args.overlap)
    for video_id, count in counts.items():
        print(f"  {video_id}: {count} chunks")
    print(f"Created {sum(counts.values())} chunks.")


def cmd_embed(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    model = args.model or kb.model
    emb = save_embedding(kb.vectors, args.source, args.source_id, model, parse_vector(args.vector))
    print(
        f"Saved embedding for {emb.source_type.value} '{emb.source_id}' "
        f"({emb.dimensions} dimensions, model: {model})"
    )


def cmd_import_embeddings(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    model = args.model or kb.model
    count = import_embeddings(kb.vectors, args.file, model)
    print(f"Imported {count} embeddings from {args.file} (model: {model})")


def cmd_export_for_embedding(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    items = export_for_embedding(kb.db, kb.vectors, args.source)
    payload = json.dumps([item.model_dump(mode="json") for item in items], indent=2)
    if args.output:
        args.output.write_text(payload)
        print(f"Exported {len(items)} items to {args.output} for embedding")
    else:
        print(payload)


def cmd_embed_missing(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    count = kb.embed_missing(source=args.source)
    print(f"Stored {count} embeddings (model: {kb.model})")


def cmd_semantic(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    results = kb.semantic(parse_vector(args.vector), args.source, limit=args.limit)
    if not results:
        print("No results found. Make sure embeddings exist in the database.")
        return
    _print_similarity(results)


def cmd_similar(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    results = kb.similar(args.source, args.source_id, limit=args.limit)
    if results is None:
        raise NotFoundError(
            f"No embedding found for {args.source} '{args.source_id}'. "
            "Use 'embed' or 'import-embeddings' to add embeddings first."
        )
    if not results:
        print("No similar items found.")
        return
    _print_similarity(results)


def cmd_hybrid(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    vector = parse_vector(args.vector) if args.vector else None
    results = kb.hybrid(args.query, vector, args.kw, args.sem, limit=args.limit)
    if not results:
        print(f"No results found for: {args.query}")
        return

    print(f"{'SCORE':<8} {'KW':<6} {'SEM':<6} {'ID':<12} TITLE")
    print("-" * 80)
    for r in results:
        print(
            f"{r.combined_score:<8.3f} {r.keyword_score:<6.3f} {r.semantic_score:<6.3f} "
            f"{r.video.id:<12} {_preview(r.video.title, 35)}"
        )
        if r.matching_chunks:
            print(f"  Matching chunks: {len(r.matching_chunks)}")
        if r.matching_claims:
            print(f"  Matching claims: {len(r.matching_claims)}")


def cmd_link(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    link = kb.graph.link(args.source, args.target, args.type)
    if link is None:
        missing = args.source if kb.db.get_claim(args.source) is None else args.target
        raise NotFoundError(f"Claim #{missing} not found")
    print(f"Linked claim #{link.source_claim_id} -> #{link.target_claim_id} ({link.link_type.value})")


def cmd_unlink(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    if kb.graph.unlink(args.source, args.target):
        print(f"Removed link: #{args.source} -> #{args.target}")
    else:
        print(f"Link not found: #{args.source} -> #{args.target}")


def cmd_links(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    neighbors = kb.graph.neighbors(args.claim_id)
    if neighbors is None:
        raise NotFoundError(f"Claim #{args.claim_id} not found")

    print(f"Claim #{neighbors.claim.id}: {_preview(neighbors.claim.text, 70)}\n")
    print(f"Outgoing ({len(neighbors.outgoing)}):")
    for item in neighbors.outgoing:
        print(f"  --{item.link.link_type.value}--> [{item.claim.id}] {_preview(item.claim.text, 50)}")
    print(f"\nIncoming ({len(neighbors.incoming)}):")
    for item in neighbors.incoming:
        print(f"  <--{item.link.link_type.value}-- [{item.claim.id}] {_preview(item.claim.text, 50)}")


def cmd_orphans(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    orphans = kb.graph.orphans()
    if not orphans:
        print("All claims have at least 2 connections.")
        return
    print(f"Orphan Claims (fewer than 2 connections): {len(orphans)}\n")
    _print_claims(orphans, LIST_PREVIEW, kb)


def cmd_review(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    days = kb.config["review"]["stale_days"] if args.days is None else args.days

    if args.stale:
        stale = kb.graph.stale(days)
        if not stale:
            print(f"No stale claims (all accessed within {days} days).")
            return
        print(f"Stale Claims (not accessed in {days}+ days): {len(stale)}\n")
        _print_claims(stale, LIST_PREVIEW)
        return

    if args.orphans:
        cmd_orphans(kb, args)
        return

    queue = kb.review(stale_days=days, random_n=args.random)
    print("Review Queue:\n")
    print(f"Stale Claims ({days}+ days): {len(queue.stale)}")
    _print_claims(queue.stale, QUEUE_PREVIEW)
    print(f"\nOrphan Claims (<2 links): {len(queue.orphans)}")
    _print_claims(queue.orphans, QUEUE_PREVIEW)
    if queue.random_sample:
        print("\nRandom Suggestions (for serendipitous review):")
        _print_claims(queue.random_sample, len(queue.random_sample))


def cmd_embed_stats(kb: KnowledgeBase, args: argparse.Namespace) -> None:
    stats = kb.vectors.stats()
    print("Embedding Statistics:\n")
    print(f"{'Total Embeddings':<25} {stats.total:>10}")
    for kind, count in stats.by_source.items():
        print(f"{kind.capitalize() + ' Embeddings':<25} {count:>10}")
    if stats.model:
        print(f"\nModel: {stats.model}")
    if stats.dimensions:
        print(f"Dimensions: {stats.dimensions}")

    missing = export_for_embedding(kb.db, kb.vectors)
    if missing:
        print("\nItems needing embeddings:")
        for kind in ("video", "chunk", "claim"):
            count = sum(1 for item in missing if item.source_type.value == kind)
            if count:
                print(f"  {kind.capitalize()}s: {count}")
        print("\nUse 'export-for-embedding' to export text for external embedding.")


COMMANDS = {
    "rebuild-index": cmd_rebuild_index,
    "search": cmd_search,
    "chunk": cmd_chunk,
    "embed": cmd_embed,
    "import-embeddings": cmd_import_embeddings,
    "export-for-embedding": cmd_export_for_embedding,
    "embed-missing": cmd_embed_missing,
    "semantic": cmd_semantic,
    "similar": cmd_similar,
    "hybrid": cmd_hybrid,
    "link": cmd_link,
    "unlink": cmd_unlink,
    "links": cmd_links,
    "orphans": cmd_orphans,
    "review": cmd_review,
    "embed-stats": cmd_embed_stats,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Search and maintain the research knowledge base"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database (default: from config)")
    parser.add_argument(
        "--vector-db", type=Path, default=None, help="LanceDB directory (default: from config)"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("rebuild-index", help="Rebuild the full-text search index")

    search_parser = subparsers.add_parser("search", help="Keyword search over videos")
    search_parser.add_argument("query", help="Full-text query")
    search_parser.add_argument("--limit", "-n", type=int, default=None, help="Maximum results")

    chunk_parser = subparsers.add_parser("chunk", help="Split transcripts into chunks")
    chunk_parser.add_argument("video_id", help="Video ID, or 'all'")
    chunk_parser.add_argument("--tokens", type=int, default=None, help="Target tokens per chunk")
    chunk_parser.add_argument("--overlap", type=int, default=None, help="Overlap percentage")

    embed_parser = subparsers.add_parser("embed", help="Store one embedding")
    embed_parser.add_argument("source", help="video, chunk, claim or summary")
    embed_parser.add_argument("source_id", help="Source ID (chunks: <video_id>:<index>)")
    embed_parser.add_argument("vector", help="JSON array, e.g. '[0.1, 0.2, 0.3]'")
    embed_parser.add_argument("--model", type=str, default=None, help="Model name (default: from config)")

    import_parser = subparsers.add_parser("import-embeddings", help="Bulk import embeddings from JSON")
    import_parser.add_argument("file", type=Path, help="JSON array of {source_type, source_id, vector}")
    import_parser.add_argument("--model", type=str, default=None, help="Model name (default: from config)")

    export_parser = subparsers.add_parser(
        "export-for-embedding", help="Export items lacking embeddings as JSON"
    )
    export_parser.add_argument("--output", "-o", type=Path, default=None, help="Output file (default: stdout)")
    export_parser.add_argument(
        "--source", choices=["all", "video", "chunk", "claim"], default="all", help="Kind of items"
    )

    missing_parser = subparsers.add_parser(
        "embed-missing", help="Generate missing embeddings with the local model"
    )
    missing_parser.add_argument(
        "--source", choices=["all", "video", "chunk", "claim"], default="all", help="Kind of items"
    )

    semantic_parser = subparsers.add_parser("semantic", help="Similarity search with a query vector")
    semantic_parser.add_argument("vector", help="Query vector as a JSON array")
    semantic_parser.add_argument("--source", type=str, default=None, help="Restrict to one kind")
    semantic_parser.add_argument("--limit", "-n", type=int, default=None, help="Maximum results")

    similar_parser = subparsers.add_parser("similar", help="Items similar to a stored item")
    similar_parser.add_argument("source", help="video, chunk, claim or summary")
    similar_parser.add_argument("source_id", help="Source ID")
    similar_parser.add_argument("--limit", "-n", type=int, default=None, help="Maximum results")

    hybrid_parser = subparsers.add_parser("hybrid", help="Combined keyword + semantic search")
    hybrid_parser.add_argument("query", help="Full-text query")
    hybrid_parser.add_argument("--vector", type=str, default=None, help="Query vector as a JSON array")
    hybrid_parser.add_argument("--kw", type=float, default=None, help="Keyword weight")
    hybrid_parser.add_argument("--sem", type=float, default=None, help="Semantic weight")
    hybrid_parser.add_argument("--limit", "-n", type=int, default=None, help="Maximum results")

    link_parser = subparsers.add_parser("link", help="Link two claims")
    link_parser.add_argument("source", type=int, help="Source claim ID")
    link_parser.add_argument("target", type=int, help="Target claim ID")
    link_parser.add_argument(
        "--type", "-t", type=str, default="related",
        help="supports, contradicts, elaborates, caused_by, causes, related",
    )

    unlink_parser = subparsers.add_parser("unlink", help="Remove links between two claims")
    unlink_parser.add_argument("source", type=int, help="Source claim ID")
    unlink_parser.add_argument("target", type=int, help="Target claim ID")

    links_parser = subparsers.add_parser("links", help="Show a claim's links")
    links_parser.add_argument("claim_id", type=int, help="Claim ID")

    subparsers.add_parser("orphans", help="Claims with fewer than 2 links")

    review_parser = subparsers.add_parser("review", help="Show the claim review queue")
    review_parser.add_argument("--stale", action="store_true", help="Only stale claims")
    review_parser.add_argument("--orphans", action="store_true", help="Only orphan claims")
    review_parser.add_argument("--random", type=int, default=None, help="Random suggestions to include")
    review_parser.add_argument("--days", type=int, default=None, help="Staleness window in days")

    subparsers.add_parser("embed-stats", help="Embedding statistics")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        with KnowledgeBase(db_path=args.db, vector_db_path=args.vector_db, config_path=args.config) as kb:
            COMMANDS[args.command](kb, args)
    except KnowledgeBaseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
