"""
Embedding ingestion: validate and store vectors, bulk import, and export
of items still lacking an embedding.

Vectors normally come from an external model. `embed_missing` can also
generate them locally with sentence-transformers.

Import file format (JSON array):
    [{"source_type": "chunk", "source_id": "abc123:0", "vector": [0.1, ...]}, ...]
"""

from __future__ import annotations

import json
import logging
import math
import numbers
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import ValidationError
from sentence_transformers import SentenceTransformer
from tqdm import tqdm

from rkb.errors import InvalidInputError
from rkb.schemas import Embedding, EmbeddingInput, EmbeddingSource, ExportItem
from rkb.vectors import VectorStore

if TYPE_CHECKING:
    from rkb.store import Database

logger = logging.getLogger(__name__)

EXPORT_SOURCES = ("all", "video", "chunk", "claim")


def validate_vector(vector: Any) -> list[float]:
    """Accept a non-empty sequence of finite real numbers, reject anything else."""
    if isinstance(vector, (str, bytes)) or not isinstance(vector, Sequence):
        raise InvalidInputError("Vector must be a list of numbers, e.g. [0.1, 0.2, 0.3]")
    if len(vector) == 0:
        raise InvalidInputError("Vector cannot be empty")
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise InvalidInputError(f"Vector contains a non-numeric value: {value!r}")
        if not math.isfinite(value):
            raise InvalidInputError(f"Vector contains a non-finite value: {value!r}")
    return [float(v) for v in vector]


def parse_vector(text: str) -> list[float]:
    """
    Decode a vector from its JSON form.

    Raises:
        InvalidInputError: not a JSON array of numbers, or empty
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidInputError(f"Invalid vector JSON: {e}") from e
    return validate_vector(data)


def parse_source(kind: EmbeddingSource | str) -> EmbeddingSource:
    if isinstance(kind, EmbeddingSource):
        return kind
    parsed = EmbeddingSource.parse(kind)
    if parsed is None:
        valid = ", ".join(s.value for s in EmbeddingSource)
        raise InvalidInputError(f"Invalid source type: {kind} (valid: {valid})")
    return parsed


def save_embedding(
    vectors: VectorStore,
    kind: EmbeddingSource | str,
    source_id: str,
    model: str,
    vector: Any,
) -> Embedding:
    """
    Validate and store one embedding, replacing any previous vector for the key.

    Raises:
        InvalidInputError: unknown source kind, empty id, or malformed vector
    """
    source_type = parse_source(kind)
    if not source_id:
        raise InvalidInputError("Source id cannot be empty")
    values = validate_vector(vector)
    return vectors.put(source_type, source_id, model, values)


def import_embeddings(vectors: VectorStore, path: str | Path, model: str) -> int:
    """
    Bulk-load embeddings from a JSON file.

    Rows with an unknown source type or a malformed vector are skipped with a
    warning; everything else is upserted.

    Returns:
        Number of embeddings stored
    """
    path = Path(path)
    with open(path) as f:
        try:
            rows = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidInputError(f"Invalid embeddings file {path}: {e}") from e

    if not isinstance(rows, list):
        raise InvalidInputError(f"Expected a JSON array in {path}")

    count = 0
    for i, row in enumerate(rows):
        try:
            item = EmbeddingInput.model_validate(row)
        except ValidationError as e:
            logger.warning(f"Skipping row {i}: {e.error_count()} validation error(s)")
            continue

        source_type = EmbeddingSource.parse(item.source_type)
        if source_type is None:
            logger.warning(f"Skipping invalid source_type: {item.source_type}")
            continue

        try:
            save_embedding(vectors, source_type, item.source_id, model, item.vector)
        except InvalidInputError as e:
            logger.warning(f"Skipping {item.source_type} '{item.source_id}': {e}")
            continue
        count += 1

    logger.info(f"Imported {count} embeddings from {path} (model: {model})")
    return count


def export_for_embedding(
    db: Database,
    vectors: VectorStore,
    source: str = "all",
) -> list[ExportItem]:
    """
    List videos, chunks and claims that have no embedding under any model.

    Args:
        source: "all", "video", "chunk" or "claim"

    Returns:
        Items with the text an external model should embed
    """
    if source not in EXPORT_SOURCES:
        raise InvalidInputError(f"Invalid source: {source} (valid: {', '.join(EXPORT_SOURCES)})")

    items: list[ExportItem] = []

    if source in ("all", "video"):
        have = vectors.existing_ids(EmbeddingSource.VIDEO)
        for video in db.list_videos():
            if video.id not in have:
                items.append(
                    ExportItem(
                        source_type=EmbeddingSource.VIDEO,
                        source_id=video.id,
                        text=f"{video.title}\n{video.description or ''}",
                    )
                )

    if source in ("all", "chunk"):
        have = vectors.existing_ids(EmbeddingSource.CHUNK)
        for video in db.list_videos():
            for chunk in db.get_transcript_chunks(video.id):
                source_id = chunk.ref.encode()
                if source_id not in have:
                    items.append(
                        ExportItem(source_type=EmbeddingSource.CHUNK, source_id=source_id, text=chunk.text)
                    )

    if source in ("all", "claim"):
        have = vectors.existing_ids(EmbeddingSource.CLAIM)
        for claim in db.list_all_claims():
            if str(claim.id) not in have:
                items.append(
                    ExportItem(source_type=EmbeddingSource.CLAIM, source_id=str(claim.id), text=claim.text)
                )

    logger.debug(f"{len(items)} items need embeddings")
    return items


def embed_missing(
    db: Database,
    vectors: VectorStore,
    model_name: str,
    batch_size: int = 32,
    source: str = "all",
    encoder: SentenceTransformer | None = None,
) -> int:
    """
    Generate and store embeddings for every item that lacks one.

    Args:
        model_name: Sentence transformer model; also the key vectors are stored under
        batch_size: Embedding batch size
        source: Restrict to one kind ("all", "video", "chunk", "claim")
        encoder: Pre-loaded model (default: load `model_name`)

    Returns:
        Number of embeddings stored
    """
    items = export_for_embedding(db, vectors, source)
    if not items:
        logger.info("All items already have embeddings")
        return 0

    if encoder is None:
        logger.info(f"Loading embedding model: {model_name}")
        encoder = SentenceTransformer(model_name)

    texts = [item.text for item in items]

    logger.info(f"Generating embeddings for {len(items)} items...")
    embeddings: list[list[float]] = []
    for i in tqdm(range(0, len(texts), batch_size), desc="Embedding"):
        batch_texts = texts[i : i + batch_size]
        batch_embeddings = encoder.encode(batch_texts, show_progress_bar=False)
        embeddings.extend(batch_embeddings.tolist())

    for item, vector in zip(items, embeddings):
        vectors.put(item.source_type, item.source_id, model_name, vector)

    logger.info(f"Stored {len(embeddings)} embeddings (model: {model_name})")
    return len(embeddings)
