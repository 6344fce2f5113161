"""
Embedding storage in LanceDB.

One row per (source_type, source_id, model). Vectors are stored in a
variable-length list column, so rows of different dimensions can coexist;
compatibility is judged at scoring time, not on write.

Provides:
    - put / get / delete by key
    - Bulk listing, optionally filtered by source type or model
    - Existence checks used to find items still lacking embeddings
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

import lancedb
import pandas as pd
import pyarrow as pa

from rkb.schemas import Embedding, EmbeddingSource, EmbeddingStats

logger = logging.getLogger(__name__)

TABLE_NAME = "embeddings"

EMBEDDING_SCHEMA = pa.schema(
    [
        pa.field("source_type", pa.string()),
        pa.field("source_id", pa.string()),
        pa.field("model", pa.string()),
        pa.field("values", pa.list_(pa.float64())),
        pa.field("dimensions", pa.int32()),
        pa.field("created_at", pa.string()),
    ]
)


def _quote(value: str) -> str:
    """Quote a string literal for a LanceDB filter expression."""
    return "'" + value.replace("'", "''") + "'"


class VectorStore:
    """
    Persisted embedding vectors keyed by (source type, source id, model).

    Usage:
        store = VectorStore("./data/vectordb")
        store.put(EmbeddingSource.CHUNK, "abc123:0", "all-MiniLM-L6-v2", [0.1, 0.2])
        emb = store.get(EmbeddingSource.CHUNK, "abc123:0", "all-MiniLM-L6-v2")
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self._db: lancedb.DBConnection | None = None

    @property
    def db(self) -> lancedb.DBConnection:
        """Get or create database connection."""
        if self._db is None:
            self.db_path.mkdir(parents=True, exist_ok=True)
            self._db = lancedb.connect(str(self.db_path))
        return self._db

    @property
    def table(self) -> lancedb.table.Table:
        """Open the embeddings table, creating it on first use.

        Opened on every access so each call sees the latest committed version.
        """
        if TABLE_NAME not in self.db.table_names():
            return self.db.create_table(TABLE_NAME, schema=EMBEDDING_SCHEMA)
        return self.db.open_table(TABLE_NAME)

    def _frame(self) -> pd.DataFrame:
        return self.table.to_pandas()

    def _row_to_embedding(self, row: dict) -> Embedding:
        return Embedding(
            source_type=EmbeddingSource(row["source_type"]),
            source_id=row["source_id"],
            model=row["model"],
            vector=[float(x) for x in row["values"]],
            dimensions=int(row["dimensions"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def put(
        self,
        source_type: EmbeddingSource,
        source_id: str,
        model: str,
        vector: Sequence[float],
    ) -> Embedding:
        """
        Store or replace the vector for a key.

        Callers validate the payload; this only records it.
        """
        created_at = datetime.now(timezone.utc)
        values = [float(x) for x in vector]
        record = {
            "source_type": source_type.value,
            "source_id": source_id,
            "model": model,
            "values": values,
            "dimensions": len(values),
            "created_at": created_at.isoformat(),
        }

        table = self.table
        table.delete(
            f"source_type = {_quote(source_type.value)} "
            f"AND source_id = {_quote(source_id)} "
            f"AND model = {_quote(model)}"
        )
        table.add(pa.Table.from_pylist([record], schema=EMBEDDING_SCHEMA))

        return Embedding(
            source_type=source_type,
            source_id=source_id,
            model=model,
            vector=values,
            dimensions=len(values),
            created_at=created_at,
        )

    def get(self, source_type: EmbeddingSource, source_id: str, model: str) -> Embedding | None:
        df = self._frame()
        df = df[
            (df["source_type"] == source_type.value)
            & (df["source_id"] == source_id)
            & (df["model"] == model)
        ]
        if df.empty:
            return None
        return self._row_to_embedding(df.iloc[0].to_dict())

    def list(
        self,
        source_type: EmbeddingSource | None = None,
        model: str | None = None,
    ) -> list[Embedding]:
        """
        List stored embeddings ordered by (source type, source id, model).

        Args:
            source_type: Only this kind of source (default: all)
            model: Only vectors from this model (default: all)
        """
        df = self._frame()
        if source_type is not None:
            df = df[df["source_type"] == source_type.value]
        if model is not None:
            df = df[df["model"] == model]
        df = df.sort_values(["source_type", "source_id", "model"], kind="stable")
        return [self._row_to_embedding(row.to_dict()) for _, row in df.iterrows()]

    def exists(self, source_type: EmbeddingSource, source_id: str) -> bool:
        """True if any model has a vector for this source."""
        df = self._frame()
        return bool(
            ((df["source_type"] == source_type.value) & (df["source_id"] == source_id)).any()
        )

    def existing_ids(self, source_type: EmbeddingSource) -> set[str]:
        """All source ids of one kind that have at least one vector."""
        df = self._frame()
        return set(df.loc[df["source_type"] == source_type.value, "source_id"].tolist())

    def delete(self, source_type: EmbeddingSource, source_id: str) -> bool:
        """Remove every model's vector for a source."""
        if not self.exists(source_type, source_id):
            return False
        self.table.delete(
            f"source_type = {_quote(source_type.value)} AND source_id = {_quote(source_id)}"
        )
        return True

    def count(self) -> int:
        return len(self._frame())

    def stats(self) -> EmbeddingStats:
        df = self._frame()
        if df.empty:
            return EmbeddingStats()

        by_source = {kind.value: 0 for kind in EmbeddingSource}
        by_source.update({k: int(v) for k, v in df["source_type"].value_counts().items()})
        first = df.sort_values(["source_type", "source_id", "model"], kind="stable").iloc[0]
        return EmbeddingStats(
            total=len(df),
            by_source=by_source,
            model=first["model"],
            dimensions=int(first["dimensions"]),
        )
