"""
SQLite storage for videos, transcripts, claims, chunks and summary layers.

The full-text projection (search_index) is maintained by LexicalIndex and
refreshed on every video or transcript write. Claim links and access rows
are owned by ClaimGraph but live in this database so that deleting a claim
cascades to them.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Sequence

from rkb.errors import NotFoundError
from rkb.lexical import LexicalIndex
from rkb.schemas import (
    Claim,
    ClaimCategory,
    Confidence,
    Transcript,
    TranscriptChunk,
    TranscriptLayer,
    TranscriptSegment,
    Video,
)

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS videos (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL DEFAULT '',
    title TEXT NOT NULL,
    channel TEXT,
    upload_date TEXT,
    description TEXT,
    added_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS transcripts (
    id INTEGER PRIMARY KEY,
    video_id TEXT NOT NULL UNIQUE REFERENCES videos(id),
    language TEXT NOT NULL,
    full_text TEXT NOT NULL,
    segments_json TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS claims (
    id INTEGER PRIMARY KEY,
    text TEXT NOT NULL,
    video_id TEXT NOT NULL REFERENCES videos(id),
    timestamp REAL,
    source_quote TEXT NOT NULL,
    category TEXT NOT NULL,
    confidence TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_claims_video ON claims(video_id);
CREATE INDEX IF NOT EXISTS idx_claims_category ON claims(category);

CREATE TABLE IF NOT EXISTS claim_links (
    id INTEGER PRIMARY KEY,
    source_claim_id INTEGER NOT NULL REFERENCES claims(id) ON DELETE CASCADE,
    target_claim_id INTEGER NOT NULL REFERENCES claims(id) ON DELETE CASCADE,
    link_type TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(source_claim_id, target_claim_id, link_type)
);

CREATE INDEX IF NOT EXISTS idx_claim_links_source ON claim_links(source_claim_id);
CREATE INDEX IF NOT EXISTS idx_claim_links_target ON claim_links(target_claim_id);

CREATE TABLE IF NOT EXISTS claim_access (
    claim_id INTEGER PRIMARY KEY REFERENCES claims(id) ON DELETE CASCADE,
    last_accessed TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS transcript_chunks (
    id INTEGER PRIMARY KEY,
    video_id TEXT NOT NULL REFERENCES videos(id),
    chunk_index INTEGER NOT NULL,
    start_time REAL NOT NULL,
    end_time REAL NOT NULL,
    text TEXT NOT NULL,
    token_count INTEGER NOT NULL,
    overlap_with_previous INTEGER NOT NULL DEFAULT 0,
    UNIQUE(video_id, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_transcript_chunks_video ON transcript_chunks(video_id);

CREATE TABLE IF NOT EXISTS transcript_layers (
    id INTEGER PRIMARY KEY,
    video_id TEXT NOT NULL REFERENCES videos(id),
    layer INTEGER NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(video_id, layer)
);
"""

CLAIM_COLUMNS = "id, text, video_id, timestamp, source_quote, category, confidence, created_at"


def to_timestamp(dt: datetime) -> str:
    """Render a datetime as fixed-width UTC ISO-8601 so stored values sort lexically."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def claim_from_row(row: sqlite3.Row) -> Claim:
    """Convert a claims row to a Claim, tolerating unknown vocabulary strings."""
    return Claim(
        id=row["id"],
        text=row["text"],
        video_id=row["video_id"],
        timestamp=row["timestamp"],
        source_quote=row["source_quote"],
        category=ClaimCategory.parse(row["category"]) or ClaimCategory.FACTUAL,
        confidence=Confidence.parse(row["confidence"]) or Confidence.MEDIUM,
        created_at=from_timestamp(row["created_at"]),
    )


class Database:
    """
    SQLite-backed store for the research knowledge base.

    Usage:
        db = Database("./data/research.db")
        db.insert_video(Video(id="abc", title="The Bronze Age Collapse"))
        hits = db.index.search("collapse")
    """

    def __init__(self, db_path: str | Path = ":memory:"):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        # Request handlers may open the handle and use it on different worker threads
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")

        self.index = LexicalIndex(self)
        self._init_schema()

    def _init_schema(self) -> None:
        with self.conn:
            self.conn.executescript(SCHEMA)
        self.index.ensure_table()

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------
    # Videos and transcripts
    # ------------------------------------------------------------

    def insert_video(self, video: Video) -> None:
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO videos (id, url, title, channel, upload_date, description, added_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    url = excluded.url,
                    title = excluded.title,
                    channel = excluded.channel,
                    upload_date = excluded.upload_date,
                    description = excluded.description,
                    added_at = excluded.added_at
                """,
                (
                    video.id,
                    video.url,
                    video.title,
                    video.channel,
                    video.upload_date.isoformat() if video.upload_date else None,
                    video.description,
                    to_timestamp(video.added_at),
                ),
            )
        self.index.upsert(video.id)

    def insert_transcript(self, transcript: Transcript) -> None:
        segments_json = json.dumps([s.model_dump() for s in transcript.segments])
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO transcripts (video_id, language, full_text, segments_json)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(video_id) DO UPDATE SET
                    language = excluded.language,
                    full_text = excluded.full_text,
                    segments_json = excluded.segments_json
                """,
                (transcript.video_id, transcript.language, transcript.full_text, segments_json),
            )
        self.index.upsert(transcript.video_id)

    def get_video(self, video_id: str) -> Video | None:
        row = self.conn.execute("SELECT * FROM videos WHERE id = ?", (video_id,)).fetchone()
        return self.row_to_video(row) if row else None

    def get_transcript(self, video_id: str) -> Transcript | None:
        row = self.conn.execute(
            "SELECT * FROM transcripts WHERE video_id = ?", (video_id,)
        ).fetchone()
        if row is None:
            return None
        return Transcript(
            video_id=row["video_id"],
            language=row["language"],
            full_text=row["full_text"],
            segments=[TranscriptSegment(**s) for s in json.loads(row["segments_json"])],
        )

    def list_videos(self) -> list[Video]:
        rows = self.conn.execute("SELECT * FROM videos ORDER BY added_at DESC, id").fetchall()
        return [self.row_to_video(row) for row in rows]

    def delete_video(self, video_id: str) -> bool:
        """Delete a video together with everything derived from it."""
        with self.conn:
            self.conn.execute("DELETE FROM search_index WHERE video_id = ?", (video_id,))
            self.conn.execute("DELETE FROM transcript_chunks WHERE video_id = ?", (video_id,))
            self.conn.execute("DELETE FROM transcript_layers WHERE video_id = ?", (video_id,))
            self.conn.execute("DELETE FROM transcripts WHERE video_id = ?", (video_id,))
            self.conn.execute("DELETE FROM claims WHERE video_id = ?", (video_id,))
            cursor = self.conn.execute("DELETE FROM videos WHERE id = ?", (video_id,))
        return cursor.rowcount > 0

    def row_to_video(self, row: sqlite3.Row) -> Video:
        return Video(
            id=row["id"],
            url=row["url"],
            title=row["title"],
            channel=row["channel"],
            upload_date=date.fromisoformat(row["upload_date"]) if row["upload_date"] else None,
            description=row["description"],
            added_at=from_timestamp(row["added_at"]),
        )

    # ------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------

    def create_claim(
        self,
        video_id: str,
        text: str,
        source_quote: str = "",
        category: ClaimCategory = ClaimCategory.FACTUAL,
        confidence: Confidence = Confidence.MEDIUM,
        timestamp: float | None = None,
        created_at: datetime | None = None,
    ) -> Claim:
        created_at = created_at or utcnow()
        with self.conn:
            cursor = self.conn.execute(
                """
                INSERT INTO claims (text, video_id, timestamp, source_quote, category, confidence, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    text,
                    video_id,
                    timestamp,
                    source_quote,
                    category.value,
                    confidence.value,
                    to_timestamp(created_at),
                ),
            )
        return Claim(
            id=cursor.lastrowid,
            text=text,
            video_id=video_id,
            timestamp=timestamp,
            source_quote=source_quote,
            category=category,
            confidence=confidence,
            created_at=from_timestamp(to_timestamp(created_at)),
        )

    def get_claim(self, claim_id: int) -> Claim | None:
        row = self.conn.execute(
            f"SELECT {CLAIM_COLUMNS} FROM claims WHERE id = ?", (claim_id,)
        ).fetchone()
        return claim_from_row(row) if row else None

    def list_claims_for_video(self, video_id: str) -> list[Claim]:
        rows = self.conn.execute(
            f"""
            SELECT {CLAIM_COLUMNS} FROM claims WHERE video_id = ?
            ORDER BY timestamp IS NULL, timestamp, created_at, id
            """,
            (video_id,),
        ).fetchall()
        return [claim_from_row(row) for row in rows]

    def list_claims_by_category(self, category: ClaimCategory) -> list[Claim]:
        rows = self.conn.execute(
            f"SELECT {CLAIM_COLUMNS} FROM claims WHERE category = ? ORDER BY created_at DESC, id DESC",
            (category.value,),
        ).fetchall()
        return [claim_from_row(row) for row in rows]

    def list_all_claims(self) -> list[Claim]:
        rows = self.conn.execute(
            f"SELECT {CLAIM_COLUMNS} FROM claims ORDER BY created_at DESC, id DESC"
        ).fetchall()
        return [claim_from_row(row) for row in rows]

    def update_claim(
        self,
        claim_id: int,
        text: str | None = None,
        category: ClaimCategory | None = None,
        confidence: Confidence | None = None,
    ) -> bool:
        """
        Edit a claim's text, category or confidence.

        Returns:
            True if a row was changed, False if nothing was given or the claim is missing
        """
        updates: list[str] = []
        params: list[object] = []
        if text is not None:
            updates.append("text = ?")
            params.append(text)
        if category is not None:
            updates.append("category = ?")
            params.append(category.value)
        if confidence is not None:
            updates.append("confidence = ?")
            params.append(confidence.value)

        if not updates:
            return False

        params.append(claim_id)
        with self.conn:
            cursor = self.conn.execute(
                f"UPDATE claims SET {', '.join(updates)} WHERE id = ?", params
            )
        return cursor.rowcount > 0

    def delete_claim(self, claim_id: int) -> bool:
        """Delete a claim; links and access rows go with it via ON DELETE CASCADE."""
        with self.conn:
            cursor = self.conn.execute("DELETE FROM claims WHERE id = ?", (claim_id,))
        return cursor.rowcount > 0

    # ------------------------------------------------------------
    # Transcript chunks
    # ------------------------------------------------------------

    def save_transcript_chunks(self, video_id: str, chunks: Sequence[TranscriptChunk]) -> None:
        """Replace the chunk set of a video in a single transaction."""
        logger.debug(f"Saving {len(chunks)} chunks for {video_id}")
        if self.get_video(video_id) is None:
            raise NotFoundError(f"Video not found: {video_id}")

        with self.conn:
            self.conn.execute("DELETE FROM transcript_chunks WHERE video_id = ?", (video_id,))
            self.conn.executemany(
                """
                INSERT INTO transcript_chunks
                    (video_id, chunk_index, start_time, end_time, text, token_count, overlap_with_previous)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        video_id,
                        chunk.chunk_index,
                        chunk.start_time,
                        chunk.end_time,
                        chunk.text,
                        chunk.token_count,
                        int(chunk.overlap_with_previous),
                    )
                    for chunk in chunks
                ],
            )

    def get_transcript_chunks(self, video_id: str) -> list[TranscriptChunk]:
        rows = self.conn.execute(
            "SELECT * FROM transcript_chunks WHERE video_id = ? ORDER BY chunk_index",
            (video_id,),
        ).fetchall()
        return [
            TranscriptChunk(
                id=row["id"],
                video_id=row["video_id"],
                chunk_index=row["chunk_index"],
                start_time=row["start_time"],
                end_time=row["end_time"],
                text=row["text"],
                token_count=row["token_count"],
                overlap_with_previous=bool(row["overlap_with_previous"]),
            )
            for row in rows
        ]

    def has_chunks(self, video_id: str) -> bool:
        row = self.conn.execute(
            "SELECT COUNT(*) FROM transcript_chunks WHERE video_id = ?", (video_id,)
        ).fetchone()
        return row[0] > 0

    # ------------------------------------------------------------
    # Summary layers
    # ------------------------------------------------------------

    def save_transcript_layer(self, video_id: str, layer: int, content: str) -> TranscriptLayer:
        created_at = utcnow()
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO transcript_layers (video_id, layer, content, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(video_id, layer) DO UPDATE SET
                    content = excluded.content,
                    created_at = excluded.created_at
                """,
                (video_id, layer, content, to_timestamp(created_at)),
            )
        return self.get_transcript_layer(video_id, layer)

    def get_transcript_layer(self, video_id: str, layer: int) -> TranscriptLayer | None:
        row = self.conn.execute(
            "SELECT * FROM transcript_layers WHERE video_id = ? AND layer = ?",
            (video_id, layer),
        ).fetchone()
        return self._row_to_layer(row) if row else None

    def list_transcript_layers(self, video_id: str) -> list[TranscriptLayer]:
        rows = self.conn.execute(
            "SELECT * FROM transcript_layers WHERE video_id = ? ORDER BY layer", (video_id,)
        ).fetchall()
        return [self._row_to_layer(row) for row in rows]

    def _row_to_layer(self, row: sqlite3.Row) -> TranscriptLayer:
        return TranscriptLayer(
            id=row["id"],
            video_id=row["video_id"],
            layer=row["layer"],
            content=row["content"],
            created_at=from_timestamp(row["created_at"]),
        )
