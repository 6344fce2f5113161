"""
Full-text index over video title, description and transcript.

Backed by an SQLite FTS5 table ranked with field-weighted BM25
(title 10x, description 5x, transcript 1x). FTS5 reports bm25() as a
negative number where lower is better; it is negated here so that the
exposed relevance is "higher is better".

Segment matches are computed independently of the ranking: every
transcript segment containing the raw query (case-insensitive) is
returned with its timestamp.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import TYPE_CHECKING

from rkb.errors import InvalidInputError
from rkb.schemas import LexicalHit, SegmentMatch, TranscriptSegment, Video

if TYPE_CHECKING:
    from rkb.store import Database

logger = logging.getLogger(__name__)

# Column weights in table order: video_id, title, description, transcript
BM25_WEIGHTS = (0.0, 10.0, 5.0, 1.0)


def find_segment_matches(segments: list[TranscriptSegment], query: str) -> list[SegmentMatch]:
    """Return every segment whose text contains the query, case-insensitively."""
    needle = query.lower()
    return [
        SegmentMatch(start_time=seg.start_time, duration=seg.duration, text=seg.text)
        for seg in segments
        if needle in seg.text.lower()
    ]


class LexicalIndex:
    """
    Denormalized per-video search records kept in sync with video/transcript writes.

    Usage:
        index = LexicalIndex(db)
        index.upsert("abc123")
        hits = index.search("bronze age", limit=10)
    """

    def __init__(self, db: Database):
        self.db = db

    def ensure_table(self) -> None:
        """Create the FTS5 projection if it does not exist yet."""
        exists = self.db.conn.execute(
            "SELECT COUNT(*) FROM sqlite_master WHERE type = 'table' AND name = 'search_index'"
        ).fetchone()[0]
        if exists:
            return

        with self.db.conn:
            self.db.conn.execute(
                """
                CREATE VIRTUAL TABLE search_index USING fts5(
                    video_id UNINDEXED,
                    title,
                    description,
                    transcript,
                    tokenize='porter'
                )
                """
            )

    def _record_for(self, video: Video) -> tuple[str, str, str, str]:
        transcript = self.db.get_transcript(video.id)
        return (
            video.id,
            video.title,
            video.description or "",
            transcript.full_text if transcript else "",
        )

    def upsert(self, video_id: str) -> bool:
        """
        Re-derive the indexed record for one video.

        Returns:
            False if the video does not exist (any stale record is dropped)
        """
        video = self.db.get_video(video_id)
        with self.db.conn:
            self.db.conn.execute("DELETE FROM search_index WHERE video_id = ?", (video_id,))
            if video is None:
                return False
            self.db.conn.execute(
                "INSERT INTO search_index (video_id, title, description, transcript) VALUES (?, ?, ?, ?)",
                self._record_for(video),
            )
        return True

    def rebuild(self) -> int:
        """
        Re-derive every record from the current videos and transcripts.

        Returns:
            Number of videos indexed
        """
        videos = self.db.list_videos()
        with self.db.conn:
            self.db.conn.execute("DELETE FROM search_index")
            self.db.conn.executemany(
                "INSERT INTO search_index (video_id, title, description, transcript) VALUES (?, ?, ?, ?)",
                [self._record_for(video) for video in videos],
            )
        logger.info(f"Rebuilt search index for {len(videos)} videos")
        return len(videos)

    def search(self, query: str, limit: int | None = None) -> list[LexicalHit]:
        """
        Rank videos against a full-text query.

        Args:
            query: FTS5 query string; also used verbatim for segment matching
            limit: Maximum number of hits (default: all)

        Returns:
            Hits ordered best first, each with its timestamped segment matches
        """
        if not query.strip():
            return []

        weights = ", ".join(str(w) for w in BM25_WEIGHTS)
        sql = f"""
            SELECT v.*, t.segments_json AS segments_json,
                   bm25(search_index, {weights}) AS score
            FROM search_index
            JOIN videos v ON v.id = search_index.video_id
            LEFT JOIN transcripts t ON t.video_id = v.id
            WHERE search_index MATCH ?
            ORDER BY score, v.id
            LIMIT ?
        """
        try:
            rows = self.db.conn.execute(sql, (query, -1 if limit is None else limit)).fetchall()
        except sqlite3.OperationalError as e:
            message = str(e)
            if message.startswith("fts5:") or message.startswith("no such column"):
                raise InvalidInputError(f"Invalid search query {query!r}: {message}") from e
            raise

        hits = []
        for row in rows:
            matches: list[SegmentMatch] = []
            if row["segments_json"]:
                segments = [TranscriptSegment(**s) for s in json.loads(row["segments_json"])]
                matches = find_segment_matches(segments, query)
            hits.append(
                LexicalHit(
                    video=self.db.row_to_video(row),
                    relevance=-row["score"],
                    matches=matches,
                )
            )
        return hits
