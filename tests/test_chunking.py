"""Tests for rkb/chunking.py transcript chunk building."""

import pytest

from rkb.chunking import build_chunks, chunk_all, chunk_video
from rkb.errors import NotFoundError
from rkb.schemas import TranscriptSegment


def _segs(*texts, duration=2.0):
    return [
        TranscriptSegment(start_time=i * duration, duration=duration, text=text)
        for i, text in enumerate(texts)
    ]


class TestBuildChunks:
    def test_empty(self):
        assert build_chunks("v", []) == []

    def test_single_short_chunk(self):
        chunks = build_chunks("v", _segs("hello", "world"))
        assert len(chunks) == 1
        assert chunks[0].text == "hello world"
        assert chunks[0].chunk_index == 0
        assert chunks[0].start_time == 0.0
        assert chunks[0].end_time == 4.0
        assert chunks[0].overlap_with_previous is False

    def test_splits_at_target(self):
        # 5 tokens -> 20 chars; 50% overlap -> last 10 chars carried
        chunks = build_chunks("v", _segs("a" * 10, "b" * 10, "c" * 10, "dd"), target_tokens=5, overlap_percent=50)

        assert [c.chunk_index for c in chunks] == [0, 1, 2]
        assert chunks[0].text == "a" * 10 + " " + "b" * 10
        assert chunks[0].token_count == 22 // 4
        assert (chunks[0].start_time, chunks[0].end_time) == (0.0, 4.0)

        assert chunks[1].text.startswith("b" * 9)
        assert chunks[1].text.endswith("c" * 10)
        assert chunks[1].start_time == 4.0
        assert chunks[1].end_time == 6.0

        assert chunks[2].text.endswith("dd")
        assert [c.overlap_with_previous for c in chunks] == [False, True, True]

    def test_no_overlap(self):
        chunks = build_chunks("v", _segs("a" * 20, "b" * 20), target_tokens=5, overlap_percent=0)
        assert [c.text for c in chunks] == ["a" * 20, "b" * 20]

    def test_no_trailing_chunk_after_exact_boundary(self):
        chunks = build_chunks("v", _segs("a" * 20, "b" * 20), target_tokens=5, overlap_percent=50)
        assert len(chunks) == 2

    def test_video_id_propagated(self):
        chunks = build_chunks("abc", _segs("a" * 30, "b" * 30), target_tokens=5)
        assert {c.video_id for c in chunks} == {"abc"}
        assert [c.ref.encode() for c in chunks] == ["abc:0", "abc:1"]


class TestChunkVideo:
    def test_stores_chunks(self, db, corpus):
        count = chunk_video(db, "v1", target_tokens=10, overlap_percent=15)
        stored = db.get_transcript_chunks("v1")

        assert count == len(stored) > 1
        assert [c.chunk_index for c in stored] == list(range(count))
        assert db.has_chunks("v1")

    def test_rechunk_replaces(self, db, corpus):
        chunk_video(db, "v1", target_tokens=5)
        count = chunk_video(db, "v1", target_tokens=2000)

        assert count == 1
        assert len(db.get_transcript_chunks("v1")) == 1

    def test_no_transcript(self, db, corpus):
        assert chunk_video(db, "v5") == 0
        assert not db.has_chunks("v5")

    def test_missing_video(self, db):
        with pytest.raises(NotFoundError):
            chunk_video(db, "ghost")

    def test_chunk_all(self, db, corpus):
        counts = chunk_all(db)
        assert set(counts) == {"v1", "v2", "v3", "v4"}
        assert all(count == 1 for count in counts.values())
