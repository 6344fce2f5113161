"""Tests for rkb/store.py SQLite storage."""

from datetime import date, timedelta

import pytest

from rkb.errors import NotFoundError
from rkb.schemas import ClaimCategory, Confidence, TranscriptChunk, Video
from rkb.store import Database, utcnow


class TestVideos:
    def test_roundtrip(self, db, corpus):
        video = db.get_video("v1")
        assert video.title == "The Bronze Age Collapse"
        assert video.upload_date == date(2021, 3, 1)
        assert db.get_video("nope") is None

    def test_transcript(self, db, corpus):
        transcript = db.get_transcript("v1")
        assert len(transcript.segments) == 3
        assert transcript.full_text.startswith("Around 1200 BC")
        assert db.get_transcript("v5") is None

    def test_list_newest_first(self, db):
        now = utcnow()
        db.insert_video(Video(id="old", title="Old", added_at=now - timedelta(days=2)))
        db.insert_video(Video(id="new", title="New", added_at=now))
        assert [v.id for v in db.list_videos()] == ["new", "old"]

    def test_update_keeps_claims(self, db, corpus):
        claim = db.create_claim("v1", "Drought preceded the collapse")
        db.insert_video(Video(id="v1", title="Renamed"))
        assert db.get_video("v1").title == "Renamed"
        assert db.get_claim(claim.id) is not None

    def test_delete_video_cascades(self, db, corpus):
        claim = db.create_claim("v1", "Drought preceded the collapse")
        db.save_transcript_chunks(
            "v1", [TranscriptChunk(video_id="v1", chunk_index=0, start_time=0, end_time=1, text="x")]
        )
        db.save_transcript_layer("v1", 2, "summary")

        assert db.delete_video("v1")
        assert db.get_video("v1") is None
        assert db.get_transcript("v1") is None
        assert db.get_claim(claim.id) is None
        assert not db.has_chunks("v1")
        assert db.list_transcript_layers("v1") == []
        assert not db.delete_video("v1")

    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "nested" / "kb.db"
        with Database(path) as first:
            first.insert_video(Video(id="v1", title="Persisted"))
        with Database(path) as second:
            assert second.get_video("v1").title == "Persisted"
            assert second.index.search("persisted")[0].video.id == "v1"


class TestClaims:
    def test_create_and_get(self, db, corpus):
        claim = db.create_claim(
            "v1",
            "Drought preceded the collapse",
            source_quote="the rains failed",
            category=ClaimCategory.CAUSAL,
            confidence=Confidence.HIGH,
            timestamp=42.5,
        )
        stored = db.get_claim(claim.id)
        assert stored == claim
        assert stored.category is ClaimCategory.CAUSAL

    def test_list_for_video_by_timestamp(self, db, corpus):
        late = db.create_claim("v1", "late", timestamp=90.0)
        untimed = db.create_claim("v1", "untimed")
        early = db.create_claim("v1", "early", timestamp=10.0)
        assert [c.id for c in db.list_claims_for_video("v1")] == [early.id, late.id, untimed.id]

    def test_list_by_category(self, db, corpus):
        db.create_claim("v1", "a", category=ClaimCategory.MEMETIC)
        db.create_claim("v1", "b")
        assert [c.text for c in db.list_claims_by_category(ClaimCategory.MEMETIC)] == ["a"]

    def test_update(self, db, corpus):
        claim = db.create_claim("v1", "draft")
        assert db.update_claim(claim.id, text="final", confidence=Confidence.LOW)
        stored = db.get_claim(claim.id)
        assert (stored.text, stored.confidence) == ("final", Confidence.LOW)
        assert not db.update_claim(claim.id)
        assert not db.update_claim(999, text="x")

    def test_unknown_vocabulary_tolerated(self, db, corpus):
        claim = db.create_claim("v1", "legacy")
        db.conn.execute("UPDATE claims SET category = 'astrological' WHERE id = ?", (claim.id,))
        assert db.get_claim(claim.id).category is ClaimCategory.FACTUAL


class TestChunksAndLayers:
    def test_replace_chunks(self, db, corpus):
        first = [
            TranscriptChunk(video_id="v1", chunk_index=i, start_time=i, end_time=i + 1, text=f"c{i}")
            for i in range(3)
        ]
        db.save_transcript_chunks("v1", first)
        db.save_transcript_chunks("v1", first[:1])

        stored = db.get_transcript_chunks("v1")
        assert [c.text for c in stored] == ["c0"]
        assert stored[0].id is not None

    def test_chunks_for_missing_video(self, db):
        with pytest.raises(NotFoundError):
            db.save_transcript_chunks("ghost", [])

    def test_layers_upsert(self, db, corpus):
        db.save_transcript_layer("v1", 2, "first")
        db.save_transcript_layer("v1", 2, "second")
        db.save_transcript_layer("v1", 3, "best")

        assert db.get_transcript_layer("v1", 2).content == "second"
        assert [layer.layer for layer in db.list_transcript_layers("v1")] == [2, 3]
        assert db.get_transcript_layer("v1", 4) is None
