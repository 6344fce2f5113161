"""Tests for rkb/ingest.py vector validation, import/export and local embedding."""

import json

import pytest

from rkb.errors import InvalidInputError
from rkb.ingest import (
    embed_missing,
    export_for_embedding,
    import_embeddings,
    parse_vector,
    save_embedding,
)
from rkb.schemas import EmbeddingSource, TranscriptChunk


class TestParseVector:
    def test_valid(self):
        assert parse_vector("[0.5, 1, -2e-3]") == [0.5, 1.0, -0.002]

    @pytest.mark.parametrize(
        "text",
        [
            "not json",
            "[]",
            '["a", 1]',
            "[true, 1.0]",
            '{"x": 1}',
            "1.0",
            "[[1.0]]",
            "[null]",
            "[NaN]",
            "[Infinity, 1]",
            "[1.0, -Infinity]",
        ],
    )
    def test_invalid(self, text):
        with pytest.raises(InvalidInputError):
            parse_vector(text)


class TestSaveEmbedding:
    def test_save(self, vectors):
        emb = save_embedding(vectors, "chunk", "v1:0", "m", [1, 2])
        assert emb.source_type is EmbeddingSource.CHUNK
        assert emb.vector == [1.0, 2.0]
        assert vectors.exists(EmbeddingSource.CHUNK, "v1:0")

    def test_invalid_kind(self, vectors):
        with pytest.raises(InvalidInputError):
            save_embedding(vectors, "frame", "x", "m", [1.0])
        assert vectors.count() == 0

    def test_empty_vector(self, vectors):
        with pytest.raises(InvalidInputError):
            save_embedding(vectors, "video", "v1", "m", [])

    def test_non_finite_vector(self, vectors):
        vectors.put(EmbeddingSource.VIDEO, "v1", "m", [1.0, 0.0])
        with pytest.raises(InvalidInputError):
            save_embedding(vectors, "video", "bad", "m", [float("nan"), 1.0])
        assert [e.source_id for e in vectors.list()] == ["v1"]

    def test_empty_id(self, vectors):
        with pytest.raises(InvalidInputError):
            save_embedding(vectors, "video", "", "m", [1.0])


class TestImport:
    def test_skips_invalid_rows(self, vectors, tmp_path):
        path = tmp_path / "vectors.json"
        path.write_text(
            json.dumps(
                [
                    {"source_type": "video", "source_id": "v1", "vector": [1.0, 0.0]},
                    {"source_type": "chunk", "source_id": "v1:0", "vector": [0.0, 1.0]},
                    {"source_type": "frame", "source_id": "f1", "vector": [1.0]},
                    {"source_type": "claim", "source_id": "3", "vector": []},
                    {"source_type": "claim", "source_id": "4"},
                ]
            )
        )

        assert import_embeddings(vectors, path, "m") == 2
        assert {(e.source_type, e.source_id) for e in vectors.list()} == {
            (EmbeddingSource.VIDEO, "v1"),
            (EmbeddingSource.CHUNK, "v1:0"),
        }

    def test_not_a_list(self, vectors, tmp_path):
        path = tmp_path / "vectors.json"
        path.write_text('{"source_type": "video"}')
        with pytest.raises(InvalidInputError):
            import_embeddings(vectors, path, "m")

    def test_bad_json(self, vectors, tmp_path):
        path = tmp_path / "vectors.json"
        path.write_text("[{")
        with pytest.raises(InvalidInputError):
            import_embeddings(vectors, path, "m")


class TestExport:
    def test_lists_missing_items(self, db, vectors, corpus):
        claim = db.create_claim("v1", "Drought preceded the collapse")
        db.save_transcript_chunks(
            "v1",
            [TranscriptChunk(video_id="v1", chunk_index=0, start_time=0, end_time=5, text="palace economies")],
        )
        vectors.put(EmbeddingSource.VIDEO, "v2", "m", [1.0])

        items = export_for_embedding(db, vectors)
        keys = {(i.source_type.value, i.source_id) for i in items}

        assert ("video", "v2") not in keys
        assert ("video", "v1") in keys
        assert ("chunk", "v1:0") in keys
        assert ("claim", str(claim.id)) in keys

        by_key = {(i.source_type.value, i.source_id): i.text for i in items}
        assert by_key[("video", "v1")] == "The Bronze Age Collapse\nSea peoples and systems failure"
        assert by_key[("chunk", "v1:0")] == "palace economies"
        assert by_key[("claim", str(claim.id))] == "Drought preceded the collapse"

    def test_source_filter(self, db, vectors, corpus):
        db.create_claim("v1", "A claim")
        items = export_for_embedding(db, vectors, source="claim")
        assert [i.source_type for i in items] == [EmbeddingSource.CLAIM]

    def test_invalid_source(self, db, vectors):
        with pytest.raises(InvalidInputError):
            export_for_embedding(db, vectors, source="summary")


class TestEmbedMissing:
    def test_embeds_and_stores(self, db, vectors, corpus, encoder):
        count = embed_missing(db, vectors, "fake", batch_size=2, source="video", encoder=encoder)

        assert count == 5
        assert [len(batch) for batch in encoder.calls] == [2, 2, 1]
        emb = vectors.get(EmbeddingSource.VIDEO, "v4", "fake")
        assert emb.vector[1:] == [1.0, 0.0]

    def test_nothing_missing(self, db, vectors, corpus, encoder):
        embed_missing(db, vectors, "fake", source="video", encoder=encoder)
        assert embed_missing(db, vectors, "fake", source="video", encoder=encoder) == 0
        assert len(encoder.calls) == 1
