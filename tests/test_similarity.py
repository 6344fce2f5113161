"""Tests for rkb/similarity.py cosine scoring and ranked search."""

import math

import pytest

from rkb.schemas import EmbeddingSource
from rkb.similarity import SimilaritySearch, cosine_similarity


class TestCosineSimilarity:
    def test_self_similarity(self):
        assert cosine_similarity([3.0, 4.0], [3.0, 4.0]) == pytest.approx(1.0)

    def test_symmetry(self):
        a, b = [1.0, 2.0, 3.0], [-2.0, 0.5, 4.0]
        assert cosine_similarity(a, b) == cosine_similarity(b, a)

    def test_orthogonal_and_opposite(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_known_value(self):
        assert cosine_similarity([1.0, 1.0], [1.0, 0.0]) == pytest.approx(1 / math.sqrt(2))

    @pytest.mark.parametrize(
        "a,b",
        [
            ([1.0, 0.0], [1.0, 0.0, 0.0]),
            ([], []),
            ([], [1.0]),
            ([0.0, 0.0], [1.0, 1.0]),
            ([1.0, 1.0], [0.0, 0.0]),
        ],
    )
    def test_degenerate_inputs_score_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0


class TestSearch:
    @pytest.fixture
    def populated(self, vectors):
        vectors.put(EmbeddingSource.VIDEO, "v1", "m", [1.0, 0.0])
        vectors.put(EmbeddingSource.VIDEO, "v2", "m", [0.7, 0.7])
        vectors.put(EmbeddingSource.VIDEO, "v3", "m", [0.0, 1.0])
        vectors.put(EmbeddingSource.CHUNK, "v1:0", "m", [0.9, 0.1])
        vectors.put(EmbeddingSource.CLAIM, "1", "m", [1.0, 0.0, 0.0])
        return vectors

    def test_ordered_by_score(self, populated):
        hits = SimilaritySearch(populated).search([1.0, 0.0], limit=10)
        scores = [score for _, score in hits]
        assert scores == sorted(scores, reverse=True)
        assert hits[0][0].source_id == "v1"

    def test_limit(self, populated):
        hits = SimilaritySearch(populated).search([1.0, 0.0], limit=2)
        assert len(hits) == 2

    def test_no_limit(self, populated):
        hits = SimilaritySearch(populated).search([1.0, 0.0], limit=None)
        assert len(hits) == 5

    def test_kind_filter(self, populated):
        hits = SimilaritySearch(populated).search([1.0, 0.0], EmbeddingSource.CHUNK)
        assert [e.source_id for e, _ in hits] == ["v1:0"]

    def test_mismatched_dimensions_score_zero(self, populated):
        hits = SimilaritySearch(populated).search([1.0, 0.0], EmbeddingSource.CLAIM)
        assert hits[0][1] == 0.0

    def test_empty_store(self, vectors):
        assert SimilaritySearch(vectors).search([1.0, 0.0]) == []


class TestSimilarTo:
    def test_excludes_itself(self, vectors):
        vectors.put(EmbeddingSource.VIDEO, "v1", "m", [1.0, 0.0])
        vectors.put(EmbeddingSource.VIDEO, "v2", "m", [0.9, 0.1])
        vectors.put(EmbeddingSource.VIDEO, "v3", "m", [0.0, 1.0])

        hits = SimilaritySearch(vectors).similar_to(EmbeddingSource.VIDEO, "v1", "m", limit=2)
        assert [e.source_id for e, _ in hits] == ["v2", "v3"]

    def test_anchor_under_several_models_keeps_limit(self, vectors):
        vectors.put(EmbeddingSource.VIDEO, "v1", "m", [1.0, 0.0])
        vectors.put(EmbeddingSource.VIDEO, "v1", "other", [1.0, 0.0])
        vectors.put(EmbeddingSource.VIDEO, "v2", "m", [0.9, 0.1])
        vectors.put(EmbeddingSource.VIDEO, "v3", "m", [0.0, 1.0])

        hits = SimilaritySearch(vectors).similar_to(EmbeddingSource.VIDEO, "v1", "m", limit=2)
        assert [e.source_id for e, _ in hits] == ["v2", "v3"]

    def test_missing_anchor(self, vectors):
        assert SimilaritySearch(vectors).similar_to(EmbeddingSource.VIDEO, "v1", "m") is None


class TestDescribe:
    def test_text_and_video(self, db, vectors, corpus):
        claim = db.create_claim("v2", "Rome depended on Egyptian grain")
        db.save_transcript_layer("v3", 2, "Key passages about cycles")
        vectors.put(EmbeddingSource.VIDEO, "v1", "m", [1.0, 0.0])
        vectors.put(EmbeddingSource.CLAIM, str(claim.id), "m", [1.0, 0.0])
        vectors.put(EmbeddingSource.SUMMARY, "v3:2", "m", [1.0, 0.0])

        search = SimilaritySearch(vectors, db)
        results = {r.source_type: r for r in search.describe(search.search([1.0, 0.0]))}

        assert results[EmbeddingSource.VIDEO].text == "The Bronze Age Collapse\nSea peoples and systems failure"
        assert results[EmbeddingSource.VIDEO].video_id == "v1"
        assert results[EmbeddingSource.CLAIM].text == "Rome depended on Egyptian grain"
        assert results[EmbeddingSource.CLAIM].video_id == "v2"
        assert results[EmbeddingSource.SUMMARY].text == "Key passages about cycles"
        assert results[EmbeddingSource.SUMMARY].video_id == "v3"

    def test_dangling_reference(self, db, vectors):
        vectors.put(EmbeddingSource.CLAIM, "999", "m", [1.0])
        search = SimilaritySearch(vectors, db)
        [result] = search.describe(search.search([1.0]))
        assert result.text == ""
        assert result.video_id is None
