"""Tests for rkb/schemas.py vocabularies and source identifiers."""

import pytest

from rkb.schemas import (
    ChunkRef,
    ClaimCategory,
    ClaimRef,
    Confidence,
    EmbeddingSource,
    LinkType,
    SummaryRef,
    Transcript,
    TranscriptChunk,
    TranscriptSegment,
    VideoRef,
    parse_source_id,
)


class TestVocabularies:
    def test_category_values_match_storage(self):
        assert ClaimCategory.CYCLICAL_PATTERN.value == "cyclical"
        assert ClaimCategory.parse("cyclical") is ClaimCategory.CYCLICAL_PATTERN

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("cyclical-pattern", ClaimCategory.CYCLICAL_PATTERN),
            ("Causal", ClaimCategory.CAUSAL),
            ("causal_claim", ClaimCategory.CAUSAL),
            ("memetic-transmission", ClaimCategory.MEMETIC),
            ("METAPHYSICAL", ClaimCategory.METAPHYSICAL),
        ],
    )
    def test_category_aliases(self, text, expected):
        assert ClaimCategory.parse(text) is expected

    def test_unknown_category(self):
        assert ClaimCategory.parse("astrological") is None

    def test_confidence(self):
        assert Confidence.parse("HIGH") is Confidence.HIGH
        assert Confidence.parse("med") is Confidence.MEDIUM
        assert Confidence.parse("certain") is None

    def test_link_type(self):
        assert LinkType.parse("caused-by") is LinkType.CAUSED_BY
        assert LinkType.parse("caused_by") is LinkType.CAUSED_BY
        assert LinkType.parse("supports") is LinkType.SUPPORTS
        assert LinkType.parse("refutes") is None

    def test_render_parse_inverse(self):
        for kind in EmbeddingSource:
            assert EmbeddingSource.parse(kind.value) is kind
        for link_type in LinkType:
            assert LinkType.parse(link_type.value) is link_type


class TestSourceIds:
    def test_encode(self):
        assert VideoRef("abc").encode() == "abc"
        assert ChunkRef("abc", 3).encode() == "abc:3"
        assert SummaryRef("abc", 2).encode() == "abc:2"
        assert ClaimRef(42).encode() == "42"

    def test_parse_chunk(self):
        ref = parse_source_id(EmbeddingSource.CHUNK, "abc:3")
        assert ref == ChunkRef("abc", 3)
        assert ref.video_id == "abc"

    def test_parse_splits_on_last_colon(self):
        assert parse_source_id(EmbeddingSource.CHUNK, "yt:abc:7") == ChunkRef("yt:abc", 7)

    def test_parse_summary_and_claim(self):
        assert parse_source_id(EmbeddingSource.SUMMARY, "abc:2") == SummaryRef("abc", 2)
        assert parse_source_id(EmbeddingSource.CLAIM, "42") == ClaimRef(42)
        assert parse_source_id(EmbeddingSource.VIDEO, "abc") == VideoRef("abc")

    @pytest.mark.parametrize(
        "kind,source_id",
        [
            (EmbeddingSource.CHUNK, "abc"),
            (EmbeddingSource.CHUNK, "abc:x"),
            (EmbeddingSource.CHUNK, ":3"),
            (EmbeddingSource.CLAIM, "forty-two"),
            (EmbeddingSource.VIDEO, ""),
        ],
    )
    def test_parse_malformed(self, kind, source_id):
        assert parse_source_id(kind, source_id) is None


class TestModels:
    def test_transcript_fills_full_text(self):
        transcript = Transcript(
            video_id="abc",
            segments=[
                TranscriptSegment(start_time=0.0, duration=1.0, text=" Hello "),
                TranscriptSegment(start_time=1.0, duration=1.0, text="world"),
            ],
        )
        assert transcript.full_text == "Hello world"

    def test_explicit_full_text_kept(self):
        transcript = Transcript(video_id="abc", full_text="custom")
        assert transcript.full_text == "custom"

    def test_negative_start_rejected(self):
        with pytest.raises(ValueError):
            TranscriptSegment(start_time=-1.0, text="x")

    def test_chunk_ref(self):
        chunk = TranscriptChunk(video_id="abc", chunk_index=2, start_time=0, end_time=1, text="t")
        assert chunk.ref.encode() == "abc:2"
