"""
Pydantic schemas and closed vocabularies for the knowledge base.

Vocabulary strings are the exact values persisted in storage; parse()
accepts a few aliases, value is the canonical rendering.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import ClassVar, Union

from pydantic import BaseModel, Field, model_validator


def _normalize(value: str) -> str:
    return value.strip().lower().replace("-", "_")


class ClaimCategory(str, Enum):
    CYCLICAL_PATTERN = "cyclical"
    CAUSAL = "causal"
    MEMETIC = "memetic"
    GEOPOLITICAL = "geopolitical"
    FACTUAL = "factual"
    PHENOMENOLOGICAL = "phenomenological"
    METAPHYSICAL = "metaphysical"

    @classmethod
    def parse(cls, value: str) -> ClaimCategory | None:
        return _CATEGORY_ALIASES.get(_normalize(value))


_CATEGORY_ALIASES = {
    "cyclical": ClaimCategory.CYCLICAL_PATTERN,
    "cyclical_pattern": ClaimCategory.CYCLICAL_PATTERN,
    "causal": ClaimCategory.CAUSAL,
    "causal_claim": ClaimCategory.CAUSAL,
    "memetic": ClaimCategory.MEMETIC,
    "memetic_transmission": ClaimCategory.MEMETIC,
    "geopolitical": ClaimCategory.GEOPOLITICAL,
    "geopolitical_dynamic": ClaimCategory.GEOPOLITICAL,
    "factual": ClaimCategory.FACTUAL,
    "phenomenological": ClaimCategory.PHENOMENOLOGICAL,
    "metaphysical": ClaimCategory.METAPHYSICAL,
}


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def parse(cls, value: str) -> Confidence | None:
        value = _normalize(value)
        if value == "med":
            return cls.MEDIUM
        try:
            return cls(value)
        except ValueError:
            return None


class LinkType(str, Enum):
    SUPPORTS = "supports"
    CONTRADICTS = "contradicts"
    ELABORATES = "elaborates"
    CAUSES = "causes"
    CAUSED_BY = "caused_by"
    RELATED = "related"

    @classmethod
    def parse(cls, value: str) -> LinkType | None:
        value = _normalize(value)
        if value == "causedby":
            return cls.CAUSED_BY
        try:
            return cls(value)
        except ValueError:
            return None


class EmbeddingSource(str, Enum):
    VIDEO = "video"
    CHUNK = "chunk"
    CLAIM = "claim"
    SUMMARY = "summary"

    @classmethod
    def parse(cls, value: str) -> EmbeddingSource | None:
        try:
            return cls(_normalize(value))
        except ValueError:
            return None


# ============================================================
# Embedding source identifiers
# ============================================================


@dataclass(frozen=True)
class VideoRef:
    kind: ClassVar[EmbeddingSource] = EmbeddingSource.VIDEO
    video_id: str

    def encode(self) -> str:
        return self.video_id


@dataclass(frozen=True)
class ChunkRef:
    kind: ClassVar[EmbeddingSource] = EmbeddingSource.CHUNK
    video_id: str
    chunk_index: int

    def encode(self) -> str:
        return f"{self.video_id}:{self.chunk_index}"


@dataclass(frozen=True)
class SummaryRef:
    kind: ClassVar[EmbeddingSource] = EmbeddingSource.SUMMARY
    video_id: str
    layer: int

    def encode(self) -> str:
        return f"{self.video_id}:{self.layer}"


@dataclass(frozen=True)
class ClaimRef:
    kind: ClassVar[EmbeddingSource] = EmbeddingSource.CLAIM
    claim_id: int

    @property
    def video_id(self) -> None:
        return None

    def encode(self) -> str:
        return str(self.claim_id)


SourceRef = Union[VideoRef, ChunkRef, SummaryRef, ClaimRef]


def parse_source_id(kind: EmbeddingSource, source_id: str) -> SourceRef | None:
    """
    Decode a stored source id into a typed reference.

    Chunk and summary ids are "<video_id>:<index>"; the split happens on the
    last colon so video ids may themselves contain colons.

    Returns:
        The typed reference, or None when the id is malformed for its kind
    """
    if kind is EmbeddingSource.VIDEO:
        return VideoRef(source_id) if source_id else None

    if kind is EmbeddingSource.CLAIM:
        try:
            return ClaimRef(int(source_id))
        except ValueError:
            return None

    video_id, sep, index = source_id.rpartition(":")
    if not sep or not video_id:
        return None
    try:
        number = int(index)
    except ValueError:
        return None
    if kind is EmbeddingSource.CHUNK:
        return ChunkRef(video_id, number)
    return SummaryRef(video_id, number)


# ============================================================
# Videos and transcripts
# ============================================================


class Video(BaseModel):
    id: str
    title: str
    url: str = ""
    channel: str | None = None
    upload_date: date | None = None
    description: str | None = None
    added_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TranscriptSegment(BaseModel):
    start_time: float = Field(..., ge=0, description="Start time in seconds")
    duration: float = Field(default=0.0, ge=0)
    text: str


class Transcript(BaseModel):
    video_id: str
    language: str = "en"
    segments: list[TranscriptSegment] = Field(default_factory=list)
    full_text: str = ""

    @model_validator(mode="after")
    def fill_full_text(self) -> Transcript:
        """Derive full_text from the segments when not supplied."""
        if not self.full_text:
            self.full_text = " ".join(s.text.strip() for s in self.segments if s.text).strip()
        return self


class SegmentMatch(BaseModel):
    start_time: float
    duration: float
    text: str


class LexicalHit(BaseModel):
    video: Video
    relevance: float = Field(description="Weighted BM25 relevance (higher = better)")
    matches: list[SegmentMatch] = Field(default_factory=list)


class TranscriptChunk(BaseModel):
    video_id: str
    chunk_index: int = Field(..., ge=0)
    start_time: float
    end_time: float
    text: str
    token_count: int = 0
    overlap_with_previous: bool = False
    id: int | None = None

    @property
    def ref(self) -> ChunkRef:
        return ChunkRef(self.video_id, self.chunk_index)


class TranscriptLayer(BaseModel):
    video_id: str
    layer: int
    content: str
    created_at: datetime
    id: int | None = None


# ============================================================
# Claims and the claim graph
# ============================================================


class Claim(BaseModel):
    id: int
    text: str
    video_id: str
    timestamp: float | None = None
    source_quote: str = ""
    category: ClaimCategory = ClaimCategory.FACTUAL
    confidence: Confidence = Confidence.MEDIUM
    created_at: datetime


class ClaimLink(BaseModel):
    id: int
    source_claim_id: int
    target_claim_id: int
    link_type: LinkType
    created_at: datetime


class LinkedClaim(BaseModel):
    link: ClaimLink
    claim: Claim


class ClaimNeighbors(BaseModel):
    claim: Claim
    outgoing: list[LinkedClaim] = Field(default_factory=list)
    incoming: list[LinkedClaim] = Field(default_factory=list)


class ReviewQueue(BaseModel):
    stale: list[Claim] = Field(default_factory=list)
    orphans: list[Claim] = Field(default_factory=list)
    random_sample: list[Claim] = Field(default_factory=list)


class ClaimStats(BaseModel):
    total_claims: int
    well_linked_claims: int = Field(description="Claims touching two or more links")
    total_links: int


# ============================================================
# Embeddings and ranked results
# ============================================================


class Embedding(BaseModel):
    source_type: EmbeddingSource
    source_id: str
    model: str
    vector: list[float]
    dimensions: int
    created_at: datetime

    @property
    def ref(self) -> SourceRef | None:
        return parse_source_id(self.source_type, self.source_id)


class EmbeddingInput(BaseModel):
    """One row of a bulk embedding import file."""

    source_type: str
    source_id: str
    vector: list[float]


class ExportItem(BaseModel):
    source_type: EmbeddingSource
    source_id: str
    text: str


class SimilarityResult(BaseModel):
    source_type: EmbeddingSource
    source_id: str
    score: float
    text: str = ""
    video_id: str | None = None


class ChunkMatch(BaseModel):
    chunk: TranscriptChunk
    score: float


class HybridResult(BaseModel):
    video: Video
    keyword_score: float
    semantic_score: float
    combined_score: float
    matching_chunks: list[ChunkMatch] = Field(default_factory=list)
    matching_claims: list[Claim] = Field(default_factory=list)


class EmbeddingStats(BaseModel):
    total: int = 0
    by_source: dict[str, int] = Field(default_factory=dict)
    model: str | None = None
    dimensions: int | None = None
