"""
Transcript chunking for embedding.

Packs consecutive transcript segments into chunks of roughly
`target_tokens` tokens (estimated at 4 characters per token). Each chunk
after the first starts with the tail of the previous one, so passages
that straddle a boundary stay retrievable.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Sequence

from rkb.errors import NotFoundError
from rkb.schemas import TranscriptChunk, TranscriptSegment

if TYPE_CHECKING:
    from rkb.store import Database

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
DEFAULT_TARGET_TOKENS = 2000
DEFAULT_OVERLAP_PERCENT = 15


def _make_chunk(
    video_id: str,
    chunk_index: int,
    start: float,
    end: float,
    text: str,
) -> TranscriptChunk:
    return TranscriptChunk(
        video_id=video_id,
        chunk_index=chunk_index,
        start_time=start,
        end_time=end,
        text=text.strip(),
        token_count=len(text) // CHARS_PER_TOKEN,
        overlap_with_previous=chunk_index > 0,
    )


def build_chunks(
    video_id: str,
    segments: Sequence[TranscriptSegment],
    target_tokens: int = DEFAULT_TARGET_TOKENS,
    overlap_percent: int = DEFAULT_OVERLAP_PERCENT,
) -> list[TranscriptChunk]:
    """
    Split transcript segments into overlapping, roughly fixed-size chunks.

    Args:
        video_id: Video the segments belong to
        segments: Transcript segments in time order
        target_tokens: Approximate chunk size in tokens
        overlap_percent: Share of each chunk carried into the next one

    Returns:
        Chunks numbered from 0, each spanning its segments' time range
    """
    target_chars = target_tokens * CHARS_PER_TOKEN
    overlap_chars = target_chars * overlap_percent // 100

    chunks: list[TranscriptChunk] = []
    text = ""
    carry = ""
    start = 0.0
    end = 0.0

    for seg in segments:
        if not text:
            text = carry
            start = seg.start_time

        text += seg.text + " "
        end = seg.start_time + seg.duration

        if len(text) >= target_chars:
            chunks.append(_make_chunk(video_id, len(chunks), start, end, text))
            carry = text[len(text) - overlap_chars :] if len(text) > overlap_chars else text
            text = ""

    # Trailing partial chunk
    if text:
        chunks.append(_make_chunk(video_id, len(chunks), start, end, text))

    return chunks


def chunk_video(
    db: Database,
    video_id: str,
    target_tokens: int = DEFAULT_TARGET_TOKENS,
    overlap_percent: int = DEFAULT_OVERLAP_PERCENT,
) -> int:
    """
    Rebuild and store the chunk set of one video.

    Returns:
        Number of chunks written (0 when the video has no transcript)

    Raises:
        NotFoundError: the video does not exist
    """
    if db.get_video(video_id) is None:
        raise NotFoundError(f"Video not found: {video_id}")

    transcript = db.get_transcript(video_id)
    if transcript is None:
        logger.info(f"No transcript for {video_id}, skipping")
        return 0

    chunks = build_chunks(video_id, transcript.segments, target_tokens, overlap_percent)
    db.save_transcript_chunks(video_id, chunks)
    logger.info(f"Built {len(chunks)} chunks for {video_id}")
    return len(chunks)


def chunk_all(
    db: Database,
    target_tokens: int = DEFAULT_TARGET_TOKENS,
    overlap_percent: int = DEFAULT_OVERLAP_PERCENT,
) -> dict[str, int]:
    """Chunk every stored video; returns chunk counts for videos that produced any."""
    counts: dict[str, int] = {}
    for video in db.list_videos():
        count = chunk_video(db, video.id, target_tokens, overlap_percent)
        if count:
            counts[video.id] = count

    logger.info(f"Created {sum(counts.values())} chunks from {len(counts)} videos")
    return counts
