"""Shared fixtures: a throwaway SQLite database, vector store and sample corpus."""

from datetime import date

import numpy as np
import pytest

from rkb.schemas import Transcript, TranscriptSegment, Video
from rkb.store import Database
from rkb.vectors import VectorStore


class FakeEncoder:
    """Deterministic stand-in for a SentenceTransformer: embeds text by length."""

    def __init__(self):
        self.calls: list[list[str]] = []

    def encode(self, sentences, show_progress_bar=False):
        self.calls.append(list(sentences))
        return np.array([[float(len(s)), 1.0, 0.0] for s in sentences])


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "research.db")
    yield database
    database.close()


@pytest.fixture
def vectors(tmp_path):
    return VectorStore(tmp_path / "vectordb")


@pytest.fixture
def corpus(db):
    """Five videos; "bronze" appears in the title of v1 and the description of v2."""
    videos = [
        Video(
            id="v1",
            title="The Bronze Age Collapse",
            description="Sea peoples and systems failure",
            upload_date=date(2021, 3, 1),
        ),
        Video(id="v2", title="Roman Grain Supply", description="How Rome paid with bronze coinage"),
        Video(id="v3", title="Cycles of History", description="Secular cycles and elite overproduction"),
        Video(id="v4", title="Medieval Guilds", description="Craft associations in European towns"),
        Video(id="v5", title="Printing Press", description="Gutenberg and movable type"),
    ]
    for video in videos:
        db.insert_video(video)

    transcripts = {
        "v1": [
            TranscriptSegment(start_time=0.0, duration=5.0, text="Around 1200 BC the palace economies fell"),
            TranscriptSegment(start_time=5.0, duration=5.0, text="The bronze trade routes were cut"),
            TranscriptSegment(start_time=10.0, duration=5.0, text="Nobody knows exactly why"),
        ],
        "v2": [
            TranscriptSegment(start_time=0.0, duration=4.0, text="Egypt shipped grain to Rome"),
            TranscriptSegment(start_time=4.0, duration=4.0, text="Bronze coins paid the sailors"),
        ],
        "v3": [
            TranscriptSegment(start_time=0.0, duration=3.0, text="Empires rise and fall in cycles"),
        ],
        "v4": [
            TranscriptSegment(start_time=0.0, duration=4.0, text="Apprentices trained for years"),
        ],
    }
    for video_id, segments in transcripts.items():
        db.insert_transcript(Transcript(video_id=video_id, segments=segments))

    return videos


@pytest.fixture
def encoder():
    return FakeEncoder()
