from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence

import pytest

from dailysnap.config import Config, DiversityConfig
from dailysnap.media import Attachment
from dailysnap.models import Candidate, Media, MediaKind
from dailysnap.publisher import Publisher
from dailysnap.state import HistoryStore
from dailysnap.summarizer import Summarizer

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
LONG_BODY = "The state government announced a new policy for students today. " * 10


def make_candidate(
    link: str,
    score: float = 0.0,
    media: Optional[str] = None,
    order: int = 0,
    feed: str = "feed",
    body: str = LONG_BODY,
) -> Candidate:
    kind = {"image": MediaKind.IMAGE, "video": MediaKind.VIDEO}.get(media or "")
    return Candidate(
        source_feed=feed,
        link=link,
        title=f"Title for {link}",
        body=body,
        published_at=NOW,
        media=Media(kind, f"{link}/media.{'mp4' if kind is MediaKind.VIDEO else 'jpg'}") if kind else None,
        score=score,
        order=order,
    )


class FakeSummarizer(Summarizer):
    name = "fake"

    def __init__(self, outputs: Sequence[object]) -> None:
        self.outputs = list(outputs)
        self.calls = 0

    def summarize(self, text, band):
        self.calls += 1
        output = self.outputs[min(self.calls - 1, len(self.outputs) - 1)]
        if isinstance(output, Exception):
            raise output
        return output


class FakePublisher(Publisher):
    name = "fake"

    def __init__(self, post_errors: Sequence[Optional[Exception]] = (), upload_error: Optional[Exception] = None):
        self.post_errors = list(post_errors)
        self.upload_error = upload_error
        self.posts: List[tuple] = []
        self.uploads: List[Attachment] = []

    def upload_media(self, attachment):
        if self.upload_error:
            raise self.upload_error
        self.uploads.append(attachment)
        return f"media-{len(self.uploads)}"

    def post(self, text, media_ids=()):
        if self.post_errors:
            error = self.post_errors.pop(0)
            if error is not None:
                raise error
        self.posts.append((text, list(media_ids)))
        return str(1000 + len(self.posts))


@pytest.fixture
def history(tmp_path) -> HistoryStore:
    return HistoryStore(tmp_path / "posted_links.json", tmp_path / "source_stats.json")


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        data_dir=tmp_path,
        history_file=tmp_path / "posted_links.json",
        stats_file=tmp_path / "source_stats.json",
        diversity=DiversityConfig(no_consecutive_domain=False),
        pacing_seconds=0.0,
    )


def summary_of(length: int) -> str:
    return ("x" * (length - 1)) + "."
