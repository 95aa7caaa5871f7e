"""Shared dataclasses and type definitions for the posting pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlparse

_HOST_PREFIXES = ("www.", "m.", "mobile.", "amp.")
_SECOND_LEVEL_LABELS = {"co", "com", "net", "org", "gov", "ac", "edu", "nic", "res"}


def domain_of(link: str) -> str:
    """Return the registrable host of ``link`` used for diversity bookkeeping."""

    host = (urlparse(link.strip()).hostname or "").lower().rstrip(".")
    for prefix in _HOST_PREFIXES:
        if host.startswith(prefix) and "." in host[len(prefix) :]:
            host = host[len(prefix) :]
            break
    labels = host.split(".")
    if len(labels) <= 2:
        return host
    if len(labels[-1]) == 2 and labels[-2] in _SECOND_LEVEL_LABELS:
        return ".".join(labels[-3:])
    return ".".join(labels[-2:])


class MediaKind(str, enum.Enum):
    IMAGE = "image"
    VIDEO = "video"


MEDIA_PRIORITY = {MediaKind.VIDEO: 2, MediaKind.IMAGE: 1, None: 0}


@dataclass(frozen=True)
class Media:
    kind: MediaKind
    url: str


@dataclass(frozen=True)
class Candidate:
    """Normalized article considered for publication.

    Candidates are frozen; the scorer returns a copy with ``score`` set.
    """

    source_feed: str
    link: str
    title: str
    body: str
    published_at: datetime
    media: Optional[Media] = None
    score: float = 0.0
    order: int = 0
    domain: str = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "domain", domain_of(self.link))

    @property
    def media_kind(self) -> Optional[MediaKind]:
        return self.media.kind if self.media else None

    @property
    def media_priority(self) -> int:
        return MEDIA_PRIORITY[self.media_kind]


class Outcome(str, enum.Enum):
    PUBLISHED = "published"
    ALREADY_POSTED = "skipped-already-posted"
    TOO_SHORT = "content-too-short"
    SUMMARY_FAILED = "summary-failed"
    POST_FAILED = "post-failed"


@dataclass
class Trial:
    """Outcome of trying to publish one candidate."""

    candidate: Candidate
    outcome: Outcome
    summary: Optional[str] = None
    post_id: Optional[str] = None
    with_media: bool = False


@dataclass
class PublicationAttempt:
    """Trial queue and per-candidate outcomes for one pipeline attempt."""

    queue: List[Candidate] = field(default_factory=list)
    trials: List[Trial] = field(default_factory=list)

    @property
    def published(self) -> Optional[Trial]:
        return next((trial for trial in self.trials if trial.outcome is Outcome.PUBLISHED), None)


@dataclass
class RunResult:
    attempts: List[PublicationAttempt] = field(default_factory=list)

    @property
    def published(self) -> Optional[Trial]:
        for attempt in self.attempts:
            if attempt.published:
                return attempt.published
        return None

    @property
    def succeeded(self) -> bool:
        return self.published is not None
