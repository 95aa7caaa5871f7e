"""Feed fetchers and the shared HTTP session."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Mapping, Optional

import feedparser
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import Config, FeedSource

LOGGER = logging.getLogger(__name__)


def build_session(config: Config) -> requests.Session:
    """Create the HTTP session used for feeds, article pages and media."""

    retry = Retry(
        total=3,
        backoff_factor=1.0,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=frozenset({"GET", "HEAD"}),
        respect_retry_after_header=True,
    )
    session = requests.Session()
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": config.user_agent})
    return session


@dataclass
class RawEntry:
    """A feed entry tagged with the feed it came from."""

    feed: str
    data: Mapping[str, Any]


class FeedFetcher:
    """Fetch and parse one RSS/Atom feed."""

    def __init__(self, source: FeedSource, session: requests.Session, timeout: float = 10.0) -> None:
        self.source = source
        self.session = session
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.source.name

    def fetch(self) -> List[RawEntry]:
        try:
            response = self.session.get(self.source.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            LOGGER.error("Feed %s request failed: %s", self.name, exc)
            return []

        feed = feedparser.parse(response.content)
        if feed.bozo and not feed.entries:
            LOGGER.error("Feed %s could not be parsed: %s", self.name, feed.get("bozo_exception"))
            return []
        entries = [RawEntry(feed=self.name, data=entry) for entry in feed.entries]
        LOGGER.info("Fetched %d entries from %s", len(entries), self.name)
        return entries


def collect_entries(
    fetchers: Iterable[FeedFetcher],
    pacing_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> List[RawEntry]:
    """Collect entries from every feed; an unreachable feed contributes nothing."""

    aggregated: List[RawEntry] = []
    for index, fetcher in enumerate(fetchers):
        if index and pacing_seconds:
            sleep(pacing_seconds)
        try:
            aggregated.extend(fetcher.fetch())
        except Exception as exc:
            LOGGER.exception("Fetcher %s failed unexpectedly: %s", fetcher.name, exc)
            continue

    LOGGER.info("Collected %d feed entries", len(aggregated))
    return aggregated


def default_fetchers(config: Config, session: Optional[requests.Session] = None) -> List[FeedFetcher]:
    session = session or build_session(config)
    return [FeedFetcher(source, session, timeout=config.http_timeout) for source in config.feeds]
