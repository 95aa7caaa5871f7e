"""Article body extraction and normalization of feed entries into candidates."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

import requests
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from .fetchers import RawEntry
from .media import resolve_media, richest_markup
from .models import Candidate

LOGGER = logging.getLogger(__name__)

NON_CONTENT_SELECTORS = (
    "script, style, iframe, noscript, figure, aside, form, "
    ".ad-container, .ads, .advertisement, .social-share, .related-stories"
)

# Ordered (url fragment, selectors) pairs; the first matching fragment wins.
EXTRACTION_RULES: Sequence[Tuple[str, Sequence[str]]] = (
    ("thehindu.com", ('[itemprop="articleBody"]',)),
    ("indianexpress.com", (".full-details, .editor-body",)),
    ("hindustantimes.com", (".storyDetails, .detail",)),
    ("ndtv.com", (".sp-cn, .story__content",)),
)
GENERIC_SELECTORS: Sequence[str] = ('article, .article-content, [itemprop="articleBody"]',)

_WHITESPACE = re.compile(r"\s+")


def clean_text(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def html_to_text(markup: str) -> str:
    if not markup:
        return ""
    if "<" not in markup:
        return clean_text(markup)
    soup = BeautifulSoup(markup, "html.parser")
    for element in soup.select(NON_CONTENT_SELECTORS):
        element.decompose()
    return clean_text(soup.get_text(" "))


def selectors_for(url: str) -> Sequence[str]:
    for fragment, selectors in EXTRACTION_RULES:
        if fragment in url:
            return selectors
    return GENERIC_SELECTORS


def extract_body(html: str, url: str) -> str:
    """Extract the main article text from a page using the rule table."""

    soup = BeautifulSoup(html, "html.parser")
    for element in soup.select(NON_CONTENT_SELECTORS):
        element.decompose()

    for selector in selectors_for(url):
        text = clean_text(" ".join(node.get_text(" ") for node in soup.select(selector)))
        if text:
            return text

    paragraphs = [clean_text(p.get_text(" ")) for p in soup.select("p")]
    text = " ".join(p for p in paragraphs if p)
    if text:
        return text
    return clean_text(soup.body.get_text(" ")) if soup.body else ""


def fetch_full_text(url: str, session: requests.Session, timeout: float = 10.0, max_chars: int = 20000) -> str:
    """Fetch ``url`` and return its article body, or an empty string on failure."""

    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as exc:
        LOGGER.debug("Unable to fetch article body for %s: %s", url, exc)
        return ""

    text = extract_body(response.text, url)
    if len(text) > max_chars:
        text = text[:max_chars]
    return text


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse a feed date into an aware UTC datetime."""

    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = date_parser.parse(str(value))
        except (ValueError, TypeError, OverflowError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def entry_link(entry: Mapping[str, Any]) -> str:
    link = entry.get("link") or ""
    if not link:
        guid = entry.get("id") or entry.get("guid") or ""
        if str(guid).startswith("http"):
            link = guid
    return str(link).strip()


def entry_published(entry: Mapping[str, Any]) -> Optional[datetime]:
    for key in ("published", "pubDate", "updated", "dc_date"):
        parsed = parse_datetime(entry.get(key))
        if parsed:
            return parsed
    return None


def inline_body(entry: Mapping[str, Any]) -> str:
    return html_to_text(richest_markup(entry))


class Normalizer:
    """Turn raw feed entries into eligible candidates."""

    def __init__(
        self,
        full_text: Callable[[str], str],
        *,
        min_body_chars: int = 300,
        lookback: timedelta = timedelta(hours=2),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.full_text = full_text
        self.min_body_chars = min_body_chars
        self.lookback = lookback
        self.clock = clock

    def is_recent(self, published_at: Optional[datetime], now: datetime) -> bool:
        if published_at is None:
            return False
        return now - self.lookback <= published_at <= now

    def normalize(self, raw: RawEntry, order: int = 0, now: Optional[datetime] = None) -> Optional[Candidate]:
        entry = raw.data
        link = entry_link(entry)
        title = clean_text(entry.get("title") or "")
        if not link or not title:
            LOGGER.debug("Rejecting entry without link or title from %s", raw.feed)
            return None

        now = now or self.clock()
        published_at = entry_published(entry)
        if not self.is_recent(published_at, now):
            LOGGER.debug("Rejecting stale or undated entry: %s", link)
            return None

        body = inline_body(entry)
        if len(body) < self.min_body_chars:
            LOGGER.debug("Fetching full article content for %s", link)
            fetched = self.full_text(link)
            if len(fetched) > len(body):
                body = fetched
        if len(body) < self.min_body_chars:
            LOGGER.debug("Rejecting short article (%d chars): %s", len(body), link)
            return None

        return Candidate(
            source_feed=raw.feed,
            link=link,
            title=title,
            body=body,
            published_at=published_at,
            media=resolve_media(entry),
            order=order,
        )

    def normalize_all(self, entries: Iterable[RawEntry]) -> List[Candidate]:
        """Normalize entries, keeping the first occurrence of each link."""

        now = self.clock()
        candidates: List[Candidate] = []
        seen_links = set()
        for raw in entries:
            link = entry_link(raw.data)
            if link in seen_links:
                LOGGER.debug("Skipping duplicate article: %s", link)
                continue
            seen_links.add(link)
            candidate = self.normalize(raw, order=len(candidates), now=now)
            if candidate:
                candidates.append(candidate)
        LOGGER.info("Normalized %d eligible candidates from %d entries", len(candidates), len(seen_links))
        return candidates
