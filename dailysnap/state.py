"""Persisted publication history used for exactly-once posting and diversity."""

from __future__ import annotations

import json
import logging
import os
from collections import Counter
from pathlib import Path
from typing import Dict, List, Optional, Set

from .models import Candidate, domain_of

LOGGER = logging.getLogger(__name__)


class HistoryStore:
    """JSON-backed, bounded list of published links plus per-source counters.

    The link list is a plain JSON array. Cumulative counts and the feed of
    the last publish live in an optional stats file next to it. Failing to
    read or write either file is logged and the run continues in memory.
    """

    def __init__(self, path: Path, stats_path: Optional[Path] = None, retention: int = 1000) -> None:
        self.path = path
        self.stats_path = stats_path
        self.retention = retention
        self._links: List[str] = []
        self._domain_counts: Counter = Counter()
        self._feed_counts: Counter = Counter()
        self.last_feed: Optional[str] = None
        self._load()

    def _load(self) -> None:
        if self.path.exists():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                LOGGER.warning("Could not read history file %s: %s", self.path, exc)
                data = []
            if not isinstance(data, list):
                LOGGER.warning("Ignoring malformed history file %s", self.path)
                data = []
            seen: Set[str] = set()
            for link in data:
                if isinstance(link, str) and link and link not in seen:
                    seen.add(link)
                    self._links.append(link)
            self._links = self._links[-self.retention :]

        stats = self._load_stats()
        if stats:
            self._domain_counts = Counter(stats.get("domains") or {})
            self._feed_counts = Counter(stats.get("feeds") or {})
            self.last_feed = stats.get("last_feed")
        else:
            self._domain_counts = Counter(domain_of(link) for link in self._links)

    def _load_stats(self) -> Optional[Dict]:
        if not self.stats_path or not self.stats_path.exists():
            return None
        try:
            stats = json.loads(self.stats_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            LOGGER.warning("Could not read stats file %s: %s", self.stats_path, exc)
            return None
        return stats if isinstance(stats, dict) else None

    @property
    def links(self) -> List[str]:
        return list(self._links)

    def __contains__(self, link: str) -> bool:
        return link in self._links

    def __len__(self) -> int:
        return len(self._links)

    def recent_domains(self, window: int) -> List[str]:
        """Domains of the most recent ``window`` publishes, oldest first."""

        if window <= 0:
            return []
        return [domain_of(link) for link in self._links[-window:]]

    @property
    def last_domain(self) -> Optional[str]:
        return domain_of(self._links[-1]) if self._links else None

    def domain_count(self, domain: str) -> int:
        return self._domain_counts.get(domain, 0)

    def feed_count(self, feed: str) -> int:
        return self._feed_counts.get(feed, 0)

    def commit(self, candidate: Candidate) -> bool:
        """Record a confirmed publish and persist it immediately.

        Returns ``False`` when the history could not be written.
        """

        if candidate.link in self._links:
            self._links.remove(candidate.link)
        self._links.append(candidate.link)
        self._links = self._links[-self.retention :]
        self._domain_counts[candidate.domain] += 1
        self._feed_counts[candidate.source_feed] += 1
        self.last_feed = candidate.source_feed
        return self.save()

    def save(self) -> bool:
        try:
            _write_json(self.path, self._links)
            if self.stats_path:
                _write_json(
                    self.stats_path,
                    {
                        "domains": dict(sorted(self._domain_counts.items())),
                        "feeds": dict(sorted(self._feed_counts.items())),
                        "last_feed": self.last_feed,
                    },
                )
        except OSError as exc:
            LOGGER.error("Could not persist history to %s, continuing in memory: %s", self.path, exc)
            return False
        return True


def _write_json(path: Path, payload) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    os.replace(tmp, path)


__all__ = ["HistoryStore"]
