"""Diversity-aware ranking of scored candidates into a trial queue.

Candidates are ranked by score (optionally penalized for domains that were
published recently), reshaped by the configured selection mode, passed
through the anti-dominance filters and cut to a short queue.
"""

from __future__ import annotations

import logging
import math
from collections import Counter, OrderedDict
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .config import DiversityConfig
from .models import Candidate
from .state import HistoryStore

LOGGER = logging.getLogger(__name__)

Rule = Tuple[str, Callable[[Candidate], bool]]


def domain_penalty(domain: str, history: HistoryStore, config: DiversityConfig) -> float:
    recent = history.recent_domains(config.penalty_window).count(domain)
    return math.log1p(recent) * config.penalty_weight


def effective_scores(
    candidates: Sequence[Candidate], history: HistoryStore, config: DiversityConfig
) -> Dict[str, float]:
    scores = {}
    for candidate in candidates:
        score = candidate.score
        if config.penalty_enabled:
            score -= domain_penalty(candidate.domain, history, config)
        scores[candidate.link] = score
    return scores


def rank(candidates: Sequence[Candidate], scores: Optional[Dict[str, float]] = None) -> List[Candidate]:
    """Sort by score, then media priority (video > image > none), then discovery order."""

    def key(candidate: Candidate):
        score = scores[candidate.link] if scores is not None else candidate.score
        return (-score, -candidate.media_priority, candidate.order)

    return sorted(candidates, key=key)


def _group_by_feed(ranked: Sequence[Candidate]) -> "OrderedDict[str, List[Candidate]]":
    groups: "OrderedDict[str, List[Candidate]]" = OrderedDict()
    for candidate in ranked:
        groups.setdefault(candidate.source_feed, []).append(candidate)
    return groups


def _feed_rotation(feed_order: Sequence[str], present: Sequence[str], last_feed: Optional[str]) -> List[str]:
    """Feeds in configured order, starting right after ``last_feed``."""

    feed_order = list(feed_order)
    if last_feed in feed_order:
        start = feed_order.index(last_feed) + 1
        feed_order = feed_order[start:] + feed_order[:start]
    order = [feed for feed in feed_order if feed in present]
    order.extend(feed for feed in present if feed not in order)
    return order


def linear(ranked: List[Candidate], history: HistoryStore, feed_order: Sequence[str]) -> List[Candidate]:
    return ranked


def balanced(ranked: List[Candidate], history: HistoryStore, feed_order: Sequence[str]) -> List[Candidate]:
    best_per_domain: "OrderedDict[str, Candidate]" = OrderedDict()
    for candidate in ranked:
        best_per_domain.setdefault(candidate.domain, candidate)
    if not best_per_domain:
        return []
    lowest = min(history.domain_count(domain) for domain in best_per_domain)
    return [
        candidate for domain, candidate in best_per_domain.items() if history.domain_count(domain) == lowest
    ]


def round_robin(ranked: List[Candidate], history: HistoryStore, feed_order: Sequence[str]) -> List[Candidate]:
    groups = _group_by_feed(ranked)
    rotation = _feed_rotation(feed_order, list(groups), history.last_feed)
    queue: List[Candidate] = []
    depth = 0
    while len(queue) < len(ranked):
        for feed in rotation:
            if depth < len(groups[feed]):
                queue.append(groups[feed][depth])
        depth += 1
    return queue


def strict_rotation(ranked: List[Candidate], history: HistoryStore, feed_order: Sequence[str]) -> List[Candidate]:
    groups = _group_by_feed(ranked)
    rotation = _feed_rotation(feed_order, list(groups), history.last_feed)
    return list(groups[rotation[0]]) if rotation else []


STRATEGIES = {
    "linear": linear,
    "balanced": balanced,
    "round_robin": round_robin,
    "strict_rotation": strict_rotation,
}


def anti_dominance_rules(history: HistoryStore, config: DiversityConfig) -> List[Rule]:
    """Enabled rules in precedence order; each returns True to keep a candidate."""

    rules: List[Rule] = []
    last_domain = history.last_domain
    if config.no_consecutive_domain and last_domain:
        rules.append(("no-consecutive-domain", lambda c: c.domain != last_domain))

    last_feed = history.last_feed
    if config.no_consecutive_feed and last_feed:
        rules.append(("no-consecutive-feed", lambda c: c.source_feed != last_feed))

    if config.min_distinct_domains > 0:
        window = history.recent_domains(config.distinct_window)
        if window and len(set(window)) < config.min_distinct_domains:
            crowded = set(window)
            rules.append(("min-distinct-domains", lambda c: c.domain not in crowded))

    if config.max_domain_share is not None:
        window = history.recent_domains(config.share_window)
        if window:
            counts = Counter(window)
            limit = config.max_domain_share
            over = {domain for domain, count in counts.items() if count / len(window) > limit}
            if over:
                rules.append(("max-domain-share", lambda c: c.domain not in over))
    return rules


def apply_filters(ranked: List[Candidate], rules: Sequence[Rule], slice_size: int) -> List[Candidate]:
    """Filter the top slice, dropping the loosest rules until something survives."""

    head = ranked[:slice_size] if slice_size > 0 else list(ranked)
    active = list(rules)
    while active:
        kept = [candidate for candidate in head if all(check(candidate) for _, check in active)]
        if kept:
            return kept
        name, _ = active.pop()
        LOGGER.info("Relaxing anti-dominance rule %s: it would remove every candidate", name)
    return head


class DiversitySelector:
    """Produce the ordered trial queue for the publication gate."""

    def __init__(self, config: DiversityConfig, feed_order: Sequence[str] = ()) -> None:
        self.config = config
        self.feed_order = list(feed_order)
        self.strategy = STRATEGIES[config.mode]

    def select(self, candidates: Sequence[Candidate], history: HistoryStore) -> List[Candidate]:
        fresh = [candidate for candidate in candidates if candidate.link not in history]
        if len(fresh) < len(candidates):
            LOGGER.info("Dropped %d already published candidates", len(candidates) - len(fresh))
        if not fresh:
            return []
        candidates = fresh
        scores = effective_scores(candidates, history, self.config)
        ranked = rank(candidates, scores)
        shaped = self.strategy(ranked, history, self.feed_order)
        filtered = apply_filters(shaped, anti_dominance_rules(history, self.config), self.config.filter_slice)
        queue = filtered[: self.config.queue_size]
        LOGGER.info(
            "Trial queue (%s mode): %s",
            self.config.mode,
            ", ".join(f"{c.domain}:{scores[c.link]:.1f}" for c in queue),
        )
        return queue
