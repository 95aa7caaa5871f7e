from __future__ import annotations

import json

from conftest import make_candidate

from dailysnap.config import DiversityConfig
from dailysnap.selection import DiversitySelector, apply_filters, rank
from dailysnap.state import HistoryStore


def links(queue):
    return [candidate.link for candidate in queue]


def seeded_history(tmp_path, published, stats=None):
    path = tmp_path / "posted_links.json"
    path.write_text(json.dumps(published))
    stats_path = tmp_path / "source_stats.json"
    if stats is not None:
        stats_path.write_text(json.dumps(stats))
    return HistoryStore(path, stats_path)


def test_ties_break_on_media_then_discovery_order():
    candidates = [
        make_candidate("https://a.com/none", score=9, order=0),
        make_candidate("https://b.com/top", score=12, order=1),
        make_candidate("https://c.com/image", score=9, media="image", order=2),
        make_candidate("https://d.com/none-later", score=9, order=3),
    ]
    assert links(rank(candidates)) == [
        "https://b.com/top",
        "https://c.com/image",
        "https://a.com/none",
        "https://d.com/none-later",
    ]


def test_selection_is_deterministic(history):
    candidates = [make_candidate(f"https://site{i % 3}.com/{i}", score=i % 4, order=i) for i in range(10)]
    selector = DiversitySelector(DiversityConfig(queue_size=6))
    first = selector.select(candidates, history)
    second = selector.select(list(candidates), history)
    assert links(first) == links(second)
    assert len(first) == 6


def test_no_consecutive_domain_relaxes_when_only_that_domain_exists(tmp_path):
    history = seeded_history(tmp_path, ["https://www.same.com/old"])
    candidates = [
        make_candidate("https://same.com/a", score=1, order=0),
        make_candidate("https://same.com/b", score=5, order=1),
    ]
    selector = DiversitySelector(DiversityConfig(no_consecutive_domain=True))
    assert links(selector.select(candidates, history)) == ["https://same.com/b", "https://same.com/a"]


def test_no_consecutive_domain_filters_when_alternatives_exist(tmp_path):
    history = seeded_history(tmp_path, ["https://same.com/old"])
    candidates = [
        make_candidate("https://same.com/a", score=10, order=0),
        make_candidate("https://other.com/b", score=1, order=1),
    ]
    selector = DiversitySelector(DiversityConfig(no_consecutive_domain=True))
    assert links(selector.select(candidates, history)) == ["https://other.com/b"]


def test_rules_relax_in_reverse_precedence(tmp_path):
    history = seeded_history(
        tmp_path,
        ["https://a.com/1", "https://b.com/1"],
        {"domains": {}, "feeds": {}, "last_feed": "alpha"},
    )
    candidates = [
        make_candidate("https://a.com/2", score=5, feed="beta", order=0),
        make_candidate("https://c.com/2", score=4, feed="alpha", order=1),
    ]
    config = DiversityConfig(no_consecutive_domain=True, no_consecutive_feed=True, max_domain_share=0.4)
    # Share rule (a.com and b.com at 50%) and feed rule together leave nothing; dropping the
    # share rule keeps a.com/2 (not b.com, not feed alpha).
    assert links(DiversitySelector(config).select(candidates, history)) == ["https://a.com/2"]


def test_min_distinct_domains_forbids_crowded_window(tmp_path):
    history = seeded_history(tmp_path, ["https://a.com/1", "https://a.com/2", "https://b.com/3"])
    candidates = [
        make_candidate("https://a.com/4", score=9, order=0),
        make_candidate("https://c.com/5", score=1, order=1),
    ]
    config = DiversityConfig(no_consecutive_domain=False, min_distinct_domains=3, distinct_window=3)
    assert links(DiversitySelector(config).select(candidates, history)) == ["https://c.com/5"]


def test_filters_fall_back_to_unfiltered_list():
    ranked = [make_candidate("https://a.com/1"), make_candidate("https://a.com/2", order=1)]
    rules = [("never", lambda c: False)]
    assert links(apply_filters(ranked, rules, slice_size=10)) == links(ranked)


def test_domain_penalty_reorders_recently_published_domain(tmp_path):
    history = seeded_history(tmp_path, ["https://a.com/1", "https://a.com/2", "https://a.com/3"])
    candidates = [
        make_candidate("https://a.com/4", score=5, order=0),
        make_candidate("https://b.com/5", score=3, order=1),
    ]
    config = DiversityConfig(no_consecutive_domain=False, penalty_enabled=True, penalty_weight=2.0)
    # ln(4) * 2 ~= 2.77 brings a.com below b.com.
    assert links(DiversitySelector(config).select(candidates, history)) == ["https://b.com/5", "https://a.com/4"]
    assert candidates[0].score == 5


def test_balanced_mode_prefers_least_published_domains(tmp_path):
    history = seeded_history(
        tmp_path, ["https://a.com/1"], {"domains": {"a.com": 4, "b.com": 1, "c.com": 1}, "feeds": {}, "last_feed": None}
    )
    candidates = [
        make_candidate("https://a.com/2", score=20, order=0),
        make_candidate("https://b.com/3", score=3, order=1),
        make_candidate("https://b.com/4", score=8, order=2),
        make_candidate("https://c.com/5", score=5, order=3),
    ]
    config = DiversityConfig(mode="balanced", no_consecutive_domain=False)
    assert links(DiversitySelector(config).select(candidates, history)) == ["https://b.com/4", "https://c.com/5"]


def test_round_robin_starts_after_last_feed(tmp_path):
    history = seeded_history(tmp_path, [], {"domains": {}, "feeds": {}, "last_feed": "one"})
    candidates = [
        make_candidate("https://a.com/1", score=9, feed="one", order=0),
        make_candidate("https://a.com/2", score=8, feed="one", order=1),
        make_candidate("https://b.com/1", score=2, feed="two", order=2),
        make_candidate("https://c.com/1", score=1, feed="three", order=3),
    ]
    config = DiversityConfig(mode="round_robin", no_consecutive_domain=False)
    selector = DiversitySelector(config, ["one", "two", "three"])
    assert links(selector.select(candidates, history)) == [
        "https://b.com/1",
        "https://c.com/1",
        "https://a.com/1",
        "https://a.com/2",
    ]


def test_strict_rotation_uses_next_feed_with_candidates(tmp_path):
    history = seeded_history(tmp_path, [], {"domains": {}, "feeds": {}, "last_feed": "one"})
    candidates = [
        make_candidate("https://a.com/1", score=9, feed="one", order=0),
        make_candidate("https://c.com/1", score=1, feed="three", order=1),
        make_candidate("https://c.com/2", score=3, feed="three", order=2),
    ]
    config = DiversityConfig(mode="strict_rotation", no_consecutive_domain=False)
    selector = DiversitySelector(config, ["one", "two", "three"])
    assert links(selector.select(candidates, history)) == ["https://c.com/2", "https://c.com/1"]


def test_queue_is_bounded(history):
    candidates = [make_candidate(f"https://s{i}.com/x", score=i, order=i) for i in range(20)]
    queue = DiversitySelector(DiversityConfig(queue_size=5)).select(candidates, history)
    assert links(queue) == [f"https://s{i}.com/x" for i in range(19, 14, -1)]


def test_published_links_are_dropped_before_filters(tmp_path):
    history = seeded_history(tmp_path, ["https://c.com/posted", "https://b.com/last"])
    candidates = [
        make_candidate("https://c.com/posted", score=10, order=0),
        make_candidate("https://b.com/fresh", score=5, order=1),
    ]
    # Only b.com remains, so the no-consecutive-domain rule relaxes instead of keeping c.com/posted.
    assert links(DiversitySelector(DiversityConfig()).select(candidates, history)) == ["https://b.com/fresh"]


def test_published_links_do_not_fill_the_queue(tmp_path):
    posted = [f"https://s{i}.com/old" for i in range(8)]
    history = seeded_history(tmp_path, posted)
    candidates = [make_candidate(link, score=20 - i, order=i) for i, link in enumerate(posted)]
    candidates.append(make_candidate("https://fresh.com/new", score=1, order=8))
    queue = DiversitySelector(DiversityConfig(queue_size=8)).select(candidates, history)
    assert links(queue) == ["https://fresh.com/new"]


def test_only_published_candidates_gives_empty_queue(tmp_path):
    history = seeded_history(tmp_path, ["https://a.com/1"])
    assert DiversitySelector(DiversityConfig()).select([make_candidate("https://a.com/1")], history) == []
