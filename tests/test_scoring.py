from __future__ import annotations

from conftest import make_candidate

from dailysnap.config import KeywordTables
from dailysnap.scoring import keyword_score, score_candidate

import pytest


def test_each_phrase_counts_once_per_class_weight():
    tables = KeywordTables(
        high_priority=frozenset({"election"}),
        economic=frozenset({"inflation"}),
        general=frozenset({"police"}),
    )
    text = "Election ELECTION election. Inflation rose. Police said."
    assert keyword_score(text, tables) == pytest.approx(3 + 0.5 + 1)


def test_body_without_keywords_scores_zero():
    tables = KeywordTables(high_priority=frozenset({"quake"}), economic=frozenset(), general=frozenset())
    assert keyword_score("A quiet day at the beach.", tables) == 0


def test_media_bonus_orders_video_over_image_over_none():
    tables = KeywordTables()
    plain = score_candidate(make_candidate("https://a.com/1"), tables)
    image = score_candidate(make_candidate("https://a.com/1", media="image"), tables)
    video = score_candidate(make_candidate("https://a.com/1", media="video"), tables)

    assert image.score - plain.score == pytest.approx(tables.image_bonus)
    assert video.score - image.score == pytest.approx(tables.video_bonus - tables.image_bonus)
    assert video.score > image.score > plain.score


def test_scoring_returns_copy_and_keeps_domain():
    candidate = make_candidate("https://www.example.co.in/story", score=0)
    scored = score_candidate(candidate, KeywordTables())
    assert candidate.score == 0
    assert scored.domain == "example.co.in"
    assert scored.link == candidate.link


def test_overlapping_keyword_classes_are_rejected():
    from dailysnap.config import ConfigError

    with pytest.raises(ConfigError):
        KeywordTables(high_priority=frozenset({"budget"}), economic=frozenset({"budget"}))
