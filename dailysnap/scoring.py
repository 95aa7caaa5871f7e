"""Keyword and media based relevance scoring."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, List, Optional

from .config import KeywordTables
from .models import Candidate, MediaKind

LOGGER = logging.getLogger(__name__)


def keyword_score(text: str, tables: KeywordTables) -> float:
    """Sum class weights for each phrase present in ``text``, once per phrase."""

    haystack = text.lower()
    score = 0.0
    for terms, weight in tables.weighted_classes():
        score += weight * sum(1 for term in terms if term.lower() in haystack)
    return score


def media_bonus(kind: Optional[MediaKind], tables: KeywordTables) -> float:
    if kind is MediaKind.VIDEO:
        return tables.video_bonus
    if kind is MediaKind.IMAGE:
        return tables.image_bonus
    return 0.0


def score_candidate(candidate: Candidate, tables: KeywordTables) -> Candidate:
    score = keyword_score(candidate.body, tables) + media_bonus(candidate.media_kind, tables)
    return replace(candidate, score=score)


def score_all(candidates: Iterable[Candidate], tables: KeywordTables) -> List[Candidate]:
    scored = [score_candidate(candidate, tables) for candidate in candidates]
    for candidate in scored:
        LOGGER.debug("Scored %.1f: %s", candidate.score, candidate.title)
    return scored
