"""High-level orchestration for selecting and publishing one article per run."""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Callable, List, Optional, Sequence

import requests

from .config import Config
from .content import Normalizer, fetch_full_text
from .fetchers import FeedFetcher, build_session, collect_entries, default_fetchers
from .media import Attachment, fetch_attachment
from .models import Candidate, Outcome, PublicationAttempt, RunResult, Trial
from .publisher import PublishError, Publisher, publisher_from_credentials
from .scoring import score_all
from .selection import DiversitySelector
from .state import HistoryStore
from .summarizer import GeminiSummarizer, Summarizer, fit_to_band

LOGGER = logging.getLogger(__name__)


class PublicationGate:
    """Walk the trial queue and commit the first candidate that posts."""

    def __init__(
        self,
        config: Config,
        history: HistoryStore,
        summarizer: Summarizer,
        publisher: Publisher,
        media_fetcher: Callable[[Candidate], Optional[Attachment]],
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.history = history
        self.summarizer = summarizer
        self.publisher = publisher
        self.media_fetcher = media_fetcher
        self.sleep = sleep

    def run(self, queue: Sequence[Candidate]) -> PublicationAttempt:
        attempt = PublicationAttempt(queue=list(queue))
        for candidate in queue:
            trial = self.try_candidate(candidate)
            attempt.trials.append(trial)
            LOGGER.info("%s: %s", trial.outcome.value, candidate.link)
            if trial.outcome is Outcome.PUBLISHED:
                break
        return attempt

    def try_candidate(self, candidate: Candidate) -> Trial:
        if candidate.link in self.history:
            return Trial(candidate, Outcome.ALREADY_POSTED)
        if len(candidate.body) < self.config.min_body_chars:
            return Trial(candidate, Outcome.TOO_SHORT)

        summary = fit_to_band(
            self.summarizer,
            candidate.body,
            self.config.band,
            attempts=self.config.summary_attempts,
            regenerate_overlong=self.config.regenerate_overlong,
            pacing_seconds=self.config.pacing_seconds,
            sleep=self.sleep,
        )
        if summary is None:
            return Trial(candidate, Outcome.SUMMARY_FAILED)

        media_ids = self._upload_media(candidate)
        post_id = self._post(summary, media_ids)
        if post_id is None:
            return Trial(candidate, Outcome.POST_FAILED, summary=summary, with_media=bool(media_ids))

        if not self.history.commit(candidate):
            LOGGER.warning("Published %s but history was not saved; it may be posted again", candidate.link)
        return Trial(candidate, Outcome.PUBLISHED, summary=summary, post_id=post_id, with_media=bool(media_ids))

    def _upload_media(self, candidate: Candidate) -> List[str]:
        if not candidate.media:
            return []
        attachment = self.media_fetcher(candidate)
        if attachment is None:
            return []
        try:
            return [self.publisher.upload_media(attachment)]
        except PublishError as exc:
            LOGGER.warning("Media upload failed, posting text-only: %s", exc)
            return []

    def _post(self, text: str, media_ids: List[str]) -> Optional[str]:
        attempts = self.config.publish_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self.publisher.post(text, media_ids)
            except PublishError as exc:
                LOGGER.error("Post attempt %d/%d failed: %s", attempt, attempts, exc)
                if attempt == attempts:
                    break
                delay = self.config.publish_backoff
                if exc.rate_limited and exc.retry_after is not None:
                    delay = min(exc.retry_after, self.config.max_rate_limit_wait)
                self.sleep(delay)
        return None


class Pipeline:
    """One end-to-end attempt: fetch, normalize, score, select, publish."""

    def __init__(
        self,
        config: Config,
        history: HistoryStore,
        summarizer: Summarizer,
        publisher: Publisher,
        session: Optional[requests.Session] = None,
        fetchers: Optional[Sequence[FeedFetcher]] = None,
        normalizer: Optional[Normalizer] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.history = history
        self.session = session or build_session(config)
        self.fetchers = list(fetchers) if fetchers is not None else default_fetchers(config, self.session)
        self.normalizer = normalizer or Normalizer(
            lambda url: fetch_full_text(url, self.session, config.http_timeout, config.max_body_chars),
            min_body_chars=config.min_body_chars,
            lookback=timedelta(hours=config.lookback_hours),
        )
        self.selector = DiversitySelector(config.diversity, [feed.name for feed in config.feeds])
        self.gate = PublicationGate(config, history, summarizer, publisher, self.fetch_media, sleep=sleep)
        self.sleep = sleep

    def fetch_media(self, candidate: Candidate) -> Optional[Attachment]:
        return fetch_attachment(
            candidate.media,
            self.session,
            timeout=self.config.http_timeout,
            max_image_bytes=self.config.max_image_bytes,
            max_video_bytes=self.config.max_video_bytes,
        )

    def select(self) -> List[Candidate]:
        entries = collect_entries(self.fetchers, self.config.pacing_seconds, self.sleep)
        candidates = self.normalizer.normalize_all(entries)
        scored = score_all(candidates, self.config.keywords)
        return self.selector.select(scored, self.history)

    def run_once(self) -> PublicationAttempt:
        queue = self.select()
        if not queue:
            LOGGER.warning("No eligible candidates this attempt")
            return PublicationAttempt()
        return self.gate.run(queue)


def run(pipeline: Pipeline, attempts: int = 3, backoff: float = 30.0) -> RunResult:
    """Run up to ``attempts`` pipeline attempts, stopping at the first publish."""

    result = RunResult()
    for number in range(1, attempts + 1):
        LOGGER.info("Starting pipeline attempt %d/%d", number, attempts)
        attempt = pipeline.run_once()
        result.attempts.append(attempt)
        if attempt.published:
            LOGGER.info("Published %s", attempt.published.candidate.link)
            return result
        if number < attempts:
            LOGGER.info("Nothing published, retrying in %.0fs", backoff)
            pipeline.sleep(backoff)
    LOGGER.warning("No suitable candidate published after %d attempts", attempts)
    return result


def build_pipeline(config: Config, history: Optional[HistoryStore] = None) -> Pipeline:
    """Wire the production collaborators; raises ConfigError without credentials."""

    config.require_credentials()
    if history is None:
        history = HistoryStore(config.history_file, config.stats_file, config.history_retention)
    LOGGER.info("Loaded %d published links from %s", len(history), config.history_file)
    session = build_session(config)
    summarizer = GeminiSummarizer(
        config.gemini_api_key,
        model=config.gemini_model,
        session=session,
        max_input_chars=config.summarizer_input_chars,
    )
    publisher = publisher_from_credentials(config.twitter_credentials)
    return Pipeline(config, history, summarizer, publisher, session=session)


__all__ = ["Pipeline", "PublicationGate", "build_pipeline", "run"]
