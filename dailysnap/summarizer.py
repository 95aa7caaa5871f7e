"""Generative summaries constrained to the post length band."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import requests
from sumy.nlp.stemmers import Stemmer
from sumy.nlp.tokenizers import Tokenizer
from sumy.parsers.plaintext import PlaintextParser
from sumy.summarizers.lsa import LsaSummarizer
from sumy.utils import get_stop_words

from .config import LengthBand

LOGGER = logging.getLogger(__name__)
LANGUAGE = "english"

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

PROMPT = (
    "Summarize this news article in about {target} characters "
    "(no less than {minimum}, no more than {maximum}).\n"
    "Include key details: who, what, where, when, why.\n"
    "Maintain complete sentences and proper grammar.\n"
    "No hashtags or emojis. Be factual and concise.\n\n"
    "Article: {article}"
)


class SummarizationError(RuntimeError):
    """Raised when the text generator fails or returns nothing usable."""


def condense_text(text: str, max_chars: int, sentence_count: int = 12) -> str:
    """Bound summarizer input, using an extractive pass for very long bodies."""

    if len(text) <= max_chars:
        return text
    try:
        parser = PlaintextParser.from_string(text, Tokenizer(LANGUAGE))
        summarizer = LsaSummarizer(Stemmer(LANGUAGE))
        summarizer.stop_words = get_stop_words(LANGUAGE)
        sentences = summarizer(parser.document, sentence_count)
        condensed = " ".join(str(sentence) for sentence in sentences).strip()
    except LookupError as exc:
        # Tokenizer data (nltk punkt) is not installed.
        LOGGER.debug("Extractive condensing unavailable: %s", exc)
        condensed = ""
    if not condensed:
        condensed = text
    return condensed[:max_chars]


def clean_summary(text: str) -> str:
    text = " ".join((text or "").split())
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1].strip()
    return text


def truncate(text: str, band: LengthBand) -> str:
    if len(text) <= band.maximum:
        return text
    return text[: band.maximum - len(band.ellipsis)].rstrip() + band.ellipsis


class Summarizer:
    """Base class for text generators."""

    name: str = "base"

    def summarize(self, text: str, band: LengthBand) -> str:
        raise NotImplementedError


class GeminiSummarizer(Summarizer):
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        max_input_chars: int = 10000,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_input_chars = max_input_chars

    def summarize(self, text: str, band: LengthBand) -> str:
        prompt = PROMPT.format(
            target=(band.minimum + band.maximum) // 2,
            minimum=band.minimum,
            maximum=band.maximum,
            article=condense_text(text, self.max_input_chars),
        )
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            response = self.session.post(
                GEMINI_ENDPOINT.format(model=self.model),
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise SummarizationError(f"Gemini request failed: {exc}") from exc

        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as exc:
            raise SummarizationError(f"Unexpected Gemini response: {data!r:.200}") from exc
        summary = clean_summary("".join(part.get("text", "") for part in parts))
        if not summary:
            raise SummarizationError("Gemini returned an empty summary")
        return summary


def fit_to_band(
    summarizer: Summarizer,
    text: str,
    band: LengthBand,
    attempts: int = 3,
    regenerate_overlong: bool = True,
    pacing_seconds: float = 0.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[str]:
    """Return a summary within ``band`` or ``None`` after ``attempts`` tries.

    Short summaries are regenerated. Long ones are regenerated while tries
    remain (when ``regenerate_overlong``) and truncated on the last one.
    """

    for attempt in range(1, attempts + 1):
        if attempt > 1 and pacing_seconds:
            sleep(pacing_seconds)
        try:
            summary = clean_summary(summarizer.summarize(text, band))
        except SummarizationError as exc:
            LOGGER.error("Summary generation failed: %s", exc)
            return None

        final = attempt == attempts
        if len(summary) < band.minimum:
            LOGGER.info("Summary too short (%d chars), attempt %d/%d", len(summary), attempt, attempts)
            continue
        if len(summary) > band.maximum:
            if regenerate_overlong and not final:
                LOGGER.info("Summary too long (%d chars), attempt %d/%d", len(summary), attempt, attempts)
                continue
            summary = truncate(summary, band)
        return summary

    LOGGER.warning("Could not fit summary into %d-%d characters", band.minimum, band.maximum)
    return None
