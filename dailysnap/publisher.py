"""Posting to X (Twitter) through tweepy."""

from __future__ import annotations

import io
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence

import tweepy

from .media import Attachment
from .models import MediaKind

LOGGER = logging.getLogger(__name__)

MAX_POST_CHARS = 280


class PublishError(RuntimeError):
    """A post or media upload was rejected.

    ``retry_after`` carries the server's backoff hint in seconds when the
    failure was a rate limit.
    """

    def __init__(self, message: str, *, rate_limited: bool = False, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.rate_limited = rate_limited
        self.retry_after = retry_after


def retry_after_from_headers(headers: Dict[str, str], clock: Callable[[], float] = time.time) -> Optional[float]:
    """Read ``retry-after`` or ``x-rate-limit-reset`` into a delay in seconds."""

    headers = {key.lower(): value for key, value in (headers or {}).items()}
    value = headers.get("retry-after")
    if value:
        try:
            return max(0.0, float(value))
        except ValueError:
            pass
    reset = headers.get("x-rate-limit-reset")
    if reset:
        try:
            return max(0.0, float(reset) - clock())
        except ValueError:
            pass
    return None


def _translate(exc: tweepy.TweepyException, action: str) -> PublishError:
    if isinstance(exc, tweepy.TooManyRequests):
        headers = getattr(exc.response, "headers", None) or {}
        return PublishError(
            f"{action} rate limited: {exc}", rate_limited=True, retry_after=retry_after_from_headers(headers)
        )
    return PublishError(f"{action} failed: {exc}")


class Publisher:
    """Base class for posting backends."""

    name: str = "base"

    def upload_media(self, attachment: Attachment) -> str:
        raise NotImplementedError

    def post(self, text: str, media_ids: Sequence[str] = ()) -> str:
        raise NotImplementedError


class TwitterPublisher(Publisher):
    name = "x"

    def __init__(self, api_key: str, api_secret: str, access_token: str, access_secret: str) -> None:
        self.client = tweepy.Client(
            consumer_key=api_key,
            consumer_secret=api_secret,
            access_token=access_token,
            access_token_secret=access_secret,
        )
        auth = tweepy.OAuth1UserHandler(api_key, api_secret, access_token, access_secret)
        self.api = tweepy.API(auth)

    def upload_media(self, attachment: Attachment) -> str:
        video = attachment.kind is MediaKind.VIDEO
        try:
            media = self.api.media_upload(
                filename=attachment.filename,
                file=io.BytesIO(attachment.data),
                chunked=video,
                media_category="tweet_video" if video else "tweet_image",
            )
        except tweepy.TweepyException as exc:
            raise _translate(exc, "Media upload") from exc
        return str(media.media_id_string)

    def post(self, text: str, media_ids: Sequence[str] = ()) -> str:
        if len(text) > MAX_POST_CHARS:
            raise PublishError(f"Post text is {len(text)} characters, limit is {MAX_POST_CHARS}")
        ids: Optional[List[str]] = list(media_ids) or None
        try:
            response = self.client.create_tweet(text=text, media_ids=ids)
        except tweepy.TweepyException as exc:
            raise _translate(exc, "Post") from exc
        post_id = str(response.data["id"])
        LOGGER.info("Posted: https://x.com/i/status/%s", post_id)
        return post_id


def publisher_from_credentials(credentials: Dict[str, Optional[str]]) -> TwitterPublisher:
    return TwitterPublisher(
        api_key=credentials["X_API_KEY"],
        api_secret=credentials["X_API_SECRET"],
        access_token=credentials["X_ACCESS_TOKEN"],
        access_secret=credentials["X_ACCESS_SECRET"],
    )
