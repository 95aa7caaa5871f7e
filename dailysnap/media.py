"""Discovery, classification and download of article media attachments."""

from __future__ import annotations

import logging
import mimetypes
import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from .models import Media, MediaKind

LOGGER = logging.getLogger(__name__)

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp")
VIDEO_EXTENSIONS = (".mp4", ".mov", ".m4v", ".webm")

IMAGE_PATH_HINTS = ("/images/", "/image/", "/img/", "/photos/", "/photo/", "/thumbnail", "/thumb/")
VIDEO_PATH_HINTS = ("/video/", "/videos/", "/vod/", "/media/video")

SUPPORTED_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
        "video/mp4",
        "video/quicktime",
    }
)

_BARE_VIDEO_LINK = re.compile(
    r"https?://[^\s\"'<>]+?\.(?:%s)(?:\?[^\s\"'<>]*)?" % "|".join(ext[1:] for ext in VIDEO_EXTENSIONS),
    re.IGNORECASE,
)


def _first(value: Any) -> Optional[Mapping[str, Any]]:
    if isinstance(value, Mapping):
        return value
    if isinstance(value, (list, tuple)) and value:
        head = value[0]
        return head if isinstance(head, Mapping) else None
    return None


def _kind_from_mime(mime: Optional[str]) -> Optional[MediaKind]:
    mime = (mime or "").lower()
    if mime.startswith("image/"):
        return MediaKind.IMAGE
    if mime.startswith("video/"):
        return MediaKind.VIDEO
    return None


def _extension(url: str) -> str:
    path = urlparse(url).path.lower()
    dot = path.rfind(".")
    if dot == -1 or "/" in path[dot:]:
        return ""
    return path[dot:]


def classify_url(url: str) -> Optional[MediaKind]:
    """Classify a media URL by extension, then by path keywords."""

    extension = _extension(url)
    if extension in IMAGE_EXTENSIONS:
        return MediaKind.IMAGE
    if extension in VIDEO_EXTENSIONS:
        return MediaKind.VIDEO
    path = urlparse(url).path.lower()
    if any(hint in path for hint in VIDEO_PATH_HINTS):
        return MediaKind.VIDEO
    if any(hint in path for hint in IMAGE_PATH_HINTS):
        return MediaKind.IMAGE
    return None


def validate(url: Optional[str], declared: Optional[MediaKind] = None) -> Optional[Media]:
    """Return a Media reference for ``url`` or ``None`` when it cannot be classified."""

    if not url:
        return None
    url = url.strip()
    if urlparse(url).scheme not in ("http", "https"):
        return None
    kind = classify_url(url)
    if kind is None and declared is not None:
        # Trust a declared type unless the extension says the file is something else.
        extension_mime = mime_from_extension(url)
        if extension_mime is None or extension_mime.startswith(f"{declared.value}/"):
            kind = declared
    if kind is None:
        LOGGER.debug("Dropping unclassifiable media URL %s", url)
        return None
    return Media(kind=kind, url=url)


def richest_markup(entry: Mapping[str, Any]) -> str:
    """Return the longest HTML-bearing field of a feed entry."""

    fields = []
    content = entry.get("content")
    if isinstance(content, (list, tuple)):
        fields.extend(block.get("value", "") for block in content if isinstance(block, Mapping))
    elif isinstance(content, str):
        fields.append(content)
    for key in ("content_encoded", "summary", "description"):
        value = entry.get(key)
        if isinstance(value, str):
            fields.append(value)
    return max(fields, key=len, default="")


def _from_enclosures(entry: Mapping[str, Any]) -> Optional[Media]:
    enclosures = list(entry.get("enclosures") or [])
    enclosures.extend(
        link for link in entry.get("links") or [] if isinstance(link, Mapping) and link.get("rel") == "enclosure"
    )
    for enclosure in enclosures:
        kind = _kind_from_mime(enclosure.get("type"))
        if kind is None:
            continue
        media = validate(enclosure.get("href") or enclosure.get("url"), declared=kind)
        if media:
            return media
    return None


def _from_media_content(entry: Mapping[str, Any]) -> Optional[Media]:
    for item in entry.get("media_content") or []:
        if not isinstance(item, Mapping):
            continue
        declared = _kind_from_mime(item.get("type")) or _kind_from_medium(item.get("medium"))
        media = validate(item.get("url"), declared=declared)
        if media:
            return media
    return None


def _kind_from_medium(medium: Optional[str]) -> Optional[MediaKind]:
    if medium == "image":
        return MediaKind.IMAGE
    if medium == "video":
        return MediaKind.VIDEO
    return None


def _from_markup(markup: str) -> Optional[Media]:
    if not markup or ("<" not in markup and "http" not in markup):
        return None
    soup = BeautifulSoup(markup, "html.parser")
    for video in soup.find_all("video"):
        media = validate(video.get("src"), declared=MediaKind.VIDEO)
        if media:
            return media
        for source in video.find_all("source"):
            media = validate(source.get("src"), declared=_kind_from_mime(source.get("type")) or MediaKind.VIDEO)
            if media:
                return media
    match = _BARE_VIDEO_LINK.search(markup)
    if match:
        media = validate(match.group(0))
        if media:
            return media
    for image in soup.find_all("img"):
        media = validate(image.get("src"), declared=MediaKind.IMAGE)
        if media:
            return media
    return None


def _from_thumbnail(entry: Mapping[str, Any]) -> Optional[Media]:
    thumbnail = _first(entry.get("media_thumbnail"))
    if thumbnail:
        media = validate(thumbnail.get("url"), declared=MediaKind.IMAGE)
        if media:
            return media
    image = entry.get("image")
    if isinstance(image, Mapping):
        image = image.get("href") or image.get("url")
    if isinstance(image, str):
        return validate(image, declared=MediaKind.IMAGE)
    return None


def resolve_media(entry: Mapping[str, Any]) -> Optional[Media]:
    """Return at most one validated media reference from a raw feed entry."""

    for resolver in (_from_enclosures, _from_media_content):
        media = resolver(entry)
        if media:
            return media
    media = _from_markup(richest_markup(entry))
    if media:
        return media
    return _from_thumbnail(entry)


@dataclass(frozen=True)
class Attachment:
    kind: MediaKind
    mime_type: str
    data: bytes
    url: str

    @property
    def filename(self) -> str:
        extension = mimetypes.guess_extension(self.mime_type) or ""
        return f"media{extension}"


def mime_from_extension(url: str) -> Optional[str]:
    extension = _extension(url)
    if not extension:
        return None
    mime, _ = mimetypes.guess_type(f"file{extension}")
    return mime


def fetch_attachment(
    media: Media,
    session: requests.Session,
    *,
    timeout: float = 10.0,
    max_image_bytes: int = 5 * 1024 * 1024,
    max_video_bytes: int = 15 * 1024 * 1024,
    allowed: Iterable[str] = SUPPORTED_MIME_TYPES,
) -> Optional[Attachment]:
    """Download ``media`` if its type is allowed and it fits the size limit.

    Returns ``None`` when the post should go out text-only.
    """

    allowed = frozenset(allowed)
    declared_mime = mime_from_extension(media.url)
    if declared_mime and declared_mime not in allowed:
        LOGGER.info("Media type %s not supported, posting text-only: %s", declared_mime, media.url)
        return None

    limit = max_video_bytes if media.kind is MediaKind.VIDEO else max_image_bytes
    response = None
    try:
        response = session.get(media.url, timeout=timeout, stream=True)
        response.raise_for_status()
        mime = declared_mime or (response.headers.get("Content-Type") or "").split(";")[0].strip().lower()
        if mime not in allowed:
            LOGGER.info("Media type %r not supported, posting text-only: %s", mime, media.url)
            return None
        chunks = []
        size = 0
        for chunk in response.iter_content(chunk_size=64 * 1024):
            size += len(chunk)
            if size > limit:
                LOGGER.warning("Media larger than %d bytes, posting text-only: %s", limit, media.url)
                return None
            chunks.append(chunk)
    except requests.RequestException as exc:
        LOGGER.warning("Unable to fetch media %s: %s", media.url, exc)
        return None
    finally:
        if response is not None:
            response.close()

    data = b"".join(chunks)
    if not data:
        return None
    kind = _kind_from_mime(mime) or media.kind
    return Attachment(kind=kind, mime_type=mime, data=data, url=media.url)
