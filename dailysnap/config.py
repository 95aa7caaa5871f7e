"""Configuration utilities for the DailySnap news poster."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

DEFAULT_DATA_DIR = Path(os.getenv("DAILYSNAP_DATA_DIR", "."))
DEFAULT_HISTORY_FILE = DEFAULT_DATA_DIR / "posted_links.json"
DEFAULT_STATS_FILE = DEFAULT_DATA_DIR / "source_stats.json"

SELECTION_MODES = ("linear", "balanced", "round_robin", "strict_rotation")


class ConfigError(RuntimeError):
    """Raised when the run cannot start because setup is incomplete."""


@dataclass(frozen=True)
class FeedSource:
    name: str
    url: str


DEFAULT_FEEDS: Tuple[FeedSource, ...] = (
    FeedSource("hindustantimes", "https://www.hindustantimes.com/feeds/rss/latest/rssfeed.xml"),
    FeedSource("ndtv", "https://feeds.feedburner.com/ndtvnews-top-stories"),
    FeedSource("indianexpress", "https://indianexpress.com/section/india/feed/"),
    FeedSource("thehindu", "https://www.thehindu.com/news/national/feeder/default.rss"),
)


HIGH_PRIORITY_TERMS = frozenset(
    {
        "breaking",
        "prime minister",
        "supreme court",
        "high court",
        "election",
        "parliament",
        "lok sabha",
        "rajya sabha",
        "terror",
        "earthquake",
        "cyclone",
        "flood",
        "killed",
        "isro",
        "border",
    }
)

ECONOMIC_TERMS = frozenset(
    {
        "rbi",
        "sensex",
        "nifty",
        "gdp",
        "inflation",
        "budget",
        "rupee",
        "stock market",
        "repo rate",
        "gst",
        "fiscal",
        "exports",
    }
)

GENERAL_TERMS = frozenset(
    {
        "india",
        "government",
        "minister",
        "police",
        "court",
        "policy",
        "cricket",
        "protest",
        "students",
        "health",
        "monsoon",
        "chief minister",
    }
)


@dataclass(frozen=True)
class KeywordTables:
    """Keyword classes and their weights used by the relevance scorer."""

    high_priority: FrozenSet[str] = HIGH_PRIORITY_TERMS
    economic: FrozenSet[str] = ECONOMIC_TERMS
    general: FrozenSet[str] = GENERAL_TERMS
    high_priority_weight: float = 3.0
    economic_weight: float = 0.5
    general_weight: float = 1.0
    video_bonus: float = 5.0
    image_bonus: float = 3.0

    def __post_init__(self) -> None:
        classes = (self.high_priority, self.economic, self.general)
        for index, terms in enumerate(classes):
            for other in classes[index + 1 :]:
                overlap = terms & other
                if overlap:
                    raise ConfigError(f"Keyword classes overlap: {sorted(overlap)}")

    def weighted_classes(self) -> List[Tuple[FrozenSet[str], float]]:
        return [
            (self.high_priority, self.high_priority_weight),
            (self.economic, self.economic_weight),
            (self.general, self.general_weight),
        ]


@dataclass(frozen=True)
class LengthBand:
    minimum: int = 240
    maximum: int = 280
    ellipsis: str = "..."

    def contains(self, text: str) -> bool:
        return self.minimum <= len(text) <= self.maximum


@dataclass(frozen=True)
class DiversityConfig:
    """Toggles and thresholds for the diversity selector."""

    mode: str = "linear"
    penalty_enabled: bool = False
    penalty_weight: float = 2.0
    penalty_window: int = 20
    no_consecutive_domain: bool = True
    no_consecutive_feed: bool = False
    min_distinct_domains: int = 0
    distinct_window: int = 5
    max_domain_share: Optional[float] = None
    share_window: int = 10
    filter_slice: int = 30
    queue_size: int = 8

    def __post_init__(self) -> None:
        if self.mode not in SELECTION_MODES:
            raise ConfigError(
                f"Unknown selection mode {self.mode!r}; expected one of {', '.join(SELECTION_MODES)}"
            )
        if self.queue_size < 1:
            raise ConfigError("queue_size must be at least 1")


@dataclass(frozen=True)
class Config:
    """Runtime configuration values for one posting run."""

    gemini_api_key: Optional[str] = None
    twitter_credentials: Dict[str, Optional[str]] = field(default_factory=dict)
    feeds: Tuple[FeedSource, ...] = DEFAULT_FEEDS
    data_dir: Path = DEFAULT_DATA_DIR
    history_file: Path = DEFAULT_HISTORY_FILE
    stats_file: Optional[Path] = DEFAULT_STATS_FILE
    history_retention: int = 1000
    lookback_hours: float = 2.0
    min_body_chars: int = 300
    max_body_chars: int = 20000
    keywords: KeywordTables = field(default_factory=KeywordTables)
    diversity: DiversityConfig = field(default_factory=DiversityConfig)
    band: LengthBand = field(default_factory=LengthBand)
    summary_attempts: int = 3
    regenerate_overlong: bool = True
    summarizer_input_chars: int = 10000
    gemini_model: str = "gemini-2.0-flash"
    publish_attempts: int = 3
    publish_backoff: float = 5.0
    max_rate_limit_wait: float = 120.0
    run_attempts: int = 3
    run_backoff: float = 30.0
    pacing_seconds: float = 1.0
    http_timeout: float = 10.0
    max_image_bytes: int = 5 * 1024 * 1024
    max_video_bytes: int = 15 * 1024 * 1024
    user_agent: str = "Mozilla/5.0 (compatible; DailySnap/1.0)"

    def require_credentials(self) -> None:
        """Raise ConfigError naming every credential that is not set."""

        missing = [name for name, value in self.twitter_credentials.items() if not value]
        if not self.gemini_api_key:
            missing.insert(0, "GEMINI_API_KEY")
        if missing:
            raise ConfigError(f"Missing credentials: {', '.join(missing)}")


TWITTER_ENV_VARS = ("X_API_KEY", "X_API_SECRET", "X_ACCESS_TOKEN", "X_ACCESS_SECRET")


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "", "false", "no", "off")


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc


def _env_int(name: str, default: int) -> int:
    value = _env_float(name, default)
    return int(value) if value is not None else default


def parse_feeds(raw: str) -> Tuple[FeedSource, ...]:
    """Parse ``name=url`` or bare URL entries separated by commas."""

    feeds = []
    for index, chunk in enumerate(raw.split(",")):
        chunk = chunk.strip()
        if not chunk:
            continue
        if "=" in chunk and not chunk.lower().startswith("http"):
            name, url = chunk.split("=", 1)
            feeds.append(FeedSource(name.strip(), url.strip()))
        else:
            feeds.append(FeedSource(f"feed{index + 1}", chunk))
    return tuple(feeds)


def load_config() -> Config:
    """Load configuration from environment variables and defaults."""

    data_dir = Path(os.getenv("DAILYSNAP_DATA_DIR", str(DEFAULT_DATA_DIR)))
    history_file = Path(os.getenv("DAILYSNAP_HISTORY_FILE", str(data_dir / "posted_links.json")))
    stats_env = os.getenv("DAILYSNAP_STATS_FILE")
    if stats_env is not None and not stats_env.strip():
        stats_file: Optional[Path] = None
    else:
        stats_file = Path(stats_env) if stats_env else data_dir / "source_stats.json"

    feeds_env = os.getenv("DAILYSNAP_FEEDS")
    feeds = parse_feeds(feeds_env) if feeds_env else DEFAULT_FEEDS

    diversity = DiversityConfig(
        mode=os.getenv("DAILYSNAP_SELECTION_MODE", "linear").strip().lower(),
        penalty_enabled=_env_flag("DAILYSNAP_DOMAIN_PENALTY", False),
        penalty_weight=_env_float("DAILYSNAP_DOMAIN_PENALTY_WEIGHT", 2.0),
        no_consecutive_domain=_env_flag("DAILYSNAP_NO_CONSECUTIVE_DOMAIN", True),
        no_consecutive_feed=_env_flag("DAILYSNAP_NO_CONSECUTIVE_FEED", False),
        min_distinct_domains=_env_int("DAILYSNAP_MIN_DISTINCT_DOMAINS", 0),
        max_domain_share=_env_float("DAILYSNAP_MAX_DOMAIN_SHARE", None),
        queue_size=_env_int("DAILYSNAP_QUEUE_SIZE", 8),
    )

    config = Config(
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
        twitter_credentials={name: os.getenv(name) for name in TWITTER_ENV_VARS},
        feeds=feeds,
        data_dir=data_dir,
        history_file=history_file,
        stats_file=stats_file,
        lookback_hours=_env_float("DAILYSNAP_LOOKBACK_HOURS", 2.0),
        diversity=diversity,
    )

    # Ensure the data directory exists when configuration is loaded.
    config.data_dir.mkdir(parents=True, exist_ok=True)

    return config
