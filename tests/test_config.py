from __future__ import annotations

import pytest

from dailysnap import __main__ as cli
from dailysnap.config import TWITTER_ENV_VARS, ConfigError, DiversityConfig, load_config, parse_feeds


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in TWITTER_ENV_VARS + ("GEMINI_API_KEY", "DAILYSNAP_FEEDS", "DAILYSNAP_SELECTION_MODE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DAILYSNAP_DATA_DIR", str(tmp_path / "data"))
    return monkeypatch


def test_defaults_and_data_dir_created(clean_env, tmp_path):
    config = load_config()
    assert config.data_dir == tmp_path / "data"
    assert config.data_dir.is_dir()
    assert config.history_file == tmp_path / "data" / "posted_links.json"
    assert config.band.minimum == 240 and config.band.maximum == 280
    assert config.lookback_hours == 2.0
    assert len(config.feeds) == 4


def test_missing_credentials_are_listed(clean_env):
    clean_env.setenv("X_API_KEY", "k")
    config = load_config()
    with pytest.raises(ConfigError) as excinfo:
        config.require_credentials()
    message = str(excinfo.value)
    assert "GEMINI_API_KEY" in message
    assert "X_ACCESS_SECRET" in message
    assert "X_API_KEY" not in message


def test_cli_exits_non_zero_without_credentials(clean_env):
    assert cli.main([]) == 2


def test_parse_feeds_accepts_named_and_bare_urls():
    feeds = parse_feeds("hindu=https://thehindu.com/rss, https://example.com/feed")
    assert [(f.name, f.url) for f in feeds] == [
        ("hindu", "https://thehindu.com/rss"),
        ("feed2", "https://example.com/feed"),
    ]


def test_unknown_selection_mode_rejected():
    with pytest.raises(ConfigError):
        DiversityConfig(mode="random")


def test_selection_mode_from_environment(clean_env):
    clean_env.setenv("DAILYSNAP_SELECTION_MODE", "Balanced")
    assert load_config().diversity.mode == "balanced"
