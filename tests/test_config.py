from pathlib import Path

import pytest

from order_scraper.config import Config, ConfigError


def test_defaults_apply_when_environment_is_empty():
    cfg = Config.load_from_env({"ORDER_SCRAPER_DATA_DIR": "/tmp/orders"})

    assert cfg.data_dir == Path("/tmp/orders")
    assert cfg.database_url == "sqlite+aiosqlite:////tmp/orders/orders.db"
    assert cfg.root_url == "https://www.amazon.com"
    assert cfg.user == "default"
    assert cfg.headless is True
    assert cfg.interaction_allowed is True
    assert (cfg.min_delay_ms, cfg.max_delay_ms) == (500, 1500)
    assert cfg.fetch_max_attempts == 3
    assert cfg.profile_dir("alice") == Path("/tmp/orders/profiles/alice")


def test_values_are_parsed_and_cleaned():
    cfg = Config.load_from_env(
        {
            "ORDER_SCRAPER_ROOT_URL": "https://www.amazon.co.uk/",
            "ORDER_SCRAPER_HEADLESS": "off",
            "ORDER_SCRAPER_MIN_DELAY_MS": "0",
            "ORDER_SCRAPER_MAX_DELAY_MS": "10",
            "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
        }
    )

    assert cfg.root_url == "https://www.amazon.co.uk"
    assert cfg.headless is False
    assert cfg.max_delay_ms == 10
    assert cfg.database_url == "sqlite+aiosqlite:///:memory:"


@pytest.mark.parametrize(
    "environ",
    [
        {"ORDER_SCRAPER_HEADLESS": "maybe"},
        {"ORDER_SCRAPER_FETCH_MAX_ATTEMPTS": "0"},
        {"ORDER_SCRAPER_MIN_DELAY_MS": "fast"},
        {"ORDER_SCRAPER_MIN_DELAY_MS": "100", "ORDER_SCRAPER_MAX_DELAY_MS": "50"},
        {"ORDER_SCRAPER_ROOT_URL": "www.amazon.com"},
        {"ORDER_SCRAPER_USER": "  "},
    ],
)
def test_invalid_values_raise_config_error(environ):
    with pytest.raises(ConfigError):
        Config.load_from_env(environ)
