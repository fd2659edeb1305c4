"""
Runtime configuration for order_scraper.

Settings are read from the environment exactly once (a ``.env`` file at the
project root is loaded first; real environment variables take precedence) and
cached in the frozen ``config`` object below. Every key is optional and falls
back to the value in ``DEFAULTS``.

To use a config value, import:

    from order_scraper.config import config

Other modules should not read ``os.environ`` for these keys directly.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parents[1]

load_dotenv(PROJECT_ROOT / ".env")

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".order-scraper"

DEFAULTS: dict[str, str] = {
    "ORDER_SCRAPER_DATA_DIR": str(DEFAULT_DATA_DIR),
    "DATABASE_URL": "",
    "ORDER_SCRAPER_ROOT_URL": "https://www.amazon.com",
    "ORDER_SCRAPER_USER": "default",
    "ORDER_SCRAPER_HEADLESS": "true",
    "ORDER_SCRAPER_INTERACTION_ALLOWED": "true",
    "ORDER_SCRAPER_MIN_DELAY_MS": "500",
    "ORDER_SCRAPER_MAX_DELAY_MS": "1500",
    "ORDER_SCRAPER_FETCH_MAX_ATTEMPTS": "3",
    "ORDER_SCRAPER_FETCH_RETRY_BACKOFF_MS": "2000",
    "ORDER_SCRAPER_CHROME_EXECUTABLE": "",
    "ORDER_SCRAPER_FIXTURES_DIR": "fixtures",
    "JSON_LOG_FILE": "",
    "PIPELINE_TIMEZONE": "America/Los_Angeles",
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    message = f"Config key {key} must be a boolean string; got {value!r}"
    logger.error(message)
    raise ConfigError(message)


def _parse_int(value: str, *, key: str, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except (TypeError, ValueError):
        message = f"Config key {key} must be an integer; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    if parsed < minimum:
        message = f"Config key {key} must be >= {minimum}; got {parsed}"
        logger.error(message)
        raise ConfigError(message)
    return parsed


def _clean_url(value: str, *, key: str) -> str:
    stripped = value.strip().rstrip("/")
    if not stripped.startswith(("http://", "https://")):
        message = f"Config key {key} must be an http(s) URL; got {value!r}"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def _clean_text(value: str, *, key: str) -> str:
    stripped = value.strip()
    if not stripped:
        message = f"Config key {key} cannot be blank"
        logger.error(message)
        raise ConfigError(message)
    return stripped


def _read_values(environ: Mapping[str, str]) -> dict[str, str]:
    return {key: environ.get(key, default) for key, default in DEFAULTS.items()}


def default_database_url(data_dir: Path) -> str:
    return f"sqlite+aiosqlite:///{data_dir / 'orders.db'}"


@dataclass(slots=True, frozen=True)
class Config:
    data_dir: Path
    database_url: str
    root_url: str
    user: str
    headless: bool
    interaction_allowed: bool
    min_delay_ms: int
    max_delay_ms: int
    fetch_max_attempts: int
    fetch_retry_backoff_ms: int
    chrome_executable: str
    fixtures_dir: Path
    json_log_file: str
    pipeline_timezone: str

    @property
    def profiles_dir(self) -> Path:
        return self.data_dir / "profiles"

    def profile_dir(self, user: str) -> Path:
        return self.profiles_dir / user

    @classmethod
    def load_from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        values = _read_values(os.environ if environ is None else environ)

        data_dir = Path(_clean_text(values["ORDER_SCRAPER_DATA_DIR"], key="ORDER_SCRAPER_DATA_DIR")).expanduser()
        database_url = values["DATABASE_URL"].strip() or default_database_url(data_dir)

        min_delay_ms = _parse_int(values["ORDER_SCRAPER_MIN_DELAY_MS"], key="ORDER_SCRAPER_MIN_DELAY_MS")
        max_delay_ms = _parse_int(values["ORDER_SCRAPER_MAX_DELAY_MS"], key="ORDER_SCRAPER_MAX_DELAY_MS")
        if max_delay_ms < min_delay_ms:
            message = (
                "ORDER_SCRAPER_MAX_DELAY_MS must not be lower than ORDER_SCRAPER_MIN_DELAY_MS "
                f"({max_delay_ms} < {min_delay_ms})"
            )
            logger.error(message)
            raise ConfigError(message)

        return cls(
            data_dir=data_dir,
            database_url=database_url,
            root_url=_clean_url(values["ORDER_SCRAPER_ROOT_URL"], key="ORDER_SCRAPER_ROOT_URL"),
            user=_clean_text(values["ORDER_SCRAPER_USER"], key="ORDER_SCRAPER_USER"),
            headless=_parse_bool(values["ORDER_SCRAPER_HEADLESS"], key="ORDER_SCRAPER_HEADLESS"),
            interaction_allowed=_parse_bool(
                values["ORDER_SCRAPER_INTERACTION_ALLOWED"], key="ORDER_SCRAPER_INTERACTION_ALLOWED"
            ),
            min_delay_ms=min_delay_ms,
            max_delay_ms=max_delay_ms,
            fetch_max_attempts=_parse_int(
                values["ORDER_SCRAPER_FETCH_MAX_ATTEMPTS"], key="ORDER_SCRAPER_FETCH_MAX_ATTEMPTS", minimum=1
            ),
            fetch_retry_backoff_ms=_parse_int(
                values["ORDER_SCRAPER_FETCH_RETRY_BACKOFF_MS"], key="ORDER_SCRAPER_FETCH_RETRY_BACKOFF_MS"
            ),
            chrome_executable=values["ORDER_SCRAPER_CHROME_EXECUTABLE"].strip(),
            fixtures_dir=Path(
                _clean_text(values["ORDER_SCRAPER_FIXTURES_DIR"], key="ORDER_SCRAPER_FIXTURES_DIR")
            ).expanduser(),
            json_log_file=values["JSON_LOG_FILE"].strip(),
            pipeline_timezone=_clean_text(values["PIPELINE_TIMEZONE"], key="PIPELINE_TIMEZONE"),
        )


config = Config.load_from_env()
