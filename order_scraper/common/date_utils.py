"""Timezone-aware date helpers shared by the scraper and the CLI."""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from dateutil import parser as date_parser

DURATION_UNITS: dict[str, tuple[str, ...]] = {
    "minutes": ("m", "min", "mins", "minute", "minutes"),
    "hours": ("h", "hr", "hrs", "hour", "hours"),
    "days": ("d", "day", "days"),
    "weeks": ("w", "wk", "wks", "week", "weeks"),
}

_UNIT_LOOKUP = {alias: unit for unit, aliases in DURATION_UNITS.items() for alias in aliases}

DURATION_RE = re.compile(
    r"^\s*(?P<value>-?\s*\d+(?:\.\d+)?)\s*(?P<unit>"
    + "|".join(sorted(_UNIT_LOOKUP, key=len, reverse=True))
    + r")\s*$",
    re.IGNORECASE,
)

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def get_timezone() -> ZoneInfo:
    """Return the configured pipeline timezone (``PIPELINE_TIMEZONE``)."""

    from order_scraper.config import config

    return ZoneInfo(config.pipeline_timezone)


def aware_now(tz: ZoneInfo | None = None) -> datetime:
    """Return ``datetime.now`` in the configured timezone."""

    return datetime.now(tz or get_timezone())


def parse_duration(value: str) -> timedelta | None:
    """Parse inputs such as ``"2 weeks"``, ``"-3d"`` or ``"1.5 hours"``.

    Returns ``None`` when ``value`` is not a duration.
    """

    match = DURATION_RE.match(value)
    if not match:
        return None
    amount = float(match.group("value").replace(" ", ""))
    unit = _UNIT_LOOKUP[match.group("unit").lower()]
    return timedelta(**{unit: amount})


def parse_date_input(value: str, reference: datetime) -> datetime:
    """Resolve a CLI date: ``YYYY-MM-DD`` or a duration counted back from ``reference``."""

    duration = parse_duration(value)
    if duration is not None:
        return reference - duration
    stripped = value.strip()
    if not ISO_DATE_RE.match(stripped):
        raise ValueError(f"Expected YYYY-MM-DD or a duration like '2 weeks'; got {value!r}")
    parsed = date_parser.isoparse(stripped)
    return parsed.replace(tzinfo=reference.tzinfo)


def order_age_days(order_date: str | date, today: date) -> int:
    """Number of whole days between an order's ``YYYY-MM-DD`` date and ``today``."""

    if isinstance(order_date, str):
        order_date = date_parser.isoparse(order_date).date()
    return (today - order_date).days
