"""Caller-supplied control hooks and observers for a scrape run."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, List, Optional

from .models import Order


class YearAction(str, Enum):
    SKIP = "skip"
    SCRAPE_WITH_CACHE = "scrape_with_cache"
    SCRAPE_WITHOUT_CACHE = "scrape_without_cache"
    STOP = "stop"


class OrderAction(str, Enum):
    SKIP = "skip"
    SCRAPE = "scrape"
    STOP = "stop"


def _scrape_every_year(year: int) -> YearAction:
    return YearAction.SCRAPE_WITH_CACHE


def _scrape_every_order(order_id: str, order_date: Optional[date]) -> OrderAction:
    return OrderAction.SCRAPE


@dataclass
class ScrapeHooks:
    """Control hooks decide what to scrape; the ``on_*`` observers only watch.

    ``on_before_year_scrape`` and ``on_before_order_scrape`` run before each
    unit of work, so returning ``STOP`` ends the run between units.
    """

    on_before_year_scrape: Callable[[int], YearAction] = _scrape_every_year
    on_before_order_scrape: Callable[[str, Optional[date]], OrderAction] = _scrape_every_order
    on_cache_hit: Optional[Callable[[str], None]] = None
    on_cache_miss: Optional[Callable[[str, str], None]] = None
    on_order_scraped: Optional[Callable[[Order], None]] = None
    on_year_complete: Optional[Callable[[int, List[Order]], None]] = None
    on_token: Optional[Callable[[str, str], None]] = None
    on_state_change: Optional[Callable[[str, str], None]] = None


def date_range_hooks(start: date, end: date, *, base: Optional[ScrapeHooks] = None) -> ScrapeHooks:
    """Hooks that scrape only orders placed between ``start`` and ``end`` inclusive.

    Years and orders arrive newest first, so anything older than ``start``
    stops the run and anything newer than ``end`` is skipped. Each order id is
    scraped at most once per run, even across retries.
    """

    if start > end:
        start, end = end, start
    seen: set[str] = set()
    base = base or ScrapeHooks()
    observe = base.on_order_scraped

    def on_before_year_scrape(year: int) -> YearAction:
        if year > end.year:
            return YearAction.SKIP
        if year < start.year:
            return YearAction.STOP
        return YearAction.SCRAPE_WITH_CACHE

    def on_before_order_scrape(order_id: str, order_date: Optional[date]) -> OrderAction:
        if order_id in seen:
            return OrderAction.SKIP
        if order_date is None:
            return OrderAction.SCRAPE
        if order_date > end:
            return OrderAction.SKIP
        if order_date < start:
            return OrderAction.STOP
        return OrderAction.SCRAPE

    def on_order_scraped(order: Order) -> None:
        seen.add(order.id)
        if observe:
            observe(order)

    return ScrapeHooks(
        on_before_year_scrape=on_before_year_scrape,
        on_before_order_scrape=on_before_order_scrape,
        on_cache_hit=base.on_cache_hit,
        on_cache_miss=base.on_cache_miss,
        on_order_scraped=on_order_scraped,
        on_year_complete=base.on_year_complete,
        on_token=base.on_token,
        on_state_change=base.on_state_change,
    )
