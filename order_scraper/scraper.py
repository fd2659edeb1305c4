"""Walk the order history pages and turn every invoice into an :class:`Order`.

Each page goes through the same acquisition path:

1. ask a page-specific cache check whether a cached copy can be trusted;
2. parse the cached copy; if that fails the entry is deleted and treated as a
   miss;
3. otherwise navigate the single shared browser page, retrying navigation
   errors with a linearly growing pause;
4. parse the live content and cache it, unless the browser ended up on a
   different URL (a redirect to a sign-in or verification page).

Only one page is ever loaded at a time, and every navigation waits for a
random delay minus the time already spent since the previous one.
"""
from __future__ import annotations

import asyncio
import random
import re
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Awaitable, Callable, List, Optional, Tuple
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import Tag
from playwright.async_api import Error as PlaywrightError

from .common.date_utils import aware_now, order_age_days
from .errors import CacheCorruptionError, InvoiceParsingFailedError, ScrapeError, SignInRequiredError, TransientFetchError
from .hooks import OrderAction, ScrapeHooks, YearAction
from .invoice_parser import ParserHooks, parse_invoice_html
from .invoice_parser.patterns import DATE_MMMM_DD_YYYY_PATTERN, ORDER_ID_PATTERN
from .invoice_parser.tokenizer import parse_html, tokenize
from .json_logger import JsonLogger, log_event
from .models import Order
from .order_builder import normalize_date

CACHE_KEY_VERSION = "v1"
ORDERS_PATH = "/your-orders/orders"
YEAR_ORDERS_PATH = "/your-orders/orders?timeFilter=year-{year}"
YEAR_FILTER_SELECTOR = 'select[name="timeFilter"] option'
INVOICE_LINK_SELECTOR = '.order-header__header-link-list-item a[href*="print.html"]'
NEXT_PAGE_SELECTOR = "li.a-last a"
ORDER_CARD_CLASSES = ("order-card", "js-order-card", "order")
MIN_INVOICE_CACHE_AGE_DAYS = 30

_YEAR_OPTION_RE = re.compile(r"^year-(\d{4})$")
_ORDER_ID_RE = re.compile(ORDER_ID_PATTERN)
_DATE_RE = re.compile(DATE_MMMM_DD_YYYY_PATTERN, re.IGNORECASE)

CacheCheck = Callable[[str], Awaitable[Optional[str]]]


@dataclass(frozen=True)
class ScraperSettings:
    user: str
    root_url: str = "https://www.amazon.com"
    min_delay_ms: int = 500
    max_delay_ms: int = 1500
    fetch_max_attempts: int = 3
    fetch_retry_backoff_ms: int = 2000
    min_invoice_cache_age_days: int = MIN_INVOICE_CACHE_AGE_DAYS
    years: Tuple[int, ...] = ()

    @classmethod
    def from_config(cls, cfg: Any, *, user: Optional[str] = None, years: Tuple[int, ...] = ()) -> "ScraperSettings":
        return cls(
            user=user or cfg.user,
            root_url=cfg.root_url,
            min_delay_ms=cfg.min_delay_ms,
            max_delay_ms=cfg.max_delay_ms,
            fetch_max_attempts=cfg.fetch_max_attempts,
            fetch_retry_backoff_ms=cfg.fetch_retry_backoff_ms,
            years=tuple(years),
        )


@dataclass(frozen=True)
class OrderListEntry:
    order_id: str
    order_date: Optional[date]
    invoice_url: str


@dataclass(frozen=True)
class OrderListPage:
    url: str
    entries: Tuple[OrderListEntry, ...]
    next_page_url: Optional[str]


@dataclass
class ScrapeSummary:
    years: List[int] = field(default_factory=list)
    skipped_years: List[int] = field(default_factory=list)
    orders: List[Order] = field(default_factory=list)
    stopped: bool = False

    def add_order(self, order: Order) -> None:
        for index, existing in enumerate(self.orders):
            if existing.id == order.id:
                self.orders[index] = order
                return
        self.orders.append(order)


class StopScraping(Exception):
    """Raised internally when a control hook asks to stop."""


def _order_id_from_url(url: str) -> Optional[str]:
    values = parse_qs(urlparse(url).query).get("orderID")
    if values:
        return values[0]
    match = _ORDER_ID_RE.search(url)
    return match.group(0) if match else None


def _order_card_date(link: Tag) -> Optional[date]:
    card = None
    for parent in link.parents:
        classes = parent.get("class") or []
        if any(name in classes for name in ORDER_CARD_CLASSES):
            card = parent
            break
    if card is None:
        return None

    tokens = tokenize(card)
    for index, token in enumerate(tokens):
        if not token.lower().startswith("order placed"):
            continue
        for candidate in tokens[index : index + 2]:
            match = _DATE_RE.search(candidate)
            if match:
                try:
                    return date.fromisoformat(normalize_date(match["year"], match["month"], match["day"]))
                except ValueError:
                    return None
    return None


def parse_years(url: str, content: str, page: Any = None) -> List[int]:
    """Years offered by the orders page's time filter, newest first."""

    soup = parse_html(content)
    years = set()
    for option in soup.select(YEAR_FILTER_SELECTOR):
        match = _YEAR_OPTION_RE.match(option.get("value", ""))
        if match:
            years.add(int(match.group(1)))
    if not years:
        raise SignInRequiredError(f"No year filter found on {url}", url=url, content=content, page=page)
    return sorted(years, reverse=True)


def parse_order_list(url: str, content: str, page: Any = None) -> OrderListPage:
    """Invoice links (in page order) and the next-page link of an order list page."""

    soup = parse_html(content)
    links = soup.select(INVOICE_LINK_SELECTOR)
    if not links:
        raise SignInRequiredError(f"No invoice links found on {url}", url=url, content=content, page=page)

    entries = []
    for link in links:
        invoice_url = urljoin(url, link.get("href", ""))
        order_id = _order_id_from_url(invoice_url) or ""
        entries.append(OrderListEntry(order_id=order_id, order_date=_order_card_date(link), invoice_url=invoice_url))

    next_link = soup.select_one(NEXT_PAGE_SELECTOR)
    next_href = next_link.get("href") if next_link is not None else None
    return OrderListPage(
        url=url,
        entries=tuple(entries),
        next_page_url=urljoin(url, next_href) if next_href else None,
    )


class Scraper:
    def __init__(
        self,
        *,
        settings: ScraperSettings,
        store: Any,
        browser: Any,
        logger: JsonLogger,
        hooks: Optional[ScrapeHooks] = None,
        clock: Callable[[], datetime] = aware_now,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        delay_source: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.settings = settings
        self.store = store
        self.browser = browser
        self.logger = logger.bind(user=settings.user)
        self.hooks = hooks or ScrapeHooks()
        self._clock = clock
        self._sleep = sleep
        self._delay_source = delay_source
        self._page: Any = None
        self._last_navigation_at: Optional[float] = None
        self._parser_hooks = ParserHooks(on_token=self.hooks.on_token, on_state_change=self.hooks.on_state_change)

    # -- urls and keys ------------------------------------------------------

    def cache_key(self, url: str) -> str:
        return f"{CACHE_KEY_VERSION}:user:{self.settings.user}:url:{url}"

    @property
    def orders_url(self) -> str:
        return urljoin(self.settings.root_url, ORDERS_PATH)

    def year_url(self, year: int) -> str:
        return urljoin(self.settings.root_url, YEAR_ORDERS_PATH.format(year=year))

    # -- observers ----------------------------------------------------------

    def _cache_hit(self, key: str) -> None:
        log_event(logger=self.logger, phase="cache", message="cache hit", key=key)
        if self.hooks.on_cache_hit:
            self.hooks.on_cache_hit(key)

    def _cache_miss(self, key: str, reason: str) -> None:
        log_event(logger=self.logger, phase="cache", message="cache miss", key=key, reason=reason)
        if self.hooks.on_cache_miss:
            self.hooks.on_cache_miss(key, reason)

    # -- browser ------------------------------------------------------------

    async def _get_page(self) -> Any:
        if self._page is None or self._page.is_closed():
            self._page = await self.browser.new_page()
        return self._page

    async def _navigate(self, url: str) -> Any:
        page = await self._get_page()
        if page.url == url:
            return page

        if self._last_navigation_at is not None:
            wanted = self._delay_source(self.settings.min_delay_ms, self.settings.max_delay_ms) / 1000
            remaining = wanted - (time.monotonic() - self._last_navigation_at)
            if remaining > 0:
                await self._sleep(remaining)

        try:
            await page.goto(url)
        finally:
            self._last_navigation_at = time.monotonic()
        return page

    async def _fetch_live(self, url: str) -> Tuple[str, str, Any]:
        attempts = self.settings.fetch_max_attempts
        for attempt in range(1, attempts + 1):
            try:
                page = await self._navigate(url)
                content = await page.content()
                return content, page.url, page
            except PlaywrightError as exc:
                if attempt >= attempts:
                    log_event(
                        logger=self.logger,
                        phase="fetch",
                        status="error",
                        message="navigation failed; giving up",
                        url=url,
                        attempt=attempt,
                        error=str(exc),
                    )
                    raise TransientFetchError(
                        f"Could not load {url} after {attempt} attempts: {exc}", url=url, attempts=attempt
                    ) from exc
                backoff = self.settings.fetch_retry_backoff_ms * attempt / 1000
                log_event(
                    logger=self.logger,
                    phase="fetch",
                    status="warn",
                    message="navigation failed; retrying",
                    url=url,
                    attempt=attempt,
                    backoff_seconds=backoff,
                    error=str(exc),
                )
                await self._sleep(backoff)
        raise AssertionError("unreachable")

    async def _acquire(
        self,
        url: str,
        *,
        check_cache: CacheCheck,
        parse: Callable[[str, str, Any], Awaitable[Any]],
        cacheable: Callable[[Any], bool] = lambda result: True,
    ) -> Any:
        key = self.cache_key(url)
        cached = await check_cache(key)
        if cached is not None:
            try:
                result = await parse(url, cached, None)
            except ScrapeError as exc:
                corruption = CacheCorruptionError(key, exc)
                log_event(
                    logger=self.logger,
                    phase="cache",
                    status="warn",
                    message="discarding cached content that no longer parses",
                    key=key,
                    kind=corruption.kind.value,
                    error=str(exc),
                )
                await self.store.delete_cache(key)
                self._cache_miss(key, str(corruption))
            else:
                self._cache_hit(key)
                return result

        content, final_url, page = await self._fetch_live(url)
        result = await parse(url, content, page)
        if final_url != url:
            log_event(
                logger=self.logger,
                phase="cache",
                status="warn",
                message="not caching page that resolved to a different URL",
                url=url,
                final_url=final_url,
            )
        elif cacheable(result):
            await self.store.update_cache(key, content)
        return result

    # -- cache policies -----------------------------------------------------

    async def _check_cache(self, key: str) -> Optional[str]:
        content = await self.store.check_cache(key)
        if content is None:
            self._cache_miss(key, "not cached")
        return content

    async def _check_years_cache(self, key: str) -> Optional[str]:
        content = await self._check_cache(key)
        if content is None:
            return None
        now = self._clock()
        required = [now.year]
        if now.month == 1:
            required.append(now.year - 1)
        try:
            offered = parse_years(self.orders_url, content)
        except SignInRequiredError:
            self._cache_miss(key, "cached orders page has no year filter")
            return None
        missing = [year for year in required if year not in offered]
        if missing:
            self._cache_miss(key, f"cached orders page does not offer {missing}")
            return None
        return content

    async def _check_year_list_cache(self, key: str, url: str, year: int, use_cache: bool) -> Optional[str]:
        if not use_cache:
            self._cache_miss(key, f"cache disabled for {year}")
            return None
        content = await self._check_cache(key)
        if content is None or year < self._clock().year:
            return content

        # Current year: reuse only if every invoice on the page is already cached.
        try:
            listing = parse_order_list(url, content)
        except ScrapeError:
            return content
        for entry in listing.entries:
            if await self.store.check_cache(self.cache_key(entry.invoice_url)) is None:
                self._cache_miss(key, f"current-year page lists uncached invoice {entry.invoice_url}")
                return None
        return content

    def _old_enough_to_cache(self, order: Order) -> bool:
        age = order_age_days(order.date, self._clock().date())
        return age >= self.settings.min_invoice_cache_age_days

    async def _check_invoice_cache(self, key: str) -> Optional[str]:
        content = await self._check_cache(key)
        if content is None:
            return None
        try:
            order = parse_invoice_html(content)
        except ValueError:
            return content
        if not self._old_enough_to_cache(order):
            self._cache_miss(key, f"order {order.id} is too recent to trust its cached invoice")
            return None
        return content

    # -- parsing ------------------------------------------------------------

    async def _parse_years(self, url: str, content: str, page: Any) -> List[int]:
        return parse_years(url, content, page)

    async def _parse_order_list(self, url: str, content: str, page: Any) -> OrderListPage:
        return parse_order_list(url, content, page)

    async def _parse_invoice(self, url: str, content: str, page: Any) -> Order:
        if not _ORDER_ID_RE.search(content):
            raise SignInRequiredError(f"No order id found on invoice page {url}", url=url, content=content, page=page)
        try:
            order = parse_invoice_html(content, hooks=self._parser_hooks)
        except ValueError as exc:
            raise InvoiceParsingFailedError(str(exc), content=content, url=url) from exc
        await self.store.save_order(order, self.settings.user, url, content)
        return order

    # -- public operations --------------------------------------------------

    async def get_years(self) -> List[int]:
        if self.settings.years:
            return sorted(set(self.settings.years), reverse=True)
        return await self._acquire(self.orders_url, check_cache=self._check_years_cache, parse=self._parse_years)

    async def scrape_invoice(self, invoice_url: str) -> Order:
        order = await self._acquire(
            invoice_url,
            check_cache=self._check_invoice_cache,
            parse=self._parse_invoice,
            cacheable=self._old_enough_to_cache,
        )
        log_event(logger=self.logger, phase="scrape", message="order scraped", order_id=order.id, order_date=order.date)
        if self.hooks.on_order_scraped:
            self.hooks.on_order_scraped(order)
        return order

    async def _scrape_year(self, year: int, use_cache: bool, summary: ScrapeSummary) -> None:
        url: Optional[str] = self.year_url(year)
        visited: set[str] = set()
        orders: List[Order] = []
        log_event(logger=self.logger, phase="scrape", message="scraping year", year=year, use_cache=use_cache)

        while url and url not in visited:
            visited.add(url)
            listing: OrderListPage = await self._acquire(
                url,
                check_cache=lambda key, page_url=url: self._check_year_list_cache(key, page_url, year, use_cache),
                parse=self._parse_order_list,
            )
            for entry in listing.entries:
                action = self.hooks.on_before_order_scrape(entry.order_id, entry.order_date)
                if action is OrderAction.STOP:
                    raise StopScraping(f"stop requested before order {entry.order_id}")
                if action is OrderAction.SKIP:
                    log_event(logger=self.logger, phase="scrape", message="order skipped", order_id=entry.order_id)
                    continue
                order = await self.scrape_invoice(entry.invoice_url)
                orders.append(order)
                summary.add_order(order)
            url = listing.next_page_url

        await self.store.mark_year_complete(year, self.settings.user)
        if year not in summary.years:
            summary.years.append(year)
        log_event(logger=self.logger, phase="scrape", message="year complete", year=year, orders=len(orders))
        if self.hooks.on_year_complete:
            self.hooks.on_year_complete(year, orders)

    async def scrape_year(self, year: int, *, use_cache: bool = True) -> ScrapeSummary:
        summary = ScrapeSummary()
        try:
            await self._scrape_year(year, use_cache, summary)
        except StopScraping as stop:
            summary.stopped = True
            log_event(logger=self.logger, phase="scrape", message=str(stop), year=year)
        return summary

    async def scrape(self, summary: Optional[ScrapeSummary] = None) -> ScrapeSummary:
        """Scrape every year the caller's hooks allow, newest first.

        Passing the ``summary`` of an interrupted run keeps what it collected.
        """

        summary = summary if summary is not None else ScrapeSummary()
        summary.stopped = False
        years = await self.get_years()
        try:
            for year in years:
                action = self.hooks.on_before_year_scrape(year)
                if action is YearAction.STOP:
                    raise StopScraping(f"stop requested before year {year}")
                if action is YearAction.SKIP:
                    if year not in summary.skipped_years:
                        summary.skipped_years.append(year)
                    continue
                await self._scrape_year(year, action is YearAction.SCRAPE_WITH_CACHE, summary)
        except StopScraping as stop:
            summary.stopped = True
            log_event(logger=self.logger, phase="scrape", message=str(stop))
        return summary

    async def close(self) -> None:
        page, self._page = self._page, None
        try:
            if page is not None and not page.is_closed():
                await page.close()
        finally:
            await self.browser.close()
