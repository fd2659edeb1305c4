from datetime import date

from order_scraper.hooks import OrderAction, ScrapeHooks, YearAction, date_range_hooks
from order_scraper.models import Order
from order_scraper.money import parse_monetary_amount


def _order(order_id: str, placed_on: str) -> Order:
    zero = parse_monetary_amount("$0.00")
    return Order(
        id=order_id,
        currency="$",
        date=placed_on,
        shipments=[],
        payments=[],
        subtotal=zero,
        tax=zero,
        total=zero,
    )


def test_default_hooks_scrape_everything():
    hooks = ScrapeHooks()

    assert hooks.on_before_year_scrape(2020) is YearAction.SCRAPE_WITH_CACHE
    assert hooks.on_before_order_scrape("111-2222222-3333333", None) is OrderAction.SCRAPE


def test_date_range_years_skip_newer_and_stop_at_older():
    hooks = date_range_hooks(date(2022, 3, 1), date(2023, 6, 30))

    assert hooks.on_before_year_scrape(2024) is YearAction.SKIP
    assert hooks.on_before_year_scrape(2023) is YearAction.SCRAPE_WITH_CACHE
    assert hooks.on_before_year_scrape(2022) is YearAction.SCRAPE_WITH_CACHE
    assert hooks.on_before_year_scrape(2021) is YearAction.STOP


def test_date_range_orders_are_bounded_inclusively():
    hooks = date_range_hooks(date(2022, 3, 1), date(2023, 6, 30))
    decide = hooks.on_before_order_scrape

    assert decide("111-0000000-0000001", date(2023, 7, 1)) is OrderAction.SKIP
    assert decide("111-0000000-0000002", date(2023, 6, 30)) is OrderAction.SCRAPE
    assert decide("111-0000000-0000003", date(2022, 3, 1)) is OrderAction.SCRAPE
    assert decide("111-0000000-0000004", date(2022, 2, 28)) is OrderAction.STOP
    assert decide("111-0000000-0000005", None) is OrderAction.SCRAPE


def test_date_range_accepts_reversed_bounds():
    hooks = date_range_hooks(date(2023, 6, 30), date(2022, 3, 1))

    assert hooks.on_before_order_scrape("111-0000000-0000001", date(2023, 1, 1)) is OrderAction.SCRAPE


def test_date_range_skips_orders_already_scraped_and_chains_observers():
    scraped = []
    completed = []
    base = ScrapeHooks(on_order_scraped=scraped.append, on_year_complete=lambda year, orders: completed.append(year))
    hooks = date_range_hooks(date(2023, 1, 1), date(2023, 12, 31), base=base)
    order = _order("111-2222222-3333333", "2023-05-01")

    hooks.on_order_scraped(order)

    assert scraped == [order]
    assert hooks.on_before_order_scrape(order.id, date(2023, 5, 1)) is OrderAction.SKIP
    hooks.on_year_complete(2023, [order])
    assert completed == [2023]
