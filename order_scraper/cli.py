from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import sys
from datetime import date
from typing import List, Optional

from order_scraper.common.date_utils import aware_now, parse_date_input
from order_scraper.common.db import dispose_engine
from order_scraper.errors import ErrorKind, ScrapeError
from order_scraper.hooks import ScrapeHooks, YearAction, date_range_hooks
from order_scraper.invoice_parser import tokenize
from order_scraper.json_logger import JsonLogger, get_logger, log_event, timed_event, new_run_id
from order_scraper.money import MonetaryAmount, format_monetary_amount, parse_monetary_amount
from order_scraper.models import Order
from order_scraper.store import DataStore

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_PARSE_FAILED = 2


def _amount_matches(actual: Optional[MonetaryAmount], wanted: MonetaryAmount) -> bool:
    if actual is None or actual.cents != wanted.cents:
        return False
    return wanted.currency is None or wanted.currency == actual.currency


def _format_order(order: Order) -> List[str]:
    shipping = format_monetary_amount(order.shipping_cost) if order.shipping_cost is not None else "-"
    lines = [
        " ".join(
            [
                order.date,
                order.id,
                format_monetary_amount(order.subtotal),
                format_monetary_amount(order.tax),
                shipping,
                format_monetary_amount(order.total),
            ]
        )
    ]
    for shipment in order.shipments:
        lines.append(f"  Shipped: {shipment.date or 'unknown'}")
        for item in shipment.items:
            quantity = f"{item.quantity} x " if item.quantity != 1 else ""
            lines.append(f"    {quantity}{item.name} {format_monetary_amount(item.price)}")
    for payment in order.payments:
        lines.append(f"  Paid: {payment.date} {format_monetary_amount(payment.amount)}")
    return lines


async def _open_store(logger: JsonLogger) -> DataStore:
    from order_scraper.config import config

    config.data_dir.mkdir(parents=True, exist_ok=True)
    store = DataStore(config.database_url, logger=logger)
    with timed_event(logger=logger, phase="store", message="store ready"):
        await store.initialize()
    return store


def _scrape_hooks(args: argparse.Namespace, logger: JsonLogger) -> ScrapeHooks:
    now = aware_now()

    def on_order_scraped(order: Order) -> None:
        print(f"Scraped order {order.id} ({order.date})", flush=True)

    def on_year_complete(year: int, orders: List[Order]) -> None:
        print(f"Scraped {len(orders)} order(s) for {year}", flush=True)

    hooks = ScrapeHooks(on_order_scraped=on_order_scraped, on_year_complete=on_year_complete)
    if args.date_from or args.date_to:
        start = parse_date_input(args.date_from, now).date() if args.date_from else date.min
        end = parse_date_input(args.date_to, now).date() if args.date_to else now.date()
        log_event(logger=logger, phase="scrape", message="limiting scrape to date range", start=start, end=end)
        hooks = date_range_hooks(start, end, base=hooks)

    if args.no_cache_current_year:
        decide_year = hooks.on_before_year_scrape

        def on_before_year_scrape(year: int) -> YearAction:
            action = decide_year(year)
            if year == now.year and action is YearAction.SCRAPE_WITH_CACHE:
                return YearAction.SCRAPE_WITHOUT_CACHE
            return action

        hooks = dataclasses.replace(hooks, on_before_year_scrape=on_before_year_scrape)
    return hooks


async def _cmd_scrape(args: argparse.Namespace, logger: JsonLogger) -> int:
    from order_scraper.config import config
    from order_scraper.fixtures import save_fixture
    from order_scraper.pipeline import browser_factory_for, run_scrape
    from order_scraper.scraper import ScraperSettings

    user = args.user or config.user
    try:
        hooks = _scrape_hooks(args, logger)
    except ValueError as exc:
        log_event(logger=logger, phase="prereq", status="error", message=str(exc))
        print(str(exc), file=sys.stderr)
        return EXIT_FAILURE

    store = await _open_store(logger)
    try:
        summary = await run_scrape(
            settings=ScraperSettings.from_config(config, user=user),
            store=store,
            logger=logger,
            browser_factory=browser_factory_for(cfg=config, user=user, logger=logger),
            hooks=hooks,
            headless=config.headless and not args.headed,
            interaction_allowed=config.interaction_allowed and not args.no_interaction,
        )
    except ScrapeError as exc:
        log_event(
            logger=logger,
            phase="orchestrator",
            status="error",
            message="scrape failed",
            kind=exc.kind.value,
            url=exc.url,
            error=str(exc),
        )
        print(str(exc), file=sys.stderr)
        if exc.kind is ErrorKind.INVOICE_PARSING_FAILED:
            if args.save_fixtures and exc.content:
                fixture_path = save_fixture(exc.content, config.fixtures_dir)
                log_event(logger=logger, phase="fixtures", message="saved fixture", path=str(fixture_path))
                print(f"Saved fixture to {fixture_path}", file=sys.stderr)
            return EXIT_PARSE_FAILED
        return EXIT_FAILURE

    print(f"Scraped {len(summary.orders)} order(s) across {len(summary.years)} year(s)")
    return EXIT_OK


async def _cmd_orders(args: argparse.Namespace, logger: JsonLogger) -> int:
    from order_scraper.config import config

    store = await _open_store(logger)
    orders = await store.get_orders(args.user or config.user)

    if args.total is not None:
        print(f"Filtering by total: {format_monetary_amount(args.total)}", file=sys.stderr)
        orders = [order for order in orders if _amount_matches(order.total, args.total)]
    if args.charge is not None:
        charge = args.charge
        if charge.currency is None:
            charge = charge.model_copy(update={"currency": "$"})
        print(f"Filtering by charge: {format_monetary_amount(charge)}", file=sys.stderr)
        orders = [
            order for order in orders if any(_amount_matches(payment.amount, charge) for payment in order.payments)
        ]

    if args.json:
        print(json.dumps([order.model_dump(mode="json") for order in orders], indent=2))
        return EXIT_OK
    for order in orders:
        print("\n".join(_format_order(order)))
    return EXIT_OK


async def _cmd_order_html(args: argparse.Namespace, logger: JsonLogger) -> int:
    store = await _open_store(logger)
    html = await store.get_invoice_html(args.order_id)
    if html is None:
        print(f"Invalid order ID: {args.order_id}", file=sys.stderr)
        return EXIT_FAILURE
    print(html)
    return EXIT_OK


async def _cmd_tokens(args: argparse.Namespace, logger: JsonLogger) -> int:
    from order_scraper.config import config

    store = await _open_store(logger)
    order_ids = list(args.order_ids) or [order.id for order in await store.get_orders(config.user)]
    for order_id in order_ids:
        html = await store.get_invoice_html(order_id)
        if html is None:
            print(f"Invalid order ID: {order_id}", file=sys.stderr)
            return EXIT_FAILURE
        for token in tokenize(html):
            print(token)
    return EXIT_OK


async def _cmd_years(args: argparse.Namespace, logger: JsonLogger) -> int:
    from order_scraper.config import config

    user = args.user or config.user
    store = await _open_store(logger)
    lines = []
    for year in sorted(await store.complete_years(user)):
        count = await store.count_orders_for_year(year, user)
        lines.append(f"* {year} ({count} orders)")
    print("# Complete years\n")
    print("\n".join(lines))
    return EXIT_OK


_COMMANDS = {
    "scrape": _cmd_scrape,
    "orders": _cmd_orders,
    "order-html": _cmd_order_html,
    "tokens": _cmd_tokens,
    "years": _cmd_years,
}


async def _run_async(args: argparse.Namespace) -> int:
    from order_scraper.config import config

    root_logger = get_logger(run_id=args.run_id or new_run_id())
    logger = root_logger.bind(command=args.command)
    try:
        return await _COMMANDS[args.command](args, logger)
    finally:
        await dispose_engine(config.database_url)
        root_logger.close()


def _money_arg(value: str) -> MonetaryAmount:
    try:
        return parse_monetary_amount(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="order_scraper", description="Scrape and inspect order history")
    parser.add_argument("--run_id", type=str, default=None, help="Override generated run id")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape_parser = subparsers.add_parser("scrape", help="Scrape orders into the local store")
    scrape_parser.add_argument("--user", type=str, default=None, help="Profile to scrape (default: ORDER_SCRAPER_USER)")
    scrape_parser.add_argument(
        "--from", dest="date_from", type=str, default=None, help="Oldest order date: YYYY-MM-DD or e.g. '3 weeks'"
    )
    scrape_parser.add_argument(
        "--to", dest="date_to", type=str, default=None, help="Newest order date: YYYY-MM-DD or e.g. '1 week'"
    )
    scrape_parser.add_argument("--headed", action="store_true", help="Start with a visible browser")
    scrape_parser.add_argument(
        "--no-interaction", dest="no_interaction", action="store_true", help="Fail instead of prompting for sign-in"
    )
    scrape_parser.add_argument(
        "--no-cache-current-year",
        dest="no_cache_current_year",
        action="store_true",
        help="Always fetch the current year's order pages live",
    )
    scrape_parser.add_argument(
        "--save-fixtures",
        dest="save_fixtures",
        action="store_true",
        help="Save invoices that fail to parse as anonymized fixtures",
    )

    orders_parser = subparsers.add_parser("orders", help="List stored orders")
    orders_parser.add_argument("--user", type=str, default=None)
    orders_parser.add_argument("--total", type=_money_arg, default=None, help="Only orders with this total")
    orders_parser.add_argument("--charge", type=_money_arg, default=None, help="Only orders with a payment of this amount")
    orders_parser.add_argument("--json", action="store_true", help="Print orders as JSON")

    html_parser = subparsers.add_parser("order-html", help="Print the stored invoice HTML of an order")
    html_parser.add_argument("order_id")

    tokens_parser = subparsers.add_parser("tokens", help="Print the token stream of stored invoices")
    tokens_parser.add_argument("order_ids", nargs="*")

    years_parser = subparsers.add_parser("years", help="List completely scraped years")
    years_parser.add_argument("--user", type=str, default=None)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return asyncio.run(_run_async(args))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
