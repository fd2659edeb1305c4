from datetime import datetime, timezone

import pytest

from order_scraper.common.db import dispose_engine
from order_scraper.invoice_parser import parse_invoice_html
from order_scraper.store import DataStore

from invoice_samples import CLASSIC_INVOICE_HTML, ORDER_ID


async def _open_store(tmp_path) -> DataStore:
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}"
    store = DataStore(database_url, clock=lambda: datetime(2024, 5, 1, tzinfo=timezone.utc))
    await store.initialize()
    return store


@pytest.mark.asyncio
async def test_cache_round_trip(tmp_path):
    store = await _open_store(tmp_path)
    key = "v1:user:me:url:https://example.com/a"
    try:
        assert await store.check_cache(key) is None

        await store.update_cache(key, "<html>one</html>")
        await store.update_cache(key, "<html>two</html>")

        assert await store.check_cache(key) == "<html>two</html>"

        await store.delete_cache(key)

        assert await store.check_cache(key) is None
    finally:
        await dispose_engine(store.database_url)


@pytest.mark.asyncio
async def test_saved_orders_are_reparsed_from_their_html(tmp_path):
    store = await _open_store(tmp_path)
    order = parse_invoice_html(CLASSIC_INVOICE_HTML)
    try:
        await store.save_order(order, "me", "https://example.com/invoice", CLASSIC_INVOICE_HTML)
        await store.save_order(order, "me", "https://example.com/invoice", CLASSIC_INVOICE_HTML)

        assert await store.get_orders("me") == [order]
        assert await store.get_orders("someone-else") == []
        assert await store.get_invoice_html(ORDER_ID) == CLASSIC_INVOICE_HTML
        assert await store.get_invoice_html("000-0000000-0000000") is None
        assert await store.count_orders_for_year(1998, "me") == 1
        assert await store.count_orders_for_year(1999, "me") == 0
    finally:
        await dispose_engine(store.database_url)


@pytest.mark.asyncio
async def test_stored_invoice_that_no_longer_parses_names_the_order(tmp_path):
    store = await _open_store(tmp_path)
    order = parse_invoice_html(CLASSIC_INVOICE_HTML)
    try:
        await store.save_order(order, "me", None, "<html>not an invoice</html>")

        with pytest.raises(ValueError, match=ORDER_ID):
            await store.get_orders()
    finally:
        await dispose_engine(store.database_url)


@pytest.mark.asyncio
async def test_complete_years_are_tracked_per_user(tmp_path):
    store = await _open_store(tmp_path)
    try:
        await store.mark_year_complete(2023, "me")
        await store.mark_year_complete(2022, "me")
        await store.mark_year_complete(2021, "me")
        await store.mark_year_complete(2021, "me", complete=False)
        await store.mark_year_complete(2020, "other")

        assert await store.complete_years("me") == [2023, 2022]
        assert await store.complete_years("other") == [2020]
    finally:
        await dispose_engine(store.database_url)
