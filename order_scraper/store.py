"""Persistence for cached pages, scraped invoices and per-year progress."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, List, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from .common.db import get_engine, session_scope
from .invoice_parser import parse_invoice_html
from .json_logger import JsonLogger, log_event
from .models import Order

metadata = sa.MetaData()

cache_table = sa.Table(
    "cache",
    metadata,
    sa.Column("key", sa.Text, primary_key=True),
    sa.Column("value", sa.Text, nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
)

orders_table = sa.Table(
    "orders",
    metadata,
    sa.Column("order_id", sa.Text, primary_key=True),
    sa.Column("user", sa.Text, nullable=False),
    sa.Column("order_date", sa.Text, nullable=False),
    sa.Column("source_url", sa.Text, nullable=True),
    sa.Column("invoice_html", sa.Text, nullable=False),
    sa.Column("last_scraped", sa.DateTime(timezone=True), nullable=False),
    sa.Index("ix_orders_user_date", "user", "order_date"),
)

years_table = sa.Table(
    "years",
    metadata,
    sa.Column("user", sa.Text, primary_key=True),
    sa.Column("year", sa.Integer, primary_key=True),
    sa.Column("complete", sa.Boolean, nullable=False, default=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DataStore:
    """Key/value page cache plus the order store, backed by SQLite through aiosqlite."""

    def __init__(
        self,
        database_url: str,
        *,
        logger: Optional[JsonLogger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.database_url = database_url
        self.logger = logger
        self._clock = clock

    def _log(self, *, status: str, message: str, **extras) -> None:
        if self.logger is not None:
            log_event(logger=self.logger, phase="store", status=status, message=message, **extras)

    async def initialize(self) -> None:
        """Create any missing tables."""

        engine = get_engine(self.database_url)
        async with engine.begin() as connection:
            await connection.run_sync(metadata.create_all)
        self._log(status="ok", message="store initialized", database_url=self.database_url)

    # -- page cache ---------------------------------------------------------

    async def check_cache(self, key: str) -> Optional[str]:
        async with session_scope(self.database_url) as session:
            result = await session.execute(sa.select(cache_table.c.value).where(cache_table.c.key == key))
            return result.scalar_one_or_none()

    async def update_cache(self, key: str, content: str) -> None:
        stmt = sqlite_insert(cache_table).values(key=key, value=content, updated_at=self._clock())
        stmt = stmt.on_conflict_do_update(
            index_elements=[cache_table.c.key],
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
        )
        async with session_scope(self.database_url) as session:
            async with session.begin():
                await session.execute(stmt)

    async def delete_cache(self, key: str) -> None:
        async with session_scope(self.database_url) as session:
            async with session.begin():
                await session.execute(sa.delete(cache_table).where(cache_table.c.key == key))

    # -- orders -------------------------------------------------------------

    async def save_order(self, order: Order, user: str, source_url: Optional[str], raw_content: str) -> None:
        stmt = sqlite_insert(orders_table).values(
            order_id=order.id,
            user=user,
            order_date=order.date,
            source_url=source_url,
            invoice_html=raw_content,
            last_scraped=self._clock(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[orders_table.c.order_id],
            set_={
                "user": stmt.excluded.user,
                "order_date": stmt.excluded.order_date,
                "source_url": stmt.excluded.source_url,
                "invoice_html": stmt.excluded.invoice_html,
                "last_scraped": stmt.excluded.last_scraped,
            },
        )
        async with session_scope(self.database_url) as session:
            async with session.begin():
                await session.execute(stmt)
        self._log(status="ok", message="order saved", order_id=order.id, order_date=order.date, user=user)

    async def get_orders(self, user: Optional[str] = None) -> List[Order]:
        """Return stored orders oldest first, re-parsed from their invoice HTML."""

        query = sa.select(orders_table.c.order_id, orders_table.c.invoice_html).order_by(
            orders_table.c.order_date, orders_table.c.order_id
        )
        if user is not None:
            query = query.where(orders_table.c.user == user)
        async with session_scope(self.database_url) as session:
            rows = (await session.execute(query)).all()

        orders: List[Order] = []
        for row in rows:
            try:
                orders.append(parse_invoice_html(row.invoice_html))
            except ValueError as exc:
                raise ValueError(f"Stored invoice for order {row.order_id} no longer parses: {exc}") from exc
        return orders

    async def get_invoice_html(self, order_id: str) -> Optional[str]:
        async with session_scope(self.database_url) as session:
            result = await session.execute(
                sa.select(orders_table.c.invoice_html).where(orders_table.c.order_id == order_id)
            )
            return result.scalar_one_or_none()

    async def count_orders_for_year(self, year: int, user: Optional[str] = None) -> int:
        query = sa.select(sa.func.count()).select_from(orders_table).where(
            orders_table.c.order_date.like(f"{year:04d}-%")
        )
        if user is not None:
            query = query.where(orders_table.c.user == user)
        async with session_scope(self.database_url) as session:
            return int((await session.execute(query)).scalar_one())

    # -- years --------------------------------------------------------------

    async def mark_year_complete(self, year: int, user: str, complete: bool = True) -> None:
        stmt = sqlite_insert(years_table).values(user=user, year=year, complete=complete, updated_at=self._clock())
        stmt = stmt.on_conflict_do_update(
            index_elements=[years_table.c.user, years_table.c.year],
            set_={"complete": stmt.excluded.complete, "updated_at": stmt.excluded.updated_at},
        )
        async with session_scope(self.database_url) as session:
            async with session.begin():
                await session.execute(stmt)

    async def complete_years(self, user: str) -> List[int]:
        query = (
            sa.select(years_table.c.year)
            .where(years_table.c.user == user, years_table.c.complete.is_(True))
            .order_by(years_table.c.year.desc())
        )
        async with session_scope(self.database_url) as session:
            return [int(year) for year in (await session.execute(query)).scalars().all()]
