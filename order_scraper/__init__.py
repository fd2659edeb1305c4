"""Scrape order history invoices into a local store."""

from typing import Any

__all__ = ["parse_invoice_html", "run_scrape"]


def __getattr__(name: str) -> Any:
    if name == "parse_invoice_html":
        from order_scraper.invoice_parser import parse_invoice_html as _parse_invoice_html

        return _parse_invoice_html
    if name == "run_scrape":
        from order_scraper.pipeline import run_scrape as _run_scrape

        return _run_scrape
    raise AttributeError(name)
