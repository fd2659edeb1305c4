"""Turn invoice pages into :class:`~order_scraper.models.Order` records."""
from __future__ import annotations

from typing import Iterable, Optional

from ..models import Order
from ..order_builder import AttributeObserver, OrderBuilder
from .engine import ParseContext, ParserHooks, StateMachineParser
from .states import INITIAL_STATE, registry
from .tokenizer import Document, tokenize

__all__ = [
    "ParserHooks",
    "tokenize",
    "parse_invoice_tokens",
    "parse_order_tokens",
    "parse_invoice_html",
]


def parse_invoice_tokens(
    tokens: Iterable[str],
    builder: OrderBuilder,
    hooks: Optional[ParserHooks] = None,
) -> str:
    """Feed ``tokens`` through the invoice state machine into ``builder``.

    Returns the name of the state the parser finished in.
    """

    parser = StateMachineParser(registry, INITIAL_STATE, hooks)
    return parser.run(tokens, ParseContext(order=builder))


def parse_order_tokens(
    tokens: Iterable[str],
    hooks: Optional[ParserHooks] = None,
    on_attribute_captured: Optional[AttributeObserver] = None,
) -> Order:
    builder = OrderBuilder(on_attribute_captured=on_attribute_captured)
    parse_invoice_tokens(tokens, builder, hooks)
    return builder.build()


def parse_invoice_html(
    document: Document,
    hooks: Optional[ParserHooks] = None,
    on_attribute_captured: Optional[AttributeObserver] = None,
) -> Order:
    """Tokenize an invoice page and build its :class:`Order`.

    Raises :class:`~order_scraper.order_builder.OrderBuilderError` (a
    ``ValueError``) when the page yields conflicting or missing fields.
    """

    return parse_order_tokens(tokenize(document), hooks, on_attribute_captured)
