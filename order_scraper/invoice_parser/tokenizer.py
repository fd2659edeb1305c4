"""Flatten an invoice page into the text tokens the parser consumes."""
from __future__ import annotations

import re
from typing import List, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PageElement, PreformattedString

IGNORED_TAGS = frozenset({"script", "style", "noscript"})

_WHITESPACE_RE = re.compile(r"\s+")

Document = Union[str, bytes, BeautifulSoup, Tag]


def parse_html(html: str | bytes) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _text_nodes(root: Tag):
    # Pre-order walk with an explicit stack.
    stack: List[PageElement] = list(reversed(root.contents))
    while stack:
        node = stack.pop()
        if isinstance(node, Tag):
            if node.name in IGNORED_TAGS:
                continue
            stack.extend(reversed(node.contents))
        elif isinstance(node, NavigableString) and not isinstance(node, PreformattedString):
            yield str(node)


def tokenize(document: Document) -> List[str]:
    """Return the whitespace-normalized text tokens of ``document`` in order.

    A token following one that ends in ``":"`` is glued to it with a space
    (``"Order Total:"`` + ``"$9.99"``), and a token starting with ``","`` is
    appended directly to the previous one.
    """

    root = parse_html(document) if isinstance(document, (str, bytes)) else document
    tokens: List[str] = []
    for text in _text_nodes(root):
        value = _WHITESPACE_RE.sub(" ", text).strip()
        if not value:
            continue
        if tokens and tokens[-1].endswith(":"):
            tokens[-1] = f"{tokens[-1]} {value}"
        elif tokens and value.startswith(","):
            tokens[-1] += value
        else:
            tokens.append(value)
    return tokens
