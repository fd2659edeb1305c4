"""Save invoices that failed to parse as anonymized test fixtures."""
from __future__ import annotations

import json
import random
import re
from collections import Counter
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from .invoice_parser.patterns import ORDER_ID_PATTERN

DEFAULT_PII_TOKENS_FILE = Path("pii_tokens.json")

_ORDER_ID_RE = re.compile(ORDER_ID_PATTERN)
_WORD_ORDER_ID_RE = re.compile(rf"\b{ORDER_ID_PATTERN}\b")
_ENCODED_ORDER_ID_RE = re.compile(rf"orderID%3D({ORDER_ID_PATTERN})")

PiiTokens = Union[Mapping[str, str], Path, str, None]


def load_pii_tokens(source: PiiTokens = None) -> Dict[str, str]:
    """Pattern → replacement pairs from a mapping or a JSON file.

    With no source, ``pii_tokens.json`` in the working directory is used when
    present.
    """

    if isinstance(source, Mapping):
        return {str(pattern): str(replacement) for pattern, replacement in source.items()}
    path = DEFAULT_PII_TOKENS_FILE if source is None else Path(source)
    if source is None and not path.exists():
        return {}
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object of pattern → replacement")
    return {str(pattern): str(replacement) for pattern, replacement in data.items()}


def random_order_id(rng: random.Random) -> str:
    def digits(count: int) -> str:
        return "".join(str(rng.randrange(10)) for _ in range(count))

    return f"{digits(3)}-{digits(7)}-{digits(7)}"


def anonymize_invoice_html(html: str, pii_tokens: Mapping[str, str], rng: random.Random) -> str:
    # Anything shaped like an order id is replaced; the same id always maps
    # to the same replacement.
    replacements: Dict[str, str] = {}

    def replace(match: re.Match) -> str:
        original = match.group(0)
        if original not in replacements:
            replacements[original] = random_order_id(rng)
        return replacements[original]

    html = _ORDER_ID_RE.sub(replace, html)
    for pattern, replacement in pii_tokens.items():
        html = re.sub(pattern, lambda _match, value=replacement: value, html, flags=re.IGNORECASE)
    return html


def order_id_from_html(html: str) -> str:
    match = _ENCODED_ORDER_ID_RE.search(html)
    if match:
        return match.group(1)
    counts = Counter(_WORD_ORDER_ID_RE.findall(html))
    if not counts:
        raise ValueError("No order ID found in the invoice HTML")
    return counts.most_common(1)[0][0]


def save_fixture(
    html: str,
    fixtures_dir: Path,
    pii_tokens: PiiTokens = None,
    *,
    rng: Optional[random.Random] = None,
) -> Path:
    """Write ``invoice-<id>.html`` (and an empty expectation file) to ``fixtures_dir``."""

    anonymized = anonymize_invoice_html(html, load_pii_tokens(pii_tokens), rng or random.Random())
    order_id = order_id_from_html(anonymized)

    fixtures_dir = Path(fixtures_dir)
    fixtures_dir.mkdir(parents=True, exist_ok=True)
    fixture_path = fixtures_dir / f"invoice-{order_id}.html"
    fixture_path.write_text(anonymized, encoding="utf-8")

    expectations_path = fixtures_dir / f"invoice-{order_id}.json"
    if not expectations_path.exists():
        expectations_path.write_text("{}\n", encoding="utf-8")
    return fixture_path
