"""Regular-expression fragments shared by the invoice parser states.

Fragments are plain strings so states can embed them in larger patterns; the
rule engine compiles every pattern case-insensitively.
"""
from __future__ import annotations

ORDER_ID_PATTERN = r"\d{3}-\d{7}-\d{7}"

MONEY_PATTERN = r"-?\$?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{2})?"

DATE_MMMM_DD_YYYY_PATTERN = r"(?P<month>[a-z]+)\.? (?P<day>\d{1,2}), (?P<year>\d{4})"

DATE_MMMM_DD_PATTERN = r"(?P<month>[a-z]+)\.? (?P<day>\d{1,2})"

CREDIT_CARD_NAME_PATTERN = r"(?:Visa|MasterCard|American Express|Discover)"

ADDRESS_CITY_STATE_ZIP_PATTERN = r"^(?P<city>.+), (?P<state>[A-Z]+) (?P<zip>\d{5}(?:-\d{4})?)$"
