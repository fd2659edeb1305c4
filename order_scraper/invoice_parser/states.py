"""Parser states for every invoice layout the scraper understands.

Three page families share one registry:

* online orders, from the 1998-era printable invoice ("Amazon.com order
  number: ...") to the current one, starting in ``unknown``;
* the mobile "brief content" layout, entered through ``unknown_v2``;
* in-store grocery purchases, entered through ``groceries``.

Handlers only touch the :class:`ParseContext` they are given. Values that must
survive from one token to the next (a card name waiting for its last digits,
a grocery subtotal waiting for its savings line) live in ``context.scratch``.
"""
from __future__ import annotations

from .engine import ParseContext, Reprocess, StateRegistry, fallthrough, literal, regex
from .patterns import (
    ADDRESS_CITY_STATE_ZIP_PATTERN,
    CREDIT_CARD_NAME_PATTERN,
    DATE_MMMM_DD_PATTERN,
    DATE_MMMM_DD_YYYY_PATTERN,
    MONEY_PATTERN,
    ORDER_ID_PATTERN,
)
from ..money import MonetaryAmount, parse_monetary_amount

registry = StateRegistry()

INITIAL_STATE = "unknown"

MOBILE_LAYOUT_MARKER = "Brief content visible, double tap to read full content."
GROCERY_STORE_MARKER = "Purchased at Whole Foods Market store"
NOTHING_SHIPPED_MARKER = "Shipping Address: Shipping Speed: Payment information"
HIDDEN_ADDRESS_MARKER = "(Full address hidden for privacy.)"

ORDER_SUMMARY_PATTERN = (
    r"^(?:Item\(s\) Subtotal|Shipping & Handling|Estimated tax to be collected"
    r"|Order Total|Grand Total|Gift Card Amount):"
)

MONEY_TOKEN = rf"^({MONEY_PATTERN})$"


def goto(state: str):
    return lambda match, context: state


def reprocess_in(state: str):
    return lambda match, context: Reprocess(state)


def ignore(match, context: ParseContext) -> None:
    return None


# -- shared handlers -------------------------------------------------------------


def _set_id(match, context: ParseContext) -> None:
    context.order.set_id(match[0])


def _set_id_from_group(match, context: ParseContext) -> None:
    context.order.set_id(match[1])


def _set_date(match, context: ParseContext) -> None:
    context.order.set_date(match["year"], match["month"], match["day"])


def _set_total(match, context: ParseContext) -> None:
    context.order.set_total(match[1])


def _set_subtotal(match, context: ParseContext) -> None:
    context.order.set_subtotal(match[1])


def _set_tax(match, context: ParseContext) -> None:
    context.order.set_tax(match[1])


def _set_shipping_cost(match, context: ParseContext) -> None:
    context.order.set_shipping_cost(match[1])


def _set_placed_by(match, context: ParseContext) -> None:
    context.order.set_placed_by(match[1])


def _shipped_on(match, context: ParseContext) -> None:
    context.order.finalize_shipment().set_shipping_date(match["year"], match["month"], match["day"])


def _finalize_shipment(match, context: ParseContext) -> None:
    context.order.finalize_shipment()


def _set_item_name(match, context: ParseContext) -> None:
    context.order.set_item_name(match if isinstance(match, str) else match[0])


def _set_item_quantity(match, context: ParseContext) -> None:
    context.order.set_item_quantity(match[0])


def _remember_card(match, context: ParseContext, state: str) -> str:
    context.scratch["card_type"] = match["card"]
    return state


def _add_assumed_card_payment(match, context: ParseContext) -> str:
    context.order.add_credit_card_payment(context.scratch.pop("card_type"), match[1])
    context.order.assume_payment_covers_full_amount()
    return "unknown"


# -- online orders ---------------------------------------------------------------


def _enter_groceries(match, context: ParseContext) -> str:
    context.order.nothing_will_be_shipped()
    return "groceries"


def _gift_card_deduction(match, context: ParseContext) -> None:
    context.order.add_gift_card_payment().set_payment_amount(match[1]).adjust_total_based_on_gift_card()


def _credit_card_transactions(match, context: ParseContext) -> str:
    # Detailed transactions replace any payment inferred from a summary line.
    context.order.reset_payment_information()
    return "payments"


def _emailed_gift_card(match, context: ParseContext) -> str:
    context.order.nothing_will_be_shipped().set_item_name(f"Gift card: {match[1]}")
    return "gift_card_amount"


@registry.state("unknown")
def _unknown():
    return [
        literal(MOBILE_LAYOUT_MARKER, goto("unknown_v2")),
        literal(GROCERY_STORE_MARKER, _enter_groceries),
        regex(ORDER_ID_PATTERN, _set_id),
        regex(rf"Order Total: ({MONEY_PATTERN})", _set_total),
        regex(r"^Placed By: (.+)$", _set_placed_by),
        regex(rf"Order Placed: {DATE_MMMM_DD_YYYY_PATTERN}", _set_date),
        regex(rf"(?:Shipping Speed: )?Shipped on {DATE_MMMM_DD_YYYY_PATTERN}", _shipped_on),
        regex(r"^(?:Not Yet Shipped|Shipping now)$", _finalize_shipment),
        literal("Items Ordered", goto("items")),
        regex(r"^Return started$", goto("items_v2_return_started")),
        regex(r"^(?:Delivered|Arriving tomorrow)$", goto("items_v2")),
        regex(rf"^Item\(s\) Subtotal: ({MONEY_PATTERN})", _set_subtotal),
        literal("Billing address", goto("billing")),
        regex(rf"^Shipping & Handling: ({MONEY_PATTERN})", _set_shipping_cost),
        literal("Payment information", goto("payments")),
        regex(rf"^Estimated tax to be collected: ({MONEY_PATTERN})", _set_tax),
        regex(rf"^Gift Card Amount: -({MONEY_PATTERN})", _gift_card_deduction),
        regex(rf"^Grand Total: ({MONEY_PATTERN})", _set_total),
        literal("Credit Card transactions", _credit_card_transactions),
        regex(r"E-mail gift card to: (.+)", _emailed_gift_card),
        regex(
            rf"^Payment Method: (?P<card>{CREDIT_CARD_NAME_PATTERN})$",
            lambda match, context: _remember_card(match, context, "card_last_digits"),
        ),
    ]


def _item_line(match, context: ParseContext) -> str:
    context.order.set_item_name(match[2]).set_item_quantity(match[1])
    return "item"


def _nothing_shipped(match, context: ParseContext) -> str:
    context.order.nothing_will_be_shipped()
    return "unknown"


def _shipping_address_name(match, context: ParseContext) -> str:
    context.order.set_shipping_address_name(match[1])
    return "shipping"


@registry.state("items")
def _items():
    return [
        regex(r"^(\d+) of: (.+)$", _item_line),
        literal(NOTHING_SHIPPED_MARKER, _nothing_shipped),
        regex(r"^Shipping Address: (.+)", _shipping_address_name),
        regex(ORDER_SUMMARY_PATTERN, reprocess_in("unknown")),
    ]


def _item_price(match, context: ParseContext) -> str:
    context.order.set_item_price(match[1]).finalize_item()
    return "items"


@registry.state("item")
def _item():
    return [
        regex(MONEY_TOKEN, _item_price),
        fallthrough(reprocess_in("items")),
    ]


def _hidden_address(match, context: ParseContext) -> str:
    context.order.full_shipping_address_not_available()
    return "unknown"


def _shipped_on_then_unknown(match, context: ParseContext) -> str:
    _shipped_on(match, context)
    return "unknown"


def _city_state_zip(match, context: ParseContext) -> None:
    context.order.set_shipping_city_state_zip(match["city"], match["state"], match["zip"])


def _next_address_field(token: str, context: ParseContext) -> None:
    context.order.set_next_shipping_address_field(token)


@registry.state("shipping")
def _shipping():
    return [
        regex(rf"Shipping Speed: Shipped on {DATE_MMMM_DD_YYYY_PATTERN}", _shipped_on_then_unknown),
        regex(r"^Shipping Speed: ", goto("unknown")),
        literal("Payment information", reprocess_in("unknown")),
        literal("Payment method", goto("payments")),
        literal(HIDDEN_ADDRESS_MARKER, _hidden_address),
        regex(ADDRESS_CITY_STATE_ZIP_PATTERN, _city_state_zip),
        fallthrough(_next_address_field),
    ]


def _card_transaction(match, context: ParseContext) -> None:
    (
        context.order.add_credit_card_payment(match["card_type"], match["last4"])
        .set_payment_amount(match["amount"])
        .set_payment_date(match["year"], match["month"], match["day"])
    )


def _subtotal_then_unknown(match, context: ParseContext) -> str:
    _set_subtotal(match, context)
    return "unknown"


@registry.state("payments")
def _payments():
    return [
        regex(
            rf"^(?P<card_type>.+?) ending in (?P<last4>\d{{4}}): {DATE_MMMM_DD_YYYY_PATTERN}: (?P<amount>{MONEY_PATTERN})$",
            _card_transaction,
        ),
        regex(
            rf"^(?P<card>{CREDIT_CARD_NAME_PATTERN})$",
            lambda match, context: _remember_card(match, context, "card_ending_in"),
        ),
        regex(
            rf"^Payment Method: (?P<card>{CREDIT_CARD_NAME_PATTERN})$",
            lambda match, context: _remember_card(match, context, "card_ending_in"),
        ),
        regex(rf"^Item\(s\) Subtotal: ({MONEY_PATTERN})$", _subtotal_then_unknown),
        literal("Amazon gift card balance", ignore),
        literal("Billing address", goto("billing")),
    ]


@registry.state("card_ending_in")
def _card_ending_in():
    return [
        regex(r"^ending in (\d{4})$", _add_assumed_card_payment),
        fallthrough(reprocess_in("unknown")),
    ]


@registry.state("card_last_digits")
def _card_last_digits():
    return [
        regex(r"Last digits: (\d{4})\b", _add_assumed_card_payment),
        fallthrough(reprocess_in("unknown")),
    ]


@registry.state("billing")
def _billing():
    return [
        regex(rf"^Item\(s\) Subtotal: ({MONEY_PATTERN})", reprocess_in("unknown")),
        fallthrough(ignore),
    ]


def _gift_card_price(match, context: ParseContext) -> str:
    context.order.assume_item_quantity(1).set_item_price(match[1]).finalize_item()
    return "unknown"


@registry.state("gift_card_amount")
def _gift_card_amount():
    return [regex(MONEY_TOKEN, _gift_card_price)]


# -- mobile layout ---------------------------------------------------------------


@registry.state("unknown_v2")
def _unknown_v2():
    return [
        regex(DATE_MMMM_DD_YYYY_PATTERN, _set_date),
        regex(rf"^{ORDER_ID_PATTERN}$", _set_id),
        literal("Ship to", goto("shipping")),
    ]


def _priced_item(next_state: str):
    def handler(match, context: ParseContext) -> str:
        context.order.assume_item_quantity(1).set_item_price(match[1]).finalize_item()
        return next_state

    return handler


@registry.state("items_v2")
def _items_v2():
    return [
        literal("Your package was left near the front door or porch.", ignore),
        regex(rf"^{DATE_MMMM_DD_PATTERN}$", ignore),
        regex(r"^\d+$", _set_item_quantity),
        regex(r"^Sold by: (.+)$", ignore),
        regex(r"^Supplied by: (.+)$", ignore),
        regex(r"^Auto-delivered:", ignore),
        regex(r"^Return (?:or replace )?items:", ignore),
        literal("Back to top", goto("unknown")),
        regex(MONEY_TOKEN, _priced_item("items_v2_skip")),
        fallthrough(_set_item_name),
    ]


@registry.state("items_v2_skip")
def _items_v2_skip():
    return [fallthrough(goto("items_v2"))]


@registry.state("items_v2_return_started")
def _items_v2_return_started():
    return [
        literal("Your refund will be processed when we receive your item.", ignore),
        regex(r"^(?:Sold by|Supplied by):", ignore),
        literal("Delivered", goto("items_v2")),
        literal("Payment method", goto("payments")),
        regex(MONEY_TOKEN, _priced_item("items_v2_return_started_skip")),
        fallthrough(_set_item_name),
    ]


@registry.state("items_v2_return_started_skip")
def _items_v2_return_started_skip():
    return [fallthrough(goto("items_v2_return_started"))]


# -- grocery store purchases -----------------------------------------------------


def _grocery_total(match, context: ParseContext) -> str:
    context.order.set_total(match[1])
    return "groceries"


def _grocery_subtotal(match, context: ParseContext) -> str:
    context.scratch["grocery_subtotal"] = match[1]
    return "grocery_savings_label"


def _grocery_savings(match, context: ParseContext) -> str:
    subtotal = parse_monetary_amount(context.scratch.pop("grocery_subtotal"))
    savings = parse_monetary_amount(match[1])
    context.order.set_subtotal(MonetaryAmount.from_cents(subtotal.cents + savings.cents, subtotal.currency))
    return "groceries"


def _grocery_tax(match, context: ParseContext) -> str:
    context.order.set_tax(match[1])
    return "groceries"


@registry.state("groceries")
def _groceries():
    return [
        literal("Items in your order", goto("grocery_items")),
        regex(rf"^Purchased [a-z]+, {DATE_MMMM_DD_YYYY_PATTERN}$", _set_date),
        regex(rf"^Order #: ({ORDER_ID_PATTERN})$", _set_id_from_group),
        literal("Grand Total", goto("grocery_total")),
        literal("Payment Methods", goto("grocery_payments")),
        literal("Item Subtotal", goto("grocery_subtotal")),
        literal("Tax and Fees", goto("grocery_tax")),
    ]


@registry.state("grocery_total")
def _grocery_total_state():
    return [regex(MONEY_TOKEN, _grocery_total)]


@registry.state("grocery_subtotal")
def _grocery_subtotal_state():
    return [regex(MONEY_TOKEN, _grocery_subtotal)]


@registry.state("grocery_savings_label")
def _grocery_savings_label():
    return [literal("Total Savings", goto("grocery_savings"))]


@registry.state("grocery_savings")
def _grocery_savings_state():
    return [regex(MONEY_TOKEN, _grocery_savings)]


@registry.state("grocery_tax")
def _grocery_tax_state():
    return [regex(MONEY_TOKEN, _grocery_tax)]


def _grocery_line_total(match, context: ParseContext) -> str:
    context.scratch["grocery_line_total"] = match[1]
    return "grocery_item_quantity"


def _grocery_quantity(match, context: ParseContext) -> str:
    line_total = context.scratch.pop("grocery_line_total")
    context.order.set_item_price(line_total, match[1]).finalize_item()
    return "grocery_items"


@registry.state("grocery_items")
def _grocery_items():
    return [
        regex(MONEY_TOKEN, _grocery_line_total),
        literal("View all items", goto("groceries")),
        regex(rf"^({MONEY_PATTERN}) each$", ignore),
        regex(rf"^({MONEY_PATTERN}) promotions applied$", ignore),
        literal("@", ignore),
        fallthrough(_set_item_name),
    ]


@registry.state("grocery_item_quantity")
def _grocery_item_quantity():
    return [regex(r"^Qty: (\d+)$", _grocery_quantity)]


def _grocery_cash(match, context: ParseContext) -> str:
    context.order.add_cash_payment().set_payment_amount(match[1])
    return "grocery_payments"


def _grocery_card_name(match, context: ParseContext) -> str:
    context.scratch["card_type"] = match[0]
    return "grocery_card"


def _grocery_card_digits(match, context: ParseContext) -> str:
    context.scratch["last4"] = match[1]
    return "grocery_card_amount"


def _grocery_card_amount(match, context: ParseContext) -> str:
    card_type = context.scratch.pop("card_type")
    last4 = context.scratch.pop("last4")
    context.order.add_credit_card_payment(card_type, last4).set_payment_amount(match[1])
    return "grocery_payments"


@registry.state("grocery_payments")
def _grocery_payments():
    return [
        literal("Cash", goto("grocery_cash")),
        regex(CREDIT_CARD_NAME_PATTERN, _grocery_card_name),
        literal("How was your trip?", goto("groceries")),
    ]


@registry.state("grocery_cash")
def _grocery_cash_state():
    return [regex(MONEY_TOKEN, _grocery_cash)]


@registry.state("grocery_card")
def _grocery_card():
    return [regex(r"^\*(\d{4})$", _grocery_card_digits)]


@registry.state("grocery_card_amount")
def _grocery_card_amount_state():
    return [regex(MONEY_TOKEN, _grocery_card_amount)]
