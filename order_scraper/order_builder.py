"""Accumulates fields read from an invoice and assembles the final :class:`Order`.

Every setter is idempotent: setting an unset field records it (and notifies the
``on_attribute_captured`` observer), setting the same value again does nothing,
and setting a different value raises :class:`OrderBuilderError`. A conflicting
value means the parser misread the page, so it is never silently overwritten.

Shipments and items are opened implicitly on first use and closed with
:meth:`OrderBuilder.finalize_shipment` / :meth:`OrderBuilder.finalize_item`.
"""
from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional

from .models import (
    SHIPPING_ADDRESS_FIELDS,
    CashPayment,
    CreditCardPayment,
    GiftCardPayment,
    Order,
    OrderItem,
    ShippingAddress,
    Shipment,
)
from .money import AmountInput, MonetaryAmount, parse_monetary_amount

__all__ = ["OrderBuilder", "OrderBuilderError", "AttributeObserver"]

AttributeObserver = Callable[[str, Any], None]

MONTHS = (
    "january",
    "february",
    "march",
    "april",
    "may",
    "june",
    "july",
    "august",
    "september",
    "october",
    "november",
    "december",
)

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class OrderBuilderError(ValueError):
    """Raised for conflicting or missing order fields."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        existing: Any = None,
        attempted: Any = None,
    ) -> None:
        super().__init__(message)
        self.field = field
        self.existing = existing
        self.attempted = attempted


def _month_number(month: int | str) -> int:
    if isinstance(month, int):
        return month
    text = month.strip().rstrip(".").lower()
    if text.isdigit():
        return int(text)
    for index, name in enumerate(MONTHS, start=1):
        if len(text) >= 3 and name.startswith(text):
            return index
    raise OrderBuilderError(f"Unrecognized month: {month!r}", field="date", attempted=month)


def normalize_date(year: int | str, month: int | str | None = None, day: int | str | None = None) -> str:
    """Return ``YYYY-MM-DD`` for a year/month/day triple or pass an ISO date through."""

    if month is None and day is None:
        if isinstance(year, str) and ISO_DATE_RE.match(year.strip()):
            return year.strip()
        raise OrderBuilderError(f"Expected a YYYY-MM-DD date; got {year!r}", field="date", attempted=year)
    if month is None or day is None:
        raise OrderBuilderError("Year provided without month and day", field="date", attempted=year)
    return f"{int(year):04d}-{_month_number(month):02d}-{int(day):02d}"


class OrderBuilder:
    def __init__(self, on_attribute_captured: Optional[AttributeObserver] = None) -> None:
        self._on_attribute_captured = on_attribute_captured or (lambda name, value: None)
        self._order: Dict[str, Any] = {}
        self._shipments: List[Dict[str, Any]] = []
        self._payments: List[Dict[str, Any]] = []
        self._last_shipment_finalized = False
        self._last_item_finalized = False
        self._assumed_item_quantity: Optional[int] = None
        self._assume_payment_covers_full_amount = False
        self._adjust_total_for_gift_cards = False
        self._infer_taxes = False
        self._shipping_address_required = True
        self._built = False

    # -- assignment helpers -------------------------------------------------

    def _assign(self, record: Dict[str, Any], key: str, value: Any, *, label: str) -> "OrderBuilder":
        current = record.get(key)
        if current is None:
            record[key] = value
            self._on_attribute_captured(label, value)
        elif current != value:
            raise OrderBuilderError(
                f"{label} already set to {current!r}; cannot change it to {value!r}",
                field=label,
                existing=current,
                attempted=value,
            )
        return self

    def _ensure_shipment(self) -> Dict[str, Any]:
        if not self._shipments or self._last_shipment_finalized:
            self._shipments.append({"date": None, "address": {}, "items": []})
            self._last_shipment_finalized = False
            self._last_item_finalized = False
        return self._shipments[-1]

    def _ensure_item(self) -> Dict[str, Any]:
        shipment = self._ensure_shipment()
        if not shipment["items"] or self._last_item_finalized:
            shipment["items"].append({})
            self._last_item_finalized = False
        return shipment["items"][-1]

    def _open_item(self) -> Optional[Dict[str, Any]]:
        if not self._shipments or self._last_shipment_finalized or self._last_item_finalized:
            return None
        items = self._shipments[-1]["items"]
        return items[-1] if items else None

    def _last_payment(self) -> Dict[str, Any]:
        if not self._payments:
            raise OrderBuilderError("No payment has been added yet", field="payment")
        return self._payments[-1]

    # -- modes --------------------------------------------------------------

    def assume_item_quantity(self, quantity: int = 1) -> "OrderBuilder":
        """Use ``quantity`` for the current item if the page never states one."""

        self._assumed_item_quantity = quantity
        return self

    def assume_payment_covers_full_amount(self) -> "OrderBuilder":
        self._assume_payment_covers_full_amount = True
        return self

    def adjust_total_based_on_gift_card(self) -> "OrderBuilder":
        """Report the displayed total plus the gift-card payments."""

        self._adjust_total_for_gift_cards = True
        return self

    def infer_taxes(self) -> "OrderBuilder":
        """Derive tax as ``total - subtotal - shipping`` for pages that omit it."""

        self._infer_taxes = True
        return self

    def nothing_will_be_shipped(self) -> "OrderBuilder":
        self._shipping_address_required = False
        return self

    def full_shipping_address_not_available(self) -> "OrderBuilder":
        """Mark the current shipment's address as hidden (gift registry orders).

        Missing fields become ``""``; a comma-separated address line is split
        into city and state.
        """

        address = self._ensure_shipment()["address"]
        for field in SHIPPING_ADDRESS_FIELDS:
            if address.get(field) is None:
                address[field] = ""
        parts = [part.strip() for part in address["address"].split(",")]
        if len(parts) > 1:
            address["address"] = ""
            address["state"] = parts.pop()
            address["city"] = ", ".join(parts)
        return self

    # -- order fields -------------------------------------------------------

    def set_id(self, order_id: str) -> "OrderBuilder":
        return self._assign(self._order, "id", order_id, label="id")

    def set_date(self, year: int | str, month: int | str | None = None, day: int | str | None = None) -> "OrderBuilder":
        return self._assign(self._order, "date", normalize_date(year, month, day), label="date")

    def set_placed_by(self, name: str) -> "OrderBuilder":
        return self._assign(self._order, "placed_by", name, label="placed_by")

    def set_currency(self, currency: str) -> "OrderBuilder":
        return self._assign(self._order, "currency", currency, label="currency")

    def set_total(self, value: AmountInput) -> "OrderBuilder":
        amount = parse_monetary_amount(value)
        self._assign(self._order, "total", amount, label="total")
        if amount.currency:
            self.set_currency(amount.currency)
        return self

    def set_subtotal(self, value: AmountInput) -> "OrderBuilder":
        return self._assign(self._order, "subtotal", parse_monetary_amount(value), label="subtotal")

    def set_tax(self, value: AmountInput) -> "OrderBuilder":
        return self._assign(self._order, "tax", parse_monetary_amount(value), label="tax")

    def set_shipping_cost(self, value: AmountInput) -> "OrderBuilder":
        return self._assign(self._order, "shipping_cost", parse_monetary_amount(value), label="shipping_cost")

    # -- items --------------------------------------------------------------

    def set_item_name(self, name: str) -> "OrderBuilder":
        return self._assign(self._ensure_item(), "name", name, label="item.name")

    def set_item_quantity(self, quantity: int | str) -> "OrderBuilder":
        return self._assign(self._ensure_item(), "quantity", int(quantity), label="item.quantity")

    def set_item_price(self, value: AmountInput, quantity: int | str | None = None) -> "OrderBuilder":
        """Set the current item's unit price.

        With ``quantity``, ``value`` is the line total and the unit price is
        ``floor(cents / quantity)``.
        """

        amount = parse_monetary_amount(value)
        item = self._ensure_item()
        if quantity is None:
            return self._assign(item, "price", amount, label="item.price")
        count = int(quantity)
        if count < 1:
            raise OrderBuilderError(f"Item quantity must be positive; got {count}", field="item.quantity", attempted=count)
        if count != 1:
            amount = MonetaryAmount.from_cents(amount.cents // count, amount.currency)
        self._assign(item, "price", amount, label="item.price")
        return self.set_item_quantity(count)

    def finalize_item(self) -> "OrderBuilder":
        item = self._open_item()
        if item is not None and item.get("quantity") is None and self._assumed_item_quantity is not None:
            self._assign(item, "quantity", self._assumed_item_quantity, label="item.quantity")
        self._assumed_item_quantity = None
        self._last_item_finalized = True
        return self

    # -- shipments ----------------------------------------------------------

    def finalize_shipment(self) -> "OrderBuilder":
        self._last_shipment_finalized = True
        return self

    def set_shipping_date(self, year: int | str, month: int | str | None = None, day: int | str | None = None) -> "OrderBuilder":
        return self._assign(self._ensure_shipment(), "date", normalize_date(year, month, day), label="shipment.date")

    def _set_address_field(self, field: str, value: str) -> "OrderBuilder":
        address = self._ensure_shipment()["address"]
        return self._assign(address, field, value, label=f"shipping_address.{field}")

    def set_shipping_address_name(self, name: str) -> "OrderBuilder":
        return self._set_address_field("name", name)

    def set_shipping_address(self, address: str) -> "OrderBuilder":
        return self._set_address_field("address", address)

    def set_shipping_city(self, city: str) -> "OrderBuilder":
        return self._set_address_field("city", city)

    def set_shipping_state(self, state: str) -> "OrderBuilder":
        return self._set_address_field("state", state)

    def set_shipping_zip(self, zip_code: str) -> "OrderBuilder":
        return self._set_address_field("zip", zip_code)

    def set_shipping_country(self, country: str) -> "OrderBuilder":
        return self._set_address_field("country", country)

    def set_shipping_city_state_zip(self, city: str, state: str, zip_code: str) -> "OrderBuilder":
        return self.set_shipping_city(city).set_shipping_state(state).set_shipping_zip(zip_code)

    def set_next_shipping_address_field(self, value: str) -> "OrderBuilder":
        """Fill the first empty field of name, address, city, state, zip, country."""

        address = self._ensure_shipment()["address"]
        for field in SHIPPING_ADDRESS_FIELDS:
            if address.get(field) is None:
                return self._set_address_field(field, value)
        raise OrderBuilderError(
            f"Unexpected shipping address value {value!r}: every address field is already set",
            field="shipping_address",
            attempted=value,
        )

    # -- payments -----------------------------------------------------------

    def add_credit_card_payment(self, card_type: str, last4: str) -> "OrderBuilder":
        self._payments.append({"type": "credit_card", "card_type": card_type, "last4": last4})
        self._on_attribute_captured("payment.card_type", card_type)
        self._on_attribute_captured("payment.last4", last4)
        return self

    def add_gift_card_payment(self) -> "OrderBuilder":
        self._payments.append({"type": "gift_card"})
        return self

    def add_cash_payment(self) -> "OrderBuilder":
        self._payments.append({"type": "cash"})
        return self

    def set_payment_amount(self, value: AmountInput) -> "OrderBuilder":
        return self._assign(self._last_payment(), "amount", parse_monetary_amount(value), label="payment.amount")

    def set_payment_date(self, year: int | str, month: int | str | None = None, day: int | str | None = None) -> "OrderBuilder":
        return self._assign(self._last_payment(), "date", normalize_date(year, month, day), label="payment.date")

    def reset_payment_information(self) -> "OrderBuilder":
        """Forget payments that were only assumed, keeping explicit amounts."""

        self._payments = [payment for payment in self._payments if payment.get("amount") is not None]
        self._assume_payment_covers_full_amount = False
        return self

    # -- build --------------------------------------------------------------

    @staticmethod
    def _require(record: Dict[str, Any], key: str, *, label: Optional[str] = None) -> Any:
        value = record.get(key)
        if value is None:
            name = label or key
            raise OrderBuilderError(f"{name} not set", field=name)
        return value

    def _calculate_total(self) -> MonetaryAmount:
        total: MonetaryAmount = self._require(self._order, "total")
        if not self._adjust_total_for_gift_cards:
            return total
        gift_card_cents = sum(
            payment["amount"].cents
            for payment in self._payments
            if payment["type"] == "gift_card" and payment.get("amount") is not None
        )
        return MonetaryAmount.from_cents(total.cents + gift_card_cents, total.currency)

    def _build_tax(self, total: MonetaryAmount, subtotal: MonetaryAmount, currency: str) -> MonetaryAmount:
        tax: Optional[MonetaryAmount] = self._order.get("tax")
        if not self._infer_taxes:
            return self._require(self._order, "tax")
        if tax is not None and tax.cents:
            raise OrderBuilderError(
                f"Tax inference is active but tax was already captured as {tax.display_value!r}",
                field="tax",
                existing=tax,
            )
        shipping: Optional[MonetaryAmount] = self._order.get("shipping_cost")
        shipping_cents = shipping.cents if shipping is not None else 0
        return MonetaryAmount.from_cents(total.cents - subtotal.cents - shipping_cents, currency)

    def _build_payments(self, order_date: str, total: MonetaryAmount) -> list:
        if self._assume_payment_covers_full_amount and len(self._payments) > 1:
            if any(payment.get("amount") is None for payment in self._payments):
                raise OrderBuilderError(
                    "Assuming one payment covers the full amount, but several payments exist and some lack an amount",
                    field="payment.amount",
                )

        payments = []
        for index, payment in enumerate(self._payments):
            amount = payment.get("amount")
            if amount is None and self._assume_payment_covers_full_amount:
                amount = total
            if amount is None:
                raise OrderBuilderError(f"payment {index} amount not set", field="payment.amount")
            common = {"date": payment.get("date") or order_date, "amount": amount}
            if payment["type"] == "credit_card":
                payments.append(CreditCardPayment(card_type=payment["card_type"], last4=payment["last4"], **common))
            elif payment["type"] == "gift_card":
                payments.append(GiftCardPayment(**common))
            else:
                payments.append(CashPayment(**common))
        return payments

    def _build_address(self, index: int, address: Dict[str, Optional[str]]) -> Optional[ShippingAddress]:
        if not self._shipping_address_required:
            return None
        if all(address.get(field) is None for field in SHIPPING_ADDRESS_FIELDS):
            return None
        values = {
            field: self._require(address, field, label=f"shipment {index} shipping_address.{field}")
            for field in SHIPPING_ADDRESS_FIELDS
        }
        return ShippingAddress(**values)

    def _build_shipments(self) -> list:
        shipments = []
        for index, shipment in enumerate(self._shipments):
            items = [
                OrderItem(
                    name=self._require(item, "name", label=f"shipment {index} item {position} name"),
                    price=self._require(item, "price", label=f"shipment {index} item {position} price"),
                    quantity=self._require(item, "quantity", label=f"shipment {index} item {position} quantity"),
                )
                for position, item in enumerate(shipment["items"])
            ]
            shipments.append(
                Shipment(
                    date=shipment["date"],
                    shipping_address=self._build_address(index, shipment["address"]),
                    items=items,
                )
            )
        return shipments

    def build(self) -> Order:
        """Validate the collected fields and return the finished :class:`Order`."""

        if self._built:
            raise OrderBuilderError("build() has already been called on this builder")
        self._built = True

        order_id = self._require(self._order, "id")
        order_date = self._require(self._order, "date")
        if not ISO_DATE_RE.match(order_date):
            raise OrderBuilderError(f"Invalid date format: {order_date}. Expected YYYY-MM-DD", field="date")

        total = self._calculate_total()
        subtotal: MonetaryAmount = self._require(self._order, "subtotal")
        currency = self._order.get("currency") or total.currency
        if not currency:
            raise OrderBuilderError("currency not set", field="currency")
        tax = self._build_tax(total, subtotal, currency)

        return Order(
            id=order_id,
            currency=currency,
            date=order_date,
            placed_by=self._order.get("placed_by"),
            subtotal=subtotal,
            tax=tax,
            shipping_cost=self._order.get("shipping_cost"),
            total=total,
            shipments=self._build_shipments(),
            payments=self._build_payments(order_date, total),
        )
