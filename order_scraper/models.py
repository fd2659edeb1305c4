"""Immutable order records produced by the invoice parser."""
from __future__ import annotations

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .money import MonetaryAmount

__all__ = [
    "OrderItem",
    "ShippingAddress",
    "Shipment",
    "CreditCardPayment",
    "GiftCardPayment",
    "CashPayment",
    "Payment",
    "Order",
    "SHIPPING_ADDRESS_FIELDS",
]

SHIPPING_ADDRESS_FIELDS = ("name", "address", "city", "state", "zip", "country")


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class OrderItem(_Record):
    name: str
    price: MonetaryAmount
    quantity: int = Field(ge=1)


class ShippingAddress(_Record):
    """A postal address; every field is ``""`` when the page hides the address."""

    name: str
    address: str
    city: str
    state: str
    zip: str
    country: str

    @property
    def hidden(self) -> bool:
        return not any(getattr(self, field) for field in SHIPPING_ADDRESS_FIELDS)


class Shipment(_Record):
    date: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None
    items: List[OrderItem] = Field(default_factory=list)


class _PaymentBase(_Record):
    date: str
    amount: MonetaryAmount


class CreditCardPayment(_PaymentBase):
    type: Literal["credit_card"] = "credit_card"
    card_type: str
    last4: str


class GiftCardPayment(_PaymentBase):
    type: Literal["gift_card"] = "gift_card"


class CashPayment(_PaymentBase):
    type: Literal["cash"] = "cash"


Payment = Annotated[
    Union[CreditCardPayment, GiftCardPayment, CashPayment],
    Field(discriminator="type"),
]


class Order(_Record):
    id: str
    currency: str
    date: str
    placed_by: Optional[str] = None
    subtotal: MonetaryAmount
    tax: MonetaryAmount
    shipping_cost: Optional[MonetaryAmount] = None
    total: MonetaryAmount
    shipments: List[Shipment] = Field(default_factory=list)
    payments: List[Payment] = Field(default_factory=list)

    @property
    def items(self) -> List[OrderItem]:
        return [item for shipment in self.shipments for item in shipment.items]

    @property
    def items_subtotal_cents(self) -> int:
        """Sum of ``price * quantity`` over every item in every shipment."""

        return sum(item.price.cents * item.quantity for item in self.items)

    @property
    def year(self) -> int:
        return int(self.date[:4])
