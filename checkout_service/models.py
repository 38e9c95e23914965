"""
models.py — Data Models for Order Placement

This module defines the data structures used for checkout, the order status
lifecycle and the API responses. It uses Pydantic models to ensure type safety
and automatic validation of incoming data.

Models:
    - OrderItem: A single line item in a checkout request.
    - NewOrderRequest: The complete checkout payload sent by the storefront.
    - StatusUpdateRequest / WalletCreditRequest: Admin payloads.
    - OrderItemView / OrderView / OrderSummary / WalletView: Read models.

Money is handled as Decimal everywhere outside the database and stored as
integer cents inside it.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field

from .errors import InvalidTransition, ValidationError


class PaymentMethod(str, enum.Enum):
    WALLET = "wallet"
    OTHER = "other"


class OrderStatus(str, enum.Enum):
    PENDING = "Pending"
    PACKED = "Packed"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PACKED, OrderStatus.CANCELLED}),
    OrderStatus.PACKED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def is_terminal(status: OrderStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


def check_transition(current: OrderStatus, new: OrderStatus):
    """
    Validates a requested status change against the lifecycle table.

    Raises:
        InvalidTransition: If `new` is not reachable from `current` in one step.
    """
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move order from {current.value} to {new.value}.")


# --- Money ---

CENTS = Decimal("100")


def to_cents(amount: Decimal) -> int:
    """Converts a major-unit amount (e.g. 12.50) to integer cents (1250)."""
    cents = Decimal(amount) * CENTS
    if cents != cents.to_integral_value():
        raise ValidationError(f"Amount {amount} has more than two decimal places.")
    return int(cents)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / CENTS).quantize(Decimal("0.01"))


# --- Requests ---

class OrderItem(BaseModel):
    """
    Represents a single medicine line in a checkout request.

    Attributes:
        medicine_id (int): Catalog id of the medicine.
        quantity (int): Number of units. Must be greater than zero.
        price (Decimal): Unit price at the time of ordering (snapshot).
    """
    medicine_id: int
    quantity: int = Field(..., gt=0)
    price: Decimal = Field(..., ge=0, decimal_places=2)


class NewOrderRequest(BaseModel):
    """
    Represents a checkout submitted by a storefront user.

    An empty item list is reported by the checkout workflow as EmptyCart.

    Attributes:
        items (List[OrderItem]): Line items of the cart.
        subtotal (Decimal): Sum of the line items.
        service_fee (Decimal): Fee added on top of the subtotal.
        total_amount (Decimal): subtotal + service_fee, the amount charged.
        payment_method (PaymentMethod): 'wallet' debits the internal wallet.
    """
    items: List[OrderItem]
    subtotal: Decimal = Field(..., ge=0, decimal_places=2)
    service_fee: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    total_amount: Decimal = Field(..., gt=0, decimal_places=2)
    payment_method: PaymentMethod


class StatusUpdateRequest(BaseModel):
    status: OrderStatus


class WalletCreditRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    reason: Optional[str] = None


# --- Read models ---

class OrderItemView(BaseModel):
    id: int
    medicine_id: int
    medicine_name: str
    quantity: int
    price: Decimal


class OrderView(BaseModel):
    id: int
    order_number: str
    user_id: int
    user_fullname: str
    subtotal: Decimal
    service_fee: Decimal
    total_amount: Decimal
    payment_method: PaymentMethod
    status: OrderStatus
    created_at: datetime
    items: List[OrderItemView]


class OrderSummary(BaseModel):
    """Row of the admin order list."""
    id: int
    order_number: str
    user_fullname: str
    total_amount: Decimal
    status: OrderStatus
    created_at: datetime
    product_names: List[str]


class WalletView(BaseModel):
    user_id: int
    wallet_balance: Decimal
