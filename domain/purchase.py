"""
Domain: Purchase (one credit-sale transaction against a customer).

Rules implemented here:
- A purchase belongs to exactly one customer and one shop; neither changes after
  creation. purchase_date is also fixed at creation.
- Line items carry quantity >= 1 and unit_price >= 0. Their total_price is always
  recomputed by derivation (see domain/money.py) and never trusted from input.
- total_amount, paid_amount are never negative. paid_amount may exceed
  total_amount (overpayment); remaining_amount then goes negative and is stored
  as-is.
- payment_status is derived, except CANCELLED which is caller-set and sticky.

This module contains only pure domain entities and validation: no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Tuple
from uuid import UUID

from .errors import ValidationError
from .time import require_utc_timestamp

NOTES_MAX_LENGTH = 500

ZERO = Decimal("0")


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    WALLET = "wallet"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class PurchaseItem:
    """A single line item. total_price is filled in by derivation."""

    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal = ZERO


@dataclass(frozen=True, slots=True)
class Purchase:
    """
    Purchase record as persisted.

    total_override holds the caller's explicit total for non-itemized purchases;
    when it is None the total is the sum of the item totals.
    """

    purchase_id: UUID
    customer_id: UUID
    shop_id: str
    items: Tuple[PurchaseItem, ...]
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: PaymentStatus
    purchase_date: datetime
    payment_method: PaymentMethod = PaymentMethod.CASH
    due_date: Optional[datetime] = None
    total_override: Optional[Decimal] = None
    notes: Optional[str] = None
    invoice_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("purchase_date", self.purchase_date)
        if self.due_date is not None:
            require_utc_timestamp("due_date", self.due_date)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def is_cancelled(self) -> bool:
        return self.payment_status is PaymentStatus.CANCELLED

    @property
    def outstanding_amount(self) -> Decimal:
        """Amount still owed, clamped at zero for overpaid purchases."""
        return max(self.remaining_amount, ZERO)


def validate_items(items: Iterable[PurchaseItem]) -> Tuple[PurchaseItem, ...]:
    """
    Validate line items and return them as an immutable tuple.

    Raises ValidationError on the first offending item.
    """

    validated = tuple(items)
    for index, item in enumerate(validated):
        if not item.product_name or not item.product_name.strip():
            raise ValidationError(f"items[{index}]: product name is required", field="items")
        if isinstance(item.quantity, bool) or not isinstance(item.quantity, int):
            raise ValidationError(f"items[{index}]: quantity must be an integer", field="items")
        if item.quantity < 1:
            raise ValidationError(f"items[{index}]: quantity must be at least 1", field="items")
        if item.unit_price < 0:
            raise ValidationError(f"items[{index}]: unit price cannot be negative", field="items")
    return validated


def validate_amount(name: str, value: Optional[Decimal]) -> None:
    if value is not None and value < 0:
        raise ValidationError(f"{name} cannot be negative", field=name)


def validate_notes(notes: Optional[str]) -> None:
    if notes is not None and len(notes) > NOTES_MAX_LENGTH:
        raise ValidationError(f"notes cannot exceed {NOTES_MAX_LENGTH} characters", field="notes")


__all__ = [
    "NOTES_MAX_LENGTH",
    "PaymentMethod",
    "PaymentStatus",
    "Purchase",
    "PurchaseItem",
    "validate_amount",
    "validate_items",
    "validate_notes",
]
