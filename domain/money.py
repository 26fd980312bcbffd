"""
Domain: money derivation for purchases.

Derivation recomputes every monetary field of a purchase from its authoritative
inputs (items, explicit total override, paid amount, due date, now):

1. item.total_price = quantity * unit_price for every item
2. total_amount     = total_override if given, else sum(item.total_price)
3. remaining_amount = total_amount - paid_amount (may be negative on overpayment)
4. payment_status   = classify_status(remaining, due_date, now),
                      skipped entirely when the status is CANCELLED

Derivation is deterministic and idempotent: deriving an already-derived
purchase with the same `now` returns an equal purchase. Input validation
(quantity, prices, negative amounts) is not a derivation concern and happens
before a purchase is built (see domain/purchase.py).
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from .overdue import classify_status
from .purchase import PaymentStatus, Purchase, PurchaseItem

ZERO = Decimal("0")


def price_items(items: Iterable[PurchaseItem]) -> Tuple[PurchaseItem, ...]:
    """Recompute total_price on every item, ignoring any supplied value."""

    return tuple(
        replace(item, total_price=Decimal(item.quantity) * item.unit_price)
        for item in items
    )


def items_total(items: Iterable[PurchaseItem]) -> Decimal:
    return sum((Decimal(item.quantity) * item.unit_price for item in items), ZERO)


def compute_total(items: Iterable[PurchaseItem], total_override: Optional[Decimal]) -> Decimal:
    if total_override is not None:
        return total_override
    return items_total(items)


def derive_status(
    current: PaymentStatus,
    remaining_amount: Decimal,
    due_date: Optional[datetime],
    now: datetime,
) -> PaymentStatus:
    if current is PaymentStatus.CANCELLED:
        return current
    return classify_status(remaining_amount, due_date, now)


def derive_purchase(purchase: Purchase, now: datetime) -> Purchase:
    """Return `purchase` with items, totals and status re-derived at `now`."""

    items = price_items(purchase.items)
    total_amount = compute_total(items, purchase.total_override)
    remaining_amount = total_amount - purchase.paid_amount
    status = derive_status(purchase.payment_status, remaining_amount, purchase.due_date, now)

    return replace(
        purchase,
        items=items,
        total_amount=total_amount,
        remaining_amount=remaining_amount,
        payment_status=status,
    )


__all__ = [
    "compute_total",
    "derive_purchase",
    "derive_status",
    "items_total",
    "price_items",
]
