"""
Domain: overdue classification.

A purchase is overdue iff:
- due_date is set, AND
- remaining_amount > 0, AND
- now > due_date (strict; now == due_date is NOT overdue).

Stored payment_status is a cache that goes stale purely through elapsed time:
a pending purchase silently becomes overdue once its due date passes. The
helpers below re-evaluate status at read time from the stored remaining amount,
so no background clock is needed. "now" is always passed in explicitly.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .purchase import PaymentStatus, Purchase
from .time import require_utc_timestamp


def is_overdue(due_date: Optional[datetime], remaining_amount: Decimal, now: datetime) -> bool:
    """Pure predicate: (due_date, remaining_amount, now) -> overdue?"""

    if due_date is None:
        return False
    require_utc_timestamp("now", now)
    return remaining_amount > 0 and now > due_date


def classify_status(remaining_amount: Decimal, due_date: Optional[datetime], now: datetime) -> PaymentStatus:
    """
    Derive the payment status of a non-cancelled purchase.

    remaining <= 0 -> COMPLETED (regardless of due date)
    overdue       -> OVERDUE
    otherwise     -> PENDING
    """

    if remaining_amount <= 0:
        return PaymentStatus.COMPLETED
    if is_overdue(due_date, remaining_amount, now):
        return PaymentStatus.OVERDUE
    return PaymentStatus.PENDING


def refresh_purchase_status(purchase: Purchase, now: datetime) -> Purchase:
    """
    Return the purchase with its status re-evaluated at `now`.

    Cancelled purchases are returned unchanged. The same instance is returned
    when the stored status is still current.
    """

    if purchase.is_cancelled:
        return purchase
    status = classify_status(purchase.remaining_amount, purchase.due_date, now)
    if status is purchase.payment_status:
        return purchase
    return replace(purchase, payment_status=status)


def needs_status_refresh(purchase: Purchase, now: datetime) -> bool:
    """True when the stored status no longer matches the status derived at `now`."""

    return refresh_purchase_status(purchase, now) is not purchase


__all__ = [
    "classify_status",
    "is_overdue",
    "needs_status_refresh",
    "refresh_purchase_status",
]
