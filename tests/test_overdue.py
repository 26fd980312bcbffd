"""
Tests for `domain/overdue.py`.

Covers contract rules:
- Overdue iff due date set, remaining > 0 and now > due date (strict).
- Without a due date a purchase is never overdue.
- Read-time refresh re-evaluates a stale stored status and leaves cancelled alone.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from domain.overdue import classify_status, is_overdue, needs_status_refresh, refresh_purchase_status
from domain.purchase import PaymentStatus, Purchase, PurchaseItem

DUE = datetime(2025, 3, 10, 0, 0, 0, tzinfo=timezone.utc)


def _pending(due_date=DUE, remaining=Decimal("50")) -> Purchase:
    return Purchase(
        purchase_id=UUID("00000000-0000-0000-0000-000000000301"),
        customer_id=UUID("00000000-0000-0000-0000-000000000201"),
        shop_id="shop-a",
        items=(PurchaseItem(product_name="A", quantity=1, unit_price=Decimal("50"), total_price=Decimal("50")),),
        total_amount=Decimal("50"),
        paid_amount=Decimal("50") - remaining,
        remaining_amount=remaining,
        payment_status=PaymentStatus.PENDING,
        purchase_date=DUE - timedelta(days=30),
        due_date=due_date,
    )


def test_due_date_boundary_is_strict() -> None:
    """Verify now == due_date is not overdue, one second later is."""

    assert is_overdue(DUE, Decimal("50"), DUE) is False
    assert is_overdue(DUE, Decimal("50"), DUE + timedelta(seconds=1)) is True
    assert is_overdue(DUE, Decimal("50"), DUE - timedelta(seconds=1)) is False


def test_no_due_date_is_never_overdue() -> None:
    """Verify a purchase without due date stays pending forever."""

    far_future = DUE + timedelta(days=10_000)

    assert is_overdue(None, Decimal("50"), far_future) is False
    assert classify_status(Decimal("50"), None, far_future) is PaymentStatus.PENDING


def test_nothing_owed_is_never_overdue() -> None:
    """Verify zero or negative remaining is completed, not overdue."""

    later = DUE + timedelta(days=1)

    assert is_overdue(DUE, Decimal("0"), later) is False
    assert classify_status(Decimal("0"), DUE, later) is PaymentStatus.COMPLETED
    assert classify_status(Decimal("-5"), DUE, later) is PaymentStatus.COMPLETED


def test_now_must_be_utc() -> None:
    """Verify the classifier rejects a naive `now`."""

    with pytest.raises(ValueError):
        is_overdue(DUE, Decimal("50"), datetime(2025, 3, 11))


def test_refresh_turns_stale_pending_into_overdue() -> None:
    """Verify a stored pending status is re-evaluated once the due date passes."""

    purchase = _pending()
    later = DUE + timedelta(hours=1)

    assert needs_status_refresh(purchase, later) is True
    assert refresh_purchase_status(purchase, later).payment_status is PaymentStatus.OVERDUE


def test_refresh_returns_same_instance_when_current() -> None:
    """Verify an up-to-date purchase is returned unchanged."""

    purchase = _pending()

    assert refresh_purchase_status(purchase, DUE) is purchase
    assert needs_status_refresh(purchase, DUE) is False


def test_refresh_leaves_cancelled_untouched() -> None:
    """Verify cancelled purchases are never re-classified."""

    cancelled = replace(_pending(), payment_status=PaymentStatus.CANCELLED)

    assert refresh_purchase_status(cancelled, DUE + timedelta(days=5)) is cancelled
