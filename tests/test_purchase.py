"""
Tests for `domain/purchase.py`.

Covers contract rules:
- Purchase timestamps must be UTC; the entity is immutable.
- Line items need a product name, an integer quantity >= 1 and unit_price >= 0.
- Amounts cannot be negative; notes are bounded.
- outstanding_amount clamps overpayment at zero.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from domain.errors import ValidationError
from domain.purchase import (
    NOTES_MAX_LENGTH,
    PaymentStatus,
    Purchase,
    PurchaseItem,
    validate_amount,
    validate_items,
    validate_notes,
)


def _purchase(purchase_date: datetime, remaining: Decimal = Decimal("10")) -> Purchase:
    return Purchase(
        purchase_id=UUID("00000000-0000-0000-0000-000000000101"),
        customer_id=UUID("00000000-0000-0000-0000-000000000201"),
        shop_id="shop-a",
        items=(),
        total_amount=Decimal("10"),
        paid_amount=Decimal("10") - remaining,
        remaining_amount=remaining,
        payment_status=PaymentStatus.PENDING,
        purchase_date=purchase_date,
        total_override=Decimal("10"),
    )


def test_purchase_date_must_be_utc() -> None:
    """Verify purchase_date enforces a UTC timezone-aware timestamp."""

    with pytest.raises(ValueError):
        _purchase(datetime(2025, 1, 1, 0, 0, 0))

    with pytest.raises(ValueError):
        _purchase(datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone(timedelta(hours=5, minutes=30))))


def test_purchase_is_immutable() -> None:
    """Verify Purchase cannot be mutated after creation (frozen entity)."""

    purchase = _purchase(datetime(2025, 1, 1, tzinfo=timezone.utc))

    with pytest.raises(FrozenInstanceError):
        purchase.paid_amount = Decimal("5")  # type: ignore[misc]


def test_outstanding_amount_clamps_overpayment() -> None:
    """Verify a negative remaining amount reports nothing outstanding."""

    overpaid = _purchase(datetime(2025, 1, 1, tzinfo=timezone.utc), remaining=Decimal("-3"))

    assert overpaid.remaining_amount == Decimal("-3")
    assert overpaid.outstanding_amount == Decimal("0")


@pytest.mark.parametrize(
    "item",
    [
        PurchaseItem(product_name="A", quantity=0, unit_price=Decimal("1")),
        PurchaseItem(product_name="A", quantity=-2, unit_price=Decimal("1")),
        PurchaseItem(product_name="A", quantity=1, unit_price=Decimal("-0.01")),
        PurchaseItem(product_name="  ", quantity=1, unit_price=Decimal("1")),
        PurchaseItem(product_name="A", quantity=True, unit_price=Decimal("1")),  # type: ignore[arg-type]
        PurchaseItem(product_name="A", quantity=1.5, unit_price=Decimal("1")),  # type: ignore[arg-type]
    ],
)
def test_invalid_items_are_rejected(item: PurchaseItem) -> None:
    """Verify each malformed line item raises ValidationError."""

    with pytest.raises(ValidationError):
        validate_items([PurchaseItem(product_name="ok", quantity=1, unit_price=Decimal("1")), item])


def test_valid_items_become_a_tuple() -> None:
    """Verify validated items come back as an immutable tuple, zero price allowed."""

    items = validate_items([PurchaseItem(product_name="Free sample", quantity=1, unit_price=Decimal("0"))])

    assert isinstance(items, tuple)
    assert items[0].product_name == "Free sample"


def test_negative_amounts_are_rejected() -> None:
    """Verify negative totals and payments raise ValidationError naming the field."""

    with pytest.raises(ValidationError) as excinfo:
        validate_amount("paid_amount", Decimal("-1"))
    assert excinfo.value.field == "paid_amount"

    validate_amount("paid_amount", Decimal("0"))
    validate_amount("total_amount", None)


def test_notes_length_is_bounded() -> None:
    """Verify notes longer than the limit are rejected."""

    validate_notes("x" * NOTES_MAX_LENGTH)

    with pytest.raises(ValidationError):
        validate_notes("x" * (NOTES_MAX_LENGTH + 1))
