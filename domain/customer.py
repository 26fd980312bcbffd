"""
Domain: Customer (counterparty of credit sales) and its aggregate statistics.

Rules implemented here:
- total_purchases, total_spent and last_purchase_date are derived aggregates.
  They are never written by callers; they always equal the fold of the
  customer's live purchases (see fold_customer_stats).
- A customer with purchase history is soft-deleted (is_active=False); only a
  customer with zero purchases may be removed outright.
- version is bumped on every aggregate write and used for optimistic
  concurrency checks in the persistence layer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from .errors import ValidationError
from .purchase import NOTES_MAX_LENGTH, Purchase
from .time import require_utc_timestamp

NAME_MAX_LENGTH = 100

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^\+?[\d\s\-\(\)]+$")


@dataclass(frozen=True, slots=True)
class Address:
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "India"


@dataclass(frozen=True, slots=True)
class CustomerStats:
    """Result of folding over a customer's purchases."""

    total_purchases: int = 0
    total_spent: Decimal = Decimal("0")
    last_purchase_date: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class Customer:
    """
    Customer account with profile data and cached purchase aggregates.
    """

    customer_id: UUID
    shop_id: str
    name: str
    email: str
    phone: str
    address: Optional[Address] = None
    notes: Optional[str] = None
    is_active: bool = True

    # Derived aggregates
    total_purchases: int = 0
    total_spent: Decimal = Decimal("0")
    last_purchase_date: Optional[datetime] = None
    version: int = 0

    # Timestamps
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.last_purchase_date is not None:
            require_utc_timestamp("last_purchase_date", self.last_purchase_date)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)

    @property
    def stats(self) -> CustomerStats:
        return CustomerStats(
            total_purchases=self.total_purchases,
            total_spent=self.total_spent,
            last_purchase_date=self.last_purchase_date,
        )


def fold_customer_stats(purchases: Iterable[Purchase]) -> CustomerStats:
    """
    Fold a snapshot of purchases into aggregate statistics.

    Full recomputation, no deltas: the result depends only on the snapshot
    passed in, so it can never drift from the purchases it describes.
    An empty snapshot yields (0, 0, None).
    """

    count = 0
    spent = Decimal("0")
    last: Optional[datetime] = None
    for purchase in purchases:
        count += 1
        spent += purchase.total_amount
        if last is None or purchase.purchase_date > last:
            last = purchase.purchase_date
    return CustomerStats(total_purchases=count, total_spent=spent, last_purchase_date=last)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_profile(
    *,
    name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    notes: Optional[str] = None,
) -> None:
    """
    Validate the customer profile fields that are present (None = not supplied).
    """

    if name is not None:
        if not name.strip():
            raise ValidationError("Customer name is required", field="name")
        if len(name.strip()) > NAME_MAX_LENGTH:
            raise ValidationError(f"Name cannot exceed {NAME_MAX_LENGTH} characters", field="name")
    if email is not None and not _EMAIL_RE.match(normalize_email(email)):
        raise ValidationError("Please provide a valid email", field="email")
    if phone is not None and not _PHONE_RE.match(phone.strip()):
        raise ValidationError("Please provide a valid phone number", field="phone")
    if notes is not None and len(notes) > NOTES_MAX_LENGTH:
        raise ValidationError(f"Notes cannot exceed {NOTES_MAX_LENGTH} characters", field="notes")


__all__ = [
    "Address",
    "Customer",
    "CustomerStats",
    "fold_customer_stats",
    "normalize_email",
    "validate_profile",
]
