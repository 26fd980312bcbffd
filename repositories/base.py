"""
Repository interfaces consumed by the services.

Two implementations exist:
- repositories.memory: thread-safe in-memory store (tests, local development)
- repositories.customer_repository / purchase_repository: Supabase-backed

Repositories only persist and fetch. They enforce simple persistence
constraints (shop scoping, uniqueness, optimistic version checks) but no
business rules; derivation and reconciliation live in the services.
Every lookup is scoped by shop_id: a record owned by another shop is simply
not found.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Protocol
from uuid import UUID

from domain.customer import Customer, CustomerStats
from domain.purchase import PaymentStatus, Purchase


class WriteKind(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class PurchaseWrite:
    """
    A purchase change that is persisted together with its owner's aggregates.

    For DELETE, `purchase` is the record being removed.
    """

    kind: WriteKind
    purchase: Purchase

    def applied_to(self, purchases: Iterable[Purchase]) -> List[Purchase]:
        """The customer's purchase set as it will be once this write is stored."""

        others = [p for p in purchases if p.purchase_id != self.purchase.purchase_id]
        if self.kind is WriteKind.DELETE:
            return others
        return others + [self.purchase]


@dataclass(frozen=True, slots=True)
class PurchaseQueryFilters:
    """Filter criteria for purchase queries. Date bounds are half-open: [start, end)."""

    payment_statuses: Optional[List[PaymentStatus]] = None
    customer_id: Optional[UUID] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class CustomerQueryFilters:
    is_active: Optional[bool] = None
    search: Optional[str] = None  # case-insensitive match on name, email or phone


class CustomerRepository(Protocol):
    def get(self, customer_id: UUID, shop_id: str) -> Optional[Customer]:
        """Return the customer if it exists within the shop, else None."""
        ...

    def list(self, shop_id: str, filters: CustomerQueryFilters = CustomerQueryFilters()) -> List[Customer]:
        """Customers of the shop, newest first."""
        ...

    def find_by_email(self, email: str, shop_id: str) -> Optional[Customer]:
        ...

    def insert(self, customer: Customer) -> Customer:
        """Raises ValidationError if the email is already used in the shop."""
        ...

    def update_profile(self, customer: Customer) -> Customer:
        """
        Persist profile fields and is_active. Aggregates and version are left untouched.

        Raises ValidationError if the new email belongs to another customer of the shop.
        """
        ...

    def save_stats(
        self,
        customer_id: UUID,
        shop_id: str,
        stats: CustomerStats,
        expected_version: int,
        updated_at: datetime,
    ) -> Customer:
        """
        Write aggregates iff the stored version equals expected_version, bumping it.

        Raises NotFoundError if the customer is gone, ConflictError on a stale version.
        """
        ...

    def delete(self, customer_id: UUID, shop_id: str) -> None:
        ...


class PurchaseRepository(Protocol):
    def get(self, purchase_id: UUID, shop_id: str) -> Optional[Purchase]:
        ...

    def list(self, shop_id: str, filters: PurchaseQueryFilters = PurchaseQueryFilters()) -> List[Purchase]:
        """Purchases of the shop matching filters, newest purchase_date first."""
        ...

    def list_for_customer(self, customer_id: UUID, shop_id: str) -> List[Purchase]:
        ...

    def count_for_customer(self, customer_id: UUID, shop_id: str) -> int:
        ...

    def list_refresh_candidates(self, shop_id: Optional[str] = None) -> List[Purchase]:
        """
        Purchases whose status may go stale with time: due_date set,
        remaining_amount > 0 and stored status PENDING.
        """
        ...

    def update(self, purchase: Purchase) -> Purchase:
        """
        Overwrite a stored purchase without touching its customer.

        Only for changes that leave the customer's aggregates as they are
        (status refresh). Everything else goes through commit().
        """
        ...

    def commit(
        self,
        write: PurchaseWrite,
        stats: CustomerStats,
        expected_version: int,
        updated_at: datetime,
    ) -> Customer:
        """
        Apply `write` and store `stats` on the owning customer as one atomic step.

        Nothing is written unless the customer's stored version equals
        expected_version; readers see either both changes or neither.
        Returns the customer with the new aggregates and bumped version.

        Raises:
            NotFoundError: customer gone, or the purchase to update/delete is missing
            ConflictError: stale expected_version
            ValidationError: invoice number already used in the shop
        """
        ...


__all__ = [
    "CustomerQueryFilters",
    "CustomerRepository",
    "PurchaseQueryFilters",
    "PurchaseRepository",
    "PurchaseWrite",
    "WriteKind",
]
