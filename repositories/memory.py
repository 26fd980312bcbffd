"""
In-memory repositories.

Thread-safe implementations of the repository protocols, used by the test
suite and for local development (STORAGE_BACKEND=memory). Records are frozen
dataclasses, so they are stored and returned without copying.

A purchase repository built on a customer repository shares its lock, so
commit() changes a purchase and its customer's aggregates in one critical
section and customer readers never see one without the other.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from domain.customer import Customer, CustomerStats
from domain.errors import ConflictError, NotFoundError, ValidationError
from domain.purchase import PaymentStatus, Purchase
from repositories.base import CustomerQueryFilters, PurchaseQueryFilters, PurchaseWrite, WriteKind

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _matches_search(customer: Customer, search: str) -> bool:
    needle = search.lower()
    return any(needle in value.lower() for value in (customer.name, customer.email, customer.phone))


class InMemoryCustomerRepository:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._rows: Dict[UUID, Customer] = {}

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def get(self, customer_id: UUID, shop_id: str) -> Optional[Customer]:
        with self._lock:
            customer = self._rows.get(customer_id)
        if customer is None or customer.shop_id != shop_id:
            return None
        return customer

    def list(self, shop_id: str, filters: CustomerQueryFilters = CustomerQueryFilters()) -> List[Customer]:
        with self._lock:
            rows = [c for c in self._rows.values() if c.shop_id == shop_id]
        if filters.is_active is not None:
            rows = [c for c in rows if c.is_active == filters.is_active]
        if filters.search:
            rows = [c for c in rows if _matches_search(c, filters.search)]
        return sorted(rows, key=_customer_sort_key, reverse=True)

    def find_by_email(self, email: str, shop_id: str) -> Optional[Customer]:
        with self._lock:
            for customer in self._rows.values():
                if customer.shop_id == shop_id and customer.email == email:
                    return customer
        return None

    def insert(self, customer: Customer) -> Customer:
        with self._lock:
            if customer.customer_id in self._rows:
                raise ValidationError("Customer already exists", field="customer_id")
            self._check_email(customer)
            self._rows[customer.customer_id] = customer
        return customer

    def update_profile(self, customer: Customer) -> Customer:
        with self._lock:
            current = self._rows.get(customer.customer_id)
            if current is None or current.shop_id != customer.shop_id:
                raise NotFoundError("customer", customer.customer_id)
            self._check_email(customer)
            updated = replace(
                current,
                name=customer.name,
                email=customer.email,
                phone=customer.phone,
                address=customer.address,
                notes=customer.notes,
                is_active=customer.is_active,
                updated_at=customer.updated_at,
            )
            self._rows[customer.customer_id] = updated
        return updated

    def save_stats(
        self,
        customer_id: UUID,
        shop_id: str,
        stats: CustomerStats,
        expected_version: int,
        updated_at: datetime,
    ) -> Customer:
        with self._lock:
            current = self._rows.get(customer_id)
            if current is None or current.shop_id != shop_id:
                raise NotFoundError("customer", customer_id)
            if current.version != expected_version:
                raise ConflictError("customer", customer_id, expected_version)
            updated = replace(
                current,
                total_purchases=stats.total_purchases,
                total_spent=stats.total_spent,
                last_purchase_date=stats.last_purchase_date,
                version=current.version + 1,
                updated_at=updated_at,
            )
            self._rows[customer_id] = updated
        return updated

    def delete(self, customer_id: UUID, shop_id: str) -> None:
        with self._lock:
            current = self._rows.get(customer_id)
            if current is None or current.shop_id != shop_id:
                raise NotFoundError("customer", customer_id)
            del self._rows[customer_id]

    def _check_email(self, customer: Customer) -> None:
        # Caller holds self._lock.
        for other in self._rows.values():
            if (
                other.customer_id != customer.customer_id
                and other.shop_id == customer.shop_id
                and other.email == customer.email
            ):
                raise ValidationError("Customer with this email already exists", field="email")


def _customer_sort_key(customer: Customer) -> datetime:
    return customer.created_at or _EPOCH


def _purchase_matches(purchase: Purchase, filters: PurchaseQueryFilters) -> bool:
    if filters.payment_statuses and purchase.payment_status not in filters.payment_statuses:
        return False
    if filters.customer_id is not None and purchase.customer_id != filters.customer_id:
        return False
    if filters.start is not None and purchase.purchase_date < filters.start:
        return False
    if filters.end is not None and purchase.purchase_date >= filters.end:
        return False
    return True


class InMemoryPurchaseRepository:
    def __init__(self, customers: Optional[InMemoryCustomerRepository] = None) -> None:
        self._customers = customers
        self._lock = customers.lock if customers is not None else threading.RLock()
        self._rows: Dict[UUID, Purchase] = {}

    def get(self, purchase_id: UUID, shop_id: str) -> Optional[Purchase]:
        with self._lock:
            purchase = self._rows.get(purchase_id)
        if purchase is None or purchase.shop_id != shop_id:
            return None
        return purchase

    def list(self, shop_id: str, filters: PurchaseQueryFilters = PurchaseQueryFilters()) -> List[Purchase]:
        with self._lock:
            rows = [p for p in self._rows.values() if p.shop_id == shop_id and _purchase_matches(p, filters)]
        return sorted(rows, key=lambda p: p.purchase_date, reverse=True)

    def list_for_customer(self, customer_id: UUID, shop_id: str) -> List[Purchase]:
        return self.list(shop_id, PurchaseQueryFilters(customer_id=customer_id))

    def count_for_customer(self, customer_id: UUID, shop_id: str) -> int:
        with self._lock:
            return sum(1 for p in self._rows.values() if p.shop_id == shop_id and p.customer_id == customer_id)

    def list_refresh_candidates(self, shop_id: Optional[str] = None) -> List[Purchase]:
        with self._lock:
            return [
                p
                for p in self._rows.values()
                if (shop_id is None or p.shop_id == shop_id)
                and p.due_date is not None
                and p.remaining_amount > 0
                and p.payment_status is PaymentStatus.PENDING
            ]

    def update(self, purchase: Purchase) -> Purchase:
        with self._lock:
            self._require_stored(purchase.purchase_id, purchase.shop_id)
            self._check_invoice_number(purchase)
            self._rows[purchase.purchase_id] = purchase
        return purchase

    def commit(
        self,
        write: PurchaseWrite,
        stats: CustomerStats,
        expected_version: int,
        updated_at: datetime,
    ) -> Customer:
        if self._customers is None:
            raise RuntimeError("Purchase repository is not linked to a customer repository")

        purchase = write.purchase
        with self._lock:
            # Every check runs before the first change, so a failure writes nothing.
            customer = self._customers.get(purchase.customer_id, purchase.shop_id)
            if customer is None:
                raise NotFoundError("customer", purchase.customer_id)
            if customer.version != expected_version:
                raise ConflictError("customer", purchase.customer_id, expected_version)

            if write.kind is WriteKind.INSERT:
                if purchase.purchase_id in self._rows:
                    raise ValidationError("Purchase already exists", field="purchase_id")
                self._check_invoice_number(purchase)
                self._rows[purchase.purchase_id] = purchase
            elif write.kind is WriteKind.UPDATE:
                self._require_stored(purchase.purchase_id, purchase.shop_id)
                self._check_invoice_number(purchase)
                self._rows[purchase.purchase_id] = purchase
            else:
                self._require_stored(purchase.purchase_id, purchase.shop_id)
                del self._rows[purchase.purchase_id]

            return self._customers.save_stats(
                purchase.customer_id, purchase.shop_id, stats, expected_version, updated_at
            )

    def _require_stored(self, purchase_id: UUID, shop_id: str) -> None:
        # Caller holds self._lock.
        current = self._rows.get(purchase_id)
        if current is None or current.shop_id != shop_id:
            raise NotFoundError("purchase", purchase_id)

    def _check_invoice_number(self, purchase: Purchase) -> None:
        # Caller holds self._lock.
        if purchase.invoice_number is None:
            return
        for other in self._rows.values():
            if (
                other.purchase_id != purchase.purchase_id
                and other.shop_id == purchase.shop_id
                and other.invoice_number == purchase.invoice_number
            ):
                raise ValidationError(
                    f"Invoice number already in use: {purchase.invoice_number}",
                    field="invoice_number",
                )


__all__ = [
    "InMemoryCustomerRepository",
    "InMemoryPurchaseRepository",
]
