"""
Customer service.

Handles the customer profile lifecycle (create, update, deactivate/delete) and
customer-centric reads. Aggregates (total_purchases, total_spent,
last_purchase_date) are never written here; they belong to the reconciler.

Reads of a single customer take the customer's lock, so they cannot observe
the window between a purchase mutation and its reconciliation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional
from uuid import UUID, uuid4

from domain.customer import Address, Customer, normalize_email, validate_profile
from domain.errors import NotFoundError, ValidationError
from domain.events import ChangeEvent, ChangeOperation, customer_deleted_event, customer_event
from domain.overdue import refresh_purchase_status
from domain.purchase import PaymentStatus, Purchase
from domain.time import utc_now
from repositories.base import CustomerQueryFilters, CustomerRepository, PurchaseRepository
from services.notifier import ChangeNotifier
from services.pagination import Page, paginate
from services.reconciliation_service import CustomerLockRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CustomerDraft:
    name: str
    email: str
    phone: str
    address: Optional[Address] = None
    notes: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CustomerChanges:
    """Partial profile update. None means "leave unchanged"."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[Address] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class CustomerRemoval(str, Enum):
    DEACTIVATED = "deactivated"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class CustomerDetail:
    customer: Customer
    purchases: List[Purchase]


@dataclass(frozen=True, slots=True)
class OverdueCustomer:
    customer: Customer
    overdue_purchases: List[Purchase]
    overdue_amount: Decimal


class CustomerService:
    def __init__(
        self,
        customers: CustomerRepository,
        purchases: PurchaseRepository,
        locks: CustomerLockRegistry,
        notifier: ChangeNotifier,
        *,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], UUID] = uuid4,
    ):
        self._customers = customers
        self._purchases = purchases
        self._locks = locks
        self._notifier = notifier
        self._clock = clock
        self._id_factory = id_factory

    def create_customer(self, shop_id: str, draft: CustomerDraft) -> Customer:
        """
        Register a new customer for the shop.

        Raises:
            ValidationError: invalid profile, or email already used in this shop
        """

        validate_profile(name=draft.name, email=draft.email, phone=draft.phone, notes=draft.notes)
        email = normalize_email(draft.email)
        if self._customers.find_by_email(email, shop_id) is not None:
            raise ValidationError("Customer with this email already exists", field="email")

        now = self._clock()
        customer = self._customers.insert(
            Customer(
                customer_id=self._id_factory(),
                shop_id=shop_id,
                name=draft.name.strip(),
                email=email,
                phone=draft.phone.strip(),
                address=draft.address,
                notes=draft.notes,
                created_at=now,
                updated_at=now,
            )
        )
        self._publish(customer_event(ChangeOperation.CREATED, customer))
        logger.info(
            f"Created customer {customer.customer_id}",
            extra={"shop_id": shop_id, "customer_id": str(customer.customer_id)},
        )
        return customer

    def update_customer(self, customer_id: UUID, shop_id: str, changes: CustomerChanges) -> Customer:
        validate_profile(name=changes.name, email=changes.email, phone=changes.phone, notes=changes.notes)

        with self._locks.hold(shop_id, customer_id):
            current = self._require(customer_id, shop_id)

            updated = current
            if changes.email is not None:
                email = normalize_email(changes.email)
                if email != current.email:
                    existing = self._customers.find_by_email(email, shop_id)
                    if existing is not None and existing.customer_id != customer_id:
                        raise ValidationError("Customer with this email already exists", field="email")
                updated = replace(updated, email=email)
            if changes.name is not None:
                updated = replace(updated, name=changes.name.strip())
            if changes.phone is not None:
                updated = replace(updated, phone=changes.phone.strip())
            if changes.address is not None:
                updated = replace(updated, address=changes.address)
            if changes.notes is not None:
                updated = replace(updated, notes=changes.notes)
            if changes.is_active is not None:
                updated = replace(updated, is_active=changes.is_active)

            updated = self._customers.update_profile(replace(updated, updated_at=self._clock()))
            self._publish(customer_event(ChangeOperation.UPDATED, updated))

        logger.info(
            f"Updated customer {customer_id}",
            extra={"shop_id": shop_id, "customer_id": str(customer_id)},
        )
        return updated

    def delete_customer(self, customer_id: UUID, shop_id: str) -> CustomerRemoval:
        """
        Remove a customer.

        A customer with purchase history is deactivated (soft delete) so the
        purchases keep a valid owner; one without history is deleted outright.
        """

        with self._locks.hold(shop_id, customer_id):
            current = self._require(customer_id, shop_id)

            if self._purchases.count_for_customer(customer_id, shop_id) > 0:
                updated = self._customers.update_profile(
                    replace(current, is_active=False, updated_at=self._clock())
                )
                self._publish(customer_event(ChangeOperation.DEACTIVATED, updated))
                removal = CustomerRemoval.DEACTIVATED
            else:
                self._customers.delete(customer_id, shop_id)
                self._publish(customer_deleted_event(shop_id, customer_id))
                removal = CustomerRemoval.DELETED

        if removal is CustomerRemoval.DELETED:
            self._locks.discard(shop_id, customer_id)

        logger.info(
            f"Customer {customer_id} {removal.value}",
            extra={"shop_id": shop_id, "customer_id": str(customer_id)},
        )
        return removal

    def get_customer(self, customer_id: UUID, shop_id: str) -> Customer:
        with self._locks.hold(shop_id, customer_id):
            return self._require(customer_id, shop_id)

    def get_customer_detail(self, customer_id: UUID, shop_id: str) -> CustomerDetail:
        """Customer plus its purchases (newest first), read as one consistent snapshot."""

        with self._locks.hold(shop_id, customer_id):
            customer = self._require(customer_id, shop_id)
            purchases = self._purchases.list_for_customer(customer_id, shop_id)

        now = self._clock()
        return CustomerDetail(
            customer=customer,
            purchases=[refresh_purchase_status(p, now) for p in purchases],
        )

    def list_customers(
        self,
        shop_id: str,
        filters: CustomerQueryFilters = CustomerQueryFilters(),
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page[Customer]:
        return paginate(self._customers.list(shop_id, filters), limit=limit, offset=offset)

    def list_customer_purchases(
        self,
        customer_id: UUID,
        shop_id: str,
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page[Purchase]:
        """Purchase history of one customer, newest first."""

        self._require(customer_id, shop_id)
        now = self._clock()
        rows = [
            refresh_purchase_status(p, now)
            for p in self._purchases.list_for_customer(customer_id, shop_id)
        ]
        return paginate(rows, limit=limit, offset=offset)

    def list_overdue_customers(self, shop_id: str) -> List[OverdueCustomer]:
        """
        Customers with at least one purchase overdue right now, largest overdue
        amount first.
        """

        now = self._clock()
        by_customer: dict[UUID, List[Purchase]] = {}
        for purchase in self._purchases.list(shop_id):
            refreshed = refresh_purchase_status(purchase, now)
            if refreshed.payment_status is PaymentStatus.OVERDUE:
                by_customer.setdefault(refreshed.customer_id, []).append(refreshed)

        result: List[OverdueCustomer] = []
        for customer_id, overdue in by_customer.items():
            customer = self._customers.get(customer_id, shop_id)
            if customer is None:
                continue
            result.append(
                OverdueCustomer(
                    customer=customer,
                    overdue_purchases=overdue,
                    overdue_amount=sum((p.remaining_amount for p in overdue), Decimal("0")),
                )
            )
        result.sort(key=lambda entry: entry.overdue_amount, reverse=True)
        return result

    def _require(self, customer_id: UUID, shop_id: str) -> Customer:
        customer = self._customers.get(customer_id, shop_id)
        if customer is None:
            raise NotFoundError("customer", customer_id)
        return customer

    def _publish(self, event: ChangeEvent) -> None:
        self._notifier.publish(event.shop_id, event)


__all__ = [
    "CustomerChanges",
    "CustomerDetail",
    "CustomerDraft",
    "CustomerRemoval",
    "CustomerService",
    "OverdueCustomer",
]
