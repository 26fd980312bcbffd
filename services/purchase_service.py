"""
Purchase service: the purchase store and its consistency guarantees.

Handles:
- Creating, updating, paying and deleting purchases
- Money derivation before every write
- Committing every write together with the owning customer's recomputed
  aggregates
- Publishing change events for the purchase and, when its stats changed,
  the customer
- Re-deriving time-sensitive statuses on every read, plus an explicit sweep
  that persists purchases that have newly become overdue

Every mutation holds the owning customer's lock across
load -> derive -> commit -> publish, so concurrent writers for one customer
serialize while other customers proceed in parallel.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence
from uuid import UUID, uuid4

from domain.errors import NotFoundError, ValidationError
from domain.events import (
    ChangeEvent,
    ChangeOperation,
    customer_event,
    payment_event,
    purchase_deleted_event,
    purchase_event,
)
from domain.money import derive_purchase
from domain.overdue import needs_status_refresh, refresh_purchase_status
from domain.purchase import (
    PaymentMethod,
    PaymentStatus,
    Purchase,
    PurchaseItem,
    validate_amount,
    validate_items,
    validate_notes,
)
from domain.time import to_utc, utc_now
from repositories.base import CustomerRepository, PurchaseQueryFilters, PurchaseRepository, PurchaseWrite, WriteKind
from services.notifier import ChangeNotifier
from services.pagination import Page, paginate
from services.reconciliation_service import AggregateReconciler, ReconcileResult

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class PurchaseDraft:
    """
    Request to record a new purchase.

    Either items or total_amount must be supplied. An explicit total_amount
    overrides the item sum (non-itemized purchases).
    """
    customer_id: UUID
    items: Sequence[PurchaseItem] = ()
    total_amount: Optional[Decimal] = None
    paid_amount: Decimal = ZERO
    due_date: Optional[datetime] = None
    purchase_date: Optional[datetime] = None  # defaults to now
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: Optional[PaymentStatus] = None  # only CANCELLED sticks
    notes: Optional[str] = None
    invoice_number: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PurchaseChanges:
    """Partial update. None means "leave unchanged"."""
    customer_id: Optional[UUID] = None  # accepted only if unchanged
    items: Optional[Sequence[PurchaseItem]] = None
    total_amount: Optional[Decimal] = None
    clear_total_override: bool = False
    paid_amount: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    due_date: Optional[datetime] = None
    clear_due_date: bool = False
    notes: Optional[str] = None
    invoice_number: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PaymentUpdate:
    paid_amount: Optional[Decimal] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None


@dataclass(frozen=True, slots=True)
class OutstandingSummary:
    """A set of purchases that still owe money, with the total still owed."""
    purchases: List[Purchase]
    total_amount: Decimal

    @property
    def count(self) -> int:
        return len(self.purchases)


def _requested_status(current: PaymentStatus, requested: Optional[PaymentStatus]) -> PaymentStatus:
    """
    Apply a caller-requested status.

    CANCELLED is stored as-is and survives derivation. Any other explicit status
    re-opens the purchase; derivation then decides its actual value.
    """

    if requested is None:
        return current
    if requested is PaymentStatus.CANCELLED:
        return PaymentStatus.CANCELLED
    return PaymentStatus.PENDING


def _due_date_sort_key(purchase: Purchase) -> tuple:
    due = purchase.due_date
    return (due is None, due.timestamp() if due else 0.0, -purchase.purchase_date.timestamp())


class PurchaseService:
    def __init__(
        self,
        customers: CustomerRepository,
        purchases: PurchaseRepository,
        reconciler: AggregateReconciler,
        notifier: ChangeNotifier,
        *,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], UUID] = uuid4,
    ):
        self._customers = customers
        self._purchases = purchases
        self._reconciler = reconciler
        self._locks = reconciler.locks
        self._notifier = notifier
        self._clock = clock
        self._id_factory = id_factory

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_purchase(self, shop_id: str, draft: PurchaseDraft) -> Purchase:
        """
        Record a purchase for an existing customer of the shop.

        Raises:
            ValidationError: malformed items or amounts (nothing is persisted)
            NotFoundError: customer unknown in this shop
        """

        items = validate_items(draft.items)
        validate_amount("total_amount", draft.total_amount)
        validate_amount("paid_amount", draft.paid_amount)
        validate_notes(draft.notes)
        if not items and draft.total_amount is None:
            raise ValidationError("Provide purchase items or an explicit total_amount", field="items")

        with self._locks.hold(shop_id, draft.customer_id):
            if self._customers.get(draft.customer_id, shop_id) is None:
                raise NotFoundError("customer", draft.customer_id)

            now = self._clock()
            purchase = derive_purchase(
                Purchase(
                    purchase_id=self._id_factory(),
                    customer_id=draft.customer_id,
                    shop_id=shop_id,
                    items=items,
                    total_amount=ZERO,
                    paid_amount=draft.paid_amount,
                    remaining_amount=ZERO,
                    payment_status=_requested_status(PaymentStatus.PENDING, draft.payment_status),
                    payment_method=draft.payment_method,
                    purchase_date=to_utc(draft.purchase_date) if draft.purchase_date else now,
                    due_date=to_utc(draft.due_date) if draft.due_date else None,
                    total_override=draft.total_amount,
                    notes=draft.notes,
                    invoice_number=draft.invoice_number,
                    created_at=now,
                    updated_at=now,
                ),
                now,
            )
            result = self._reconciler.apply(PurchaseWrite(WriteKind.INSERT, purchase))
            self._publish(purchase_event(ChangeOperation.CREATED, purchase))
            self._publish_customer_stats(result)

        logger.info(
            f"Recorded purchase {purchase.purchase_id} for customer {purchase.customer_id}: "
            f"total={purchase.total_amount} status={purchase.payment_status.value}",
            extra={"shop_id": shop_id, "purchase_id": str(purchase.purchase_id)},
        )
        return purchase

    def update_purchase(self, purchase_id: UUID, shop_id: str, changes: PurchaseChanges) -> Purchase:
        """Apply a partial update, re-derive, persist and reconcile."""

        def apply(current: Purchase, now: datetime) -> Purchase:
            if changes.customer_id is not None and changes.customer_id != current.customer_id:
                raise ValidationError("A purchase cannot be moved to another customer", field="customer_id")

            updated = current
            if changes.items is not None:
                updated = replace(updated, items=validate_items(changes.items))
            if changes.clear_total_override:
                updated = replace(updated, total_override=None)
            if changes.total_amount is not None:
                validate_amount("total_amount", changes.total_amount)
                updated = replace(updated, total_override=changes.total_amount)
            if not updated.items and updated.total_override is None:
                raise ValidationError("Provide purchase items or an explicit total_amount", field="items")
            if changes.paid_amount is not None:
                validate_amount("paid_amount", changes.paid_amount)
                updated = replace(updated, paid_amount=changes.paid_amount)
            if changes.payment_method is not None:
                updated = replace(updated, payment_method=changes.payment_method)
            if changes.payment_status is not None:
                updated = replace(
                    updated,
                    payment_status=_requested_status(updated.payment_status, changes.payment_status),
                )
            if changes.clear_due_date:
                updated = replace(updated, due_date=None)
            elif changes.due_date is not None:
                updated = replace(updated, due_date=to_utc(changes.due_date))
            if changes.notes is not None:
                validate_notes(changes.notes)
                updated = replace(updated, notes=changes.notes)
            if changes.invoice_number is not None:
                updated = replace(updated, invoice_number=changes.invoice_number)
            return updated

        return self._mutate(
            purchase_id,
            shop_id,
            apply,
            lambda purchase: purchase_event(ChangeOperation.UPDATED, purchase),
        )

    def update_payment(self, purchase_id: UUID, shop_id: str, payment: PaymentUpdate) -> Purchase:
        """Record a payment (new paid amount, status and/or method) and re-derive."""

        def apply(current: Purchase, now: datetime) -> Purchase:
            updated = current
            if payment.paid_amount is not None:
                validate_amount("paid_amount", payment.paid_amount)
                updated = replace(updated, paid_amount=payment.paid_amount)
            if payment.payment_status is not None:
                updated = replace(
                    updated,
                    payment_status=_requested_status(updated.payment_status, payment.payment_status),
                )
            if payment.payment_method is not None:
                updated = replace(updated, payment_method=payment.payment_method)
            return updated

        return self._mutate(purchase_id, shop_id, apply, payment_event)

    def delete_purchase(self, purchase_id: UUID, shop_id: str) -> None:
        """
        Delete a purchase. The removal and the customer's new aggregates are
        committed together, so no reader sees one without the other.
        """

        existing = self._purchases.get(purchase_id, shop_id)
        if existing is None:
            raise NotFoundError("purchase", purchase_id)

        with self._locks.hold(shop_id, existing.customer_id):
            current = self._purchases.get(purchase_id, shop_id)
            if current is None:
                raise NotFoundError("purchase", purchase_id)

            result = self._reconciler.apply(PurchaseWrite(WriteKind.DELETE, current))
            self._publish(purchase_deleted_event(shop_id, purchase_id, current.customer_id))
            self._publish_customer_stats(result)

        logger.info(
            f"Deleted purchase {purchase_id}",
            extra={"shop_id": shop_id, "purchase_id": str(purchase_id)},
        )

    def reconcile_customer(self, customer_id: UUID, shop_id: str):
        """Explicitly refresh a customer's aggregates. Returns the customer."""

        result = self._reconciler.reconcile(customer_id, shop_id)
        self._publish_customer_stats(result)
        return result.customer

    def refresh_overdue_status(self, shop_id: Optional[str] = None) -> List[Purchase]:
        """
        Sweep pending purchases with a due date and money still owed, persisting
        those that have crossed into OVERDUE since their status was stored.

        Each candidate is reloaded under its customer's lock so the sweep never
        interleaves with an explicit update of the same purchase.

        Returns:
            The purchases whose stored status changed.
        """

        now = self._clock()
        refreshed: List[Purchase] = []

        for candidate in self._purchases.list_refresh_candidates(shop_id):
            if not needs_status_refresh(candidate, now):
                continue

            with self._locks.hold(candidate.shop_id, candidate.customer_id):
                current = self._purchases.get(candidate.purchase_id, candidate.shop_id)
                if current is None:
                    continue
                derived = derive_purchase(current, now)
                if derived.payment_status is current.payment_status:
                    continue
                derived = replace(derived, updated_at=now)
                self._purchases.update(derived)
                self._publish(purchase_event(ChangeOperation.UPDATED, derived))
                refreshed.append(derived)

        logger.info(
            f"Overdue sweep refreshed {len(refreshed)} purchase(s)",
            extra={"shop_id": shop_id, "refreshed": len(refreshed)},
        )
        return refreshed

    # ------------------------------------------------------------------
    # Reads (statuses re-derived at read time)
    # ------------------------------------------------------------------

    def get_purchase(self, purchase_id: UUID, shop_id: str) -> Purchase:
        purchase = self._purchases.get(purchase_id, shop_id)
        if purchase is None:
            raise NotFoundError("purchase", purchase_id)
        return refresh_purchase_status(purchase, self._clock())

    def list_purchases(
        self,
        shop_id: str,
        filters: PurchaseQueryFilters = PurchaseQueryFilters(),
        *,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page[Purchase]:
        """
        List purchases newest first. Status filters apply to the statuses as
        they are at read time, not as they were stored.
        """

        statuses = filters.payment_statuses
        rows = self._refreshed(self._purchases.list(shop_id, replace(filters, payment_statuses=None)))
        if statuses:
            rows = [p for p in rows if p.payment_status in statuses]
        return paginate(rows, limit=limit, offset=offset)

    def list_pending_payments(self, shop_id: str) -> OutstandingSummary:
        """Pending or overdue purchases that still owe money, earliest due first."""

        rows = [
            p
            for p in self._refreshed(self._purchases.list(shop_id))
            if p.payment_status in (PaymentStatus.PENDING, PaymentStatus.OVERDUE) and p.remaining_amount > 0
        ]
        rows.sort(key=_due_date_sort_key)
        return OutstandingSummary(purchases=rows, total_amount=sum((p.remaining_amount for p in rows), ZERO))

    def list_overdue_payments(self, shop_id: str) -> OutstandingSummary:
        rows = [
            p
            for p in self._refreshed(self._purchases.list(shop_id))
            if p.payment_status is PaymentStatus.OVERDUE
        ]
        rows.sort(key=_due_date_sort_key)
        return OutstandingSummary(purchases=rows, total_amount=sum((p.remaining_amount for p in rows), ZERO))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _refreshed(self, purchases: Sequence[Purchase]) -> List[Purchase]:
        now = self._clock()
        return [refresh_purchase_status(p, now) for p in purchases]

    def _mutate(
        self,
        purchase_id: UUID,
        shop_id: str,
        apply: Callable[[Purchase, datetime], Purchase],
        event_factory: Callable[[Purchase], ChangeEvent],
    ) -> Purchase:
        existing = self._purchases.get(purchase_id, shop_id)
        if existing is None:
            raise NotFoundError("purchase", purchase_id)

        # customer_id is immutable, so the lock chosen here stays correct.
        with self._locks.hold(shop_id, existing.customer_id):
            current = self._purchases.get(purchase_id, shop_id)
            if current is None:
                raise NotFoundError("purchase", purchase_id)

            now = self._clock()
            updated = derive_purchase(replace(apply(current, now), updated_at=now), now)
            result = self._reconciler.apply(PurchaseWrite(WriteKind.UPDATE, updated))
            self._publish(event_factory(updated))
            self._publish_customer_stats(result)

        logger.info(
            f"Updated purchase {purchase_id}: paid={updated.paid_amount} "
            f"remaining={updated.remaining_amount} status={updated.payment_status.value}",
            extra={"shop_id": shop_id, "purchase_id": str(purchase_id)},
        )
        return updated

    def _publish(self, event: ChangeEvent) -> None:
        self._notifier.publish(event.shop_id, event)

    def _publish_customer_stats(self, result: ReconcileResult) -> None:
        if result.changed:
            self._publish(customer_event(ChangeOperation.UPDATED, result.customer))


__all__ = [
    "OutstandingSummary",
    "PaymentUpdate",
    "PurchaseChanges",
    "PurchaseDraft",
    "PurchaseService",
]
