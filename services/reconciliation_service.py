"""
Aggregate reconciliation for customer statistics.

After any purchase mutation the owning customer's total_purchases, total_spent
and last_purchase_date are recomputed by folding over the customer's full,
current purchase set (never by applying deltas). Writes go through an
optimistic version check; a stale version is retried with a fresh snapshot.

apply() is the write path for purchase changes: the change and the aggregates
it produces are committed together by the purchase repository, so readers
never observe one without the other. reconcile() repairs aggregates that have
drifted from the stored purchases.

Serialization is per customer: CustomerLockRegistry hands out one re-entrant
lock per (shop_id, customer_id). Mutations of different customers never
contend; there is no global lock.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterator, Tuple
from uuid import UUID

from domain.customer import Customer, fold_customer_stats
from domain.errors import ConflictError, NotFoundError
from domain.time import utc_now
from repositories.base import CustomerRepository, PurchaseRepository, PurchaseWrite

logger = logging.getLogger(__name__)


class CustomerLockRegistry:
    """One re-entrant lock per (shop_id, customer_id), created on demand."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, UUID], threading.RLock] = {}

    def lock_for(self, shop_id: str, customer_id: UUID) -> threading.RLock:
        key = (shop_id, customer_id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, shop_id: str, customer_id: UUID) -> Iterator[None]:
        lock = self.lock_for(shop_id, customer_id)
        with lock:
            yield

    def discard(self, shop_id: str, customer_id: UUID) -> None:
        """Forget the lock of a customer that no longer exists."""
        with self._guard:
            self._locks.pop((shop_id, customer_id), None)


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    customer: Customer
    changed: bool


class AggregateReconciler:
    def __init__(
        self,
        customers: CustomerRepository,
        purchases: PurchaseRepository,
        locks: CustomerLockRegistry,
        *,
        max_attempts: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._customers = customers
        self._purchases = purchases
        self._locks = locks
        self._max_attempts = max_attempts
        self._clock = clock

    @property
    def locks(self) -> CustomerLockRegistry:
        return self._locks

    def reconcile(self, customer_id: UUID, shop_id: str) -> ReconcileResult:
        """
        Recompute and persist the customer's aggregates.

        Process:
        1. Take the customer's lock (re-entrant: callers may already hold it)
        2. Load the customer (NotFoundError if missing in this shop)
        3. Fold over a fresh snapshot of its purchases
        4. Skip the write when nothing changed
        5. Write with a version check; on ConflictError retry from step 2

        Raises:
            NotFoundError: customer does not exist in the shop
            ConflictError: still conflicting after max_attempts
        """

        with self._locks.hold(shop_id, customer_id):
            for attempt in range(1, self._max_attempts + 1):
                customer = self._customers.get(customer_id, shop_id)
                if customer is None:
                    raise NotFoundError("customer", customer_id)

                stats = fold_customer_stats(self._purchases.list_for_customer(customer_id, shop_id))
                if stats == customer.stats:
                    return ReconcileResult(customer=customer, changed=False)

                try:
                    updated = self._customers.save_stats(
                        customer_id,
                        shop_id,
                        stats,
                        expected_version=customer.version,
                        updated_at=self._clock(),
                    )
                except ConflictError:
                    self._log_conflict(customer_id, shop_id, attempt)
                    if attempt == self._max_attempts:
                        raise
                    continue

                logger.info(
                    f"Reconciled customer {customer_id}: purchases={stats.total_purchases} "
                    f"spent={stats.total_spent}",
                    extra={"shop_id": shop_id, "customer_id": str(customer_id)},
                )
                return ReconcileResult(customer=updated, changed=True)

        # Unreachable: the loop either returns or raises.
        raise ConflictError("customer", customer_id, -1)

    def apply(self, write: PurchaseWrite) -> ReconcileResult:
        """
        Persist a purchase change together with the aggregates it produces.

        Process:
        1. Take the owning customer's lock
        2. Load the customer (NotFoundError if missing in this shop)
        3. Fold over the customer's purchases as they will be after the write
        4. Commit the write and the aggregates as one step, guarded by the
           customer's version; on ConflictError retry from step 2

        The customer row is written and its version bumped even when the
        aggregates come out unchanged.

        Raises:
            NotFoundError: customer, or the purchase to update/delete, is missing
            ConflictError: still conflicting after max_attempts
            ValidationError: invoice number already used in the shop
        """

        purchase = write.purchase
        customer_id, shop_id = purchase.customer_id, purchase.shop_id

        with self._locks.hold(shop_id, customer_id):
            for attempt in range(1, self._max_attempts + 1):
                customer = self._customers.get(customer_id, shop_id)
                if customer is None:
                    raise NotFoundError("customer", customer_id)

                stats = fold_customer_stats(write.applied_to(self._purchases.list_for_customer(customer_id, shop_id)))

                try:
                    updated = self._purchases.commit(
                        write,
                        stats,
                        expected_version=customer.version,
                        updated_at=self._clock(),
                    )
                except ConflictError:
                    self._log_conflict(customer_id, shop_id, attempt)
                    if attempt == self._max_attempts:
                        raise
                    continue

                logger.info(
                    f"Committed {write.kind.value} of purchase {purchase.purchase_id}: "
                    f"purchases={stats.total_purchases} spent={stats.total_spent}",
                    extra={
                        "shop_id": shop_id,
                        "customer_id": str(customer_id),
                        "purchase_id": str(purchase.purchase_id),
                    },
                )
                return ReconcileResult(customer=updated, changed=stats != customer.stats)

        raise ConflictError("customer", customer_id, -1)

    def _log_conflict(self, customer_id: UUID, shop_id: str, attempt: int) -> None:
        logger.warning(
            f"Stale aggregates for customer {customer_id}; retrying "
            f"(attempt {attempt}/{self._max_attempts})",
            extra={"shop_id": shop_id, "customer_id": str(customer_id), "attempt": attempt},
        )


__all__ = [
    "AggregateReconciler",
    "CustomerLockRegistry",
    "ReconcileResult",
]
