"""
Tests for `services/reconciliation_service.py`.

Covers contract rules:
- Aggregates always equal the fold over the customer's live purchases.
- Concurrent mutations of one customer's purchases never lose an update.
- Stale-version writes are retried and surface ConflictError only when exhausted.
- Different customers do not share a lock.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import SHOP_ID
from domain.customer import fold_customer_stats
from domain.errors import ConflictError, NotFoundError
from domain.purchase import PaymentStatus
from services.customer_service import CustomerDraft
from services.purchase_service import PaymentUpdate, PurchaseDraft
from services.reconciliation_service import AggregateReconciler, CustomerLockRegistry


class FlakyCustomerRepository:
    """Wraps a repository and fails the first N save_stats calls with ConflictError."""

    def __init__(self, inner, failures: int):
        self._inner = inner
        self.failures = failures
        self.save_calls = 0

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def save_stats(self, customer_id, shop_id, stats, expected_version, updated_at):
        self.save_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConflictError("customer", customer_id, expected_version)
        return self._inner.save_stats(customer_id, shop_id, stats, expected_version, updated_at)


def test_concurrent_payments_on_one_customer_are_consistent(container, customer, customer_repo, purchase_repo) -> None:
    """Verify two threads paying two purchases of the same customer leave consistent aggregates."""

    first = container.purchases.create_purchase(
        SHOP_ID, PurchaseDraft(customer_id=customer.customer_id, total_amount=Decimal("100"))
    )
    second = container.purchases.create_purchase(
        SHOP_ID, PurchaseDraft(customer_id=customer.customer_id, total_amount=Decimal("60"))
    )
    barrier = threading.Barrier(2)

    def pay(purchase_id, amount):
        barrier.wait()
        return container.purchases.update_payment(purchase_id, SHOP_ID, PaymentUpdate(paid_amount=Decimal(amount)))

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(pay, [first.purchase_id, second.purchase_id], ["100", "60"]))

    assert all(p.payment_status is PaymentStatus.COMPLETED for p in results)
    stored = customer_repo.get(customer.customer_id, SHOP_ID)
    assert stored.stats == fold_customer_stats(purchase_repo.list_for_customer(customer.customer_id, SHOP_ID))
    assert stored.total_purchases == 2
    assert stored.total_spent == Decimal("160")


def test_concurrent_creates_never_lose_a_purchase(container, customer, customer_repo) -> None:
    """Verify many concurrent creates for one customer are all counted."""

    def create(_):
        return container.purchases.create_purchase(
            SHOP_ID, PurchaseDraft(customer_id=customer.customer_id, total_amount=Decimal("1"))
        )

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(create, range(40)))

    stored = customer_repo.get(customer.customer_id, SHOP_ID)
    assert stored.total_purchases == 40
    assert stored.total_spent == Decimal("40")


def test_conflict_is_retried(customer_repo, purchase_repo, container, customer) -> None:
    """Verify a stale-version write is retried with a fresh snapshot."""

    container.purchases.create_purchase(
        SHOP_ID, PurchaseDraft(customer_id=customer.customer_id, total_amount=Decimal("5"))
    )
    customer_repo.save_stats(
        customer.customer_id, SHOP_ID, fold_customer_stats([]),
        expected_version=customer_repo.get(customer.customer_id, SHOP_ID).version,
        updated_at=customer.created_at,
    )
    flaky = FlakyCustomerRepository(customer_repo, failures=2)
    reconciler = AggregateReconciler(flaky, purchase_repo, CustomerLockRegistry(), max_attempts=3)

    result = reconciler.reconcile(customer.customer_id, SHOP_ID)

    assert result.changed is True
    assert result.customer.total_spent == Decimal("5")
    assert flaky.save_calls == 3


def test_conflict_surfaces_after_max_attempts(customer_repo, purchase_repo, container, customer) -> None:
    """Verify ConflictError is raised once every attempt conflicted."""

    container.purchases.create_purchase(
        SHOP_ID, PurchaseDraft(customer_id=customer.customer_id, total_amount=Decimal("5"))
    )
    customer_repo.save_stats(
        customer.customer_id, SHOP_ID, fold_customer_stats([]),
        expected_version=customer_repo.get(customer.customer_id, SHOP_ID).version,
        updated_at=customer.created_at,
    )
    flaky = FlakyCustomerRepository(customer_repo, failures=10)
    reconciler = AggregateReconciler(flaky, purchase_repo, CustomerLockRegistry(), max_attempts=2)

    with pytest.raises(ConflictError):
        reconciler.reconcile(customer.customer_id, SHOP_ID)
    assert flaky.save_calls == 2


def test_unchanged_aggregates_skip_the_write(customer_repo, purchase_repo, customer) -> None:
    """Verify reconciling an already-consistent customer writes nothing."""

    flaky = FlakyCustomerRepository(customer_repo, failures=0)
    reconciler = AggregateReconciler(flaky, purchase_repo, CustomerLockRegistry())

    result = reconciler.reconcile(customer.customer_id, SHOP_ID)

    assert result.changed is False
    assert flaky.save_calls == 0


def test_reconcile_unknown_customer_is_not_found(customer_repo, purchase_repo) -> None:
    """Verify reconciling a missing customer raises NotFoundError."""

    reconciler = AggregateReconciler(customer_repo, purchase_repo, CustomerLockRegistry())

    with pytest.raises(NotFoundError):
        reconciler.reconcile(uuid4(), SHOP_ID)


def test_locks_are_per_customer() -> None:
    """Verify each customer gets its own re-entrant lock and a held lock does not block others."""

    registry = CustomerLockRegistry()
    a, b = uuid4(), uuid4()

    assert registry.lock_for(SHOP_ID, a) is registry.lock_for(SHOP_ID, a)
    assert registry.lock_for(SHOP_ID, a) is not registry.lock_for(SHOP_ID, b)
    assert registry.lock_for(SHOP_ID, a) is not registry.lock_for("shop-b", a)

    acquired = threading.Event()

    def grab_other() -> None:
        with registry.hold(SHOP_ID, b):
            acquired.set()

    with registry.hold(SHOP_ID, a):
        with registry.hold(SHOP_ID, a):  # re-entrant
            worker = threading.Thread(target=grab_other)
            worker.start()
            worker.join(timeout=5)
    assert acquired.is_set()


def test_max_attempts_must_be_positive(customer_repo, purchase_repo) -> None:
    with pytest.raises(ValueError):
        AggregateReconciler(customer_repo, purchase_repo, CustomerLockRegistry(), max_attempts=0)


def test_different_customers_reconcile_independently(container, customer_repo) -> None:
    """Verify purchases of one customer never change another customer's aggregates."""

    alice = container.customers.create_customer(
        SHOP_ID, CustomerDraft(name="Anita Singh", email="anita@example.com", phone="+91-9876543215")
    )
    bob = container.customers.create_customer(
        SHOP_ID, CustomerDraft(name="Rajesh Gupta", email="rajesh@example.com", phone="+91-9876543214")
    )

    container.purchases.create_purchase(SHOP_ID, PurchaseDraft(customer_id=alice.customer_id, total_amount=Decimal("70")))

    assert customer_repo.get(alice.customer_id, SHOP_ID).total_spent == Decimal("70")
    assert customer_repo.get(bob.customer_id, SHOP_ID).total_purchases == 0
