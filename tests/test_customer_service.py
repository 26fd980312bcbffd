"""
Tests for `services/customer_service.py`.

Covers contract rules:
- Emails are normalized and unique within a shop (not across shops), even
  when writers race past the lookup.
- Customers with purchases are deactivated; without purchases they are deleted.
- Customer reads are shop-scoped.
- Overdue customers are computed from read-time statuses.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import NOW, OTHER_SHOP_ID, SHOP_ID
from domain.errors import NotFoundError, ValidationError
from repositories.base import CustomerQueryFilters
from services.customer_service import CustomerChanges, CustomerDraft, CustomerRemoval, CustomerService
from services.purchase_service import PurchaseDraft
from services.reconciliation_service import CustomerLockRegistry


def _draft(name="Amit Kumar", email="amit.kumar@email.com", phone="+91-9876543212") -> CustomerDraft:
    return CustomerDraft(name=name, email=email, phone=phone)


def test_create_normalizes_email(customer) -> None:
    """Verify emails are stored lower-cased with zeroed aggregates."""

    assert customer.email == "priya.sharma@email.com"
    assert customer.total_purchases == 0
    assert customer.total_spent == Decimal("0")
    assert customer.last_purchase_date is None
    assert customer.created_at == NOW


def test_duplicate_email_is_rejected_within_shop_only(container, customer) -> None:
    """Verify the same email may exist once per shop."""

    with pytest.raises(ValidationError) as excinfo:
        container.customers.create_customer(SHOP_ID, _draft(email="PRIYA.SHARMA@email.com"))
    assert excinfo.value.field == "email"

    other = container.customers.create_customer(OTHER_SHOP_ID, _draft(email="priya.sharma@email.com"))
    assert other.shop_id == OTHER_SHOP_ID


def test_invalid_profile_is_rejected(container) -> None:
    """Verify profile validation runs before anything is stored."""

    with pytest.raises(ValidationError):
        container.customers.create_customer(SHOP_ID, _draft(phone="not a phone"))

    assert container.customers.list_customers(SHOP_ID).total == 0


def test_update_profile_keeps_aggregates(container, customer) -> None:
    """Verify profile updates never touch purchase statistics."""

    container.purchases.create_purchase(
        SHOP_ID, PurchaseDraft(customer_id=customer.customer_id, total_amount=Decimal("40"))
    )

    updated = container.customers.update_customer(
        customer.customer_id, SHOP_ID, CustomerChanges(name="Priya S.", notes="Prefers UPI")
    )

    assert updated.name == "Priya S."
    assert updated.notes == "Prefers UPI"
    assert updated.total_purchases == 1
    assert updated.total_spent == Decimal("40")


def test_update_to_taken_email_is_rejected(container, customer) -> None:
    """Verify changing to another customer's email fails."""

    other = container.customers.create_customer(SHOP_ID, _draft())

    with pytest.raises(ValidationError):
        container.customers.update_customer(other.customer_id, SHOP_ID, CustomerChanges(email=customer.email))


def test_delete_without_purchases_removes_customer(container, customer, notifier, events) -> None:
    """Verify a customer with no history is deleted and customer_deleted is published."""

    assert container.customers.delete_customer(customer.customer_id, SHOP_ID) is CustomerRemoval.DELETED

    with pytest.raises(NotFoundError):
        container.customers.get_customer(customer.customer_id, SHOP_ID)
    assert notifier.wait_idle(SHOP_ID, timeout=5)
    assert [e.name for e in events] == ["customer_deleted"]


def test_delete_with_purchases_deactivates(container, customer, notifier, events) -> None:
    """Verify a customer with history is soft-deleted and keeps its purchases."""

    container.purchases.create_purchase(
        SHOP_ID, PurchaseDraft(customer_id=customer.customer_id, total_amount=Decimal("10"))
    )

    assert container.customers.delete_customer(customer.customer_id, SHOP_ID) is CustomerRemoval.DEACTIVATED

    stored = container.customers.get_customer(customer.customer_id, SHOP_ID)
    assert stored.is_active is False
    assert stored.total_purchases == 1
    assert notifier.wait_idle(SHOP_ID, timeout=5)
    assert events[-1].name == "customer_deactivated"


def test_customers_are_shop_scoped(container, customer) -> None:
    """Verify another shop cannot see or delete the customer."""

    with pytest.raises(NotFoundError):
        container.customers.get_customer(customer.customer_id, OTHER_SHOP_ID)
    with pytest.raises(NotFoundError):
        container.customers.delete_customer(customer.customer_id, OTHER_SHOP_ID)
    assert container.customers.list_customers(OTHER_SHOP_ID).items == []


def test_list_customers_search_and_active_filter(container, customer) -> None:
    """Verify case-insensitive search and the active filter."""

    other = container.customers.create_customer(SHOP_ID, _draft())
    container.customers.update_customer(other.customer_id, SHOP_ID, CustomerChanges(is_active=False))

    found = container.customers.list_customers(SHOP_ID, CustomerQueryFilters(search="PRIYA"))
    active = container.customers.list_customers(SHOP_ID, CustomerQueryFilters(is_active=True))

    assert [c.customer_id for c in found.items] == [customer.customer_id]
    assert [c.customer_id for c in active.items] == [customer.customer_id]


def test_customer_detail_includes_purchases(container, customer) -> None:
    """Verify the detail view returns the customer and its purchases together."""

    purchase = container.purchases.create_purchase(
        SHOP_ID, PurchaseDraft(customer_id=customer.customer_id, total_amount=Decimal("10"))
    )

    detail = container.customers.get_customer_detail(customer.customer_id, SHOP_ID)

    assert detail.customer.total_purchases == 1
    assert [p.purchase_id for p in detail.purchases] == [purchase.purchase_id]


def test_purchase_history_is_paginated(container, customer, clock) -> None:
    """Verify a customer's purchase history pages newest first."""

    for amount in ("10", "20", "30"):
        container.purchases.create_purchase(
            SHOP_ID, PurchaseDraft(customer_id=customer.customer_id, total_amount=Decimal(amount))
        )
        clock.advance(minutes=5)

    page = container.customers.list_customer_purchases(customer.customer_id, SHOP_ID, limit=2)

    assert page.total == 3
    assert [p.total_amount for p in page.items] == [Decimal("30"), Decimal("20")]
    assert page.has_next is True


def test_overdue_customers(container, customer, clock) -> None:
    """Verify customers with late balances are listed, largest overdue amount first."""

    other = container.customers.create_customer(SHOP_ID, _draft())
    for owner, amount in ((customer, "10"), (other, "50"), (other, "5")):
        container.purchases.create_purchase(
            SHOP_ID,
            PurchaseDraft(
                customer_id=owner.customer_id,
                total_amount=Decimal(amount),
                due_date=NOW + timedelta(days=1),
            ),
        )
    clock.advance(days=3)

    overdue = container.customers.list_overdue_customers(SHOP_ID)

    assert [entry.customer.customer_id for entry in overdue] == [other.customer_id, customer.customer_id]
    assert overdue[0].overdue_amount == Decimal("55")
    assert len(overdue[0].overdue_purchases) == 2


class GatedEmailLookup:
    """Holds every find_by_email caller at a barrier, so concurrent writers all pass the lookup first."""

    def __init__(self, inner, parties: int):
        self._inner = inner
        self._barrier = threading.Barrier(parties)

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def find_by_email(self, email, shop_id):
        found = self._inner.find_by_email(email, shop_id)
        self._barrier.wait(timeout=5)
        return found


def _race(*calls):
    """Run the calls on separate threads; return (results, errors)."""

    results, errors = [], []

    def run(call) -> None:
        try:
            results.append(call())
        except ValidationError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=run, args=(call,)) for call in calls]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)
    return results, errors


def test_concurrent_creates_with_same_email_keep_one(customer_repo, purchase_repo, notifier, clock) -> None:
    """Verify two creates racing past the email lookup leave exactly one customer."""

    service = CustomerService(
        GatedEmailLookup(customer_repo, parties=2), purchase_repo, CustomerLockRegistry(), notifier, clock=clock
    )

    results, errors = _race(
        lambda: service.create_customer(SHOP_ID, _draft(name="Kavya Nair", email="dup@example.com")),
        lambda: service.create_customer(SHOP_ID, _draft(name="Kavya N.", email="DUP@example.com")),
    )

    assert len(results) == 1
    assert len(errors) == 1
    assert errors[0].field == "email"
    assert [c.email for c in customer_repo.list(SHOP_ID)] == ["dup@example.com"]


def test_concurrent_email_changes_to_same_address_keep_one(customer_repo, purchase_repo, notifier, clock) -> None:
    """Verify two customers racing to take the same email cannot both succeed."""

    plain = CustomerService(customer_repo, purchase_repo, CustomerLockRegistry(), notifier, clock=clock)
    first = plain.create_customer(SHOP_ID, _draft(name="Arjun Mehta", email="arjun@example.com"))
    second = plain.create_customer(SHOP_ID, _draft(name="Sneha Iyer", email="sneha@example.com"))
    service = CustomerService(
        GatedEmailLookup(customer_repo, parties=2), purchase_repo, CustomerLockRegistry(), notifier, clock=clock
    )

    results, errors = _race(
        lambda: service.update_customer(first.customer_id, SHOP_ID, CustomerChanges(email="shared@example.com")),
        lambda: service.update_customer(second.customer_id, SHOP_ID, CustomerChanges(email="shared@example.com")),
    )

    assert len(results) == 1
    assert len(errors) == 1
    assert errors[0].field == "email"
    emails = sorted(c.email for c in customer_repo.list(SHOP_ID))
    assert emails.count("shared@example.com") == 1


def test_repository_rejects_duplicate_email(customer_repo, customer) -> None:
    """Verify the store itself refuses a second customer with a taken email in the same shop."""

    clash = replace(customer, customer_id=uuid4(), name="Someone Else")
    with pytest.raises(ValidationError) as excinfo:
        customer_repo.insert(clash)
    assert excinfo.value.field == "email"

    other_shop = replace(clash, shop_id=OTHER_SHOP_ID)
    assert customer_repo.insert(other_shop) == other_shop


def test_repository_rejects_profile_update_to_taken_email(container, customer_repo, customer) -> None:
    """Verify update_profile refuses an email owned by another customer but allows keeping one's own."""

    other = container.customers.create_customer(SHOP_ID, _draft(name="Rohan Das", email="rohan@example.com"))

    with pytest.raises(ValidationError) as excinfo:
        customer_repo.update_profile(replace(other, email=customer.email))
    assert excinfo.value.field == "email"
    assert customer_repo.get(other.customer_id, SHOP_ID).email == "rohan@example.com"

    renamed = customer_repo.update_profile(replace(other, name="Rohan K. Das"))
    assert renamed.email == "rohan@example.com"
