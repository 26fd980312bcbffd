"""
Service wiring for the API.

One ServiceContainer per process holds the repositories, the per-customer
lock registry, the notifier and the services built on them. Routes receive it
through FastAPI dependency injection (tests override `get_container`).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException

import config
from repositories.base import CustomerRepository, PurchaseRepository
from repositories.memory import InMemoryCustomerRepository, InMemoryPurchaseRepository
from services.customer_service import CustomerService
from services.notifier import ChangeNotifier
from services.purchase_service import PurchaseService
from services.reconciliation_service import AggregateReconciler, CustomerLockRegistry
from services.reporting_service import ReportingService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    customers: CustomerService
    purchases: PurchaseService
    reports: ReportingService
    notifier: ChangeNotifier

    def close(self) -> None:
        self.notifier.close()


def build_container(
    customer_repo: CustomerRepository,
    purchase_repo: PurchaseRepository,
    *,
    notifier: Optional[ChangeNotifier] = None,
    clock=None,
    max_attempts: int = config.RECONCILE_MAX_ATTEMPTS,
) -> ServiceContainer:
    """Assemble the services around the given repositories."""

    notifier = notifier or ChangeNotifier(queue_size=config.NOTIFIER_QUEUE_SIZE)
    locks = CustomerLockRegistry()
    clock_kwargs = {"clock": clock} if clock is not None else {}

    reconciler = AggregateReconciler(
        customer_repo, purchase_repo, locks, max_attempts=max_attempts, **clock_kwargs
    )
    return ServiceContainer(
        customers=CustomerService(customer_repo, purchase_repo, locks, notifier, **clock_kwargs),
        purchases=PurchaseService(customer_repo, purchase_repo, reconciler, notifier, **clock_kwargs),
        reports=ReportingService(customer_repo, purchase_repo, **clock_kwargs),
        notifier=notifier,
    )


def build_repositories(backend: str) -> tuple[CustomerRepository, PurchaseRepository]:
    if backend == "memory":
        customers = InMemoryCustomerRepository()
        return customers, InMemoryPurchaseRepository(customers)
    if backend == "supabase":
        # Imported lazily: the memory backend must not need Supabase credentials.
        from repositories.customer_repository import SupabaseCustomerRepository
        from repositories.purchase_repository import SupabasePurchaseRepository

        return SupabaseCustomerRepository(), SupabasePurchaseRepository()
    raise RuntimeError(f"Unknown STORAGE_BACKEND: {backend!r} (expected 'memory' or 'supabase')")


@lru_cache(maxsize=1)
def get_container() -> ServiceContainer:
    customer_repo, purchase_repo = build_repositories(config.STORAGE_BACKEND)
    logger.info(f"Using {config.STORAGE_BACKEND} storage backend")
    return build_container(customer_repo, purchase_repo)


def get_shop_id(x_shop_id: Optional[str] = Header(None, description="Owning shop (tenant) id")) -> str:
    """Tenant scoping. Authentication happens upstream; the gateway sets X-Shop-Id."""

    if not x_shop_id or not x_shop_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-Shop-Id header")
    return x_shop_id.strip()


__all__ = [
    "ServiceContainer",
    "build_container",
    "build_repositories",
    "get_container",
    "get_shop_id",
]
