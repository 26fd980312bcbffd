"""
Pytest configuration.

This file adds the parent directory to the Python path so that tests can
import from the domain, repositories, services and api packages, and provides
in-memory fixtures wired to a controllable clock.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from api.dependencies import ServiceContainer, build_container  # noqa: E402
from domain.customer import Customer  # noqa: E402
from repositories.memory import InMemoryCustomerRepository, InMemoryPurchaseRepository  # noqa: E402
from services.customer_service import CustomerDraft  # noqa: E402
from services.notifier import ChangeNotifier  # noqa: E402

SHOP_ID = "shop-a"
OTHER_SHOP_ID = "shop-b"
NOW = datetime(2025, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def customer_repo() -> InMemoryCustomerRepository:
    return InMemoryCustomerRepository()


@pytest.fixture
def purchase_repo(customer_repo) -> InMemoryPurchaseRepository:
    return InMemoryPurchaseRepository(customer_repo)


@pytest.fixture
def notifier():
    hub = ChangeNotifier(queue_size=100)
    yield hub
    hub.close()


@pytest.fixture
def container(customer_repo, purchase_repo, notifier, clock) -> ServiceContainer:
    return build_container(customer_repo, purchase_repo, notifier=notifier, clock=clock)


@pytest.fixture
def customer(container) -> Customer:
    return container.customers.create_customer(
        SHOP_ID,
        CustomerDraft(name="Priya Sharma", email="Priya.Sharma@Email.com", phone="+91-9876543211"),
    )


@pytest.fixture
def events(notifier):
    """Collect every event published for SHOP_ID (call notifier.wait_idle before asserting)."""

    received = []
    subscription = notifier.subscribe(SHOP_ID, received.append)
    yield received
    notifier.unsubscribe(subscription)
