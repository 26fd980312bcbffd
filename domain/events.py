"""
Domain: change events broadcast to a shop's live subscribers.

Events are ephemeral: they are never persisted and there is no replay log.
Ordering only matters within a single shop channel.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from uuid import UUID

from .customer import Customer
from .purchase import Purchase


class EntityKind(str, Enum):
    PURCHASE = "purchase"
    PAYMENT = "payment"
    CUSTOMER = "customer"


class ChangeOperation(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    DEACTIVATED = "deactivated"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    entity_kind: EntityKind
    operation: ChangeOperation
    shop_id: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        """Wire name, e.g. "purchase_created" or "customer_deactivated"."""
        return f"{self.entity_kind.value}_{self.operation.value}"

    def to_message(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "entity": self.entity_kind.value,
            "operation": self.operation.value,
            "shop_id": self.shop_id,
            "data": dict(self.payload),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def purchase_payload(purchase: Purchase) -> Dict[str, Any]:
    """JSON-safe snapshot of a purchase (Decimals as strings, ISO timestamps)."""

    return {
        "id": str(purchase.purchase_id),
        "customer_id": str(purchase.customer_id),
        "items": [
            {
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": str(item.unit_price),
                "total_price": str(item.total_price),
            }
            for item in purchase.items
        ],
        "total_amount": _money(purchase.total_amount),
        "paid_amount": _money(purchase.paid_amount),
        "remaining_amount": _money(purchase.remaining_amount),
        "payment_status": purchase.payment_status.value,
        "payment_method": purchase.payment_method.value,
        "purchase_date": _iso(purchase.purchase_date),
        "due_date": _iso(purchase.due_date),
        "notes": purchase.notes,
        "invoice_number": purchase.invoice_number,
    }


def customer_payload(customer: Customer) -> Dict[str, Any]:
    return {
        "id": str(customer.customer_id),
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "is_active": customer.is_active,
        "total_purchases": customer.total_purchases,
        "total_spent": _money(customer.total_spent),
        "last_purchase_date": _iso(customer.last_purchase_date),
    }


def purchase_event(operation: ChangeOperation, purchase: Purchase) -> ChangeEvent:
    return ChangeEvent(EntityKind.PURCHASE, operation, purchase.shop_id, purchase_payload(purchase))


def payment_event(purchase: Purchase) -> ChangeEvent:
    return ChangeEvent(EntityKind.PAYMENT, ChangeOperation.UPDATED, purchase.shop_id, purchase_payload(purchase))


def purchase_deleted_event(shop_id: str, purchase_id: UUID, customer_id: UUID) -> ChangeEvent:
    return ChangeEvent(
        EntityKind.PURCHASE,
        ChangeOperation.DELETED,
        shop_id,
        {"id": str(purchase_id), "customer_id": str(customer_id)},
    )


def customer_event(operation: ChangeOperation, customer: Customer) -> ChangeEvent:
    return ChangeEvent(EntityKind.CUSTOMER, operation, customer.shop_id, customer_payload(customer))


def customer_deleted_event(shop_id: str, customer_id: UUID) -> ChangeEvent:
    return ChangeEvent(EntityKind.CUSTOMER, ChangeOperation.DELETED, shop_id, {"id": str(customer_id)})


__all__ = [
    "ChangeEvent",
    "ChangeOperation",
    "EntityKind",
    "customer_deleted_event",
    "customer_event",
    "customer_payload",
    "payment_event",
    "purchase_deleted_event",
    "purchase_event",
    "purchase_payload",
]
