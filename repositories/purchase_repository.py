"""
Purchase repository (Supabase persistence).

This module provides *only* persistence operations for the Purchase domain
entity. It does not derive totals or statuses; records arrive here already
derived by the purchase service. Line items are stored in a JSON column.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID

from postgrest.exceptions import APIError

from domain.customer import Customer, CustomerStats
from domain.errors import ConflictError, NotFoundError, ValidationError
from domain.purchase import PaymentMethod, PaymentStatus, Purchase, PurchaseItem
from domain.time import require_utc_timestamp
from repositories.base import PurchaseQueryFilters, PurchaseWrite
from repositories.client import get_supabase_client
from repositories.customer_repository import row_to_customer

# Supabase table names.
# Keep these aligned with your database schema.
_PURCHASES_TABLE: str = "purchases"
_CUSTOMERS_TABLE: str = "customers"

# Postgres function that writes a purchase and its customer's aggregates together.
_COMMIT_FUNCTION: str = "commit_purchase_change"

# Postgres unique_violation (invoice number already used within the shop).
_UNIQUE_VIOLATION = "23505"

# Postgres no_data_found, raised by the commit function when the purchase to
# update or delete is missing.
_NO_DATA_FOUND = "P0002"


def _to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_decimal(value: Any) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _row_to_purchase(row: Mapping[str, Any]) -> Purchase:
    """Convert a Supabase row into a Purchase."""

    items = tuple(
        PurchaseItem(
            product_name=str(item["product_name"]),
            quantity=int(item["quantity"]),
            unit_price=Decimal(str(item["unit_price"])),
            total_price=Decimal(str(item.get("total_price", "0"))),
        )
        for item in (row.get("items") or [])
    )
    due_date_val = row.get("due_date_utc")

    return Purchase(
        purchase_id=UUID(str(row["purchase_id"])),
        customer_id=UUID(str(row["customer_id"])),
        shop_id=str(row["created_by"]),
        items=items,
        total_amount=Decimal(str(row["total_amount"])),
        paid_amount=Decimal(str(row["paid_amount"])),
        remaining_amount=Decimal(str(row["remaining_amount"])),
        payment_status=PaymentStatus(str(row["payment_status"])),
        payment_method=PaymentMethod(str(row.get("payment_method") or PaymentMethod.CASH.value)),
        purchase_date=_parse_utc_datetime(row["purchase_date_utc"]),
        due_date=_parse_utc_datetime(due_date_val) if due_date_val is not None else None,
        total_override=_optional_decimal(row.get("total_override")),
        notes=row.get("notes"),
        invoice_number=row.get("invoice_number"),
        created_at=_parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=_parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


def _purchase_to_row(purchase: Purchase) -> dict[str, Any]:
    return {
        "purchase_id": str(purchase.purchase_id),
        "customer_id": str(purchase.customer_id),
        "created_by": purchase.shop_id,
        "items": [
            {
                "product_name": item.product_name,
                "quantity": item.quantity,
                "unit_price": str(item.unit_price),
                "total_price": str(item.total_price),
            }
            for item in purchase.items
        ],
        "total_amount": str(purchase.total_amount),
        "paid_amount": str(purchase.paid_amount),
        "remaining_amount": str(purchase.remaining_amount),
        "total_override": str(purchase.total_override) if purchase.total_override is not None else None,
        "payment_status": purchase.payment_status.value,
        "payment_method": purchase.payment_method.value,
        "purchase_date_utc": _to_iso_utc(purchase.purchase_date, name="purchase_date"),
        "due_date_utc": _to_iso_utc(purchase.due_date, name="due_date") if purchase.due_date else None,
        "notes": purchase.notes,
        "invoice_number": purchase.invoice_number,
        "created_at_utc": _to_iso_utc(purchase.created_at, name="created_at") if purchase.created_at else None,
        "updated_at_utc": _to_iso_utc(purchase.updated_at, name="updated_at") if purchase.updated_at else None,
    }


def _check(response: Any, action: str) -> List[Mapping[str, Any]]:
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


def _raise_for_api_error(exc: APIError, purchase: Purchase, action: str) -> None:
    code = str(getattr(exc, "code", ""))
    if code == _UNIQUE_VIOLATION:
        raise ValidationError(
            f"Invoice number already in use: {purchase.invoice_number}",
            field="invoice_number",
        ) from None
    if code == _NO_DATA_FOUND:
        raise NotFoundError("purchase", purchase.purchase_id) from None
    raise RuntimeError(f"Failed to {action}: {exc}") from exc


class SupabasePurchaseRepository:
    """PurchaseRepository backed by the `purchases` table."""

    def __init__(self, client: Any = None) -> None:
        self._client = client if client is not None else get_supabase_client()

    def _table(self) -> Any:
        return self._client.table(_PURCHASES_TABLE)

    def get(self, purchase_id: UUID, shop_id: str) -> Optional[Purchase]:
        response = (
            self._table()
            .select("*")
            .eq("purchase_id", str(purchase_id))
            .eq("created_by", shop_id)
            .limit(1)
            .execute()
        )
        rows = _check(response, "get purchase")
        if not rows:
            return None
        return _row_to_purchase(rows[0])

    def list(self, shop_id: str, filters: PurchaseQueryFilters = PurchaseQueryFilters()) -> List[Purchase]:
        query = self._table().select("*").eq("created_by", shop_id)

        if filters.payment_statuses:
            query = query.in_("payment_status", [s.value for s in filters.payment_statuses])

        if filters.customer_id is not None:
            query = query.eq("customer_id", str(filters.customer_id))

        if filters.start is not None:
            query = query.gte("purchase_date_utc", _to_iso_utc(filters.start, name="start"))

        if filters.end is not None:
            query = query.lt("purchase_date_utc", _to_iso_utc(filters.end, name="end"))

        response = query.order("purchase_date_utc", desc=True).execute()
        return [_row_to_purchase(row) for row in _check(response, "list purchases")]

    def list_for_customer(self, customer_id: UUID, shop_id: str) -> List[Purchase]:
        return self.list(shop_id, PurchaseQueryFilters(customer_id=customer_id))

    def count_for_customer(self, customer_id: UUID, shop_id: str) -> int:
        response = (
            self._table()
            .select("purchase_id", count="exact")
            .eq("customer_id", str(customer_id))
            .eq("created_by", shop_id)
            .execute()
        )
        _check(response, "count purchases")
        return int(getattr(response, "count", 0) or 0)

    def list_refresh_candidates(self, shop_id: Optional[str] = None) -> List[Purchase]:
        query = (
            self._table()
            .select("*")
            .eq("payment_status", PaymentStatus.PENDING.value)
            .gt("remaining_amount", 0)
            .not_.is_("due_date_utc", "null")
        )
        if shop_id is not None:
            query = query.eq("created_by", shop_id)

        response = query.execute()
        return [_row_to_purchase(row) for row in _check(response, "list refresh candidates")]

    def update(self, purchase: Purchase) -> Purchase:
        payload = _purchase_to_row(purchase)
        # Identity and ownership columns never change.
        for column in ("purchase_id", "customer_id", "created_by", "purchase_date_utc", "created_at_utc"):
            payload.pop(column)

        try:
            response = (
                self._table()
                .update(payload)
                .eq("purchase_id", str(purchase.purchase_id))
                .eq("created_by", purchase.shop_id)
                .execute()
            )
        except APIError as e:
            _raise_for_api_error(e, purchase, "update purchase")
        rows = _check(response, "update purchase")
        if not rows:
            raise NotFoundError("purchase", purchase.purchase_id)
        return purchase

    def commit(
        self,
        write: PurchaseWrite,
        stats: CustomerStats,
        expected_version: int,
        updated_at: datetime,
    ) -> Customer:
        """
        Run the purchase change and the aggregate update in one Postgres transaction.

        The commit_purchase_change function (supabase/migrations) updates the
        customer row only if its version still equals expected_version, then
        applies the purchase change. It returns the updated customer row, or
        no rows when the version check matched nothing.
        """

        purchase = write.purchase
        params: dict[str, Any] = {
            "p_operation": write.kind.value,
            "p_purchase": _purchase_to_row(purchase),
            "p_customer_id": str(purchase.customer_id),
            "p_shop_id": purchase.shop_id,
            "p_expected_version": expected_version,
            "p_total_purchases": stats.total_purchases,
            "p_total_spent": str(stats.total_spent),
            "p_last_purchase_date_utc": (
                _to_iso_utc(stats.last_purchase_date, name="last_purchase_date")
                if stats.last_purchase_date is not None
                else None
            ),
            "p_updated_at_utc": _to_iso_utc(updated_at, name="updated_at"),
        }

        action = f"{write.kind.value} purchase"
        try:
            response = self._client.rpc(_COMMIT_FUNCTION, params).execute()
        except APIError as e:
            _raise_for_api_error(e, purchase, action)
        rows = _check(response, action)
        if rows:
            return row_to_customer(rows[0])

        customer_rows = _check(
            self._client.table(_CUSTOMERS_TABLE)
            .select("customer_id")
            .eq("customer_id", str(purchase.customer_id))
            .eq("created_by", purchase.shop_id)
            .limit(1)
            .execute(),
            "fetch customer",
        )
        if not customer_rows:
            raise NotFoundError("customer", purchase.customer_id)
        raise ConflictError("customer", purchase.customer_id, expected_version)


__all__ = ["SupabasePurchaseRepository"]
