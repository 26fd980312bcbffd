"""
Customer repository (Supabase persistence).

Provides persistence operations for the Customer domain entity. Aggregate
columns (total_purchases, total_spent, last_purchase_date_utc) are only ever
written through save_stats, which performs an optimistic version check.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID

from postgrest.exceptions import APIError

from domain.customer import Address, Customer, CustomerStats
from domain.errors import ConflictError, NotFoundError, ValidationError
from domain.time import require_utc_timestamp
from repositories.base import CustomerQueryFilters
from repositories.client import get_supabase_client

# Supabase table name for customers.
# Keep this aligned with your database schema.
_CUSTOMERS_TABLE: str = "customers"

# Postgres unique_violation (email already used within the shop, see the
# customers_shop_email_key index in supabase/migrations).
_UNIQUE_VIOLATION = "23505"


def _to_iso_utc(dt: datetime, *, name: str) -> str:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_utc_datetime(value: Any) -> datetime:
    """Parse a Supabase timestamp into a timezone-aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.replace("Z", "+00:00")
        dt = datetime.fromisoformat(text)
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def _address_to_json(address: Optional[Address]) -> Optional[dict[str, Any]]:
    if address is None:
        return None
    return {
        "street": address.street,
        "city": address.city,
        "state": address.state,
        "zip_code": address.zip_code,
        "country": address.country,
    }


def row_to_customer(row: Mapping[str, Any]) -> Customer:
    """Convert a Supabase row into a Customer."""

    address = row.get("address")
    return Customer(
        customer_id=UUID(str(row["customer_id"])),
        shop_id=str(row["created_by"]),
        name=str(row["name"]),
        email=str(row["email"]),
        phone=str(row["phone"]),
        address=Address(**address) if address else None,
        notes=row.get("notes"),
        is_active=bool(row.get("is_active", True)),
        total_purchases=int(row.get("total_purchases") or 0),
        total_spent=Decimal(str(row.get("total_spent") or "0")),
        last_purchase_date=_parse_utc_datetime(row["last_purchase_date_utc"]) if row.get("last_purchase_date_utc") else None,
        version=int(row.get("version") or 0),
        created_at=_parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
        updated_at=_parse_utc_datetime(row["updated_at_utc"]) if row.get("updated_at_utc") else None,
    )


def _check(response: Any, action: str) -> List[Mapping[str, Any]]:
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


def _raise_for_api_error(exc: APIError, action: str) -> None:
    if str(getattr(exc, "code", "")) == _UNIQUE_VIOLATION:
        raise ValidationError("Customer with this email already exists", field="email") from None
    raise RuntimeError(f"Failed to {action}: {exc}") from exc


class SupabaseCustomerRepository:
    """CustomerRepository backed by the `customers` table."""

    def __init__(self, client: Any = None) -> None:
        self._client = client if client is not None else get_supabase_client()

    def _table(self) -> Any:
        return self._client.table(_CUSTOMERS_TABLE)

    def get(self, customer_id: UUID, shop_id: str) -> Optional[Customer]:
        response = (
            self._table()
            .select("*")
            .eq("customer_id", str(customer_id))
            .eq("created_by", shop_id)
            .limit(1)
            .execute()
        )
        rows = _check(response, "fetch customer")
        if not rows:
            return None
        return row_to_customer(rows[0])

    def list(self, shop_id: str, filters: CustomerQueryFilters = CustomerQueryFilters()) -> List[Customer]:
        query = self._table().select("*").eq("created_by", shop_id)

        if filters.is_active is not None:
            query = query.eq("is_active", filters.is_active)

        if filters.search:
            pattern = f"%{filters.search}%"
            query = query.or_(f"name.ilike.{pattern},email.ilike.{pattern},phone.ilike.{pattern}")

        response = query.order("created_at_utc", desc=True).execute()
        return [row_to_customer(row) for row in _check(response, "list customers")]

    def find_by_email(self, email: str, shop_id: str) -> Optional[Customer]:
        response = (
            self._table()
            .select("*")
            .eq("email", email)
            .eq("created_by", shop_id)
            .limit(1)
            .execute()
        )
        rows = _check(response, "fetch customer")
        if not rows:
            return None
        return row_to_customer(rows[0])

    def insert(self, customer: Customer) -> Customer:
        payload: dict[str, Any] = {
            "customer_id": str(customer.customer_id),
            "created_by": customer.shop_id,
            "name": customer.name,
            "email": customer.email,
            "phone": customer.phone,
            "address": _address_to_json(customer.address),
            "notes": customer.notes,
            "is_active": customer.is_active,
            "total_purchases": customer.total_purchases,
            "total_spent": str(customer.total_spent),
            "last_purchase_date_utc": (
                _to_iso_utc(customer.last_purchase_date, name="last_purchase_date")
                if customer.last_purchase_date is not None
                else None
            ),
            "version": customer.version,
            "created_at_utc": _to_iso_utc(customer.created_at, name="created_at") if customer.created_at else None,
            "updated_at_utc": _to_iso_utc(customer.updated_at, name="updated_at") if customer.updated_at else None,
        }

        try:
            response = self._table().insert(payload).execute()
        except APIError as e:
            _raise_for_api_error(e, "create customer")
        _check(response, "create customer")
        return customer

    def update_profile(self, customer: Customer) -> Customer:
        payload: dict[str, Any] = {
            "name": customer.name,
            "email": customer.email,
            "phone": customer.phone,
            "address": _address_to_json(customer.address),
            "notes": customer.notes,
            "is_active": customer.is_active,
        }
        if customer.updated_at is not None:
            payload["updated_at_utc"] = _to_iso_utc(customer.updated_at, name="updated_at")

        try:
            response = (
                self._table()
                .update(payload)
                .eq("customer_id", str(customer.customer_id))
                .eq("created_by", customer.shop_id)
                .execute()
            )
        except APIError as e:
            _raise_for_api_error(e, "update customer")
        rows = _check(response, "update customer")
        if not rows:
            raise NotFoundError("customer", customer.customer_id)
        return row_to_customer(rows[0])

    def save_stats(
        self,
        customer_id: UUID,
        shop_id: str,
        stats: CustomerStats,
        expected_version: int,
        updated_at: datetime,
    ) -> Customer:
        payload: dict[str, Any] = {
            "total_purchases": stats.total_purchases,
            "total_spent": str(stats.total_spent),
            "last_purchase_date_utc": (
                _to_iso_utc(stats.last_purchase_date, name="last_purchase_date")
                if stats.last_purchase_date is not None
                else None
            ),
            "version": expected_version + 1,
            "updated_at_utc": _to_iso_utc(updated_at, name="updated_at"),
        }

        # Conditional update: matches zero rows when another writer got there first.
        response = (
            self._table()
            .update(payload)
            .eq("customer_id", str(customer_id))
            .eq("created_by", shop_id)
            .eq("version", expected_version)
            .execute()
        )
        rows = _check(response, "save customer stats")
        if rows:
            return row_to_customer(rows[0])

        if self.get(customer_id, shop_id) is None:
            raise NotFoundError("customer", customer_id)
        raise ConflictError("customer", customer_id, expected_version)

    def delete(self, customer_id: UUID, shop_id: str) -> None:
        response = (
            self._table()
            .delete()
            .eq("customer_id", str(customer_id))
            .eq("created_by", shop_id)
            .execute()
        )
        rows = _check(response, "delete customer")
        if not rows:
            raise NotFoundError("customer", customer_id)


__all__ = ["SupabaseCustomerRepository", "row_to_customer"]
