"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
Business rules (quantities, amounts, profile formats) are enforced by the
domain layer so that every entry point rejects the same inputs; the models
here only check shapes and types.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.customer import Address, Customer
from domain.purchase import PaymentMethod, PaymentStatus, Purchase, PurchaseItem


# ============================================================================
# Purchase Models
# ============================================================================

class PurchaseItemModel(BaseModel):
    """Line item. total_price is always recomputed server-side."""
    product_name: str
    quantity: int
    unit_price: Decimal

    def to_domain(self) -> PurchaseItem:
        return PurchaseItem(
            product_name=self.product_name.strip(),
            quantity=self.quantity,
            unit_price=self.unit_price,
        )


class PurchaseItemResponse(BaseModel):
    product_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class PurchaseCreateRequest(BaseModel):
    """Request to record a purchase on credit."""
    customer_id: UUID = Field(..., description="Customer making the purchase")
    items: List[PurchaseItemModel] = Field(default_factory=list)
    total_amount: Optional[Decimal] = Field(
        None,
        description="Explicit total for non-itemized purchases; overrides the item sum",
    )
    paid_amount: Decimal = Decimal("0")
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_status: Optional[PaymentStatus] = Field(
        None,
        description="Only 'cancelled' is kept as given; other statuses are derived",
    )
    purchase_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    invoice_number: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "customer_id": "123e4567-e89b-12d3-a456-426614174002",
                "items": [
                    {"product_name": "Rice 5kg", "quantity": 2, "unit_price": "320.00"},
                    {"product_name": "Cooking oil 1L", "quantity": 1, "unit_price": "180.00"}
                ],
                "paid_amount": "300.00",
                "payment_method": "upi",
                "due_date": "2025-02-01T00:00:00Z",
                "invoice_number": "INV-1042"
            }
        }


class PurchaseUpdateRequest(BaseModel):
    """Partial update. Omitted fields are left unchanged."""
    customer_id: Optional[UUID] = None
    items: Optional[List[PurchaseItemModel]] = None
    total_amount: Optional[Decimal] = None
    clear_total_override: bool = False
    paid_amount: Optional[Decimal] = None
    payment_method: Optional[PaymentMethod] = None
    payment_status: Optional[PaymentStatus] = None
    due_date: Optional[datetime] = None
    clear_due_date: bool = False
    notes: Optional[str] = None
    invoice_number: Optional[str] = None


class PaymentUpdateRequest(BaseModel):
    """Record a payment against a purchase."""
    paid_amount: Optional[Decimal] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None

    class Config:
        json_schema_extra = {
            "example": {
                "paid_amount": "820.00",
                "payment_method": "cash"
            }
        }


class PurchaseResponse(BaseModel):
    """Purchase with derived totals and its status as of the request."""
    id: UUID
    customer_id: UUID
    items: List[PurchaseItemResponse]
    total_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    purchase_date: datetime
    due_date: Optional[datetime] = None
    notes: Optional[str] = None
    invoice_number: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "id": "123e4567-e89b-12d3-a456-426614174010",
                "customer_id": "123e4567-e89b-12d3-a456-426614174002",
                "items": [
                    {"product_name": "Rice 5kg", "quantity": 2, "unit_price": "320.00", "total_price": "640.00"}
                ],
                "total_amount": "640.00",
                "paid_amount": "300.00",
                "remaining_amount": "340.00",
                "payment_status": "pending",
                "payment_method": "upi",
                "purchase_date": "2025-01-15T10:30:00Z",
                "due_date": "2025-02-01T00:00:00Z",
                "notes": None,
                "invoice_number": "INV-1042"
            }
        }

    @classmethod
    def from_domain(cls, purchase: Purchase) -> "PurchaseResponse":
        return cls(
            id=purchase.purchase_id,
            customer_id=purchase.customer_id,
            items=[
                PurchaseItemResponse(
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                for item in purchase.items
            ],
            total_amount=purchase.total_amount,
            paid_amount=purchase.paid_amount,
            remaining_amount=purchase.remaining_amount,
            payment_status=purchase.payment_status,
            payment_method=purchase.payment_method,
            purchase_date=purchase.purchase_date,
            due_date=purchase.due_date,
            notes=purchase.notes,
            invoice_number=purchase.invoice_number,
            created_at=purchase.created_at,
            updated_at=purchase.updated_at,
        )


class PurchaseListResponse(BaseModel):
    items: List[PurchaseResponse]
    total_count: int
    limit: Optional[int] = None
    offset: int = 0


class OutstandingPurchasesResponse(BaseModel):
    """Purchases that still owe money, with the amount still owed."""
    purchases: List[PurchaseResponse]
    count: int
    total_amount: Decimal


class RefreshOverdueResponse(BaseModel):
    refreshed_count: int
    purchase_ids: List[UUID]


# ============================================================================
# Customer Models
# ============================================================================

class AddressModel(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "India"

    def to_domain(self) -> Address:
        return Address(
            street=self.street,
            city=self.city,
            state=self.state,
            zip_code=self.zip_code,
            country=self.country,
        )

    @classmethod
    def from_domain(cls, address: Optional[Address]) -> Optional["AddressModel"]:
        if address is None:
            return None
        return cls(
            street=address.street,
            city=address.city,
            state=address.state,
            zip_code=address.zip_code,
            country=address.country,
        )


class CustomerCreateRequest(BaseModel):
    name: str
    email: str
    phone: str
    address: Optional[AddressModel] = None
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "name": "Asha Verma",
                "email": "asha.verma@example.com",
                "phone": "+91 98765 43210",
                "address": {"street": "12 MG Road", "city": "Pune", "state": "MH", "zip_code": "411001"}
            }
        }


class CustomerUpdateRequest(BaseModel):
    """Partial profile update. Purchase statistics cannot be written."""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[AddressModel] = None
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class CustomerResponse(BaseModel):
    id: UUID
    name: str
    email: str
    phone: str
    address: Optional[AddressModel] = None
    notes: Optional[str] = None
    is_active: bool
    total_purchases: int
    total_spent: Decimal
    last_purchase_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, customer: Customer) -> "CustomerResponse":
        return cls(
            id=customer.customer_id,
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            address=AddressModel.from_domain(customer.address),
            notes=customer.notes,
            is_active=customer.is_active,
            total_purchases=customer.total_purchases,
            total_spent=customer.total_spent,
            last_purchase_date=customer.last_purchase_date,
            created_at=customer.created_at,
            updated_at=customer.updated_at,
        )


class CustomerListResponse(BaseModel):
    items: List[CustomerResponse]
    total_count: int
    limit: Optional[int] = None
    offset: int = 0


class CustomerDetailResponse(BaseModel):
    customer: CustomerResponse
    purchases: List[PurchaseResponse]


class CustomerDeleteResponse(BaseModel):
    id: UUID
    result: str  # "deleted" or "deactivated"
    message: str


class OverdueCustomerResponse(BaseModel):
    customer: CustomerResponse
    overdue_purchases: List[PurchaseResponse]
    overdue_amount: Decimal


# ============================================================================
# Dashboard Models
# ============================================================================

class DailySummaryResponse(BaseModel):
    day: date
    total_sales: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    transaction_count: int
    completed_payments: int
    pending_payments: int
    overdue_payments: int


class TrendPointResponse(BaseModel):
    period_start: datetime
    revenue: Decimal
    paid: Decimal
    transactions: int


class TrendResponse(BaseModel):
    trends: List[TrendPointResponse]


class StatusBucketResponse(BaseModel):
    status: PaymentStatus
    count: int
    total_amount: Decimal


class StatusDistributionResponse(BaseModel):
    distribution: List[StatusBucketResponse]


class PeriodTotalsResponse(BaseModel):
    revenue: Decimal
    transactions: int
    paid: Decimal


class GrowthResponse(BaseModel):
    revenue: Decimal
    transactions: Decimal
    paid: Decimal


class MonthlyComparisonResponse(BaseModel):
    current_month: PeriodTotalsResponse
    previous_month: PeriodTotalsResponse
    growth: GrowthResponse

    class Config:
        json_schema_extra = {
            "example": {
                "current_month": {"revenue": "1200.00", "transactions": 12, "paid": "900.00"},
                "previous_month": {"revenue": "1000.00", "transactions": 10, "paid": "1000.00"},
                "growth": {"revenue": "20.00", "transactions": "20.00", "paid": "-10.00"}
            }
        }


class CountAmount(BaseModel):
    count: int
    amount: Decimal


class CustomerCounts(BaseModel):
    total: int
    active: int
    inactive: int


class PurchaseCounts(BaseModel):
    total: int
    today: int
    this_week: int
    this_month: int


class PaymentCounts(BaseModel):
    pending: CountAmount
    overdue: CountAmount


class RevenueTotals(BaseModel):
    total: Decimal
    collected: Decimal
    pending: Decimal
    collection_rate: Decimal


class DashboardOverviewResponse(BaseModel):
    customers: CustomerCounts
    purchases: PurchaseCounts
    payments: PaymentCounts
    revenue: RevenueTotals

    class Config:
        json_schema_extra = {
            "example": {
                "customers": {"total": 40, "active": 38, "inactive": 2},
                "purchases": {"total": 310, "today": 4, "this_week": 21, "this_month": 77},
                "payments": {
                    "pending": {"count": 12, "amount": "8400.00"},
                    "overdue": {"count": 3, "amount": "2100.00"}
                },
                "revenue": {
                    "total": "154000.00",
                    "collected": "143500.00",
                    "pending": "10500.00",
                    "collection_rate": "93.18"
                }
            }
        }


class TopCustomersResponse(BaseModel):
    customers: List[CustomerResponse]


class RecentActivityResponse(BaseModel):
    recent_purchases: List[PurchaseResponse]
    recent_customers: List[CustomerResponse]


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    field: Optional[str] = None
    status_code: int

    class Config:
        json_schema_extra = {
            "example": {
                "error": "ValidationError",
                "detail": "Quantity must be at least 1",
                "field": "items[0].quantity",
                "status_code": 400
            }
        }
