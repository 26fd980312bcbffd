"""
Purchases API Endpoints.

Endpoints for recording credit purchases, taking payments and listing what is
still owed. Every write re-derives the purchase's totals and status and
reconciles the customer's statistics before responding.
"""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from api.dependencies import ServiceContainer, get_container, get_shop_id
from api.models import (
    DailySummaryResponse,
    OutstandingPurchasesResponse,
    PaymentUpdateRequest,
    PurchaseCreateRequest,
    PurchaseListResponse,
    PurchaseResponse,
    PurchaseUpdateRequest,
    RefreshOverdueResponse,
)
from domain.purchase import PaymentStatus
from domain.time import to_utc
from repositories.base import PurchaseQueryFilters
from services.purchase_service import (
    OutstandingSummary,
    PaymentUpdate,
    PurchaseChanges,
    PurchaseDraft,
)

router = APIRouter()


def _outstanding_response(summary: OutstandingSummary) -> OutstandingPurchasesResponse:
    return OutstandingPurchasesResponse(
        purchases=[PurchaseResponse.from_domain(p) for p in summary.purchases],
        count=summary.count,
        total_amount=summary.total_amount,
    )


@router.get(
    "/purchases",
    response_model=PurchaseListResponse,
    summary="List Purchases",
    description="List the shop's purchases, newest first, with optional status, customer and date filters."
)
def list_purchases(
    payment_status: Optional[List[PaymentStatus]] = Query(None, description="Filter by status (repeatable)"),
    customer_id: Optional[UUID] = Query(None, description="Only purchases of this customer"),
    start_date: Optional[datetime] = Query(None, description="Purchases on or after this instant"),
    end_date: Optional[datetime] = Query(None, description="Purchases before this instant"),
    limit: int = Query(50, ge=1, le=500, description="Page size"),
    offset: int = Query(0, ge=0),
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    """
    Statuses are evaluated as of the request, so a purchase whose due date has
    just passed is listed (and filtered) as `overdue`.

    **Example usage:**
    - All purchases: `GET /api/v1/purchases`
    - Overdue ones for a customer: `GET /api/v1/purchases?payment_status=overdue&customer_id=...`
    """
    filters = PurchaseQueryFilters(
        payment_statuses=payment_status,
        customer_id=customer_id,
        start=to_utc(start_date) if start_date else None,
        end=to_utc(end_date) if end_date else None,
    )
    page = container.purchases.list_purchases(shop_id, filters, limit=limit, offset=offset)
    return PurchaseListResponse(
        items=[PurchaseResponse.from_domain(p) for p in page.items],
        total_count=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get(
    "/purchases/pending",
    response_model=OutstandingPurchasesResponse,
    summary="Pending Payments",
    description="Purchases still owing money (pending or overdue), earliest due date first."
)
def list_pending_payments(
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    return _outstanding_response(container.purchases.list_pending_payments(shop_id))


@router.get(
    "/purchases/overdue",
    response_model=OutstandingPurchasesResponse,
    summary="Overdue Payments",
)
def list_overdue_payments(
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    return _outstanding_response(container.purchases.list_overdue_payments(shop_id))


@router.get(
    "/purchases/daily-summary",
    response_model=DailySummaryResponse,
    summary="Daily Summary",
    description="Sales, collections and status counts for one UTC day (default today)."
)
def get_daily_summary(
    day: Optional[date] = Query(None, alias="date", description="Day to summarize (YYYY-MM-DD)"),
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    summary = container.reports.daily_summary(shop_id, day)
    return DailySummaryResponse(
        day=summary.day,
        total_sales=summary.total_sales,
        total_paid=summary.total_paid,
        total_outstanding=summary.total_outstanding,
        transaction_count=summary.transaction_count,
        completed_payments=summary.completed_count,
        pending_payments=summary.pending_count,
        overdue_payments=summary.overdue_count,
    )


@router.post(
    "/purchases/refresh-overdue",
    response_model=RefreshOverdueResponse,
    summary="Refresh Overdue Statuses",
    description="Persist the overdue status of every pending purchase whose due date has passed."
)
def refresh_overdue(
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    refreshed = container.purchases.refresh_overdue_status(shop_id)
    return RefreshOverdueResponse(
        refreshed_count=len(refreshed),
        purchase_ids=[p.purchase_id for p in refreshed],
    )


@router.get(
    "/purchases/{purchase_id}",
    response_model=PurchaseResponse,
    summary="Get Purchase",
)
def get_purchase(
    purchase_id: UUID,
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    return PurchaseResponse.from_domain(container.purchases.get_purchase(purchase_id, shop_id))


@router.post(
    "/purchases",
    response_model=PurchaseResponse,
    status_code=201,
    summary="Record Purchase",
    description="Record a purchase on credit for an existing customer."
)
def create_purchase(
    request: PurchaseCreateRequest,
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    """
    Record a purchase.

    **Process:**
    1. Validates items and amounts (400 on failure, nothing is stored)
    2. Verifies the customer belongs to the shop (404 otherwise)
    3. Derives item totals, total, remaining amount and status
    4. Stores the purchase and reconciles the customer's statistics
    5. Broadcasts `purchase_created` (and `customer_updated`) to the shop

    Supply `total_amount` instead of `items` for non-itemized sales.
    """
    draft = PurchaseDraft(
        customer_id=request.customer_id,
        items=[item.to_domain() for item in request.items],
        total_amount=request.total_amount,
        paid_amount=request.paid_amount,
        due_date=request.due_date,
        purchase_date=request.purchase_date,
        payment_method=request.payment_method,
        payment_status=request.payment_status,
        notes=request.notes,
        invoice_number=request.invoice_number,
    )
    return PurchaseResponse.from_domain(container.purchases.create_purchase(shop_id, draft))


@router.put(
    "/purchases/{purchase_id}",
    response_model=PurchaseResponse,
    summary="Update Purchase",
)
def update_purchase(
    purchase_id: UUID,
    request: PurchaseUpdateRequest,
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    changes = PurchaseChanges(
        customer_id=request.customer_id,
        items=[item.to_domain() for item in request.items] if request.items is not None else None,
        total_amount=request.total_amount,
        clear_total_override=request.clear_total_override,
        paid_amount=request.paid_amount,
        payment_method=request.payment_method,
        payment_status=request.payment_status,
        due_date=request.due_date,
        clear_due_date=request.clear_due_date,
        notes=request.notes,
        invoice_number=request.invoice_number,
    )
    return PurchaseResponse.from_domain(container.purchases.update_purchase(purchase_id, shop_id, changes))


@router.put(
    "/purchases/{purchase_id}/payment",
    response_model=PurchaseResponse,
    summary="Update Payment",
    description="Record a payment: new paid amount, status (e.g. cancelled) and/or method."
)
def update_payment(
    purchase_id: UUID,
    request: PaymentUpdateRequest,
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    payment = PaymentUpdate(
        paid_amount=request.paid_amount,
        payment_status=request.payment_status,
        payment_method=request.payment_method,
    )
    return PurchaseResponse.from_domain(container.purchases.update_payment(purchase_id, shop_id, payment))


@router.delete(
    "/purchases/{purchase_id}",
    status_code=204,
    summary="Delete Purchase",
)
def delete_purchase(
    purchase_id: UUID,
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    container.purchases.delete_purchase(purchase_id, shop_id)
    return Response(status_code=204)
