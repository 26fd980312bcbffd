"""
Customers API Endpoints.

Endpoints for managing customer profiles and browsing their purchase history.
Purchase statistics on a customer are read-only; they are recomputed from the
customer's purchases after every purchase change.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from api.dependencies import ServiceContainer, get_container, get_shop_id
from api.models import (
    CustomerCreateRequest,
    CustomerDeleteResponse,
    CustomerDetailResponse,
    CustomerListResponse,
    CustomerResponse,
    CustomerUpdateRequest,
    OverdueCustomerResponse,
    PurchaseListResponse,
    PurchaseResponse,
)
from repositories.base import CustomerQueryFilters
from services.customer_service import CustomerChanges, CustomerDraft, CustomerRemoval

router = APIRouter()


@router.get(
    "/customers",
    response_model=CustomerListResponse,
    summary="List Customers",
    description="List the shop's customers, newest first, optionally filtered by search text and activity."
)
def list_customers(
    search: Optional[str] = Query(None, description="Case-insensitive match on name, email or phone"),
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    filters = CustomerQueryFilters(is_active=is_active, search=search.strip() if search else None)
    page = container.customers.list_customers(shop_id, filters, limit=limit, offset=offset)
    return CustomerListResponse(
        items=[CustomerResponse.from_domain(c) for c in page.items],
        total_count=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get(
    "/customers/overdue",
    response_model=List[OverdueCustomerResponse],
    summary="Customers With Overdue Payments",
)
def list_overdue_customers(
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    return [
        OverdueCustomerResponse(
            customer=CustomerResponse.from_domain(entry.customer),
            overdue_purchases=[PurchaseResponse.from_domain(p) for p in entry.overdue_purchases],
            overdue_amount=entry.overdue_amount,
        )
        for entry in container.customers.list_overdue_customers(shop_id)
    ]


@router.get(
    "/customers/{customer_id}",
    response_model=CustomerDetailResponse,
    summary="Get Customer",
    description="Customer profile and statistics together with its purchases."
)
def get_customer(
    customer_id: UUID,
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    detail = container.customers.get_customer_detail(customer_id, shop_id)
    return CustomerDetailResponse(
        customer=CustomerResponse.from_domain(detail.customer),
        purchases=[PurchaseResponse.from_domain(p) for p in detail.purchases],
    )


@router.get(
    "/customers/{customer_id}/purchases",
    response_model=PurchaseListResponse,
    summary="Customer Purchase History",
)
def list_customer_purchases(
    customer_id: UUID,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    page = container.customers.list_customer_purchases(customer_id, shop_id, limit=limit, offset=offset)
    return PurchaseListResponse(
        items=[PurchaseResponse.from_domain(p) for p in page.items],
        total_count=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.post(
    "/customers",
    response_model=CustomerResponse,
    status_code=201,
    summary="Create Customer",
)
def create_customer(
    request: CustomerCreateRequest,
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    """
    Create a customer.

    Emails are unique within a shop (compared case-insensitively).
    """
    draft = CustomerDraft(
        name=request.name,
        email=request.email,
        phone=request.phone,
        address=request.address.to_domain() if request.address else None,
        notes=request.notes,
    )
    return CustomerResponse.from_domain(container.customers.create_customer(shop_id, draft))


@router.put(
    "/customers/{customer_id}",
    response_model=CustomerResponse,
    summary="Update Customer",
)
def update_customer(
    customer_id: UUID,
    request: CustomerUpdateRequest,
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    changes = CustomerChanges(
        name=request.name,
        email=request.email,
        phone=request.phone,
        address=request.address.to_domain() if request.address else None,
        notes=request.notes,
        is_active=request.is_active,
    )
    return CustomerResponse.from_domain(container.customers.update_customer(customer_id, shop_id, changes))


@router.delete(
    "/customers/{customer_id}",
    response_model=CustomerDeleteResponse,
    summary="Delete Customer",
    description="Deactivates a customer with purchase history; deletes one without."
)
def delete_customer(
    customer_id: UUID,
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    removal = container.customers.delete_customer(customer_id, shop_id)
    if removal is CustomerRemoval.DEACTIVATED:
        message = "Customer deactivated (has purchase history)"
    else:
        message = "Customer deleted successfully"
    return CustomerDeleteResponse(id=customer_id, result=removal.value, message=message)


@router.post(
    "/customers/{customer_id}/reconcile",
    response_model=CustomerResponse,
    summary="Reconcile Customer Statistics",
    description="Recompute the customer's purchase count, total spent and last purchase date."
)
def reconcile_customer(
    customer_id: UUID,
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    return CustomerResponse.from_domain(container.purchases.reconcile_customer(customer_id, shop_id))
