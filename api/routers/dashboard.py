"""
Dashboard API Endpoints.

Read-only reports for the shop dashboard. Nothing here changes state.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import ServiceContainer, get_container, get_shop_id
from api.models import (
    CountAmount,
    CustomerCounts,
    CustomerResponse,
    DashboardOverviewResponse,
    GrowthResponse,
    MonthlyComparisonResponse,
    PaymentCounts,
    PeriodTotalsResponse,
    PurchaseCounts,
    PurchaseResponse,
    RecentActivityResponse,
    RevenueTotals,
    StatusBucketResponse,
    StatusDistributionResponse,
    TopCustomersResponse,
    TrendPointResponse,
    TrendResponse,
)
from domain.time import to_utc
from services.reporting_service import PeriodTotals, TrendPoint

router = APIRouter(prefix="/dashboard")


def _trend(points: List[TrendPoint]) -> TrendResponse:
    return TrendResponse(
        trends=[
            TrendPointResponse(
                period_start=p.period_start,
                revenue=p.revenue,
                paid=p.paid,
                transactions=p.transactions,
            )
            for p in points
        ]
    )


def _period(totals: PeriodTotals) -> PeriodTotalsResponse:
    return PeriodTotalsResponse(revenue=totals.revenue, transactions=totals.transactions, paid=totals.paid)


@router.get("/overview", response_model=DashboardOverviewResponse, summary="Dashboard Overview")
def get_overview(
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    """Customer and purchase counts, outstanding payments and revenue totals."""
    overview = container.reports.dashboard_overview(shop_id)
    return DashboardOverviewResponse(
        customers=CustomerCounts(
            total=overview.customers_total,
            active=overview.customers_active,
            inactive=overview.customers_inactive,
        ),
        purchases=PurchaseCounts(
            total=overview.purchases_total,
            today=overview.purchases_today,
            this_week=overview.purchases_this_week,
            this_month=overview.purchases_this_month,
        ),
        payments=PaymentCounts(
            pending=CountAmount(count=overview.pending_count, amount=overview.pending_amount),
            overdue=CountAmount(count=overview.overdue_count, amount=overview.overdue_amount),
        ),
        revenue=RevenueTotals(
            total=overview.revenue_total,
            collected=overview.revenue_collected,
            pending=overview.revenue_outstanding,
            collection_rate=overview.collection_rate,
        ),
    )


@router.get("/revenue-trends", response_model=TrendResponse, summary="Daily Revenue Trends")
def get_revenue_trends(
    start_date: Optional[datetime] = Query(None, description="Default: 30 days ago"),
    end_date: Optional[datetime] = Query(None),
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    points = container.reports.revenue_trends(
        shop_id,
        start=to_utc(start_date) if start_date else None,
        end=to_utc(end_date) if end_date else None,
    )
    return _trend(points)


@router.get("/monthly-revenue", response_model=TrendResponse, summary="Monthly Revenue")
def get_monthly_revenue(
    start_date: Optional[datetime] = Query(None, description="Default: first day of the month 11 months ago"),
    end_date: Optional[datetime] = Query(None),
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    points = container.reports.monthly_revenue(
        shop_id,
        start=to_utc(start_date) if start_date else None,
        end=to_utc(end_date) if end_date else None,
    )
    return _trend(points)


@router.get("/top-customers", response_model=TopCustomersResponse, summary="Top Customers")
def get_top_customers(
    limit: int = Query(10, ge=1, le=100),
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    customers = container.reports.top_customers(shop_id, limit=limit)
    return TopCustomersResponse(customers=[CustomerResponse.from_domain(c) for c in customers])


@router.get("/purchase-status", response_model=StatusDistributionResponse, summary="Payment Status Distribution")
def get_status_distribution(
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    buckets = container.reports.status_distribution(shop_id)
    return StatusDistributionResponse(
        distribution=[
            StatusBucketResponse(status=b.status, count=b.count, total_amount=b.total_amount)
            for b in buckets
        ]
    )


@router.get("/monthly-comparison", response_model=MonthlyComparisonResponse, summary="Monthly Comparison")
def get_monthly_comparison(
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    """
    Current month so far vs the whole previous month.

    Growth is `(current - previous) / previous * 100`, reported as 0 when the
    previous month had nothing to compare against.
    """
    comparison = container.reports.monthly_comparison(shop_id)
    return MonthlyComparisonResponse(
        current_month=_period(comparison.current),
        previous_month=_period(comparison.previous),
        growth=GrowthResponse(
            revenue=comparison.revenue_growth,
            transactions=comparison.transaction_growth,
            paid=comparison.paid_growth,
        ),
    )


@router.get("/recent-activities", response_model=RecentActivityResponse, summary="Recent Activity")
def get_recent_activities(
    limit: int = Query(10, ge=1, le=100),
    shop_id: str = Depends(get_shop_id),
    container: ServiceContainer = Depends(get_container),
):
    activity = container.reports.recent_activity(shop_id, limit=limit)
    return RecentActivityResponse(
        recent_purchases=[PurchaseResponse.from_domain(p) for p in activity.purchases],
        recent_customers=[CustomerResponse.from_domain(c) for c in activity.customers],
    )
