"""
Reporting service: read-only aggregations over a shop's purchases.

All buckets are computed in UTC from purchase_date. Statuses are re-derived at
read time, so a purchase that went overdue since it was stored is reported as
overdue. Nothing here ever writes.

Reports are informational: if the repository fails, the failure is logged
and the report degrades to zero-valued results instead of raising.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, Iterable, List, Optional, Union

from domain.customer import Customer
from domain.overdue import refresh_purchase_status
from domain.purchase import PaymentStatus, Purchase
from domain.time import add_months, day_bounds, start_of_day, start_of_month, start_of_week, utc_now
from repositories.base import CustomerRepository, PurchaseQueryFilters, PurchaseRepository

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_CENTS = Decimal("0.01")

DEFAULT_TREND_DAYS = 30
DEFAULT_TREND_MONTHS = 12
RECENT_CUSTOMERS_LIMIT = 5

Number = Union[int, Decimal]


@dataclass(frozen=True, slots=True)
class PeriodTotals:
    revenue: Decimal = ZERO
    paid: Decimal = ZERO
    transactions: int = 0


@dataclass(frozen=True, slots=True)
class DailySummary:
    day: date
    total_sales: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    transaction_count: int
    completed_count: int
    pending_count: int
    overdue_count: int


@dataclass(frozen=True, slots=True)
class TrendPoint:
    period_start: datetime
    revenue: Decimal
    paid: Decimal
    transactions: int


@dataclass(frozen=True, slots=True)
class StatusBucket:
    status: PaymentStatus
    count: int
    total_amount: Decimal


@dataclass(frozen=True, slots=True)
class MonthlyComparison:
    current_month_start: datetime
    current: PeriodTotals
    previous: PeriodTotals
    revenue_growth: Decimal
    transaction_growth: Decimal
    paid_growth: Decimal


@dataclass(frozen=True, slots=True)
class DashboardOverview:
    customers_total: int
    customers_active: int
    purchases_total: int
    purchases_today: int
    purchases_this_week: int
    purchases_this_month: int
    pending_count: int
    pending_amount: Decimal
    overdue_count: int
    overdue_amount: Decimal
    revenue_total: Decimal
    revenue_collected: Decimal
    revenue_outstanding: Decimal
    collection_rate: Decimal

    @property
    def customers_inactive(self) -> int:
        return self.customers_total - self.customers_active


@dataclass(frozen=True, slots=True)
class RecentActivity:
    purchases: List[Purchase]
    customers: List[Customer]


def growth_percentage(current: Number, previous: Number) -> Decimal:
    """
    Percentage change from `previous` to `current`, rounded to 2 decimals.

    Defined as 0 when previous is 0 (no baseline to grow from).
    """

    previous_value = Decimal(previous)
    if previous_value == 0:
        return Decimal("0.00")
    change = (Decimal(current) - previous_value) / previous_value * _HUNDRED
    return change.quantize(_CENTS, rounding=ROUND_HALF_UP)


def period_totals(purchases: Iterable[Purchase]) -> PeriodTotals:
    revenue = ZERO
    paid = ZERO
    count = 0
    for purchase in purchases:
        revenue += purchase.total_amount
        paid += purchase.paid_amount
        count += 1
    return PeriodTotals(revenue=revenue, paid=paid, transactions=count)


def _bucketed(purchases: Iterable[Purchase], bucket: Callable[[Purchase], datetime]) -> List[TrendPoint]:
    groups: Dict[datetime, List[Purchase]] = {}
    for purchase in purchases:
        groups.setdefault(bucket(purchase), []).append(purchase)

    points = []
    for period_start in sorted(groups):
        totals = period_totals(groups[period_start])
        points.append(
            TrendPoint(
                period_start=period_start,
                revenue=totals.revenue,
                paid=totals.paid,
                transactions=totals.transactions,
            )
        )
    return points


class ReportingService:
    def __init__(
        self,
        customers: CustomerRepository,
        purchases: PurchaseRepository,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._customers = customers
        self._purchases = purchases
        self._clock = clock

    def daily_summary(self, shop_id: str, day: Optional[date] = None) -> DailySummary:
        """Sales, collections and status counts for purchases dated on `day` (UTC, default today)."""

        now = self._clock()
        day = day or now.date()
        start, end = day_bounds(day)
        rows = self._snapshot(shop_id, PurchaseQueryFilters(start=start, end=end), now)

        totals = period_totals(rows)
        return DailySummary(
            day=day,
            total_sales=totals.revenue,
            total_paid=totals.paid,
            total_outstanding=sum((p.outstanding_amount for p in rows), ZERO),
            transaction_count=totals.transactions,
            completed_count=sum(1 for p in rows if p.payment_status is PaymentStatus.COMPLETED),
            pending_count=sum(1 for p in rows if p.payment_status is PaymentStatus.PENDING),
            overdue_count=sum(1 for p in rows if p.payment_status is PaymentStatus.OVERDUE),
        )

    def revenue_trends(
        self,
        shop_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TrendPoint]:
        """Per-day revenue, ascending. Defaults to the last 30 days. Days without sales are omitted."""

        now = self._clock()
        if start is None:
            start = start_of_day((now - timedelta(days=DEFAULT_TREND_DAYS)).date())
        rows = self._snapshot(shop_id, PurchaseQueryFilters(start=start, end=end), now)
        return _bucketed(rows, lambda p: start_of_day(p.purchase_date.date()))

    def monthly_revenue(
        self,
        shop_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[TrendPoint]:
        """Per-calendar-month revenue, ascending. Defaults to the last 12 months including this one."""

        now = self._clock()
        if start is None:
            start = add_months(start_of_month(now), -(DEFAULT_TREND_MONTHS - 1))
        rows = self._snapshot(shop_id, PurchaseQueryFilters(start=start, end=end), now)
        return _bucketed(rows, lambda p: start_of_month(p.purchase_date))

    def status_distribution(self, shop_id: str) -> List[StatusBucket]:
        """Count and total amount per payment status. Every status is present, zero-filled."""

        rows = self._snapshot(shop_id, PurchaseQueryFilters(), self._clock())
        counts: "OrderedDict[PaymentStatus, List[Purchase]]" = OrderedDict((s, []) for s in PaymentStatus)
        for purchase in rows:
            counts[purchase.payment_status].append(purchase)
        return [
            StatusBucket(
                status=status,
                count=len(members),
                total_amount=sum((p.total_amount for p in members), ZERO),
            )
            for status, members in counts.items()
        ]

    def monthly_comparison(self, shop_id: str) -> MonthlyComparison:
        """
        Current calendar month so far vs the whole previous month.

        The previous month is the half-open range [previous_start, current_start).
        """

        now = self._clock()
        current_start = start_of_month(now)
        previous_start = add_months(current_start, -1)

        rows = self._snapshot(shop_id, PurchaseQueryFilters(start=previous_start), now)
        current = period_totals(p for p in rows if p.purchase_date >= current_start)
        previous = period_totals(p for p in rows if p.purchase_date < current_start)

        return MonthlyComparison(
            current_month_start=current_start,
            current=current,
            previous=previous,
            revenue_growth=growth_percentage(current.revenue, previous.revenue),
            transaction_growth=growth_percentage(current.transactions, previous.transactions),
            paid_growth=growth_percentage(current.paid, previous.paid),
        )

    def top_customers(self, shop_id: str, limit: int = 10) -> List[Customer]:
        if limit < 1:
            raise ValueError("limit must be >= 1")
        customers = self._customer_snapshot(shop_id)
        customers.sort(key=lambda c: (-c.total_spent, c.name.lower()))
        return customers[:limit]

    def dashboard_overview(self, shop_id: str) -> DashboardOverview:
        now = self._clock()
        today = start_of_day(now.date())
        week = start_of_week(now.date())
        month = start_of_month(now)

        customers = self._customer_snapshot(shop_id)
        rows = self._snapshot(shop_id, PurchaseQueryFilters(), now)

        pending = [p for p in rows if p.payment_status is PaymentStatus.PENDING and p.outstanding_amount > 0]
        overdue = [p for p in rows if p.payment_status is PaymentStatus.OVERDUE]
        totals = period_totals(rows)
        collection_rate = (
            (totals.paid / totals.revenue * _HUNDRED).quantize(_CENTS, rounding=ROUND_HALF_UP)
            if totals.revenue > 0
            else Decimal("0.00")
        )

        return DashboardOverview(
            customers_total=len(customers),
            customers_active=sum(1 for c in customers if c.is_active),
            purchases_total=len(rows),
            purchases_today=sum(1 for p in rows if p.purchase_date >= today),
            purchases_this_week=sum(1 for p in rows if p.purchase_date >= week),
            purchases_this_month=sum(1 for p in rows if p.purchase_date >= month),
            pending_count=len(pending),
            pending_amount=sum((p.outstanding_amount for p in pending), ZERO),
            overdue_count=len(overdue),
            overdue_amount=sum((p.outstanding_amount for p in overdue), ZERO),
            revenue_total=totals.revenue,
            revenue_collected=totals.paid,
            revenue_outstanding=sum((p.outstanding_amount for p in rows), ZERO),
            collection_rate=collection_rate,
        )

    def recent_activity(self, shop_id: str, limit: int = 10) -> RecentActivity:
        """Latest recorded purchases and the newest customers."""

        if limit < 1:
            raise ValueError("limit must be >= 1")
        rows = self._snapshot(shop_id, PurchaseQueryFilters(), self._clock())
        rows.sort(key=lambda p: p.created_at or p.purchase_date, reverse=True)
        return RecentActivity(
            purchases=rows[:limit],
            customers=self._customer_snapshot(shop_id)[:RECENT_CUSTOMERS_LIMIT],
        )

    def _snapshot(self, shop_id: str, filters: PurchaseQueryFilters, now: datetime) -> List[Purchase]:
        try:
            rows = self._purchases.list(shop_id, filters)
        except RuntimeError:
            logger.exception(
                f"Purchase snapshot failed for shop {shop_id}; reporting empty results",
                extra={"shop_id": shop_id},
            )
            return []
        return [refresh_purchase_status(p, now) for p in rows]

    def _customer_snapshot(self, shop_id: str) -> List[Customer]:
        try:
            return list(self._customers.list(shop_id))
        except RuntimeError:
            logger.exception(
                f"Customer snapshot failed for shop {shop_id}; reporting empty results",
                extra={"shop_id": shop_id},
            )
            return []


__all__ = [
    "DailySummary",
    "DashboardOverview",
    "MonthlyComparison",
    "PeriodTotals",
    "RecentActivity",
    "ReportingService",
    "StatusBucket",
    "TrendPoint",
    "growth_percentage",
    "period_totals",
]
