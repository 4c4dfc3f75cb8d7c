"""Revenue aggregation over orders joined to their item lines.

Only orders with at least one item line produce revenue (the join is an
inner join); item prices are summed as ``Decimal`` and quantized to cents.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from commerce_audit.foundation.dataset import CommerceDataset, OrderStatus

CENT = Decimal("0.01")


def quantize_amount(value: Decimal) -> Decimal:
    """Round a monetary amount to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def month_start(ts: datetime | date) -> date:
    """Return the first day of the month ``ts`` falls in."""
    return date(ts.year, ts.month, 1)


@dataclass(frozen=True)
class OrderRevenue:
    """Revenue of a single order (sum of its item prices)."""

    order_id: str
    customer_id: str
    status: str
    purchase_ts: datetime
    revenue: Decimal


@dataclass(frozen=True)
class MonthlyRevenue:
    """Revenue and order counts for one calendar month."""

    month: date
    num_orders: int
    total_revenue: Decimal
    avg_order_value: Decimal


@dataclass(frozen=True)
class StateRevenue:
    state: str
    num_orders: int
    revenue: Decimal


@dataclass(frozen=True)
class CategoryRevenue:
    category: str | None
    items_sold: int
    revenue: Decimal


@dataclass(frozen=True)
class RevenueOverview:
    """Headline figures for qualifying orders.

    Attributes
    ----------
    num_items:
        Item lines on qualifying orders
    num_orders:
        Distinct qualifying orders with at least one item
    total_revenue:
        Sum of item prices
    avg_item_price:
        Mean item price, ``None`` when there are no items
    """

    num_items: int
    num_orders: int
    total_revenue: Decimal
    avg_item_price: Decimal | None


@dataclass(frozen=True)
class PaymentTypeTotal:
    payment_type: str
    num_payments: int
    total_value: Decimal


def order_revenues(
    dataset: CommerceDataset, statuses: str | Iterable[str] | None = None
) -> list[OrderRevenue]:
    """Compute per-order revenue, optionally restricted to ``statuses``.

    Returns
    -------
    list[OrderRevenue]
        One record per order with items, sorted by purchase timestamp then id
    """
    orders = (
        dataset.orders if statuses is None else dataset.all_qualifying_orders(statuses)
    )
    revenues: list[OrderRevenue] = []
    for order in orders:
        items = dataset.items_by_order(order.order_id)
        if not items:
            continue
        revenues.append(
            OrderRevenue(
                order_id=order.order_id,
                customer_id=order.customer_id,
                status=order.status,
                purchase_ts=order.purchase_ts,
                revenue=quantize_amount(sum((i.price for i in items), Decimal("0"))),
            )
        )
    revenues.sort(key=lambda r: (r.purchase_ts, r.order_id))
    return revenues


def monthly_revenue(
    dataset: CommerceDataset, status: str = OrderStatus.DELIVERED.value
) -> list[MonthlyRevenue]:
    """Monthly order count, revenue and average order value, oldest first."""
    buckets: dict[date, list[Decimal]] = defaultdict(list)
    for revenue in order_revenues(dataset, status):
        buckets[month_start(revenue.purchase_ts)].append(revenue.revenue)

    result: list[MonthlyRevenue] = []
    for month in sorted(buckets):
        values = buckets[month]
        total = sum(values, Decimal("0"))
        result.append(
            MonthlyRevenue(
                month=month,
                num_orders=len(values),
                total_revenue=quantize_amount(total),
                avg_order_value=quantize_amount(total / len(values)),
            )
        )
    return result


def revenue_by_state(
    dataset: CommerceDataset, status: str = OrderStatus.DELIVERED.value
) -> list[StateRevenue]:
    """Distinct orders and revenue per customer state, highest revenue first."""
    orders: dict[str, set[str]] = defaultdict(set)
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for revenue in order_revenues(dataset, status):
        state = dataset.customer(revenue.customer_id).state
        orders[state].add(revenue.order_id)
        totals[state] += revenue.revenue

    result = [
        StateRevenue(state=state, num_orders=len(orders[state]), revenue=quantize_amount(total))
        for state, total in totals.items()
    ]
    result.sort(key=lambda r: (-r.revenue, r.state))
    return result


def revenue_by_category(
    dataset: CommerceDataset, status: str = OrderStatus.DELIVERED.value
) -> list[CategoryRevenue]:
    """Items sold and revenue per product category, highest revenue first."""
    counts: dict[str | None, int] = defaultdict(int)
    totals: dict[str | None, Decimal] = defaultdict(Decimal)
    for order in dataset.all_qualifying_orders(status):
        for item in dataset.items_by_order(order.order_id):
            category = dataset.product_category(item.product_id)
            counts[category] += 1
            totals[category] += item.price

    result = [
        CategoryRevenue(
            category=category, items_sold=counts[category], revenue=quantize_amount(total)
        )
        for category, total in totals.items()
    ]
    result.sort(key=lambda r: (-r.revenue, r.category or ""))
    return result


def revenue_overview(
    dataset: CommerceDataset, status: str = OrderStatus.DELIVERED.value
) -> RevenueOverview:
    """Total item lines, orders and revenue for qualifying orders."""
    num_items = 0
    order_ids: set[str] = set()
    total = Decimal("0")
    for order in dataset.all_qualifying_orders(status):
        items = dataset.items_by_order(order.order_id)
        if items:
            order_ids.add(order.order_id)
        for item in items:
            num_items += 1
            total += item.price

    return RevenueOverview(
        num_items=num_items,
        num_orders=len(order_ids),
        total_revenue=quantize_amount(total),
        avg_item_price=quantize_amount(total / num_items) if num_items else None,
    )


def payment_totals(dataset: CommerceDataset) -> list[PaymentTypeTotal]:
    """Payment count and value per payment type, highest value first."""
    counts: dict[str, int] = defaultdict(int)
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for payment in dataset.payments:
        counts[payment.payment_type] += 1
        totals[payment.payment_type] += payment.value

    result = [
        PaymentTypeTotal(
            payment_type=payment_type,
            num_payments=counts[payment_type],
            total_value=quantize_amount(total),
        )
        for payment_type, total in totals.items()
    ]
    result.sort(key=lambda p: (-p.total_value, p.payment_type))
    return result
