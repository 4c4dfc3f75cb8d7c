"""Customer lifetime value: total spend over qualifying orders."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal

from commerce_audit.foundation.dataset import CommerceDataset, OrderStatus
from commerce_audit.foundation.revenue import order_revenues, quantize_amount


@dataclass(frozen=True)
class CustomerLTV:
    customer_id: str
    lifetime_value: Decimal


@dataclass(frozen=True)
class StateLTV:
    """Average lifetime value of the customers in one state."""

    state: str
    avg_ltv: Decimal
    customers_in_state: int


def customer_lifetime_values(
    dataset: CommerceDataset, status: str = OrderStatus.DELIVERED.value
) -> list[CustomerLTV]:
    """Sum item prices of qualifying orders per customer, highest first.

    Customers without a qualifying order with items are not listed.
    """
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for revenue in order_revenues(dataset, status):
        totals[revenue.customer_id] += revenue.revenue

    result = [
        CustomerLTV(customer_id=customer_id, lifetime_value=quantize_amount(total))
        for customer_id, total in totals.items()
    ]
    result.sort(key=lambda c: (-c.lifetime_value, c.customer_id))
    return result


def average_ltv_by_state(
    dataset: CommerceDataset, status: str = OrderStatus.DELIVERED.value
) -> list[StateLTV]:
    """Average LTV and customer count per state, highest average first."""
    per_state: dict[str, list[Decimal]] = defaultdict(list)
    for ltv in customer_lifetime_values(dataset, status):
        per_state[dataset.customer(ltv.customer_id).state].append(ltv.lifetime_value)

    result = [
        StateLTV(
            state=state,
            avg_ltv=quantize_amount(sum(values, Decimal("0")) / len(values)),
            customers_in_state=len(values),
        )
        for state, values in per_state.items()
    ]
    result.sort(key=lambda s: (-s.avg_ltv, s.state))
    return result
