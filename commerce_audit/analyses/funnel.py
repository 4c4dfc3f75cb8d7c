"""Ordering funnel and repeat-purchase reporting.

The funnel counts unique customers at each stage:

1. all customers
2. add to cart: customers with at least one order line item
3. ordered: customers in the previous stage with at least one order
4. delivered: customers in the previous stage with a delivered order

Stages are nested, so each stage is a subset of the one before it.
Conversion rates are percentages between consecutive stages; a stage with
no customers gives ``None`` for the following rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from commerce_audit.analyses._utils import safe_percentage
from commerce_audit.foundation.dataset import CommerceDataset, OrderStatus


@dataclass(frozen=True)
class FunnelMetrics:
    """Customer counts and conversion rates per funnel stage."""

    total_customers: int
    customers_add_to_cart: int
    customers_ordered: int
    customers_delivered: int
    visit_to_cart_rate: Decimal | None
    cart_to_order_rate: Decimal | None
    order_to_delivery_rate: Decimal | None

    def __post_init__(self) -> None:
        """Validate that stages never grow."""
        stages = [
            self.total_customers,
            self.customers_add_to_cart,
            self.customers_ordered,
            self.customers_delivered,
        ]
        if any(later > earlier for earlier, later in zip(stages, stages[1:])):
            raise ValueError(f"Funnel stages must be non-increasing: {stages}")


@dataclass(frozen=True)
class RepeatCustomerMetrics:
    """One-time versus repeat buyers among customers with qualifying orders.

    Attributes
    ----------
    one_time_customers:
        Customers with exactly one qualifying order
    repeat_customers:
        Customers with more than one qualifying order
    total_customers:
        Customers with at least one qualifying order
    repeat_rate_percent:
        Share of repeat customers, ``None`` when there are no customers
    """

    one_time_customers: int
    repeat_customers: int
    total_customers: int
    repeat_rate_percent: Decimal | None


def conversion_funnel(dataset: CommerceDataset) -> FunnelMetrics:
    """Count customers through the cart, order and delivery stages.

    Examples
    --------
    >>> funnel = conversion_funnel(dataset)  # doctest: +SKIP
    >>> funnel.customers_delivered <= funnel.customers_ordered  # doctest: +SKIP
    True
    """
    all_customers = {c.customer_id for c in dataset.customers}

    with_items = {
        dataset.order(item.order_id).customer_id for item in dataset.items
    }
    add_to_cart = with_items & all_customers

    with_orders = {o.customer_id for o in dataset.orders}
    ordered = with_orders & add_to_cart

    with_delivery = {
        o.customer_id
        for o in dataset.all_qualifying_orders(OrderStatus.DELIVERED.value)
    }
    delivered = with_delivery & ordered

    return FunnelMetrics(
        total_customers=len(all_customers),
        customers_add_to_cart=len(add_to_cart),
        customers_ordered=len(ordered),
        customers_delivered=len(delivered),
        visit_to_cart_rate=safe_percentage(len(add_to_cart), len(all_customers)),
        cart_to_order_rate=safe_percentage(len(ordered), len(add_to_cart)),
        order_to_delivery_rate=safe_percentage(len(delivered), len(ordered)),
    )


def repeat_customers(
    dataset: CommerceDataset, status: str = OrderStatus.DELIVERED.value
) -> RepeatCustomerMetrics:
    """Split customers with qualifying orders into one-time and repeat buyers."""
    orders_per_customer: dict[str, set[str]] = {}
    for order in dataset.all_qualifying_orders(status):
        orders_per_customer.setdefault(order.customer_id, set()).add(order.order_id)

    one_time = sum(1 for ids in orders_per_customer.values() if len(ids) == 1)
    repeat = sum(1 for ids in orders_per_customer.values() if len(ids) > 1)
    total = len(orders_per_customer)
    return RepeatCustomerMetrics(
        one_time_customers=one_time,
        repeat_customers=repeat,
        total_customers=total,
        repeat_rate_percent=safe_percentage(repeat, total),
    )
