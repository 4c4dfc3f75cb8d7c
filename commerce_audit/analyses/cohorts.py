"""Monthly cohort retention.

Each customer belongs to the cohort of the calendar month of their first
order (among the cohort statuses, ``delivered`` and ``shipped`` by default).
For every month offset since that first month the report counts how many
cohort members placed an order again.

Quick Start
-----------
>>> from commerce_audit.analyses.cohorts import cohort_retention
>>> rows = cohort_retention(dataset)  # doctest: +SKIP
>>> rows[0].cohort_month, rows[0].months_since_first_order, rows[0].active_customers  # doctest: +SKIP
(datetime.date(2017, 1, 1), 0, 715)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from commerce_audit.analyses._utils import safe_percentage
from commerce_audit.foundation.dataset import CommerceDataset, OrderStatus
from commerce_audit.foundation.revenue import month_start

logger = logging.getLogger(__name__)

DEFAULT_COHORT_STATUSES = (OrderStatus.DELIVERED.value, OrderStatus.SHIPPED.value)


@dataclass(frozen=True)
class CohortRetention:
    """Activity of one cohort in one month offset.

    Attributes
    ----------
    cohort_month:
        First day of the month of the cohort members' first order
    months_since_first_order:
        Calendar months between the cohort month and the order month
        (0 = acquisition month)
    active_customers:
        Cohort members with at least one order in that month
    cohort_size:
        Number of customers in the cohort
    retention_rate:
        ``active_customers`` as a percentage of ``cohort_size``
    """

    cohort_month: date
    months_since_first_order: int
    active_customers: int
    cohort_size: int
    retention_rate: Decimal | None

    def __post_init__(self) -> None:
        if self.months_since_first_order < 0:
            raise ValueError(
                f"months_since_first_order must be >= 0, got {self.months_since_first_order}"
            )
        if self.active_customers > self.cohort_size:
            raise ValueError(
                f"active_customers ({self.active_customers}) cannot exceed "
                f"cohort_size ({self.cohort_size}) for cohort {self.cohort_month}"
            )


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start``'s month to ``end``'s month.

    >>> months_between(date(2017, 11, 1), date(2018, 2, 1))
    3
    """
    return (end.year - start.year) * 12 + (end.month - start.month)


def first_order_months(
    dataset: CommerceDataset, statuses: Iterable[str] = DEFAULT_COHORT_STATUSES
) -> dict[str, date]:
    """Map each customer with a cohort-status order to their cohort month."""
    first_months: dict[str, date] = {}
    for order in dataset.all_qualifying_orders(statuses):
        month = month_start(order.purchase_ts)
        current = first_months.get(order.customer_id)
        if current is None or month < current:
            first_months[order.customer_id] = month
    return first_months


def cohort_retention(
    dataset: CommerceDataset, statuses: Iterable[str] = DEFAULT_COHORT_STATUSES
) -> list[CohortRetention]:
    """Count active customers per cohort month and month offset.

    Returns
    -------
    list[CohortRetention]
        Sorted by cohort month, then month offset; offsets without any
        active customer are omitted
    """
    statuses = tuple(statuses)
    first_months = first_order_months(dataset, statuses)

    cohort_sizes: dict[date, int] = defaultdict(int)
    for month in first_months.values():
        cohort_sizes[month] += 1

    active: dict[tuple[date, int], set[str]] = defaultdict(set)
    for order in dataset.all_qualifying_orders(statuses):
        cohort_month = first_months[order.customer_id]
        offset = months_between(cohort_month, month_start(order.purchase_ts))
        active[(cohort_month, offset)].add(order.customer_id)

    rows = [
        CohortRetention(
            cohort_month=cohort_month,
            months_since_first_order=offset,
            active_customers=len(customers),
            cohort_size=cohort_sizes[cohort_month],
            retention_rate=safe_percentage(len(customers), cohort_sizes[cohort_month]),
        )
        for (cohort_month, offset), customers in active.items()
    ]
    rows.sort(key=lambda r: (r.cohort_month, r.months_since_first_order))

    logger.info(
        f"Built retention for {len(cohort_sizes)} cohorts "
        f"covering {len(first_months)} customers"
    )
    return rows
