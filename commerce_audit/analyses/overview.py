"""Basic dataset exploration: table sizes, daily orders, customers by state."""

from __future__ import annotations

from collections import Counter
from datetime import date

from commerce_audit.foundation.dataset import CommerceDataset


def table_row_counts(dataset: CommerceDataset) -> dict[str, int]:
    """Row count per table, including counted auxiliary tables."""
    return dataset.row_counts()


def orders_per_day(dataset: CommerceDataset) -> list[tuple[date, int]]:
    """Number of orders per purchase date (all statuses), oldest first."""
    counts = Counter(order.purchase_ts.date() for order in dataset.orders)
    return sorted(counts.items())


def customers_by_state(dataset: CommerceDataset) -> list[tuple[str, int]]:
    """Number of customers per state, largest first."""
    counts = Counter(customer.state for customer in dataset.customers)
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
