"""Report-style analyses built on the foundation layer.

1. Overview - table sizes, daily orders, customers by state
2. Cohorts - monthly cohort retention
3. Funnel - cart/order/delivery conversion and repeat purchase rate
4. LTV - lifetime value per customer and per state
5. Segments - size and value of RFM segments
"""

from .cohorts import CohortRetention, cohort_retention
from .funnel import FunnelMetrics, RepeatCustomerMetrics, conversion_funnel, repeat_customers
from .ltv import CustomerLTV, StateLTV, average_ltv_by_state, customer_lifetime_values
from .overview import customers_by_state, orders_per_day, table_row_counts
from .segments import SegmentSummary, summarize_segments

__all__ = [
    # Overview
    "customers_by_state",
    "orders_per_day",
    "table_row_counts",
    # Cohorts
    "CohortRetention",
    "cohort_retention",
    # Funnel
    "FunnelMetrics",
    "RepeatCustomerMetrics",
    "conversion_funnel",
    "repeat_customers",
    # LTV
    "CustomerLTV",
    "StateLTV",
    "average_ltv_by_state",
    "customer_lifetime_values",
    # Segments
    "SegmentSummary",
    "summarize_segments",
]
