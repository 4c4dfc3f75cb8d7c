"""Foundational building blocks for e-commerce behavior analytics.

This package exposes the read-only dataset access layer, revenue
aggregation, the RFM segmentation engine and the product affinity engine.
"""

from .affinity import ProductPair, build_baskets, compute_affinity, count_pairs, rank_pairs
from .dataset import (
    CommerceDataset,
    CommerceDatasetBuilder,
    Customer,
    DataQualityError,
    DataQualityReport,
    Order,
    OrderItem,
    OrderStatus,
    Payment,
    Product,
)
from .loader import load_olist_dataset
from .revenue import (
    OrderRevenue,
    monthly_revenue,
    order_revenues,
    revenue_by_category,
    revenue_by_state,
    revenue_overview,
)
from .rfm import (
    SEGMENT_RULES,
    CustomerRFM,
    RFMResult,
    RFMScore,
    Segment,
    SegmentRule,
    calculate_rfm,
    calculate_rfm_scores,
    classify_segment,
    compute_rfm,
)

__all__ = [
    "CommerceDataset",
    "CommerceDatasetBuilder",
    "Customer",
    "DataQualityError",
    "DataQualityReport",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payment",
    "Product",
    "load_olist_dataset",
    "OrderRevenue",
    "monthly_revenue",
    "order_revenues",
    "revenue_by_category",
    "revenue_by_state",
    "revenue_overview",
    "SEGMENT_RULES",
    "CustomerRFM",
    "RFMResult",
    "RFMScore",
    "Segment",
    "SegmentRule",
    "calculate_rfm",
    "calculate_rfm_scores",
    "classify_segment",
    "compute_rfm",
    "ProductPair",
    "build_baskets",
    "compute_affinity",
    "count_pairs",
    "rank_pairs",
]
