"""Pandas DataFrame adapters for commerce audit components."""

from .affinity import (
    affinity_to_dataframe,
    calculate_affinity_df,
    dataframe_to_baskets,
)
from .cohorts import (
    cohort_retention_to_dataframe,
    retention_matrix,
)
from .rfm import (
    calculate_rfm_df,
    dataframe_to_order_histories,
    rfm_to_dataframe,
)

__all__ = [
    # RFM adapters
    "rfm_to_dataframe",
    "dataframe_to_order_histories",
    "calculate_rfm_df",
    # Affinity adapters
    "affinity_to_dataframe",
    "dataframe_to_baskets",
    "calculate_affinity_df",
    # Cohort adapters
    "cohort_retention_to_dataframe",
    "retention_matrix",
]
