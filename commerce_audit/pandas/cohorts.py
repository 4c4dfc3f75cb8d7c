"""Pandas DataFrame adapters for cohort retention."""

from typing import Sequence

import pandas as pd  # type: ignore

from commerce_audit.analyses.cohorts import CohortRetention
from ._utils import optional_decimal_to_float

COHORT_COLUMNS = [
    "cohort_month",
    "months_since_first_order",
    "active_customers",
    "cohort_size",
    "retention_rate",
]


def cohort_retention_to_dataframe(rows: Sequence[CohortRetention]) -> pd.DataFrame:
    """Convert cohort retention rows to a long-format DataFrame."""
    records = [
        {
            "cohort_month": pd.Timestamp(r.cohort_month),
            "months_since_first_order": r.months_since_first_order,
            "active_customers": r.active_customers,
            "cohort_size": r.cohort_size,
            "retention_rate": optional_decimal_to_float(r.retention_rate),
        }
        for r in rows
    ]
    return pd.DataFrame(records, columns=COHORT_COLUMNS)


def retention_matrix(
    rows: Sequence[CohortRetention], value: str = "active_customers"
) -> pd.DataFrame:
    """Pivot retention rows into a cohort × month-offset matrix.

    Args:
        rows: Cohort retention rows
        value: ``"active_customers"`` or ``"retention_rate"``

    Returns:
        DataFrame indexed by cohort month with one column per month offset;
        offsets without activity are 0

    Raises:
        ValueError: If ``value`` is not a supported column

    Example:
        >>> matrix = retention_matrix(cohort_retention(dataset), value="retention_rate")
        >>> matrix.loc["2017-01-01", 1]
    """
    if value not in ("active_customers", "retention_rate"):
        raise ValueError(f"Unsupported matrix value: {value}")

    df = cohort_retention_to_dataframe(rows)
    if df.empty:
        return pd.DataFrame()

    matrix = df.pivot_table(
        index="cohort_month",
        columns="months_since_first_order",
        values=value,
        aggfunc="sum",
        fill_value=0,
    )
    matrix.columns.name = "months_since_first_order"
    return matrix.sort_index()
