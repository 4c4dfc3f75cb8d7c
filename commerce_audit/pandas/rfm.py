"""Pandas DataFrame adapters for RFM segmentation."""

from typing import Dict, List, Optional, Sequence

import pandas as pd  # type: ignore

from commerce_audit.foundation.dataset import OrderStatus
from commerce_audit.foundation.rfm import (
    SEGMENT_RULES,
    OrderSnapshot,
    RFMScore,
    SegmentRule,
    calculate_rfm,
    calculate_rfm_scores,
    compute_snapshot_date,
)
from ._utils import decimal_to_float, float_to_decimal

RFM_COLUMNS = [
    "customer_id",
    "recency_days",
    "frequency",
    "monetary",
    "r_score",
    "f_score",
    "m_score",
    "rfm_score",
    "segment",
]


def rfm_to_dataframe(rfm_scores: Sequence[RFMScore]) -> pd.DataFrame:
    """Convert RFM scores to pandas DataFrame.

    Args:
        rfm_scores: Sequence of RFMScore objects

    Returns:
        DataFrame with columns: customer_id, recency_days, frequency,
        monetary, r_score, f_score, m_score, rfm_score, segment

    Example:
        >>> result = compute_rfm(dataset)
        >>> rfm_df = rfm_to_dataframe(result.scores)
        >>> rfm_df.groupby("segment")["monetary"].sum()
    """
    if not rfm_scores:
        return pd.DataFrame(columns=RFM_COLUMNS)

    rows = [
        {
            "customer_id": s.customer_id,
            "recency_days": s.recency_days,
            "frequency": s.frequency,
            "monetary": decimal_to_float(s.monetary),
            "r_score": s.r_score,
            "f_score": s.f_score,
            "m_score": s.m_score,
            "rfm_score": s.rfm_score,
            "segment": s.segment,
        }
        for s in rfm_scores
    ]

    df = pd.DataFrame(rows, columns=RFM_COLUMNS)
    df = df.sort_values("customer_id").reset_index(drop=True)
    return df


def dataframe_to_order_histories(
    orders_df: pd.DataFrame,
    items_df: pd.DataFrame,
    order_id_col: str = "order_id",
    customer_id_col: str = "customer_id",
    status_col: str = "order_status",
    purchase_ts_col: str = "order_purchase_timestamp",
    price_col: str = "price",
) -> Dict[str, List[OrderSnapshot]]:
    """Build per-customer order histories from order and item DataFrames.

    Args:
        orders_df: One row per order
        items_df: One row per order line
        *_col: Column name mappings for flexibility

    Returns:
        Mapping from customer id to that customer's orders

    Raises:
        ValueError: If DataFrames miss required columns or have null keys
    """
    missing_cols = {order_id_col, customer_id_col, status_col, purchase_ts_col} - set(
        orders_df.columns
    )
    missing_cols |= {order_id_col, price_col} - set(items_df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {missing_cols}")

    if orders_df.empty:
        return {}

    key_cols = [order_id_col, customer_id_col, purchase_ts_col]
    null_cols = orders_df[key_cols].isnull().any()
    if null_cols.any():
        null_col_names = null_cols[null_cols].index.tolist()
        raise ValueError(
            f"Null/NaN values found in columns: {null_col_names}. "
            "RFM calculations require complete order data."
        )

    prices: Dict[str, tuple] = {
        str(order_id): tuple(float_to_decimal(p) for p in group[price_col])
        for order_id, group in items_df.groupby(order_id_col, sort=False)
    }

    histories: Dict[str, List[OrderSnapshot]] = {}
    for record in orders_df.to_dict("records"):
        order_id = str(record[order_id_col])
        histories.setdefault(str(record[customer_id_col]), []).append(
            OrderSnapshot(
                order_id=order_id,
                status=str(record[status_col]).strip().lower(),
                purchase_ts=pd.to_datetime(record[purchase_ts_col]).to_pydatetime(),
                item_prices=prices.get(order_id, ()),
            )
        )
    return histories


def calculate_rfm_df(
    orders_df: pd.DataFrame,
    items_df: pd.DataFrame,
    qualifying_status: str = OrderStatus.DELIVERED.value,
    rules: Sequence[SegmentRule] = SEGMENT_RULES,
    parallel: bool = False,
    parallel_threshold: int = 100_000,
    n_workers: Optional[int] = None,
    **column_mapping: str,
) -> pd.DataFrame:
    """Score and segment customers straight from order/item DataFrames.

    Convenience function that combines conversion, snapshot date, feature
    computation and scoring. Returns an empty DataFrame (with the RFM
    columns) when there is no qualifying order.

    Example:
        >>> orders_df = pd.read_csv("olist_orders_dataset.csv")
        >>> items_df = pd.read_csv("olist_order_items_dataset.csv")
        >>> rfm_df = calculate_rfm_df(orders_df, items_df)
        >>> rfm_df["segment"].value_counts()
    """
    histories = dataframe_to_order_histories(orders_df, items_df, **column_mapping)
    snapshot_date = compute_snapshot_date(
        (order for orders in histories.values() for order in orders),
        qualifying_status,
    )
    if snapshot_date is None:
        return rfm_to_dataframe([])

    features = calculate_rfm(
        histories,
        snapshot_date,
        qualifying_status=qualifying_status,
        parallel=parallel,
        parallel_threshold=parallel_threshold,
        n_workers=n_workers,
    )
    return rfm_to_dataframe(calculate_rfm_scores(features, rules))
