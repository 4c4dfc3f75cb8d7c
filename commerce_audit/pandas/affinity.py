"""Pandas DataFrame adapters for product affinity."""

import logging
from typing import Dict, Optional, Sequence

import pandas as pd  # type: ignore

from commerce_audit.foundation.affinity import ProductPair, count_pairs, rank_pairs

logger = logging.getLogger(__name__)

AFFINITY_COLUMNS = [
    "product_a",
    "product_a_category",
    "product_b",
    "product_b_category",
    "together_count",
]


def affinity_to_dataframe(pairs: Sequence[ProductPair]) -> pd.DataFrame:
    """Convert ranked product pairs to a DataFrame, preserving their order.

    Example:
        >>> pairs = compute_affinity(dataset, top_n=20)
        >>> affinity_to_dataframe(pairs).to_csv("top_pairs.csv", index=False)
    """
    rows = [
        {
            "product_a": p.product_a,
            "product_a_category": p.product_a_category,
            "product_b": p.product_b,
            "product_b_category": p.product_b_category,
            "together_count": p.together_count,
        }
        for p in pairs
    ]
    return pd.DataFrame(rows, columns=AFFINITY_COLUMNS)


def dataframe_to_baskets(
    items_df: pd.DataFrame,
    order_id_col: str = "order_id",
    product_id_col: str = "product_id",
) -> Dict[str, frozenset]:
    """Collapse order lines into one set of distinct products per order.

    Raises:
        ValueError: If DataFrame missing required columns
    """
    missing_cols = {order_id_col, product_id_col} - set(items_df.columns)
    if missing_cols:
        raise ValueError(f"DataFrame missing required columns: {missing_cols}")

    distinct = items_df[[order_id_col, product_id_col]].dropna().drop_duplicates()
    return {
        str(order_id): frozenset(str(p) for p in group[product_id_col])
        for order_id, group in distinct.groupby(order_id_col, sort=False)
    }


def calculate_affinity_df(
    items_df: pd.DataFrame,
    products_df: Optional[pd.DataFrame] = None,
    top_n: Optional[int] = None,
    basket_size_cap: Optional[int] = None,
    order_id_col: str = "order_id",
    product_id_col: str = "product_id",
    category_col: str = "product_category_name",
) -> pd.DataFrame:
    """Rank co-purchased product pairs straight from an order items DataFrame.

    Categories are looked up in ``products_df`` when given. Item rows whose
    product is missing from ``products_df`` are skipped and counted, the same
    way the dataset builder skips items with an unknown product.

    Example:
        >>> items_df = pd.read_csv("olist_order_items_dataset.csv")
        >>> products_df = pd.read_csv("olist_products_dataset.csv")
        >>> top_pairs = calculate_affinity_df(items_df, products_df, top_n=20)
    """
    categories: Dict[str, Optional[str]] = {}
    if products_df is not None and product_id_col in items_df.columns:
        for record in products_df[[product_id_col, category_col]].to_dict("records"):
            category = record[category_col]
            categories[str(record[product_id_col])] = (
                None if pd.isna(category) or category == "" else str(category)
            )

        known = items_df[product_id_col].astype(str).isin(set(categories))
        skipped = int((~known).sum())
        if skipped:
            logger.warning(
                f"Skipped {skipped} item row(s) (item_unknown_product); "
                f"first offending ids: "
                f"{items_df.loc[~known, product_id_col].astype(str).unique()[:5].tolist()}"
            )
        items_df = items_df[known]

    baskets = dataframe_to_baskets(items_df, order_id_col, product_id_col)
    counts = count_pairs(baskets, basket_size_cap=basket_size_cap)

    pairs = [
        ProductPair(
            product_a=a,
            product_b=b,
            together_count=counts[(a, b)],
            product_a_category=categories.get(a),
            product_b_category=categories.get(b),
        )
        for a, b in rank_pairs(counts, top_n)
    ]
    return affinity_to_dataframe(pairs)
