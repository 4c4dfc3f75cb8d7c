"""CSV loader for the Brazilian E-Commerce Public Dataset by Olist.

Reads the raw export files with pandas and hands the rows to
:class:`~commerce_audit.foundation.dataset.CommerceDatasetBuilder`. Tables
the analyses do not model (sellers, reviews, geolocation) are only counted.
"""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd

from commerce_audit.foundation.dataset import CommerceDataset, CommerceDatasetBuilder

logger = logging.getLogger(__name__)

OLIST_FILES = {
    "customers": "olist_customers_dataset.csv",
    "orders": "olist_orders_dataset.csv",
    "order_items": "olist_order_items_dataset.csv",
    "products": "olist_products_dataset.csv",
    "payments": "olist_order_payments_dataset.csv",
}

AUXILIARY_FILES = {
    "sellers": "olist_sellers_dataset.csv",
    "reviews": "olist_order_reviews_dataset.csv",
    "geolocation": "olist_geolocation_dataset.csv",
}

REQUIRED_COLUMNS = {
    "customers": ("customer_id", "customer_state"),
    "orders": ("order_id", "customer_id", "order_status", "order_purchase_timestamp"),
    "order_items": ("order_id", "order_item_id", "product_id", "price"),
    "products": ("product_id", "product_category_name"),
    "payments": ("order_id", "payment_sequential", "payment_type", "payment_value"),
}

# Payments are optional: the analyses only report on them when present
OPTIONAL_TABLES = frozenset({"payments"})


def read_table(path: Path, table: str) -> pd.DataFrame:
    """Read one export file as strings, validating its columns.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    ValueError
        If expected columns are missing.
    """
    if not path.exists():
        raise FileNotFoundError(f"Dataset file for table '{table}' not found: {path}")

    # Keep raw strings; parsing happens in the dataset builder
    df = pd.read_csv(path, dtype=str, keep_default_na=False)

    expected = set(REQUIRED_COLUMNS.get(table, ()))
    missing = expected - set(df.columns)
    if missing:
        raise ValueError(
            f"Table '{table}' ({path.name}) missing expected columns: {sorted(missing)}"
        )
    logger.info(f"Read {len(df):,} rows from {path.name}")
    return df


def load_olist_dataset(data_dir: str | Path, strict: bool = False) -> CommerceDataset:
    """Load the Olist CSV export in ``data_dir`` into a dataset.

    Parameters
    ----------
    data_dir:
        Directory holding the ``olist_*_dataset.csv`` files.
    strict:
        Raise :class:`~commerce_audit.foundation.dataset.DataQualityError`
        on the first unresolvable reference instead of skipping it.

    Examples
    --------
    >>> dataset = load_olist_dataset("data/olist")  # doctest: +SKIP
    >>> dataset.row_counts()["orders"]  # doctest: +SKIP
    99441
    """
    data_dir = Path(data_dir)
    if not data_dir.is_dir():
        raise FileNotFoundError(f"Dataset directory not found: {data_dir}")

    frames: dict[str, pd.DataFrame] = {}
    for table, filename in OLIST_FILES.items():
        path = data_dir / filename
        if table in OPTIONAL_TABLES and not path.exists():
            logger.info(f"Optional table '{table}' not present ({filename})")
            frames[table] = pd.DataFrame(columns=list(REQUIRED_COLUMNS[table]))
            continue
        frames[table] = read_table(path, table)

    auxiliary_row_counts: dict[str, int] = {}
    for table, filename in AUXILIARY_FILES.items():
        path = data_dir / filename
        if path.exists():
            auxiliary_row_counts[table] = len(read_table(path, table))

    builder = CommerceDatasetBuilder(strict=strict)
    dataset = builder.build(
        customers=frames["customers"].to_dict("records"),
        orders=frames["orders"].to_dict("records"),
        items=frames["order_items"].to_dict("records"),
        products=frames["products"].to_dict("records"),
        payments=frames["payments"].to_dict("records"),
        auxiliary_row_counts=auxiliary_row_counts,
    )

    if not dataset.quality_report.is_clean:
        logger.warning(
            f"Dataset loaded with {dataset.quality_report.total_skipped} "
            f"unresolvable record(s) skipped"
        )
    return dataset
