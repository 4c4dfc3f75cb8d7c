"""Shared fixtures for building small datasets in tests."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping

import pandas as pd
import pytest

from commerce_audit.foundation.dataset import CommerceDataset, CommerceDatasetBuilder


def build_dataset(
    orders: Iterable[tuple[str, str, str, str]],
    items: Iterable[tuple[str, str, str]] = (),
    customers: Mapping[str, str] | None = None,
    products: Mapping[str, str | None] | None = None,
    payments: Iterable[tuple[str, str, str]] = (),
    strict: bool = False,
) -> CommerceDataset:
    """Build a dataset from compact tuples.

    orders: (order_id, customer_id, status, purchase timestamp)
    items: (order_id, product_id, price)
    customers: customer_id -> state (defaults to every ordering customer in "SP")
    products: product_id -> category (defaults to "cat_<product_id>")
    payments: (order_id, payment_type, value)
    """
    orders = list(orders)
    items = list(items)
    if customers is None:
        customers = {customer_id: "SP" for _, customer_id, _, _ in orders}
    if products is None:
        products = {product_id: f"cat_{product_id}" for _, product_id, _ in items}

    line_numbers: dict[str, int] = {}
    item_rows = []
    for order_id, product_id, price in items:
        line_numbers[order_id] = line_numbers.get(order_id, 0) + 1
        item_rows.append(
            {
                "order_id": order_id,
                "order_item_id": line_numbers[order_id],
                "product_id": product_id,
                "price": price,
            }
        )

    return CommerceDatasetBuilder(strict=strict).build(
        customers=[
            {"customer_id": cid, "customer_state": state} for cid, state in customers.items()
        ],
        orders=[
            {
                "order_id": order_id,
                "customer_id": customer_id,
                "order_status": status,
                "order_purchase_timestamp": ts,
            }
            for order_id, customer_id, status, ts in orders
        ],
        items=item_rows,
        products=[
            {"product_id": pid, "product_category_name": category}
            for pid, category in products.items()
        ],
        payments=[
            {
                "order_id": order_id,
                "payment_sequential": idx + 1,
                "payment_type": payment_type,
                "payment_installments": 1,
                "payment_value": value,
            }
            for idx, (order_id, payment_type, value) in enumerate(payments)
        ],
    )


@pytest.fixture
def make_dataset():
    """Factory fixture around :func:`build_dataset`."""
    return build_dataset


@pytest.fixture
def sample_dataset() -> CommerceDataset:
    """Small mixed-status dataset used across analysis tests.

    - C1: two delivered orders (Jan, Mar 2018) and one canceled order
    - C2: one delivered order (Feb 2018) and one shipped order (Apr 2018)
    - C3: one canceled order only
    - C4: registered, never ordered
    - C5: one delivered order without items
    """
    return build_dataset(
        orders=[
            ("O1", "C1", "delivered", "2018-01-10 10:00:00"),
            ("O2", "C1", "delivered", "2018-03-05 12:30:00"),
            ("O3", "C1", "canceled", "2018-03-20 08:00:00"),
            ("O4", "C2", "delivered", "2018-02-14 09:00:00"),
            ("O5", "C2", "shipped", "2018-04-01 18:45:00"),
            ("O6", "C3", "canceled", "2018-02-01 11:00:00"),
            ("O7", "C5", "delivered", "2018-03-25 16:00:00"),
        ],
        items=[
            ("O1", "P1", "100.00"),
            ("O1", "P2", "50.00"),
            ("O2", "P1", "100.00"),
            ("O2", "P1", "100.00"),
            ("O2", "P3", "25.50"),
            ("O3", "P2", "50.00"),
            ("O4", "P2", "40.00"),
            ("O4", "P3", "20.00"),
            ("O5", "P4", "10.00"),
            ("O6", "P1", "90.00"),
        ],
        customers={"C1": "SP", "C2": "RJ", "C3": "SP", "C4": "MG", "C5": "RJ"},
        products={"P1": "bed_bath_table", "P2": "health_beauty", "P3": None, "P4": "toys"},
        payments=[
            ("O1", "credit_card", "150.00"),
            ("O2", "credit_card", "225.50"),
            ("O4", "boleto", "60.00"),
        ],
    )


@pytest.fixture
def olist_dir(tmp_path: Path) -> Path:
    """Write a minimal Olist-style CSV export and return its directory."""
    data_dir = tmp_path / "olist"
    data_dir.mkdir()

    pd.DataFrame(
        [
            {"customer_id": "C1", "customer_unique_id": "U1", "customer_zip_code_prefix": "01001", "customer_city": "sao paulo", "customer_state": "SP"},
            {"customer_id": "C2", "customer_unique_id": "U2", "customer_zip_code_prefix": "20010", "customer_city": "rio de janeiro", "customer_state": "RJ"},
            {"customer_id": "C3", "customer_unique_id": "U3", "customer_zip_code_prefix": "30110", "customer_city": "belo horizonte", "customer_state": "MG"},
        ]
    ).to_csv(data_dir / "olist_customers_dataset.csv", index=False)

    pd.DataFrame(
        [
            {"order_id": "O1", "customer_id": "C1", "order_status": "delivered", "order_purchase_timestamp": "2018-01-10 10:00:00"},
            {"order_id": "O2", "customer_id": "C1", "order_status": "delivered", "order_purchase_timestamp": "2018-03-05 12:30:00"},
            {"order_id": "O3", "customer_id": "C2", "order_status": "delivered", "order_purchase_timestamp": "2018-02-14 09:00:00"},
            {"order_id": "O4", "customer_id": "C3", "order_status": "canceled", "order_purchase_timestamp": "2018-02-20 09:00:00"},
            {"order_id": "O5", "customer_id": "C9", "order_status": "delivered", "order_purchase_timestamp": "2018-02-21 09:00:00"},
        ]
    ).to_csv(data_dir / "olist_orders_dataset.csv", index=False)

    pd.DataFrame(
        [
            {"order_id": "O1", "order_item_id": 1, "product_id": "P1", "price": 100.0},
            {"order_id": "O1", "order_item_id": 2, "product_id": "P2", "price": 50.0},
            {"order_id": "O2", "order_item_id": 1, "product_id": "P1", "price": 80.0},
            {"order_id": "O2", "order_item_id": 2, "product_id": "P2", "price": 45.0},
            {"order_id": "O3", "order_item_id": 1, "product_id": "P2", "price": 40.0},
            {"order_id": "O3", "order_item_id": 2, "product_id": "P3", "price": 20.0},
            {"order_id": "O4", "order_item_id": 1, "product_id": "P1", "price": 99.0},
            {"order_id": "O3", "order_item_id": 3, "product_id": "P404", "price": 5.0},
        ]
    ).to_csv(data_dir / "olist_order_items_dataset.csv", index=False)

    pd.DataFrame(
        [
            {"product_id": "P1", "product_category_name": "bed_bath_table"},
            {"product_id": "P2", "product_category_name": "health_beauty"},
            {"product_id": "P3", "product_category_name": ""},
        ]
    ).to_csv(data_dir / "olist_products_dataset.csv", index=False)

    pd.DataFrame(
        [
            {"order_id": "O1", "payment_sequential": 1, "payment_type": "credit_card", "payment_installments": 2, "payment_value": 150.0},
            {"order_id": "O3", "payment_sequential": 1, "payment_type": "boleto", "payment_installments": 1, "payment_value": 65.0},
        ]
    ).to_csv(data_dir / "olist_order_payments_dataset.csv", index=False)

    pd.DataFrame([{"seller_id": "S1"}, {"seller_id": "S2"}]).to_csv(
        data_dir / "olist_sellers_dataset.csv", index=False
    )
    return data_dir
