"""Tests for the dataset access layer and its builder."""

from datetime import datetime
from decimal import Decimal

import pandas as pd
import pytest

from commerce_audit.foundation.dataset import (
    CommerceDatasetBuilder,
    DataQualityError,
    DataQualityReport,
    Order,
    OrderItem,
    Payment,
)


def _rows(orders=None, items=None):
    customers = [{"customer_id": "C1", "customer_state": "SP"}]
    products = [{"product_id": "P1", "product_category_name": "toys"}]
    orders = orders or [
        {
            "order_id": "O1",
            "customer_id": "C1",
            "order_status": "Delivered",
            "order_purchase_timestamp": "2018-01-10 10:00:00",
        }
    ]
    items = items or [{"order_id": "O1", "order_item_id": 1, "product_id": "P1", "price": "9.90"}]
    return customers, orders, items, products


class TestEntityValidation:
    """Test entity dataclass validation."""

    def test_order_requires_customer(self):
        with pytest.raises(ValueError, match="customer_id cannot be empty"):
            Order("O1", "", "delivered", datetime(2018, 1, 1))

    def test_negative_item_price_raises_error(self):
        with pytest.raises(ValueError, match="Item price cannot be negative"):
            OrderItem("O1", 1, "P1", Decimal("-1"))

    def test_negative_payment_raises_error(self):
        with pytest.raises(ValueError, match="Payment value cannot be negative"):
            Payment("O1", 1, "voucher", 1, Decimal("-5"))


class TestDataQualityReport:
    def test_record_counts_and_keeps_examples(self):
        report = DataQualityReport()
        for i in range(7):
            report.record("item_unknown_order", f"O{i}")
        assert report.total_skipped == 7
        assert not report.is_clean
        assert report.examples["item_unknown_order"] == ["O0", "O1", "O2", "O3", "O4"]
        assert report.as_dict()["skipped"] == {"item_unknown_order": 7}

    def test_empty_report_is_clean(self):
        assert DataQualityReport().is_clean


class TestCommerceDatasetBuilder:
    """Test row validation and reference resolution."""

    def test_builds_indexed_dataset(self):
        customers, orders, items, products = _rows()
        dataset = CommerceDatasetBuilder().build(customers, orders, items, products)

        order = dataset.order("O1")
        assert order.status == "delivered"
        assert order.purchase_ts == datetime(2018, 1, 10, 10, 0)
        assert dataset.items_by_order("O1")[0].price == Decimal("9.90")
        assert dataset.product_category("P1") == "toys"
        assert dataset.quality_report.is_clean

    def test_item_with_unknown_order_is_skipped_and_counted(self, caplog):
        customers, orders, _, products = _rows()
        items = [
            {"order_id": "O1", "order_item_id": 1, "product_id": "P1", "price": "1"},
            {"order_id": "O404", "order_item_id": 1, "product_id": "P1", "price": "1"},
        ]
        with caplog.at_level("WARNING"):
            dataset = CommerceDatasetBuilder().build(customers, orders, items, products)

        assert len(dataset.items) == 1
        assert dataset.quality_report.skipped["item_unknown_order"] == 1
        assert dataset.quality_report.examples["item_unknown_order"] == ["O404"]
        assert "item_unknown_order" in caplog.text

    def test_item_with_unknown_product_is_skipped(self):
        customers, orders, _, products = _rows()
        items = [{"order_id": "O1", "order_item_id": 1, "product_id": "P404", "price": "1"}]
        dataset = CommerceDatasetBuilder().build(customers, orders, items, products)
        assert dataset.items == ()
        assert dataset.quality_report.skipped["item_unknown_product"] == 1

    def test_order_with_unknown_customer_is_skipped(self):
        customers, _, _, products = _rows()
        orders = [
            {
                "order_id": "O1",
                "customer_id": "C404",
                "order_status": "delivered",
                "order_purchase_timestamp": "2018-01-10 10:00:00",
            }
        ]
        items = [{"order_id": "O1", "order_item_id": 1, "product_id": "P1", "price": "1"}]
        dataset = CommerceDatasetBuilder().build(customers, orders, items, products)

        assert dataset.orders == ()
        # the item loses its order as a consequence
        assert dataset.quality_report.skipped == {
            "order_unknown_customer": 1,
            "item_unknown_order": 1,
        }

    def test_order_without_timestamp_is_skipped(self):
        customers, _, _, products = _rows()
        orders = [
            {
                "order_id": "O1",
                "customer_id": "C1",
                "order_status": "created",
                "order_purchase_timestamp": "",
            }
        ]
        dataset = CommerceDatasetBuilder().build(customers, orders, [], products)
        assert dataset.quality_report.skipped["order_missing_timestamp"] == 1

    def test_strict_mode_raises(self):
        customers, orders, _, products = _rows()
        items = [{"order_id": "O404", "order_item_id": 1, "product_id": "P1", "price": "1"}]
        with pytest.raises(DataQualityError, match="item_unknown_order"):
            CommerceDatasetBuilder(strict=True).build(customers, orders, items, products)

    def test_missing_key_raises_key_error(self):
        customers, orders, _, products = _rows()
        items = [{"order_item_id": 1, "product_id": "P1", "price": "1"}]
        with pytest.raises(KeyError, match="order_items row at index 0 missing key"):
            CommerceDatasetBuilder().build(customers, orders, items, products)

    def test_non_numeric_price_raises_error(self):
        customers, orders, _, products = _rows()
        items = [{"order_id": "O1", "order_item_id": 1, "product_id": "P1", "price": "abc"}]
        with pytest.raises(ValueError, match="non-numeric amount"):
            CommerceDatasetBuilder().build(customers, orders, items, products)

    @pytest.mark.parametrize("price", ["NaN", "Infinity", "-inf"])
    def test_non_finite_price_raises_error(self, price):
        """Non-finite amounts are rejected with the row index."""
        customers, orders, _, products = _rows()
        items = [{"order_id": "O1", "order_item_id": 1, "product_id": "P1", "price": price}]
        with pytest.raises(ValueError, match="order_items row at index 0 has non-finite amount"):
            CommerceDatasetBuilder().build(customers, orders, items, products)

    def test_offset_timestamps_normalised_to_naive_utc(self):
        """A trailing Z or an explicit offset yields a naive UTC timestamp."""
        customers, _, _, products = _rows()
        orders = [
            {
                "order_id": "O1",
                "customer_id": "C1",
                "order_status": "delivered",
                "order_purchase_timestamp": "2018-01-10T10:00:00Z",
            },
            {
                "order_id": "O2",
                "customer_id": "C1",
                "order_status": "delivered",
                "order_purchase_timestamp": "2018-01-10 09:30:00-03:00",
            },
            {
                "order_id": "O3",
                "customer_id": "C1",
                "order_status": "delivered",
                "order_purchase_timestamp": "2018-01-10 11:00:00",
            },
        ]
        dataset = CommerceDatasetBuilder().build(customers, orders, [], products)

        assert dataset.order("O1").purchase_ts == datetime(2018, 1, 10, 10, 0)
        assert dataset.order("O2").purchase_ts == datetime(2018, 1, 10, 12, 30)
        assert all(o.purchase_ts.tzinfo is None for o in dataset.orders)
        assert [o.order_id for o in dataset.orders_by_customer("C1")] == ["O1", "O3", "O2"]

    def test_accepts_pandas_values(self):
        """NaN categories and Timestamp values from DataFrames are handled."""
        customers, _, _, _ = _rows()
        orders = [
            {
                "order_id": "O1",
                "customer_id": "C1",
                "order_status": "delivered",
                "order_purchase_timestamp": pd.Timestamp("2018-01-10 10:00:00"),
            }
        ]
        products = [{"product_id": "P1", "product_category_name": float("nan")}]
        dataset = CommerceDatasetBuilder().build(customers, orders, [], products)

        assert dataset.order("O1").purchase_ts == datetime(2018, 1, 10, 10, 0)
        assert dataset.product_category("P1") is None


class TestCommerceDataset:
    """Test dataset lookups."""

    def test_orders_by_customer_sorted_by_timestamp(self, sample_dataset):
        assert [o.order_id for o in sample_dataset.orders_by_customer("C1")] == [
            "O1",
            "O2",
            "O3",
        ]
        assert sample_dataset.orders_by_customer("C4") == ()

    def test_all_qualifying_orders_single_and_multiple_statuses(self, sample_dataset):
        delivered = {o.order_id for o in sample_dataset.all_qualifying_orders("delivered")}
        assert delivered == {"O1", "O2", "O4", "O7"}

        active = sample_dataset.all_qualifying_orders(["delivered", "SHIPPED"])
        assert {o.order_id for o in active} == {"O1", "O2", "O4", "O5", "O7"}

    def test_items_by_order_empty_for_itemless_order(self, sample_dataset):
        assert sample_dataset.items_by_order("O7") == ()

    def test_unknown_product_category_raises_key_error(self, sample_dataset):
        with pytest.raises(KeyError):
            sample_dataset.product_category("P404")

    def test_payments_by_order(self, sample_dataset):
        payments = sample_dataset.payments_by_order("O2")
        assert [p.value for p in payments] == [Decimal("225.50")]

    def test_row_counts(self, sample_dataset):
        assert sample_dataset.row_counts() == {
            "customers": 5,
            "products": 4,
            "orders": 7,
            "order_items": 10,
            "payments": 3,
        }
