"""Tests for the Olist CSV loader."""

from decimal import Decimal

import pandas as pd
import pytest

from commerce_audit.foundation.dataset import DataQualityError
from commerce_audit.foundation.loader import OLIST_FILES, load_olist_dataset, read_table


class TestReadTable:
    def test_missing_file_raises_error(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="customers"):
            read_table(tmp_path / "absent.csv", "customers")

    def test_missing_columns_raise_error(self, tmp_path):
        path = tmp_path / "customers.csv"
        pd.DataFrame([{"customer_id": "C1"}]).to_csv(path, index=False)
        with pytest.raises(ValueError, match="customer_state"):
            read_table(path, "customers")

    def test_values_are_read_as_strings(self, olist_dir):
        df = read_table(olist_dir / OLIST_FILES["customers"], "customers")
        # leading zeros of zip code prefixes survive
        assert df.loc[0, "customer_zip_code_prefix"] == "01001"


class TestLoadOlistDataset:
    """Test loading a full export directory."""

    def test_loads_and_resolves_tables(self, olist_dir):
        dataset = load_olist_dataset(olist_dir)

        counts = dataset.row_counts()
        assert counts["customers"] == 3
        assert counts["orders"] == 4
        assert counts["order_items"] == 7
        assert counts["products"] == 3
        assert counts["payments"] == 2
        assert counts["sellers"] == 2
        assert "reviews" not in counts

        assert dataset.customer("C1").zip_code_prefix == "01001"
        assert dataset.product_category("P3") is None
        assert sum(i.price for i in dataset.items_by_order("O1")) == Decimal("150")

    def test_unresolvable_rows_are_reported(self, olist_dir):
        report = load_olist_dataset(olist_dir).quality_report
        assert report.skipped == {"order_unknown_customer": 1, "item_unknown_product": 1}
        assert report.examples["order_unknown_customer"] == ["O5"]
        assert report.examples["item_unknown_product"] == ["P404"]

    def test_strict_mode_fails_the_load(self, olist_dir):
        with pytest.raises(DataQualityError, match="order_unknown_customer"):
            load_olist_dataset(olist_dir, strict=True)

    def test_payments_file_is_optional(self, olist_dir):
        (olist_dir / OLIST_FILES["payments"]).unlink()
        dataset = load_olist_dataset(olist_dir)
        assert dataset.payments == ()

    def test_required_file_missing_raises_error(self, olist_dir):
        (olist_dir / OLIST_FILES["orders"]).unlink()
        with pytest.raises(FileNotFoundError, match="orders"):
            load_olist_dataset(olist_dir)

    def test_missing_directory_raises_error(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Dataset directory not found"):
            load_olist_dataset(tmp_path / "nope")
