"""Tests for run configuration and logging setup."""

import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from commerce_audit.config import AnalysisConfig
from commerce_audit.observability import configure_logging


class TestAnalysisConfig:
    """Test configuration defaults, environment and overrides."""

    def test_defaults(self):
        config = AnalysisConfig.from_env({})
        assert config.data_dir == Path("data")
        assert config.qualifying_status == "delivered"
        assert config.cohort_statuses == ("delivered", "shipped")
        assert config.affinity_top_n == 20
        assert config.basket_size_cap is None
        assert config.parallel is False
        assert config.strict is False
        assert config.log_level == "INFO"

    def test_environment_values_are_parsed(self):
        config = AnalysisConfig.from_env(
            {
                "COMMERCE_AUDIT_AFFINITY_TOP_N": "5",
                "COMMERCE_AUDIT_PARALLEL": "true",
                "COMMERCE_AUDIT_COHORT_STATUSES": "Delivered, invoiced",
                "COMMERCE_AUDIT_LOG_LEVEL": "debug",
                "COMMERCE_AUDIT_DATA_DIR": "/srv/olist",
            }
        )
        assert config.affinity_top_n == 5
        assert config.parallel is True
        assert config.cohort_statuses == ("delivered", "invoiced")
        assert config.log_level == "DEBUG"
        assert config.data_dir == Path("/srv/olist")

    def test_overrides_take_precedence_and_none_is_ignored(self):
        environ = {"COMMERCE_AUDIT_QUALIFYING_STATUS": "shipped"}
        assert AnalysisConfig.from_env(environ, qualifying_status=None).qualifying_status == "shipped"
        assert (
            AnalysisConfig.from_env(environ, qualifying_status="Canceled").qualifying_status
            == "canceled"
        )

    def test_empty_environment_value_ignored(self):
        config = AnalysisConfig.from_env({"COMMERCE_AUDIT_AFFINITY_TOP_N": ""})
        assert config.affinity_top_n == 20

    def test_invalid_top_n_rejected(self):
        with pytest.raises(ValidationError):
            AnalysisConfig(affinity_top_n=0)

    def test_basket_size_cap_must_allow_pairs(self):
        with pytest.raises(ValidationError):
            AnalysisConfig(basket_size_cap=1)

    def test_unknown_log_level_rejected(self):
        with pytest.raises(ValidationError, match="Unsupported log level"):
            AnalysisConfig(log_level="chatty")

    def test_empty_status_rejected(self):
        with pytest.raises(ValidationError, match="qualifying_status cannot be empty"):
            AnalysisConfig(qualifying_status="  ")


class TestConfigureLogging:
    def test_sets_root_level(self):
        configure_logging("WARNING")
        assert logging.getLogger().level == logging.WARNING
        configure_logging("INFO", json_logs=True)
        assert logging.getLogger().level == logging.INFO

    def test_unknown_level_raises_error(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging("chatty")
