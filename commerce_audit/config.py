"""Run configuration for the commerce audit analyses.

Values come from, in increasing precedence: field defaults,
``COMMERCE_AUDIT_<FIELD>`` environment variables, explicit overrides
(e.g. command line flags).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "COMMERCE_AUDIT_"


class AnalysisConfig(BaseModel):
    """Settings shared by every analysis of a run."""

    data_dir: Path = Field(
        default=Path("data"),
        description="Directory holding the olist_*_dataset.csv export files",
    )
    qualifying_status: str = Field(
        default="delivered",
        description="Order status counted by RFM, revenue and LTV analyses",
    )
    cohort_statuses: tuple[str, ...] = Field(
        default=("delivered", "shipped"),
        description="Order statuses that define cohort activity",
    )
    affinity_top_n: int = Field(
        default=20, ge=1, description="Number of product pairs to report"
    )
    basket_size_cap: Optional[int] = Field(
        default=None,
        ge=2,
        description="Skip baskets with more distinct products than this",
    )
    parallel: bool = Field(
        default=False, description="Enable multiprocessing for large datasets"
    )
    parallel_threshold: int = Field(
        default=100_000,
        ge=1,
        description="Customers/baskets above which parallel processing kicks in",
    )
    n_workers: Optional[int] = Field(
        default=None, ge=1, description="Worker processes (defaults to CPU count)"
    )
    strict: bool = Field(
        default=False,
        description="Fail the run on unresolvable references instead of skipping them",
    )
    log_level: str = Field(default="INFO", description="Logging level name")
    json_logs: bool = Field(
        default=False, description="Render logs as JSON lines instead of console text"
    )

    @field_validator("qualifying_status")
    @classmethod
    def _lower_status(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("qualifying_status cannot be empty")
        return value

    @field_validator("cohort_statuses", mode="before")
    @classmethod
    def _split_statuses(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [part for part in value.split(",")]
        return tuple(str(part).strip().lower() for part in value if str(part).strip())

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        value = value.strip().upper()
        if value not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported log level: {value}")
        return value

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: Any
    ) -> "AnalysisConfig":
        """Build a config from ``COMMERCE_AUDIT_*`` variables plus overrides.

        Overrides set to ``None`` are ignored so unset CLI flags fall back
        to the environment or the defaults.

        Examples
        --------
        >>> cfg = AnalysisConfig.from_env({"COMMERCE_AUDIT_AFFINITY_TOP_N": "5"})
        >>> cfg.affinity_top_n
        5
        """
        environ = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
