"""Command line entry points for the commerce audit toolkit."""

from __future__ import annotations

import argparse
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Sequence

import structlog

from commerce_audit.analyses.cohorts import cohort_retention
from commerce_audit.analyses.funnel import conversion_funnel, repeat_customers
from commerce_audit.analyses.ltv import average_ltv_by_state, customer_lifetime_values
from commerce_audit.analyses.overview import customers_by_state, table_row_counts
from commerce_audit.analyses.segments import summarize_segments
from commerce_audit.config import AnalysisConfig
from commerce_audit.foundation.affinity import compute_affinity
from commerce_audit.foundation.dataset import CommerceDataset
from commerce_audit.foundation.loader import load_olist_dataset
from commerce_audit.foundation.revenue import (
    monthly_revenue,
    payment_totals,
    revenue_by_category,
    revenue_by_state,
    revenue_overview,
)
from commerce_audit.foundation.rfm import compute_rfm
from commerce_audit.observability import configure_logging
from commerce_audit.pandas import affinity_to_dataframe, rfm_to_dataframe

logger = structlog.get_logger(__name__)

# Rows shown per table in the Markdown report
REPORT_TABLE_ROWS = 10


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "data_dir", type=Path, help="Directory with the olist_*_dataset.csv files"
    )
    parser.add_argument(
        "--status",
        dest="qualifying_status",
        help="Order status counted as qualifying (default: delivered)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        default=None,
        help="Fail on unresolvable references instead of skipping them",
    )
    parser.add_argument(
        "--parallel",
        action="store_true",
        default=None,
        help="Enable multiprocessing for large datasets",
    )
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    parser.add_argument(
        "--json-logs",
        action="store_true",
        default=None,
        help="Write logs as JSON lines to stderr",
    )


def _add_affinity_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--top-n",
        dest="affinity_top_n",
        type=int,
        help="Number of product pairs to keep (default: 20)",
    )
    parser.add_argument(
        "--basket-size-cap",
        type=int,
        help="Skip orders with more distinct products than this",
    )


def _resolve_output(path: Path) -> Path:
    output_path = path.resolve()
    cwd = Path.cwd().resolve()
    try:
        output_path.relative_to(cwd)
    except ValueError:
        raise ValueError(
            f"Output path {output_path} must reside within the current working directory"
        )
    output_path.parent.mkdir(parents=True, exist_ok=True)
    return output_path


def _prepare(args: argparse.Namespace) -> tuple[AnalysisConfig, CommerceDataset]:
    overrides = {
        key: value
        for key, value in vars(args).items()
        if key in AnalysisConfig.model_fields
    }
    config = AnalysisConfig.from_env(**overrides)
    configure_logging(config.log_level, config.json_logs)

    logger.info("loading_dataset", data_dir=str(config.data_dir), strict=config.strict)
    dataset = load_olist_dataset(config.data_dir, strict=config.strict)
    logger.info(
        "dataset_loaded",
        row_counts=dataset.row_counts(),
        skipped=dataset.quality_report.total_skipped,
    )
    return config, dataset


def rfm_cli(argv: list[str] | None = None) -> int:
    """Score and segment customers, exporting one CSV row per customer."""

    parser = argparse.ArgumentParser(description=rfm_cli.__doc__)
    _add_common_arguments(parser)
    parser.add_argument(
        "--output", type=Path, required=True, help="Path for the RFM segments CSV"
    )
    args = parser.parse_args(argv)
    config, dataset = _prepare(args)

    result = compute_rfm(
        dataset,
        qualifying_status=config.qualifying_status,
        parallel=config.parallel,
        parallel_threshold=config.parallel_threshold,
        n_workers=config.n_workers,
    )
    if not result.has_data:
        logger.error("no_qualifying_orders", status=config.qualifying_status)
        return 1

    output_path = _resolve_output(args.output)
    rfm_to_dataframe(result.scores).to_csv(output_path, index=False)
    logger.info(
        "rfm_exported",
        output=str(output_path),
        customers=result.customer_count,
        snapshot_date=result.snapshot_date.isoformat(),
    )
    return 0


def affinity_cli(argv: list[str] | None = None) -> int:
    """Rank products bought together, exporting the top pairs as CSV."""

    parser = argparse.ArgumentParser(description=affinity_cli.__doc__)
    _add_common_arguments(parser)
    _add_affinity_arguments(parser)
    parser.add_argument(
        "--output", type=Path, required=True, help="Path for the product pairs CSV"
    )
    args = parser.parse_args(argv)
    config, dataset = _prepare(args)

    pairs = compute_affinity(
        dataset,
        top_n=config.affinity_top_n,
        basket_size_cap=config.basket_size_cap,
        parallel=config.parallel,
        parallel_threshold=config.parallel_threshold,
        n_workers=config.n_workers,
    )
    output_path = _resolve_output(args.output)
    affinity_to_dataframe(pairs).to_csv(output_path, index=False)
    logger.info("affinity_exported", output=str(output_path), pairs=len(pairs))
    return 0


def _fmt(value: Any) -> str:
    return "n/a" if value is None else str(value)


def _table(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> list[str]:
    lines = [
        "| " + " | ".join(headers) + " |",
        "|" + "|".join("---" for _ in headers) + "|",
    ]
    for row in rows:
        lines.append("| " + " | ".join(_fmt(cell) for cell in row) + " |")
    lines.append("")
    return lines


def build_report(dataset: CommerceDataset, config: AnalysisConfig) -> str:
    """Render every analysis of the toolkit as one Markdown document."""
    status = config.qualifying_status
    limit = REPORT_TABLE_ROWS
    lines: list[str] = ["# E-Commerce Revenue & Customer Behavior Report\n"]
    lines.append(f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    lines.append(f"**Qualifying status:** {status}\n")

    lines.append("## Dataset Overview\n")
    lines += _table(["Table", "Rows"], sorted(table_row_counts(dataset).items()))
    report = dataset.quality_report
    lines.append(f"- **Skipped records:** {report.total_skipped}")
    for reason, count in sorted(report.skipped.items()):
        lines.append(f"  - {reason}: {count}")
    lines.append("")
    lines.append("### Customers by State\n")
    lines += _table(["State", "Customers"], customers_by_state(dataset)[:limit])

    lines.append("## Revenue\n")
    overview = revenue_overview(dataset, status)
    lines.append(f"- **Orders:** {overview.num_orders}")
    lines.append(f"- **Items:** {overview.num_items}")
    lines.append(f"- **Total Revenue:** {overview.total_revenue}")
    lines.append(f"- **Average Item Price:** {_fmt(overview.avg_item_price)}\n")
    lines.append("### Monthly Revenue\n")
    lines += _table(
        ["Month", "Orders", "Revenue", "Avg Order Value"],
        [
            (m.month.isoformat(), m.num_orders, m.total_revenue, m.avg_order_value)
            for m in monthly_revenue(dataset, status)
        ],
    )
    lines.append("### Revenue by State\n")
    lines += _table(
        ["State", "Orders", "Revenue"],
        [(s.state, s.num_orders, s.revenue) for s in revenue_by_state(dataset, status)[:limit]],
    )
    lines.append("### Revenue by Category\n")
    lines += _table(
        ["Category", "Items Sold", "Revenue"],
        [
            (c.category, c.items_sold, c.revenue)
            for c in revenue_by_category(dataset, status)[:limit]
        ],
    )
    payments = payment_totals(dataset)
    if payments:
        lines.append("### Payments by Type\n")
        lines += _table(
            ["Payment Type", "Payments", "Value"],
            [(p.payment_type, p.num_payments, p.total_value) for p in payments],
        )

    lines.append("## Repeat Customers\n")
    repeat = repeat_customers(dataset, status)
    lines.append(f"- **One-Time Customers:** {repeat.one_time_customers}")
    lines.append(f"- **Repeat Customers:** {repeat.repeat_customers}")
    lines.append(f"- **Repeat Rate %:** {_fmt(repeat.repeat_rate_percent)}\n")

    lines.append("## Conversion Funnel\n")
    funnel = conversion_funnel(dataset)
    lines += _table(
        ["Stage", "Customers", "Conversion %"],
        [
            ("All customers", funnel.total_customers, None),
            ("Add to cart", funnel.customers_add_to_cart, funnel.visit_to_cart_rate),
            ("Ordered", funnel.customers_ordered, funnel.cart_to_order_rate),
            ("Delivered", funnel.customers_delivered, funnel.order_to_delivery_rate),
        ],
    )

    lines.append("## Cohort Retention\n")
    lines += _table(
        ["Cohort", "Months Since First Order", "Active Customers", "Retention %"],
        [
            (
                r.cohort_month.isoformat(),
                r.months_since_first_order,
                r.active_customers,
                r.retention_rate,
            )
            for r in cohort_retention(dataset, config.cohort_statuses)
        ],
    )

    lines.append("## Lifetime Value\n")
    lines += _table(
        ["Customer", "LTV"],
        [(c.customer_id, c.lifetime_value) for c in customer_lifetime_values(dataset, status)[:limit]],
    )
    lines.append("### Average LTV by State\n")
    lines += _table(
        ["State", "Avg LTV", "Customers"],
        [
            (s.state, s.avg_ltv, s.customers_in_state)
            for s in average_ltv_by_state(dataset, status)[:limit]
        ],
    )

    lines.append("## RFM Segmentation\n")
    rfm = compute_rfm(
        dataset,
        qualifying_status=status,
        parallel=config.parallel,
        parallel_threshold=config.parallel_threshold,
        n_workers=config.n_workers,
    )
    if rfm.has_data:
        lines.append(f"- **Snapshot Date:** {rfm.snapshot_date.isoformat()}")
        lines.append(f"- **Scored Customers:** {rfm.customer_count}\n")
        lines += _table(
            ["Segment", "Customers", "Share %", "Total Monetary", "Avg Monetary"],
            [
                (s.segment, s.customers, s.customer_share, s.total_monetary, s.avg_monetary)
                for s in summarize_segments(rfm.scores)
            ],
        )
    else:
        lines.append(f"- No '{status}' orders: RFM segmentation has no data\n")

    lines.append("## Product Affinity\n")
    pairs = compute_affinity(
        dataset,
        top_n=config.affinity_top_n,
        basket_size_cap=config.basket_size_cap,
        parallel=config.parallel,
        parallel_threshold=config.parallel_threshold,
        n_workers=config.n_workers,
    )
    lines += _table(
        ["Product A", "Category A", "Product B", "Category B", "Together"],
        [
            (p.product_a, p.product_a_category, p.product_b, p.product_b_category, p.together_count)
            for p in pairs
        ],
    )
    return "\n".join(lines)


def report_cli(argv: list[str] | None = None) -> int:
    """Generate a Markdown report covering every analysis."""

    parser = argparse.ArgumentParser(description=report_cli.__doc__)
    _add_common_arguments(parser)
    _add_affinity_arguments(parser)
    parser.add_argument(
        "--output", type=Path, required=True, help="Path for the Markdown report"
    )
    args = parser.parse_args(argv)
    config, dataset = _prepare(args)

    if not dataset.orders:
        logger.error("no_orders_in_dataset", data_dir=str(config.data_dir))
        return 1

    output_path = _resolve_output(args.output)
    with output_path.open("w", encoding="utf-8") as fh:
        fh.write(build_report(dataset, config))
    logger.info("report_exported", output=str(output_path))
    return 0


COMMANDS: dict[str, Callable[[list[str] | None], int]] = {
    "rfm": rfm_cli,
    "affinity": affinity_cli,
    "report": report_cli,
}


def main(argv: list[str] | None = None) -> int:
    """Dispatch ``commerce-audit <command> ...`` to the command function."""
    argv = sys.argv[1:] if argv is None else argv
    if not argv or argv[0] not in COMMANDS:
        print(
            f"usage: commerce-audit {{{','.join(COMMANDS)}}} DATA_DIR [options]",
            file=sys.stderr,
        )
        return 2
    return COMMANDS[argv[0]](argv[1:])


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
