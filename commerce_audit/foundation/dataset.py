"""Read-only dataset access layer for e-commerce transaction analyses.

The dataset captures the entities every downstream analysis relies on:
customers, orders, order items, products and payments. Raw rows (CSV
records, database rows, plain dictionaries) are validated and resolved
once by :class:`CommerceDatasetBuilder`; the resulting
:class:`CommerceDataset` is immutable and indexed for the lookups the
RFM, affinity and reporting modules perform.

Malformed references (an item pointing at an unknown order, an order
pointing at an unknown customer, ...) are handled with a single policy
per run: either skipped and counted in a :class:`DataQualityReport`
(default) or raised as :class:`DataQualityError` when ``strict=True``.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

# Number of offending identifiers retained per skip reason
MAX_EXAMPLES_PER_REASON = 5


class OrderStatus(str, Enum):
    """Order statuses present in the Olist public dataset."""

    CREATED = "created"
    APPROVED = "approved"
    INVOICED = "invoiced"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    UNAVAILABLE = "unavailable"
    CANCELED = "canceled"


class DataQualityError(ValueError):
    """Raised in strict mode when a record cannot be resolved."""


@dataclass(frozen=True)
class Customer:
    """A customer and the region they are registered in."""

    customer_id: str
    state: str
    unique_id: str | None = None
    city: str | None = None
    zip_code_prefix: str | None = None

    def __post_init__(self) -> None:
        if not self.customer_id:
            raise ValueError("customer_id cannot be empty")


@dataclass(frozen=True)
class Order:
    """A single order placed by exactly one customer."""

    order_id: str
    customer_id: str
    status: str
    purchase_ts: datetime

    def __post_init__(self) -> None:
        if not self.order_id:
            raise ValueError("order_id cannot be empty")
        if not self.customer_id:
            raise ValueError(f"customer_id cannot be empty (order_id={self.order_id})")


@dataclass(frozen=True)
class OrderItem:
    """A line of an order referencing one product."""

    order_id: str
    order_item_id: int
    product_id: str
    price: Decimal

    def __post_init__(self) -> None:
        if self.price < 0:
            raise ValueError(
                f"Item price cannot be negative: {self.price} "
                f"(order_id={self.order_id}, order_item_id={self.order_item_id})"
            )


@dataclass(frozen=True)
class Product:
    """A product and its (possibly unknown) category label."""

    product_id: str
    category: str | None = None


@dataclass(frozen=True)
class Payment:
    """A payment instalment attached to an order."""

    order_id: str
    sequential: int
    payment_type: str
    installments: int
    value: Decimal

    def __post_init__(self) -> None:
        if self.value < 0:
            raise ValueError(
                f"Payment value cannot be negative: {self.value} (order_id={self.order_id})"
            )


@dataclass
class DataQualityReport:
    """Records excluded while resolving references.

    Attributes
    ----------
    skipped:
        Number of excluded records keyed by reason (e.g. ``"item_unknown_product"``)
    examples:
        First few offending identifiers for each reason
    """

    skipped: Counter = field(default_factory=Counter)
    examples: dict[str, list[str]] = field(default_factory=dict)

    @property
    def total_skipped(self) -> int:
        return sum(self.skipped.values())

    @property
    def is_clean(self) -> bool:
        return self.total_skipped == 0

    def record(self, reason: str, identifier: str) -> None:
        self.skipped[reason] += 1
        examples = self.examples.setdefault(reason, [])
        if len(examples) < MAX_EXAMPLES_PER_REASON:
            examples.append(identifier)

    def as_dict(self) -> dict[str, object]:
        return {
            "total_skipped": self.total_skipped,
            "skipped": dict(self.skipped),
            "examples": {reason: list(ids) for reason, ids in self.examples.items()},
        }


class CommerceDataset:
    """Immutable, indexed view over the resolved entity collections.

    Instances are produced by :class:`CommerceDatasetBuilder`; analyses
    only ever read from them.
    """

    def __init__(
        self,
        customers: Iterable[Customer],
        orders: Iterable[Order],
        items: Iterable[OrderItem],
        products: Iterable[Product],
        payments: Iterable[Payment] = (),
        auxiliary_row_counts: Mapping[str, int] | None = None,
        quality_report: DataQualityReport | None = None,
    ) -> None:
        self._customers = {c.customer_id: c for c in customers}
        self._orders = {o.order_id: o for o in orders}
        self._products = {p.product_id: p for p in products}
        self._items = tuple(items)
        self._payments = tuple(payments)
        self._auxiliary_row_counts = MappingProxyType(dict(auxiliary_row_counts or {}))
        self.quality_report = quality_report or DataQualityReport()

        orders_by_customer: dict[str, list[Order]] = {}
        for order in self._orders.values():
            orders_by_customer.setdefault(order.customer_id, []).append(order)
        self._orders_by_customer = {
            customer_id: tuple(sorted(orders, key=lambda o: (o.purchase_ts, o.order_id)))
            for customer_id, orders in orders_by_customer.items()
        }

        items_by_order: dict[str, list[OrderItem]] = {}
        for item in self._items:
            items_by_order.setdefault(item.order_id, []).append(item)
        self._items_by_order = {
            order_id: tuple(sorted(lines, key=lambda i: i.order_item_id))
            for order_id, lines in items_by_order.items()
        }

        payments_by_order: dict[str, list[Payment]] = {}
        for payment in self._payments:
            payments_by_order.setdefault(payment.order_id, []).append(payment)
        self._payments_by_order = {
            order_id: tuple(sorted(rows, key=lambda p: p.sequential))
            for order_id, rows in payments_by_order.items()
        }

    @property
    def customers(self) -> tuple[Customer, ...]:
        return tuple(self._customers.values())

    @property
    def orders(self) -> tuple[Order, ...]:
        return tuple(self._orders.values())

    @property
    def items(self) -> tuple[OrderItem, ...]:
        return self._items

    @property
    def products(self) -> tuple[Product, ...]:
        return tuple(self._products.values())

    @property
    def payments(self) -> tuple[Payment, ...]:
        return self._payments

    def customer(self, customer_id: str) -> Customer:
        return self._customers[customer_id]

    def order(self, order_id: str) -> Order:
        return self._orders[order_id]

    def orders_by_customer(self, customer_id: str) -> tuple[Order, ...]:
        """Return the customer's orders ordered by purchase timestamp."""
        return self._orders_by_customer.get(customer_id, ())

    def items_by_order(self, order_id: str) -> tuple[OrderItem, ...]:
        """Return the order's item lines (empty for orders without items)."""
        return self._items_by_order.get(order_id, ())

    def payments_by_order(self, order_id: str) -> tuple[Payment, ...]:
        return self._payments_by_order.get(order_id, ())

    def all_qualifying_orders(self, status_filter: str | Iterable[str]) -> list[Order]:
        """Return every order whose status matches ``status_filter``.

        ``status_filter`` may be a single status or a collection of statuses.
        """
        statuses = _normalise_statuses(status_filter)
        return [order for order in self._orders.values() if order.status in statuses]

    def product_category(self, product_id: str) -> str | None:
        """Return the category label of a product.

        Raises
        ------
        KeyError
            If the product is not part of the dataset.
        """
        return self._products[product_id].category

    def row_counts(self) -> dict[str, int]:
        """Row counts of modelled tables plus counted auxiliary tables."""
        counts = {
            "customers": len(self._customers),
            "products": len(self._products),
            "orders": len(self._orders),
            "order_items": len(self._items),
            "payments": len(self._payments),
        }
        counts.update(self._auxiliary_row_counts)
        return counts


class CommerceDatasetBuilder:
    """Validate raw rows and resolve them into a :class:`CommerceDataset`."""

    def __init__(self, strict: bool = False) -> None:
        self.strict = strict

    def build(
        self,
        customers: Iterable[Mapping[str, Any]],
        orders: Iterable[Mapping[str, Any]],
        items: Iterable[Mapping[str, Any]],
        products: Iterable[Mapping[str, Any]],
        payments: Iterable[Mapping[str, Any]] = (),
        auxiliary_row_counts: Mapping[str, int] | None = None,
    ) -> CommerceDataset:
        report = DataQualityReport()

        customer_records = [
            Customer(
                customer_id=_require_str(row, "customer_id", "customers", idx),
                state=str(row.get("customer_state") or row.get("state") or ""),
                unique_id=_optional_str(row, "customer_unique_id"),
                city=_optional_str(row, "customer_city"),
                zip_code_prefix=_optional_str(row, "customer_zip_code_prefix"),
            )
            for idx, row in enumerate(customers)
        ]
        known_customers = {c.customer_id for c in customer_records}

        product_records = [
            Product(
                product_id=_require_str(row, "product_id", "products", idx),
                category=_optional_str(row, "product_category_name")
                or _optional_str(row, "category"),
            )
            for idx, row in enumerate(products)
        ]
        known_products = {p.product_id for p in product_records}

        order_records: list[Order] = []
        for idx, row in enumerate(orders):
            order_id = _require_str(row, "order_id", "orders", idx)
            customer_id = _require_str(row, "customer_id", "orders", idx)
            if customer_id not in known_customers:
                self._reject(report, "order_unknown_customer", "orders", idx, order_id)
                continue
            purchase_ts = _parse_timestamp(
                row.get("order_purchase_timestamp", row.get("purchase_ts"))
            )
            if purchase_ts is None:
                self._reject(report, "order_missing_timestamp", "orders", idx, order_id)
                continue
            status = str(row.get("order_status", row.get("status", "")) or "").strip().lower()
            order_records.append(
                Order(
                    order_id=order_id,
                    customer_id=customer_id,
                    status=status,
                    purchase_ts=purchase_ts,
                )
            )
        known_orders = {o.order_id for o in order_records}

        item_records: list[OrderItem] = []
        for idx, row in enumerate(items):
            order_id = _require_str(row, "order_id", "order_items", idx)
            product_id = _require_str(row, "product_id", "order_items", idx)
            if order_id not in known_orders:
                self._reject(report, "item_unknown_order", "order_items", idx, order_id)
                continue
            if product_id not in known_products:
                self._reject(
                    report, "item_unknown_product", "order_items", idx, product_id
                )
                continue
            item_records.append(
                OrderItem(
                    order_id=order_id,
                    order_item_id=int(row.get("order_item_id", idx + 1) or 0),
                    product_id=product_id,
                    price=_parse_decimal(row.get("price"), "order_items", idx),
                )
            )

        payment_records: list[Payment] = []
        for idx, row in enumerate(payments):
            order_id = _require_str(row, "order_id", "payments", idx)
            if order_id not in known_orders:
                self._reject(report, "payment_unknown_order", "payments", idx, order_id)
                continue
            payment_records.append(
                Payment(
                    order_id=order_id,
                    sequential=int(row.get("payment_sequential", 1) or 1),
                    payment_type=str(row.get("payment_type") or "not_defined"),
                    installments=int(row.get("payment_installments", 1) or 0),
                    value=_parse_decimal(row.get("payment_value"), "payments", idx),
                )
            )

        for reason, count in report.skipped.items():
            logger.warning(
                f"Skipped {count} record(s) ({reason}); "
                f"first offending ids: {report.examples[reason]}"
            )

        return CommerceDataset(
            customers=customer_records,
            orders=order_records,
            items=item_records,
            products=product_records,
            payments=payment_records,
            auxiliary_row_counts=auxiliary_row_counts,
            quality_report=report,
        )

    def _reject(
        self,
        report: DataQualityReport,
        reason: str,
        table: str,
        idx: int,
        identifier: str,
    ) -> None:
        if self.strict:
            raise DataQualityError(
                f"Unresolvable record in {table} at row {idx}: {reason} ({identifier})"
            )
        report.record(reason, identifier)


def _normalise_statuses(status_filter: str | Iterable[str]) -> frozenset[str]:
    if isinstance(status_filter, str):
        return frozenset({status_filter.lower()})
    return frozenset(str(status).lower() for status in status_filter)


def _require_str(row: Mapping[str, Any], key: str, table: str, idx: int) -> str:
    try:
        value = row[key]
    except KeyError as exc:
        raise KeyError(f"{table} row at index {idx} missing key {exc.args[0]}") from exc
    if value is None or _is_missing(value) or str(value).strip() == "":
        raise ValueError(f"{table} row at index {idx} has empty {key}")
    return str(value).strip()


def _optional_str(row: Mapping[str, Any], key: str) -> str | None:
    value = row.get(key)
    if value is None or _is_missing(value):
        return None
    text = str(value).strip()
    return text or None


def _is_missing(value: Any) -> bool:
    # NaN is the only value not equal to itself; pandas uses it for blank cells
    return isinstance(value, float) and value != value


def _parse_timestamp(value: Any) -> datetime | None:
    """Parse a purchase timestamp into a naive datetime.

    Offset-aware values are converted to UTC and the offset is dropped so
    every timestamp of a dataset compares with every other one.
    """
    if value is None or _is_missing(value):
        return None
    if isinstance(value, datetime):
        # pandas.Timestamp subclasses datetime
        to_pydatetime = getattr(value, "to_pydatetime", None)
        parsed = to_pydatetime() if to_pydatetime is not None else value
    else:
        text = str(value).strip()
        if not text or text.lower() == "nat":
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_decimal(value: Any, table: str, idx: int) -> Decimal:
    if value is None or _is_missing(value):
        return Decimal("0")
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(
            f"{table} row at index {idx} has non-numeric amount {value!r}"
        ) from exc
    if not amount.is_finite():
        raise ValueError(f"{table} row at index {idx} has non-finite amount {value!r}")
    return amount
