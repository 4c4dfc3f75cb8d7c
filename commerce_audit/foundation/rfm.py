"""RFM (Recency-Frequency-Monetary) feature and segmentation engine.

RFM analysis segments customers based on three dimensions:
- Recency: How many days before the snapshot date was their last order?
- Frequency: How many distinct qualifying orders did they place?
- Monetary: How much did they spend across those orders?

Each dimension is converted into a tier score (1-3) by rank-based
bucketing across the whole customer population, and the three scores are
mapped to a behavioral segment by an ordered list of rules where the first
matching rule wins.

Only qualifying orders (``delivered`` by default) participate. The
snapshot date is the date of the latest qualifying purchase in the whole
dataset; it is computed once per run and passed explicitly to
:func:`calculate_rfm`.
"""

from __future__ import annotations

import logging
import multiprocessing
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, Iterable, Mapping, Optional, Sequence

from commerce_audit.foundation.dataset import CommerceDataset, OrderStatus
from commerce_audit.foundation.revenue import quantize_amount

logger = logging.getLogger(__name__)

# Number of rank buckets per dimension (tertiles)
TIER_COUNT = 3


class Segment(str, Enum):
    """Behavioral segment labels."""

    CHAMPIONS = "Champions"
    LOYAL = "Loyal"
    AT_RISK = "At Risk"
    LOST = "Lost"
    OTHERS = "Others"


@dataclass(frozen=True)
class OrderSnapshot:
    """The parts of an order the RFM engine needs.

    Attributes
    ----------
    order_id:
        Order identifier
    status:
        Order status (only the qualifying status counts towards features)
    purchase_ts:
        Purchase timestamp
    item_prices:
        Prices of the order's item lines; an order without items contributes
        nothing to frequency or monetary value
    """

    order_id: str
    status: str
    purchase_ts: datetime
    item_prices: tuple[Decimal, ...] = ()


@dataclass(frozen=True)
class CustomerRFM:
    """RFM features for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    recency_days:
        Whole days between the snapshot date and the customer's last
        qualifying order date
    frequency:
        Count of distinct qualifying orders
    monetary:
        Sum of item prices across qualifying orders
    last_order_ts:
        Timestamp of the customer's most recent qualifying order
    """

    customer_id: str
    recency_days: int
    frequency: int
    monetary: Decimal
    last_order_ts: datetime

    def __post_init__(self) -> None:
        """Validate RFM features."""
        if self.recency_days < 0:
            raise ValueError(
                f"Recency cannot be negative: {self.recency_days} (customer_id={self.customer_id})"
            )
        if self.frequency <= 0:
            raise ValueError(
                f"Frequency must be positive: {self.frequency} (customer_id={self.customer_id})"
            )
        if self.monetary < 0:
            raise ValueError(
                f"Monetary value cannot be negative: {self.monetary} (customer_id={self.customer_id})"
            )


@dataclass(frozen=True)
class RFMScore:
    """Tier scores (1-3) and segment for a single customer.

    Attributes
    ----------
    customer_id:
        Unique customer identifier
    recency_days, frequency, monetary:
        The underlying features
    r_score:
        Recency tier (3 = most recent third of customers)
    f_score:
        Frequency tier (3 = most frequent third)
    m_score:
        Monetary tier (3 = highest spending third)
    rfm_score:
        Combined score string (e.g., "333" for the best customers)
    segment:
        Segment label from the first matching rule
    """

    customer_id: str
    recency_days: int
    frequency: int
    monetary: Decimal
    r_score: int
    f_score: int
    m_score: int
    rfm_score: str
    segment: str

    def __post_init__(self) -> None:
        """Validate tier scores."""
        for score_name, score_value in [
            ("r_score", self.r_score),
            ("f_score", self.f_score),
            ("m_score", self.m_score),
        ]:
            if not 1 <= score_value <= TIER_COUNT:
                raise ValueError(
                    f"{score_name} must be between 1 and {TIER_COUNT}: {score_value} "
                    f"(customer_id={self.customer_id})"
                )
        expected_rfm = f"{self.r_score}{self.f_score}{self.m_score}"
        if self.rfm_score != expected_rfm:
            raise ValueError(
                f"rfm_score ({self.rfm_score}) does not match r/f/m scores ({expected_rfm}) (customer_id={self.customer_id})"
            )


@dataclass(frozen=True)
class SegmentRule:
    """A segment label guarded by a predicate over (r, f, m) scores."""

    label: str
    predicate: Callable[[int, int, int], bool]

    def matches(self, r_score: int, f_score: int, m_score: int) -> bool:
        return bool(self.predicate(r_score, f_score, m_score))


# Evaluated top-down, first match wins. Champions also satisfies the Loyal
# predicate, so the order of these rules decides the label.
SEGMENT_RULES: tuple[SegmentRule, ...] = (
    SegmentRule(Segment.CHAMPIONS.value, lambda r, f, m: r == 3 and f == 3 and m == 3),
    SegmentRule(Segment.LOYAL.value, lambda r, f, m: r >= 2 and f >= 2 and m >= 2),
    SegmentRule(Segment.AT_RISK.value, lambda r, f, m: r == 1 and f >= 2),
    SegmentRule(Segment.LOST.value, lambda r, f, m: r == 1 and f == 1),
)

DEFAULT_SEGMENT = Segment.OTHERS.value


def _normalise_status(status: str) -> str:
    return status.strip().lower()


@dataclass(frozen=True)
class RFMResult:
    """Outcome of an RFM run.

    ``snapshot_date`` is ``None`` and ``scores`` is empty when the dataset
    contains no qualifying order; check :attr:`has_data` before using it.
    """

    snapshot_date: date | None
    qualifying_status: str
    scores: list[RFMScore] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return self.snapshot_date is not None

    @property
    def customer_count(self) -> int:
        return len(self.scores)


def collect_order_histories(dataset: CommerceDataset) -> dict[str, list[OrderSnapshot]]:
    """Map every customer to snapshots of their orders.

    Customers without any order map to an empty list.
    """
    histories: dict[str, list[OrderSnapshot]] = {}
    for customer in dataset.customers:
        histories[customer.customer_id] = [
            OrderSnapshot(
                order_id=order.order_id,
                status=order.status,
                purchase_ts=order.purchase_ts,
                item_prices=tuple(
                    item.price for item in dataset.items_by_order(order.order_id)
                ),
            )
            for order in dataset.orders_by_customer(customer.customer_id)
        ]
    return histories


def compute_snapshot_date(
    orders: Iterable[OrderSnapshot], qualifying_status: str = OrderStatus.DELIVERED.value
) -> date | None:
    """Return the date of the latest qualifying purchase, or ``None``.

    ``orders`` may be any objects exposing ``status`` and ``purchase_ts``
    (dataset orders or :class:`OrderSnapshot`). Orders without items still
    count: the snapshot is defined over orders, not order lines.
    """
    qualifying_status = _normalise_status(qualifying_status)
    latest: datetime | None = None
    for order in orders:
        if order.status != qualifying_status:
            continue
        if latest is None or order.purchase_ts > latest:
            latest = order.purchase_ts
    return latest.date() if latest is not None else None


def _calculate_rfm_for_customers(
    histories_chunk: dict[str, list[OrderSnapshot]],
    snapshot_date: date,
    qualifying_status: str,
) -> list[CustomerRFM]:
    """Helper function to calculate RFM features for a chunk of customers.

    This function is designed to be called by multiprocessing workers.
    It processes a subset of customers independently.

    Returns
    -------
    list[CustomerRFM]
        Features for customers in this chunk with at least one qualifying
        order that has items (unsorted)
    """
    features: list[CustomerRFM] = []

    for customer_id, orders in histories_chunk.items():
        qualifying: dict[str, OrderSnapshot] = {}
        for order in orders:
            # Orders without items drop out, as in an inner join on items
            if order.status == qualifying_status and order.item_prices:
                qualifying.setdefault(order.order_id, order)

        if not qualifying:
            continue

        last_order_ts = max(order.purchase_ts for order in qualifying.values())
        recency_days = (snapshot_date - last_order_ts.date()).days
        if recency_days < 0:
            raise ValueError(
                f"Qualifying order on {last_order_ts} is after the snapshot date "
                f"{snapshot_date} (customer_id={customer_id})"
            )

        monetary = sum(
            (price for order in qualifying.values() for price in order.item_prices),
            Decimal("0"),
        )

        features.append(
            CustomerRFM(
                customer_id=customer_id,
                recency_days=recency_days,
                frequency=len(qualifying),
                monetary=quantize_amount(monetary),
                last_order_ts=last_order_ts,
            )
        )

    return features


def calculate_rfm(
    histories: Mapping[str, Sequence[OrderSnapshot]],
    snapshot_date: date,
    qualifying_status: str = OrderStatus.DELIVERED.value,
    parallel: bool = False,
    parallel_threshold: int = 100_000,
    n_workers: Optional[int] = None,
) -> list[CustomerRFM]:
    """Calculate RFM features per customer over qualifying orders.

    Customers with no qualifying order (or whose qualifying orders have no
    items) produce no record.

    **Parallel Processing**: features are independent per customer, so
    for populations at or above ``parallel_threshold`` customers are split
    into chunks processed by a multiprocessing pool and the results merged.

    Parameters
    ----------
    histories:
        Mapping from customer id to that customer's orders
    snapshot_date:
        Reference date for recency; must not precede any qualifying order
    qualifying_status:
        Order status that counts towards the features
    parallel:
        Enable parallel processing for large populations
    parallel_threshold:
        Number of customers above which to parallelize
    n_workers:
        Number of worker processes (defaults to CPU count)

    Returns
    -------
    list[CustomerRFM]
        One record per qualifying customer, sorted by customer_id

    Examples
    --------
    >>> from datetime import date, datetime
    >>> from decimal import Decimal
    >>> histories = {
    ...     "C1": [
    ...         OrderSnapshot("O1", "delivered", datetime(2018, 8, 1, 9), (Decimal("30"),)),
    ...         OrderSnapshot("O2", "canceled", datetime(2018, 8, 20), (Decimal("99"),)),
    ...     ],
    ... }
    >>> rfm = calculate_rfm(histories, date(2018, 8, 31))
    >>> rfm[0].recency_days, rfm[0].frequency, rfm[0].monetary
    (30, 1, Decimal('30.00'))
    """
    if not histories:
        return []

    qualifying_status = _normalise_status(qualifying_status)

    num_customers = len(histories)
    use_parallel = parallel and num_customers >= parallel_threshold

    if use_parallel:
        if n_workers is None:
            workers = os.cpu_count() or 1
        else:
            workers = max(1, n_workers)

        customer_items = list(histories.items())
        chunk_size = max(1, num_customers // workers)
        chunks = []
        for i in range(0, num_customers, chunk_size):
            chunk_dict = {k: list(v) for k, v in customer_items[i : i + chunk_size]}
            chunks.append((chunk_dict, snapshot_date, qualifying_status))

        logger.info(
            f"Calculating RFM features for {num_customers} customers "
            f"in {len(chunks)} chunks with {workers} workers"
        )
        with multiprocessing.Pool(processes=workers) as pool:
            chunk_results = pool.starmap(_calculate_rfm_for_customers, chunks)

        features: list[CustomerRFM] = []
        for chunk_result in chunk_results:
            features.extend(chunk_result)
    else:
        features = _calculate_rfm_for_customers(
            {k: list(v) for k, v in histories.items()}, snapshot_date, qualifying_status
        )

    features.sort(key=lambda m: m.customer_id)
    return features


def ntile(n: int, buckets: int = TIER_COUNT) -> list[int]:
    """Bucket numbers for ``n`` ranked rows split into ``buckets`` groups.

    Groups differ in size by at most one; when ``n`` is not divisible by
    ``buckets`` the earlier groups receive the extra rows. With fewer rows
    than buckets only the first ``n`` bucket numbers are used.

    Examples
    --------
    >>> ntile(9)
    [1, 1, 1, 2, 2, 2, 3, 3, 3]
    >>> ntile(7)
    [1, 1, 1, 2, 2, 3, 3]
    >>> ntile(2)
    [1, 2]
    """
    if buckets < 1:
        raise ValueError(f"buckets must be positive: {buckets}")
    if n < 0:
        raise ValueError(f"n cannot be negative: {n}")

    base, extra = divmod(n, buckets)
    labels: list[int] = []
    for bucket in range(1, buckets + 1):
        size = base + (1 if bucket <= extra else 0)
        labels.extend([bucket] * size)
    return labels


def assign_tiers(
    metrics: Sequence[CustomerRFM],
    key: Callable[[CustomerRFM], object],
    descending: bool = False,
    buckets: int = TIER_COUNT,
) -> dict[str, int]:
    """Rank customers by ``key`` and map each customer id to its bucket.

    The sort is stable and the population is first ordered by customer id,
    so tied values are ranked in customer id order. Ties are not forced into
    the same bucket: customers with equal values can straddle a bucket
    boundary.
    """
    population = sorted(metrics, key=lambda m: m.customer_id)
    ranked = sorted(population, key=key, reverse=descending)
    return {
        metric.customer_id: bucket
        for metric, bucket in zip(ranked, ntile(len(ranked), buckets))
    }


def classify_segment(
    r_score: int,
    f_score: int,
    m_score: int,
    rules: Sequence[SegmentRule] = SEGMENT_RULES,
    default: str = DEFAULT_SEGMENT,
) -> str:
    """Return the label of the first rule matching the scores.

    Examples
    --------
    >>> classify_segment(3, 3, 3)
    'Champions'
    >>> classify_segment(1, 2, 1)
    'At Risk'
    >>> classify_segment(2, 1, 1)
    'Others'
    """
    for rule in rules:
        if rule.matches(r_score, f_score, m_score):
            return rule.label
    return default


def calculate_rfm_scores(
    rfm_metrics: Sequence[CustomerRFM],
    rules: Sequence[SegmentRule] = SEGMENT_RULES,
) -> list[RFMScore]:
    """Score RFM features into tertiles and classify segments.

    Scoring is done across the full population at once:

    - ``r_score``: ranked by recency descending; the oldest third gets 1,
      the most recent third gets 3
    - ``f_score``: ranked by frequency ascending; the lowest third gets 1
    - ``m_score``: ranked by monetary ascending; the lowest third gets 1

    Returns
    -------
    list[RFMScore]
        Scores for each customer, sorted by customer_id

    Examples
    --------
    >>> from datetime import datetime
    >>> from decimal import Decimal
    >>> metrics = [
    ...     CustomerRFM("C1", 2, 3, Decimal("300"), datetime(2018, 8, 29)),
    ...     CustomerRFM("C2", 90, 2, Decimal("120"), datetime(2018, 6, 2)),
    ...     CustomerRFM("C3", 200, 1, Decimal("50"), datetime(2018, 2, 12)),
    ... ]
    >>> [(s.customer_id, s.rfm_score, s.segment) for s in calculate_rfm_scores(metrics)]
    [('C1', '333', 'Champions'), ('C2', '222', 'Loyal'), ('C3', '111', 'Lost')]
    """
    if not rfm_metrics:
        return []

    r_tiers = assign_tiers(rfm_metrics, key=lambda m: m.recency_days, descending=True)
    f_tiers = assign_tiers(rfm_metrics, key=lambda m: m.frequency)
    m_tiers = assign_tiers(rfm_metrics, key=lambda m: m.monetary)

    rfm_scores: list[RFMScore] = []
    for metric in rfm_metrics:
        r_score = r_tiers[metric.customer_id]
        f_score = f_tiers[metric.customer_id]
        m_score = m_tiers[metric.customer_id]
        rfm_scores.append(
            RFMScore(
                customer_id=metric.customer_id,
                recency_days=metric.recency_days,
                frequency=metric.frequency,
                monetary=metric.monetary,
                r_score=r_score,
                f_score=f_score,
                m_score=m_score,
                rfm_score=f"{r_score}{f_score}{m_score}",
                segment=classify_segment(r_score, f_score, m_score, rules),
            )
        )

    rfm_scores.sort(key=lambda s: s.customer_id)
    return rfm_scores


def compute_rfm(
    dataset: CommerceDataset,
    qualifying_status: str = OrderStatus.DELIVERED.value,
    rules: Sequence[SegmentRule] = SEGMENT_RULES,
    parallel: bool = False,
    parallel_threshold: int = 100_000,
    n_workers: Optional[int] = None,
) -> RFMResult:
    """Run the full RFM pipeline over a dataset.

    Computes the snapshot date once from all qualifying orders, derives the
    per-customer features, scores them and classifies segments.

    Returns
    -------
    RFMResult
        ``has_data`` is False when the dataset has no qualifying order
    """
    qualifying_status = _normalise_status(qualifying_status)
    snapshot_date = compute_snapshot_date(
        dataset.all_qualifying_orders(qualifying_status), qualifying_status
    )
    if snapshot_date is None:
        logger.info(
            f"No '{qualifying_status}' orders found; RFM segmentation has no data"
        )
        return RFMResult(snapshot_date=None, qualifying_status=qualifying_status)

    histories = collect_order_histories(dataset)
    features = calculate_rfm(
        histories,
        snapshot_date,
        qualifying_status=qualifying_status,
        parallel=parallel,
        parallel_threshold=parallel_threshold,
        n_workers=n_workers,
    )
    scores = calculate_rfm_scores(features, rules)

    logger.info(
        f"Scored {len(scores)} of {len(histories)} customers "
        f"(snapshot date {snapshot_date.isoformat()})"
    )
    return RFMResult(
        snapshot_date=snapshot_date,
        qualifying_status=qualifying_status,
        scores=scores,
    )
