"""Product affinity (co-purchase) counts from order baskets.

A basket is the set of distinct products in one order. Every unordered
pair of distinct products sharing a basket is counted once per basket,
with the lower product id first. A basket of ``k`` products contributes
``k * (k - 1) / 2`` pair increments, so the total cost is O(sum of k^2)
over all baskets. Real baskets are small; bulk orders with hundreds of
distinct products are the known scaling limit, which ``basket_size_cap``
guards against by skipping oversized baskets.
"""

from __future__ import annotations

import logging
import multiprocessing
import os
from collections import Counter
from dataclasses import dataclass
from itertools import combinations
from typing import Iterable, Mapping, Optional

from commerce_audit.foundation.dataset import CommerceDataset

logger = logging.getLogger(__name__)

Pair = tuple[str, str]


@dataclass(frozen=True)
class ProductPair:
    """Two products bought together and how many baskets contain both.

    Attributes
    ----------
    product_a:
        Lower product id of the pair
    product_b:
        Higher product id of the pair
    together_count:
        Number of baskets containing both products
    product_a_category, product_b_category:
        Category labels of the two products (``None`` when unknown)
    """

    product_a: str
    product_b: str
    together_count: int
    product_a_category: str | None = None
    product_b_category: str | None = None

    def __post_init__(self) -> None:
        if not self.product_a < self.product_b:
            raise ValueError(
                f"Pair must be in canonical order with distinct products: "
                f"({self.product_a}, {self.product_b})"
            )
        if self.together_count < 1:
            raise ValueError(
                f"together_count must be positive: {self.together_count} "
                f"(pair=({self.product_a}, {self.product_b}))"
            )


def build_baskets(dataset: CommerceDataset) -> dict[str, frozenset[str]]:
    """Map each order with items to its set of distinct product ids.

    Duplicate lines of the same product collapse to one membership. Order
    status is not considered.
    """
    baskets: dict[str, set[str]] = {}
    for item in dataset.items:
        baskets.setdefault(item.order_id, set()).add(item.product_id)
    return {order_id: frozenset(products) for order_id, products in baskets.items()}


def _count_pairs_in_baskets(
    baskets: list[frozenset[str]], basket_size_cap: Optional[int]
) -> tuple[Counter, int]:
    """Count canonical pairs over a chunk of baskets.

    Designed to be called by multiprocessing workers. Returns the pair
    counts and the number of baskets skipped by the size cap.
    """
    counts: Counter = Counter()
    skipped = 0
    for basket in baskets:
        if len(basket) < 2:
            continue
        if basket_size_cap is not None and len(basket) > basket_size_cap:
            skipped += 1
            continue
        # sorted input makes combinations emit (lower, higher)
        counts.update(combinations(sorted(basket), 2))
    return counts, skipped


def count_pairs(
    baskets: Mapping[str, Iterable[str]],
    basket_size_cap: Optional[int] = None,
    parallel: bool = False,
    parallel_threshold: int = 100_000,
    n_workers: Optional[int] = None,
) -> Counter:
    """Count co-occurring product pairs across baskets.

    Parameters
    ----------
    baskets:
        Mapping from order id to the products in that order; duplicates are
        removed before pairing
    basket_size_cap:
        Skip baskets with more distinct products than this (at least 2)
    parallel:
        Partition baskets across worker processes and sum their counts
    parallel_threshold:
        Number of baskets above which to parallelize
    n_workers:
        Number of worker processes (defaults to CPU count)

    Returns
    -------
    Counter
        ``(product_a, product_b) -> together_count`` with ``product_a < product_b``

    Examples
    --------
    >>> counts = count_pairs({"O1": ["A", "B", "C"], "O2": ["B", "A", "A"]})
    >>> sorted(counts.items())
    [(('A', 'B'), 2), (('A', 'C'), 1), (('B', 'C'), 1)]
    """
    if basket_size_cap is not None and basket_size_cap < 2:
        raise ValueError(f"basket_size_cap must be at least 2: {basket_size_cap}")

    distinct = [frozenset(products) for products in baskets.values()]
    num_baskets = len(distinct)

    if parallel and num_baskets >= parallel_threshold:
        if n_workers is None:
            workers = os.cpu_count() or 1
        else:
            workers = max(1, n_workers)
        chunk_size = max(1, num_baskets // workers)
        chunks = [
            (distinct[i : i + chunk_size], basket_size_cap)
            for i in range(0, num_baskets, chunk_size)
        ]
        logger.info(
            f"Counting product pairs for {num_baskets} baskets "
            f"in {len(chunks)} chunks with {workers} workers"
        )
        with multiprocessing.Pool(processes=workers) as pool:
            chunk_results = pool.starmap(_count_pairs_in_baskets, chunks)

        counts: Counter = Counter()
        skipped = 0
        for chunk_counts, chunk_skipped in chunk_results:
            counts.update(chunk_counts)
            skipped += chunk_skipped
    else:
        counts, skipped = _count_pairs_in_baskets(distinct, basket_size_cap)

    if skipped:
        logger.warning(
            f"Skipped {skipped} basket(s) with more than {basket_size_cap} distinct products"
        )
    return counts


def rank_pairs(counts: Mapping[Pair, int], top_n: Optional[int] = None) -> list[Pair]:
    """Order pairs by count descending, then by (product_a, product_b).

    Examples
    --------
    >>> rank_pairs({("B", "C"): 2, ("A", "C"): 2, ("A", "B"): 5}, top_n=2)
    [('A', 'B'), ('A', 'C')]
    """
    if top_n is not None and top_n < 1:
        raise ValueError(f"top_n must be positive: {top_n}")
    ranked = sorted(counts, key=lambda pair: (-counts[pair], pair))
    return ranked if top_n is None else ranked[:top_n]


def compute_affinity(
    dataset: CommerceDataset,
    top_n: Optional[int] = None,
    basket_size_cap: Optional[int] = None,
    parallel: bool = False,
    parallel_threshold: int = 100_000,
    n_workers: Optional[int] = None,
) -> list[ProductPair]:
    """Rank product pairs bought together, enriched with product categories.

    Parameters
    ----------
    dataset:
        Resolved dataset (every item references a known product)
    top_n:
        Return only the ``top_n`` highest-count pairs
    basket_size_cap:
        Skip baskets with more distinct products than this

    Returns
    -------
    list[ProductPair]
        Sorted by ``together_count`` descending, ties by product ids ascending
    """
    baskets = build_baskets(dataset)
    counts = count_pairs(
        baskets,
        basket_size_cap=basket_size_cap,
        parallel=parallel,
        parallel_threshold=parallel_threshold,
        n_workers=n_workers,
    )
    ranked = rank_pairs(counts, top_n)

    logger.info(
        f"Counted {len(counts)} distinct product pairs over {len(baskets)} baskets"
    )
    return [
        ProductPair(
            product_a=product_a,
            product_b=product_b,
            together_count=counts[(product_a, product_b)],
            product_a_category=dataset.product_category(product_a),
            product_b_category=dataset.product_category(product_b),
        )
        for product_a, product_b in ranked
    ]
