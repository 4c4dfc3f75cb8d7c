"""Segment-level summary of RFM scores."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Sequence

from commerce_audit.analyses._utils import safe_percentage
from commerce_audit.foundation.revenue import quantize_amount
from commerce_audit.foundation.rfm import DEFAULT_SEGMENT, SEGMENT_RULES, RFMScore, SegmentRule


@dataclass(frozen=True)
class SegmentSummary:
    """Size and value of one segment.

    Attributes
    ----------
    segment:
        Segment label
    customers:
        Customers in the segment
    customer_share:
        Percentage of all scored customers
    total_monetary:
        Sum of the members' monetary values
    avg_monetary:
        Mean monetary value per member
    """

    segment: str
    customers: int
    customer_share: Decimal | None
    total_monetary: Decimal
    avg_monetary: Decimal


def summarize_segments(
    rfm_scores: Sequence[RFMScore],
    rules: Sequence[SegmentRule] = SEGMENT_RULES,
) -> list[SegmentSummary]:
    """Aggregate scored customers per segment.

    Segments are listed in rule order with the default segment last;
    segments without members are omitted.
    """
    members: dict[str, list[Decimal]] = defaultdict(list)
    for score in rfm_scores:
        members[score.segment].append(score.monetary)

    order = [rule.label for rule in rules] + [DEFAULT_SEGMENT]
    # Labels outside the rule list (custom rules) go after known ones
    order += sorted(label for label in members if label not in order)

    total_customers = len(rfm_scores)
    summaries: list[SegmentSummary] = []
    for label in order:
        values = members.get(label)
        if not values:
            continue
        total = sum(values, Decimal("0"))
        summaries.append(
            SegmentSummary(
                segment=label,
                customers=len(values),
                customer_share=safe_percentage(len(values), total_customers),
                total_monetary=quantize_amount(total),
                avg_monetary=quantize_amount(total / len(values)),
            )
        )
    return summaries
