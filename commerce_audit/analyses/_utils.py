"""Shared helpers for report-style analyses."""

from decimal import Decimal, ROUND_HALF_UP

# Standard percentage precision: 2 decimal places (e.g., 45.67%)
PERCENTAGE_PRECISION = Decimal("0.01")


def safe_percentage(numerator: int | Decimal, denominator: int | Decimal) -> Decimal | None:
    """Return ``100 * numerator / denominator`` rounded to 2 dp.

    A zero denominator yields ``None`` ("no rate") instead of an error.

    Example:
        >>> safe_percentage(1, 3)
        Decimal('33.33')
        >>> safe_percentage(5, 0) is None
        True
    """
    if not denominator:
        return None
    rate = Decimal(100) * Decimal(numerator) / Decimal(denominator)
    return rate.quantize(PERCENTAGE_PRECISION, rounding=ROUND_HALF_UP)
