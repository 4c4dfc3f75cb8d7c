"""Shared utilities for pandas conversion operations."""

import numbers
from decimal import Decimal
from typing import Optional


def decimal_to_float(value: Decimal) -> float:
    """Convert Decimal to float for pandas compatibility."""
    return float(value)


def optional_decimal_to_float(value: Optional[Decimal]) -> Optional[float]:
    """Convert an optional Decimal (e.g. a rate that may be undefined) to float.

    Example:
        >>> optional_decimal_to_float(Decimal("12.50"))
        12.5
        >>> optional_decimal_to_float(None) is None
        True
    """
    return None if value is None else float(value)


def float_to_decimal(value: float) -> Decimal:
    """Convert float (or numeric string) to Decimal, avoiding precision issues.

    Warning:
        Floats with >15 significant digits may lose precision due to
        float representation limits. For financial calculations requiring
        exact precision, use Decimal inputs from the start.

    Raises:
        TypeError: If value is not numeric

    Example:
        >>> float_to_decimal(123.45)
        Decimal('123.45')
    """
    if isinstance(value, bool) or not isinstance(value, (numbers.Real, str, Decimal)):
        raise TypeError(f"Expected numeric type, got {type(value)}")
    return Decimal(str(value))
