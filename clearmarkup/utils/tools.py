"""Small value helpers shared by handlers and templates."""

from __future__ import annotations

from typing import Any, Callable, List

from clearmarkup.core.database.transforms import apply_operations

_SHORT_NUMBER_UNITS = (
    (900, 1, ''),
    (900_000, 1_000, 'k'),
    (900_000_000, 1_000_000, 'm'),
    (900_000_000_000, 1_000_000_000, 'b'),
)


def sanitize(value: Any, operations: Any) -> Any:
    """Sanitize a value with a callable or a named operation pipeline.

    Args:
        value: The value to sanitize
        operations: A callable, or operations for :func:`apply_operations`

    Returns:
        The sanitized value
    """
    if callable(operations):
        return operations(value)
    return apply_operations(value, operations)


def explode_map(value: str, delimiter: str, callback: Callable[[str], Any]) -> List[Any]:
    """Split a string, map each part and drop falsy results."""
    return [item for item in map(callback, value.split(delimiter)) if item]


def short_number(n: float, precision: int = 1) -> str:
    """Format a number with a k/m/b/t suffix.

    ``1_500`` becomes ``"1.5k"`` and ``2_000_000`` becomes ``"2m"``. A
    fractional part made only of zeros is removed, other fractions keep
    their trailing zeros (``"1.50k"`` with a precision of 2).
    """
    divisor, suffix = 1_000_000_000_000, 't'
    for limit, unit_divisor, unit_suffix in _SHORT_NUMBER_UNITS:
        if n < limit:
            divisor, suffix = unit_divisor, unit_suffix
            break

    formatted = f"{n / divisor:,.{precision}f}"
    if precision > 0:
        formatted = formatted.replace('.' + '0' * precision, '')
    return formatted + suffix
