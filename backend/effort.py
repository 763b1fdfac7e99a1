"""
backend/effort.py

Total effort aggregation for project disciplines.

Only planning, design and publishing contribute; development effort is
tracked per project but deliberately left out of the total.

Pure Python logic - no FastAPI imports, no database access.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional, Union

EffortInput = Union[None, str, int, float, Decimal]

_TWO_PLACES = Decimal("0.01")


def is_unset(value: Any) -> bool:
    """None, "" and whitespace-only text mean "never entered". "0" is a value."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def parse_effort(value: EffortInput) -> Optional[Decimal]:
    """
    Convert an effort value to Decimal.

    Returns None for unset values.

    Raises:
        ValueError: If the value is set but not a finite number
    """
    if is_unset(value):
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid effort value: {value!r}")
    try:
        # str() first so floats keep their shortest repr (2.345, not 2.34499...)
        parsed = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid effort value: {value!r}")
    if not parsed.is_finite():
        raise ValueError(f"Invalid effort value: {value!r}")
    return parsed


def compute_total_effort(
    planning: EffortInput = None,
    design: EffortInput = None,
    publishing: EffortInput = None,
) -> Optional[float]:
    """
    Compute the derived total effort.

    - All three unset -> None
    - Otherwise: sum (unset counts as 0), rounded half-up to 2 places
    - Rounded sum <= 0 -> None
    - Any set-but-unparseable value -> None (total cannot be determined)

    Examples:
        compute_total_effort(None, "", 5)        -> 5.0
        compute_total_effort("0", "", "")        -> None
        compute_total_effort("2.345", "1", "")   -> 3.35
    """
    values = (planning, design, publishing)
    if all(is_unset(v) for v in values):
        return None

    total = Decimal("0")
    for value in values:
        try:
            parsed = parse_effort(value)
        except ValueError:
            return None
        if parsed is not None:
            total += parsed

    rounded = total.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    if rounded <= 0:
        return None
    return float(rounded)


def total_effort_of(record: Any) -> Optional[float]:
    """
    Total effort for anything exposing planning/design/publishing disciplines
    with an .effort attribute (canonical Project or edit draft alike).
    """
    return compute_total_effort(
        record.planning.effort,
        record.design.effort,
        record.publishing.effort,
    )
