"""
Numeric helpers shared by the classifier, level calculator and scorer.
"""

from __future__ import annotations

import math
from typing import Any, Optional


def is_num(x: Any) -> bool:
    """True for a finite int/float (bools excluded)."""
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        return False
    return math.isfinite(x)


def round2(x: Optional[float]) -> Optional[float]:
    """
    Round half-up to 2 decimals.

    Non-numbers pass through unchanged so optional fields can be
    rounded without a guard at every call site.
    """
    if not is_num(x):
        return x
    return math.floor(x * 100 + 0.5) / 100


def round_to_tick(price: float, tick: float) -> float:
    """Snap *price* to the nearest multiple of *tick*, then round to 2 dp."""
    if not is_num(price):
        return 0.0
    return round2(math.floor(price / tick + 0.5) * tick)


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def to_float(x: Any) -> Optional[float]:
    """Coerce provider values to float; anything unusable becomes None."""
    if x is None or isinstance(x, bool):
        return None
    try:
        val = float(x)
    except (TypeError, ValueError):
        return None
    return val if math.isfinite(val) else None
