from __future__ import annotations

import math
from typing import Any, Iterable

import numpy as np


def safe_number(value: Any) -> float:
    """
    Coerce anything a stored record can hold into a finite float.

    None, NaN, +/-inf, booleans and non-numeric strings all map to 0.0 so that
    no derived metric can ever leak NaN into a report.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        f = float(value)
    except (TypeError, ValueError):
        return 0.0
    return f if math.isfinite(f) else 0.0


def round_money(value: float) -> float:
    """
    Round half-up to 2 decimals. Non-finite values are returned untouched.
    """
    if not math.isfinite(value):
        return value
    return math.floor(value * 100.0 + 0.5) / 100.0


def safe_round(value: Any) -> float:
    return round_money(safe_number(value))


def ratio(numerator: float, denominator: float, scale: float = 1.0) -> float:
    # Zero/negative denominators resolve to 0, never to an error.
    if denominator <= 0:
        return 0.0
    return safe_number(numerator / denominator * scale)


def positive_mean(values: Iterable[Any]) -> float | None:
    """
    Mean over strictly positive entries only.

    Returns None when nothing is positive, which callers read as
    "metric not computable" (distinct from a real 0).
    """
    arr = np.asarray([safe_number(v) for v in values], dtype=float)
    positive = arr[arr > 0.0]
    if positive.size == 0:
        return None
    return float(np.mean(positive))


def rounded_positive_mean(values: Iterable[Any]) -> float | None:
    mean = positive_mean(values)
    if mean is None:
        return None
    return round_money(mean)
