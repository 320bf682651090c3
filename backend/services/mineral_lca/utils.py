import math
from typing import Optional


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with ties away from zero for positives, matching the reported figures"""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def round_to_int(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    return max(lower, min(upper, value))


def null_safe_delta(value: Optional[float], reference: Optional[float]) -> Optional[float]:
    if value is None or reference is None:
        return None
    return value - reference
