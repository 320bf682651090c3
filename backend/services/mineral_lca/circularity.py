from typing import Dict, Optional

from .models import CircularityComposite, CircularityRecord
from .utils import round_half_up


# field -> (weight, full-scale value used to bring the metric onto [0, 1])
CIRCULARITY_WEIGHTS: Dict[str, tuple] = {
    "mci_score": (0.40, 1.0),
    "recycling_potential_pct": (0.25, 100.0),
    "resource_efficiency_score": (0.20, 10.0),
    "reuse_potential_pct": (0.15, 100.0),
}

# Composite scores are rounded to this many digits before grading
SCORE_DIGITS = 6


def circularity_grade(score: Optional[float]) -> Optional[str]:
    if score is None:
        return None
    if score > 0.8:
        return "Excellent"
    if score >= 0.6:
        return "Good"
    if score >= 0.4:
        return "Fair"
    return "Poor"


def composite_circularity(metrics: Optional[CircularityRecord]) -> Optional[CircularityComposite]:
    """
    Weighted circularity composite over the sub-metrics that are present.

    Missing sub-metrics are left out and the remaining weights renormalized,
    so partial data is not penalized. Returns None when nothing is present.
    """
    if metrics is None:
        return None

    weighted_sum = 0.0
    used_weight = 0.0
    used = []
    for field, (weight, scale) in CIRCULARITY_WEIGHTS.items():
        value = getattr(metrics, field, None)
        if value is None:
            continue
        weighted_sum += (value / scale) * weight
        used_weight += weight
        used.append(field)

    if used_weight == 0:
        return None

    score = round_half_up(weighted_sum / used_weight, SCORE_DIGITS)
    return CircularityComposite(score=score, grade=circularity_grade(score), components_used=used)
