import logging
from typing import Dict, List, Optional, Union

from .benchmarks import EstimationRange, MetalType, get_estimation_ranges
from .models import EstimationResult, ExtractionMethod, MaterialRecord, ProcessingRecord
from .utils import clamp, round_half_up

logger = logging.getLogger(__name__)

# Position inside the per-metal range used as the estimate
ESTIMATION_PERCENTILE = 0.6

EXTRACTION_FACTORS = {
    ExtractionMethod.RECYCLED.value: 0.3,
    ExtractionMethod.UNDERGROUND.value: 1.2,
    ExtractionMethod.OPEN_PIT.value: 1.0,
}

BASE_EFFICIENCY_PCT = {
    ExtractionMethod.RECYCLED.value: 85.0,
    ExtractionMethod.UNDERGROUND.value: 70.0,
}
DEFAULT_BASE_EFFICIENCY_PCT = 75.0


def ore_grade_factor(ore_grade_pct: Optional[float]) -> float:
    """Lower grade ore needs more energy, water and produces more waste per ton"""
    if not ore_grade_pct:
        return 1.0
    if ore_grade_pct < 1.0:
        return 1.3
    if ore_grade_pct < 2.0:
        return 1.15
    if ore_grade_pct > 5.0:
        return 0.85
    return 1.0


def extraction_factor(extraction_method: Optional[str]) -> float:
    if not extraction_method:
        return 1.0
    return EXTRACTION_FACTORS.get(extraction_method, 1.0)


def _estimate(value_range: EstimationRange, factor: float) -> float:
    base = value_range.min + (value_range.max - value_range.min) * ESTIMATION_PERCENTILE
    return round_half_up(base * factor, 2)


def _confidence(materials: List[MaterialRecord], processing: List[ProcessingRecord], records_with_gaps: int) -> float:
    score = 0.9
    if not materials:
        score -= 0.1
    if any(not m.ore_grade_pct for m in materials):
        score -= 0.05
    if any(not m.extraction_method for m in materials):
        score -= 0.05
    if records_with_gaps > len(processing) * 0.5:
        score -= 0.1
    return round_half_up(clamp(score, 0.7, 0.9), 2)


def estimate_missing_processing(
    metal_type: Union[MetalType, str, None],
    materials: List[MaterialRecord],
    processing: List[ProcessingRecord],
) -> Optional[EstimationResult]:
    """
    Fill missing processing measurements from the metal's estimation ranges.

    Estimates are scaled by the ore grade and extraction method of the
    primary (first) material row. Returns None for metals without ranges.
    The returned ``updates`` map processing row ids (or list positions for
    unsaved rows) to the estimated fields; rows without gaps are absent.
    """
    ranges = get_estimation_ranges(metal_type)
    if ranges is None:
        return None

    primary = materials[0] if materials else None
    factor = 1.0
    quantity = 1.0
    method = None
    if primary is not None:
        factor = ore_grade_factor(primary.ore_grade_pct) * extraction_factor(primary.extraction_method)
        quantity = primary.quantity_tons or 1.0
        method = primary.extraction_method

    updates: Dict[int, Dict[str, float]] = {}
    estimated_fields = []
    records_with_gaps = 0

    for index, record in enumerate(processing):
        fields: Dict[str, float] = {}

        if record.energy_consumption_kwh is None:
            fields["energy_consumption_kwh"] = _estimate(ranges["energy_consumption_kwh"], factor)
        if record.water_usage_m3 is None:
            fields["water_usage_m3"] = _estimate(ranges["water_usage_m3"], factor)
        if record.waste_generation_tons is None:
            waste_per_ton = _estimate(ranges["waste_generation_tons"], factor)
            fields["waste_generation_tons"] = round_half_up(waste_per_ton * quantity, 2)
        if record.equipment_efficiency_pct is None:
            fields["equipment_efficiency_pct"] = BASE_EFFICIENCY_PCT.get(method, DEFAULT_BASE_EFFICIENCY_PCT)

        if not fields:
            continue

        records_with_gaps += 1
        updates[record.id if record.id is not None else index] = fields
        for name in fields:
            if name not in estimated_fields:
                estimated_fields.append(name)

    confidence = _confidence(materials, processing, records_with_gaps)
    logger.info(f"Estimated {len(estimated_fields)} field(s) across {len(updates)} processing row(s) "
                f"for {metal_type}, confidence {confidence}")

    return EstimationResult(
        estimated_count=len(updates),
        estimated_fields=estimated_fields,
        confidence_score=confidence,
        updates=updates,
    )
