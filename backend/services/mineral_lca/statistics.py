import numpy as np
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .impact import total_material_mass
from .models import AssessmentRecord, CircularityRecord, EnvironmentalImpactRecord, MaterialRecord
from .utils import round_half_up, round_to_int

logger = logging.getLogger(__name__)

TIME_RANGES = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "all": None,
}
DEFAULT_TIME_RANGE = "30d"
TOP_PERFORMER_LIMIT = 5
RECENT_ACTIVITY_LIMIT = 10

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def time_range_window(time_range: str, now: Optional[datetime] = None):
    """
    Return (start, previous_start) for a dashboard time range.

    The previous period has the same length and ends where the current one
    starts; for "all" both start at the epoch so there is no previous period.
    """
    if time_range not in TIME_RANGES:
        raise ValueError(f"Unknown time range '{time_range}'. Use one of: {list(TIME_RANGES)}")

    now = now or datetime.now(timezone.utc)
    span = TIME_RANGES[time_range]
    if span is None:
        return EPOCH, EPOCH

    start = now - span
    return start, start - span


def _totals(impacts: List[EnvironmentalImpactRecord]) -> Dict[str, float]:
    return {
        "co2": sum(i.co2_emissions_tons or 0.0 for i in impacts),
        "energy": sum(i.total_energy_kwh or 0.0 for i in impacts),
        "water": sum(i.total_water_m3 or 0.0 for i in impacts),
        "waste": sum(i.total_waste_tons or 0.0 for i in impacts),
    }


def _trend(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return round_half_up((current - previous) / previous * 100, 1)


def _mean(values: List[float]) -> float:
    return float(np.mean(values)) if values else 0.0


def _sort_key_updated(assessment: AssessmentRecord):
    stamp = assessment.updated_at or assessment.created_at
    if stamp is None:
        return EPOCH
    return stamp if stamp.tzinfo else stamp.replace(tzinfo=timezone.utc)


def empty_dashboard_stats() -> Dict[str, Any]:
    return {
        "total_projects": 0,
        "completed_projects": 0,
        "aggregate_metrics": {
            "total_co2_tons": 0.0,
            "total_energy_kwh": 0,
            "total_water_m3": 0,
            "total_waste_tons": 0.0,
            "avg_circularity_score": 0.0,
            "avg_recycling_rate": 0.0,
        },
        "trends": {"co2_trend": 0.0, "energy_trend": 0.0, "water_trend": 0.0, "waste_trend": 0.0},
        "metal_type_breakdown": {},
        "top_performers": [],
        "recent_activity": [],
    }


def compute_dashboard_stats(
    assessments: List[AssessmentRecord],
    impacts: List[EnvironmentalImpactRecord],
    circularity: List[CircularityRecord],
    materials: List[MaterialRecord],
    previous_impacts: Optional[List[EnvironmentalImpactRecord]] = None,
) -> Dict[str, Any]:
    """Portfolio aggregates for the assessments of one dashboard period"""
    if not assessments:
        return empty_dashboard_stats()

    previous_impacts = previous_impacts or []
    current = _totals(impacts)
    previous = _totals(previous_impacts)

    impact_by_assessment = {i.assessment_id: i for i in impacts}
    circularity_by_assessment = {c.assessment_id: c for c in circularity}
    materials_by_assessment: Dict[int, List[MaterialRecord]] = defaultdict(list)
    for material in materials:
        materials_by_assessment[material.assessment_id].append(material)

    breakdown: Dict[str, Dict[str, float]] = {}
    for assessment in assessments:
        entry = breakdown.setdefault(assessment.metal_type, {"count": 0, "co2": 0.0, "energy": 0.0, "water": 0.0, "waste": 0.0})
        entry["count"] += 1
        impact = impact_by_assessment.get(assessment.id)
        if impact is not None:
            entry["co2"] += impact.co2_emissions_tons or 0.0
            entry["energy"] += impact.total_energy_kwh or 0.0
            entry["water"] += impact.total_water_m3 or 0.0
            entry["waste"] += impact.total_waste_tons or 0.0

    performers = []
    for assessment in assessments:
        impact = impact_by_assessment.get(assessment.id)
        mass = total_material_mass(materials_by_assessment.get(assessment.id, []))
        if impact is None or impact.co2_emissions_tons is None or mass <= 0:
            continue
        metrics = circularity_by_assessment.get(assessment.id)
        performers.append({
            "assessment_id": assessment.id,
            "project_name": assessment.project_name,
            "metal_type": assessment.metal_type,
            "co2_per_ton": round_half_up(impact.co2_emissions_tons / mass, 2),
            "mci_score": metrics.mci_score if metrics is not None else None,
            "status": assessment.status,
        })
    performers.sort(key=lambda p: p["co2_per_ton"])

    recent = sorted(assessments, key=_sort_key_updated, reverse=True)[:RECENT_ACTIVITY_LIMIT]

    avg_mci = _mean([c.mci_score for c in circularity if c.mci_score is not None])
    avg_recycling = _mean([m.recycled_content_pct or 0.0 for m in materials])

    logger.debug(f"Dashboard stats over {len(assessments)} assessments, {len(impacts)} impacts")

    return {
        "total_projects": len(assessments),
        "completed_projects": sum(1 for a in assessments if a.status == "completed"),
        "aggregate_metrics": {
            "total_co2_tons": round_half_up(current["co2"], 2),
            "total_energy_kwh": round_to_int(current["energy"]),
            "total_water_m3": round_to_int(current["water"]),
            "total_waste_tons": round_half_up(current["waste"], 2),
            "avg_circularity_score": round_half_up(avg_mci, 2),
            "avg_recycling_rate": round_half_up(avg_recycling, 1),
        },
        "trends": {
            "co2_trend": _trend(current["co2"], previous["co2"]),
            "energy_trend": _trend(current["energy"], previous["energy"]),
            "water_trend": _trend(current["water"], previous["water"]),
            "waste_trend": _trend(current["waste"], previous["waste"]),
        },
        "metal_type_breakdown": breakdown,
        "top_performers": performers[:TOP_PERFORMER_LIMIT],
        "recent_activity": [
            {
                "id": a.id,
                "project_name": a.project_name,
                "metal_type": a.metal_type,
                "status": a.status,
                "updated_at": a.updated_at,
            }
            for a in recent
        ],
    }
