"""
Insight and recommendation generator.

Runs four independent rule branches (emissions, energy, circularity,
recycling) against an assessment's impact totals, circularity metrics and
material rows. Each branch that fires contributes one insight and a fixed
number of points; the mean of those points is the overall score.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .benchmarks import Benchmark, get_benchmark, resolve_metal_type
from .impact import RATIO_DIGITS, benchmark_ratio, total_material_mass
from .models import (
    AssessmentRecord, CircularityRecord, EnvironmentalImpactRecord, Insight,
    InsightImpact, InsightReport, MaterialRecord, Predictions, PriorityAction,
    Severity
)
from .utils import round_half_up, round_to_int

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE: Dict[str, float] = {
    "emissions_high": 0.92,
    "emissions_medium": 0.88,
    "emissions_low": 0.95,
    "energy_high": 0.89,
    "energy_low": 0.85,
    "circularity_high": 0.91,
    "circularity_medium": 0.87,
    "circularity_low": 0.94,
    "recycling_medium": 0.90,
    "recycling_low": 0.93,
}

SEVERITY_ORDER = {Severity.HIGH.value: 0, Severity.MEDIUM.value: 1, Severity.LOW.value: 2}

GOOD_SCORE_THRESHOLD = 70
AUDIT_SCORE_THRESHOLD = 70


def overall_grade(score: Optional[int]) -> Optional[str]:
    if score is None:
        return None
    if score >= 90:
        return "Excellent"
    if score >= 75:
        return "Good"
    if score >= 60:
        return "Fair"
    return "Needs Improvement"


class _Branch:
    """One fired rule: the insight plus the points it contributes"""

    def __init__(self, insight: Insight, points: int):
        self.insight = insight
        self.points = points


def _insight(category: str, severity: Severity, impact: InsightImpact, confidence: Dict[str, float], **fields) -> Insight:
    key = f"{category}_{severity.value}"
    return Insight(
        category=category,
        severity=severity,
        impact=impact,
        confidence=confidence.get(key, DEFAULT_CONFIDENCE[key]),
        **fields,
    )


def _emissions_branch(co2: float, mass: float, benchmark: Benchmark, metal: str, confidence) -> _Branch:
    ratio = benchmark_ratio(co2 / mass, benchmark.co2)

    if ratio > 1.2:
        return _Branch(_insight(
            "emissions", Severity.HIGH, InsightImpact.HIGH, confidence,
            title="High Carbon Emissions Detected",
            description=f"Your CO₂ emissions are {(ratio - 1) * 100:.1f}% above industry benchmarks for {metal}.",
            recommendation="Implement renewable energy sources, optimize combustion processes, and increase "
                           "recycled material content to reduce emissions.",
            potential_savings=f"Reduce by {co2 * 0.3:.0f} tCO₂e annually",
        ), 40)

    if ratio > 1.0:
        return _Branch(_insight(
            "emissions", Severity.MEDIUM, InsightImpact.MEDIUM, confidence,
            title="CO₂ Emissions Above Target",
            description=f"Emissions are {(ratio - 1) * 100:.1f}% above optimal levels.",
            recommendation="Consider energy efficiency upgrades and process optimization.",
            potential_savings=f"Reduce by {co2 * 0.15:.0f} tCO₂e annually",
        ), 65)

    return _Branch(_insight(
        "emissions", Severity.LOW, InsightImpact.POSITIVE, confidence,
        title="Excellent Carbon Performance",
        description=f"Your emissions are {(1 - ratio) * 100:.1f}% below industry average.",
        recommendation="Maintain current practices and explore carbon credit opportunities.",
        potential_savings="Carbon credit potential",
    ), 90)


def _energy_branch(energy: float, mass: float, benchmark: Benchmark, confidence) -> _Branch:
    ratio = benchmark_ratio(energy / mass, benchmark.energy)

    if ratio > 1.15:
        return _Branch(_insight(
            "energy", Severity.HIGH, InsightImpact.HIGH, confidence,
            title="Energy Efficiency Improvement Needed",
            description=f"Energy consumption is {(ratio - 1) * 100:.1f}% above industry standards.",
            recommendation="Upgrade to high-efficiency equipment, implement waste heat recovery, and optimize "
                           "process scheduling.",
            potential_savings=f"Save {energy * 0.25:.0f} kWh annually",
        ), 50)

    return _Branch(_insight(
        "energy", Severity.LOW, InsightImpact.MEDIUM, confidence,
        title="Good Energy Efficiency",
        description="Energy consumption is within acceptable range.",
        recommendation="Continue monitoring and explore renewable energy integration.",
        potential_savings="Optimization potential available",
    ), 75)


def _circularity_branch(mci: float, confidence) -> _Branch:
    if mci < 0.5:
        return _Branch(_insight(
            "circularity", Severity.HIGH, InsightImpact.HIGH, confidence,
            title="Low Circularity Score",
            description=f"Material Circularity Index of {mci:.2f} indicates significant linear economy practices.",
            recommendation="Increase recycled content, design for recyclability, and establish take-back programs.",
            potential_savings=f"Improve MCI to {mci + 0.3:.2f} achievable",
        ), 45)

    if mci < 0.7:
        return _Branch(_insight(
            "circularity", Severity.MEDIUM, InsightImpact.MEDIUM, confidence,
            title="Moderate Circularity Performance",
            description=f"MCI score of {mci:.2f} shows room for circular economy improvements.",
            recommendation="Enhance material recovery systems and increase recycled feedstock.",
            potential_savings=f"Improve MCI to {mci + 0.2:.2f}",
        ), 70)

    return _Branch(_insight(
        "circularity", Severity.LOW, InsightImpact.POSITIVE, confidence,
        title="Strong Circular Economy Practices",
        description=f"Excellent MCI score of {mci:.2f} demonstrates circular economy leadership.",
        recommendation="Share best practices and explore advanced circular models.",
        potential_savings="Industry leadership opportunity",
    ), 95)


def _recycling_branch(materials: List[MaterialRecord], benchmark: Benchmark, metal: str, confidence) -> _Branch:
    avg_recycling = round_half_up(
        sum(m.recycled_content_pct or 0.0 for m in materials) / len(materials), RATIO_DIGITS
    )
    target = benchmark.recycling_rate

    if avg_recycling < target:
        return _Branch(_insight(
            "recycling", Severity.MEDIUM, InsightImpact.HIGH, confidence,
            title="Increase Recycled Material Content",
            description=f"Current recycling rate of {avg_recycling:.1f}% is below the {target:g}% industry "
                        f"target for {metal}.",
            recommendation="Source more recycled feedstock, establish partnerships with recycling facilities, "
                           "and optimize sorting processes.",
            potential_savings=f"Increase to {target:g}% saves energy and reduces virgin material costs",
        ), 55)

    return _Branch(_insight(
        "recycling", Severity.LOW, InsightImpact.POSITIVE, confidence,
        title="Excellent Recycling Performance",
        description=f"Recycling rate of {avg_recycling:.1f}% exceeds industry standards.",
        recommendation="Maintain high standards and explore closed-loop systems.",
        potential_savings="Best practice achieved",
    ), 92)


def _priority_actions(insights: List[Insight], score: int) -> List[PriorityAction]:
    actions = [
        PriorityAction(
            action=insight.title,
            description=insight.recommendation,
            expected_impact=insight.potential_savings,
            timeline="3-6 months",
            complexity="medium" if insight.impact == InsightImpact.HIGH.value else "low",
        )
        for insight in insights
        if insight.severity == Severity.HIGH.value
    ]

    if score < AUDIT_SCORE_THRESHOLD:
        actions.append(PriorityAction(
            action="Comprehensive Process Audit",
            description="Conduct detailed assessment of all processes to identify optimization opportunities.",
            expected_impact="15-25% overall improvement potential",
            timeline="1-2 months",
            complexity="low",
        ))

    return actions


def _predictions(
    score: int,
    impact: EnvironmentalImpactRecord,
    circularity: Optional[CircularityRecord],
) -> Predictions:
    good = score > GOOD_SCORE_THRESHOLD
    co2 = impact.co2_emissions_tons
    energy = impact.total_energy_kwh
    mci = circularity.mci_score if circularity is not None else None

    return Predictions(
        next_quarter_co2=round_to_int(co2 * (1 - (0.05 if good else 0.02))) if co2 is not None else None,
        energy_savings_potential=round_to_int(energy * (0.10 if good else 0.20)) if energy is not None else None,
        circularity_improvement_potential=min(1.0, mci + (0.05 if good else 0.15)) if mci is not None else None,
        cost_savings_estimate=round_to_int(energy * 0.12 * 0.15 + (co2 or 0.0) * 50) if energy is not None else None,
    )


def generate_insights(
    assessment: AssessmentRecord,
    impact: Optional[EnvironmentalImpactRecord],
    circularity: Optional[CircularityRecord],
    materials: List[MaterialRecord],
    confidence: Optional[Dict[str, float]] = None,
    generated_at: Optional[datetime] = None,
) -> InsightReport:
    """
    Build the ranked insight report for one assessment.

    Unknown metals and missing impact records produce a neutral report with
    no insights and no score. Branches that do not fire are left out of the
    overall score rather than counted as zero.
    """
    generated_at = generated_at or datetime.now(timezone.utc)
    confidence = confidence or DEFAULT_CONFIDENCE

    benchmark = get_benchmark(assessment.metal_type)
    if benchmark is None or impact is None:
        logger.info(f"Neutral insight report for assessment {assessment.id}: "
                    f"benchmark={'found' if benchmark else 'missing'}, impact={'found' if impact else 'missing'}")
        return InsightReport(generated_at=generated_at)

    metal = resolve_metal_type(assessment.metal_type).value
    mass = total_material_mass(materials)
    branches: List[_Branch] = []

    if impact.co2_emissions_tons is not None and mass > 0:
        branches.append(_emissions_branch(impact.co2_emissions_tons, mass, benchmark, metal, confidence))

    if impact.total_energy_kwh is not None and mass > 0:
        branches.append(_energy_branch(impact.total_energy_kwh, mass, benchmark, confidence))

    if circularity is not None and circularity.mci_score is not None:
        branches.append(_circularity_branch(circularity.mci_score, confidence))

    if materials:
        branches.append(_recycling_branch(materials, benchmark, metal, confidence))

    if not branches:
        return InsightReport(generated_at=generated_at)

    score = round_to_int(sum(b.points for b in branches) / len(branches))
    insights = sorted((b.insight for b in branches), key=lambda i: SEVERITY_ORDER[i.severity])

    logger.info(f"Generated {len(insights)} insights for assessment {assessment.id}: score={score}")

    return InsightReport(
        insights=insights,
        overall_score=score,
        score_grade=overall_grade(score),
        priority_actions=_priority_actions(insights, score),
        predictions=_predictions(score, impact, circularity),
        generated_at=generated_at,
    )
