"""
Scenario feasibility evaluation.

A scenario is a proposed CO2-reduction / cost-difference trade-off for an
assessment. Its feasibility, implementation complexity and the deltas against
the assessment's baseline scenario are derived here on every read.
"""

import logging
from typing import Iterable, List, Optional, Union

from .benchmarks import MetalType, resolve_metal_type
from .models import (
    EnvironmentalImpactRecord, ImpactProjection, ImplementationComplexity,
    ScenarioComparison, ScenarioEvaluation, ScenarioRecord, ScenarioType
)
from .utils import clamp, null_safe_delta, round_half_up

logger = logging.getLogger(__name__)

NEUTRAL_FEASIBILITY = 0.5


def _base_feasibility(reduction_pct: float) -> float:
    """Piecewise feasibility curve over the CO2 reduction target"""
    r = reduction_pct
    if r < 0:
        return max(0.0, 0.3 + r / 100)
    if r <= 20:
        return 0.6 + r / 100
    if r <= 50:
        return 0.8 + (r - 20) / 150
    return max(0.4, 0.9 - (r - 50) / 200)


def _cost_multiplier(cost_difference_pct: Optional[float]) -> float:
    if cost_difference_pct is None:
        return 1.0
    if cost_difference_pct < -50:
        return 0.6
    if cost_difference_pct < 0:
        return 0.8
    if cost_difference_pct > 20:
        return 1.2
    return 1.0


def feasibility_score(co2_reduction_pct: Optional[float], cost_difference_pct: Optional[float]) -> float:
    """Feasibility in [0, 1], rounded to 3 decimals. No reduction target gives the neutral 0.5."""
    if co2_reduction_pct is None:
        return NEUTRAL_FEASIBILITY

    score = _base_feasibility(co2_reduction_pct) * _cost_multiplier(cost_difference_pct)
    return round_half_up(clamp(score, 0.0, 1.0), 3)


def implementation_complexity(
    scenario_type: Union[ScenarioType, str],
    co2_reduction_pct: Optional[float],
) -> ImplementationComplexity:
    scenario_type = ScenarioType(scenario_type)
    r = co2_reduction_pct

    if scenario_type == ScenarioType.CIRCULAR:
        if r is not None and r > 30:
            return ImplementationComplexity.HIGH
        return ImplementationComplexity.MEDIUM

    if scenario_type == ScenarioType.OPTIMIZED:
        if r is not None and r > 50:
            return ImplementationComplexity.HIGH
        if r is not None and r > 20:
            return ImplementationComplexity.MEDIUM
        return ImplementationComplexity.LOW

    return ImplementationComplexity.LOW


def find_baseline(scenarios: Iterable[ScenarioRecord]) -> Optional[ScenarioRecord]:
    for scenario in scenarios:
        if scenario.scenario_type == ScenarioType.BASELINE.value:
            return scenario
    return None


def compare_to_baseline(scenario: ScenarioRecord, baseline: Optional[ScenarioRecord]) -> Optional[ScenarioComparison]:
    """Deltas against the baseline; None for the baseline itself or when there is none."""
    if baseline is None or _is_same_scenario(scenario, baseline):
        return None

    return ScenarioComparison(
        baseline_scenario_id=baseline.id,
        co2_improvement_vs_baseline=null_safe_delta(scenario.co2_reduction_pct, baseline.co2_reduction_pct),
        cost_difference_vs_baseline=null_safe_delta(scenario.cost_difference_pct, baseline.cost_difference_pct),
    )


def _is_same_scenario(scenario: ScenarioRecord, other: ScenarioRecord) -> bool:
    if scenario.id is not None and other.id is not None:
        return scenario.id == other.id
    return scenario is other


def evaluate_scenario(
    scenario: ScenarioRecord,
    baseline: Optional[ScenarioRecord] = None,
    related_count: int = 0,
) -> ScenarioEvaluation:
    return ScenarioEvaluation(
        scenario_id=scenario.id,
        feasibility_score=feasibility_score(scenario.co2_reduction_pct, scenario.cost_difference_pct),
        implementation_complexity=implementation_complexity(scenario.scenario_type, scenario.co2_reduction_pct),
        comparison=compare_to_baseline(scenario, baseline),
        related_scenarios_count=related_count,
    )


def project_impact(
    scenario: ScenarioRecord,
    impact: Optional[EnvironmentalImpactRecord],
) -> Optional[ImpactProjection]:
    """Project the assessment's current CO2 total under the scenario's reduction target"""
    if impact is None or impact.co2_emissions_tons is None or scenario.co2_reduction_pct is None:
        return None

    baseline_co2 = impact.co2_emissions_tons
    projected = baseline_co2 * (1 - scenario.co2_reduction_pct / 100)
    savings = baseline_co2 - projected

    return ImpactProjection(
        baseline_co2_emissions_tons=baseline_co2,
        projected_co2_emissions_tons=round_half_up(projected, 2),
        co2_savings_tons=round_half_up(savings, 2),
        co2_reduction_pct=scenario.co2_reduction_pct,
        cost_difference_pct=scenario.cost_difference_pct,
    )


SCENARIO_TYPE_RECOMMENDATIONS = {
    ScenarioType.BASELINE: [
        "Consider implementing circular economy practices to reduce environmental impact",
        "Evaluate opportunities for energy efficiency improvements",
    ],
    ScenarioType.CIRCULAR: [
        "Focus on increasing recycled content percentage",
        "Implement waste reduction strategies throughout the supply chain",
        "Consider product life extension initiatives",
    ],
    ScenarioType.OPTIMIZED: [
        "Monitor performance metrics closely during implementation",
        "Consider phased rollout to manage risks and costs",
    ],
}

METAL_RECOMMENDATIONS = {
    MetalType.ALUMINIUM: "Focus on energy-intensive smelting process optimizations for aluminium",
    MetalType.COPPER: "Consider copper recovery from electronic waste streams",
    MetalType.STEEL: "Evaluate electric arc furnace adoption for steel production",
}

FALLBACK_RECOMMENDATION = "Review scenario parameters and consider optimization opportunities"


def scenario_recommendations(
    scenario_type: Union[ScenarioType, str],
    co2_reduction_pct: Optional[float],
    cost_difference_pct: Optional[float],
    metal_type: Union[MetalType, str, None] = None,
) -> List[str]:
    recommendations = list(SCENARIO_TYPE_RECOMMENDATIONS.get(ScenarioType(scenario_type), []))

    if co2_reduction_pct is not None:
        if co2_reduction_pct < 10:
            recommendations.append("Consider more aggressive CO2 reduction targets to maximize environmental benefit")
        elif co2_reduction_pct > 50:
            recommendations.append("Excellent CO2 reduction target - ensure implementation plan is realistic")

    if cost_difference_pct is not None:
        if cost_difference_pct > 25:
            recommendations.append("High cost increase - consider cost mitigation strategies or phased implementation")
        elif cost_difference_pct < 0:
            recommendations.append("Cost-saving scenario - prioritize for immediate implementation")

    metal = resolve_metal_type(metal_type)
    if metal in METAL_RECOMMENDATIONS:
        recommendations.append(METAL_RECOMMENDATIONS[metal])

    return recommendations or [FALLBACK_RECOMMENDATION]
