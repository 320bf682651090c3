"""Tests for the rule-based insight generator."""

from datetime import datetime, timezone

import pytest

from services.mineral_lca.insights import generate_insights, overall_grade
from services.mineral_lca.models import (
    AssessmentRecord,
    CircularityRecord,
    EnvironmentalImpactRecord,
    MaterialRecord,
)

GENERATED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def assessment(metal_type="aluminium"):
    return AssessmentRecord(id=1, project_name="Smelter Line 2", metal_type=metal_type)


@pytest.fixture
def smelter_inputs():
    """Aluminium line: emissions over benchmark, everything else healthy."""
    return dict(
        assessment=assessment(),
        impact=EnvironmentalImpactRecord(co2_emissions_tons=1400.0, total_energy_kwh=1_000_000.0),
        circularity=CircularityRecord(mci_score=0.8),
        materials=[
            MaterialRecord(quantity_tons=60.0, recycled_content_pct=70.0),
            MaterialRecord(quantity_tons=40.0, recycled_content_pct=70.0),
        ],
    )


class TestGenerateInsights:

    def test_high_emissions_report(self, smelter_inputs):
        report = generate_insights(**smelter_inputs, generated_at=GENERATED_AT)

        assert [i.category for i in report.insights] == ["emissions", "energy", "circularity", "recycling"]
        emissions = report.insights[0]
        assert emissions.severity == "high"
        assert emissions.impact == "high"
        assert emissions.confidence == 0.92
        assert emissions.description == "Your CO₂ emissions are 21.7% above industry benchmarks for aluminium."
        assert emissions.potential_savings == "Reduce by 420 tCO₂e annually"

        # (40 + 75 + 95 + 92) / 4 = 75.5
        assert report.overall_score == 76
        assert report.score_grade == "Good"

    def test_priority_actions_come_from_high_severity_insights(self, smelter_inputs):
        report = generate_insights(**smelter_inputs, generated_at=GENERATED_AT)

        assert len(report.priority_actions) == 1
        action = report.priority_actions[0]
        assert action.action == "High Carbon Emissions Detected"
        assert action.timeline == "3-6 months"
        assert action.complexity == "medium"

    def test_predictions_for_good_score(self, smelter_inputs):
        predictions = generate_insights(**smelter_inputs, generated_at=GENERATED_AT).predictions

        assert predictions.next_quarter_co2 == 1330
        assert predictions.energy_savings_potential == 100000
        assert predictions.circularity_improvement_potential == pytest.approx(0.85)
        assert predictions.cost_savings_estimate == 88000

    def test_severity_ordering(self):
        report = generate_insights(
            assessment(),
            EnvironmentalImpactRecord(co2_emissions_tons=1265.0, total_energy_kwh=1_860_000.0),
            CircularityRecord(mci_score=0.9),
            [MaterialRecord(quantity_tons=100.0, recycled_content_pct=80.0)],
            generated_at=GENERATED_AT,
        )

        assert [i.severity for i in report.insights] == ["high", "medium", "low", "low"]
        assert report.insights[0].category == "energy"
        assert report.insights[1].category == "emissions"

    def test_low_circularity_triggers_audit(self):
        report = generate_insights(
            assessment(),
            EnvironmentalImpactRecord(co2_emissions_tons=1400.0, total_energy_kwh=None),
            CircularityRecord(mci_score=0.3),
            [],
            generated_at=GENERATED_AT,
        )

        assert [i.category for i in report.insights] == ["circularity"]
        assert report.overall_score == 45
        assert report.score_grade == "Needs Improvement"
        assert [a.action for a in report.priority_actions] == [
            "Low Circularity Score",
            "Comprehensive Process Audit",
        ]
        assert report.priority_actions[1].timeline == "1-2 months"
        assert report.predictions.next_quarter_co2 == 1372
        assert report.predictions.energy_savings_potential is None
        assert report.predictions.cost_savings_estimate is None
        assert report.predictions.circularity_improvement_potential == pytest.approx(0.45)

    def test_recycling_below_target(self):
        report = generate_insights(
            assessment("copper"),
            EnvironmentalImpactRecord(),
            None,
            [MaterialRecord(quantity_tons=10.0), MaterialRecord(quantity_tons=10.0, recycled_content_pct=40.0)],
            generated_at=GENERATED_AT,
        )

        insight = report.insights[0]
        assert insight.severity == "medium"
        assert insight.impact == "high"
        assert insight.description == (
            "Current recycling rate of 20.0% is below the 55% industry target for copper."
        )
        assert report.overall_score == 55
        assert [a.action for a in report.priority_actions] == ["Comprehensive Process Audit"]

    def test_confidence_override(self, smelter_inputs):
        report = generate_insights(**smelter_inputs, confidence={"emissions_high": 0.5}, generated_at=GENERATED_AT)
        confidences = {i.category: i.confidence for i in report.insights}
        assert confidences["emissions"] == 0.5
        assert confidences["recycling"] == 0.93

    def test_repeatable(self, smelter_inputs):
        first = generate_insights(**smelter_inputs).model_dump(exclude={"generated_at"})
        second = generate_insights(**smelter_inputs).model_dump(exclude={"generated_at"})
        assert first == second


class TestBranchThresholds:
    """Ratios that sit exactly on a threshold fall on the inclusive side."""

    @staticmethod
    def steel_report(co2, energy, recycled=(70.0,)):
        return generate_insights(
            assessment("steel"),
            EnvironmentalImpactRecord(co2_emissions_tons=co2, total_energy_kwh=energy),
            None,
            [MaterialRecord(quantity_tons=10.0 / len(recycled), recycled_content_pct=r) for r in recycled],
            generated_at=GENERATED_AT,
        )

    def test_emissions_at_one_point_two(self):
        # 2.76 t/t against 2.3 t/t
        insight = self.steel_report(27.6, 20000.0).insights[0]
        assert insight.category == "emissions"
        assert insight.severity == "medium"

    def test_emissions_at_benchmark(self):
        report = self.steel_report(23.0, 20000.0)
        severities = {i.category: i.severity for i in report.insights}
        assert severities["emissions"] == "low"
        # emissions 90, energy 75, recycling 92
        assert report.overall_score == 86

    def test_energy_at_one_point_one_five(self):
        report = self.steel_report(23.0, 23000.0)
        energy = next(i for i in report.insights if i.category == "energy")
        assert energy.severity == "low"
        assert energy.title == "Good Energy Efficiency"

    def test_recycling_average_on_target(self):
        report = self.steel_report(23.0, 20000.0, recycled=(69.9, 70.1))
        recycling = next(i for i in report.insights if i.category == "recycling")
        assert recycling.severity == "low"


class TestNeutralReport:
    """Inputs that cannot be scored give an empty report, never an error."""

    def test_unknown_metal(self, smelter_inputs):
        smelter_inputs["assessment"] = assessment("gold")
        report = generate_insights(**smelter_inputs, generated_at=GENERATED_AT)
        assert report.insights == []
        assert report.overall_score is None
        assert report.generated_at == GENERATED_AT

    def test_missing_impact(self, smelter_inputs):
        smelter_inputs["impact"] = None
        report = generate_insights(**smelter_inputs)
        assert report.insights == []
        assert report.predictions is None

    def test_no_branch_fires(self):
        report = generate_insights(
            assessment(), EnvironmentalImpactRecord(co2_emissions_tons=10.0, total_energy_kwh=10.0), None, []
        )
        assert report.insights == []
        assert report.overall_score is None


class TestOverallGrade:

    @pytest.mark.parametrize("score,grade", [
        (95, "Excellent"),
        (90, "Excellent"),
        (75, "Good"),
        (60, "Fair"),
        (59, "Needs Improvement"),
        (None, None),
    ])
    def test_grades(self, score, grade):
        assert overall_grade(score) == grade
