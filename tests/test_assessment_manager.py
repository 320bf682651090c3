"""Tests for the service layer wiring records, scoring and persistence together."""

import pytest

from shared.models.exceptions import (
    AssessmentNotFoundException,
    BaselineDependencyException,
    InsufficientDataException,
    InvalidFormDataException,
    RecordNotFoundException,
    ScoringException,
    UnsupportedMetalTypeException,
)
from services.mineral_lca.database import Assessment
from services.mineral_lca.models import (
    AssessmentUpdate,
    CircularityMetricCreate,
    EnvironmentalImpactCreate,
    MaterialDataCreate,
    MaterialDataUpdate,
    ProcessingDataCreate,
    ProcessingDataUpdate,
    ScenarioCreate,
    ScenarioUpdate,
)


def add_inputs(manager, assessment_id):
    manager.add_record("material", assessment_id, MaterialDataCreate(quantity_tons=100.0, recycled_content_pct=70.0))
    manager.add_record("processing", assessment_id, ProcessingDataCreate(energy_consumption_kwh=1_000_000.0))


class TestAssessments:

    def test_create_and_get(self, assessment_manager, aluminium_assessment):
        fetched = assessment_manager.get_assessment(aluminium_assessment.id)
        assert fetched.project_name == "Smelter Line 2"
        assert fetched.metal_type == "aluminium"
        assert fetched.status == "draft"

    def test_missing_assessment(self, assessment_manager):
        with pytest.raises(AssessmentNotFoundException):
            assessment_manager.get_assessment(404)
        with pytest.raises(AssessmentNotFoundException):
            assessment_manager.update_assessment(404, AssessmentUpdate(project_name="x"))

    def test_partial_update(self, assessment_manager, aluminium_assessment):
        updated = assessment_manager.update_assessment(aluminium_assessment.id, AssessmentUpdate(status="in_progress"))
        assert updated.status == "in_progress"
        assert updated.project_name == "Smelter Line 2"


class TestRecords:

    def test_material_virgin_share_is_derived(self, assessment_manager, aluminium_assessment):
        material = assessment_manager.add_record(
            "material", aluminium_assessment.id, MaterialDataCreate(quantity_tons=5.0, recycled_content_pct=30.0)
        )
        assert material.virgin_material_pct == 70.0

        updated = assessment_manager.update_record("material", material.id, MaterialDataUpdate(recycled_content_pct=45.0))
        assert updated.virgin_material_pct == 55.0
        assert updated.quantity_tons == 5.0

    def test_processing_energy_is_efficiency_adjusted(self, assessment_manager, aluminium_assessment):
        row = assessment_manager.add_record(
            "processing",
            aluminium_assessment.id,
            ProcessingDataCreate(energy_consumption_kwh=800.0, equipment_efficiency_pct=80.0),
        )
        assert row.energy_consumption_kwh == pytest.approx(1000.0)

        updated = assessment_manager.update_record("processing", row.id, ProcessingDataUpdate(energy_consumption_kwh=400.0))
        assert updated.energy_consumption_kwh == pytest.approx(500.0)

    def test_missing_record(self, assessment_manager):
        with pytest.raises(RecordNotFoundException):
            assessment_manager.delete_record("transportation", 12345)

    def test_record_needs_existing_assessment(self, assessment_manager):
        with pytest.raises(AssessmentNotFoundException):
            assessment_manager.add_record("material", 404, MaterialDataCreate(quantity_tons=1.0))


class TestEnvironmentalImpact:

    def test_calculation_requires_inputs(self, assessment_manager, aluminium_assessment):
        with pytest.raises(InsufficientDataException):
            assessment_manager.calculate_impacts(aluminium_assessment.id)

    def test_calculate_then_recalculate(self, assessment_manager, aluminium_assessment):
        add_inputs(assessment_manager, aluminium_assessment.id)

        first, created = assessment_manager.calculate_impacts(aluminium_assessment.id)
        assert created is True
        # (100 * 17.5 * 0.5 + 1e6 * 0.5) / 1000
        assert first.co2_emissions_tons == pytest.approx(500.875)
        assert first.total_material_tons == 100.0
        assert first.sustainability_rating == "Excellent"
        assert assessment_manager.get_assessment(aluminium_assessment.id).status == "completed"

        second, created = assessment_manager.calculate_impacts(aluminium_assessment.id)
        assert created is False
        assert second.id == first.id

    def test_save_supplied_totals(self, assessment_manager, aluminium_assessment):
        assessment_manager.add_record("material", aluminium_assessment.id, MaterialDataCreate(quantity_tons=100.0))

        response, created = assessment_manager.save_environmental_impact(
            aluminium_assessment.id,
            EnvironmentalImpactCreate(co2_emissions_tons=1400.0, total_energy_kwh=1_550_000.0),
        )

        assert created is True
        assert response.benchmark_comparison.co2_ratio == pytest.approx(1.2174, abs=1e-4)
        assert response.sustainability_rating == "Below Average"
        assert assessment_manager.get_assessment(aluminium_assessment.id).status == "draft"

    def test_get_before_calculation(self, assessment_manager, aluminium_assessment):
        with pytest.raises(RecordNotFoundException):
            assessment_manager.get_environmental_impact(aluminium_assessment.id)


class TestInsightsAndEstimation:

    def test_insights_after_calculation(self, assessment_manager, aluminium_assessment):
        add_inputs(assessment_manager, aluminium_assessment.id)
        assessment_manager.calculate_impacts(aluminium_assessment.id)

        report = assessment_manager.get_insights(aluminium_assessment.id)

        # emissions 90, energy 75, recycling 92
        assert report.overall_score == 86
        assert report.score_grade == "Good"
        assert {i.category for i in report.insights} == {"emissions", "energy", "recycling"}

    def test_insights_without_impact_are_neutral(self, assessment_manager, aluminium_assessment):
        report = assessment_manager.get_insights(aluminium_assessment.id)
        assert report.insights == []
        assert report.overall_score is None

    def test_estimate_fills_processing_gaps(self, assessment_manager, aluminium_assessment):
        assessment_manager.add_record("material", aluminium_assessment.id, MaterialDataCreate(quantity_tons=2.0))
        row = assessment_manager.add_record("processing", aluminium_assessment.id, ProcessingDataCreate())

        result = assessment_manager.estimate_missing(aluminium_assessment.id)

        assert result.estimated_count == 1
        stored = assessment_manager.list_records("processing", aluminium_assessment.id)[0]
        assert stored.id == row.id
        assert stored.ai_estimated is True
        assert stored.energy_consumption_kwh == pytest.approx(16800.0)

    def test_estimate_rejects_unknown_metal(self, assessment_manager, db_manager):
        row = db_manager.create_record(Assessment, {"project_name": "Legacy", "metal_type": "gold"})
        with pytest.raises(UnsupportedMetalTypeException):
            assessment_manager.estimate_missing(row.id)


class TestCircularityMetrics:

    def test_composite_and_grade_filter(self, assessment_manager, aluminium_assessment):
        good = assessment_manager.create_circularity_metric(CircularityMetricCreate(
            assessment_id=aluminium_assessment.id,
            mci_score=0.75,
            recycling_potential_pct=80.0,
            resource_efficiency_score=8.0,
            reuse_potential_pct=60.0,
        ))
        assessment_manager.create_circularity_metric(CircularityMetricCreate(
            assessment_id=aluminium_assessment.id, mci_score=0.2
        ))

        assert good.composite_score == pytest.approx(0.75)
        assert good.circularity_grade == "Good"

        poor = assessment_manager.list_circularity_metrics(grade="Poor")
        assert len(poor) == 1
        assert poor[0].mci_score == 0.2
        assert len(assessment_manager.list_circularity_metrics(assessment_id=aluminium_assessment.id, limit=1)) == 1

    def test_missing_metric(self, assessment_manager):
        with pytest.raises(RecordNotFoundException):
            assessment_manager.get_circularity_metric(1)


class TestScenarios:

    @pytest.fixture
    def scenarios(self, assessment_manager, aluminium_assessment):
        baseline = assessment_manager.create_scenario(ScenarioCreate(
            assessment_id=aluminium_assessment.id, name="Current", scenario_type="baseline",
            co2_reduction_pct=0.0, cost_difference_pct=0.0,
        ))
        circular = assessment_manager.create_scenario(ScenarioCreate(
            assessment_id=aluminium_assessment.id, name="Scrap loop", scenario_type="circular",
            co2_reduction_pct=25.0, cost_difference_pct=-10.0,
        ))
        return baseline, circular

    def test_evaluation_against_baseline(self, scenarios):
        baseline, circular = scenarios

        assert baseline.evaluation.comparison is None
        assert circular.evaluation.feasibility_score == 0.667
        assert circular.evaluation.comparison.baseline_scenario_id == baseline.id
        assert circular.evaluation.comparison.co2_improvement_vs_baseline == 25.0
        assert circular.evaluation.related_scenarios_count == 1

    def test_feasible_filter(self, assessment_manager, scenarios):
        baseline, circular = scenarios
        # baseline feasibility is 0.6, not above the 0.7 threshold
        feasible = assessment_manager.list_scenarios(feasible=False)
        assert [s.id for s in feasible] == [baseline.id, circular.id]
        assert assessment_manager.list_scenarios(feasible=True) == []
        assert [s.id for s in assessment_manager.list_scenarios(scenario_type="circular")] == [circular.id]

    def test_detail_view(self, assessment_manager, aluminium_assessment, scenarios):
        _, circular = scenarios
        assessment_manager.save_environmental_impact(
            aluminium_assessment.id, EnvironmentalImpactCreate(co2_emissions_tons=1000.0)
        )

        detail = assessment_manager.get_scenario(circular.id)

        assert detail.project_name == "Smelter Line 2"
        assert detail.impact_projections.projected_co2_emissions_tons == 750.0
        assert "Focus on increasing recycled content percentage" in detail.recommendations
        assert [s.name for s in detail.other_scenarios] == ["Current"]

    def test_update_rescores(self, assessment_manager, scenarios):
        _, circular = scenarios
        updated = assessment_manager.update_scenario(circular.id, ScenarioUpdate(co2_reduction_pct=40.0))
        assert updated.evaluation.implementation_complexity == "High"

    def test_baseline_cannot_be_deleted_while_referenced(self, assessment_manager, scenarios):
        baseline, circular = scenarios

        with pytest.raises(BaselineDependencyException):
            assessment_manager.delete_scenario(baseline.id)

        assessment_manager.delete_scenario(circular.id)
        assert assessment_manager.delete_scenario(baseline.id).id == baseline.id


class TestDashboardAndScoring:

    def test_dashboard_stats(self, assessment_manager, aluminium_assessment):
        add_inputs(assessment_manager, aluminium_assessment.id)
        assessment_manager.calculate_impacts(aluminium_assessment.id)

        stats = assessment_manager.dashboard_stats("7d")

        assert stats["time_range"] == "7d"
        assert stats["total_projects"] == 1
        assert stats["completed_projects"] == 1
        assert stats["aggregate_metrics"]["total_co2_tons"] == pytest.approx(500.88)
        assert stats["top_performers"][0]["assessment_id"] == aluminium_assessment.id

    def test_dashboard_rejects_unknown_range(self, assessment_manager):
        with pytest.raises(InvalidFormDataException):
            assessment_manager.dashboard_stats("1y")

    def test_score_assessment(self, assessment_manager, aluminium_assessment):
        add_inputs(assessment_manager, aluminium_assessment.id)

        result = assessment_manager.score_assessment(aluminium_assessment.id)

        assert result["assessment_id"] == aluminium_assessment.id
        assert result["impact_created"] is True
        assert result["overall_score"] == 86
        assert result["circularity"] is None

    def test_engine_failure_becomes_scoring_error(self, assessment_manager, aluminium_assessment, monkeypatch):
        add_inputs(assessment_manager, aluminium_assessment.id)

        def failing_insights(*args, **kwargs):
            raise ZeroDivisionError("float division by zero")

        monkeypatch.setattr("services.mineral_lca.assessment_manager.generate_insights", failing_insights)

        with pytest.raises(ScoringException) as exc_info:
            assessment_manager.score_assessment(aluminium_assessment.id)
        assert exc_info.value.error_code == "scoring_error"
