from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

from shared.models.assessment import AssessmentStatus
from shared.models.exceptions import (
    AssessmentNotFoundException, BaselineDependencyException, InsufficientDataException,
    InvalidFormDataException, MineralLCAException, RecordNotFoundException, ScoringException,
    UnsupportedMetalTypeException
)
from .benchmarks import resolve_metal_type
from .circularity import composite_circularity
from .config import settings
from .database import (
    DatabaseManager, Assessment, MaterialData, ProcessingData, TransportationData,
    EnvironmentalImpact, CircularityMetric, Scenario
)
from .estimation import estimate_missing_processing
from .impact import (
    calculate_environmental_impact, efficiency_adjusted_energy, normalize_impact,
    total_material_mass, virgin_material_pct
)
from .insights import generate_insights
from .models import (
    AssessmentCreate, AssessmentRecord, AssessmentUpdate, CircularityMetricCreate,
    CircularityMetricResponse, CircularityMetricUpdate, CircularityRecord,
    EnvironmentalImpactCreate, EnvironmentalImpactRecord, EnvironmentalImpactResponse,
    EstimationResult, InsightReport, MaterialRecord, ProcessingRecord, ScenarioCreate, ScenarioDetailResponse,
    ScenarioRecord, ScenarioResponse, ScenarioType, ScenarioUpdate, TransportRecord
)
from .scenarios import evaluate_scenario, find_baseline, project_impact, scenario_recommendations
from .statistics import compute_dashboard_stats, time_range_window

logger = logging.getLogger(__name__)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class AssessmentManager:
    """Service layer joining the persistence layer with the scoring engine"""

    # record kind -> (table, record model)
    RECORD_KINDS = {
        "material": (MaterialData, MaterialRecord),
        "processing": (ProcessingData, ProcessingRecord),
        "transportation": (TransportationData, TransportRecord),
    }

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    # ------------------------------------------------------------------
    # Assessments
    # ------------------------------------------------------------------

    def _require_assessment(self, assessment_id: int) -> AssessmentRecord:
        row = self.db_manager.get_assessment(assessment_id)
        if row is None:
            raise AssessmentNotFoundException(f"Assessment {assessment_id} not found")
        return AssessmentRecord.model_validate(row)

    def create_assessment(self, data: AssessmentCreate) -> AssessmentRecord:
        row = self.db_manager.create_record(Assessment, data.model_dump(mode="json"))
        return AssessmentRecord.model_validate(row)

    def get_assessment(self, assessment_id: int) -> AssessmentRecord:
        return self._require_assessment(assessment_id)

    def list_assessments(
        self,
        status: Optional[str] = None,
        metal_type: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AssessmentRecord]:
        rows = self.db_manager.list_assessments(
            status=status, metal_type=metal_type, search=search, limit=limit, offset=offset
        )
        return [AssessmentRecord.model_validate(r) for r in rows]

    def update_assessment(self, assessment_id: int, data: AssessmentUpdate) -> AssessmentRecord:
        values = data.model_dump(mode="json", exclude_unset=True, exclude_none=True)
        row = self.db_manager.update_record(Assessment, assessment_id, values)
        if row is None:
            raise AssessmentNotFoundException(f"Assessment {assessment_id} not found")
        return AssessmentRecord.model_validate(row)

    def delete_assessment(self, assessment_id: int) -> AssessmentRecord:
        row = self.db_manager.delete_assessment(assessment_id)
        if row is None:
            raise AssessmentNotFoundException(f"Assessment {assessment_id} not found")
        return AssessmentRecord.model_validate(row)

    # ------------------------------------------------------------------
    # Material / processing / transportation rows
    # ------------------------------------------------------------------

    def _record_values(self, kind: str, values: Dict[str, Any], existing: Optional[Any] = None) -> Dict[str, Any]:
        """Derived columns written alongside the submitted ones"""
        if kind == "material" and "recycled_content_pct" in values:
            values["virgin_material_pct"] = virgin_material_pct(values["recycled_content_pct"])

        if kind == "processing" and values.get("energy_consumption_kwh") is not None:
            efficiency = values.get("equipment_efficiency_pct")
            if efficiency is None and existing is not None:
                efficiency = existing.equipment_efficiency_pct
            values["energy_consumption_kwh"] = efficiency_adjusted_energy(values["energy_consumption_kwh"], efficiency)

        return values

    def add_record(self, kind: str, assessment_id: int, data) -> Any:
        table, record_model = self.RECORD_KINDS[kind]
        self._require_assessment(assessment_id)

        values = self._record_values(kind, data.model_dump(mode="json"))
        values["assessment_id"] = assessment_id
        row = self.db_manager.create_record(table, values)
        return record_model.model_validate(row)

    def list_records(self, kind: str, assessment_id: int) -> List[Any]:
        table, record_model = self.RECORD_KINDS[kind]
        self._require_assessment(assessment_id)
        return [record_model.model_validate(r) for r in self.db_manager.list_records(table, [assessment_id])]

    def update_record(self, kind: str, record_id: int, data) -> Any:
        table, record_model = self.RECORD_KINDS[kind]
        existing = self.db_manager.get_record(table, record_id)
        if existing is None:
            raise RecordNotFoundException(f"{kind.capitalize()} record {record_id} not found")

        values = self._record_values(kind, data.model_dump(mode="json", exclude_unset=True), existing)
        row = self.db_manager.update_record(table, record_id, values)
        if row is None:
            raise RecordNotFoundException(f"{kind.capitalize()} record {record_id} not found")
        return record_model.model_validate(row)

    def delete_record(self, kind: str, record_id: int) -> Any:
        table, record_model = self.RECORD_KINDS[kind]
        row = self.db_manager.delete_record(table, record_id)
        if row is None:
            raise RecordNotFoundException(f"{kind.capitalize()} record {record_id} not found")
        return record_model.model_validate(row)

    def _load_inputs(self, assessment_id: int):
        materials = [MaterialRecord.model_validate(r) for r in self.db_manager.list_records(MaterialData, [assessment_id])]
        processing = [ProcessingRecord.model_validate(r) for r in self.db_manager.list_records(ProcessingData, [assessment_id])]
        transportation = [TransportRecord.model_validate(r) for r in self.db_manager.list_records(TransportationData, [assessment_id])]
        return materials, processing, transportation

    # ------------------------------------------------------------------
    # Environmental impact
    # ------------------------------------------------------------------

    def _impact_response(self, row, metal_type: str, materials: List[MaterialRecord]) -> EnvironmentalImpactResponse:
        record = EnvironmentalImpactRecord.model_validate(row)
        mass = total_material_mass(materials)
        normalization = normalize_impact(record, mass, metal_type)
        return EnvironmentalImpactResponse(
            **record.model_dump(),
            total_material_tons=mass,
            benchmark_comparison=normalization,
            sustainability_rating=normalization.sustainability_rating if normalization else None,
        )

    def calculate_impacts(self, assessment_id: int) -> Tuple[EnvironmentalImpactResponse, bool]:
        """Recalculate and store the impact totals; also marks the assessment completed"""
        assessment = self._require_assessment(assessment_id)
        materials, processing, transportation = self._load_inputs(assessment_id)

        totals = calculate_environmental_impact(assessment.metal_type, materials, processing, transportation)
        if totals is None:
            raise InsufficientDataException(
                f"Assessment {assessment_id} needs at least one material and one processing record"
            )

        row, created = self.db_manager.upsert_environmental_impact(
            assessment_id,
            {
                "co2_emissions_tons": totals.co2_emissions_tons,
                "total_energy_kwh": totals.total_energy_kwh,
                "total_water_m3": totals.total_water_m3,
                "total_waste_tons": totals.total_waste_tons,
            },
            completed_status=AssessmentStatus.COMPLETED.value,
        )
        return self._impact_response(row, assessment.metal_type, materials), created

    def save_environmental_impact(
        self, assessment_id: int, data: EnvironmentalImpactCreate
    ) -> Tuple[EnvironmentalImpactResponse, bool]:
        """Store externally supplied impact totals for an assessment"""
        assessment = self._require_assessment(assessment_id)
        values = data.model_dump(exclude_none=True)
        row, created = self.db_manager.upsert_environmental_impact(assessment_id, values)
        materials = [MaterialRecord.model_validate(r) for r in self.db_manager.list_records(MaterialData, [assessment_id])]
        return self._impact_response(row, assessment.metal_type, materials), created

    def get_environmental_impact(self, assessment_id: int) -> EnvironmentalImpactResponse:
        assessment = self._require_assessment(assessment_id)
        row = self.db_manager.get_environmental_impact(assessment_id)
        if row is None:
            raise RecordNotFoundException(f"No environmental impact calculated for assessment {assessment_id}")
        materials = [MaterialRecord.model_validate(r) for r in self.db_manager.list_records(MaterialData, [assessment_id])]
        return self._impact_response(row, assessment.metal_type, materials)

    # ------------------------------------------------------------------
    # Insights and estimation
    # ------------------------------------------------------------------

    def get_insights(self, assessment_id: int) -> InsightReport:
        assessment = self._require_assessment(assessment_id)
        impact_row = self.db_manager.get_environmental_impact(assessment_id)
        circularity_row = self.db_manager.get_circularity_for_assessment(assessment_id)
        materials = [MaterialRecord.model_validate(r) for r in self.db_manager.list_records(MaterialData, [assessment_id])]

        return generate_insights(
            assessment,
            EnvironmentalImpactRecord.model_validate(impact_row) if impact_row is not None else None,
            CircularityRecord.model_validate(circularity_row) if circularity_row is not None else None,
            materials,
            confidence=settings.insight_confidence,
        )

    def estimate_missing(self, assessment_id: int) -> EstimationResult:
        """Fill gaps in the assessment's processing rows and store the estimates"""
        assessment = self._require_assessment(assessment_id)
        if resolve_metal_type(assessment.metal_type) is None:
            raise UnsupportedMetalTypeException(f"Unsupported metal type: {assessment.metal_type}")

        materials, processing, _ = self._load_inputs(assessment_id)
        result = estimate_missing_processing(assessment.metal_type, materials, processing)
        self.db_manager.apply_processing_estimates(result.updates)
        return result

    # ------------------------------------------------------------------
    # Circularity metrics
    # ------------------------------------------------------------------

    @staticmethod
    def _circularity_response(row) -> CircularityMetricResponse:
        record = CircularityRecord.model_validate(row)
        composite = composite_circularity(record)
        return CircularityMetricResponse(
            **record.model_dump(),
            composite_score=composite.score if composite else None,
            circularity_grade=composite.grade if composite else None,
        )

    def create_circularity_metric(self, data: CircularityMetricCreate) -> CircularityMetricResponse:
        self._require_assessment(data.assessment_id)
        row = self.db_manager.create_record(CircularityMetric, data.model_dump())
        return self._circularity_response(row)

    def get_circularity_metric(self, metric_id: int) -> CircularityMetricResponse:
        row = self.db_manager.get_record(CircularityMetric, metric_id)
        if row is None:
            raise RecordNotFoundException(f"Circularity metric {metric_id} not found")
        return self._circularity_response(row)

    def list_circularity_metrics(
        self,
        assessment_id: Optional[int] = None,
        grade: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[CircularityMetricResponse]:
        """List metrics with their derived grade; the grade filter runs after derivation"""
        rows = self.db_manager.list_records(
            CircularityMetric,
            [assessment_id] if assessment_id is not None else None,
        )
        responses = [self._circularity_response(r) for r in rows]
        if grade:
            responses = [r for r in responses if (r.circularity_grade or "").lower() == grade.lower()]
        end = offset + limit if limit is not None else None
        return responses[offset:end]

    def update_circularity_metric(self, metric_id: int, data: CircularityMetricUpdate) -> CircularityMetricResponse:
        row = self.db_manager.update_record(CircularityMetric, metric_id, data.model_dump(exclude_unset=True))
        if row is None:
            raise RecordNotFoundException(f"Circularity metric {metric_id} not found")
        return self._circularity_response(row)

    def delete_circularity_metric(self, metric_id: int) -> CircularityMetricResponse:
        row = self.db_manager.delete_record(CircularityMetric, metric_id)
        if row is None:
            raise RecordNotFoundException(f"Circularity metric {metric_id} not found")
        return self._circularity_response(row)

    # ------------------------------------------------------------------
    # Scenarios
    # ------------------------------------------------------------------

    def _siblings(self, assessment_id: int) -> List[ScenarioRecord]:
        return [ScenarioRecord.model_validate(r) for r in self.db_manager.list_records(Scenario, [assessment_id])]

    @staticmethod
    def _scenario_response(scenario: ScenarioRecord, siblings: List[ScenarioRecord]) -> ScenarioResponse:
        evaluation = evaluate_scenario(
            scenario,
            baseline=find_baseline(siblings),
            related_count=max(len(siblings) - 1, 0),
        )
        return ScenarioResponse(**scenario.model_dump(), evaluation=evaluation)

    def create_scenario(self, data: ScenarioCreate) -> ScenarioResponse:
        self._require_assessment(data.assessment_id)
        row = self.db_manager.create_record(Scenario, data.model_dump(mode="json"))
        scenario = ScenarioRecord.model_validate(row)
        return self._scenario_response(scenario, self._siblings(data.assessment_id))

    def list_scenarios(
        self,
        assessment_id: Optional[int] = None,
        scenario_type: Optional[str] = None,
        feasible: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[ScenarioResponse]:
        rows = self.db_manager.list_records(
            Scenario,
            [assessment_id] if assessment_id is not None else None,
        )
        scenarios = [ScenarioRecord.model_validate(r) for r in rows]

        by_assessment: Dict[int, List[ScenarioRecord]] = {}
        for scenario in scenarios:
            by_assessment.setdefault(scenario.assessment_id, []).append(scenario)

        responses = [
            self._scenario_response(s, by_assessment[s.assessment_id])
            for s in scenarios
            if scenario_type is None or s.scenario_type == scenario_type
        ]

        if feasible is not None:
            threshold = settings.feasible_threshold
            responses = [r for r in responses if (r.evaluation.feasibility_score > threshold) == feasible]

        end = offset + limit if limit is not None else None
        return responses[offset:end]

    def get_scenario(self, scenario_id: int) -> ScenarioDetailResponse:
        """Scenario with evaluation, CO2 projection, recommendations and its siblings"""
        row = self.db_manager.get_record(Scenario, scenario_id)
        if row is None:
            raise RecordNotFoundException(f"Scenario {scenario_id} not found")
        scenario = ScenarioRecord.model_validate(row)

        assessment = self._require_assessment(scenario.assessment_id)
        siblings = self._siblings(scenario.assessment_id)
        impact_row = self.db_manager.get_environmental_impact(scenario.assessment_id)
        impact = EnvironmentalImpactRecord.model_validate(impact_row) if impact_row is not None else None

        base = self._scenario_response(scenario, siblings)
        return ScenarioDetailResponse(
            **base.model_dump(),
            project_name=assessment.project_name,
            metal_type=assessment.metal_type,
            impact_projections=project_impact(scenario, impact),
            recommendations=scenario_recommendations(
                scenario.scenario_type, scenario.co2_reduction_pct, scenario.cost_difference_pct, assessment.metal_type
            ),
            other_scenarios=[s for s in siblings if s.id != scenario.id],
        )

    def update_scenario(self, scenario_id: int, data: ScenarioUpdate) -> ScenarioResponse:
        row = self.db_manager.update_record(Scenario, scenario_id, data.model_dump(mode="json", exclude_unset=True))
        if row is None:
            raise RecordNotFoundException(f"Scenario {scenario_id} not found")
        scenario = ScenarioRecord.model_validate(row)
        return self._scenario_response(scenario, self._siblings(scenario.assessment_id))

    def delete_scenario(self, scenario_id: int) -> ScenarioRecord:
        """Delete a scenario; a baseline cannot go while other scenarios depend on it"""
        row = self.db_manager.get_record(Scenario, scenario_id)
        if row is None:
            raise RecordNotFoundException(f"Scenario {scenario_id} not found")

        scenario = ScenarioRecord.model_validate(row)
        if scenario.scenario_type == ScenarioType.BASELINE.value:
            others = [s for s in self._siblings(scenario.assessment_id) if s.id != scenario.id]
            if others:
                raise BaselineDependencyException(
                    f"Cannot delete baseline scenario {scenario_id}: {len(others)} other scenario(s) "
                    f"of assessment {scenario.assessment_id} are compared against it"
                )

        deleted = self.db_manager.delete_record(Scenario, scenario_id)
        if deleted is None:
            raise RecordNotFoundException(f"Scenario {scenario_id} not found")
        return scenario

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    def dashboard_stats(self, time_range: str = "30d", metal_type: Optional[str] = None) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        try:
            start, previous_start = time_range_window(time_range, now)
        except ValueError as e:
            raise InvalidFormDataException(str(e))

        assessments = [
            AssessmentRecord.model_validate(r)
            for r in self.db_manager.list_assessments(metal_type=metal_type, created_since=_naive_utc(start))
        ]
        ids = [a.id for a in assessments]

        impacts = [EnvironmentalImpactRecord.model_validate(r) for r in self.db_manager.list_records(EnvironmentalImpact, ids)]
        circularity = [CircularityRecord.model_validate(r) for r in self.db_manager.list_records(CircularityMetric, ids)]
        materials = [MaterialRecord.model_validate(r) for r in self.db_manager.list_records(MaterialData, ids)]

        previous_impacts = []
        if start > previous_start:
            previous_impacts = [
                EnvironmentalImpactRecord.model_validate(r)
                for r in self.db_manager.list_impacts_calculated_between(_naive_utc(previous_start), _naive_utc(start))
            ]

        stats = compute_dashboard_stats(assessments, impacts, circularity, materials, previous_impacts)
        stats["time_range"] = time_range
        stats["timestamp"] = now.isoformat()
        return stats

    # ------------------------------------------------------------------
    # Event driven scoring
    # ------------------------------------------------------------------

    def score_assessment(self, assessment_id: int) -> Dict[str, Any]:
        """Recalculate impacts and insights for one assessment; used by the Kafka handler"""
        impact, created = self.calculate_impacts(assessment_id)

        try:
            report = self.get_insights(assessment_id)
            circularity_row = self.db_manager.get_circularity_for_assessment(assessment_id)
            composite = composite_circularity(
                CircularityRecord.model_validate(circularity_row) if circularity_row is not None else None
            )
        except MineralLCAException:
            raise
        except Exception as e:
            logger.error(f"Scoring failed for assessment {assessment_id}: {e}")
            raise ScoringException(f"Failed to score assessment {assessment_id}: {e}")

        return {
            "assessment_id": assessment_id,
            "environmental_impact": impact.model_dump(mode="json"),
            "impact_created": created,
            "circularity": composite.model_dump() if composite else None,
            "insights": report.model_dump(mode="json"),
            "overall_score": report.overall_score,
        }
