from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.models.assessment import AssessmentStatus
from .benchmarks import MetalType


class ScenarioType(str, Enum):
    BASELINE = "baseline"
    CIRCULAR = "circular"
    OPTIMIZED = "optimized"


class ImplementationComplexity(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class InsightImpact(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    POSITIVE = "positive"


class ExtractionMethod(str, Enum):
    OPEN_PIT = "open_pit"
    UNDERGROUND = "underground"
    RECYCLED = "recycled"


class ProcessType(str, Enum):
    CRUSHING = "crushing"
    GRINDING = "grinding"
    SMELTING = "smelting"
    REFINING = "refining"


class TransportMode(str, Enum):
    TRUCK = "truck"
    RAIL = "rail"
    SHIP = "ship"


# ---------------------------------------------------------------------------
# Records consumed by the scoring engine. Built from ORM rows or plain dicts;
# ranges are enforced by the *Create models at the API boundary, not here.
# ---------------------------------------------------------------------------

class RecordModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class AssessmentRecord(RecordModel):
    id: Optional[int] = None
    project_name: str
    metal_type: str
    status: AssessmentStatus = AssessmentStatus.DRAFT
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MaterialRecord(RecordModel):
    id: Optional[int] = None
    assessment_id: Optional[int] = None
    ore_type: Optional[str] = None
    ore_grade_pct: Optional[float] = None
    moisture_pct: Optional[float] = None
    quantity_tons: Optional[float] = None
    extraction_method: Optional[str] = None
    recycled_content_pct: Optional[float] = None
    virgin_material_pct: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProcessingRecord(RecordModel):
    id: Optional[int] = None
    assessment_id: Optional[int] = None
    energy_source: Optional[str] = None
    energy_consumption_kwh: Optional[float] = None
    equipment_efficiency_pct: Optional[float] = None
    waste_generation_tons: Optional[float] = None
    water_usage_m3: Optional[float] = None
    process_type: Optional[str] = None
    ai_estimated: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TransportRecord(RecordModel):
    id: Optional[int] = None
    assessment_id: Optional[int] = None
    distance_km: Optional[float] = None
    mode: Optional[str] = None
    fuel_type: Optional[str] = None
    load_capacity_tons: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EnvironmentalImpactRecord(RecordModel):
    id: Optional[int] = None
    assessment_id: Optional[int] = None
    co2_emissions_tons: Optional[float] = None
    total_energy_kwh: Optional[float] = None
    total_water_m3: Optional[float] = None
    total_waste_tons: Optional[float] = None
    calculated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CircularityRecord(RecordModel):
    id: Optional[int] = None
    assessment_id: Optional[int] = None
    mci_score: Optional[float] = None
    recycling_potential_pct: Optional[float] = None
    resource_efficiency_score: Optional[float] = None
    extended_product_life_years: Optional[float] = None
    reuse_potential_pct: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ScenarioRecord(RecordModel):
    id: Optional[int] = None
    assessment_id: Optional[int] = None
    name: str = ""
    description: Optional[str] = None
    scenario_type: ScenarioType
    co2_reduction_pct: Optional[float] = None
    cost_difference_pct: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Engine results
# ---------------------------------------------------------------------------

class ImpactTotals(BaseModel):
    co2_emissions_tons: float
    total_energy_kwh: float
    total_water_m3: float
    total_waste_tons: float
    total_material_tons: float
    co2_breakdown_tons: Dict[str, float] = Field(default_factory=dict)


class ImpactNormalization(BaseModel):
    co2_per_ton: float
    energy_per_ton: float
    co2_benchmark: float
    energy_benchmark: float
    co2_ratio: float
    energy_ratio: float
    co2_performance: str
    energy_performance: str
    water_per_ton: Optional[float] = None
    water_ratio: Optional[float] = None
    waste_per_ton: Optional[float] = None
    waste_ratio: Optional[float] = None
    average_ratio: float
    sustainability_rating: str


class CircularityComposite(BaseModel):
    score: float
    grade: str
    components_used: List[str] = Field(default_factory=list)


class ScenarioComparison(BaseModel):
    baseline_scenario_id: Optional[int] = None
    co2_improvement_vs_baseline: Optional[float] = None
    cost_difference_vs_baseline: Optional[float] = None


class ScenarioEvaluation(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    scenario_id: Optional[int] = None
    feasibility_score: float
    implementation_complexity: ImplementationComplexity
    comparison: Optional[ScenarioComparison] = None
    related_scenarios_count: int = 0


class ImpactProjection(BaseModel):
    baseline_co2_emissions_tons: float
    projected_co2_emissions_tons: float
    co2_savings_tons: float
    co2_reduction_pct: float
    cost_difference_pct: Optional[float] = None


class Insight(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    category: str
    severity: Severity
    title: str
    description: str
    recommendation: str
    potential_savings: str
    impact: InsightImpact
    confidence: float


class PriorityAction(BaseModel):
    action: str
    description: str
    expected_impact: str
    timeline: str
    complexity: str


class Predictions(BaseModel):
    next_quarter_co2: Optional[int] = None
    energy_savings_potential: Optional[int] = None
    circularity_improvement_potential: Optional[float] = None
    cost_savings_estimate: Optional[int] = None


class InsightReport(BaseModel):
    insights: List[Insight] = Field(default_factory=list)
    overall_score: Optional[int] = None
    score_grade: Optional[str] = None
    priority_actions: List[PriorityAction] = Field(default_factory=list)
    predictions: Optional[Predictions] = None
    generated_at: datetime


class EstimationResult(BaseModel):
    estimated_count: int = 0
    estimated_fields: List[str] = Field(default_factory=list)
    confidence_score: float
    updates: Dict[int, Dict[str, float]] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------

class AssessmentCreate(BaseModel):
    project_name: str = Field(..., min_length=1, description="Project name")
    metal_type: MetalType = Field(..., description="Metal being processed")
    status: AssessmentStatus = AssessmentStatus.DRAFT

    @field_validator('project_name')
    @classmethod
    def strip_project_name(cls, v):
        if not v.strip():
            raise ValueError("Project name cannot be empty")
        return v.strip()


class AssessmentUpdate(BaseModel):
    project_name: Optional[str] = Field(None, min_length=1)
    metal_type: Optional[MetalType] = None
    status: Optional[AssessmentStatus] = None


class MaterialDataCreate(BaseModel):
    ore_type: Optional[str] = None
    ore_grade_pct: Optional[float] = Field(None, ge=0, le=100)
    moisture_pct: Optional[float] = Field(None, ge=0, le=100)
    quantity_tons: float = Field(..., gt=0, description="Material mass in tons")
    extraction_method: Optional[ExtractionMethod] = None
    recycled_content_pct: Optional[float] = Field(None, ge=0, le=100)


class ProcessingDataCreate(BaseModel):
    energy_source: Optional[str] = None
    energy_consumption_kwh: Optional[float] = Field(None, gt=0, description="Raw energy use before efficiency adjustment")
    equipment_efficiency_pct: Optional[float] = Field(None, ge=0, le=100)
    waste_generation_tons: Optional[float] = Field(None, ge=0)
    water_usage_m3: Optional[float] = Field(None, ge=0)
    process_type: Optional[ProcessType] = None


class TransportationDataCreate(BaseModel):
    distance_km: float = Field(..., ge=0)
    mode: TransportMode = TransportMode.TRUCK
    fuel_type: Optional[str] = None
    load_capacity_tons: float = Field(..., ge=0)


class MaterialDataUpdate(BaseModel):
    ore_type: Optional[str] = None
    ore_grade_pct: Optional[float] = Field(None, ge=0, le=100)
    moisture_pct: Optional[float] = Field(None, ge=0, le=100)
    quantity_tons: Optional[float] = Field(None, gt=0)
    extraction_method: Optional[ExtractionMethod] = None
    recycled_content_pct: Optional[float] = Field(None, ge=0, le=100)


class ProcessingDataUpdate(ProcessingDataCreate):
    pass


class TransportationDataUpdate(BaseModel):
    distance_km: Optional[float] = Field(None, ge=0)
    mode: Optional[TransportMode] = None
    fuel_type: Optional[str] = None
    load_capacity_tons: Optional[float] = Field(None, ge=0)


class EnvironmentalImpactCreate(BaseModel):
    co2_emissions_tons: Optional[float] = Field(None, ge=0)
    total_energy_kwh: Optional[float] = Field(None, ge=0)
    total_water_m3: Optional[float] = Field(None, ge=0)
    total_waste_tons: Optional[float] = Field(None, ge=0)
    calculated_at: Optional[datetime] = None


class CircularityMetricCreate(BaseModel):
    assessment_id: int
    mci_score: Optional[float] = Field(None, ge=0, le=1)
    recycling_potential_pct: Optional[float] = Field(None, ge=0, le=100)
    resource_efficiency_score: Optional[float] = Field(None, ge=0, le=10)
    extended_product_life_years: Optional[float] = Field(None, ge=0)
    reuse_potential_pct: Optional[float] = Field(None, ge=0, le=100)


class CircularityMetricUpdate(BaseModel):
    mci_score: Optional[float] = Field(None, ge=0, le=1)
    recycling_potential_pct: Optional[float] = Field(None, ge=0, le=100)
    resource_efficiency_score: Optional[float] = Field(None, ge=0, le=10)
    extended_product_life_years: Optional[float] = Field(None, ge=0)
    reuse_potential_pct: Optional[float] = Field(None, ge=0, le=100)


class ScenarioCreate(BaseModel):
    assessment_id: int
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    scenario_type: ScenarioType
    co2_reduction_pct: Optional[float] = Field(None, ge=-100, le=100)
    cost_difference_pct: Optional[float] = Field(None, ge=-100, le=1000)

    @field_validator('name')
    @classmethod
    def strip_name(cls, v):
        if not v.strip():
            raise ValueError("Name cannot be empty")
        return v.strip()


class ScenarioUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    scenario_type: Optional[ScenarioType] = None
    co2_reduction_pct: Optional[float] = Field(None, ge=-100, le=100)
    cost_difference_pct: Optional[float] = Field(None, ge=-100, le=1000)


class CircularityMetricResponse(CircularityRecord):
    composite_score: Optional[float] = None
    circularity_grade: Optional[str] = None


class EnvironmentalImpactResponse(EnvironmentalImpactRecord):
    total_material_tons: float = 0.0
    benchmark_comparison: Optional[ImpactNormalization] = None
    sustainability_rating: Optional[str] = None


class ScenarioResponse(ScenarioRecord):
    evaluation: ScenarioEvaluation


class ScenarioDetailResponse(ScenarioResponse):
    project_name: Optional[str] = None
    metal_type: Optional[str] = None
    impact_projections: Optional[ImpactProjection] = None
    recommendations: List[str] = Field(default_factory=list)
    other_scenarios: List[ScenarioRecord] = Field(default_factory=list)
