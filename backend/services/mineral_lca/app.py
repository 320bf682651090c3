import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, List

from fastapi import FastAPI, HTTPException, status, Path, Query, Body, Response
from fastapi.middleware.cors import CORSMiddleware

from shared.logging_config import setup_logging
from shared.health import create_health_response
from shared.models.exceptions import MineralLCAException
from .benchmarks import BENCHMARKS, ESTIMATION_RANGES
from .models import (
    AssessmentCreate, AssessmentRecord, AssessmentUpdate,
    MaterialDataCreate, MaterialDataUpdate, MaterialRecord,
    ProcessingDataCreate, ProcessingDataUpdate, ProcessingRecord,
    TransportationDataCreate, TransportationDataUpdate, TransportRecord,
    EnvironmentalImpactCreate, EnvironmentalImpactResponse, InsightReport, EstimationResult,
    CircularityMetricCreate, CircularityMetricUpdate, CircularityMetricResponse,
    ScenarioCreate, ScenarioUpdate, ScenarioResponse, ScenarioDetailResponse, ScenarioType
)
from .database import DatabaseManager
from .assessment_manager import AssessmentManager
from .kafka_handler import MineralLCAKafkaHandler
from .config import settings

# Setup logging
logger = setup_logging(settings.service_name, settings.log_level, settings.log_format)

# Global instances
db_manager = DatabaseManager()
assessment_manager = AssessmentManager(db_manager)
kafka_handler = MineralLCAKafkaHandler(assessment_manager)


def create_http_exception(exc: MineralLCAException) -> HTTPException:
    """Map a platform exception onto an HTTPException using its status and error codes"""
    detail = {
        "error": exc.error_code,
        "message": str(exc)
    }
    status_code = getattr(exc, "status_code", status.HTTP_500_INTERNAL_SERVER_ERROR)
    return HTTPException(status_code=status_code, detail=detail)


def internal_error(action: str, exc: Exception) -> HTTPException:
    logger.error(f"Error {action}: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed {action}"
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting Mineral LCA Service...")
    consumer_task = None

    try:
        db_manager.create_tables()

        if settings.kafka_enabled:
            await kafka_handler.start()
            consumer_task = asyncio.create_task(kafka_handler.consume_messages())
        else:
            logger.info("Kafka disabled; event driven scoring is off")

        logger.info("Mineral LCA Service started successfully")

        yield

    except Exception as e:
        logger.error(f"Failed to start Mineral LCA Service: {e}")
        raise
    finally:
        logger.info("Shutting down Mineral LCA Service...")
        if consumer_task is not None:
            consumer_task.cancel()
            try:
                await consumer_task
            except asyncio.CancelledError:
                pass
        await kafka_handler.stop()
        logger.info("Mineral LCA Service shutdown complete")


app = FastAPI(
    title="Mineral LCA Service",
    description="Life-cycle assessment scoring and benchmarking for aluminium, copper and steel processing",
    version=settings.version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    additional_checks = {}

    if settings.kafka_enabled and settings.kafka_health_check_enabled:
        additional_checks["kafka_connected"] = kafka_handler.is_running()

    if settings.database_health_check_enabled:
        additional_checks["database_connected"] = db_manager.health_check()

    return create_health_response(settings.service_name, settings.version, additional_checks)


@app.get("/metadata")
async def get_metadata():
    """Service capabilities and the value sets it accepts"""
    return {
        "service": settings.service_name,
        "version": settings.version,
        "domain": settings.submission_domain,
        "metal_types": [m.value for m in BENCHMARKS],
        "scenario_types": [t.value for t in ScenarioType],
        "time_ranges": ["7d", "30d", "90d", "all"],
        "topics": settings.get_topic_config(),
    }


@app.get("/benchmarks")
async def get_benchmarks():
    """Industry benchmark intensities and estimation ranges per metal"""
    return {
        metal.value: {
            "benchmark": vars(benchmark),
            "estimation_ranges": {name: vars(r) for name, r in ESTIMATION_RANGES[metal].items()},
        }
        for metal, benchmark in BENCHMARKS.items()
    }


# Assessments

@app.post("/assessments", response_model=AssessmentRecord, status_code=status.HTTP_201_CREATED)
async def create_assessment(assessment: AssessmentCreate):
    try:
        return assessment_manager.create_assessment(assessment)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error("creating assessment", e)


@app.get("/assessments", response_model=List[AssessmentRecord])
async def list_assessments(
    status_filter: Optional[str] = Query(None, alias="status"),
    metal_type: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(0, ge=0),
):
    try:
        return assessment_manager.list_assessments(
            status=status_filter, metal_type=metal_type, search=search, limit=limit, offset=offset
        )
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error("listing assessments", e)


@app.get("/assessments/{assessment_id}", response_model=AssessmentRecord)
async def get_assessment(assessment_id: int = Path(..., description="Assessment ID")):
    try:
        return assessment_manager.get_assessment(assessment_id)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"retrieving assessment {assessment_id}", e)


@app.put("/assessments/{assessment_id}", response_model=AssessmentRecord)
async def update_assessment(
    assessment_id: int = Path(..., description="Assessment ID"),
    assessment_update: AssessmentUpdate = Body(...)
):
    try:
        return assessment_manager.update_assessment(assessment_id, assessment_update)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"updating assessment {assessment_id}", e)


@app.delete("/assessments/{assessment_id}")
async def delete_assessment(assessment_id: int = Path(..., description="Assessment ID")):
    try:
        deleted = assessment_manager.delete_assessment(assessment_id)
        return {"message": f"Assessment {assessment_id} deleted", "deleted": deleted}
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"deleting assessment {assessment_id}", e)


# Assessment calculations

@app.post("/assessments/{assessment_id}/calculate", response_model=EnvironmentalImpactResponse)
async def calculate_impacts(response: Response, assessment_id: int = Path(..., description="Assessment ID")):
    """Recalculate environmental impact totals; 201 on first calculation, 200 afterwards"""
    try:
        impact, created = assessment_manager.calculate_impacts(assessment_id)
        response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return impact
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"calculating impacts for assessment {assessment_id}", e)


@app.post("/assessments/{assessment_id}/estimate", response_model=EstimationResult)
async def estimate_missing_data(assessment_id: int = Path(..., description="Assessment ID")):
    """Fill missing processing measurements from per-metal estimation ranges"""
    try:
        return assessment_manager.estimate_missing(assessment_id)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"estimating data for assessment {assessment_id}", e)


@app.get("/assessments/{assessment_id}/environmental-impact", response_model=EnvironmentalImpactResponse)
async def get_environmental_impact(assessment_id: int = Path(..., description="Assessment ID")):
    try:
        return assessment_manager.get_environmental_impact(assessment_id)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"retrieving environmental impact for assessment {assessment_id}", e)


@app.put("/assessments/{assessment_id}/environmental-impact", response_model=EnvironmentalImpactResponse)
async def save_environmental_impact(
    response: Response,
    assessment_id: int = Path(..., description="Assessment ID"),
    impact: EnvironmentalImpactCreate = Body(...)
):
    try:
        result, created = assessment_manager.save_environmental_impact(assessment_id, impact)
        response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return result
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"saving environmental impact for assessment {assessment_id}", e)


@app.get("/assessments/{assessment_id}/insights", response_model=InsightReport)
async def get_insights(assessment_id: int = Path(..., description="Assessment ID")):
    try:
        return assessment_manager.get_insights(assessment_id)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"generating insights for assessment {assessment_id}", e)


# Material, processing and transportation rows

def _register_record_routes(kind: str, path: str, create_model, update_model, record_model):
    """Create/list under an assessment, update/delete by row id"""

    @app.post(f"/assessments/{{assessment_id}}/{path}", response_model=record_model,
              status_code=status.HTTP_201_CREATED, name=f"create_{kind}")
    async def create_row(assessment_id: int = Path(...), payload: create_model = Body(...)):
        try:
            return assessment_manager.add_record(kind, assessment_id, payload)
        except MineralLCAException as e:
            raise create_http_exception(e)
        except Exception as e:
            raise internal_error(f"creating {kind} record", e)

    @app.get(f"/assessments/{{assessment_id}}/{path}", response_model=List[record_model], name=f"list_{kind}")
    async def list_rows(assessment_id: int = Path(...)):
        try:
            return assessment_manager.list_records(kind, assessment_id)
        except MineralLCAException as e:
            raise create_http_exception(e)
        except Exception as e:
            raise internal_error(f"listing {kind} records", e)

    @app.put(f"/{path}/{{record_id}}", response_model=record_model, name=f"update_{kind}")
    async def update_row(record_id: int = Path(...), payload: update_model = Body(...)):
        try:
            return assessment_manager.update_record(kind, record_id, payload)
        except MineralLCAException as e:
            raise create_http_exception(e)
        except Exception as e:
            raise internal_error(f"updating {kind} record {record_id}", e)

    @app.delete(f"/{path}/{{record_id}}", name=f"delete_{kind}")
    async def delete_row(record_id: int = Path(...)):
        try:
            deleted = assessment_manager.delete_record(kind, record_id)
            return {"message": f"{kind.capitalize()} record {record_id} deleted", "deleted": deleted}
        except MineralLCAException as e:
            raise create_http_exception(e)
        except Exception as e:
            raise internal_error(f"deleting {kind} record {record_id}", e)


_register_record_routes("material", "materials", MaterialDataCreate, MaterialDataUpdate, MaterialRecord)
_register_record_routes("processing", "processing", ProcessingDataCreate, ProcessingDataUpdate, ProcessingRecord)
_register_record_routes("transportation", "transportation", TransportationDataCreate, TransportationDataUpdate, TransportRecord)


# Circularity metrics

@app.post("/circularity-metrics", response_model=CircularityMetricResponse, status_code=status.HTTP_201_CREATED)
async def create_circularity_metric(metric: CircularityMetricCreate):
    try:
        return assessment_manager.create_circularity_metric(metric)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error("creating circularity metric", e)


@app.get("/circularity-metrics", response_model=List[CircularityMetricResponse])
async def list_circularity_metrics(
    assessment_id: Optional[int] = Query(None),
    grade: Optional[str] = Query(None, description="Excellent, Good, Fair or Poor"),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(0, ge=0),
):
    try:
        return assessment_manager.list_circularity_metrics(
            assessment_id=assessment_id, grade=grade, limit=limit, offset=offset
        )
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error("listing circularity metrics", e)


@app.get("/circularity-metrics/{metric_id}", response_model=CircularityMetricResponse)
async def get_circularity_metric(metric_id: int = Path(...)):
    try:
        return assessment_manager.get_circularity_metric(metric_id)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"retrieving circularity metric {metric_id}", e)


@app.put("/circularity-metrics/{metric_id}", response_model=CircularityMetricResponse)
async def update_circularity_metric(metric_id: int = Path(...), metric_update: CircularityMetricUpdate = Body(...)):
    try:
        return assessment_manager.update_circularity_metric(metric_id, metric_update)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"updating circularity metric {metric_id}", e)


@app.delete("/circularity-metrics/{metric_id}")
async def delete_circularity_metric(metric_id: int = Path(...)):
    try:
        deleted = assessment_manager.delete_circularity_metric(metric_id)
        return {"message": f"Circularity metric {metric_id} deleted", "deleted": deleted}
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"deleting circularity metric {metric_id}", e)


# Scenarios

@app.post("/scenarios", response_model=ScenarioResponse, status_code=status.HTTP_201_CREATED)
async def create_scenario(scenario: ScenarioCreate):
    try:
        return assessment_manager.create_scenario(scenario)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error("creating scenario", e)


@app.get("/scenarios", response_model=List[ScenarioResponse])
async def list_scenarios(
    assessment_id: Optional[int] = Query(None),
    scenario_type: Optional[ScenarioType] = Query(None),
    feasible: Optional[bool] = Query(None),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    offset: int = Query(0, ge=0),
):
    try:
        return assessment_manager.list_scenarios(
            assessment_id=assessment_id,
            scenario_type=scenario_type.value if scenario_type else None,
            feasible=feasible,
            limit=limit,
            offset=offset,
        )
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error("listing scenarios", e)


@app.get("/scenarios/{scenario_id}", response_model=ScenarioDetailResponse)
async def get_scenario(scenario_id: int = Path(...)):
    try:
        return assessment_manager.get_scenario(scenario_id)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"retrieving scenario {scenario_id}", e)


@app.put("/scenarios/{scenario_id}", response_model=ScenarioResponse)
async def update_scenario(scenario_id: int = Path(...), scenario_update: ScenarioUpdate = Body(...)):
    try:
        return assessment_manager.update_scenario(scenario_id, scenario_update)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"updating scenario {scenario_id}", e)


@app.delete("/scenarios/{scenario_id}")
async def delete_scenario(scenario_id: int = Path(...)):
    try:
        deleted = assessment_manager.delete_scenario(scenario_id)
        return {"message": f"Scenario {scenario_id} deleted", "deleted": deleted}
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error(f"deleting scenario {scenario_id}", e)


# Dashboard

@app.get("/dashboard/stats")
async def get_dashboard_stats(
    time_range: str = Query("30d", description="7d, 30d, 90d or all"),
    metal_type: Optional[str] = Query(None),
):
    try:
        return assessment_manager.dashboard_stats(time_range=time_range, metal_type=metal_type)
    except MineralLCAException as e:
        raise create_http_exception(e)
    except Exception as e:
        raise internal_error("computing dashboard statistics", e)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.service_name,
        "version": settings.version,
        "status": "running",
        "timestamp": datetime.utcnow().isoformat(),
        "features": [
            "impact_calculation",
            "benchmark_normalization",
            "circularity_scoring",
            "scenario_evaluation",
            "insight_generation",
            "data_gap_estimation",
            "dashboard_statistics"
        ]
    }
