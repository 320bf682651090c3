from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple, Type
from sqlalchemy import (
    Column, String, Float, DateTime, Integer, Boolean, Text, ForeignKey, UniqueConstraint,
    create_engine, text, or_
)
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import declarative_base, sessionmaker
import logging

from shared.models.exceptions import DatabaseConnectionException
from .config import settings

logger = logging.getLogger(__name__)
Base = declarative_base()


class TimestampMixin:
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Assessment(TimestampMixin, Base):
    __tablename__ = "assessments"

    id = Column(Integer, primary_key=True, index=True)
    project_name = Column(String, nullable=False)
    metal_type = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default="draft", index=True)


class MaterialData(TimestampMixin, Base):
    __tablename__ = "material_data"

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id"), nullable=False, index=True)
    ore_type = Column(String)
    ore_grade_pct = Column(Float)
    moisture_pct = Column(Float)
    quantity_tons = Column(Float)
    extraction_method = Column(String)
    recycled_content_pct = Column(Float)
    virgin_material_pct = Column(Float)  # 100 - recycled, written alongside it


class ProcessingData(TimestampMixin, Base):
    __tablename__ = "processing_data"

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id"), nullable=False, index=True)
    energy_source = Column(String)
    energy_consumption_kwh = Column(Float)  # efficiency adjusted
    equipment_efficiency_pct = Column(Float)
    waste_generation_tons = Column(Float)
    water_usage_m3 = Column(Float)
    process_type = Column(String)
    ai_estimated = Column(Boolean, default=False, nullable=False)


class TransportationData(TimestampMixin, Base):
    __tablename__ = "transportation_data"

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id"), nullable=False, index=True)
    distance_km = Column(Float)
    mode = Column(String)
    fuel_type = Column(String)
    load_capacity_tons = Column(Float)


class EnvironmentalImpact(TimestampMixin, Base):
    __tablename__ = "environmental_impacts"
    __table_args__ = (
        UniqueConstraint("assessment_id", name="uq_environmental_impacts_assessment_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id"), nullable=False, index=True)
    co2_emissions_tons = Column(Float)
    total_energy_kwh = Column(Float)
    total_water_m3 = Column(Float)
    total_waste_tons = Column(Float)
    calculated_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class CircularityMetric(TimestampMixin, Base):
    __tablename__ = "circularity_metrics"

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id"), nullable=False, index=True)
    mci_score = Column(Float)
    recycling_potential_pct = Column(Float)
    resource_efficiency_score = Column(Float)
    extended_product_life_years = Column(Float)
    reuse_potential_pct = Column(Float)


class Scenario(TimestampMixin, Base):
    __tablename__ = "scenarios"

    id = Column(Integer, primary_key=True, index=True)
    assessment_id = Column(Integer, ForeignKey("assessments.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    scenario_type = Column(String, nullable=False, index=True)
    co2_reduction_pct = Column(Float)
    cost_difference_pct = Column(Float)


# Child collections removed together with their assessment
ASSESSMENT_CHILDREN = (MaterialData, ProcessingData, TransportationData, EnvironmentalImpact, CircularityMetric, Scenario)


class DatabaseManager:
    def __init__(self, database_url: Optional[str] = None, engine_options: Optional[Dict[str, Any]] = None):
        try:
            self.database_url = database_url or settings.database_url
            self.engine = create_engine(
                self.database_url,
                **(engine_options if engine_options is not None else settings.database_engine_config)
            )
            self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)
            logger.info("Database connection initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            raise DatabaseConnectionException(f"Failed to connect to database: {e}")

    def create_tables(self):
        """Create database tables"""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to create tables: {e}")
            raise DatabaseConnectionException(f"Failed to create tables: {e}")

    def get_session(self):
        """Get database session"""
        try:
            return self.SessionLocal()
        except Exception as e:
            logger.error(f"Failed to create database session: {e}")
            raise DatabaseConnectionException(f"Failed to create database session: {e}")

    def health_check(self) -> bool:
        """Check database health"""
        try:
            with self.get_session() as db:
                db.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Generic row helpers
    # ------------------------------------------------------------------

    def create_record(self, model: Type[Base], values: Dict[str, Any]):
        db = self.get_session()
        try:
            row = model(**values)
            db.add(row)
            db.commit()
            db.refresh(row)
            logger.info(f"Created {model.__tablename__} row {row.id}")
            return row
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to create {model.__tablename__} row: {e}")
            raise DatabaseConnectionException(f"Failed to create {model.__tablename__} row: {e}")
        finally:
            db.close()

    def get_record(self, model: Type[Base], record_id: int):
        db = self.get_session()
        try:
            return db.get(model, record_id)
        except Exception as e:
            logger.error(f"Failed to retrieve {model.__tablename__} row {record_id}: {e}")
            raise DatabaseConnectionException(f"Failed to retrieve {model.__tablename__} row: {e}")
        finally:
            db.close()

    def update_record(self, model: Type[Base], record_id: int, values: Dict[str, Any]):
        """Apply the given column values; returns None when the row does not exist"""
        db = self.get_session()
        try:
            row = db.get(model, record_id)
            if row is None:
                return None

            for field, value in values.items():
                if hasattr(row, field):
                    setattr(row, field, value)
            row.updated_at = datetime.utcnow()

            db.commit()
            db.refresh(row)
            logger.info(f"Updated {model.__tablename__} row {record_id}")
            return row
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to update {model.__tablename__} row {record_id}: {e}")
            raise DatabaseConnectionException(f"Failed to update {model.__tablename__} row: {e}")
        finally:
            db.close()

    def delete_record(self, model: Type[Base], record_id: int):
        """Delete a row and return it, or None when it does not exist"""
        db = self.get_session()
        try:
            row = db.get(model, record_id)
            if row is None:
                return None
            db.delete(row)
            db.commit()
            logger.info(f"Deleted {model.__tablename__} row {record_id}")
            return row
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to delete {model.__tablename__} row {record_id}: {e}")
            raise DatabaseConnectionException(f"Failed to delete {model.__tablename__} row: {e}")
        finally:
            db.close()

    def list_records(
        self,
        model: Type[Base],
        assessment_ids: Optional[List[int]] = None,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Any]:
        """List rows, optionally restricted to some assessments and exact column values"""
        db = self.get_session()
        try:
            query = db.query(model)
            if assessment_ids is not None:
                if not assessment_ids:
                    return []
                query = query.filter(model.assessment_id.in_(assessment_ids))
            for field, value in (filters or {}).items():
                if value is not None:
                    query = query.filter(getattr(model, field) == value)
            query = query.order_by(model.id)
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()
        except Exception as e:
            logger.error(f"Failed to list {model.__tablename__} rows: {e}")
            raise DatabaseConnectionException(f"Failed to list {model.__tablename__} rows: {e}")
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Assessments
    # ------------------------------------------------------------------

    def get_assessment(self, assessment_id: int) -> Optional[Assessment]:
        """Get assessment by ID"""
        assessment = self.get_record(Assessment, assessment_id)
        if assessment is None:
            logger.warning(f"Assessment {assessment_id} not found in database")
        return assessment

    def list_assessments(
        self,
        status: Optional[str] = None,
        metal_type: Optional[str] = None,
        search: Optional[str] = None,
        created_since: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Assessment]:
        """List assessments, newest first"""
        db = self.get_session()
        try:
            query = db.query(Assessment)
            if status:
                query = query.filter(Assessment.status == status)
            if metal_type:
                query = query.filter(Assessment.metal_type == metal_type)
            if search:
                pattern = f"%{search}%"
                query = query.filter(or_(Assessment.project_name.ilike(pattern), Assessment.metal_type.ilike(pattern)))
            if created_since is not None:
                query = query.filter(Assessment.created_at >= created_since)
            query = query.order_by(Assessment.created_at.desc(), Assessment.id.desc())
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return query.all()
        except Exception as e:
            logger.error(f"Failed to list assessments: {e}")
            raise DatabaseConnectionException(f"Failed to list assessments: {e}")
        finally:
            db.close()

    def delete_assessment(self, assessment_id: int) -> Optional[Assessment]:
        """Delete an assessment together with all of its child rows"""
        db = self.get_session()
        try:
            assessment = db.get(Assessment, assessment_id)
            if assessment is None:
                return None

            for model in ASSESSMENT_CHILDREN:
                db.query(model).filter(model.assessment_id == assessment_id).delete(synchronize_session=False)
            db.delete(assessment)
            db.commit()
            logger.info(f"Deleted assessment {assessment_id} and its records")
            return assessment
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to delete assessment {assessment_id}: {e}")
            raise DatabaseConnectionException(f"Failed to delete assessment: {e}")
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Environmental impacts
    # ------------------------------------------------------------------

    def get_environmental_impact(self, assessment_id: int) -> Optional[EnvironmentalImpact]:
        db = self.get_session()
        try:
            return db.query(EnvironmentalImpact).filter(
                EnvironmentalImpact.assessment_id == assessment_id
            ).first()
        except Exception as e:
            logger.error(f"Failed to retrieve environmental impact for assessment {assessment_id}: {e}")
            raise DatabaseConnectionException(f"Failed to retrieve environmental impact: {e}")
        finally:
            db.close()

    def list_impacts_calculated_between(self, start: datetime, end: datetime) -> List[EnvironmentalImpact]:
        db = self.get_session()
        try:
            return db.query(EnvironmentalImpact).filter(
                EnvironmentalImpact.calculated_at >= start,
                EnvironmentalImpact.calculated_at < end,
            ).all()
        except Exception as e:
            logger.error(f"Failed to list environmental impacts: {e}")
            raise DatabaseConnectionException(f"Failed to list environmental impacts: {e}")
        finally:
            db.close()

    def _dialect_insert(self):
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            return postgresql_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise DatabaseConnectionException(f"Upsert is not supported for the '{dialect}' dialect")

    def upsert_environmental_impact(
        self,
        assessment_id: int,
        values: Dict[str, Any],
        completed_status: Optional[str] = None,
    ) -> Tuple[EnvironmentalImpact, bool]:
        """
        Insert or replace the single live impact row of an assessment.

        Runs one INSERT ... ON CONFLICT (assessment_id) DO UPDATE, so concurrent
        writers can neither create a second row nor lose an update. When
        ``completed_status`` is given the assessment status is set in the same
        transaction. Returns the row and whether it was newly created.
        """
        insert = self._dialect_insert()
        db = self.get_session()
        try:
            now = datetime.utcnow()
            row_values = {
                "calculated_at": now,
                **values,
                "assessment_id": assessment_id,
                "created_at": now,
                "updated_at": now,
            }

            stmt = insert(EnvironmentalImpact).values(**row_values)
            stmt = stmt.on_conflict_do_update(
                index_elements=[EnvironmentalImpact.assessment_id],
                set_={
                    key: stmt.excluded[key]
                    for key in row_values
                    if key not in ("assessment_id", "created_at")
                },
            ).returning(EnvironmentalImpact.id, EnvironmentalImpact.created_at)

            result = db.execute(stmt).one()

            if completed_status is not None:
                db.query(Assessment).filter(Assessment.id == assessment_id).update(
                    {"status": completed_status, "updated_at": now},
                    synchronize_session=False,
                )

            db.commit()

            impact = db.get(EnvironmentalImpact, result.id)
            created = result.created_at == now
            logger.info(f"{'Created' if created else 'Updated'} environmental impact for assessment {assessment_id}")
            return impact, created

        except Exception as e:
            db.rollback()
            logger.error(f"Failed to upsert environmental impact for assessment {assessment_id}: {e}")
            raise DatabaseConnectionException(f"Failed to save environmental impact: {e}")
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Circularity metrics
    # ------------------------------------------------------------------

    def get_circularity_for_assessment(self, assessment_id: int) -> Optional[CircularityMetric]:
        """Latest circularity metric row of an assessment"""
        db = self.get_session()
        try:
            return db.query(CircularityMetric).filter(
                CircularityMetric.assessment_id == assessment_id
            ).order_by(CircularityMetric.updated_at.desc(), CircularityMetric.id.desc()).first()
        except Exception as e:
            logger.error(f"Failed to retrieve circularity metrics for assessment {assessment_id}: {e}")
            raise DatabaseConnectionException(f"Failed to retrieve circularity metrics: {e}")
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Processing data
    # ------------------------------------------------------------------

    def apply_processing_estimates(self, updates: Dict[int, Dict[str, float]]) -> int:
        """Write estimated processing values in one transaction, flagging the rows as estimated"""
        if not updates:
            return 0

        db = self.get_session()
        try:
            now = datetime.utcnow()
            for record_id, fields in updates.items():
                db.query(ProcessingData).filter(ProcessingData.id == record_id).update(
                    {**fields, "ai_estimated": True, "updated_at": now},
                    synchronize_session=False,
                )
            db.commit()
            logger.info(f"Stored estimates for {len(updates)} processing rows")
            return len(updates)
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to store processing estimates: {e}")
            raise DatabaseConnectionException(f"Failed to store processing estimates: {e}")
        finally:
            db.close()
