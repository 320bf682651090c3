"""Shared fixtures for the mineral LCA service tests.

Settings are read from the environment when the service package is first
imported, so the in-memory database and the Kafka switch are set here before
any test module imports it.
"""

import os

os.environ.setdefault("MINERAL_LCA_DATABASE_URL_OVERRIDE", "sqlite://")
os.environ["MINERAL_LCA_KAFKA_ENABLED"] = "false"

import pytest

from shared.database import build_engine_options
from services.mineral_lca.assessment_manager import AssessmentManager
from services.mineral_lca.database import DatabaseManager
from services.mineral_lca.models import AssessmentCreate


@pytest.fixture
def db_manager():
    """A fresh in-memory database per test."""
    manager = DatabaseManager("sqlite://", build_engine_options("sqlite://", {}))
    manager.create_tables()
    yield manager
    manager.engine.dispose()


@pytest.fixture
def assessment_manager(db_manager):
    return AssessmentManager(db_manager)


@pytest.fixture
def aluminium_assessment(assessment_manager):
    return assessment_manager.create_assessment(
        AssessmentCreate(project_name="Smelter Line 2", metal_type="aluminium")
    )
