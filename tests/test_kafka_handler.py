"""Tests for event driven scoring through the Kafka handler."""

import asyncio

import pytest

from shared.models.assessment import FormSubmissionRequest
from shared.models.events import EventFactory
from services.mineral_lca.config import settings
from services.mineral_lca.kafka_handler import MineralLCAKafkaHandler
from services.mineral_lca.models import MaterialDataCreate, ProcessingDataCreate


class RecordingProducer:
    """Stands in for the aiokafka producer and keeps every sent event"""

    def __init__(self):
        self.sent = []

    async def send(self, topic, value):
        self.sent.append((topic, value))

    async def stop(self):
        pass


@pytest.fixture
def handler(assessment_manager):
    kafka_handler = MineralLCAKafkaHandler(assessment_manager)
    kafka_handler.producer = RecordingProducer()
    return kafka_handler


def submission(assessment_id, domain="mineral_lca", user_id=None):
    request = FormSubmissionRequest(assessment_id=assessment_id, user_id=user_id, domain=domain)
    return EventFactory.create_form_submission_event(request).model_dump(mode="json")


class TestProcessMessage:

    def test_scores_submission(self, handler, assessment_manager, aluminium_assessment):
        assessment_manager.add_record("material", aluminium_assessment.id, MaterialDataCreate(quantity_tons=100.0))
        assessment_manager.add_record("processing", aluminium_assessment.id, ProcessingDataCreate(energy_consumption_kwh=1000.0))

        asyncio.run(handler._process_message(submission(aluminium_assessment.id, user_id="u-1")))

        assert len(handler.producer.sent) == 1
        topic, event = handler.producer.sent[0]
        assert topic == settings.mineral_lca_scores_topic
        assert event["event_type"] == "domain_scored"
        assert event["domain"] == "mineral_lca"
        assert event["assessment_id"] == str(aluminium_assessment.id)
        assert event["user_id"] == "u-1"
        assert event["scores"]["impact_created"] is True
        assert event["score_value"] == float(event["scores"]["overall_score"])

    def test_assessment_id_inside_form_data(self, handler, assessment_manager, aluminium_assessment):
        assessment_manager.add_record("material", aluminium_assessment.id, MaterialDataCreate(quantity_tons=1.0))
        assessment_manager.add_record("processing", aluminium_assessment.id, ProcessingDataCreate(energy_consumption_kwh=10.0))
        message = {
            "event_type": "form_submitted",
            "submission": {"domain": "mineral_lca", "form_data": {"assessment_id": aluminium_assessment.id}},
        }

        asyncio.run(handler._process_message(message))

        assert handler.producer.sent[0][1]["event_type"] == "domain_scored"

    def test_missing_inputs_publish_error(self, handler, aluminium_assessment):
        asyncio.run(handler._process_message(submission(aluminium_assessment.id)))

        topic, event = handler.producer.sent[0]
        assert topic == settings.error_events_topic
        assert event["error_type"] == "insufficient_data"

    def test_unknown_assessment_publishes_error(self, handler):
        asyncio.run(handler._process_message(submission(98765)))

        _, event = handler.producer.sent[0]
        assert event["error_type"] == "assessment_not_found"
        assert event["assessment_id"] == "98765"

    def test_non_numeric_id(self, handler):
        asyncio.run(handler._process_message(submission("plant-7")))

        _, event = handler.producer.sent[0]
        assert event["error_type"] == "invalid_form_data"

    def test_engine_failure_publishes_scoring_error(self, handler, assessment_manager, aluminium_assessment, monkeypatch):
        assessment_manager.add_record("material", aluminium_assessment.id, MaterialDataCreate(quantity_tons=1.0))
        assessment_manager.add_record("processing", aluminium_assessment.id, ProcessingDataCreate(energy_consumption_kwh=10.0))

        def failing_insights(*args, **kwargs):
            raise ZeroDivisionError("float division by zero")

        monkeypatch.setattr("services.mineral_lca.assessment_manager.generate_insights", failing_insights)

        asyncio.run(handler._process_message(submission(aluminium_assessment.id)))

        topic, event = handler.producer.sent[0]
        assert topic == settings.error_events_topic
        assert event["error_type"] == "scoring_error"

    @pytest.mark.parametrize("message", [
        {"event_type": "domain_scored", "submission": {"domain": "mineral_lca"}},
        {"event_type": "form_submitted", "submission": {}},
        {"event_type": "form_submitted", "submission": {"assessment_id": 1, "domain": "water_footprint"}},
    ])
    def test_ignored_messages(self, handler, message):
        asyncio.run(handler._process_message(message))
        assert handler.producer.sent == []


class TestLifecycle:

    def test_stop_without_start(self, handler):
        asyncio.run(handler.stop())
        assert handler.is_running() is False
