import asyncio
from datetime import datetime
from typing import Dict, Any, Optional
import logging

from shared.kafka_utils import create_kafka_consumer, create_kafka_producer
from shared.models.assessment import FormSubmissionRequest
from shared.models.events import EventFactory, EventType
from shared.models.exceptions import (
    KafkaConnectionException, InvalidFormDataException, MineralLCAException
)
from .assessment_manager import AssessmentManager
from .config import settings

logger = logging.getLogger(__name__)


class MineralLCAKafkaHandler:
    def __init__(self, assessment_manager: AssessmentManager):
        self.assessment_manager = assessment_manager
        self.consumer = None
        self.producer = None
        self.running = False

    async def start(self):
        """Start Kafka consumer and producer"""
        try:
            self.consumer = await create_kafka_consumer(
                topics=[settings.mineral_lca_submission_topic],
                group_id=settings.kafka_consumer_group_id,
                auto_offset_reset=settings.kafka_auto_offset_reset,
                bootstrap_servers=settings.kafka_bootstrap_servers,
            )
            self.producer = await create_kafka_producer(bootstrap_servers=settings.kafka_bootstrap_servers)

            self.running = True
            logger.info("Kafka handler started successfully")

        except Exception as e:
            logger.error(f"Failed to start Kafka handler: {e}")
            raise KafkaConnectionException(f"Failed to connect to Kafka: {e}")

    async def stop(self):
        """Stop Kafka consumer and producer"""
        self.running = False

        try:
            if self.consumer:
                await self.consumer.stop()
            if self.producer:
                await self.producer.stop()
            logger.info("Kafka handler stopped successfully")
        except Exception as e:
            logger.error(f"Error stopping Kafka handler: {e}")

    def is_running(self) -> bool:
        return self.running

    async def consume_messages(self):
        """Main consumer loop"""
        logger.info("Starting Kafka message consumer")

        while self.running:
            try:
                async for message in self.consumer:
                    logger.debug(f"Received message on {message.topic}[{message.partition}]@{message.offset}")
                    await self._process_message(message.value)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Error in consumer loop: {e}")
                if self.running:
                    await asyncio.sleep(settings.kafka_retry_delay_seconds)

    @staticmethod
    def _resolve_assessment_id(submission: FormSubmissionRequest) -> int:
        """Submissions carry the assessment id either on the envelope or inside form_data"""
        raw = submission.assessment_id
        if raw is None:
            raw = submission.form_data.get("assessment_id")
        try:
            return int(raw)
        except (TypeError, ValueError):
            raise InvalidFormDataException(f"Submission has no numeric assessment id (got {raw!r})")

    async def _process_message(self, message_data: Dict[str, Any]):
        """Process incoming form submission message"""
        assessment_id = None
        user_id = None

        try:
            if message_data.get('event_type') != EventType.FORM_SUBMITTED:
                logger.debug(f"Ignoring message with event_type: {message_data.get('event_type')}")
                return

            submission_data = message_data.get('submission') or {}
            if not submission_data:
                logger.warning("No submission data found in message")
                return

            try:
                submission = FormSubmissionRequest(**submission_data)
            except Exception as e:
                raise InvalidFormDataException(f"Malformed submission: {e}")

            if submission.domain != settings.submission_domain:
                logger.debug(f"Ignoring message for domain: {submission.domain}")
                return

            user_id = submission.user_id
            assessment_id = submission.assessment_id or submission.form_data.get("assessment_id")
            numeric_id = self._resolve_assessment_id(submission)
            logger.info(f"Processing mineral LCA submission for assessment {numeric_id}")

            start_time = datetime.utcnow()
            result = self.assessment_manager.score_assessment(numeric_id)
            processing_time = (datetime.utcnow() - start_time).total_seconds() * 1000

            await self._publish_domain_scored_event(str(numeric_id), result, processing_time, user_id)
            logger.info(f"Processed mineral LCA assessment {numeric_id} in {processing_time:.2f}ms")

        except MineralLCAException as e:
            logger.error(f"Failed to process assessment {assessment_id}: {e}")
            await self._publish_error_event(assessment_id, e.error_code, str(e), user_id)

        except Exception as e:
            logger.exception(f"Unexpected error processing mineral LCA message for assessment {assessment_id}: {e}")
            await self._publish_error_event(assessment_id, "processing_error", str(e), user_id)

    async def _publish_domain_scored_event(
        self,
        assessment_id: str,
        result: Dict[str, Any],
        processing_time_ms: float,
        user_id: Optional[str] = None,
    ):
        """Publish domain scored event"""
        try:
            event = EventFactory.create_domain_scored_event(
                assessment_id=assessment_id,
                domain=settings.submission_domain,
                scores=result,
                score_value=float(result.get("overall_score") or 0.0),
                user_id=user_id,
                processing_time_ms=processing_time_ms,
            )
            await self.producer.send(settings.mineral_lca_scores_topic, event.model_dump(mode="json"))
            logger.info(f"Published domain scored event for assessment {assessment_id}")

        except Exception as e:
            logger.error(f"Failed to publish domain scored event: {e}")

    async def _publish_error_event(
        self,
        assessment_id: Optional[str],
        error_type: str,
        error_message: str,
        user_id: Optional[str] = None,
    ):
        """Publish error event"""
        try:
            event = EventFactory.create_error_event(
                assessment_id=str(assessment_id) if assessment_id is not None else "unknown",
                error_type=error_type,
                error_message=error_message,
                user_id=user_id,
                domain=settings.submission_domain,
            )
            await self.producer.send(settings.error_events_topic, event.model_dump(mode="json"))
            logger.info(f"Published error event for assessment {assessment_id}: {error_type}")

        except Exception as e:
            logger.error(f"Failed to publish error event: {e}")
