import os
import logging
import json
from typing import Any, Dict, List
from aiokafka import AIOKafkaProducer, AIOKafkaConsumer

logger = logging.getLogger(__name__)


class KafkaConfig:
    """Shared Kafka configuration"""
    BOOTSTRAP_SERVERS       = os.getenv("KAFKA_BOOTSTRAP", "kafka:9092")
    RETRY_BACKOFF           = int(os.getenv("KAFKA_RETRY_BACKOFF", "1000"))
    REQUEST_TIMEOUT         = int(os.getenv("KAFKA_REQUEST_TIMEOUT", "30000"))

    # Submission topics (services consume from these)
    MINERAL_LCA_SUBMISSION_TOPIC        = os.getenv("MINERAL_LCA_SUBMISSION_TOPIC", "mineral-lca-submissions")

    # Score topics (services produce to these)
    MINERAL_LCA_SCORES_TOPIC            = os.getenv("MINERAL_LCA_SCORES_TOPIC", "mineral-lca-scores")

    ERROR_EVENTS_TOPIC                  = os.getenv("ERROR_EVENTS_TOPIC", "error-events-topic")


def serialize_value(value: Dict[str, Any]) -> bytes:
    return json.dumps(value, default=str).encode('utf-8')


def deserialize_value(raw: bytes) -> Dict[str, Any]:
    return json.loads(raw.decode('utf-8'))


async def create_kafka_producer(bootstrap_servers: str = KafkaConfig.BOOTSTRAP_SERVERS) -> AIOKafkaProducer:
    """Create standardized Kafka producer"""
    producer = AIOKafkaProducer(
        bootstrap_servers=bootstrap_servers,
        retry_backoff_ms=KafkaConfig.RETRY_BACKOFF,
        request_timeout_ms=KafkaConfig.REQUEST_TIMEOUT,
        compression_type="gzip",
        acks='all',
        enable_idempotence=True,
        value_serializer=serialize_value
    )
    await producer.start()
    logger.info(f"Kafka producer connected to {bootstrap_servers}")
    return producer


async def create_kafka_consumer(topics: List[str], group_id: str, auto_offset_reset: str = 'latest',
                                bootstrap_servers: str = KafkaConfig.BOOTSTRAP_SERVERS) -> AIOKafkaConsumer:
    """Create standardized Kafka consumer"""
    consumer = AIOKafkaConsumer(
        *topics,
        bootstrap_servers=bootstrap_servers,
        group_id=group_id,
        value_deserializer=deserialize_value,
        auto_offset_reset=auto_offset_reset,
    )
    await consumer.start()
    logger.info(f"Kafka consumer '{group_id}' subscribed to {topics}")
    return consumer
