from typing import List, Dict, Any, Optional, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.kafka_utils import KafkaConfig
from shared.database import get_database_url, build_engine_options

from .insights import DEFAULT_CONFIDENCE


def _split_csv(v, transform=str.strip) -> List[str]:
    """Parse a comma separated env value (or a list) into a clean list, '*' by default."""
    if v is None:
        return ["*"]
    if isinstance(v, str):
        if not v.strip() or v.strip() == "*":
            return ["*"]
        return [transform(item.strip()) for item in v.split(',') if item.strip()]
    if isinstance(v, list):
        return [transform(str(item).strip()) for item in v if str(item).strip()]
    return ["*"]


class MineralLCASettings(BaseSettings):
    """mineral_lca service configuration settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="MINERAL_LCA_"  # Environment variables prefixed with SERVICE_NAME_
    )

    # Service identity
    service_name: str = "mineral-lca-service"
    version: str = "0.1.0"

    # Database configuration
    database_url_override: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_pre_ping: bool = True
    database_pool_recycle: int = 3600  # 1 hour

    # Kafka configuration - Use shared config as defaults but allow overrides
    kafka_enabled: bool = True
    kafka_bootstrap_servers: str = KafkaConfig.BOOTSTRAP_SERVERS
    kafka_consumer_group_id: str = "mineral-lca-service"
    kafka_auto_offset_reset: str = "latest"
    kafka_retry_delay_seconds: int = 5

    # Kafka topics
    mineral_lca_submission_topic: str = KafkaConfig.MINERAL_LCA_SUBMISSION_TOPIC
    mineral_lca_scores_topic: str = KafkaConfig.MINERAL_LCA_SCORES_TOPIC
    error_events_topic: str = KafkaConfig.ERROR_EVENTS_TOPIC
    submission_domain: str = "mineral_lca"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8006
    api_workers: int = 1
    default_page_size: int = 10
    max_page_size: int = 100

    # CORS settings (use Union to handle different input types)
    cors_origins: Union[List[str], str] = "*"
    cors_allow_credentials: bool = True
    cors_allow_methods: Union[List[str], str] = "*"
    cors_allow_headers: Union[List[str], str] = "*"

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"

    # Health check settings
    kafka_health_check_enabled: bool = True
    database_health_check_enabled: bool = True

    # Insight confidence constants, keyed "<branch>_<severity>"
    insight_confidence: Dict[str, float] = Field(default_factory=lambda: dict(DEFAULT_CONFIDENCE))

    # Scenario list filter: "feasible" means a score above this
    feasible_threshold: float = 0.7

    @field_validator('cors_origins', 'cors_allow_headers', mode='before')
    @classmethod
    def parse_cors_list(cls, v):
        return _split_csv(v)

    @field_validator('cors_allow_methods', mode='before')
    @classmethod
    def parse_cors_methods(cls, v):
        return _split_csv(v, transform=str.upper)

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Invalid log level. Must be one of: {valid_levels}')
        return v.upper()

    @property
    def database_url(self) -> str:
        """Get database URL, falling back to the shared per-service builder"""
        if self.database_url_override:
            return self.database_url_override
        return get_database_url("mineral_lca")

    @property
    def database_engine_config(self) -> Dict[str, Any]:
        """Get database engine configuration"""
        return build_engine_options(self.database_url, {
            "pool_size": self.database_pool_size,
            "max_overflow": self.database_max_overflow,
            "pool_pre_ping": self.database_pool_pre_ping,
            "pool_recycle": self.database_pool_recycle,
        })

    def get_topic_config(self) -> Dict[str, str]:
        """Get all topic configurations"""
        return {
            "input": self.mineral_lca_submission_topic,
            "output": self.mineral_lca_scores_topic,
            "error": self.error_events_topic,
        }


# Global settings instance
settings = MineralLCASettings()
