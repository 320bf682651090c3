from datetime import datetime
from typing import Dict, Any, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

from .assessment import FormSubmissionRequest


class EventType(str, Enum):
    FORM_SUBMITTED = "form_submitted"
    DOMAIN_SCORED = "domain_scored"
    ERROR_OCCURRED = "error_occurred"


class BaseEvent(BaseModel):
    """Base event model for Kafka messages"""
    model_config = ConfigDict(use_enum_values=True)

    event_type: EventType
    assessment_id: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class FormSubmissionEvent(BaseEvent):
    """Event for form submissions using shared FormSubmissionRequest"""
    event_type: EventType = EventType.FORM_SUBMITTED
    submission: FormSubmissionRequest


class DomainScoredEvent(BaseEvent):
    """Event when a domain has been scored"""
    event_type: EventType = EventType.DOMAIN_SCORED
    domain: str
    scores: Dict[str, Any]
    processing_time_ms: Optional[float] = None
    score_value: float


class ErrorEvent(BaseEvent):
    """Event for error conditions"""
    event_type: EventType = EventType.ERROR_OCCURRED
    error_type: str
    error_message: str
    error_details: Dict[str, Any] = Field(default_factory=dict)
    domain: Optional[str] = None


class EventFactory:
    """Factory for creating events from shared models"""

    @staticmethod
    def create_form_submission_event(submission: FormSubmissionRequest, **kwargs) -> FormSubmissionEvent:
        return FormSubmissionEvent(
            assessment_id=submission.assessment_id or "unknown",
            user_id=submission.user_id,
            submission=submission,
            **kwargs
        )

    @staticmethod
    def create_domain_scored_event(assessment_id: str, domain: str, scores: Dict[str, Any],
                                   score_value: float, user_id: Optional[str] = None, **kwargs) -> DomainScoredEvent:
        return DomainScoredEvent(
            assessment_id=assessment_id,
            user_id=user_id,
            domain=domain,
            scores=scores,
            score_value=score_value,
            **kwargs
        )

    @staticmethod
    def create_error_event(assessment_id: str, error_type: str, error_message: str,
                           error_details: Optional[Dict[str, Any]] = None, user_id: Optional[str] = None,
                           domain: Optional[str] = None, **kwargs) -> ErrorEvent:
        return ErrorEvent(
            assessment_id=assessment_id,
            user_id=user_id,
            error_type=error_type,
            error_message=error_message,
            error_details=error_details or {},
            domain=domain,
            **kwargs
        )
