from typing import Dict, Any, Optional
from pydantic import BaseModel, Field, field_validator
from enum import Enum


class AssessmentStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class FormSubmissionRequest(BaseModel):
    """Generic form submission request"""
    assessment_id: Optional[str] = None
    user_id: Optional[str] = None
    system_name: Optional[str] = None
    domain: str  # mineral_lca
    form_data: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('assessment_id', mode='before')
    @classmethod
    def coerce_assessment_id(cls, v):
        # Producers send numeric ids as well as strings
        if v is None or isinstance(v, str):
            return v
        return str(v)
