"""Custom exceptions for the mineral LCA platform."""

from typing import Optional


class MineralLCAException(Exception):
    """
    Base exception for the mineral LCA platform.

    Attributes:
        message: Human-readable description of the error.
        error_code: Machine-readable code identifying the error type.
        status_code: Suggested HTTP status code when translating to an HTTP response.
    """
    error_code: str = "unknown_error"
    status_code: int = 500

    def __init__(self, message: Optional[str] = None):
        # Use the class docstring as a default message if none provided
        default_msg = self.__class__.__doc__.strip().splitlines()[0] if self.__class__.__doc__ else ""
        self.message = message or default_msg
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class KafkaConnectionException(MineralLCAException):
    "Raised when Kafka connection fails."
    error_code = "kafka_connection_error"
    status_code = 503


class DatabaseConnectionException(MineralLCAException):
    "Raised when database connection fails."
    error_code = "database_connection_error"
    status_code = 503


class AssessmentNotFoundException(MineralLCAException):
    "Raised when an assessment is not found."
    error_code = "assessment_not_found"
    status_code = 404


class RecordNotFoundException(MineralLCAException):
    "Raised when a record attached to an assessment is not found."
    error_code = "record_not_found"
    status_code = 404


class InvalidFormDataException(MineralLCAException):
    "Raised when submitted form data is invalid."
    error_code = "invalid_form_data"
    status_code = 400


class UnsupportedMetalTypeException(InvalidFormDataException):
    "Raised when the metal type has no benchmark entry."
    error_code = "unsupported_metal_type"
    # Inherits status_code = 400 from InvalidFormDataException


class InsufficientDataException(MineralLCAException):
    "Raised when an assessment lacks the records needed for a calculation."
    error_code = "insufficient_data"
    status_code = 422


class BaselineDependencyException(MineralLCAException):
    "Raised when deleting a baseline scenario that other scenarios compare against."
    error_code = "baseline_scenario_dependency"
    status_code = 422


class ScoringException(MineralLCAException):
    "Raised when scoring calculation fails."
    error_code = "scoring_error"
    status_code = 500


# Public API
__all__ = [
    "MineralLCAException",
    "KafkaConnectionException",
    "DatabaseConnectionException",
    "AssessmentNotFoundException",
    "RecordNotFoundException",
    "InvalidFormDataException",
    "UnsupportedMetalTypeException",
    "InsufficientDataException",
    "BaselineDependencyException",
    "ScoringException",
]
