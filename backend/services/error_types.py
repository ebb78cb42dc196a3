"""
Custom Error Types for the HVAC Qualification System

Provides categorized exceptions to distinguish between critical errors that
must stop an operation (bad selections, unknown records, storage failures) and
non-critical errors that can be logged without affecting compliance results.
"""

import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class HVACQualificationError(Exception):
    """Base exception for all qualification errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class CriticalError(HVACQualificationError):
    """
    Critical errors that should stop the current operation.

    Examples:
    - Unknown test type in a room selection
    - Report or room not found
    - Storage file unreadable
    """
    pass


class NonCriticalError(HVACQualificationError):
    """
    Non-critical errors that can be logged but shouldn't stop processing.

    Examples:
    - Generated file metadata could not be recorded
    - Optional logo missing from a document
    """
    pass


class ValidationError(CriticalError):
    """
    Input validation errors.

    Examples:
    - Report saved without a report number
    - Room without any selected test
    """

    def __init__(self, message: str, errors: Optional[list] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.errors = errors or []


class UnknownTestTypeError(ValidationError):
    """A test key that is not one of the eight supported test types."""

    def __init__(self, test_key: str):
        super().__init__(f"Unknown test type: '{test_key}'", details={'test_key': test_key})
        self.test_key = test_key


class TestNotSelectedError(ValidationError):
    """Measurement written for a test type the room has not selected."""

    __test__ = False  # not a pytest test class

    def __init__(self, test_key: str, room_id: str):
        super().__init__(
            f"Test '{test_key}' is not selected for room '{room_id}'",
            details={'test_key': test_key, 'room_id': room_id}
        )
        self.test_key = test_key


class UnknownFieldError(ValidationError):
    """Measurement field that does not belong to the test's record."""

    def __init__(self, test_key: str, field: str):
        super().__init__(
            f"Field '{field}' is not a measurement of '{test_key}'",
            details={'test_key': test_key, 'field': field}
        )


class RecordNotFoundError(CriticalError):
    """
    A report, room, test instance, device or calibration record was not found.
    """

    def __init__(self, kind: str, record_id: str):
        super().__init__(f"{kind} not found: {record_id}", details={'kind': kind, 'id': record_id})
        self.kind = kind
        self.record_id = record_id


class PersistenceError(CriticalError):
    """
    Storage read/write failures.

    The `user_message` is the plain-language text surfaced to the end user.
    """

    def __init__(self, message: str, user_message: str = "Veriler kaydedilirken bir hata oluştu.",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.user_message = user_message


class DocumentGenerationError(NonCriticalError):
    """
    Document rendering failures (PDF engine missing, render timeout).

    Never affects stored compliance data.
    """
    pass


def log_error_with_context(error: HVACQualificationError, context: Dict[str, Any]):
    """
    Log error with additional context information.

    Args:
        error: Error to log
        context: Additional context (report_id, room_id, operation, etc.)
    """
    log_data = {
        'error_type': type(error).__name__,
        'error_message': error.message,
        'details': error.details,
        **context
    }

    if isinstance(error, CriticalError):
        logger.error(f"Critical error: {error.message}", extra=log_data)
    else:
        logger.warning(f"Non-critical error: {error.message}", extra=log_data)
