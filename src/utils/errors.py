"""
Error handling utilities for the SPA deployment custom resource.

Provides error classes with error codes and the conversion of any caught
exception into the reason string reported back to CloudFormation.
"""

from typing import Any, Dict, Optional


class AppError(Exception):
    """
    Application error with error code and message.

    Every failure raised by the build and publish stages is an AppError so the
    handler can log a stable error code next to the human-readable message.
    """

    def __init__(self, error_code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured log output."""
        return {
            "errorCode": self.error_code,
            "message": self.message,
            **self.details,
        }


class ErrorCode:
    """Standard error codes for the deployment lifecycle."""

    # Caller errors
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    INVALID_REQUEST_TYPE = "INVALID_REQUEST_TYPE"

    # Stage errors
    BUILD_FAILED = "BUILD_FAILED"
    PUBLISH_FAILED = "PUBLISH_FAILED"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ConfigurationError(AppError):
    """Resource properties are missing or malformed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.INVALID_CONFIGURATION, message, details)


class BuildError(AppError):
    """Staging sources or running the npm pipeline failed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.BUILD_FAILED, message, details)


class PublishError(AppError):
    """Synchronising a directory with the S3 bucket failed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.PUBLISH_FAILED, message, details)


class DeadlineExceededError(AppError):
    """The operation did not settle before the Lambda deadline margin."""

    def __init__(self, message: str = "Task timeout", details: Optional[Dict[str, Any]] = None):
        super().__init__(ErrorCode.DEADLINE_EXCEEDED, message, details)


def handle_error(error: Exception) -> Dict[str, Any]:
    """
    Convert exception to a structured error dictionary for logging.

    Args:
        error: Exception to handle

    Returns:
        Dictionary with errorCode and message
    """
    if isinstance(error, AppError):
        return error.to_dict()

    return {
        "errorCode": ErrorCode.INTERNAL_ERROR,
        "message": str(error),
    }


def format_failure_reason(error: Exception) -> str:
    """Render an exception as the free-form reason CloudFormation shows to users."""
    message = str(error) or repr(error)
    return f"{type(error).__name__}: {message}"
