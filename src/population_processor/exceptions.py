# src/population_processor/exceptions.py

"""
Shared custom exceptions for the Population Processor service.

Centralizing exception definitions in a separate module prevents circular
import errors between other modules that need to raise or catch them.

Exception Hierarchy:
- PopulationProcessingError (base)
  - RetryableError (the invocation is re-raised so Lambda retries it)
    - S3ThrottlingError
    - S3TimeoutError
    - S3TransientError
    - OutputWriteError
    - ProcessingTimeoutError
    - MemoryLimitError
  - NonRetryableError (reported as failed, never retried)
    - ValidationError
      - InvalidS3EventError
    - S3AccessDeniedError
    - S3ObjectNotFoundError
    - CsvParseError
    - EmptyDatasetError
    - InputTooLargeError
    - SizeMismatchError
    - ConfigurationError
"""

from typing import Any, Dict, Optional


class PopulationProcessingError(Exception):
    """Base exception for all Population Processor service errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        correlation_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = dict(context) if context else {}
        self.correlation_id = correlation_id

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "correlation_id": self.correlation_id,
            "retryable": isinstance(self, RetryableError),
        }


class RetryableError(PopulationProcessingError):
    """Base class for errors that can be retried."""

    pass


class NonRetryableError(PopulationProcessingError):
    """Base class for errors that should not be retried."""

    pass


# === S3-Related Errors ===


class S3Error(PopulationProcessingError):
    """Base class for S3-related errors."""

    pass


class S3ObjectNotFoundError(S3Error, NonRetryableError):
    """Raised when a requested S3 object does not exist."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"S3 object not found: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        context.update(kwargs.pop("context", None) or {})
        super().__init__(message, error_code="S3_OBJECT_NOT_FOUND", context=context, **kwargs)


class S3AccessDeniedError(S3Error, NonRetryableError):
    """Raised when access is denied to an S3 object."""

    def __init__(self, bucket: str, key: str, **kwargs):
        message = f"Access denied to S3 object: s3://{bucket}/{key}"
        context = {"bucket": bucket, "key": key}
        context.update(kwargs.pop("context", None) or {})
        super().__init__(message, error_code="S3_ACCESS_DENIED", context=context, **kwargs)


class S3ThrottlingError(S3Error, RetryableError):
    """Raised when S3 operations are being throttled."""

    def __init__(self, operation: str, **kwargs):
        message = f"S3 operation throttled: {operation}"
        context = {"operation": operation}
        context.update(kwargs.pop("context", None) or {})
        super().__init__(message, error_code="S3_THROTTLING", context=context, **kwargs)


class S3TimeoutError(S3Error, RetryableError):
    """Raised when S3 operations time out or the endpoint is unreachable."""

    def __init__(self, operation: str, **kwargs):
        message = f"S3 operation timed out: {operation}"
        context = {}
        if "context" in kwargs:
            context.update(kwargs.pop("context") or {})
        context.update({"operation": operation})
        super().__init__(message, error_code="S3_TIMEOUT", context=context, **kwargs)


class S3TransientError(S3Error, RetryableError):
    """Raised for S3 client errors that are not otherwise classified."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "S3_CLIENT_ERROR")
        super().__init__(message, **kwargs)


# === Validation Errors ===


class ValidationError(NonRetryableError):
    """Base class for validation errors."""

    pass


class InvalidS3EventError(ValidationError):
    """Raised when the incoming event structure is invalid."""

    def __init__(self, message: str, **kwargs):
        if "error_code" not in kwargs:
            kwargs["error_code"] = "INVALID_S3_EVENT"
        super().__init__(message, **kwargs)


# === Processing Errors ===


class ProcessingError(PopulationProcessingError):
    """Base class for processing errors."""

    pass


class CsvParseError(ProcessingError, NonRetryableError):
    """Raised when the input object cannot be read as CSV."""

    def __init__(self, reason: str, **kwargs):
        message = f"CSV parsing failed: {reason}"
        context = {"reason": reason}
        context.update(kwargs.pop("context", None) or {})
        super().__init__(message, error_code="CSV_PARSE_FAILED", context=context, **kwargs)


class EmptyDatasetError(ProcessingError, NonRetryableError):
    """Raised when the input CSV has no columns to process."""

    def __init__(self, **kwargs):
        super().__init__("Input CSV contains no columns", error_code="EMPTY_DATASET", **kwargs)


class InputTooLargeError(ProcessingError, NonRetryableError):
    """Raised when the input object exceeds the configured size limit."""

    def __init__(self, size_bytes: int, limit_bytes: int, **kwargs):
        message = f"Input object size {size_bytes} exceeds limit {limit_bytes}"
        context = {"size_bytes": size_bytes, "limit_bytes": limit_bytes}
        context.update(kwargs.pop("context", None) or {})
        super().__init__(message, error_code="INPUT_TOO_LARGE", context=context, **kwargs)


class SizeMismatchError(ProcessingError, NonRetryableError):
    """Raised when the downloaded byte count differs from the event's size."""

    def __init__(self, expected_bytes: int, actual_bytes: int, **kwargs):
        message = f"Downloaded {actual_bytes} bytes, event announced {expected_bytes}"
        context = {"expected_bytes": expected_bytes, "actual_bytes": actual_bytes}
        context.update(kwargs.pop("context", None) or {})
        super().__init__(message, error_code="SIZE_MISMATCH", context=context, **kwargs)


class OutputWriteError(ProcessingError, RetryableError):
    """Raised when the processed CSV cannot be written to S3."""

    def __init__(self, reason: str, **kwargs):
        message = f"Writing output failed: {reason}"
        context = {"reason": reason}
        context.update(kwargs.pop("context", None) or {})
        kwargs.setdefault("error_code", "OUTPUT_WRITE_FAILED")
        super().__init__(message, context=context, **kwargs)


class ProcessingTimeoutError(ProcessingError, RetryableError):
    """Raised when not enough Lambda time is left to safely process an object."""

    def __init__(self, remaining_time_ms: int, **kwargs):
        message = f"Insufficient time remaining for processing: {remaining_time_ms}ms"
        context = {"remaining_time_ms": remaining_time_ms}
        context.update(kwargs.pop("context", None) or {})
        super().__init__(message, error_code="PROCESSING_TIMEOUT", context=context, **kwargs)


class MemoryLimitError(ProcessingError, RetryableError):
    """Raised when memory limit is exceeded."""

    def __init__(self, operation: str, **kwargs):
        message = f"Memory limit exceeded during: {operation}"
        context = {"operation": operation}
        context.update(kwargs.pop("context", None) or {})
        super().__init__(message, error_code="MEMORY_LIMIT_EXCEEDED", context=context, **kwargs)


# === Configuration Errors ===


class ConfigurationError(NonRetryableError):
    """Raised when there's an error in the application configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, error_code="CONFIGURATION_ERROR", **kwargs)


# === Utility Functions ===


def is_retryable_error(error: Exception) -> bool:
    """Check if an error is retryable."""
    return isinstance(error, RetryableError)


def get_error_context(error: Exception) -> Dict[str, Any]:
    """Extract error context for logging."""
    if isinstance(error, PopulationProcessingError):
        return error.to_dict()
    else:
        return {
            "error_type": error.__class__.__name__,
            "message": str(error),
            "retryable": False,  # Unknown errors default to non-retryable
        }
