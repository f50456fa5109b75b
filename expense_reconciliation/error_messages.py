"""
User-facing error messages and HTTP status mapping.

Translates the reconciliation exception hierarchy into short messages a
user can act on, without leaking credentials or stack traces.
"""

from typing import Any, Dict

from expense_reconciliation.models import (
    BatchError, ConfigurationError, FileErrorType, FileProcessingError,
    RecognitionError, RecognitionErrorType, ValidationError
)

import logging
logger = logging.getLogger(__name__)


ERROR_MESSAGES = {
    # File errors
    FileErrorType.UNSUPPORTED_FORMAT: "Unsupported file format, upload PDF, PNG, JPG or JPEG files",
    FileErrorType.FILE_TOO_LARGE: "File exceeds the size limit, compress it and retry",
    FileErrorType.CORRUPTED_FILE: "File is corrupted or unreadable, check the file",
    FileErrorType.PROCESSING_FAILED: "File processing failed, retry later",

    # Recognition errors
    RecognitionErrorType.API_KEY_INVALID: "API key is invalid, check the configuration",
    RecognitionErrorType.API_ENDPOINT_INVALID: "API endpoint is invalid, check the configuration",
    RecognitionErrorType.RATE_LIMIT_EXCEEDED: "API rate limit exceeded, retry later",
    RecognitionErrorType.NETWORK_ERROR: "Network connection failed, check the network settings",
    RecognitionErrorType.PARSING_ERROR: "Could not parse the recognition response, retry",
    RecognitionErrorType.TIMEOUT: "Recognition request timed out, retry",
    RecognitionErrorType.INSUFFICIENT_CREDITS: "API credits exhausted, top up to continue"
}

UNKNOWN_ERROR_MESSAGE = "An unknown error occurred, retry later"


def get_user_friendly_message(error: Exception) -> str:
    """
    Get a message suitable for showing to the user.

    Args:
        error: Any exception raised while processing

    Returns:
        Message text
    """
    if isinstance(error, (FileProcessingError, RecognitionError)):
        return ERROR_MESSAGES.get(error.error_type, str(error))

    if isinstance(error, (ValidationError, ConfigurationError, BatchError)):
        return str(error)

    return UNKNOWN_ERROR_MESSAGE


def describe_file_error(error: Exception) -> str:
    """
    Describe why a single batch file failed.

    File errors keep their detailed message since it names the file
    problem; other errors use the user-friendly message.
    """
    if isinstance(error, FileProcessingError):
        return f"File error: {error}"
    if isinstance(error, RecognitionError):
        return f"Recognition error: {get_user_friendly_message(error)}"
    return get_user_friendly_message(error)


def is_retryable(error: Exception) -> bool:
    """Whether retrying the same request may succeed."""
    if isinstance(error, RecognitionError):
        return error.retryable
    if isinstance(error, FileProcessingError):
        return error.error_type is FileErrorType.PROCESSING_FAILED
    return False


def http_status_for(error: Exception) -> int:
    """
    HTTP status code for an exception raised while handling a request.

    Validation and file errors are client errors; recognition errors pass
    the upstream status through when there is one.
    """
    if isinstance(error, (ValidationError, FileProcessingError)):
        return 400
    if isinstance(error, RecognitionError):
        return error.status_code or 500
    return 500


def sanitize_error(error: Exception) -> Dict[str, Any]:
    """
    Summarize an exception for logging, without sensitive data.

    Returns:
        Dictionary with the exception name, message and category fields
    """
    sanitized = {
        'name': type(error).__name__,
        'message': str(error)
    }

    if isinstance(error, RecognitionError):
        sanitized['type'] = error.error_type.value
        sanitized['retryable'] = error.retryable
        sanitized['status_code'] = error.status_code

    if isinstance(error, FileProcessingError):
        sanitized['type'] = error.error_type.value
        sanitized['file_name'] = error.file_name

    return sanitized
