"""Error classification helpers."""

from .error_classifier import (
    ERROR_MESSAGES,
    ErrorCode,
    ErrorInfo,
    ErrorInput,
    classify_error,
    classify_error_code,
    classify_exception,
    error_message,
    extract_error_info,
    is_abort_error,
)

__all__ = [
    "ERROR_MESSAGES",
    "ErrorCode",
    "ErrorInfo",
    "ErrorInput",
    "classify_error",
    "classify_error_code",
    "classify_exception",
    "error_message",
    "extract_error_info",
    "is_abort_error",
]
