"""Application level exceptions shared by services, adapters and routes."""

from __future__ import annotations

from typing import Any

__all__ = [
    "AppError",
    "TaskError",
    "TaskNotFoundError",
    "TaskAccessDeniedError",
    "InvalidTaskStateError",
    "TaskValidationError",
    "ProviderError",
    "ProviderHttpError",
    "ProviderResponseError",
    "ProviderTimeoutError",
    "RequestAborted",
    "UnsupportedProviderError",
    "ProviderConfigurationError",
    "UpstreamConfigError",
    "ResourceSaveError",
]


class AppError(Exception):
    """Base class for application specific errors."""


class TaskError(AppError):
    """Base class for task lifecycle errors."""


class TaskNotFoundError(TaskError, KeyError):
    """Raised when a task could not be located (or is hidden from the caller)."""

    def __str__(self) -> str:  # KeyError quotes its argument otherwise
        return str(self.args[0]) if self.args else "Task not found"


class TaskAccessDeniedError(TaskError):
    """Raised when a caller touches a task owned by somebody else."""


class InvalidTaskStateError(TaskError):
    """Raised when a transition is not allowed from the current status."""


class TaskValidationError(TaskError):
    """Raised when task inputs do not satisfy provider validation rules."""


class ProviderError(AppError):
    """Base class for vendor adapter failures."""


class ProviderHttpError(ProviderError):
    """Vendor answered with a non-success HTTP status or an error envelope."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        body: Any = None,
        code: str | None = None,
        error_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.body = body
        self.code = code
        self.error_type = error_type


class ProviderResponseError(ProviderError):
    """Vendor answered 2xx but the payload could not be interpreted."""


class ProviderTimeoutError(ProviderError):
    """Raised when a submission deadline expires before the vendor answers."""


class RequestAborted(ProviderError):
    """Raised inside a network call when its cancellation handle fires."""

    def __init__(self, reason: str = "request aborted") -> None:
        super().__init__(reason)
        self.reason = reason


class UnsupportedProviderError(ProviderError):
    """Raised when no adapter is registered for an API format."""


class ProviderConfigurationError(ProviderError):
    """Raised when an adapter's metadata contradicts its capability shape."""


class UpstreamConfigError(AppError):
    """Raised when vendor account configuration is missing or unusable."""


class ResourceSaveError(AppError):
    """Raised when a generated resource cannot be stored locally."""
