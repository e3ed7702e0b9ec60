"""Vendor adapters and the registry that selects them."""

from .model_types import ApiFormat, ModelCategory, ModelType
from .providers_base import (
    ActionService,
    AsyncProvider,
    AsyncQueryResult,
    AsyncService,
    AsyncSubmitResult,
    GenerateParams,
    Provider,
    SyncProvider,
    SyncResult,
    SyncService,
    TaskOperation,
    UpstreamStatus,
)
from .providers_factory import get_provider
from .providers_http import ProviderHttp

__all__ = [
    "ActionService",
    "ApiFormat",
    "AsyncProvider",
    "AsyncQueryResult",
    "AsyncService",
    "AsyncSubmitResult",
    "GenerateParams",
    "ModelCategory",
    "ModelType",
    "Provider",
    "ProviderHttp",
    "SyncProvider",
    "SyncResult",
    "SyncService",
    "TaskOperation",
    "UpstreamStatus",
    "get_provider",
]
