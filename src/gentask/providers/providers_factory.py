"""Static registry of vendor adapters keyed by API format."""

from __future__ import annotations

from ..exceptions import ProviderConfigurationError, UnsupportedProviderError
from .model_types import ApiFormat, ModelType
from .providers_base import (
    AsyncProvider,
    ModelCapabilities,
    Provider,
    SyncProvider,
    ValidationRules,
)
from .providers_dalle import DalleProvider
from .providers_gemini import GeminiProvider
from .providers_koukoutu import KoukoutuProvider
from .providers_mj import MJProvider
from .providers_openai_chat import OpenAIChatImageProvider
from .providers_openai_video import OpenAIVideoProvider
from .providers_video_unified import VideoUnifiedProvider


def validate_provider(provider: Provider) -> Provider:
    """Reject adapters whose ``is_async`` flag contradicts their service shape."""
    meta = provider.meta
    if meta.is_async and not isinstance(provider, AsyncProvider):
        raise ProviderConfigurationError(
            f"Provider '{meta.api_format}' is flagged async but is not an AsyncProvider"
        )
    if not meta.is_async and not isinstance(provider, SyncProvider):
        raise ProviderConfigurationError(
            f"Provider '{meta.api_format}' is flagged sync but is not a SyncProvider"
        )
    return provider


PROVIDERS: tuple[Provider, ...] = tuple(
    validate_provider(provider)
    for provider in (
        DalleProvider(),
        GeminiProvider(),
        OpenAIChatImageProvider(),
        MJProvider(),
        KoukoutuProvider(),
        VideoUnifiedProvider(),
        OpenAIVideoProvider(),
    )
)


def find_provider(api_format: ApiFormat | str) -> Provider | None:
    for provider in PROVIDERS:
        if provider.meta.api_format == api_format:
            return provider
    return None


def get_provider(api_format: ApiFormat | str) -> Provider:
    """Return the adapter for ``api_format`` or raise ``UnsupportedProviderError``."""
    provider = find_provider(api_format)
    if provider is None:
        raise UnsupportedProviderError(f"不支持的 API 格式: {api_format}")
    return provider


def get_async_api_formats() -> list[ApiFormat]:
    return [provider.meta.api_format for provider in PROVIDERS if provider.meta.is_async]


def get_all_api_formats() -> list[ApiFormat]:
    return [provider.meta.api_format for provider in PROVIDERS]


def get_api_formats_for_model_type(model_type: ModelType | str) -> list[ApiFormat]:
    return [
        provider.meta.api_format
        for provider in PROVIDERS
        if model_type in provider.meta.model_types
    ]


def get_capabilities(api_format: ApiFormat | str) -> ModelCapabilities:
    provider = find_provider(api_format)
    return provider.meta.capabilities if provider else ModelCapabilities()


def get_validation_rules(api_format: ApiFormat | str) -> ValidationRules:
    provider = find_provider(api_format)
    return provider.meta.validation if provider else ValidationRules()
