"""Provider selection: endpoint templates, credentials and wire protocol."""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from models.provider_models import AIProvider, ProviderEndpoints, WireProtocol
from services.realtime.errors import ConfigurationError
from utils.settings import AppSettings

LOGGER = logging.getLogger(__name__)

ALIBABA_BEIJING = ProviderEndpoints(
    rest_base_url="https://dashscope.aliyuncs.com/compatible-mode/v1",
    ws_base_url="wss://dashscope.aliyuncs.com/api-ws/v1/realtime",
    vision_model="qwen3-vl-plus",
    realtime_model="qwen3-omni-flash-realtime",
    voice="longxiaochun",
)

ALIBABA_SINGAPORE = ProviderEndpoints(
    rest_base_url="https://dashscope-intl.aliyuncs.com/compatible-mode/v1",
    ws_base_url="wss://dashscope-intl.aliyuncs.com/api-ws/v1/realtime",
    vision_model="qwen3-vl-plus",
    realtime_model="qwen3-omni-flash-realtime",
    voice="longxiaochun",
)

OPENAI = ProviderEndpoints(
    rest_base_url="https://api.openai.com/v1",
    ws_base_url="wss://api.openai.com/v1/realtime",
    vision_model="gpt-4-turbo",
    realtime_model="gpt-4o-realtime-preview-2025-06-03",
    voice="alloy",
)


@dataclass(frozen=True)
class ResolvedProvider:
    """Everything needed to build a session for one provider."""

    provider: AIProvider
    endpoints: ProviderEndpoints
    api_key: str
    protocol: WireProtocol


def endpoints_for(provider: AIProvider, settings: AppSettings) -> ProviderEndpoints:
    """Return the endpoint template for a provider."""
    if provider is AIProvider.OPENAI:
        return OPENAI
    if provider is AIProvider.CUSTOM:
        return ProviderEndpoints(
            rest_base_url=settings.custom_rest_endpoint.rstrip("/"),
            ws_base_url=settings.custom_ws_endpoint,
            vision_model=settings.custom_vision_model,
            realtime_model=settings.custom_realtime_model,
            voice=settings.custom_voice,
        )
    return ALIBABA_SINGAPORE if settings.alibaba_region == "singapore" else ALIBABA_BEIJING


def api_key_for(provider: AIProvider, settings: AppSettings) -> Optional[str]:
    """Return the configured API key for a provider, if any."""
    return {
        AIProvider.ALIBABA_CLOUD: settings.alibaba_api_key,
        AIProvider.OPENAI: settings.openai_api_key,
        AIProvider.CUSTOM: settings.custom_api_key,
    }[provider]


def protocol_for(provider: AIProvider, endpoints: ProviderEndpoints, settings: AppSettings) -> WireProtocol:
    """Return the realtime dialect a provider speaks.

    A custom provider uses `CUSTOM_PROTOCOL` when set; otherwise a WebSocket
    URL mentioning "openai" selects the OpenAI dialect.
    """
    if provider is AIProvider.OPENAI:
        return WireProtocol.OPENAI
    if provider is AIProvider.ALIBABA_CLOUD:
        return WireProtocol.OMNI
    if settings.custom_protocol:
        return WireProtocol(settings.custom_protocol)
    return WireProtocol.OPENAI if "openai" in endpoints.ws_base_url.lower() else WireProtocol.OMNI


def _check_url(url: str, schemes: tuple, label: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in schemes or not parsed.netloc:
        raise ConfigurationError(f"{label} must be a {' or '.join(schemes)} URL, got {url!r}")


def resolve_provider(settings: AppSettings, provider: Optional[AIProvider] = None) -> ResolvedProvider:
    """Resolve provider, endpoints, credentials and protocol.

    Args:
        settings: Application settings.
        provider: Explicit provider; defaults to `settings.provider`.

    Raises:
        ConfigurationError: If the key is missing or an endpoint is malformed.
    """
    provider = provider or AIProvider.from_id(settings.provider)
    endpoints = endpoints_for(provider, settings)
    api_key = api_key_for(provider, settings)
    if not api_key:
        raise ConfigurationError(f"No API key configured for provider {provider.value}")
    _check_url(endpoints.rest_base_url, ("https", "http"), "REST endpoint")
    _check_url(endpoints.ws_base_url, ("wss", "ws"), "WebSocket endpoint")
    if not endpoints.realtime_model:
        raise ConfigurationError("Realtime model must not be empty")

    protocol = protocol_for(provider, endpoints, settings)
    LOGGER.info("Using provider %s (%s protocol, model %s)", provider.value, protocol.value, endpoints.realtime_model)
    return ResolvedProvider(provider=provider, endpoints=endpoints, api_key=api_key, protocol=protocol)
