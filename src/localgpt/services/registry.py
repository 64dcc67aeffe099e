"""Provider construction from configuration."""

from typing import Optional, Union

import httpx

from localgpt.models.config import (
    OllamaProviderConfig,
    OpenAICompatibleProviderConfig,
    ProviderType,
)
from localgpt.services.providers.base import ProviderClient
from localgpt.services.providers.ollama import OllamaProvider
from localgpt.services.providers.openai_compat import OpenAICompatibleProvider


_PROVIDER_CLASSES: dict[ProviderType, type[ProviderClient]] = {
    ProviderType.OLLAMA: OllamaProvider,
    ProviderType.OPENAI_COMPATIBLE: OpenAICompatibleProvider,
}


def create_provider(
    config: Union[OllamaProviderConfig, OpenAICompatibleProviderConfig],
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderClient:
    """
    Create the client for a provider configuration.

    Args:
        config: Provider settings (the `type` field selects the client)
        transport: Optional httpx transport shared by the client's requests

    Returns:
        ProviderClient speaking the configured protocol

    Raises:
        ValueError: If the provider type is unknown
    """
    try:
        provider_class = _PROVIDER_CLASSES[ProviderType(config.type)]
    except (KeyError, ValueError) as e:
        raise ValueError(f"Unknown provider type: {config.type}") from e
    return provider_class(config, transport=transport)
