"""Model provider clients."""

from localgpt.services.providers.base import ProviderClient, build_user_message
from localgpt.services.providers.ollama import OllamaProvider
from localgpt.services.providers.openai_compat import OpenAICompatibleProvider

__all__ = [
    "ProviderClient",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "build_user_message",
]
