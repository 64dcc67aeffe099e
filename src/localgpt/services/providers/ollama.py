"""Ollama provider client (native /api endpoints)."""

from typing import Any, Dict

from localgpt.models.action import Action
from localgpt.services.providers.base import ProviderClient, build_user_message
from localgpt.services.stream_decoder import OLLAMA_DIALECT


def format_model_size(size_bytes: int) -> str:
    """Format model size in human-readable units.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "4.1 GB", "512 MB")
    """
    kb = 1024
    mb = kb * 1024
    gb = mb * 1024

    if size_bytes >= gb:
        return f"{size_bytes / gb:.1f} GB"
    elif size_bytes >= mb:
        return f"{size_bytes / mb:.1f} MB"
    elif size_bytes >= kb:
        return f"{size_bytes / kb:.1f} KB"
    else:
        return f"{size_bytes} bytes"


class OllamaProvider(ProviderClient):
    """
    Client for an Ollama server.

    Generation streams one bare JSON object per line from /api/generate,
    ending with a record whose "done" field is true. Ollama does not
    authenticate, so no credentials are sent.
    """

    dialect = OLLAMA_DIALECT

    @property
    def base_url(self) -> str:
        # Tolerate an OpenAI-style URL pointing at Ollama's /v1 shim
        base_url = super().base_url
        if base_url.endswith("/v1"):
            base_url = base_url[:-3]
        return base_url

    def generation_url(self) -> str:
        return f"{self.base_url}/api/generate"

    def build_generation_payload(self, text: str, action: Action) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.resolve_model(action),
            "prompt": build_user_message(action.prompt, text),
            "stream": True,
        }
        if action.system:
            payload["system"] = action.system
        if action.temperature is not None:
            payload["options"] = {"temperature": action.temperature}
        return payload

    def models_url(self) -> str:
        return f"{self.base_url}/api/tags"

    def parse_models(self, data: Any) -> Dict[str, str]:
        """Label each installed model with its size, e.g. 'llama3:8b (4.3 GB)'."""
        models = {}
        for model in data.get("models", []):
            name = model["name"]
            size = model.get("size")
            models[name] = f"{name} ({format_model_size(size)})" if size else name
        return models

    def embeddings_url(self) -> str:
        return f"{self.base_url}/api/embeddings"

    def build_embedding_payload(self, text: str, model: str) -> Dict[str, Any]:
        return {"model": model, "prompt": text}

    def parse_embedding(self, data: Any) -> list[float]:
        return data["embedding"]
