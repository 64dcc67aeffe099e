"""OpenAI-compatible provider client.

Works with any server implementing the OpenAI chat completions API
(OpenAI itself, LM Studio, llama.cpp server, Open WebUI, vLLM, ...).
"""

from typing import Any, Dict

from localgpt.models.action import Action
from localgpt.services.providers.base import ProviderClient, build_user_message
from localgpt.services.stream_decoder import OPENAI_DIALECT


class OpenAICompatibleProvider(ProviderClient):
    """
    Client for an OpenAI-compatible server.

    Generation streams event-stream lines (data: {...}) from
    /v1/chat/completions, terminated by "data: [DONE]". A bearer token is
    attached when an API key is configured.
    """

    dialect = OPENAI_DIALECT

    @property
    def api_root(self) -> str:
        """Base URL with exactly one /v1 suffix."""
        base_url = self.base_url
        if base_url.endswith("/v1"):
            return base_url
        return f"{base_url}/v1"

    def headers(self) -> Dict[str, str]:
        if self.config.api_key:
            return {"Authorization": f"Bearer {self.config.api_key}"}
        return {}

    def generation_url(self) -> str:
        return f"{self.api_root}/chat/completions"

    def build_generation_payload(self, text: str, action: Action) -> Dict[str, Any]:
        messages = []
        if action.system:
            messages.append({"role": "system", "content": action.system})
        messages.append({"role": "user", "content": build_user_message(action.prompt, text)})

        payload: Dict[str, Any] = {
            "model": self.resolve_model(action),
            "messages": messages,
            "stream": True,
        }
        if action.temperature is not None:
            payload["temperature"] = action.temperature
        return payload

    def models_url(self) -> str:
        return f"{self.api_root}/models"

    def parse_models(self, data: Any) -> Dict[str, str]:
        return {model["id"]: model["id"] for model in data.get("data", [])}

    def embeddings_url(self) -> str:
        return f"{self.api_root}/embeddings"

    def build_embedding_payload(self, text: str, model: str) -> Dict[str, Any]:
        return {"model": model, "input": text}

    def parse_embedding(self, data: Any) -> list[float]:
        return data["data"][0]["embedding"]
