"""Shared test fixtures for all test modules."""

import json
from types import SimpleNamespace
from typing import Any, Callable, Iterable

import httpx
import pytest

from localgpt.models.action import Action
from localgpt.models.config import OllamaProviderConfig, OpenAICompatibleProviderConfig


def ndjson(*records: Any) -> bytes:
    """Ollama-style body: one JSON object per line."""
    return "".join(json.dumps(record) + "\n" for record in records).encode()


def sse(*records: Any, done: bool = True) -> bytes:
    """OpenAI-style event-stream body, optionally terminated by [DONE]."""
    lines = [f"data: {json.dumps(record)}\n\n" for record in records]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def openai_delta(content: str) -> dict:
    return {"choices": [{"delta": {"content": content}, "finish_reason": None}]}


async def async_chunks(chunks: Iterable[str]):
    """Async iterator over pre-split text chunks."""
    for chunk in chunks:
        yield chunk


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: list[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests if request.content]


def unreachable(request: httpx.Request) -> httpx.Response:
    """Handler simulating a refused connection."""
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def ollama_config():
    """Ollama provider settings with retrieval enabled."""
    return OllamaProviderConfig(
        base_url="http://localhost:11434",
        default_model="llama3",
        embedding_model="nomic-embed-text",
    )


@pytest.fixture
def openai_config():
    """OpenAI-compatible provider settings with an API key."""
    return OpenAICompatibleProviderConfig(
        base_url="http://localhost:8080",
        api_key="test-key",
        default_model="gpt-test",
    )


@pytest.fixture
def action():
    """Plain action with a prompt and system message."""
    return Action(name="Summarize", prompt="Summarize this", system="Be brief.")


@pytest.fixture
def stream_bodies():
    """Builders for streamed response bodies (ndjson, sse, openai_delta, chunks)."""
    return SimpleNamespace(ndjson=ndjson, sse=sse, openai_delta=openai_delta, chunks=async_chunks)


@pytest.fixture
def make_transport():
    """Factory for RecordingTransport instances."""
    return RecordingTransport


@pytest.fixture
def unreachable_transport():
    """Transport whose every request fails to connect."""
    return RecordingTransport(unreachable)
