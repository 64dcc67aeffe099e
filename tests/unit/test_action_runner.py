"""Unit tests for ActionRunner."""

import json
from unittest.mock import patch

import httpx
import pytest

from localgpt.models.action import Action, Creativity
from localgpt.models.config import Config, RAGConfig
from localgpt.rag.embedding_cache import EmbeddingCache
from localgpt.rag.retriever import EmbeddingRetriever
from localgpt.services.action_runner import ActionRunner
from localgpt.services.fallback import FallbackOrchestrator
from localgpt.services.providers import OllamaProvider, OpenAICompatibleProvider


RELEVANT = "The office wifi password is on the fridge."
IRRELEVANT = "Lunch is served at noon in the canteen."
DOCUMENT = f"{RELEVANT}\n\n{IRRELEVANT}"


def ollama_server(stream_bodies, embeddings=None):
    """Handler serving /api/generate (echoing 'ok') and /api/embeddings."""
    embeddings = embeddings or {}

    def handler(request):
        if request.url.path == "/api/embeddings":
            text = json.loads(request.content)["prompt"]
            if text not in embeddings:
                return httpx.Response(404, json={"error": "model not found"})
            return httpx.Response(200, json={"embedding": embeddings[text]})
        return httpx.Response(200, content=stream_bodies.ndjson(
            {"response": "o", "done": False},
            {"response": "k", "done": True},
        ))

    return handler


@pytest.fixture
def build_runner(ollama_config, make_transport):
    """Build an ActionRunner over one mocked Ollama server."""

    def factory(handler, creativity=Creativity.LOW, cache=None):
        transport = make_transport(handler)
        provider = OllamaProvider(ollama_config, transport=transport)
        retriever = EmbeddingRetriever(
            provider,
            cache if cache is not None else EmbeddingCache(),
            RAGConfig(top_k=1, chunk_size=50, chunk_overlap=0),
        )
        runner = ActionRunner(FallbackOrchestrator(provider), retriever, creativity)
        return runner, transport

    return factory


class TestApplyDefaults:
    """Test default temperature handling."""

    def test_creativity_fills_missing_temperature(self):
        runner = ActionRunner(FallbackOrchestrator(None), creativity=Creativity.HIGH)

        assert runner.apply_defaults(Action(name="A")).temperature == 1.0

    def test_action_temperature_wins(self):
        runner = ActionRunner(FallbackOrchestrator(None), creativity=Creativity.HIGH)

        assert runner.apply_defaults(Action(name="A", temperature=0.0)).temperature == 0.0

    def test_creativity_none_leaves_server_default(self):
        runner = ActionRunner(FallbackOrchestrator(None), creativity=Creativity.NONE)

        assert runner.apply_defaults(Action(name="A")).temperature is None


class TestRun:
    """Test running actions."""

    @pytest.mark.asyncio
    async def test_plain_run(self, build_runner, stream_bodies, action):
        """Test a run without context sends the text unchanged."""
        runner, transport = build_runner(ollama_server(stream_bodies))
        updates = []

        result = await runner.run(action, "Some text", updates.append)

        assert result == "ok"
        assert updates == ["o", "ok"]
        payload = transport.payloads[0]
        assert payload["prompt"] == "Summarize this\n\nSome text"
        assert payload["options"] == {"temperature": 0.2}

    @pytest.mark.asyncio
    async def test_context_passages_prepended(self, build_runner, stream_bodies, action):
        """Test the most relevant passage is spliced in front of the text."""
        embeddings = {
            "wifi password?": [1.0, 0.0],
            RELEVANT: [0.9, 0.1],
            IRRELEVANT: [0.0, 1.0],
        }
        runner, transport = build_runner(ollama_server(stream_bodies, embeddings))

        await runner.run(action, "wifi password?", context_document=DOCUMENT)

        generate = [r for r in transport.requests if r.url.path == "/api/generate"]
        prompt = json.loads(generate[0].content)["prompt"]
        assert prompt == f"Summarize this\n\nContext:\n{RELEVANT}\n\nwifi password?"

    @pytest.mark.asyncio
    async def test_retrieval_failure_degrades(self, build_runner, stream_bodies, action):
        """Test an unembeddable query runs the action without context."""
        runner, transport = build_runner(ollama_server(stream_bodies, embeddings={}))

        result = await runner.run(action, "question", context_document=DOCUMENT)

        assert result == "ok"
        assert transport.payloads[-1]["prompt"] == "Summarize this\n\nquestion"

    @pytest.mark.asyncio
    async def test_no_embedding_model_skips_retrieval(self, stream_bodies, make_transport, action):
        """Test providers without an embedding model never call the embeddings endpoint."""
        config = Config(providers={"ollama": {"type": "ollama", "default_model": "llama3"}})
        transport = make_transport(ollama_server(stream_bodies))
        provider = OllamaProvider(config.primary_provider, transport=transport)
        runner = ActionRunner(
            FallbackOrchestrator(provider), EmbeddingRetriever(provider, EmbeddingCache())
        )

        await runner.run(action, "question", context_document=DOCUMENT)

        assert [r.url.path for r in transport.requests] == ["/api/generate"]

    @pytest.mark.asyncio
    async def test_on_fallback_forwarded(self, ollama_config, openai_config, action, unreachable_transport,
                                         make_transport, stream_bodies):
        """Test the fallback notification reaches the caller."""
        secondary = OpenAICompatibleProvider(openai_config, transport=make_transport(
            lambda request: httpx.Response(200, content=stream_bodies.sse(stream_bodies.openai_delta("B")))
        ))
        primary = OllamaProvider(ollama_config, transport=unreachable_transport)
        runner = ActionRunner(FallbackOrchestrator(primary, secondary))
        fallbacks = []

        result = await runner.run(action, "text", on_fallback=fallbacks.append)

        assert result == "B"
        assert len(fallbacks) == 1


class TestCache:
    """Test cache management."""

    @pytest.mark.asyncio
    async def test_clear_embeddings_cache(self, build_runner, stream_bodies, action):
        cache = EmbeddingCache()
        cache.put("text", "nomic-embed-text", [1.0])
        runner, _ = build_runner(ollama_server(stream_bodies), cache=cache)

        runner.clear_embeddings_cache()

        assert len(cache) == 0


class TestFromConfig:
    """Test building the object graph from configuration."""

    def test_primary_and_fallback(self):
        config = Config(
            defaults={"provider": "ollama", "fallback_provider": "openai_compatible", "creativity": "high"},
            providers={
                "ollama": {"type": "ollama", "default_model": "llama3"},
                "openai_compatible": {"type": "openai_compatible", "base_url": "http://localhost:8080"},
            },
            rag={"cache_max_entries": 10},
        )

        runner = ActionRunner.from_config(config)

        assert isinstance(runner.orchestrator.primary, OllamaProvider)
        assert isinstance(runner.orchestrator.secondary, OpenAICompatibleProvider)
        assert runner.retriever.provider is runner.orchestrator.primary
        assert runner.retriever.cache.max_entries == 10
        assert runner.creativity is Creativity.HIGH

    def test_shared_cache(self):
        config = Config(providers={"ollama": {"type": "ollama", "default_model": "llama3"}})
        cache = EmbeddingCache()

        runner = ActionRunner.from_config(config, cache)

        assert runner.orchestrator.secondary is None
        assert runner.retriever.cache is cache

    def test_providers_built_through_registry(self):
        """Test provider construction goes through create_provider."""
        config = Config(providers={"ollama": {"type": "ollama", "default_model": "llama3"}})

        with patch("localgpt.services.action_runner.create_provider") as mock_create:
            ActionRunner.from_config(config)

        mock_create.assert_called_once_with(config.primary_provider)
