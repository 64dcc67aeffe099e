"""Configuration models for localgpt."""

from enum import Enum
from pathlib import Path
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, HttpUrl, field_validator, model_validator
import yaml
import os
import stat

from localgpt.models.action import DEFAULT_ACTIONS, Action, Creativity


class ProviderType(str, Enum):
    """Wire protocol spoken by a provider."""

    OLLAMA = "ollama"
    OPENAI_COMPATIBLE = "openai_compatible"


class ProviderKind(str, Enum):
    """Provider slot in the configuration (primary or fallback per protocol)."""

    OLLAMA = "ollama"
    OLLAMA_FALLBACK = "ollama_fallback"
    OPENAI_COMPATIBLE = "openai_compatible"
    OPENAI_COMPATIBLE_FALLBACK = "openai_compatible_fallback"

    @property
    def provider_type(self) -> ProviderType:
        """Protocol used by providers configured in this slot."""
        if self in (ProviderKind.OLLAMA, ProviderKind.OLLAMA_FALLBACK):
            return ProviderType.OLLAMA
        return ProviderType.OPENAI_COMPATIBLE


class OllamaProviderConfig(BaseModel):
    """Connection settings for an Ollama server."""

    type: Literal["ollama"] = "ollama"

    base_url: HttpUrl = Field(
        default="http://localhost:11434",
        validate_default=True,
        description="Ollama server URL"
    )

    default_model: str = Field(
        ...,
        description="Model used when an action does not override it (e.g., 'llama3')"
    )

    embedding_model: Optional[str] = Field(
        default=None,
        description="Embedding model for enhanced actions; unset disables retrieval"
    )

    model_config = {"frozen": True}

    @field_validator("embedding_model")
    @classmethod
    def blank_embedding_model_is_unset(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty embedding model as 'no enhancement'."""
        return v or None


class OpenAICompatibleProviderConfig(BaseModel):
    """Connection settings for an OpenAI-compatible server."""

    type: Literal["openai_compatible"] = "openai_compatible"

    base_url: HttpUrl = Field(
        ...,
        description="Server URL (e.g., 'http://localhost:8080')"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Optional API key sent as a bearer token"
    )

    default_model: str = Field(
        default="",
        description="Model used when an action does not override it"
    )

    embedding_model: Optional[str] = Field(
        default=None,
        description="Embedding model for enhanced actions; unset disables retrieval"
    )

    model_config = {"frozen": True}

    @field_validator("api_key", "embedding_model")
    @classmethod
    def blank_is_unset(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty strings as unset."""
        return v or None


ProviderConfig = Annotated[
    Union[OllamaProviderConfig, OpenAICompatibleProviderConfig],
    Field(discriminator="type"),
]


class DefaultsConfig(BaseModel):
    """Provider selection and generation defaults."""

    provider: ProviderKind = Field(
        default=ProviderKind.OLLAMA,
        description="Primary provider slot"
    )

    fallback_provider: Optional[ProviderKind] = Field(
        default=None,
        description="Provider slot tried when the primary is unreachable"
    )

    creativity: Creativity = Field(
        default=Creativity.LOW,
        description="Default temperature level for actions without one"
    )

    model_config = {"frozen": True}


class RAGConfig(BaseModel):
    """Configuration for retrieval augmentation of enhanced actions."""

    top_k: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Number of passages spliced into the prompt"
    )

    chunk_size: int = Field(
        default=1000,
        ge=50,
        description="Target passage length in characters"
    )

    chunk_overlap: int = Field(
        default=100,
        ge=0,
        description="Overlap in characters between hard-cut passages"
    )

    cache_max_entries: Optional[int] = Field(
        default=None,
        ge=1,
        description="Embedding cache capacity (unset means unbounded)"
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_overlap(self) -> "RAGConfig":
        """Overlap must leave room for progress between hard cuts."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be smaller than "
                f"chunk_size ({self.chunk_size})"
            )
        return self


class Config(BaseModel):
    """Root configuration for localgpt."""

    defaults: DefaultsConfig = Field(
        default_factory=DefaultsConfig,
        description="Provider selection and defaults"
    )

    providers: dict[ProviderKind, ProviderConfig] = Field(
        ...,
        description="Provider settings keyed by slot"
    )

    rag: RAGConfig = Field(default_factory=RAGConfig, description="Retrieval settings")

    actions: list[Action] = Field(
        default_factory=lambda: list(DEFAULT_ACTIONS),
        description="Available actions, in display order"
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_selection(self) -> "Config":
        """Check provider slots, fallback selection and action names."""
        for kind, provider in self.providers.items():
            if provider.type != kind.provider_type.value:
                raise ValueError(
                    f"Provider '{kind.value}' must have type "
                    f"'{kind.provider_type.value}', got '{provider.type}'"
                )

        if self.defaults.provider not in self.providers:
            raise ValueError(
                f"Selected provider '{self.defaults.provider.value}' is not configured"
            )

        fallback = self.defaults.fallback_provider
        if fallback is not None:
            if fallback == self.defaults.provider:
                raise ValueError("Fallback provider must differ from the primary provider")
            if fallback not in self.providers:
                raise ValueError(f"Fallback provider '{fallback.value}' is not configured")

        seen: set[str] = set()
        for action in self.actions:
            if action.name in seen:
                raise ValueError(f"An action with the name \"{action.name}\" already exists")
            seen.add(action.name)

        return self

    @property
    def primary_provider(self) -> Union[OllamaProviderConfig, OpenAICompatibleProviderConfig]:
        """Settings of the selected provider."""
        return self.providers[self.defaults.provider]

    @property
    def fallback_provider(self) -> Optional[Union[OllamaProviderConfig, OpenAICompatibleProviderConfig]]:
        """Settings of the fallback provider, if one is selected."""
        if self.defaults.fallback_provider is None:
            return None
        return self.providers[self.defaults.fallback_provider]

    def get_action(self, name: str) -> Action:
        """
        Look up an action by name.

        Raises:
            KeyError: If no action has that name
        """
        for action in self.actions:
            if action.name == name:
                return action
        raise KeyError(name)

    @classmethod
    def load(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file.

        Validates file permissions before loading.
        Raises PermissionError if file is group/world readable.

        Args:
            path: Path to config.yaml file

        Returns:
            Validated Config instance

        Raises:
            PermissionError: If file permissions are too open
            FileNotFoundError: If config file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        if not path.exists():
            raise FileNotFoundError(
                f"Configuration file not found at {path}\n\n"
                f"Please create the file with the following format:\n\n"
                f"defaults:\n"
                f"  provider: ollama\n"
                f"  fallback_provider: openai_compatible_fallback\n"
                f"  creativity: low\n\n"
                f"providers:\n"
                f"  ollama:\n"
                f"    type: ollama\n"
                f"    base_url: http://localhost:11434\n"
                f"    default_model: llama3\n"
                f"    embedding_model: nomic-embed-text\n"
                f"  openai_compatible_fallback:\n"
                f"    type: openai_compatible\n"
                f"    base_url: http://localhost:8080\n"
                f"    api_key: YOUR_API_KEY_HERE\n\n"
                f"rag:\n"
                f"  top_k: 5\n"
            )

        # API keys live in this file: it must be private (600)
        mode = os.stat(path).st_mode
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            raise PermissionError(
                f"Config file has overly permissive permissions: {oct(mode)}\n"
                f"Run: chmod 600 {path}"
            )

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Configuration in {path} must be a mapping")

        return cls(**data)
