"""Configuration management and embedding cache ownership."""

from pathlib import Path
from functools import cached_property
from typing import Optional

from localgpt.models.action import Action
from localgpt.models.config import Config, DefaultsConfig, RAGConfig
from localgpt.rag.embedding_cache import EmbeddingCache
from localgpt.services.action_runner import ActionRunner
from localgpt.utils.logging import get_logger


logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "localgpt" / "config.yaml"

EmbeddingSelection = tuple[str, Optional[str], Optional[str]]


def embedding_selection(config: Config) -> EmbeddingSelection:
    """Identify which embedding model produces retrieval vectors under `config`."""
    provider = config.primary_provider
    return (config.defaults.provider.value, str(provider.base_url), provider.embedding_model)


class ConfigManager:
    """
    Holds the active configuration and the process-wide embedding cache.

    Vectors from different embedding models are not comparable, so replacing
    the configuration with one that selects a different embedding model (or
    provider) clears the cache.

    Example:
        >>> config_mgr = ConfigManager.load_default()
        >>> runner = config_mgr.runner
        >>> config_mgr.update(new_config)  # clears cache if embedding model changed
    """

    def __init__(self, config: Config, cache: Optional[EmbeddingCache] = None):
        """
        Initialize config manager with loaded config.

        Args:
            config: Loaded and validated Config instance
            cache: Embedding cache to own; created from config.rag if None
        """
        self._config = config
        if cache is None:
            cache = EmbeddingCache(max_entries=config.rag.cache_max_entries)
        self.cache = cache

    @classmethod
    def load_default(cls) -> "ConfigManager":
        """
        Load configuration from default path (~/.config/localgpt/config.yaml).

        Raises:
            FileNotFoundError: If config file doesn't exist
            PermissionError: If config file has wrong permissions
            ValueError: If config is invalid
        """
        return cls.load_from_path(DEFAULT_CONFIG_PATH)

    @classmethod
    def load_from_path(cls, path: Path) -> "ConfigManager":
        """
        Load configuration from specific path.

        Args:
            path: Path to config.yaml file

        Returns:
            ConfigManager instance with loaded config

        Raises:
            FileNotFoundError: If config file doesn't exist
            PermissionError: If config file has wrong permissions
            ValueError: If config is invalid
        """
        logger.info("config_loading", path=str(path))

        try:
            config = Config.load(path)
            logger.info("config_loaded", path=str(path))
            return cls(config)

        except FileNotFoundError as e:
            logger.error("config_not_found", path=str(path), error=str(e))
            raise

        except PermissionError as e:
            logger.error("config_permission_error", path=str(path), error=str(e))
            raise

        except Exception as e:
            logger.error("config_validation_error", path=str(path), error=str(e))
            raise ValueError(f"Configuration validation failed: {e}") from e

    @property
    def config(self) -> Config:
        """Active configuration."""
        return self._config

    @property
    def defaults(self) -> DefaultsConfig:
        return self._config.defaults

    @property
    def rag(self) -> RAGConfig:
        return self._config.rag

    @property
    def actions(self) -> list[Action]:
        return self._config.actions

    @cached_property
    def runner(self) -> ActionRunner:
        """ActionRunner for the active configuration, sharing this manager's cache."""
        return ActionRunner.from_config(self._config, self.cache)

    def update(self, config: Config) -> bool:
        """
        Replace the active configuration.

        Args:
            config: New validated configuration

        Returns:
            True if the embedding selection changed and the cache was cleared
        """
        changed = embedding_selection(config) != embedding_selection(self._config)
        self._config = config
        # Providers are rebuilt from the new config on next access
        self.__dict__.pop("runner", None)

        if changed:
            logger.info("embedding_selection_changed", selection=embedding_selection(config))
            self.clear_embeddings_cache()
        return changed

    def clear_embeddings_cache(self) -> None:
        """Drop all cached embedding vectors."""
        self.cache.clear()
