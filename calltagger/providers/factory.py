"""
Provider factory for LLM client instantiation.

Single entry point to instantiate any provider, and to assemble the
primary/fallback failover client described by the configuration.
"""

import logging
from typing import Dict, List, Optional, Type

from .base import AIClient

logger = logging.getLogger(__name__)


class ProviderFactory:
    """
    Factory for creating and managing LLM provider instances.

    Features:
    - Registry pattern for provider classes
    - Instance caching per (name, config)
    """

    _providers: Dict[str, Type[AIClient]] = {}
    _instances: Dict[str, AIClient] = {}

    @classmethod
    def register(cls, name: str, provider_class: Type[AIClient]) -> None:
        """
        Register a provider class.

        Args:
            name: Provider identifier (e.g., 'openai', 'anthropic')
            provider_class: AIClient subclass taking a config dict
        """
        cls._providers[name] = provider_class
        logger.debug(f"Registered provider: {name}")

    @classmethod
    def create(
        cls, name: str, config: Optional[Dict] = None, use_cache: bool = True
    ) -> AIClient:
        """
        Create or retrieve a provider instance.

        Args:
            name: Provider name (openai, anthropic, gemini)
            config: Provider-specific configuration
            use_cache: If True, return cached instance for same name and config

        Returns:
            AIClient instance

        Raises:
            ValueError: If provider name is unknown or its API key is missing
        """
        cache_key = f"{name}:{sorted((config or {}).items())}"
        if use_cache and cache_key in cls._instances:
            return cls._instances[cache_key]

        if name not in cls._providers:
            available = list(cls._providers.keys())
            raise ValueError(f"Unknown provider: '{name}'. Available: {available}")

        try:
            instance = cls._providers[name](config or {})
        except Exception as e:
            logger.error(f"Failed to create provider '{name}': {e}")
            raise

        if use_cache:
            cls._instances[cache_key] = instance

        logger.info(f"Created provider instance: {instance.circuit_key}")
        return instance

    @classmethod
    def list_providers(cls) -> List[str]:
        """List all registered provider names."""
        return list(cls._providers.keys())

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._providers

    @classmethod
    def clear_cache(cls) -> None:
        """Clear all cached provider instances."""
        cls._instances.clear()
        logger.debug("Cleared provider instance cache")

    @classmethod
    def unregister(cls, name: str) -> bool:
        """
        Unregister a provider (mainly for testing).

        Returns:
            True if provider was unregistered
        """
        if name not in cls._providers:
            return False
        del cls._providers[name]
        for key in [k for k in cls._instances if k.startswith(f"{name}:")]:
            del cls._instances[key]
        return True


def _provider_config(config: Dict, name: str, model: Optional[str]) -> Dict:
    provider_config = dict(config.get("providers", {}).get(name, {}))
    if model:
        provider_config["model"] = model
    return provider_config


def build_client_from_config(config: Dict, breaker=None) -> AIClient:
    """
    Build the failover client described by a loaded configuration.

    Args:
        config: Full application config (see utils.config)
        breaker: Shared CircuitBreaker (built from config if None)

    Returns:
        FailoverClient wrapping the primary and optional fallback provider
    """
    from ..core.circuit_breaker import CircuitBreaker
    from ..core.failover import FailoverClient

    cb_config = config.get("circuit_breaker", {})
    if breaker is None:
        breaker = CircuitBreaker(
            failure_threshold=cb_config.get("failure_threshold", 3),
            cooldown_seconds=cb_config.get("cooldown_seconds", 60),
        )

    name = config.get("provider", "openai")
    primary = ProviderFactory.create(name, _provider_config(config, name, config.get("model")))

    fallback = None
    fallback_config = config.get("fallback")
    if fallback_config and fallback_config.get("provider"):
        fallback_name = fallback_config["provider"]
        fallback = ProviderFactory.create(
            fallback_name,
            _provider_config(config, fallback_name, fallback_config.get("model")),
        )

    return FailoverClient(
        primary,
        fallback=fallback,
        breaker=breaker,
        max_attempts=cb_config.get("max_attempts", 2),
        retry_backoff=cb_config.get("retry_backoff", 0.0),
    )


def _auto_register_providers():
    """
    Register the built-in providers.
    Called on module import.
    """
    from .anthropic_provider import AnthropicProvider
    from .gemini_provider import GeminiProvider
    from .openai_provider import OpenAIProvider

    ProviderFactory.register("openai", OpenAIProvider)
    ProviderFactory.register("anthropic", AnthropicProvider)
    ProviderFactory.register("gemini", GeminiProvider)


_auto_register_providers()
