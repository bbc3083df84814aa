"""
LLM Providers package for calltagger.

This package provides a unified chat-completion interface for:
- OpenAI: gpt-4o family (JSON mode)
- Anthropic: Claude models (messages API)
- Gemini: Google's Gemini models (generateContent)

Use the ProviderFactory for creating provider instances:
    from calltagger.providers import ProviderFactory
    client = ProviderFactory.create("openai", config)
"""

from .anthropic_provider import AnthropicProvider
from .base import (
    AIClient,
    ChatCompletionOptions,
    ChatCompletionResult,
    ChatMessage,
    ProviderError,
)
from .factory import ProviderFactory, build_client_from_config
from .gemini_provider import GeminiProvider
from .openai_provider import OpenAIProvider

__all__ = [
    "AIClient",
    "ChatCompletionOptions",
    "ChatCompletionResult",
    "ChatMessage",
    "ProviderError",
    "ProviderFactory",
    "build_client_from_config",
    "OpenAIProvider",
    "AnthropicProvider",
    "GeminiProvider",
]
