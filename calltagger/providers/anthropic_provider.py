"""
Anthropic provider for Claude LLM inference.

The messages API takes system text as a separate parameter, so system
messages are folded out of the conversation before sending.
"""

import time
from typing import Dict, Optional

import requests

from .base import AIClient, ChatCompletionOptions, ChatCompletionResult, raise_for_status
from ..utils.logger import logger
from ..utils.secrets import get_api_key


class AnthropicProvider(AIClient):
    """
    Anthropic provider for Claude LLM inference.

    Features:
    - Claude Sonnet (default) and any messages-API model
    - Token usage tracking (input + output)
    - Automatic API key retrieval from keyring
    """

    API_VERSION = "2023-06-01"

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize Anthropic provider.

        Args:
            config: Provider configuration with:
                - model: Model name (default: claude-sonnet-4-20250514)
                - api_key: API key (or retrieved from keyring)
                - base_url: API base URL
                - timeout: Request timeout in seconds
        """
        config = config or {}
        self.model = config.get("model", "claude-sonnet-4-20250514")
        self.api_key = config.get("api_key") or get_api_key("anthropic")
        self.base_url = config.get("base_url", "https://api.anthropic.com/v1")
        self.timeout = config.get("timeout", 60)

        if not self.api_key:
            raise ValueError(
                "Anthropic API key not configured. "
                "Set it via keyring: python -c \"from calltagger.utils.secrets import set_api_key; set_api_key('anthropic', 'sk-ant-...')\""
            )

    @property
    def provider_name(self) -> str:
        return "anthropic"

    @property
    def model_name(self) -> str:
        return self.model

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
            "Content-Type": "application/json",
        }

    def health_check(self) -> bool:
        """
        Check if Anthropic API is accessible.
        Anthropic has no health endpoint, so this sends a 1-token request.
        """
        try:
            response = requests.post(
                f"{self.base_url}/messages",
                headers=self._headers(),
                json={
                    "model": self.model,
                    "max_tokens": 1,
                    "messages": [{"role": "user", "content": "hi"}],
                },
                timeout=10,
            )

            if response.status_code == 401:
                logger.error("Anthropic API key is invalid")
                return False

            if response.status_code == 429:
                logger.warning("Anthropic rate limit hit during health check")
                return True  # API is reachable, just rate limited

            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.warning(f"Anthropic health check failed: {e}")
            return False

    def chat_completion(self, options: ChatCompletionOptions) -> ChatCompletionResult:
        """Run a chat completion against /messages."""
        start_time = time.time()

        system_text = "\n\n".join(
            m.content for m in options.messages if m.role == "system"
        )
        payload = {
            "model": self.model,
            "max_tokens": options.max_tokens,
            "messages": [
                m.to_dict() for m in options.messages if m.role != "system"
            ],
        }
        if system_text:
            payload["system"] = system_text
        if options.temperature is not None:
            payload["temperature"] = options.temperature

        response = requests.post(
            f"{self.base_url}/messages",
            headers=self._headers(),
            json=payload,
            timeout=self.timeout,
        )
        latency_ms = int((time.time() - start_time) * 1000)

        if response.status_code == 429:
            logger.warning("Anthropic rate limit exceeded")
        raise_for_status(response, "Anthropic")

        data = response.json()
        content = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)

        return ChatCompletionResult(
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            latency_ms=latency_ms,
        )
