"""
OpenAI provider for cloud LLM inference.

Chat completions with JSON mode (`response_format=json_object`) so the tagger
gets strictly machine-readable output.
"""

import time
from typing import Dict, Optional

import requests

from .base import AIClient, ChatCompletionOptions, ChatCompletionResult, raise_for_status
from ..utils.logger import logger
from ..utils.secrets import get_api_key


class OpenAIProvider(AIClient):
    """
    OpenAI provider for cloud LLM inference.

    Features:
    - gpt-4o (default) and any chat-completions model
    - JSON mode for structured output
    - Token usage reported back for rate limiting
    - Automatic API key retrieval from keyring
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize OpenAI provider.

        Args:
            config: Provider configuration with:
                - model: Model name (default: gpt-4o)
                - api_key: API key (or retrieved from keyring)
                - base_url: API base URL (for Azure/proxies)
                - timeout: Request timeout in seconds
        """
        config = config or {}
        self.model = config.get("model", "gpt-4o")
        self.api_key = config.get("api_key") or get_api_key("openai")
        self.base_url = config.get("base_url", "https://api.openai.com/v1")
        self.timeout = config.get("timeout", 60)

        if not self.api_key:
            raise ValueError(
                "OpenAI API key not configured. "
                "Set it via keyring: python -c \"from calltagger.utils.secrets import set_api_key; set_api_key('openai', 'sk-...')\""
            )

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self.model

    def health_check(self) -> bool:
        """
        Check if OpenAI API is accessible.
        Uses the models endpoint for a lightweight check.
        """
        try:
            response = requests.get(
                f"{self.base_url}/models",
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=10
            )

            if response.status_code == 401:
                logger.error("OpenAI API key is invalid")
                return False

            if response.status_code == 429:
                logger.warning("OpenAI rate limit hit during health check")
                return True  # API is reachable, just rate limited

            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.warning(f"OpenAI health check failed: {e}")
            return False

    def chat_completion(self, options: ChatCompletionOptions) -> ChatCompletionResult:
        """Run a chat completion against /chat/completions."""
        start_time = time.time()

        payload = {
            "model": self.model,
            "messages": [m.to_dict() for m in options.messages],
            "max_tokens": options.max_tokens,
            "temperature": 0.3 if options.temperature is None else options.temperature,
        }
        if options.json_mode:
            payload["response_format"] = {"type": "json_object"}

        response = requests.post(
            f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json"
            },
            json=payload,
            timeout=self.timeout
        )
        latency_ms = int((time.time() - start_time) * 1000)

        if response.status_code == 429:
            logger.warning("OpenAI rate limit exceeded")
        raise_for_status(response, "OpenAI")

        data = response.json()
        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        usage = data.get("usage") or {}

        return ChatCompletionResult(
            content=content,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            total_tokens=usage.get("total_tokens", 0),
            latency_ms=latency_ms,
        )
