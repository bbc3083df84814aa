"""
Google Gemini provider for cloud LLM inference.

Uses generateContent with `responseMimeType=application/json` for JSON mode.
"""

import time
from typing import Dict, Optional

import requests

from .base import AIClient, ChatCompletionOptions, ChatCompletionResult, raise_for_status
from ..utils.logger import logger
from ..utils.secrets import get_api_key


class GeminiProvider(AIClient):
    """
    Google Gemini provider for cloud LLM inference.

    Features:
    - gemini-2.0-flash (default) and other generateContent models
    - System instruction carried separately from the conversation
    - Automatic API key retrieval from keyring
    """

    def __init__(self, config: Optional[Dict] = None):
        """
        Initialize Gemini provider.

        Args:
            config: Provider configuration with:
                - model: Model name (default: gemini-2.0-flash)
                - api_key: API key (or retrieved from keyring)
                - timeout: Request timeout in seconds
        """
        config = config or {}
        self.model = config.get("model", "gemini-2.0-flash")
        self.api_key = config.get("api_key") or get_api_key("gemini")
        self.timeout = config.get("timeout", 60)
        self.base_url = config.get(
            "base_url", "https://generativelanguage.googleapis.com/v1beta"
        )

        if not self.api_key:
            raise ValueError(
                "Gemini API key not configured. "
                "Set it via keyring: python -c \"from calltagger.utils.secrets import set_api_key; set_api_key('gemini', 'AIza...')\""
            )

    @property
    def provider_name(self) -> str:
        return "gemini"

    @property
    def model_name(self) -> str:
        return self.model

    def health_check(self) -> bool:
        """
        Check if Gemini API is accessible.
        Uses the models list endpoint for a lightweight check.
        """
        try:
            response = requests.get(
                f"{self.base_url}/models",
                params={"key": self.api_key},
                timeout=10,
            )

            if response.status_code in (400, 403):
                logger.error("Gemini API key is invalid")
                return False

            if response.status_code == 429:
                logger.warning("Gemini rate limit hit during health check")
                return True  # API is reachable, just rate limited

            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.warning(f"Gemini health check failed: {e}")
            return False

    def chat_completion(self, options: ChatCompletionOptions) -> ChatCompletionResult:
        """Run a chat completion against :generateContent."""
        start_time = time.time()

        system_text = "\n\n".join(
            m.content for m in options.messages if m.role == "system"
        )
        generation_config = {
            "temperature": 0.3 if options.temperature is None else options.temperature,
            "maxOutputTokens": options.max_tokens,
        }
        if options.json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload = {
            "contents": [
                {
                    "role": "model" if m.role == "assistant" else "user",
                    "parts": [{"text": m.content}],
                }
                for m in options.messages
                if m.role != "system"
            ],
            "generationConfig": generation_config,
        }
        if system_text:
            payload["systemInstruction"] = {"parts": [{"text": system_text}]}

        response = requests.post(
            f"{self.base_url}/models/{self.model}:generateContent",
            params={"key": self.api_key},
            headers={"Content-Type": "application/json"},
            json=payload,
            timeout=self.timeout,
        )
        latency_ms = int((time.time() - start_time) * 1000)

        if response.status_code == 429:
            logger.warning("Gemini rate limit exceeded")
        raise_for_status(response, "Gemini")

        data = response.json()
        candidates = data.get("candidates") or []
        parts = (candidates[0].get("content") or {}).get("parts", []) if candidates else []
        content = "".join(part.get("text", "") for part in parts)

        usage = data.get("usageMetadata") or {}
        input_tokens = usage.get("promptTokenCount", 0)
        output_tokens = usage.get("candidatesTokenCount", 0)

        return ChatCompletionResult(
            content=content,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=usage.get("totalTokenCount", input_tokens + output_tokens),
            latency_ms=latency_ms,
        )
