"""
Base provider interface for LLM chat completions.

This module defines the abstract client and data structures shared by all
LLM providers (OpenAI, Anthropic, Gemini) and by the failover wrapper.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ChatMessage:
    """A role-tagged chat message (system, user or assistant)."""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class ChatCompletionOptions:
    """
    Request options for a chat completion.

    Attributes:
        messages: Ordered conversation
        temperature: Sampling temperature (provider default if None)
        max_tokens: Completion token cap
        json_mode: Force a strict JSON response
    """
    messages: List[ChatMessage] = field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: int = 4000
    json_mode: bool = False


@dataclass
class ChatCompletionResult:
    """
    Structured result from a chat completion.

    Attributes:
        content: Text content of the first choice
        input_tokens: Prompt tokens billed
        output_tokens: Completion tokens billed
        total_tokens: Total tokens billed
        latency_ms: Response time in milliseconds
    """
    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    latency_ms: int = 0


class ProviderError(Exception):
    """
    Error returned by an LLM provider.

    The HTTP status (when known) is kept on the exception and repeated in the
    message so failures can be classified as transient or fatal.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def raise_for_status(response, provider_label: str) -> None:
    """Raise ProviderError for a non-2xx `requests` response."""
    if 200 <= response.status_code < 300:
        return
    body = (response.text or "")[:500]
    raise ProviderError(
        f"{provider_label} API error ({response.status_code}): {body}",
        status_code=response.status_code,
    )


class AIClient(ABC):
    """
    Abstract base class for chat-completion clients (Model Agnostic).

    Implementations raise on failure rather than returning None, so retry
    and failover policy can live in one place.
    """

    @abstractmethod
    def chat_completion(self, options: ChatCompletionOptions) -> ChatCompletionResult:
        """
        Run a chat completion.

        Raises:
            ProviderError: On any non-successful provider response
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier for logging and circuit keys."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier for logging and circuit keys."""
        pass

    @property
    def circuit_key(self) -> str:
        return f"{self.provider_name}:{self.model_name}"
