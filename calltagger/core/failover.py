"""
Failover wrapper around LLM clients.

Retries transient primary failures, fails over to a secondary provider when
one is configured, and skips the primary entirely while its circuit is open.
Fatal errors (bad request, auth) are never retried and never failed over.
"""

import logging
import re
import time
from typing import Optional

import requests

from .circuit_breaker import CircuitBreaker
from ..providers.base import AIClient, ChatCompletionOptions, ChatCompletionResult

logger = logging.getLogger(__name__)

_TRANSIENT_PATTERNS = (
    re.compile(r"\b(429|rate.?limit|quota)\b"),
    re.compile(r"\b(5\d{2}|service unavailable|gateway timeout|bad gateway)\b"),
    re.compile(
        r"\b(timeout|timed out|connection reset|connection refused|socket|network|"
        r"temporar|name resolution|dns)"
    ),
)


def is_transient_error(error: BaseException) -> bool:
    """
    Classify an error as transient (worth retrying) or fatal.

    An HTTP status on the error wins; otherwise `requests` timeouts and
    connection errors are transient, and anything else is judged by message.
    """
    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return status_code == 429 or status_code >= 500

    if isinstance(error, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return True

    message = str(error).lower()
    return any(pattern.search(message) for pattern in _TRANSIENT_PATTERNS)


class FailoverClient(AIClient):
    """
    AIClient that adds retry, failover and circuit breaking to a primary client.

    Algorithm:
    - Circuit open and a fallback exists: call the fallback only
    - Otherwise call the primary:
      - transient failure + fallback: fail over on the first failure
      - transient failure, no fallback: retry up to max_attempts
      - fatal failure: raise immediately
    - Every primary failure is counted; any primary success closes the circuit

    Usage:
        breaker = CircuitBreaker(failure_threshold=3, cooldown_seconds=60)
        client = FailoverClient(OpenAIProvider(cfg), AnthropicProvider(cfg2), breaker=breaker)
        result = client.chat_completion(options)
    """

    def __init__(
        self,
        primary: AIClient,
        fallback: Optional[AIClient] = None,
        breaker: Optional[CircuitBreaker] = None,
        circuit_key: Optional[str] = None,
        max_attempts: int = 2,
        retry_backoff: float = 0.0,
    ):
        """
        Initialize failover client.

        Args:
            primary: Client tried first
            fallback: Optional secondary client
            breaker: Shared circuit breaker (a private one is created if None)
            circuit_key: Circuit key (default "provider:model" of primary)
            max_attempts: Primary attempts when no fallback is configured
            retry_backoff: Seconds slept before retry n (multiplied by n)
        """
        self.primary = primary
        self.fallback = fallback
        self.breaker = breaker or CircuitBreaker()
        self.key = circuit_key or primary.circuit_key
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff = retry_backoff

    @property
    def provider_name(self) -> str:
        return self.primary.provider_name

    @property
    def model_name(self) -> str:
        return self.primary.model_name

    def chat_completion(self, options: ChatCompletionOptions) -> ChatCompletionResult:
        """Run a chat completion with retry, failover and circuit breaking."""
        if self.fallback is not None and self.breaker.is_open(self.key):
            logger.warning(
                f"Circuit open for {self.key}; routing request to fallback "
                f"provider {self.fallback.circuit_key}"
            )
            return self.fallback.chat_completion(options)

        max_primary_attempts = 1 if self.fallback is not None else self.max_attempts

        for attempt in range(1, max_primary_attempts + 1):
            try:
                result = self.primary.chat_completion(options)
            except Exception as e:
                failures = self.breaker.record_failure(self.key)

                if not is_transient_error(e):
                    logger.error(f"Fatal error from {self.key}: {e}")
                    raise

                if self.fallback is not None:
                    logger.warning(
                        f"Falling back to {self.fallback.circuit_key} after transient "
                        f"failure of {self.key} (attempt {attempt}, failures {failures}): {e}"
                    )
                    return self.fallback.chat_completion(options)

                if attempt >= max_primary_attempts:
                    logger.error(
                        f"{self.key} failed after {attempt} attempts: {e}"
                    )
                    raise

                logger.warning(
                    f"Retrying {self.key} after transient failure "
                    f"(attempt {attempt}, failures {failures}): {e}"
                )
                if self.retry_backoff:
                    time.sleep(self.retry_backoff * attempt)
                continue

            self.breaker.record_success(self.key)
            return result

        # Unreachable: the loop either returns or raises
        raise RuntimeError(f"No attempt made against {self.key}")
