"""
Rate limiting for LLM API calls.

Respects the provider's requests-per-minute and tokens-per-minute budgets.
Uses two token buckets refilled continuously; waiting callers suspend on the
event loop instead of blocking it and are granted in arrival order.
"""

import asyncio
import logging
import math
import threading
import time
from collections import deque
from typing import Callable, Dict

logger = logging.getLogger(__name__)

# Default limits (gpt-4o Tier 1)
DEFAULT_REQUESTS_PER_MINUTE = 500
DEFAULT_TOKENS_PER_MINUTE = 30_000


class RateLimiter:
    """
    Dual token bucket rate limiter (RPM + TPM).

    acquire() reserves one request and the estimated token cost against both
    buckets. report_usage() reconciles the reservation once the provider's
    real token count is known, so estimation drift doesn't starve later callers.

    Usage:
        limiter = RateLimiter(requests_per_minute=500, tokens_per_minute=30000)

        estimated = RateLimiter.estimate_tokens(prompt) + 500
        await limiter.acquire(estimated)
        result = client.chat_completion(...)
        limiter.report_usage(result.total_tokens, estimated)
    """

    def __init__(
        self,
        requests_per_minute: int = DEFAULT_REQUESTS_PER_MINUTE,
        tokens_per_minute: int = DEFAULT_TOKENS_PER_MINUTE,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 0.5,
    ):
        """
        Initialize rate limiter.

        Args:
            requests_per_minute: Request budget per minute
            tokens_per_minute: Token budget per minute
            clock: Monotonic time source (seconds)
            poll_interval: Max seconds to sleep between budget checks
        """
        if requests_per_minute <= 0 or tokens_per_minute <= 0:
            raise ValueError("Rate limits must be positive")

        self.requests_per_minute = requests_per_minute
        self.tokens_per_minute = tokens_per_minute
        self.poll_interval = poll_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._buckets: Dict[str, Dict] = {}
        self._waiters: deque = deque()
        self.reset()

    @staticmethod
    def estimate_tokens(text: str) -> int:
        """Rough token count using the ~4 chars per token heuristic."""
        return math.ceil(len(text) / 4)

    def _new_bucket(self, per_minute: int) -> Dict:
        return {
            "tokens": float(per_minute),
            "max_tokens": float(per_minute),
            "refill_rate": per_minute / 60.0,  # per second
            "last_update": self._clock(),
        }

    def _refill_tokens(self, bucket: Dict) -> None:
        """Refill a bucket based on elapsed time."""
        now = self._clock()
        elapsed = max(0.0, now - bucket["last_update"])
        bucket["tokens"] = min(
            bucket["max_tokens"],
            bucket["tokens"] + elapsed * bucket["refill_rate"]
        )
        bucket["last_update"] = now

    def _try_consume(self, estimated_tokens: int, waiter: object) -> float:
        """
        Reserve budget for the waiter at the head of the queue.

        Returns:
            0.0 if the reservation was made, otherwise seconds to wait
            (inf while other waiters are ahead)
        """
        with self._lock:
            if self._waiters[0] is not waiter:
                return math.inf

            requests = self._buckets["requests"]
            tokens = self._buckets["tokens"]
            self._refill_tokens(requests)
            self._refill_tokens(tokens)

            # Oversized requests wait for a full bucket and then run into debt
            needed = min(float(estimated_tokens), tokens["max_tokens"])

            if requests["tokens"] >= 1 and tokens["tokens"] >= needed:
                requests["tokens"] -= 1
                tokens["tokens"] -= estimated_tokens
                self._waiters.popleft()
                return 0.0

            request_wait = max(0.0, 1 - requests["tokens"]) / requests["refill_rate"]
            token_wait = max(0.0, needed - tokens["tokens"]) / tokens["refill_rate"]
            return max(request_wait, token_wait)

    async def acquire(self, estimated_tokens: int) -> None:
        """
        Wait until both budgets can cover the request, then reserve it.

        Requests are granted strictly in arrival order, so a large request
        is never starved by smaller ones arriving after it. Never raises and
        always eventually grants. Callers that need an upper bound on the
        wait must wrap this in their own timeout.

        Args:
            estimated_tokens: Estimated prompt + completion tokens
        """
        estimated_tokens = max(0, int(estimated_tokens))
        waiter = object()
        with self._lock:
            self._waiters.append(waiter)
        waited = 0.0

        try:
            while True:
                wait_time = self._try_consume(estimated_tokens, waiter)
                if wait_time <= 0:
                    if waited:
                        logger.debug(
                            f"Rate limit slot granted after {waited:.2f}s "
                            f"({estimated_tokens} tokens)"
                        )
                    return

                delay = min(wait_time, self.poll_interval)
                waited += delay
                await asyncio.sleep(delay)
        finally:
            # A cancelled waiter must not block the queue
            with self._lock:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)

    def report_usage(self, actual_tokens: int, estimated_tokens: int) -> None:
        """
        Reconcile a reservation with the provider's real token usage.

        Under-estimates are charged, over-estimates refunded.
        """
        delta = int(estimated_tokens) - int(actual_tokens)
        if delta == 0:
            return

        with self._lock:
            bucket = self._buckets["tokens"]
            self._refill_tokens(bucket)
            bucket["tokens"] = min(bucket["max_tokens"], bucket["tokens"] + delta)

        logger.debug(
            f"Token usage reconciled: estimated={estimated_tokens} "
            f"actual={actual_tokens}"
        )

    def get_wait_time(self, estimated_tokens: int = 0) -> float:
        """
        Estimated wait before a request of this size would be granted.

        Returns:
            Wait time in seconds (0 if immediately available)
        """
        with self._lock:
            requests = self._buckets["requests"]
            tokens = self._buckets["tokens"]
            self._refill_tokens(requests)
            self._refill_tokens(tokens)
            needed = min(float(estimated_tokens), tokens["max_tokens"])
            request_wait = max(0.0, 1 - requests["tokens"]) / requests["refill_rate"]
            token_wait = max(0.0, needed - tokens["tokens"]) / tokens["refill_rate"]
            return max(request_wait, token_wait)

    def get_status(self) -> Dict:
        """
        Get current budget status.

        Returns:
            Dict with available requests/tokens and configured limits
        """
        with self._lock:
            for bucket in self._buckets.values():
                self._refill_tokens(bucket)
            available_requests = self._buckets["requests"]["tokens"]
            available_tokens = self._buckets["tokens"]["tokens"]
            waiting = len(self._waiters)

        return {
            "requests_per_minute": self.requests_per_minute,
            "tokens_per_minute": self.tokens_per_minute,
            "available_requests": int(available_requests),
            "available_tokens": int(available_tokens),
            "waiting": waiting,
            "wait_time_seconds": self.get_wait_time(),
        }

    def reset(self) -> None:
        """Restore both buckets to full capacity."""
        with self._lock:
            self._buckets = {
                "requests": self._new_bucket(self.requests_per_minute),
                "tokens": self._new_bucket(self.tokens_per_minute),
            }
