"""
Circuit breaker for LLM provider resilience.

Tracks consecutive failures per provider+model key. Once the failure threshold
is reached the circuit opens until a cooldown deadline; after that the next
call is a recovery attempt, and any success closes the circuit again.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, primary skipped when a fallback exists
    HALF_OPEN = "half_open"  # Cooldown elapsed, next call tests recovery


@dataclass
class CircuitStats:
    """Mutable state for one circuit key."""
    failures: int = 0
    open_until: float = 0.0
    total_calls: int = 0
    total_failures: int = 0


class CircuitBreaker:
    """
    Per-key circuit breaker shared by every client that talks to the same
    provider+model.

    Behavior:
    - CLOSED: failures below threshold
    - OPEN: failures >= threshold and the cooldown deadline is in the future
    - HALF_OPEN: threshold reached but the cooldown has elapsed
    - record_success() always resets the key to CLOSED

    Every failure past the threshold pushes the cooldown deadline forward.

    Usage:
        breaker = CircuitBreaker(failure_threshold=3, cooldown_seconds=60)

        if not breaker.is_open("openai:gpt-4o"):
            try:
                result = client.chat_completion(options)
                breaker.record_success("openai:gpt-4o")
            except Exception:
                breaker.record_failure("openai:gpt-4o")
                raise
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize circuit breaker.

        Args:
            failure_threshold: Consecutive failures to open a circuit
            cooldown_seconds: Seconds a circuit stays open
            clock: Time source (seconds)
        """
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock

        self._circuits: Dict[str, CircuitStats] = {}
        self._lock = threading.Lock()

    def _stats_for(self, key: str) -> CircuitStats:
        stats = self._circuits.get(key)
        if stats is None:
            stats = CircuitStats()
            self._circuits[key] = stats
        return stats

    def is_open(self, key: str) -> bool:
        """True while the key's cooldown deadline is in the future."""
        with self._lock:
            stats = self._circuits.get(key)
            return stats is not None and stats.open_until > self._clock()

    def get_state(self, key: str) -> CircuitState:
        """Current state for a key."""
        with self._lock:
            return self._state_locked(key)

    def _state_locked(self, key: str) -> CircuitState:
        stats = self._circuits.get(key)
        if stats is None or stats.failures < self.failure_threshold:
            return CircuitState.CLOSED
        if stats.open_until > self._clock():
            return CircuitState.OPEN
        return CircuitState.HALF_OPEN

    def record_success(self, key: str) -> None:
        """Reset the key's failure count and close the circuit."""
        with self._lock:
            stats = self._stats_for(key)
            was_tripped = stats.failures >= self.failure_threshold
            stats.failures = 0
            stats.open_until = 0.0
            stats.total_calls += 1

        if was_tripped:
            logger.info(f"Circuit CLOSED for {key} (recovered)")

    def record_failure(self, key: str) -> int:
        """
        Record a failed call.

        Returns:
            The key's consecutive failure count after this failure
        """
        with self._lock:
            stats = self._stats_for(key)
            stats.failures += 1
            stats.total_calls += 1
            stats.total_failures += 1
            failures = stats.failures

            if failures >= self.failure_threshold:
                stats.open_until = self._clock() + self.cooldown_seconds

        if failures >= self.failure_threshold:
            logger.warning(
                f"Circuit OPEN for {key} after {failures} consecutive failures "
                f"(cooldown {self.cooldown_seconds:.0f}s)"
            )
        return failures

    def get_stats(self, key: str) -> Dict:
        """
        Get statistics for a key's circuit.

        Returns:
            Dict with state, counters, and cooldown info
        """
        with self._lock:
            stats = self._circuits.get(key, CircuitStats())
            state = self._state_locked(key)

            result = {
                "key": key,
                "state": state.value,
                "consecutive_failures": stats.failures,
                "total_calls": stats.total_calls,
                "total_failures": stats.total_failures,
                "open_until": stats.open_until,
            }

            if state == CircuitState.OPEN:
                result["recovery_in_seconds"] = max(0.0, stats.open_until - self._clock())

            return result

    def reset(self, key: str) -> None:
        """Manually reset one circuit to CLOSED."""
        with self._lock:
            self._circuits[key] = CircuitStats()
        logger.info(f"Circuit manually reset for {key}")

    def reset_all(self) -> None:
        """Reset all circuits to CLOSED."""
        with self._lock:
            self._circuits.clear()
        logger.info("All circuits reset")
