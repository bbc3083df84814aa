"""
Unit tests for the per provider+model circuit breaker.
"""

from calltagger.core.circuit_breaker import CircuitBreaker, CircuitState

KEY = "openai:gpt-4o"


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestCircuitBreaker:
    """Tests for CircuitBreaker implementation."""

    def setup_method(self):
        self.clock = FakeClock()
        self.breaker = CircuitBreaker(
            failure_threshold=3, cooldown_seconds=60, clock=self.clock
        )

    def test_initial_state_closed(self):
        assert self.breaker.get_state(KEY) == CircuitState.CLOSED
        assert self.breaker.is_open(KEY) is False

    def test_failures_below_threshold_stay_closed(self):
        assert self.breaker.record_failure(KEY) == 1
        assert self.breaker.record_failure(KEY) == 2

        assert self.breaker.get_state(KEY) == CircuitState.CLOSED
        assert self.breaker.is_open(KEY) is False

    def test_threshold_opens_circuit(self):
        for _ in range(3):
            self.breaker.record_failure(KEY)

        assert self.breaker.get_state(KEY) == CircuitState.OPEN
        assert self.breaker.is_open(KEY) is True

    def test_cooldown_elapsed_is_half_open(self):
        for _ in range(3):
            self.breaker.record_failure(KEY)

        self.clock.now += 60

        assert self.breaker.is_open(KEY) is False
        assert self.breaker.get_state(KEY) == CircuitState.HALF_OPEN

    def test_failure_while_half_open_reopens(self):
        for _ in range(3):
            self.breaker.record_failure(KEY)
        self.clock.now += 61

        assert self.breaker.record_failure(KEY) == 4

        assert self.breaker.get_state(KEY) == CircuitState.OPEN
        assert self.breaker.get_stats(KEY)["open_until"] == self.clock.now + 60

    def test_each_failure_extends_cooldown(self):
        for _ in range(3):
            self.breaker.record_failure(KEY)
        self.clock.now += 30
        self.breaker.record_failure(KEY)

        self.clock.now += 45

        assert self.breaker.is_open(KEY) is True

    def test_success_resets(self):
        for _ in range(3):
            self.breaker.record_failure(KEY)

        self.breaker.record_success(KEY)

        assert self.breaker.get_state(KEY) == CircuitState.CLOSED
        stats = self.breaker.get_stats(KEY)
        assert stats["consecutive_failures"] == 0
        assert stats["open_until"] == 0.0

    def test_success_interrupts_failure_streak(self):
        self.breaker.record_failure(KEY)
        self.breaker.record_failure(KEY)
        self.breaker.record_success(KEY)

        assert self.breaker.record_failure(KEY) == 1
        assert self.breaker.get_state(KEY) == CircuitState.CLOSED

    def test_keys_are_independent(self):
        for _ in range(3):
            self.breaker.record_failure(KEY)

        assert self.breaker.is_open("anthropic:claude") is False
        assert self.breaker.is_open("openai:gpt-4o-mini") is False

    def test_stats_counters(self):
        self.breaker.record_failure(KEY)
        self.breaker.record_success(KEY)
        for _ in range(3):
            self.breaker.record_failure(KEY)

        stats = self.breaker.get_stats(KEY)

        assert stats["state"] == "open"
        assert stats["total_calls"] == 5
        assert stats["total_failures"] == 4
        assert stats["recovery_in_seconds"] == 60

    def test_threshold_clamped_to_one(self):
        breaker = CircuitBreaker(failure_threshold=0, clock=self.clock)

        breaker.record_failure(KEY)

        assert breaker.failure_threshold == 1
        assert breaker.is_open(KEY) is True

    def test_manual_reset(self):
        for _ in range(3):
            self.breaker.record_failure(KEY)
            self.breaker.record_failure("other:model")

        self.breaker.reset(KEY)
        assert self.breaker.get_state(KEY) == CircuitState.CLOSED
        assert self.breaker.is_open("other:model") is True

        self.breaker.reset_all()
        assert self.breaker.is_open("other:model") is False
