# backend/app/services/circuit_breaker.py
"""
Circuit breaker guarding calls to upstream data providers.

Each provider (Glassnode, FRED) owns one breaker. After repeated failures the
breaker opens and calls fail fast with CircuitBreakerOpen, which the analysis
service treats like any other provider failure and falls back to stored data.

States:
    CLOSED    - Normal operation, calls pass through
    OPEN      - Too many failures, calls rejected immediately
    HALF_OPEN - Recovery probe, a limited number of calls allowed

Transitions:
    CLOSED -> OPEN       failure count reaches threshold (within window)
    OPEN -> HALF_OPEN    recovery timeout expired
    HALF_OPEN -> CLOSED  a probe call succeeds
    HALF_OPEN -> OPEN    a probe call fails

Usage:
    breaker = CircuitBreaker(name="glassnode", failure_window=300)

    with breaker:
        response = client.get(url)
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    Raised when a call is rejected because the breaker is open.

    Attributes:
        breaker_name: Name of the circuit breaker (provider name)
        time_remaining: Seconds until a recovery probe is allowed
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreakerStats:
    """Counters exposed on /health."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


@dataclass
class CircuitBreaker:
    """
    Thread-safe circuit breaker.

    Attributes:
        name: Identifier used in logs, errors and health output
        failure_threshold: Failures before the circuit opens
        recovery_timeout: Seconds in OPEN before a probe is allowed
        half_open_max_calls: Probe calls allowed while HALF_OPEN
        failure_window: Sliding window (seconds) for counting failures; 0 = unbounded
        excluded_exceptions: Exceptions that count as success (e.g. unknown series)
        clock: Time source; injectable for tests
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3
    failure_window: float = 0.0
    excluded_exceptions: tuple[type[Exception], ...] = field(default_factory=tuple)
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_timestamps: list[float] = field(default_factory=list, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)
    _stats: CircuitBreakerStats = field(default_factory=CircuitBreakerStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

        logger.debug(
            f"CircuitBreaker '{self.name}' initialized: "
            f"threshold={self.failure_threshold}, "
            f"recovery_timeout={self.recovery_timeout}s"
        )

    # -------------------------------------------------------------------------
    # State inspection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh_state()
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def stats(self) -> CircuitBreakerStats:
        """Copy of the current counters."""
        with self._lock:
            return CircuitBreakerStats(**vars(self._stats))

    def snapshot(self) -> dict[str, Any]:
        """State and counters as a JSON-ready dict for health checks."""
        stats = self.stats
        return {
            "name": self.name,
            "state": self.state.value,
            "total_calls": stats.total_calls,
            "successful_calls": stats.successful_calls,
            "failed_calls": stats.failed_calls,
            "rejected_calls": stats.rejected_calls,
        }

    # -------------------------------------------------------------------------
    # Internal transitions (caller holds the lock)
    # -------------------------------------------------------------------------

    def _refresh_state(self) -> None:
        if self._state == CircuitState.OPEN:
            if self.clock() - self._opened_at >= self.recovery_timeout:
                self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1

        if new_state == CircuitState.OPEN:
            self._opened_at = self.clock()
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
        elif new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._failure_timestamps.clear()

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(f"CircuitBreaker '{self.name}' state change: {old_state.value} -> {new_state.value}")

    def _record_success(self) -> None:
        self._stats.successful_calls += 1
        self._stats.last_success_time = self.clock()

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)

    def _record_failure(self) -> None:
        now = self.clock()
        self._stats.failed_calls += 1
        self._stats.last_failure_time = now

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.OPEN)
            return

        if self._state != CircuitState.CLOSED:
            return

        if self.failure_window > 0:
            cutoff = now - self.failure_window
            self._failure_timestamps = [t for t in self._failure_timestamps if t > cutoff]
            self._failure_timestamps.append(now)
            self._failure_count = len(self._failure_timestamps)
        else:
            self._failure_count += 1

        if self._failure_count >= self.failure_threshold:
            self._transition_to(CircuitState.OPEN)

    def _try_acquire(self) -> bool:
        self._refresh_state()

        if self._state == CircuitState.CLOSED:
            return True
        if self._state == CircuitState.HALF_OPEN and self._half_open_calls < self.half_open_max_calls:
            self._half_open_calls += 1
            return True
        return False

    def _time_until_recovery(self) -> float:
        return max(0.0, self.recovery_timeout - (self.clock() - self._opened_at))

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def __enter__(self) -> "CircuitBreaker":
        """
        Raises:
            CircuitBreakerOpen: If the call is not allowed in the current state
        """
        with self._lock:
            self._stats.total_calls += 1
            if not self._try_acquire():
                self._stats.rejected_calls += 1
                raise CircuitBreakerOpen(self.name, self._time_until_recovery())
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> bool:
        with self._lock:
            if exc_val is None or isinstance(exc_val, self.excluded_exceptions):
                self._record_success()
            else:
                self._record_failure()
        return False

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        """Use the breaker as a decorator."""
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            with self:
                return func(*args, **kwargs)
        return wrapper

    def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)

    def force_open(self) -> None:
        """Force the breaker OPEN (maintenance, known outage)."""
        with self._lock:
            self._transition_to(CircuitState.OPEN)
