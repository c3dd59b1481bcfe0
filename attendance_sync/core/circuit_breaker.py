"""
Circuit Breaker Pattern Implementation for the attendance provider.

Prevents a failing upstream (the official attendance provider) from being
hammered by every user pipeline in a sync batch.

Circuit Breaker States:
- CLOSED: Normal operation, requests pass through
- OPEN: Circuit is tripped, requests fail fast
- HALF_OPEN: A limited number of trial requests test whether the service recovered

One breaker instance guards one external dependency. Instances are built by
the application lifespan and injected where needed; there is no module-level
singleton.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker behavior."""
    failure_threshold: int = 3  # Consecutive failures before opening
    recovery_timeout: float = 60.0  # Seconds before trying half-open
    half_open_max_requests: int = 2  # Concurrent trial calls admitted while half-open
    success_threshold: int = 2  # Successes needed to close from half-open
    timeout: float = 30.0  # Request timeout in seconds


@dataclass
class CircuitBreakerMetrics:
    """Metrics tracking for circuit breaker."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    timeout_requests: int = 0
    rejected_requests: int = 0
    non_breaker_errors: int = 0
    state_changes: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def success_rate(self) -> float:
        """Calculate success rate."""
        if self.total_requests == 0:
            return 1.0
        return self.successful_requests / self.total_requests

    def record_state_change(self, from_state: CircuitState, to_state: CircuitState, reason: str):
        """Record a state transition."""
        self.state_changes.append({
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'from_state': from_state.value,
            'to_state': to_state.value,
            'reason': reason
        })


class CircuitBreakerError(Exception):
    """Base class for errors raised by the circuit breaker itself."""
    pass


class CircuitBreakerOpenError(CircuitBreakerError):
    """Raised without calling the wrapped function while the circuit is open."""

    def __init__(self, message: str, retry_after: float = 0.0):
        super().__init__(message)
        self.retry_after = retry_after


class CircuitBreakerTimeoutError(CircuitBreakerError):
    """Raised when the wrapped call exceeds the breaker timeout."""
    pass


class NonBreakerError(Exception):
    """
    Error that must not count toward the failure threshold.

    Used for well-formed client errors (4xx): they describe a bad request,
    not an unavailable provider.
    """
    pass


class CircuitBreaker:
    """
    Circuit Breaker with configurable thresholds and half-open probing.

    State is guarded by an asyncio lock; the wrapped call runs outside the
    lock so concurrent user pipelines are not serialised.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_timeout: float = 60.0,
        half_open_max_requests: int = 2,
        success_threshold: Optional[int] = None,
        timeout: float = 30.0,
        name: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = CircuitBreakerConfig(
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            half_open_max_requests=half_open_max_requests,
            success_threshold=success_threshold or half_open_max_requests,
            timeout=timeout,
        )

        self.name = name or f"CircuitBreaker_{id(self)}"
        self._clock = clock
        self._lock = asyncio.Lock()
        self.metrics = CircuitBreakerMetrics()
        self._reset_state()

        logger.info(f"Circuit breaker '{self.name}' initialized with threshold={failure_threshold}")

    def _reset_state(self):
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.half_open_in_flight = 0
        self.last_failure_time: Optional[float] = None
        self._half_open_generation = 0

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Execute an async function call through the circuit breaker.

        Args:
            func: The async function to call
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            Result of the function call

        Raises:
            CircuitBreakerOpenError: When the circuit is open or half-open trial slots are exhausted
            CircuitBreakerTimeoutError: When the request times out
            Exception: Any exception from the wrapped function
        """
        async with self._lock:
            self.metrics.total_requests += 1
            self._check_state_transition()
            trial = self._admit()

        try:
            result = await asyncio.wait_for(
                func(*args, **kwargs),
                timeout=self.config.timeout
            )
        except asyncio.CancelledError:
            # Synchronous release, no await between read and write
            self._release_trial(trial)
            raise
        except asyncio.TimeoutError:
            async with self._lock:
                self.metrics.timeout_requests += 1
                self._release_trial(trial)
                self._on_failure("timeout")
            logger.error(f"Circuit breaker '{self.name}' - request timed out after {self.config.timeout}s")
            raise CircuitBreakerTimeoutError(f"Request timed out after {self.config.timeout}s")
        except NonBreakerError:
            async with self._lock:
                self._release_trial(trial)
                self._on_non_breaker_error()
            raise
        except Exception as e:
            async with self._lock:
                self._release_trial(trial)
                self._on_failure(str(e))
            raise

        async with self._lock:
            self._release_trial(trial)
            self._on_success(trial)
        return result

    def _admit(self) -> Optional[int]:
        """Reject the call or reserve a trial slot. Returns the trial generation, if any."""
        if self.state == CircuitState.OPEN:
            self.metrics.rejected_requests += 1
            retry_after = self.remaining_cooldown()
            logger.warning(
                f"Circuit breaker '{self.name}' is OPEN - failing fast "
                f"(failures={self.failure_count}, retry in {retry_after:.0f}s)"
            )
            raise CircuitBreakerOpenError(
                f"Circuit breaker '{self.name}' is open - provider may be unavailable. "
                f"Retry in {retry_after:.0f}s.",
                retry_after=retry_after,
            )

        if self.state == CircuitState.HALF_OPEN:
            if self.half_open_in_flight >= self.config.half_open_max_requests:
                self.metrics.rejected_requests += 1
                logger.warning(
                    f"Circuit breaker '{self.name}' HALF_OPEN trial limit reached "
                    f"({self.half_open_in_flight}/{self.config.half_open_max_requests})"
                )
                raise CircuitBreakerOpenError(
                    f"Circuit breaker '{self.name}' is testing recovery - try again shortly.",
                    retry_after=0.0,
                )
            self.half_open_in_flight += 1
            return self._half_open_generation

        return None

    def _release_trial(self, trial: Optional[int]):
        if trial is None:
            return
        # Slots from an earlier half-open period were already cleared on transition
        if self.state == CircuitState.HALF_OPEN and trial == self._half_open_generation:
            self.half_open_in_flight = max(0, self.half_open_in_flight - 1)

    def remaining_cooldown(self) -> float:
        """Seconds left before an open circuit admits trial requests."""
        if self.state != CircuitState.OPEN or self.last_failure_time is None:
            return 0.0
        elapsed = self._clock() - self.last_failure_time
        return max(0.0, self.config.recovery_timeout - elapsed)

    def _check_state_transition(self):
        if self.state == CircuitState.OPEN and self.remaining_cooldown() <= 0:
            self._transition_to_half_open()

    def _on_success(self, trial: Optional[int] = None):
        self.metrics.successful_requests += 1

        if self.state == CircuitState.HALF_OPEN:
            # Only calls admitted during this half-open period count toward closing
            if trial != self._half_open_generation:
                return
            self.success_count += 1
            logger.debug(
                f"Circuit breaker '{self.name}' trial call succeeded "
                f"({self.success_count}/{self.config.success_threshold})"
            )
            if self.success_count >= self.config.success_threshold:
                self._transition_to_closed()
        elif self.state == CircuitState.CLOSED and self.failure_count > 0:
            logger.debug(f"Circuit breaker '{self.name}' resetting {self.failure_count} failures")
            self.failure_count = 0

    def _on_non_breaker_error(self):
        self.metrics.non_breaker_errors += 1
        if self.state == CircuitState.CLOSED:
            self.failure_count = 0

    def _on_failure(self, reason: str):
        self.metrics.failed_requests += 1
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.state == CircuitState.HALF_OPEN:
            logger.warning(f"Circuit breaker '{self.name}' trial call failed - reopening: {reason}")
            self._transition_to_open("Failure while half-open")
        elif self.state == CircuitState.CLOSED:
            if self.failure_count >= self.config.failure_threshold:
                self._transition_to_open(
                    f"Failure threshold reached ({self.failure_count}/{self.config.failure_threshold})"
                )
            else:
                logger.warning(
                    f"Circuit breaker '{self.name}' request failed "
                    f"({self.failure_count}/{self.config.failure_threshold}): {reason}"
                )

    def _transition_to_open(self, reason: str):
        old_state = self.state
        self.state = CircuitState.OPEN
        self.success_count = 0
        self.half_open_in_flight = 0
        self.metrics.record_state_change(old_state, CircuitState.OPEN, reason)

        logger.error(
            f"Circuit breaker '{self.name}' OPENED: {reason}. "
            f"Next attempt in {self.config.recovery_timeout}s"
        )

    def _transition_to_half_open(self):
        old_state = self.state
        self.state = CircuitState.HALF_OPEN
        self.success_count = 0
        self.half_open_in_flight = 0
        self._half_open_generation += 1
        self.metrics.record_state_change(
            old_state, CircuitState.HALF_OPEN, "Recovery timeout reached, testing service availability"
        )

        logger.info(f"Circuit breaker '{self.name}' transitioned to HALF_OPEN for testing")

    def _transition_to_closed(self):
        old_state = self.state
        successes = self.success_count
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.half_open_in_flight = 0
        self.metrics.record_state_change(
            old_state, CircuitState.CLOSED, f"Service recovered - {successes} consecutive successes"
        )

        logger.info(f"Circuit breaker '{self.name}' CLOSED - service recovered")

    async def force_open(self, reason: str = "Manual override"):
        """Manually force the circuit breaker to OPEN state."""
        async with self._lock:
            self.last_failure_time = self._clock()
            self._transition_to_open(f"Manual: {reason}")

    def reset(self):
        """Return to a pristine CLOSED state (tests and admin use)."""
        self._reset_state()
        self.metrics = CircuitBreakerMetrics()
        logger.info(f"Circuit breaker '{self.name}' manually reset")

    def get_status(self) -> Dict[str, Any]:
        """Get current status and metrics."""
        return {
            'name': self.name,
            'state': self.state.value,
            'failure_count': self.failure_count,
            'success_count': self.success_count,
            'half_open_in_flight': self.half_open_in_flight,
            'retry_after': round(self.remaining_cooldown(), 1),
            'config': {
                'failure_threshold': self.config.failure_threshold,
                'recovery_timeout': self.config.recovery_timeout,
                'half_open_max_requests': self.config.half_open_max_requests,
                'success_threshold': self.config.success_threshold,
                'timeout': self.config.timeout
            },
            'metrics': {
                'total_requests': self.metrics.total_requests,
                'successful_requests': self.metrics.successful_requests,
                'failed_requests': self.metrics.failed_requests,
                'timeout_requests': self.metrics.timeout_requests,
                'rejected_requests': self.metrics.rejected_requests,
                'non_breaker_errors': self.metrics.non_breaker_errors,
                'success_rate': self.metrics.success_rate,
                'state_changes': self.metrics.state_changes[-10:]
            }
        }
