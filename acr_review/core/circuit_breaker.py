"""Circuit breaker for calls to the remote verification API.

Wraps every remote persistence call with tenacity retries and a per-service
circuit breaker. Features:

1. Service-specific circuit breakers with configurable thresholds
2. Exponential backoff with jitter on connection and timeout errors
3. Per-call timeout via asyncio.wait_for (expiry counts as a failure)
4. Structured logging with correlation_id integration

Callers treat any exception raised out of a wrapped call, including
CircuitOpenError, as "remote unavailable" and fall back to a local mutation.

Circuit States:
- CLOSED: Normal operation, requests pass through
- OPEN: Circuit tripped, requests fail fast without calling the API
- HALF_OPEN: Testing if the service recovered with a single request

Usage:
    from acr_review.core.circuit_breaker import with_circuit_breaker, CircuitService

    @with_circuit_breaker(CircuitService.VERIFICATION_SUBMIT)
    async def submit(...) -> dict:
        return await client.post(...)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from threading import Lock
from typing import Any, TypeVar

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from acr_review.core.config import get_settings
from acr_review.core.correlation import get_correlation_id

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitService(str, Enum):
    """Remote endpoints with circuit breaker protection."""

    VERIFICATION_QUEUE = "verification_queue"
    VERIFICATION_SUBMIT = "verification_submit"
    VERIFICATION_BULK = "verification_bulk"
    JOB_METADATA = "job_metadata"


# =============================================================================
# Retryable Exceptions
# =============================================================================

RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    httpx.TransportError,
)


def is_retryable_exception(exc: Exception) -> bool:
    """Check if an exception is retryable.

    Args:
        exc: The exception to check.

    Returns:
        True if the exception should trigger a retry.
    """
    if isinstance(exc, RETRYABLE_EXCEPTIONS):
        return True

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in (429, 500, 502, 503, 504)

    error_str = str(exc).lower()
    retryable_indicators = (
        "429",
        "502",
        "503",
        "504",
        "timeout",
        "connection",
        "temporary",
    )

    return any(indicator in error_str for indicator in retryable_indicators)


# =============================================================================
# Circuit Breaker Configuration
# =============================================================================


@dataclass
class CircuitConfig:
    """Configuration for a circuit breaker.

    Attributes:
        failure_threshold: Failures before opening circuit.
        recovery_timeout: Seconds before attempting recovery.
        timeout_seconds: Per-request timeout.
        max_retries: Maximum attempts (including the first).
        initial_wait: Initial wait between retries (seconds).
        max_wait: Maximum wait between retries (seconds).
        jitter: Random jitter added to wait (seconds).
    """

    failure_threshold: int = 5
    recovery_timeout: int = 30
    timeout_seconds: float = 10.0
    max_retries: int = 2
    initial_wait: float = 0.5
    max_wait: float = 4.0
    jitter: float = 0.5


def build_service_config(service: CircuitService) -> CircuitConfig:
    """Build the breaker configuration for a service from settings.

    Args:
        service: The remote endpoint.

    Returns:
        CircuitConfig with timeout and retries taken from settings.
    """
    settings = get_settings()
    config = CircuitConfig(
        timeout_seconds=settings.verification_api_timeout,
        max_retries=max(1, settings.verification_api_max_retries),
    )
    if service == CircuitService.VERIFICATION_BULK:
        # Bulk fan-out already isolates items; do not multiply the wait
        config.max_retries = 1
    return config


# =============================================================================
# Circuit Breaker Implementation
# =============================================================================


@dataclass
class CircuitBreaker:
    """Thread-safe circuit breaker implementation.

    Example:
        >>> breaker = CircuitBreaker("verification_submit", config)
        >>> if breaker.is_open:
        ...     raise CircuitOpenError("verification_submit")
        >>> try:
        ...     result = await api_call()
        ...     breaker.record_success()
        ... except Exception:
        ...     breaker.record_failure()
    """

    name: str
    config: CircuitConfig
    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _success_count: int = field(default=0, init=False)
    _last_failure_time: float | None = field(default=None, init=False)
    _lock: Lock = field(default_factory=Lock, init=False)

    @property
    def state(self) -> CircuitState:
        """Get current circuit state, auto-transitioning if needed."""
        with self._lock:
            if (
                self._state == CircuitState.OPEN
                and self._last_failure_time is not None
            ):
                elapsed = time.time() - self._last_failure_time
                if elapsed >= self.config.recovery_timeout:
                    self._transition_to(CircuitState.HALF_OPEN)
            return self._state

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (failing fast)."""
        return self.state == CircuitState.OPEN

    @property
    def failure_count(self) -> int:
        """Get current failure count."""
        with self._lock:
            return self._failure_count

    @property
    def cooldown_remaining(self) -> float:
        """Get seconds remaining in cooldown period."""
        with self._lock:
            if self._state != CircuitState.OPEN or self._last_failure_time is None:
                return 0.0
            elapsed = time.time() - self._last_failure_time
            return max(0.0, self.config.recovery_timeout - elapsed)

    def record_success(self) -> None:
        """Record a successful API call."""
        with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._success_count += 1

    def record_failure(self) -> None:
        """Record a failed API call."""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.time()

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.config.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

    def reset(self) -> None:
        """Force the circuit back to CLOSED with zeroed counters."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_time = None

    def _transition_to(self, new_state: CircuitState) -> None:
        """Transition to a new circuit state with logging.

        Args:
            new_state: The state to transition to.
        """
        old_state = self._state
        self._state = new_state

        if new_state == CircuitState.CLOSED:
            self._failure_count = 0

        logger.warning(
            "circuit_state_change",
            circuit_name=self.name,
            old_state=old_state.value,
            new_state=new_state.value,
            failure_count=self._failure_count,
            correlation_id=get_correlation_id(),
        )

    def get_status(self) -> dict[str, Any]:
        """Get circuit breaker status for diagnostics."""
        with self._lock:
            state = self._state.value
            failure_count = self._failure_count
            success_count = self._success_count
        return {
            "circuit_name": self.name,
            "state": state,
            "failure_count": failure_count,
            "success_count": success_count,
            "cooldown_remaining": self.cooldown_remaining,
        }


# =============================================================================
# Circuit Breaker Registry
# =============================================================================


class CircuitBreakerRegistry:
    """Registry of circuit breakers, one per remote endpoint."""

    def __init__(self) -> None:
        self._circuits: dict[CircuitService, CircuitBreaker] = {}
        self._lock = Lock()

    def get(self, service: CircuitService) -> CircuitBreaker:
        """Get or create circuit breaker for a service.

        Args:
            service: The remote endpoint.

        Returns:
            CircuitBreaker instance for the service.
        """
        with self._lock:
            if service not in self._circuits:
                config = build_service_config(service)
                self._circuits[service] = CircuitBreaker(
                    name=service.value,
                    config=config,
                )
                logger.info(
                    "circuit_breaker_created",
                    circuit_name=service.value,
                    failure_threshold=config.failure_threshold,
                    timeout_seconds=config.timeout_seconds,
                )
            return self._circuits[service]

    def get_all_status(self) -> list[dict[str, Any]]:
        """Get status of all registered circuit breakers."""
        return [breaker.get_status() for breaker in list(self._circuits.values())]

    def reset(self, service: CircuitService | None = None) -> None:
        """Reset circuit breaker(s).

        Args:
            service: Specific service to reset, or None to drop all breakers
                so they are rebuilt from current settings.
        """
        with self._lock:
            if service is None:
                self._circuits.clear()
                return
            breaker = self._circuits.get(service)
        if breaker is not None:
            breaker.reset()
            logger.info("circuit_breaker_reset", circuit_name=service.value)


_registry = CircuitBreakerRegistry()


def get_circuit_registry() -> CircuitBreakerRegistry:
    """Get the global circuit breaker registry."""
    return _registry


class CircuitOpenError(Exception):
    """Raised when a circuit breaker is open.

    Attributes:
        circuit_name: Name of the open circuit.
        cooldown_remaining: Seconds until circuit attempts recovery.
    """

    def __init__(
        self,
        circuit_name: str,
        cooldown_remaining: float = 0.0,
    ):
        self.circuit_name = circuit_name
        self.cooldown_remaining = cooldown_remaining
        super().__init__(
            f"Circuit '{circuit_name}' is open. "
            f"Retry after {cooldown_remaining:.1f}s"
        )


# =============================================================================
# Circuit Breaker Decorator
# =============================================================================


def with_circuit_breaker(
    service: CircuitService,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Wrap an async function with circuit breaker, timeout and retry logic.

    1. Check if circuit is open (fail fast if so)
    2. Execute function with timeout
    3. Retry on retryable errors with exponential backoff + jitter
    4. Record success/failure to circuit breaker

    Args:
        service: The remote endpoint this function calls.

    Returns:
        Decorated async function with circuit breaker protection.
    """

    def decorator(
        func: Callable[..., Awaitable[T]],
    ) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            breaker = get_circuit_registry().get(service)
            config = breaker.config

            if breaker.is_open:
                logger.warning(
                    "circuit_breaker_rejected",
                    circuit_name=service.value,
                    cooldown_remaining=breaker.cooldown_remaining,
                    correlation_id=get_correlation_id(),
                )
                raise CircuitOpenError(
                    circuit_name=service.value,
                    cooldown_remaining=breaker.cooldown_remaining,
                )

            timeout = config.timeout_seconds

            try:
                async for attempt in AsyncRetrying(
                    stop=stop_after_attempt(config.max_retries),
                    wait=wait_exponential_jitter(
                        initial=config.initial_wait,
                        max=config.max_wait,
                        jitter=config.jitter,
                    ),
                    retry=retry_if_exception(is_retryable_exception),
                    reraise=True,
                ):
                    with attempt:
                        result = await asyncio.wait_for(
                            func(*args, **kwargs),
                            timeout=timeout,
                        )
                        breaker.record_success()
                        return result

            except RetryError as e:
                breaker.record_failure()
                logger.error(
                    "circuit_breaker_retries_exhausted",
                    circuit_name=service.value,
                    max_retries=config.max_retries,
                    correlation_id=get_correlation_id(),
                )
                if e.last_attempt and e.last_attempt.exception():
                    raise e.last_attempt.exception() from e
                raise

            except TimeoutError as e:
                breaker.record_failure()
                logger.warning(
                    "circuit_breaker_timeout",
                    circuit_name=service.value,
                    timeout_seconds=timeout,
                    correlation_id=get_correlation_id(),
                )
                raise TimeoutError(
                    f"{service.value} request timed out after {timeout}s"
                ) from e

            except Exception as e:
                if is_retryable_exception(e):
                    breaker.record_failure()
                    logger.warning(
                        "circuit_breaker_failure",
                        circuit_name=service.value,
                        error=str(e),
                        error_type=type(e).__name__,
                        correlation_id=get_correlation_id(),
                    )
                raise

            # Unreachable: the loop either returns or raises
            raise RuntimeError("Unexpected state in circuit breaker")

        return wrapper

    return decorator
