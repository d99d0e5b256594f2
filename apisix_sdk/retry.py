"""
Retry with bounded exponential backoff and jitter

The policy turns each attempt into a structured outcome; the executor is a
generic backoff driver that knows nothing about HTTP.
"""
import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from core.logging import get_logger

from .exceptions import RequestCancelledError, status_code_of

T = TypeVar("T")

NON_RETRYABLE_MESSAGES = (
    "unauthorized",
    "forbidden",
    "not found",
    "invalid",
    "validation",
    "already exists",
)
NON_RETRYABLE_STATUSES = frozenset({400, 401, 403, 404, 409, 422})


@dataclass
class RetryConfig:
    """Retry configuration"""

    max_attempts: int = 3
    base_delay: float = 1.0  # Seconds before the second attempt
    max_delay: float = 10.0  # Cap on any single delay
    jitter: float = 0.1  # Upper bound of the random addition, seconds


@dataclass
class Success(Generic[T]):
    value: T


@dataclass
class RetryableFailure:
    error: Exception


@dataclass
class FatalFailure:
    error: Exception


Outcome = Union[Success, RetryableFailure, FatalFailure]


class RetryPolicy:
    """Decides whether a failed attempt may be retried"""

    def __init__(self, non_retryable_messages=NON_RETRYABLE_MESSAGES, non_retryable_statuses=NON_RETRYABLE_STATUSES):
        self.non_retryable_messages = tuple(m.lower() for m in non_retryable_messages)
        self.non_retryable_statuses = frozenset(non_retryable_statuses)

    def is_retryable(self, error: Exception) -> bool:
        if isinstance(error, RequestCancelledError):
            return False
        status = status_code_of(error)
        if status is not None:
            return status not in self.non_retryable_statuses
        message = str(error).lower()
        return not any(needle in message for needle in self.non_retryable_messages)

    async def attempt(self, attempt_fn: Callable[[], Awaitable[T]]) -> Outcome:
        """Run one attempt and classify its result"""
        try:
            return Success(await attempt_fn())
        except Exception as e:
            if self.is_retryable(e):
                return RetryableFailure(e)
            return FatalFailure(e)


def calculate_delay(attempt: int, config: RetryConfig, rng: Callable[[float, float], float] = random.uniform) -> float:
    """Delay after the given (1-based) failed attempt"""
    delay = config.base_delay * (2 ** (attempt - 1))
    if config.jitter > 0:
        delay += rng(0, config.jitter)
    return min(delay, config.max_delay)


class RetryExecutor:
    """Backoff driver consuming RetryPolicy outcomes"""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
    ):
        self.config = config or RetryConfig()
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._rng = rng
        self.logger = get_logger("apisix.retry", domain="apisix")

    async def run(
        self,
        attempt_fn: Callable[[], Awaitable[T]],
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    ) -> T:
        """
        Run attempt_fn until it succeeds, fails fatally, or attempts run out

        Args:
            attempt_fn: Zero-argument coroutine function performing one attempt
            max_attempts: Overrides the configured attempt count
            base_delay: Overrides the configured base delay (seconds)
            on_retry: Called with (attempt, error, delay) before each backoff sleep

        Returns:
            The first successful result

        Raises:
            The error of a fatal attempt, or of the last attempt
        """
        config = self.config
        if max_attempts is not None or base_delay is not None:
            config = RetryConfig(
                max_attempts=max_attempts if max_attempts is not None else config.max_attempts,
                base_delay=base_delay if base_delay is not None else config.base_delay,
                max_delay=config.max_delay,
                jitter=config.jitter,
            )

        attempt = 0
        while True:
            attempt += 1
            outcome = await self.policy.attempt(attempt_fn)

            if isinstance(outcome, Success):
                if attempt > 1:
                    self.logger.info(f"Retry succeeded on attempt {attempt}")
                return outcome.value

            if isinstance(outcome, FatalFailure):
                self.logger.debug(f"Not retrying non-retryable error: {outcome.error}")
                raise outcome.error

            if attempt >= config.max_attempts:
                self.logger.error(f"All {config.max_attempts} attempts exhausted: {outcome.error}")
                raise outcome.error

            delay = calculate_delay(attempt, config, self._rng)
            self.logger.warning(
                f"Attempt {attempt}/{config.max_attempts} failed, retrying in {delay:.2f}s: {outcome.error}"
            )
            if on_retry:
                on_retry(attempt, outcome.error, delay)
            await self._sleep(delay)
