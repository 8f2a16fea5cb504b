"""
Eventually-Consistent Condition Poller

This module provides the polling primitive used by scenario steps to observe
state in a remote system that converges over time (an agent coming online,
datastreams being registered, a metrics file being written).

A predicate performs one observation and returns an Outcome:

- Success(value): the condition holds, polling stops and value is returned
- Retry(reason): not yet, wait and observe again
- Fatal(reason): the condition can never hold, stop immediately

Waits between attempts grow exponentially (initial, initial*m, initial*m^2,
...) up to max_interval. Polling gives up with PollTimeoutError once the next
wait would take the elapsed time past max_elapsed_time, so the deadline is
never overshot; a wait landing exactly on the deadline is still taken.
TransportError raised by a predicate is treated as a retry.

Usage:
    policy = BackoffPolicy(initial_interval=0.5, max_interval=5,
                           max_elapsed_time=60, multiplier=2)
    poll_until(lambda: Success() if ready() else Retry("not ready"), policy)
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    retry_if_result,
)

from .errors import E2EError, TransportError

logger = logging.getLogger(__name__)

# Default backoff shape shared by every step
DEFAULT_INITIAL_INTERVAL = 0.5
DEFAULT_MAX_INTERVAL = 5.0
DEFAULT_MULTIPLIER = 2.0
DEFAULT_MAX_ELAPSED_TIME = 60.0


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff configuration for a single poll.

    All durations are expressed in seconds.
    """

    initial_interval: float = DEFAULT_INITIAL_INTERVAL
    max_interval: float = DEFAULT_MAX_INTERVAL
    max_elapsed_time: float = DEFAULT_MAX_ELAPSED_TIME
    multiplier: float = DEFAULT_MULTIPLIER

    def __post_init__(self):
        if self.initial_interval <= 0:
            raise ValueError("initial_interval must be positive")
        if self.multiplier <= 1:
            raise ValueError("multiplier must be greater than 1")
        if self.max_interval < self.initial_interval:
            raise ValueError("max_interval cannot be lower than initial_interval")
        if self.max_elapsed_time <= 0:
            raise ValueError("max_elapsed_time must be positive")

    def interval(self, attempt: int) -> float:
        """Wait applied after the given (1-based) failed attempt."""
        return min(
            self.initial_interval * self.multiplier ** (attempt - 1), self.max_interval
        )

    @classmethod
    def from_config(cls, config, max_elapsed_time: Optional[float] = None) -> "BackoffPolicy":
        """
        Build a policy from the suite configuration.

        Args:
            config: Config instance carrying the poll_* settings
            max_elapsed_time: Optional deadline overriding config.poll_timeout

        Returns:
            BackoffPolicy instance
        """
        return cls(
            initial_interval=config.poll_initial_interval,
            max_interval=config.poll_max_interval,
            max_elapsed_time=(
                max_elapsed_time if max_elapsed_time is not None else config.poll_timeout
            ),
            multiplier=config.poll_multiplier,
        )


@dataclass(frozen=True)
class Success:
    value: Any = None


@dataclass(frozen=True)
class Retry:
    reason: str
    observed: Any = None


@dataclass(frozen=True)
class Fatal:
    reason: str
    observed: Any = None


Outcome = Union[Success, Retry, Fatal]


class RetryableObservationFailure(E2EError):
    """The observed state does not satisfy the condition yet."""

    pass


class FatalObservationFailure(E2EError):
    """The observed state can never satisfy the condition."""

    def __init__(self, reason: str, attempts: int, elapsed: float):
        super().__init__(reason)
        self.reason = reason
        self.attempts = attempts
        self.elapsed = elapsed


class PollTimeoutError(E2EError, TimeoutError):
    """The deadline was reached before the condition was satisfied."""

    def __init__(self, description: str, attempts: int, elapsed: float, last_reason: str):
        super().__init__(
            f"{description}: gave up after {attempts} attempts in {elapsed:.2f}s "
            f"(last reason: {last_reason})"
        )
        self.description = description
        self.attempts = attempts
        self.elapsed = elapsed
        self.last_reason = last_reason


@dataclass
class _PollState:
    """Per-invocation bookkeeping, never shared between polls."""

    started: float
    attempts: int = 0
    last_reason: str = ""


def poll_until(
    predicate: Callable[[], Outcome],
    policy: BackoffPolicy,
    description: str = "condition",
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> Any:
    """
    Evaluate predicate until it succeeds, fails fatally or the deadline passes.

    Args:
        predicate: Zero-argument callable performing one observation
        policy: Backoff policy bounding the poll
        description: Human readable name of the condition, used in logs/errors
        sleep: Blocking sleep function
        clock: Monotonic clock used to measure elapsed time

    Returns:
        The value carried by the Success outcome

    Raises:
        FatalObservationFailure: If the predicate returned Fatal
        PollTimeoutError: If max_elapsed_time is reached without success
        Exception: Anything other than TransportError raised by the predicate
    """
    state = _PollState(started=clock())

    def elapsed() -> float:
        return clock() - state.started

    def attempt() -> Outcome:
        state.attempts += 1
        try:
            outcome = predicate()
        except (TransportError, RetryableObservationFailure) as e:
            state.last_reason = str(e)
            logger.warning(
                f"{description}: {e} (retry={state.attempts}, "
                f"elapsedTime={elapsed():.2f}s)"
            )
            raise

        if isinstance(outcome, Retry):
            state.last_reason = outcome.reason
            logger.warning(
                f"{description}: {outcome.reason} (retry={state.attempts}, "
                f"elapsedTime={elapsed():.2f}s, observed={outcome.observed!r})"
            )
        elif isinstance(outcome, Fatal):
            state.last_reason = outcome.reason
            logger.error(
                f"{description}: {outcome.reason} (retry={state.attempts}, "
                f"elapsedTime={elapsed():.2f}s, observed={outcome.observed!r})"
            )
        elif isinstance(outcome, Success):
            logger.info(
                f"{description}: satisfied (retries={state.attempts}, "
                f"elapsedTime={elapsed():.2f}s, observed={outcome.value!r})"
            )
        else:
            raise TypeError(f"Predicate returned {type(outcome).__name__}, expected an Outcome")
        return outcome

    def next_wait(retry_state: RetryCallState) -> float:
        return policy.interval(retry_state.attempt_number)

    def deadline_reached(retry_state: RetryCallState) -> bool:
        return elapsed() + retry_state.upcoming_sleep > policy.max_elapsed_time

    def log_wait(retry_state: RetryCallState) -> None:
        logger.debug(f"{description}: waiting {retry_state.upcoming_sleep:.2f}s")

    def give_up(retry_state: RetryCallState):
        logger.error(
            f"{description}: timed out (retries={state.attempts}, "
            f"elapsedTime={elapsed():.2f}s, maxElapsedTime={policy.max_elapsed_time}s)"
        )
        raise PollTimeoutError(description, state.attempts, elapsed(), state.last_reason)

    retrying = Retrying(
        sleep=sleep,
        stop=deadline_reached,
        wait=next_wait,
        retry=(
            retry_if_result(lambda outcome: isinstance(outcome, Retry))
            | retry_if_exception_type((TransportError, RetryableObservationFailure))
        ),
        before_sleep=log_wait,
        retry_error_callback=give_up,
    )

    outcome = retrying(attempt)

    if isinstance(outcome, Fatal):
        raise FatalObservationFailure(outcome.reason, state.attempts, elapsed())

    return outcome.value
