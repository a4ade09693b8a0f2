# /*
# Copyright 2026 The kube-bootstrap Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Retry/backoff controller built on tenacity.

Every retried call in the bootstrap goes through :class:`RetryController`.
On exhaustion the caller receives the exception raised by the final attempt,
never a summary, so the root cause survives up to the phase report.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    wait_incrementing,
)

from kube_bootstrap.constants import (
    DEFAULT_RETRY_INITIAL_DELAY_SECONDS,
    DEFAULT_RETRY_MAX_ATTEMPTS,
    DEFAULT_RETRY_MAX_DELAY_SECONDS,
)
from kube_bootstrap.errors import NON_RETRYABLE, ConfigurationError, DeadlineExceeded

logger = logging.getLogger("kube_bootstrap.retry")

T = TypeVar("T")


class BackoffKind(str, Enum):
    """How the wait between attempts grows."""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry policy.

    Attributes:
        max_attempts: Total attempts, including the first one.
        initial_delay: Seconds to wait after the first failure.
        backoff: Growth of the wait between attempts.
        max_delay: Upper bound for linear and exponential waits.
    """

    max_attempts: int = DEFAULT_RETRY_MAX_ATTEMPTS
    initial_delay: float = DEFAULT_RETRY_INITIAL_DELAY_SECONDS
    backoff: BackoffKind = BackoffKind.EXPONENTIAL
    max_delay: float = DEFAULT_RETRY_MAX_DELAY_SECONDS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0:
            raise ConfigurationError(f"initial_delay must be >= 0, got {self.initial_delay}")
        if self.max_delay < 0:
            raise ConfigurationError(f"max_delay must be >= 0, got {self.max_delay}")
        if not isinstance(self.backoff, BackoffKind):
            object.__setattr__(self, "backoff", BackoffKind(self.backoff))

    @classmethod
    def fixed(cls, delay: float, max_attempts: int) -> RetryPolicy:
        return cls(max_attempts=max_attempts, initial_delay=delay, backoff=BackoffKind.FIXED, max_delay=delay)

    @classmethod
    def once(cls) -> RetryPolicy:
        return cls(max_attempts=1, initial_delay=0, backoff=BackoffKind.FIXED, max_delay=0)

    def delay_for(self, attempt: int) -> float:
        """Return the wait after the given (1-based) failed attempt."""
        if self.backoff is BackoffKind.FIXED:
            return self.initial_delay
        if self.backoff is BackoffKind.LINEAR:
            return min(self.initial_delay * attempt, self.max_delay)
        return min(self.initial_delay * 2 ** (attempt - 1), self.max_delay)

    def budget(self) -> float:
        """Total seconds spent sleeping if every attempt fails."""
        return sum(self.delay_for(attempt) for attempt in range(1, self.max_attempts))

    def wait_strategy(self):
        """Return the tenacity wait strategy matching :meth:`delay_for`."""
        if self.backoff is BackoffKind.FIXED:
            return wait_fixed(self.initial_delay)
        if self.backoff is BackoffKind.LINEAR:
            return wait_incrementing(start=self.initial_delay, increment=self.initial_delay, max=self.max_delay)
        return wait_exponential(multiplier=self.initial_delay, exp_base=2, max=self.max_delay)

    def describe(self) -> str:
        if self.max_attempts == 1:
            return "single attempt"
        if self.backoff is BackoffKind.FIXED:
            return f"{self.max_attempts}x every {self.initial_delay:g}s"
        return f"{self.max_attempts}x {self.backoff.value} from {self.initial_delay:g}s (max {self.max_delay:g}s)"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a retried or polled call.

    Attributes:
        value: Return value of the successful attempt.
        error: Exception from the last attempt, or None on success.
        attempts: Number of times the operation was invoked.
        elapsed: Seconds between the first attempt and the outcome.
    """

    value: T | None = None
    error: Exception | None = None
    attempts: int = 0
    elapsed: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T | None:
        if self.error is not None:
            raise self.error
        return self.value


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, Exception) and not isinstance(exc, NON_RETRYABLE)


class RetryController:
    """Runs an operation under a :class:`RetryPolicy`.

    Args:
        clock: Monotonic clock used for deadlines and elapsed time.
        sleep: Sleep function used between attempts.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    def execute(
        self,
        operation: Callable[[], T],
        policy: RetryPolicy,
        *,
        deadline: float | None = None,
        description: str = "operation",
    ) -> Outcome[T]:
        """Invoke *operation* until it succeeds or the policy is exhausted.

        Args:
            operation: Zero-argument callable to invoke.
            policy: Attempt bound and wait policy.
            deadline: Absolute clock value; if the next sleep would pass it,
                the outcome is :class:`DeadlineExceeded` right away. The first
                attempt is always made.
            description: Human-readable name used in log lines.

        Returns:
            An Outcome holding the value, or the last observed exception.
        """
        start = self._clock()
        attempts = 0

        def _attempt() -> T:
            nonlocal attempts
            attempts += 1
            return operation()

        def _before_sleep(retry_state: RetryCallState) -> None:
            last = retry_state.outcome.exception() if retry_state.outcome else None
            upcoming = retry_state.upcoming_sleep
            if deadline is not None and self._clock() + upcoming > deadline:
                raise DeadlineExceeded(
                    f"{description}: retry in {upcoming:g}s would pass the deadline "
                    f"after {retry_state.attempt_number} attempt(s): {last}",
                    last,
                ) from last
            logger.warning(
                "%s: attempt %d/%d failed (%s), retrying in %gs",
                description, retry_state.attempt_number, policy.max_attempts, last, upcoming,
            )

        retrying = Retrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=policy.wait_strategy(),
            retry=retry_if_exception(_is_retryable),
            before_sleep=_before_sleep,
            sleep=self._sleep,
            reraise=True,
        )
        try:
            value = retrying(_attempt)
        except Exception as exc:
            return Outcome(error=exc, attempts=attempts, elapsed=self._clock() - start)
        return Outcome(value=value, attempts=attempts, elapsed=self._clock() - start)
