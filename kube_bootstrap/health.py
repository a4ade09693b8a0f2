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

"""Health verification: poll a read-only probe until it holds or time runs out."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import TYPE_CHECKING

from kube_bootstrap.errors import ConditionNotMet, DeadlineExceeded, VerificationTimeoutError
from kube_bootstrap.retry import Outcome, RetryController, RetryPolicy

if TYPE_CHECKING:
    from kube_bootstrap.phases import Phase, PhaseContext

logger = logging.getLogger("kube_bootstrap.health")


def poll_attempts(timeout: float, poll_interval: float) -> int:
    """Number of probes that fit in *timeout* at *poll_interval* (at least one)."""
    if poll_interval <= 0:
        return 1
    return max(1, math.floor(timeout / poll_interval))


class HealthVerifier:
    """Fixed-interval poller layered on the retry controller.

    Args:
        retry: Controller that owns the clock and sleep function.
    """

    def __init__(self, retry: RetryController | None = None) -> None:
        self._retry = retry or RetryController()

    def wait_until(
        self,
        condition: Callable[[], bool],
        timeout: float,
        poll_interval: float,
        *,
        description: str = "condition",
        deadline: float | None = None,
    ) -> Outcome[None]:
        """Poll *condition* until it returns true.

        The probe must not mutate external state; it may be called many times.
        A probe that raises is treated like one that returned false.

        Args:
            condition: Side-effect-free boolean probe.
            timeout: Seconds to keep polling.
            poll_interval: Seconds between probes.
            description: Name used in log lines and the timeout message.
            deadline: Optional outer deadline; the earlier of it and
                ``now + timeout`` bounds the polling.

        Returns:
            A successful Outcome, or one whose error is a
            :class:`VerificationTimeoutError`.
        """
        policy = RetryPolicy.fixed(poll_interval, poll_attempts(timeout, poll_interval))
        poll_deadline = self._retry.clock() + timeout
        if deadline is not None:
            poll_deadline = min(poll_deadline, deadline)

        def _probe() -> None:
            try:
                held = condition()
            except Exception as exc:
                raise ConditionNotMet(f"{description}: probe failed: {exc}") from exc
            if not held:
                raise ConditionNotMet(f"{description}: not yet satisfied")

        outcome = self._retry.execute(_probe, policy, deadline=poll_deadline, description=description)
        if outcome.ok:
            logger.info("%s: satisfied after %d probe(s)", description, outcome.attempts)
            return outcome

        error = outcome.error
        if isinstance(error, DeadlineExceeded):
            error = error.last_error or error
        cause = error.__cause__ if isinstance(error, ConditionNotMet) else error
        return Outcome(
            error=VerificationTimeoutError(
                f"{description}: not satisfied within {timeout:g}s ({outcome.attempts} probe(s))"
                + (f"; last error: {cause}" if cause is not None else ""),
                cause,
            ),
            attempts=outcome.attempts,
            elapsed=outcome.elapsed,
        )

    def verify(self, phase: Phase, ctx: PhaseContext, *, deadline: float | None = None) -> Outcome[None]:
        """Run a phase's verification, if it declares one."""
        if phase.verification is None:
            return Outcome()
        check = phase.verification
        return self.wait_until(
            lambda: bool(check.probe(ctx)),
            check.timeout_for(phase.retry_policy),
            check.poll_interval_for(phase.retry_policy),
            description=f"{phase.name}: {check.description}",
            deadline=deadline,
        )
