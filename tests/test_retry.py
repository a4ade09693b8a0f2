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

from __future__ import annotations

import pytest

from kube_bootstrap.errors import (
    ConfigurationError,
    DeadlineExceeded,
    TransientError,
    UnrecoverableActionError,
)
from kube_bootstrap.retry import BackoffKind, Outcome, RetryPolicy


def flaky(failures: int, value="ok", error=TransientError):
    calls = {"n": 0}

    def _op():
        calls["n"] += 1
        if calls["n"] <= failures:
            raise error(f"failure {calls['n']}")
        return value
    return _op, calls


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


def test_policy_delays():
    fixed = RetryPolicy(max_attempts=4, initial_delay=5, backoff=BackoffKind.FIXED, max_delay=1)
    assert [fixed.delay_for(n) for n in (1, 2, 3)] == [5, 5, 5]

    linear = RetryPolicy(max_attempts=5, initial_delay=2, backoff="linear", max_delay=5)
    assert linear.backoff is BackoffKind.LINEAR
    assert [linear.delay_for(n) for n in (1, 2, 3)] == [2, 4, 5]

    exponential = RetryPolicy(max_attempts=6, initial_delay=1, backoff=BackoffKind.EXPONENTIAL, max_delay=10)
    assert [exponential.delay_for(n) for n in (1, 2, 3, 4, 5)] == [1, 2, 4, 8, 10]
    assert exponential.budget() == 25


def test_policy_validation():
    with pytest.raises(ConfigurationError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ConfigurationError):
        RetryPolicy(initial_delay=-1)


def test_once_has_no_budget():
    policy = RetryPolicy.once()
    assert policy.max_attempts == 1
    assert policy.budget() == 0
    assert policy.describe() == "single attempt"


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------


def test_execute_succeeds_first_time(retry, clock):
    op, calls = flaky(0)
    outcome = retry.execute(op, RetryPolicy.fixed(5, 3))
    assert outcome.ok and outcome.value == "ok"
    assert outcome.attempts == 1
    assert clock.sleeps == []


def test_execute_retries_then_succeeds(retry, clock):
    op, calls = flaky(2)
    outcome = retry.execute(op, RetryPolicy.fixed(5, 3))
    assert outcome.ok
    assert outcome.attempts == 3
    assert clock.sleeps == [5, 5]
    assert outcome.elapsed == 10


def test_execute_exhaustion_returns_last_error(retry):
    op, calls = flaky(10)
    outcome = retry.execute(op, RetryPolicy.fixed(1, 3))
    assert not outcome.ok
    assert calls["n"] == 3
    assert outcome.attempts == 3
    assert isinstance(outcome.error, TransientError)
    assert str(outcome.error) == "failure 3"


def test_execute_exponential_waits(retry, clock):
    op, _ = flaky(10)
    retry.execute(op, RetryPolicy(max_attempts=4, initial_delay=1, backoff=BackoffKind.EXPONENTIAL, max_delay=3))
    assert clock.sleeps == [1, 2, 3]


@pytest.mark.parametrize("error", [ConfigurationError, UnrecoverableActionError])
def test_execute_does_not_retry_non_retryable(retry, clock, error):
    op, calls = flaky(10, error=error)
    outcome = retry.execute(op, RetryPolicy.fixed(1, 5))
    assert calls["n"] == 1
    assert isinstance(outcome.error, error)
    assert clock.sleeps == []


def test_execute_stops_when_sleep_would_pass_deadline(retry, clock):
    op, calls = flaky(10)
    deadline = clock.time() + 12
    outcome = retry.execute(op, RetryPolicy.fixed(5, 10), deadline=deadline)
    assert isinstance(outcome.error, DeadlineExceeded)
    assert clock.sleeps == [5, 5]
    assert calls["n"] == 3
    assert str(outcome.error.last_error) == "failure 3"


def test_execute_with_passed_deadline_still_attempts_once(retry, clock):
    op, calls = flaky(0)
    outcome = retry.execute(op, RetryPolicy.fixed(5, 3), deadline=clock.time())
    assert outcome.ok
    assert calls["n"] == 1


def test_execute_with_passed_deadline_does_not_sleep(retry, clock):
    op, calls = flaky(10)
    outcome = retry.execute(op, RetryPolicy.fixed(5, 3), deadline=clock.time())
    assert isinstance(outcome.error, DeadlineExceeded)
    assert calls["n"] == 1
    assert clock.sleeps == []


def test_keyboard_interrupt_propagates(retry):
    def _op():
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        retry.execute(_op, RetryPolicy.fixed(1, 3))


def test_outcome_unwrap():
    assert Outcome(value=3).unwrap() == 3
    with pytest.raises(TransientError):
        Outcome(error=TransientError("boom")).unwrap()
