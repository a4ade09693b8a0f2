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

from kube_bootstrap.guard import Decision, IdempotencyGuard
from kube_bootstrap.phases import Phase, PhaseContext


@pytest.fixture
def ctx(single_topology):
    return PhaseContext(single_topology, None, collaborator=None)


def phase_with(check, rerunnable=True):
    return Phase(name="p", action=lambda ctx: None, idempotency_check=check, rerunnable=rerunnable)


def raising(ctx):
    raise RuntimeError("kubectl timed out")


@pytest.mark.parametrize(
    "check, decision",
    [
        (None, Decision.RUN),
        (lambda ctx: True, Decision.SKIP),
        (lambda ctx: False, Decision.RUN),
        (lambda ctx: 0, Decision.RUN),
        (lambda ctx: Decision.REPAIR, Decision.REPAIR),
        (lambda ctx: Decision.SKIP, Decision.SKIP),
    ],
)
def test_guard_decisions(ctx, check, decision):
    verdict = IdempotencyGuard().should_run(phase_with(check), ctx)
    assert verdict.decision is decision
    assert verdict.should_run is (decision is not Decision.SKIP)


def test_guard_check_error_reruns_rerunnable_action(ctx):
    verdict = IdempotencyGuard().should_run(phase_with(raising), ctx)
    assert verdict.should_run
    assert verdict.warning is None


def test_guard_check_error_skips_unsafe_action_with_warning(ctx):
    verdict = IdempotencyGuard().should_run(phase_with(raising, rerunnable=False), ctx)
    assert not verdict.should_run
    assert "kubectl timed out" in verdict.warning
