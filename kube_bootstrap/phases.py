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

"""Phase descriptors and the context handed to phase callables."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from kube_bootstrap.errors import ConfigurationError
from kube_bootstrap.retry import RetryPolicy

if TYPE_CHECKING:
    from kube_bootstrap.collaborators import Collaborator
    from kube_bootstrap.config import Config
    from kube_bootstrap.state import PhaseStatus
    from kube_bootstrap.topology import Topology


class Severity(str, Enum):
    """What a verification timeout does to the run."""

    FATAL = "fatal"
    SOFT = "soft"


@dataclass(frozen=True)
class PhaseContext:
    """Everything a phase callable may look at.

    Attributes:
        topology: Resolved, read-only topology.
        config: Run configuration.
        collaborator: Gateway to external operations and state queries.
        statuses: Read-only view of phase statuses so far.
    """

    topology: Topology
    config: Config | None
    collaborator: Collaborator
    statuses: Mapping[str, PhaseStatus] = field(default_factory=dict)

    def status_of(self, phase_name: str) -> PhaseStatus | None:
        return self.statuses.get(phase_name)

    def run(self, operation: str, **params: Any) -> Any:
        return self.collaborator.run(operation, **params)

    def query(self, probe: str, **params: Any) -> Any:
        return self.collaborator.query(probe, **params)


Predicate = Callable[[PhaseContext], Any]
Action = Callable[[PhaseContext], Any]


@dataclass(frozen=True)
class Verification:
    """Post-action check.

    Attributes:
        probe: Read-only predicate over external state.
        description: What the probe establishes, for logs and reports.
        timeout: Seconds to poll; defaults to the phase retry budget.
        poll_interval: Seconds between probes; defaults to the phase
            retry policy's initial delay.
    """

    probe: Predicate
    description: str = "verification"
    timeout: float | None = None
    poll_interval: float | None = None

    def timeout_for(self, policy: RetryPolicy) -> float:
        if self.timeout is not None:
            return self.timeout
        return policy.budget()

    def poll_interval_for(self, policy: RetryPolicy) -> float:
        if self.poll_interval is not None:
            return self.poll_interval
        return policy.initial_delay


@dataclass(frozen=True)
class Phase:
    """One ordered unit of bootstrap work.

    Attributes:
        name: Unique identifier, used in logs and as the state key.
        action: Side-effecting operation; receives the PhaseContext.
        description: One-line summary for banners and plans.
        precondition: Must hold before anything runs; a false result is a
            configuration error and aborts the run.
        idempotency_check: Read-only check for the action's postcondition.
            True skips the phase; a Decision may be returned directly.
        verification: Post-action check polled by the health verifier.
        retry_policy: Applies to the action when ``retryable`` and to the
            verification when it does not set its own timing.
        retryable: Wrap the action in the retry controller.
        rerunnable: The action is safe to attempt twice.
        severity: Whether a verification timeout aborts the run.
        applies_to: Topology filter; phases that do not apply are skipped.
    """

    name: str
    action: Action
    description: str = ""
    precondition: Predicate | None = None
    idempotency_check: Predicate | None = None
    verification: Verification | None = None
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    retryable: bool = False
    rerunnable: bool = True
    severity: Severity = Severity.FATAL
    applies_to: Callable[[Topology], bool] | None = None

    def applies(self, topology: Topology) -> bool:
        return self.applies_to is None or bool(self.applies_to(topology))


def multi_member(topology: Topology) -> bool:
    """Topology filter for phases that need a floating endpoint."""
    return topology.has_floating_endpoint


def check_unique_names(phases: list[Phase]) -> None:
    """Raise ConfigurationError when two phases share a name."""
    seen: set[str] = set()
    for phase in phases:
        if phase.name in seen:
            raise ConfigurationError(f"Duplicate phase name '{phase.name}'")
        seen.add(phase.name)
