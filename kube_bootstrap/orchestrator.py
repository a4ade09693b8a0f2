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

"""Phase executor and the bootstrap workflow built on it.

For each phase, in declared order: topology filter, precondition, idempotency
guard, action (retried when declared retryable), then verification. The
executor is the only place that decides whether a failure aborts the run.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from types import MappingProxyType

from rich.markup import escape
from rich.panel import Panel

from kube_bootstrap import console, logger
from kube_bootstrap.catalog import build_phases
from kube_bootstrap.collaborators import Collaborator, ShellCollaborator
from kube_bootstrap.config import Config, RunOptions, display_config
from kube_bootstrap.constants import ADMIN_KUBECONFIG, EXIT_SIGINT, EXIT_SIGTERM
from kube_bootstrap.errors import ConfigurationError, DeadlineExceeded, Terminated
from kube_bootstrap.guard import Decision, IdempotencyGuard
from kube_bootstrap.health import HealthVerifier
from kube_bootstrap.phases import Phase, PhaseContext, Severity, check_unique_names
from kube_bootstrap.retry import Outcome, RetryController, RetryPolicy
from kube_bootstrap.state import PhaseStatus, RunStatus, StateTracker, SummaryRow
from kube_bootstrap.topology import Topology, display_topology, resolve
from kube_bootstrap.utils import require_command


@dataclass(frozen=True)
class RunReport:
    """Outcome of one run.

    Attributes:
        status: Completed or aborted.
        summary: Per-phase rows in execution order.
        failed_phase: Name of the phase that aborted the run, if any.
        error: The underlying error that aborted the run, if any.
        exit_code: Process exit code for this run.
        actions_executed: Number of phase actions that were invoked.
    """

    status: RunStatus
    summary: list[SummaryRow]
    failed_phase: str | None
    error: Exception | None
    exit_code: int
    actions_executed: int

    @property
    def warnings(self) -> list[tuple[str, str]]:
        return [(row.name, row.warning) for row in self.summary if row.warning]


def describe_error(error: BaseException) -> str:
    """Render an error with its underlying cause, never a generic message."""
    if isinstance(error, DeadlineExceeded) and error.last_error is not None:
        return f"{error} (last error: {type(error.last_error).__name__}: {error.last_error})"
    return f"{type(error).__name__}: {error}"


class PhaseExecutor:
    """Runs an ordered phase list against one topology.

    A fresh :class:`StateTracker` with every phase ``pending`` is created at
    construction. An executor runs once; build a new one for a new run.

    Args:
        topology: Resolved topology, read-only.
        phases: Phases in execution order; names must be unique.
        collaborator: Gateway to external operations and probes.
        config: Run configuration handed to phase callables.
        retry: Retry controller; its clock also bounds the run deadline.
        verifier: Health verifier, built on *retry* when omitted.
        guard: Idempotency guard.
        clock: Wall clock for the state tracker.
    """

    def __init__(
        self,
        topology: Topology,
        phases: Sequence[Phase],
        collaborator: Collaborator,
        config: Config | None = None,
        *,
        retry: RetryController | None = None,
        verifier: HealthVerifier | None = None,
        guard: IdempotencyGuard | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.phases = list(phases)
        check_unique_names(self.phases)
        self.topology = topology
        self.collaborator = collaborator
        self.config = config
        self.retry = retry or RetryController()
        self.verifier = verifier or HealthVerifier(self.retry)
        self.guard = guard or IdempotencyGuard()
        self.tracker = StateTracker([phase.name for phase in self.phases], clock=clock)
        self.run_status = RunStatus.NOT_STARTED
        self.actions_executed = 0
        self._current: str | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> RunReport:
        """Execute every phase in order until one aborts the run.

        Raises:
            RuntimeError: If this executor has already run.
        """
        if self.run_status is not RunStatus.NOT_STARTED:
            raise RuntimeError("This executor has already run; create a new one for a new run")
        self.run_status = RunStatus.IN_PROGRESS
        deadline = self._deadline()
        total = len(self.phases)
        logger.info(
            "Bootstrapping %s topology: %d member(s), quorum %d, fault tolerance %d",
            self.topology.environment.value, self.topology.size,
            self.topology.quorum, self.topology.fault_tolerance,
        )

        for index, phase in enumerate(self.phases, start=1):
            self._current = phase.name
            error = self._run_phase(phase, index, total, deadline)
            self._current = None
            if error is not None:
                self.run_status = RunStatus.ABORTED
                logger.error("Run aborted at phase '%s': %s", phase.name, describe_error(error))
                return self._report(phase.name, error)

        self.run_status = RunStatus.COMPLETED
        logger.info("Run completed (%d action(s) executed)", self.actions_executed)
        return self._report(None, None)

    def interrupt(self, reason: str) -> RunReport:
        """Abort after an external signal, failing the phase in flight."""
        if self._current is not None and not self.tracker.get(self._current).status.terminal:
            self.tracker.finish(self._current, PhaseStatus.FAILED, error=reason)
        failed = self._current
        self._current = None
        self.run_status = RunStatus.ABORTED
        return self._report(failed, None)

    # ------------------------------------------------------------------
    # Phase steps
    # ------------------------------------------------------------------

    def _context(self) -> PhaseContext:
        return PhaseContext(
            topology=self.topology,
            config=self.config,
            collaborator=self.collaborator,
            statuses=MappingProxyType(self.tracker.statuses()),
        )

    def _deadline(self) -> float | None:
        if self.config is None or self.config.options.run_timeout is None:
            return None
        return self.retry.clock() + self.config.options.run_timeout

    def _skip_requested(self, name: str) -> bool:
        return self.config is not None and name in self.config.options.skip_phases

    def _run_phase(self, phase: Phase, index: int, total: int, deadline: float | None) -> Exception | None:
        name = phase.name
        console.print(Panel.fit(f"Phase {index}/{total}: {name}", style="bold blue"))
        if phase.description:
            console.print(f"[yellow]ℹ️  {phase.description}[/yellow]")

        if not phase.applies(self.topology):
            note = f"not applicable to {self.topology.environment.value} ({self.topology.size} member(s))"
            self.tracker.finish(name, PhaseStatus.SKIPPED, note=note)
            console.print(f"[yellow]   {name}: {note}[/yellow]")
            return None

        if self._skip_requested(name):
            self.tracker.finish(name, PhaseStatus.SKIPPED, note="skipped by operator")
            console.print(f"[yellow]⚠️  Skipping {name} (requested)[/yellow]")
            return None

        if deadline is not None and self.retry.clock() >= deadline:
            error = DeadlineExceeded(f"{name}: run deadline passed before the phase started")
            self.tracker.finish(name, PhaseStatus.FAILED, error=describe_error(error))
            return error

        ctx = self._context()
        error = self._check_precondition(phase, ctx)
        if error is not None:
            self.tracker.finish(name, PhaseStatus.FAILED, error=describe_error(error))
            return error

        verdict = self.guard.should_run(phase, ctx)
        if not verdict.should_run:
            self.tracker.finish(name, PhaseStatus.SKIPPED, note=verdict.reason, warning=verdict.warning)
            console.print(f"[green]✓ {name}: {verdict.reason}, skipping[/green]")
            return None

        note = "repairing partial state" if verdict.decision is Decision.REPAIR else None
        self.tracker.start(name, note=note)
        if note:
            console.print(f"[yellow]⚠️  {name}: partial state found, repairing[/yellow]")

        outcome = self._invoke_action(phase, ctx, deadline)
        if not outcome.ok:
            self.tracker.finish(name, PhaseStatus.FAILED, error=describe_error(outcome.error))
            return outcome.error
        if outcome.attempts > 1:
            note = f"action succeeded after {outcome.attempts} attempts"

        outcome = self.verifier.verify(phase, self._context(), deadline=deadline)
        if outcome.ok:
            self.tracker.finish(name, PhaseStatus.COMPLETED, note=note)
            console.print(f"[green]✅ {name} completed[/green]")
            return None

        if phase.severity is Severity.SOFT:
            warning = str(outcome.error)
            logger.warning("%s: verification failed, continuing: %s", name, warning)
            self.tracker.finish(name, PhaseStatus.COMPLETED, warning=warning, note=note)
            console.print(f"[yellow]⚠️  {name}: {escape(warning)}[/yellow]")
            return None

        self.tracker.finish(name, PhaseStatus.FAILED, error=describe_error(outcome.error))
        return outcome.error

    def _check_precondition(self, phase: Phase, ctx: PhaseContext) -> ConfigurationError | None:
        if phase.precondition is None:
            return None
        try:
            held = phase.precondition(ctx)
        except ConfigurationError as exc:
            return exc
        except Exception as exc:
            error = ConfigurationError(f"{phase.name}: precondition check failed: {exc}")
            error.__cause__ = exc
            return error
        if not held:
            return ConfigurationError(f"{phase.name}: precondition not met")
        return None

    def _invoke_action(self, phase: Phase, ctx: PhaseContext, deadline: float | None) -> Outcome:
        policy = phase.retry_policy if phase.retryable else RetryPolicy.once()
        outcome = self.retry.execute(lambda: phase.action(ctx), policy, deadline=deadline, description=phase.name)
        if outcome.attempts > 0:
            self.actions_executed += 1
        return outcome

    def _report(self, failed_phase: str | None, error: Exception | None) -> RunReport:
        return RunReport(
            status=self.run_status,
            summary=self.tracker.summary(),
            failed_phase=failed_phase,
            error=error,
            exit_code=self.tracker.exit_code(self.run_status),
            actions_executed=self.actions_executed,
        )



# ============================================================================
# Workflow
# ============================================================================

def _check_prerequisites(options: RunOptions) -> None:
    """Check local tools and the scripts directory.

    Args:
        options: Run options naming the scripts directory.

    Raises:
        ConfigurationError: If a tool or the scripts directory is missing.
    """
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    for cmd in ("bash", "systemctl"):
        require_command(cmd)
    if not options.scripts_dir.is_dir():
        raise ConfigurationError(f"Scripts directory not found: {options.scripts_dir}")
    console.print("[green]✅ All required tools are available[/green]")


def collaborator_env(config: Config) -> dict[str, str]:
    """Environment exported to every operation script."""
    cluster = config.cluster
    return {
        "CLUSTER_NAME": cluster.cluster_name,
        "KUBE_VERSION": cluster.version,
        "CONTAINERD_VERSION": cluster.containerd_version,
        "CALICO_VERSION": cluster.calico_version,
        "POD_NETWORK_CIDR": cluster.pod_network_cidr,
        "SERVICE_CIDR": cluster.service_cidr,
        "API_PORT": str(cluster.api_port),
        "ENVIRONMENT": config.options.environment,
    }


def _check_skip_names(options: RunOptions, phases: Sequence[Phase]) -> None:
    unknown = sorted(options.skip_phases - {phase.name for phase in phases})
    if unknown:
        known = ", ".join(phase.name for phase in phases)
        raise ConfigurationError(f"Unknown phase(s) to skip: {', '.join(unknown)} (known: {known})")


def run_bootstrap(config: Config, collaborator: Collaborator | None = None) -> RunReport:
    """Resolve the topology and run the default phases.

    Args:
        config: Resolved configuration.
        collaborator: Collaborator to use; a :class:`ShellCollaborator` over
            ``options.scripts_dir`` when omitted.

    Returns:
        The run report. After SIGINT or SIGTERM the phase in flight is marked
        failed and the exit code is 130 or 143.

    Raises:
        ConfigurationError: On bad topology input or unknown phase names.
    """
    options = config.options
    topology = resolve(
        options.environment,
        options.members,
        endpoint_address=options.endpoint,
        api_port=config.cluster.api_port,
    )
    display_topology(topology)
    display_config(config)

    phases = build_phases(config)
    _check_skip_names(options, phases)
    if collaborator is None:
        _check_prerequisites(options)
        collaborator = ShellCollaborator(
            options.scripts_dir,
            kubeconfig=options.kubeconfig or ADMIN_KUBECONFIG,
            env=collaborator_env(config),
        )

    executor = PhaseExecutor(topology, phases, collaborator, config)
    try:
        report = executor.run()
    except KeyboardInterrupt:
        logger.error("Interrupted; stopping after the current step")
        report = replace(executor.interrupt("interrupted (SIGINT)"), exit_code=EXIT_SIGINT)
    except Terminated as exc:
        logger.error("Received %s; stopping after the current step", exc)
        report = replace(executor.interrupt(str(exc)), exit_code=EXIT_SIGTERM)

    executor.tracker.render(console, report.status)
    return report
