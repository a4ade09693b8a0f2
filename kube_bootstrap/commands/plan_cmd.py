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

"""``plan`` subcommand: show what a run would do without doing it."""

from __future__ import annotations

import typer
from rich.table import Table

from kube_bootstrap import console
from kube_bootstrap.catalog import build_phases
from kube_bootstrap.config import Config, RunOptions, load_config
from kube_bootstrap.constants import EXIT_ABORTED
from kube_bootstrap.errors import ConfigurationError
from kube_bootstrap.phases import Phase
from kube_bootstrap.topology import Topology, display_topology, resolve


def _disposition(phase: Phase, topology: Topology, config: Config) -> str:
    if not phase.applies(topology):
        return f"[yellow]skip (not applicable to {topology.environment.value})[/yellow]"
    if phase.name in config.options.skip_phases:
        return "[yellow]skip (requested)[/yellow]"
    return "[green]run unless already done[/green]"


def plan_table(phases: list[Phase], topology: Topology, config: Config) -> Table:
    table = Table(title="Bootstrap plan")
    table.add_column("#", justify="right")
    table.add_column("Phase", style="bold")
    table.add_column("Severity")
    table.add_column("Retry")
    table.add_column("Verification")
    table.add_column("Disposition")
    for index, phase in enumerate(phases, start=1):
        policy = phase.retry_policy if phase.retryable else None
        check = phase.verification
        verification = "-"
        if check is not None:
            verification = f"{check.description} ({check.timeout_for(phase.retry_policy):g}s)"
        table.add_row(
            str(index),
            phase.name,
            phase.severity.value,
            policy.describe() if policy else "single attempt",
            verification,
            _disposition(phase, topology, config),
        )
    return table


def plan(
    environment: str = typer.Option(
        "single", "--environment", "-e", help="single, limited-ha, full-ha (or dev, staging, prod)"),
    members: list[str] = typer.Option(
        [], "--member", "-m", help="Control-plane member as hostname=address (repeat, primary first)"),
    endpoint: str | None = typer.Option(
        None, "--endpoint", help="Floating endpoint address for multi-member topologies"),
    skip: list[str] = typer.Option(
        [], "--skip", help="Phase to skip (repeatable)"),
) -> None:
    """Show the phases a run would execute, in order."""
    options = RunOptions(
        environment=environment,
        members=tuple(members),
        endpoint=endpoint,
        skip_phases=frozenset(skip),
        log_file=None,
    )
    try:
        config = load_config(options)
        topology = resolve(environment, members, endpoint_address=endpoint, api_port=config.cluster.api_port)
    except ConfigurationError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(EXIT_ABORTED)

    display_topology(topology)
    console.print(plan_table(build_phases(config), topology, config))
