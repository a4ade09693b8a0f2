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

"""``topology`` subcommand: resolve a member list and print its properties."""

from __future__ import annotations

import typer

from kube_bootstrap import console
from kube_bootstrap.constants import DEFAULT_API_PORT, EXIT_ABORTED
from kube_bootstrap.errors import ConfigurationError
from kube_bootstrap.topology import display_topology, resolve


def topology(
    environment: str = typer.Option(
        "single", "--environment", "-e", help="single, limited-ha, full-ha (or dev, staging, prod)"),
    members: list[str] = typer.Option(
        [], "--member", "-m", help="Control-plane member as hostname=address (repeat, primary first)"),
    endpoint: str | None = typer.Option(
        None, "--endpoint", help="Floating endpoint address for multi-member topologies"),
    api_port: int = typer.Option(DEFAULT_API_PORT, "--api-port", help="API server port"),
) -> None:
    """Resolve a topology and print quorum, fault tolerance and endpoint."""
    try:
        resolved = resolve(environment, members, endpoint_address=endpoint, api_port=api_port)
    except ConfigurationError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(EXIT_ABORTED)
    display_topology(resolved)
