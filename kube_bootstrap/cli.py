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

"""
cli.py - Command line entry point for kube-bootstrap.

Subcommands:
    run       Bootstrap a control plane, phase by phase
    plan      Show the phases a run would execute, without touching anything
    topology  Resolve and print a topology (quorum, fault tolerance, endpoint)

Examples:
    # Single-node development cluster
    kube-bootstrap run -e single -m cp1=10.0.0.11

    # Three-member production cluster behind a floating endpoint
    kube-bootstrap run -e full-ha -m cp1=10.0.0.11 -m cp2=10.0.0.12 -m cp3=10.0.0.13 \\
        --endpoint 10.0.0.10

    # Re-run, leaving monitoring alone
    kube-bootstrap run -e full-ha -m ... --endpoint 10.0.0.10 --skip monitoring

Environment Variables:
    Cluster settings can be overridden via KUBE_* (e.g. KUBE_VERSION,
    KUBE_POD_NETWORK_CIDR), retry defaults via RETRY_* and verification
    defaults via VERIFY_*.

For detailed usage information, run: kube-bootstrap --help
"""

from __future__ import annotations

import sys

import typer

from kube_bootstrap import console
from kube_bootstrap.commands import plan_cmd, run_cmd, topology_cmd
from kube_bootstrap.utils import setup_logging

app = typer.Typer(
    help="Phased bring-up of Kubernetes control-plane clusters.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all subcommands."""
    setup_logging()


app.command("run")(run_cmd.run)
app.command("plan")(plan_cmd.plan)
app.command("topology")(topology_cmd.topology)


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)
