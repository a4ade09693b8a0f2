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

"""``run`` subcommand: bootstrap a cluster."""

from __future__ import annotations

import signal
from pathlib import Path

import typer
from pydantic import ValidationError

from kube_bootstrap import console
from kube_bootstrap.config import RunOptions, load_config
from kube_bootstrap.constants import DEFAULT_LOG_FILE, EXIT_ABORTED
from kube_bootstrap.errors import ConfigurationError, Terminated
from kube_bootstrap.orchestrator import run_bootstrap
from kube_bootstrap.retry import BackoffKind
from kube_bootstrap.utils import setup_logging


def _raise_terminated(signum, _frame) -> None:
    raise Terminated(signum)


def run(
    environment: str = typer.Option(
        "single", "--environment", "-e", help="single, limited-ha, full-ha (or dev, staging, prod)"),
    members: list[str] = typer.Option(
        [], "--member", "-m", help="Control-plane member as hostname=address (repeat, primary first)"),
    endpoint: str | None = typer.Option(
        None, "--endpoint", help="Floating endpoint address for multi-member topologies"),
    skip: list[str] = typer.Option(
        [], "--skip", help="Phase to skip (repeatable)"),
    scripts_dir: Path = typer.Option(
        Path("scripts"), "--scripts-dir", help="Directory with the per-operation scripts"),
    kubeconfig: str | None = typer.Option(
        None, "--kubeconfig", help="kubeconfig for state queries (default: the admin kubeconfig)"),
    log_file: Path = typer.Option(
        Path(DEFAULT_LOG_FILE), "--log-file", help="File receiving the log and phase transitions"),
    run_timeout: float | None = typer.Option(
        None, "--run-timeout", min=1, help="Overall run budget in seconds"),
    api_port: int | None = typer.Option(
        None, "--api-port", min=1, max=65535, help="API server port (overrides KUBE_API_PORT)"),
    max_attempts: int | None = typer.Option(
        None, "--max-attempts", min=1, max=50, help="Attempts per retryable action (overrides RETRY_MAX_ATTEMPTS)"),
    backoff: BackoffKind | None = typer.Option(
        None, "--backoff", help="Backoff between attempts (overrides RETRY_BACKOFF)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Bootstrap a control plane, phase by phase.

    Safe to re-run: phases whose postcondition already holds are skipped.
    """
    setup_logging(log_file, verbose)
    options = RunOptions(
        environment=environment,
        members=tuple(members),
        endpoint=endpoint,
        skip_phases=frozenset(skip),
        scripts_dir=scripts_dir,
        kubeconfig=kubeconfig,
        log_file=log_file,
        run_timeout=run_timeout,
    )

    previous = signal.signal(signal.SIGTERM, _raise_terminated)
    try:
        config = load_config(options, api_port=api_port, max_attempts=max_attempts, backoff=backoff)
        report = run_bootstrap(config)
    except (ConfigurationError, ValidationError) as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(EXIT_ABORTED)
    finally:
        signal.signal(signal.SIGTERM, previous)

    raise typer.Exit(report.exit_code)
