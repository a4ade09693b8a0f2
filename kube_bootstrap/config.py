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

"""Configuration classes and run options.

Environment variables are read once, when the CLI builds a :class:`Config`;
core modules only ever see the resulting value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from kube_bootstrap import console
from kube_bootstrap.constants import (
    DEFAULT_API_PORT,
    DEFAULT_CALICO_VERSION,
    DEFAULT_CLUSTER_DOMAIN,
    DEFAULT_CLUSTER_NAME,
    DEFAULT_CONTAINERD_VERSION,
    DEFAULT_KUBE_VERSION,
    DEFAULT_LOG_FILE,
    DEFAULT_POD_NETWORK_CIDR,
    DEFAULT_RETRY_INITIAL_DELAY_SECONDS,
    DEFAULT_RETRY_MAX_ATTEMPTS,
    DEFAULT_RETRY_MAX_DELAY_SECONDS,
    DEFAULT_SERVICE_CIDR,
    DEFAULT_VERIFY_POLL_INTERVAL_SECONDS,
    DEFAULT_VERIFY_TIMEOUT_SECONDS,
)
from kube_bootstrap.retry import BackoffKind, RetryPolicy


# ============================================================================
# Configuration classes
# ============================================================================

class ClusterConfig(BaseSettings):
    """Cluster parameters, auto-loaded from KUBE_* env vars.

    Attributes:
        version: Kubernetes minor version (``KUBE_VERSION``).
        cluster_name: Cluster name.
        pod_network_cidr: Pod network CIDR handed to the CNI.
        service_cidr: Service network CIDR.
        api_port: Kubernetes API server port.
        containerd_version: containerd release to install.
        calico_version: Calico release for the CNI phase.
        cluster_domain: DNS domain used for ingress hosts.
    """

    model_config = SettingsConfigDict(env_prefix="KUBE_", extra="ignore")

    version: str = Field(default=DEFAULT_KUBE_VERSION, pattern=r"^\d+\.\d+(\.\d+)?$")
    cluster_name: str = DEFAULT_CLUSTER_NAME
    pod_network_cidr: str = DEFAULT_POD_NETWORK_CIDR
    service_cidr: str = DEFAULT_SERVICE_CIDR
    api_port: int = Field(default=DEFAULT_API_PORT, ge=1, le=65535)
    containerd_version: str = DEFAULT_CONTAINERD_VERSION
    calico_version: str = Field(default=DEFAULT_CALICO_VERSION, pattern=r"^v[\d.]+(-[\w.]+)?$")
    cluster_domain: str = DEFAULT_CLUSTER_DOMAIN


class RetryConfig(BaseSettings):
    """Default retry policy, auto-loaded from RETRY_* env vars.

    Attributes:
        max_attempts: Attempts per retryable action (``RETRY_MAX_ATTEMPTS``).
        initial_delay: Seconds before the first retry.
        backoff: fixed, linear, or exponential.
        max_delay: Cap on a single wait.
    """

    model_config = SettingsConfigDict(env_prefix="RETRY_", extra="ignore")

    max_attempts: int = Field(default=DEFAULT_RETRY_MAX_ATTEMPTS, ge=1, le=50)
    initial_delay: float = Field(default=DEFAULT_RETRY_INITIAL_DELAY_SECONDS, ge=0)
    backoff: BackoffKind = BackoffKind.EXPONENTIAL
    max_delay: float = Field(default=DEFAULT_RETRY_MAX_DELAY_SECONDS, ge=0)

    def policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            backoff=self.backoff,
            max_delay=self.max_delay,
        )


class VerifyConfig(BaseSettings):
    """Default verification timing, auto-loaded from VERIFY_* env vars."""

    model_config = SettingsConfigDict(env_prefix="VERIFY_", extra="ignore")

    timeout: float = Field(default=DEFAULT_VERIFY_TIMEOUT_SECONDS, gt=0)
    poll_interval: float = Field(default=DEFAULT_VERIFY_POLL_INTERVAL_SECONDS, gt=0)


# ============================================================================
# Run options
# ============================================================================

@dataclass(frozen=True)
class RunOptions:
    """Per-invocation choices taken from the command line.

    Attributes:
        environment: Environment selector (``single``, ``limited-ha``, ...).
        members: Member specs, ``hostname=address`` or bare addresses.
        endpoint: Floating endpoint address for multi-member clusters.
        skip_phases: Phase names the operator asked to skip.
        scripts_dir: Directory holding the per-operation scripts.
        kubeconfig: kubeconfig used for state queries, or None for default.
        log_file: Transition log file, or None to log to stdout only.
        run_timeout: Overall run budget in seconds, or None for no deadline.
    """

    environment: str = "single"
    members: tuple[str, ...] = ()
    endpoint: str | None = None
    skip_phases: frozenset[str] = field(default_factory=frozenset)
    scripts_dir: Path = Path("scripts")
    kubeconfig: str | None = None
    log_file: Path | None = Path(DEFAULT_LOG_FILE)
    run_timeout: float | None = None


@dataclass(frozen=True)
class Config:
    """Everything a run needs, resolved once."""

    cluster: ClusterConfig
    retry: RetryConfig
    verify: VerifyConfig
    options: RunOptions

    def retry_policy(self) -> RetryPolicy:
        return self.retry.policy()


def load_config(
    options: RunOptions,
    *,
    api_port: int | None = None,
    max_attempts: int | None = None,
    backoff: BackoffKind | None = None,
) -> Config:
    """Merge CLI overrides, environment variables, and defaults.

    Resolution priority: CLI arguments > environment variables > defaults.

    Args:
        options: Parsed command-line run options.
        api_port: CLI override for the API server port, or None.
        max_attempts: CLI override for retry attempts, or None.
        backoff: CLI override for the backoff kind, or None.

    Returns:
        The resolved Config.

    Raises:
        ValidationError: If an override or environment value is out of range.
    """
    cluster_cfg = ClusterConfig()
    retry_cfg = RetryConfig()
    verify_cfg = VerifyConfig()

    if api_port is not None:
        cluster_cfg = ClusterConfig.model_validate({**cluster_cfg.model_dump(), "api_port": api_port})
    overrides: dict = {}
    if max_attempts is not None:
        overrides["max_attempts"] = max_attempts
    if backoff is not None:
        overrides["backoff"] = backoff
    if overrides:
        retry_cfg = RetryConfig.model_validate({**retry_cfg.model_dump(), **overrides})

    return Config(cluster=cluster_cfg, retry=retry_cfg, verify=verify_cfg, options=options)


# ============================================================================
# Display
# ============================================================================

def display_config(config: Config) -> None:
    """Print the configuration relevant to a run."""
    console.print(Panel.fit("Configuration", style="bold blue"))
    cluster = config.cluster
    console.print("[yellow]Cluster:[/yellow]")
    console.print(f"  cluster_name    : {cluster.cluster_name}")
    console.print(f"  kube_version    : {cluster.version}")
    console.print(f"  containerd      : {cluster.containerd_version}")
    console.print(f"  calico          : {cluster.calico_version}")
    console.print(f"  pod_network     : {cluster.pod_network_cidr}")
    console.print(f"  service_network : {cluster.service_cidr}")
    console.print("[yellow]Retry:[/yellow]")
    console.print(f"  policy          : {config.retry_policy().describe()}")
    console.print(f"  verify_timeout  : {config.verify.timeout:g}s every {config.verify.poll_interval:g}s")
    if config.options.skip_phases:
        console.print(f"[yellow]Skipping:[/yellow] {', '.join(sorted(config.options.skip_phases))}")
