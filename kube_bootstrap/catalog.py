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

"""Default Kubernetes control-plane bring-up phases.

Order matters: each phase assumes the verified postconditions of every phase
before it (the CNI needs an answering API server, add-ons need pod networking).
Everything required for a usable API is fatal; add-ons are soft.
"""

from __future__ import annotations

from kube_bootstrap.collaborators import ResourceConfig
from kube_bootstrap.config import Config
from kube_bootstrap.constants import (
    ADMIN_KUBECONFIG,
    API_SERVER_POLL_INTERVAL_SECONDS,
    API_SERVER_TIMEOUT_SECONDS,
    CNI_APPLY_MAX_ATTEMPTS,
    CNI_APPLY_RETRY_WAIT_SECONDS,
    CNI_DOWNLOAD_MAX_ATTEMPTS,
    CNI_DOWNLOAD_RETRY_WAIT_SECONDS,
    CNI_POD_POLL_INTERVAL_SECONDS,
    CNI_POD_TIMEOUT_SECONDS,
    CONTAINER_RUNTIME_SERVICE,
    CRD_POLL_INTERVAL_SECONDS,
    CRD_TIMEOUT_SECONDS,
    ENDPOINT_POLL_INTERVAL_SECONDS,
    ENDPOINT_TIMEOUT_SECONDS,
    KUBERNETES_COMMANDS,
    LABEL_GRAFANA,
    LABEL_INGRESS_CONTROLLER,
    LABEL_PROMETHEUS,
    MIN_SYSTEM_PODS_RUNNING,
    NS_CALICO_SYSTEM,
    NS_INGRESS,
    NS_KUBE_SYSTEM,
    NS_MONITORING,
    PHASE_CLUSTER_INIT,
    PHASE_CNI_NETWORK,
    PHASE_CNI_OPERATOR,
    PHASE_CONTROL_PLANE_JOIN,
    PHASE_INGRESS,
    PHASE_LOAD_BALANCER,
    PHASE_MONITORING,
    PHASE_SERVER_PREPARATION,
    PHASE_STORAGE,
    PHASE_VALIDATION,
    SERVER_PREP_TIMEOUT_SECONDS,
    TIGERA_INSTALLATION_CRD,
    dep_value,
)
from kube_bootstrap.errors import ConfigurationError
from kube_bootstrap.guard import Decision
from kube_bootstrap.phases import Phase, PhaseContext, Severity, Verification, multi_member
from kube_bootstrap.retry import RetryPolicy
from kube_bootstrap.state import PhaseStatus

SATISFIED = (PhaseStatus.COMPLETED, PhaseStatus.SKIPPED)


def _members_param(ctx: PhaseContext) -> str:
    return ",".join(f"{node.hostname}={node.address}" for node in ctx.topology.members)


def _require_operation(ctx: PhaseContext, operation: str) -> bool:
    if not ctx.query("operation_available", operation=operation):
        raise ConfigurationError(f"No script available for operation '{operation}'")
    return True


def _require_after(ctx: PhaseContext, phase_name: str) -> bool:
    status = ctx.status_of(phase_name)
    if status not in SATISFIED:
        shown = status.value if status is not None else "absent"
        raise ConfigurationError(f"Phase '{phase_name}' must complete first (status: {shown})")
    return True


# ============================================================================
# Server preparation
# ============================================================================

def _server_prepared(ctx: PhaseContext) -> bool:
    return all(ctx.query("command_available", name=cmd) for cmd in KUBERNETES_COMMANDS) and bool(
        ctx.query("service_active", name=CONTAINER_RUNTIME_SERVICE)
    )


def _server_preparation_precondition(ctx: PhaseContext) -> bool:
    if not ctx.query("is_root"):
        raise ConfigurationError("Server preparation must run as root (use sudo)")
    return _require_operation(ctx, "prepare-server")


def _prepare_server(ctx: PhaseContext) -> None:
    cluster = ctx.config.cluster
    ctx.run(
        "prepare-server",
        kube_version=cluster.version,
        containerd_version=cluster.containerd_version,
        members=_members_param(ctx),
    )


# ============================================================================
# Load balancer (floating endpoint)
# ============================================================================

def _endpoint_up(ctx: PhaseContext) -> bool:
    return bool(ctx.query(
        "endpoint_reachable", address=ctx.topology.endpoint_address, port=ctx.topology.api_port,
    ))


def _load_balancer_precondition(ctx: PhaseContext) -> bool:
    if not ctx.topology.endpoint_address:
        raise ConfigurationError(
            f"{ctx.topology.environment.value} topology with {ctx.topology.size} members "
            "needs a floating endpoint address (--endpoint)"
        )
    return _require_operation(ctx, "setup-load-balancer")


def _setup_load_balancer(ctx: PhaseContext) -> None:
    holder = ctx.topology.endpoint_holder
    ctx.run(
        "setup-load-balancer",
        vip=ctx.topology.endpoint_address,
        api_port=ctx.topology.api_port,
        members=_members_param(ctx),
        endpoint_holder=holder.hostname if holder else None,
    )


# ============================================================================
# Cluster initialization
# ============================================================================

def _cluster_init_state(ctx: PhaseContext) -> Decision:
    """Initialized and answering: skip. Config left behind but no API: repair."""
    if not ctx.query("file_exists", path=ADMIN_KUBECONFIG):
        return Decision.RUN
    if ctx.query("api_responding"):
        return Decision.SKIP
    return Decision.REPAIR


def _cluster_init_precondition(ctx: PhaseContext) -> bool:
    if not ctx.query("command_available", name="kubeadm"):
        raise ConfigurationError("kubeadm is not installed; server preparation did not finish")
    return _require_operation(ctx, "init-cluster")


def _init_cluster(ctx: PhaseContext) -> None:
    cluster = ctx.config.cluster
    ctx.run(
        "init-cluster",
        cluster_name=cluster.cluster_name,
        kube_version=cluster.version,
        control_plane_endpoint=ctx.topology.control_plane_endpoint,
        pod_network_cidr=cluster.pod_network_cidr,
        service_cidr=cluster.service_cidr,
        node_name=ctx.topology.primary.hostname,
        advertise_address=ctx.topology.primary.address,
    )


def _api_responding(ctx: PhaseContext) -> bool:
    return bool(ctx.query("api_responding"))


# ============================================================================
# Control-plane join
# ============================================================================

def _all_members_ready(ctx: PhaseContext) -> bool:
    return int(ctx.query("ready_members")) >= ctx.topology.size


def _quorum_ready(ctx: PhaseContext) -> bool:
    return int(ctx.query("ready_members")) >= ctx.topology.quorum


def _join_precondition(ctx: PhaseContext) -> bool:
    _require_after(ctx, PHASE_CLUSTER_INIT)
    return _require_operation(ctx, "join-control-plane")


def _join_control_plane(ctx: PhaseContext) -> None:
    joiners = ",".join(f"{n.hostname}={n.address}" for n in ctx.topology.members[1:])
    ctx.run(
        "join-control-plane",
        control_plane_endpoint=ctx.topology.control_plane_endpoint,
        primary=ctx.topology.primary.address,
        members=joiners,
    )


# ============================================================================
# CNI (Calico via the Tigera operator)
# ============================================================================

def _operator_manifest(ctx: PhaseContext) -> str:
    template = dep_value("calico", "operator_manifest", default="")
    return template.format(version=ctx.config.cluster.calico_version)


def _installation_crd_exists(ctx: PhaseContext) -> bool:
    return bool(ctx.query("crd_exists", name=TIGERA_INSTALLATION_CRD))


def _cni_precondition(ctx: PhaseContext) -> bool:
    if not ctx.query("api_responding"):
        raise ConfigurationError("Kubernetes API is not answering; cannot install the CNI")
    return _require_operation(ctx, "install-cni-operator")


def _install_cni_operator(ctx: PhaseContext) -> None:
    ctx.run(
        "install-cni-operator",
        calico_version=ctx.config.cluster.calico_version,
        manifest_url=_operator_manifest(ctx),
    )


def calico_resources(pod_network_cidr: str) -> list[ResourceConfig]:
    """Calico Installation and APIServer objects for the given pod CIDR."""
    return [
        ResourceConfig(
            api_version="operator.tigera.io/v1",
            kind="Installation",
            name="default",
            spec={
                "calicoNetwork": {
                    "ipPools": [{
                        "name": "default-ipv4-ippool",
                        "blockSize": 26,
                        "cidr": pod_network_cidr,
                        "encapsulation": "VXLANCrossSubnet",
                        "natOutgoing": "Enabled",
                        "nodeSelector": "all()",
                    }],
                },
            },
        ),
        ResourceConfig(api_version="operator.tigera.io/v1", kind="APIServer", name="default", spec={}),
    ]


def _calico_running(ctx: PhaseContext) -> bool:
    return bool(ctx.query("namespace_exists", namespace=NS_CALICO_SYSTEM)) and int(
        ctx.query("running_pods", namespace=NS_CALICO_SYSTEM)
    ) > 0


def _apply_calico_network(ctx: PhaseContext) -> None:
    for resource in calico_resources(ctx.config.cluster.pod_network_cidr):
        ctx.collaborator.apply(resource)


# ============================================================================
# Add-ons
# ============================================================================

def _storage_ready(ctx: PhaseContext) -> bool:
    return int(ctx.query("storage_classes")) >= 1 and int(ctx.query("persistent_volumes")) >= 1


def _ingress_running(ctx: PhaseContext) -> bool:
    return int(ctx.query("running_pods", namespace=NS_INGRESS, selector=LABEL_INGRESS_CONTROLLER)) >= 1


def _monitoring_running(ctx: PhaseContext) -> bool:
    prometheus = int(ctx.query("running_pods", namespace=NS_MONITORING, selector=LABEL_PROMETHEUS))
    grafana = int(ctx.query("running_pods", namespace=NS_MONITORING, selector=LABEL_GRAFANA))
    return prometheus >= 1 and grafana >= 1


def _cluster_healthy(ctx: PhaseContext) -> bool:
    return _all_members_ready(ctx) and int(
        ctx.query("running_pods", namespace=NS_KUBE_SYSTEM)
    ) >= MIN_SYSTEM_PODS_RUNNING


def _operation_precondition(operation: str):
    return lambda ctx: _require_operation(ctx, operation)


def _run_operation(operation: str, **static):
    def _action(ctx: PhaseContext) -> None:
        ctx.run(operation, cluster_domain=ctx.config.cluster.cluster_domain, **static)
    return _action


# ============================================================================
# Catalog
# ============================================================================

def build_phases(config: Config) -> list[Phase]:
    """Return the bring-up phases in execution order.

    Args:
        config: Resolved run configuration; its retry and verify settings
            shape the default policies.

    Returns:
        Ordered list of phases. Topology-specific phases carry an
        ``applies_to`` filter rather than being left out, so the plan and the
        report always show the full sequence.
    """
    default_policy = config.retry_policy()
    addon_timeout = config.verify.timeout
    addon_poll = config.verify.poll_interval

    return [
        Phase(
            name=PHASE_SERVER_PREPARATION,
            description="Install container runtime and Kubernetes packages",
            action=_prepare_server,
            precondition=_server_preparation_precondition,
            idempotency_check=_server_prepared,
            verification=Verification(
                _server_prepared, "kubeadm, kubelet, kubectl installed and containerd active",
                timeout=SERVER_PREP_TIMEOUT_SECONDS, poll_interval=API_SERVER_POLL_INTERVAL_SECONDS,
            ),
            retry_policy=default_policy,
            retryable=True,
        ),
        Phase(
            name=PHASE_LOAD_BALANCER,
            description="Bind the floating endpoint and load-balance the API servers",
            action=_setup_load_balancer,
            precondition=_load_balancer_precondition,
            idempotency_check=_endpoint_up,
            verification=Verification(
                _endpoint_up, "floating endpoint accepts connections",
                timeout=ENDPOINT_TIMEOUT_SECONDS, poll_interval=ENDPOINT_POLL_INTERVAL_SECONDS,
            ),
            retry_policy=default_policy,
            retryable=True,
            applies_to=multi_member,
        ),
        Phase(
            name=PHASE_CLUSTER_INIT,
            description="Initialize the first control-plane member",
            action=_init_cluster,
            precondition=_cluster_init_precondition,
            idempotency_check=_cluster_init_state,
            verification=Verification(
                _api_responding, "API server answering",
                timeout=API_SERVER_TIMEOUT_SECONDS, poll_interval=API_SERVER_POLL_INTERVAL_SECONDS,
            ),
            retry_policy=RetryPolicy.once(),
            rerunnable=False,
        ),
        Phase(
            name=PHASE_CONTROL_PLANE_JOIN,
            description="Join the remaining control-plane members",
            action=_join_control_plane,
            precondition=_join_precondition,
            idempotency_check=_all_members_ready,
            verification=Verification(
                _quorum_ready, "a quorum of members report Ready",
                timeout=API_SERVER_TIMEOUT_SECONDS, poll_interval=API_SERVER_POLL_INTERVAL_SECONDS,
            ),
            retry_policy=RetryPolicy.once(),
            rerunnable=False,
            applies_to=multi_member,
        ),
        Phase(
            name=PHASE_CNI_OPERATOR,
            description="Download and apply the Calico operator",
            action=_install_cni_operator,
            precondition=_cni_precondition,
            idempotency_check=_installation_crd_exists,
            verification=Verification(
                _installation_crd_exists, "Installation CRD registered",
                timeout=CRD_TIMEOUT_SECONDS, poll_interval=CRD_POLL_INTERVAL_SECONDS,
            ),
            retry_policy=RetryPolicy.fixed(CNI_DOWNLOAD_RETRY_WAIT_SECONDS, CNI_DOWNLOAD_MAX_ATTEMPTS),
            retryable=True,
        ),
        Phase(
            name=PHASE_CNI_NETWORK,
            description="Apply the Calico network configuration",
            action=_apply_calico_network,
            precondition=lambda ctx: _require_after(ctx, PHASE_CNI_OPERATOR),
            idempotency_check=_calico_running,
            verification=Verification(
                _calico_running, "calico-system pods running",
                timeout=CNI_POD_TIMEOUT_SECONDS, poll_interval=CNI_POD_POLL_INTERVAL_SECONDS,
            ),
            retry_policy=RetryPolicy.fixed(CNI_APPLY_RETRY_WAIT_SECONDS, CNI_APPLY_MAX_ATTEMPTS),
            retryable=True,
            severity=Severity.SOFT,
        ),
        Phase(
            name=PHASE_STORAGE,
            description="Create storage classes and persistent volumes",
            action=_run_operation("setup-storage"),
            precondition=_operation_precondition("setup-storage"),
            idempotency_check=_storage_ready,
            verification=Verification(
                _storage_ready, "storage classes and persistent volumes present",
                timeout=addon_timeout, poll_interval=addon_poll,
            ),
            retry_policy=default_policy,
            retryable=True,
            severity=Severity.SOFT,
        ),
        Phase(
            name=PHASE_INGRESS,
            description="Deploy the NGINX ingress controller and cert-manager",
            action=_run_operation("setup-ingress"),
            precondition=_operation_precondition("setup-ingress"),
            idempotency_check=_ingress_running,
            verification=Verification(
                _ingress_running, "ingress controller pods running",
                timeout=addon_timeout, poll_interval=addon_poll,
            ),
            retry_policy=default_policy,
            retryable=True,
            severity=Severity.SOFT,
        ),
        Phase(
            name=PHASE_MONITORING,
            description="Deploy Prometheus, Grafana and Loki",
            action=_run_operation("setup-monitoring"),
            precondition=_operation_precondition("setup-monitoring"),
            idempotency_check=_monitoring_running,
            verification=Verification(
                _monitoring_running, "Prometheus and Grafana running",
                timeout=addon_timeout, poll_interval=addon_poll,
            ),
            retry_policy=default_policy,
            retryable=True,
            severity=Severity.SOFT,
        ),
        Phase(
            name=PHASE_VALIDATION,
            description="Validate nodes, system pods and add-ons",
            action=_run_operation("validate-cluster"),
            precondition=_operation_precondition("validate-cluster"),
            verification=Verification(
                _cluster_healthy, "all members Ready and system pods running",
                timeout=addon_timeout, poll_interval=addon_poll,
            ),
            retry_policy=default_policy,
            severity=Severity.SOFT,
        ),
    ]
