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

"""Constants, dependency loading, and dep_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_dependencies() -> dict:
    """Load component versions and manifest URLs from dependencies.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    deps_file = Path(__file__).resolve().parent / "dependencies.yaml"
    with open(deps_file) as f:
        return yaml.safe_load(f)


DEPENDENCIES = load_dependencies()


def dep_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the DEPENDENCIES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = DEPENDENCIES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Phase names (also used as state keys and log fields) --
PHASE_SERVER_PREPARATION = "server-preparation"
PHASE_LOAD_BALANCER = "load-balancer"
PHASE_CLUSTER_INIT = "cluster-init"
PHASE_CONTROL_PLANE_JOIN = "control-plane-join"
PHASE_CNI_OPERATOR = "cni-operator"
PHASE_CNI_NETWORK = "cni-network"
PHASE_STORAGE = "storage"
PHASE_INGRESS = "ingress"
PHASE_MONITORING = "monitoring"
PHASE_VALIDATION = "validation"

# -- External operations (operation name -> script under the scripts dir) --
OPERATION_SCRIPTS = {
    "prepare-server": "01-server-preparation.sh",
    "setup-load-balancer": "02-ha-loadbalancer-setup.sh",
    "init-cluster": "03-ha-cluster-init.sh",
    "join-control-plane": "04-ha-cluster-join.sh",
    "setup-storage": "05-ha-storage-setup.sh",
    "setup-ingress": "06-ha-ingress-setup.sh",
    "setup-monitoring": "07-ha-monitoring-setup.sh",
    "validate-cluster": "08-cluster-validation.sh",
    "install-cni-operator": "install-cni-operator.sh",
}

# Script exit codes treated as transient (EX_TEMPFAIL and curl network failures).
TRANSIENT_EXIT_CODES = frozenset({6, 7, 28, 35, 56, 75})

KUBERNETES_COMMANDS = ("kubeadm", "kubelet", "kubectl")
CONTAINER_RUNTIME_SERVICE = "containerd"

# -- Kubernetes paths and objects --
ADMIN_KUBECONFIG = "/etc/kubernetes/admin.conf"
TIGERA_INSTALLATION_CRD = "installations.operator.tigera.io"
NS_KUBE_SYSTEM = "kube-system"
NS_CALICO_SYSTEM = "calico-system"
NS_INGRESS = dep_value("ingress_nginx", "namespace", default="ingress-nginx")
NS_MONITORING = dep_value("monitoring", "namespace", default="monitoring")
LABEL_CONTROL_PLANE = "node-role.kubernetes.io/control-plane"
LABEL_INGRESS_CONTROLLER = "app.kubernetes.io/name=ingress-nginx"
LABEL_PROMETHEUS = "app.kubernetes.io/name=prometheus"
LABEL_GRAFANA = "app.kubernetes.io/name=grafana"
MIN_SYSTEM_PODS_RUNNING = 8

# -- Cluster defaults --
DEFAULT_CLUSTER_NAME = "k8s-cluster"
DEFAULT_KUBE_VERSION = dep_value("kubernetes", "version", default="1.34")
DEFAULT_CONTAINERD_VERSION = dep_value("containerd", "version", default="1.7.28")
DEFAULT_CALICO_VERSION = dep_value("calico", "version", default="v3.30.1")
DEFAULT_POD_NETWORK_CIDR = "192.168.0.0/16"
DEFAULT_SERVICE_CIDR = "10.96.0.0/12"
DEFAULT_API_PORT = 6443
DEFAULT_CLUSTER_DOMAIN = "k8s.local"

# -- Retry and verification defaults --
DEFAULT_RETRY_MAX_ATTEMPTS = 3
DEFAULT_RETRY_INITIAL_DELAY_SECONDS = 5.0
DEFAULT_RETRY_MAX_DELAY_SECONDS = 60.0
DEFAULT_VERIFY_TIMEOUT_SECONDS = 300.0
DEFAULT_VERIFY_POLL_INTERVAL_SECONDS = 5.0

API_SERVER_TIMEOUT_SECONDS = 300.0
API_SERVER_POLL_INTERVAL_SECONDS = 5.0
ENDPOINT_TIMEOUT_SECONDS = 60.0
ENDPOINT_POLL_INTERVAL_SECONDS = 2.0
CRD_TIMEOUT_SECONDS = 120.0
CRD_POLL_INTERVAL_SECONDS = 2.0
CNI_APPLY_MAX_ATTEMPTS = 5
CNI_APPLY_RETRY_WAIT_SECONDS = 10.0
CNI_DOWNLOAD_MAX_ATTEMPTS = 3
CNI_DOWNLOAD_RETRY_WAIT_SECONDS = 5.0
CNI_POD_TIMEOUT_SECONDS = 300.0
CNI_POD_POLL_INTERVAL_SECONDS = 5.0
SERVER_PREP_TIMEOUT_SECONDS = 60.0

KUBECTL_TIMEOUT_SECONDS = 30
ENDPOINT_CONNECT_TIMEOUT_SECONDS = 2.0

# -- Logging --
DEFAULT_LOG_FILE = "/var/log/kube-bootstrap.log"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
TRANSITION_LOGGER = "kube_bootstrap.transitions"

# -- Process exit codes --
EXIT_COMPLETED = 0
EXIT_ABORTED = 1
EXIT_SIGINT = 130
EXIT_SIGTERM = 143
