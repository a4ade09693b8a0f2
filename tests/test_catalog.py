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

from kube_bootstrap.catalog import build_phases, calico_resources
from kube_bootstrap.constants import (
    PHASE_CLUSTER_INIT,
    PHASE_CNI_NETWORK,
    PHASE_CNI_OPERATOR,
    PHASE_CONTROL_PLANE_JOIN,
    PHASE_LOAD_BALANCER,
    PHASE_SERVER_PREPARATION,
)
from kube_bootstrap.errors import ConfigurationError, Terminated, TransientError
from kube_bootstrap.orchestrator import run_bootstrap
from kube_bootstrap.phases import Severity
from kube_bootstrap.state import PhaseStatus, RunStatus

from fakes import FakeCollaborator

FULL_RUN = [
    "prepare-server",
    "init-cluster",
    "install-cni-operator",
    "setup-storage",
    "setup-ingress",
    "setup-monitoring",
    "validate-cluster",
]


class SimulatedNode(FakeCollaborator):
    """Answers probes from the operations that have completed so far."""

    def __init__(self, done=(), members=1, calico_starts=True, **kwargs):
        super().__init__(**kwargs)
        self.done = set(done)
        self.members = members
        self.calico_starts = calico_starts

    def run(self, operation, **params):
        super().run(operation, **params)
        self.done.add(operation)

    def apply(self, resource):
        super().apply(resource)
        self.done.add("apply-calico")

    def query(self, probe, **params):
        self.queries.append((probe, params))
        done = self.done
        if probe in ("operation_available", "is_root"):
            return True
        if probe in ("command_available", "service_active"):
            return "prepare-server" in done
        if probe == "endpoint_reachable":
            return "setup-load-balancer" in done
        if probe == "file_exists":
            return "init-cluster" in done or "partial-init" in done
        if probe == "api_responding":
            return "init-cluster" in done
        if probe == "crd_exists":
            return "install-cni-operator" in done
        if probe == "namespace_exists":
            return "apply-calico" in done
        if probe in ("storage_classes", "persistent_volumes"):
            return int("setup-storage" in done)
        if probe == "ready_members":
            if "join-control-plane" in done:
                return self.members
            return int("init-cluster" in done)
        if probe == "running_pods":
            return self._running_pods(**params)
        raise AssertionError(f"unexpected probe {probe}")

    def _running_pods(self, namespace, selector=None):
        done = self.done
        counts = {
            "calico-system": 3 if "apply-calico" in done and self.calico_starts else 0,
            "ingress-nginx": int("setup-ingress" in done),
            "monitoring": int("setup-monitoring" in done),
            "kube-system": 9 if "init-cluster" in done else 0,
        }
        return counts.get(namespace, 0)


@pytest.fixture
def single_config(make_config):
    return make_config(environment="single", members=("cp1=10.0.0.11",))


@pytest.fixture
def ha_config(make_config):
    return make_config(
        environment="full-ha",
        members=("cp1=10.0.0.11", "cp2=10.0.0.12", "cp3=10.0.0.13"),
        endpoint="10.0.0.10",
    )


def by_name(report):
    return {row.name: row for row in report.summary}


# ---------------------------------------------------------------------------
# Catalog shape
# ---------------------------------------------------------------------------


def test_phase_order_and_severity(single_config):
    phases = build_phases(single_config)
    assert [p.name for p in phases][:6] == [
        PHASE_SERVER_PREPARATION,
        PHASE_LOAD_BALANCER,
        PHASE_CLUSTER_INIT,
        PHASE_CONTROL_PLANE_JOIN,
        PHASE_CNI_OPERATOR,
        PHASE_CNI_NETWORK,
    ]
    severities = {p.name: p.severity for p in phases}
    assert severities[PHASE_CLUSTER_INIT] is Severity.FATAL
    assert severities[PHASE_CNI_OPERATOR] is Severity.FATAL
    assert severities[PHASE_CNI_NETWORK] is Severity.SOFT
    assert severities["monitoring"] is Severity.SOFT
    init = next(p for p in phases if p.name == PHASE_CLUSTER_INIT)
    assert init.retryable is False and init.rerunnable is False


def test_calico_resources_carry_pod_cidr():
    installation, api_server = calico_resources("10.244.0.0/16")
    manifest = installation.to_manifest()
    assert manifest["apiVersion"] == "operator.tigera.io/v1"
    assert manifest["kind"] == "Installation"
    assert manifest["metadata"] == {"name": "default"}
    assert manifest["spec"]["calicoNetwork"]["ipPools"][0]["cidr"] == "10.244.0.0/16"
    assert api_server.to_manifest()["spec"] == {}


# ---------------------------------------------------------------------------
# End-to-end runs against a simulated node
# ---------------------------------------------------------------------------


def test_fresh_single_node_bootstrap(make_executor, single_config, single_topology):
    node = SimulatedNode()
    report = make_executor(build_phases(single_config), node, topology=single_topology, config=single_config).run()

    assert report.status is RunStatus.COMPLETED
    assert report.exit_code == 0
    assert node.operations() == FULL_RUN
    assert [r.kind for r in node.applied] == ["Installation", "APIServer"]
    rows = by_name(report)
    for name in (PHASE_LOAD_BALANCER, PHASE_CONTROL_PLANE_JOIN):
        assert rows[name].status is PhaseStatus.SKIPPED
        assert "not applicable" in rows[name].note
    assert report.warnings == []


def test_rerun_on_bootstrapped_node_only_validates(make_executor, single_config, single_topology):
    node = SimulatedNode(done=set(FULL_RUN) | {"apply-calico"})
    report = make_executor(build_phases(single_config), node, topology=single_topology, config=single_config).run()

    assert report.status is RunStatus.COMPLETED
    assert node.operations() == ["validate-cluster"]
    assert node.applied == []
    assert report.actions_executed == 1


def test_full_ha_bootstrap(make_executor, ha_config, ha_topology):
    node = SimulatedNode(members=3)
    report = make_executor(build_phases(ha_config), node, topology=ha_topology, config=ha_config).run()

    assert report.status is RunStatus.COMPLETED
    ops = node.operations()
    assert ops[:4] == ["prepare-server", "setup-load-balancer", "init-cluster", "join-control-plane"]
    params = dict(node.calls)
    assert params["init-cluster"]["control_plane_endpoint"] == "10.0.0.10:6443"
    assert params["setup-load-balancer"]["endpoint_holder"] == "cp1"
    assert params["join-control-plane"]["members"] == "cp2=10.0.0.12,cp3=10.0.0.13"


def test_partial_cluster_init_is_repaired(make_executor, single_config, single_topology):
    node = SimulatedNode(done={"prepare-server", "partial-init"})
    report = make_executor(build_phases(single_config), node, topology=single_topology, config=single_config).run()

    row = by_name(report)[PHASE_CLUSTER_INIT]
    assert row.status is PhaseStatus.COMPLETED
    assert row.note == "repairing partial state"
    assert "init-cluster" in node.operations()


def test_calico_not_starting_is_a_warning(make_executor, single_config, single_topology):
    node = SimulatedNode(calico_starts=False)
    report = make_executor(build_phases(single_config), node, topology=single_topology, config=single_config).run()

    assert report.status is RunStatus.COMPLETED
    assert report.exit_code == 0
    assert [name for name, _ in report.warnings] == [PHASE_CNI_NETWORK]
    assert "setup-monitoring" in node.operations()


def test_cni_download_retried(make_executor, single_config, single_topology, clock):
    node = SimulatedNode(failures={"install-cni-operator": [TransientError("curl: (28)")] * 2})
    report = make_executor(build_phases(single_config), node, topology=single_topology, config=single_config).run()

    assert report.status is RunStatus.COMPLETED
    assert node.operations().count("install-cni-operator") == 3
    assert by_name(report)[PHASE_CNI_OPERATOR].note == "action succeeded after 3 attempts"


def test_api_never_answering_aborts(make_executor, single_config, single_topology):
    class NoApi(SimulatedNode):
        def query(self, probe, **params):
            if probe == "api_responding":
                self.queries.append((probe, params))
                return False
            return super().query(probe, **params)

    node = NoApi()
    report = make_executor(build_phases(single_config), node, topology=single_topology, config=single_config).run()

    assert report.status is RunStatus.ABORTED
    assert report.failed_phase == PHASE_CLUSTER_INIT
    assert node.operations() == ["prepare-server", "init-cluster"]
    assert report.exit_code == 1


# ---------------------------------------------------------------------------
# Workflow entry point
# ---------------------------------------------------------------------------


def test_run_bootstrap_with_injected_collaborator(single_config):
    report = run_bootstrap(single_config, SimulatedNode())
    assert report.status is RunStatus.COMPLETED
    assert report.exit_code == 0


def test_run_bootstrap_rejects_unknown_skip(make_config):
    config = make_config(environment="single", members=("cp1=10.0.0.11",), skip_phases=frozenset({"dns"}))
    with pytest.raises(ConfigurationError, match="Unknown phase"):
        run_bootstrap(config, SimulatedNode())


def test_run_bootstrap_sigint_exit_code(single_config):
    class Interrupted(SimulatedNode):
        def run(self, operation, **params):
            if operation == "init-cluster":
                raise KeyboardInterrupt
            super().run(operation, **params)

    report = run_bootstrap(single_config, Interrupted())
    assert report.status is RunStatus.ABORTED
    assert report.exit_code == 130
    assert by_name(report)[PHASE_CLUSTER_INIT].status is PhaseStatus.FAILED


def test_run_bootstrap_sigterm_exit_code(single_config):
    class Stopped(SimulatedNode):
        def run(self, operation, **params):
            raise Terminated(15)

    report = run_bootstrap(single_config, Stopped())
    assert report.exit_code == 143
    assert report.failed_phase == PHASE_SERVER_PREPARATION
