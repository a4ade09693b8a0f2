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

from kube_bootstrap.errors import ConfigurationError
from kube_bootstrap.topology import (
    Environment,
    Node,
    fault_tolerance,
    parse_environment,
    parse_member,
    quorum_size,
    resolve,
    topology_table,
)

# ---------------------------------------------------------------------------
# Quorum arithmetic
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "members, quorum, tolerance",
    [(1, 1, 0), (2, 2, 0), (3, 2, 1), (4, 3, 1), (5, 3, 2), (7, 4, 3)],
)
def test_quorum_and_fault_tolerance(members, quorum, tolerance):
    assert quorum_size(members) == quorum
    assert fault_tolerance(members) == tolerance


def test_fourth_member_adds_no_fault_tolerance():
    three = resolve("full-ha", ["10.0.0.1", "10.0.0.2", "10.0.0.3"], endpoint_address="10.0.0.10")
    four = resolve("full-ha", ["10.0.0.1", "10.0.0.2", "10.0.0.3", "10.0.0.4"], endpoint_address="10.0.0.10")
    assert four.quorum == three.quorum + 1
    assert four.fault_tolerance == three.fault_tolerance == 1


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


def test_resolve_single_has_no_floating_endpoint():
    topology = resolve("single", ["cp1=10.0.0.11"], endpoint_address="10.0.0.10")
    assert topology.environment is Environment.SINGLE
    assert topology.size == 1
    assert topology.has_floating_endpoint is False
    assert topology.endpoint_address is None
    assert topology.endpoint_holder is None
    assert topology.control_plane_endpoint == "10.0.0.11:6443"


def test_resolve_full_ha_marks_first_member_endpoint_holder(ha_topology):
    assert ha_topology.has_floating_endpoint is True
    assert ha_topology.endpoint_holder == ha_topology.primary
    assert [n.hostname for n in ha_topology.members] == ["cp1", "cp2", "cp3"]
    assert sum(n.is_endpoint_holder for n in ha_topology.members) == 1
    assert ha_topology.control_plane_endpoint == "10.0.0.10:6443"


def test_resolve_limited_ha_tolerates_nothing():
    topology = resolve("limited-ha", ["cp1=10.0.0.11", "cp2=10.0.0.12"], endpoint_address="10.0.0.10")
    assert topology.quorum == 2
    assert topology.fault_tolerance == 0


def test_resolve_accepts_aliases():
    topology = resolve("prod", ["10.0.0.1", "10.0.0.2", "10.0.0.3"])
    assert topology.environment is Environment.FULL_HA


def test_resolve_ipv6_endpoint_is_bracketed():
    topology = resolve("limited-ha", ["a=fd00::1", "b=fd00::2"], endpoint_address="fd00::10", api_port=7443)
    assert topology.control_plane_endpoint == "[fd00::10]:7443"


def test_resolve_accepts_nodes():
    topology = resolve("single", [Node("cp1", "10.0.0.11")])
    assert topology.primary.hostname == "cp1"


@pytest.mark.parametrize(
    "environment, members, match",
    [
        ("single", [], "At least one member"),
        ("huge", ["10.0.0.1"], "Unknown environment"),
        ("single", ["10.0.0.1", "10.0.0.2"], "exactly 1 member"),
        ("limited-ha", ["10.0.0.1"], "exactly 2 members"),
        ("full-ha", ["10.0.0.1", "10.0.0.2"], "at least 3 members"),
        ("limited-ha", ["a=10.0.0.1", "b=10.0.0.1"], "Duplicate member address"),
        ("limited-ha", ["a=10.0.0.1", "a=10.0.0.2"], "Duplicate member hostname"),
        ("single", ["cp1=not-an-ip"], "invalid address"),
    ],
)
def test_resolve_rejects_bad_input(environment, members, match):
    with pytest.raises(ConfigurationError, match=match):
        resolve(environment, members)


def test_resolve_rejects_bad_endpoint():
    with pytest.raises(ConfigurationError, match="Invalid floating endpoint"):
        resolve("limited-ha", ["10.0.0.1", "10.0.0.2"], endpoint_address="vip")
    with pytest.raises(ConfigurationError, match="must not equal a member address"):
        resolve("limited-ha", ["10.0.0.1", "10.0.0.2"], endpoint_address="10.0.0.2")


def test_parse_member_forms():
    assert parse_member("cp1=10.0.0.11") == Node("cp1", "10.0.0.11")
    assert parse_member(" 10.0.0.12 ") == Node("10.0.0.12", "10.0.0.12")
    with pytest.raises(ConfigurationError, match="empty hostname"):
        parse_member("=10.0.0.1")


def test_parse_environment_is_case_insensitive():
    assert parse_environment("Full-HA") is Environment.FULL_HA
    assert parse_environment("staging") is Environment.LIMITED_HA


def test_topology_table_lists_members(ha_topology):
    table = topology_table(ha_topology)
    assert table.row_count == 3
    assert "quorum 2/3" in table.caption
