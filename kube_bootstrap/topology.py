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

"""Topology resolution: member lists, quorum arithmetic, and floating endpoints.

Quorum is ``floor(N/2) + 1`` and fault tolerance is ``N - quorum``. Adding a
fourth member to a three-member cluster raises the quorum from 2 to 3 and
leaves fault tolerance at 1, so even member counts buy no extra resilience.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from dataclasses import dataclass, replace
from enum import Enum

from rich.table import Table

from kube_bootstrap import console
from kube_bootstrap.constants import DEFAULT_API_PORT
from kube_bootstrap.errors import ConfigurationError


class Environment(str, Enum):
    """Deployment size class."""

    SINGLE = "single"
    LIMITED_HA = "limited-ha"
    FULL_HA = "full-ha"


ENVIRONMENT_ALIASES = {
    "dev": Environment.SINGLE,
    "development": Environment.SINGLE,
    "staging": Environment.LIMITED_HA,
    "prod": Environment.FULL_HA,
    "production": Environment.FULL_HA,
}


@dataclass(frozen=True)
class Node:
    """A control-plane member.

    Attributes:
        hostname: Node hostname.
        address: IPv4 or IPv6 address.
        is_endpoint_holder: True for the member currently bound to the
            floating endpoint. Only meaningful when one exists.
    """

    hostname: str
    address: str
    is_endpoint_holder: bool = False


def quorum_size(members: int) -> int:
    """Return the number of members that must be available, ``floor(N/2) + 1``."""
    return members // 2 + 1


def fault_tolerance(members: int) -> int:
    """Return how many members may fail while quorum is kept."""
    return members - quorum_size(members)


@dataclass(frozen=True)
class Topology:
    """Immutable description of the cluster being bootstrapped.

    Attributes:
        environment: Size class the topology was resolved for.
        members: Ordered control-plane members; the first is the primary.
        endpoint_address: Floating endpoint address, or None.
        api_port: Kubernetes API server port.
    """

    environment: Environment
    members: tuple[Node, ...]
    endpoint_address: str | None = None
    api_port: int = DEFAULT_API_PORT

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def has_floating_endpoint(self) -> bool:
        return self.size > 1

    @property
    def quorum(self) -> int:
        return quorum_size(self.size)

    @property
    def fault_tolerance(self) -> int:
        return fault_tolerance(self.size)

    @property
    def primary(self) -> Node:
        return self.members[0]

    @property
    def endpoint_holder(self) -> Node | None:
        for node in self.members:
            if node.is_endpoint_holder:
                return node
        return None

    @property
    def control_plane_endpoint(self) -> str:
        """``host:port`` that clients and joining members should use."""
        if self.has_floating_endpoint and self.endpoint_address:
            host = self.endpoint_address
        else:
            host = self.primary.address
        if ":" in host:
            host = f"[{host}]"
        return f"{host}:{self.api_port}"


def parse_environment(name: str) -> Environment:
    """Map an environment selector, including aliases, to an Environment.

    Raises:
        ConfigurationError: If the name matches no known class.
    """
    key = (name or "").strip().lower()
    if key in ENVIRONMENT_ALIASES:
        return ENVIRONMENT_ALIASES[key]
    try:
        return Environment(key)
    except ValueError:
        known = ", ".join([e.value for e in Environment] + sorted(ENVIRONMENT_ALIASES))
        raise ConfigurationError(f"Unknown environment '{name}' (expected one of: {known})") from None


def parse_member(spec: str | Node) -> Node:
    """Parse ``hostname=address`` or a bare address into a Node.

    Raises:
        ConfigurationError: If the address is not a valid IP address.
    """
    if isinstance(spec, Node):
        node = spec
    else:
        text = spec.strip()
        if "=" in text:
            hostname, _, address = text.partition("=")
        else:
            hostname, address = text, text
        node = Node(hostname=hostname.strip(), address=address.strip())

    if not node.hostname:
        raise ConfigurationError(f"Member '{spec}' has an empty hostname")
    try:
        ipaddress.ip_address(node.address)
    except ValueError:
        raise ConfigurationError(f"Member '{spec}' has an invalid address '{node.address}'") from None
    return node


def _check_member_count(environment: Environment, count: int, raw: object) -> None:
    if environment is Environment.SINGLE and count != 1:
        raise ConfigurationError(f"Environment 'single' needs exactly 1 member, got {count}: {raw}")
    if environment is Environment.LIMITED_HA and count != 2:
        raise ConfigurationError(f"Environment 'limited-ha' needs exactly 2 members, got {count}: {raw}")
    if environment is Environment.FULL_HA and count < 3:
        raise ConfigurationError(f"Environment 'full-ha' needs at least 3 members, got {count}: {raw}")


def resolve(
    environment: str | Environment,
    members: Iterable[str | Node],
    *,
    endpoint_address: str | None = None,
    api_port: int = DEFAULT_API_PORT,
) -> Topology:
    """Build a Topology from an environment selector and member list.

    Args:
        environment: Environment name or alias (``single``, ``staging``, ...).
        members: Member specs as ``hostname=address`` strings, bare addresses,
            or Node instances. Order is preserved; the first is the primary.
        endpoint_address: Floating endpoint address for multi-member clusters.
        api_port: Kubernetes API server port.

    Returns:
        The resolved, immutable Topology.

    Raises:
        ConfigurationError: On an empty member list, an unknown environment,
            a member count that does not fit the environment, an invalid or
            duplicate address, or an invalid endpoint address.
    """
    raw = list(members)
    if not raw:
        raise ConfigurationError("At least one member address is required")

    env = environment if isinstance(environment, Environment) else parse_environment(environment)
    nodes = [parse_member(spec) for spec in raw]
    _check_member_count(env, len(nodes), [str(m) for m in raw])

    seen_hosts: set[str] = set()
    seen_addresses: set[str] = set()
    for node in nodes:
        if node.address in seen_addresses:
            raise ConfigurationError(f"Duplicate member address '{node.address}'")
        if node.hostname in seen_hosts:
            raise ConfigurationError(f"Duplicate member hostname '{node.hostname}'")
        seen_addresses.add(node.address)
        seen_hosts.add(node.hostname)

    if endpoint_address is not None:
        try:
            ipaddress.ip_address(endpoint_address)
        except ValueError:
            raise ConfigurationError(f"Invalid floating endpoint address '{endpoint_address}'") from None
        if endpoint_address in seen_addresses:
            raise ConfigurationError(
                f"Floating endpoint '{endpoint_address}' must not equal a member address"
            )

    floating = len(nodes) > 1
    nodes = [replace(node, is_endpoint_holder=floating and idx == 0) for idx, node in enumerate(nodes)]
    return Topology(
        environment=env,
        members=tuple(nodes),
        endpoint_address=endpoint_address if floating else None,
        api_port=api_port,
    )


def topology_table(topology: Topology) -> Table:
    """Members, quorum and fault tolerance as a rich table."""
    table = Table(title=f"Topology: {topology.environment.value}")
    table.add_column("Member", style="bold")
    table.add_column("Address")
    table.add_column("Role")
    for index, node in enumerate(topology.members):
        roles = ["primary"] if index == 0 else ["member"]
        if node.is_endpoint_holder:
            roles.append("endpoint holder")
        table.add_row(node.hostname, node.address, ", ".join(roles))
    table.caption = (
        f"quorum {topology.quorum}/{topology.size}, fault tolerance {topology.fault_tolerance}, "
        f"API endpoint {topology.control_plane_endpoint}"
    )
    return table


def display_topology(topology: Topology) -> None:
    """Print the resolved topology."""
    console.print(topology_table(topology))
    if topology.size > 1 and topology.size % 2 == 0:
        console.print(
            f"[yellow]⚠️  {topology.size} members tolerate {topology.fault_tolerance} failure(s), "
            f"the same as {topology.size - 1}[/yellow]"
        )
