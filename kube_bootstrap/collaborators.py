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

"""External collaborators: run named operations, query cluster state, apply resources.

The orchestrator never looks inside these calls beyond success, failure, and
the plain values probes return. :class:`ShellCollaborator` is the production
implementation: operations are scripts run with ``sh`` and probes are
read-only ``kubectl`` or local checks.
"""

from __future__ import annotations

import json
import logging
import os
import socket
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any, Protocol

import sh
import yaml
from pydantic import BaseModel, Field

from kube_bootstrap.constants import (
    ENDPOINT_CONNECT_TIMEOUT_SECONDS,
    LABEL_CONTROL_PLANE,
    OPERATION_SCRIPTS,
    TRANSIENT_EXIT_CODES,
)
from kube_bootstrap.errors import ConfigurationError, TransientError, UnrecoverableActionError
from kube_bootstrap.utils import command_available, run_kubectl

logger = logging.getLogger("kube_bootstrap.collaborators")


class ResourceConfig(BaseModel):
    """Typed description of a Kubernetes object to apply.

    Attributes:
        api_version: Object apiVersion.
        kind: Object kind.
        name: metadata.name.
        namespace: metadata.namespace, or None for cluster-scoped objects.
        labels: metadata.labels.
        spec: The object's spec, if it has one.
        fields: Other top-level fields (e.g. ``provisioner`` on a StorageClass).
    """

    api_version: str
    kind: str
    name: str
    namespace: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    spec: dict[str, Any] | None = None
    fields: dict[str, Any] = Field(default_factory=dict)

    def to_manifest(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": self.name}
        if self.namespace:
            metadata["namespace"] = self.namespace
        if self.labels:
            metadata["labels"] = dict(self.labels)
        manifest: dict[str, Any] = {"apiVersion": self.api_version, "kind": self.kind, "metadata": metadata}
        if self.spec is not None:
            manifest["spec"] = self.spec
        manifest.update(self.fields)
        return manifest


class Collaborator(Protocol):
    """What phase callables may ask of the outside world."""

    def run(self, operation: str, **params: Any) -> Any: ...

    def query(self, probe: str, **params: Any) -> Any: ...

    def apply(self, resource: ResourceConfig) -> None: ...


def _tail(output: bytes | str | None, lines: int = 5) -> str:
    if not output:
        return ""
    text = output.decode(errors="replace") if isinstance(output, bytes) else output
    return " | ".join(text.strip().splitlines()[-lines:])


def _count_ready(nodes: dict) -> int:
    ready = 0
    for item in nodes.get("items", []):
        for condition in item.get("status", {}).get("conditions", []):
            if condition.get("type") == "Ready" and condition.get("status") == "True":
                ready += 1
    return ready


class ShellCollaborator:
    """Runs operation scripts via ``sh`` and answers probes with ``kubectl``.

    Args:
        scripts_dir: Directory containing one script per operation.
        kubeconfig: kubeconfig for probes and applies, or None for default.
        env: Extra environment exported to every operation script.
        operations: Operation name to script file name mapping.
    """

    def __init__(
        self,
        scripts_dir: Path,
        kubeconfig: str | None = None,
        env: Mapping[str, str] | None = None,
        operations: Mapping[str, str] = OPERATION_SCRIPTS,
    ) -> None:
        self.scripts_dir = Path(scripts_dir)
        self.kubeconfig = kubeconfig
        self._env = dict(env or {})
        self._operations = dict(operations)
        self._probes: dict[str, Callable[..., Any]] = {
            "operation_available": self._operation_available,
            "command_available": lambda name: command_available(name),
            "service_active": self._service_active,
            "is_root": lambda: os.geteuid() == 0,
            "file_exists": lambda path: Path(path).exists(),
            "endpoint_reachable": self._endpoint_reachable,
            "api_responding": self._api_responding,
            "ready_members": self._ready_members,
            "crd_exists": lambda name: self._kubectl_ok(["get", "crd", name]),
            "namespace_exists": lambda namespace: self._kubectl_ok(["get", "namespace", namespace]),
            "running_pods": self._running_pods,
            "storage_classes": lambda: self._count_items(["get", "storageclass", "-o", "json"]),
            "persistent_volumes": lambda: self._count_items(["get", "pv", "-o", "json"]),
        }

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def script_for(self, operation: str) -> Path:
        """Return the script implementing *operation*.

        Raises:
            ConfigurationError: If the operation is unknown.
        """
        try:
            return self.scripts_dir / self._operations[operation]
        except KeyError:
            raise ConfigurationError(f"Unknown operation '{operation}'") from None

    def run(self, operation: str, **params: Any) -> None:
        """Run the script for *operation*, exporting params as upper-case env vars.

        Raises:
            ConfigurationError: If the script or bash is missing.
            TransientError: If the script exits with a transient exit code.
            UnrecoverableActionError: For any other non-zero exit.
        """
        script = self.script_for(operation)
        if not script.is_file():
            raise ConfigurationError(f"Script for operation '{operation}' not found: {script}")

        env = {**os.environ, **self._env}
        env.update({key.upper(): str(value) for key, value in params.items() if value is not None})
        if self.kubeconfig:
            env["KUBECONFIG"] = self.kubeconfig

        logger.info("Running %s (%s)", operation, script.name)
        try:
            sh.bash(str(script), _env=env, _cwd=str(self.scripts_dir),
                    _out=lambda line: logger.debug("[%s] %s", operation, line.rstrip()))
        except sh.CommandNotFound as err:
            raise ConfigurationError(f"Cannot run '{operation}': {err}") from err
        except sh.ErrorReturnCode as err:
            message = f"{operation} ({script.name}) exited with {err.exit_code}"
            detail = _tail(err.stderr)
            if detail:
                message = f"{message}: {detail}"
            if err.exit_code in TRANSIENT_EXIT_CODES:
                raise TransientError(message) from err
            raise UnrecoverableActionError(message) from err

    def apply(self, resource: ResourceConfig) -> None:
        """Apply *resource* with ``kubectl apply -f -``.

        Raises:
            TransientError: If kubectl rejects the object; the usual cause is a
                CRD or webhook that is not serving yet.
        """
        manifest = yaml.safe_dump(resource.to_manifest(), sort_keys=False)
        ok, _, stderr = run_kubectl(["apply", "-f", "-"], kubeconfig=self.kubeconfig, stdin=manifest)
        if not ok:
            raise TransientError(f"kubectl apply {resource.kind}/{resource.name} failed: {_tail(stderr)}")
        logger.info("Applied %s/%s", resource.kind, resource.name)

    # ------------------------------------------------------------------
    # Probes (read-only)
    # ------------------------------------------------------------------

    def query(self, probe: str, **params: Any) -> Any:
        """Answer a read-only probe.

        Raises:
            ConfigurationError: If the probe is unknown.
        """
        handler = self._probes.get(probe)
        if handler is None:
            raise ConfigurationError(f"Unknown probe '{probe}'")
        return handler(**params)

    def _operation_available(self, operation: str) -> bool:
        try:
            return self.script_for(operation).is_file()
        except ConfigurationError:
            return False

    def _service_active(self, name: str) -> bool:
        try:
            sh.systemctl("is-active", "--quiet", name)
        except (sh.ErrorReturnCode, sh.CommandNotFound):
            return False
        return True

    def _endpoint_reachable(self, address: str, port: int) -> bool:
        try:
            with socket.create_connection((address, port), timeout=ENDPOINT_CONNECT_TIMEOUT_SECONDS):
                return True
        except OSError:
            return False

    def _kubectl_ok(self, args: list[str]) -> bool:
        ok, _, _ = run_kubectl(args, kubeconfig=self.kubeconfig)
        return ok

    def _kubectl_json(self, args: list[str]) -> dict:
        ok, stdout, stderr = run_kubectl(args, kubeconfig=self.kubeconfig)
        if not ok:
            raise TransientError(f"kubectl {' '.join(args)} failed: {_tail(stderr)}")
        return json.loads(stdout or "{}")

    def _count_items(self, args: list[str]) -> int:
        return len(self._kubectl_json(args).get("items", []))

    def _api_responding(self) -> bool:
        return self._kubectl_ok(["get", "nodes", "--request-timeout=5s"])

    def _ready_members(self) -> int:
        return _count_ready(self._kubectl_json(["get", "nodes", "-l", LABEL_CONTROL_PLANE, "-o", "json"]))

    def _running_pods(self, namespace: str, selector: str | None = None) -> int:
        args = ["get", "pods", "-n", namespace, "-o", "json"]
        if selector:
            args += ["-l", selector]
        pods = self._kubectl_json(args).get("items", [])
        return sum(1 for pod in pods if pod.get("status", {}).get("phase") == "Running")
