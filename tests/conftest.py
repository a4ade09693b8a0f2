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

"""Shared fixtures built on the fakes in fakes.py."""

from __future__ import annotations

import logging
from typing import Any

import pytest
from fakes import FakeClock

from kube_bootstrap.config import RunOptions, load_config
from kube_bootstrap.health import HealthVerifier
from kube_bootstrap.orchestrator import PhaseExecutor
from kube_bootstrap.retry import RetryController
from kube_bootstrap.topology import resolve


@pytest.fixture(autouse=True)
def restore_logging():
    """Drop root handlers a test installed through setup_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def retry(clock: FakeClock) -> RetryController:
    return RetryController(clock=clock.time, sleep=clock.sleep)


@pytest.fixture
def verifier(retry: RetryController) -> HealthVerifier:
    return HealthVerifier(retry)


@pytest.fixture
def single_topology():
    return resolve("single", ["cp1=10.0.0.11"])


@pytest.fixture
def ha_topology():
    return resolve(
        "full-ha",
        ["cp1=10.0.0.11", "cp2=10.0.0.12", "cp3=10.0.0.13"],
        endpoint_address="10.0.0.10",
    )


@pytest.fixture
def make_config(monkeypatch):
    for var in ("KUBE_VERSION", "KUBE_API_PORT", "RETRY_MAX_ATTEMPTS", "RETRY_BACKOFF", "VERIFY_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)

    def _make(**options: Any):
        options.setdefault("log_file", None)
        return load_config(RunOptions(**options))
    return _make


@pytest.fixture
def make_executor(clock: FakeClock, retry: RetryController):
    def _make(phases, collaborator, topology=None, config=None):
        topology = topology or resolve("single", ["cp1=10.0.0.11"])
        return PhaseExecutor(topology, phases, collaborator, config, retry=retry, clock=clock.time)
    return _make
