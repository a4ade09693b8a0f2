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
from pydantic import ValidationError

from kube_bootstrap.config import ClusterConfig, RunOptions, display_config, load_config
from kube_bootstrap.constants import DEFAULT_API_PORT, DEFAULT_KUBE_VERSION
from kube_bootstrap.retry import BackoffKind


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in ("KUBE_VERSION", "KUBE_API_PORT", "KUBE_CALICO_VERSION", "RETRY_MAX_ATTEMPTS",
                "RETRY_BACKOFF", "RETRY_INITIAL_DELAY", "VERIFY_TIMEOUT"):
        monkeypatch.delenv(var, raising=False)


def test_defaults():
    config = load_config(RunOptions())
    assert config.cluster.version == DEFAULT_KUBE_VERSION
    assert config.cluster.api_port == DEFAULT_API_PORT
    policy = config.retry_policy()
    assert policy.max_attempts == 3
    assert policy.backoff is BackoffKind.EXPONENTIAL
    assert config.verify.timeout == 300


def test_environment_variables_are_read(monkeypatch):
    monkeypatch.setenv("KUBE_VERSION", "1.33")
    monkeypatch.setenv("RETRY_BACKOFF", "linear")
    monkeypatch.setenv("RETRY_INITIAL_DELAY", "2")
    config = load_config(RunOptions())
    assert config.cluster.version == "1.33"
    assert config.retry_policy().backoff is BackoffKind.LINEAR
    assert config.retry_policy().initial_delay == 2


def test_cli_overrides_beat_environment(monkeypatch):
    monkeypatch.setenv("KUBE_API_PORT", "7443")
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "9")
    config = load_config(RunOptions(), api_port=8443, max_attempts=2, backoff=BackoffKind.FIXED)
    assert config.cluster.api_port == 8443
    assert config.retry.max_attempts == 2
    assert config.retry_policy().backoff is BackoffKind.FIXED


@pytest.mark.parametrize("var, value", [("KUBE_VERSION", "latest"), ("KUBE_CALICO_VERSION", "3.30")])
def test_invalid_values_are_rejected(monkeypatch, var, value):
    monkeypatch.setenv(var, value)
    with pytest.raises(ValidationError):
        ClusterConfig()


def test_display_config_lists_skipped_phases(capsys):
    config = load_config(RunOptions(skip_phases=frozenset({"monitoring"})))
    display_config(config)
    assert "monitoring" in capsys.readouterr().err


@pytest.mark.parametrize("overrides", [{"api_port": 70000}, {"api_port": 0}, {"max_attempts": 500}])
def test_cli_overrides_are_validated(overrides):
    with pytest.raises(ValidationError):
        load_config(RunOptions(), **overrides)
