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

"""Utility functions for logging setup, kubectl, and command checks."""

from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path

import sh

from kube_bootstrap import logger
from kube_bootstrap.constants import KUBECTL_TIMEOUT_SECONDS, LOG_DATE_FORMAT, LOG_FORMAT
from kube_bootstrap.errors import ConfigurationError


def setup_logging(log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure logging to stdout and, optionally, a log file.

    The log file is the only artifact that survives a crash, so every phase
    transition lands there as well.

    Args:
        log_file: File to append log lines to, or None for stdout only.
        verbose: Enable DEBUG level.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file is not None:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))
        except OSError as err:
            logger.warning("Cannot open log file %s (%s); logging to stdout only", log_file, err)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    if not verbose:
        logging.getLogger("sh").setLevel(logging.WARNING)


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        ConfigurationError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except (sh.ErrorReturnCode, sh.CommandNotFound) as err:
        raise ConfigurationError(f"Required command '{cmd}' not found. Please install it first.") from err


def command_available(cmd: str) -> bool:
    try:
        require_command(cmd)
    except ConfigurationError:
        return False
    return True


def run_kubectl(
    args: list[str],
    kubeconfig: str | None = None,
    timeout: int = KUBECTL_TIMEOUT_SECONDS,
    stdin: str | None = None,
) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because probes parse stdout on its own and
    must never raise on a non-zero exit.

    Args:
        args: kubectl arguments (e.g. ``["get", "nodes", "-o", "json"]``).
        kubeconfig: kubeconfig path, or None for kubectl's default.
        timeout: Maximum seconds to wait for the command to complete.
        stdin: Text fed to kubectl on standard input, e.g. a manifest.

    Returns:
        Tuple of (success, stdout, stderr).
    """
    cmd = ["kubectl"]
    if kubeconfig:
        cmd += ["--kubeconfig", kubeconfig]
    try:
        result = subprocess.run(
            [*cmd, *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            input=stdin,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)
