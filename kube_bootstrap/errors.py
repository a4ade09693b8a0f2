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

"""Error taxonomy shared by the resolver, retry controller and executor."""

from __future__ import annotations


class BootstrapError(RuntimeError):
    """Base class for every error raised by kube_bootstrap."""


class ConfigurationError(BootstrapError):
    """Bad topology input or an unmet precondition. Never retried."""


class TransientError(BootstrapError):
    """A failure expected to clear on its own, such as a network fetch."""


class DeadlineExceeded(TransientError):
    """The next retry sleep would pass the caller's deadline.

    Attributes:
        last_error: The error observed on the final attempt, if any.
    """

    def __init__(self, message: str, last_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class ConditionNotMet(TransientError):
    """A health probe returned false. Used internally while polling."""


class VerificationTimeoutError(BootstrapError):
    """A verification condition never became true within its timeout.

    Attributes:
        last_error: The last probe error, when the probe raised rather than
            returning false.
    """

    def __init__(self, message: str, last_error: BaseException | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class UnrecoverableActionError(BootstrapError):
    """The action reported a failure that retrying cannot fix."""


NON_RETRYABLE = (ConfigurationError, UnrecoverableActionError)


class Terminated(BaseException):
    """Raised from the SIGTERM handler so the run can stop between steps.

    Derives from BaseException, like KeyboardInterrupt, so retry loops and
    probe wrappers never absorb it.
    """

    def __init__(self, signum: int) -> None:
        super().__init__(f"terminated by signal {signum}")
        self.signum = signum
