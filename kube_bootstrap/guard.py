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

"""Idempotency guard: decide whether a phase's action needs to run."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from kube_bootstrap.phases import Phase, PhaseContext

logger = logging.getLogger("kube_bootstrap.guard")


class Decision(str, Enum):
    SKIP = "skip"
    REPAIR = "repair"
    RUN = "run"


@dataclass(frozen=True)
class GuardDecision:
    """Guard verdict plus an optional note for the report."""

    decision: Decision
    reason: str = ""
    warning: str | None = None

    @property
    def should_run(self) -> bool:
        return self.decision is not Decision.SKIP


class IdempotencyGuard:
    """Evaluates ``phase.idempotency_check`` once, before the action.

    The check must be read-only and mirror the action's postcondition.
    When the check itself fails, a rerunnable action is run again; an action
    that is not safe to repeat is skipped and a warning is recorded.
    """

    def should_run(self, phase: Phase, ctx: PhaseContext) -> GuardDecision:
        if phase.idempotency_check is None:
            return GuardDecision(Decision.RUN, "no idempotency check")

        try:
            result = phase.idempotency_check(ctx)
        except Exception as exc:
            if phase.rerunnable:
                logger.warning("%s: idempotency check failed (%s); running again", phase.name, exc)
                return GuardDecision(Decision.RUN, f"idempotency check failed: {exc}")
            message = f"idempotency check failed ({exc}); action is not safe to repeat, skipped"
            logger.warning("%s: %s", phase.name, message)
            return GuardDecision(Decision.SKIP, "check failed", warning=message)

        if isinstance(result, Decision):
            reasons = {
                Decision.SKIP: "already done",
                Decision.REPAIR: "partially done",
                Decision.RUN: "not started",
            }
            return GuardDecision(result, reasons[result])
        if result:
            return GuardDecision(Decision.SKIP, "already done")
        return GuardDecision(Decision.RUN, "not started")
