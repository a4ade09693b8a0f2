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

"""Per-phase execution state, transition logging, and the final report."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from kube_bootstrap.constants import EXIT_ABORTED, EXIT_COMPLETED, TRANSITION_LOGGER

transition_logger = logging.getLogger(TRANSITION_LOGGER)


class PhaseStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SKIPPED = "skipped"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PhaseStatus.SKIPPED, PhaseStatus.COMPLETED, PhaseStatus.FAILED)


class RunStatus(str, Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ABORTED = "aborted"


ALLOWED_TRANSITIONS = {
    PhaseStatus.PENDING: {PhaseStatus.RUNNING, PhaseStatus.SKIPPED, PhaseStatus.FAILED},
    PhaseStatus.RUNNING: {PhaseStatus.COMPLETED, PhaseStatus.FAILED},
}


@dataclass(frozen=True)
class ExecutionState:
    """State of one phase within one run.

    Attributes:
        status: Current status.
        started_at: Clock value when the phase left ``pending``.
        finished_at: Clock value when the phase reached a terminal status.
        last_error: Message of the error that failed the phase.
        warning: Soft-failure or guard warning, if any.
        note: Short explanation (skip reason, repair, ...).
    """

    status: PhaseStatus = PhaseStatus.PENDING
    started_at: float | None = None
    finished_at: float | None = None
    last_error: str | None = None
    warning: str | None = None
    note: str | None = None

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at


@dataclass(frozen=True)
class Transition:
    phase: str
    from_status: PhaseStatus
    to_status: PhaseStatus
    timestamp: str
    duration_ms: int | None
    error: str | None = None


@dataclass(frozen=True)
class SummaryRow:
    name: str
    status: PhaseStatus
    duration: float | None
    warning: str | None = None
    error: str | None = None
    note: str | None = None


def format_duration(seconds: float | None) -> str:
    if seconds is None:
        return "-"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(round(seconds)), 60)
    return f"{minutes}m {secs}s"


class StateTracker:
    """Ordered record of phase states for a single run.

    Every phase starts ``pending``. Each :meth:`record` call is logged as one
    JSON line on the ``kube_bootstrap.transitions`` logger.

    Args:
        phase_names: Phases in execution order.
        clock: Wall clock used for timestamps and durations.
    """

    def __init__(self, phase_names: Iterable[str], clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._states: dict[str, ExecutionState] = {name: ExecutionState() for name in phase_names}
        self.transitions: list[Transition] = []

    @property
    def clock(self) -> Callable[[], float]:
        return self._clock

    def __contains__(self, name: str) -> bool:
        return name in self._states

    def get(self, name: str) -> ExecutionState:
        return self._states[name]

    def statuses(self) -> dict[str, PhaseStatus]:
        return {name: state.status for name, state in self._states.items()}

    def record(self, name: str, state: ExecutionState) -> None:
        """Store the new state of *name* and log the transition.

        Raises:
            RuntimeError: If the transition is not allowed, e.g. leaving a
                terminal status.
        """
        previous = self._states.get(name, ExecutionState())
        if state.status is not previous.status:
            allowed = ALLOWED_TRANSITIONS.get(previous.status, set())
            if state.status not in allowed:
                raise RuntimeError(
                    f"Phase '{name}': illegal transition {previous.status.value} -> {state.status.value}"
                )
        self._states[name] = state

        duration = state.duration if state.status.terminal else None
        transition = Transition(
            phase=name,
            from_status=previous.status,
            to_status=state.status,
            timestamp=datetime.now(timezone.utc).isoformat(),
            duration_ms=int(duration * 1000) if duration is not None else None,
            error=state.last_error,
        )
        self.transitions.append(transition)
        transition_logger.info(json.dumps({
            "timestamp": transition.timestamp,
            "phase": transition.phase,
            "from": transition.from_status.value,
            "to": transition.to_status.value,
            "duration_ms": transition.duration_ms,
            "error": transition.error,
        }))

    def start(self, name: str, note: str | None = None) -> None:
        self.record(name, replace(self._states[name], status=PhaseStatus.RUNNING,
                                  started_at=self._clock(), note=note))

    def finish(
        self,
        name: str,
        status: PhaseStatus,
        *,
        error: str | None = None,
        warning: str | None = None,
        note: str | None = None,
    ) -> None:
        """Move *name* to a terminal status, stamping the finish time."""
        current = self._states[name]
        now = self._clock()
        self.record(name, replace(
            current,
            status=status,
            started_at=current.started_at if current.started_at is not None else now,
            finished_at=now,
            last_error=error,
            warning=warning or current.warning,
            note=note or current.note,
        ))

    def summary(self) -> list[SummaryRow]:
        return [
            SummaryRow(name, s.status, s.duration, s.warning, s.last_error, s.note)
            for name, s in self._states.items()
        ]

    def warnings(self) -> list[tuple[str, str]]:
        return [(name, s.warning) for name, s in self._states.items() if s.warning]

    def failed(self) -> list[str]:
        return [name for name, s in self._states.items() if s.status is PhaseStatus.FAILED]

    def exit_code(self, run_status: RunStatus) -> int:
        """0 when the run completed with no failed phase, 1 otherwise.

        Soft warnings never change the exit code.
        """
        if run_status is RunStatus.COMPLETED and not self.failed():
            return EXIT_COMPLETED
        return EXIT_ABORTED

    def table(self) -> Table:
        table = Table(title="Bootstrap summary", show_lines=False)
        table.add_column("Phase", style="bold")
        table.add_column("Status")
        table.add_column("Duration", justify="right")
        table.add_column("Notes")
        styles = {
            PhaseStatus.COMPLETED: "[green]✓ completed[/green]",
            PhaseStatus.SKIPPED: "[yellow]○ skipped[/yellow]",
            PhaseStatus.FAILED: "[red]✗ failed[/red]",
            PhaseStatus.RUNNING: "[blue]… running[/blue]",
            PhaseStatus.PENDING: "[dim]pending[/dim]",
        }
        for row in self.summary():
            notes = [escape(row.note)] if row.note else []
            if row.warning:
                notes.append(f"[yellow]warning: {escape(row.warning)}[/yellow]")
            if row.error:
                notes.append(f"[red]{escape(row.error)}[/red]")
            table.add_row(row.name, styles[row.status], format_duration(row.duration), "\n".join(notes))
        return table

    def render(self, console: Console, run_status: RunStatus) -> None:
        """Print the summary table and, on abort, the failing phase and error."""
        console.print(self.table())
        if run_status is RunStatus.COMPLETED:
            count = len(self.warnings())
            suffix = f" with {count} warning(s)" if count else ""
            console.print(f"[green]✅ Bootstrap completed{suffix}[/green]")
            return
        for name in self.failed():
            error = self._states[name].last_error or "unknown error"
            console.print(f"[red]❌ Phase '{name}' failed: {escape(error)}[/red]")
        if not self.failed():
            console.print("[red]❌ Bootstrap aborted before completion[/red]")
