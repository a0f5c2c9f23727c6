# /*
# Copyright 2026 The Grove Authors.
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

"""Ordered execution of declarative steps with per-step error policy."""

from __future__ import annotations

import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from runtime_manager import logger
from runtime_manager.errors import (
    OperationCancelledError,
    StepError,
    ValidationError,
    decorate_with_docs_link,
)
from runtime_manager.summary import SummaryReporter


# ============================================================================
# Step descriptors and outcomes
# ============================================================================

@dataclass(frozen=True)
class Step:
    """One unit of an install, uninstall or upgrade sequence.

    Attributes:
        name: Stable identifier, used by rollback gating and tests.
        label: Human-readable description shown in the summary.
        run: Step body; receives the shared mutable state.
        when: Predicate evaluated before ``run``; false records a skipped outcome.
        force_continue: With ``force``, a failure is recorded and the sequence goes on.
        soft_errors: Exception types that are recorded but never fatal.
        in_summary: Whether the outcome is added to the summary.
        hint: Remedial advice appended to the summary on a fatal failure.
    """

    name: str
    label: str
    run: Callable[[Any], None]
    when: Callable[[Any], bool] | None = None
    force_continue: bool = False
    soft_errors: tuple[type[BaseException], ...] = ()
    in_summary: bool = True
    hint: str = ""


@dataclass(frozen=True)
class StepOutcome:
    name: str
    label: str
    error: BaseException | None = None
    fatal: bool = False
    in_summary: bool = True
    skipped: bool = False

    @property
    def succeeded(self) -> bool:
        return self.error is None and not self.skipped


@dataclass
class Report:
    """Append-only record of the outcomes of one sequence run."""

    outcomes: list[StepOutcome] = field(default_factory=list)

    def append(self, outcome: StepOutcome) -> None:
        self.outcomes.append(outcome)

    def __len__(self) -> int:
        return len(self.outcomes)

    def names(self) -> list[str]:
        return [outcome.name for outcome in self.outcomes]

    def get(self, name: str) -> StepOutcome | None:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        return None

    def reached(self, name: str) -> bool:
        """Whether step *name* ran and finished without a fatal error."""
        outcome = self.get(name)
        return outcome is not None and not outcome.skipped and not outcome.fatal

    @property
    def errors(self) -> list[StepOutcome]:
        return [outcome for outcome in self.outcomes if outcome.error is not None]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


# ============================================================================
# Runner
# ============================================================================

def _record(summary: SummaryReporter, step: Step, outcome: StepOutcome) -> None:
    if not step.in_summary or outcome.skipped:
        return
    if outcome.error is None:
        summary.info(step.label)
        return
    message = f"{step.label}: {outcome.error}"
    if outcome.fatal and step.hint:
        message = f"{message}. {step.hint}"
    summary.error(message)


def run_steps(
    steps: Sequence[Step],
    state: Any,
    summary: SummaryReporter,
    *,
    force: bool = False,
    cancel: threading.Event | None = None,
    docs_link: str = "",
    report: Report | None = None,
) -> Report:
    """Run ``steps`` strictly in order and return the report.

    Args:
        steps: Step descriptors, in execution order.
        state: Mutable state handed to every step body and ``when`` predicate.
        summary: Receives an entry for each summary-visible outcome.
        force: Let ``force_continue`` steps fail without stopping the sequence.
        cancel: Root cancellation signal, checked before each step.
        docs_link: Documentation pointer appended to step errors.
        report: Existing report to extend, or None to start a new one.

    Returns:
        The report with one outcome per step that was reached.

    Raises:
        ValidationError: A step rejected the request.
        OperationCancelledError: The root signal fired.
        StepError: A step failed fatally; carries the report so far.
    """
    report = report if report is not None else Report()
    for step in steps:
        if cancel is not None and cancel.is_set():
            raise OperationCancelledError(f"cancelled before step '{step.name}'")

        if step.when is not None and not step.when(state):
            logger.debug("Skipping step %s", step.name)
            report.append(StepOutcome(step.name, step.label, in_summary=step.in_summary, skipped=True))
            continue

        logger.debug("Running step %s", step.name)
        try:
            step.run(state)
        except (ValidationError, OperationCancelledError) as err:
            outcome = StepOutcome(step.name, step.label, error=err, fatal=True, in_summary=step.in_summary)
            report.append(outcome)
            _record(summary, step, outcome)
            raise
        except Exception as err:
            tolerated = isinstance(err, step.soft_errors) or (force and step.force_continue)
            outcome = StepOutcome(step.name, step.label, error=err, fatal=not tolerated,
                                  in_summary=step.in_summary)
            report.append(outcome)
            _record(summary, step, outcome)
            if tolerated:
                logger.warning("%s failed, continuing: %s", step.label, err)
                continue
            raise StepError(
                step.name,
                decorate_with_docs_link(f"{step.label} failed: {err}", docs_link),
                cause=err,
                report=report,
            ) from err

        outcome = StepOutcome(step.name, step.label, in_summary=step.in_summary)
        report.append(outcome)
        _record(summary, step, outcome)
    return report
