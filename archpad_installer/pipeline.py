from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from . import ui
from .config import ProvisionConfig
from .errors import OperatorCancelled, StepFailed
from .system import System

logger = logging.getLogger(__name__)


@dataclass
class StageContext:
    """Everything a step needs, shared across the steps of one stage run."""

    config: ProvisionConfig
    system: System
    assume_yes: bool = False
    start_at: Optional[str] = None
    stop_after: Optional[str] = None
    confirm: Optional[Callable[[str], bool]] = None
    # Filled in by the installer stage once the new root is found.
    target_root: Optional[str] = None

    def ask(self, question: str) -> bool:
        if self.confirm is not None:
            return self.confirm(question)
        return ui.confirm(question, assume_yes=self.assume_yes)


Check = Callable[[StageContext], bool]
Action = Callable[[StageContext], None]


@dataclass(frozen=True)
class Step:
    """A single idempotent step.

    ``check`` returns True when the target state already holds; a step
    without a check always runs its action.
    """

    step_id: str
    description: str
    action: Action
    check: Optional[Check] = None
    fatal: bool = True
    subject: Optional[str] = None

    @property
    def name(self) -> str:
        return self.subject or self.step_id


@dataclass(frozen=True)
class StepOutcome:
    step_id: str
    name: str
    description: str
    status: str  # changed | satisfied | failed
    detail: str = ""


@dataclass
class RunReport:
    stage: str
    outcomes: List[StepOutcome] = field(default_factory=list)
    declined: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    started: bool = False
    stopped: bool = False

    def _names(self, status: str) -> List[str]:
        return [o.name for o in self.outcomes if o.status == status]

    @property
    def changed(self) -> List[str]:
        return self._names("changed")

    @property
    def satisfied(self) -> List[str]:
        return self._names("satisfied")

    @property
    def failed(self) -> List[str]:
        return self._names("failed")

    @property
    def succeeded(self) -> List[str]:
        return self.changed + self.satisfied

    def note(self, text: str) -> None:
        if text not in self.notes:
            self.notes.append(text)


def run_steps(ctx: StageContext, steps: Sequence[Step], report: RunReport) -> RunReport:
    """Run steps in order, applying only the ones whose target state is missing.

    Fatal failures raise ``StepFailed``; soft failures are recorded in the
    report and the run moves on.
    """

    if ctx.start_at is None:
        report.started = True

    for step in steps:
        if report.stopped:
            break
        if not report.started:
            if step.step_id == ctx.start_at:
                report.started = True
            else:
                logger.info("Not yet at %s; passing over %s", ctx.start_at, step.step_id)
                continue

        _run_one(ctx, step, report)

        if ctx.stop_after is not None and step.step_id == ctx.stop_after:
            logger.info("Stopping after %s", ctx.stop_after)
            report.stopped = True

    return report


def _run_one(ctx: StageContext, step: Step, report: RunReport) -> None:
    try:
        if step.check is not None and step.check(ctx):
            logger.info("Skipping step %s (already done)", step.step_id)
            ui.print_success(f"{step.description}: already done")
            report.outcomes.append(
                StepOutcome(step.step_id, step.name, step.description, "satisfied")
            )
            return

        logger.info("Running step %s", step.step_id)
        step.action(ctx)
    except OperatorCancelled:
        raise
    except Exception as e:
        if step.fatal:
            ui.print_error(f"{step.description}: failed")
            raise StepFailed(step.step_id, e) from e
        logger.warning("Non-fatal: step %s failed: %s", step.step_id, e)
        ui.print_warning(f"{step.description}: failed, continuing")
        first_line = (str(e).splitlines() or [""])[0]
        report.outcomes.append(
            StepOutcome(step.step_id, step.name, step.description, "failed", detail=first_line)
        )
        return

    ui.print_success(step.description)
    report.outcomes.append(StepOutcome(step.step_id, step.name, step.description, "changed"))
